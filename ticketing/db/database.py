"""
Database connection and session management for Ticketing Service.
Every ticketing mutation runs inside one short transaction session.
"""

from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool
from contextlib import contextmanager
from typing import Generator
import logging

from ticketing.core.config import config
from ticketing.models import Base

logger = logging.getLogger(__name__)


class DatabaseManager:
    """
    Database manager for ticketing operations.
    Handles connection pooling and transaction management.
    """

    def __init__(self):
        self.engine = None
        self.session_factory = None
        self._initialized = False

    async def initialize(self):
        """Initialize database connections."""
        if self._initialized:
            return

        try:
            db_url = await config.get_database_url()
            db_config = await config.get_database_config()

            engine_options = {"echo": False, "future": True}
            if not db_url.startswith("sqlite"):
                engine_options.update(
                    poolclass=QueuePool,
                    pool_size=db_config["pool_size"],
                    max_overflow=db_config["max_overflow"],
                    pool_timeout=db_config["pool_timeout"],
                    pool_recycle=db_config["pool_recycle"],
                    pool_pre_ping=True,
                )

            self.bind(create_engine(db_url, **engine_options))
            logger.info("Database manager initialized successfully")

        except Exception as e:
            logger.error(f"Failed to initialize database manager: {e}")
            raise

    def bind(self, engine):
        """Attach an engine and build the session factory."""
        self.engine = engine
        self.session_factory = sessionmaker(
            bind=self.engine,
            class_=Session,
            autoflush=False,
            expire_on_commit=False
        )
        self._setup_event_listeners()
        self._initialized = True

    def _setup_event_listeners(self):
        """Set per-connection timeouts on PostgreSQL."""

        @event.listens_for(self.engine, "connect")
        def set_connection_parameters(dbapi_connection, connection_record):
            if self.engine.dialect.name == "postgresql":
                with dbapi_connection.cursor() as cursor:
                    cursor.execute("SET lock_timeout TO '30s'")
                    cursor.execute("SET statement_timeout TO '60s'")

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """
        Get a database session with automatic transaction management.
        Ensures proper rollback on exceptions.
        """
        if not self._initialized:
            raise RuntimeError("Database manager not initialized")

        session = self.session_factory()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Database session error: {e}")
            raise
        finally:
            session.close()

    @contextmanager
    def get_transaction_session(self) -> Generator[Session, None, None]:
        """
        Get a database session with explicit transaction control.
        The caller commits; any exception rolls the whole unit back.
        """
        if not self._initialized:
            raise RuntimeError("Database manager not initialized")

        session = self.session_factory()
        try:
            session.begin()
            yield session
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def create_tables(self):
        """Create all database tables."""
        Base.metadata.create_all(bind=self.engine)
        logger.info("Database tables created successfully")

    def drop_tables(self):
        """Drop all database tables (use with caution)."""
        Base.metadata.drop_all(bind=self.engine)
        logger.info("Database tables dropped successfully")

    def health_check(self) -> bool:
        try:
            with self.engine.connect() as connection:
                connection.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False

    def close(self):
        """Close all database connections."""
        if self.engine:
            self.engine.dispose()
        logger.info("Database connections closed")


# Global database manager instance
db_manager = DatabaseManager()


