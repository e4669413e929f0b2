import asyncio
import logging
from logging.config import fileConfig

from sqlalchemy import engine_from_config
from sqlalchemy import pool

from alembic import context

from ticketing.core.config import config
from ticketing.models import Base

version_table = "alembic_version_ticketing"

logger = logging.getLogger("alembic.env")

alembic_config = context.config

if alembic_config.config_file_name is not None:
    fileConfig(alembic_config.config_file_name)

target_metadata = Base.metadata


def include_object(object, name, type_, reflected, compare_to):
    """Only manage the tables declared by the ticketing models."""
    if type_ == "table":
        return name in target_metadata.tables
    return True


def get_database_url() -> str:
    """Get database URL from ticketing.core.config."""
    try:
        return asyncio.run(config.get_database_url())
    except Exception as e:
        logger.error(f"Failed to get database URL from config: {e}")
        raise EnvironmentError(f"Failed to get database URL from config: {e}")


def run_migrations_offline() -> None:
    """Emit migration SQL without a live connection."""
    context.configure(
        url=get_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        include_object=include_object,
        version_table=version_table,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations against the configured database."""
    connectable = engine_from_config(
        {"sqlalchemy.url": get_database_url()},
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            include_object=include_object,
            version_table=version_table,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
