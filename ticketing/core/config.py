"""
Configuration management for Ticketing Service.
Uses Zero Python SDK for secure configuration, falling back to environment
variables when no Zero token is present (local development and tests).
"""

import os
import asyncio
import concurrent.futures
from urllib.parse import quote_plus
from typing import Dict, Any, Optional
import logging
from zero_python_sdk import zero

logger = logging.getLogger(__name__)


def _normalize_key(key: str) -> str:
    """Normalize a key to lowercase and replace underscores with hyphens."""
    return key.lower().replace("_", "-")


class ZeroSecretsManager:
    """
    Zero secrets client using the official Zero Python SDK.
    Secrets are fetched once and cached for the lifetime of the process.
    """

    def __init__(self, zero_token: str, caller_name: str = "evently"):
        self.zero_token = zero_token
        self.caller_name = caller_name
        self._cache: Dict[str, Any] = {}
        self._secrets = None

    async def _fetch_secrets(self):
        """Fetch secrets from Zero if not already cached."""
        if self._secrets is None:
            try:
                loop = asyncio.get_running_loop()
                with concurrent.futures.ThreadPoolExecutor() as executor:
                    self._secrets = await loop.run_in_executor(
                        executor,
                        lambda: zero(
                            token=self.zero_token,
                            pick=["evently"],
                            caller_name=self.caller_name
                        ).fetch()
                    )
                logger.info("Successfully fetched secrets from Zero")
            except Exception as e:
                logger.error(f"Failed to fetch secrets from Zero: {e}")
                self._secrets = {}

    async def get_secret(self, key: str) -> Optional[str]:
        """
        Get a secret value by key.

        Args:
            key: The secret key to retrieve

        Returns:
            Secret value or None if not found
        """
        try:
            key = _normalize_key(key)
            if key in self._cache:
                return self._cache[key]

            await self._fetch_secrets()
            evently_secrets = self._secrets.get("evently", {})
            secret_value = evently_secrets.get(key)

            if secret_value:
                self._cache[key] = secret_value

            return secret_value

        except Exception as e:
            logger.error(f"Failed to fetch secret {key}: {e}")
            return None

    async def close(self):
        """Close method for compatibility."""
        pass


class EnvironmentSecretsManager:
    """Reads the same keys from the process environment."""

    async def get_secret(self, key: str) -> Optional[str]:
        return os.getenv(key.upper().replace("-", "_"))

    async def close(self):
        pass


class TicketingConfig:
    """
    Ticketing Service configuration manager.
    Every getter is async so the secrets source can be remote.
    """

    def __init__(self):
        self.zero_token = os.getenv("ZERO_TOKEN")
        if self.zero_token:
            self.secrets_manager = ZeroSecretsManager(self.zero_token)
        else:
            logger.info("ZERO_TOKEN not set, reading configuration from environment")
            self.secrets_manager = EnvironmentSecretsManager()

    async def _get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        value = await self.secrets_manager.get_secret(key)
        return value if value else default

    async def get_database_url(self) -> str:
        """Get the database connection URL."""
        explicit = await self._get("DATABASE_URL")
        if explicit:
            return explicit

        host = await self._get("DB_HOST", "localhost")
        port = await self._get("DB_PORT", "5432")
        name = await self._get("DB_NAME", "evently")
        user = await self._get("DB_USER", "evently")
        password = await self._get("DB_PASSWORD", "evently123")

        return f"postgresql://{user}:{quote_plus(password)}@{host}:{port}/{name}"

    async def get_redis_url(self) -> str:
        """Get the Redis connection URL."""
        host = await self._get("REDIS_HOST", "localhost")
        port = await self._get("REDIS_PORT", "6379")
        password = await self._get("REDIS_PASSWORD")
        use_tls = await self._get("REDIS_USE_TLS")

        protocol = "rediss://" if use_tls == "true" else "redis://"

        if password:
            return f"{protocol}:{password}@{host}:{port}"
        return f"{protocol}{host}:{port}"

    async def get_jwt_secret(self) -> str:
        """Get JWT secret key."""
        return await self._get("JWT_SECRET", "your-secret-key-change-in-production")

    async def get_jwt_algorithm(self) -> str:
        """Get JWT algorithm."""
        return await self._get("JWT_ALGORITHM", "HS256")

    async def get_cache_config(self) -> Dict[str, int]:
        """Get cache TTL configuration."""
        return {
            "availability_ttl": int(await self._get("CACHE_TTL_AVAILABILITY", "30")),
        }

    async def get_consistency_config(self) -> Dict[str, Any]:
        """Get locking and retry settings."""
        return {
            "lock_timeout_seconds": int(await self._get("LOCK_TIMEOUT_SECONDS", "30")),
            "max_retry_attempts": int(await self._get("MAX_RETRY_ATTEMPTS", "3")),
            "enable_distributed_locks": await self._get("ENABLE_DISTRIBUTED_LOCKS") == "true",
        }

    async def get_ticketing_config(self) -> Dict[str, Any]:
        """Get credential and issuance settings."""
        return {
            "credential_secret": await self._get("CREDENTIAL_SECRET") or await self.get_jwt_secret(),
            "credential_random_bytes": max(6, int(await self._get("CREDENTIAL_RANDOM_BYTES", "12"))),
            "purchase_reference_prefix": await self._get("PURCHASE_REFERENCE_PREFIX", "TXN"),
        }

    async def get_notification_config(self) -> Dict[str, Any]:
        """Get notification dispatch settings."""
        return {
            "enabled": await self._get("ENABLE_NOTIFICATIONS") != "false",
            "queue": await self._get("NOTIFICATION_QUEUE", "email_notifications"),
        }

    async def get_email_config(self) -> Dict[str, Any]:
        """Get SMTP settings used by the email worker."""
        return {
            "smtp_host": await self._get("SMTP_HOST", "smtp.gmail.com"),
            "smtp_port": int(await self._get("SMTP_PORT", "587")),
            "smtp_username": await self._get("SMTP_USERNAME"),
            "smtp_password": await self._get("SMTP_PASSWORD"),
            "smtp_use_tls": (await self._get("SMTP_USE_TLS", "true")).lower() == "true",
            "from_email": await self._get("FROM_ADDRESS", "noreply@evently.com"),
            "from_name": await self._get("FROM_NAME", "Evently"),
        }

    async def get_database_config(self) -> Dict[str, Any]:
        """Get connection pool configuration."""
        return {
            "pool_size": int(await self._get("DB_POOL_SIZE", "20")),
            "max_overflow": int(await self._get("DB_MAX_OVERFLOW", "30")),
            "pool_timeout": int(await self._get("DB_POOL_TIMEOUT", "30")),
            "pool_recycle": int(await self._get("DB_POOL_RECYCLE", "3600")),
        }

    async def close(self):
        """Close the secrets manager."""
        await self.secrets_manager.close()


# Global config instance
config = TicketingConfig()
