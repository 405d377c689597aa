import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from .config import Config
from .errors import StoreFailure

logger = logging.getLogger("tunnelrelay-server")


def create_redis(url: Optional[str] = None, password: Optional[str] = None) -> Redis:
    """Create the shared async Redis client from configuration"""
    return Redis.from_url(
        url or Config.REDIS_URL,
        password=password or Config.REDIS_PASSWORD,
        decode_responses=True,
    )


@dataclass
class BackendRegistration:
    address: str
    registered_at: str


class RegistrationStore:
    """The single backend registration, kept in Redis so every proxy instance sees the same tunnel."""

    def __init__(self, redis: Redis, ttl_seconds: int = Config.REGISTRATION_TTL_SECONDS):
        self.redis = redis
        self.ttl_seconds = ttl_seconds
        self.url_key = Config.key("tunnel_url")
        self.last_registered_key = Config.key("last_registered")

    async def set_backend(self, address: str) -> BackendRegistration:
        """
        Persist a new backend address, replacing any previous one.

        The address and its timestamp are written in one MULTI/EXEC transaction,
        so concurrent registrations resolve last-writer-wins with no partial state.
        The timestamp key carries no expiry; it outlives the address.

        Raises:
            StoreFailure: if the transaction could not be committed
        """
        registered_at = datetime.now(timezone.utc).isoformat()
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.set(self.url_key, address, ex=self.ttl_seconds)
                pipe.set(self.last_registered_key, registered_at)
                await pipe.execute()
        except RedisError as e:
            logger.error(f"Redis SET error while registering {address}: {e}")
            raise StoreFailure("Failed to persist tunnel URL", message=str(e)) from e

        return BackendRegistration(address=address, registered_at=registered_at)

    async def get_backend(self) -> Optional[str]:
        """Current backend address, or None when expired, never set, or unreadable."""
        try:
            return await self.redis.get(self.url_key) or None
        except RedisError as e:
            logger.error(f"Redis GET error: {e}")
            return None

    async def get_last_registered_at(self) -> Optional[str]:
        try:
            return await self.redis.get(self.last_registered_key) or None
        except RedisError as e:
            logger.error(f"Redis GET error: {e}")
            return None

    async def ping(self) -> bool:
        try:
            return bool(await self.redis.ping())
        except RedisError as e:
            logger.warning(f"Redis PING failed: {e}")
            return False
