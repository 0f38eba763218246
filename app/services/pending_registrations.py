"""
Pending-registration store — unconfirmed signups waiting for their email code.

Entries are transient: the in-memory store loses them on restart
and the user simply signs up again. Every lookup re-checks expiry, so an
expired entry is unusable even before the periodic sweep removes it.

Two interchangeable backends share one async interface:

- ``InMemoryPendingStore``: a dict owned by the application instance.
- ``RedisPendingStore``: keys with a TTL, for multi-worker deployments.
"""

from __future__ import annotations

import logging
import secrets
from abc import ABC, abstractmethod
from datetime import datetime, timedelta

from pydantic import BaseModel

from app.core.config import settings
from app.core.timeutils import ensure_utc, utcnow

logger = logging.getLogger(__name__)


class PendingRegistration(BaseModel):
    """A candidate account. Holds a password *hash*, never the plaintext."""

    id: str
    name: str
    email: str
    password_hash: str
    code: str
    code_expires_at: datetime
    failed_attempts: int = 0

    def is_expired(self, now: datetime | None = None) -> bool:
        return (ensure_utc(now) or utcnow()) > ensure_utc(self.code_expires_at)


def new_pending_id() -> str:
    return secrets.token_urlsafe(24)


def code_expiry(now: datetime | None = None) -> datetime:
    return (now or utcnow()) + timedelta(minutes=settings.SIGNUP_CODE_TTL_MINUTES)


class PendingStore(ABC):
    """Interface for pending-registration storage."""

    backend = "abstract"

    @abstractmethod
    async def put(self, entry: PendingRegistration) -> str:
        raise NotImplementedError

    @abstractmethod
    async def get(self, pending_id: str, now: datetime | None = None) -> PendingRegistration | None:
        raise NotImplementedError

    @abstractmethod
    async def peek(self, pending_id: str) -> PendingRegistration | None:
        """Return the entry as stored, without the expiry check."""
        raise NotImplementedError

    @abstractmethod
    async def remove(self, pending_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def sweep(self, now: datetime | None = None) -> int:
        """Evict expired entries; return how many were removed."""
        raise NotImplementedError

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class InMemoryPendingStore(PendingStore):
    backend = "memory"

    def __init__(self) -> None:
        self._entries: dict[str, PendingRegistration] = {}

    def __len__(self) -> int:
        return len(self._entries)

    async def put(self, entry: PendingRegistration) -> str:
        self._entries[entry.id] = entry
        return entry.id

    async def get(self, pending_id: str, now: datetime | None = None) -> PendingRegistration | None:
        entry = self._entries.get(pending_id)
        if entry is None:
            return None
        if entry.is_expired(now):
            self._entries.pop(pending_id, None)
            return None
        return entry

    async def peek(self, pending_id: str) -> PendingRegistration | None:
        return self._entries.get(pending_id)

    async def remove(self, pending_id: str) -> None:
        self._entries.pop(pending_id, None)

    async def sweep(self, now: datetime | None = None) -> int:
        expired = [key for key, entry in list(self._entries.items()) if entry.is_expired(now)]
        for key in expired:
            self._entries.pop(key, None)
        if expired:
            logger.info("Swept %d expired pending registrations", len(expired))
        return len(expired)


class RedisPendingStore(PendingStore):
    backend = "redis"
    key_prefix = "pending_signup:"

    def __init__(self, client) -> None:
        self._redis = client

    @classmethod
    def from_url(cls, url: str) -> RedisPendingStore:
        import redis.asyncio as aioredis

        return cls(
            aioredis.from_url(
                url,
                decode_responses=True,
                socket_connect_timeout=settings.DB_CONNECT_TIMEOUT_SECONDS,
                socket_timeout=settings.DB_COMMAND_TIMEOUT_SECONDS,
            )
        )

    def _key(self, pending_id: str) -> str:
        return f"{self.key_prefix}{pending_id}"

    async def put(self, entry: PendingRegistration) -> str:
        remaining = (ensure_utc(entry.code_expires_at) - utcnow()).total_seconds()
        await self._redis.set(
            self._key(entry.id), entry.model_dump_json(), ex=max(1, int(remaining) + 1)
        )
        return entry.id

    async def peek(self, pending_id: str) -> PendingRegistration | None:
        raw = await self._redis.get(self._key(pending_id))
        if raw is None:
            return None
        return PendingRegistration.model_validate_json(raw)

    async def get(self, pending_id: str, now: datetime | None = None) -> PendingRegistration | None:
        entry = await self.peek(pending_id)
        if entry is None:
            return None
        if entry.is_expired(now):
            await self.remove(pending_id)
            return None
        return entry

    async def remove(self, pending_id: str) -> None:
        await self._redis.delete(self._key(pending_id))

    async def sweep(self, now: datetime | None = None) -> int:
        # Redis expires keys on its own.
        return 0

    async def ping(self) -> bool:
        from redis.exceptions import RedisError

        try:
            return bool(await self._redis.ping())
        except (RedisError, OSError) as e:
            logger.error("Pending store Redis ping failed: %s", e)
            return False

    async def close(self) -> None:
        await self._redis.close()


def build_pending_store() -> PendingStore:
    if settings.PENDING_STORE_BACKEND == "redis":
        logger.info("Pending registrations stored in Redis")
        return RedisPendingStore.from_url(settings.REDIS_URL)
    return InMemoryPendingStore()
