"""
Token Cache

Holds the provider's access/refresh credentials with expiry bookkeeping.
Values are Fernet-encrypted at rest.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

import structlog
from cryptography.fernet import Fernet, InvalidToken
from pydantic import BaseModel, Field

from staffsync.kernel.time import utc_now

logger = structlog.get_logger()

ACCESS_TOKEN_BUFFER_SECONDS = 60
REFRESH_TOKEN_TTL_SECONDS = 30 * 24 * 60 * 60
DEFAULT_EXPIRES_IN_SECONDS = 3600


class TokenRecord(BaseModel):
    """Credentials returned by the provider's token endpoint."""

    access_token: str
    refresh_token: str | None = None
    token_type: str = "Bearer"
    expires_in: int = DEFAULT_EXPIRES_IN_SECONDS
    issued_at: datetime = Field(default_factory=utc_now)

    @classmethod
    def from_token_response(cls, payload: dict[str, Any], *, issued_at: datetime | None = None) -> "TokenRecord":
        expires_in = payload.get("expires_in")
        try:
            expires_in = int(expires_in) if expires_in is not None else DEFAULT_EXPIRES_IN_SECONDS
        except (TypeError, ValueError):
            expires_in = DEFAULT_EXPIRES_IN_SECONDS
        return cls(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token"),
            token_type=payload.get("token_type") or "Bearer",
            expires_in=expires_in,
            issued_at=issued_at or utc_now(),
        )

    @property
    def access_expires_at(self) -> datetime:
        return self.issued_at + timedelta(seconds=self.expires_in)

    @property
    def refresh_expires_at(self) -> datetime:
        return self.issued_at + timedelta(seconds=REFRESH_TOKEN_TTL_SECONDS)

    @property
    def access_cache_ttl(self) -> int:
        """Seconds to cache the access token: expiry minus a safety buffer."""
        return max(0, self.expires_in - ACCESS_TOKEN_BUFFER_SECONDS)


class TokenCache(ABC):
    """
    Base class for credential caches.

    Subclasses provide raw keyed storage with TTLs; this class owns key
    naming, encryption and the expiry rules.
    """

    def __init__(self, *, prefix: str = "staffsync:provider", encryption_key: str | bytes | None = None):
        self._prefix = prefix
        self._fernet = Fernet(encryption_key) if encryption_key else None

    @property
    def access_key(self) -> str:
        return f"{self._prefix}:access_token"

    @property
    def refresh_key(self) -> str:
        return f"{self._prefix}:refresh_token"

    @abstractmethod
    async def _get(self, key: str) -> bytes | None:
        """Return the stored value, or None when missing or expired."""

    @abstractmethod
    async def _set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        """Store a value that expires after `ttl_seconds`."""

    @abstractmethod
    async def _delete(self, key: str) -> None:
        """Remove a value if present."""

    def _encode(self, value: str) -> bytes:
        data = value.encode()
        return self._fernet.encrypt(data) if self._fernet else data

    def _decode(self, data: bytes) -> str | None:
        if self._fernet is None:
            return data.decode()
        try:
            return self._fernet.decrypt(data).decode()
        except InvalidToken:
            logger.warning("Cached token could not be decrypted; treating as miss")
            return None

    async def _read(self, key: str) -> str | None:
        data = await self._get(key)
        if data is None:
            return None
        return self._decode(data)

    async def get_access_token(self) -> str | None:
        return await self._read(self.access_key)

    async def get_refresh_token(self) -> str | None:
        return await self._read(self.refresh_key)

    async def store(self, record: TokenRecord) -> None:
        ttl = record.access_cache_ttl
        if ttl > 0:
            await self._set(self.access_key, self._encode(record.access_token), ttl)
        else:
            logger.warning("Access token lifetime shorter than cache buffer; not cached", expires_in=record.expires_in)

        if record.refresh_token:
            await self._set(self.refresh_key, self._encode(record.refresh_token), REFRESH_TOKEN_TTL_SECONDS)

        logger.debug(
            "Stored provider tokens",
            access_ttl=ttl,
            has_refresh_token=bool(record.refresh_token),
            expires_at=record.access_expires_at.isoformat(),
        )

    async def clear_access_token(self) -> None:
        await self._delete(self.access_key)

    async def clear(self) -> None:
        await self._delete(self.access_key)
        await self._delete(self.refresh_key)


@dataclass
class _CacheEntry:
    value: bytes
    expires_at: float


class InMemoryTokenCache(TokenCache):
    """
    Process-local token cache for development/testing.

    Tokens are encrypted in memory but not persisted. A key is generated when
    none is supplied.
    """

    def __init__(
        self,
        *,
        prefix: str = "staffsync:provider",
        encryption_key: str | bytes | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(prefix=prefix, encryption_key=encryption_key or Fernet.generate_key())
        self._entries: dict[str, _CacheEntry] = {}
        self._clock = clock

    async def _get(self, key: str) -> bytes | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            del self._entries[key]
            return None
        return entry.value

    async def _set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        self._entries[key] = _CacheEntry(value=value, expires_at=self._clock() + ttl_seconds)

    async def _delete(self, key: str) -> None:
        self._entries.pop(key, None)


class RedisTokenCache(TokenCache):
    """Token cache shared across processes through Redis (SETEX with TTL)."""

    def __init__(
        self,
        redis_client: Any,
        *,
        prefix: str = "staffsync:provider",
        encryption_key: str | bytes | None = None,
    ):
        super().__init__(prefix=prefix, encryption_key=encryption_key)
        self._redis = redis_client
        if encryption_key is None:
            logger.warning("Token encryption key not configured; tokens stored in Redis unencrypted")

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> "RedisTokenCache":
        import redis.asyncio as redis

        return cls(redis.from_url(url), **kwargs)

    async def _get(self, key: str) -> bytes | None:
        value = await self._redis.get(key)
        if value is None:
            return None
        return value if isinstance(value, bytes) else str(value).encode()

    async def _set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        await self._redis.setex(key, ttl_seconds, value)

    async def _delete(self, key: str) -> None:
        await self._redis.delete(key)
