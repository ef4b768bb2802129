"""Redis-backed canonical store: one hash per entity, JSON documents keyed by external id."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import Any

import structlog

from staffsync.kernel.time import utc_now
from staffsync.persistence.gateway import PersistenceGateway, RecordT

logger = structlog.get_logger()


class RedisGateway(PersistenceGateway[RecordT]):
    def __init__(
        self,
        redis_client: Any,
        model: type[RecordT],
        *,
        entity: str,
        prefix: str = "staffsync",
        clock: Callable[[], datetime] = utc_now,
    ):
        super().__init__(entity=entity, clock=clock)
        self._redis = redis_client
        self._model = model
        self._key = f"{prefix}:{entity}s"

    @classmethod
    def from_url(cls, url: str, model: type[RecordT], **kwargs: Any) -> "RedisGateway[RecordT]":
        import redis.asyncio as redis

        return cls(redis.from_url(url), model, **kwargs)

    @property
    def key(self) -> str:
        return self._key

    async def _load(self, external_id: str) -> RecordT | None:
        raw = await self._redis.hget(self._key, external_id)
        if raw is None:
            return None
        return self._model.model_validate_json(raw)

    async def _save(self, record: RecordT) -> None:
        await self._redis.hset(self._key, record.external_id, record.model_dump_json(by_alias=True))

    async def count(self) -> int:
        return int(await self._redis.hlen(self._key))
