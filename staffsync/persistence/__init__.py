"""Canonical store contract and reference gateways."""

from staffsync.persistence.gateway import InMemoryGateway, PersistenceGateway
from staffsync.persistence.redis_gateway import RedisGateway

__all__ = ["InMemoryGateway", "PersistenceGateway", "RedisGateway"]
