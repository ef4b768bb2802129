"""
Authentication

Provides bearer credential acquisition and token caching for the provider.
"""

from staffsync.connectors.auth.auth_manager import AuthManager
from staffsync.connectors.auth.token_cache import (
    InMemoryTokenCache,
    RedisTokenCache,
    TokenCache,
    TokenRecord,
)

__all__ = [
    "AuthManager",
    "TokenCache",
    "InMemoryTokenCache",
    "RedisTokenCache",
    "TokenRecord",
]
