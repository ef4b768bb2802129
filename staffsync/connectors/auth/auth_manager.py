"""
Provider Auth Manager

Obtains and refreshes bearer credentials for the provider API.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime
from typing import Any

import httpx
import structlog

from staffsync.connectors.auth.token_cache import TokenCache, TokenRecord
from staffsync.kernel.errors import AuthenticationError
from staffsync.kernel.time import utc_now

logger = structlog.get_logger()


class AuthManager:
    """
    Bearer credential manager.

    Handles:
    - Cached access token lookup
    - Refresh-token grant, falling back to the password grant
    - Caching both tokens with their TTLs

    Refreshes are single-flight: concurrent callers that find the cache empty
    wait for one token request instead of issuing their own.

    Example usage:
        manager = AuthManager(
            base_url="https://api.example.com",
            username="api_user",
            password="secret",
            organization_code="ORG",
            cache=InMemoryTokenCache(),
        )
        token = await manager.get_access_token()
    """

    def __init__(
        self,
        *,
        base_url: str,
        username: str,
        password: str,
        organization_code: str,
        cache: TokenCache,
        http_client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._token_url = f"{base_url.rstrip('/')}/oauth/token"
        self._username = username
        self._password = password
        self._organization_code = organization_code
        self._cache = cache
        self._client = http_client
        self._owns_client = http_client is None
        self._transport = transport
        self._timeout = timeout
        self._clock = clock

        self._refresh_lock = asyncio.Lock()
        self._refresh_generation = 0

    @property
    def cache(self) -> TokenCache:
        return self._cache

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self._client

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def get_access_token(self, force_refresh: bool = False) -> str:
        """
        Return a valid access token.

        Args:
            force_refresh: Skip the cached access token and request a new one

        Raises:
            AuthenticationError: no token could be obtained
        """
        try:
            if not force_refresh:
                cached = await self._cache.get_access_token()
                if cached:
                    return cached

            generation = self._refresh_generation
            async with self._refresh_lock:
                if self._refresh_generation != generation:
                    # Another caller completed a refresh while this one waited.
                    cached = await self._cache.get_access_token()
                    if cached:
                        return cached

                record = await self._request_new_token()
                await self._cache.store(record)
                self._refresh_generation += 1
                return record.access_token
        except AuthenticationError:
            raise
        except Exception as exc:
            logger.error("Failed to get access token", error=str(exc), error_type=type(exc).__name__)
            raise AuthenticationError(meta={"reason": type(exc).__name__}) from exc

    async def invalidate(self) -> None:
        """Drop the cached access token (the refresh token is kept)."""
        await self._cache.clear_access_token()

    async def _request_new_token(self) -> TokenRecord:
        refresh_token = await self._cache.get_refresh_token()
        if refresh_token:
            try:
                return await self._refresh_grant(refresh_token)
            except Exception as exc:
                logger.warning(
                    "Refresh token failed, falling back to password grant",
                    error=str(exc),
                )

        return await self._password_grant()

    async def _refresh_grant(self, refresh_token: str) -> TokenRecord:
        record = await self._post_token(
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            }
        )
        # Preserve refresh token if not returned
        if not record.refresh_token:
            record.refresh_token = refresh_token

        logger.info("Provider token refreshed", expires_at=record.access_expires_at.isoformat())
        return record

    async def _password_grant(self) -> TokenRecord:
        if not self._username or not self._password:
            raise AuthenticationError(message="Provider credentials are not configured")

        record = await self._post_token(
            {
                "grant_type": "password",
                "username": self._username,
                "password": self._password,
                "organizationCode": self._organization_code,
            }
        )
        logger.info("Provider token issued via password grant", expires_at=record.access_expires_at.isoformat())
        return record

    async def _post_token(self, payload: dict[str, Any]) -> TokenRecord:
        response = await self._get_client().post(
            self._token_url,
            json=payload,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
        )
        if response.status_code >= 400:
            logger.error(
                "Token request failed",
                grant_type=payload.get("grant_type"),
                status_code=response.status_code,
            )
        response.raise_for_status()

        data = response.json()
        if not isinstance(data, dict) or not data.get("access_token"):
            raise ValueError("Token response missing access_token")
        return TokenRecord.from_token_response(data, issued_at=self._clock())
