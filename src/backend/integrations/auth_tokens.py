"""
Bearer token resolution for tool backends and agent peers.

Supports static bearer tokens and OAuth2 client-credentials tokens (Keycloak
style token endpoint). Client-credentials tokens are cached per
``client_id@realm@auth_server_url`` until their expiry margin is reached.
"""

from __future__ import annotations

import asyncio
import time

from collections.abc import Callable
from dataclasses import dataclass

import httpx

from core.constants import (
    DEFAULT_GRANT_TYPE,
    DEFAULT_TOKEN_LIFETIME_SECONDS,
    TOKEN_EXPIRY_MARGIN_SECONDS,
)
from models.config_models import AuthConfig, AuthType
from utils.logger import logger


@dataclass(frozen=True)
class CachedToken:
    """Bearer token with an absolute expiry on the provider's clock."""

    access_token: str
    expires_at: float

    def is_valid(self, now: float) -> bool:
        return now < self.expires_at


def token_cache_key(auth: AuthConfig) -> str:
    return f"{auth.client_id}@{auth.realm}@{auth.auth_server_url}"


def token_endpoint(auth: AuthConfig) -> str:
    base = (auth.auth_server_url or "").rstrip("/")
    return f"{base}/realms/{auth.realm}/protocol/openid-connect/token"


class TokenProvider:
    """Resolves the bearer token (if any) for an outbound integration call.

    The cache is read without locking; refreshes are serialized per cache key
    so concurrent callers trigger at most one token exchange.

    Args:
        http_client: Shared httpx client used for token exchanges
        clock: Monotonic clock, injectable for tests
    """

    def __init__(self, http_client: httpx.AsyncClient, clock: Callable[[], float] = time.monotonic) -> None:
        self._http = http_client
        self._clock = clock
        self._cache: dict[str, CachedToken] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    async def resolve(self, auth: AuthConfig | None, target: str) -> str | None:
        """Return the bearer token for ``target`` or None when no auth applies."""
        if auth is None:
            return None

        auth_type = auth.type
        if auth_type == AuthType.NONE.value:
            return None
        if auth_type == AuthType.BEARER.value:
            if not auth.token:
                logger.warning(f"Bearer auth configured for {target} but no token is set")
                return None
            return auth.token
        if auth_type == AuthType.CLIENT_CREDENTIALS.value:
            return await self.client_credentials_token(auth, target)

        logger.warning(f"Unsupported auth type '{auth_type}' for {target}; sending no token")
        return None

    async def client_credentials_token(self, auth: AuthConfig, target: str) -> str | None:
        if not (auth.auth_server_url and auth.realm and auth.client_id and auth.client_secret):
            logger.warning(f"Incomplete client-credentials configuration for {target}; sending no token")
            return None

        key = token_cache_key(auth)
        cached = self._cache.get(key)
        if cached is not None and cached.is_valid(self._clock()):
            return cached.access_token

        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            # Another caller may have refreshed while we waited
            cached = self._cache.get(key)
            if cached is not None and cached.is_valid(self._clock()):
                return cached.access_token

            token = await self._exchange(auth, target)
            if token is None:
                return None
            self._cache[key] = token
            return token.access_token

    async def _exchange(self, auth: AuthConfig, target: str) -> CachedToken | None:
        url = token_endpoint(auth)
        form = {
            "client_id": auth.client_id or "",
            "client_secret": auth.client_secret or "",
            "grant_type": auth.grant_type or DEFAULT_GRANT_TYPE,
        }
        issued_at = self._clock()

        try:
            response = await self._http.post(url, data=form, headers={"Accept": "application/json"})
        except httpx.HTTPError as e:
            logger.error(f"Token exchange for {target} failed: {e}", token_url=url)
            return None

        if response.status_code >= 400:
            logger.error(
                f"Token exchange for {target} returned HTTP {response.status_code}",
                token_url=url,
                status_code=response.status_code,
            )
            return None

        try:
            payload = response.json()
        except ValueError:
            logger.error(f"Token exchange for {target} returned a non-JSON body", token_url=url)
            return None

        access_token = payload.get("access_token") if isinstance(payload, dict) else None
        if not access_token:
            logger.error(f"Token exchange for {target} returned no access_token", token_url=url)
            return None

        expires_in = payload.get("expires_in")
        if not isinstance(expires_in, (int, float)) or isinstance(expires_in, bool) or expires_in <= 0:
            expires_in = DEFAULT_TOKEN_LIFETIME_SECONDS

        logger.info(f"Obtained client-credentials token for {target}", expires_in=expires_in)
        return CachedToken(
            access_token=str(access_token),
            expires_at=issued_at + float(expires_in) - TOKEN_EXPIRY_MARGIN_SECONDS,
        )

    def clear(self) -> None:
        """Drop every cached token."""
        self._cache.clear()

    @property
    def cached_keys(self) -> list[str]:
        return list(self._cache)


__all__ = ["CachedToken", "TokenProvider", "token_cache_key", "token_endpoint"]
