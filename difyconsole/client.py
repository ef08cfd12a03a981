from __future__ import annotations

from functools import partial
from typing import Any, Callable

import httpx

from console_auth import session_api
from console_auth.cache import KeyValueCache, RedisCache
from console_auth.models import Credentials
from console_auth.token_store import (
    DEFAULT_KEY_PREFIX,
    TOKEN_TTL_SECONDS,
    MemoryTokenStore,
    SharedTokenStore,
    TokenStore,
)

from .constants import APPS_PAGE_LIMIT, APPS_PATH, DATASETS_PATH
from .env import TOKEN_STORE_REDIS, ConsoleSettings
from .executor import MAX_ATTEMPTS, AuthorizingExecutor
from .http import bearer_headers, build_http_client


class ConsoleClient:
    """Dify console API client.

    The client owns its token store: the session obtained by logging in with
    ``credentials`` is shared by every call made through this instance (and,
    with ``cache``, by every process using the same cache keys).

    Authentication is bearer-only: the access token is sent in the
    ``Authorization`` header. Console versions that require the CSRF token
    and session cookies (the ``X-CSRF-Token`` header) are not supported.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        credentials: Credentials,
        *,
        cache: KeyValueCache | None = None,
        lock_factory: Callable[[], Any] | None = None,
        token_ttl_seconds: int = TOKEN_TTL_SECONDS,
        password_encryption: bool = False,
        max_attempts: int = MAX_ATTEMPTS,
        owns_cache: bool = False,
    ) -> None:
        self._http = http_client
        self._cache = cache
        self._owns_cache = owns_cache
        login_fn = partial(
            session_api.login,
            client=http_client,
            password_encryption=password_encryption,
        )
        refresh_fn = partial(session_api.refresh_token, client=http_client)

        self.token_store: TokenStore
        if cache is None:
            self.token_store = MemoryTokenStore(
                credentials,
                login_fn=login_fn,
                refresh_fn=refresh_fn,
            )
        else:
            self.token_store = SharedTokenStore(
                cache,
                credentials,
                login_fn=login_fn,
                refresh_fn=refresh_fn,
                ttl_seconds=token_ttl_seconds,
                lock_factory=lock_factory,
            )
        self._executor = AuthorizingExecutor(self.token_store, max_attempts=max_attempts)

    async def __aenter__(self) -> "ConsoleClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()
        if self._owns_cache and self._cache is not None:
            await self._cache.aclose()

    async def _request(self, method: str, path: str, *, params: dict | None = None):
        async def operation(access_token: str):
            response = await self._http.request(
                method,
                path,
                params=params,
                headers=bearer_headers(access_token),
            )
            response.raise_for_status()
            if response.status_code == 204 or not response.content:
                return None
            return response.json()

        return await self._executor.execute(operation)

    async def apps_page(
        self,
        *,
        page: int = 1,
        limit: int = 20,
        name: str | None = None,
        mode: str | None = None,
    ) -> dict:
        params: dict = {"page": page, "limit": limit}
        if name:
            params["name"] = name
        if mode:
            params["mode"] = mode
        return await self._request("GET", APPS_PATH, params=params) or {}

    async def apps(self, *, name: str | None = None, mode: str | None = None) -> list[dict]:
        result: list[dict] = []
        page = 1
        while True:
            payload = await self.apps_page(page=page, limit=APPS_PAGE_LIMIT, name=name, mode=mode)
            result.extend(payload.get("data") or [])
            if not payload.get("has_more"):
                return result
            page += 1

    async def app(self, app_id: str) -> dict | None:
        return await self._request("GET", f"{APPS_PATH}/{app_id}")

    async def app_api_keys(self, app_id: str) -> list[dict]:
        payload = await self._request("GET", f"{APPS_PATH}/{app_id}/api-keys")
        return (payload or {}).get("data") or []

    async def init_app_api_key(self, app_id: str) -> dict | None:
        return await self._request("POST", f"{APPS_PATH}/{app_id}/api-keys")

    async def delete_app_api_key(self, app_id: str, api_key_id: str) -> None:
        await self._request("DELETE", f"{APPS_PATH}/{app_id}/api-keys/{api_key_id}")

    async def dataset_api_keys(self) -> list[dict]:
        payload = await self._request("GET", f"{DATASETS_PATH}/api-keys")
        return (payload or {}).get("data") or []

    async def init_dataset_api_key(self) -> dict | None:
        return await self._request("POST", f"{DATASETS_PATH}/api-keys")


def create_client(
    settings: ConsoleSettings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    cache: KeyValueCache | None = None,
) -> ConsoleClient:
    http_client = build_http_client(
        settings.base_url,
        timeout=settings.timeout,
        debug=settings.debug,
        transport=transport,
    )

    lock_factory = None
    owns_cache = False
    if cache is None and settings.token_store == TOKEN_STORE_REDIS:
        redis_cache = RedisCache.from_url(settings.redis_url or "")
        if settings.redis_lock:
            lock_factory = partial(redis_cache.lock, f"{DEFAULT_KEY_PREFIX}:lock")
        cache = redis_cache
        owns_cache = True

    return ConsoleClient(
        http_client,
        settings.credentials,
        cache=cache,
        lock_factory=lock_factory,
        token_ttl_seconds=settings.token_ttl_seconds,
        password_encryption=settings.password_encryption,
        owns_cache=owns_cache,
    )
