from __future__ import annotations

import asyncio
import contextlib
import logging
from abc import ABC, abstractmethod
from typing import AsyncContextManager, Awaitable, Callable

from console_auth.cache import KeyValueCache
from console_auth.models import AuthenticationError, Credentials, Session

LOGGER = logging.getLogger("console_auth")

TOKEN_TTL_SECONDS = 60 * 60
DEFAULT_KEY_PREFIX = "dify:console"

LoginFn = Callable[[Credentials], Awaitable["Session | None"]]
RefreshFn = Callable[[str], Awaitable["Session | None"]]


class TokenStore(ABC):
    """Owns the current console Session and decides when to log in again.

    ``login_fn`` and ``refresh_fn`` return ``None`` when the console answers
    with anything but a usable session; the store treats that as a failure.
    Neither call is retried here.
    """

    def __init__(
        self,
        credentials: Credentials,
        *,
        login_fn: LoginFn,
        refresh_fn: RefreshFn,
    ) -> None:
        self._credentials = credentials
        self._login_fn = login_fn
        self._refresh_fn = refresh_fn

    @abstractmethod
    async def ensure_session(self) -> Session:
        raise NotImplementedError

    @abstractmethod
    async def refresh_session(self, stale_refresh_token: str | None = None) -> Session:
        raise NotImplementedError

    @abstractmethod
    async def clear(self) -> None:
        raise NotImplementedError

    async def ensure_token(self) -> str:
        session = await self.ensure_session()
        return session.access_token

    async def invalidate_and_refresh(self, stale_refresh_token: str | None = None) -> str:
        session = await self.refresh_session(stale_refresh_token)
        return session.access_token

    async def _login(self) -> Session:
        session = await self._login_fn(self._credentials)
        if session is None:
            raise AuthenticationError()
        LOGGER.info("Logged in to console")
        return session

    async def _try_refresh(self, refresh_token: str) -> Session | None:
        try:
            session = await self._refresh_fn(refresh_token)
        except Exception as error:
            LOGGER.warning("Failed to refresh token (%s), will attempt to login", type(error).__name__)
            return None
        if session is None:
            LOGGER.warning("Refresh returned no session, will attempt to login")
            return None
        LOGGER.info("Refreshed console session")
        return session


class MemoryTokenStore(TokenStore):
    def __init__(
        self,
        credentials: Credentials,
        *,
        login_fn: LoginFn,
        refresh_fn: RefreshFn,
    ) -> None:
        super().__init__(credentials, login_fn=login_fn, refresh_fn=refresh_fn)
        self._session: Session | None = None
        self._lock = asyncio.Lock()

    @property
    def session(self) -> Session | None:
        return self._session

    async def ensure_session(self) -> Session:
        session = self._session
        if session is not None:
            return session

        async with self._lock:
            if self._session is None:
                self._session = await self._login()
            return self._session

    async def refresh_session(self, stale_refresh_token: str | None = None) -> Session:
        if stale_refresh_token is None and self._session is not None:
            stale_refresh_token = self._session.refresh_token

        async with self._lock:
            current = self._session
            if (
                current is not None
                and stale_refresh_token is not None
                and current.refresh_token != stale_refresh_token
            ):
                return current

            session = None
            if current is not None and current.refresh_token:
                session = await self._try_refresh(current.refresh_token)
            try:
                if session is None:
                    session = await self._login()
            finally:
                self._session = session
            return session

    async def clear(self) -> None:
        async with self._lock:
            self._session = None


class SharedTokenStore(TokenStore):
    """Session kept in an external cache shared by several processes.

    Without ``lock_factory`` there is no cross-process exclusion: processes
    that find the access token missing or rejected at the same time each
    log in or refresh on their own (at-least-once authentication).
    """

    def __init__(
        self,
        cache: KeyValueCache,
        credentials: Credentials,
        *,
        login_fn: LoginFn,
        refresh_fn: RefreshFn,
        ttl_seconds: int = TOKEN_TTL_SECONDS,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        lock_factory: Callable[[], AsyncContextManager] | None = None,
    ) -> None:
        super().__init__(credentials, login_fn=login_fn, refresh_fn=refresh_fn)
        self._cache = cache
        self._ttl_seconds = ttl_seconds
        self._lock_factory = lock_factory
        self.access_token_key = f"{key_prefix}:access_token"
        self.refresh_token_key = f"{key_prefix}:refresh_token"

    def _exclusive(self) -> AsyncContextManager:
        if self._lock_factory is None:
            return contextlib.nullcontext()
        return self._lock_factory()

    async def _read(self) -> Session | None:
        access_token = await self._cache.get(self.access_token_key)
        if not access_token:
            return None
        refresh_token = await self._cache.get(self.refresh_token_key)
        return Session(access_token=access_token, refresh_token=refresh_token or None)

    async def _write(self, session: Session) -> None:
        await self._cache.set(
            self.access_token_key,
            session.access_token,
            ttl_seconds=self._ttl_seconds,
        )
        if session.refresh_token:
            await self._cache.set(self.refresh_token_key, session.refresh_token)

    async def ensure_session(self) -> Session:
        session = await self._read()
        if session is not None:
            return session

        async with self._exclusive():
            if self._lock_factory is not None:
                session = await self._read()
                if session is not None:
                    return session
            session = await self._login()
            await self._write(session)
            return session

    async def refresh_session(self, stale_refresh_token: str | None = None) -> Session:
        if stale_refresh_token is None and self._lock_factory is not None:
            stale_refresh_token = await self._cache.get(self.refresh_token_key)

        async with self._exclusive():
            stored_refresh_token = await self._cache.get(self.refresh_token_key)
            if (
                self._lock_factory is not None
                and stale_refresh_token is not None
                and stored_refresh_token
                and stored_refresh_token != stale_refresh_token
            ):
                current = await self._read()
                if current is not None:
                    return current

            session = None
            if stored_refresh_token:
                session = await self._try_refresh(stored_refresh_token)
            if session is None:
                session = await self._login()
            await self._write(session)
            return session

    async def clear(self) -> None:
        await self._cache.delete(self.access_token_key)
        await self._cache.delete(self.refresh_token_key)
