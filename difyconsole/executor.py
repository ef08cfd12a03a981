from __future__ import annotations

import logging
from typing import Awaitable, Callable, TypeVar

import httpx

from console_auth.models import AuthenticationError
from console_auth.token_store import TokenStore

from .constants import LOGGER
from .http import ConsoleApiError, is_unauthorized

MAX_ATTEMPTS = 3

T = TypeVar("T")


class AuthorizingExecutor:
    """Runs one authorized console call, refreshing the session on 401.

    ``operation`` receives the current access token and must perform exactly
    one request with it. Only HTTP 401 triggers a refresh; every other error
    propagates unchanged. At most ``max_attempts`` calls are made in total.
    """

    def __init__(
        self,
        token_store: TokenStore,
        *,
        max_attempts: int = MAX_ATTEMPTS,
        logger: logging.Logger | None = None,
    ) -> None:
        self._token_store = token_store
        self._max_attempts = max(1, max_attempts)
        self._logger = logger or LOGGER

    async def execute(self, operation: Callable[[str], Awaitable[T]]) -> T:
        last_attempt = self._max_attempts - 1
        attempt = 0
        session = await self._token_store.ensure_session()

        while True:
            try:
                return await operation(session.access_token)
            except Exception as error:
                if not is_unauthorized(error) or attempt >= last_attempt:
                    raise
                self._logger.info(
                    "Console rejected access token (attempt %s/%s), refreshing session",
                    attempt + 1,
                    self._max_attempts,
                )

            while True:
                attempt += 1
                try:
                    session = await self._token_store.refresh_session(session.refresh_token)
                    break
                except (AuthenticationError, ConsoleApiError, httpx.HTTPStatusError) as error:
                    if attempt >= last_attempt:
                        raise
                    self._logger.warning(
                        "Session refresh failed (attempt %s/%s): %s",
                        attempt,
                        self._max_attempts,
                        error,
                    )
