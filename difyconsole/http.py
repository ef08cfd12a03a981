from __future__ import annotations

import httpx

from .constants import LOGGER

MAX_LOGGED_BODY = 1000


class ConsoleApiError(RuntimeError):
    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        detail=None,
        url: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail
        self.url = url


class UnauthorizedError(ConsoleApiError):
    def __init__(self, message: str = "Unauthorized request.", **kwargs) -> None:
        kwargs.setdefault("status_code", 401)
        super().__init__(message, **kwargs)


def is_unauthorized(error: BaseException) -> bool:
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code == 401
    return getattr(error, "status_code", None) == 401


def bearer_headers(access_token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {access_token}"}


def _friendly_error_message(status_code: int) -> str:
    if status_code == 401:
        return "Authentication failed. The console access token may have expired."
    if status_code == 403:
        return "You don't have permission to perform this action."
    if status_code == 404:
        return "The requested resource was not found on the console."
    if status_code >= 500:
        return "Dify console is experiencing issues. Please try again later."
    return f"Dify console request failed with status {status_code}."


async def raise_for_console_status(response: httpx.Response) -> None:
    if response.status_code < 400:
        return

    body = await response.aread()
    try:
        detail = response.json()
    except ValueError:
        detail = {"raw": body.decode("utf-8", errors="replace")}

    status_code = response.status_code
    error_class = UnauthorizedError if status_code == 401 else ConsoleApiError
    raise error_class(
        _friendly_error_message(status_code),
        status_code=status_code,
        detail=detail,
        url=str(response.request.url),
    )


async def log_request(request: httpx.Request) -> None:
    LOGGER.info("Console request %s %s", request.method, request.url)


async def log_response(response: httpx.Response) -> None:
    LOGGER.info(
        "Console response %s %s -> %s",
        response.request.method,
        response.request.url,
        response.status_code,
    )
    if response.status_code >= 400:
        body = await response.aread()
        text = body.decode("utf-8", errors="replace")
        if len(text) > MAX_LOGGED_BODY:
            text = text[:MAX_LOGGED_BODY] + "...<truncated>"
        LOGGER.warning("Console error body: %s", text)


def build_http_client(
    base_url: str,
    *,
    timeout: float = 30,
    debug: bool = False,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    request_hooks: list = []
    response_hooks: list = []
    if debug:
        request_hooks.append(log_request)
        response_hooks.append(log_response)
    response_hooks.append(raise_for_console_status)

    return httpx.AsyncClient(
        base_url=base_url,
        timeout=timeout,
        transport=transport,
        event_hooks={"request": request_hooks, "response": response_hooks},
    )
