from __future__ import annotations

import base64

import httpx

from console_auth.models import Credentials, Session

LOGIN_PATH = "/console/api/login"
REFRESH_TOKEN_PATH = "/console/api/refresh-token"
SUCCESS_RESULT = "success"
DEFAULT_LANGUAGE = "zh-Hans"


def session_from_envelope(payload) -> Session | None:
    """Extract a Session from a login/refresh envelope.

    Anything other than ``{"result": "success", "data": {...}}`` with both
    tokens present yields ``None`` rather than an exception.
    """
    if not isinstance(payload, dict) or payload.get("result") != SUCCESS_RESULT:
        return None

    data = payload.get("data")
    if not isinstance(data, dict):
        return None

    access_token = data.get("access_token")
    refresh_token = data.get("refresh_token")
    if not isinstance(access_token, str) or not access_token:
        return None
    if not isinstance(refresh_token, str) or not refresh_token:
        return None

    return Session(access_token=access_token, refresh_token=refresh_token)


def build_login_payload(credentials: Credentials, *, password_encryption: bool = False) -> dict:
    password = credentials.secret
    if password_encryption and password:
        password = base64.b64encode(password.encode("utf-8")).decode("ascii")
    return {
        "email": credentials.login,
        "password": password,
        "language": DEFAULT_LANGUAGE,
        "remember_me": True,
    }


async def _session_request(
    path: str,
    payload: dict,
    *,
    client: httpx.AsyncClient,
) -> Session | None:
    response = await client.post(path, json=payload)
    response.raise_for_status()
    try:
        body = response.json()
    except ValueError:
        return None
    return session_from_envelope(body)


async def login(
    credentials: Credentials,
    *,
    client: httpx.AsyncClient,
    password_encryption: bool = False,
) -> Session | None:
    return await _session_request(
        LOGIN_PATH,
        build_login_payload(credentials, password_encryption=password_encryption),
        client=client,
    )


async def refresh_token(
    refresh_token: str,
    *,
    client: httpx.AsyncClient,
) -> Session | None:
    return await _session_request(
        REFRESH_TOKEN_PATH,
        {"refresh_token": refresh_token},
        client=client,
    )
