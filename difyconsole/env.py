from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from urllib.parse import urlparse

from dotenv import load_dotenv
from pydantic import AnyHttpUrl, ValidationError

from console_auth.models import Credentials
from console_auth.token_store import TOKEN_TTL_SECONDS

from .constants import ENV_FILE, LOGGER

TOKEN_STORE_MEMORY = "memory"
TOKEN_STORE_REDIS = "redis"


@dataclass(frozen=True)
class ConsoleSettings:
    base_url: str
    credentials: Credentials = field(repr=False)
    timeout: float = 30.0
    password_encryption: bool = False
    token_store: str = TOKEN_STORE_MEMORY
    redis_url: str | None = None
    redis_lock: bool = False
    token_ttl_seconds: int = TOKEN_TTL_SECONDS
    debug: bool = False


def is_truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_env_int(key: str, default: int) -> int:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be an integer value.")


def _get_env_float(key: str, default: float) -> float:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be a number.")


def load_env() -> None:
    if not ENV_FILE.exists():
        return
    load_dotenv(ENV_FILE, override=True)


def validate_env() -> None:
    required = (
        "DIFY_CONSOLE_URL",
        "DIFY_CONSOLE_EMAIL",
        "DIFY_CONSOLE_PASSWORD",
    )
    missing = [key for key in required if not os.getenv(key, "").strip()]
    if missing:
        raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")

    console_url = os.getenv("DIFY_CONSOLE_URL", "").strip()
    parsed = urlparse(console_url)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise RuntimeError(
            "DIFY_CONSOLE_URL must be a valid http(s) URL (for example: "
            "https://dify.example.com)."
        )

    token_store = os.getenv("DIFY_TOKEN_STORE", TOKEN_STORE_MEMORY).strip().lower()
    if token_store not in {TOKEN_STORE_MEMORY, TOKEN_STORE_REDIS}:
        raise RuntimeError("DIFY_TOKEN_STORE must be 'memory' or 'redis'.")
    if token_store == TOKEN_STORE_REDIS and not os.getenv("DIFY_REDIS_URL", "").strip():
        raise RuntimeError("DIFY_REDIS_URL is required when DIFY_TOKEN_STORE=redis.")


def load_settings() -> ConsoleSettings:
    validate_env()

    raw_url = os.getenv("DIFY_CONSOLE_URL", "").strip()
    try:
        base_url = str(AnyHttpUrl(raw_url)).rstrip("/")
    except ValidationError as error:
        raise RuntimeError(f"DIFY_CONSOLE_URL is not a valid URL: {raw_url}") from error

    return ConsoleSettings(
        base_url=base_url,
        credentials=Credentials(
            login=os.getenv("DIFY_CONSOLE_EMAIL", "").strip(),
            secret=os.getenv("DIFY_CONSOLE_PASSWORD", ""),
        ),
        timeout=_get_env_float("DIFY_CONSOLE_TIMEOUT", 30.0),
        password_encryption=is_truthy(os.getenv("DIFY_CONSOLE_PASSWORD_ENCRYPTION")),
        token_store=os.getenv("DIFY_TOKEN_STORE", TOKEN_STORE_MEMORY).strip().lower(),
        redis_url=os.getenv("DIFY_REDIS_URL", "").strip() or None,
        redis_lock=is_truthy(os.getenv("DIFY_REDIS_LOCK")),
        token_ttl_seconds=_get_env_int("DIFY_TOKEN_TTL_SECONDS", TOKEN_TTL_SECONDS),
        debug=is_truthy(os.getenv("DIFY_CONSOLE_DEBUG", "1")),
    )


def setup_logging() -> bool:
    debug_enabled = is_truthy(os.getenv("DIFY_CONSOLE_DEBUG", "1"))
    if debug_enabled:
        logging.basicConfig(level=logging.INFO)
        LOGGER.setLevel(logging.INFO)
    return debug_enabled
