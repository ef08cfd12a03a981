from __future__ import annotations

from dataclasses import dataclass, field


class AuthenticationError(RuntimeError):
    def __init__(self, message: str = "Console login returned no session.") -> None:
        super().__init__(message)


@dataclass(frozen=True)
class Credentials:
    login: str
    secret: str = field(repr=False)


@dataclass(frozen=True)
class Session:
    access_token: str = field(repr=False)
    refresh_token: str | None = field(default=None, repr=False)
