import pytest

from console_auth.models import Credentials


class MemoryCache:
    def __init__(self) -> None:
        self.values: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}
        self.set_calls: list[tuple[str, str, int | None]] = []
        self.closed = False

    async def get(self, key: str) -> str | None:
        return self.values.get(key)

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        self.values[key] = value
        self.ttls[key] = ttl_seconds
        self.set_calls.append((key, value, ttl_seconds))

    async def delete(self, key: str) -> None:
        self.values.pop(key, None)
        self.ttls.pop(key, None)

    async def aclose(self) -> None:
        self.closed = True

    def expire(self, key: str) -> None:
        self.values.pop(key, None)


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(login="admin@example.com", secret="s3cret")


@pytest.fixture
def memory_cache() -> MemoryCache:
    return MemoryCache()
