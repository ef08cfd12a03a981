import json

import httpx
import pytest

from console_auth.models import Credentials
from console_auth.token_store import MemoryTokenStore, SharedTokenStore
from difyconsole.client import ConsoleClient, create_client
from difyconsole.env import ConsoleSettings
from difyconsole.http import ConsoleApiError, UnauthorizedError, build_http_client
from tests.console_helpers import CONSOLE_URL, FakeConsole


def _client(fake: FakeConsole, credentials, **kwargs) -> ConsoleClient:
    http_client = build_http_client(CONSOLE_URL, transport=httpx.MockTransport(fake))
    return ConsoleClient(http_client, credentials, **kwargs)


@pytest.mark.asyncio
async def test_first_call_logs_in_then_sends_bearer(credentials) -> None:
    fake = FakeConsole()
    fake.route("GET", "/console/api/apps/app-1", {"id": "app-1", "name": "Helper"})

    async with _client(fake, credentials) as client:
        app = await client.app("app-1")
        await client.app("app-1")

    assert app == {"id": "app-1", "name": "Helper"}
    assert fake.paths() == [
        "/console/api/login",
        "/console/api/apps/app-1",
        "/console/api/apps/app-1",
    ]
    assert fake.requests[1].headers["authorization"] == "Bearer access-1"
    assert json.loads(fake.requests[0].content)["email"] == "admin@example.com"


@pytest.mark.asyncio
async def test_rejected_token_is_refreshed_and_retried(credentials) -> None:
    fake = FakeConsole()
    fake.route("GET", "/console/api/apps/app-1", {"id": "app-1"})

    async with _client(fake, credentials) as client:
        await client.app("app-1")
        fake.valid_tokens.clear()
        app = await client.app("app-1")

    assert app == {"id": "app-1"}
    assert fake.paths() == [
        "/console/api/login",
        "/console/api/apps/app-1",
        "/console/api/apps/app-1",
        "/console/api/refresh-token",
        "/console/api/apps/app-1",
    ]
    assert json.loads(fake.requests[3].content) == {"refresh_token": "refresh-1"}
    assert fake.requests[4].headers["authorization"] == "Bearer access-2"


@pytest.mark.asyncio
async def test_console_that_never_accepts_tokens_gives_up(credentials) -> None:
    fake = FakeConsole(accept_new_tokens=False)
    fake.route("GET", "/console/api/apps/app-1", {"id": "app-1"})

    async with _client(fake, credentials) as client:
        with pytest.raises(UnauthorizedError):
            await client.app("app-1")

    assert fake.paths().count("/console/api/apps/app-1") == 3
    assert fake.paths().count("/console/api/refresh-token") == 2


@pytest.mark.asyncio
async def test_not_found_is_not_retried(credentials) -> None:
    fake = FakeConsole()

    async with _client(fake, credentials) as client:
        with pytest.raises(ConsoleApiError) as raised:
            await client.app("missing")

    assert raised.value.status_code == 404
    assert fake.paths() == ["/console/api/login", "/console/api/apps/missing"]


@pytest.mark.asyncio
async def test_apps_follows_pagination(credentials) -> None:
    fake = FakeConsole()

    def apps_page(request: httpx.Request) -> dict:
        page = int(request.url.params["page"])
        assert request.url.params["limit"] == "100"
        assert request.url.params["mode"] == "chat"
        return {"data": [{"id": f"app-{page}"}], "has_more": page < 3}

    fake.route("GET", "/console/api/apps", apps_page)

    async with _client(fake, credentials) as client:
        apps = await client.apps(mode="chat")

    assert [app["id"] for app in apps] == ["app-1", "app-2", "app-3"]


@pytest.mark.asyncio
async def test_api_key_endpoints(credentials) -> None:
    fake = FakeConsole()
    fake.route("GET", "/console/api/apps/app-1/api-keys", {"data": [{"id": "k1", "token": "app-xyz"}]})
    fake.route("POST", "/console/api/apps/app-1/api-keys", {"id": "k2", "token": "app-new"})
    fake.route("DELETE", "/console/api/apps/app-1/api-keys/k1", b"")
    fake.route("GET", "/console/api/datasets/api-keys", {"data": []})
    fake.route("POST", "/console/api/datasets/api-keys", {"id": "d1", "token": "dataset-new"})

    async with _client(fake, credentials) as client:
        keys = await client.app_api_keys("app-1")
        created = await client.init_app_api_key("app-1")
        deleted = await client.delete_app_api_key("app-1", "k1")
        dataset_keys = await client.dataset_api_keys()
        dataset_key = await client.init_dataset_api_key()

    assert keys == [{"id": "k1", "token": "app-xyz"}]
    assert created == {"id": "k2", "token": "app-new"}
    assert deleted is None
    assert dataset_keys == []
    assert dataset_key == {"id": "d1", "token": "dataset-new"}


@pytest.mark.asyncio
async def test_shared_cache_lets_second_client_skip_login(credentials, memory_cache) -> None:
    fake = FakeConsole()
    fake.route("GET", "/console/api/apps/app-1", {"id": "app-1"})

    async with _client(fake, credentials, cache=memory_cache) as first:
        await first.app("app-1")
    async with _client(fake, credentials, cache=memory_cache) as second:
        await second.app("app-1")

    assert fake.paths().count("/console/api/login") == 1
    assert isinstance(second.token_store, SharedTokenStore)


def test_create_client_uses_memory_store_by_default() -> None:
    settings = ConsoleSettings(
        base_url=CONSOLE_URL,
        credentials=Credentials(login="admin@example.com", secret="s3cret"),
    )

    client = create_client(settings, transport=httpx.MockTransport(FakeConsole()))

    assert isinstance(client.token_store, MemoryTokenStore)


@pytest.mark.asyncio
async def test_create_client_passes_encryption_flag() -> None:
    fake = FakeConsole()
    fake.route("GET", "/console/api/apps/app-1", {"id": "app-1"})
    settings = ConsoleSettings(
        base_url=CONSOLE_URL,
        credentials=Credentials(login="admin@example.com", secret="s3cret"),
        password_encryption=True,
    )

    async with create_client(settings, transport=httpx.MockTransport(fake)) as client:
        await client.app("app-1")

    assert json.loads(fake.requests[0].content)["password"] == "czNjcmV0"


@pytest.mark.asyncio
async def test_owned_cache_is_closed_with_client(credentials, memory_cache) -> None:
    async with _client(FakeConsole(), credentials, cache=memory_cache, owns_cache=True):
        pass

    assert memory_cache.closed is True


@pytest.mark.asyncio
async def test_borrowed_cache_stays_open(credentials, memory_cache) -> None:
    async with _client(FakeConsole(), credentials, cache=memory_cache):
        pass

    assert memory_cache.closed is False
