import httpx
import pytest

from multiplayer.client import MultiplayerClient
from multiplayer.settings import ClientSettings
from multiplayer.tests.mocks import MockLinkFactory


@pytest.fixture
def settings():
    return ClientSettings(
        server_url="http://testserver",
        player_name="Alice",
        connect_timeout_seconds=1.0,
        reconnect_attempts=2,
        reconnect_delay_seconds=0,
    )


@pytest.fixture
def link_factory():
    return MockLinkFactory("p1")


@pytest.fixture
def directory_rooms():
    """Rooms served by the mocked GET /api/rooms; tests may append to it."""
    return []


@pytest.fixture
def directory_transport(directory_rooms):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"rooms": directory_rooms})

    return httpx.MockTransport(handler)


@pytest.fixture
def client(settings, link_factory, directory_transport):
    return MultiplayerClient(settings, link_factory=link_factory, directory_transport=directory_transport)
