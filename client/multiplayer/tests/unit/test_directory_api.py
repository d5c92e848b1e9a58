import httpx

from multiplayer.directory_api import fetch_available_rooms
from multiplayer.tests.helpers import room_payload


def _transport(handler):
    return httpx.MockTransport(handler)


class TestFetchAvailableRooms:
    async def test_returns_rooms(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, json={"rooms": [room_payload("r1"), room_payload("r2", host_id="p7")]})

        rooms = await fetch_available_rooms("http://testserver/", transport=_transport(handler))

        assert [r.id for r in rooms] == ["r1", "r2"]
        assert seen == ["http://testserver/api/rooms"]

    async def test_server_error_yields_empty_list(self, caplog):
        rooms = await fetch_available_rooms(
            "http://testserver",
            transport=_transport(lambda request: httpx.Response(503)),
        )

        assert rooms == []
        assert "room directory fetch rejected" in caplog.text

    async def test_network_error_yields_empty_list(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        rooms = await fetch_available_rooms("http://testserver", transport=_transport(handler))

        assert rooms == []

    async def test_non_json_body_yields_empty_list(self):
        rooms = await fetch_available_rooms(
            "http://testserver",
            transport=_transport(lambda request: httpx.Response(200, text="<html>")),
        )

        assert rooms == []

    async def test_missing_rooms_key_yields_empty_list(self):
        rooms = await fetch_available_rooms(
            "http://testserver",
            transport=_transport(lambda request: httpx.Response(200, json={"items": []})),
        )

        assert rooms == []

    async def test_malformed_entries_are_skipped(self):
        bad = room_payload("bad")
        bad["players"] = ["p1", "p2", "p3"]

        rooms = await fetch_available_rooms(
            "http://testserver",
            transport=_transport(lambda request: httpx.Response(200, json={"rooms": [bad, room_payload("ok")]})),
        )

        assert [r.id for r in rooms] == ["ok"]
