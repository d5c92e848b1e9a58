import pytest
from pydantic import ValidationError

from multiplayer.messaging.events import (
    ChatMessageRequest,
    ConnectionSuccessEvent,
    CreateRoomRequest,
    DisconnectEvent,
    GameActionPerformedEvent,
    JoinRoomErrorEvent,
    JoinRoomRequest,
    RoomAvailableEvent,
    SelectCharacterRequest,
    parse_server_event,
)
from multiplayer.messaging.models import Character
from multiplayer.tests.helpers import WARRIOR, game_data, room_payload


class TestParseServerEvent:
    def test_connection_success_decodes_camel_case(self):
        event = parse_server_event("connection_success", {"playerId": "p1", "playerData": {"name": "Alice"}})

        assert isinstance(event, ConnectionSuccessEvent)
        assert event.player_id == "p1"
        assert event.player_data.name == "Alice"

    def test_unknown_event_name_rejected(self):
        with pytest.raises(ValidationError):
            parse_server_event("teleport", {})

    def test_missing_required_field_rejected(self):
        with pytest.raises(ValidationError):
            parse_server_event("player_left", {"playerName": "Bob"})

    def test_non_object_payload_rejected(self):
        with pytest.raises(ValueError, match="must be an object"):
            parse_server_event("room_updated", ["r1"])

    def test_disconnect_reason_may_be_a_bare_string(self):
        event = parse_server_event("disconnect", "io server disconnect")

        assert isinstance(event, DisconnectEvent)
        assert event.reason == "io server disconnect"

    def test_payload_is_not_mutated(self):
        payload = {"error": "Room is full"}

        event = parse_server_event("join_room_error", payload)

        assert isinstance(event, JoinRoomErrorEvent)
        assert event.error == "Room is full"
        assert "event" not in payload

    def test_error_event_defaults_message(self):
        event = parse_server_event("join_room_error")

        assert event.error == "Unknown error"

    def test_room_available_accepts_wrapped_room(self):
        event = parse_server_event("room_available", {"room": room_payload("r9")})

        assert isinstance(event, RoomAvailableEvent)
        assert event.room.id == "r9"

    def test_room_available_accepts_bare_room(self):
        event = parse_server_event("room_available", room_payload("r9"))

        assert isinstance(event, RoomAvailableEvent)
        assert event.room.id == "r9"
        assert event.room.host_name == "Alice"

    def test_room_violating_roster_rules_rejected(self):
        bad = room_payload("r1", guest_id="p1")

        with pytest.raises(ValidationError):
            parse_server_event("room_updated", {"room": bad})

    def test_action_result_keeps_unknown_ability_type(self):
        payload = {
            "playerId": "p1",
            "action": {"type": "ability", "abilityId": "freeze"},
            "result": {
                "actingPlayerId": "p1",
                "actingPlayerMana": 30,
                "targetPlayerId": "p2",
                "targetPlayerHealth": 70,
                "ability": {"id": "freeze", "type": "ice", "duration": 2},
            },
            "gameData": game_data(turn_count=2, current_turn="p2"),
        }

        event = parse_server_event("game_action_performed", payload)

        assert isinstance(event, GameActionPerformedEvent)
        assert event.result.ability.type == "ice"
        assert event.result.ability.model_extra == {"duration": 2}
        assert event.result.acting_player_health is None


class TestOutboundRequests:
    def test_create_room_wire_shape(self):
        request = CreateRoomRequest(name="Alice's Room", request_id="abc")

        assert request.event_name == "create_room"
        assert request.to_wire() == {"name": "Alice's Room", "isPrivate": False, "requestId": "abc"}

    def test_create_room_name_bounded(self):
        with pytest.raises(ValidationError):
            CreateRoomRequest(name="x" * 101)

    def test_join_room_requires_id(self):
        with pytest.raises(ValidationError):
            JoinRoomRequest(room_id="")

    def test_select_character_echoes_extra_fields(self):
        request = SelectCharacterRequest(character=Character.model_validate(WARRIOR))

        assert request.to_wire()["character"]["abilities"] == [{"id": "slash"}]

    def test_chat_rejects_control_characters(self):
        with pytest.raises(ValidationError, match="control characters"):
            ChatMessageRequest(room_id="r1", message="hi\x00there")

    def test_chat_allows_newlines(self):
        request = ChatMessageRequest(room_id="r1", message="gg\nwp")

        assert request.to_wire() == {"roomId": "r1", "message": "gg\nwp"}
