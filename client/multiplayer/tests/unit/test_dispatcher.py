from multiplayer.messaging.events import ChatMessageEvent, ConnectionErrorEvent, RoomLeftEvent
from multiplayer.session.dispatcher import EventDispatcher
from multiplayer.settings import ClientSettings
from multiplayer.transport.adapter import TransportAdapter


def _chat(message: str = "hi") -> ChatMessageEvent:
    return ChatMessageEvent(player_id="p2", player_name="Bob", message=message)


class TestEventDispatcher:
    def test_handlers_run_in_registration_order(self):
        dispatcher = EventDispatcher()
        calls = []
        dispatcher.on("chat_message", lambda e: calls.append("first"))
        dispatcher.on("chat_message", lambda e: calls.append("second"))

        dispatcher.dispatch(_chat())

        assert calls == ["first", "second"]

    def test_only_matching_event_is_routed(self):
        dispatcher = EventDispatcher()
        calls = []
        dispatcher.on("room_left", calls.append)

        dispatcher.dispatch(_chat())
        dispatcher.dispatch(RoomLeftEvent(room_id="r1"))

        assert len(calls) == 1
        assert isinstance(calls[0], RoomLeftEvent)

    def test_failing_handler_does_not_stop_others(self, caplog):
        dispatcher = EventDispatcher()
        calls = []

        def boom(event):
            raise RuntimeError("observer broke")

        dispatcher.on("chat_message", boom)
        dispatcher.on("chat_message", calls.append)

        dispatcher.dispatch(_chat())

        assert len(calls) == 1
        assert "event handler failed" in caplog.text

    def test_off_single_and_all(self):
        dispatcher = EventDispatcher()
        calls = []

        def first(event):
            calls.append("first")

        def second(event):
            calls.append("second")

        dispatcher.on("chat_message", first)
        dispatcher.on("chat_message", second)
        dispatcher.off("chat_message", first)
        dispatcher.dispatch(_chat())
        assert calls == ["second"]

        dispatcher.off("chat_message")
        dispatcher.dispatch(_chat())
        assert calls == ["second"]
        assert dispatcher.handler_count("chat_message") == 0

    def test_duplicate_registration_ignored(self):
        dispatcher = EventDispatcher()
        calls = []
        dispatcher.on("chat_message", calls.append)
        dispatcher.on("chat_message", calls.append)

        dispatcher.dispatch(_chat())

        assert dispatcher.handler_count("chat_message") == 1
        assert len(calls) == 1

    def test_handler_added_during_dispatch_waits_for_next_round(self):
        dispatcher = EventDispatcher()
        late = []

        def register_late(event):
            dispatcher.on("chat_message", late.append)

        dispatcher.on("chat_message", register_late)
        dispatcher.dispatch(_chat("one"))
        assert late == []

        dispatcher.dispatch(_chat("two"))
        assert [e.message for e in late] == ["two"]

    def test_publish_delivers_local_events(self):
        dispatcher = EventDispatcher()
        calls = []
        dispatcher.on("connection_error", calls.append)

        dispatcher.publish(ConnectionErrorEvent(error="Connection timeout"))

        assert calls[0].error == "Connection timeout"


class TestDispatcherAttach:
    def test_handlers_registered_before_attach_receive_adapter_events(self):
        adapter = TransportAdapter(ClientSettings(player_name="Alice"))
        dispatcher = EventDispatcher()
        calls = []
        dispatcher.on("chat_message", calls.append)

        dispatcher.attach(adapter)
        adapter._deliver(_chat())

        assert len(calls) == 1

    def test_detach_stops_delivery(self):
        adapter = TransportAdapter(ClientSettings(player_name="Alice"))
        dispatcher = EventDispatcher()
        calls = []
        dispatcher.on("chat_message", calls.append)
        dispatcher.attach(adapter)

        dispatcher.detach()
        adapter._deliver(_chat())

        assert calls == []

    def test_reducer_runs_before_handlers_and_its_result_follows(self):
        adapter = TransportAdapter(ClientSettings(player_name="Alice"))
        order = []

        def reducer(event):
            order.append("reducer")
            return RoomLeftEvent(room_id="r1")

        dispatcher = EventDispatcher(reducer=reducer)
        dispatcher.on("chat_message", lambda e: order.append("chat"))
        dispatcher.on("room_left", lambda e: order.append("room_left"))
        dispatcher.attach(adapter)

        adapter._deliver(_chat())

        assert order == ["reducer", "chat", "room_left"]

    def test_reducer_skips_local_publish(self):
        reduced = []
        dispatcher = EventDispatcher(reducer=reduced.append)

        dispatcher.publish(_chat())

        assert reduced == []
