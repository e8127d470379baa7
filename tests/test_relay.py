"""
Tests for the Relay Client
"""

import json
from unittest.mock import AsyncMock, patch

import pytest

from nwc_bridge.nostr import Event, Keys
from nwc_bridge.relay import RelayClient, RelayConnectionError, RelayNotification


def connected_client() -> RelayClient:
    client = RelayClient("wss://relay.example.com")
    client._ws = AsyncMock()
    client._connected = True
    return client


def sent_messages(client: RelayClient) -> list:
    return [json.loads(call.args[0]) for call in client._ws.send.await_args_list]


class TestRelayClient:
    """Tests for RelayClient."""

    def test_init(self):
        """Test client starts disconnected."""
        client = RelayClient("wss://relay.example.com")

        assert client.url == "wss://relay.example.com"
        assert client.connected is False

    @pytest.mark.asyncio
    async def test_send_when_disconnected(self):
        """Test sending without a connection raises."""
        client = RelayClient("wss://relay.example.com")

        with pytest.raises(RelayConnectionError, match="Not connected"):
            await client.publish(Event.build(Keys.generate(), 1, "hi"))

    @pytest.mark.asyncio
    async def test_connect_failure(self):
        """Test connection errors become RelayConnectionError."""
        client = RelayClient("wss://relay.example.com")

        with patch(
            "nwc_bridge.relay.websockets.connect",
            new=AsyncMock(side_effect=OSError("refused")),
        ):
            with pytest.raises(RelayConnectionError, match="refused"):
                await client.connect()

        assert client.connected is False

    @pytest.mark.asyncio
    async def test_subscribe_sends_req(self):
        """Test subscribe sends a REQ with the filter."""
        client = connected_client()
        filters = {"kinds": [23194], "since": 1}

        sub_id = await client.subscribe(filters)

        assert sent_messages(client) == [["REQ", sub_id, filters]]

    @pytest.mark.asyncio
    async def test_publish_sends_event(self):
        """Test publish sends the signed event."""
        client = connected_client()
        event = Event.build(Keys.generate(), 23195, "x")

        await client.publish(event)

        assert sent_messages(client) == [["EVENT", event.to_dict()]]

    @pytest.mark.asyncio
    async def test_disconnect(self):
        """Test disconnect closes the socket."""
        client = connected_client()
        ws = client._ws

        await client.disconnect()

        ws.close.assert_awaited_once()
        assert client.connected is False


class TestProcessMessage:
    """Tests for handling relay messages."""

    @pytest.mark.asyncio
    async def test_event_for_subscription(self):
        """Test events on our subscription become notifications."""
        client = connected_client()
        sub_id = await client.subscribe({})
        event = Event.build(Keys.generate(), 23194, "x")

        client._process_message(["EVENT", sub_id, event.to_dict()])

        notification = await client.recv()
        assert notification.kind == RelayNotification.EVENT
        assert notification.event == event

    @pytest.mark.asyncio
    async def test_event_for_unknown_subscription_ignored(self):
        """Test events for other subscriptions are ignored."""
        client = connected_client()
        event = Event.build(Keys.generate(), 23194, "x")

        client._process_message(["EVENT", "other", event.to_dict()])

        assert client._notifications.empty()

    @pytest.mark.asyncio
    async def test_malformed_event_ignored(self):
        """Test malformed events are dropped."""
        client = connected_client()
        sub_id = await client.subscribe({})

        client._process_message(["EVENT", sub_id, {"content": "no id"}])

        assert client._notifications.empty()

    @pytest.mark.asyncio
    async def test_closed_subscription_is_shutdown(self):
        """Test a CLOSED subscription ends the session."""
        client = connected_client()
        sub_id = await client.subscribe({})

        client._process_message(["CLOSED", sub_id, "error: shutting down"])

        notification = await client.recv()
        assert notification.kind == RelayNotification.SHUTDOWN
        assert notification.message == "error: shutting down"

    @pytest.mark.asyncio
    async def test_ok_and_notice_produce_nothing(self):
        """Test OK and NOTICE messages are only logged."""
        client = connected_client()

        client._process_message(["OK", "abc", False, "blocked"])
        client._process_message(["NOTICE", "hello"])
        client._process_message(["EOSE", "sub"])
        client._process_message("not a list")

        assert client._notifications.empty()


class ScriptedSocket:
    """Websocket stand-in that yields a fixed list of frames, then closes."""

    def __init__(self, frames: list[str]) -> None:
        self.frames = list(frames)

    def __aiter__(self):
        return self

    async def __anext__(self) -> str:
        if not self.frames:
            raise StopAsyncIteration
        return self.frames.pop(0)


class FailingSocket(ScriptedSocket):
    async def __anext__(self) -> str:
        raise RuntimeError("boom")


class TestHandleMessages:
    """Tests for the relay reader loop."""

    @pytest.mark.asyncio
    async def test_malformed_frames_do_not_stop_reader(self):
        """Test bad frames are dropped and later events still arrive."""
        client = RelayClient("wss://relay.example.com")
        client._connected = True
        client._subscriptions = {"sub"}
        event = Event.build(Keys.generate(), 23194, "x")
        client._ws = ScriptedSocket(
            [
                json.dumps(["EVENT", "sub", "not-an-object"]),
                json.dumps(["EVENT", ["sub"], {}]),
                json.dumps(["EVENT", "sub", {"id": 5, "tags": "nope"}]),
                "{not json",
                json.dumps(["EVENT", "sub", event.to_dict()]),
            ]
        )

        await client._handle_messages()

        first = await client.recv()
        assert first.kind == RelayNotification.EVENT
        assert first.event == event

        last = await client.recv()
        assert last.kind == RelayNotification.SHUTDOWN
        assert client._notifications.empty()
        assert client.connected is False

    @pytest.mark.asyncio
    async def test_reader_failure_reports_shutdown(self):
        """Test an unexpected socket error still produces a shutdown notification."""
        client = RelayClient("wss://relay.example.com")
        client._connected = True
        client._ws = FailingSocket([])

        await client._handle_messages()

        notification = await client.recv()
        assert notification.kind == RelayNotification.SHUTDOWN
        assert "boom" in notification.message
