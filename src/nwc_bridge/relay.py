"""
Relay Client

A single NIP-01 relay connection over websockets: subscribe, publish, and
receive events as notifications.
"""

import asyncio
import json
import logging
import secrets
from dataclasses import dataclass
from typing import Any

import websockets
from websockets.asyncio.client import ClientConnection

from .nostr import Event, InvalidEventError

logger = logging.getLogger("nwc-bridge.relay")


class RelayError(Exception):
    """Exception for relay errors."""

    pass


class RelayConnectionError(RelayError):
    """Exception for connection failures."""

    pass


@dataclass
class RelayNotification:
    """Something the relay told us: an event, or that the connection ended."""

    kind: str
    event: Event | None = None
    message: str = ""

    EVENT = "event"
    SHUTDOWN = "shutdown"

    @classmethod
    def for_event(cls, event: Event) -> "RelayNotification":
        return cls(kind=cls.EVENT, event=event)

    @classmethod
    def shutdown(cls, message: str = "") -> "RelayNotification":
        return cls(kind=cls.SHUTDOWN, message=message)


class RelayClient:
    """Connection to one Nostr relay."""

    def __init__(self, url: str) -> None:
        self.url = url
        self._ws: ClientConnection | None = None
        self._connected = False
        self._reader_task: asyncio.Task[None] | None = None
        self._notifications: asyncio.Queue[RelayNotification] = asyncio.Queue()
        self._subscriptions: set[str] = set()
        self._send_lock = asyncio.Lock()

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        """Connect to the relay."""
        if self._connected:
            return

        try:
            self._ws = await websockets.connect(self.url)
        except (OSError, websockets.WebSocketException, asyncio.TimeoutError) as e:
            raise RelayConnectionError(f"Failed to connect to relay {self.url}: {e!s}") from e

        self._connected = True
        self._reader_task = asyncio.create_task(self._handle_messages())
        logger.info(f"Connected to relay: {self.url}")

    async def disconnect(self) -> None:
        """Disconnect from the relay."""
        if self._reader_task:
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass
            self._reader_task = None

        if self._ws:
            await self._ws.close()
            self._ws = None

        self._connected = False
        self._subscriptions.clear()

    async def _send(self, message: list[Any]) -> None:
        if not self._connected or not self._ws:
            raise RelayConnectionError(f"Not connected to relay {self.url}")
        try:
            async with self._send_lock:
                await self._ws.send(json.dumps(message))
        except websockets.ConnectionClosed as e:
            self._connected = False
            raise RelayConnectionError(f"Relay connection closed: {e}") from e

    async def subscribe(self, filters: dict[str, Any]) -> str:
        """
        Open a subscription.

        Args:
            filters: NIP-01 filter

        Returns:
            Subscription id
        """
        sub_id = secrets.token_hex(8)
        await self._send(["REQ", sub_id, filters])
        self._subscriptions.add(sub_id)
        return sub_id

    async def publish(self, event: Event) -> None:
        """Send an event to the relay."""
        await self._send(["EVENT", event.to_dict()])
        logger.debug(f"Published event {event.id} (kind {event.kind})")

    async def recv(self) -> RelayNotification:
        """Wait for the next notification."""
        return await self._notifications.get()

    async def _handle_messages(self) -> None:
        """Handle incoming messages from the relay."""
        if not self._ws:
            return

        reason = "connection closed"
        try:
            async for message in self._ws:
                try:
                    data = json.loads(message)
                except json.JSONDecodeError:
                    logger.warning(f"Invalid JSON from relay: {str(message)[:100]}")
                    continue
                try:
                    self._process_message(data)
                except Exception as e:
                    logger.error(f"Dropping malformed relay message {str(message)[:100]}: {e}")
        except websockets.ConnectionClosed as e:
            reason = f"connection closed: {e}"
        except Exception as e:
            reason = f"reader failed: {e}"
            logger.exception(f"Relay {self.url} reader failed")
        finally:
            self._connected = False
            logger.info(f"Relay {self.url} {reason}")
            self._notifications.put_nowait(RelayNotification.shutdown(reason))

    def _process_message(self, data: Any) -> None:
        """Process a Nostr message."""
        if not isinstance(data, list) or not data:
            return

        message_type = data[0]

        if message_type == "EVENT" and len(data) >= 3:
            if not isinstance(data[1], str) or data[1] not in self._subscriptions:
                return
            try:
                event = Event.from_dict(data[2])
            except InvalidEventError as e:
                logger.error(f"Malformed event from relay: {e}")
                return
            self._notifications.put_nowait(RelayNotification.for_event(event))

        elif message_type == "OK" and len(data) >= 3:
            if not data[2]:
                message = data[3] if len(data) > 3 else ""
                logger.warning(f"Relay rejected event {data[1]}: {message}")

        elif message_type == "CLOSED" and len(data) >= 2:
            if data[1] in self._subscriptions:
                self._subscriptions.discard(data[1])
                message = data[2] if len(data) > 2 else ""
                logger.warning(f"Relay closed subscription {data[1]}: {message}")
                self._notifications.put_nowait(RelayNotification.shutdown(message))

        elif message_type == "NOTICE" and len(data) >= 2:
            logger.info(f"Relay notice: {data[1]}")

        elif message_type == "EOSE":
            logger.debug(f"End of stored events for {data[1] if len(data) > 1 else '?'}")
