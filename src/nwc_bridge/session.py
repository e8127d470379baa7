"""
Session Controller

Owns the relay connection lifecycle: connect, announce capabilities once,
subscribe, hand authenticated requests to the dispatcher as tracked tasks,
refresh the connection periodically and reconnect after relay failures.
"""

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any, Callable

from .codec import build_info_event
from .keys import KeyStoreError
from .nostr import Event
from .protocol import REQUEST_KIND
from .relay import RelayClient, RelayError, RelayNotification

if TYPE_CHECKING:
    from .config import BridgeConfig
    from .dispatcher import CommandDispatcher
    from .keys import NWCKeys
    from .shutdown import ShutdownCoordinator

logger = logging.getLogger("nwc-bridge.session")

INITIAL_BACKOFF = 1.0


class SessionController:
    """Keeps one relay subscription alive and feeds requests to the dispatcher."""

    def __init__(
        self,
        config: "BridgeConfig",
        keys: "NWCKeys",
        dispatcher: "CommandDispatcher",
        inflight: "ShutdownCoordinator",
        relay_factory: Callable[[str], RelayClient] = RelayClient,
    ) -> None:
        self.config = config
        self.keys = keys
        self.dispatcher = dispatcher
        self.inflight = inflight
        self.relay_factory = relay_factory

        self._relay: RelayClient | None = None
        self._connected = asyncio.Event()
        self._stop = asyncio.Event()

    def stop(self) -> None:
        """Ask the session to finish in-flight requests and disconnect."""
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    async def run(self) -> None:
        """Connect, listen, and reconnect until stopped."""
        backoff = INITIAL_BACKOFF

        while not self._stop.is_set():
            relay = self.relay_factory(self.config.relay)
            try:
                await relay.connect()
            except RelayError as e:
                logger.error(f"{e}, retrying in {backoff:.0f}s")
                await self._sleep(backoff)
                backoff = min(backoff * 2, self.config.reconnect_backoff_max)
                continue

            backoff = INITIAL_BACKOFF
            self._relay = relay
            self._connected.set()
            try:
                await self._announce(relay)
                await relay.subscribe(self.request_filter())
                logger.info("Listening for nip 47 requests")
                await self._listen(relay)
            except RelayError as e:
                logger.error(f"Relay error: {e}")
            finally:
                if self._stop.is_set():
                    await self.inflight.drain()
                self._connected.clear()
                self._relay = None
                await relay.disconnect()

        logger.info("Session stopped")

    def request_filter(self) -> dict[str, Any]:
        """Requests from the user key, addressed to us, from now on."""
        return {
            "kinds": [REQUEST_KIND],
            "authors": [self.keys.user_keys().public_key],
            "#p": [self.keys.server_keys().public_key],
            "since": int(time.time()),
        }

    async def publish(self, event: Event) -> None:
        """Publish a response on the current connection, waiting for one if needed."""
        await self._connected.wait()
        if self._relay is None:
            raise RelayError("No relay connection")
        await self._relay.publish(event)

    async def _announce(self, relay: RelayClient) -> None:
        if self.keys.sent_info:
            return

        await relay.publish(build_info_event(self.keys))
        self.keys.sent_info = True
        logger.info("Broadcasted NIP-47 info event")
        try:
            self.keys.write(self.config.keys_file)
        except KeyStoreError as e:
            logger.error(f"Could not persist announcement flag: {e}")

    async def _listen(self, relay: RelayClient) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.refresh_interval
        stop_wait = asyncio.create_task(self._stop.wait())

        try:
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    logger.info("Refreshing relay connection")
                    return

                recv = asyncio.create_task(relay.recv())
                done, _ = await asyncio.wait(
                    {recv, stop_wait},
                    timeout=remaining,
                    return_when=asyncio.FIRST_COMPLETED,
                )

                if recv not in done:
                    recv.cancel()
                    if stop_wait in done:
                        return
                    continue

                notification = recv.result()
                if notification.kind == RelayNotification.SHUTDOWN:
                    logger.warning(f"Relay shut down: {notification.message}")
                    return
                if notification.event is not None:
                    self._on_event(notification.event)
        finally:
            stop_wait.cancel()

    def _on_event(self, event: Event) -> None:
        if not self._is_authorized(event):
            logger.error(f"Invalid event: {event.id}")
            return

        logger.debug(f"Received event: {event.id}")
        self.inflight.track(event.id, self._process(event))

    def _is_authorized(self, event: Event) -> bool:
        return (
            event.kind == REQUEST_KIND
            and event.pubkey == self.keys.user_keys().public_key
            and self.keys.server_keys().public_key in event.tag_values("p")
            and event.is_valid()
        )

    async def _process(self, event: Event) -> None:
        try:
            await asyncio.wait_for(
                self.dispatcher.handle_event(event, self.publish),
                timeout=self.config.request_timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"Timeout handling request {event.id}")
        except Exception as e:
            logger.error(f"Error handling request {event.id}: {e}")

    async def _sleep(self, seconds: float) -> None:
        """Sleep, waking early if stopped."""
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
