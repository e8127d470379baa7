"""
Command Dispatcher

Decrypts a request event, routes it to its handler, and publishes one
encrypted response per command. Batch methods are split into independent
single-item commands that run concurrently and answer separately.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from . import handlers
from .codec import decrypt_request, encrypt_response
from .nostr import DecryptionError, Event
from .protocol import (
    ErrorCode,
    LookupInvoiceParams,
    MakeInvoiceParams,
    Method,
    PayInvoiceParams,
    PayKeysendParams,
    ProtocolError,
    Request,
    Response,
    batch_entry_id,
    parse_batch_entry,
)

if TYPE_CHECKING:
    from .backend import PaymentBackend
    from .config import BridgeConfig
    from .keys import NWCKeys
    from .payments import PaymentTracker

logger = logging.getLogger("nwc-bridge.dispatcher")

Publish = Callable[[Event], Awaitable[None]]


class CommandDispatcher:
    """Routes NIP-47 requests to handlers and publishes their responses."""

    def __init__(
        self,
        keys: "NWCKeys",
        config: "BridgeConfig",
        backend: "PaymentBackend",
        tracker: "PaymentTracker",
    ) -> None:
        self.keys = keys
        self.config = config
        self.backend = backend
        self.tracker = tracker

    async def handle_event(self, event: Event, publish: Publish) -> None:
        """
        Process one authenticated request event.

        Content that cannot be decrypted or parsed is dropped without a
        response. Every parsed request gets exactly one response per
        command (one per entry for batch methods).

        Args:
            event: Request event, already authenticated
            publish: Sends a response event to the relay
        """
        try:
            request = decrypt_request(event, self.keys)
        except (DecryptionError, ProtocolError) as e:
            logger.error(f"Dropping request {event.id}: {e}")
            return

        logger.debug(f"Request {event.id}: method={request.method} params={request.params}")

        if request.method in (Method.MULTI_PAY_INVOICE, Method.MULTI_PAY_KEYSEND):
            await self._handle_batch(request, event, publish)
        else:
            response = await self._execute(request)
            await self._respond(response, event, publish)

    async def _handle_batch(self, request: Request, event: Event, publish: Publish) -> None:
        try:
            entries = request.batch_entries()
        except ProtocolError as e:
            logger.warning(f"Invalid {request.method} params in {event.id}: {e}")
            response = Response.failure(request.method, ErrorCode.OTHER, str(e))
            await self._respond(response, event, publish)
            return

        logger.debug(f"Splitting {request.method} into {len(entries)} payments")

        results = await asyncio.gather(
            *(self._handle_batch_item(request.method, entry, event, publish) for entry in entries),
            return_exceptions=True,
        )
        for entry, result in zip(entries, results):
            if isinstance(result, Exception):
                logger.error(f"Batch entry {batch_entry_id(entry) or '?'} of {event.id} failed: {result}")

    async def _handle_batch_item(
        self,
        method: str,
        entry: Any,
        event: Event,
        publish: Publish,
    ) -> None:
        d_tag = batch_entry_id(entry)
        try:
            params = parse_batch_entry(method, entry)
        except ProtocolError as e:
            logger.warning(f"Invalid {method} entry {d_tag or '?'} in {event.id}: {e}")
            response = Response.failure(method, ErrorCode.OTHER, str(e))
        else:
            response = await self._guarded(method, self._pay(method, params))
        await self._respond(response, event, publish, d_tag=d_tag)

    async def _pay(self, method: str, params: PayInvoiceParams | PayKeysendParams) -> Response:
        if isinstance(params, PayInvoiceParams):
            return await handlers.pay_invoice(
                params, method, backend=self.backend, tracker=self.tracker, config=self.config
            )
        return await handlers.pay_keysend(
            params, method, backend=self.backend, tracker=self.tracker, config=self.config
        )

    async def _execute(self, request: Request) -> Response:
        """Run a single-item request and return its response."""
        method = request.method
        try:
            if method == Method.PAY_INVOICE:
                call = self._pay(method, request.pay_invoice_params()[0])
            elif method == Method.PAY_KEYSEND:
                call = self._pay(method, request.pay_keysend_params()[0])
            elif method == Method.MAKE_INVOICE:
                call = handlers.make_invoice(
                    MakeInvoiceParams.from_dict(request.params), method, backend=self.backend
                )
            elif method == Method.LOOKUP_INVOICE:
                call = handlers.lookup_invoice(
                    LookupInvoiceParams.from_dict(request.params), method, backend=self.backend
                )
            elif method == Method.GET_BALANCE:
                call = handlers.get_balance(
                    method, backend=self.backend, tracker=self.tracker, config=self.config
                )
            elif method == Method.GET_INFO:
                call = handlers.get_info(method, backend=self.backend)
            else:
                logger.warning(f"Unsupported method: {method}")
                return Response.failure(
                    method, ErrorCode.NOT_IMPLEMENTED, f"Command not supported: {method}"
                )
        except ProtocolError as e:
            logger.warning(f"Invalid {method} params: {e}")
            return Response.failure(method, ErrorCode.OTHER, str(e))

        return await self._guarded(method, call)

    async def _guarded(self, method: str, call: Awaitable[Response]) -> Response:
        """Turn an unexpected handler exception into an INTERNAL error response."""
        try:
            return await call
        except Exception as e:
            logger.exception(f"Error handling {method}")
            return Response.failure(method, ErrorCode.INTERNAL, f"Internal error: {e}")

    async def _respond(
        self,
        response: Response,
        event: Event,
        publish: Publish,
        d_tag: str | None = None,
    ) -> None:
        response_event = encrypt_response(response, event, self.keys, d_tag=d_tag)
        await publish(response_event)
        if response.error is not None:
            logger.info(
                f"Sent {response.result_type} error {response.error.code.value} for {event.id}"
            )
        else:
            logger.debug(f"Sent {response.result_type} response for {event.id}")
