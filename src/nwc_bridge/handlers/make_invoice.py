"""
Make Invoice Handler
"""

import logging
from typing import TYPE_CHECKING

from ..backend import BackendError
from ..protocol import ErrorCode, MakeInvoiceParams, Response

if TYPE_CHECKING:
    from ..backend import PaymentBackend

logger = logging.getLogger("nwc-bridge.handlers.make_invoice")


async def make_invoice(
    params: MakeInvoiceParams,
    method: str,
    backend: "PaymentBackend",
) -> Response:
    """Create an invoice for ``params.amount`` msats."""
    try:
        info = await backend.make_invoice(
            params.amount,
            description=params.description,
            description_hash=params.description_hash,
            expiry=params.expiry,
        )
    except BackendError as e:
        logger.error(f"Error creating invoice: {e}")
        return Response.failure(method, ErrorCode.INTERNAL, f"Failed to create invoice: {e}")

    return Response.success(method, info.to_dict())
