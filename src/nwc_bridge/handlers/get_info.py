"""
Get Info Handler
"""

import logging
from typing import TYPE_CHECKING

from ..backend import BackendError
from ..protocol import ErrorCode, Response, supported_method_names

if TYPE_CHECKING:
    from ..backend import PaymentBackend

logger = logging.getLogger("nwc-bridge.handlers.get_info")


async def get_info(method: str, backend: "PaymentBackend") -> Response:
    """Node metadata plus the methods this bridge answers."""
    try:
        info = await backend.get_info()
    except BackendError as e:
        logger.error(f"Error getting node info: {e}")
        return Response.failure(method, ErrorCode.INTERNAL, f"Failed to get info: {e}")

    logger.info("Getting info")
    return Response.success(
        method,
        {
            "alias": info.alias,
            "color": info.color,
            "pubkey": info.pubkey,
            "network": info.network,
            "block_height": info.block_height,
            "block_hash": info.block_hash,
            "methods": supported_method_names(),
        },
    )
