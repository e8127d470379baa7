"""
NIP-47 Method Handlers

One coroutine per supported single-item method.
"""

from .get_balance import get_balance
from .get_info import get_info
from .lookup_invoice import lookup_invoice
from .make_invoice import make_invoice
from .pay_invoice import pay_invoice
from .pay_keysend import pay_keysend
from .quota import QuotaExceededError, reserve_payment

__all__ = [
    "get_balance",
    "get_info",
    "lookup_invoice",
    "make_invoice",
    "pay_invoice",
    "pay_keysend",
    "QuotaExceededError",
    "reserve_payment",
]
