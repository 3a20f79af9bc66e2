"""Conversion between major currency units and the provider's minor units."""

import secrets
import string
import time
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

from .errors import InvalidAmount

# Digits after the decimal point for supported currencies (INR, USD, EUR).
MINOR_UNIT_EXPONENT = 2

_BASE36_ALPHABET = string.digits + string.ascii_lowercase
_RECEIPT_SUFFIX_LENGTH = 6
# Razorpay rejects receipts longer than this.
MAX_RECEIPT_LENGTH = 40

AmountLike = Union[Decimal, int, str, float]


def _to_decimal(amount: AmountLike) -> Decimal:
    if isinstance(amount, bool):
        raise InvalidAmount(f"Invalid amount: {amount!r}")
    if isinstance(amount, float):
        amount = str(amount)
    try:
        value = Decimal(amount)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmount(f"Invalid amount: {amount!r}")
    if not value.is_finite():
        raise InvalidAmount(f"Amount must be finite: {amount!r}")
    if value < 0:
        raise InvalidAmount(f"Amount must not be negative: {amount!r}")
    return value


def to_minor_units(amount: AmountLike) -> int:
    """Convert a major-unit amount (e.g. rupees) to minor units (e.g. paise).

    Rounds half-up to the nearest minor unit.

    Raises:
        InvalidAmount: If the amount is negative, NaN, infinite or unparseable.
    """
    value = _to_decimal(amount)
    quantum = Decimal(1).scaleb(-MINOR_UNIT_EXPONENT)
    rounded = value.quantize(quantum, rounding=ROUND_HALF_UP)
    return int(rounded.scaleb(MINOR_UNIT_EXPONENT))


def to_major_units(amount_minor: int) -> Decimal:
    """Convert a minor-unit integer back to a major-unit Decimal."""
    if isinstance(amount_minor, bool) or not isinstance(amount_minor, int):
        raise InvalidAmount(f"Minor-unit amount must be an integer: {amount_minor!r}")
    if amount_minor < 0:
        raise InvalidAmount(f"Amount must not be negative: {amount_minor!r}")
    return Decimal(amount_minor).scaleb(-MINOR_UNIT_EXPONENT)


def _base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36_ALPHABET[remainder])
    return "".join(reversed(digits))


def new_idempotency_receipt(prefix: str) -> str:
    """Generate a receipt id for the provider order, e.g. ``booking_lxk2f9a1_3k9zq0``.

    Aids provider-side deduplication only; it is not a security token.
    """
    timestamp = _base36(time.time_ns() // 1_000_000)
    suffix = "".join(
        secrets.choice(_BASE36_ALPHABET) for _ in range(_RECEIPT_SUFFIX_LENGTH)
    )
    return f"{prefix}_{timestamp}_{suffix}"


def idempotency_receipt(prefix: str, reference: str) -> str:
    """Derive a stable receipt from a local id, e.g. ``refund_<hex>``.

    The same ``reference`` always yields the same receipt, so a retried
    provider call is deduplicated instead of repeated. Dashes are dropped to
    stay within the provider's receipt limit.
    """
    receipt = f"{prefix}_{reference.replace('-', '')}"
    return receipt[:MAX_RECEIPT_LENGTH]
