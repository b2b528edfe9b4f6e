from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from .errors import InvalidTransitionError, ValidationError

SLIP_STATUS_PENDING = "PENDING"
SLIP_STATUS_APPROVED = "APPROVED"
SLIP_STATUS_REJECTED = "REJECTED"

VALID_SLIP_STATUSES = (SLIP_STATUS_PENDING, SLIP_STATUS_APPROVED, SLIP_STATUS_REJECTED)

# Maximum slip amount: 99,999,999.99 (Numeric(10, 2))
MAX_AMOUNT = Decimal("99999999.99")


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def parse_cart_id(value: Any) -> int:
    """cart_id must be a positive integer ("12" is fine, "12.5" and "1e3" are not)."""
    if isinstance(value, bool):
        raise ValidationError("cart_id is invalid")
    if isinstance(value, int):
        cart_id = value
    else:
        raw = _text(value)
        # isdigit() alone accepts superscripts and other non-ASCII digits
        if not (raw.isascii() and raw.isdigit()):
            raise ValidationError("cart_id is invalid")
        cart_id = int(raw)
    if cart_id <= 0:
        raise ValidationError("cart_id is invalid")
    return cart_id


def parse_amount(value: Any) -> Decimal:
    """amount must be a finite positive number; stored with two decimals."""
    if isinstance(value, bool):
        raise ValidationError("amount is invalid")
    raw = _text(value)
    try:
        amount = Decimal(raw)
    except (InvalidOperation, ValueError):
        raise ValidationError("amount is invalid")
    if not amount.is_finite() or amount <= 0 or amount > MAX_AMOUNT:
        raise ValidationError("amount is invalid")
    amount = amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    if amount <= 0 or amount > MAX_AMOUNT:
        raise ValidationError("amount is invalid")
    return amount


def parse_slip_status(value: Any) -> str:
    status = _text(value).upper()
    if status not in VALID_SLIP_STATUSES:
        raise InvalidTransitionError(
            f"Invalid slip status: {value!r}. Must be one of {list(VALID_SLIP_STATUSES)}"
        )
    return status


def parse_status_filter(value: Any) -> str | None:
    """Listing filter: unknown or empty values mean 'all statuses'."""
    status = _text(value).upper()
    return status if status in VALID_SLIP_STATUSES else None

