"""Result types returned by the reconciliation engine."""

import enum
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel


class WebhookOutcome(str, enum.Enum):
    """What handling a webhook did to local state."""
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"


class OrderDetails(BaseModel):
    """Remote order the client completes checkout against."""
    remote_order_id: str
    amount_minor: int
    currency: str
    receipt: str


class ConfirmationResult(BaseModel):
    booking_status: str
    payment_status: str
    applied: bool


class RefundResult(BaseModel):
    refund_id: str
    amount: Decimal
    status: str


class PaymentView(BaseModel):
    """Read-only view of a booking's payment."""
    payment_id: str
    booking_id: str
    booking_status: str
    payment_status: str
    amount: Decimal
    currency: str
    provider: str
    remote_order_id: str
    refund_reference: Optional[str] = None
    refunded_amount: Optional[Decimal] = None
