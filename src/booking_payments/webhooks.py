"""Provider webhook event parsing.

Webhook bodies arrive as ``{"event": "...", "payload": {...}}`` envelopes.
``parse_webhook_event`` turns them into one of a small set of typed events;
anything the engine does not act on becomes an ``UnknownEvent``.
"""

import json
import logging
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)


class PaymentEntity(BaseModel):
    id: str
    order_id: Optional[str] = None
    amount: Optional[int] = None
    currency: Optional[str] = None
    status: Optional[str] = None
    error_description: Optional[str] = None


class OrderEntity(BaseModel):
    id: str
    amount: Optional[int] = None
    status: Optional[str] = None


class RefundEntity(BaseModel):
    id: str
    payment_id: Optional[str] = None
    amount: Optional[int] = None
    status: Optional[str] = None


class PaymentCapturedEvent(BaseModel):
    event_type: str = "payment.captured"
    payment: PaymentEntity

    @property
    def order_id(self) -> Optional[str]:
        return self.payment.order_id


class PaymentFailedEvent(BaseModel):
    event_type: str = "payment.failed"
    payment: PaymentEntity

    @property
    def order_id(self) -> Optional[str]:
        return self.payment.order_id


class OrderPaidEvent(BaseModel):
    event_type: str = "order.paid"
    order: OrderEntity
    payment: Optional[PaymentEntity] = None

    @property
    def order_id(self) -> Optional[str]:
        return self.order.id


class RefundProcessedEvent(BaseModel):
    event_type: str = "refund.processed"
    refund: RefundEntity
    payment: Optional[PaymentEntity] = None

    @property
    def order_id(self) -> Optional[str]:
        return self.payment.order_id if self.payment else None


class UnknownEvent(BaseModel):
    event_type: str
    raw_payload: Dict[str, Any] = {}

    @property
    def order_id(self) -> Optional[str]:
        return None


WebhookEvent = Union[
    PaymentCapturedEvent,
    PaymentFailedEvent,
    OrderPaidEvent,
    RefundProcessedEvent,
    UnknownEvent,
]


def _entity(payload: Dict[str, Any], key: str) -> Optional[Dict[str, Any]]:
    wrapper = payload.get(key)
    if not isinstance(wrapper, dict):
        return None
    entity = wrapper.get("entity")
    return entity if isinstance(entity, dict) else None


def parse_webhook_event(raw_body: bytes) -> WebhookEvent:
    """Parse a raw webhook body into a typed event.

    Args:
        raw_body: Exact bytes received from the provider.

    Returns:
        The matching event model, or ``UnknownEvent`` for event types that are
        not reconciled.

    Raises:
        ValueError: If the body is not a JSON envelope, or a known event type
            is missing the entities it requires.
    """
    try:
        envelope = json.loads(raw_body)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValueError(f"Webhook body is not valid JSON: {e}") from e

    if not isinstance(envelope, dict) or not isinstance(envelope.get("event"), str):
        raise ValueError("Webhook body has no event type")

    event_type = envelope["event"]
    payload = envelope.get("payload")
    if not isinstance(payload, dict):
        payload = {}

    payment = _entity(payload, "payment")
    try:
        if event_type == "payment.captured":
            return PaymentCapturedEvent(payment=payment)
        if event_type == "payment.failed":
            return PaymentFailedEvent(payment=payment)
        if event_type == "order.paid":
            return OrderPaidEvent(order=_entity(payload, "order"), payment=payment)
        if event_type == "refund.processed":
            return RefundProcessedEvent(refund=_entity(payload, "refund"), payment=payment)
    except ValidationError as e:
        raise ValueError(f"Malformed {event_type} webhook: {e}") from e

    logger.debug(f"Webhook event type {event_type} is not reconciled")
    return UnknownEvent(event_type=event_type, raw_payload=payload)
