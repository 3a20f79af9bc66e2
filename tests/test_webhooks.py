"""Tests for webhook envelope parsing."""

import json

import pytest

from booking_payments.webhooks import (
    OrderPaidEvent,
    PaymentCapturedEvent,
    PaymentFailedEvent,
    RefundProcessedEvent,
    UnknownEvent,
    parse_webhook_event,
)


def _body(event: str, **entities) -> bytes:
    payload = {name: {"entity": entity} for name, entity in entities.items()}
    return json.dumps({"event": event, "payload": payload}).encode()


class TestParseWebhookEvent:
    """Tests for parse_webhook_event."""

    def test_payment_captured(self):
        event = parse_webhook_event(_body(
            "payment.captured",
            payment={"id": "pay_1", "order_id": "order_1", "amount": 50000, "status": "captured"},
        ))
        assert isinstance(event, PaymentCapturedEvent)
        assert event.order_id == "order_1"
        assert event.payment.id == "pay_1"
        assert event.payment.amount == 50000

    def test_payment_failed(self):
        event = parse_webhook_event(_body(
            "payment.failed",
            payment={"id": "pay_1", "order_id": "order_1", "error_description": "Card declined"},
        ))
        assert isinstance(event, PaymentFailedEvent)
        assert event.order_id == "order_1"
        assert event.payment.error_description == "Card declined"

    def test_order_paid_uses_order_entity(self):
        event = parse_webhook_event(_body(
            "order.paid",
            order={"id": "order_1", "status": "paid"},
            payment={"id": "pay_1", "order_id": "order_1"},
        ))
        assert isinstance(event, OrderPaidEvent)
        assert event.order_id == "order_1"
        assert event.payment.id == "pay_1"

    def test_refund_processed_takes_order_from_payment(self):
        event = parse_webhook_event(_body(
            "refund.processed",
            refund={"id": "rfnd_1", "payment_id": "pay_1", "amount": 50000},
            payment={"id": "pay_1", "order_id": "order_1"},
        ))
        assert isinstance(event, RefundProcessedEvent)
        assert event.order_id == "order_1"
        assert event.refund.id == "rfnd_1"

    def test_refund_processed_without_payment_has_no_order(self):
        event = parse_webhook_event(_body("refund.processed", refund={"id": "rfnd_1"}))
        assert isinstance(event, RefundProcessedEvent)
        assert event.order_id is None

    def test_unknown_event_kept_for_logging(self):
        event = parse_webhook_event(_body("payment.authorized", payment={"id": "pay_1"}))
        assert isinstance(event, UnknownEvent)
        assert event.event_type == "payment.authorized"
        assert event.order_id is None
        assert "payment" in event.raw_payload

    @pytest.mark.parametrize("raw_body", [
        b"not json",
        b"\xff\xfe",
        b"[]",
        b'{"payload": {}}',
        b'{"event": 42}',
    ])
    def test_malformed_envelope_raises(self, raw_body):
        with pytest.raises(ValueError):
            parse_webhook_event(raw_body)

    def test_known_event_missing_entity_raises(self):
        with pytest.raises(ValueError):
            parse_webhook_event(_body("payment.captured"))
