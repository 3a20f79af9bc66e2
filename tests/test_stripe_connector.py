"""Tests for StripeConnector implementation."""

from unittest.mock import MagicMock, patch

import pytest
import stripe

from booking_payments.connectors.base import CreateOrderRequest
from booking_payments.connectors.stripe_connector import StripeConnector, SENSITIVE_FIELDS
from booking_payments.errors import ProviderError, ProviderUnavailable


def _intent(status: str = "succeeded", last_payment_error=None) -> MagicMock:
    mock_pi = MagicMock()
    mock_pi.id = "pi_1234567890abcdefghijklmno"
    mock_pi.status = status
    mock_pi.amount = 50000
    mock_pi.currency = "inr"
    mock_pi.last_payment_error = last_payment_error
    mock_pi.to_dict.return_value = {
        "id": "pi_1234567890abcdefghijklmno",
        "status": status,
        "amount": 50000,
        "currency": "inr",
        "client_secret": "pi_xxx_secret_xxx",
        "metadata": {},
    }
    return mock_pi


@pytest.fixture
def connector():
    """Create a StripeConnector instance."""
    return StripeConnector(api_key="sk_test_mock_key", publishable_key="pk_test_mock", timeout=4.0)


class TestStripeConnectorInit:
    """Tests for StripeConnector initialization."""

    def test_init_with_api_key_argument(self):
        connector = StripeConnector(api_key="sk_test_key")
        assert connector._api_key == "sk_test_key"

    def test_init_without_api_key_raises(self):
        with pytest.raises(ValueError) as exc_info:
            StripeConnector(api_key="")
        assert "STRIPE_API_KEY" in str(exc_info.value)

    def test_public_key_is_publishable_key(self, connector):
        assert connector.public_key() == "pk_test_mock"


class TestStripeCreateOrder:
    """A PaymentIntent stands in for the remote order."""

    def test_create_order(self, connector):
        with patch("stripe.PaymentIntent.create", return_value=_intent("requires_payment_method")) as create:
            order = connector.create_order(CreateOrderRequest(
                amount=50000, currency="INR", receipt="booking_x_abcdef",
                metadata={"bookingId": "b1"},
            ))

        assert order.id == "pi_1234567890abcdefghijklmno"
        assert order.currency == "INR"
        assert "client_secret" not in order.raw_provider_response
        kwargs = create.call_args.kwargs
        assert kwargs["currency"] == "inr"
        assert kwargs["idempotency_key"] == "booking_x_abcdef"
        assert kwargs["metadata"] == {"bookingId": "b1", "receipt": "booking_x_abcdef"}

    def test_connection_error_is_unavailable(self, connector):
        with patch("stripe.PaymentIntent.create", side_effect=stripe.APIConnectionError("network down")):
            with pytest.raises(ProviderUnavailable):
                connector.create_order(CreateOrderRequest(amount=100, currency="INR", receipt="r"))

    def test_invalid_request_is_rejection(self, connector):
        with patch(
            "stripe.PaymentIntent.create",
            side_effect=stripe.InvalidRequestError("Amount too small", "amount", http_status=400),
        ):
            with pytest.raises(ProviderError) as exc_info:
                connector.create_order(CreateOrderRequest(amount=1, currency="INR", receipt="r"))
        assert not isinstance(exc_info.value, ProviderUnavailable)

    def test_server_error_is_unavailable(self, connector):
        with patch("stripe.PaymentIntent.create", side_effect=stripe.APIError("boom", http_status=503)):
            with pytest.raises(ProviderUnavailable):
                connector.create_order(CreateOrderRequest(amount=100, currency="INR", receipt="r"))


class TestStripeFetchPayment:
    """Tests for fetch_payment status mapping."""

    @pytest.mark.parametrize("status,expected", [
        ("succeeded", "captured"),
        ("requires_capture", "authorized"),
        ("canceled", "failed"),
        ("processing", "created"),
    ])
    def test_status_mapping(self, connector, status, expected):
        with patch("stripe.PaymentIntent.retrieve", return_value=_intent(status)):
            details = connector.fetch_payment("pi_1234567890abcdefghijklmno")
        assert details.status == expected
        assert details.order_id == details.id

    def test_failed_attempt_maps_to_failed(self, connector):
        intent = _intent("requires_payment_method", last_payment_error={"code": "card_declined"})
        with patch("stripe.PaymentIntent.retrieve", return_value=intent):
            assert connector.fetch_payment("pi_1").status == "failed"

    def test_sensitive_fields_removed(self, connector):
        with patch("stripe.PaymentIntent.retrieve", return_value=_intent()):
            details = connector.fetch_payment("pi_1")
        assert not SENSITIVE_FIELDS & set(details.raw_provider_response)


class TestStripeRefund:
    """Tests for create_refund."""

    def test_refund(self, connector):
        mock_refund = MagicMock()
        mock_refund.id = "re_1234567890abcdefghijklmno"
        mock_refund.amount = 20000
        mock_refund.status = "succeeded"
        mock_refund.to_dict.return_value = {"id": mock_refund.id, "amount": 20000, "status": "succeeded"}

        with patch("stripe.Refund.create", return_value=mock_refund) as create:
            refund = connector.create_refund("pi_1", amount=20000, metadata={"reason": "rain"})

        assert refund.status == "processed"
        assert refund.amount == 20000
        create.assert_called_once_with(
            payment_intent="pi_1", metadata={"reason": "rain"}, amount=20000
        )

    def test_refund_passes_idempotency_key(self, connector):
        mock_refund = MagicMock()
        mock_refund.id = "re_1"
        mock_refund.amount = 50000
        mock_refund.status = "pending"
        mock_refund.to_dict.return_value = {"id": "re_1"}

        with patch("stripe.Refund.create", return_value=mock_refund) as create:
            refund = connector.create_refund("pi_1", idempotency_key="refund_abc")

        assert refund.status == "pending"
        assert create.call_args.kwargs["idempotency_key"] == "refund_abc"

    def test_rate_limit_is_unavailable(self, connector):
        with patch("stripe.Refund.create", side_effect=stripe.RateLimitError("slow down")):
            with pytest.raises(ProviderUnavailable):
                connector.create_refund("pi_1")
