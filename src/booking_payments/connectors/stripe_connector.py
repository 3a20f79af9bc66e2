import logging
from typing import Any, Dict, Optional

import stripe

from ..errors import ProviderError, ProviderUnavailable
from .base import (
    ConnectorBase,
    CreateOrderRequest,
    OrderResponse,
    PaymentDetails,
    RefundResponse,
)

logger = logging.getLogger(__name__)

# Fields that should not be kept in stored provider responses
SENSITIVE_FIELDS = frozenset([
    "client_secret",
    "payment_method",
    "source",
    "customer",
    "payment_method_details",
])


class StripeConnector(ConnectorBase):
    """
    Stripe connector using stripe-python. A PaymentIntent plays the role of the
    remote order: its id is both the order id and the payment id the frontend
    reports back after Stripe.js confirms the card payment.
    """

    name = "stripe"

    def __init__(
        self,
        api_key: str,
        publishable_key: Optional[str] = None,
        timeout: float = 10.0,
    ):
        if not api_key:
            raise ValueError("STRIPE_API_KEY must be configured")
        self._api_key = api_key
        self._publishable_key = publishable_key
        self.timeout = timeout

    def _configure_stripe(self) -> None:
        stripe.api_key = self._api_key
        stripe.default_http_client = stripe.RequestsClient(timeout=self.timeout)

    @staticmethod
    def _sanitize_response(raw_response: Dict[str, Any]) -> Dict[str, Any]:
        return {k: v for k, v in (raw_response or {}).items() if k not in SENSITIVE_FIELDS}

    @staticmethod
    def _map_status(pi: Any) -> str:
        status_map = {
            "succeeded": "captured",
            "requires_capture": "authorized",
            "canceled": "failed",
        }
        if pi.status == "requires_payment_method" and getattr(pi, "last_payment_error", None):
            return "failed"
        return status_map.get(pi.status, "created")

    def _translate(self, operation: str, e: Exception) -> ProviderError:
        if isinstance(e, (stripe.APIConnectionError, stripe.RateLimitError)):
            logger.error(f"Stripe unreachable during {operation}: {type(e).__name__}")
            return ProviderUnavailable(f"Stripe unavailable during {operation}")
        http_status = getattr(e, "http_status", None)
        if http_status is not None and http_status >= 500:
            logger.error(f"Stripe server error during {operation}: {http_status}")
            return ProviderUnavailable(f"Stripe unavailable during {operation}")
        logger.warning(f"Stripe rejected {operation}: {type(e).__name__}")
        return ProviderError(f"Stripe rejected {operation}: {e}")

    def create_order(self, request: CreateOrderRequest) -> OrderResponse:
        self._configure_stripe()
        try:
            pi = stripe.PaymentIntent.create(
                amount=request.amount,
                currency=request.currency.lower(),
                metadata={**request.metadata, "receipt": request.receipt},
                automatic_payment_methods={"enabled": True},
                idempotency_key=request.receipt,
            )
        except stripe.StripeError as e:
            raise self._translate("create_order", e) from e
        return OrderResponse(
            id=pi.id,
            amount=pi.amount,
            currency=pi.currency.upper(),
            receipt=request.receipt,
            status="created",
            raw_provider_response=self._sanitize_response(pi.to_dict()),
        )

    def fetch_payment(self, remote_payment_id: str) -> PaymentDetails:
        self._configure_stripe()
        try:
            pi = stripe.PaymentIntent.retrieve(remote_payment_id)
        except stripe.StripeError as e:
            raise self._translate("fetch_payment", e) from e
        return PaymentDetails(
            id=pi.id,
            order_id=pi.id,
            status=self._map_status(pi),
            amount=pi.amount,
            currency=pi.currency.upper(),
            raw_provider_response=self._sanitize_response(pi.to_dict()),
        )

    def create_refund(
        self,
        remote_payment_id: str,
        amount: Optional[int] = None,
        metadata: Optional[Dict[str, str]] = None,
        idempotency_key: Optional[str] = None,
    ) -> RefundResponse:
        self._configure_stripe()
        params: Dict[str, Any] = {
            "payment_intent": remote_payment_id,
            "metadata": metadata or {},
        }
        if amount is not None:
            params["amount"] = amount
        if idempotency_key:
            params["idempotency_key"] = idempotency_key
        try:
            r = stripe.Refund.create(**params)
        except stripe.StripeError as e:
            raise self._translate("create_refund", e) from e
        status_map = {"succeeded": "processed", "pending": "pending", "failed": "failed"}
        return RefundResponse(
            id=r.id,
            payment_id=remote_payment_id,
            amount=r.amount,
            status=status_map.get(r.status, r.status),
            raw_provider_response=self._sanitize_response(r.to_dict()),
        )

    def public_key(self) -> Optional[str]:
        return self._publishable_key
