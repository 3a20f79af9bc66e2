import logging
from typing import Any, Dict, Optional

import razorpay
import requests

from ..errors import ProviderError, ProviderUnavailable
from .base import (
    ConnectorBase,
    CreateOrderRequest,
    OrderResponse,
    PaymentDetails,
    RefundResponse,
)

logger = logging.getLogger(__name__)


class RazorpayConnector(ConnectorBase):
    """
    Razorpay connector using razorpay-python. Orders are created server-side,
    the customer pays through Razorpay Checkout, and the checkout handler posts
    back order id, payment id and signature for verification.
    """

    name = "razorpay"

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        timeout: float = 10.0,
        client: Optional[razorpay.Client] = None,
    ):
        if not key_id or not key_secret:
            raise ValueError("RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET must be configured")
        self._key_id = key_id
        self.timeout = timeout
        self.client = client or razorpay.Client(auth=(key_id, key_secret))

    def _call(self, operation: str, func, *args, **kwargs) -> Dict[str, Any]:
        """Invoke an SDK call with a bounded timeout, translating its errors."""
        try:
            return func(*args, timeout=self.timeout, **kwargs)
        except razorpay.errors.BadRequestError as e:
            logger.warning(f"Razorpay rejected {operation}: {e}")
            raise ProviderError(f"Razorpay rejected {operation}: {e}") from e
        except (razorpay.errors.ServerError, razorpay.errors.GatewayError) as e:
            logger.error(f"Razorpay server error during {operation}: {e}")
            raise ProviderUnavailable(f"Razorpay unavailable during {operation}") from e
        except requests.exceptions.RequestException as e:
            logger.error(f"Razorpay request failed during {operation}: {type(e).__name__}")
            raise ProviderUnavailable(f"Razorpay unreachable during {operation}") from e

    def create_order(self, request: CreateOrderRequest) -> OrderResponse:
        order = self._call(
            "create_order",
            self.client.order.create,
            data={
                "amount": request.amount,
                "currency": request.currency.upper(),
                "receipt": request.receipt,
                "notes": request.metadata,
            },
        )
        return OrderResponse(
            id=order["id"],
            amount=order.get("amount", request.amount),
            currency=order.get("currency", request.currency.upper()),
            receipt=order.get("receipt", request.receipt),
            status=order.get("status", "created"),
            raw_provider_response=order,
        )

    def fetch_payment(self, remote_payment_id: str) -> PaymentDetails:
        payment = self._call("fetch_payment", self.client.payment.fetch, remote_payment_id)
        return PaymentDetails(
            id=payment["id"],
            order_id=payment.get("order_id"),
            status=payment.get("status", "created"),
            amount=payment.get("amount"),
            currency=payment.get("currency"),
            raw_provider_response=payment,
        )

    def create_refund(
        self,
        remote_payment_id: str,
        amount: Optional[int] = None,
        metadata: Optional[Dict[str, str]] = None,
        idempotency_key: Optional[str] = None,
    ) -> RefundResponse:
        data: Dict[str, Any] = {"notes": metadata or {}}
        if amount is not None:
            data["amount"] = amount
        if idempotency_key:
            data["receipt"] = idempotency_key
        refund = self._call(
            "create_refund", self.client.payment.refund, remote_payment_id, data
        )
        return RefundResponse(
            id=refund["id"],
            payment_id=refund.get("payment_id", remote_payment_id),
            amount=refund.get("amount", amount or 0),
            status=refund.get("status", "pending"),
            raw_provider_response=refund,
        )

    def public_key(self) -> Optional[str]:
        return self._key_id
