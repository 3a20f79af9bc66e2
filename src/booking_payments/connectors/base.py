from abc import ABC, abstractmethod
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field

# Canonical models
class CreateOrderRequest(BaseModel):
    amount: int = Field(..., gt=0)  # minor units
    currency: str
    receipt: str
    metadata: Dict[str, str] = Field(default_factory=dict)

class OrderResponse(BaseModel):
    id: str
    amount: int
    currency: str
    receipt: Optional[str] = None
    status: str = "created"
    raw_provider_response: Optional[Dict[str, Any]] = None

class PaymentDetails(BaseModel):
    id: str
    order_id: Optional[str] = None
    status: str  # created|authorized|captured|failed|refunded
    amount: Optional[int] = None
    currency: Optional[str] = None
    raw_provider_response: Optional[Dict[str, Any]] = None

    @property
    def is_captured(self) -> bool:
        return self.status == "captured"

class RefundResponse(BaseModel):
    id: str
    payment_id: str
    amount: int  # minor units
    status: str  # pending|processed|failed
    raw_provider_response: Optional[Dict[str, Any]] = None

class ConnectorBase(ABC):
    """
    Provider gateway interface: a thin synchronous wrapper around the
    provider's order, payment and refund APIs with no business logic.

    Implementations raise ``ProviderUnavailable`` for timeouts, connection
    failures and 5xx responses, and ``ProviderError`` when the provider
    rejects the request.
    """

    name: str = "base"

    @abstractmethod
    def create_order(self, request: CreateOrderRequest) -> OrderResponse:
        """
        Create a remote order the client can pay against out-of-band.
        """
        raise NotImplementedError

    @abstractmethod
    def fetch_payment(self, remote_payment_id: str) -> PaymentDetails:
        """
        Fetch the provider's authoritative view of a payment.
        """
        raise NotImplementedError

    @abstractmethod
    def create_refund(
        self,
        remote_payment_id: str,
        amount: Optional[int] = None,
        metadata: Optional[Dict[str, str]] = None,
        idempotency_key: Optional[str] = None,
    ) -> RefundResponse:
        """
        Refund a captured payment, fully when ``amount`` is None.

        Repeating a call with the same ``idempotency_key`` must return the
        original refund instead of issuing a second one.
        """
        raise NotImplementedError

    def public_key(self) -> Optional[str]:
        """Key id the checkout frontend needs; never a secret."""
        return None

    def health_check(self) -> Dict[str, Any]:
        return {"ok": True, "provider": self.name}
