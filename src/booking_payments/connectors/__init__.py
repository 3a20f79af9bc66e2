"""Payment provider connectors."""

from typing import Optional

from ..config import Settings, SUPPORTED_PROVIDERS
from .base import (
    ConnectorBase,
    CreateOrderRequest,
    OrderResponse,
    PaymentDetails,
    RefundResponse,
)
from .razorpay_connector import RazorpayConnector
from .stripe_connector import StripeConnector
from .simulator_connector import (
    SimulatorConnector,
    SimulatorConfig,
    SimulatorOperation,
    SimulatedOrder,
    SimulatedPayment,
)


def get_connector(settings: Settings, provider: Optional[str] = None) -> ConnectorBase:
    """Factory function to build the configured provider connector.

    Raises:
        ValueError: If the provider is unsupported or missing credentials.
    """
    provider = (provider or settings.payment_provider).lower()
    if provider == "razorpay":
        return RazorpayConnector(
            key_id=settings.razorpay_key_id or "",
            key_secret=settings.razorpay_key_secret or "",
            timeout=settings.provider_timeout_seconds,
        )
    if provider == "stripe":
        return StripeConnector(
            api_key=settings.stripe_api_key or "",
            publishable_key=settings.stripe_publishable_key,
            timeout=settings.provider_timeout_seconds,
        )
    if provider == "simulator":
        return SimulatorConnector()
    raise ValueError(
        f"Unsupported payment provider: {provider} "
        f"(expected one of {', '.join(SUPPORTED_PROVIDERS)})"
    )


__all__ = [
    # Base classes and models
    "ConnectorBase",
    "CreateOrderRequest",
    "OrderResponse",
    "PaymentDetails",
    "RefundResponse",
    # Connectors
    "RazorpayConnector",
    "StripeConnector",
    "SimulatorConnector",
    "SimulatorConfig",
    "SimulatorOperation",
    "SimulatedOrder",
    "SimulatedPayment",
    "get_connector",
]
