"""Simulator connector for exercising payment flows without real provider calls."""

import threading
import time
import logging
from typing import Dict, Any, Optional, Set, Tuple
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from ..errors import ProviderError, ProviderUnavailable
from ..money import new_idempotency_receipt
from .base import (
    ConnectorBase,
    CreateOrderRequest,
    OrderResponse,
    PaymentDetails,
    RefundResponse,
)

logger = logging.getLogger(__name__)


class SimulatorOperation(str, Enum):
    """Provider operations whose failure can be injected."""
    CREATE_ORDER = "create_order"
    FETCH_PAYMENT = "fetch_payment"
    CREATE_REFUND = "create_refund"


@dataclass
class SimulatedOrder:
    """In-memory representation of a provider order."""
    id: str
    amount: int
    currency: str
    receipt: str
    status: str = "created"
    notes: Dict[str, str] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class SimulatedPayment:
    """In-memory representation of a payment made against an order."""
    id: str
    order_id: str
    amount: int
    currency: str
    status: str
    refunded_amount: int = 0


@dataclass
class SimulatorConfig:
    """Configuration for simulator behavior."""
    delay_ms: int = 0  # Simulated response delay in ms
    public_key: str = "sim_key_public"


class SimulatorConnector(ConnectorBase):
    """
    Simulator connector for development and tests.

    Features:
    - In-memory orders, payments and refunds
    - Customer payments driven explicitly with ``simulate_payment``
    - Outage injection per operation (raises ``ProviderUnavailable``)
    - Rejection injection per operation (raises ``ProviderError``)
    - Lost-response injection: the call takes effect, then times out
    - Orders deduplicated by receipt, refunds by idempotency key
    """

    name = "simulator"

    def __init__(self, config: Optional[SimulatorConfig] = None):
        """Initialize the simulator with optional configuration."""
        self.config = config or SimulatorConfig()
        self._orders: Dict[str, SimulatedOrder] = {}
        self._payments: Dict[str, SimulatedPayment] = {}
        self._refunds: Dict[str, RefundResponse] = {}
        self._orders_by_receipt: Dict[str, str] = {}
        self._refund_keys: Dict[str, Tuple[str, str, Optional[int]]] = {}
        self.unavailable: Set[SimulatorOperation] = set()
        self.rejected: Set[SimulatorOperation] = set()
        self.lost_responses: Set[SimulatorOperation] = set()
        self.calls: Dict[str, int] = {op.value: 0 for op in SimulatorOperation}
        self._lock = threading.Lock()
        logger.info("SimulatorConnector initialized")

    def _generate_id(self, prefix: str) -> str:
        return new_idempotency_receipt(f"{prefix}_sim")

    def _enter(self, operation: SimulatorOperation) -> None:
        """Count the call, apply delay and raise any injected failure."""
        self.calls[operation.value] += 1
        if self.config.delay_ms > 0:
            time.sleep(self.config.delay_ms / 1000.0)
        if operation in self.unavailable:
            raise ProviderUnavailable(f"Simulated outage during {operation.value}")
        if operation in self.rejected:
            raise ProviderError(f"Simulated rejection of {operation.value}")

    def _respond(self, operation: SimulatorOperation, response):
        """Return ``response`` unless its delivery is set to be lost."""
        if operation in self.lost_responses:
            raise ProviderUnavailable(f"Simulated timeout after {operation.value}")
        return response

    def create_order(self, request: CreateOrderRequest) -> OrderResponse:
        self._enter(SimulatorOperation.CREATE_ORDER)
        with self._lock:
            order_id = self._orders_by_receipt.get(request.receipt)
            if order_id is None:
                order = SimulatedOrder(
                    id=self._generate_id("order"),
                    amount=request.amount,
                    currency=request.currency.upper(),
                    receipt=request.receipt,
                    notes=dict(request.metadata),
                )
                self._orders[order.id] = order
                self._orders_by_receipt[order.receipt] = order.id
            else:
                order = self._orders[order_id]
                if order.amount != request.amount:
                    raise ProviderError(f"Receipt {request.receipt} reused with a different amount")
        return self._respond(SimulatorOperation.CREATE_ORDER, OrderResponse(
            id=order.id, amount=order.amount, currency=order.currency,
            receipt=order.receipt, status=order.status,
            raw_provider_response={"simulator": True},
        ))

    def fetch_payment(self, remote_payment_id: str) -> PaymentDetails:
        self._enter(SimulatorOperation.FETCH_PAYMENT)
        payment = self._payments.get(remote_payment_id)
        if payment is None:
            raise ProviderError(f"Payment {remote_payment_id} not found")
        return PaymentDetails(
            id=payment.id, order_id=payment.order_id, status=payment.status,
            amount=payment.amount, currency=payment.currency,
            raw_provider_response={"simulator": True},
        )

    def create_refund(
        self,
        remote_payment_id: str,
        amount: Optional[int] = None,
        metadata: Optional[Dict[str, str]] = None,
        idempotency_key: Optional[str] = None,
    ) -> RefundResponse:
        self._enter(SimulatorOperation.CREATE_REFUND)
        with self._lock:
            if idempotency_key and idempotency_key in self._refund_keys:
                refund_id, keyed_payment_id, keyed_amount = self._refund_keys[idempotency_key]
                if (keyed_payment_id, keyed_amount) != (remote_payment_id, amount):
                    raise ProviderError(
                        f"Idempotency key {idempotency_key} reused with different parameters"
                    )
                return self._respond(SimulatorOperation.CREATE_REFUND, self._refunds[refund_id])

            payment = self._payments.get(remote_payment_id)
            if payment is None:
                raise ProviderError(f"Payment {remote_payment_id} not found")
            if payment.status not in ("captured", "refunded"):
                raise ProviderError(f"Cannot refund payment in status {payment.status}")
            refund_amount = payment.amount - payment.refunded_amount if amount is None else amount
            if refund_amount <= 0 or payment.refunded_amount + refund_amount > payment.amount:
                raise ProviderError("Refund amount exceeds captured amount")
            payment.refunded_amount += refund_amount
            if payment.refunded_amount == payment.amount:
                payment.status = "refunded"
            refund = RefundResponse(
                id=self._generate_id("rfnd"), payment_id=payment.id,
                amount=refund_amount, status="processed",
                raw_provider_response={"simulator": True, "notes": metadata or {}},
            )
            self._refunds[refund.id] = refund
            if idempotency_key:
                self._refund_keys[idempotency_key] = (refund.id, remote_payment_id, amount)
        return self._respond(SimulatorOperation.CREATE_REFUND, refund)

    def simulate_payment(
        self,
        order_id: str,
        status: str = "captured",
        payment_id: Optional[str] = None,
    ) -> str:
        """Record a customer payment against an order (simulator-specific method)."""
        order = self._orders.get(order_id)
        if order is None:
            raise KeyError(f"Unknown simulated order {order_id}")
        payment = SimulatedPayment(
            id=payment_id or self._generate_id("pay"),
            order_id=order.id,
            amount=order.amount,
            currency=order.currency,
            status=status,
        )
        self._payments[payment.id] = payment
        if status == "captured":
            order.status = "paid"
        return payment.id

    def get_order(self, order_id: str) -> Optional[SimulatedOrder]:
        """Get an order from in-memory storage (for testing)."""
        return self._orders.get(order_id)

    def get_payment(self, payment_id: str) -> Optional[SimulatedPayment]:
        """Get a payment from in-memory storage (for testing)."""
        return self._payments.get(payment_id)

    def public_key(self) -> Optional[str]:
        return self.config.public_key

    def health_check(self) -> Dict[str, Any]:
        """Return health status of the simulator."""
        return {
            "ok": not self.unavailable,
            "provider": "simulator",
            "unavailable": sorted(op.value for op in self.unavailable),
            "order_count": len(self._orders),
            "payment_count": len(self._payments),
            "refund_count": len(self._refunds),
        }
