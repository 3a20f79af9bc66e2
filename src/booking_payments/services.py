"""Reconciliation engine keeping bookings and payments consistent.

Two signals can report the outcome of a payment: the client's confirmation
after checkout and the provider's webhook. They race, repeat and sometimes
never arrive. Every state change therefore goes through the store's
conditional transition, so whichever signal lands first wins and the rest are
recorded as duplicates.
"""

import asyncio
import logging
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .connectors.base import ConnectorBase, CreateOrderRequest
from .database import (
    BookingStatus,
    PaymentEventSource,
    PaymentStatus,
    PaymentStore,
    utcnow,
)
from .errors import (
    BookingNotEligible,
    InvalidAmount,
    InvalidSignature,
    MissingProviderReference,
    NotFound,
    OrderMismatch,
    PaymentAlreadyExists,
    ProviderError,
    RefundConflict,
    RefundProviderError,
    TooLateToRefund,
)
from .money import idempotency_receipt, to_major_units, to_minor_units
from .schemas import (
    ConfirmationResult,
    OrderDetails,
    PaymentView,
    RefundResult,
    WebhookOutcome,
)
from .signatures import SignatureVerifier
from .webhooks import (
    OrderPaidEvent,
    PaymentCapturedEvent,
    PaymentFailedEvent,
    RefundProcessedEvent,
    UnknownEvent,
    parse_webhook_event,
)

logger = logging.getLogger(__name__)

RECEIPT_PREFIX = "booking"
REFUND_RECEIPT_PREFIX = "refund"


class ReconciliationService:
    """Creates orders, applies payment signals and initiates refunds."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        connector: ConnectorBase,
        verifier: SignatureVerifier,
        currency: str = "INR",
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize the service.

        Args:
            session_factory: Factory for the short per-call transactions.
            connector: Provider gateway for orders, payments and refunds.
            verifier: Checks client confirmation and webhook signatures.
            currency: Currency every order is created in.
            clock: Returns the current naive UTC time.
        """
        self.store = PaymentStore(session_factory)
        self.connector = connector
        self.verifier = verifier
        self.currency = currency.upper()
        self.clock = clock

    async def create_order(self, booking_id: str, requester_user_id: str) -> OrderDetails:
        """Create a remote order for a PENDING booking and record its payment.

        The provider call happens before any local write, so a failed call
        leaves nothing behind and the client may simply retry. The receipt is
        derived from the booking id, so a retry after a timeout reaches the
        provider with the same receipt and is deduplicated there.

        Raises:
            BookingNotEligible: Missing, not owned by the caller, or not PENDING.
            PaymentAlreadyExists: The booking already has a payment.
            ProviderError: The provider refused or could not be reached.
        """
        booking, payment = await self.store.get_booking_with_payment(booking_id)
        if (
            booking is None
            or booking.user_id != requester_user_id
            or booking.status != BookingStatus.PENDING.value
        ):
            raise BookingNotEligible()
        if payment is not None:
            raise PaymentAlreadyExists()

        amount_minor = to_minor_units(booking.price)
        if amount_minor <= 0:
            raise InvalidAmount("Booking price must be positive")

        request = CreateOrderRequest(
            amount=amount_minor,
            currency=self.currency,
            receipt=idempotency_receipt(RECEIPT_PREFIX, booking.id),
            metadata={
                "bookingId": booking.id,
                "userId": booking.user_id,
                "courtId": booking.court_id,
                "startTime": booking.start_time.isoformat(),
                "endTime": booking.end_time.isoformat(),
            },
        )
        try:
            order = await asyncio.to_thread(self.connector.create_order, request)
        except ProviderError as e:
            logger.error(f"Order creation failed for booking {booking_id}: {e.message}")
            raise

        await self.store.create_payment(
            booking_id=booking.id,
            amount=booking.price,
            currency=self.currency,
            provider=self.connector.name,
            provider_reference=order.id,
            receipt=request.receipt,
            metadata={"receipt": request.receipt, "amount_minor": amount_minor},
        )
        logger.info(f"Created order {order.id} for booking {booking_id}")
        return OrderDetails(
            remote_order_id=order.id,
            amount_minor=amount_minor,
            currency=self.currency,
            receipt=request.receipt,
        )

    async def confirm_payment(
        self,
        remote_order_id: str,
        remote_payment_id: str,
        signature: str,
        booking_id: str,
        requester_user_id: str,
    ) -> ConfirmationResult:
        """Apply the client's confirmation that checkout completed.

        The signature only proves the ids came from checkout; whether money
        was actually captured is asked of the provider.

        Raises:
            InvalidSignature: The signature does not match the id pair.
            NotFound: The caller's booking or its payment does not exist.
            OrderMismatch: The order does not belong to this booking.
        """
        if not self.verifier.verify_confirmation(remote_order_id, remote_payment_id, signature):
            logger.warning(f"Rejected confirmation for booking {booking_id}: invalid signature")
            raise InvalidSignature()

        booking, payment = await self.store.get_booking_with_payment(booking_id)
        if booking is None or booking.user_id != requester_user_id:
            raise NotFound("Booking not found")
        if payment is None:
            raise NotFound("Payment not found")
        if payment.provider_reference != remote_order_id:
            logger.warning(
                f"Confirmation for booking {booking_id} names order {remote_order_id}, "
                f"expected {payment.provider_reference}"
            )
            raise OrderMismatch()

        if payment.status != PaymentStatus.PENDING.value:
            logger.info(f"Payment {payment.id} already {payment.status}; confirmation is a no-op")
            return ConfirmationResult(
                booking_status=booking.status,
                payment_status=payment.status,
                applied=False,
            )

        details = await asyncio.to_thread(self.connector.fetch_payment, remote_payment_id)
        if details.order_id != remote_order_id:
            logger.warning(
                f"Provider payment {remote_payment_id} belongs to order {details.order_id}, "
                f"not {remote_order_id}"
            )
            raise OrderMismatch()

        if not details.is_captured:
            logger.info(
                f"Payment {remote_payment_id} for booking {booking_id} is {details.status}; "
                f"leaving payment PENDING"
            )
            return ConfirmationResult(
                booking_status=booking.status,
                payment_status=payment.status,
                applied=False,
            )

        result = await self.store.transition_payment(
            payment_id=payment.id,
            expected_status=PaymentStatus.PENDING,
            new_status=PaymentStatus.SUCCEEDED,
            booking_new_status=BookingStatus.CONFIRMED,
            source=PaymentEventSource.CLIENT_CONFIRMATION,
            event_type="payment.verified",
            remote_reference=remote_payment_id,
            provider_payment_id=remote_payment_id,
        )
        return ConfirmationResult(
            booking_status=result.booking.status if result.booking else booking.status,
            payment_status=result.payment.status,
            applied=result.applied,
        )

    async def handle_webhook(self, raw_body: bytes, signature: str) -> WebhookOutcome:
        """Verify and apply a provider webhook.

        Anything that cannot be matched to a payment is acknowledged and
        ignored, since the provider would otherwise keep redelivering it.

        Raises:
            InvalidSignature: The body was not signed with the webhook secret.
        """
        if not self.verifier.verify_webhook(raw_body, signature):
            logger.warning("Rejected webhook: invalid signature")
            raise InvalidSignature()

        try:
            event = parse_webhook_event(raw_body)
        except ValueError as e:
            logger.warning(f"Ignoring malformed webhook: {e}")
            return WebhookOutcome.IGNORED

        if isinstance(event, UnknownEvent):
            logger.info(f"Ignoring webhook event {event.event_type}")
            return WebhookOutcome.IGNORED

        order_id = event.order_id
        if not order_id:
            logger.warning(f"Ignoring {event.event_type} webhook without an order id")
            return WebhookOutcome.IGNORED

        payment = await self.store.get_payment_by_provider_reference(order_id)
        if payment is None:
            logger.warning(f"Ignoring {event.event_type} webhook for unknown order {order_id}")
            return WebhookOutcome.IGNORED

        if isinstance(event, (PaymentCapturedEvent, OrderPaidEvent)):
            remote_payment_id = event.payment.id if event.payment else None
            result = await self.store.transition_payment(
                payment_id=payment.id,
                expected_status=PaymentStatus.PENDING,
                new_status=PaymentStatus.SUCCEEDED,
                booking_new_status=BookingStatus.CONFIRMED,
                source=PaymentEventSource.WEBHOOK,
                event_type=event.event_type,
                remote_reference=remote_payment_id,
                provider_payment_id=remote_payment_id,
            )
        elif isinstance(event, PaymentFailedEvent):
            result = await self.store.transition_payment(
                payment_id=payment.id,
                expected_status=PaymentStatus.PENDING,
                new_status=PaymentStatus.FAILED,
                booking_new_status=BookingStatus.CANCELLED,
                source=PaymentEventSource.WEBHOOK,
                event_type=event.event_type,
                remote_reference=event.payment.id,
                detail={"error": event.payment.error_description},
            )
        elif isinstance(event, RefundProcessedEvent):
            refunded = (
                to_major_units(event.refund.amount)
                if event.refund.amount is not None
                else payment.amount
            )
            result = await self.store.transition_payment(
                payment_id=payment.id,
                expected_status=PaymentStatus.SUCCEEDED,
                new_status=PaymentStatus.REFUNDED,
                booking_new_status=BookingStatus.CANCELLED,
                source=PaymentEventSource.WEBHOOK,
                event_type=event.event_type,
                remote_reference=event.refund.id,
                refund_reference=event.refund.id,
                refunded_amount=refunded,
            )
        else:
            return WebhookOutcome.IGNORED

        return WebhookOutcome.APPLIED if result.applied else WebhookOutcome.DUPLICATE

    async def initiate_refund(
        self,
        payment_id: str,
        requester_user_id: str,
        reason: Optional[str] = None,
        partial_amount: Optional[Union[Decimal, int, str]] = None,
    ) -> RefundResult:
        """Refund a successful payment before its slot starts.

        The provider call carries an idempotency key derived from the payment
        id, so concurrent or retried requests refund at most once remotely. A
        request that loses the local race returns the refund already recorded.

        Args:
            payment_id: Local payment id.
            requester_user_id: Caller; must own the booking.
            reason: Free-text reason forwarded to the provider.
            partial_amount: Amount in major units; the full amount when None.

        Returns:
            RefundResult with the refunded amount in major units.

        Raises:
            NotFound: The payment is not SUCCEEDED or not the caller's.
            TooLateToRefund: The booked slot has already started.
            MissingProviderReference: No remote payment id was recorded.
            InvalidAmount: The partial amount is not within the paid amount.
            RefundProviderError: The provider did not accept the refund.
            RefundConflict: The payment was refunded under a different refund id.
        """
        payment, booking = await self.store.get_payment_with_booking(payment_id)
        if (
            payment is None
            or booking is None
            or booking.user_id != requester_user_id
            or payment.status != PaymentStatus.SUCCEEDED.value
        ):
            raise NotFound("Payment not found or not eligible for refund")
        if booking.start_time <= self.clock():
            raise TooLateToRefund()
        if not payment.provider_payment_id:
            raise MissingProviderReference()

        if partial_amount is None:
            amount_minor = to_minor_units(payment.amount)
        else:
            amount_minor = to_minor_units(partial_amount)
            if amount_minor <= 0 or amount_minor > to_minor_units(payment.amount):
                raise InvalidAmount("Refund amount must be positive and at most the paid amount")

        metadata = {"bookingId": booking.id, "paymentId": payment.id}
        if reason:
            metadata["reason"] = reason
        try:
            refund = await asyncio.to_thread(
                self.connector.create_refund,
                payment.provider_payment_id,
                amount_minor,
                metadata,
                idempotency_receipt(REFUND_RECEIPT_PREFIX, payment.id),
            )
        except ProviderError as e:
            logger.error(f"Refund failed for payment {payment_id}: {e.message}")
            raise RefundProviderError() from e

        refunded_amount = to_major_units(refund.amount)
        result = await self.store.transition_payment(
            payment_id=payment.id,
            expected_status=PaymentStatus.SUCCEEDED,
            new_status=PaymentStatus.REFUNDED,
            booking_new_status=BookingStatus.CANCELLED,
            source=PaymentEventSource.REFUND,
            event_type="refund.initiated",
            remote_reference=refund.id,
            detail={"reason": reason, "provider_status": refund.status},
            refund_reference=refund.id,
            refunded_amount=refunded_amount,
        )
        if not result.applied:
            recorded = result.payment
            if recorded.refund_reference == refund.id:
                logger.info(f"Refund {refund.id} for payment {payment_id} was already recorded")
                return RefundResult(
                    refund_id=refund.id,
                    amount=recorded.refunded_amount,
                    status=refund.status,
                )
            logger.error(
                f"Refund {refund.id} accepted by provider but payment {payment_id} is "
                f"{recorded.status} with refund {recorded.refund_reference}"
            )
            raise RefundConflict()
        logger.info(f"Refund {refund.id} initiated for payment {payment_id}")
        return RefundResult(refund_id=refund.id, amount=refunded_amount, status=refund.status)

    async def get_payment_status(self, booking_id: str, requester_user_id: str) -> PaymentView:
        """Return the payment state of one of the caller's bookings."""
        booking, payment = await self.store.get_booking_with_payment(booking_id)
        if booking is None or booking.user_id != requester_user_id or payment is None:
            raise NotFound("Payment not found")
        return PaymentView(
            payment_id=payment.id,
            booking_id=booking.id,
            booking_status=booking.status,
            payment_status=payment.status,
            amount=payment.amount,
            currency=payment.currency,
            provider=payment.provider,
            remote_order_id=payment.provider_reference,
            refund_reference=payment.refund_reference,
            refunded_amount=payment.refunded_amount,
        )
