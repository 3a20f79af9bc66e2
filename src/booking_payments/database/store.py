"""Transactional access to bookings and payments for the reconciliation engine.

Each method runs in its own short transaction so that no database
transaction is ever held open across a provider call.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..errors import BookingNotEligible, PaymentAlreadyExists
from .models import (
    Booking,
    BookingStatus,
    Payment,
    PaymentEvent,
    PaymentEventSource,
    PaymentStatus,
)
from .repository import (
    BookingRepository,
    PaymentEventRepository,
    PaymentRepository,
    TransitionResult,
)

logger = logging.getLogger(__name__)


class PaymentStore:
    """Persistence gateway exposing reads and the atomic transition primitive."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_booking_with_payment(
        self, booking_id: str
    ) -> Tuple[Optional[Booking], Optional[Payment]]:
        async with self._session_factory() as session:
            booking = await BookingRepository(session).get_by_id(booking_id)
            if booking is None:
                return None, None
            payment = await PaymentRepository(session).get_by_booking_id(booking_id)
            return booking, payment

    async def get_payment_with_booking(
        self, payment_id: str
    ) -> Tuple[Optional[Payment], Optional[Booking]]:
        async with self._session_factory() as session:
            payment = await PaymentRepository(session).get_by_id(payment_id)
            if payment is None:
                return None, None
            booking = await BookingRepository(session).get_by_id(payment.booking_id)
            return payment, booking

    async def get_payment_by_provider_reference(
        self, provider_reference: str
    ) -> Optional[Payment]:
        async with self._session_factory() as session:
            return await PaymentRepository(session).get_by_provider_reference(
                provider_reference
            )

    async def get_payment_events(self, payment_id: str) -> List[PaymentEvent]:
        async with self._session_factory() as session:
            return await PaymentEventRepository(session).get_by_payment_id(payment_id)

    async def create_payment(
        self,
        booking_id: str,
        amount: Decimal,
        currency: str,
        provider: str,
        provider_reference: str,
        receipt: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Payment:
        """Insert the PENDING payment for a booking that is still PENDING.

        Raises:
            BookingNotEligible: The booking left PENDING since it was checked.
            PaymentAlreadyExists: A concurrent request created the payment first.
        """
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    booking = await BookingRepository(session).get_by_id(booking_id)
                    if booking is None or booking.status != BookingStatus.PENDING.value:
                        raise BookingNotEligible()
                    payment = await PaymentRepository(session).create(
                        booking_id=booking_id,
                        amount=amount,
                        currency=currency,
                        provider=provider,
                        provider_reference=provider_reference,
                        receipt=receipt,
                        metadata=metadata,
                    )
                    await PaymentEventRepository(session).create(
                        payment_id=payment.id,
                        source=PaymentEventSource.ORDER_CREATED.value,
                        event_type="order.created",
                        new_status=payment.status,
                        remote_reference=provider_reference,
                    )
                return payment
        except IntegrityError as e:
            logger.warning(
                f"Payment for booking {booking_id} rejected by constraint: {e.orig}"
            )
            raise PaymentAlreadyExists() from e

    async def transition_payment(
        self,
        payment_id: str,
        expected_status: PaymentStatus,
        new_status: PaymentStatus,
        booking_new_status: Optional[BookingStatus],
        source: PaymentEventSource,
        event_type: str,
        remote_reference: Optional[str] = None,
        detail: Optional[Dict[str, Any]] = None,
        provider_payment_id: Optional[str] = None,
        refund_reference: Optional[str] = None,
        refunded_amount: Optional[Decimal] = None,
    ) -> TransitionResult:
        """Conditionally transition a payment and its booking in one transaction.

        Returns ``applied=False`` with the current rows when the payment was no
        longer in ``expected_status``; that is the duplicate-signal path, not a
        failure. The attempt is recorded in the audit trail either way.
        """
        async with self._session_factory() as session:
            async with session.begin():
                result = await PaymentRepository(session).transition(
                    payment_id=payment_id,
                    expected_status=expected_status,
                    new_status=new_status,
                    booking_new_status=booking_new_status,
                    provider_payment_id=provider_payment_id,
                    refund_reference=refund_reference,
                    refunded_amount=refunded_amount,
                )
                await PaymentEventRepository(session).create(
                    payment_id=payment_id,
                    source=source.value,
                    event_type=event_type,
                    previous_status=(
                        expected_status.value if result.applied else result.payment.status
                    ),
                    new_status=result.payment.status,
                    applied=result.applied,
                    remote_reference=remote_reference,
                    detail=detail,
                )
            return result
