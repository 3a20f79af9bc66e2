"""Repository layer for booking and payment persistence operations."""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional, Dict, Any, List, Sequence, Tuple

from sqlalchemy import select, update, and_
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    Booking,
    Payment,
    PaymentEvent,
    BookingStatus,
    PaymentStatus,
    utcnow,
)

logger = logging.getLogger(__name__)

# Booking statuses a payment-driven transition may move a booking out of
BOOKING_TRANSITIONS: Dict[BookingStatus, Tuple[BookingStatus, ...]] = {
    BookingStatus.CONFIRMED: (BookingStatus.PENDING,),
    BookingStatus.CANCELLED: (BookingStatus.PENDING, BookingStatus.CONFIRMED),
}


@dataclass
class TransitionResult:
    """Outcome of a conditional payment transition.

    ``applied`` is False when another writer had already moved the payment out
    of the expected status; ``payment`` then carries its actual current state.
    """
    applied: bool
    payment: Payment
    booking: Optional[Booking]
    booking_applied: bool = False


class BookingRepository:
    """Repository for Booking operations."""

    def __init__(self, session: AsyncSession):
        """Initialize the repository with a database session.

        Args:
            session: AsyncSession instance for database operations.
        """
        self.session = session

    async def create(
        self,
        user_id: str,
        court_id: str,
        start_time: datetime,
        end_time: datetime,
        price: Decimal,
        status: str = BookingStatus.PENDING.value,
    ) -> Booking:
        """Create a booking record. Used by the booking flow and by fixtures."""
        booking = Booking(
            user_id=user_id,
            court_id=court_id,
            start_time=start_time,
            end_time=end_time,
            price=price,
            status=status,
        )
        self.session.add(booking)
        await self.session.flush()
        logger.info(f"Created booking {booking.id} with status {status}")
        return booking

    async def get_by_id(self, booking_id: str, refresh: bool = False) -> Optional[Booking]:
        """Get a booking by its ID.

        Args:
            booking_id: Booking ID.
            refresh: Overwrite any copy already held by the session.

        Returns:
            Booking instance if found, None otherwise.
        """
        stmt = select(Booking).where(Booking.id == booking_id)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def transition(
        self,
        booking_id: str,
        allowed_from: Sequence[BookingStatus],
        new_status: BookingStatus,
    ) -> bool:
        """Move a booking to ``new_status`` only if it is in one of ``allowed_from``.

        A single conditional UPDATE; the booking-expiry flow shares this so
        neither writer clobbers the other's decision.

        Returns:
            True if the row was updated.
        """
        result = await self.session.execute(
            update(Booking)
            .where(
                and_(
                    Booking.id == booking_id,
                    Booking.status.in_([s.value for s in allowed_from]),
                )
            )
            .values(status=new_status.value, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        applied = result.rowcount == 1
        if applied:
            logger.info(f"Booking {booking_id} moved to {new_status.value}")
        return applied


class PaymentRepository:
    """Repository for Payment operations, including the conditional transition."""

    def __init__(self, session: AsyncSession):
        """Initialize the repository with a database session.

        Args:
            session: AsyncSession instance for database operations.
        """
        self.session = session

    async def create(
        self,
        booking_id: str,
        amount: Decimal,
        currency: str,
        provider: str,
        provider_reference: str,
        receipt: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Payment:
        """Create a new PENDING payment record.

        Args:
            booking_id: Booking being paid for.
            amount: Amount in major units, equal to the booking price.
            currency: Three-letter currency code.
            provider: Payment provider name.
            provider_reference: Remote order id.
            receipt: Receipt sent to the provider with the order.
            metadata: Optional metadata dictionary.

        Returns:
            Created Payment instance.

        Raises:
            sqlalchemy.exc.IntegrityError: If the booking already has a payment
                or the provider reference is already in use.
        """
        payment = Payment(
            booking_id=booking_id,
            amount=amount,
            currency=currency.upper(),
            provider=provider,
            provider_reference=provider_reference,
            receipt=receipt,
            status=PaymentStatus.PENDING.value,
        )
        if metadata:
            payment.metadata_dict = metadata

        self.session.add(payment)
        await self.session.flush()

        logger.info(f"Created payment {payment.id} for booking {booking_id}")
        return payment

    async def get_by_id(self, payment_id: str, refresh: bool = False) -> Optional[Payment]:
        """Get a payment by its ID.

        Args:
            payment_id: Payment ID.
            refresh: Overwrite any copy already held by the session.

        Returns:
            Payment instance if found, None otherwise.
        """
        stmt = select(Payment).where(Payment.id == payment_id)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_booking_id(self, booking_id: str) -> Optional[Payment]:
        """Get the payment attached to a booking, if any."""
        result = await self.session.execute(
            select(Payment).where(Payment.booking_id == booking_id)
        )
        return result.scalar_one_or_none()

    async def get_by_provider_reference(
        self,
        provider_reference: str
    ) -> Optional[Payment]:
        """Get a payment by its remote order id.

        Args:
            provider_reference: Provider's order identifier.

        Returns:
            Payment instance if found, None otherwise.
        """
        result = await self.session.execute(
            select(Payment).where(
                Payment.provider_reference == provider_reference
            )
        )
        return result.scalar_one_or_none()

    async def transition(
        self,
        payment_id: str,
        expected_status: PaymentStatus,
        new_status: PaymentStatus,
        booking_new_status: Optional[BookingStatus] = None,
        provider_payment_id: Optional[str] = None,
        refund_reference: Optional[str] = None,
        refunded_amount: Optional[Decimal] = None,
    ) -> TransitionResult:
        """Atomically move a payment from ``expected_status`` to ``new_status``.

        The payment UPDATE is guarded by ``status = expected_status``; the
        linked booking is only written when that guard matched. Must run inside
        the caller's transaction so both writes commit or roll back together.

        Args:
            payment_id: Payment to transition.
            expected_status: Status the payment must currently be in.
            new_status: Target payment status.
            booking_new_status: Status to move the linked booking to.
            provider_payment_id: Remote payment id to record, if any.
            refund_reference: Remote refund id to record, if any.
            refunded_amount: Refunded amount in major units, if any.

        Returns:
            TransitionResult with the freshly read payment and booking.
        """
        values: Dict[str, Any] = {"status": new_status.value, "updated_at": utcnow()}
        if provider_payment_id:
            values["provider_payment_id"] = provider_payment_id
        if refund_reference:
            values["refund_reference"] = refund_reference
        if refunded_amount is not None:
            values["refunded_amount"] = refunded_amount

        result = await self.session.execute(
            update(Payment)
            .where(
                and_(
                    Payment.id == payment_id,
                    Payment.status == expected_status.value,
                )
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        applied = result.rowcount == 1

        payment = await self.get_by_id(payment_id, refresh=True)
        if payment is None:
            raise LookupError(f"Payment {payment_id} does not exist")

        booking_repo = BookingRepository(self.session)
        booking_applied = False
        if applied and booking_new_status is not None:
            booking_applied = await booking_repo.transition(
                payment.booking_id,
                BOOKING_TRANSITIONS[booking_new_status],
                booking_new_status,
            )
            if not booking_applied:
                logger.warning(
                    f"Booking {payment.booking_id} was not in a state that allows "
                    f"{booking_new_status.value} after payment {payment_id} "
                    f"moved to {new_status.value}"
                )
        booking = await booking_repo.get_by_id(payment.booking_id, refresh=True)

        if applied:
            logger.info(
                f"Payment {payment_id} moved {expected_status.value} -> {new_status.value}"
            )
        else:
            logger.info(
                f"Payment {payment_id} already {payment.status}; "
                f"{expected_status.value} -> {new_status.value} not applied"
            )
        return TransitionResult(
            applied=applied,
            payment=payment,
            booking=booking,
            booking_applied=booking_applied,
        )


class PaymentEventRepository:
    """Repository for the PaymentEvent audit trail."""

    def __init__(self, session: AsyncSession):
        """Initialize the repository with a database session.

        Args:
            session: AsyncSession instance for database operations.
        """
        self.session = session

    async def create(
        self,
        payment_id: str,
        source: str,
        event_type: str,
        new_status: str,
        previous_status: Optional[str] = None,
        applied: bool = True,
        remote_reference: Optional[str] = None,
        detail: Optional[Dict[str, Any]] = None,
    ) -> PaymentEvent:
        """Record an event against a payment."""
        event = PaymentEvent(
            payment_id=payment_id,
            source=source,
            event_type=event_type,
            previous_status=previous_status,
            new_status=new_status,
            applied=applied,
            remote_reference=remote_reference,
        )
        if detail:
            event.detail = detail

        self.session.add(event)
        await self.session.flush()

        logger.debug(
            f"Recorded {source} event {event_type} for payment {payment_id}: "
            f"{previous_status} -> {new_status} (applied={applied})"
        )
        return event

    async def get_by_payment_id(
        self,
        payment_id: str,
        limit: int = 100,
    ) -> List[PaymentEvent]:
        """Get the events for a payment, oldest first.

        Args:
            payment_id: Payment ID to get events for.
            limit: Maximum number of results.

        Returns:
            List of PaymentEvent instances ordered by creation time.
        """
        result = await self.session.execute(
            select(PaymentEvent)
            .where(PaymentEvent.payment_id == payment_id)
            .order_by(PaymentEvent.created_at)
            .limit(limit)
        )
        return list(result.scalars().all())
