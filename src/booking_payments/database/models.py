"""SQLAlchemy models for booking and payment persistence."""

import uuid
import json
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Dict, Any

from sqlalchemy import (
    Boolean,
    String,
    Numeric,
    DateTime,
    ForeignKey,
    Text,
    Index,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
import enum


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class BookingStatus(str, enum.Enum):
    """Booking lifecycle statuses."""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


class PaymentStatus(str, enum.Enum):
    """Payment statuses. Only ever move forward, never back to PENDING."""
    PENDING = "PENDING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class PaymentEventSource(str, enum.Enum):
    """Origin of a recorded payment event."""
    ORDER_CREATED = "order_created"
    CLIENT_CONFIRMATION = "client_confirmation"
    WEBHOOK = "webhook"
    REFUND = "refund"


class Booking(Base):
    """A reserved court slot. Created PENDING by the booking flow."""
    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    court_id: Mapped[str] = mapped_column(String(36), nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=BookingStatus.PENDING.value)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_bookings_user_id", "user_id"),
        Index("ix_bookings_status", "status"),
    )


class Payment(Base):
    """Payment for a booking, tied to exactly one remote provider order."""
    __tablename__ = "payments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    # One payment per booking; a failed payment cancels the booking
    booking_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("bookings.id"), nullable=False, unique=True
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    # Remote order id, written once at creation
    provider_reference: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    # Remote payment id, known once the payment succeeds
    provider_payment_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    receipt: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    refund_reference: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    refunded_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)

    # Metadata stored as JSON
    metadata_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_payments_status", "status"),
        Index("ix_payments_created_at", "created_at"),
    )

    @property
    def metadata_dict(self) -> Optional[Dict[str, Any]]:
        """Get metadata as dictionary."""
        if self.metadata_json:
            return json.loads(self.metadata_json)
        return None

    @metadata_dict.setter
    def metadata_dict(self, value: Optional[Dict[str, Any]]) -> None:
        """Set metadata from dictionary."""
        if value is not None:
            self.metadata_json = json.dumps(value)
        else:
            self.metadata_json = None


class PaymentEvent(Base):
    """Audit trail of order creation and every transition attempt."""
    __tablename__ = "payment_events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    payment_id: Mapped[str] = mapped_column(String(36), ForeignKey("payments.id"), nullable=False, index=True)

    source: Mapped[str] = mapped_column(String(50), nullable=False)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)

    # Status before and after; equal when the event was a duplicate
    previous_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    new_status: Mapped[str] = mapped_column(String(20), nullable=False)
    applied: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Remote id carried by the signal (payment id, refund id)
    remote_reference: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    detail_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_payment_events_created_at", "created_at"),
    )

    @property
    def detail(self) -> Optional[Dict[str, Any]]:
        if self.detail_json:
            return json.loads(self.detail_json)
        return None

    @detail.setter
    def detail(self, value: Optional[Dict[str, Any]]) -> None:
        if value is not None:
            self.detail_json = json.dumps(value, default=str)
        else:
            self.detail_json = None
