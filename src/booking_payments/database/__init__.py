"""Database module for booking and payment persistence."""

from .models import (
    Base,
    Booking,
    Payment,
    PaymentEvent,
    BookingStatus,
    PaymentStatus,
    PaymentEventSource,
    utcnow,
)
from .session import (
    get_database_url,
    init_db,
    close_db,
    create_async_engine,
    get_async_session_factory,
)
from .repository import (
    BOOKING_TRANSITIONS,
    BookingRepository,
    PaymentRepository,
    PaymentEventRepository,
    TransitionResult,
)
from .store import PaymentStore

__all__ = [
    # Models
    "Base",
    "Booking",
    "Payment",
    "PaymentEvent",
    "BookingStatus",
    "PaymentStatus",
    "PaymentEventSource",
    "utcnow",
    # Session management
    "get_database_url",
    "init_db",
    "close_db",
    "create_async_engine",
    "get_async_session_factory",
    # Repositories
    "BOOKING_TRANSITIONS",
    "BookingRepository",
    "PaymentRepository",
    "PaymentEventRepository",
    "TransitionResult",
    "PaymentStore",
]
