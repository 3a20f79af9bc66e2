# booking_payments package
__version__ = "0.1.0"

from .errors import PaymentError
from .database import (
    Booking,
    Payment,
    PaymentEvent,
    BookingStatus,
    PaymentStatus,
    init_db,
    close_db,
)
from .signatures import SignatureVerifier
from .services import ReconciliationService
from .schemas import (
    OrderDetails,
    ConfirmationResult,
    RefundResult,
    PaymentView,
    WebhookOutcome,
)
