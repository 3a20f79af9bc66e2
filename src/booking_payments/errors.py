"""Error taxonomy for booking payment reconciliation.

Every error carries the HTTP status code the API layer answers with, so the
routes only need a single exception handler.
"""

from typing import Optional


class PaymentError(Exception):
    """Base class for all reconciliation errors."""

    status_code: int = 400
    default_message: str = "Payment request failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidAmount(PaymentError, ValueError):
    status_code = 400
    default_message = "Invalid amount"


class BookingNotEligible(PaymentError):
    status_code = 404
    default_message = "Booking not found or already processed"


class PaymentAlreadyExists(PaymentError):
    status_code = 400
    default_message = "Payment already initiated for this booking"


class InvalidSignature(PaymentError):
    status_code = 400
    default_message = "Invalid payment signature"


class OrderMismatch(PaymentError):
    status_code = 400
    default_message = "Order ID mismatch"


class NotFound(PaymentError):
    status_code = 404
    default_message = "Not found"


class TooLateToRefund(PaymentError):
    status_code = 400
    default_message = "Cannot refund for past bookings"


class MissingProviderReference(PaymentError):
    status_code = 400
    default_message = "Payment reference not found"


class ProviderError(PaymentError):
    """The provider rejected the call."""

    status_code = 502
    default_message = "Payment provider error"
    retryable = False


class ProviderUnavailable(ProviderError):
    """Timeout, connection failure or 5xx from the provider. Safe to retry."""

    status_code = 503
    default_message = "Payment provider unavailable"
    retryable = True


class RefundProviderError(PaymentError):
    status_code = 502
    default_message = "Failed to initiate refund"


class RefundConflict(PaymentError):
    """The provider accepted a refund the local record does not match."""

    status_code = 409
    default_message = "Payment was already refunded by another request"
