"""HTTP API for booking payments."""

import logging
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from .auth import get_current_user_id, limiter, verify_api_key
from .config import configure_logging, get_settings
from .connectors import get_connector
from .database import close_db, init_db
from .errors import InvalidSignature, PaymentError
from .services import ReconciliationService
from .signatures import SignatureVerifier

logger = logging.getLogger(__name__)

SIGNATURE_HEADERS = ("x-signature", "x-razorpay-signature")

VERIFY_MESSAGES = {
    "SUCCEEDED": "Payment verified successfully",
    "PENDING": "Payment not yet captured",
    "FAILED": "Payment failed",
    "REFUNDED": "Payment was refunded",
}


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateOrderBody(CamelModel):
    booking_id: str = Field(..., min_length=1)


class VerifyPaymentBody(CamelModel):
    remote_order_id: str = Field(..., min_length=1)
    remote_payment_id: str = Field(..., min_length=1)
    signature: str = Field(..., min_length=1)
    booking_id: str = Field(..., min_length=1)


class RefundBody(CamelModel):
    payment_id: str = Field(..., min_length=1)
    reason: Optional[str] = Field(default=None, max_length=255)
    amount: Optional[Decimal] = Field(default=None, gt=0)


class OrderCreatedResponse(CamelModel):
    success: bool = True
    message: str = "Order created"
    order_id: str
    amount_minor: int
    currency: str
    receipt: str


class VerifyPaymentResponse(CamelModel):
    success: bool = True
    message: str
    booking_status: str
    payment_status: str


class RefundInitiatedResponse(CamelModel):
    success: bool = True
    message: str = "Refund initiated successfully"
    refund_id: str
    amount: Decimal
    status: str


class PaymentStatusResponse(CamelModel):
    success: bool = True
    payment_id: str
    booking_id: str
    booking_status: str
    payment_status: str
    amount: Decimal
    currency: str
    provider: str
    order_id: str
    refund_id: Optional[str] = None
    refunded_amount: Optional[Decimal] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.log_level)
    session_factory = await init_db(
        settings.database_url,
        timeout=settings.database_timeout_seconds,
    )
    connector = get_connector(settings)
    verifier = SignatureVerifier(
        settings.confirmation_secret or "",
        settings.webhook_secret or "",
    )
    app.state.service = ReconciliationService(
        session_factory,
        connector,
        verifier,
        currency=settings.currency,
    )
    logger.info(f"Payments API started with provider {connector.name}")
    yield
    await close_db()


def get_reconciliation_service(request: Request) -> ReconciliationService:
    return request.app.state.service


async def payment_error_handler(request: Request, exc: PaymentError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.message},
    )


def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> Response:
    logger.warning(f"Rate limit exceeded for {request.client.host if request.client else 'unknown'}")
    return _rate_limit_exceeded_handler(request, exc)


router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/orders", response_model=OrderCreatedResponse)
@limiter.limit(get_settings().rate_limit)
async def create_order(
    request: Request,
    body: CreateOrderBody,
    api_key: str = Depends(verify_api_key),
    user_id: str = Depends(get_current_user_id),
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """Create a provider order for a PENDING booking."""
    order = await service.create_order(body.booking_id, user_id)
    return OrderCreatedResponse(
        order_id=order.remote_order_id,
        amount_minor=order.amount_minor,
        currency=order.currency,
        receipt=order.receipt,
    )


@router.post("/verify", response_model=VerifyPaymentResponse)
@limiter.limit(get_settings().rate_limit)
async def verify_payment(
    request: Request,
    body: VerifyPaymentBody,
    api_key: str = Depends(verify_api_key),
    user_id: str = Depends(get_current_user_id),
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """Apply the client's confirmation that checkout completed."""
    result = await service.confirm_payment(
        remote_order_id=body.remote_order_id,
        remote_payment_id=body.remote_payment_id,
        signature=body.signature,
        booking_id=body.booking_id,
        requester_user_id=user_id,
    )
    message = VERIFY_MESSAGES.get(result.payment_status, "Payment not yet captured")
    return VerifyPaymentResponse(
        message=message,
        booking_status=result.booking_status,
        payment_status=result.payment_status,
    )


@router.post("/webhook")
async def handle_webhook(
    request: Request,
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """
    Receive provider webhooks.

    Responses carry no body. 200 acknowledges the event (applied, duplicate or
    ignored), 400 rejects a bad signature, and 500 asks the provider to retry.
    """
    signature = next(
        (request.headers[h] for h in SIGNATURE_HEADERS if request.headers.get(h)),
        None,
    )
    if not signature:
        logger.warning("Rejected webhook: missing signature header")
        return Response(status_code=400)

    raw_body = await request.body()
    try:
        outcome = await service.handle_webhook(raw_body, signature)
    except InvalidSignature:
        return Response(status_code=400)
    except Exception:
        logger.exception("Webhook processing failed")
        return Response(status_code=500)

    logger.info(f"Webhook processed: {outcome.value}")
    return Response(status_code=200)


@router.post("/refunds", response_model=RefundInitiatedResponse)
@limiter.limit(get_settings().rate_limit)
async def initiate_refund(
    request: Request,
    body: RefundBody,
    api_key: str = Depends(verify_api_key),
    user_id: str = Depends(get_current_user_id),
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """Refund a successful payment before the booked slot starts."""
    result = await service.initiate_refund(
        payment_id=body.payment_id,
        requester_user_id=user_id,
        reason=body.reason,
        partial_amount=body.amount,
    )
    return RefundInitiatedResponse(
        refund_id=result.refund_id,
        amount=result.amount,
        status=result.status,
    )


@router.get("/booking/{booking_id}/status", response_model=PaymentStatusResponse)
@limiter.limit(get_settings().rate_limit)
async def get_payment_status(
    request: Request,
    booking_id: str,
    api_key: str = Depends(verify_api_key),
    user_id: str = Depends(get_current_user_id),
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    view = await service.get_payment_status(booking_id, user_id)
    return PaymentStatusResponse(
        payment_id=view.payment_id,
        booking_id=view.booking_id,
        booking_status=view.booking_status,
        payment_status=view.payment_status,
        amount=view.amount,
        currency=view.currency,
        provider=view.provider,
        order_id=view.remote_order_id,
        refund_id=view.refund_reference,
        refunded_amount=view.refunded_amount,
    )


@router.get("/config")
async def get_payment_config(
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """Public checkout configuration; exposes only the public key id."""
    key_id = service.connector.public_key()
    if not key_id:
        return JSONResponse(
            status_code=500,
            content={"success": False, "message": "Payment provider key not configured"},
        )
    return {
        "success": True,
        "keyId": key_id,
        "provider": service.connector.name,
        "currency": service.currency,
    }


app = FastAPI(title="Booking Payments API", lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
app.add_exception_handler(PaymentError, payment_error_handler)
app.include_router(router)


@app.get("/health")
async def health(service: ReconciliationService = Depends(get_reconciliation_service)):
    """Liveness plus the configured provider connector's own health report."""
    connector_health = service.connector.health_check()
    status = "ok" if connector_health.get("ok") else "degraded"
    return {"status": status, "connector": connector_health}
