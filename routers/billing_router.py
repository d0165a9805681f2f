"""
Billing Router - payment intents and the Stripe webhook
"""

import logging
from typing import Optional
from fastapi import APIRouter, Request, Depends, Header
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user_email
from database import get_db
from models.subscription import PaymentIntentRequest, PaymentIntentResponse
from services.billing_service import BillingService
from services.errors import (
    NotFoundError,
    PermanentFulfillmentError,
    ServiceError,
    SignatureVerificationError,
)
from services.sheet_logger import SheetLogger, get_sheet_logger
from utils.responses import service_error_response

logger = logging.getLogger(__name__)

billing_router = APIRouter(tags=["billing"])


# WEBHOOK ENDPOINT - MUST BE DEFINED FIRST TO AVOID MIDDLEWARE CONFLICTS
@billing_router.post("/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    db: AsyncSession = Depends(get_db),
    sheet_logger: SheetLogger = Depends(get_sheet_logger),
):
    """
    Handle Stripe webhook events.

    - Unverifiable events get 400 and are discarded.
    - Event types other than payment_intent.succeeded are acknowledged and ignored.
    - Redelivered or concurrently delivered events are acknowledged without writes.
    - Permanent fulfillment failures (e.g. the plan no longer exists) are logged
      and acknowledged, since redelivery cannot fix them.
    - Any other failure returns 500 so Stripe redelivers; nothing partial is stored.
    """
    # Get raw request body (required for signature verification)
    payload = await request.body()
    billing_service = BillingService(db, sheet_logger)

    try:
        event = billing_service.construct_event(payload, stripe_signature)
    except SignatureVerificationError as e:
        return JSONResponse(
            status_code=400,
            content={"received": False, "message": e.message},
        )

    event_type = event.get("type")
    try:
        result = await billing_service.process_webhook(event)
    except PermanentFulfillmentError as e:
        logger.error(f"Permanent fulfillment failure for event {event.get('id')}: {e.message}")
        return JSONResponse(
            status_code=e.status_code,
            content={"received": True, "fulfilled": False, "event_type": event_type, "error": e.message},
        )
    except Exception as e:
        logger.error(f"Webhook error for event {event.get('id')}: {e}", exc_info=True)
        await db.rollback()
        return JSONResponse(
            status_code=500,
            content={"received": False, "message": "Webhook processing failed"},
        )

    if result is None:
        return JSONResponse(
            status_code=200,
            content={"received": True, "ignored": True, "event_type": event_type},
        )

    return JSONResponse(
        status_code=200,
        content={
            "received": True,
            "fulfilled": True,
            "duplicate": result.duplicate,
            "event_type": event_type,
            "transactionID": result.transaction_id,
        },
    )


@billing_router.post("/api/create-payment-intent", response_model=PaymentIntentResponse)
async def create_payment_intent(
    request: PaymentIntentRequest,
    email: str = Depends(get_current_user_email),
    db: AsyncSession = Depends(get_db),
    sheet_logger: SheetLogger = Depends(get_sheet_logger),
):
    """
    Create a Stripe PaymentIntent for the caller and a plan.

    Returns:
        {"clientSecret": "..."}

    Errors:
        400: Missing or unknown planId
        401: Missing/invalid identity token
        502: Stripe API error
        503: Billing disabled (STRIPE_SECRET_KEY not set)
    """
    try:
        client_secret = await BillingService(db, sheet_logger).create_payment_intent(email, request.plan_id)
    except NotFoundError as e:
        return service_error_response(e, status=400)
    except ServiceError as e:
        return service_error_response(e)

    return {"clientSecret": client_secret}
