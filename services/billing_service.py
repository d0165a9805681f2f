"""
Billing Service - Stripe payment intents and webhook handling
"""

import json
import logging
from decimal import Decimal, ROUND_HALF_UP
from functools import partial
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
import anyio.to_thread
import stripe

from config.settings import settings
from crud.plan import PlanRepository
from services.errors import (
    BillingNotConfiguredError,
    NotFoundError,
    PaymentProviderError,
    SignatureVerificationError,
    ValidationError,
)
from services.sheet_logger import SheetLogger
from services.subscription_service import FulfillmentResult, SubscriptionService

logger = logging.getLogger(__name__)

PAYMENT_SUCCEEDED = "payment_intent.succeeded"

# Initialize Stripe client
if settings.stripe_secret_key:
    stripe.api_key = settings.stripe_secret_key
else:
    logger.warning("STRIPE_SECRET_KEY is not set. Stripe functionality will be unavailable.")


def billing_enabled() -> bool:
    return bool(settings.stripe_secret_key)


def to_minor_units(price) -> int:
    """Convert a major-unit price to integer minor units, rounding half away from zero."""
    return int((Decimal(str(price)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class BillingService:
    """
    Service class for handling billing-related business logic.
    """

    def __init__(self, db: AsyncSession, sheet_logger: SheetLogger):
        """
        Initialize the billing service.

        Args:
            db: AsyncSession instance for database operations
            sheet_logger: sink for fulfilled subscriptions
        """
        self.db = db
        self.plans = PlanRepository(db)
        self.subscriptions = SubscriptionService(db, sheet_logger)

    async def create_payment_intent(self, email: str, plan_id: Optional[str]) -> str:
        """
        Create a Stripe PaymentIntent for a plan.

        Args:
            email: authenticated caller's email
            plan_id: plan being purchased

        Returns:
            The intent's client secret for client-side confirmation
        """
        if not billing_enabled():
            logger.error("STRIPE_SECRET_KEY is not set. Cannot create payment intent.")
            raise BillingNotConfiguredError("Billing is not configured")

        if not plan_id:
            raise ValidationError("Missing required field: planId")

        plan = await self.plans.get_plan(plan_id)
        if plan is None:
            raise NotFoundError("Invalid plan")

        amount = to_minor_units(plan.price)
        try:
            # The Stripe SDK is synchronous; keep the round-trip off the event loop
            intent = await anyio.to_thread.run_sync(partial(
                stripe.PaymentIntent.create,
                api_key=settings.stripe_secret_key,
                amount=amount,
                currency=settings.stripe_currency,
                metadata={"userEmail": email, "planId": plan.plan_id},
                automatic_payment_methods={"enabled": True},
            ))
        except stripe.StripeError as e:
            logger.error(f"Failed to create payment intent for {email}/{plan_id}: {e}", exc_info=True)
            raise PaymentProviderError("Payment provider error")

        logger.info(f"Created payment intent {intent.id} for {email} (plan {plan_id}, amount {amount})")
        return intent.client_secret

    def construct_event(self, payload: bytes, signature: Optional[str]) -> dict:
        """
        Authenticate and parse a webhook body.

        With STRIPE_WEBHOOK_SECRET configured the Stripe-Signature header must
        match the raw payload. Without it the body is trusted as-is.

        Raises:
            SignatureVerificationError: on a missing/invalid signature or unparseable body
        """
        webhook_secret = settings.stripe_webhook_secret
        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError:
            raise SignatureVerificationError("Invalid payload encoding")

        if webhook_secret:
            if not signature:
                logger.error("Missing Stripe-Signature header")
                raise SignatureVerificationError("Missing signature header")
            try:
                stripe.WebhookSignature.verify_header(
                    body,
                    signature,
                    webhook_secret,
                    settings.stripe_webhook_tolerance,
                )
            except stripe.SignatureVerificationError as e:
                logger.error(f"Stripe webhook signature verification failed: {e}")
                raise SignatureVerificationError("Invalid webhook signature")
        else:
            logger.warning("STRIPE_WEBHOOK_SECRET is not set. Accepting webhook without verification.")

        try:
            event = json.loads(body)
        except ValueError as e:
            logger.error(f"Invalid webhook payload: {e}")
            raise SignatureVerificationError("Invalid payload format")
        if not isinstance(event, dict):
            raise SignatureVerificationError("Invalid payload format")
        return event

    async def process_webhook(self, event: dict) -> Optional[FulfillmentResult]:
        """
        Dispatch a verified webhook event.

        Returns:
            FulfillmentResult for payment_intent.succeeded, None for ignored event types
        """
        event_type = event.get("type")
        logger.info(f"Processing Stripe webhook event: {event_type} ({event.get('id')})")

        if event_type != PAYMENT_SUCCEEDED:
            return None

        intent = (event.get("data") or {}).get("object") or {}
        return await self.subscriptions.fulfill_payment_intent(intent)
