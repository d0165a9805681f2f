"""
Subscription Service - free-tier activation and paid fulfillment
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import FREE_PLAN_ID, NOT_APPLICABLE
from crud.plan import PlanRepository
from crud.subscription import SubscriptionRepository
from database_models import Subscription
from models.subscription import FreePlanRequest
from services.errors import (
    ConflictError,
    DuplicateSubscriptionError,
    PermanentFulfillmentError,
    ValidationError,
)
from services.sheet_logger import SheetLogger
from utils.period import InvalidPeriodError, calculate_expiration

logger = logging.getLogger(__name__)


@dataclass
class FulfillmentResult:
    transaction_id: str
    subscription: Optional[Subscription] = None
    duplicate: bool = False


class SubscriptionService:
    """
    Service class for creating subscriptions.

    Every subscription is built completely in memory and written with a single
    insert. The store's unique indexes decide duplicates; the lookups done
    beforehand only save a write on the common path.
    """

    def __init__(self, db: AsyncSession, sheet_logger: SheetLogger):
        """
        Args:
            db: AsyncSession instance for database operations
            sheet_logger: sink that receives every created subscription
        """
        self.db = db
        self.subscriptions = SubscriptionRepository(db)
        self.plans = PlanRepository(db)
        self.sheet_logger = sheet_logger

    async def activate_free_plan(self, request: FreePlanRequest) -> Subscription:
        """
        Activate the free tier for an email.

        Raises:
            ValidationError: if any field is missing
            ConflictError: if the email already holds the free plan
        """
        if request.missing_required():
            raise ValidationError("Missing required fields")

        existing = await self.subscriptions.get_by_email_and_plan(request.email, FREE_PLAN_ID)
        if existing:
            logger.info(f"Free plan already active for {request.email}")
            raise ConflictError("You already have an active free plan.")

        subscription = Subscription(
            title=request.title,
            plan_id=request.plan_id,
            period=request.period,
            amount=None,
            email=request.email,
            buying_date=request.buying_date,
            expire_date=request.expire_date,
            created_at=datetime.now(timezone.utc).isoformat(),
            status="active",
            transaction_id=NOT_APPLICABLE,
        )

        try:
            await self.subscriptions.add_subscription(subscription)
        except DuplicateSubscriptionError:
            logger.info(f"Concurrent free plan activation for {request.email} lost the insert race")
            raise ConflictError("You already have an active free plan.")

        logger.info(f"Free plan activated for {request.email} (id={subscription.id})")
        self.sheet_logger.schedule(subscription.to_dict())
        return subscription

    async def fulfill_payment_intent(self, intent: dict, now: Optional[datetime] = None) -> FulfillmentResult:
        """
        Turn a succeeded payment intent into a subscription, at most once per intent id.

        Args:
            intent: the payment intent object carried by the webhook event
            now: purchase time (default: current UTC time)

        Returns:
            FulfillmentResult; `duplicate` is True when the intent was already fulfilled

        Raises:
            PermanentFulfillmentError: when the event can never be fulfilled
                (missing id/metadata, unknown plan, unusable plan period, or a
                store conflict not caused by this transactionID)
        """
        transaction_id = intent.get("id")
        if not transaction_id:
            raise PermanentFulfillmentError("Payment intent has no id")

        existing = await self.subscriptions.get_by_transaction_id(transaction_id)
        if existing:
            logger.info(f"Payment intent {transaction_id} already fulfilled; skipping")
            return FulfillmentResult(transaction_id=transaction_id, subscription=existing, duplicate=True)

        metadata = intent.get("metadata") or {}
        plan_id = metadata.get("planId")
        email = metadata.get("userEmail")
        if not plan_id or not email:
            raise PermanentFulfillmentError(
                f"Payment intent {transaction_id} is missing planId/userEmail metadata"
            )

        plan = await self.plans.get_plan(plan_id)
        if plan is None:
            raise PermanentFulfillmentError(f"Plan {plan_id} not found for payment intent {transaction_id}")

        if now is None:
            now = datetime.now(timezone.utc)
        try:
            expire_date = calculate_expiration(plan.period, now)
        except InvalidPeriodError as e:
            raise PermanentFulfillmentError(f"Plan {plan_id} has an unusable period: {e}")

        subscription = Subscription(
            title=plan.title,
            plan_id=plan.plan_id,
            period=plan.period,
            amount=intent.get("amount"),
            email=email,
            buying_date=now.isoformat(),
            expire_date=expire_date.isoformat(),
            created_at=now.isoformat(),
            status="active",
            transaction_id=transaction_id,
        )

        try:
            await self.subscriptions.add_subscription(subscription)
        except DuplicateSubscriptionError as e:
            # Only a row for this transactionID makes the conflict a no-op
            existing = await self.subscriptions.get_by_transaction_id(transaction_id)
            if existing is None:
                raise PermanentFulfillmentError(
                    f"Payment intent {transaction_id} conflicts with an existing subscription "
                    f"for {email} on plan {plan_id}: {e}"
                )
            logger.info(f"Payment intent {transaction_id} was fulfilled by a concurrent delivery")
            return FulfillmentResult(transaction_id=transaction_id, subscription=existing, duplicate=True)

        logger.info(f"Fulfilled payment intent {transaction_id}: plan {plan_id} for {email} until {subscription.expire_date}")
        self.sheet_logger.schedule(subscription.to_dict())
        return FulfillmentResult(transaction_id=transaction_id, subscription=subscription)
