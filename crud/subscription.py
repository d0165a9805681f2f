"""
SubscriptionRepository - the subscription store
"""

from typing import Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from database_models import Subscription
from services.errors import DuplicateSubscriptionError


class SubscriptionRepository:
    """
    Repository class for Subscription database operations.

    Records are inserted exactly once and never updated. The unique indexes on
    Subscription are the source of truth for duplicates: `add_subscription`
    turns a constraint violation into DuplicateSubscriptionError so callers can
    treat a lost insert race like an existing record.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_transaction_id(self, transaction_id: str) -> Optional[Subscription]:
        result = await self.db.execute(
            select(Subscription).where(Subscription.transaction_id == transaction_id)
        )
        return result.scalars().first()

    async def get_by_email_and_plan(self, email: str, plan_id: str) -> Optional[Subscription]:
        result = await self.db.execute(
            select(Subscription).where(
                Subscription.email == email,
                Subscription.plan_id == plan_id,
            )
        )
        return result.scalars().first()

    async def add_subscription(self, subscription: Subscription) -> Subscription:
        """
        Insert and commit a fully built subscription in one step.

        Raises:
            DuplicateSubscriptionError: when a unique index rejects the row
        """
        self.db.add(subscription)
        try:
            await self.db.flush()
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise DuplicateSubscriptionError(str(e.orig)) from e
        return subscription
