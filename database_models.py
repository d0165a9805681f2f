from sqlalchemy import Column, Integer, String, Boolean, Float, Index, text
from datetime import datetime, timezone

from config.settings import FREE_PLAN_ID, NOT_APPLICABLE
from database import Base


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class User(Base):
    """
    Registered user. Created once through registration, never updated here.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False, index=True)
    role = Column(String, nullable=False, default="user")
    is_subscribed = Column(Boolean, nullable=False, default=False)
    created_at = Column(String, nullable=False, default=utc_now_iso)
    updated_at = Column(String, nullable=False, default=utc_now_iso)

    def to_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "isSubscribed": self.is_subscribed,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


class Plan(Base):
    """Billing tier reference data. Read-only to the API."""
    __tablename__ = "plans"

    plan_id = Column(String, primary_key=True)
    title = Column(String, nullable=False)
    period = Column(String, nullable=False)
    price = Column(Float, nullable=False)

    def to_dict(self) -> dict:
        return {
            "planId": self.plan_id,
            "title": self.title,
            "period": self.period,
            "price": self.price,
        }


class Subscription(Base):
    """
    A user's entitlement to a plan.

    Paid records are unique by transaction_id; free records carry the "N/A"
    sentinel there and are unique by (email, free plan id) instead. Both rules
    live in partial unique indexes so concurrent duplicate inserts fail in the
    store rather than relying on a read-then-write check.
    """
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    plan_id = Column(String, nullable=False, index=True)
    period = Column(String, nullable=False)
    # Minor currency units; NULL for free-tier records
    amount = Column(Integer, nullable=True)
    email = Column(String, nullable=False, index=True)
    buying_date = Column(String, nullable=False)
    expire_date = Column(String, nullable=False)
    created_at = Column(String, nullable=False, default=utc_now_iso)
    status = Column(String, nullable=False, default="active")
    transaction_id = Column(String, nullable=False, default=NOT_APPLICABLE)

    __table_args__ = (
        Index(
            "uq_subscriptions_transaction_id",
            "transaction_id",
            unique=True,
            sqlite_where=text(f"transaction_id != '{NOT_APPLICABLE}'"),
            postgresql_where=text(f"transaction_id != '{NOT_APPLICABLE}'"),
        ),
        Index(
            "uq_subscriptions_free_plan_email",
            "email",
            "plan_id",
            unique=True,
            sqlite_where=text(f"plan_id = '{FREE_PLAN_ID}'"),
            postgresql_where=text(f"plan_id = '{FREE_PLAN_ID}'"),
        ),
    )

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "planId": self.plan_id,
            "period": self.period,
            "amount": self.amount if self.amount is not None else NOT_APPLICABLE,
            "email": self.email,
            "buyingDate": self.buying_date,
            "expireDate": self.expire_date,
            "createdAt": self.created_at,
            "status": self.status,
            "transactionID": self.transaction_id,
        }
