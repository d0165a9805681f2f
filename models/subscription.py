"""
Subscription request models
"""
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class FreePlanRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: Optional[str] = None
    plan_id: Optional[str] = Field(default=None, alias="planId")
    period: Optional[str] = None
    email: Optional[str] = None
    buying_date: Optional[str] = Field(default=None, alias="buyingDate")
    expire_date: Optional[str] = Field(default=None, alias="expireDate")

    def missing_required(self) -> bool:
        return not all([
            self.title,
            self.plan_id,
            self.period,
            self.email,
            self.buying_date,
            self.expire_date,
        ])


class PaymentIntentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    plan_id: Optional[str] = Field(default=None, alias="planId")


class PaymentIntentResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    client_secret: str = Field(alias="clientSecret")
