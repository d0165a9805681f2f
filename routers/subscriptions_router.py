"""
Subscriptions Router - free plan activation
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models.subscription import FreePlanRequest
from services.errors import ServiceError
from services.sheet_logger import SheetLogger, get_sheet_logger
from services.subscription_service import SubscriptionService
from utils.responses import message_response, service_error_response

subscriptions_router = APIRouter(tags=["subscriptions"])


@subscriptions_router.post("/free")
async def activate_free_plan(
    request: FreePlanRequest,
    db: AsyncSession = Depends(get_db),
    sheet_logger: SheetLogger = Depends(get_sheet_logger),
):
    """
    Activate the free plan. Each email can hold the free plan once (409 after that).
    The sheet forward runs in the background and never affects this response.
    """
    try:
        subscription = await SubscriptionService(db, sheet_logger).activate_free_plan(request)
    except ServiceError as e:
        return service_error_response(e)

    return message_response(
        "Free plan activated successfully",
        200,
        insertedId=subscription.id,
    )
