from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from crud.plan import PlanRepository
from database import get_db
from utils.responses import error_response

plans_router = APIRouter(prefix="/plans", tags=["plans"])


@plans_router.get("/{plan_id}")
async def get_plan(plan_id: str, db: AsyncSession = Depends(get_db)):
    plan = await PlanRepository(db).get_plan(plan_id)
    if plan is None:
        return error_response("Plan not found", 404)
    return plan.to_dict()
