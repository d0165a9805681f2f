from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from database_models import Plan


class PlanRepository:
    """Read access to plan reference data, plus the upsert used by seeding."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_plan(self, plan_id: str) -> Optional[Plan]:
        result = await self.db.execute(
            select(Plan).where(Plan.plan_id == plan_id)
        )
        return result.scalar_one_or_none()

    async def upsert_plan(self, plan_data: dict) -> Plan:
        plan = await self.get_plan(plan_data["plan_id"])
        if plan is None:
            plan = Plan(plan_id=plan_data["plan_id"])
            self.db.add(plan)
        plan.title = plan_data["title"]
        plan.period = plan_data["period"]
        plan.price = float(plan_data["price"])
        await self.db.flush()
        return plan
