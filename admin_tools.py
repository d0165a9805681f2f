#!/usr/bin/env python
"""
Admin Tools - operator commands for plan reference data
"""

import asyncio
import json
from pathlib import Path
from typing import List

import click
from sqlalchemy.ext.asyncio import AsyncSession

from crud.plan import PlanRepository
from utils.period import InvalidPeriodError, parse_period


def load_plans(path: Path) -> List[dict]:
    """
    Read and validate a JSON list of {planId, title, period, price}.

    Raises:
        click.ClickException: on malformed entries or unusable periods
    """
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except ValueError as e:
        raise click.ClickException(f"{path} is not valid JSON: {e}")
    if not isinstance(raw, list):
        raise click.ClickException(f"{path} must contain a JSON list of plans")

    plans = []
    for index, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise click.ClickException(f"Plan #{index} must be a JSON object")
        missing = [key for key in ("planId", "title", "period", "price") if entry.get(key) in (None, "")]
        if missing:
            raise click.ClickException(f"Plan #{index} is missing: {', '.join(missing)}")
        try:
            parse_period(entry["period"])
        except InvalidPeriodError as e:
            raise click.ClickException(f"Plan {entry['planId']}: {e}")
        plans.append({
            "plan_id": str(entry["planId"]),
            "title": entry["title"],
            "period": entry["period"],
            "price": float(entry["price"]),
        })
    return plans


async def seed_plans(db: AsyncSession, plans: List[dict]) -> int:
    """Insert or update every plan in one transaction. Returns the count written."""
    repo = PlanRepository(db)
    for plan in plans:
        await repo.upsert_plan(plan)
    await db.commit()
    return len(plans)


@click.group()
def cli() -> None:
    """Subscription server admin commands."""
    pass


@cli.command("seed-plans")
@click.argument("plans_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def seed_plans_command(plans_file: Path) -> None:
    """Load plans from PLANS_FILE into the database."""
    from database import AsyncSessionLocal, init_db

    plans = load_plans(plans_file)

    async def _seed() -> int:
        await init_db()
        async with AsyncSessionLocal() as session:
            return await seed_plans(session, plans)

    count = asyncio.run(_seed())
    click.echo(f"Seeded {count} plan(s) from {plans_file}")


if __name__ == "__main__":
    cli()
