"""
Billing period arithmetic.

Periods are human-readable strings such as "1 month" or "7 days". Month and
year steps are calendar-aware and clamp to the end of the target month, so
Jan 31 + 1 month is Feb 29 in a leap year and Feb 28 otherwise.
"""
import re
from datetime import datetime, timezone
from typing import Optional

from dateutil.relativedelta import relativedelta

_PERIOD_PATTERN = re.compile(r"^\s*(\d+)\s+([a-z]+)\s*$", re.IGNORECASE)

_UNITS = {
    "day": "days",
    "days": "days",
    "week": "weeks",
    "weeks": "weeks",
    "month": "months",
    "months": "months",
    "year": "years",
    "years": "years",
}


class InvalidPeriodError(ValueError):
    """Raised when a period string cannot be parsed."""


def parse_period(period: str) -> relativedelta:
    """
    Parse "<integer> <unit>" into a relativedelta.

    Raises:
        InvalidPeriodError: for an unknown unit, a non-positive or unparseable
            amount, or any extra tokens
    """
    if not isinstance(period, str):
        raise InvalidPeriodError(f"Invalid period format: {period!r}")

    match = _PERIOD_PATTERN.match(period)
    if not match:
        raise InvalidPeriodError(f"Invalid period format: {period!r}")

    amount = int(match.group(1))
    unit = _UNITS.get(match.group(2).lower())
    if unit is None:
        raise InvalidPeriodError(f"Invalid period unit: {match.group(2)!r}")
    if amount <= 0:
        raise InvalidPeriodError(f"Period amount must be positive: {period!r}")

    return relativedelta(**{unit: amount})


def calculate_expiration(period: str, now: Optional[datetime] = None) -> datetime:
    """Return `now` (default: current UTC time) advanced by `period`."""
    if now is None:
        now = datetime.now(timezone.utc)
    return now + parse_period(period)
