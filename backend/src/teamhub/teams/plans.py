"""Plan terms and subscription date arithmetic."""

import calendar
from datetime import datetime, timedelta

from teamhub.logging_config import get_logger
from teamhub.teams.models import SubscriptionPlan

logger = get_logger(__name__)

PLAN_TERM_MONTHS = {
    SubscriptionPlan.MONTHLY: 1,
    SubscriptionPlan.SIX_MONTH: 6,
    SubscriptionPlan.TWELVE_MONTH: 12,
}


def add_months(start: datetime, months: int) -> datetime:
    """Add calendar months, clamping the day to the end of the target month."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def calculate_subscription_end_date(start: datetime, plan: SubscriptionPlan) -> datetime:
    return add_months(start, PLAN_TERM_MONTHS[plan])


def calculate_trial_end_date(start: datetime, trial_days: int = 7) -> datetime:
    return start + timedelta(days=trial_days)


def price_id_to_plan(price_id: str, price_plans: dict[str, str]) -> SubscriptionPlan:
    """Map a provider price id to a plan.

    Unknown price ids fall back to monthly so a paying customer still gets a team.
    """
    plan = price_plans.get(price_id)
    if plan is None:
        logger.warning("unknown_price_id", price_id=price_id, fallback=SubscriptionPlan.MONTHLY.value)
        return SubscriptionPlan.MONTHLY
    return SubscriptionPlan(plan)
