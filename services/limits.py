"""
Plan Policy
-----------
Maps a subscription tier to numeric limits. Unknown or missing tiers get the
most restrictive (free) limits.
"""

from typing import Dict, Optional

from models.errors import LimitExceeded
from models.schemas import PlanLimits

FREE_PLAN = "free"
PRO_PLAN = "pro"

SUBSCRIPTION_LIMITS: Dict[str, PlanLimits] = {
    FREE_PLAN: PlanLimits(
        max_businesses=1,
        max_monthly_reports=2,
        max_radius=5000,
        max_competitors=10,
    ),
    PRO_PLAN: PlanLimits(
        max_businesses=3,
        max_monthly_reports=10,
        max_radius=20000,
        max_competitors=100,
    ),
}


def normalize_plan(plan: Optional[str]) -> str:
    key = (plan or "").strip().lower()
    return key if key in SUBSCRIPTION_LIMITS else FREE_PLAN


def limits_for(plan: Optional[str]) -> PlanLimits:
    return SUBSCRIPTION_LIMITS[normalize_plan(plan)]


# ─── Guards used by the entry points ─────────────────────────────────────────


def check_report_quota(limits: PlanLimits, used_this_month: int) -> None:
    if used_this_month >= limits.max_monthly_reports:
        raise LimitExceeded(
            f"Your current plan allows for {limits.max_monthly_reports} reports per month. "
            "Please upgrade to create more reports."
        )


def check_radius(limits: PlanLimits, radius: int) -> None:
    if radius > limits.max_radius:
        raise LimitExceeded(
            f"Your current plan allows for a maximum radius of {limits.max_radius / 1000:g}km. "
            "Please upgrade to analyze larger areas."
        )


def check_business_quota(limits: PlanLimits, owned: int) -> None:
    if owned >= limits.max_businesses:
        raise LimitExceeded(
            f"Your current plan allows for {limits.max_businesses} business(es). "
            "Please upgrade to add more."
        )
