"""
seoteric/models/plan.py

Plan tiers and their static limits.

Plans are configuration, not persisted rows: the catalog is built once at
process start and handed to the resolver and entitlement service.
"""

from typing import Literal, Mapping, Optional
from pydantic import BaseModel, ConfigDict


PlanKey = Literal["starter", "pro", "agency"]
ModelTier = Literal["basic", "premium"]

# Sentinel for tiers without a cap
UNLIMITED = -1

STARTER_PLAN: PlanKey = "starter"


def is_unlimited(limit: int) -> bool:
    return limit == UNLIMITED


def limit_reached(used: int, limit: int) -> bool:
    """True when `used` has hit `limit`. Never true for an unlimited limit."""
    if is_unlimited(limit):
        return False
    return used >= limit


def remaining_for(used: int, limit: int) -> int:
    if is_unlimited(limit):
        return UNLIMITED
    return max(0, limit - used)


class PlanLimits(BaseModel):
    """
    Static limits for one tier.

    Numeric limits use UNLIMITED (-1) for "no cap".
    """
    model_config = ConfigDict(frozen=True)

    sites: int
    messages: int
    page_speed_reports: int
    active_recommendations: int
    model_tier: ModelTier


class PlanCatalog(BaseModel):
    """
    Immutable plan table plus the billing-provider product mapping.

    Examples:
    - plans["starter"].messages == 100
    - plan_for_product("prod_123") == "pro"
    """
    model_config = ConfigDict(frozen=True)

    plans: Mapping[str, PlanLimits]
    product_to_plan: Mapping[str, str]
    default_plan: PlanKey = STARTER_PLAN

    def limits_for(self, plan: str) -> PlanLimits:
        return self.plans.get(plan) or self.plans[self.default_plan]

    def plan_for_product(self, product_id: Optional[str]) -> Optional[str]:
        """Map a provider product id to a paid plan, or None if unknown."""
        if not product_id:
            return None
        plan = self.product_to_plan.get(product_id)
        if plan is None or plan == self.default_plan:
            return None
        return plan
