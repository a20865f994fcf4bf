"""
seoteric/features/plans/service.py

Plan catalog.

Handles:
- Default plan limits (starter, pro, agency)
- Product id -> plan mapping from configuration
- Building the immutable catalog once per process
"""

from functools import lru_cache
from typing import Any, Dict, Optional

from seoteric.core.config import Settings, settings
from seoteric.models.plan import UNLIMITED, PlanCatalog, PlanLimits


# Default plan configurations
DEFAULT_PLANS: Dict[str, Dict[str, Any]] = {
    "starter": {
        "sites": 1,
        "messages": 100,
        "page_speed_reports": 5,
        "active_recommendations": 3,
        "model_tier": "basic",
    },
    "pro": {
        "sites": 3,
        "messages": 1000,
        "page_speed_reports": 20,
        "active_recommendations": UNLIMITED,
        "model_tier": "premium",
    },
    "agency": {
        "sites": 50,
        "messages": 5000,
        "page_speed_reports": 100,
        "active_recommendations": UNLIMITED,
        "model_tier": "premium",
    },
}


def build_plan_catalog(
    settings_obj: Optional[Settings] = None,
    *,
    plans: Optional[Dict[str, Dict[str, Any]]] = None,
    product_to_plan: Optional[Dict[str, str]] = None,
) -> PlanCatalog:
    """
    Build a plan catalog.

    Args:
        settings_obj: Settings supplying provider product ids
        plans: Override for the limit table (tests)
        product_to_plan: Override for the product mapping (tests)

    Returns:
        Frozen PlanCatalog
    """
    cfg = settings_obj or settings
    table = plans or DEFAULT_PLANS

    if product_to_plan is None:
        product_to_plan = {}
        if cfg.STRIPE_PRODUCT_PRO_MONTHLY:
            product_to_plan[cfg.STRIPE_PRODUCT_PRO_MONTHLY] = "pro"
        if cfg.STRIPE_PRODUCT_AGENCY_MONTHLY:
            product_to_plan[cfg.STRIPE_PRODUCT_AGENCY_MONTHLY] = "agency"

    unknown = [plan for plan in product_to_plan.values() if plan not in table]
    if unknown:
        raise ValueError(f"Products mapped to unknown plans: {', '.join(sorted(set(unknown)))}")

    return PlanCatalog(
        plans={key: PlanLimits(**limits) for key, limits in table.items()},
        product_to_plan=dict(product_to_plan),
    )


@lru_cache(maxsize=1)
def get_plan_catalog() -> PlanCatalog:
    """Process-wide catalog, loaded on first use."""
    return build_plan_catalog()
