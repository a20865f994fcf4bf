"""
Plan resolver.

Determines which plan and cycle window apply to a user:
1. An in-force subscription whose product maps to a paid plan is
   authoritative; its own period bounds are the cycle.
2. Otherwise the starter plan applies, cycling monthly from the stored
   billing anchor, or from account creation when no anchor exists.

Malformed provider data never fails resolution: bad dates fall back to
`now` or a derived one-month window, unknown products fall back to starter.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from seoteric.features.billing.anchors import get_billing_profile
from seoteric.features.billing.cycle import (
    cycle_window_from_anchor,
    parse_iso_instant,
    shift_anchored_month,
)
from seoteric.features.billing.provider import BillingProviderError, SubscriptionProvider
from seoteric.features.billing.stripe_provider import StripeProvider
from seoteric.core.config import settings
from seoteric.models.billing import BillingState, CycleWindow, ResolvedSubscription, from_ms
from seoteric.models.plan import STARTER_PLAN, PlanCatalog
from seoteric.models.user import User


logger = logging.getLogger(__name__)

# Subscription statuses that grant a paid plan
ACTIVE_STATUSES = frozenset({"active", "trialing"})


def billing_enabled() -> bool:
    """Check if billing is enabled (Stripe configured)."""
    return bool(settings.STRIPE_SECRET_KEY)


def get_provider() -> Optional[SubscriptionProvider]:
    """Get subscription provider if billing is enabled."""
    if not billing_enabled():
        return None
    try:
        return StripeProvider()
    except BillingProviderError:
        return None


def normalize_now(now: Optional[Any]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if getattr(now, "tzinfo", None) is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def starter_anchor(user: User, now: datetime) -> datetime:
    """Stored anchor, else account creation, else now."""
    profile = get_billing_profile(user.user_id)
    if profile is not None:
        return from_ms(profile.last_paid_anchor_ms)
    if user.created_at is not None:
        return normalize_now(user.created_at)
    return now


def paid_cycle(subscription: ResolvedSubscription, now: datetime) -> CycleWindow:
    """Cycle straight from the subscription's own period bounds."""
    start = parse_iso_instant(subscription.current_period_start) or now
    end = parse_iso_instant(subscription.current_period_end)
    if end is None:
        end = shift_anchored_month(start, 1)
    return CycleWindow(start=start, end=end)


def resolve_billing_state(
    user: User,
    now: Optional[datetime] = None,
    *,
    catalog: PlanCatalog,
    provider: Optional[SubscriptionProvider] = None,
) -> BillingState:
    """
    Resolve plan, limits and cycle window for a user.

    Args:
        user: User (id and creation timestamp are read)
        now: Reference instant (defaults to current time)
        catalog: Plan catalog
        provider: Subscription provider; None means billing is disabled

    Returns:
        BillingState; `subscription` is set whenever the provider returned one,
        even if it did not grant a paid plan

    Raises:
        BillingProviderError: If the provider lookup fails
    """
    normalized_now = normalize_now(now)
    subscription = provider.get_current_subscription(user.user_id) if provider else None

    paid_plan = None
    if subscription is not None and subscription.status in ACTIVE_STATUSES:
        paid_plan = catalog.plan_for_product(subscription.product_id)

    if paid_plan and subscription is not None:
        return BillingState(
            user=user,
            plan=paid_plan,
            limits=catalog.limits_for(paid_plan),
            cycle=paid_cycle(subscription, normalized_now),
            subscription=subscription,
        )

    if subscription is not None:
        logger.info(
            "[billing] subscription did not grant a paid plan",
            extra={"user_id": user.user_id, "status": subscription.status},
        )

    anchor = starter_anchor(user, normalized_now)
    return BillingState(
        user=user,
        plan=STARTER_PLAN,
        limits=catalog.limits_for(STARTER_PLAN),
        cycle=cycle_window_from_anchor(anchor, normalized_now),
        subscription=subscription,
    )
