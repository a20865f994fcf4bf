"""
seoteric/features/entitlements/service.py

Entitlement query + enforcement service.

Handles:
- Entitlements view (plan, limits, usage, remaining, cycle, subscription)
- Site-creation guard (query form and raising form)
- Guarded consumption of metered features (chat messages, PageSpeed reports)
- Usage summary including active recommendations

The limit check and the increment are one conditional UPDATE, so the count
compared against the limit is the count being written, even when concurrent
requests race for the same bucket.
"""

import logging
from datetime import datetime
from typing import Dict, Optional, Tuple

from seoteric.core.database import get_db_session
from seoteric.core.errors import LIMIT_EXCEEDED_CODE, LimitExceededError, ValidationError
from seoteric.features.billing.anchors import maybe_persist_paid_anchor
from seoteric.features.billing.provider import SubscriptionProvider
from seoteric.features.billing.resolver import get_provider, resolve_billing_state
from seoteric.features.plans.service import get_plan_catalog
from seoteric.features.sites.service import count_active_recommendations, count_sites
from seoteric.features.usage.service import get_cycle_usage, get_or_create_bucket, increment_bucket, read_counter
from seoteric.features.users.service import require_user
from seoteric.models.billing import BillingState, ResolvedSubscription
from seoteric.models.entitlement import (
    ConsumeResult,
    CycleInfo,
    Entitlements,
    FeatureCounts,
    LimitExceededInfo,
    SiteCreationCheck,
    SubscriptionSummary,
    UsageCurrent,
    UsageLimits,
    UsageSummary,
)
from seoteric.models.plan import PlanCatalog, limit_reached, remaining_for


logger = logging.getLogger(__name__)

FEATURE_LABELS = {
    "sites": "sites",
    "messages": "messages",
    "pageSpeedReports": "PageSpeed reports",
}

# Metered feature -> (PlanLimits field, usage bucket counter)
METERED_FEATURES: Dict[str, Tuple[str, str]] = {
    "messages": ("messages", "messages_used"),
    "pageSpeedReports": ("page_speed_reports", "page_speed_reports_used"),
}


def build_limit_message(feature: str, plan: str, limit: int) -> str:
    return f"You've reached your {limit} {FEATURE_LABELS[feature]} on the {plan} plan. Upgrade to continue."


def limit_exceeded_error(
    feature: str,
    plan: str,
    limit: int,
    used: int,
    cycle_start_ms: Optional[int] = None,
    cycle_end_ms: Optional[int] = None,
) -> LimitExceededError:
    return LimitExceededError(
        build_limit_message(feature, plan, limit),
        feature=feature,
        plan=plan,
        limit=limit,
        used=used,
        cycle_start_ms=cycle_start_ms,
        cycle_end_ms=cycle_end_ms,
    )


def _summarize(subscription: Optional[ResolvedSubscription]) -> Optional[SubscriptionSummary]:
    if subscription is None:
        return None
    return SubscriptionSummary(
        product_id=subscription.product_id,
        status=subscription.status,
        current_period_start=subscription.current_period_start,
        current_period_end=subscription.current_period_end,
        cancel_at_period_end=subscription.cancel_at_period_end,
        product_name=subscription.product_name,
    )


def resolve_state(
    user_id: str,
    *,
    now: Optional[datetime] = None,
    catalog: Optional[PlanCatalog] = None,
    provider: Optional[SubscriptionProvider] = None,
) -> BillingState:
    user = require_user(user_id)
    return resolve_billing_state(
        user,
        now,
        catalog=catalog or get_plan_catalog(),
        provider=provider or get_provider(),
    )


def get_entitlements(
    user_id: str,
    *,
    now: Optional[datetime] = None,
    catalog: Optional[PlanCatalog] = None,
    provider: Optional[SubscriptionProvider] = None,
) -> Entitlements:
    """
    Current entitlements for a user. Read-only: never creates buckets or
    writes anchors, safe to call for every dashboard render.
    """
    state = resolve_state(user_id, now=now, catalog=catalog, provider=provider)
    cycle_usage = get_cycle_usage(user_id, state.cycle.start_ms)
    sites_used = count_sites(user_id)

    limits = FeatureCounts(
        sites=state.limits.sites,
        messages=state.limits.messages,
        page_speed_reports=state.limits.page_speed_reports,
    )
    usage = FeatureCounts(
        sites=sites_used,
        messages=cycle_usage.messages_used,
        page_speed_reports=cycle_usage.page_speed_reports_used,
    )

    return Entitlements(
        plan=state.plan,
        model_tier=state.limits.model_tier,
        limits=limits,
        usage=usage,
        remaining=FeatureCounts(
            sites=remaining_for(usage.sites, limits.sites),
            messages=remaining_for(usage.messages, limits.messages),
            page_speed_reports=remaining_for(usage.page_speed_reports, limits.page_speed_reports),
        ),
        cycle=CycleInfo(start_ms=state.cycle.start_ms, end_ms=state.cycle.end_ms),
        subscription=_summarize(state.subscription),
    )


def assert_can_create_site(
    user_id: str,
    *,
    now: Optional[datetime] = None,
    catalog: Optional[PlanCatalog] = None,
    provider: Optional[SubscriptionProvider] = None,
) -> SiteCreationCheck:
    """Query form of the site guard: reports instead of raising."""
    entitlements = get_entitlements(user_id, now=now, catalog=catalog, provider=provider)
    allowed = not limit_reached(entitlements.usage.sites, entitlements.limits.sites)

    error = None
    if not allowed:
        error = LimitExceededInfo(
            code=LIMIT_EXCEEDED_CODE,
            feature="sites",
            message=build_limit_message("sites", entitlements.plan, entitlements.limits.sites),
        )

    return SiteCreationCheck(allowed=allowed, entitlements=entitlements, error=error)


def ensure_can_create_site(
    user_id: str,
    *,
    now: Optional[datetime] = None,
    catalog: Optional[PlanCatalog] = None,
    provider: Optional[SubscriptionProvider] = None,
) -> Entitlements:
    """
    Raising form of the site guard, used before a site is inserted.

    Raises:
        LimitExceededError: feature "sites"
    """
    entitlements = get_entitlements(user_id, now=now, catalog=catalog, provider=provider)
    if limit_reached(entitlements.usage.sites, entitlements.limits.sites):
        logger.warning(
            "[entitlement] BLOCK",
            extra={
                "user_id": user_id,
                "plan": entitlements.plan,
                "feature": "sites",
                "used": entitlements.usage.sites,
                "limit": entitlements.limits.sites,
            },
        )
        raise limit_exceeded_error(
            "sites",
            entitlements.plan,
            entitlements.limits.sites,
            entitlements.usage.sites,
            entitlements.cycle.start_ms,
            entitlements.cycle.end_ms,
        )
    return entitlements


def consume_feature(
    user_id: str,
    feature: str,
    delta: int = 1,
    *,
    now: Optional[datetime] = None,
    catalog: Optional[PlanCatalog] = None,
    provider: Optional[SubscriptionProvider] = None,
) -> ConsumeResult:
    """
    Increment a metered feature if the cycle's count is under the limit.

    Args:
        user_id: User performing the action
        feature: "messages" or "pageSpeedReports"
        delta: Units to record (batched PageSpeed runs from one chat turn)

    Returns:
        ConsumeResult with the post-increment usage

    Raises:
        LimitExceededError: If used >= limit at the moment of the write
        ValidationError: If feature is unknown or delta < 1
    """
    if feature not in METERED_FEATURES:
        raise ValidationError(f"Unknown metered feature: {feature}")
    if delta < 1:
        raise ValidationError(f"Usage increment must be positive, got {delta}")

    state = resolve_state(user_id, now=now, catalog=catalog, provider=provider)
    maybe_persist_paid_anchor(state)

    limit_field, counter = METERED_FEATURES[feature]
    limit = getattr(state.limits, limit_field)
    blocked_at: Optional[int] = None

    with get_db_session() as session:
        bucket = get_or_create_bucket(session, state)
        next_usage = increment_bucket(
            session, bucket.id, counter, delta, state.cycle.end_ms, limit=limit
        )
        if next_usage is None:
            blocked_at = read_counter(session, bucket.id, counter)

    if blocked_at is not None:
        logger.warning(
            "[entitlement] BLOCK",
            extra={
                "user_id": user_id,
                "plan": state.plan,
                "feature": feature,
                "used": blocked_at,
                "limit": limit,
                "cycle_start_ms": state.cycle.start_ms,
            },
        )
        raise limit_exceeded_error(
            feature, state.plan, limit, blocked_at, state.cycle.start_ms, state.cycle.end_ms
        )

    logger.info(
        "[entitlement] ALLOWED",
        extra={
            "user_id": user_id,
            "plan": state.plan,
            "feature": feature,
            "used": next_usage,
            "limit": limit,
            "delta": delta,
        },
    )
    return ConsumeResult(
        used=next_usage,
        remaining=remaining_for(next_usage, limit),
        limit=limit,
        plan=state.plan,
        cycle_start_ms=state.cycle.start_ms,
        cycle_end_ms=state.cycle.end_ms,
    )


def consume_chat_message(
    user_id: str,
    *,
    now: Optional[datetime] = None,
    catalog: Optional[PlanCatalog] = None,
    provider: Optional[SubscriptionProvider] = None,
) -> ConsumeResult:
    return consume_feature(user_id, "messages", 1, now=now, catalog=catalog, provider=provider)


def consume_page_speed_reports(
    user_id: str,
    count: int = 1,
    *,
    now: Optional[datetime] = None,
    catalog: Optional[PlanCatalog] = None,
    provider: Optional[SubscriptionProvider] = None,
) -> ConsumeResult:
    """Record `count` PageSpeed reports accumulated within one chat turn."""
    return consume_feature(user_id, "pageSpeedReports", count, now=now, catalog=catalog, provider=provider)


def consume_page_speed_report(
    user_id: str,
    *,
    now: Optional[datetime] = None,
    catalog: Optional[PlanCatalog] = None,
    provider: Optional[SubscriptionProvider] = None,
) -> ConsumeResult:
    return consume_page_speed_reports(user_id, 1, now=now, catalog=catalog, provider=provider)


def get_usage_summary(
    user_id: str,
    *,
    now: Optional[datetime] = None,
    catalog: Optional[PlanCatalog] = None,
    provider: Optional[SubscriptionProvider] = None,
) -> UsageSummary:
    """Account-page usage view, including active recommendations."""
    state = resolve_state(user_id, now=now, catalog=catalog, provider=provider)
    cycle_usage = get_cycle_usage(user_id, state.cycle.start_ms)

    return UsageSummary(
        plan=state.plan,
        limits=UsageLimits(
            sites=state.limits.sites,
            messages_per_month=state.limits.messages,
            active_recommendations=state.limits.active_recommendations,
            page_speed_tests_per_month=state.limits.page_speed_reports,
        ),
        current=UsageCurrent(
            sites=count_sites(user_id),
            messages=cycle_usage.messages_used,
            active_recommendations=count_active_recommendations(user_id),
            page_speed_tests=cycle_usage.page_speed_reports_used,
        ),
        cycle=CycleInfo(start_ms=state.cycle.start_ms, end_ms=state.cycle.end_ms),
    )
