"""
Billing webhook intake.

Subscription created/updated events move the user's stored billing anchor
to the event's current-period start. Handling is best-effort and
idempotent: events without a user or a readable period start are dropped,
and redelivery converges on the same stored value.

All Stripe-specific code is in stripe_provider.py.
"""
from typing import Dict, Optional

from seoteric.core.logging import log_event
from seoteric.features.billing.anchors import upsert_billing_anchor
from seoteric.features.billing.cycle import parse_iso_instant
from seoteric.features.billing.provider import (
    ANCHOR_EVENT_TYPES,
    BillingWebhookError,
    BillingWebhookResult,
    SubscriptionProvider,
)
from seoteric.features.billing.resolver import get_provider
from seoteric.models.billing import to_ms


def apply_subscription_event(result: BillingWebhookResult) -> bool:
    """
    Apply a parsed subscription event to the billing anchor.

    Returns:
        True if the anchor was written, False if the event was ignored or
        the anchor was already up to date
    """
    if result.event_type not in ANCHOR_EVENT_TYPES:
        return False

    period_start = parse_iso_instant(result.current_period_start)
    if not result.user_id or period_start is None:
        log_event(
            "info",
            "[billing] webhook ignored",
            user_id=result.user_id,
            event_type=result.event_type,
            extra={"reason": "missing user or period start"},
        )
        return False

    written = upsert_billing_anchor(result.user_id, to_ms(period_start))
    log_event(
        "info",
        "[billing] webhook applied",
        user_id=result.user_id,
        event_type=result.event_type,
        extra={"anchor_written": written},
    )
    return written


def process_webhook_event(
    headers: Dict[str, str],
    body: bytes,
    provider: Optional[SubscriptionProvider] = None,
) -> tuple[BillingWebhookResult, bool]:
    """
    Verify, parse and apply a billing webhook.

    Returns:
        (parsed result, whether the anchor was written)

    Raises:
        BillingWebhookError: If billing is disabled or the signature is invalid
    """
    provider = provider or get_provider()
    if not provider:
        raise BillingWebhookError("Billing not enabled")

    result = provider.handle_webhook(headers, body)
    return result, apply_subscription_event(result)
