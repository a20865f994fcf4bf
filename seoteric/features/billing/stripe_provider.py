"""
Stripe subscription provider implementation.

Implements SubscriptionProvider using the Stripe API.
Handles current-subscription lookup, webhook signature verification and
event parsing into provider-neutral shapes (ISO-8601 period bounds).
"""
from typing import Dict, Any, Optional
from datetime import datetime, timezone
import logging

import stripe

from seoteric.core.config import settings
from seoteric.features.billing.provider import (
    BillingProviderError,
    BillingWebhookError,
    BillingWebhookResult,
)
from seoteric.models.billing import ResolvedSubscription


logger = logging.getLogger(__name__)

# Statuses Stripe reports for a subscription that is currently in force
CURRENT_STATUSES = ("active", "trialing")


def _epoch_to_iso(value: Any) -> Optional[str]:
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(int(value), timezone.utc).isoformat().replace("+00:00", "Z")
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def _search_literal(value: str) -> str:
    """Escape a value for a quoted Stripe Search query string."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


def _first_item(data: Dict[str, Any]) -> Dict[str, Any]:
    items = (data.get("items") or {}).get("data") or []
    return items[0] if items else {}


def _period_bound(data: Dict[str, Any], key: str) -> Optional[str]:
    # Newer API versions report period bounds on the subscription item
    value = data.get(key)
    if value is None:
        value = _first_item(data).get(key)
    return _epoch_to_iso(value)


def _product_of(data: Dict[str, Any]) -> tuple[Optional[str], str]:
    """Return (product_id, product_name) from a subscription payload."""
    price = _first_item(data).get("price") or {}
    product = price.get("product")
    if isinstance(product, str):
        return product, ""
    if product:
        return product.get("id"), product.get("name") or ""
    return None, ""


class StripeProvider:
    """Stripe implementation of SubscriptionProvider protocol."""

    def __init__(self, secret_key: Optional[str] = None, webhook_secret: Optional[str] = None):
        """
        Initialize Stripe provider.

        Args:
            secret_key: Stripe secret key (defaults to STRIPE_SECRET_KEY setting)
            webhook_secret: Stripe webhook secret (defaults to STRIPE_WEBHOOK_SECRET setting)
        """
        self.secret_key = secret_key or settings.STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret or settings.STRIPE_WEBHOOK_SECRET

        if not self.secret_key:
            raise BillingProviderError("STRIPE_SECRET_KEY not configured")

        stripe.api_key = self.secret_key

    def _find_customer_id(self, user_id: str) -> Optional[str]:
        query = f"metadata['user_id']:'{_search_literal(user_id)}'"
        customers = stripe.Customer.search(query=query, limit=1)
        if customers.data:
            return customers.data[0].id
        return None

    def get_current_subscription(self, user_id: str) -> Optional[ResolvedSubscription]:
        """Return the user's in-force Stripe subscription, if any."""
        try:
            customer_id = self._find_customer_id(user_id)
            if not customer_id:
                return None
            subscriptions = stripe.Subscription.list(
                customer=customer_id,
                status="all",
                limit=10,
                expand=["data.items.data.price.product"],
            )
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe subscription lookup failed: {e}")

        for subscription in subscriptions.data:
            if subscription.get("status") in CURRENT_STATUSES:
                return self._to_resolved(subscription)
        return None

    def _to_resolved(self, data: Dict[str, Any]) -> ResolvedSubscription:
        product_id, product_name = _product_of(data)
        return ResolvedSubscription(
            product_id=product_id or "",
            status=data.get("status") or "",
            current_period_start=_period_bound(data, "current_period_start") or "",
            current_period_end=_period_bound(data, "current_period_end"),
            cancel_at_period_end=bool(data.get("cancel_at_period_end", False)),
            product_name=product_name,
        )

    def handle_webhook(self, headers: Dict[str, str], body: bytes) -> BillingWebhookResult:
        """Verify Stripe webhook signature and parse event."""
        if not self.webhook_secret:
            raise BillingWebhookError("STRIPE_WEBHOOK_SECRET not configured")

        try:
            # Verify signature
            sig_header = headers.get("stripe-signature") or headers.get("Stripe-Signature")
            if not sig_header:
                raise BillingWebhookError("Missing stripe-signature header")

            event = stripe.Webhook.construct_event(
                body, sig_header, self.webhook_secret
            )
        except ValueError as e:
            raise BillingWebhookError(f"Invalid payload: {e}")
        except stripe.SignatureVerificationError as e:
            raise BillingWebhookError(f"Invalid signature: {e}")

        return self.parse_event(event)

    def parse_event(self, event: Dict[str, Any]) -> BillingWebhookResult:
        """Parse Stripe event into normalized BillingWebhookResult."""
        event_type = event.get("type") or ""
        data = (event.get("data") or {}).get("object") or {}
        metadata = data.get("metadata") or {}

        user_id = None
        subscription_id = None
        product_id = None
        status = None
        period_start = None
        period_end = None
        cancel_at_period_end = False

        if event_type.startswith("customer.subscription."):
            subscription_id = data.get("id")
            status = data.get("status")
            product_id, _ = _product_of(data)
            period_start = _period_bound(data, "current_period_start")
            period_end = _period_bound(data, "current_period_end")
            cancel_at_period_end = bool(data.get("cancel_at_period_end", False))

            user_id = metadata.get("user_id")
            customer_id = data.get("customer")
            if not user_id and customer_id:
                try:
                    customer = stripe.Customer.retrieve(customer_id)
                    user_id = (customer.get("metadata") or {}).get("user_id")
                except stripe.StripeError as e:
                    logger.warning(
                        "[billing] customer lookup failed for webhook",
                        extra={"event_type": event_type, "error_code": type(e).__name__},
                    )

        return BillingWebhookResult(
            event_id=event.get("id"),
            event_type=event_type,
            user_id=user_id,
            subscription_id=subscription_id,
            product_id=product_id,
            status=status,
            current_period_start=period_start,
            current_period_end=period_end,
            cancel_at_period_end=cancel_at_period_end,
            metadata=dict(metadata),
        )
