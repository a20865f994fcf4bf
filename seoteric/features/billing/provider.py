"""
Subscription provider protocol.

Defines the interface for the external billing provider (Stripe, etc.).
The provider owns subscription lifecycle; we only read the current
subscription per request and receive its webhooks.
"""
from typing import Protocol, Dict, Any, Optional
from dataclasses import dataclass, field

from seoteric.models.billing import ResolvedSubscription


# Provider event types that carry a new current-period start
SUBSCRIPTION_CREATED = "customer.subscription.created"
SUBSCRIPTION_UPDATED = "customer.subscription.updated"
ANCHOR_EVENT_TYPES = frozenset({SUBSCRIPTION_CREATED, SUBSCRIPTION_UPDATED})


@dataclass
class BillingWebhookResult:
    """Result of parsing a billing webhook."""
    event_id: Optional[str]
    event_type: str
    user_id: Optional[str]
    subscription_id: Optional[str]
    product_id: Optional[str]
    status: Optional[str]
    current_period_start: Optional[str]  # ISO-8601
    current_period_end: Optional[str]  # ISO-8601
    cancel_at_period_end: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)


class SubscriptionProvider(Protocol):
    """
    Protocol for subscription providers.

    Implementations must handle:
    - Current subscription lookup for a user
    - Webhook signature verification and parsing
    """

    def get_current_subscription(self, user_id: str) -> Optional[ResolvedSubscription]:
        """
        Return the user's current subscription, or None.

        Raises:
            BillingProviderError: If the provider cannot be reached
        """
        ...

    def handle_webhook(self, headers: Dict[str, str], body: bytes) -> BillingWebhookResult:
        """
        Verify webhook signature and parse event.

        Raises:
            BillingWebhookError: If signature invalid or payload unreadable
        """
        ...


class BillingProviderError(Exception):
    """Base exception for billing provider errors."""
    pass


class BillingWebhookError(BillingProviderError):
    """Exception for webhook verification errors."""
    pass
