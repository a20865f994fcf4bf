"""
Billing state value objects.

Includes the cycle window, the resolved subscription summary, the per-user
billing profile (free-tier anchor) and the resolved billing state handed from
the plan resolver to the entitlement service.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from seoteric.models.plan import STARTER_PLAN, PlanLimits
from seoteric.models.user import User


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def to_ms(value: datetime) -> int:
    """Epoch milliseconds for an aware (or UTC-naive) datetime."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    delta = value - EPOCH
    return delta.days * 86_400_000 + delta.seconds * 1000 + delta.microseconds // 1000


def from_ms(value: int) -> datetime:
    """UTC datetime for epoch milliseconds (millisecond precision preserved)."""
    return EPOCH + timedelta(milliseconds=int(value))


@dataclass(frozen=True)
class CycleWindow:
    """Half-open billing window [start, end)."""
    start: datetime
    end: datetime

    @property
    def start_ms(self) -> int:
        return to_ms(self.start)

    @property
    def end_ms(self) -> int:
        return to_ms(self.end)


@dataclass(frozen=True)
class ResolvedSubscription:
    """Subscription as reported by the billing provider (read-only)."""
    product_id: str
    status: str
    current_period_start: str
    current_period_end: Optional[str]
    cancel_at_period_end: bool
    product_name: str = ""


@dataclass(frozen=True)
class BillingProfile:
    user_id: str
    last_paid_anchor_ms: int


@dataclass(frozen=True)
class BillingState:
    """Plan, limits and cycle window that apply to a user right now."""
    user: User
    plan: str
    limits: PlanLimits
    cycle: CycleWindow
    subscription: Optional[ResolvedSubscription]

    @property
    def is_paid(self) -> bool:
        return self.plan != STARTER_PLAN
