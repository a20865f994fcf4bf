"""
Entitlement response shapes.

Serialized with camelCase keys (the dashboard reads `pageSpeedReports`,
`cycleStartMs`, ...), populated from snake_case in Python.
"""

from typing import Optional
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class FeatureCounts(CamelModel):
    sites: int
    messages: int
    page_speed_reports: int


class CycleInfo(CamelModel):
    start_ms: int
    end_ms: int


class SubscriptionSummary(CamelModel):
    product_id: str
    status: str
    current_period_start: str
    current_period_end: Optional[str] = None
    cancel_at_period_end: bool = False
    product_name: str = ""


class Entitlements(CamelModel):
    plan: str
    model_tier: str
    limits: FeatureCounts
    usage: FeatureCounts
    remaining: FeatureCounts
    cycle: CycleInfo
    subscription: Optional[SubscriptionSummary] = None


class LimitExceededInfo(CamelModel):
    code: str
    feature: str
    message: str
    cta: str = "upgrade"


class SiteCreationCheck(CamelModel):
    allowed: bool
    entitlements: Entitlements
    error: Optional[LimitExceededInfo] = None


class ConsumeResult(CamelModel):
    used: int
    remaining: int
    limit: int
    plan: str
    cycle_start_ms: int
    cycle_end_ms: int


class UsageLimits(CamelModel):
    sites: int
    messages_per_month: int
    active_recommendations: int
    page_speed_tests_per_month: int


class UsageCurrent(CamelModel):
    sites: int
    messages: int
    active_recommendations: int
    page_speed_tests: int


class UsageSummary(CamelModel):
    plan: str
    limits: UsageLimits
    current: UsageCurrent
    cycle: CycleInfo


class UsageHistoryEntry(CamelModel):
    cycle_start_ms: int
    cycle_end_ms: int
    messages_used: int
    page_speed_reports_used: int
