"""
Billing and entitlement API routes.

Surface:
- GET  /api/billing/entitlements: Plan, limits, usage, remaining, cycle
- GET  /api/billing/usage: Account-page usage summary
- GET  /api/billing/usage/history: Past cycle buckets, newest first
- GET  /api/billing/can-create-site: Site guard (query form)
- POST /api/billing/consume/chat-message: Record one chat message
- POST /api/billing/consume/page-speed-report: Record a batch of PageSpeed reports
- POST /api/billing/webhook: Handle Stripe webhooks
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field

from seoteric.core.auth import get_current_user_id
from seoteric.core.errors import BillingUnavailableError
from seoteric.features.billing.provider import BillingProviderError, BillingWebhookError
from seoteric.features.billing.resolver import billing_enabled
from seoteric.features.billing.service import process_webhook_event
from seoteric.features.entitlements.service import (
    assert_can_create_site,
    consume_chat_message,
    consume_page_speed_reports,
    get_entitlements,
    get_usage_summary,
)
from seoteric.features.usage.service import list_usage_history
from seoteric.models.entitlement import (
    ConsumeResult,
    Entitlements,
    SiteCreationCheck,
    UsageHistoryEntry,
    UsageSummary,
)


router = APIRouter(prefix="/billing", tags=["billing"])


class PageSpeedConsumeRequest(BaseModel):
    """PageSpeed reports produced by one chat turn."""
    count: int = Field(1, ge=1)


def _unavailable(exc: BillingProviderError) -> BillingUnavailableError:
    return BillingUnavailableError(f"Billing provider unavailable: {exc}")


@router.get("/entitlements", response_model=Entitlements)
async def entitlements(user_id: str = Depends(get_current_user_id)):
    try:
        return get_entitlements(user_id)
    except BillingProviderError as e:
        raise _unavailable(e)


@router.get("/usage", response_model=UsageSummary)
async def usage(user_id: str = Depends(get_current_user_id)):
    try:
        return get_usage_summary(user_id)
    except BillingProviderError as e:
        raise _unavailable(e)


@router.get("/usage/history", response_model=List[UsageHistoryEntry])
async def usage_history(
    limit: int = Query(12, ge=1, le=60),
    user_id: str = Depends(get_current_user_id),
):
    return [
        UsageHistoryEntry(
            cycle_start_ms=bucket.cycle_start_ms,
            cycle_end_ms=bucket.cycle_end_ms,
            messages_used=bucket.messages_used,
            page_speed_reports_used=bucket.page_speed_reports_used,
        )
        for bucket in list_usage_history(user_id, limit=limit)
    ]


@router.get("/can-create-site", response_model=SiteCreationCheck)
async def can_create_site(user_id: str = Depends(get_current_user_id)):
    """
    Report whether another site fits the plan.

    Never returns an error for an exhausted limit: `allowed` is false and
    `error` carries the upgrade message instead.
    """
    try:
        return assert_can_create_site(user_id)
    except BillingProviderError as e:
        raise _unavailable(e)


@router.post("/consume/chat-message", response_model=ConsumeResult)
async def consume_chat(user_id: str = Depends(get_current_user_id)):
    """
    Record one chat message against the current cycle.

    Errors:
        403: LIMIT_EXCEEDED (payload carries feature, plan, limit, used, cta)
        503: Billing provider unreachable
    """
    try:
        return consume_chat_message(user_id)
    except BillingProviderError as e:
        raise _unavailable(e)


@router.post("/consume/page-speed-report", response_model=ConsumeResult)
async def consume_page_speed(
    body: PageSpeedConsumeRequest,
    user_id: str = Depends(get_current_user_id),
):
    """
    Record `count` PageSpeed reports against the current cycle.

    The limit is checked once against usage before the batch, so a batch
    may carry usage past the limit; the next call is then rejected.
    """
    try:
        return consume_page_speed_reports(user_id, body.count)
    except BillingProviderError as e:
        raise _unavailable(e)


@router.post("/webhook")
async def handle_webhook(request: Request):
    """
    Handle Stripe webhook events.

    Subscription created/updated events move the stored billing anchor to
    the new period start. Redelivery is harmless: the anchor upsert is
    idempotent.

    Returns:
        {"received": true, "applied": bool}

    Errors:
        400: Invalid signature or payload
        503: Billing disabled
    """
    if not billing_enabled():
        raise HTTPException(
            status_code=503,
            detail={"error": "Billing disabled", "code": "billing_disabled"},
        )

    # Raw body is required for signature verification
    body = await request.body()
    headers = dict(request.headers)

    try:
        result, applied = process_webhook_event(headers, body)
    except BillingWebhookError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {"received": True, "event_id": result.event_id, "applied": applied}
