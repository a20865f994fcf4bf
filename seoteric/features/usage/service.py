"""
seoteric/features/usage/service.py

Usage ledger.

Handles:
- Per-(user, cycle start) counter reads (no implicit bucket creation)
- Get-or-create of the cycle bucket on mutation paths, under a row lock
- Atomic counter increments, guarded by the limit in the UPDATE itself
- Historical usage listing
"""

import logging
from typing import List, Optional

from sqlalchemy import select, insert, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from seoteric.core.database import get_db_session, usage_buckets
from seoteric.core.errors import ValidationError
from seoteric.models.billing import BillingState
from seoteric.models.plan import UNLIMITED, is_unlimited
from seoteric.models.usage import CycleUsage, UsageBucket, UsageCounter


logger = logging.getLogger(__name__)

USAGE_COUNTERS = ("messages_used", "page_speed_reports_used")


def _to_bucket(row) -> UsageBucket:
    return UsageBucket(
        id=row.id,
        user_id=row.user_id,
        cycle_start_ms=row.cycle_start_ms,
        cycle_end_ms=row.cycle_end_ms,
        messages_used=row.messages_used,
        page_speed_reports_used=row.page_speed_reports_used,
    )


def _bucket_query(user_id: str, cycle_start_ms: int):
    return (
        select(usage_buckets)
        .where(usage_buckets.c.user_id == user_id)
        .where(usage_buckets.c.cycle_start_ms == cycle_start_ms)
    )


def get_cycle_usage(user_id: str, cycle_start_ms: int) -> CycleUsage:
    """
    Get counters for one cycle.

    Returns zeros when no bucket exists; never creates one.
    """
    with get_db_session() as session:
        row = session.execute(_bucket_query(user_id, cycle_start_ms)).first()
        if not row:
            return CycleUsage()
        return CycleUsage(
            messages_used=row.messages_used,
            page_speed_reports_used=row.page_speed_reports_used,
        )


def get_or_create_bucket(session: Session, state: BillingState, *, for_update: bool = True) -> UsageBucket:
    """
    Fetch the bucket for the state's cycle, creating it with zero counters.

    Mutation paths only. With `for_update` the row is locked until the
    caller's transaction ends on stores that honour FOR UPDATE. The limit
    itself is enforced by `increment_bucket`.

    Args:
        session: Open session; the caller owns the transaction
        state: Resolved billing state (user + cycle window)
        for_update: Take a row lock on the bucket

    Returns:
        UsageBucket as read under the lock
    """
    user_id = state.user.user_id
    cycle_start_ms = state.cycle.start_ms

    query = _bucket_query(user_id, cycle_start_ms)
    if for_update:
        query = query.with_for_update()

    row = session.execute(query).first()
    if row:
        return _to_bucket(row)

    try:
        session.execute(
            insert(usage_buckets).values(
                user_id=user_id,
                cycle_start_ms=cycle_start_ms,
                cycle_end_ms=state.cycle.end_ms,
                messages_used=0,
                page_speed_reports_used=0,
            )
        )
        session.flush()
    except IntegrityError:
        # Race: a concurrent request created this cycle's bucket first
        session.rollback()
        logger.info(
            "[usage] bucket insert raced, re-reading",
            extra={"user_id": user_id, "cycle_start_ms": cycle_start_ms},
        )

    row = session.execute(query).first()
    if row is None:
        raise RuntimeError(f"Usage bucket missing after insert for user {user_id}")
    return _to_bucket(row)


def increment_bucket(
    session: Session,
    bucket_id: int,
    counter: UsageCounter,
    delta: int,
    cycle_end_ms: int,
    *,
    limit: int = UNLIMITED,
) -> Optional[int]:
    """
    Atomically add `delta` to one counter and refresh the cycle end.

    With a finite `limit` the UPDATE only matches while the stored counter
    is still below it, so the check and the write are one statement. This
    holds on stores that ignore row locks (SQLite).

    Returns:
        The counter value after the increment, or None if the limit was
        already reached when the UPDATE ran

    Raises:
        ValidationError: If counter is unknown or delta < 1
    """
    if counter not in USAGE_COUNTERS:
        raise ValidationError(f"Unknown usage counter: {counter}")
    if delta < 1:
        raise ValidationError(f"Usage increment must be positive, got {delta}")

    column = usage_buckets.c[counter]
    stmt = update(usage_buckets).where(usage_buckets.c.id == bucket_id)
    if not is_unlimited(limit):
        stmt = stmt.where(column < limit)

    result = session.execute(stmt.values({counter: column + delta, "cycle_end_ms": cycle_end_ms}))
    if result.rowcount == 0:
        return None
    return read_counter(session, bucket_id, counter)


def read_counter(session: Session, bucket_id: int, counter: UsageCounter) -> int:
    return session.execute(
        select(usage_buckets.c[counter]).where(usage_buckets.c.id == bucket_id)
    ).scalar_one()


def list_usage_history(user_id: str, limit: int = 12) -> List[UsageBucket]:
    """Buckets for a user, newest cycle first."""
    with get_db_session() as session:
        rows = session.execute(
            select(usage_buckets)
            .where(usage_buckets.c.user_id == user_id)
            .order_by(usage_buckets.c.cycle_start_ms.desc())
            .limit(limit)
        ).all()
        return [_to_bucket(row) for row in rows]
