"""
Billing anchor persistence.

One billing profile per user holds the instant the free-tier cycle rolls
over on. It is written when a paid period start becomes known (resolver
bake-in on mutation paths, or a subscription webhook), so a lapsed paid
user keeps the same cycle cadence.
"""
import logging
from typing import Optional

from sqlalchemy import select, insert, update
from sqlalchemy.exc import IntegrityError

from seoteric.core.database import get_db_session, billing_profiles
from seoteric.models.billing import BillingProfile, BillingState


logger = logging.getLogger(__name__)


def get_billing_profile(user_id: str) -> Optional[BillingProfile]:
    with get_db_session() as session:
        row = session.execute(
            select(billing_profiles).where(billing_profiles.c.user_id == user_id)
        ).first()
        if not row:
            return None
        return BillingProfile(user_id=row.user_id, last_paid_anchor_ms=row.last_paid_anchor_ms)


def upsert_billing_anchor(user_id: str, anchor_ms: int) -> bool:
    """
    Insert or update the user's anchor (idempotent).

    Writes only when the stored value differs.

    Returns:
        True if a row was inserted or updated, False if unchanged
    """
    anchor_ms = int(anchor_ms)
    try:
        with get_db_session() as session:
            row = session.execute(
                select(billing_profiles.c.id, billing_profiles.c.last_paid_anchor_ms)
                .where(billing_profiles.c.user_id == user_id)
            ).first()

            if row is None:
                session.execute(
                    insert(billing_profiles).values(
                        user_id=user_id,
                        last_paid_anchor_ms=anchor_ms,
                    )
                )
                logger.info(
                    "[billing] anchor created",
                    extra={"user_id": user_id, "cycle_start_ms": anchor_ms},
                )
                return True

            if row.last_paid_anchor_ms == anchor_ms:
                return False

            session.execute(
                update(billing_profiles)
                .where(billing_profiles.c.id == row.id)
                .values(last_paid_anchor_ms=anchor_ms)
            )
            logger.info(
                "[billing] anchor moved",
                extra={"user_id": user_id, "cycle_start_ms": anchor_ms},
            )
            return True
    except IntegrityError:
        # Race: a concurrent writer created the row first; last write wins
        with get_db_session() as session:
            result = session.execute(
                update(billing_profiles)
                .where(billing_profiles.c.user_id == user_id)
                .where(billing_profiles.c.last_paid_anchor_ms != anchor_ms)
                .values(last_paid_anchor_ms=anchor_ms)
            )
            return result.rowcount > 0


def maybe_persist_paid_anchor(state: BillingState) -> bool:
    """Bake a paid cycle start into the profile so a lapse keeps the cadence."""
    if not state.is_paid:
        return False
    return upsert_billing_anchor(state.user.user_id, state.cycle.start_ms)
