"""
seoteric/features/sites/service.py

Sites and recommendations, as far as entitlements are concerned.

Handles:
- Site counting for the site limit
- Guarded site creation (limit checked before insert)
- Active recommendation counting (open + in progress)
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from sqlalchemy import select, insert, func

from seoteric.core.database import get_db_session, sites, recommendations
from seoteric.core.errors import ValidationError
from seoteric.features.billing.provider import SubscriptionProvider
from seoteric.models.plan import PlanCatalog


logger = logging.getLogger(__name__)

ACTIVE_RECOMMENDATION_STATUSES = ("open", "in_progress")


def count_sites(user_id: str) -> int:
    with get_db_session() as session:
        return session.execute(
            select(func.count()).select_from(sites).where(sites.c.user_id == user_id)
        ).scalar_one()


def count_active_recommendations(user_id: str) -> int:
    """Open and in-progress recommendations across all of the user's sites."""
    with get_db_session() as session:
        return session.execute(
            select(func.count())
            .select_from(recommendations.join(sites, recommendations.c.site_id == sites.c.id))
            .where(sites.c.user_id == user_id)
            .where(recommendations.c.status.in_(ACTIVE_RECOMMENDATION_STATUSES))
        ).scalar_one()


def list_sites(user_id: str) -> List[Dict[str, Any]]:
    with get_db_session() as session:
        rows = session.execute(
            select(sites)
            .where(sites.c.user_id == user_id)
            .order_by(sites.c.created_at.desc())
        ).all()
        return [dict(row._mapping) for row in rows]


def create_site(
    user_id: str,
    *,
    name: str,
    domain: str,
    country: str = "",
    industry: str = "",
    now: Optional[datetime] = None,
    catalog: Optional[PlanCatalog] = None,
    provider: Optional[SubscriptionProvider] = None,
) -> Dict[str, Any]:
    """
    Create a site after the site limit check passes.

    Raises:
        LimitExceededError: If the user's plan has no site slots left
        ValidationError: If name or domain is blank
    """
    # Deferred import: entitlements depends on this module for counting
    from seoteric.features.entitlements.service import ensure_can_create_site

    if not name.strip() or not domain.strip():
        raise ValidationError("Site name and domain are required")

    ensure_can_create_site(user_id, now=now, catalog=catalog, provider=provider)

    site = {
        "id": str(uuid4()),
        "user_id": user_id,
        "name": name.strip(),
        "domain": domain.strip().lower(),
        "country": country,
        "industry": industry,
        "created_at": datetime.now(timezone.utc),
    }
    with get_db_session() as session:
        session.execute(insert(sites).values(**site))

    logger.info("[sites] created", extra={"user_id": user_id})
    return site


def add_recommendation(
    site_id: str,
    *,
    title: str,
    category: str,
    priority: str,
    status: str = "open",
) -> str:
    """Insert a recommendation row; returns its id."""
    recommendation_id = str(uuid4())
    with get_db_session() as session:
        session.execute(
            insert(recommendations).values(
                id=recommendation_id,
                site_id=site_id,
                title=title,
                category=category,
                priority=priority,
                status=status,
            )
        )
    return recommendation_id
