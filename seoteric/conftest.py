# seoteric/conftest.py
from datetime import datetime, timezone

import pytest
from sqlalchemy import insert

from seoteric.core.config import settings
from seoteric.core.database import (
    create_all_tables,
    dispose_engine,
    init_engine,
    users,
    get_db_session,
)
from seoteric.features.plans.service import build_plan_catalog
from seoteric.models.billing import ResolvedSubscription


PRO_PRODUCT = "prod_pro_monthly"
AGENCY_PRODUCT = "prod_agency_monthly"


@pytest.fixture(scope="function", autouse=True)
def db(tmp_path, monkeypatch):
    """
    Fresh SQLite database per test.

    Billing is disabled by default (no Stripe key) so nothing reaches the
    network; tests that need a subscription pass a fake provider.
    """
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", None)
    monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", None)
    monkeypatch.setattr(settings, "AUTH_JWT_SECRET", None)

    init_engine(f"sqlite:///{tmp_path / 'test.db'}")
    create_all_tables()
    yield
    dispose_engine()


@pytest.fixture
def catalog():
    """Plan catalog with test product ids mapped to the paid tiers."""
    return build_plan_catalog(
        product_to_plan={PRO_PRODUCT: "pro", AGENCY_PRODUCT: "agency"},
    )


@pytest.fixture
def make_user():
    """Insert a user with an explicit creation time."""
    def _make(user_id: str, created_at: datetime = datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)):
        with get_db_session() as session:
            session.execute(
                insert(users).values(user_id=user_id, created_at=created_at)
            )
        return user_id
    return _make


class FakeProvider:
    """In-memory SubscriptionProvider."""

    def __init__(self, subscription=None, error=None):
        self.subscription = subscription
        self.error = error
        self.calls = []

    def get_current_subscription(self, user_id):
        self.calls.append(user_id)
        if self.error is not None:
            raise self.error
        return self.subscription

    def handle_webhook(self, headers, body):
        raise NotImplementedError


@pytest.fixture
def fake_provider():
    return FakeProvider


@pytest.fixture
def pro_subscription():
    return ResolvedSubscription(
        product_id=PRO_PRODUCT,
        status="active",
        current_period_start="2024-03-10T08:00:00Z",
        current_period_end="2024-04-10T08:00:00Z",
        cancel_at_period_end=False,
        product_name="Pro Monthly",
    )
