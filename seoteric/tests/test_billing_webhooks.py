"""
Tests for billing webhook intake and anchor persistence.

Stripe is mocked; no network calls are made.
"""
from unittest.mock import Mock, patch

import pytest
import stripe

from seoteric.features.billing.anchors import get_billing_profile, upsert_billing_anchor
from seoteric.features.billing.provider import BillingWebhookError, BillingWebhookResult
from seoteric.features.billing.service import apply_subscription_event, process_webhook_event
from seoteric.features.billing.stripe_provider import StripeProvider


MARCH_10_0800 = 1710057600  # 2024-03-10T08:00:00Z
APRIL_10_0800 = 1712736000  # 2024-04-10T08:00:00Z
MARCH_10_0800_MS = MARCH_10_0800 * 1000


def make_result(**overrides):
    fields = dict(
        event_id="evt_1",
        event_type="customer.subscription.created",
        user_id="user_alice",
        subscription_id="sub_1",
        product_id="prod_pro_monthly",
        status="active",
        current_period_start="2024-03-10T08:00:00Z",
        current_period_end="2024-04-10T08:00:00Z",
    )
    fields.update(overrides)
    return BillingWebhookResult(**fields)


def subscription_event(event_type="customer.subscription.updated", metadata=None, **data):
    obj = {
        "id": "sub_1",
        "customer": "cus_1",
        "status": "active",
        "cancel_at_period_end": False,
        "current_period_start": MARCH_10_0800,
        "current_period_end": APRIL_10_0800,
        "metadata": metadata if metadata is not None else {"user_id": "user_alice"},
        "items": {"data": [{"price": {"product": {"id": "prod_pro_monthly", "name": "Pro"}}}]},
    }
    obj.update(data)
    return {"id": "evt_1", "type": event_type, "data": {"object": obj}}


def test_anchor_upsert_is_idempotent():
    assert upsert_billing_anchor("user_alice", MARCH_10_0800_MS) is True
    assert upsert_billing_anchor("user_alice", MARCH_10_0800_MS) is False
    assert upsert_billing_anchor("user_alice", MARCH_10_0800_MS + 1) is True
    assert get_billing_profile("user_alice").last_paid_anchor_ms == MARCH_10_0800_MS + 1


def test_created_event_writes_anchor():
    assert apply_subscription_event(make_result()) is True
    assert get_billing_profile("user_alice").last_paid_anchor_ms == MARCH_10_0800_MS


def test_redelivery_converges():
    result = make_result()
    apply_subscription_event(result)
    assert apply_subscription_event(result) is False
    assert get_billing_profile("user_alice").last_paid_anchor_ms == MARCH_10_0800_MS


def test_updated_event_moves_anchor():
    apply_subscription_event(make_result())
    moved = make_result(
        event_type="customer.subscription.updated",
        current_period_start="2024-04-10T08:00:00Z",
    )

    assert apply_subscription_event(moved) is True
    assert get_billing_profile("user_alice").last_paid_anchor_ms == APRIL_10_0800 * 1000


@pytest.mark.parametrize(
    "overrides",
    [
        {"event_type": "customer.subscription.deleted"},
        {"event_type": "invoice.paid"},
        {"user_id": None},
        {"current_period_start": None},
        {"current_period_start": "not-a-date"},
    ],
)
def test_events_without_anchor_are_ignored(overrides):
    assert apply_subscription_event(make_result(**overrides)) is False
    assert get_billing_profile("user_alice") is None


def test_parse_subscription_event():
    provider = StripeProvider(secret_key="sk_test_123", webhook_secret="whsec_test")

    result = provider.parse_event(subscription_event())

    assert result.event_id == "evt_1"
    assert result.user_id == "user_alice"
    assert result.subscription_id == "sub_1"
    assert result.product_id == "prod_pro_monthly"
    assert result.status == "active"
    assert result.current_period_start == "2024-03-10T08:00:00Z"
    assert result.current_period_end == "2024-04-10T08:00:00Z"


def test_parse_reads_period_from_subscription_item():
    provider = StripeProvider(secret_key="sk_test_123", webhook_secret="whsec_test")
    event = subscription_event(
        current_period_start=None,
        current_period_end=None,
        items={"data": [{
            "price": {"product": "prod_pro_monthly"},
            "current_period_start": MARCH_10_0800,
            "current_period_end": APRIL_10_0800,
        }]},
    )

    result = provider.parse_event(event)

    assert result.product_id == "prod_pro_monthly"
    assert result.current_period_start == "2024-03-10T08:00:00Z"


def test_parse_falls_back_to_customer_metadata():
    provider = StripeProvider(secret_key="sk_test_123", webhook_secret="whsec_test")

    with patch("stripe.Customer.retrieve", return_value={"metadata": {"user_id": "user_bob"}}) as retrieve:
        result = provider.parse_event(subscription_event(metadata={}))

    retrieve.assert_called_once_with("cus_1")
    assert result.user_id == "user_bob"


def test_parse_non_subscription_event():
    provider = StripeProvider(secret_key="sk_test_123", webhook_secret="whsec_test")

    result = provider.parse_event({"id": "evt_2", "type": "invoice.paid", "data": {"object": {}}})

    assert result.event_type == "invoice.paid"
    assert result.user_id is None
    assert result.current_period_start is None


def test_missing_signature_rejected():
    provider = StripeProvider(secret_key="sk_test_123", webhook_secret="whsec_test")
    with pytest.raises(BillingWebhookError):
        provider.handle_webhook({}, b"{}")


def test_bad_signature_rejected():
    provider = StripeProvider(secret_key="sk_test_123", webhook_secret="whsec_test")
    with patch(
        "stripe.Webhook.construct_event",
        side_effect=stripe.SignatureVerificationError("bad", "t=1,v1=x"),
    ):
        with pytest.raises(BillingWebhookError):
            provider.handle_webhook({"stripe-signature": "t=1,v1=x"}, b"{}")


def test_process_webhook_applies_anchor():
    provider = Mock()
    provider.handle_webhook.return_value = make_result()

    result, applied = process_webhook_event({"stripe-signature": "sig"}, b"{}", provider=provider)

    assert applied is True
    assert result.user_id == "user_alice"
    provider.handle_webhook.assert_called_once_with({"stripe-signature": "sig"}, b"{}")


def test_process_webhook_requires_billing():
    with pytest.raises(BillingWebhookError):
        process_webhook_event({}, b"{}")


def test_customer_search_escapes_user_id():
    provider = StripeProvider(secret_key="sk_test_123", webhook_secret="whsec_test")

    with patch("stripe.Customer.search", return_value=Mock(data=[])) as search:
        assert provider.get_current_subscription("o'brien\\x") is None

    search.assert_called_once_with(query="metadata['user_id']:'o\\'brien\\\\x'", limit=1)
