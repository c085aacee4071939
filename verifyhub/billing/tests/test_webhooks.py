"""
Tests for the Stripe webhook receivers.

Receivers are called directly with a minimal event object; dj-stripe's
signature verification and event storage are not exercised here.
"""

from datetime import UTC
from datetime import datetime
from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import patch

import pytest
from django.utils import timezone
from djstripe.signals import WEBHOOK_SIGNALS

from verifyhub.billing.access import SubscriptionAccessPolicy
from verifyhub.billing.constants import PlanCode
from verifyhub.billing.constants import SubscriptionStatus
from verifyhub.billing.models import Plan
from verifyhub.billing.sync import is_immediate_cancellation
from verifyhub.billing.webhooks import handle_checkout_completed
from verifyhub.billing.webhooks import handle_payment_failed
from verifyhub.billing.webhooks import handle_payment_succeeded
from verifyhub.billing.webhooks import handle_subscription_changed
from verifyhub.billing.webhooks import handle_subscription_deleted

PERIOD_START = int((timezone.now() - timedelta(days=5)).timestamp())
PERIOD_END = int((timezone.now() + timedelta(days=25)).timestamp())


def make_event(payload):
    return SimpleNamespace(data={"object": payload})


def make_stripe_sub(org, **overrides):
    metadata = overrides.pop("metadata", {"organization_id": str(org.id)})
    item = {
        "id": "si_test123",
        "quantity": overrides.pop("quantity", 4),
        "price": {"id": overrides.pop("price_id", "price_professional")},
        "current_period_start": overrides.pop("current_period_start", PERIOD_START),
        "current_period_end": overrides.pop("current_period_end", PERIOD_END),
    }
    payload = {
        "id": "sub_test123",
        "object": "subscription",
        "customer": "cus_test123",
        "status": SubscriptionStatus.ACTIVE,
        "metadata": metadata,
        "items": {"object": "list", "data": [item]},
        "cancel_at_period_end": False,
        "cancel_at": None,
        "canceled_at": None,
        "trial_start": None,
        "trial_end": None,
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def professional_price(db):
    Plan.objects.filter(code=PlanCode.PROFESSIONAL).update(
        stripe_price_id="price_professional",
    )


@pytest.mark.django_db
class TestSubscriptionChanged:
    def test_overwrites_local_subscription(self, org, professional_price):
        payload = make_stripe_sub(
            org,
            quantity=5,
            metadata={"organization_id": str(org.id), "user_count": "5"},
        )

        handle_subscription_changed(sender=None, event=make_event(payload))

        subscription = org.subscription
        subscription.refresh_from_db()
        assert subscription.plan_id == PlanCode.PROFESSIONAL
        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.user_count == 5
        assert subscription.stripe_customer_id == "cus_test123"
        assert subscription.stripe_subscription_id == "sub_test123"
        assert subscription.stripe_price_id == "price_professional"
        assert subscription.current_period_start == datetime.fromtimestamp(
            PERIOD_START,
            tz=UTC,
        )
        assert subscription.current_period_end == datetime.fromtimestamp(
            PERIOD_END,
            tz=UTC,
        )
        assert subscription.trial_start_date is None
        assert subscription.trial_end_date is None

    def test_unknown_price_resolves_to_starter(self, org):
        payload = make_stripe_sub(org, price_id="price_unknown")

        handle_subscription_changed(sender=None, event=make_event(payload))

        org.subscription.refresh_from_db()
        assert org.subscription.plan_id == PlanCode.STARTER

    def test_seats_come_from_item_quantity(self, org):
        payload = make_stripe_sub(org, quantity=7)

        handle_subscription_changed(sender=None, event=make_event(payload))

        org.subscription.refresh_from_db()
        assert org.subscription.user_count == 7

    def test_item_quantity_wins_over_stale_metadata(self, org):
        # Seats changed in the Stripe dashboard leave metadata behind
        payload = make_stripe_sub(
            org,
            quantity=7,
            metadata={"organization_id": str(org.id), "user_count": "5"},
        )

        handle_subscription_changed(sender=None, event=make_event(payload))

        org.subscription.refresh_from_db()
        assert org.subscription.user_count == 7

    def test_metadata_used_when_item_has_no_quantity(self, org):
        payload = make_stripe_sub(
            org,
            quantity=None,
            metadata={"organization_id": str(org.id), "user_count": "5"},
        )

        handle_subscription_changed(sender=None, event=make_event(payload))

        org.subscription.refresh_from_db()
        assert org.subscription.user_count == 5

    @pytest.mark.parametrize(
        "status",
        [SubscriptionStatus.UNPAID, SubscriptionStatus.CANCELED],
    )
    def test_restricting_status_demotes_plan(self, org, professional_price, status):
        payload = make_stripe_sub(org, status=status)

        handle_subscription_changed(sender=None, event=make_event(payload))

        org.subscription.refresh_from_db()
        assert org.subscription.plan_id == PlanCode.RESTRICTED
        assert org.subscription.status == status

    def test_past_due_keeps_paid_plan(self, org, professional_price):
        payload = make_stripe_sub(org, status=SubscriptionStatus.PAST_DUE)

        handle_subscription_changed(sender=None, event=make_event(payload))

        org.subscription.refresh_from_db()
        assert org.subscription.plan_id == PlanCode.PROFESSIONAL
        assert org.subscription.status == SubscriptionStatus.PAST_DUE

    def test_trialing_sets_trial_dates(self, org):
        trial_end = PERIOD_END
        payload = make_stripe_sub(
            org,
            status=SubscriptionStatus.TRIALING,
            trial_start=PERIOD_START,
            trial_end=trial_end,
        )

        handle_subscription_changed(sender=None, event=make_event(payload))

        org.subscription.refresh_from_db()
        assert org.subscription.trial_end_date == datetime.fromtimestamp(
            trial_end,
            tz=UTC,
        )

    def test_missing_period_uses_fallback(self, org):
        payload = make_stripe_sub(org, current_period_start=None, current_period_end=None)
        before = timezone.now()

        handle_subscription_changed(sender=None, event=make_event(payload))

        subscription = org.subscription
        subscription.refresh_from_db()
        assert subscription.current_period_start >= before
        assert subscription.current_period_end - subscription.current_period_start == (
            timedelta(days=30)
        )

    def test_pending_cancellation_is_recorded(self, org):
        payload = make_stripe_sub(org, cancel_at_period_end=True, cancel_at=PERIOD_END)

        handle_subscription_changed(sender=None, event=make_event(payload))

        org.subscription.refresh_from_db()
        assert org.subscription.cancel_at_period_end is True
        assert org.subscription.status == SubscriptionStatus.ACTIVE

    def test_missing_organization_is_ignored(self, org):
        payload = make_stripe_sub(org, metadata={})

        handle_subscription_changed(sender=None, event=make_event(payload))

        org.subscription.refresh_from_db()
        assert org.subscription.plan_id == PlanCode.TRIAL
        assert org.subscription.stripe_subscription_id == ""

    def test_replay_converges(self, org, professional_price):
        event = make_event(make_stripe_sub(org))

        handle_subscription_changed(sender=None, event=event)
        org.subscription.refresh_from_db()
        first = (
            org.subscription.plan_id,
            org.subscription.status,
            org.subscription.user_count,
            org.subscription.current_period_end,
        )
        handle_subscription_changed(sender=None, event=event)
        org.subscription.refresh_from_db()

        assert (
            org.subscription.plan_id,
            org.subscription.status,
            org.subscription.user_count,
            org.subscription.current_period_end,
        ) == first

    def test_receiver_is_connected(self, org):
        payload = make_stripe_sub(org, quantity=9)

        WEBHOOK_SIGNALS["customer.subscription.updated"].send(
            sender=None,
            event=make_event(payload),
        )

        org.subscription.refresh_from_db()
        assert org.subscription.user_count == 9


@pytest.mark.django_db
class TestSubscriptionDeleted:
    def test_cancel_at_period_end_keeps_grace(self, org, paid_subscription):
        payload = make_stripe_sub(
            org,
            status=SubscriptionStatus.CANCELED,
            cancel_at_period_end=True,
            canceled_at=PERIOD_START,
        )

        handle_subscription_deleted(sender=None, event=make_event(payload))

        paid_subscription.refresh_from_db()
        assert paid_subscription.status == SubscriptionStatus.CANCELED
        assert paid_subscription.plan_id == PlanCode.STARTER
        assert paid_subscription.current_period_end is not None
        assert SubscriptionAccessPolicy().check_access(paid_subscription).has_access

    def test_immediate_cancellation_ends_access(self, org, paid_subscription):
        payload = make_stripe_sub(
            org,
            status=SubscriptionStatus.CANCELED,
            canceled_at=PERIOD_START + 60 * 60,
        )

        handle_subscription_deleted(sender=None, event=make_event(payload))

        paid_subscription.refresh_from_db()
        assert paid_subscription.status == SubscriptionStatus.CANCELED
        assert paid_subscription.current_period_start is None
        assert paid_subscription.current_period_end is None
        decision = SubscriptionAccessPolicy().check_access(paid_subscription)
        assert not decision.has_access
        paid_subscription.refresh_from_db()
        assert paid_subscription.plan_id == PlanCode.RESTRICTED

    def test_unknown_subscription_is_ignored(self, org):
        payload = make_stripe_sub(org, id="sub_unknown", metadata={})

        handle_subscription_deleted(sender=None, event=make_event(payload))

        org.subscription.refresh_from_db()
        assert org.subscription.status == SubscriptionStatus.TRIALING


class TestIsImmediateCancellation:
    def test_flagged_period_end(self):
        assert not is_immediate_cancellation(
            {"cancel_at_period_end": True, "canceled_at": 100, "current_period_end": 500},
        )

    def test_canceled_before_period_end(self):
        assert is_immediate_cancellation(
            {"cancel_at_period_end": False, "canceled_at": 100, "current_period_end": 500},
        )

    def test_canceled_at_period_end(self):
        assert not is_immediate_cancellation(
            {"cancel_at_period_end": False, "canceled_at": 470, "current_period_end": 500},
        )


@pytest.mark.django_db
class TestCheckoutCompleted:
    def test_syncs_new_subscription(self, org, professional_price):
        session = {
            "id": "cs_test123",
            "mode": "subscription",
            "subscription": "sub_test123",
            "client_reference_id": str(org.id),
            "metadata": {"organization_id": str(org.id)},
        }
        stripe_sub = make_stripe_sub(org, quantity=3)

        with patch(
            "verifyhub.billing.webhooks.BillingService.retrieve_subscription",
            return_value=stripe_sub,
        ) as mock_retrieve:
            handle_checkout_completed(sender=None, event=make_event(session))

        mock_retrieve.assert_called_once_with("sub_test123")
        org.subscription.refresh_from_db()
        assert org.subscription.plan_id == PlanCode.PROFESSIONAL
        assert org.subscription.status == SubscriptionStatus.ACTIVE
        assert org.subscription.user_count == 3
        assert org.subscription.trial_end_date is None

    def test_uses_client_reference_without_metadata(self, org):
        session = {
            "id": "cs_test123",
            "mode": "subscription",
            "subscription": "sub_test123",
            "client_reference_id": str(org.id),
            "metadata": {},
        }
        stripe_sub = make_stripe_sub(org, metadata={})

        with patch(
            "verifyhub.billing.webhooks.BillingService.retrieve_subscription",
            return_value=stripe_sub,
        ):
            handle_checkout_completed(sender=None, event=make_event(session))

        org.subscription.refresh_from_db()
        assert org.subscription.stripe_subscription_id == "sub_test123"

    def test_ignores_payment_mode(self, org):
        session = {"id": "cs_test123", "mode": "payment", "subscription": None}

        with patch(
            "verifyhub.billing.webhooks.BillingService.retrieve_subscription",
        ) as mock_retrieve:
            handle_checkout_completed(sender=None, event=make_event(session))

        mock_retrieve.assert_not_called()


@pytest.mark.django_db
class TestInvoiceEvents:
    def test_payment_failed_marks_past_due(self, paid_subscription):
        invoice = {"id": "in_1", "customer": "cus_test123", "subscription": "sub_test123"}

        handle_payment_failed(sender=None, event=make_event(invoice))

        paid_subscription.refresh_from_db()
        assert paid_subscription.status == SubscriptionStatus.PAST_DUE
        assert paid_subscription.plan_id == PlanCode.STARTER

    def test_payment_succeeded_recovers_past_due(self, paid_subscription):
        paid_subscription.status = SubscriptionStatus.PAST_DUE
        paid_subscription.save()
        invoice = {"id": "in_1", "customer": "cus_test123", "subscription": "sub_test123"}

        handle_payment_succeeded(sender=None, event=make_event(invoice))

        paid_subscription.refresh_from_db()
        assert paid_subscription.status == SubscriptionStatus.ACTIVE

    def test_payment_succeeded_reads_new_invoice_shape(self, paid_subscription):
        paid_subscription.status = SubscriptionStatus.INCOMPLETE
        paid_subscription.save()
        invoice = {
            "id": "in_1",
            "customer": "cus_test123",
            "parent": {"subscription_details": {"subscription": "sub_test123"}},
        }

        handle_payment_succeeded(sender=None, event=make_event(invoice))

        paid_subscription.refresh_from_db()
        assert paid_subscription.status == SubscriptionStatus.ACTIVE

    def test_payment_succeeded_leaves_canceled_alone(self, paid_subscription):
        paid_subscription.status = SubscriptionStatus.CANCELED
        paid_subscription.save()
        invoice = {"id": "in_1", "customer": "cus_test123", "subscription": "sub_test123"}

        handle_payment_succeeded(sender=None, event=make_event(invoice))

        paid_subscription.refresh_from_db()
        assert paid_subscription.status == SubscriptionStatus.CANCELED
