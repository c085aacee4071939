"""
Tests for the subscription access policy.

These tests cover:
- The access decision table
- Lazy trial expiry and canceled grace-period demotion
- Idempotency of repeated checks
- The read-only status summary
"""

from datetime import timedelta
from unittest.mock import patch

import pytest
from django.db import DatabaseError
from django.utils import timezone

from verifyhub.billing.access import REASON_CANCELED_GRACE
from verifyhub.billing.access import REASON_INVALID_STATUS
from verifyhub.billing.access import REASON_NO_ORGANIZATION
from verifyhub.billing.access import REASON_NO_SUBSCRIPTION
from verifyhub.billing.access import REASON_SUBSCRIPTION_REQUIRED
from verifyhub.billing.access import REASON_TRIAL_EXPIRED
from verifyhub.billing.access import SubscriptionAccessPolicy
from verifyhub.billing.access import is_expired
from verifyhub.billing.constants import PlanCode
from verifyhub.billing.constants import SubscriptionStatus
from verifyhub.billing.models import Subscription
from verifyhub.users.tests.factories import AdminUserFactory
from verifyhub.users.tests.factories import UserFactory

NOW = timezone.now().replace(microsecond=0)


@pytest.fixture
def policy():
    return SubscriptionAccessPolicy(clock=lambda: NOW)


def _set(subscription, **fields):
    for name, value in fields.items():
        setattr(subscription, name, value)
    subscription.save()
    return subscription


class TestIsExpired:
    def test_active_never_expires(self):
        subscription = Subscription(
            status=SubscriptionStatus.ACTIVE,
            cancel_at_period_end=True,
            current_period_end=NOW - timedelta(days=1),
        )
        assert not is_expired(subscription, NOW)

    def test_trial_before_end(self):
        subscription = Subscription(
            status=SubscriptionStatus.TRIALING,
            trial_end_date=NOW + timedelta(seconds=1),
        )
        assert not is_expired(subscription, NOW)

    def test_trial_at_end_is_expired(self):
        subscription = Subscription(
            status=SubscriptionStatus.TRIALING,
            trial_end_date=NOW,
        )
        assert is_expired(subscription, NOW)

    def test_trial_without_end_is_expired(self):
        subscription = Subscription(status=SubscriptionStatus.TRIALING)
        assert is_expired(subscription, NOW)

    def test_canceled_within_period(self):
        subscription = Subscription(
            status=SubscriptionStatus.CANCELED,
            current_period_end=NOW + timedelta(days=3),
        )
        assert not is_expired(subscription, NOW)

    def test_canceled_after_period(self):
        subscription = Subscription(
            status=SubscriptionStatus.CANCELED,
            current_period_end=NOW - timedelta(seconds=1),
        )
        assert is_expired(subscription, NOW)

    def test_canceled_without_period_is_expired(self):
        subscription = Subscription(status=SubscriptionStatus.CANCELED)
        assert is_expired(subscription, NOW)

    @pytest.mark.parametrize(
        "status",
        [
            SubscriptionStatus.PAST_DUE,
            SubscriptionStatus.UNPAID,
            SubscriptionStatus.INCOMPLETE,
            SubscriptionStatus.PAUSED,
        ],
    )
    def test_other_statuses_are_expired(self, status):
        subscription = Subscription(
            status=status,
            current_period_end=NOW + timedelta(days=10),
        )
        assert is_expired(subscription, NOW)


@pytest.mark.django_db
class TestCheckAccess:
    def test_active_paid_plan_has_access(self, policy, paid_subscription):
        decision = policy.check_access(paid_subscription)
        assert decision.has_access
        assert decision.reason == ""

    def test_active_with_pending_cancellation_has_access(
        self,
        policy,
        paid_subscription,
    ):
        _set(paid_subscription, cancel_at_period_end=True)
        assert policy.check_access(paid_subscription).has_access

    def test_trial_in_progress_has_access(self, policy, org):
        subscription = _set(org.subscription, trial_end_date=NOW + timedelta(days=3))

        decision = policy.check_access(subscription)

        assert decision.has_access
        subscription.refresh_from_db()
        assert subscription.plan_id == PlanCode.TRIAL

    def test_expired_trial_is_demoted(self, policy, org):
        subscription = _set(org.subscription, trial_end_date=NOW - timedelta(hours=1))

        decision = policy.check_access(subscription)

        assert not decision.has_access
        assert decision.reason == REASON_TRIAL_EXPIRED
        subscription.refresh_from_db()
        assert subscription.plan_id == PlanCode.RESTRICTED
        assert subscription.status == SubscriptionStatus.UNPAID

    def test_expired_trial_check_is_idempotent(self, policy, org):
        subscription = _set(org.subscription, trial_end_date=NOW - timedelta(hours=1))
        policy.check_access(subscription)
        subscription.refresh_from_db()

        with patch.object(Subscription, "save") as mock_save:
            decision = policy.check_access(subscription)

        assert not decision.has_access
        assert decision.reason == REASON_SUBSCRIPTION_REQUIRED
        mock_save.assert_not_called()

    def test_canceled_paid_plan_keeps_access_until_period_end(
        self,
        policy,
        paid_subscription,
    ):
        _set(paid_subscription, status=SubscriptionStatus.CANCELED)

        decision = policy.check_access(paid_subscription)

        assert decision.has_access
        assert decision.reason == REASON_CANCELED_GRACE
        paid_subscription.refresh_from_db()
        assert paid_subscription.plan_id == PlanCode.STARTER

    def test_canceled_after_period_end_is_demoted(self, policy, paid_subscription):
        _set(
            paid_subscription,
            status=SubscriptionStatus.CANCELED,
            current_period_end=NOW - timedelta(days=1),
        )

        decision = policy.check_access(paid_subscription)

        assert not decision.has_access
        assert decision.reason == REASON_SUBSCRIPTION_REQUIRED
        paid_subscription.refresh_from_db()
        assert paid_subscription.plan_id == PlanCode.RESTRICTED
        assert paid_subscription.status == SubscriptionStatus.CANCELED

    def test_restricted_plan_is_denied(self, policy, org):
        subscription = _set(
            org.subscription,
            plan_id=PlanCode.RESTRICTED,
            status=SubscriptionStatus.UNPAID,
        )

        decision = policy.check_access(subscription)

        assert not decision.has_access
        assert decision.reason == REASON_SUBSCRIPTION_REQUIRED

    def test_past_due_is_denied(self, policy, paid_subscription):
        _set(paid_subscription, status=SubscriptionStatus.PAST_DUE)

        decision = policy.check_access(paid_subscription)

        assert not decision.has_access
        assert decision.reason == REASON_INVALID_STATUS

    def test_trialing_on_paid_plan_is_denied(self, policy, paid_subscription):
        _set(
            paid_subscription,
            status=SubscriptionStatus.TRIALING,
            trial_end_date=NOW + timedelta(days=3),
        )

        decision = policy.check_access(paid_subscription)

        assert not decision.has_access
        assert decision.reason == REASON_INVALID_STATUS

    def test_demotion_write_failure_still_denies(self, policy, org):
        subscription = _set(org.subscription, trial_end_date=NOW - timedelta(hours=1))

        with patch.object(Subscription, "save", side_effect=DatabaseError("down")):
            decision = policy.check_access(subscription)

        assert not decision.has_access
        assert decision.reason == REASON_TRIAL_EXPIRED

    def test_no_subscription(self, policy):
        decision = policy.check_access(None)
        assert not decision.has_access
        assert decision.reason == REASON_NO_SUBSCRIPTION


@pytest.mark.django_db
class TestCheckUserAccess:
    def test_user_without_organization(self, policy):
        user = UserFactory(org=None)

        decision = policy.check_user_access(user)

        assert not decision.has_access
        assert decision.reason == REASON_NO_ORGANIZATION

    def test_organization_without_subscription(self, policy, org):
        user = AdminUserFactory(org=org)
        Subscription.objects.filter(org=org).delete()
        user.refresh_from_db()

        decision = policy.check_user_access(user)

        assert not decision.has_access
        assert decision.reason == REASON_NO_SUBSCRIPTION

    def test_to_dict(self, policy, org):
        user = AdminUserFactory(org=org)
        trial_end = NOW + timedelta(days=3)
        _set(org.subscription, trial_end_date=trial_end)
        user.refresh_from_db()

        data = policy.check_user_access(user).to_dict()

        assert data == {
            "hasAccess": True,
            "reason": "",
            "subscription": {
                "plan_name": PlanCode.TRIAL,
                "status": SubscriptionStatus.TRIALING,
                "trial_end_date": trial_end,
            },
        }


@pytest.mark.django_db
class TestGetStatus:
    def test_trial_days_remaining(self, policy, org):
        subscription = _set(
            org.subscription,
            trial_end_date=NOW + timedelta(days=4, hours=2),
        )

        summary = policy.get_status(subscription)

        assert summary.has_active_subscription
        assert summary.is_in_trial
        assert summary.trial_days_remaining == 5

    def test_paid_subscription_not_in_trial(self, policy, paid_subscription):
        _set(paid_subscription, current_period_end=NOW + timedelta(days=20))

        summary = policy.get_status(paid_subscription)

        assert summary.has_active_subscription
        assert not summary.is_in_trial
        assert summary.trial_days_remaining == 0
        assert summary.days_until_renewal == 20

    def test_expired_trial_is_reported_without_demotion(self, policy, org):
        subscription = _set(org.subscription, trial_end_date=NOW - timedelta(days=1))

        summary = policy.get_status(subscription)

        assert not summary.is_in_trial
        assert summary.trial_days_remaining == 0
        subscription.refresh_from_db()
        assert subscription.plan_id == PlanCode.TRIAL

    def test_no_subscription(self, policy):
        summary = policy.get_status(None)
        assert not summary.has_active_subscription
        assert summary.days_until_renewal is None
