from datetime import timedelta

import pytest
from django.utils import timezone

from verifyhub.users.models import Organization
from verifyhub.users.models import User
from verifyhub.users.tests.factories import AdminUserFactory
from verifyhub.users.tests.factories import OrganizationFactory
from verifyhub.users.tests.factories import UserFactory


@pytest.fixture(autouse=True)
def _ensure_billing_plans(db) -> None:
    """
    Ensure billing Plans exist for tests that create organizations.

    Organization creation triggers trial subscription setup, which requires
    the TRIAL plan. The data migration seeds these too; this keeps tests
    working under --nomigrations.
    """
    from verifyhub.billing.constants import PLAN_CONFIG
    from verifyhub.billing.models import Plan

    for code, config in PLAN_CONFIG.items():
        Plan.objects.get_or_create(code=code, defaults=config)


@pytest.fixture
def org(db) -> Organization:
    return OrganizationFactory()


@pytest.fixture
def user(db) -> User:
    return UserFactory()


@pytest.fixture
def admin_user(org) -> User:
    return AdminUserFactory(org=org)


@pytest.fixture
def paid_subscription(org):
    """The organization's subscription, moved onto an active STARTER plan."""
    from verifyhub.billing.constants import PlanCode
    from verifyhub.billing.constants import SubscriptionStatus

    now = timezone.now()
    subscription = org.subscription
    subscription.plan_id = PlanCode.STARTER
    subscription.status = SubscriptionStatus.ACTIVE
    subscription.user_count = 3
    subscription.trial_start_date = None
    subscription.trial_end_date = None
    subscription.current_period_start = now - timedelta(days=10)
    subscription.current_period_end = now + timedelta(days=20)
    subscription.stripe_customer_id = "cus_test123"
    subscription.stripe_subscription_id = "sub_test123"
    subscription.stripe_price_id = "price_starter"
    subscription.save()
    return subscription
