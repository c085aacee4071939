from datetime import timedelta

import pytest
from django.utils import timezone

from verifyhub.billing.constants import PlanCode
from verifyhub.billing.constants import SubscriptionStatus
from verifyhub.billing.models import Subscription
from verifyhub.users.constants import RoleCode
from verifyhub.users.models import Organization
from verifyhub.users.models import User
from verifyhub.users.models import _create_trial_subscription
from verifyhub.users.tests.factories import OrganizationFactory
from verifyhub.users.tests.factories import UserFactory


def test_user_str_prefers_name(user: User):
    user.name = "Ada Lovelace"
    assert str(user) == "Ada Lovelace"
    user.name = ""
    assert str(user) == user.username


@pytest.mark.django_db
@pytest.mark.parametrize(
    ("role", "billable", "admin"),
    [
        (RoleCode.ADMIN, True, True),
        (RoleCode.VERIFIER, True, False),
        (RoleCode.BASIC, False, False),
    ],
)
def test_role_properties(role, billable, admin):
    user = UserFactory(role=role)
    assert user.is_billable is billable
    assert user.is_org_admin is admin


@pytest.mark.django_db
def test_organization_slug_defaults_to_name():
    org = Organization.objects.create(name="Contoso IT")
    assert org.slug == "contoso-it"


@pytest.mark.django_db
def test_organizations_with_same_name_get_unique_slugs():
    first = Organization.objects.create(name="Contoso")
    second = Organization.objects.create(name="Contoso")
    third = Organization.objects.create(name="Contoso")

    assert [first.slug, second.slug, third.slug] == [
        "contoso",
        "contoso-2",
        "contoso-3",
    ]
    assert Subscription.objects.filter(org=second).exists()


@pytest.mark.django_db
def test_organization_slug_without_sluggable_name():
    org = Organization.objects.create(name="!!!")
    assert len(org.slug) == 10


@pytest.mark.django_db
def test_new_organization_starts_trial():
    before = timezone.now()
    org = OrganizationFactory()

    subscription = Subscription.objects.get(org=org)
    assert subscription.plan_id == PlanCode.TRIAL
    assert subscription.status == SubscriptionStatus.TRIALING
    assert subscription.user_count is None
    assert subscription.subscribed_seats == 1
    assert subscription.trial_start_date >= before
    assert subscription.trial_end_date - subscription.trial_start_date == timedelta(
        days=14,
    )


@pytest.mark.django_db
def test_trial_creation_is_idempotent(org: Organization):
    existing = org.subscription

    again = _create_trial_subscription(org)

    assert again.pk == existing.pk
    assert Subscription.objects.filter(org=org).count() == 1


@pytest.mark.django_db
def test_saving_organization_does_not_reset_trial(org: Organization):
    subscription = org.subscription
    subscription.status = SubscriptionStatus.ACTIVE
    subscription.plan_id = PlanCode.STARTER
    subscription.save()

    org.name = "Renamed"
    org.save()

    subscription.refresh_from_db()
    assert subscription.status == SubscriptionStatus.ACTIVE
    assert subscription.plan_id == PlanCode.STARTER
