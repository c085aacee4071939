"""
Tests for the billable user counter.
"""

from unittest.mock import patch

import pytest
from django.db import DatabaseError

from verifyhub.billing.exceptions import UserCountUnavailableError
from verifyhub.billing.metering import BillableUserCounter
from verifyhub.billing.metering import format_cents
from verifyhub.users.constants import RoleCode
from verifyhub.users.tests.factories import AdminUserFactory
from verifyhub.users.tests.factories import OrganizationFactory
from verifyhub.users.tests.factories import UserFactory
from verifyhub.users.tests.factories import VerifierUserFactory


@pytest.mark.django_db
class TestBillableUserCounter:
    def test_counts_admins_and_verifiers_only(self, org):
        AdminUserFactory(org=org)
        VerifierUserFactory.create_batch(2, org=org)
        UserFactory.create_batch(3, org=org, role=RoleCode.BASIC)

        result = BillableUserCounter().count(org.id)

        assert result.user_count == 3
        assert result.admin_count == 1
        assert result.verifier_count == 2
        assert not result.is_fallback

    def test_ignores_other_organizations(self, org):
        AdminUserFactory(org=org)
        AdminUserFactory(org=OrganizationFactory())

        assert BillableUserCounter().count(org.id).user_count == 1

    def test_counts_deactivated_billable_users(self, org):
        VerifierUserFactory(org=org, is_active=False)

        assert BillableUserCounter().count(org.id).user_count == 1

    def test_empty_organization(self, org):
        result = BillableUserCounter().count(org.id)
        assert result.user_count == 0
        assert result.pricing["totalAmount"] == 0
        assert result.pricing["breakdown"] == "0 users × $9 = $0"

    def test_pricing(self, org):
        AdminUserFactory(org=org)
        VerifierUserFactory(org=org)

        result = BillableUserCounter().count(org.id)

        assert result.pricing == {
            "basePrice": 9,
            "totalAmount": 1800,
            "formattedPrice": "$18",
            "breakdown": "2 users × $9 = $18",
        }

    def test_seat_price_from_settings(self, org, settings):
        settings.BILLING_SEAT_PRICE_CENTS = 1250
        AdminUserFactory(org=org)

        result = BillableUserCounter().count(org.id)

        assert result.pricing["basePrice"] == 12.5
        assert result.pricing["formattedPrice"] == "$12.50"

    def test_to_dict(self, org):
        AdminUserFactory(org=org)

        data = BillableUserCounter().count(org.id).to_dict()

        assert data["userCount"] == 1
        assert data["adminCount"] == 1
        assert data["verifierCount"] == 0
        assert "isFallback" not in data

    def test_query_failure_raises(self, org):
        with patch(
            "verifyhub.billing.metering.User.objects.filter",
            side_effect=DatabaseError("connection lost"),
        ):
            with pytest.raises(UserCountUnavailableError):
                BillableUserCounter().count(org.id)

    def test_fallback_on_query_failure(self, org):
        with patch(
            "verifyhub.billing.metering.User.objects.filter",
            side_effect=DatabaseError("connection lost"),
        ):
            result = BillableUserCounter().count_or_fallback(org.id)

        assert result.user_count == 1
        assert result.is_fallback
        assert result.warning
        assert result.to_dict()["isFallback"] is True


@pytest.mark.parametrize(
    ("cents", "expected"),
    [(900, "$9"), (1800, "$18"), (1250, "$12.50"), (0, "$0")],
)
def test_format_cents(cents, expected):
    assert format_cents(cents) == expected
