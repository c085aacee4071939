"""
Billable user metering.

Only admin and verifier users occupy a paid seat. The counter filters on
role alone: a deactivated verifier still counts until the role changes or
the user is removed, so the bill always matches the roster Stripe would see.

Usage:
    counter = BillableUserCounter()
    result = counter.count(org.id)
    result.user_count, result.pricing

    # Read paths that must not fail
    result = counter.count_or_fallback(org.id)
    if result.is_fallback:
        ...  # show result.warning, do not charge on this number
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from django.conf import settings
from django.db import DatabaseError
from django.db.models import Count
from django.db.models import Q

from verifyhub.billing.exceptions import UserCountUnavailableError
from verifyhub.users.constants import BILLABLE_ROLES
from verifyhub.users.constants import RoleCode
from verifyhub.users.models import User

logger = logging.getLogger(__name__)

FALLBACK_USER_COUNT = 1


# =============================================================================
# Helper Functions
# =============================================================================


def format_cents(amount_cents: int) -> str:
    """Dollar string without trailing zeros for whole amounts: 1800 -> "$18"."""
    if amount_cents % 100 == 0:
        return f"${amount_cents // 100}"
    return f"${amount_cents / 100:.2f}"


def cents_to_dollars(amount_cents: int) -> int | float:
    if amount_cents % 100 == 0:
        return amount_cents // 100
    return amount_cents / 100


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class BillableUserCount:
    """Billable roster snapshot plus the monthly price it implies."""

    user_count: int
    admin_count: int
    verifier_count: int
    seat_price_cents: int
    is_fallback: bool = False
    warning: str = ""

    @property
    def total_amount_cents(self) -> int:
        return self.user_count * self.seat_price_cents

    @property
    def pricing(self) -> dict:
        formatted = format_cents(self.total_amount_cents)
        base = format_cents(self.seat_price_cents)
        return {
            "basePrice": cents_to_dollars(self.seat_price_cents),
            "totalAmount": self.total_amount_cents,
            "formattedPrice": formatted,
            "breakdown": f"{self.user_count} users × {base} = {formatted}",
        }

    def to_dict(self) -> dict:
        data = {
            "userCount": self.user_count,
            "adminCount": self.admin_count,
            "verifierCount": self.verifier_count,
            "pricing": self.pricing,
        }
        if self.is_fallback:
            data["isFallback"] = True
            data["warning"] = self.warning
        return data


# =============================================================================
# Counter
# =============================================================================


class BillableUserCounter:
    """
    Count billable users in an organization and price them.

    Constructed per request; the seat price defaults to
    settings.BILLING_SEAT_PRICE_CENTS.
    """

    def __init__(self, seat_price_cents: int | None = None):
        if seat_price_cents is None:
            seat_price_cents = settings.BILLING_SEAT_PRICE_CENTS
        self.seat_price_cents = seat_price_cents

    def count(self, org_id) -> BillableUserCount:
        """
        Count admin and verifier users for the organization.

        Raises:
            UserCountUnavailableError: If the roster query fails
        """
        try:
            counts = User.objects.filter(
                org_id=org_id,
                role__in=BILLABLE_ROLES,
            ).aggregate(
                admin_count=Count("id", filter=Q(role=RoleCode.ADMIN)),
                verifier_count=Count("id", filter=Q(role=RoleCode.VERIFIER)),
            )
        except DatabaseError as e:
            logger.exception("Failed to count billable users for org=%s", org_id)
            raise UserCountUnavailableError from e

        admin_count = counts["admin_count"] or 0
        verifier_count = counts["verifier_count"] or 0
        return BillableUserCount(
            user_count=admin_count + verifier_count,
            admin_count=admin_count,
            verifier_count=verifier_count,
            seat_price_cents=self.seat_price_cents,
        )

    def count_or_fallback(self, org_id) -> BillableUserCount:
        """
        Like count(), but degrades to a single billable user when the roster
        can't be read. The result is flagged so callers avoid charging on it.
        """
        try:
            return self.count(org_id)
        except UserCountUnavailableError:
            logger.warning(
                "Using fallback billable user count of %d for org=%s",
                FALLBACK_USER_COUNT,
                org_id,
            )
            return BillableUserCount(
                user_count=FALLBACK_USER_COUNT,
                admin_count=0,
                verifier_count=0,
                seat_price_cents=self.seat_price_cents,
                is_fallback=True,
                warning=(
                    "Could not load your user count. Showing an estimate; "
                    "refresh before changing seats."
                ),
            )
