"""
Seat change service for growing per-seat subscriptions.

Adding a billable user either reuses a seat the organization already pays
for, or grows the Stripe subscription by one seat first. The second path
charges money, so it is guarded on every side:

- Only organization admins may change seat counts, and only for their own
  organization. This is checked before anything else happens.
- Only active subscriptions with a Stripe subscription id can grow. Trials
  are never converted to paid plans here; they go through Checkout.
- The current quantity is read from Stripe, not from our possibly stale
  row, immediately before writing.
- Stripe is written first, then the local row. If the local write fails
  after Stripe accepted the change, PartialSeatChangeError is raised so an
  operator can run reconcile_seats.
- The caller creates the user only after the seat is secured.

Usage:
    service = SeatChangeService()

    # Preview the cost of one more billable user (no side effects)
    preview = service.preview_add_user(subscription, active_users=5)

    # After the admin confirms
    result = service.handle_add_user(
        subscription,
        active_users=5,
        requested_by=request.user,
    )
    if result.can_add:
        ...  # create the user

References:
- https://docs.stripe.com/billing/subscriptions/quantities
- https://docs.stripe.com/billing/subscriptions/prorations
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import DatabaseError
from django.db import transaction
from django.utils import timezone

from verifyhub.billing.constants import ProrationBehavior
from verifyhub.billing.exceptions import BillingError
from verifyhub.billing.exceptions import InactiveSubscriptionError
from verifyhub.billing.exceptions import InvalidSeatChangeError
from verifyhub.billing.exceptions import PartialSeatChangeError
from verifyhub.billing.exceptions import SeatChangeForbiddenError
from verifyhub.billing.exceptions import SubscriptionNotFoundError
from verifyhub.billing.models import SeatChange
from verifyhub.billing.models import Subscription
from verifyhub.billing.seats import calculate_seat_info
from verifyhub.billing.seats import can_add_user
from verifyhub.billing.services import BillingService

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from verifyhub.users.models import User

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 60 * 60 * 24
PRORATION_NOTE = "Proration will appear on next invoice"


@dataclass(frozen=True)
class ProrationDetails:
    """Estimate only. Stripe computes the actual prorated amount."""

    days_remaining: int
    current_period_end: datetime
    quantity_change: int
    note: str = PRORATION_NOTE

    def to_dict(self) -> dict:
        return {
            "days_remaining": self.days_remaining,
            "current_period_end": self.current_period_end.isoformat(),
            "quantity_change": self.quantity_change,
            "note": self.note,
        }


@dataclass(frozen=True)
class SeatChangeResult:
    """Result of a quantity change applied to both Stripe and our row."""

    organization_id: int
    old_user_count: int
    new_user_count: int
    proration_behavior: str
    stripe_subscription_id: str
    updated_at: datetime
    proration_details: ProrationDetails | None = None

    def to_dict(self) -> dict:
        return {
            "success": True,
            "organization_id": self.organization_id,
            "old_user_count": self.old_user_count,
            "new_user_count": self.new_user_count,
            "proration_behavior": self.proration_behavior,
            "proration_details": (
                self.proration_details.to_dict() if self.proration_details else None
            ),
            "stripe_subscription_id": self.stripe_subscription_id,
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class AddUserPreview:
    """Monthly cost before and after adding one billable user. Amounts in cents."""

    needs_upgrade: bool
    current_seats: int
    new_seat_count: int
    price_per_seat: int
    current_monthly_total: int
    new_monthly_total: int
    additional_cost: int

    def to_dict(self) -> dict:
        return {
            "needsUpgrade": self.needs_upgrade,
            "currentSeats": self.current_seats,
            "newSeatCount": self.new_seat_count,
            "pricePerSeat": self.price_per_seat,
            "currentMonthlyTotal": self.current_monthly_total,
            "newMonthlyTotal": self.new_monthly_total,
            "additionalCost": self.additional_cost,
        }


@dataclass(frozen=True)
class AddUserResult:
    can_add: bool
    needs_upgrade: bool
    message: str
    new_seat_count: int | None = None
    proration_details: ProrationDetails | None = None
    error: BillingError | None = None

    def to_dict(self) -> dict:
        data = {
            "canAdd": self.can_add,
            "needsUpgrade": self.needs_upgrade,
            "message": self.message,
        }
        if self.new_seat_count is not None:
            data["newSeatCount"] = self.new_seat_count
        if self.proration_details is not None:
            data["prorationDetails"] = self.proration_details.to_dict()
        return data


class SeatChangeService:
    """
    Service for seat quantity changes on per-seat subscriptions.

    The Stripe gateway is passed in so callers and tests control it;
    construct one service per request.
    """

    def __init__(
        self,
        billing_service: BillingService | None = None,
        *,
        seat_price_cents: int | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.billing = billing_service or BillingService()
        if seat_price_cents is None:
            seat_price_cents = settings.BILLING_SEAT_PRICE_CENTS
        self.seat_price_cents = seat_price_cents
        self.clock = clock or timezone.now

    # -------------------------------------------------------------------------
    # Preview and orchestration
    # -------------------------------------------------------------------------

    def preview_add_user(
        self,
        subscription: Subscription | None,
        active_users: int,
    ) -> AddUserPreview:
        """
        Preview what adding one billable user costs. Does not change anything.
        """
        info = calculate_seat_info(subscription, active_users)
        check = can_add_user(info)
        new_seat_count = active_users + 1 if check.needs_upgrade else info.subscribed_seats
        current_total = info.subscribed_seats * self.seat_price_cents
        new_total = (
            new_seat_count * self.seat_price_cents
            if check.needs_upgrade
            else current_total
        )
        return AddUserPreview(
            needs_upgrade=check.needs_upgrade,
            current_seats=info.subscribed_seats,
            new_seat_count=new_seat_count,
            price_per_seat=self.seat_price_cents,
            current_monthly_total=current_total,
            new_monthly_total=new_total,
            additional_cost=new_total - current_total,
        )

    def handle_add_user(
        self,
        subscription: Subscription | None,
        active_users: int,
        *,
        requested_by: User,
    ) -> AddUserResult:
        """
        Secure a seat for one more billable user.

        Returns can_add=False when the subscription could not be grown; the
        caller must not create the user in that case.
        """
        info = calculate_seat_info(subscription, active_users)
        check = can_add_user(info)

        if not check.needs_upgrade:
            remaining = info.available_seats - 1
            noun = "seat" if remaining == 1 else "seats"
            return AddUserResult(
                can_add=True,
                needs_upgrade=False,
                message=(
                    f"User added using available seat. {remaining} {noun} remaining."
                ),
            )

        if subscription is None or not subscription.has_paid_billing_reference:
            return AddUserResult(
                can_add=False,
                needs_upgrade=True,
                message=(
                    "Cannot upgrade trial subscription. "
                    "Please upgrade to paid plan first."
                ),
            )

        try:
            result = self.update_quantity(
                requested_by=requested_by,
                org_id=subscription.org_id,
                new_user_count=active_users + 1,
                proration_behavior=ProrationBehavior.ALWAYS_INVOICE,
            )
        except BillingError as e:
            logger.warning(
                "Seat upgrade failed for org=%s: %s",
                subscription.org_id,
                e.detail,
            )
            return AddUserResult(
                can_add=False,
                needs_upgrade=True,
                message=f"Subscription upgrade failed: {e.detail}",
                error=e,
            )

        return AddUserResult(
            can_add=True,
            needs_upgrade=True,
            new_seat_count=result.new_user_count,
            proration_details=result.proration_details,
            message=(
                f"Subscription upgraded to {result.new_user_count} seats. "
                "User added successfully."
            ),
        )

    # -------------------------------------------------------------------------
    # Quantity mutation
    # -------------------------------------------------------------------------

    def update_quantity(
        self,
        *,
        requested_by: User,
        org_id,
        new_user_count: int,
        proration_behavior: str = ProrationBehavior.ALWAYS_INVOICE,
    ) -> SeatChangeResult:
        """
        Set the purchased seat count on Stripe and locally.

        Raises:
            SeatChangeForbiddenError: Caller is not an admin of org_id
            InvalidSeatChangeError: Bad count/proration, or no Stripe items
            SubscriptionNotFoundError: Organization has no subscription
            InactiveSubscriptionError: Trial, inactive, or no Stripe reference
            StripeServiceError: Stripe read or write failed; nothing changed
            PartialSeatChangeError: Stripe changed, local row did not
        """
        self._check_can_change_seats(requested_by, org_id)

        if new_user_count is None or new_user_count < 1:
            raise InvalidSeatChangeError("Invalid organization_id or new_user_count")
        if proration_behavior not in ProrationBehavior.values:
            raise InvalidSeatChangeError(
                f"Invalid proration_behavior: {proration_behavior}",
            )

        subscription = (
            Subscription.objects.select_related("plan").filter(org_id=org_id).first()
        )
        if subscription is None:
            raise SubscriptionNotFoundError

        if not subscription.has_paid_billing_reference:
            raise InactiveSubscriptionError(
                detail="Cannot update quantity for inactive subscription or trial",
                current_status=subscription.status,
                plan=subscription.plan_name,
            )

        stripe_subscription_id = subscription.stripe_subscription_id
        item = self.billing.get_subscription_item(stripe_subscription_id)
        old_user_count = item.quantity

        logger.info(
            "Updating seats for org=%s: %s -> %s (proration=%s, local=%s)",
            org_id,
            old_user_count,
            new_user_count,
            proration_behavior,
            subscription.user_count,
        )

        self.billing.update_subscription_item(
            stripe_subscription_id,
            item.id,
            quantity=new_user_count,
            proration_behavior=proration_behavior,
            metadata={**item.metadata, "user_count": str(new_user_count)},
        )

        proration_details = None
        if (
            proration_behavior == ProrationBehavior.ALWAYS_INVOICE
            and new_user_count != old_user_count
            and item.current_period_end is not None
        ):
            seconds_left = (item.current_period_end - self.clock()).total_seconds()
            proration_details = ProrationDetails(
                days_remaining=math.ceil(seconds_left / SECONDS_PER_DAY),
                current_period_end=item.current_period_end,
                quantity_change=new_user_count - old_user_count,
            )

        subscription.user_count = new_user_count
        try:
            with transaction.atomic():
                subscription.save(update_fields=["user_count", "modified"])
                SeatChange.objects.create(
                    subscription=subscription,
                    old_user_count=old_user_count,
                    new_user_count=new_user_count,
                    proration_behavior=proration_behavior,
                    stripe_subscription_id=stripe_subscription_id,
                    requested_by=requested_by,
                )
        except DatabaseError as e:
            logger.exception(
                "Stripe subscription %s updated to %s seats but local update "
                "failed for org=%s",
                stripe_subscription_id,
                new_user_count,
                org_id,
            )
            raise PartialSeatChangeError(db_error=str(e)) from e

        return SeatChangeResult(
            organization_id=subscription.org_id,
            old_user_count=old_user_count,
            new_user_count=new_user_count,
            proration_behavior=proration_behavior,
            stripe_subscription_id=stripe_subscription_id,
            updated_at=subscription.modified,
            proration_details=proration_details,
        )

    def _check_can_change_seats(self, user: User, org_id) -> None:
        if not getattr(user, "is_org_admin", False) or str(user.org_id) != str(org_id):
            raise SeatChangeForbiddenError
