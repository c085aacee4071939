"""
Subscription access policy.

Decides whether an organization may use the product right now, and
performs the two lazy plan demotions the webhook stream never does for us:

- A trial whose end date has passed is moved to RESTRICTED/unpaid.
- A canceled paid subscription whose period has elapsed is moved to
  RESTRICTED. Until then the canceled subscription keeps access (grace).

Both demotions happen inside the access check and are idempotent: a second
check finds the row already demoted and writes nothing.

Usage:
    policy = SubscriptionAccessPolicy()
    decision = policy.check_user_access(request.user)
    if not decision.has_access:
        ...
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from django.db import DatabaseError
from django.utils import timezone

from verifyhub.billing.constants import ACTIVE_STATUSES
from verifyhub.billing.constants import PAID_PLAN_CODES
from verifyhub.billing.constants import PlanCode
from verifyhub.billing.constants import SubscriptionStatus

if TYPE_CHECKING:
    from verifyhub.billing.models import Subscription
    from verifyhub.users.models import User

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 60 * 60 * 24

REASON_NO_ORGANIZATION = "User not found or no organization"
REASON_NO_SUBSCRIPTION = "No subscription found"
REASON_TRIAL_EXPIRED = "Trial expired - subscription required"
REASON_SUBSCRIPTION_REQUIRED = "Subscription required"
REASON_INVALID_STATUS = "Invalid subscription status"
REASON_CANCELED_GRACE = "Subscription canceled - access continues until period end"


def is_expired(subscription: Subscription, now: datetime | None = None) -> bool:
    """
    Whether the subscription no longer entitles the organization to access.

    canceled: expired once current_period_end has passed, or immediately
              when there is no period end.
    active:   never expired, including when cancel_at_period_end is set.
    trialing: expired once trial_end_date is reached, or when missing.
    anything else (past_due, unpaid, incomplete, ...): expired.
    """
    now = now or timezone.now()
    status = subscription.status

    if status == SubscriptionStatus.CANCELED:
        period_end = subscription.current_period_end
        return period_end is None or now > period_end
    if status == SubscriptionStatus.ACTIVE:
        return False
    if status == SubscriptionStatus.TRIALING:
        trial_end = subscription.trial_end_date
        return trial_end is None or trial_end <= now
    return True


def _days_until(moment: datetime | None, now: datetime) -> int | None:
    if moment is None:
        return None
    return math.ceil((moment - now).total_seconds() / SECONDS_PER_DAY)


@dataclass(frozen=True)
class AccessDecision:
    has_access: bool
    reason: str = ""
    subscription: Subscription | None = None

    def to_dict(self) -> dict:
        data = {"hasAccess": self.has_access, "reason": self.reason}
        if self.subscription is not None:
            data["subscription"] = {
                "plan_name": self.subscription.plan_name,
                "status": self.subscription.status,
                "trial_end_date": self.subscription.trial_end_date,
            }
        return data


@dataclass(frozen=True)
class SubscriptionSummary:
    has_active_subscription: bool
    is_in_trial: bool
    trial_days_remaining: int
    days_until_renewal: int | None


class SubscriptionAccessPolicy:
    """
    Evaluate access for a subscription at a point in time.

    `clock` is injectable so tests and batch jobs can evaluate "as of" a
    given moment; it defaults to django.utils.timezone.now.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None):
        self.clock = clock or timezone.now

    def check_user_access(self, user: User) -> AccessDecision:
        org_id = getattr(user, "org_id", None)
        if not org_id:
            return AccessDecision(has_access=False, reason=REASON_NO_ORGANIZATION)
        subscription = getattr(user.org, "subscription", None)
        return self.check_access(subscription)

    def check_access(self, subscription: Subscription | None) -> AccessDecision:
        if subscription is None:
            return AccessDecision(has_access=False, reason=REASON_NO_SUBSCRIPTION)

        now = self.clock()
        status = subscription.status
        plan_code = subscription.plan_id

        if status == SubscriptionStatus.ACTIVE and plan_code in PAID_PLAN_CODES:
            return AccessDecision(has_access=True, subscription=subscription)

        if status == SubscriptionStatus.TRIALING and plan_code == PlanCode.TRIAL:
            if not is_expired(subscription, now):
                return AccessDecision(has_access=True, subscription=subscription)
            self._demote(
                subscription,
                status=SubscriptionStatus.UNPAID,
                why="trial expired",
            )
            return AccessDecision(
                has_access=False,
                reason=REASON_TRIAL_EXPIRED,
                subscription=subscription,
            )

        if status == SubscriptionStatus.CANCELED and plan_code in PAID_PLAN_CODES:
            if not is_expired(subscription, now):
                return AccessDecision(
                    has_access=True,
                    reason=REASON_CANCELED_GRACE,
                    subscription=subscription,
                )
            self._demote(subscription, why="canceled period elapsed")
            return AccessDecision(
                has_access=False,
                reason=REASON_SUBSCRIPTION_REQUIRED,
                subscription=subscription,
            )

        if plan_code == PlanCode.RESTRICTED:
            return AccessDecision(
                has_access=False,
                reason=REASON_SUBSCRIPTION_REQUIRED,
                subscription=subscription,
            )

        return AccessDecision(
            has_access=False,
            reason=REASON_INVALID_STATUS,
            subscription=subscription,
        )

    def get_status(self, subscription: Subscription | None) -> SubscriptionSummary:
        """Read-only status summary. Never mutates the subscription."""
        if subscription is None:
            return SubscriptionSummary(
                has_active_subscription=False,
                is_in_trial=False,
                trial_days_remaining=0,
                days_until_renewal=None,
            )

        now = self.clock()
        has_active = subscription.status in ACTIVE_STATUSES
        trial_end = subscription.trial_end_date
        is_in_trial = (
            subscription.plan_id == PlanCode.TRIAL
            and has_active
            and trial_end is not None
            and trial_end > now
        )
        trial_days_remaining = (
            max(0, _days_until(trial_end, now)) if is_in_trial else 0
        )
        return SubscriptionSummary(
            has_active_subscription=has_active,
            is_in_trial=is_in_trial,
            trial_days_remaining=trial_days_remaining,
            days_until_renewal=_days_until(subscription.current_period_end, now),
        )

    def _demote(
        self,
        subscription: Subscription,
        *,
        why: str,
        status: str | None = None,
    ) -> None:
        """Move the subscription to RESTRICTED. No-op when already there."""
        target_status = status or subscription.status
        if (
            subscription.plan_id == PlanCode.RESTRICTED
            and subscription.status == target_status
        ):
            return

        subscription.plan_id = PlanCode.RESTRICTED
        subscription.status = target_status
        try:
            subscription.save(update_fields=["plan", "status", "modified"])
        except DatabaseError:
            # Access is denied either way; the next check retries the write.
            logger.exception(
                "Failed to restrict subscription for org=%s (%s)",
                subscription.org_id,
                why,
            )
            return
        logger.info(
            "Restricted subscription for org=%s: %s",
            subscription.org_id,
            why,
        )
