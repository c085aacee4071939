"""
Map Stripe subscription state onto the local Subscription row.

Stripe is the source of truth for status, seat quantity and billing period.
Every function here is a last-write-wins overwrite of the organization's
single subscription row, so replaying an event converges to the same state.
Events are not versioned: an older event delivered after a newer one will
overwrite it.

Plan mapping:
    unpaid, canceled      → RESTRICTED
    anything else         → paid tier resolved from the item's price id
The Stripe status string is always stored verbatim.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING
from typing import Any

from django.conf import settings
from django.utils import timezone

from verifyhub.billing.constants import IMMEDIATE_CANCELLATION_SLACK_SECONDS
from verifyhub.billing.constants import RESTRICTING_STATUSES
from verifyhub.billing.constants import PlanCode
from verifyhub.billing.constants import SubscriptionStatus
from verifyhub.billing.models import Plan
from verifyhub.billing.models import Subscription
from verifyhub.billing.services import first_subscription_item
from verifyhub.billing.services import from_timestamp
from verifyhub.billing.services import stripe_field

if TYPE_CHECKING:
    from datetime import datetime

logger = logging.getLogger(__name__)


def _parse_user_count(stripe_sub: Any, item: Any) -> int:
    """
    Seats from the subscription item's quantity, which is what Stripe bills.

    metadata.user_count is only used when the item carries no quantity.
    """
    metadata = stripe_field(stripe_sub, "metadata", {})
    raw = stripe_field(metadata, "user_count")
    from_metadata = None
    if raw:
        try:
            from_metadata = max(1, int(raw))
        except (TypeError, ValueError):
            logger.warning("Ignoring non-numeric user_count metadata: %r", raw)

    quantity = stripe_field(item, "quantity")
    if quantity:
        if from_metadata is not None and from_metadata != quantity:
            logger.warning(
                "Stripe subscription %s: metadata user_count=%s differs from "
                "item quantity=%s, using quantity",
                stripe_field(stripe_sub, "id"),
                from_metadata,
                quantity,
            )
        return quantity
    return from_metadata or 1


def _price_id(item: Any) -> str:
    price = stripe_field(item, "price")
    if isinstance(price, str):
        return price
    return stripe_field(price, "id", "")


def resolve_plan_code(status: str, price_id: str) -> str:
    if status in RESTRICTING_STATUSES:
        return PlanCode.RESTRICTED
    return Plan.for_price_id(price_id).code


def invoice_subscription_id(invoice: Any) -> str | None:
    """Subscription id of an invoice, across Stripe API versions."""
    subscription_id = stripe_field(invoice, "subscription")
    if subscription_id:
        if not isinstance(subscription_id, str):
            return stripe_field(subscription_id, "id")
        return subscription_id
    details = stripe_field(stripe_field(invoice, "parent"), "subscription_details")
    return stripe_field(details, "subscription")


def _find_subscription(stripe_sub: Any, org_id=None) -> Subscription | None:
    if org_id is None:
        metadata = stripe_field(stripe_sub, "metadata", {})
        org_id = stripe_field(metadata, "organization_id")
    if org_id:
        return Subscription.objects.filter(org_id=org_id).first()
    return Subscription.objects.filter(
        stripe_subscription_id=stripe_field(stripe_sub, "id", ""),
    ).first()


def apply_stripe_subscription(
    stripe_sub: Any,
    org_id=None,
    now: datetime | None = None,
) -> Subscription | None:
    """
    Overwrite the organization's subscription with a Stripe subscription.

    The organization comes from `org_id` when given, else from the
    subscription's metadata.organization_id. Returns None when no local
    subscription matches.
    """
    now = now or timezone.now()
    subscription = _find_subscription(stripe_sub, org_id)
    if subscription is None:
        logger.warning(
            "No local subscription for Stripe subscription %s (org_id=%s)",
            stripe_field(stripe_sub, "id"),
            org_id or stripe_field(stripe_field(stripe_sub, "metadata"), "organization_id"),
        )
        return None

    item = first_subscription_item(stripe_sub)
    status = stripe_field(stripe_sub, "status", "")
    price_id = _price_id(item)

    period_start = stripe_field(item, "current_period_start") or stripe_field(
        stripe_sub,
        "current_period_start",
    )
    period_end = stripe_field(item, "current_period_end") or stripe_field(
        stripe_sub,
        "current_period_end",
    )

    subscription.plan_id = resolve_plan_code(status, price_id)
    subscription.status = status
    subscription.user_count = _parse_user_count(stripe_sub, item)
    subscription.stripe_customer_id = stripe_field(stripe_sub, "customer", "")
    subscription.stripe_subscription_id = stripe_field(stripe_sub, "id", "")
    subscription.stripe_price_id = price_id
    subscription.current_period_start = from_timestamp(period_start) or now
    subscription.current_period_end = from_timestamp(period_end) or (
        now + timedelta(days=settings.BILLING_FALLBACK_PERIOD_DAYS)
    )
    subscription.cancel_at_period_end = bool(
        stripe_field(stripe_sub, "cancel_at_period_end", False),
    )
    subscription.cancel_at = from_timestamp(stripe_field(stripe_sub, "cancel_at"))
    if status == SubscriptionStatus.TRIALING:
        subscription.trial_start_date = from_timestamp(
            stripe_field(stripe_sub, "trial_start"),
        )
        subscription.trial_end_date = from_timestamp(
            stripe_field(stripe_sub, "trial_end"),
        )
    else:
        subscription.trial_start_date = None
        subscription.trial_end_date = None
    subscription.save()

    logger.info(
        "Synced subscription for org=%s: plan=%s, status=%s, seats=%s",
        subscription.org_id,
        subscription.plan_id,
        subscription.status,
        subscription.user_count,
    )
    return subscription


def is_immediate_cancellation(stripe_sub: Any) -> bool:
    """
    Whether a deleted subscription was cut off before its period ended, as
    opposed to running out at period end.
    """
    if stripe_field(stripe_sub, "cancel_at_period_end", False):
        return False
    canceled_at = stripe_field(stripe_sub, "canceled_at", 0)
    item = first_subscription_item(stripe_sub)
    period_end = stripe_field(item, "current_period_end") or stripe_field(
        stripe_sub,
        "current_period_end",
        0,
    )
    if canceled_at and period_end:
        if abs(canceled_at - period_end) < IMMEDIATE_CANCELLATION_SLACK_SECONDS:
            return False
        return canceled_at < period_end
    return bool(canceled_at)


def apply_subscription_deleted(stripe_sub: Any) -> Subscription | None:
    """
    Mark the subscription canceled.

    The plan is left alone so a remaining paid period is honored; the
    access check demotes it once the period has elapsed. Immediate
    cancellations clear the period so access ends now.
    """
    subscription = Subscription.objects.filter(
        stripe_subscription_id=stripe_field(stripe_sub, "id", ""),
    ).first()
    if subscription is None:
        subscription = _find_subscription(stripe_sub)
    if subscription is None:
        logger.warning(
            "No local subscription for deleted Stripe subscription %s",
            stripe_field(stripe_sub, "id"),
        )
        return None

    subscription.status = SubscriptionStatus.CANCELED
    update_fields = ["status", "modified"]
    immediate = is_immediate_cancellation(stripe_sub)
    if immediate:
        subscription.current_period_start = None
        subscription.current_period_end = None
        update_fields += ["current_period_start", "current_period_end"]
    subscription.save(update_fields=update_fields)

    logger.info(
        "Canceled subscription for org=%s (immediate=%s)",
        subscription.org_id,
        immediate,
    )
    return subscription


def apply_invoice_payment_succeeded(invoice: Any) -> int:
    """
    Recover subscriptions waiting on payment.

    Only incomplete and past_due rows move back to active; rows in any
    other state are left for the subscription events to settle.
    """
    subscription_id = invoice_subscription_id(invoice)
    if not subscription_id:
        return 0
    updated = Subscription.objects.filter(
        stripe_subscription_id=subscription_id,
        status__in=[SubscriptionStatus.INCOMPLETE, SubscriptionStatus.PAST_DUE],
    ).update(status=SubscriptionStatus.ACTIVE, modified=timezone.now())
    if updated:
        logger.info(
            "Payment recovered for Stripe subscription %s, status set to active",
            subscription_id,
        )
    return updated


def apply_invoice_payment_failed(invoice: Any) -> int:
    subscription_id = invoice_subscription_id(invoice)
    if not subscription_id:
        return 0
    updated = Subscription.objects.filter(
        stripe_subscription_id=subscription_id,
    ).update(status=SubscriptionStatus.PAST_DUE, modified=timezone.now())
    if updated:
        logger.warning(
            "Payment failed for Stripe subscription %s, status set to past_due "
            "(next attempt=%s)",
            subscription_id,
            stripe_field(invoice, "next_payment_attempt"),
        )
    return updated
