"""
Billing models for verifyhub's seat-based pricing.

Key design decisions:
- Plan is a lookup table (TRIAL, STARTER, PROFESSIONAL, ENTERPRISE,
  RESTRICTED) and the single place a Stripe price id maps to a tier
- Subscription is 1:1 with Organization and has FK to Plan
- Subscription.status stores Stripe's status string verbatim
- user_count is the number of seats purchased; the number of seats used
  is always derived from the user directory, never stored
- SeatChange records every quantity change pushed to Stripe

Relationship: Organization ──1:1── Subscription ──N:1── Plan
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from model_utils.models import TimeStampedModel

from verifyhub.billing.constants import PlanCode
from verifyhub.billing.constants import ProrationBehavior
from verifyhub.billing.constants import SubscriptionStatus


class Plan(models.Model):
    """
    Lookup table for pricing plans.

    Populated via data migration; stripe_price_id is filled in per
    environment with the seed_plans command or the admin.

    Usage:
        Plan.for_price_id(stripe_price_id)
    """

    code = models.CharField(
        max_length=20,
        choices=PlanCode.choices,
        primary_key=True,
        help_text="Unique plan identifier, also used as PK.",
    )
    name = models.CharField(max_length=50, help_text="Display name for the plan.")
    description = models.TextField(
        blank=True,
        help_text="Marketing description shown on pricing page.",
    )
    seat_price_cents = models.IntegerField(
        default=0,
        help_text="Monthly price per billable seat in cents, for display.",
    )
    stripe_price_id = models.CharField(
        max_length=255,
        blank=True,
        help_text="Stripe Price ID (price_xxx) used for checkout.",
    )
    is_paid = models.BooleanField(
        default=False,
        help_text="Whether an active subscription on this plan grants access.",
    )
    display_order = models.IntegerField(
        default=0,
        help_text="Order in which plans appear on pricing page.",
    )

    class Meta:
        ordering = ["display_order"]

    def __str__(self) -> str:
        return self.name

    @classmethod
    def for_price_id(cls, price_id: str | None) -> Plan:
        """
        Resolve the paid tier a Stripe price belongs to.

        Unknown or missing price ids resolve to STARTER.
        """
        if price_id:
            plan = cls.objects.filter(stripe_price_id=price_id).first()
            if plan:
                return plan
        return cls.objects.get(code=PlanCode.STARTER)


class Subscription(TimeStampedModel):
    """
    Billing subscription for an organization.

    Written by the webhook synchronizer, the seat change service and the
    access policy (trial/grace demotion). `modified` doubles as the
    updated_at stamp returned to clients.
    """

    org = models.OneToOneField(
        "users.Organization",
        on_delete=models.CASCADE,
        related_name="subscription",
    )
    plan = models.ForeignKey(
        Plan,
        on_delete=models.PROTECT,  # Never delete a plan with subscriptions
        related_name="subscriptions",
    )
    status = models.CharField(
        max_length=32,
        choices=SubscriptionStatus.choices,
        default=SubscriptionStatus.TRIALING,
    )
    user_count = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Seats purchased. Null is treated as one seat.",
    )

    # Trial tracking
    trial_start_date = models.DateTimeField(null=True, blank=True)
    trial_end_date = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the trial expires. Checked on every access check.",
    )

    # Billing period tracking
    current_period_start = models.DateTimeField(null=True, blank=True)
    current_period_end = models.DateTimeField(
        null=True,
        blank=True,
        help_text="End of the paid period. Canceled subscriptions keep access until then.",  # noqa: E501
    )
    cancel_at_period_end = models.BooleanField(default=False)
    cancel_at = models.DateTimeField(null=True, blank=True)

    # Stripe integration
    stripe_customer_id = models.CharField(
        max_length=255,
        blank=True,
        help_text="Stripe Customer ID (cus_xxx).",
    )
    stripe_subscription_id = models.CharField(
        max_length=255,
        blank=True,
        db_index=True,
        help_text="Stripe Subscription ID (sub_xxx).",
    )
    stripe_price_id = models.CharField(
        max_length=255,
        blank=True,
        help_text="Stripe Price ID of the first subscription item.",
    )

    def __str__(self) -> str:
        return f"{self.org} ({self.plan_id}, {self.status})"

    @property
    def plan_name(self) -> str:
        return self.plan_id

    @property
    def updated_at(self):
        return self.modified

    @property
    def subscribed_seats(self) -> int:
        return self.user_count or 1

    @property
    def has_paid_billing_reference(self) -> bool:
        """True when Stripe holds a live subscription we can change quantity on."""
        return (
            self.status == SubscriptionStatus.ACTIVE
            and bool(self.stripe_subscription_id)
        )


class SeatChange(TimeStampedModel):
    """
    Audit log of seat quantity changes pushed to Stripe.
    """

    subscription = models.ForeignKey(
        Subscription,
        on_delete=models.CASCADE,
        related_name="seat_changes",
    )
    old_user_count = models.PositiveIntegerField()
    new_user_count = models.PositiveIntegerField()
    proration_behavior = models.CharField(
        max_length=32,
        choices=ProrationBehavior.choices,
    )
    stripe_subscription_id = models.CharField(max_length=255, blank=True)
    requested_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    class Meta:
        ordering = ["-created"]

    def __str__(self) -> str:
        return (
            f"{self.subscription.org}: {self.old_user_count} → "
            f"{self.new_user_count}"
        )
