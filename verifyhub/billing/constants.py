"""
Billing constants for seat-based subscriptions.

PlanCode values serve as primary keys for the Plan lookup table.
SubscriptionStatus values are Stripe's own status strings; we store them
as received so the local row always mirrors what Stripe reports.
"""

from django.db import models
from django.utils.translation import gettext_lazy as _


class PlanCode(models.TextChoices):
    """
    Plan codes used as primary key for Plan model.

    TRIAL is the 14-day starting plan for every organization. RESTRICTED is
    where organizations land when a trial lapses or a paid subscription ends.
    STARTER is the entry paid tier (shown as "Basic" in some screens).
    """

    TRIAL = "TRIAL", _("Trial")
    STARTER = "STARTER", _("Starter")
    PROFESSIONAL = "PROFESSIONAL", _("Professional")
    ENTERPRISE = "ENTERPRISE", _("Enterprise")
    RESTRICTED = "RESTRICTED", _("Restricted")


PAID_PLAN_CODES = frozenset(
    {PlanCode.STARTER, PlanCode.PROFESSIONAL, PlanCode.ENTERPRISE},
)


class SubscriptionStatus(models.TextChoices):
    """
    Subscription lifecycle states, spelled exactly as Stripe spells them.

    Typical flow:
        trialing → active (checkout completed)
        trialing → unpaid (trial lapsed, plan demoted to RESTRICTED)
        active → past_due (payment failed) → active (payment recovered)
        active → canceled (subscription deleted)
    """

    TRIALING = "trialing", _("Trial")
    ACTIVE = "active", _("Active")
    PAST_DUE = "past_due", _("Past Due")
    UNPAID = "unpaid", _("Unpaid")
    CANCELED = "canceled", _("Canceled")
    INCOMPLETE = "incomplete", _("Incomplete")
    INCOMPLETE_EXPIRED = "incomplete_expired", _("Incomplete Expired")
    PAUSED = "paused", _("Paused")


# Statuses that count as "has an active subscription" for display purposes.
ACTIVE_STATUSES = frozenset({SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING})

# Stripe statuses that demote an organization to RESTRICTED on sync.
RESTRICTING_STATUSES = frozenset(
    {SubscriptionStatus.UNPAID, SubscriptionStatus.CANCELED},
)


class ProrationBehavior(models.TextChoices):
    """Stripe proration modes for quantity changes."""

    CREATE_PRORATIONS = "create_prorations", _("Create prorations")
    NONE = "none", _("None")
    ALWAYS_INVOICE = "always_invoice", _("Always invoice")


class SeatStatus(models.TextChoices):
    AVAILABLE = "available", _("Seats available")
    FULL = "full", _("At limit")
    OVER_LIMIT = "over-limit", _("Over limit")


# A deletion this far before period end counts as an immediate cancellation
IMMEDIATE_CANCELLATION_SLACK_SECONDS = 60

# Initial plan rows, also used by the seed_plans command and data migration.
PLAN_CONFIG = {
    PlanCode.TRIAL: {
        "name": "Trial",
        "description": "14-day free trial with full access.",
        "seat_price_cents": 0,
        "is_paid": False,
        "display_order": 0,
    },
    PlanCode.STARTER: {
        "name": "Starter",
        "description": "Per-seat billing for admins and verifiers.",
        "seat_price_cents": 900,
        "is_paid": True,
        "display_order": 1,
    },
    PlanCode.PROFESSIONAL: {
        "name": "Professional",
        "description": "Per-seat billing with priority support.",
        "seat_price_cents": 900,
        "is_paid": True,
        "display_order": 2,
    },
    PlanCode.ENTERPRISE: {
        "name": "Enterprise",
        "description": "Custom contracts. Contact sales.",
        "seat_price_cents": 900,
        "is_paid": True,
        "display_order": 3,
    },
    PlanCode.RESTRICTED: {
        "name": "Restricted",
        "description": "No active subscription. Access is blocked.",
        "seat_price_cents": 0,
        "is_paid": False,
        "display_order": 4,
    },
}
