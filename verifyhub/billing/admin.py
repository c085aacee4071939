"""
Django admin configuration for billing models.

Provides admin interfaces for:
- Plan: View/edit pricing plans and Stripe price IDs
- Subscription: View/manage organization subscriptions
- SeatChange: Read-only seat change history
"""

from django.contrib import admin

from verifyhub.billing.models import Plan
from verifyhub.billing.models import SeatChange
from verifyhub.billing.models import Subscription


@admin.register(Plan)
class PlanAdmin(admin.ModelAdmin):
    list_display = [
        "code",
        "name",
        "seat_price_cents",
        "is_paid",
        "stripe_price_id",
        "display_order",
    ]
    list_editable = ["stripe_price_id", "display_order"]
    ordering = ["display_order"]
    search_fields = ["code", "name"]

    fieldsets = [
        (None, {"fields": ["code", "name", "description", "is_paid"]}),
        (
            "Pricing & Stripe",
            {
                "fields": ["seat_price_cents", "stripe_price_id"],
                "description": "Webhooks map a Stripe Price ID (price_xxx) to this plan.",
            },
        ),
        ("Display", {"fields": ["display_order"]}),
    ]


class SeatChangeInline(admin.TabularInline):
    model = SeatChange
    extra = 0
    can_delete = False
    fields = [
        "created",
        "old_user_count",
        "new_user_count",
        "proration_behavior",
        "requested_by",
    ]
    readonly_fields = fields


@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    """Admin for organization subscriptions."""

    list_display = [
        "org",
        "plan",
        "status",
        "user_count",
        "trial_end_date",
        "current_period_end",
        "stripe_subscription_id",
    ]
    list_filter = ["status", "plan", "cancel_at_period_end"]
    search_fields = ["org__name", "stripe_customer_id", "stripe_subscription_id"]
    raw_id_fields = ["org"]
    readonly_fields = ["created", "modified"]
    inlines = [SeatChangeInline]

    fieldsets = [
        (None, {"fields": ["org", "plan", "status", "user_count"]}),
        ("Trial", {"fields": ["trial_start_date", "trial_end_date"]}),
        (
            "Billing Period",
            {
                "fields": [
                    "current_period_start",
                    "current_period_end",
                    "cancel_at_period_end",
                    "cancel_at",
                ],
            },
        ),
        (
            "Stripe",
            {
                "fields": [
                    "stripe_customer_id",
                    "stripe_subscription_id",
                    "stripe_price_id",
                ],
                "description": (
                    "Overwritten by webhooks. Use the reconcile_seats command "
                    "rather than editing by hand."
                ),
            },
        ),
        ("Timestamps", {"fields": ["created", "modified"]}),
    ]


@admin.register(SeatChange)
class SeatChangeAdmin(admin.ModelAdmin):
    list_display = [
        "subscription",
        "old_user_count",
        "new_user_count",
        "proration_behavior",
        "requested_by",
        "created",
    ]
    list_filter = ["proration_behavior", "created"]
    search_fields = ["subscription__org__name", "stripe_subscription_id"]
    raw_id_fields = ["subscription", "requested_by"]
    readonly_fields = ["created", "modified"]
