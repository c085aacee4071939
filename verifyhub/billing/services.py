"""
Billing service for Stripe operations.

This service is the only place that talks to the Stripe API. It provides:
- Reading and changing the seat quantity on a subscription item
- Creating Stripe Checkout sessions (subscription signup)
- Creating Stripe Customer Portal sessions (self-service management)
- Getting or creating Stripe customers
- Pulling subscription state from Stripe for manual reconciliation

Every Stripe failure is logged and re-raised as StripeServiceError, keeping
Stripe's own error code, type and parameter.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from dataclasses import field
from datetime import UTC
from datetime import datetime
from typing import TYPE_CHECKING
from typing import Any

import stripe
from django.conf import settings

from verifyhub.billing.exceptions import InvalidSeatChangeError
from verifyhub.billing.exceptions import StripeServiceError

if TYPE_CHECKING:
    from verifyhub.billing.models import Plan
    from verifyhub.billing.models import Subscription
    from verifyhub.users.models import Organization
    from verifyhub.users.models import User

logger = logging.getLogger(__name__)


def stripe_field(obj: Any, key: str, default: Any = None) -> Any:
    """Read a key from a Stripe object or a plain webhook payload dict."""
    if obj is None:
        return default
    try:
        value = obj[key]
    except (KeyError, TypeError):
        return default
    return default if value is None else value


def as_plain_dict(value: Any) -> dict:
    """Copy Stripe metadata into a plain dict."""
    if not value:
        return {}
    if hasattr(value, "to_dict"):
        return dict(value.to_dict())
    return dict(value)


def from_timestamp(value: int | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=UTC)


def first_subscription_item(stripe_sub: Any) -> Any | None:
    items = stripe_field(stripe_field(stripe_sub, "items"), "data", [])
    return items[0] if items else None


@dataclass(frozen=True)
class SubscriptionItem:
    """The seat-carrying line of a Stripe subscription."""

    id: str
    quantity: int
    current_period_end: datetime | None
    metadata: dict = field(default_factory=dict)


@dataclass(frozen=True)
class UpdatedSubscriptionItem:
    quantity: int
    current_period_end: datetime | None
    raw: Any = None


class BillingService:
    """
    Service for Stripe billing operations.

    Uses Stripe Checkout for payments and the Customer Portal for
    self-service management. Construct one per request or job and pass it to
    the services that need Stripe; tests substitute a mock.

    Usage:
        service = BillingService()
        item = service.get_subscription_item(subscription.stripe_subscription_id)
        service.update_subscription_item(
            subscription.stripe_subscription_id,
            item.id,
            quantity=item.quantity + 1,
            proration_behavior="always_invoice",
            metadata={**item.metadata, "user_count": str(item.quantity + 1)},
        )
    """

    def __init__(self):
        """Initialize with Stripe API key from settings."""
        stripe.api_key = settings.STRIPE_SECRET_KEY

    # -------------------------------------------------------------------------
    # Seat quantity
    # -------------------------------------------------------------------------

    def retrieve_subscription(self, subscription_id: str) -> Any:
        try:
            return stripe.Subscription.retrieve(subscription_id)
        except stripe.StripeError as e:
            logger.exception("Failed to retrieve Stripe subscription %s", subscription_id)
            raise StripeServiceError.from_stripe(
                "Failed to retrieve subscription",
                e,
            ) from e

    def get_subscription_item(self, subscription_id: str) -> SubscriptionItem:
        """
        Read the authoritative seat quantity from Stripe.

        Raises:
            StripeServiceError: If Stripe can't be reached or rejects the call
            InvalidSeatChangeError: If the subscription has no items
        """
        stripe_sub = self.retrieve_subscription(subscription_id)
        item = first_subscription_item(stripe_sub)
        if item is None:
            raise InvalidSeatChangeError(
                "No subscription items found",
                code="no_subscription_items",
            )

        # Newer API versions carry the period on the item, older ones on the
        # subscription.
        period_end = stripe_field(item, "current_period_end") or stripe_field(
            stripe_sub,
            "current_period_end",
        )
        return SubscriptionItem(
            id=stripe_field(item, "id"),
            quantity=stripe_field(item, "quantity", 1),
            current_period_end=from_timestamp(period_end),
            metadata=as_plain_dict(stripe_field(stripe_sub, "metadata")),
        )

    def update_subscription_item(
        self,
        subscription_id: str,
        item_id: str,
        *,
        quantity: int,
        proration_behavior: str,
        metadata: dict | None = None,
    ) -> UpdatedSubscriptionItem:
        """
        Change the seat quantity on a subscription item.

        Raises:
            StripeServiceError: If Stripe rejects the update
        """
        try:
            updated = stripe.Subscription.modify(
                subscription_id,
                items=[{"id": item_id, "quantity": quantity}],
                proration_behavior=proration_behavior,
                metadata=metadata or {},
            )
        except stripe.StripeError as e:
            logger.exception(
                "Failed to update quantity on Stripe subscription %s",
                subscription_id,
            )
            raise StripeServiceError.from_stripe(
                "Failed to update subscription quantity",
                e,
            ) from e

        item = first_subscription_item(updated)
        period_end = stripe_field(item, "current_period_end") or stripe_field(
            updated,
            "current_period_end",
        )
        logger.info(
            "Updated Stripe subscription %s quantity to %s (proration=%s)",
            subscription_id,
            stripe_field(item, "quantity", quantity),
            proration_behavior,
        )
        return UpdatedSubscriptionItem(
            quantity=stripe_field(item, "quantity", quantity),
            current_period_end=from_timestamp(period_end),
            raw=updated,
        )

    # -------------------------------------------------------------------------
    # Customers, Checkout and Portal
    # -------------------------------------------------------------------------

    def get_or_create_stripe_customer(
        self,
        org: Organization,
        email: str = "",
    ) -> str:
        """
        Get existing Stripe customer or create a new one.

        Returns the Stripe customer ID (cus_xxx).
        """
        subscription = org.subscription

        if subscription.stripe_customer_id:
            return subscription.stripe_customer_id

        try:
            customer = stripe.Customer.create(
                email=email or self._get_billing_email(org),
                name=org.name,
                metadata={
                    "organization_id": str(org.id),
                    "org_name": org.name,
                },
            )
        except stripe.StripeError as e:
            logger.exception("Failed to create Stripe customer for org %s", org.id)
            raise StripeServiceError.from_stripe("Failed to create customer", e) from e

        subscription.stripe_customer_id = customer.id
        subscription.save(update_fields=["stripe_customer_id", "modified"])

        logger.info(
            "Created Stripe customer %s for org %s",
            customer.id,
            org.name,
        )

        return customer.id

    def create_checkout_session(
        self,
        org: Organization,
        plan: Plan,
        success_url: str,
        cancel_url: str,
        *,
        quantity: int = 1,
        user: User | None = None,
    ) -> str:
        """
        Create a Stripe Checkout session for a per-seat subscription.

        Returns the checkout session URL to redirect the user to. The
        organization id and seat count travel in subscription metadata so
        the webhook handlers can find the organization again.

        Raises:
            InvalidSeatChangeError: If plan has no stripe_price_id configured
            StripeServiceError: If Stripe rejects the session
        """
        if not plan.stripe_price_id:
            raise InvalidSeatChangeError(
                f"Plan {plan.code} has no stripe_price_id configured",
                code="plan_not_purchasable",
            )

        quantity = max(1, quantity)
        customer_id = self.get_or_create_stripe_customer(
            org,
            email=user.email if user else "",
        )
        metadata = {
            "organization_id": str(org.id),
            "plan_name": plan.code,
            "user_count": str(quantity),
        }
        if user is not None:
            metadata["user_id"] = str(user.id)

        try:
            session = stripe.checkout.Session.create(
                customer=customer_id,
                mode="subscription",
                line_items=[
                    {
                        "price": plan.stripe_price_id,
                        "quantity": quantity,
                    },
                ],
                success_url=success_url,
                cancel_url=cancel_url,
                client_reference_id=str(org.id),
                metadata=metadata,
                subscription_data={"metadata": metadata},
                allow_promotion_codes=True,
            )
        except stripe.StripeError as e:
            logger.exception("Failed to create checkout session for org %s", org.id)
            raise StripeServiceError.from_stripe(
                "Failed to create checkout session",
                e,
            ) from e

        logger.info(
            "Created checkout session %s for org %s, plan %s, seats=%d",
            session.id,
            org.name,
            plan.code,
            quantity,
        )

        return session.url

    def get_customer_portal_url(
        self,
        org: Organization,
        return_url: str,
    ) -> str:
        """
        Get a Stripe Customer Portal URL for self-service management.

        The portal lets customers update payment methods, view invoices and
        cancel their subscription.
        """
        customer_id = self.get_or_create_stripe_customer(org)

        try:
            session = stripe.billing_portal.Session.create(
                customer=customer_id,
                return_url=return_url,
            )
        except stripe.StripeError as e:
            logger.exception("Failed to create portal session for org %s", org.id)
            raise StripeServiceError.from_stripe(
                "Failed to create portal session",
                e,
            ) from e

        logger.info(
            "Created portal session for org %s",
            org.name,
        )

        return session.url

    def _get_billing_email(self, org: Organization) -> str:
        """
        Get the billing contact email for an organization.

        Returns the first admin's email, or any user's as a fallback.
        """
        from verifyhub.users.constants import RoleCode

        users = org.users.exclude(email="").order_by("id")
        admin = users.filter(role=RoleCode.ADMIN).first()
        if admin:
            return admin.email
        user = users.first()
        return user.email if user else ""

    # -------------------------------------------------------------------------
    # Reconciliation
    # -------------------------------------------------------------------------

    def sync_subscription_from_stripe(
        self,
        org: Organization,
    ) -> Subscription | None:
        """
        Overwrite the local subscription with Stripe's current state.

        Used by the reconcile_seats command, e.g. after a partially applied
        seat change. Returns None when there is nothing to sync.
        """
        from verifyhub.billing.sync import apply_stripe_subscription

        subscription = org.subscription

        if not subscription.stripe_subscription_id:
            logger.warning(
                "Cannot sync: org %s has no stripe_subscription_id",
                org.name,
            )
            return None

        stripe_sub = self.retrieve_subscription(subscription.stripe_subscription_id)
        synced = apply_stripe_subscription(stripe_sub, org_id=org.id)
        logger.info(
            "Synced subscription for org %s: status=%s, seats=%s",
            org.name,
            synced.status if synced else None,
            synced.user_count if synced else None,
        )
        return synced
