"""
Stripe webhook handlers using dj-stripe signals.

dj-stripe verifies the signature, stores the event and then fires one
signal per event type from djstripe.signals.WEBHOOK_SIGNALS. The receivers
below translate those events into updates of our Subscription row; the
mapping itself lives in verifyhub.billing.sync.

Key events handled:
- customer.subscription.created / updated: Overwrite plan, status, seats, period
- customer.subscription.deleted: Mark canceled (grace period kept)
- checkout.session.completed: Pull the new subscription from Stripe and sync
- invoice.payment_succeeded: Recover incomplete / past_due subscriptions
- invoice.payment_failed: Mark past_due

Delivery is at-least-once and unordered; every handler is an idempotent
overwrite.

To test locally:
    stripe listen --forward-to localhost:8000/stripe/webhook/
"""

import logging

from django.dispatch import receiver
from djstripe.signals import WEBHOOK_SIGNALS

from verifyhub.billing.services import BillingService
from verifyhub.billing.services import stripe_field
from verifyhub.billing.sync import apply_invoice_payment_failed
from verifyhub.billing.sync import apply_invoice_payment_succeeded
from verifyhub.billing.sync import apply_stripe_subscription
from verifyhub.billing.sync import apply_subscription_deleted

logger = logging.getLogger(__name__)


@receiver(WEBHOOK_SIGNALS["customer.subscription.created"])
@receiver(WEBHOOK_SIGNALS["customer.subscription.updated"])
def handle_subscription_changed(sender, event, **kwargs):
    """
    Sync subscription changes from Stripe.

    Handles new subscriptions, seat changes made in the Stripe dashboard,
    status transitions and scheduled cancellations.
    """
    stripe_sub = event.data["object"]
    metadata = stripe_field(stripe_sub, "metadata", {})

    logger.info(
        "subscription event: id=%s, status=%s, org_id=%s",
        stripe_field(stripe_sub, "id"),
        stripe_field(stripe_sub, "status"),
        stripe_field(metadata, "organization_id"),
    )

    if not stripe_field(metadata, "organization_id"):
        logger.error(
            "Stripe subscription %s has no organization_id in metadata",
            stripe_field(stripe_sub, "id"),
        )
        return

    apply_stripe_subscription(stripe_sub)


@receiver(WEBHOOK_SIGNALS["customer.subscription.deleted"])
def handle_subscription_deleted(sender, event, **kwargs):
    """
    Mark the subscription canceled when Stripe ends it.

    Access is not revoked here; the access check restricts the organization
    once any remaining paid period has elapsed.
    """
    stripe_sub = event.data["object"]

    logger.info(
        "customer.subscription.deleted: id=%s, customer=%s",
        stripe_field(stripe_sub, "id"),
        stripe_field(stripe_sub, "customer"),
    )

    apply_subscription_deleted(stripe_sub)


@receiver(WEBHOOK_SIGNALS["checkout.session.completed"])
def handle_checkout_completed(sender, event, **kwargs):
    """
    Provision the paid subscription after a successful Stripe Checkout.

    The session only carries the subscription id, so we fetch the full
    subscription from Stripe before syncing.
    """
    session = event.data["object"]

    if stripe_field(session, "mode") != "subscription" or not stripe_field(
        session,
        "subscription",
    ):
        logger.info(
            "Ignoring checkout.session.completed %s (mode=%s)",
            stripe_field(session, "id"),
            stripe_field(session, "mode"),
        )
        return

    org_id = stripe_field(
        stripe_field(session, "metadata", {}),
        "organization_id",
    ) or stripe_field(session, "client_reference_id")

    logger.info("checkout.session.completed for org_id=%s", org_id)

    stripe_sub = BillingService().retrieve_subscription(
        stripe_field(session, "subscription"),
    )
    apply_stripe_subscription(stripe_sub, org_id=org_id)


@receiver(WEBHOOK_SIGNALS["invoice.payment_succeeded"])
def handle_payment_succeeded(sender, event, **kwargs):
    invoice = event.data["object"]

    logger.info(
        "invoice.payment_succeeded: customer=%s, amount=%s",
        stripe_field(invoice, "customer"),
        stripe_field(invoice, "amount_paid"),
    )

    apply_invoice_payment_succeeded(invoice)


@receiver(WEBHOOK_SIGNALS["invoice.payment_failed"])
def handle_payment_failed(sender, event, **kwargs):
    """
    Handle failed payment.

    The plan is kept; Stripe retries on its own schedule and a later
    invoice.payment_succeeded restores the active status.
    """
    invoice = event.data["object"]

    logger.warning(
        "invoice.payment_failed: customer=%s, amount=%s",
        stripe_field(invoice, "customer"),
        stripe_field(invoice, "amount_due"),
    )

    apply_invoice_payment_failed(invoice)
