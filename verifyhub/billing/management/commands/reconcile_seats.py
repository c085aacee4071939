"""
Overwrite local subscriptions with Stripe's current state.

Repairs rows left behind when Stripe accepted a seat change but the local
update failed, or when webhooks were missed. Stripe wins.

Usage:
    python manage.py reconcile_seats --org 42
    python manage.py reconcile_seats --all
    python manage.py reconcile_seats --all --dry-run
"""

from django.core.management.base import BaseCommand
from django.core.management.base import CommandError

from verifyhub.billing.exceptions import StripeServiceError
from verifyhub.billing.models import Subscription
from verifyhub.billing.services import BillingService


class Command(BaseCommand):
    help = "Re-read seat quantity and status from Stripe and overwrite local rows"

    def add_arguments(self, parser):
        target = parser.add_mutually_exclusive_group(required=True)
        target.add_argument("--org", type=int, help="Organization id to reconcile")
        target.add_argument(
            "--all",
            action="store_true",
            help="Reconcile every subscription with a Stripe subscription id",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Report differences without writing",
        )

    def handle(self, *args, **options):
        subscriptions = Subscription.objects.select_related("org").exclude(
            stripe_subscription_id="",
        )
        if options["org"] is not None:
            subscriptions = subscriptions.filter(org_id=options["org"])
            if not subscriptions.exists():
                raise CommandError(
                    f"Organization {options['org']} has no Stripe subscription",
                )

        service = BillingService()
        failures = 0
        for subscription in subscriptions:
            org = subscription.org
            before = (subscription.status, subscription.user_count)
            try:
                if options["dry_run"]:
                    item = service.get_subscription_item(
                        subscription.stripe_subscription_id,
                    )
                    self.stdout.write(
                        f"  {org.name}: local seats={subscription.user_count}, "
                        f"stripe seats={item.quantity}",
                    )
                    continue
                synced = service.sync_subscription_from_stripe(org)
            except StripeServiceError as e:
                failures += 1
                self.stderr.write(self.style.ERROR(f"  {org.name}: {e.detail}"))
                continue

            if synced is None:
                self.stdout.write(self.style.WARNING(f"  {org.name}: not synced"))
                continue
            after = (synced.status, synced.user_count)
            if after == before:
                self.stdout.write(f"  {org.name}: in sync ({after[0]}, {after[1]} seats)")
            else:
                self.stdout.write(
                    self.style.SUCCESS(
                        f"  {org.name}: {before[0]}/{before[1]} seats → "
                        f"{after[0]}/{after[1]} seats",
                    ),
                )

        if failures:
            raise CommandError(f"{failures} subscription(s) could not be reconciled")
