"""
Management command to seed billing plans and link them to Stripe prices.

Creates the five plan rows (TRIAL, STARTER, PROFESSIONAL, ENTERPRISE,
RESTRICTED). Stripe price ids are what webhooks use to resolve a paid
tier, so they are set per environment, either explicitly or from
dj-stripe's synced Price table.

Explicit linking:
    python manage.py seed_plans --price STARTER=price_123 --price PROFESSIONAL=price_456

Linking from dj-stripe requires Products in Stripe with metadata
plan_code=STARTER|PROFESSIONAL|ENTERPRISE and a prior
`python manage.py djstripe_sync_models Price`.

Usage:
    python manage.py seed_plans                 # Create missing plans
    python manage.py seed_plans --force         # Also refresh existing plans
    python manage.py seed_plans --link-stripe   # Link prices from dj-stripe
"""

from django.core.management.base import BaseCommand
from django.core.management.base import CommandError
from django.db import OperationalError

from verifyhub.billing.constants import PAID_PLAN_CODES
from verifyhub.billing.constants import PLAN_CONFIG
from verifyhub.billing.models import Plan


class Command(BaseCommand):
    help = "Seed billing plans and link paid plans to Stripe prices"

    def add_arguments(self, parser):
        parser.add_argument(
            "--force",
            action="store_true",
            help="Update existing plans with the latest configuration",
        )
        parser.add_argument(
            "--price",
            action="append",
            default=[],
            metavar="PLAN=PRICE_ID",
            help="Set a plan's Stripe price id, e.g. STARTER=price_123",
        )
        parser.add_argument(
            "--link-stripe",
            action="store_true",
            help="Link paid plans to prices synced by dj-stripe",
        )

    def handle(self, *args, **options):
        price_ids = self._parse_prices(options["price"])

        self._seed_plans(force_update=options["force"])

        if options["link_stripe"]:
            self._link_stripe_prices()

        for code, price_id in price_ids.items():
            self._set_price(Plan.objects.get(code=code), price_id)

        self._show_summary()

    def _parse_prices(self, values: list[str]) -> dict[str, str]:
        price_ids = {}
        for value in values:
            code, sep, price_id = value.partition("=")
            code = code.strip().upper()
            if not sep or not price_id.strip():
                raise CommandError(f"Expected PLAN=PRICE_ID, got {value!r}")
            if code not in PAID_PLAN_CODES:
                raise CommandError(f"{code} is not a paid plan")
            price_ids[code] = price_id.strip()
        return price_ids

    def _seed_plans(self, force_update: bool):
        for plan_code, config in PLAN_CONFIG.items():
            plan, created = Plan.objects.get_or_create(
                code=plan_code,
                defaults=config,
            )

            if created:
                self.stdout.write(self.style.SUCCESS(f"  Created: {plan.name}"))
            elif force_update:
                # Everything except stripe_price_id
                for field, value in config.items():
                    setattr(plan, field, value)
                plan.save()
                self.stdout.write(self.style.SUCCESS(f"  Updated: {plan.name}"))
            else:
                self.stdout.write(f"  Exists: {plan.name} (use --force to update)")

    def _set_price(self, plan: Plan, price_id: str):
        if plan.stripe_price_id == price_id:
            self.stdout.write(f"  {plan.name}: Already linked to {price_id}")
            return
        old = plan.stripe_price_id or "(none)"
        plan.stripe_price_id = price_id
        plan.save(update_fields=["stripe_price_id"])
        self.stdout.write(self.style.SUCCESS(f"  {plan.name}: {old} → {price_id}"))

    def _link_stripe_prices(self):
        """Link paid plans to active recurring prices from dj-stripe."""
        from djstripe.models import Price

        try:
            prices = list(
                Price.objects.filter(active=True, type="recurring").select_related(
                    "product",
                ),
            )
        except OperationalError as e:
            self.stdout.write(
                self.style.WARNING(
                    f"  Cannot access dj-stripe tables: {e}\n"
                    "    Run: python manage.py migrate djstripe",
                ),
            )
            return

        if not prices:
            self.stdout.write(
                self.style.WARNING(
                    "  No active recurring Stripe prices in the database.\n"
                    "    Run: python manage.py djstripe_sync_models Price",
                ),
            )
            return

        linked = set()
        for price in prices:
            metadata = price.product.metadata if price.product else {}
            plan_code = (metadata or {}).get("plan_code", "").upper()
            if plan_code not in PAID_PLAN_CODES:
                continue
            if plan_code in linked:
                self.stdout.write(
                    self.style.WARNING(
                        f"  Multiple prices for {plan_code}, keeping the first",
                    ),
                )
                continue
            self._set_price(Plan.objects.get(code=plan_code), price.id)
            linked.add(plan_code)

        for code in sorted(PAID_PLAN_CODES - linked):
            self.stdout.write(
                self.style.WARNING(
                    f"  {code}: no price found (add plan_code={code} to the Stripe product)",
                ),
            )

    def _show_summary(self):
        self.stdout.write("\nPlans:")
        for plan in Plan.objects.all():
            if plan.code in PAID_PLAN_CODES:
                price = plan.stripe_price_id or "NOT LINKED"
            else:
                price = "-"
            self.stdout.write(f"  {plan.code:<14} {plan.name:<14} {price}")
