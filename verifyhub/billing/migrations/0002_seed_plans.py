from django.db import migrations

PLANS = [
    ("TRIAL", "Trial", "14-day free trial with full access.", 0, False, 0),
    ("STARTER", "Starter", "Per-seat billing for admins and verifiers.", 900, True, 1),
    ("PROFESSIONAL", "Professional", "Per-seat billing with priority support.", 900, True, 2),  # noqa: E501
    ("ENTERPRISE", "Enterprise", "Custom contracts. Contact sales.", 900, True, 3),
    ("RESTRICTED", "Restricted", "No active subscription. Access is blocked.", 0, False, 4),  # noqa: E501
]


def seed_plans(apps, schema_editor):
    Plan = apps.get_model("billing", "Plan")
    for code, name, description, seat_price_cents, is_paid, display_order in PLANS:
        Plan.objects.update_or_create(
            code=code,
            defaults={
                "name": name,
                "description": description,
                "seat_price_cents": seat_price_cents,
                "is_paid": is_paid,
                "display_order": display_order,
            },
        )


class Migration(migrations.Migration):
    dependencies = [
        ("billing", "0001_initial"),
    ]

    operations = [
        migrations.RunPython(seed_plans, migrations.RunPython.noop),
    ]
