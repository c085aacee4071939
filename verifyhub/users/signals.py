from __future__ import annotations

from django.db.models.signals import post_save
from django.dispatch import receiver

from verifyhub.users.models import Organization
from verifyhub.users.models import _create_trial_subscription


@receiver(post_save, sender=Organization)
def provision_trial_subscription(sender, instance, created, **kwargs):
    if not created:
        return
    _create_trial_subscription(instance)
