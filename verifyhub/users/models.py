from __future__ import annotations

import logging
from datetime import UTC
from datetime import datetime
from datetime import timedelta
from uuid import uuid4

from django.conf import settings
from django.contrib.auth.models import AbstractUser
from django.db import models
from django.db.models import CharField
from django.utils.text import slugify
from django.utils.translation import gettext_lazy as _
from model_utils.models import TimeStampedModel

from verifyhub.users.constants import BILLABLE_ROLES
from verifyhub.users.constants import RoleCode

logger = logging.getLogger(__name__)


def _generate_unique_slug(model, base: str) -> str:
    base_slug = slugify(base) or uuid4().hex[:10]
    slug = base_slug
    counter = 2
    while model.objects.filter(slug=slug).exists():
        slug = f"{base_slug}-{counter}"
        counter += 1
    return slug


def _create_trial_subscription(org: Organization):
    """
    Create the trial subscription for a newly provisioned organization.

    Every organization starts on the TRIAL plan with a fixed trial window
    and no purchased seat count. Returns the existing row untouched if the
    organization already has one.

    Uses local imports to avoid circular dependencies with billing app.
    """
    from verifyhub.billing.constants import PlanCode
    from verifyhub.billing.constants import SubscriptionStatus
    from verifyhub.billing.models import Plan
    from verifyhub.billing.models import Subscription

    existing = Subscription.objects.filter(org=org).first()
    if existing:
        logger.warning("Organization %s already has a subscription", org.pk)
        return existing

    now = datetime.now(tz=UTC)
    trial_plan = Plan.objects.get(code=PlanCode.TRIAL)

    subscription = Subscription.objects.create(
        org=org,
        plan=trial_plan,
        status=SubscriptionStatus.TRIALING,
        trial_start_date=now,
        trial_end_date=now + timedelta(days=settings.BILLING_TRIAL_DAYS),
    )
    logger.info(
        "Created %d-day trial subscription for org=%s",
        settings.BILLING_TRIAL_DAYS,
        org.pk,
    )
    return subscription


class Organization(TimeStampedModel):
    """
    A customer tenant. Owns one subscription and a directory of users.
    """

    name = CharField(
        max_length=255,
        help_text=_("Name of the organization, e.g. 'Contoso IT'"),
    )
    slug = models.SlugField(
        unique=True,
        blank=True,
    )
    azure_tenant_id = models.CharField(
        max_length=64,
        blank=True,
        default="",
        help_text=_("Directory tenant the organization signs in with."),
    )

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        """Override save to ensure slug is set if not provided."""
        if not self.slug:
            self.slug = _generate_unique_slug(Organization, self.name)
        super().save(*args, **kwargs)


class User(AbstractUser):
    """
    Default custom user model for verifyhub.

    Each user belongs to at most one organization and holds one directory
    role. Only admin and verifier roles occupy a paid seat.
    """

    # First and last name do not cover name patterns around the globe
    name = CharField(_("Name of User"), blank=True, max_length=255)
    first_name = None  # type: ignore[assignment]
    last_name = None  # type: ignore[assignment]

    org = models.ForeignKey(
        Organization,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="users",
    )
    role = models.CharField(
        max_length=16,
        choices=RoleCode.choices,
        default=RoleCode.BASIC,
    )
    azure_object_id = models.CharField(
        max_length=64,
        blank=True,
        default="",
        help_text=_("Object id of the user in the organization's directory."),
    )

    def __str__(self):
        return self.name or self.username

    @property
    def is_billable(self) -> bool:
        return self.role in BILLABLE_ROLES

    @property
    def is_org_admin(self) -> bool:
        return self.role == RoleCode.ADMIN
