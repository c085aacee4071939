from django.db import models
from django.utils.translation import gettext_lazy as _


class RoleCode(models.TextChoices):
    """
    Directory roles inside an organization.

    ADMIN and VERIFIER occupy a paid seat; BASIC users are free and are
    never counted against the subscription.
    """

    ADMIN = "admin", _("Admin")
    VERIFIER = "verifier", _("Verifier")
    BASIC = "basic", _("Basic")


BILLABLE_ROLES = frozenset({RoleCode.ADMIN, RoleCode.VERIFIER})
