"""
Billing middleware for subscription enforcement.

Runs the access policy on each authenticated request and answers
402 Payment Required when the organization's subscription no longer grants
access. The policy performs trial and grace-period demotions as a side
effect, so the first request after expiry is what moves the organization
to RESTRICTED.
"""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import TYPE_CHECKING

from django.conf import settings
from django.http import JsonResponse

from verifyhub.billing.access import SubscriptionAccessPolicy

if TYPE_CHECKING:
    from django.http import HttpRequest
    from django.http import HttpResponse

logger = logging.getLogger(__name__)


class SubscriptionAccessMiddleware:
    """
    Block organizations without subscription access.

    This middleware should be added after AuthenticationMiddleware.
    """

    # Paths that don't require an active subscription
    EXEMPT_PATH_PREFIXES = [
        # Billing, so restricted organizations can pay
        "/api/billing/",
        "/stripe/",
        # Authentication and API docs
        "/api/auth-token/",
        "/api/schema/",
        "/api/docs/",
        # Static files
        "/static/",
    ]

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        user = getattr(request, "user", None)
        if user is None or not user.is_authenticated:
            return self.get_response(request)

        if self._is_exempt_path(request.path):
            return self.get_response(request)

        org = getattr(user, "org", None)
        if org is None:
            return self.get_response(request)

        subscription = getattr(org, "subscription", None)
        if subscription is None:
            # Organization still being provisioned
            return self.get_response(request)

        decision = SubscriptionAccessPolicy().check_access(subscription)
        if not decision.has_access:
            logger.info(
                "Blocked request to %s for org=%s: %s",
                request.path,
                org.id,
                decision.reason,
            )
            return JsonResponse(
                {
                    "detail": decision.reason,
                    "code": "subscription_inactive",
                    "status": subscription.status,
                },
                status=HTTPStatus.PAYMENT_REQUIRED,
            )

        return self.get_response(request)

    def _is_exempt_path(self, path: str) -> bool:
        # Django admin, wherever ADMIN_URL mounts it
        admin_prefix = "/" + settings.ADMIN_URL.lstrip("/")
        if path.startswith(admin_prefix):
            return True
        return any(path.startswith(prefix) for prefix in self.EXEMPT_PATH_PREFIXES)
