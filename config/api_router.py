"""
Public API router.

Billing routes cover seat accounting, subscription status and the access
check. Stripe's webhook endpoint is mounted separately under /stripe/.
"""

from django.urls import include
from django.urls import path

app_name = "api"
urlpatterns = [
    path("billing/", include("verifyhub.billing.urls", namespace="billing")),
]
