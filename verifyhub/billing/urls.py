"""
URL configuration for the billing API.

Mounted under /api/billing/ by config.api_router.

Routes:
- organizations/<org_id>/user-count/  - Billable user count and price (GET)
- subscription/                       - Subscription summary (GET)
- subscription/access/                - Access check with lazy demotion (POST)
- subscription/quantity/              - Change purchased seats (POST)
- seats/                              - Seat usage and add-user preview (GET)
- users/                              - Add a user with seat accounting (POST)
- users/<user_id>/                    - Remove a user (DELETE)
- checkout/                           - Start Stripe Checkout (POST)
- portal/                             - Stripe Customer Portal URL (POST)
"""

from django.urls import path

from verifyhub.billing.views import CheckoutView
from verifyhub.billing.views import CustomerPortalView
from verifyhub.billing.views import DirectoryUserDetailView
from verifyhub.billing.views import DirectoryUsersView
from verifyhub.billing.views import OrganizationUserCountView
from verifyhub.billing.views import SeatQuantityView
from verifyhub.billing.views import SeatsView
from verifyhub.billing.views import SubscriptionAccessView
from verifyhub.billing.views import SubscriptionStatusView

app_name = "billing"

urlpatterns = [
    path(
        "organizations/<int:org_id>/user-count/",
        OrganizationUserCountView.as_view(),
        name="user-count",
    ),
    path(
        "subscription/",
        SubscriptionStatusView.as_view(),
        name="subscription",
    ),
    path(
        "subscription/access/",
        SubscriptionAccessView.as_view(),
        name="subscription-access",
    ),
    path(
        "subscription/quantity/",
        SeatQuantityView.as_view(),
        name="subscription-quantity",
    ),
    path(
        "seats/",
        SeatsView.as_view(),
        name="seats",
    ),
    path(
        "users/",
        DirectoryUsersView.as_view(),
        name="users",
    ),
    path(
        "users/<int:user_id>/",
        DirectoryUserDetailView.as_view(),
        name="user-detail",
    ),
    path(
        "checkout/",
        CheckoutView.as_view(),
        name="checkout",
    ),
    path(
        "portal/",
        CustomerPortalView.as_view(),
        name="portal",
    ),
]
