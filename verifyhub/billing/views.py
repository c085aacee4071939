"""
Billing API views.

JSON endpoints for seat accounting, subscription status, and the Stripe
Checkout and Customer Portal hand-offs. Every endpoint acts on the
requesting user's own organization.

BillingError subclasses raised anywhere below are rendered as
{"detail", "code", ...extra} with the exception's HTTP status.
"""

from __future__ import annotations

import logging
from http import HTTPStatus

from drf_spectacular.utils import OpenApiResponse
from drf_spectacular.utils import extend_schema
from drf_spectacular.utils import inline_serializer
from rest_framework import serializers
from rest_framework import status
from rest_framework.exceptions import NotFound
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from verifyhub.billing.access import SubscriptionAccessPolicy
from verifyhub.billing.exceptions import BillingError
from verifyhub.billing.exceptions import OrganizationNotFoundError
from verifyhub.billing.exceptions import SeatChangeForbiddenError
from verifyhub.billing.exceptions import SubscriptionNotFoundError
from verifyhub.billing.metering import BillableUserCounter
from verifyhub.billing.models import Plan
from verifyhub.billing.seat_changes import SeatChangeService
from verifyhub.billing.seats import calculate_seat_info
from verifyhub.billing.seats import format_seat_info
from verifyhub.billing.seats import get_seat_status
from verifyhub.billing.seats import handle_remove_user
from verifyhub.billing.serializers import AddUserSerializer
from verifyhub.billing.serializers import CheckoutSerializer
from verifyhub.billing.serializers import PortalSerializer
from verifyhub.billing.serializers import SeatQuantityUpdateSerializer
from verifyhub.billing.serializers import SubscriptionSerializer
from verifyhub.billing.services import BillingService
from verifyhub.users.constants import BILLABLE_ROLES
from verifyhub.users.models import Organization
from verifyhub.users.models import User

logger = logging.getLogger(__name__)

BILLING_ERROR_RESPONSE = inline_serializer(
    name="BillingErrorResponse",
    fields={
        "detail": serializers.CharField(),
        "code": serializers.CharField(),
    },
)


def billing_error_response(
    error: BillingError,
    detail: str | None = None,
) -> Response:
    return Response(
        {"detail": detail or error.detail, "code": error.code, **error.extra()},
        status=error.status_code,
    )


class BillingAPIView(APIView):
    """
    Base view for billing endpoints.

    Resolves the requesting user's organization and turns BillingError into
    a JSON response.
    """

    permission_classes = [IsAuthenticated]

    def handle_exception(self, exc):
        if isinstance(exc, BillingError):
            return billing_error_response(exc)
        return super().handle_exception(exc)

    def get_org(self) -> Organization:
        org = getattr(self.request.user, "org", None)
        if org is None:
            raise OrganizationNotFoundError
        return org

    def get_subscription(self, org: Organization):
        return getattr(org, "subscription", None)

    def require_org_admin(self) -> Organization:
        org = self.get_org()
        if not self.request.user.is_org_admin:
            raise SeatChangeForbiddenError(
                "Only organization admins can manage billing.",
            )
        return org


class OrganizationUserCountView(BillingAPIView):
    @extend_schema(
        summary="Count billable users",
        description=(
            "Returns the number of admin and verifier users in the organization "
            "and the monthly price they imply. When the roster cannot be read "
            "the count falls back to one user and isFallback is set."
        ),
        responses={
            200: OpenApiResponse(description="Billable user count and pricing."),
            403: OpenApiResponse(description="Not a member of the organization."),
            404: BILLING_ERROR_RESPONSE,
        },
        tags=["Billing"],
    )
    def get(self, request, org_id):
        if not Organization.objects.filter(pk=org_id).exists():
            raise OrganizationNotFoundError
        if request.user.org_id != org_id and not request.user.is_staff:
            raise PermissionDenied("You are not a member of this organization.")

        result = BillableUserCounter().count_or_fallback(org_id)
        return Response(result.to_dict())


class SubscriptionStatusView(BillingAPIView):
    @extend_schema(
        summary="Get subscription status",
        description=(
            "Read-only subscription summary for the requesting user's "
            "organization. Does not apply trial or grace-period demotions."
        ),
        responses={
            200: OpenApiResponse(description="Subscription summary."),
            404: BILLING_ERROR_RESPONSE,
        },
        tags=["Billing"],
    )
    def get(self, request):
        org = self.get_org()
        subscription = self.get_subscription(org)
        summary = SubscriptionAccessPolicy().get_status(subscription)
        return Response(
            {
                "hasActiveSubscription": summary.has_active_subscription,
                "isInTrial": summary.is_in_trial,
                "trialDaysRemaining": summary.trial_days_remaining,
                "daysUntilRenewal": summary.days_until_renewal,
                "subscription": (
                    SubscriptionSerializer(subscription).data if subscription else None
                ),
            },
        )


class SubscriptionAccessView(BillingAPIView):
    @extend_schema(
        summary="Check subscription access",
        description=(
            "Evaluates whether the requesting user's organization may use the "
            "product. Expired trials and elapsed canceled subscriptions are "
            "moved to the RESTRICTED plan as part of the check."
        ),
        request=None,
        responses={200: OpenApiResponse(description="Access decision.")},
        tags=["Billing"],
    )
    def post(self, request):
        decision = SubscriptionAccessPolicy().check_user_access(request.user)
        return Response(decision.to_dict())


class SeatsView(BillingAPIView):
    @extend_schema(
        summary="Get seat usage",
        description=(
            "Seats purchased versus billable users, plus what adding one more "
            "billable user would cost."
        ),
        responses={
            200: OpenApiResponse(description="Seat usage and add-user preview."),
            404: BILLING_ERROR_RESPONSE,
        },
        tags=["Billing"],
    )
    def get(self, request):
        org = self.get_org()
        subscription = self.get_subscription(org)
        count = BillableUserCounter().count_or_fallback(org.id)
        info = calculate_seat_info(subscription, count.user_count)
        preview = SeatChangeService().preview_add_user(subscription, count.user_count)

        data = {
            **info.to_dict(),
            "status": get_seat_status(info),
            "summary": format_seat_info(info),
            "addUserPreview": preview.to_dict(),
        }
        if count.is_fallback:
            data["isFallback"] = True
            data["warning"] = count.warning
        return Response(data)


class SeatQuantityView(BillingAPIView):
    @extend_schema(
        summary="Change seat quantity",
        description=(
            "Sets the number of purchased seats on the Stripe subscription and "
            "locally. Organization admins only. If Stripe accepts the change but "
            "the local update fails the response is 500 with stripe_updated=true."
        ),
        request=SeatQuantityUpdateSerializer,
        responses={
            200: OpenApiResponse(description="Seat quantity updated."),
            400: BILLING_ERROR_RESPONSE,
            403: BILLING_ERROR_RESPONSE,
            404: BILLING_ERROR_RESPONSE,
            500: BILLING_ERROR_RESPONSE,
            502: BILLING_ERROR_RESPONSE,
        },
        tags=["Billing"],
    )
    def post(self, request):
        serializer = SeatQuantityUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = SeatChangeService().update_quantity(
            requested_by=request.user,
            org_id=data["organization_id"],
            new_user_count=data["new_user_count"],
            proration_behavior=data["proration_behavior"],
        )
        return Response(result.to_dict())


class DirectoryUsersView(BillingAPIView):
    @extend_schema(
        summary="Add a user",
        description=(
            "Adds a user to the organization. Admin and verifier users need a "
            "seat: a free seat is reused, otherwise the subscription grows by "
            "one seat. Growing requires confirm_upgrade=true; without it the "
            "response is 402 with the cost preview and nothing changes."
        ),
        request=AddUserSerializer,
        responses={
            201: OpenApiResponse(description="User created."),
            402: OpenApiResponse(description="Seat upgrade needs confirmation."),
            403: BILLING_ERROR_RESPONSE,
        },
        tags=["Billing"],
    )
    def post(self, request):
        org = self.require_org_admin()
        serializer = AddUserSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        billing = None
        if data["role"] in BILLABLE_ROLES:
            subscription = self.get_subscription(org)
            active_users = BillableUserCounter().count(org.id).user_count
            service = SeatChangeService()

            preview = service.preview_add_user(subscription, active_users)
            if preview.needs_upgrade and not data["confirm_upgrade"]:
                return Response(
                    {
                        "detail": "Adding this user requires an additional seat.",
                        "code": "upgrade_required",
                        "preview": preview.to_dict(),
                    },
                    status=HTTPStatus.PAYMENT_REQUIRED,
                )

            result = service.handle_add_user(
                subscription,
                active_users,
                requested_by=request.user,
            )
            if not result.can_add:
                if result.error is not None:
                    return billing_error_response(result.error, detail=result.message)
                return Response(
                    {"detail": result.message, "code": "upgrade_unavailable"},
                    status=status.HTTP_400_BAD_REQUEST,
                )
            billing = result.to_dict()

        user = User.objects.create_user(
            username=data["email"],
            email=data["email"],
            name=data.get("name", ""),
            role=data["role"],
            org=org,
            azure_object_id=data.get("azure_object_id", ""),
        )
        logger.info(
            "Added %s user %s to org=%s (by %s)",
            user.role,
            user.pk,
            org.id,
            request.user.pk,
        )
        return Response(
            {
                "user": {
                    "id": user.pk,
                    "email": user.email,
                    "name": user.name,
                    "role": user.role,
                },
                "billing": billing,
            },
            status=status.HTTP_201_CREATED,
        )


class DirectoryUserDetailView(BillingAPIView):
    @extend_schema(
        summary="Remove a user",
        description=(
            "Removes a user from the organization. A freed seat stays paid for "
            "and is reused by the next add; the subscription is not changed."
        ),
        responses={
            200: OpenApiResponse(description="User removed."),
            403: BILLING_ERROR_RESPONSE,
            404: OpenApiResponse(description="No such user in the organization."),
        },
        tags=["Billing"],
    )
    def delete(self, request, user_id):
        org = self.require_org_admin()
        user = User.objects.filter(pk=user_id, org=org).first()
        if user is None:
            raise NotFound("User not found.")
        if user.pk == request.user.pk:
            raise PermissionDenied("You cannot remove yourself.")

        subscription = self.get_subscription(org)
        active_users = BillableUserCounter().count_or_fallback(org.id).user_count
        was_billable = user.is_billable
        user.delete()
        logger.info(
            "Removed user %s from org=%s (by %s)",
            user_id,
            org.id,
            request.user.pk,
        )

        if was_billable:
            return Response(handle_remove_user(subscription, active_users).to_dict())
        info = calculate_seat_info(subscription, active_users)
        return Response({**info.to_dict(), "message": "User removed."})


class CheckoutView(BillingAPIView):
    @extend_schema(
        summary="Start Stripe Checkout",
        description=(
            "Creates a Stripe Checkout session for a paid plan and returns its "
            "URL. The seat quantity defaults to the current billable user count."
        ),
        request=CheckoutSerializer,
        responses={
            200: inline_serializer(
                name="CheckoutResponse",
                fields={"url": serializers.URLField()},
            ),
            400: BILLING_ERROR_RESPONSE,
            403: BILLING_ERROR_RESPONSE,
            502: BILLING_ERROR_RESPONSE,
        },
        tags=["Billing"],
    )
    def post(self, request):
        org = self.require_org_admin()
        serializer = CheckoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        if self.get_subscription(org) is None:
            raise SubscriptionNotFoundError

        plan = Plan.objects.get(code=data["plan"])
        quantity = data.get("quantity") or max(
            1,
            BillableUserCounter().count(org.id).user_count,
        )
        url = BillingService().create_checkout_session(
            org,
            plan,
            success_url=data["success_url"],
            cancel_url=data["cancel_url"],
            quantity=quantity,
            user=request.user,
        )
        return Response({"url": url})


class CustomerPortalView(BillingAPIView):
    @extend_schema(
        summary="Open Stripe Customer Portal",
        description=(
            "Returns a Stripe Customer Portal URL where admins update payment "
            "methods, view invoices and cancel the subscription."
        ),
        request=PortalSerializer,
        responses={
            200: inline_serializer(
                name="PortalResponse",
                fields={"url": serializers.URLField()},
            ),
            403: BILLING_ERROR_RESPONSE,
            502: BILLING_ERROR_RESPONSE,
        },
        tags=["Billing"],
    )
    def post(self, request):
        org = self.require_org_admin()
        serializer = PortalSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        if self.get_subscription(org) is None:
            raise SubscriptionNotFoundError

        url = BillingService().get_customer_portal_url(
            org,
            return_url=serializer.validated_data["return_url"],
        )
        return Response({"url": url})
