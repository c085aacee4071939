"""
Billing exceptions.

Every error carries a human readable `detail`, a machine readable `code`
and the HTTP status the API layer answers with. `extra()` returns any
additional fields that belong in the JSON error body.
"""

from __future__ import annotations

from http import HTTPStatus


class BillingError(Exception):
    """Base exception for billing-related errors."""

    status_code = HTTPStatus.BAD_REQUEST

    def __init__(self, detail: str, code: str = "billing_error"):
        self.detail = detail
        self.code = code
        super().__init__(detail)

    def extra(self) -> dict:
        return {}


class OrganizationNotFoundError(BillingError):
    status_code = HTTPStatus.NOT_FOUND

    def __init__(self, detail: str = "Organization not found."):
        super().__init__(detail, code="organization_not_found")


class SubscriptionNotFoundError(BillingError):
    status_code = HTTPStatus.NOT_FOUND

    def __init__(self, detail: str = "Subscription not found"):
        super().__init__(detail, code="subscription_not_found")


class SeatChangeForbiddenError(BillingError):
    """Raised when the caller may not change seats for the organization."""

    status_code = HTTPStatus.FORBIDDEN

    def __init__(
        self,
        detail: str = "Only organization admins can change the seat count.",
    ):
        super().__init__(detail, code="forbidden")


class InactiveSubscriptionError(BillingError):
    """
    Raised when a seat change is attempted on a subscription Stripe does
    not bill (trial, canceled, or missing Stripe reference).
    """

    def __init__(
        self,
        detail: str = "Subscription must be active to update user count",
        current_status: str = "",
        plan: str = "",
    ):
        self.current_status = current_status
        self.plan = plan
        super().__init__(detail, code="subscription_inactive")

    def extra(self) -> dict:
        return {"current_status": self.current_status, "plan": self.plan}


class InvalidSeatChangeError(BillingError):
    """Raised for malformed seat change requests or trial upgrade attempts."""

    def __init__(self, detail: str, code: str = "invalid_seat_change"):
        super().__init__(detail, code=code)


class StripeServiceError(BillingError):
    """
    Raised when a Stripe call fails. Keeps Stripe's own error code, type and
    offending parameter so callers can surface them.
    """

    status_code = HTTPStatus.BAD_GATEWAY

    def __init__(
        self,
        detail: str,
        stripe_code: str | None = None,
        stripe_type: str | None = None,
        stripe_param: str | None = None,
    ):
        self.stripe_code = stripe_code
        self.stripe_type = stripe_type
        self.stripe_param = stripe_param
        super().__init__(detail, code="stripe_error")

    @classmethod
    def from_stripe(cls, prefix: str, error) -> StripeServiceError:
        return cls(
            f"{prefix}: {getattr(error, 'user_message', None) or error}",
            stripe_code=getattr(error, "code", None),
            stripe_type=type(error).__name__,
            stripe_param=getattr(error, "param", None),
        )

    def extra(self) -> dict:
        return {
            "stripe_error": {
                "code": self.stripe_code,
                "type": self.stripe_type,
                "param": self.stripe_param,
            },
        }


class PartialSeatChangeError(BillingError):
    """
    Raised when Stripe accepted a quantity change but the local row could
    not be written. Stripe is authoritative; run reconcile_seats to repair.
    """

    status_code = HTTPStatus.INTERNAL_SERVER_ERROR
    stripe_updated = True

    def __init__(
        self,
        db_error: str,
        detail: str = "Stripe updated but local database update failed",
    ):
        self.db_error = db_error
        super().__init__(detail, code="partial_update")

    def extra(self) -> dict:
        return {"stripe_updated": self.stripe_updated, "db_error": self.db_error}


class UserCountUnavailableError(BillingError):
    """Raised when the billable user roster cannot be read."""

    status_code = HTTPStatus.SERVICE_UNAVAILABLE

    def __init__(self, detail: str = "Unable to count billable users."):
        super().__init__(detail, code="user_count_unavailable")
