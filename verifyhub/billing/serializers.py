from rest_framework import serializers

from verifyhub.billing.constants import PAID_PLAN_CODES
from verifyhub.billing.constants import ProrationBehavior
from verifyhub.billing.models import Subscription
from verifyhub.users.constants import RoleCode
from verifyhub.users.models import User


class SubscriptionSerializer(serializers.ModelSerializer):
    """
    Read-only view of an organization's subscription.

    `plan_name` is the plan code and `updated_at` the row's last
    modification time.
    """

    plan_name = serializers.CharField(source="plan_id", read_only=True)
    updated_at = serializers.DateTimeField(source="modified", read_only=True)

    class Meta:
        model = Subscription
        fields = [
            "org",
            "plan_name",
            "status",
            "user_count",
            "trial_start_date",
            "trial_end_date",
            "current_period_start",
            "current_period_end",
            "cancel_at_period_end",
            "cancel_at",
            "stripe_customer_id",
            "stripe_subscription_id",
            "updated_at",
        ]
        read_only_fields = fields


class SeatQuantityUpdateSerializer(serializers.Serializer):
    organization_id = serializers.IntegerField()
    new_user_count = serializers.IntegerField(min_value=1)
    proration_behavior = serializers.ChoiceField(
        choices=ProrationBehavior.choices,
        default=ProrationBehavior.ALWAYS_INVOICE,
    )


class AddUserSerializer(serializers.Serializer):
    """
    Directory user to add to the requesting admin's organization.

    Admin and verifier users occupy a paid seat. When no seat is free the
    request must carry ``confirm_upgrade`` before the subscription grows.
    """

    email = serializers.EmailField()
    name = serializers.CharField(max_length=255, required=False, allow_blank=True)
    role = serializers.ChoiceField(choices=RoleCode.choices, default=RoleCode.BASIC)
    azure_object_id = serializers.CharField(
        max_length=64,
        required=False,
        allow_blank=True,
    )
    confirm_upgrade = serializers.BooleanField(default=False)

    def validate_email(self, value):
        value = value.lower()
        if User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError("A user with this email already exists.")
        if User.objects.filter(username=value).exists():
            raise serializers.ValidationError("A user with this email already exists.")
        return value


class CheckoutSerializer(serializers.Serializer):
    plan = serializers.ChoiceField(
        choices=sorted(PAID_PLAN_CODES),
        help_text="Paid plan code to subscribe to.",
    )
    quantity = serializers.IntegerField(
        min_value=1,
        required=False,
        help_text="Seats to purchase. Defaults to the current billable user count.",
    )
    success_url = serializers.URLField()
    cancel_url = serializers.URLField()


class PortalSerializer(serializers.Serializer):
    return_url = serializers.URLField()
