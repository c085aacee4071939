from django.apps import AppConfig


class BillingConfig(AppConfig):
    """
    Django app configuration for the billing app.

    Handles seat accounting, subscription access checks and the Stripe
    webhook synchronizer.
    """

    default_auto_field = "django.db.models.BigAutoField"
    name = "verifyhub.billing"

    def ready(self):
        """
        Import webhook handlers to register signal receivers.

        dj-stripe emits one signal per Stripe event type through
        WEBHOOK_SIGNALS; importing the module connects our receivers.
        """
        from verifyhub.billing import webhooks  # noqa: F401
