from django.contrib import admin
from django.contrib.auth import admin as auth_admin
from django.utils.translation import gettext_lazy as _

from verifyhub.users.models import Organization
from verifyhub.users.models import User


@admin.register(User)
class UserAdmin(auth_admin.UserAdmin):
    fieldsets = (
        (None, {"fields": ("username", "password")}),
        (_("Personal info"), {"fields": ("name", "email")}),
        (_("Organization"), {"fields": ("org", "role", "azure_object_id")}),
        (
            _("Permissions"),
            {
                "fields": (
                    "is_active",
                    "is_staff",
                    "is_superuser",
                    "groups",
                    "user_permissions",
                ),
            },
        ),
        (_("Important dates"), {"fields": ("last_login", "date_joined")}),
    )
    list_display = ["username", "name", "org", "role", "is_active"]
    list_filter = ["role", "is_active"]
    search_fields = ["name", "username", "email"]
    ordering = ["username"]


@admin.register(Organization)
class OrganizationAdmin(admin.ModelAdmin):
    list_display = ["name", "slug", "azure_tenant_id", "created"]
    search_fields = ["name", "slug", "azure_tenant_id"]
    prepopulated_fields = {"slug": ("name",)}
