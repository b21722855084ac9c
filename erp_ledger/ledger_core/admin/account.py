from django.contrib import admin

from ledger_core.models import Account, Currency, Organization

from .mixins import TenantAdminMixin


@admin.register(Currency)
class CurrencyAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "symbol", "decimal_places")
    search_fields = ("code", "name")


@admin.register(Organization)
class OrganizationAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "slug", "default_currency", "created_at")
    search_fields = ("name", "slug")
    prepopulated_fields = {"slug": ("name",)}


# Register `Account` model
@admin.register(Account)
class AccountAdmin(TenantAdminMixin, admin.ModelAdmin):
    # show key accounting fields
    list_display = (
        "id",
        "organization",
        "code",
        "name",
        "ac_type",
        "parent",
        "currency",
        "is_system",
        "is_active",
    )
    list_filter = ("organization", "ac_type", "is_active")
    search_fields = ("code", "name")
    # accounts grouped by organization, then sorted by code
    ordering = ("organization", "code")

    """ Code, type and parent are fixed once the account exists """
    def get_readonly_fields(self, request, obj=None):
        if obj is not None:
            return ("organization", "code", "ac_type", "parent", "is_system")
        return ()

    # system accounts can never be deleted
    def has_delete_permission(self, request, obj=None):
        if obj is not None and obj.is_system:
            return False
        return super().has_delete_permission(request, obj)
