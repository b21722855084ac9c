from django.contrib import admin

from ledger_core.models import FiscalYear, TaxRate

from .mixins import TenantAdminMixin


# Register `FiscalYear` model
@admin.register(FiscalYear)
class FiscalYearAdmin(TenantAdminMixin, admin.ModelAdmin):
    list_display = ("id", "organization", "name", "start_date", "end_date", "status", "closed_at", "closed_by")
    list_filter = ("organization", "status")
    # closing goes through the fiscal calendar service only
    readonly_fields = ("status", "closed_at", "closed_by")

    def get_readonly_fields(self, request, obj=None):
        if obj is not None:
            return ("organization", "name", "start_date", "end_date") + self.readonly_fields
        return self.readonly_fields


@admin.register(TaxRate)
class TaxRateAdmin(TenantAdminMixin, admin.ModelAdmin):
    list_display = ("id", "organization", "code", "name", "rate", "tax_type", "account", "is_active")
    list_filter = ("organization", "tax_type", "is_active")
    search_fields = ("code", "name")
