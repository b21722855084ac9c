from django.contrib import admin
from django.utils import timezone

from ledger_core.models import Invoice

from .actions import send_invoices
from .inlines import InvoiceLineInline
from .mixins import TenantAdminMixin
from .ReadOnly import ReadOnlyAdmin


# Register `Invoice` model; invoices are created and settled through the services
@admin.register(Invoice)
class InvoiceAdmin(TenantAdminMixin, ReadOnlyAdmin):
    list_display = (
        "id",
        "organization",
        "number",
        "customer_name",
        "date",
        "due_date",
        "current_status",
        "total",
        "amount_paid",
        "amount_due",
    )
    list_filter = ("organization", "status", "date")
    search_fields = ("number", "customer_name", "customer_ref")
    inlines = [InvoiceLineInline]
    actions = [send_invoices]

    # overdue is computed, never stored
    def current_status(self, obj):
        return obj.effective_status(timezone.localdate())

    current_status.short_description = "Status"
