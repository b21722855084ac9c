from django.contrib import admin

from ledger_core.models import BankAccount, Payment

from .actions import refresh_balances
from .inlines import PaymentAllocationInline
from .mixins import TenantAdminMixin
from .ReadOnly import ReadOnlyAdmin


@admin.register(BankAccount)
class BankAccountAdmin(TenantAdminMixin, admin.ModelAdmin):
    list_display = ("id", "organization", "name", "currency", "ledger_account", "balance", "balance_refreshed_at")
    list_filter = ("organization", "currency", "is_active")
    search_fields = ("name", "iban")
    # cached projection, refreshed by the banking service
    readonly_fields = ("balance", "balance_refreshed_at")
    actions = [refresh_balances]


# Payments are immutable; allocations are shown, never edited here
@admin.register(Payment)
class PaymentAdmin(TenantAdminMixin, ReadOnlyAdmin):
    list_display = ("id", "organization", "reference", "date", "amount", "currency", "method", "journal_entry")
    list_filter = ("organization", "method", "date")
    search_fields = ("reference", "customer_ref", "supplier_ref")
    inlines = [PaymentAllocationInline]
