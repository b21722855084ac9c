from django.contrib import admin

from ledger_core.models import InvoiceLine, JournalEntryLine, PaymentAllocation

# ---------- Helpful inline admin classes ----------


class JournalEntryLineInline(admin.TabularInline):
    """Show JournalEntryLine rows on JournalEntry page"""

    model = JournalEntryLine
    extra = 0  # don’t show “empty” rows by default (prevents clutter)
    fields = ("position", "account", "label", "debit", "credit", "reconciled", "reconciled_at")
    readonly_fields = ("reconciled", "reconciled_at")
    ordering = ("position", "id")

    def get_queryset(self, request):
        qs = super().get_queryset(request)
        return qs.select_related("account")

    def get_readonly_fields(self, request, obj=None):
        # Once the entry leaves draft, all its lines become completely locked
        if obj and obj.status != "draft":
            return self.fields
        return self.readonly_fields

    def has_add_permission(self, request, obj=None):
        if obj and obj.status != "draft":
            return False
        return super().has_add_permission(request, obj)

    def has_delete_permission(self, request, obj=None):
        if obj and obj.status != "draft":
            return False
        return super().has_delete_permission(request, obj)


class InvoiceLineInline(admin.TabularInline):
    """Shows invoice lines under an Invoice page (read-only, built by the invoice service)"""

    model = InvoiceLine
    extra = 0
    fields = (
        "description", "quantity", "unit_price", "tax_rate_value",
        "subtotal", "tax_amount", "total", "account")
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


class PaymentAllocationInline(admin.TabularInline):
    """Each row says: “this much of this payment settles that invoice.”"""

    model = PaymentAllocation
    fk_name = "payment"
    extra = 0
    fields = ("invoice", "amount", "created_by", "created_at")
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False
