from django.contrib import admin
from django.utils.html import format_html

from ledger_core.models import Journal, JournalEntry

from .actions import post_journal_entries
from .inlines import JournalEntryLineInline
from .mixins import TenantAdminMixin


@admin.register(Journal)
class JournalAdmin(TenantAdminMixin, admin.ModelAdmin):
    list_display = ("id", "organization", "code", "name", "journal_type", "is_active")
    list_filter = ("organization", "journal_type", "is_active")
    search_fields = ("code", "name")

    def has_delete_permission(self, request, obj=None):
        # entries keep their journal forever
        if obj is not None and obj.entries.exists():
            return False
        return super().has_delete_permission(request, obj)


# Register `JournalEntry` model
@admin.register(JournalEntry)
class JournalEntryAdmin(TenantAdminMixin, admin.ModelAdmin):
    list_display = (
        "id",
        "organization",
        "journal",
        "date",
        "reference",
        "status",
        "posted_at",
        "created_by",
        "balanced",
    )
    list_filter = ("organization", "journal", "status", "date")
    search_fields = ("reference", "description")
    readonly_fields = (
        "reference",
        "total_debit",
        "total_credit",
        "status",
        "posted_at",
        "posted_by",
        "created_by",
        "reversed_by",
        "source_type",
        "source_id",
    )
    inlines = [JournalEntryLineInline]
    actions = [post_journal_entries]

    def get_queryset(self, request):
        qs = super().get_queryset(request)
        return qs.select_related("organization", "journal", "currency")

    """ Computed column for balance check """
    def balanced(self, obj):
        # format: bold debits / small credits
        return format_html("<b>{}</b> / <small>{}</small>", obj.total_debit, obj.total_credit)

    balanced.short_description = "Debits / Credits"

    """ Make entries immutable once posted """
    def get_readonly_fields(self, request, obj=None):
        r = list(self.readonly_fields)
        if obj and obj.status != "draft":
            r += ["organization", "journal", "date", "description", "currency"]
        return r

    """ Prevent deletion after posting """
    def has_delete_permission(self, request, obj=None):
        if obj and obj.status != "draft":
            return False
        return super().has_delete_permission(request, obj)
