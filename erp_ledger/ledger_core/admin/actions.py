from django.contrib import admin, messages
from django.utils.translation import gettext_lazy as _

from ledger_core.exceptions import LedgerError
from ledger_core.services import invoicing, posting
from ledger_core.tasks import refresh_bank_balances

# ---------- Admin actions ----------


def _actor(request):
    return getattr(request, "actor", "") or request.user.get_username()


@admin.action(description=_("Post selected journal entries (make immutable)"))
def post_journal_entries(modeladmin, request, queryset):
    """
    Post each selected draft through the posting service,
    one transaction per entry, reporting per-entry failures.
    """
    success = failures = 0
    for entry in queryset.filter(status="draft"):
        try:
            posting.post_entry(entry.organization, entry.pk, actor=_actor(request))
            success += 1
        except LedgerError as exc:
            failures += 1
            modeladmin.message_user(
                request,
                _("Could not post %(ref)s: %(err)s") % {"ref": entry.reference, "err": exc.message},
                level=messages.ERROR,
            )

    # Final summary message
    modeladmin.message_user(
        request,
        _("Posted %(success)d journal entries. %(failures)d failed.") % {
            "success": success,
            "failures": failures,
        },
        level=messages.SUCCESS if failures == 0 else messages.WARNING,
    )


@admin.action(description=_("Send selected draft invoices"))
def send_invoices(modeladmin, request, queryset):
    for invoice in queryset.filter(status="draft"):
        try:
            invoicing.send_invoice(invoice.organization, invoice.pk, actor=_actor(request))
            modeladmin.message_user(request, f"Sent invoice {invoice.number}")
        except LedgerError as exc:
            modeladmin.message_user(
                request, f"Failed to send {invoice.number}: {exc.message}", level=messages.ERROR
            )


@admin.action(description=_("Refresh cached bank balances"))
def refresh_balances(modeladmin, request, queryset):
    # one task per organization present in the selection
    for organization_id in set(queryset.values_list("organization_id", flat=True)):
        refresh_bank_balances.delay(organization_id)
    modeladmin.message_user(request, _("Bank balance refresh scheduled."))
