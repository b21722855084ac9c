from django.core.exceptions import ValidationError
from django.db.models.signals import pre_delete
from django.dispatch import receiver

from .models import (Account, FiscalYear, Invoice, JournalEntry,
                     JournalEntryLine, Payment)

""" Block invoice deletion if any payments are allocated."""


# pre_delete signal auto-fires just before Django deletes a model instance
# it’s connected to the Invoice model
@receiver(pre_delete, sender=Invoice)
def prevent_delete_invoice_with_payments(sender, instance, **kwargs):
    if instance.allocations.exists():
        raise ValidationError("Cannot delete invoice with allocated payments.")


@receiver(pre_delete, sender=Payment)
def prevent_delete_allocated_payment(sender, instance, **kwargs):
    if instance.allocations.exists():
        raise ValidationError("Cannot delete a payment that is allocated to invoices.")


"""Block deletion if account has ever been used in a journal line."""


@receiver(pre_delete, sender=Account)
def prevent_delete_account_with_journal_lines(sender, instance, **kwargs):
    if instance.is_system:
        raise ValidationError("Cannot delete a system account.")
    if JournalEntryLine.objects.filter(account=instance).exists():
        raise ValidationError("Cannot delete account used in journal lines.")


"""Posted history is never deleted, only reversed."""


@receiver(pre_delete, sender=JournalEntry)
def prevent_delete_posted_entry(sender, instance, **kwargs):
    if instance.posted_at is not None:
        raise ValidationError("Cannot delete a posted journal entry; reverse it instead.")


"""Block deletion if fiscal year has posted journals."""


@receiver(pre_delete, sender=FiscalYear)
def prevent_delete_year_with_posted_entries(sender, instance, **kwargs):
    posted = JournalEntry.objects.for_organization(instance.organization_id).filter(
        posted_at__isnull=False,
        date__gte=instance.start_date,
        date__lte=instance.end_date,
    )
    if posted.exists():
        raise ValidationError("Cannot delete a fiscal year with posted journal entries.")
