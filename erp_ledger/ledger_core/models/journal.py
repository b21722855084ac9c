from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import models

from ..managers import JournalEntryLineManager, TenantManager
from .account import Account
from .currency import Currency
from .organization import Organization

JOURNAL_TYPES = [
    ("general", "General"),
    ("sales", "Sales"),
    ("purchase", "Purchase"),
    ("bank", "Bank"),
    ("cash", "Cash"),
]

JOURNAL_STATUS = [
    ("draft", "Draft"),  # still editable
    ("posted", "Posted"),  # finalized, immutable, reportable
    ("cancelled", "Cancelled"),  # discarded draft or reversed posting
]


# ---------- Journal (classification) ----------
class Journal(models.Model):
    """Classifies entries for reporting/filtering (VEN, ACH, BQ ...)."""

    organization = models.ForeignKey(Organization, on_delete=models.CASCADE)
    code = models.CharField(max_length=10)  # prefix of entry references
    name = models.CharField(max_length=100)
    journal_type = models.CharField(max_length=10, choices=JOURNAL_TYPES, default="general")
    # inactive journals keep their entries but accept no new drafts
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["organization", "code"], name="uq_org_journal_code"
            )
        ]
        ordering = ("organization", "code")

    def __str__(self):
        return f"{self.code} – {self.name}"


# ---------- JournalEntry (Header) & JournalEntryLine ----------
class JournalEntry(models.Model):  # Represents one accounting transaction
    # Multi-tenant: every entry belongs to an organization
    organization = models.ForeignKey(Organization, on_delete=models.CASCADE)
    # Existing entries keep their journal whatever its active flag
    journal = models.ForeignKey(Journal, on_delete=models.PROTECT, related_name="entries")

    # Business metadata
    # sequential per journal, e.g. "VEN-2025-001"
    reference = models.CharField(max_length=64)
    date = models.DateField()
    description = models.TextField(blank=True, default="")
    currency = models.ForeignKey(Currency, on_delete=models.PROTECT)
    status = models.CharField(max_length=10, choices=JOURNAL_STATUS, default="draft")

    # Cached sums of the lines, refreshed whenever a draft line changes
    total_debit = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    total_credit = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))

    # Opaque actor ids supplied by the calling layer
    created_by = models.CharField(max_length=64, blank=True, default="")
    posted_by = models.CharField(max_length=64, blank=True, default="")
    posted_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    # Set on a reversed original: points at its compensating entry
    reversed_by = models.OneToOneField(
        "self",
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="reversal_of",
    )

    # optional source info (invoice, payment) to trace where the entry came from
    source_type = models.CharField(max_length=50, blank=True, default="")
    source_id = models.BigIntegerField(null=True, blank=True)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        # Speed up listing & filtering
        # (e.g. show all posted entries this month)
        indexes = [
            models.Index(fields=["organization", "date"], name="ix_je_org_date"),
            models.Index(fields=["organization", "status"], name="ix_je_org_status"),
            models.Index(fields=["organization", "journal"], name="ix_je_org_journal"),
        ]
        constraints = [
            # Within one organization, each reference must be unique
            models.UniqueConstraint(
                fields=["organization", "reference"], name="uq_je_org_reference"
            )
        ]
        verbose_name_plural = "journal entries"

    def __str__(self):
        return f"{self.reference} {self.date} [{self.status}]"

    @property
    def is_draft(self):
        return self.status == "draft"

    @property
    def is_posted(self):
        return self.status == "posted"

    # Aggregate all debit and credit amounts across entry’s lines
    def compute_totals(self):
        """Return (debit, credit) sums of the lines, fresh from the DB"""
        aggs = self.lines.aggregate(
            total_debit=models.Sum("debit"),
            total_credit=models.Sum("credit"),
        )
        return (
            aggs["total_debit"] or Decimal("0.00"),
            aggs["total_credit"] or Decimal("0.00"),
        )

    def refresh_totals(self):
        debit, credit = self.compute_totals()
        self.total_debit = self.currency.quantize(debit)
        self.total_credit = self.currency.quantize(credit)

    # True if double-entry rule holds at the currency's minor unit
    def is_balanced(self):
        debit, credit = self.compute_totals()
        return self.currency.quantize(debit) == self.currency.quantize(credit)

    def save(self, *args, **kwargs):
        if self.pk:  # Does this row already exist in DB?
            orig = JournalEntry.objects.filter(pk=self.pk).values("status").first()
            if orig and orig["status"] == "posted" and self.status == "draft":
                # disallow toggling posted flag
                raise ValidationError("Cannot unpost a posted journal entry")
            if orig and orig["status"] == "cancelled" and self.status != "cancelled":
                raise ValidationError("Cancelled journal entries are terminal")
        super().save(*args, **kwargs)


class JournalEntryLine(models.Model):  # Stores lines (credits / debits)
    """
    Each line belongs to a journal entry and to a GL account.
    Exactly one of debit/credit is non-zero. Lines of a posted entry are frozen.
    """

    entry = models.ForeignKey(
        JournalEntry,
        on_delete=models.CASCADE,
        related_name="lines",
    )
    # Must point to one Account (can’t delete account if lines exist → PROTECT)
    account = models.ForeignKey(Account, on_delete=models.PROTECT, related_name="lines")
    label = models.CharField(max_length=400, blank=True, default="")

    debit = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    credit = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))

    # display order inside the entry (insignificant for validity)
    position = models.PositiveIntegerField(default=0)

    # Reconciliation against an external record (bank statement)
    reconciled = models.BooleanField(default=False)
    reconciled_at = models.DateTimeField(null=True, blank=True)

    objects = JournalEntryLineManager()

    class Meta:
        indexes = [
            models.Index(fields=["account"], name="ix_jel_account"),
            models.Index(fields=["entry", "position"], name="ix_jel_entry_position"),
        ]
        ordering = ("entry", "position", "id")
        constraints = [
            models.CheckConstraint(
                condition=models.Q(debit__gte=0) & models.Q(credit__gte=0),
                name="jel_non_negative_amounts",
            ),
            models.CheckConstraint(
                condition=(
                    (models.Q(debit=0) & models.Q(credit__gt=0))
                    | (models.Q(debit__gt=0) & models.Q(credit=0))
                ),
                name="jel_debit_xor_credit",
            ),
        ]

    def __str__(self):
        return f"{self.entry_id} | {self.account_id} | D:{self.debit} C:{self.credit}"

    def clean(self):
        # Ensure no negative values sneak in
        if self.debit < 0 or self.credit < 0:
            raise ValidationError("Debit and credit must be >= 0")
        if self.debit > 0 and self.credit > 0:
            raise ValidationError("Line cannot have both debit and credit > 0")
        if self.debit == 0 and self.credit == 0:
            raise ValidationError("Line requires a non-0 amount on either debit or credit")
        # Prevent cross-organization contamination
        if self.account.organization_id != self.entry.organization_id:
            raise ValidationError("Line account must belong to the entry's organization.")

    def _entry_status(self):
        return JournalEntry.objects.filter(pk=self.entry_id).values_list("status", flat=True).first()

    def save(self, *args, **kwargs):
        update_fields = kwargs.get("update_fields")
        # reconciliation flags are the only thing that may change after posting
        reconcile_only = update_fields is not None and set(update_fields) <= {"reconciled", "reconciled_at"}
        if not reconcile_only and self._entry_status() != "draft":
            raise ValidationError("Cannot add or modify lines of a non-draft journal entry.")
        if not reconcile_only:
            self.full_clean()
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        # Prevent deletion if parent entry is posted
        if self._entry_status() != "draft":
            raise ValidationError("Cannot delete a line of a non-draft journal entry.")
        return super().delete(*args, **kwargs)
