from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import models

from ..managers import TenantManager
from .account import Account
from .currency import Currency
from .journal import JournalEntry
from .organization import Organization
from .tax import TaxRate

# Stored statuses. "overdue" is never stored, see Invoice.effective_status()
INV_STATUS_CHOICES = [
    ("draft", "Draft"),
    ("sent", "Sent"),
    ("partial", "Partially paid"),
    ("paid", "Paid"),
    ("cancelled", "Cancelled"),
]

OVERDUE = "overdue"
# statuses that can turn overdue once due_date has passed
OPEN_STATUSES = ("sent", "partial")


class Invoice(models.Model):  # Represents a customer invoice

    # Invoice belongs to one organization (multi-tenant)
    organization = models.ForeignKey(Organization, on_delete=models.CASCADE)

    # human-readable (e.g. "INV-2025-0001")
    number = models.CharField(max_length=64)
    date = models.DateField()  # issue date
    due_date = models.DateField()  # payment deadline

    # Customer snapshot, not a live join: the invoice stays readable
    # whatever happens to the customer record afterwards
    customer_ref = models.CharField(max_length=64, blank=True, default="")
    customer_name = models.CharField(max_length=200)
    customer_email = models.EmailField(blank=True, default="")
    customer_address = models.TextField(blank=True, default="")

    status = models.CharField(
        max_length=10, choices=INV_STATUS_CHOICES, default="draft"
    )
    """ Workflow:
        draft = not yet finalized.
        sent = issued, nothing paid.
        partial = issued, partly paid.
        paid = fully settled.
        cancelled = terminal, only from draft/sent. """

    currency = models.ForeignKey(Currency, on_delete=models.PROTECT)
    subtotal = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    tax_amount = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    # total = subtotal + tax_amount
    total = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    # Sum of allocations; amount_due = total - amount_paid
    amount_paid = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    amount_due = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))

    # Optional revenue recognition entry
    journal_entry = models.ForeignKey(
        JournalEntry,
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="invoices",
    )
    notes = models.TextField(blank=True, default="")

    sent_at = models.DateTimeField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        indexes = [
            models.Index(fields=["organization", "status"], name="ix_inv_org_status"),
            models.Index(fields=["organization", "due_date"], name="ix_inv_org_due"),
        ]
        constraints = [
            # Within one organization, each invoice number must be unique
            # Across organizations, duplicates are allowed
            models.UniqueConstraint(
                fields=["organization", "number"], name="uq_inv_org_number"
            ),
            models.CheckConstraint(
                condition=models.Q(amount_paid__gte=0) & models.Q(amount_due__gte=0),
                name="inv_non_negative_balances",
            ),
            models.CheckConstraint(
                condition=models.Q(amount_paid__lte=models.F("total")),
                name="inv_paid_not_above_total",
            ),
        ]
        ordering = ("organization", "-date", "-id")

    def __str__(self):
        return f"Inv {self.number}"

    def effective_status(self, today):
        """Status as seen on `today`: sent/partial past due_date read as overdue"""
        if self.status in OPEN_STATUSES and self.due_date < today:
            return OVERDUE
        return self.status

    def derived_status(self):
        """Stored status implied by amount_paid for an issued invoice"""
        if self.status in ("draft", "cancelled"):
            return self.status
        if self.amount_paid <= 0:
            return "sent"
        if self.amount_paid < self.total:
            return "partial"
        return "paid"

    def recalc_totals(self):
        """Recompute subtotal/tax/total from the lines and amount_due from amount_paid"""
        aggs = self.lines.aggregate(
            subtotal=models.Sum("subtotal"),
            tax_amount=models.Sum("tax_amount"),
        )
        self.subtotal = self.currency.quantize(aggs["subtotal"])
        self.tax_amount = self.currency.quantize(aggs["tax_amount"])
        self.total = self.subtotal + self.tax_amount
        self.amount_due = self.total - self.amount_paid

    def refresh_payment_status(self, now):
        """
        Resync amount_paid/amount_due/status from the allocation rows.
        Callers hold the row lock (select_for_update) on this invoice.
        """
        paid = self.allocations.aggregate(total=models.Sum("amount"))["total"]
        self.amount_paid = self.currency.quantize(paid)
        self.amount_due = self.total - self.amount_paid
        self.status = self.derived_status()
        self.paid_at = now if self.status == "paid" else None

    def clean(self):
        if self.amount_paid < 0 or self.amount_paid > self.total:
            raise ValidationError("Amount paid must stay between 0 and the invoice total.")
        if self.amount_due != self.total - self.amount_paid:
            raise ValidationError("Amount due must equal total minus amount paid.")
        if self.due_date and self.date and self.due_date < self.date:
            raise ValidationError("Due date cannot be before the invoice date.")

    def save(self, *args, **kwargs):
        if self.pk:
            orig = Invoice.objects.filter(pk=self.pk).values("status").first()
            # cancelled is terminal in all code paths (admin, services)
            if orig and orig["status"] == "cancelled" and self.status != "cancelled":
                raise ValidationError("Cancelled invoices cannot change status.")
        self.full_clean()
        super().save(*args, **kwargs)


class InvoiceLine(models.Model):  # Each line describes a product/service sold on the invoice

    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name="lines")
    description = models.TextField()

    # Core pricing logic: quantity × unit_price = subtotal
    quantity = models.DecimalField(max_digits=14, decimal_places=4, default=Decimal("1"))
    unit_price = models.DecimalField(max_digits=18, decimal_places=4, default=Decimal("0.00"))

    tax_rate = models.ForeignKey(
        TaxRate,
        null=True,
        blank=True,
        # You can’t delete a tax rate once it has been invoiced
        on_delete=models.PROTECT,
    )
    # Snapshot of tax_rate.rate at invoicing time (percentage)
    tax_rate_value = models.DecimalField(max_digits=7, decimal_places=4, default=Decimal("0"))

    subtotal = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    tax_amount = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    total = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))

    # Post to the correct revenue GL account
    account = models.ForeignKey(
        Account,
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="invoice_lines",
        help_text="Sales / revenue account for this line",
    )
    position = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ("invoice", "position", "id")
        # Ensure quantity & unit_price are never negative
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gt=0) & models.Q(unit_price__gte=0),
                name="invl_positive_quantity_price",
            ),
        ]

    # Show something human-readable in Django Admin
    def __str__(self):
        return f"{self.description} x {self.quantity} = {self.total}"

    def compute_amounts(self, currency):
        """Fill subtotal/tax_amount/total, each rounded to the currency minor unit"""
        gross = (self.quantity or Decimal("0")) * (self.unit_price or Decimal("0"))
        self.subtotal = currency.quantize(gross)
        self.tax_amount = currency.quantize(gross * (self.tax_rate_value or Decimal("0")) / Decimal("100"))
        self.total = self.subtotal + self.tax_amount

    def clean(self):
        # Quantity must be strictly positive
        if self.quantity is not None and self.quantity <= 0:
            raise ValidationError("Quantity must be > 0")
        if self.unit_price is not None and self.unit_price < 0:
            raise ValidationError("Unit price must be >= 0")
        # Tenant safety on the optional references
        org_id = Invoice.objects.filter(pk=self.invoice_id).values_list("organization_id", flat=True).first()
        if self.account_id and self.account.organization_id != org_id:
            raise ValidationError("InvoiceLine.account must belong to the invoice's organization")
        if self.tax_rate_id and self.tax_rate.organization_id != org_id:
            raise ValidationError("InvoiceLine.tax_rate must belong to the invoice's organization")

    """ Ensure no inconsistent invoice line can ever be persisted """

    def save(self, *args, **kwargs):
        self.compute_amounts(self.invoice.currency)
        # Run validation, this will call clean()
        self.full_clean()
        return super().save(*args, **kwargs)
