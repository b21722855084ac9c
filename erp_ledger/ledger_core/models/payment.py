from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import models

from ..managers import TenantManager
from .account import Account
from .currency import Currency
from .invoice import Invoice
from .journal import JournalEntry
from .organization import Organization

PAYMENT_METHODS = [
    # Keeps payment method standardized across records
    ("cash", "Cash"),
    ("bank_transfer", "Bank Transfer"),
    ("check", "Check"),
    ("credit_card", "Credit Card"),
    ("other", "Other"),
]


class Payment(models.Model):
    """
    Money actually received or paid. Immutable once created, only the
    allocation rows pointing at it change afterwards.
    """

    organization = models.ForeignKey(Organization, on_delete=models.CASCADE)
    reference = models.CharField(max_length=64)  # "PAY-2025-0001"
    date = models.DateField()
    amount = models.DecimalField(max_digits=18, decimal_places=2)
    currency = models.ForeignKey(Currency, on_delete=models.PROTECT)
    method = models.CharField(max_length=20, choices=PAYMENT_METHODS, default="bank_transfer")

    # Opaque references to CRM / procurement parties
    customer_ref = models.CharField(max_length=64, blank=True, default="")
    supplier_ref = models.CharField(max_length=64, blank=True, default="")

    # Bank/cash GL account the money went through
    account = models.ForeignKey(
        Account, null=True, blank=True, on_delete=models.PROTECT, related_name="payments"
    )
    # Optional receipt posting
    journal_entry = models.ForeignKey(
        JournalEntry, null=True, blank=True, on_delete=models.PROTECT, related_name="payments"
    )
    notes = models.TextField(blank=True, default="")
    created_by = models.CharField(max_length=64, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        indexes = [models.Index(fields=["organization", "date"], name="ix_pay_org_date")]
        constraints = [
            models.UniqueConstraint(
                fields=["organization", "reference"], name="uq_pay_org_reference"
            ),
            models.CheckConstraint(condition=models.Q(amount__gt=0), name="pay_positive_amount"),
        ]
        ordering = ("organization", "-date", "-id")

    def __str__(self):
        return f"{self.reference} {self.amount} {self.currency_id}"

    def allocated_total(self):
        """How much of this payment has been applied to invoices?"""
        return self.allocations.aggregate(total=models.Sum("amount"))["total"] or Decimal("0.00")

    def unallocated_amount(self):
        return self.amount - self.allocated_total()


class PaymentAllocation(models.Model):
    """Bridge between a payment and the invoices it settles (partial amounts allowed)."""

    payment = models.ForeignKey(Payment, on_delete=models.PROTECT, related_name="allocations")
    invoice = models.ForeignKey(Invoice, on_delete=models.PROTECT, related_name="allocations")
    amount = models.DecimalField(max_digits=18, decimal_places=2)
    created_by = models.CharField(max_length=64, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=["payment"], name="ix_alloc_payment"),
            models.Index(fields=["invoice"], name="ix_alloc_invoice"),
        ]
        constraints = [
            # Ensure amount is never zero or negative
            models.CheckConstraint(condition=models.Q(amount__gt=0), name="alloc_positive_amount"),
        ]

    def __str__(self):
        return f"{self.payment.reference} → {self.invoice.number} ({self.amount})"

    def clean(self):
        # You can’t link a payment from organization A to an invoice from organization B
        if self.payment.organization_id != self.invoice.organization_id:
            raise ValidationError("Payment and invoice must belong to the same organization.")
