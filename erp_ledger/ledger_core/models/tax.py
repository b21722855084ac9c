from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import models

from ..managers import TenantManager
from .account import Account
from .organization import Organization

TAX_TYPES = [
    ("sales", "Sales"),
    ("purchase", "Purchase"),
    ("both", "Both"),
]


# ---------- TaxRate ----------
class TaxRate(models.Model):  # VAT/GST rates applied to invoice lines
    organization = models.ForeignKey(Organization, on_delete=models.CASCADE)
    name = models.CharField(max_length=100)  # "VAT 20%"
    code = models.CharField(max_length=20)  # "VAT20"
    # Percentage, e.g. 20.0000 for 20%
    rate = models.DecimalField(max_digits=7, decimal_places=4)
    tax_type = models.CharField(max_length=10, choices=TAX_TYPES, default="both")
    # Tax collection account (credited when the invoice revenue is posted)
    account = models.ForeignKey(
        Account, null=True, blank=True, on_delete=models.PROTECT, related_name="tax_rates"
    )
    is_active = models.BooleanField(default=True)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["organization", "code"], name="uq_org_tax_rate_code"
            ),
            models.CheckConstraint(
                condition=models.Q(rate__gte=0), name="tax_rate_non_negative"
            ),
        ]

    def __str__(self):
        return f"{self.code} ({self.rate}%)"

    @property
    def applies_to_sales(self):
        return self.tax_type in ("sales", "both")

    def clean(self):
        if self.rate is not None and self.rate < Decimal("0"):
            raise ValidationError("Tax rate must be >= 0")
        if self.account_id and self.account.organization_id != self.organization_id:
            raise ValidationError("Tax account must belong to the same organization.")
