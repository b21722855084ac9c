from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import models

from ..managers import TenantManager
from .account import Account
from .currency import Currency
from .organization import Organization


# ---------- Banking ----------
class BankAccount(models.Model):  # Represents a bank account the organization maintains
    organization = models.ForeignKey(Organization, on_delete=models.CASCADE)
    name = models.CharField(max_length=200)  # e.g. "Main Checking"
    account_number = models.CharField(max_length=50, blank=True, default="")
    iban = models.CharField(max_length=34, blank=True, default="")
    swift = models.CharField(max_length=11, blank=True, default="")
    currency = models.ForeignKey(Currency, on_delete=models.PROTECT)

    # Cached projection of the posted lines of ledger_account.
    # Refreshed by services.banking, never edited by hand.
    balance = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    balance_refreshed_at = models.DateTimeField(null=True, blank=True)

    ledger_account = models.ForeignKey(
        Account,
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="bank_accounts",
    )
    is_active = models.BooleanField(default=True)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        # An organization cannot have two accounts with the same name
        constraints = [
            models.UniqueConstraint(
                fields=["organization", "name"], name="uq_org_bankaccount_name"
            ),
        ]
        ordering = ("organization", "name")

    def __str__(self):
        # Show name + last digits for clarity
        if self.account_number:
            return f"{self.name} (…{self.account_number[-4:]})"
        return self.name

    def clean(self):
        if self.ledger_account_id:
            if self.ledger_account.organization_id != self.organization_id:
                raise ValidationError("Ledger account must belong to the same organization.")
            if self.ledger_account.ac_type != "asset":
                raise ValidationError("Ledger account of a bank account must be an asset account.")
