from django.core.exceptions import ValidationError
from django.db import models

from ..managers import TenantManager
from .currency import Currency
from .organization import Organization

# Choice Lists
AC_TYPES = [
    # Used in Account model to classify general ledger accounts
    ("asset", "Asset"),
    ("liability", "Liability"),
    ("equity", "Equity"),
    ("revenue", "Revenue"),
    ("expense", "Expense"),
]

# Accounts whose balance grows on the debit side;
# all the others (liability, equity, revenue) grow on the credit side
DEBIT_NORMAL_TYPES = ("asset", "expense")
BALANCE_SHEET_TYPES = ("asset", "liability", "equity")
INCOME_STATEMENT_TYPES = ("revenue", "expense")


class Account(models.Model):
    """
    Ledger account in the Chart of Accounts.
    - code is unique per organization and immutable after creation
    - ac_type decides reporting (Balance Sheet vs Income Statement)
      and the sign convention; it is immutable after creation
    - system accounts can never be deactivated or deleted
    """

    # All reports must filter by organization to prevent data leaks
    organization = models.ForeignKey(Organization, on_delete=models.CASCADE)
    # Sort/group accounts consistently in reports (e.g. "512000")
    code = models.CharField(max_length=32)
    name = models.CharField(max_length=200)  # "Bank", "Accounts Receivable"

    # One of the 5 basic accounting types
    ac_type = models.CharField(max_length=10, choices=AC_TYPES)

    # Optional hierarchy: you can make sub-accounts
    # (e.g. 512000 Bank, 512100 Bank - Main, 512200 Bank - Savings)
    parent = models.ForeignKey(
        "self",
        null=True,
        blank=True,
        on_delete=models.PROTECT,  # you can’t delete a parent if children exist
        related_name="children",
    )
    currency = models.ForeignKey(Currency, on_delete=models.PROTECT)

    # “soft deactivate” accounts (hide in UI, stop new postings)
    # without deleting history
    is_active = models.BooleanField(default=True)
    # protected from deactivation/deletion
    is_system = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        indexes = [
            models.Index(fields=["organization", "ac_type"], name="ix_account_org_type"),
            models.Index(fields=["organization", "parent"], name="ix_account_org_parent"),
        ]
        # Codes repeat across organizations but must be unique within one
        constraints = [
            models.UniqueConstraint(
                fields=["organization", "code"], name="uq_org_account_code"
            )
        ]
        ordering = ("organization", "code")

    def __str__(self):
        return f"{self.code} – {self.name}"

    @property
    def is_debit_normal(self):
        return self.ac_type in DEBIT_NORMAL_TYPES

    def signed_balance(self, debit, credit):
        """Balance in the account's natural direction."""
        return debit - credit if self.is_debit_normal else credit - debit

    def ancestors(self):
        """Yield parent, grandparent, ... (stops if a cycle is met)."""
        seen = {self.pk}
        node = self.parent
        while node is not None and node.pk not in seen:
            seen.add(node.pk)
            yield node
            node = node.parent

    def clean(self):
        """Enforce organization consistency and an acyclic, same-type hierarchy"""
        if self.parent_id:
            if self.parent.organization_id != self.organization_id:
                raise ValidationError(
                    "Parent & child accounts must belong to the same organization"
                )
            if self.parent.ac_type != self.ac_type:
                raise ValidationError("Child account must have its parent's type")
            if self.pk and (
                self.parent_id == self.pk
                or any(a.pk == self.pk for a in self.parent.ancestors())
            ):
                raise ValidationError("Account hierarchy cannot contain cycles")

    def save(self, *args, **kwargs):
        """Enforce business immutability of code and type"""
        if self.pk:
            old = Account.objects.filter(pk=self.pk).values("code", "ac_type").first()
            if old and (old["code"] != self.code or old["ac_type"] != self.ac_type):
                raise ValidationError(
                    "Account code and type are immutable after creation."
                )
        self.full_clean()
        return super().save(*args, **kwargs)
