from django.core.exceptions import ValidationError  # Built-in way to raise validation errors
from django.db import models  # ORM base classes to define database tables as Python classes

from ..managers import TenantManager
from .organization import Organization

FISCAL_YEAR_STATUS = [
    ("open", "Open"),
    ("closed", "Closed"),
]


# ---------- FiscalYear (posting period) ----------
class FiscalYear(models.Model):  # Date range during which postings are permitted

    # Every organization has its own independent calendar
    organization = models.ForeignKey(
        Organization,
        # Prevent accidental deletion of periods tied to journal entries
        on_delete=models.PROTECT,
    )

    # Human-readable label for the period
    name = models.CharField(max_length=50)  # Example: "FY 2025"

    # Define the exact (inclusive) date range of the fiscal year
    start_date = models.DateField()
    end_date = models.DateField()

    status = models.CharField(max_length=10, choices=FISCAL_YEAR_STATUS, default="open")
    """
        When status="closed":
            No entry dated inside may be created, posted or reversed.
            Closing is one-way; closed_by/closed_at record who did it.
    """
    closed_at = models.DateTimeField(null=True, blank=True)
    closed_by = models.CharField(max_length=64, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        indexes = [
            models.Index(fields=["organization", "start_date"], name="ix_fy_org_start"),
            models.Index(fields=["organization", "status"], name="ix_fy_org_status"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["organization", "name"], name="uq_org_fiscal_year_name"
            ),
        ]
        # periods are returned chronologically
        ordering = ("organization", "start_date")

    def __str__(self):
        return f"{self.name} [{self.status}]"

    @property
    def is_open(self):
        return self.status == "open"

    def covers(self, date):
        return self.start_date <= date <= self.end_date

    def clean(self):
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValidationError("start_date must not be after end_date")

    def save(self, *args, **kwargs):
        if self.pk:
            orig = FiscalYear.objects.filter(pk=self.pk).values("status").first()
            # closing is irreversible
            if orig and orig["status"] == "closed" and self.status != "closed":
                raise ValidationError("Cannot reopen a closed fiscal year")
        self.full_clean()  # run validations before saving
        return super().save(*args, **kwargs)
