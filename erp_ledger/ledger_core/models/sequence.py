from django.db import models

from ..managers import TenantManager
from .organization import Organization


# ---------- Per-organization counters ----------
class Sequence(models.Model):
    """
    Serialized counter for document numbers
    (journal entry references, invoice numbers, payment references).
    Incremented under a row lock, never computed as "max + 1".
    """

    organization = models.ForeignKey(Organization, on_delete=models.CASCADE)
    # e.g. "invoice:2025" or "journal:VEN:2025"
    key = models.CharField(max_length=100)
    last_value = models.PositiveIntegerField(default=0)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["organization", "key"], name="uq_org_sequence_key"
            )
        ]

    def __str__(self):
        return f"{self.organization_id}:{self.key}={self.last_value}"
