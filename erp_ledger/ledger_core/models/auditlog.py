from django.db import models

from ..managers import TenantManager
from .organization import Organization


# ---------- Audit / Event log ----------
class AuditLog(models.Model):  # Accountability and traceability for ledger transitions
    organization = models.ForeignKey(
        Organization,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
    )
    # Opaque actor id supplied by the calling layer
    # (blank when the action was automated, e.g. a Celery task)
    actor = models.CharField(max_length=64, blank=True, default="")
    # Type of event being logged: post, reverse, close_year, allocate ...
    action = models.CharField(max_length=50)
    # What kind of object was affected ("Invoice", "JournalEntry", ...)
    object_type = models.CharField(max_length=100)
    object_id = models.CharField(max_length=100)
    # Details of what changed, in JSON format
    changes = models.JSONField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        indexes = [
            models.Index(fields=["organization", "created_at"], name="ix_audit_org_created"),
            models.Index(fields=["object_type", "object_id"], name="ix_audit_object"),
        ]

    def __str__(self):
        return f"[{self.created_at}] {self.actor} {self.action} {self.object_type}({self.object_id})"
