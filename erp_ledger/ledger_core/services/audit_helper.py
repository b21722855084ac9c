from typing import Optional

from ..models import AuditLog, Organization


def log_action(
    *,
    action: str,
    instance,
    actor: str = "",
    organization: Optional[Organization] = None,
    changes: dict | None = None,
):
    """
    Central audit logger.
    Runs inside the caller's transaction, so a rolled back
    operation leaves no audit row behind.
    """

    if not organization:
        organization = getattr(instance, "organization", None)

    return AuditLog.objects.create(
        organization=organization,
        actor=actor or "",
        action=action,
        object_type=instance.__class__.__name__,
        object_id=str(instance.pk),
        changes=changes,
    )
