import logging

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task  # register this function as a Celery task
def refresh_bank_balances(organization_id):
    """Recompute the cached balance of every active bank account of an organization."""
    # import lazily to avoid circular imports at module import time
    from .models import Organization
    from .services.banking import refresh_all_bank_balances

    organization = Organization.objects.get(pk=organization_id)
    refreshed = refresh_all_bank_balances(organization)
    logger.info("Refreshed %d bank balances for organization %s", len(refreshed), organization.slug)
    # JSON-serializable result for the result backend
    return {str(ba.pk): str(ba.balance) for ba in refreshed}
