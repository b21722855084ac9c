# Load the Celery app whenever Django starts so that @shared_task
# functions (ledger_core.tasks) bind to it.
# Workers: celery -A erp_ledger worker -l info
from .celery import celery_app

__all__ = ("celery_app",)
