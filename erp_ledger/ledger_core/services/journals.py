import logging

from django.db import transaction

from ..exceptions import DuplicateCode, JournalInUse, LedgerValidationError
from ..models import Journal
from ..models.journal import JOURNAL_TYPES
from .validation import model_errors

logger = logging.getLogger(__name__)

DEFAULT_JOURNALS = [
    ("GEN", "General", "general"),
    ("VEN", "Sales", "sales"),
    ("ACH", "Purchases", "purchase"),
    ("BQ", "Bank", "bank"),
    ("CAI", "Cash", "cash"),
]


def get_journal(organization, journal_id) -> Journal:
    return Journal.objects.for_organization(organization).get(pk=journal_id)


def list_journals(organization, journal_type=None, is_active=None):
    qs = Journal.objects.for_organization(organization)
    if journal_type:
        qs = qs.filter(journal_type=journal_type)
    if is_active is not None:
        qs = qs.filter(is_active=is_active)
    return qs.order_by("code")


@model_errors()
def create_journal(organization, code, name, journal_type="general") -> Journal:
    if journal_type not in dict(JOURNAL_TYPES):
        raise LedgerValidationError(f"Unknown journal type {journal_type}")
    with transaction.atomic():
        if Journal.objects.for_organization(organization).filter(code=code).exists():
            raise DuplicateCode(f"Journal code {code} already exists")
        journal = Journal.objects.create(
            organization=organization, code=code, name=name, journal_type=journal_type
        )
    logger.info("Created journal %s in organization %s", code, organization.pk)
    return journal


def deactivate_journal(organization, journal_id) -> Journal:
    """
    Stop new drafts in this journal. Existing entries keep
    their journal reference, so this never orphans anything.
    """
    journal = get_journal(organization, journal_id)
    journal.is_active = False
    journal.save(update_fields=["is_active"])
    logger.info("Deactivated journal %s", journal.code)
    return journal


def delete_journal(organization, journal_id):
    with transaction.atomic():
        journal = get_journal(organization, journal_id)
        if journal.entries.exists():
            logger.warning("Refused to delete journal %s: entries reference it", journal.code)
            raise JournalInUse(f"Journal {journal.code} has entries")
        journal.delete()
    logger.info("Deleted journal %s", journal.code)


def install_default_journals(organization):
    created = []
    with transaction.atomic():
        existing = set(
            Journal.objects.for_organization(organization).values_list("code", flat=True)
        )
        for code, name, journal_type in DEFAULT_JOURNALS:
            if code not in existing:
                created.append(create_journal(organization, code, name, journal_type))
    return created
