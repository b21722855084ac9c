import logging
from decimal import Decimal, InvalidOperation

from django.db import models, transaction
from django.utils import timezone

from ..exceptions import (CurrencyMismatch, DuplicateCode, InvalidJournal,
                          InvalidLine, LedgerValidationError, NotDraft,
                          NotPosted, PeriodClosed, UnbalancedEntry)
from ..models import (Account, Currency, FiscalYear, Journal, JournalEntry,
                      JournalEntryLine)
from .audit_helper import log_action
from .periods import lock_open_year
from .sequences import next_number
from .validation import model_errors

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


# ----------------------------
# Line validation helpers
# ----------------------------
def to_decimal(value, error=InvalidLine):
    """Parse an amount given as Decimal, int or str. Floats go through str()."""
    if value is None or value == "":
        return ZERO
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise error(f"Invalid amount {value!r}")


def _clean_amounts(debit, credit, currency):
    debit = currency.quantize(to_decimal(debit))
    credit = currency.quantize(to_decimal(credit))
    if debit < 0 or credit < 0:
        raise InvalidLine("Debit and credit must be >= 0")
    if debit > 0 and credit > 0:
        raise InvalidLine("Line cannot have both debit and credit > 0")
    if debit == 0 and credit == 0:
        raise InvalidLine("Line requires a non-zero debit or credit")
    return debit, credit


def _line_account(organization, line, currency, require_active=True):
    account_id = line.get("account_id", line.get("account"))
    if isinstance(account_id, Account):
        account_id = account_id.pk
    account = Account.objects.for_organization(organization).filter(pk=account_id).first()
    if account is None:
        raise InvalidLine(f"Account {account_id} does not exist")
    if require_active and not account.is_active:
        raise InvalidLine(f"Account {account.code} is inactive")
    # no conversion: a line books in the currency of its account
    if account.currency_id != currency.pk:
        raise CurrencyMismatch(
            f"Account {account.code} is kept in {account.currency_id}, entry is in {currency.pk}"
        )
    return account


def resolve_currency(organization, currency):
    if currency is None:
        return organization.default_currency
    if isinstance(currency, Currency):
        return currency
    try:
        return Currency.objects.get(code=currency)
    except Currency.DoesNotExist:
        raise LedgerValidationError(f"Unknown currency {currency}")


def _refuse_closed_year(organization, date):
    # Drafts may be dated outside any fiscal year (the year may be opened
    # later) but never inside a closed one. The row lock serializes with close_year.
    year = (
        FiscalYear.objects.for_organization(organization)
        .select_for_update()
        .filter(start_date__lte=date, end_date__gte=date)
        .first()
    )
    if year is not None and not year.is_open:
        logger.warning("Refused draft dated %s inside closed year %s", date, year.name)
        raise PeriodClosed(f"{date} falls inside closed fiscal year {year.name}")


def _save_totals(entry):
    entry.refresh_totals()
    entry.save(update_fields=["total_debit", "total_credit"])


# ----------------------------
# Reads
# ----------------------------
def get_entry(organization, entry_id) -> JournalEntry:
    return JournalEntry.objects.for_organization(organization).get(pk=entry_id)


def list_entries(organization, journal_id=None, status=None, start=None, end=None):
    qs = JournalEntry.objects.for_organization(organization).select_related("journal")
    if journal_id is not None:
        qs = qs.filter(journal_id=journal_id)
    if status:
        qs = qs.filter(status=status)
    if start:
        qs = qs.filter(date__gte=start)
    if end:
        qs = qs.filter(date__lte=end)
    return qs.order_by("date", "id")


# ----------------------------
# Draft lifecycle
# ----------------------------
def _build_draft(
    organization,
    actor,
    journal,
    date,
    description,
    lines,
    reference=None,
    currency=None,
    source_type="",
    source_id=None,
    require_active=True,
):
    currency = resolve_currency(organization, currency)
    prepared = []
    for line in lines:
        account = _line_account(organization, line, currency, require_active=require_active)
        debit, credit = _clean_amounts(line.get("debit"), line.get("credit"), currency)
        prepared.append((account, debit, credit, line.get("label", "") or ""))

    _refuse_closed_year(organization, date)

    taken = JournalEntry.objects.for_organization(organization)
    if reference:
        if taken.filter(reference=reference).exists():
            raise DuplicateCode(f"Entry reference {reference} already exists")
    else:
        # sequential per journal, e.g. "VEN-2025-001"; numbers already used
        # as a manual reference are skipped
        reference = next_number(organization, journal.code, date.year, width=3)
        while taken.filter(reference=reference).exists():
            reference = next_number(organization, journal.code, date.year, width=3)

    entry = JournalEntry.objects.create(
        organization=organization,
        journal=journal,
        reference=reference,
        date=date,
        description=description or "",
        currency=currency,
        created_by=actor or "",
        source_type=source_type or "",
        source_id=source_id,
    )
    for position, (account, debit, credit, label) in enumerate(prepared):
        JournalEntryLine(
            entry=entry,
            account=account,
            debit=debit,
            credit=credit,
            label=label,
            position=position,
        ).save()
    _save_totals(entry)
    return entry


@model_errors()
def create_draft_entry(
    organization,
    actor,
    journal_id,
    date,
    description,
    lines,
    reference=None,
    currency=None,
    source_type="",
    source_id=None,
) -> JournalEntry:
    """
    Create a draft entry from a list of line dicts:
    {"account_id": ..., "debit": ..., "credit": ..., "label": ...}.
    Totals are computed; balance is only enforced by post_entry.
    """
    with transaction.atomic():
        journal = Journal.objects.for_organization(organization).filter(pk=journal_id).first()
        if journal is None or not journal.is_active:
            raise InvalidJournal(f"Journal {journal_id} is unknown or inactive")
        entry = _build_draft(
            organization,
            actor,
            journal,
            date,
            description,
            lines,
            reference=reference,
            currency=currency,
            source_type=source_type,
            source_id=source_id,
        )
    logger.info("Created draft entry %s with %d lines", entry.reference, len(lines))
    return entry


def _lock_draft(organization, entry_id):
    entry = JournalEntry.objects.for_organization(organization).select_for_update().get(pk=entry_id)
    if entry.status != "draft":
        logger.warning("Entry %s is %s, not draft", entry.reference, entry.status)
        raise NotDraft(f"Entry {entry.reference} is {entry.status}")
    return entry


@model_errors()
def add_line(organization, entry_id, account_id, debit=0, credit=0, label="") -> JournalEntryLine:
    with transaction.atomic():
        entry = _lock_draft(organization, entry_id)
        account = _line_account(organization, {"account_id": account_id}, entry.currency)
        debit, credit = _clean_amounts(debit, credit, entry.currency)
        last = entry.lines.aggregate(last=models.Max("position"))["last"]
        line = JournalEntryLine(
            entry=entry,
            account=account,
            debit=debit,
            credit=credit,
            label=label or "",
            position=0 if last is None else last + 1,
        )
        line.save()
        _save_totals(entry)
    return line


def remove_line(organization, line_id):
    with transaction.atomic():
        line = JournalEntryLine.objects.for_organization(organization).get(pk=line_id)
        entry = _lock_draft(organization, line.entry_id)
        line.delete()
        _save_totals(entry)
    return entry


def cancel_draft(organization, entry_id, actor="") -> JournalEntry:
    """Discard a draft. Terminal: the entry never affects balances."""
    with transaction.atomic():
        entry = _lock_draft(organization, entry_id)
        entry.status = "cancelled"
        entry.save(update_fields=["status"])
        log_action(action="cancel_entry", instance=entry, actor=actor)
    logger.info("Cancelled draft entry %s", entry.reference)
    return entry


# ----------------------------
# Posting
# ----------------------------
@model_errors()
def post_entry(organization, entry_id, actor="") -> JournalEntry:
    """
    The single choke point for ledger mutations.
    Wraps the checks and the status change in one transaction,
    holding locks on the entry and on its fiscal year.
    """
    with transaction.atomic():
        # Lock the row to avoid race conditions
        entry = _lock_draft(organization, entry_id)
        currency = entry.currency

        if not entry.lines.exists():
            raise InvalidLine(f"Entry {entry.reference} has no lines")

        debit, credit = entry.compute_totals()
        debit, credit = currency.quantize(debit), currency.quantize(credit)
        if debit != credit:
            logger.warning(
                "Unbalanced entry %s: debit %s != credit %s", entry.reference, debit, credit
            )
            raise UnbalancedEntry(
                f"Entry {entry.reference} is unbalanced: debit {debit} != credit {credit}"
            )

        lock_open_year(organization, entry.date)

        entry.total_debit = debit
        entry.total_credit = credit
        entry.status = "posted"
        entry.posted_at = timezone.now()
        entry.posted_by = actor or ""
        entry.save(
            update_fields=["total_debit", "total_credit", "status", "posted_at", "posted_by"]
        )
        log_action(
            action="post_entry",
            instance=entry,
            actor=actor,
            changes={"total": str(debit)},
        )
    logger.info("Posted entry %s (%s %s)", entry.reference, debit, currency.code)
    return entry


@model_errors()
def record_entry(organization, actor, journal_id, date, description, lines, **kwargs) -> JournalEntry:
    """Create and post in one go; nothing is kept if posting fails."""
    with transaction.atomic():
        entry = create_draft_entry(
            organization, actor, journal_id, date, description, lines, **kwargs
        )
        return post_entry(organization, entry.pk, actor=actor)


def reverse_entry(organization, entry_id, reversal_date, actor="", description=None) -> JournalEntry:
    """
    Undo a posted entry by posting its mirror image on reversal_date.
    The original becomes cancelled and points at its reversal.
    """
    with transaction.atomic():
        original = JournalEntry.objects.for_organization(organization).select_for_update().get(pk=entry_id)
        if original.status != "posted":
            logger.warning("Entry %s is %s, cannot reverse", original.reference, original.status)
            raise NotPosted(f"Entry {original.reference} is {original.status}")

        # history inside a closed year stays untouched
        lock_open_year(organization, original.date)

        swapped = [
            {
                "account_id": line.account_id,
                "debit": line.credit,
                "credit": line.debit,
                "label": line.label,
            }
            for line in original.lines.all()
        ]
        # Reversals bypass the active flags: the original accounts and
        # journal may have been deactivated since posting
        reversal = _build_draft(
            organization,
            actor,
            original.journal,
            reversal_date,
            description or f"Reversal of {original.reference}",
            swapped,
            currency=original.currency,
            source_type="journal_entry",
            source_id=original.pk,
            require_active=False,
        )
        post_entry(organization, reversal.pk, actor=actor)
        reversal.refresh_from_db()

        original.status = "cancelled"
        original.reversed_by = reversal
        original.save(update_fields=["status", "reversed_by"])
        log_action(
            action="reverse_entry",
            instance=original,
            actor=actor,
            changes={"reversal": reversal.reference, "date": str(reversal_date)},
        )
    logger.info("Reversed entry %s with %s", original.reference, reversal.reference)
    return reversal


# ----------------------------
# Reconciliation
# ----------------------------
def mark_line_reconciled(organization, line_id, actor="") -> JournalEntryLine:
    """Flag a posted line as matched against an external record."""
    with transaction.atomic():
        line = (
            JournalEntryLine.objects.for_organization(organization)
            .select_for_update()
            .select_related("entry")
            .get(pk=line_id)
        )
        if line.entry.posted_at is None:
            raise NotPosted(f"Entry {line.entry.reference} is not posted")
        if not line.reconciled:
            line.reconciled = True
            line.reconciled_at = timezone.now()
            line.save(update_fields=["reconciled", "reconciled_at"])
            log_action(action="reconcile_line", instance=line, actor=actor, organization=organization)
    return line
