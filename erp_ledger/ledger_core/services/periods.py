import logging

from django.db import transaction
from django.utils import timezone

from ..exceptions import (DuplicateCode, InvalidDateRange, OpenEntriesExist,
                          OverlappingPeriod, PeriodClosed)
from ..models import FiscalYear, JournalEntry
from .audit_helper import log_action
from .validation import model_errors

logger = logging.getLogger(__name__)


def list_years(organization):
    return FiscalYear.objects.for_organization(organization).order_by("start_date")


def get_year(organization, year_id) -> FiscalYear:
    return FiscalYear.objects.for_organization(organization).get(pk=year_id)


""" 
    Posting date determines the fiscal year.
    Changing the date before posting changes the year it falls in.
"""
def year_for_date(organization, date):
    """Fiscal year covering `date`, open or closed, or None"""
    return (
        FiscalYear.objects.for_organization(organization)
        .filter(start_date__lte=date, end_date__gte=date)
        .first()
    )


def is_date_open(organization, date) -> bool:
    """The single predicate consulted before any posting."""
    year = year_for_date(organization, date)
    return year is not None and year.is_open


def lock_open_year(organization, date) -> FiscalYear:
    """
    Lock the fiscal year covering `date` until the caller's transaction ends,
    so close_year cannot slip in between the check and the posting.
    """
    year = (
        FiscalYear.objects.for_organization(organization)
        .select_for_update()
        .filter(start_date__lte=date, end_date__gte=date)
        .first()
    )
    if year is None or not year.is_open:
        logger.warning("Date %s is not inside an open fiscal year (organization %s)", date, organization.pk)
        raise PeriodClosed(f"No open fiscal year covers {date}")
    return year


@model_errors()
def open_year(organization, name, start_date, end_date, actor="") -> FiscalYear:
    if start_date > end_date:
        raise InvalidDateRange(f"{start_date} is after {end_date}")

    with transaction.atomic():
        if FiscalYear.objects.for_organization(organization).filter(name=name).exists():
            raise DuplicateCode(f"Fiscal year {name} already exists")

        # two ranges intersect iff each starts before the other ends
        overlapping = (
            FiscalYear.objects.for_organization(organization)
            .select_for_update()
            .filter(start_date__lte=end_date, end_date__gte=start_date)
        )
        if overlapping.exists():
            logger.warning("Fiscal year %s overlaps an existing one", name)
            raise OverlappingPeriod(f"{start_date}..{end_date} overlaps an existing fiscal year")

        year = FiscalYear.objects.create(
            organization=organization,
            name=name,
            start_date=start_date,
            end_date=end_date,
        )
        log_action(
            action="open_year",
            instance=year,
            actor=actor,
            changes={"start_date": str(start_date), "end_date": str(end_date)},
        )
    logger.info("Opened fiscal year %s (%s..%s)", name, start_date, end_date)
    return year


def close_year(organization, year_id, closed_by) -> FiscalYear:
    """One-way transition open -> closed; refused while drafts are dated inside."""
    with transaction.atomic():
        year = FiscalYear.objects.for_organization(organization).select_for_update().get(pk=year_id)
        if not year.is_open:
            # already closed: closing again changes nothing
            return year

        drafts = JournalEntry.objects.for_organization(organization).filter(
            status="draft",
            date__gte=year.start_date,
            date__lte=year.end_date,
        )
        if drafts.exists():
            logger.warning("Cannot close %s: %d draft entries remain", year.name, drafts.count())
            raise OpenEntriesExist(f"{drafts.count()} draft entries are dated inside {year.name}")

        year.status = "closed"
        year.closed_at = timezone.now()
        year.closed_by = closed_by or ""
        year.save(update_fields=["status", "closed_at", "closed_by"])
        log_action(action="close_year", instance=year, actor=closed_by)
    logger.info("Closed fiscal year %s by %s", year.name, closed_by)
    return year
