import logging
from collections import OrderedDict
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.core.validators import validate_email
from django.db import transaction
from django.utils import timezone

from ..exceptions import (EmptyInvoice, HasPayments, InvalidAmount,
                          InvalidDateRange, InvalidJournal, InvalidLine,
                          InvalidQuantity, InvalidTransition,
                          LedgerValidationError, NotDraft)
from ..models import Account, Invoice, InvoiceLine, Journal, TaxRate
from ..models.invoice import OPEN_STATUSES, OVERDUE
from .audit_helper import log_action
from .posting import (record_entry, resolve_currency, reverse_entry,
                      to_decimal)
from .sequences import next_number
from .validation import model_errors

logger = logging.getLogger(__name__)

RECEIVABLE_CODE_PREFIX = "411"
# InvoiceLine.quantity and unit_price precision
LINE_DECIMALS = 4


def get_invoice(organization, invoice_id) -> Invoice:
    return Invoice.objects.for_organization(organization).get(pk=invoice_id)


def list_invoices(organization, status=None, today=None):
    """
    Filter by the status as seen today. "overdue" is evaluated here,
    and sent/partial only match invoices that are not yet past due.
    """
    today = today or timezone.localdate()
    qs = Invoice.objects.for_organization(organization)
    if status == OVERDUE:
        qs = qs.filter(status__in=OPEN_STATUSES, due_date__lt=today)
    elif status in OPEN_STATUSES:
        qs = qs.filter(status=status, due_date__gte=today)
    elif status:
        qs = qs.filter(status=status)
    return qs.order_by("-date", "-id")


def _line_number(value, error):
    """Quantity or unit price: finite, at most LINE_DECIMALS places."""
    if not value.is_finite():
        raise error(f"Invalid number {value}")
    if value.normalize().as_tuple().exponent < -LINE_DECIMALS:
        raise error(f"At most {LINE_DECIMALS} decimal places allowed, got {value}")
    return value


def _customer_snapshot(customer):
    if not customer or not customer.get("name"):
        raise LedgerValidationError("Customer snapshot requires a name")
    email = customer.get("email", "") or ""
    if email:
        try:
            validate_email(email)
        except ValidationError:
            raise LedgerValidationError(f"Invalid customer email {email!r}")
    return {
        "customer_ref": str(customer.get("ref", customer.get("id", "")) or ""),
        "customer_name": customer["name"],
        "customer_email": email,
        "customer_address": customer.get("address", "") or "",
    }


def _prepare_lines(organization, lines):
    prepared = []
    for raw in lines:
        quantity = _line_number(to_decimal(raw.get("quantity", 1), error=InvalidQuantity), InvalidQuantity)
        if quantity <= 0:
            raise InvalidQuantity(f"Quantity must be > 0, got {quantity}")
        unit_price = _line_number(to_decimal(raw.get("unit_price"), error=InvalidAmount), InvalidAmount)
        if unit_price < 0:
            raise InvalidAmount(f"Unit price must be >= 0, got {unit_price}")

        tax_rate = None
        tax_rate_id = raw.get("tax_rate_id")
        if tax_rate_id is not None:
            tax_rate = TaxRate.objects.for_organization(organization).filter(pk=tax_rate_id).first()
            if tax_rate is None or not tax_rate.is_active or not tax_rate.applies_to_sales:
                raise LedgerValidationError(f"Tax rate {tax_rate_id} is not a usable sales rate")

        account = None
        account_id = raw.get("account_id")
        if account_id is not None:
            account = Account.objects.for_organization(organization).filter(pk=account_id).first()
            if account is None or not account.is_active:
                raise InvalidLine(f"Account {account_id} is unknown or inactive")

        prepared.append(
            {
                "description": raw.get("description", ""),
                "quantity": quantity,
                "unit_price": unit_price,
                "tax_rate": tax_rate,
                # snapshot, later edits of the rate leave the invoice untouched
                "tax_rate_value": tax_rate.rate if tax_rate else Decimal("0"),
                "account": account,
            }
        )
    return prepared


@model_errors()
def create_invoice(
    organization,
    customer,
    date,
    due_date,
    lines,
    currency=None,
    actor="",
    notes="",
) -> Invoice:
    """
    Create a draft invoice from a customer snapshot
    {"ref", "name", "email", "address"} and line dicts
    {"description", "quantity", "unit_price", "tax_rate_id", "account_id"}.
    """
    if not lines:
        raise EmptyInvoice()
    if due_date < date:
        raise InvalidDateRange(f"Due date {due_date} is before invoice date {date}")
    snapshot = _customer_snapshot(customer)
    prepared = _prepare_lines(organization, lines)
    currency = resolve_currency(organization, currency)

    with transaction.atomic():
        invoice = Invoice.objects.create(
            organization=organization,
            number=next_number(organization, "INV", date.year),
            date=date,
            due_date=due_date,
            **snapshot,
            currency=currency,
            notes=notes or "",
        )
        for position, data in enumerate(prepared):
            InvoiceLine(invoice=invoice, position=position, **data).save()

        # total = subtotal + tax_amount, amount_due = total
        invoice.recalc_totals()
        invoice.save()
    logger.info("Created invoice %s total %s %s", invoice.number, invoice.total, currency.code)
    return invoice


@model_errors()
def update_invoice(
    organization,
    invoice_id,
    customer=None,
    date=None,
    due_date=None,
    lines=None,
    notes=None,
    actor="",
) -> Invoice:
    """
    Edit a draft invoice. Only the arguments given change; `lines`
    replaces every line and the totals are recomputed. The number is kept.
    """
    if lines is not None and not lines:
        raise EmptyInvoice()
    snapshot = _customer_snapshot(customer) if customer is not None else None
    prepared = _prepare_lines(organization, lines) if lines is not None else None

    with transaction.atomic():
        invoice = Invoice.objects.for_organization(organization).select_for_update().get(pk=invoice_id)
        if invoice.status != "draft":
            logger.warning("Invoice %s is %s, cannot edit", invoice.number, invoice.status)
            raise NotDraft(f"Invoice {invoice.number} is {invoice.status}")

        changes = {}
        if snapshot is not None:
            for field, value in snapshot.items():
                setattr(invoice, field, value)
            changes["customer"] = snapshot["customer_name"]
        if date is not None:
            invoice.date = date
            changes["date"] = str(date)
        if due_date is not None:
            invoice.due_date = due_date
            changes["due_date"] = str(due_date)
        if invoice.due_date < invoice.date:
            raise InvalidDateRange(f"Due date {invoice.due_date} is before invoice date {invoice.date}")
        if notes is not None:
            invoice.notes = notes

        if prepared is not None:
            invoice.lines.all().delete()
            for position, data in enumerate(prepared):
                InvoiceLine(invoice=invoice, position=position, **data).save()
            changes["lines"] = len(prepared)

        invoice.recalc_totals()
        invoice.save()
        log_action(action="update_invoice", instance=invoice, actor=actor, changes=changes)
    logger.info("Updated draft invoice %s, total %s", invoice.number, invoice.total)
    return invoice


def send_invoice(organization, invoice_id, actor="") -> Invoice:
    with transaction.atomic():
        invoice = Invoice.objects.for_organization(organization).select_for_update().get(pk=invoice_id)
        if invoice.status != "draft":
            logger.warning("Invoice %s is %s, cannot send", invoice.number, invoice.status)
            raise NotDraft(f"Invoice {invoice.number} is {invoice.status}")
        invoice.status = "sent"
        invoice.sent_at = timezone.now()
        invoice.save(update_fields=["status", "sent_at"])
        log_action(action="send_invoice", instance=invoice, actor=actor)
    logger.info("Sent invoice %s", invoice.number)
    return invoice


def cancel_invoice(organization, invoice_id, actor="") -> Invoice:
    """
    Cancel a draft or sent invoice without payments.
    A posted revenue entry is reversed as of today.
    """
    with transaction.atomic():
        invoice = Invoice.objects.for_organization(organization).select_for_update().get(pk=invoice_id)
        if invoice.amount_paid > 0:
            logger.warning("Invoice %s has payments, cannot cancel", invoice.number)
            raise HasPayments(f"Invoice {invoice.number} has {invoice.amount_paid} allocated")
        if invoice.status not in ("draft", "sent"):
            raise InvalidTransition(f"Cannot cancel a {invoice.status} invoice")

        entry = invoice.journal_entry
        if entry is not None and entry.status == "posted":
            reverse_entry(
                organization,
                entry.pk,
                timezone.localdate(),
                actor=actor,
                description=f"Cancellation of invoice {invoice.number}",
            )

        previous = invoice.status
        invoice.status = "cancelled"
        invoice.save(update_fields=["status"])
        log_action(
            action="cancel_invoice",
            instance=invoice,
            actor=actor,
            changes={"from": previous},
        )
    logger.info("Cancelled invoice %s", invoice.number)
    return invoice


def _default_journal(organization, journal_type):
    return (
        Journal.objects.active(organization)
        .filter(journal_type=journal_type)
        .order_by("code")
        .first()
    )


def default_receivable_account(organization):
    return (
        Account.objects.active(organization)
        .filter(ac_type="asset", code__startswith=RECEIVABLE_CODE_PREFIX)
        .order_by("code")
        .first()
    )


def post_invoice_revenue(
    organization,
    invoice_id,
    actor="",
    journal_id=None,
    receivable_account_id=None,
):
    """
    Create & post the revenue recognition entry for an issued invoice:
      Debit: receivable = invoice.total
      Credit: revenue accounts (per line account) = line subtotals
      Credit: tax accounts (per tax rate) = line tax amounts
    """
    with transaction.atomic():
        invoice = Invoice.objects.for_organization(organization).select_for_update().get(pk=invoice_id)
        if invoice.status in ("draft", "cancelled"):
            raise InvalidTransition(f"Invoice {invoice.number} is {invoice.status}")
        if invoice.journal_entry_id is not None:
            raise InvalidTransition(f"Invoice {invoice.number} revenue is already posted")

        if journal_id is None:
            journal = _default_journal(organization, "sales")
            if journal is None:
                raise InvalidJournal("No active sales journal")
            journal_id = journal.pk

        if receivable_account_id is None:
            receivable = default_receivable_account(organization)
            if receivable is None:
                raise LedgerValidationError("No receivable account configured")
            receivable_account_id = receivable.pk

        # Aggregate credits by account, keeping line order for display
        credits = OrderedDict()
        for line in invoice.lines.select_related("tax_rate"):
            if line.account_id is None:
                raise InvalidLine(f"Invoice line {line.pk} has no revenue account")
            credits[line.account_id] = credits.get(line.account_id, Decimal("0")) + line.subtotal
            if line.tax_amount > 0:
                if line.tax_rate is None or line.tax_rate.account_id is None:
                    raise InvalidLine(f"Invoice line {line.pk} has tax but no tax account")
                tax_account = line.tax_rate.account_id
                credits[tax_account] = credits.get(tax_account, Decimal("0")) + line.tax_amount

        lines = [
            {
                "account_id": receivable_account_id,
                "debit": invoice.total,
                "label": f"Receivable {invoice.number}",
            }
        ]
        lines += [
            {"account_id": account_id, "credit": amount, "label": f"Invoice {invoice.number}"}
            for account_id, amount in credits.items()
            if amount > 0
        ]

        entry = record_entry(
            organization,
            actor,
            journal_id,
            invoice.date,
            f"Invoice {invoice.number} - {invoice.customer_name}",
            lines,
            currency=invoice.currency,
            source_type="invoice",
            source_id=invoice.pk,
        )
        invoice.journal_entry = entry
        invoice.save(update_fields=["journal_entry"])
    logger.info("Posted revenue of invoice %s as %s", invoice.number, entry.reference)
    return entry
