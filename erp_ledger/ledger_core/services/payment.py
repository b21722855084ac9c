import logging
from decimal import Decimal

from django.db import models, transaction
from django.utils import timezone

from ..exceptions import (CurrencyMismatch, InvalidAmount, InvalidJournal,
                          InvalidTransition, InvoiceAlreadyClosed,
                          InvoiceNotPayable, LedgerValidationError,
                          OverAllocation)
from ..models import (Account, Invoice, Journal, Payment,
                      PaymentAllocation)
from ..models.payment import PAYMENT_METHODS
from .audit_helper import log_action
from .invoicing import default_receivable_account
from .posting import record_entry, resolve_currency, to_decimal
from .sequences import next_number
from .validation import model_errors

logger = logging.getLogger(__name__)

# allocations are accepted while the invoice is issued
PAYABLE_STATUSES = ("sent", "partial", "paid")


def get_payment(organization, payment_id) -> Payment:
    return Payment.objects.for_organization(organization).get(pk=payment_id)


def list_payments(organization):
    return Payment.objects.for_organization(organization).order_by("-date", "-id")


def list_allocations(organization, payment_id=None, invoice_id=None):
    qs = PaymentAllocation.objects.filter(payment__organization=organization).select_related(
        "payment", "invoice"
    )
    if payment_id is not None:
        qs = qs.filter(payment_id=payment_id)
    if invoice_id is not None:
        qs = qs.filter(invoice_id=invoice_id)
    return qs.order_by("created_at", "id")


def _positive_amount(value, currency):
    amount = currency.quantize(to_decimal(value, error=InvalidAmount))
    if amount <= 0:
        raise InvalidAmount(f"Amount must be > 0, got {amount}")
    return amount


@model_errors()
def record_payment(
    organization,
    amount,
    method,
    date,
    currency=None,
    actor="",
    customer_ref="",
    supplier_ref="",
    account_id=None,
    notes="",
) -> Payment:
    """Create an unallocated payment; no ledger or invoice effect yet."""
    if method not in dict(PAYMENT_METHODS):
        raise LedgerValidationError(f"Unknown payment method {method}")
    currency = resolve_currency(organization, currency)
    amount = _positive_amount(amount, currency)

    account = None
    if account_id is not None:
        account = Account.objects.for_organization(organization).filter(pk=account_id).first()
        if account is None:
            raise LedgerValidationError(f"Account {account_id} does not exist")

    with transaction.atomic():
        payment = Payment.objects.create(
            organization=organization,
            reference=next_number(organization, "PAY", date.year),
            date=date,
            amount=amount,
            currency=currency,
            method=method,
            customer_ref=customer_ref or "",
            supplier_ref=supplier_ref or "",
            account=account,
            notes=notes or "",
            created_by=actor or "",
        )
    logger.info("Recorded payment %s of %s %s", payment.reference, amount, currency.code)
    return payment


def _lock_pair(organization, payment_id, invoice_id):
    # Lock order: payment, then invoice. Several invoices are
    # taken in primary key order (allocate_many).
    payment = Payment.objects.for_organization(organization).select_for_update().get(pk=payment_id)
    invoice = Invoice.objects.for_organization(organization).select_for_update().get(pk=invoice_id)
    return payment, invoice


def _save_invoice_balance(invoice):
    invoice.refresh_payment_status(timezone.now())
    invoice.save(update_fields=["amount_paid", "amount_due", "status", "paid_at"])


def allocate(organization, payment_id, invoice_id, amount, actor="") -> PaymentAllocation:
    """
    Apply part (or all) of a payment to an invoice.
    Allocation row and invoice balance change commit together or not at all.
    """
    with transaction.atomic():
        payment, invoice = _lock_pair(organization, payment_id, invoice_id)

        if invoice.status not in PAYABLE_STATUSES:
            logger.warning("Invoice %s is %s, not payable", invoice.number, invoice.status)
            raise InvoiceNotPayable(f"Invoice {invoice.number} is {invoice.status}")
        # cross-currency allocation is not supported, never converted
        if payment.currency_id != invoice.currency_id:
            raise CurrencyMismatch(
                f"Payment in {payment.currency_id}, invoice in {invoice.currency_id}"
            )
        amount = _positive_amount(amount, invoice.currency)

        # Validate payment remaining capacity
        allocated = payment.allocated_total()
        if allocated + amount > payment.amount:
            logger.warning(
                "Over-allocation of payment %s: %s + %s > %s",
                payment.reference, allocated, amount, payment.amount,
            )
            raise OverAllocation(
                f"Payment {payment.reference} has only {payment.amount - allocated} unallocated"
            )

        # Validate invoice outstanding
        paid = invoice.allocations.aggregate(total=models.Sum("amount"))["total"] or Decimal("0")
        if paid + amount > invoice.total:
            logger.warning(
                "Over-allocation of invoice %s: %s + %s > %s",
                invoice.number, paid, amount, invoice.total,
            )
            raise OverAllocation(
                f"Invoice {invoice.number} has only {invoice.total - paid} outstanding"
            )

        allocation = PaymentAllocation.objects.create(
            payment=payment,
            invoice=invoice,
            amount=amount,
            created_by=actor or "",
        )
        _save_invoice_balance(invoice)
        log_action(
            action="allocate",
            instance=allocation,
            actor=actor,
            organization=organization,
            changes={
                "payment": payment.reference,
                "invoice": invoice.number,
                "amount": str(amount),
                "status": invoice.status,
            },
        )
    logger.info(
        "Allocated %s of %s to %s (now %s)", amount, payment.reference, invoice.number, invoice.status
    )
    return allocation


def allocate_many(organization, payment_id, applications, actor=""):
    """
    applications: [{"invoice_id": ..., "amount": ...}], all or nothing.

    Invoices are locked in primary key order whatever order the caller
    lists them in, so two batches sharing invoices cannot deadlock.
    The allocations come back in the order of `applications`.
    """
    order = sorted(range(len(applications)), key=lambda i: applications[i]["invoice_id"])
    allocations = [None] * len(applications)
    with transaction.atomic():
        for i in order:
            ap = applications[i]
            allocations[i] = allocate(organization, payment_id, ap["invoice_id"], ap["amount"], actor=actor)
    return allocations


def unallocate(organization, allocation_id, actor="") -> Invoice:
    """Remove an allocation and give the amount back to the invoice balance."""
    with transaction.atomic():
        allocation = PaymentAllocation.objects.filter(payment__organization=organization).get(
            pk=allocation_id
        )
        payment, invoice = _lock_pair(organization, allocation.payment_id, allocation.invoice_id)
        # re-read under lock, it may be gone once the locks are held
        allocation = PaymentAllocation.objects.select_for_update().get(pk=allocation.pk)

        if invoice.amount_paid - allocation.amount < 0:
            logger.error(
                "Invoice %s paid amount %s is below allocation %s",
                invoice.number, invoice.amount_paid, allocation.amount,
            )
            raise InvoiceAlreadyClosed(f"Invoice {invoice.number} paid amount would become negative")

        changes = {
            "payment": payment.reference,
            "invoice": invoice.number,
            "amount": str(allocation.amount),
        }
        log_action(
            action="unallocate",
            instance=allocation,
            actor=actor,
            organization=organization,
            changes=changes,
        )
        allocation.delete()
        _save_invoice_balance(invoice)
    logger.info("Unallocated %s from %s (now %s)", changes["amount"], invoice.number, invoice.status)
    return invoice


def post_payment_receipt(
    organization,
    payment_id,
    actor="",
    journal_id=None,
    receivable_account_id=None,
):
    """
    Create & post the receipt entry: debit the bank/cash account
    of the payment, credit the receivable account.
    """
    with transaction.atomic():
        payment = Payment.objects.for_organization(organization).select_for_update().get(pk=payment_id)
        if payment.journal_entry_id is not None:
            raise InvalidTransition(f"Payment {payment.reference} is already posted")
        if payment.account_id is None:
            raise LedgerValidationError(f"Payment {payment.reference} has no bank/cash account")

        if journal_id is None:
            journal_type = "cash" if payment.method == "cash" else "bank"
            journal = (
                Journal.objects.active(organization)
                .filter(journal_type=journal_type)
                .order_by("code")
                .first()
            )
            if journal is None:
                raise InvalidJournal(f"No active {journal_type} journal")
            journal_id = journal.pk

        if receivable_account_id is None:
            receivable = default_receivable_account(organization)
            if receivable is None:
                raise LedgerValidationError("No receivable account configured")
            receivable_account_id = receivable.pk

        entry = record_entry(
            organization,
            actor,
            journal_id,
            payment.date,
            f"Payment {payment.reference}",
            [
                {"account_id": payment.account_id, "debit": payment.amount, "label": payment.reference},
                {"account_id": receivable_account_id, "credit": payment.amount, "label": payment.reference},
            ],
            currency=payment.currency,
            source_type="payment",
            source_id=payment.pk,
        )
        payment.journal_entry = entry
        payment.save(update_fields=["journal_entry"])
    logger.info("Posted receipt of payment %s as %s", payment.reference, entry.reference)
    return entry
