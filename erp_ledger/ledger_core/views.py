import json
import logging
from functools import wraps

from django.core.exceptions import ObjectDoesNotExist, ValidationError
from django.http import Http404, JsonResponse
from django.utils import timezone
from django.utils.dateparse import parse_date
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from .exceptions import (InvariantViolation, LedgerError,
                         LedgerIntegrityError, LedgerValidationError)
from .services import invoicing, payment, periods, posting, reports
from .services.validation import describe

logger = logging.getLogger(__name__)


def _status_for(error):
    if isinstance(error, LedgerIntegrityError):
        return 500
    if isinstance(error, InvariantViolation):
        return 409
    # validation and state errors are caller-correctable
    return 400


def ledger_view(view):
    """
    Resolve the organization, decode the JSON body and
    translate ledger errors into JSON responses.
    """

    @csrf_exempt
    @wraps(view)
    def wrapper(request, *args, **kwargs):
        if getattr(request, "organization", None) is None:
            return JsonResponse({"ok": False, "error": "Unknown organization", "code": "not_found"}, status=404)
        try:
            request.data = json.loads(request.body or b"{}") if request.method == "POST" else {}
        except ValueError:
            return JsonResponse({"ok": False, "error": "Malformed JSON body", "code": "bad_request"}, status=400)

        try:
            return view(request, *args, **kwargs)
        except (ObjectDoesNotExist, Http404):
            # objects of other organizations are indistinguishable from missing ones
            return JsonResponse({"ok": False, "error": "Not found", "code": "not_found"}, status=404)
        except ValidationError as e:
            # model guard that no service translated
            return JsonResponse({"ok": False, "error": describe(e), "code": "validation_error"}, status=400)
        except LedgerError as e:
            status = _status_for(e)
            if status == 500:
                logger.error("Integrity error on %s: %s", request.path, e.message)
            return JsonResponse({"ok": False, "error": e.message, "code": e.code}, status=status)

    return wrapper


def _date(value, field):
    parsed = parse_date(value) if isinstance(value, str) else None
    if parsed is None:
        raise LedgerValidationError(f"{field} must be a YYYY-MM-DD date")
    return parsed


# ---------- Serializers ----------
def _entry_json(entry):
    return {
        "id": entry.pk,
        "reference": entry.reference,
        "journal": entry.journal.code,
        "date": entry.date,
        "description": entry.description,
        "status": entry.status,
        "currency": entry.currency_id,
        "total_debit": entry.total_debit,
        "total_credit": entry.total_credit,
        "posted_at": entry.posted_at,
        "posted_by": entry.posted_by,
        "reversed_by": entry.reversed_by_id,
        "lines": [
            {
                "id": line.pk,
                "account_id": line.account_id,
                "label": line.label,
                "debit": line.debit,
                "credit": line.credit,
                "reconciled": line.reconciled,
            }
            for line in entry.lines.all()
        ],
    }


def _invoice_json(invoice, today=None):
    return {
        "id": invoice.pk,
        "number": invoice.number,
        "customer": {
            "ref": invoice.customer_ref,
            "name": invoice.customer_name,
            "email": invoice.customer_email,
            "address": invoice.customer_address,
        },
        "date": invoice.date,
        "due_date": invoice.due_date,
        "status": invoice.effective_status(today) if today else invoice.status,
        "currency": invoice.currency_id,
        "subtotal": invoice.subtotal,
        "tax_amount": invoice.tax_amount,
        "total": invoice.total,
        "amount_paid": invoice.amount_paid,
        "amount_due": invoice.amount_due,
        "journal_entry": invoice.journal_entry_id,
    }


def _payment_json(p):
    return {
        "id": p.pk,
        "reference": p.reference,
        "date": p.date,
        "amount": p.amount,
        "currency": p.currency_id,
        "method": p.method,
        "allocated": p.allocated_total(),
        "journal_entry": p.journal_entry_id,
    }


# ---------- Posting surface ----------
@require_POST
@ledger_view
def create_entry_view(request):
    data = request.data
    entry = posting.create_draft_entry(
        request.organization,
        request.actor,
        data.get("journal_id"),
        _date(data.get("date"), "date"),
        data.get("description", ""),
        data.get("lines", []),
        reference=data.get("reference"),
    )
    return JsonResponse({"ok": True, "entry": _entry_json(entry)}, status=201)


@require_GET
@ledger_view
def entry_detail_view(request, entry_id):
    entry = posting.get_entry(request.organization, entry_id)
    return JsonResponse({"ok": True, "entry": _entry_json(entry)})


@require_POST
@ledger_view
def post_entry_view(request, entry_id):
    entry = posting.post_entry(request.organization, entry_id, actor=request.actor)
    return JsonResponse({"ok": True, "entry": _entry_json(entry)})


@require_POST
@ledger_view
def cancel_entry_view(request, entry_id):
    entry = posting.cancel_draft(request.organization, entry_id, actor=request.actor)
    return JsonResponse({"ok": True, "entry": _entry_json(entry)})


@require_POST
@ledger_view
def reverse_entry_view(request, entry_id):
    reversal = posting.reverse_entry(
        request.organization,
        entry_id,
        _date(request.data.get("date"), "date"),
        actor=request.actor,
    )
    return JsonResponse({"ok": True, "entry": _entry_json(reversal)}, status=201)


# ---------- Fiscal calendar ----------
@require_POST
@ledger_view
def open_year_view(request):
    data = request.data
    year = periods.open_year(
        request.organization,
        data.get("name"),
        _date(data.get("start_date"), "start_date"),
        _date(data.get("end_date"), "end_date"),
        actor=request.actor,
    )
    return JsonResponse({"ok": True, "id": year.pk, "status": year.status}, status=201)


@require_POST
@ledger_view
def close_year_view(request, year_id):
    year = periods.close_year(request.organization, year_id, closed_by=request.actor)
    return JsonResponse({"ok": True, "id": year.pk, "status": year.status, "closed_at": year.closed_at})


# ---------- Invoice surface ----------
@ledger_view
def invoices_view(request):
    if request.method == "POST":
        data = request.data
        invoice = invoicing.create_invoice(
            request.organization,
            data.get("customer") or {},
            _date(data.get("date"), "date"),
            _date(data.get("due_date"), "due_date"),
            data.get("lines", []),
            currency=data.get("currency"),
            actor=request.actor,
            notes=data.get("notes", ""),
        )
        return JsonResponse({"ok": True, "invoice": _invoice_json(invoice)}, status=201)

    today = timezone.localdate()
    qs = invoicing.list_invoices(request.organization, status=request.GET.get("status"), today=today)
    return JsonResponse({"ok": True, "invoices": [_invoice_json(i, today) for i in qs]})


@require_POST
@ledger_view
def update_invoice_view(request, invoice_id):
    data = request.data
    invoice = invoicing.update_invoice(
        request.organization,
        invoice_id,
        customer=data.get("customer"),
        date=_date(data["date"], "date") if "date" in data else None,
        due_date=_date(data["due_date"], "due_date") if "due_date" in data else None,
        lines=data.get("lines"),
        notes=data.get("notes"),
        actor=request.actor,
    )
    return JsonResponse({"ok": True, "invoice": _invoice_json(invoice)})


@require_POST
@ledger_view
def send_invoice_view(request, invoice_id):
    invoice = invoicing.send_invoice(request.organization, invoice_id, actor=request.actor)
    return JsonResponse({"ok": True, "invoice": _invoice_json(invoice)})


@require_POST
@ledger_view
def cancel_invoice_view(request, invoice_id):
    invoice = invoicing.cancel_invoice(request.organization, invoice_id, actor=request.actor)
    return JsonResponse({"ok": True, "invoice": _invoice_json(invoice)})


# ---------- Payment surface ----------
@require_POST
@ledger_view
def record_payment_view(request):
    data = request.data
    p = payment.record_payment(
        request.organization,
        data.get("amount"),
        data.get("method", "bank_transfer"),
        _date(data.get("date"), "date"),
        currency=data.get("currency"),
        actor=request.actor,
        customer_ref=data.get("customer_ref", ""),
        account_id=data.get("account_id"),
    )
    return JsonResponse({"ok": True, "payment": _payment_json(p)}, status=201)


@require_POST
@ledger_view
def allocate_view(request, payment_id):
    allocation = payment.allocate(
        request.organization,
        payment_id,
        request.data.get("invoice_id"),
        request.data.get("amount"),
        actor=request.actor,
    )
    return JsonResponse(
        {
            "ok": True,
            "allocation_id": allocation.pk,
            "invoice": _invoice_json(allocation.invoice),
        },
        status=201,
    )


@require_POST
@ledger_view
def unallocate_view(request, allocation_id):
    invoice = payment.unallocate(request.organization, allocation_id, actor=request.actor)
    return JsonResponse({"ok": True, "invoice": _invoice_json(invoice)})


# ---------- Reporting surface ----------
@require_GET
@ledger_view
def trial_balance_view(request):
    report = reports.trial_balance(
        request.organization,
        _date(request.GET.get("start"), "start"),
        _date(request.GET.get("end"), "end"),
    )
    return JsonResponse({"ok": True, **report})


@require_GET
@ledger_view
def balance_sheet_view(request):
    report = reports.balance_sheet(request.organization, _date(request.GET.get("as_of"), "as_of"))
    return JsonResponse({"ok": True, **report})


@require_GET
@ledger_view
def income_statement_view(request):
    report = reports.income_statement(
        request.organization,
        _date(request.GET.get("start"), "start"),
        _date(request.GET.get("end"), "end"),
    )
    return JsonResponse({"ok": True, **report})


@require_GET
@ledger_view
def general_ledger_view(request, account_id):
    report = reports.general_ledger(
        request.organization,
        account_id,
        _date(request.GET.get("start"), "start"),
        _date(request.GET.get("end"), "end"),
    )
    return JsonResponse({"ok": True, **report})
