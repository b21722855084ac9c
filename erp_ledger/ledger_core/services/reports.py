"""
Read-only aggregations over posted journal entry lines.

An entry contributes once it has been posted (posted_at set). A reversed
original keeps contributing on its own date and its reversal offsets it on
the reversal date. Drafts and cancelled drafts never contribute.

Balances follow the account type: debit - credit for asset/expense,
credit - debit for liability/equity/revenue.
"""
import logging
from decimal import Decimal

from django.db import transaction
from django.db.models import Q, Sum

from ..exceptions import BalanceSheetImbalance, InvalidDateRange
from ..models import Account, JournalEntryLine
from ..models.account import BALANCE_SHEET_TYPES, INCOME_STATEMENT_TYPES

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def _posted_lines(organization):
    return JournalEntryLine.objects.for_organization(organization).posted()


def _account_sums(organization, end, start=None):
    """
    {account_id: {"debit", "credit", "closing_debit", "closing_credit"}}
    Period sums cover start..end, closing sums everything up to end.
    One aggregate query.
    """
    period = Q(entry__date__gte=start) if start else None
    rows = (
        _posted_lines(organization)
        .filter(entry__date__lte=end)
        .values("account_id")
        .annotate(
            debit=Sum("debit", filter=period),
            credit=Sum("credit", filter=period),
            closing_debit=Sum("debit"),
            closing_credit=Sum("credit"),
        )
    )
    keys = ("debit", "credit", "closing_debit", "closing_credit")
    return {r["account_id"]: {key: r[key] or ZERO for key in keys} for r in rows}


def _row(account, debit, credit, closing_debit, closing_credit):
    return {
        "account_id": account.pk,
        "code": account.code,
        "name": account.name,
        "ac_type": account.ac_type,
        "debit": debit,
        "credit": credit,
        "balance": account.signed_balance(debit, credit),
        "closing_balance": account.signed_balance(closing_debit, closing_credit),
    }


def _check_range(start, end):
    if start > end:
        raise InvalidDateRange(f"{start} is after {end}")


def trial_balance(organization, start, end):
    """
    One row per account with activity in start..end or a
    nonzero running balance at end.
    """
    _check_range(start, end)
    with transaction.atomic():
        sums = _account_sums(organization, end, start=start)
        accounts = Account.objects.for_organization(organization).filter(pk__in=sums.keys()).order_by("code")
        rows = []
        for account in accounts:
            s = sums[account.pk]
            row = _row(account, s["debit"], s["credit"], s["closing_debit"], s["closing_credit"])
            if row["debit"] or row["credit"] or row["closing_balance"]:
                rows.append(row)

    return {
        "start": start,
        "end": end,
        "rows": rows,
        "total_debit": sum((r["debit"] for r in rows), ZERO),
        "total_credit": sum((r["credit"] for r in rows), ZERO),
    }


def _section(rows):
    return {"rows": rows, "total": sum((r["balance"] for r in rows), ZERO)}


def balance_sheet(organization, as_of):
    """
    Cumulative balances of asset/liability/equity accounts at as_of.
    Revenue minus expenses to date shows up as a "current earnings"
    equity row until it is closed into equity by an entry.
    """
    with transaction.atomic():
        sums = _account_sums(organization, as_of)
        accounts = Account.objects.for_organization(organization).filter(pk__in=sums.keys()).order_by("code")
        groups = {ac_type: [] for ac_type in BALANCE_SHEET_TYPES}
        earnings = ZERO
        for account in accounts:
            s = sums[account.pk]
            debit, credit = s["closing_debit"], s["closing_credit"]
            if account.ac_type in INCOME_STATEMENT_TYPES:
                # revenue adds to earnings, expense reduces them
                earnings += credit - debit
                continue
            row = _row(account, debit, credit, debit, credit)
            if row["balance"]:
                groups[account.ac_type].append(row)

    equity_rows = groups["equity"] + [
        {
            "account_id": None,
            "code": "",
            "name": "Current earnings",
            "ac_type": "equity",
            "debit": ZERO,
            "credit": ZERO,
            "balance": earnings,
            "closing_balance": earnings,
        }
    ]
    assets = _section(groups["asset"])
    liabilities = _section(groups["liability"])
    equity = _section(equity_rows)

    if assets["total"] != liabilities["total"] + equity["total"]:
        logger.error(
            "Balance sheet imbalance for organization %s at %s: assets %s != liabilities %s + equity %s",
            organization.pk, as_of, assets["total"], liabilities["total"], equity["total"],
        )
        raise BalanceSheetImbalance(
            f"Assets {assets['total']} != liabilities {liabilities['total']} + equity {equity['total']}"
        )

    return {
        "as_of": as_of,
        "assets": assets,
        "liabilities": liabilities,
        "equity": equity,
        "current_earnings": earnings,
        "total_assets": assets["total"],
        "total_liabilities": liabilities["total"],
        "total_equity": equity["total"],
    }


def income_statement(organization, start, end):
    _check_range(start, end)
    with transaction.atomic():
        sums = _account_sums(organization, end, start=start)
        accounts = (
            Account.objects.for_organization(organization)
            .filter(pk__in=sums.keys(), ac_type__in=INCOME_STATEMENT_TYPES)
            .order_by("code")
        )
        revenue, expenses = [], []
        for account in accounts:
            s = sums[account.pk]
            if not (s["debit"] or s["credit"]):
                continue
            row = _row(account, s["debit"], s["credit"], s["debit"], s["credit"])
            (revenue if account.ac_type == "revenue" else expenses).append(row)

    revenue, expenses = _section(revenue), _section(expenses)
    return {
        "start": start,
        "end": end,
        "revenue": revenue,
        "expenses": expenses,
        "total_revenue": revenue["total"],
        "total_expenses": expenses["total"],
        "net_income": revenue["total"] - expenses["total"],
    }


def general_ledger(organization, account_id, start, end):
    """Posted lines of one account with opening and running balance."""
    _check_range(start, end)
    with transaction.atomic():
        account = Account.objects.for_organization(organization).get(pk=account_id)
        lines = _posted_lines(organization).filter(account=account)
        opening = lines.filter(entry__date__lt=start).aggregate(debit=Sum("debit"), credit=Sum("credit"))
        balance = account.signed_balance(opening["debit"] or ZERO, opening["credit"] or ZERO)
        opening_balance = balance

        rows = []
        period_lines = (
            lines.filter(entry__date__gte=start, entry__date__lte=end)
            .select_related("entry")
            .order_by("entry__date", "entry_id", "position", "id")
        )
        for line in period_lines:
            balance += account.signed_balance(line.debit, line.credit)
            rows.append(
                {
                    "line_id": line.pk,
                    "date": line.entry.date,
                    "reference": line.entry.reference,
                    "label": line.label,
                    "debit": line.debit,
                    "credit": line.credit,
                    "balance": balance,
                    "reconciled": line.reconciled,
                }
            )

    return {
        "account_id": account.pk,
        "code": account.code,
        "name": account.name,
        "start": start,
        "end": end,
        "opening_balance": opening_balance,
        "closing_balance": balance,
        "rows": rows,
    }
