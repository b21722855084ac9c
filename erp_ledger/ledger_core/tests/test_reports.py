import datetime
from decimal import Decimal

from django.test import TestCase
from django.utils import timezone

from ledger_core.exceptions import BalanceSheetImbalance, InvalidDateRange
from ledger_core.models import JournalEntry, JournalEntryLine
from ledger_core.services import posting, reports

from .factories import ACTOR, FY_END, FY_START, LedgerFixtureMixin


def by_code(rows):
    return {r["code"]: r for r in rows}


class TrialBalanceTests(LedgerFixtureMixin, TestCase):

    def test_single_sale(self):
        # Dr Bank 1000 / Cr Sales 1000
        self.posted("512000", "701000", "1000.00")

        tb = reports.trial_balance(self.org, FY_START, FY_END)
        rows = by_code(tb["rows"])
        self.assertEqual(set(rows), {"512000", "701000"})
        self.assertEqual(rows["512000"]["balance"], Decimal("1000.00"))
        self.assertEqual(rows["701000"]["balance"], Decimal("1000.00"))
        self.assertEqual(tb["total_debit"], Decimal("1000.00"))
        self.assertEqual(tb["total_credit"], Decimal("1000.00"))

    def test_liability_balance_is_credit_minus_debit(self):
        # Dr Purchases 400 / Cr Suppliers 400
        self.posted("607000", "401000", "400.00")
        rows = by_code(reports.trial_balance(self.org, FY_START, FY_END)["rows"])
        self.assertEqual(rows["401000"]["balance"], Decimal("400.00"))
        self.assertEqual(rows["607000"]["balance"], Decimal("400.00"))

    def test_drafts_and_cancelled_drafts_are_ignored(self):
        self.draft(amount="70.00")
        cancelled = self.draft(amount="30.00")
        posting.cancel_draft(self.org, cancelled.pk, actor=ACTOR)

        tb = reports.trial_balance(self.org, FY_START, FY_END)
        self.assertEqual(tb["rows"], [])
        self.assertEqual(tb["total_debit"], Decimal("0.00"))

    def test_reversal_nets_to_zero(self):
        entry = self.posted(amount="250.00", date=datetime.date(2025, 2, 1))
        posting.reverse_entry(self.org, entry.pk, datetime.date(2025, 2, 15), actor=ACTOR)

        tb = reports.trial_balance(self.org, FY_START, FY_END)
        for row in tb["rows"]:
            self.assertEqual(row["closing_balance"], Decimal("0.00"))
        # both the original and its mirror are counted
        self.assertEqual(tb["total_debit"], Decimal("500.00"))

        # before the reversal date only the original shows
        feb = reports.trial_balance(self.org, FY_START, datetime.date(2025, 2, 10))
        self.assertEqual(by_code(feb["rows"])["512000"]["balance"], Decimal("250.00"))

    def test_period_and_closing_balances(self):
        self.posted(amount="100.00", date=datetime.date(2025, 1, 15))
        self.posted(amount="40.00", date=datetime.date(2025, 3, 15))

        tb = reports.trial_balance(self.org, datetime.date(2025, 3, 1), datetime.date(2025, 3, 31))
        bank = by_code(tb["rows"])["512000"]
        self.assertEqual(bank["debit"], Decimal("40.00"))
        self.assertEqual(bank["balance"], Decimal("40.00"))
        self.assertEqual(bank["closing_balance"], Decimal("140.00"))

    def test_invalid_range(self):
        with self.assertRaises(InvalidDateRange):
            reports.trial_balance(self.org, FY_END, FY_START)


class BalanceSheetTests(LedgerFixtureMixin, TestCase):

    def test_equation_holds_with_current_earnings(self):
        self.posted("512000", "101000", "5000.00")  # capital contribution
        self.posted("512000", "701000", "1200.00")  # sale
        self.posted("607000", "401000", "300.00")  # purchase on credit

        bs = reports.balance_sheet(self.org, FY_END)
        self.assertEqual(bs["total_assets"], Decimal("6200.00"))
        self.assertEqual(bs["total_liabilities"], Decimal("300.00"))
        self.assertEqual(bs["current_earnings"], Decimal("900.00"))
        self.assertEqual(bs["total_equity"], Decimal("5900.00"))
        self.assertEqual(bs["total_assets"], bs["total_liabilities"] + bs["total_equity"])

        equity = {r["name"]: r["balance"] for r in bs["equity"]["rows"]}
        self.assertEqual(equity["Current earnings"], Decimal("900.00"))

    def test_as_of_excludes_later_entries(self):
        self.posted(amount="100.00", date=datetime.date(2025, 6, 1))
        bs = reports.balance_sheet(self.org, datetime.date(2025, 5, 31))
        self.assertEqual(bs["total_assets"], Decimal("0.00"))

    def test_imbalance_is_reported(self):
        entry = self.draft(amount="100.00")
        # corrupt the stored data behind the services' back
        line = entry.lines.get(debit__gt=0)
        JournalEntryLine.objects.filter(pk=line.pk).update(debit=Decimal("150.00"))
        JournalEntry.objects.filter(pk=entry.pk).update(status="posted", posted_at=timezone.now())

        with self.assertLogs("ledger_core", level="ERROR"):
            with self.assertRaises(BalanceSheetImbalance):
                reports.balance_sheet(self.org, FY_END)


class IncomeStatementTests(LedgerFixtureMixin, TestCase):

    def test_net_income(self):
        self.posted("512000", "701000", "800.00")
        self.posted("607000", "512000", "250.00")
        self.posted("512000", "101000", "999.00")  # not income

        report = reports.income_statement(self.org, FY_START, FY_END)
        self.assertEqual(report["total_revenue"], Decimal("800.00"))
        self.assertEqual(report["total_expenses"], Decimal("250.00"))
        self.assertEqual(report["net_income"], Decimal("550.00"))
        self.assertEqual([r["code"] for r in report["revenue"]["rows"]], ["701000"])

    def test_period_only(self):
        self.posted("512000", "701000", "800.00", date=datetime.date(2025, 1, 10))
        self.posted("512000", "701000", "200.00", date=datetime.date(2025, 2, 10))
        report = reports.income_statement(self.org, datetime.date(2025, 2, 1), datetime.date(2025, 2, 28))
        self.assertEqual(report["net_income"], Decimal("200.00"))


class GeneralLedgerTests(LedgerFixtureMixin, TestCase):

    def test_running_balance(self):
        self.posted("512000", "701000", "100.00", date=datetime.date(2025, 1, 5))
        self.posted("512000", "701000", "60.00", date=datetime.date(2025, 2, 5))
        self.posted("607000", "512000", "25.00", date=datetime.date(2025, 2, 20))
        self.draft("512000", "701000", "999.00", date=datetime.date(2025, 2, 21))

        bank = self.account("512000")
        report = reports.general_ledger(self.org, bank.pk, datetime.date(2025, 2, 1), datetime.date(2025, 2, 28))
        self.assertEqual(report["opening_balance"], Decimal("100.00"))
        self.assertEqual([r["balance"] for r in report["rows"]], [Decimal("160.00"), Decimal("135.00")])
        self.assertEqual(report["closing_balance"], Decimal("135.00"))
