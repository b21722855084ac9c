import datetime
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.test import TestCase

from ledger_core.exceptions import (CurrencyMismatch, DuplicateCode,
                                    InvalidJournal, InvalidLine,
                                    LedgerValidationError, NotDraft,
                                    NotPosted, PeriodClosed, UnbalancedEntry)
from ledger_core.models import (AuditLog, Currency, JournalEntry,
                                JournalEntryLine)
from ledger_core.services import accounts, journals, periods, posting

from .factories import ACTOR, LedgerFixtureMixin

""" Success tests """
class JournalEntrySuccessTests(LedgerFixtureMixin, TestCase):

    def test_draft_has_computed_totals_and_sequential_reference(self):
        first = self.draft(amount="100.00")
        second = self.draft(amount="40.50")

        self.assertEqual(first.status, "draft")
        self.assertEqual(first.total_debit, Decimal("100.00"))
        self.assertEqual(first.total_credit, Decimal("100.00"))
        # sequential per journal and year
        self.assertEqual(first.reference, "GEN-2025-001")
        self.assertEqual(second.reference, "GEN-2025-002")
        # line order preserved for display
        self.assertEqual(list(first.lines.values_list("label", flat=True)), ["dr", "cr"])

    """ Test Balanced Entry """
    def test_balanced_entry_posts_successfully(self):
        entry = self.draft()
        posting.post_entry(self.org, entry.pk, actor=ACTOR)

        entry.refresh_from_db()  # get up-to-date values
        self.assertEqual(entry.status, "posted")
        self.assertEqual(entry.posted_by, ACTOR)
        self.assertIsNotNone(entry.posted_at)
        self.assertEqual(entry.total_debit, entry.total_credit)
        self.assertTrue(
            AuditLog.objects.filter(action="post_entry", object_id=str(entry.pk)).exists()
        )

    def test_amounts_are_rounded_to_minor_unit(self):
        entry = posting.create_draft_entry(
            self.org,
            ACTOR,
            self.journal().pk,
            datetime.date(2025, 3, 1),
            "rounding",
            [
                {"account_id": self.account("512000").pk, "debit": "10.005"},
                {"account_id": self.account("701000").pk, "credit": "10.01"},
            ],
        )
        posting.post_entry(self.org, entry.pk)
        entry.refresh_from_db()
        self.assertEqual(entry.total_debit, Decimal("10.01"))

    def test_add_and_remove_lines_on_draft(self):
        entry = posting.create_draft_entry(
            self.org, ACTOR, self.journal().pk, datetime.date(2025, 3, 1), "build up", []
        )
        posting.add_line(self.org, entry.pk, self.account("512000").pk, debit="250.00")
        extra = posting.add_line(self.org, entry.pk, self.account("530000").pk, debit="5.00")
        posting.add_line(self.org, entry.pk, self.account("701000").pk, credit="250.00")

        entry.refresh_from_db()
        self.assertEqual(entry.total_debit, Decimal("255.00"))
        self.assertEqual(extra.position, 1)

        # unbalanced until the extra line goes away
        with self.assertRaises(UnbalancedEntry):
            posting.post_entry(self.org, entry.pk)

        posting.remove_line(self.org, extra.pk)
        posted = posting.post_entry(self.org, entry.pk)
        self.assertEqual(posted.total_debit, Decimal("250.00"))

    def test_cancel_draft(self):
        entry = self.draft()
        posting.cancel_draft(self.org, entry.pk, actor=ACTOR)
        entry.refresh_from_db()
        self.assertEqual(entry.status, "cancelled")
        # terminal
        with self.assertRaises(NotDraft):
            posting.post_entry(self.org, entry.pk)

    def test_reverse_entry_swaps_lines_and_cancels_original(self):
        original = self.posted(amount="80.00")
        reversal = posting.reverse_entry(self.org, original.pk, datetime.date(2025, 4, 1), actor=ACTOR)

        original.refresh_from_db()
        self.assertEqual(original.status, "cancelled")
        self.assertEqual(original.reversed_by, reversal)
        self.assertEqual(reversal.status, "posted")
        self.assertEqual(reversal.date, datetime.date(2025, 4, 1))

        swapped = {
            line.account.code: (line.debit, line.credit) for line in reversal.lines.select_related("account")
        }
        self.assertEqual(swapped["512000"], (Decimal("0.00"), Decimal("80.00")))
        self.assertEqual(swapped["701000"], (Decimal("80.00"), Decimal("0.00")))

    def test_reconcile_posted_line(self):
        entry = self.posted()
        line = entry.lines.first()
        posting.mark_line_reconciled(self.org, line.pk, actor=ACTOR)
        line.refresh_from_db()
        self.assertTrue(line.reconciled)
        self.assertIsNotNone(line.reconciled_at)

    def test_list_entries_filters(self):
        self.posted(date=datetime.date(2025, 2, 1))
        self.draft(date=datetime.date(2025, 5, 1))
        self.assertEqual(posting.list_entries(self.org, status="posted").count(), 1)
        self.assertEqual(
            posting.list_entries(self.org, start=datetime.date(2025, 4, 1)).count(), 1
        )


""" Failure tests """
class JournalEntryFailureTests(LedgerFixtureMixin, TestCase):

    def test_line_with_both_sides_is_invalid(self):
        with self.assertRaises(InvalidLine):
            posting.create_draft_entry(
                self.org,
                ACTOR,
                self.journal().pk,
                datetime.date(2025, 3, 1),
                "bad",
                [{"account_id": self.account("512000").pk, "debit": "10", "credit": "10"}],
            )

    def test_line_with_zero_amounts_is_invalid(self):
        with self.assertRaises(InvalidLine):
            posting.create_draft_entry(
                self.org,
                ACTOR,
                self.journal().pk,
                datetime.date(2025, 3, 1),
                "bad",
                [{"account_id": self.account("512000").pk, "debit": "0", "credit": "0"}],
            )
        self.assertFalse(JournalEntry.objects.exists())

    def test_negative_and_unknown_account_lines_are_invalid(self):
        with self.assertRaises(InvalidLine):
            posting.create_draft_entry(
                self.org, ACTOR, self.journal().pk, datetime.date(2025, 3, 1), "bad",
                [{"account_id": self.account("512000").pk, "debit": "-5"}],
            )
        with self.assertRaises(InvalidLine):
            posting.create_draft_entry(
                self.org, ACTOR, self.journal().pk, datetime.date(2025, 3, 1), "bad",
                [{"account_id": 999999, "debit": "5"}],
            )

    def test_unbalanced_entry_is_rejected(self):
        entry = posting.create_draft_entry(
            self.org,
            ACTOR,
            self.journal().pk,
            datetime.date(2025, 3, 1),
            "unbalanced",
            [
                {"account_id": self.account("512000").pk, "debit": "100.00"},
                {"account_id": self.account("701000").pk, "credit": "99.99"},
            ],
        )
        with self.assertRaises(UnbalancedEntry):
            posting.post_entry(self.org, entry.pk)
        entry.refresh_from_db()
        self.assertEqual(entry.status, "draft")

    """ Posting twice is an error, never a double application """
    def test_post_twice_raises_not_draft(self):
        entry = self.posted()
        with self.assertRaises(NotDraft):
            posting.post_entry(self.org, entry.pk)
        self.assertEqual(JournalEntryLine.objects.filter(entry=entry).count(), 2)

    def test_post_into_closed_year_is_rejected(self):
        year = periods.year_for_date(self.org, datetime.date(2025, 6, 1))
        periods.close_year(self.org, year.pk, closed_by=ACTOR)

        # No new drafts inside the closed year through the service
        with self.assertRaises(PeriodClosed):
            self.draft(date=datetime.date(2025, 6, 2))

        # A draft written straight through the ORM still cannot be posted
        entry = JournalEntry.objects.create(
            organization=self.org,
            journal=self.journal(),
            reference="MANUAL-1",
            date=datetime.date(2025, 6, 2),
            currency=self.org.default_currency,
        )
        JournalEntryLine(entry=entry, account=self.account("512000"), debit=Decimal("10.00")).save()
        JournalEntryLine(entry=entry, account=self.account("701000"), credit=Decimal("10.00")).save()

        with self.assertRaises(PeriodClosed):
            posting.post_entry(self.org, entry.pk)
        entry.refresh_from_db()
        self.assertEqual(entry.status, "draft")

    def test_post_outside_any_fiscal_year_is_rejected(self):
        entry = self.draft(date=datetime.date(2026, 1, 15))
        with self.assertRaises(PeriodClosed):
            posting.post_entry(self.org, entry.pk)
        entry.refresh_from_db()
        self.assertEqual(entry.status, "draft")

    def test_inactive_journal_refuses_new_drafts(self):
        journals.deactivate_journal(self.org, self.journal().pk)
        with self.assertRaises(InvalidJournal):
            self.draft()

    def test_reverse_requires_posted_entry(self):
        entry = self.draft()
        with self.assertRaises(NotPosted):
            posting.reverse_entry(self.org, entry.pk, datetime.date(2025, 4, 1))

    def test_reverse_into_unopened_period_rolls_back(self):
        entry = self.posted()
        with self.assertRaises(PeriodClosed):
            posting.reverse_entry(self.org, entry.pk, datetime.date(2030, 1, 1))
        entry.refresh_from_db()
        self.assertEqual(entry.status, "posted")
        self.assertEqual(JournalEntry.objects.count(), 1)

    def test_reconcile_draft_line_is_rejected(self):
        entry = self.draft()
        with self.assertRaises(NotPosted):
            posting.mark_line_reconciled(self.org, entry.lines.first().pk)

    """ Model guards for direct ORM access """
    def test_posted_lines_are_immutable(self):
        entry = self.posted()
        line = entry.lines.first()
        line.debit = Decimal("1.00")
        with self.assertRaises(ValidationError):
            line.save()
        with self.assertRaises(ValidationError):
            line.delete()
        with self.assertRaises(NotDraft):
            posting.add_line(self.org, entry.pk, self.account("512000").pk, debit="1")

    def test_posted_entry_cannot_go_back_to_draft(self):
        entry = self.posted()
        entry.status = "draft"
        with self.assertRaises(ValidationError):
            entry.save()


class EntryReferenceTests(LedgerFixtureMixin, TestCase):

    def manual(self, reference):
        return posting.create_draft_entry(
            self.org,
            ACTOR,
            self.journal().pk,
            datetime.date(2025, 3, 1),
            "manual reference",
            self.lines("512000", "701000", "10.00"),
            reference=reference,
        )

    def test_sequence_skips_manual_reference(self):
        self.manual("GEN-2025-001")
        auto = self.draft()
        self.assertEqual(auto.reference, "GEN-2025-002")

    def test_duplicate_manual_reference(self):
        self.manual("CUSTOM-1")
        with self.assertRaises(DuplicateCode):
            self.manual("CUSTOM-1")

    def test_model_errors_are_ledger_errors(self):
        lines = self.lines("512000", "701000", "10.00")
        # longer than JournalEntryLine.label allows
        lines[0]["label"] = "x" * 401
        with self.assertRaises(LedgerValidationError):
            posting.create_draft_entry(
                self.org, ACTOR, self.journal().pk, datetime.date(2025, 3, 1), "long label", lines
            )
        self.assertFalse(JournalEntry.objects.exists())


class EntryCurrencyTests(LedgerFixtureMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.usd = Currency.objects.get(code="USD")
        self.usd_bank = accounts.create_account(self.org, "512100", "Bank USD", "asset", currency=self.usd)

    def test_line_account_currency_must_match_entry(self):
        lines = [
            {"account_id": self.usd_bank.pk, "debit": "10.00"},
            {"account_id": self.account("701000").pk, "credit": "10.00"},
        ]
        with self.assertRaises(CurrencyMismatch):
            posting.create_draft_entry(
                self.org, ACTOR, self.journal().pk, datetime.date(2025, 3, 1), "mixed", lines
            )
        with self.assertRaises(CurrencyMismatch):
            posting.create_draft_entry(
                self.org, ACTOR, self.journal().pk, datetime.date(2025, 3, 1), "mixed", lines, currency="USD"
            )

    def test_add_line_checks_currency(self):
        entry = self.draft()
        with self.assertRaises(CurrencyMismatch):
            posting.add_line(self.org, entry.pk, self.usd_bank.pk, debit="1.00")
        self.assertEqual(entry.lines.count(), 2)
