import datetime
from decimal import Decimal

from django.test import TestCase

from ledger_core.exceptions import DuplicateCode, LedgerValidationError
from ledger_core.models import BankAccount
from ledger_core.services import banking, posting, sequences
from ledger_core.tasks import refresh_bank_balances

from .factories import ACTOR, LedgerFixtureMixin, make_organization


class SequenceTests(LedgerFixtureMixin, TestCase):

    def test_numbers_increase_per_year(self):
        self.assertEqual(sequences.next_number(self.org, "INV", 2025), "INV-2025-0001")
        self.assertEqual(sequences.next_number(self.org, "INV", 2025), "INV-2025-0002")
        # new year restarts at 1
        self.assertEqual(sequences.next_number(self.org, "INV", 2026), "INV-2026-0001")
        self.assertEqual(sequences.next_number(self.org, "PAY", 2025), "PAY-2025-0001")

    def test_counters_are_per_organization(self):
        other = make_organization(slug="globex")
        sequences.next_value(self.org, "X")
        sequences.next_value(self.org, "X")
        self.assertEqual(sequences.next_value(other, "X"), 1)


class BankAccountTests(LedgerFixtureMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.bank = banking.create_bank_account(
            self.org,
            "Main account",
            ledger_account_id=self.account("512000").pk,
            iban="FR7630006000011234567890189",
        )

    def test_duplicate_name(self):
        with self.assertRaises(DuplicateCode):
            banking.create_bank_account(self.org, "Main account")

    def test_ledger_account_must_be_an_asset(self):
        with self.assertRaises(LedgerValidationError):
            banking.create_bank_account(
                self.org, "Other", ledger_account_id=self.account("701000").pk
            )

    def test_refresh_uses_posted_lines_only(self):
        self.posted("512000", "701000", "500.00")
        self.posted("607000", "512000", "120.50")
        self.draft("512000", "701000", "999.00")

        bank = banking.refresh_bank_balance(self.org, self.bank.pk)
        self.assertEqual(bank.balance, Decimal("379.50"))
        self.assertIsNotNone(bank.balance_refreshed_at)

    def test_reversed_entry_leaves_no_balance(self):
        entry = self.posted("512000", "701000", "80.00")
        posting.reverse_entry(self.org, entry.pk, datetime.date(2025, 3, 2), actor=ACTOR)
        bank = banking.refresh_bank_balance(self.org, self.bank.pk)
        self.assertEqual(bank.balance, Decimal("0.00"))

    def test_unlinked_account_has_zero_balance(self):
        self.posted("512000", "701000", "500.00")
        unlinked = banking.create_bank_account(self.org, "Petty")
        self.assertEqual(banking.refresh_bank_balance(self.org, unlinked.pk).balance, Decimal("0.00"))

    def test_refresh_task(self):
        self.posted("512000", "701000", "42.00")
        result = refresh_bank_balances.apply(args=[self.org.pk]).get()

        self.assertEqual(result, {str(self.bank.pk): "42.00"})
        self.assertEqual(BankAccount.objects.get(pk=self.bank.pk).balance, Decimal("42.00"))

    def test_refresh_skips_inactive_accounts(self):
        BankAccount.objects.filter(pk=self.bank.pk).update(is_active=False)
        self.assertEqual(banking.refresh_all_bank_balances(self.org), [])
