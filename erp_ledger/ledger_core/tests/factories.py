import datetime
from decimal import Decimal

from ledger_core.models import Account, Journal, Organization
from ledger_core.services import accounts, journals, periods, posting

ACTOR = "user-42"
FY_START = datetime.date(2025, 1, 1)
FY_END = datetime.date(2025, 12, 31)


def make_organization(slug="acme", currency_code="EUR"):
    """Organization with the default chart, journals and an open FY 2025"""
    org = Organization.create_with_defaults(slug.title(), slug, currency_code)
    accounts.install_default_chart(org)
    journals.install_default_journals(org)
    periods.open_year(org, "FY 2025", FY_START, FY_END, actor=ACTOR)
    return org


class LedgerFixtureMixin:
    """setUp helpers shared by the ledger test cases."""

    def setUp(self):
        self.org = make_organization()

    def account(self, code, org=None):
        return Account.objects.for_organization(org or self.org).get(code=code)

    def journal(self, code="GEN", org=None):
        return Journal.objects.for_organization(org or self.org).get(code=code)

    def lines(self, debit_code, credit_code, amount, org=None):
        amount = Decimal(amount)
        return [
            {"account_id": self.account(debit_code, org).pk, "debit": amount, "label": "dr"},
            {"account_id": self.account(credit_code, org).pk, "credit": amount, "label": "cr"},
        ]

    def draft(self, debit_code="512000", credit_code="701000", amount="100.00", date=None, org=None):
        org = org or self.org
        return posting.create_draft_entry(
            org,
            ACTOR,
            self.journal(org=org).pk,
            date or datetime.date(2025, 3, 1),
            "test entry",
            self.lines(debit_code, credit_code, amount, org),
        )

    def posted(self, debit_code="512000", credit_code="701000", amount="100.00", date=None, org=None):
        entry = self.draft(debit_code, credit_code, amount, date, org)
        return posting.post_entry(org or self.org, entry.pk, actor=ACTOR)
