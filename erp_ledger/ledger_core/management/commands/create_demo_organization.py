import datetime
from decimal import Decimal

from django.core.management.base import BaseCommand, CommandError
from django.db import transaction
from django.utils.text import slugify

from ledger_core.models import Account, Journal, Organization
from ledger_core.services import (accounts, invoicing, journals, payment,
                                  periods, posting)

DEMO_ACTOR = "demo-setup"


class Command(BaseCommand):
    help = (
        "Create a demo organization with the default chart, journals, an open "
        "fiscal year and a few posted transactions."
    )

    # Define command-line arguments
    def add_arguments(self, parser):
        parser.add_argument(
            "--name",
            default="Demo Company",
            help="Name of the demo organization to create.",
        )
        parser.add_argument("--currency", default=None, help="ISO currency code (defaults to DEFAULT_CURRENCY).")
        parser.add_argument("--year", type=int, default=None, help="Fiscal year to open (defaults to the current year).")

    # Generate unique slug for the organization
    @staticmethod
    def unique_slug(name, max_tries=100):
        # "Test Ltd" → "test-ltd", then "test-ltd-1", "test-ltd-2" ...
        base = slugify(name) or "organization"
        slug, i = base, 1
        while Organization.objects.filter(slug=slug).exists():
            slug = f"{base}-{i}"
            i += 1
            if i > max_tries:
                raise CommandError("Couldn't generate unique slug")
        return slug

    @transaction.atomic
    def handle(self, *args, **options):
        year = options["year"] or datetime.date.today().year
        org = Organization.create_with_defaults(
            options["name"], self.unique_slug(options["name"]), options["currency"]
        )

        # 1. Reference data
        accounts.install_default_chart(org)
        journals.install_default_journals(org)
        periods.open_year(
            org, f"FY {year}", datetime.date(year, 1, 1), datetime.date(year, 12, 31), actor=DEMO_ACTOR
        )

        def account(code):
            return Account.objects.for_organization(org).get(code=code)

        def journal(code):
            return Journal.objects.for_organization(org).get(code=code)

        # 2. Capital contribution
        posting.record_entry(
            org,
            DEMO_ACTOR,
            journal("GEN").pk,
            datetime.date(year, 1, 2),
            "Initial capital",
            [
                {"account_id": account("512000").pk, "debit": Decimal("10000.00")},
                {"account_id": account("101000").pk, "credit": Decimal("10000.00")},
            ],
        )

        # 3. An invoice with its revenue posting, partly paid
        invoice = invoicing.create_invoice(
            org,
            {"ref": "CUST-001", "name": "Acme Corp", "email": "billing@acme.test"},
            datetime.date(year, 1, 15),
            datetime.date(year, 2, 14),
            [
                {
                    "description": "Consulting",
                    "quantity": "10",
                    "unit_price": "120.00",
                    "account_id": account("701000").pk,
                }
            ],
            actor=DEMO_ACTOR,
        )
        invoicing.send_invoice(org, invoice.pk, actor=DEMO_ACTOR)
        invoicing.post_invoice_revenue(org, invoice.pk, actor=DEMO_ACTOR)

        pay = payment.record_payment(
            org,
            Decimal("500.00"),
            "bank_transfer",
            datetime.date(year, 1, 30),
            actor=DEMO_ACTOR,
            customer_ref="CUST-001",
            account_id=account("512000").pk,
        )
        payment.allocate(org, pay.pk, invoice.pk, Decimal("500.00"), actor=DEMO_ACTOR)
        payment.post_payment_receipt(org, pay.pk, actor=DEMO_ACTOR)

        self.stdout.write(
            self.style.SUCCESS(
                f"Created organization '{org.name}' (slug={org.slug}) with invoice {invoice.number}"
            )
        )
