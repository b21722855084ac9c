import json
from decimal import Decimal

from django.test import TestCase
from django.urls import reverse

from ledger_core.models import AuditLog, FiscalYear, JournalEntry

from .factories import ACTOR, LedgerFixtureMixin


class LedgerApiTests(LedgerFixtureMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.headers = {"HTTP_X_ORGANIZATION": self.org.slug, "HTTP_X_ACTOR": ACTOR}

    def post(self, name, payload=None, **kwargs):
        return self.client.post(
            reverse(f"ledger_core:{name}", kwargs=kwargs),
            data=json.dumps(payload or {}),
            content_type="application/json",
            **self.headers,
        )

    def get(self, name, params=None, **kwargs):
        return self.client.get(reverse(f"ledger_core:{name}", kwargs=kwargs), params or {}, **self.headers)

    def entry_payload(self, debit="100.00", credit="100.00"):
        return {
            "journal_id": self.journal().pk,
            "date": "2025-03-01",
            "description": "Cash sale",
            "lines": [
                {"account_id": self.account("512000").pk, "debit": debit},
                {"account_id": self.account("701000").pk, "credit": credit},
            ],
        }

    def test_create_and_post_entry(self):
        response = self.post("entry-create", self.entry_payload())
        self.assertEqual(response.status_code, 201)
        entry = response.json()["entry"]
        self.assertEqual(entry["status"], "draft")
        self.assertEqual(entry["reference"], "GEN-2025-001")

        response = self.post("entry-post", entry_id=entry["id"])
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["entry"]["status"], "posted")
        self.assertEqual(body["entry"]["posted_by"], ACTOR)

    def test_unbalanced_entry_is_a_conflict(self):
        response = self.post("entry-create", self.entry_payload(credit="90.00"))
        self.assertEqual(response.status_code, 201)

        response = self.post("entry-post", entry_id=response.json()["entry"]["id"])
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["code"], "unbalanced_entry")

    def test_invalid_line_is_a_bad_request(self):
        payload = self.entry_payload()
        payload["lines"][0]["credit"] = "5.00"
        response = self.post("entry-create", payload)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "invalid_line")
        self.assertFalse(JournalEntry.objects.exists())

    def test_missing_date_is_a_bad_request(self):
        payload = self.entry_payload()
        del payload["date"]
        response = self.post("entry-create", payload)
        self.assertEqual(response.status_code, 400)

    def test_malformed_body(self):
        response = self.client.post(
            reverse("ledger_core:entry-create"), data="{not json", content_type="application/json", **self.headers
        )
        self.assertEqual(response.status_code, 400)

    def test_unknown_organization(self):
        response = self.client.get(
            reverse("ledger_core:entry-detail", kwargs={"entry_id": 1}), HTTP_X_ORGANIZATION="nope"
        )
        self.assertEqual(response.status_code, 404)

    def test_unknown_entry(self):
        self.assertEqual(self.get("entry-detail", entry_id=999999).status_code, 404)

    def test_reverse_entry(self):
        entry = self.posted()
        response = self.post("entry-reverse", {"date": "2025-03-05"}, entry_id=entry.pk)
        self.assertEqual(response.status_code, 201)
        reversal = response.json()["entry"]
        self.assertEqual(Decimal(reversal["total_debit"]), Decimal("100.00"))

        # second reversal is refused
        response = self.post("entry-reverse", {"date": "2025-03-06"}, entry_id=entry.pk)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "not_posted")

    def test_actor_is_recorded_in_audit_log(self):
        entry = self.draft()
        self.post("entry-cancel", entry_id=entry.pk)
        log = AuditLog.objects.filter(action="cancel_entry").latest("id")
        self.assertEqual(log.actor, ACTOR)

    def test_invoice_payment_flow(self):
        response = self.post(
            "invoices",
            {
                "customer": {"ref": "C-1", "name": "Acme Corp"},
                "date": "2025-03-01",
                "due_date": "2025-03-31",
                "lines": [{"description": "Consulting", "quantity": "2", "unit_price": "150.00"}],
            },
        )
        self.assertEqual(response.status_code, 201)
        invoice = response.json()["invoice"]
        self.assertEqual(Decimal(invoice["total"]), Decimal("300.00"))

        self.assertEqual(self.post("invoice-send", invoice_id=invoice["id"]).status_code, 200)

        response = self.post("payment-create", {"amount": "300.00", "method": "check", "date": "2025-03-10"})
        self.assertEqual(response.status_code, 201)
        payment_id = response.json()["payment"]["id"]

        response = self.post("payment-allocate", {"invoice_id": invoice["id"], "amount": "400.00"}, payment_id=payment_id)
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["code"], "over_allocation")

        response = self.post("payment-allocate", {"invoice_id": invoice["id"], "amount": "300.00"}, payment_id=payment_id)
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["invoice"]["status"], "paid")

        # paid invoices cannot be cancelled
        response = self.post("invoice-cancel", invoice_id=invoice["id"])
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "has_payments")

        response = self.get("invoices", {"status": "paid"})
        self.assertEqual([i["id"] for i in response.json()["invoices"]], [invoice["id"]])

    def test_invoice_input_errors_are_typed(self):
        payload = {
            "customer": {"name": "Acme Corp", "email": "nope"},
            "date": "2025-03-01",
            "due_date": "2025-03-31",
            "lines": [{"description": "Consulting", "quantity": "1", "unit_price": "150.00"}],
        }
        response = self.post("invoices", payload)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "validation_error")

        payload["customer"]["email"] = "ap@acme.test"
        payload["lines"][0]["unit_price"] = "150.00001"
        response = self.post("invoices", payload)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "invalid_amount")

    def test_update_draft_invoice(self):
        response = self.post(
            "invoices",
            {
                "customer": {"name": "Acme Corp"},
                "date": "2025-03-01",
                "due_date": "2025-03-31",
                "lines": [{"description": "Consulting", "quantity": "1", "unit_price": "150.00"}],
            },
        )
        invoice_id = response.json()["invoice"]["id"]

        response = self.post(
            "invoice-update",
            {"due_date": "2025-04-15", "lines": [{"description": "Audit", "quantity": "3", "unit_price": "100.00"}]},
            invoice_id=invoice_id,
        )
        self.assertEqual(response.status_code, 200)
        invoice = response.json()["invoice"]
        self.assertEqual(invoice["due_date"], "2025-04-15")
        self.assertEqual(Decimal(invoice["total"]), Decimal("300.00"))

        self.post("invoice-send", invoice_id=invoice_id)
        response = self.post("invoice-update", {"notes": "late"}, invoice_id=invoice_id)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "not_draft")

    def test_duplicate_year_name(self):
        response = self.post("year-open", {"name": "FY 2025", "start_date": "2026-01-01", "end_date": "2026-12-31"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "duplicate_code")

    def test_reports(self):
        self.posted("512000", "701000", "1000.00")

        tb = self.get("trial-balance", {"start": "2025-01-01", "end": "2025-12-31"}).json()
        self.assertEqual(Decimal(tb["total_debit"]), Decimal("1000.00"))

        bs = self.get("balance-sheet", {"as_of": "2025-12-31"}).json()
        self.assertEqual(Decimal(bs["total_assets"]), Decimal("1000.00"))

        pl = self.get("income-statement", {"start": "2025-01-01", "end": "2025-12-31"}).json()
        self.assertEqual(Decimal(pl["net_income"]), Decimal("1000.00"))

        gl = self.get(
            "general-ledger", {"start": "2025-01-01", "end": "2025-12-31"}, account_id=self.account("512000").pk
        ).json()
        self.assertEqual(Decimal(gl["closing_balance"]), Decimal("1000.00"))

        response = self.get("trial-balance", {"start": "2025-12-31", "end": "2025-01-01"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "invalid_date_range")

    def test_close_year(self):
        year = FiscalYear.objects.for_organization(self.org).get()
        self.draft()
        response = self.post("year-close", year_id=year.pk)
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["code"], "open_entries_exist")
