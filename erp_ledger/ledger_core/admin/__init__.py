from .account import AccountAdmin, CurrencyAdmin, OrganizationAdmin
from .actions import post_journal_entries, refresh_balances, send_invoices
from .auditlog import AuditLogAdmin
from .banking import BankAccountAdmin, PaymentAdmin
from .inlines import (InvoiceLineInline, JournalEntryLineInline,
                      PaymentAllocationInline)
from .invoice import InvoiceAdmin
from .journal import JournalAdmin, JournalEntryAdmin
from .mixins import TenantAdminMixin
from .period import FiscalYearAdmin, TaxRateAdmin
