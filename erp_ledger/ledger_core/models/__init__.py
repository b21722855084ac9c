from .account import Account
from .auditlog import AuditLog
from .banking import BankAccount
from .currency import Currency
from .invoice import Invoice, InvoiceLine
from .journal import Journal, JournalEntry, JournalEntryLine
from .organization import Organization
from .payment import Payment, PaymentAllocation
from .period import FiscalYear
from .sequence import Sequence
from .tax import TaxRate
