"""
Typed ledger errors.

Every failure raised by the service layer belongs to exactly one category:

- LedgerValidationError: caller-correctable input problems
- InvariantViolation: the operation would break an accounting invariant
- LedgerStateError: illegal transition for the current lifecycle state
- LedgerIntegrityError: stored data is already inconsistent (a bug elsewhere)

`code` is a stable identifier the view layer hands back to clients.
"""


class LedgerError(Exception):
    """Base class of every error raised by the ledger services."""

    code = "ledger_error"

    def __init__(self, message=None):
        self.message = message or self.__class__.__doc__ or self.code
        super().__init__(self.message)


# ---------- Categories ----------
class LedgerValidationError(LedgerError):
    code = "validation_error"


class InvariantViolation(LedgerError):
    code = "invariant_violation"


class LedgerStateError(LedgerError):
    code = "state_error"


class LedgerIntegrityError(LedgerError):
    code = "integrity_error"


# ---------- Validation errors ----------
class InvalidLine(LedgerValidationError):
    """Line must carry exactly one non-zero, non-negative amount."""

    code = "invalid_line"


class EmptyInvoice(LedgerValidationError):
    """Invoice must have at least one line."""

    code = "empty_invoice"


class InvalidQuantity(LedgerValidationError):
    """Quantity must be greater than zero."""

    code = "invalid_quantity"


class DuplicateCode(LedgerValidationError):
    """Code already exists in this organization."""

    code = "duplicate_code"


class InvalidParent(LedgerValidationError):
    """Parent account is unknown, of another type, or would create a cycle."""

    code = "invalid_parent"


class InvalidJournal(LedgerValidationError):
    """Journal is unknown or inactive."""

    code = "invalid_journal"


class InvalidDateRange(LedgerValidationError):
    """Start date must not be after end date."""

    code = "invalid_date_range"


class InvalidAmount(LedgerValidationError):
    """Amount must be greater than zero."""

    code = "invalid_amount"


class CurrencyMismatch(LedgerValidationError):
    """Payment and invoice currencies differ."""

    code = "currency_mismatch"


# ---------- Invariant-protection errors ----------
class UnbalancedEntry(InvariantViolation):
    """Total debit does not equal total credit."""

    code = "unbalanced_entry"


class OverAllocation(InvariantViolation):
    """Allocation exceeds the payment amount or the invoice total."""

    code = "over_allocation"


class PeriodClosed(InvariantViolation):
    """Date is not inside an open fiscal year."""

    code = "period_closed"


class OverlappingPeriod(InvariantViolation):
    """Fiscal year overlaps an existing one."""

    code = "overlapping_period"


class OpenEntriesExist(InvariantViolation):
    """Draft entries are still dated inside the fiscal year."""

    code = "open_entries_exist"


# ---------- State errors ----------
class NotDraft(LedgerStateError):
    """Operation is only valid on a draft."""

    code = "not_draft"


class NotPosted(LedgerStateError):
    """Operation is only valid on a posted entry."""

    code = "not_posted"


class HasPayments(LedgerStateError):
    """Invoice has payments allocated."""

    code = "has_payments"


class AccountInUse(LedgerStateError):
    """Account is referenced by ledger or invoice/payment rows."""

    code = "account_in_use"


class SystemAccount(LedgerStateError):
    """System accounts cannot be deactivated or deleted."""

    code = "system_account"


class JournalInUse(LedgerStateError):
    """Journal is referenced by journal entries."""

    code = "journal_in_use"


class InvoiceAlreadyClosed(LedgerStateError):
    """Removing the allocation would make the paid amount negative."""

    code = "invoice_already_closed"


class InvoiceNotPayable(LedgerStateError):
    """Only sent or partially paid invoices accept payments."""

    code = "invoice_not_payable"


class InvalidTransition(LedgerStateError):
    """Requested status change is not allowed."""

    code = "invalid_transition"


# ---------- Integrity errors ----------
class BalanceSheetImbalance(LedgerIntegrityError):
    """Assets do not equal liabilities plus equity."""

    code = "balance_sheet_imbalance"
