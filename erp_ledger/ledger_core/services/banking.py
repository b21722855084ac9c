import logging
from decimal import Decimal

from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from ..exceptions import DuplicateCode, LedgerValidationError
from ..models import Account, BankAccount, JournalEntryLine
from .posting import resolve_currency
from .validation import model_errors

logger = logging.getLogger(__name__)


def get_bank_account(organization, bank_account_id) -> BankAccount:
    return BankAccount.objects.for_organization(organization).get(pk=bank_account_id)


@model_errors()
def create_bank_account(
    organization,
    name,
    currency=None,
    ledger_account_id=None,
    account_number="",
    iban="",
    swift="",
) -> BankAccount:
    if BankAccount.objects.for_organization(organization).filter(name=name).exists():
        raise DuplicateCode(f"Bank account {name} already exists")

    ledger_account = None
    if ledger_account_id is not None:
        ledger_account = Account.objects.for_organization(organization).filter(pk=ledger_account_id).first()
        if ledger_account is None or ledger_account.ac_type != "asset":
            raise LedgerValidationError("Ledger account must be an asset account of the organization")

    bank_account = BankAccount(
        organization=organization,
        name=name,
        currency=resolve_currency(organization, currency),
        ledger_account=ledger_account,
        account_number=account_number or "",
        iban=iban or "",
        swift=swift or "",
    )
    bank_account.full_clean()
    bank_account.save()
    return bank_account


def refresh_bank_balance(organization, bank_account_id) -> BankAccount:
    """
    Recompute the cached balance from the posted lines of the linked
    GL account. Without a linked account the balance is zero.
    """
    with transaction.atomic():
        bank_account = (
            BankAccount.objects.for_organization(organization).select_for_update().get(pk=bank_account_id)
        )
        balance = Decimal("0.00")
        if bank_account.ledger_account_id is not None:
            sums = (
                JournalEntryLine.objects.for_organization(organization)
                .posted()
                .filter(account_id=bank_account.ledger_account_id)
                .aggregate(debit=Sum("debit"), credit=Sum("credit"))
            )
            # bank accounts are assets: debit - credit
            balance = (sums["debit"] or Decimal("0")) - (sums["credit"] or Decimal("0"))

        bank_account.balance = bank_account.currency.quantize(balance)
        bank_account.balance_refreshed_at = timezone.now()
        bank_account.save(update_fields=["balance", "balance_refreshed_at"])
    logger.info("Refreshed balance of bank account %s: %s", bank_account.name, bank_account.balance)
    return bank_account


def refresh_all_bank_balances(organization):
    ids = BankAccount.objects.active(organization).values_list("pk", flat=True)
    return [refresh_bank_balance(organization, pk) for pk in ids]
