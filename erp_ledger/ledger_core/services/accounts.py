import logging

from django.db import transaction

from ..exceptions import (AccountInUse, DuplicateCode, InvalidParent,
                          LedgerValidationError, SystemAccount)
from ..models import (Account, BankAccount, InvoiceLine,
                      JournalEntryLine, Payment, TaxRate)
from ..models.account import AC_TYPES
from .posting import resolve_currency
from .validation import model_errors

logger = logging.getLogger(__name__)

# Basic chart installed for new organizations
# (code, name, type)
DEFAULT_CHART = [
    ("101000", "Capital", "equity"),
    ("401000", "Suppliers", "liability"),
    ("411000", "Customers", "asset"),
    ("445710", "VAT collected", "liability"),
    ("512000", "Bank", "asset"),
    ("530000", "Cash", "asset"),
    ("607000", "Purchases", "expense"),
    ("701000", "Sales", "revenue"),
]


def get_account(organization, account_id) -> Account:
    # Account.DoesNotExist for ids of other organizations too
    return Account.objects.for_organization(organization).get(pk=account_id)


def list_accounts(organization, ac_type=None, is_active=None):
    qs = Account.objects.for_organization(organization)
    if ac_type:
        qs = qs.filter(ac_type=ac_type)
    if is_active is not None:
        qs = qs.filter(is_active=is_active)
    return qs.order_by("code")


@model_errors()
def create_account(
    organization,
    code,
    name,
    ac_type,
    parent_id=None,
    currency=None,
    is_system=False,
) -> Account:
    """Create an active account in the organization's chart."""
    if ac_type not in dict(AC_TYPES):
        raise LedgerValidationError(f"Unknown account type {ac_type}")

    with transaction.atomic():
        if Account.objects.for_organization(organization).filter(code=code).exists():
            logger.warning("Duplicate account code %s in organization %s", code, organization.pk)
            raise DuplicateCode(f"Account code {code} already exists")

        parent = None
        if parent_id is not None:
            parent = Account.objects.for_organization(organization).filter(pk=parent_id).first()
            if parent is None:
                raise InvalidParent(f"Parent account {parent_id} does not exist")
            if parent.ac_type != ac_type:
                raise InvalidParent(
                    f"Child account type {ac_type} differs from parent type {parent.ac_type}"
                )

        account = Account.objects.create(
            organization=organization,
            code=code,
            name=name,
            ac_type=ac_type,
            parent=parent,
            currency=resolve_currency(organization, currency),
            is_system=is_system,
        )
    logger.info("Created account %s (%s) in organization %s", code, ac_type, organization.pk)
    return account


@model_errors()
def rename_account(organization, account_id, name) -> Account:
    account = get_account(organization, account_id)
    account.name = name
    account.save(update_fields=["name"])
    return account


def _is_referenced(account):
    return (
        JournalEntryLine.objects.filter(account=account).exists()
        or InvoiceLine.objects.filter(account=account).exists()
        or Payment.objects.filter(account=account).exists()
        or TaxRate.objects.filter(account=account).exists()
        or BankAccount.objects.filter(ledger_account=account).exists()
        or account.children.exists()
    )


def deactivate_account(organization, account_id, hard_delete=False):
    """
    Soft-deactivate an account, or delete it when hard_delete is set
    and nothing references it. Returns the account, or None once deleted.
    """
    with transaction.atomic():
        account = Account.objects.for_organization(organization).select_for_update().get(pk=account_id)
        if account.is_system:
            logger.warning("Refused to deactivate system account %s", account.code)
            raise SystemAccount(f"Account {account.code} is a system account")

        if hard_delete:
            if _is_referenced(account):
                logger.warning("Refused to delete account %s: still referenced", account.code)
                raise AccountInUse(f"Account {account.code} is referenced and cannot be deleted")
            account.delete()
            logger.info("Deleted account %s", account.code)
            return None

        account.is_active = False
        account.save(update_fields=["is_active"])
    logger.info("Deactivated account %s", account.code)
    return account


def account_hierarchy(organization):
    """List of (account, depth) in code order; depth 0 for root accounts"""
    accounts = list(list_accounts(organization))
    by_id = {a.pk: a for a in accounts}

    def depth(account):
        level, seen = 0, {account.pk}
        parent_id = account.parent_id
        while parent_id is not None and parent_id not in seen and parent_id in by_id:
            seen.add(parent_id)
            level += 1
            parent_id = by_id[parent_id].parent_id
        return level

    return [(a, depth(a)) for a in accounts]


def install_default_chart(organization, currency=None):
    """Create the basic chart; codes already present are left untouched."""
    created = []
    with transaction.atomic():
        existing = set(
            Account.objects.for_organization(organization).values_list("code", flat=True)
        )
        for code, name, ac_type in DEFAULT_CHART:
            if code in existing:
                continue
            created.append(
                create_account(
                    organization, code, name, ac_type, currency=currency, is_system=True
                )
            )
    return created
