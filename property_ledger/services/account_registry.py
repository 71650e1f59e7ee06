"""
Account registry: the chart of accounts.

Accounts are created up front by seed_chart_of_accounts() or
lazily by the code that needs them (a new student's receivable
sub-account). Creation is the only mutation on a live account
besides deactivation; codes are never renamed.
"""

import logging
from typing import Callable

from sqlalchemy import select, exists
from sqlalchemy.orm import Session

from property_ledger.errors import (
    AccountInUseError,
    DuplicateCodeError,
    InvalidAccountCodeError,
    InvalidParentError,
    UnknownAccountError,
)
from property_ledger.models.account import Account
from property_ledger.models.audit_log import AuditLog
from property_ledger.models.enums import (
    AccountType,
    CODE_FAMILIES,
    DEFAULT_CATEGORIES,
)
from property_ledger.models.transaction_entry import TransactionLine
from property_ledger.schemas.ledger import AccountCreate

logger = logging.getLogger(__name__)

# Every cash and bank account sits under this one
CASH_CODE = "1000"

# Control accounts that own per-counterparty sub-ledgers
RECEIVABLES_CODE = "1100"
PAYABLES_CODE = "2000"
DEFERRED_INCOME_CODE = "2200"

# (code, name, type, parent_code)
DEFAULT_CHART: list[tuple[str, str, AccountType, str | None]] = [
    (CASH_CODE, "Cash and Bank", AccountType.ASSET, None),
    ("1001", "Bank Account", AccountType.ASSET, "1000"),
    ("1002", "Cash on Hand", AccountType.ASSET, "1000"),
    ("1003", "Ecocash Wallet", AccountType.ASSET, "1000"),
    ("1004", "Innbucks Wallet", AccountType.ASSET, "1000"),
    ("1005", "Online Payment Account", AccountType.ASSET, "1000"),
    ("1006", "Credit Card Account", AccountType.ASSET, "1000"),
    ("1007", "PayPal Account", AccountType.ASSET, "1000"),
    (RECEIVABLES_CODE, "Accounts Receivable - Tenants", AccountType.ASSET, None),
    (PAYABLES_CODE, "Accounts Payable", AccountType.LIABILITY, None),
    ("2020", "Tenant Security Deposits", AccountType.LIABILITY, None),
    (DEFERRED_INCOME_CODE, "Deferred Income - Tenant Advances", AccountType.LIABILITY, None),
    ("3000", "Owner's Capital", AccountType.EQUITY, None),
    ("3100", "Retained Earnings", AccountType.EQUITY, None),
    ("4000", "Operating Revenue", AccountType.INCOME, None),
    ("4001", "Rental Income", AccountType.INCOME, "4000"),
    ("4002", "Administrative Fees", AccountType.INCOME, "4000"),
    ("5000", "Operating Expenses", AccountType.EXPENSE, None),
    ("5001", "Maintenance Expense", AccountType.EXPENSE, "5000"),
    ("5002", "Supplies Expense", AccountType.EXPENSE, "5000"),
    ("5003", "Utilities Expense", AccountType.EXPENSE, "5000"),
    ("5004", "Cleaning Expense", AccountType.EXPENSE, "5000"),
    ("5005", "Transportation Expense", AccountType.EXPENSE, "5000"),
    ("5006", "Office Expense", AccountType.EXPENSE, "5000"),
    ("5007", "Miscellaneous Expense", AccountType.EXPENSE, "5000"),
    ("9998", "Balance Correction", AccountType.ASSET, None),
]


class AccountRegistry:
    """
    All chart-of-accounts operations pass through this service.

    Like every service here it takes a session; the caller
    controls the transaction boundary.
    """

    def __init__(self, db: Session):
        self.db = db

    def create_account(self, request: AccountCreate) -> Account:
        """
        Create a new ledger account.

        Raises DuplicateCodeError if the code exists,
        InvalidParentError if the parent is missing or of another
        type, and InvalidAccountCodeError if the code's family
        prefix contradicts the type.
        """
        if self.resolve_account(request.code) is not None:
            raise DuplicateCodeError(
                f"Account with code '{request.code}' already exists"
            )

        family = CODE_FAMILIES.get(request.code[0])
        if family is not None and family != request.account_type:
            raise InvalidAccountCodeError(
                f"Code '{request.code}' belongs to the {family.value} family, "
                f"not {request.account_type.value}"
            )

        if request.parent_code is not None:
            parent = self.resolve_account(request.parent_code)
            if parent is None:
                raise InvalidParentError(
                    f"Parent account '{request.parent_code}' not found"
                )
            if parent.account_type != request.account_type:
                raise InvalidParentError(
                    f"Parent {parent.code} is {parent.account_type.value}, "
                    f"child would be {request.account_type.value}"
                )

        account = Account(
            code=request.code,
            name=request.name,
            account_type=request.account_type,
            category=request.category or DEFAULT_CATEGORIES[request.account_type],
            parent_code=request.parent_code,
            is_active=True,
        )
        self.db.add(account)
        self.db.flush()
        logger.info("Created account %s (%s)", account.code, account.account_type.value)
        return account

    def resolve_account(self, code: str) -> Account | None:
        return self.db.execute(
            select(Account).where(Account.code == code)
        ).scalar_one_or_none()

    def require_account(self, code: str) -> Account:
        account = self.resolve_account(code)
        if account is None:
            raise UnknownAccountError(f"Account '{code}' not found")
        return account

    def get_or_create_scoped_account(
        self,
        base_code: str,
        entity_id: str,
        display_name_fn: Callable[[Account, str], str] | None = None,
    ) -> Account:
        """
        Return the counterparty sub-account "{base_code}-{entity_id}".

        Idempotent: an existing sub-account is returned as is.
        A new one is created under base_code with the base
        account's type and category, so it rolls up into it.
        """
        code = f"{base_code}-{entity_id}"
        existing = self.resolve_account(code)
        if existing is not None:
            return existing

        base = self.require_account(base_code)
        if display_name_fn is None:
            name = f"{base.name} - {entity_id}"
        else:
            name = display_name_fn(base, entity_id)

        return self.create_account(AccountCreate(
            code=code,
            name=name,
            account_type=base.account_type,
            parent_code=base.code,
            category=base.category,
        ))

    def list_children(self, code: str) -> list[Account]:
        """Direct children of an account, ordered by code."""
        accounts = self.db.execute(
            select(Account)
            .where(Account.parent_code == code)
            .order_by(Account.code)
        ).scalars().all()
        return list(accounts)

    def list_descendants(self, code: str) -> list[Account]:
        """All accounts below code, depth first."""
        result = []
        for child in self.list_children(code):
            result.append(child)
            result.extend(self.list_descendants(child.code))
        return result

    def list_accounts(
        self,
        account_type: AccountType | None = None,
        active_only: bool = False,
    ) -> list[Account]:
        query = select(Account).order_by(Account.code)
        if account_type is not None:
            query = query.where(Account.account_type == account_type)
        if active_only:
            query = query.where(Account.is_active.is_(True))
        return list(self.db.execute(query).scalars().all())

    def deactivate_account(self, code: str) -> Account:
        """
        Stop an account from accepting new lines.

        Its history still counts toward every balance.
        """
        account = self.require_account(code)
        if account.is_active:
            account.is_active = False
            AuditLog.record(self.db, "ACCOUNT_DEACTIVATED", code)
            self.db.flush()
            logger.info("Deactivated account %s", code)
        return account

    def delete_account(self, code: str) -> None:
        """
        Physically remove an account that was never used.

        Raises AccountInUseError when any line (posted or void)
        or any child account references it.
        """
        account = self.require_account(code)

        has_lines = self.db.execute(
            select(exists().where(TransactionLine.account_code == code))
        ).scalar()
        if has_lines:
            raise AccountInUseError(
                f"Account {code} has entries and cannot be deleted; "
                f"deactivate it instead"
            )
        if self.list_children(code):
            raise AccountInUseError(
                f"Account {code} has child accounts and cannot be deleted"
            )

        self.db.delete(account)
        AuditLog.record(self.db, "ACCOUNT_DELETED", code, name=account.name)
        self.db.flush()
        logger.info("Deleted unused account %s", code)

    def seed_chart_of_accounts(self) -> list[Account]:
        """
        Create the default chart of accounts.

        Safe to run repeatedly: existing codes are left alone.
        Returns only the accounts created by this call.
        """
        created = []
        for code, name, account_type, parent_code in DEFAULT_CHART:
            if self.resolve_account(code) is not None:
                continue
            created.append(self.create_account(AccountCreate(
                code=code,
                name=name,
                account_type=account_type,
                parent_code=parent_code,
            )))
        if created:
            logger.info("Seeded %d chart-of-accounts entries", len(created))
        return created
