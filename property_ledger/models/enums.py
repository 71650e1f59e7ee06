"""
Shared enumerations for database models.

Python enums mapped to database enums ensure that only valid
values can be stored.
"""

import enum


class AccountType(str, enum.Enum):
    """The five fundamental accounting categories."""
    ASSET = "ASSET"
    LIABILITY = "LIABILITY"
    EQUITY = "EQUITY"
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"

    @property
    def is_debit_normal(self) -> bool:
        return self in (AccountType.ASSET, AccountType.EXPENSE)


class EntryStatus(str, enum.Enum):
    """Only POSTED entries count toward balances."""
    POSTED = "posted"
    VOID = "void"


class EntrySource(str, enum.Enum):
    """The business process that produced an entry."""
    PAYMENT = "payment"
    EXPENSE_ACCRUAL = "expense_accrual"
    EXPENSE_PAYMENT = "expense_payment"
    RENTAL_ACCRUAL = "rental_accrual"
    RENTAL_ACCRUAL_REVERSAL = "rental_accrual_reversal"
    DEFERRED_INCOME_TRANSFER = "deferred_income_transfer"
    REFUND = "refund"
    REVERSAL = "reversal"
    MANUAL = "manual"


# Numeric family prefix of an account code
CODE_FAMILIES: dict[str, AccountType] = {
    "1": AccountType.ASSET,
    "2": AccountType.LIABILITY,
    "3": AccountType.EQUITY,
    "4": AccountType.INCOME,
    "5": AccountType.EXPENSE,
}

DEFAULT_CATEGORIES: dict[AccountType, str] = {
    AccountType.ASSET: "Current Assets",
    AccountType.LIABILITY: "Current Liabilities",
    AccountType.EQUITY: "Owner Equity",
    AccountType.INCOME: "Operating Revenue",
    AccountType.EXPENSE: "Operating Expenses",
}
