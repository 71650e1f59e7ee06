"""
Pydantic schemas for derived reports.

Every report here is computed from balances; none of them is
stored.
"""

import enum
from datetime import date as date_type
from decimal import Decimal

from pydantic import BaseModel, Field

from property_ledger.models.enums import AccountType


# --- Trial balance / general ledger ---

class TrialBalanceRow(BaseModel):
    account_code: str
    account_name: str
    account_type: AccountType
    debit: Decimal
    credit: Decimal
    balance: Decimal


class TrialBalance(BaseModel):
    """
    One row per account with posted activity.

    net is the debit-positive sum over all accounts and must be
    zero in a correct ledger.
    """
    as_of: date_type
    rows: list[TrialBalanceRow]
    total_debits: Decimal
    total_credits: Decimal
    net: Decimal
    is_balanced: bool

    @property
    def balances(self) -> dict[str, Decimal]:
        return {row.account_code: row.balance for row in self.rows}


class GeneralLedgerLine(BaseModel):
    date: date_type
    transaction_id: str
    description: str
    reference: str | None
    debit: Decimal
    credit: Decimal
    balance: Decimal


class GeneralLedger(BaseModel):
    account_code: str
    account_name: str
    account_type: AccountType
    start: date_type
    end: date_type
    opening_balance: Decimal
    lines: list[GeneralLedgerLine]
    closing_balance: Decimal


# --- Statements ---

class StatementLine(BaseModel):
    account_code: str
    account_name: str
    balance: Decimal


class BalanceSheet(BaseModel):
    as_of: date_type
    assets: list[StatementLine]
    liabilities: list[StatementLine]
    equity: list[StatementLine]
    current_earnings: Decimal
    total_assets: Decimal
    total_liabilities: Decimal
    total_equity: Decimal
    difference: Decimal
    is_balanced: bool


class IncomeStatement(BaseModel):
    start: date_type
    end: date_type
    income: list[StatementLine]
    expenses: list[StatementLine]
    total_income: Decimal
    total_expenses: Decimal
    net_income: Decimal


class CashFlowActivity(str, enum.Enum):
    OPERATING = "operating"
    INVESTING = "investing"
    FINANCING = "financing"


class CashFlowSection(BaseModel):
    """Cash effect per top-level account; inflows and outflows are gross."""
    activity: CashFlowActivity
    lines: list[StatementLine]
    inflows: Decimal
    outflows: Decimal
    net: Decimal


class CashFlowStatement(BaseModel):
    start: date_type
    end: date_type
    operating: CashFlowSection
    investing: CashFlowSection
    financing: CashFlowSection
    net_change: Decimal
    opening_cash: Decimal
    closing_cash: Decimal


class AgingRow(BaseModel):
    account_code: str
    account_name: str
    buckets: dict[str, Decimal]
    total: Decimal


class AgingReport(BaseModel):
    as_of: date_type
    control_code: str
    bucket_labels: list[str]
    rows: list[AgingRow]
    totals: dict[str, Decimal]
    total: Decimal


# --- Reconciliation ---

class ReconciliationStatus(str, enum.Enum):
    RECONCILED = "reconciled"
    DRIFTED = "drifted"


class ReconciliationResult(BaseModel):
    account_code: str
    as_of: date_type
    expected: Decimal
    actual: Decimal
    difference: Decimal
    status: ReconciliationStatus
    correction_transaction_id: str | None = None
    dry_run: bool = False


class ReconcileRequest(BaseModel):
    """HTTP form of a reconciliation: the caller supplies the expected balance."""
    account_code: str = Field(min_length=1, max_length=64)
    expected_balance: Decimal = Field(decimal_places=2)
    dry_run: bool = False
