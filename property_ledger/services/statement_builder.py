"""
Statement builder: balance sheet, income statement, cash flow, aging.

Everything here is a pure read derived from BalanceEngine totals
and Account.signed_balance_cents. Nothing is written, and an
unbalanced balance sheet is reported (is_balanced=False, logged
as an error), never hidden.
"""

import logging
from collections import deque
from datetime import date, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from property_ledger.config import get_settings
from property_ledger.models.account import Account
from property_ledger.models.enums import AccountType, EntryStatus
from property_ledger.models.transaction_entry import (
    TransactionEntry,
    TransactionLine,
)
from property_ledger.money import EPSILON_CENTS, from_cents
from property_ledger.schemas.reports import (
    AgingReport,
    AgingRow,
    BalanceSheet,
    CashFlowActivity,
    CashFlowSection,
    CashFlowStatement,
    IncomeStatement,
    StatementLine,
)
from property_ledger.services.account_registry import (
    AccountRegistry,
    CASH_CODE,
    RECEIVABLES_CODE,
)
from property_ledger.services.balance_engine import BalanceEngine

logger = logging.getLogger(__name__)


def bucket_labels(boundaries) -> list[str]:
    """(30, 60, 90) -> ["current", "31-60", "61-90", "over90"]"""
    labels = ["current"]
    for lower, upper in zip(boundaries, boundaries[1:]):
        labels.append(f"{lower + 1}-{upper}")
    labels.append(f"over{boundaries[-1]}")
    return labels


def cash_flow_activity(account: Account) -> CashFlowActivity:
    """
    Activity a cash movement belongs to, judged by its contra account.

    Owner equity, loans and tenant deposits are financing; assets
    outside current assets are investing; the rest is operating.
    """
    if account.account_type == AccountType.EQUITY:
        return CashFlowActivity.FINANCING
    if account.account_type == AccountType.LIABILITY:
        name = account.name.lower()
        if "loan" in name or "deposit" in name or account.category != "Current Liabilities":
            return CashFlowActivity.FINANCING
    if account.account_type == AccountType.ASSET and account.category != "Current Assets":
        return CashFlowActivity.INVESTING
    return CashFlowActivity.OPERATING


class StatementBuilder:

    def __init__(self, db: Session):
        self.db = db
        self.registry = AccountRegistry(db)
        self.engine = BalanceEngine(db)

    def _rolled_up(
        self, accounts: list[Account], totals: dict[str, tuple[int, int]]
    ) -> dict[str, int]:
        """Signed balance of every account including its descendants."""
        children: dict[str | None, list[Account]] = {}
        for account in accounts:
            children.setdefault(account.parent_code, []).append(account)

        rolled: dict[str, int] = {}

        def visit(account: Account) -> tuple[int, int]:
            debits, credits = totals.get(account.code, (0, 0))
            for child in children.get(account.code, []):
                child_debits, child_credits = visit(child)
                debits += child_debits
                credits += child_credits
            rolled[account.code] = account.signed_balance_cents(debits, credits)
            return debits, credits

        for root in children.get(None, []):
            visit(root)
        return rolled

    def _top_level_lines(
        self,
        accounts: list[Account],
        rolled: dict[str, int],
        account_type: AccountType,
    ) -> tuple[list[StatementLine], int]:
        lines = []
        total = 0
        for account in accounts:
            if account.account_type != account_type or account.parent_code is not None:
                continue
            balance = rolled.get(account.code, 0)
            total += balance
            if balance:
                lines.append(StatementLine(
                    account_code=account.code,
                    account_name=account.name,
                    balance=from_cents(balance),
                ))
        return lines, total

    def build_balance_sheet(self, as_of: date | None = None) -> BalanceSheet:
        """
        Assets = Liabilities + Equity, as of a date.

        Income and expense accounts are not closed into retained
        earnings by this core, so their cumulative net is shown
        as current_earnings inside equity.
        """
        as_of = as_of or date.today()
        accounts = self.registry.list_accounts()
        rolled = self._rolled_up(accounts, self.engine.account_totals(as_of))

        assets, total_assets = self._top_level_lines(accounts, rolled, AccountType.ASSET)
        liabilities, total_liabilities = self._top_level_lines(
            accounts, rolled, AccountType.LIABILITY
        )
        equity, equity_accounts = self._top_level_lines(accounts, rolled, AccountType.EQUITY)
        _, total_income = self._top_level_lines(accounts, rolled, AccountType.INCOME)
        _, total_expenses = self._top_level_lines(accounts, rolled, AccountType.EXPENSE)

        current_earnings = total_income - total_expenses
        total_equity = equity_accounts + current_earnings
        difference = total_assets - (total_liabilities + total_equity)
        is_balanced = abs(difference) <= EPSILON_CENTS

        if not is_balanced:
            logger.error(
                "Balance sheet as of %s is off by %s", as_of, from_cents(difference)
            )

        return BalanceSheet(
            as_of=as_of,
            assets=assets,
            liabilities=liabilities,
            equity=equity,
            current_earnings=from_cents(current_earnings),
            total_assets=from_cents(total_assets),
            total_liabilities=from_cents(total_liabilities),
            total_equity=from_cents(total_equity),
            difference=from_cents(difference),
            is_balanced=is_balanced,
        )

    def build_income_statement(self, start: date, end: date) -> IncomeStatement:
        """Income and expense activity dated within [start, end]."""
        if start > end:
            raise ValueError(f"start {start} is after end {end}")

        totals = self.engine.account_totals(as_of=end, start=start)
        sections = {AccountType.INCOME: ([], 0), AccountType.EXPENSE: ([], 0)}

        for account in self.registry.list_accounts():
            if account.account_type not in sections or account.code not in totals:
                continue
            activity = account.signed_balance_cents(*totals[account.code])
            if not activity:
                continue
            lines, subtotal = sections[account.account_type]
            lines.append(StatementLine(
                account_code=account.code,
                account_name=account.name,
                balance=from_cents(activity),
            ))
            sections[account.account_type] = (lines, subtotal + activity)

        income, total_income = sections[AccountType.INCOME]
        expenses, total_expenses = sections[AccountType.EXPENSE]

        return IncomeStatement(
            start=start,
            end=end,
            income=income,
            expenses=expenses,
            total_income=from_cents(total_income),
            total_expenses=from_cents(total_expenses),
            net_income=from_cents(total_income - total_expenses),
        )

    def build_cash_flow_statement(self, start: date, end: date) -> CashFlowStatement:
        """
        Cash movements dated within [start, end], by activity.

        Every posted entry touching the cash family contributes its
        non-cash lines: a credit to the contra account is cash in,
        a debit is cash out. Transfers between cash accounts net to
        nothing. Contributions are grouped under the contra
        account's top-level account, so net_change equals the
        change in the cash family's balance over the period.
        """
        if start > end:
            raise ValueError(f"start {start} is after end {end}")

        accounts = {account.code: account for account in self.registry.list_accounts()}
        cash = self.registry.require_account(CASH_CODE)
        cash_codes = {cash.code} | {
            child.code for child in self.registry.list_descendants(cash.code)
        }

        def top_level(code: str) -> Account:
            account = accounts[code]
            while account.parent_code is not None:
                account = accounts[account.parent_code]
            return account

        entries = self.db.execute(
            select(TransactionEntry)
            .where(
                TransactionEntry.status == EntryStatus.POSTED,
                TransactionEntry.date >= start,
                TransactionEntry.date <= end,
                TransactionEntry.lines.any(TransactionLine.account_code.in_(cash_codes)),
            )
            .order_by(TransactionEntry.date, TransactionEntry.id)
        ).scalars().all()

        by_account: dict[str, int] = {}
        inflows = {activity: 0 for activity in CashFlowActivity}
        outflows = {activity: 0 for activity in CashFlowActivity}
        for entry in entries:
            for line in entry.lines:
                if line.account_code in cash_codes:
                    continue
                contra = top_level(line.account_code)
                amount = line.credit_cents - line.debit_cents
                by_account[contra.code] = by_account.get(contra.code, 0) + amount
                activity = cash_flow_activity(contra)
                if amount > 0:
                    inflows[activity] += amount
                else:
                    outflows[activity] -= amount

        sections = {}
        for activity in CashFlowActivity:
            lines = [
                StatementLine(
                    account_code=code,
                    account_name=accounts[code].name,
                    balance=from_cents(amount),
                )
                for code, amount in sorted(by_account.items())
                if amount and cash_flow_activity(accounts[code]) == activity
            ]
            sections[activity] = CashFlowSection(
                activity=activity,
                lines=lines,
                inflows=from_cents(inflows[activity]),
                outflows=from_cents(outflows[activity]),
                net=from_cents(inflows[activity] - outflows[activity]),
            )

        net_change = sum(inflows.values()) - sum(outflows.values())
        opening = self.engine.compute_balance_cents(cash.code, start - timedelta(days=1))
        closing = self.engine.compute_balance_cents(cash.code, end)
        if opening + net_change != closing:
            logger.error(
                "Cash flow %s..%s explains %s of a %s change in cash",
                start, end, from_cents(net_change), from_cents(closing - opening),
            )

        return CashFlowStatement(
            start=start,
            end=end,
            operating=sections[CashFlowActivity.OPERATING],
            investing=sections[CashFlowActivity.INVESTING],
            financing=sections[CashFlowActivity.FINANCING],
            net_change=from_cents(net_change),
            opening_cash=from_cents(opening),
            closing_cash=from_cents(closing),
        )

    def _open_items(self, account: Account, as_of: date) -> tuple[list[list], int]:
        """
        Outstanding increases of one account, matched FIFO.

        Each decrease (a payment against a receivable, a settlement
        of a payable) clears the oldest open increase first.
        Decreases with nothing left to clear are returned as
        unapplied and offset the next increases.
        """
        items: deque[list] = deque()
        unapplied = 0

        for entry, line in self.engine.posted_lines(account.code, as_of=as_of):
            delta = account.signed_balance_cents(line.debit_cents, line.credit_cents)
            if delta > 0:
                absorbed = min(unapplied, delta)
                unapplied -= absorbed
                delta -= absorbed
                if delta:
                    items.append([entry.date, delta])
            else:
                remaining = -delta
                while remaining and items:
                    oldest = items[0]
                    cleared = min(oldest[1], remaining)
                    oldest[1] -= cleared
                    remaining -= cleared
                    if oldest[1] == 0:
                        items.popleft()
                unapplied += remaining

        return list(items), unapplied

    def build_aging_report(
        self,
        as_of: date | None = None,
        control_code: str = RECEIVABLES_CODE,
        bucket_boundaries=None,
    ) -> AgingReport:
        """
        Age every open balance under a control account.

        Rows cover the control account and each descendant with a
        nonzero balance. An item's age is the number of days since
        the entry that created it. Credit balances are shown as a
        negative amount in "current", so each row's buckets sum
        to that account's balance.
        """
        as_of = as_of or date.today()
        boundaries = tuple(bucket_boundaries or get_settings().AGING_BUCKETS)
        if not boundaries or list(boundaries) != sorted(set(boundaries)):
            raise ValueError(
                f"Bucket boundaries must be strictly ascending: {boundaries}"
            )
        labels = bucket_labels(boundaries)

        control = self.registry.require_account(control_code)
        accounts = [control] + self.registry.list_descendants(control.code)

        totals = {label: 0 for label in labels}
        rows = []
        for account in accounts:
            buckets = {label: 0 for label in labels}
            items, unapplied = self._open_items(account, as_of)
            for item_date, amount in items:
                age = (as_of - item_date).days
                index = next(
                    (i for i, bound in enumerate(boundaries) if age <= bound),
                    len(boundaries),
                )
                buckets[labels[index]] += amount
            buckets["current"] -= unapplied

            balance = sum(buckets.values())
            if not balance and not any(buckets.values()):
                continue

            for label in labels:
                totals[label] += buckets[label]
            rows.append(AgingRow(
                account_code=account.code,
                account_name=account.name,
                buckets={label: from_cents(v) for label, v in buckets.items()},
                total=from_cents(balance),
            ))

        return AgingReport(
            as_of=as_of,
            control_code=control.code,
            bucket_labels=labels,
            rows=rows,
            totals={label: from_cents(v) for label, v in totals.items()},
            total=from_cents(sum(totals.values())),
        )
