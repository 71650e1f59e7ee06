"""
Balance engine. Every balance in the system comes from here.

Balances are never stored; they are derived from posted lines.
The normal-side sign convention is applied in exactly one place
(Account.signed_balance_cents), so no caller ever flips a sign:

    ASSET, EXPENSE:              balance = debits - credits
    LIABILITY, EQUITY, INCOME:   balance = credits - debits

Raw per-account totals for the current date are cached in the
session's info dict. The EntryStore drops the affected codes on
every post or void, and a rollback drops the whole cache.
"""

import logging
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from property_ledger.errors import LedgerIntegrityError
from property_ledger.models.account import Account
from property_ledger.models.enums import EntryStatus
from property_ledger.models.transaction_entry import (
    TransactionEntry,
    TransactionLine,
)
from property_ledger.money import from_cents
from property_ledger.schemas.reports import (
    GeneralLedger,
    GeneralLedgerLine,
    TrialBalance,
    TrialBalanceRow,
)
from property_ledger.services.account_registry import AccountRegistry

logger = logging.getLogger(__name__)

_CACHE_KEY = "balance_cache"


def invalidate_balances(db: Session, codes) -> None:
    """Forget cached totals for the given account codes."""
    cache = db.info.get(_CACHE_KEY)
    if cache is None:
        return
    for code in codes:
        cache["totals"].pop(code, None)


class BalanceEngine:

    def __init__(self, db: Session):
        self.db = db
        self.registry = AccountRegistry(db)

    # --- Raw totals ---

    def _posted_totals(
        self,
        codes: list[str] | None,
        as_of: date,
        start: date | None = None,
    ) -> dict[str, tuple[int, int]]:
        """(debit_cents, credit_cents) per account code, posted lines only."""
        query = (
            select(
                TransactionLine.account_code,
                func.coalesce(func.sum(TransactionLine.debit_cents), 0),
                func.coalesce(func.sum(TransactionLine.credit_cents), 0),
            )
            .join(TransactionEntry, TransactionLine.entry_id == TransactionEntry.id)
            .where(
                TransactionEntry.status == EntryStatus.POSTED,
                TransactionEntry.date <= as_of,
            )
            .group_by(TransactionLine.account_code)
        )
        if start is not None:
            query = query.where(TransactionEntry.date >= start)
        if codes is not None:
            query = query.where(TransactionLine.account_code.in_(codes))

        totals = {
            code: (int(debits), int(credits))
            for code, debits, credits in self.db.execute(query).all()
        }
        if codes is not None:
            for code in codes:
                totals.setdefault(code, (0, 0))
        return totals

    def account_totals(
        self, as_of: date | None = None, start: date | None = None
    ) -> dict[str, tuple[int, int]]:
        """Raw (debit_cents, credit_cents) for every account with posted lines."""
        return self._posted_totals(None, as_of or date.today(), start=start)

    def _current_totals(self, codes: list[str]) -> dict[str, tuple[int, int]]:
        """Cached variant of _posted_totals for today's date."""
        today = date.today()
        cache = self.db.info.get(_CACHE_KEY)
        if cache is None or cache["as_of"] != today:
            cache = {"as_of": today, "totals": {}}
            self.db.info[_CACHE_KEY] = cache

        missing = [code for code in codes if code not in cache["totals"]]
        if missing:
            # Pending (unflushed) lines must be visible to the query
            self.db.flush()
            cache["totals"].update(self._posted_totals(missing, today))

        return {code: cache["totals"][code] for code in codes}

    def _totals(self, codes: list[str], as_of: date | None) -> dict[str, tuple[int, int]]:
        if as_of is None or as_of == date.today():
            return self._current_totals(codes)
        return self._posted_totals(codes, as_of)

    # --- Balances ---

    def compute_balance_cents(
        self,
        account_code: str,
        as_of: date | None = None,
        include_children: bool = True,
    ) -> int:
        account = self.registry.require_account(account_code)

        codes = [account.code]
        if include_children:
            codes.extend(child.code for child in self.registry.list_descendants(account.code))

        totals = self._totals(codes, as_of)
        debits = sum(debit for debit, _ in totals.values())
        credits = sum(credit for _, credit in totals.values())
        # Descendants share the root's type, so one convention covers the subtree
        return account.signed_balance_cents(debits, credits)

    def compute_balance(
        self,
        account_code: str,
        as_of: date | None = None,
        include_children: bool = True,
    ) -> Decimal:
        """
        Balance of an account as of a date (default: today).

        Only posted entries dated on or before as_of count. With
        include_children, every descendant's balance is added,
        so a control account reports its whole sub-ledger.
        """
        return from_cents(
            self.compute_balance_cents(account_code, as_of, include_children)
        )

    def compute_period_activity_cents(
        self,
        account_code: str,
        start: date,
        end: date,
        include_children: bool = True,
    ) -> int:
        """Signed movement of an account between start and end, inclusive."""
        account = self.registry.require_account(account_code)
        codes = [account.code]
        if include_children:
            codes.extend(child.code for child in self.registry.list_descendants(account.code))

        totals = self._posted_totals(codes, end, start=start)
        debits = sum(debit for debit, _ in totals.values())
        credits = sum(credit for _, credit in totals.values())
        return account.signed_balance_cents(debits, credits)

    def compute_period_activity(
        self,
        account_code: str,
        start: date,
        end: date,
        include_children: bool = True,
    ) -> Decimal:
        return from_cents(
            self.compute_period_activity_cents(account_code, start, end, include_children)
        )

    def posted_lines(
        self,
        account_code: str,
        as_of: date | None = None,
        start: date | None = None,
    ) -> list[tuple[TransactionEntry, TransactionLine]]:
        """Posted lines for one account code, oldest first."""
        query = (
            select(TransactionEntry, TransactionLine)
            .join(TransactionLine, TransactionLine.entry_id == TransactionEntry.id)
            .where(
                TransactionLine.account_code == account_code,
                TransactionEntry.status == EntryStatus.POSTED,
                TransactionEntry.date <= (as_of or date.today()),
            )
            .order_by(
                TransactionEntry.date,
                TransactionEntry.id,
                TransactionLine.position,
            )
        )
        if start is not None:
            query = query.where(TransactionEntry.date >= start)
        return [(entry, line) for entry, line in self.db.execute(query).all()]

    # --- Trial balance and integrity ---

    def compute_trial_balance(self, as_of: date | None = None) -> TrialBalance:
        """
        Every account with posted activity, with debit/credit columns.

        The debit-positive net across all accounts is zero in a
        correct ledger; is_balanced reports exactly that.
        """
        as_of = as_of or date.today()
        totals = self._posted_totals(None, as_of)

        accounts = {}
        if totals:
            accounts = {
                account.code: account
                for account in self.db.execute(
                    select(Account).where(Account.code.in_(list(totals)))
                ).scalars().all()
            }

        rows = []
        total_debits = 0
        total_credits = 0
        for code in sorted(totals):
            debits, credits = totals[code]
            account = accounts[code]
            net_debit = debits - credits
            debit_column = max(net_debit, 0)
            credit_column = max(-net_debit, 0)
            total_debits += debit_column
            total_credits += credit_column
            rows.append(TrialBalanceRow(
                account_code=code,
                account_name=account.name,
                account_type=account.account_type,
                debit=from_cents(debit_column),
                credit=from_cents(credit_column),
                balance=from_cents(account.signed_balance_cents(debits, credits)),
            ))

        net = total_debits - total_credits
        return TrialBalance(
            as_of=as_of,
            rows=rows,
            total_debits=from_cents(total_debits),
            total_credits=from_cents(total_credits),
            net=from_cents(net),
            is_balanced=net == 0,
        )

    def _mismatched_entries(self, entry_ids: list[int] | None = None) -> list[str]:
        """Posted entries whose lines or cached totals disagree."""
        line_sums = (
            select(
                TransactionLine.entry_id,
                func.sum(TransactionLine.debit_cents).label("debits"),
                func.sum(TransactionLine.credit_cents).label("credits"),
            )
        )
        if entry_ids is not None:
            line_sums = line_sums.where(TransactionLine.entry_id.in_(entry_ids))
        line_sums = line_sums.group_by(TransactionLine.entry_id).subquery()
        query = (
            select(TransactionEntry.transaction_id)
            .join(line_sums, line_sums.c.entry_id == TransactionEntry.id)
            .where(
                TransactionEntry.status == EntryStatus.POSTED,
                (line_sums.c.debits != line_sums.c.credits)
                | (line_sums.c.debits != TransactionEntry.total_debit_cents)
                | (line_sums.c.credits != TransactionEntry.total_credit_cents),
            )
        )
        return list(self.db.execute(query).scalars().all())

    def check_integrity(self, as_of: date | None = None) -> dict:
        """
        Verify the ledger nets to zero.

        Returns the trial-balance totals, their difference and
        any posted entries whose lines do not balance.
        """
        trial_balance = self.compute_trial_balance(as_of)
        mismatched = self._mismatched_entries()
        return {
            "as_of": trial_balance.as_of,
            "is_balanced": trial_balance.is_balanced and not mismatched,
            "total_debits": trial_balance.total_debits,
            "total_credits": trial_balance.total_credits,
            "difference": trial_balance.net,
            "mismatched_entries": mismatched,
        }

    def assert_integrity(self, as_of: date | None = None) -> dict:
        """Raise LedgerIntegrityError unless check_integrity passes."""
        result = self.check_integrity(as_of)
        if not result["is_balanced"]:
            logger.error(
                "Ledger integrity failure: difference=%s mismatched=%s",
                result["difference"], result["mismatched_entries"],
            )
            raise LedgerIntegrityError(
                f"Trial balance is off by {result['difference']}; "
                f"mismatched entries: {result['mismatched_entries']}"
            )
        return result

    def assert_entry_integrity(self, entry: TransactionEntry) -> None:
        """
        Check one posted entry against its stored lines.

        Reads only that entry's lines, so it is cheap enough to run
        after every post. The full check stays in assert_integrity.
        """
        mismatched = self._mismatched_entries([entry.id])
        if mismatched:
            logger.error("Entry %s does not match its lines", entry.transaction_id)
            raise LedgerIntegrityError(
                f"Entry {entry.transaction_id} does not match its stored lines"
            )

    # --- General ledger ---

    def build_general_ledger(
        self, account_code: str, start: date, end: date
    ) -> GeneralLedger:
        """
        Running-balance listing of one account's own lines.

        The opening balance is everything posted before start.
        """
        account = self.registry.require_account(account_code)
        running = self.compute_balance_cents(
            account.code, start - timedelta(days=1), include_children=False
        )
        opening = running

        lines = []
        for entry, line in self.posted_lines(account.code, as_of=end, start=start):
            running += account.signed_balance_cents(line.debit_cents, line.credit_cents)
            lines.append(GeneralLedgerLine(
                date=entry.date,
                transaction_id=entry.transaction_id,
                description=line.description or entry.description,
                reference=entry.reference,
                debit=line.debit,
                credit=line.credit,
                balance=from_cents(running),
            ))

        return GeneralLedger(
            account_code=account.code,
            account_name=account.name,
            account_type=account.account_type,
            start=start,
            end=end,
            opening_balance=from_cents(opening),
            lines=lines,
            closing_balance=from_cents(running),
        )
