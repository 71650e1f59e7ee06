"""
Entry store, the only writer of transaction entries.

This service enforces the fundamental rules:
1. Every entry balances (debits = credits, in integer cents)
2. Every line is exactly one of debit or credit
3. Accounts must exist and be active
4. (source, reference) is unique
5. Posted entries are never edited or deleted; they are voided,
   reversed or corrected by a new entry

No other service writes entries directly. Business postings and
reconciliation corrections go through post_entry.
"""

import logging
from datetime import date, datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from property_ledger.config import get_settings
from property_ledger.errors import (
    DuplicateReferenceError,
    EntryNotFoundError,
    EntryStateError,
    InactiveAccountError,
    InvalidEntryLineError,
    UnbalancedEntryError,
    UnknownAccountError,
)
from property_ledger.models.account import Account
from property_ledger.models.audit_log import AuditLog
from property_ledger.models.enums import EntrySource, EntryStatus
from property_ledger.models.transaction_entry import (
    TransactionEntry,
    TransactionLine,
)
from property_ledger.money import from_cents, to_cents
from property_ledger.schemas.ledger import EntryLineCreate, PostEntryRequest
from property_ledger.services.balance_engine import (
    BalanceEngine,
    invalidate_balances,
)

logger = logging.getLogger(__name__)

# Reversal source per original source; anything else reverses as REVERSAL
REVERSAL_SOURCES = {
    EntrySource.RENTAL_ACCRUAL: EntrySource.RENTAL_ACCRUAL_REVERSAL,
}


class EntryStore:
    """
    Appends, finds and voids transaction entries.

    The caller owns the session and decides when to commit.
    post_entry flushes the entry and all its lines together, so
    a commit either persists the whole entry or nothing.
    """

    def __init__(self, db: Session):
        self.db = db
        self.settings = get_settings()

    def _validate_lines(
        self, lines: list[EntryLineCreate]
    ) -> list[tuple[EntryLineCreate, int, int]]:
        if not lines:
            raise InvalidEntryLineError("An entry needs at least one line")

        validated = []
        for position, line in enumerate(lines):
            debit = to_cents(line.debit)
            credit = to_cents(line.credit)
            if (debit == 0) == (credit == 0):
                raise InvalidEntryLineError(
                    f"Line {position} ({line.account_code}) must have exactly "
                    f"one nonzero side: debit={line.debit}, credit={line.credit}"
                )
            validated.append((line, debit, credit))
        return validated

    def _load_accounts(self, codes: set[str]) -> dict[str, Account]:
        accounts = self.db.execute(
            select(Account).where(Account.code.in_(sorted(codes)))
        ).scalars().all()
        accounts_by_code = {a.code: a for a in accounts}

        missing = codes - set(accounts_by_code)
        if missing:
            raise UnknownAccountError(f"Accounts not found: {sorted(missing)}")

        inactive = sorted(code for code, a in accounts_by_code.items() if not a.is_active)
        if inactive:
            raise InactiveAccountError(f"Accounts not active: {inactive}")

        return accounts_by_code

    def post_entry(self, request: PostEntryRequest) -> TransactionEntry:
        """
        Post a balanced entry.

        Nothing is written unless every check passes:
        - every line has exactly one nonzero, non-negative side
        - every account exists and is active
        - total debits equal total credits to the cent
        - no entry exists for (source, reference)

        The caller is responsible for db.commit().
        """
        validated = self._validate_lines(request.lines)
        accounts = self._load_accounts({line.account_code for line, _, _ in validated})

        total_debit = sum(debit for _, debit, _ in validated)
        total_credit = sum(credit for _, _, credit in validated)
        if total_debit != total_credit:
            raise UnbalancedEntryError(
                f"Entry does not balance: debits={from_cents(total_debit)}, "
                f"credits={from_cents(total_credit)}"
            )

        if request.reference is not None:
            existing = self.find_by_reference(request.source, request.reference)
            if existing is not None:
                raise DuplicateReferenceError(
                    f"Entry {existing.transaction_id} already exists for "
                    f"{request.source.value}/{request.reference}"
                )

        entry = TransactionEntry(
            transaction_id=request.transaction_id,
            date=request.date,
            description=request.description,
            source=request.source,
            source_id=request.source_id,
            source_model=request.source_model,
            reference=request.reference,
            status=EntryStatus.POSTED,
            total_debit_cents=total_debit,
            total_credit_cents=total_credit,
            entry_metadata=dict(request.metadata),
            created_by=request.created_by,
        )
        for position, (line, debit, credit) in enumerate(validated):
            account = accounts[line.account_code]
            entry.lines.append(TransactionLine(
                position=position,
                account_code=account.code,
                account_name=account.name,
                account_type=account.account_type,
                debit_cents=debit,
                credit_cents=credit,
                description=line.description,
            ))

        self.db.add(entry)
        try:
            self.db.flush()
        except IntegrityError as e:
            # A concurrent writer won the (source, reference) race
            self.db.rollback()
            if request.reference is not None:
                raise DuplicateReferenceError(
                    f"Entry already exists for "
                    f"{request.source.value}/{request.reference}"
                ) from e
            raise

        invalidate_balances(self.db, accounts)
        logger.info(
            "Posted %s %s on %s for %s (%d lines)",
            entry.transaction_id, entry.source.value, entry.date,
            entry.total_debit, len(entry.lines),
        )

        if self.settings.VERIFY_INTEGRITY_ON_POST:
            BalanceEngine(self.db).assert_entry_integrity(entry)

        return entry

    def post_entry_if_absent(self, request: PostEntryRequest) -> TransactionEntry:
        """
        Post unless an entry already exists for (source, reference).

        Returns the existing entry in that case, which makes
        replayed business events harmless. A request whose lines
        differ from the stored entry is not a replay and raises
        DuplicateReferenceError.
        """
        if request.reference is None:
            raise ValueError("post_entry_if_absent requires a reference")

        existing = self.find_by_reference(request.source, request.reference)
        if existing is None:
            return self.post_entry(request)

        requested = sorted(
            (line.account_code, debit, credit)
            for line, debit, credit in self._validate_lines(request.lines)
        )
        stored = sorted(
            (line.account_code, line.debit_cents, line.credit_cents)
            for line in existing.lines
        )
        if requested != stored:
            raise DuplicateReferenceError(
                f"Entry {existing.transaction_id} already exists for "
                f"{request.source.value}/{request.reference} with different lines"
            )

        logger.info(
            "Entry for %s/%s already posted as %s",
            request.source.value, request.reference, existing.transaction_id,
        )
        return existing

    def _reversals(self, entry: TransactionEntry) -> list[TransactionEntry]:
        """Every reversal posted against entry, void ones included."""
        source = REVERSAL_SOURCES.get(entry.source, EntrySource.REVERSAL)
        return self.find_by_source_id(source, entry.transaction_id)

    def _live_reversal(self, entry: TransactionEntry) -> TransactionEntry | None:
        return next(
            (r for r in self._reversals(entry) if r.status == EntryStatus.POSTED),
            None,
        )

    def void_entry(self, transaction_id: str, reason: str) -> TransactionEntry:
        """
        Mark a posted entry void.

        The entry and its lines stay in place for audit; balances
        simply stop counting them. An entry cancelled by a posted
        reversal cannot be voided; void the reversal instead.
        """
        entry = self.get_entry(transaction_id)
        if entry.status != EntryStatus.POSTED:
            raise EntryStateError(
                f"Entry {transaction_id} is {entry.status.value}, not posted"
            )
        reversal = self._live_reversal(entry)
        if reversal is not None:
            raise EntryStateError(
                f"Entry {transaction_id} is reversed by {reversal.transaction_id}"
            )

        entry.status = EntryStatus.VOID
        entry.voided_at = datetime.utcnow()
        entry.void_reason = reason
        AuditLog.record(
            self.db, "ENTRY_VOIDED", transaction_id,
            reason=reason, amount=str(entry.total_debit),
        )
        self.db.flush()

        invalidate_balances(self.db, {line.account_code for line in entry.lines})
        logger.info("Voided %s: %s", transaction_id, reason)
        return entry

    def reverse_entry(
        self,
        transaction_id: str,
        reversal_date: date | None = None,
        reason: str = "",
    ) -> TransactionEntry:
        """
        Post a mirror entry that cancels a posted one.

        The original is untouched. The reversal points back to it
        through source_id. An entry has at most one posted reversal;
        once that reversal is voided the entry can be reversed again.
        """
        original = self.get_entry(transaction_id)
        if original.status != EntryStatus.POSTED:
            raise EntryStateError(
                f"Entry {transaction_id} is {original.status.value}, not posted"
            )

        source = REVERSAL_SOURCES.get(original.source, EntrySource.REVERSAL)
        previous = self._reversals(original)
        if any(r.status == EntryStatus.POSTED for r in previous):
            raise EntryStateError(f"Entry {transaction_id} is already reversed")
        reference = f"REV-{original.transaction_id}"
        if previous:
            reference = f"{reference}-{len(previous) + 1}"

        lines = [
            EntryLineCreate(
                account_code=line.account_code,
                debit=line.credit,
                credit=line.debit,
                description=f"Reversal: {line.description}",
            )
            for line in original.lines
        ]
        metadata = dict(original.entry_metadata)
        metadata["reversed_transaction_id"] = original.transaction_id
        if reason:
            metadata["reversal_reason"] = reason

        reversal = self.post_entry(PostEntryRequest(
            date=reversal_date or date.today(),
            lines=lines,
            source=source,
            source_id=original.transaction_id,
            source_model="TransactionEntry",
            reference=reference,
            description=f"Reversal of {original.transaction_id}",
            metadata=metadata,
        ))
        AuditLog.record(
            self.db, "ENTRY_REVERSED", transaction_id,
            reversal_transaction_id=reversal.transaction_id, reason=reason,
        )
        self.db.flush()
        return reversal

    def get_entry(self, transaction_id: str) -> TransactionEntry:
        entry = self.db.execute(
            select(TransactionEntry).where(
                TransactionEntry.transaction_id == transaction_id
            )
        ).scalar_one_or_none()
        if entry is None:
            raise EntryNotFoundError(f"Entry {transaction_id} not found")
        return entry

    def find_by_reference(
        self, source: EntrySource, reference: str
    ) -> TransactionEntry | None:
        """The entry posted for (source, reference), if any."""
        self.db.flush()
        return self.db.execute(
            select(TransactionEntry).where(
                TransactionEntry.source == source,
                TransactionEntry.reference == reference,
            )
        ).scalar_one_or_none()

    def find_by_source_id(
        self, source: EntrySource, source_id: str
    ) -> list[TransactionEntry]:
        """Entries produced by one business record, oldest first."""
        self.db.flush()
        entries = self.db.execute(
            select(TransactionEntry)
            .where(
                TransactionEntry.source == source,
                TransactionEntry.source_id == source_id,
            )
            .order_by(TransactionEntry.date, TransactionEntry.id)
        ).scalars().all()
        return list(entries)

    def list_entries_for_account(
        self,
        account_code: str,
        start: date | None = None,
        end: date | None = None,
        include_void: bool = False,
    ) -> list[TransactionEntry]:
        """Entries touching an account, newest first."""
        query = (
            select(TransactionEntry)
            .where(
                TransactionEntry.lines.any(
                    TransactionLine.account_code == account_code
                )
            )
            .order_by(TransactionEntry.date.desc(), TransactionEntry.id.desc())
        )
        if not include_void:
            query = query.where(TransactionEntry.status == EntryStatus.POSTED)
        if start is not None:
            query = query.where(TransactionEntry.date >= start)
        if end is not None:
            query = query.where(TransactionEntry.date <= end)
        return list(self.db.execute(query).scalars().all())
