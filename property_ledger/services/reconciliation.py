"""
Reconciliation: compare business truth with ledger truth.

A run has two terminal states:

    RECONCILED  expected and actual agree within EPSILON; nothing posted
    DRIFTED     a correcting entry moves the control account to the
                expected balance, offset against the suspense account

The expected balance comes from a collaborator (sum of unpaid
expenses, outstanding debtor totals). If that collaborator fails,
the run aborts; a correction is never proposed against data that
could not be read.

Runs are idempotent: after a correction the difference is zero,
so an immediate second run is a no-op.

The expected balance is rounded half up to the cent before the
comparison; float sums from the business side never carry exact
cents.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Callable

from sqlalchemy.orm import Session

from property_ledger.config import get_settings
from property_ledger.errors import ReconciliationSourceUnavailableError
from property_ledger.models.audit_log import AuditLog
from property_ledger.models.enums import AccountType, CODE_FAMILIES, EntrySource
from property_ledger.models.transaction_entry import generate_transaction_id
from property_ledger.money import EPSILON_CENTS, from_cents, round_to_cents
from property_ledger.schemas.ledger import (
    AccountCreate,
    EntryLineCreate,
    PostEntryRequest,
)
from property_ledger.schemas.reports import (
    ReconciliationResult,
    ReconciliationStatus,
)
from property_ledger.services.account_registry import AccountRegistry
from property_ledger.services.balance_engine import BalanceEngine
from property_ledger.services.entry_store import EntryStore

logger = logging.getLogger(__name__)


class ReconciliationService:

    def __init__(self, db: Session):
        self.db = db
        self.settings = get_settings()
        self.registry = AccountRegistry(db)
        self.engine = BalanceEngine(db)
        self.store = EntryStore(db)

    def _expected_cents(self, account_code: str, expected_balance_fn) -> int:
        try:
            expected = expected_balance_fn()
        except Exception as e:
            logger.error(
                "Expected balance for %s unavailable: %s", account_code, e
            )
            raise ReconciliationSourceUnavailableError(
                f"Expected balance for {account_code} could not be computed: {e}"
            ) from e

        if expected is None:
            raise ReconciliationSourceUnavailableError(
                f"Expected balance for {account_code} returned no value"
            )
        return round_to_cents(expected)

    def _suspense_account(self, code: str):
        account = self.registry.resolve_account(code)
        if account is None:
            # A code outside the 1-5 families defaults to an asset
            account = self.registry.create_account(AccountCreate(
                code=code,
                name="Balance Correction",
                account_type=CODE_FAMILIES.get(code[:1], AccountType.ASSET),
            ))
        return account

    def reconcile(
        self,
        account_code: str,
        expected_balance_fn: Callable[[], Decimal],
        as_of: date | None = None,
        suspense_code: str | None = None,
        dry_run: bool = False,
        created_by: str = "system",
    ) -> ReconciliationResult:
        """
        Reconcile a control account against an expected balance.

        The actual balance includes every sub-account. When the
        two differ by a cent or more, difference = expected - actual
        is posted to the control account (on its increasing side
        when positive) against the suspense account, dated as_of.
        With dry_run the correction is only reported.
        """
        as_of = as_of or date.today()
        control = self.registry.require_account(account_code)

        expected = self._expected_cents(control.code, expected_balance_fn)
        actual = self.engine.compute_balance_cents(control.code, as_of)
        difference = expected - actual

        result = ReconciliationResult(
            account_code=control.code,
            as_of=as_of,
            expected=from_cents(expected),
            actual=from_cents(actual),
            difference=from_cents(difference),
            status=ReconciliationStatus.RECONCILED,
            dry_run=dry_run,
        )

        if abs(difference) < EPSILON_CENTS:
            logger.info("%s reconciled at %s", control.code, result.actual)
            return result

        result.status = ReconciliationStatus.DRIFTED
        logger.warning(
            "%s drifted: expected=%s actual=%s difference=%s%s",
            control.code, result.expected, result.actual, result.difference,
            " (dry run)" if dry_run else "",
        )
        if dry_run:
            return result

        suspense = self._suspense_account(suspense_code or self.settings.SUSPENSE_ACCOUNT_CODE)
        amount = from_cents(abs(difference))

        # Positive difference grows the control account on its normal side
        control_debit = (difference > 0) == control.is_debit_normal
        control_line = EntryLineCreate(
            account_code=control.code,
            debit=amount if control_debit else Decimal("0"),
            credit=Decimal("0") if control_debit else amount,
            description=f"Balance correction for {control.name}",
        )
        suspense_line = EntryLineCreate(
            account_code=suspense.code,
            debit=Decimal("0") if control_debit else amount,
            credit=amount if control_debit else Decimal("0"),
            description="Correction entry",
        )

        transaction_id = generate_transaction_id()
        correction = self.store.post_entry(PostEntryRequest(
            transaction_id=transaction_id,
            date=as_of,
            lines=[control_line, suspense_line],
            source=EntrySource.MANUAL,
            source_model="Reconciliation",
            # Suffix keeps later corrections of the same account unique
            reference=f"{control.code}_CORRECTION-{transaction_id}",
            description=f"{control.name} balance correction",
            metadata={
                "reconciliation": True,
                "expected": str(result.expected),
                "actual": str(result.actual),
                "difference": str(result.difference),
            },
            created_by=created_by,
        ))
        AuditLog.record(
            self.db, "BALANCE_CORRECTION", control.code,
            transaction_id=correction.transaction_id,
            expected=str(result.expected),
            actual=str(result.actual),
            difference=str(result.difference),
        )
        self.db.flush()

        result.correction_transaction_id = correction.transaction_id
        logger.warning(
            "Posted correction %s of %s to %s against %s",
            correction.transaction_id, result.difference, control.code, suspense.code,
        )
        return result
