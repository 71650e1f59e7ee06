"""
Tests for the ReconciliationService.

The expected balance is supplied by a callable standing in for
the business system (unpaid expenses, outstanding debtors).
"""

from decimal import Decimal

import pytest

from property_ledger.errors import (
    ReconciliationSourceUnavailableError,
    UnknownAccountError,
)
from property_ledger.models.audit_log import AuditLog
from property_ledger.models.enums import AccountType, EntrySource
from property_ledger.models.transaction_entry import TransactionEntry
from property_ledger.schemas.events import ExpenseAccrualEvent, RentAccrualEvent
from property_ledger.schemas.reports import ReconciliationStatus
from property_ledger.services.account_registry import AccountRegistry
from property_ledger.services.balance_engine import BalanceEngine
from property_ledger.services.entry_store import EntryStore
from property_ledger.services.posting_service import PostingService
from property_ledger.services.reconciliation import ReconciliationService
from property_ledger.services.statement_builder import StatementBuilder


@pytest.fixture
def payables(seeded_session):
    """Two accrued vendor expenses totaling 200.00."""
    service = PostingService(seeded_session)
    for expense_id, amount in [("EXP-1", "120.00"), ("EXP-2", "80.00")]:
        service.record_expense_accrual(ExpenseAccrualEvent(
            expense_id=expense_id,
            vendor_id="V1",
            vendor_name="Plumbing Co",
            amount=Decimal(amount),
            date="2024-01-10",
            category="Maintenance",
        ))
    seeded_session.commit()
    return seeded_session


class TestReconcile:

    def test_matching_balance_posts_nothing(self, payables):
        result = ReconciliationService(payables).reconcile(
            "2000", lambda: Decimal("200.00")
        )

        assert result.status == ReconciliationStatus.RECONCILED
        assert result.difference == Decimal("0.00")
        assert result.correction_transaction_id is None
        assert payables.query(TransactionEntry).count() == 2

    def test_drift_posts_correction(self, payables):
        """Three unpaid expenses total 250.00 but the ledger holds 200.00."""
        result = ReconciliationService(payables).reconcile(
            "2000", lambda: Decimal("250.00")
        )
        payables.commit()

        assert result.status == ReconciliationStatus.DRIFTED
        assert result.expected == Decimal("250.00")
        assert result.actual == Decimal("200.00")
        assert result.difference == Decimal("50.00")

        correction = EntryStore(payables).get_entry(result.correction_transaction_id)
        assert correction.source == EntrySource.MANUAL
        assert correction.reference.startswith("2000_CORRECTION-")
        assert correction.lines[0].account_code == "2000"
        assert correction.lines[0].credit == Decimal("50.00")
        assert correction.lines[1].account_code == "9998"
        assert correction.lines[1].debit == Decimal("50.00")

        engine = BalanceEngine(payables)
        assert engine.compute_balance("2000") == Decimal("250.00")
        assert engine.check_integrity()["is_balanced"] is True
        assert StatementBuilder(payables).build_balance_sheet().is_balanced is True

    def test_second_run_is_a_no_op(self, payables):
        service = ReconciliationService(payables)
        service.reconcile("2000", lambda: Decimal("250.00"))
        payables.commit()

        second = service.reconcile("2000", lambda: Decimal("250.00"))

        assert second.status == ReconciliationStatus.RECONCILED
        assert payables.query(TransactionEntry).count() == 3

    def test_correction_is_audited(self, payables):
        result = ReconciliationService(payables).reconcile(
            "2000", lambda: Decimal("150.00")
        )
        payables.commit()

        audit = payables.query(AuditLog).filter_by(event_type="BALANCE_CORRECTION").one()
        assert audit.subject == "2000"
        assert audit.details["transaction_id"] == result.correction_transaction_id
        assert audit.details["difference"] == "-50.00"

    def test_debit_normal_control_corrected_downward(self, seeded_session):
        PostingService(seeded_session).record_rent_accrual(RentAccrualEvent(
            student_id="S1",
            amount=Decimal("150.00"),
            date="2024-01-01",
            period="2024-01",
        ))
        seeded_session.commit()

        result = ReconciliationService(seeded_session).reconcile(
            "1100", lambda: Decimal("100.00")
        )

        correction = EntryStore(seeded_session).get_entry(result.correction_transaction_id)
        assert correction.lines[0].credit == Decimal("50.00")
        assert BalanceEngine(seeded_session).compute_balance("1100") == Decimal("100.00")

    def test_dry_run_reports_without_posting(self, payables):
        result = ReconciliationService(payables).reconcile(
            "2000", lambda: Decimal("250.00"), dry_run=True
        )

        assert result.status == ReconciliationStatus.DRIFTED
        assert result.dry_run is True
        assert result.correction_transaction_id is None
        assert payables.query(TransactionEntry).count() == 2


# --- Fail-closed Tests ---

class TestReconcileFailsClosed:

    def test_failing_source_aborts(self, payables):
        def unavailable():
            raise ConnectionError("expense service down")

        with pytest.raises(ReconciliationSourceUnavailableError, match="service down"):
            ReconciliationService(payables).reconcile("2000", unavailable)
        assert payables.query(TransactionEntry).count() == 2

    def test_missing_value_aborts(self, payables):
        with pytest.raises(ReconciliationSourceUnavailableError, match="no value"):
            ReconciliationService(payables).reconcile("2000", lambda: None)

    def test_unknown_control_account(self, payables):
        with pytest.raises(UnknownAccountError):
            ReconciliationService(payables).reconcile("2999", lambda: Decimal("0"))


# --- Expected balance rounding ---

class TestExpectedBalanceRounding:

    def test_float_sum_within_a_cent_reconciles(self, seeded_session):
        PostingService(seeded_session).record_expense_accrual(ExpenseAccrualEvent(
            expense_id="EXP-9", vendor_id="V1",
            amount=Decimal("0.30"), date="2024-01-10",
        ))
        seeded_session.commit()

        result = ReconciliationService(seeded_session).reconcile("2000", lambda: 0.1 + 0.2)

        assert result.status == ReconciliationStatus.RECONCILED
        assert result.expected == Decimal("0.30")
        assert seeded_session.query(TransactionEntry).count() == 1

    def test_half_cent_rounds_up(self, payables):
        result = ReconciliationService(payables).reconcile(
            "2000", lambda: Decimal("200.005"), dry_run=True
        )

        assert result.expected == Decimal("200.01")
        assert result.status == ReconciliationStatus.DRIFTED

    def test_below_half_cent_rounds_down(self, payables):
        result = ReconciliationService(payables).reconcile(
            "2000", lambda: Decimal("200.004")
        )

        assert result.status == ReconciliationStatus.RECONCILED
        assert result.correction_transaction_id is None


# --- Suspense account ---

class TestSuspenseAccount:

    def test_suspense_created_with_family_type(self, payables):
        result = ReconciliationService(payables).reconcile(
            "2000", lambda: Decimal("250.00"), suspense_code="2999"
        )
        payables.commit()

        suspense = AccountRegistry(payables).require_account("2999")
        assert suspense.account_type == AccountType.LIABILITY
        correction = EntryStore(payables).get_entry(result.correction_transaction_id)
        assert correction.lines[1].account_code == "2999"
        assert BalanceEngine(payables).compute_balance("2000") == Decimal("250.00")
        assert StatementBuilder(payables).build_balance_sheet().is_balanced is True

    def test_suspense_outside_families_is_an_asset(self, payables):
        ReconciliationService(payables).reconcile(
            "2000", lambda: Decimal("250.00"), suspense_code="9001"
        )

        suspense = AccountRegistry(payables).require_account("9001")
        assert suspense.account_type == AccountType.ASSET
