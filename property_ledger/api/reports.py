"""
Report endpoints.

All reports are read-only derivations of the ledger, except
reconciliation, which may post a correcting entry.
"""

from datetime import date

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from property_ledger.api.ledger import http_error
from property_ledger.models.base import get_db
from property_ledger.schemas.reports import (
    AgingReport,
    BalanceSheet,
    CashFlowStatement,
    GeneralLedger,
    IncomeStatement,
    ReconcileRequest,
    ReconciliationResult,
    TrialBalance,
)
from property_ledger.services.account_registry import RECEIVABLES_CODE
from property_ledger.services.balance_engine import BalanceEngine
from property_ledger.services.reconciliation import ReconciliationService
from property_ledger.services.statement_builder import StatementBuilder

router = APIRouter(prefix="/reports", tags=["Reports"])


@router.get("/trial-balance", response_model=TrialBalance)
def trial_balance(as_of: date | None = None, db: Session = Depends(get_db)):
    return BalanceEngine(db).compute_trial_balance(as_of)


@router.get("/integrity")
def integrity(as_of: date | None = None, db: Session = Depends(get_db)):
    """Trial-balance totals plus any posted entry whose lines disagree."""
    return BalanceEngine(db).check_integrity(as_of)


@router.get("/general-ledger/{code}", response_model=GeneralLedger)
def general_ledger(
    code: str,
    start: date,
    end: date,
    db: Session = Depends(get_db),
):
    try:
        return BalanceEngine(db).build_general_ledger(code, start, end)
    except ValueError as e:
        raise http_error(e)


@router.get("/balance-sheet", response_model=BalanceSheet)
def balance_sheet(as_of: date | None = None, db: Session = Depends(get_db)):
    return StatementBuilder(db).build_balance_sheet(as_of)


@router.get("/income-statement", response_model=IncomeStatement)
def income_statement(start: date, end: date, db: Session = Depends(get_db)):
    try:
        return StatementBuilder(db).build_income_statement(start, end)
    except ValueError as e:
        raise http_error(e)


@router.get("/cash-flow", response_model=CashFlowStatement)
def cash_flow(start: date, end: date, db: Session = Depends(get_db)):
    try:
        return StatementBuilder(db).build_cash_flow_statement(start, end)
    except ValueError as e:
        raise http_error(e)


@router.get("/aging", response_model=AgingReport)
def aging(
    as_of: date | None = None,
    control_code: str = RECEIVABLES_CODE,
    db: Session = Depends(get_db),
):
    try:
        return StatementBuilder(db).build_aging_report(as_of, control_code)
    except ValueError as e:
        raise http_error(e)


@router.post("/reconciliations", response_model=ReconciliationResult)
def reconcile(
    request: ReconcileRequest,
    as_of: date | None = None,
    db: Session = Depends(get_db),
):
    """
    Reconcile a control account against a caller-supplied balance.

    A drift posts a correcting entry unless dry_run is set.
    """
    service = ReconciliationService(db)
    try:
        result = service.reconcile(
            request.account_code,
            lambda: request.expected_balance,
            as_of=as_of,
            dry_run=request.dry_run,
        )
        db.commit()
        return result
    except ValueError as e:
        db.rollback()
        raise http_error(e)
