"""
Ledger API endpoints.

These endpoints expose the chart of accounts and the entry
store to HTTP clients. The API layer is thin. It maps ledger
errors to status codes, commits on success, and delegates all
business logic to the services.
"""

import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from property_ledger.errors import (
    DuplicateCodeError,
    DuplicateReferenceError,
    EntryNotFoundError,
    EntryStateError,
    LedgerIntegrityError,
    UnknownAccountError,
)
from property_ledger.models.base import get_db
from property_ledger.models.enums import AccountType
from property_ledger.schemas.ledger import (
    AccountBalanceResponse,
    AccountCreate,
    AccountResponse,
    PostEntryRequest,
    ReverseEntryRequest,
    TransactionEntryResponse,
    VoidEntryRequest,
)
from property_ledger.services.account_registry import AccountRegistry
from property_ledger.services.balance_engine import BalanceEngine
from property_ledger.services.entry_store import EntryStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ledger", tags=["Ledger"])


def http_error(error: ValueError) -> HTTPException:
    """Translate a ledger error into the matching HTTP status."""
    if isinstance(error, (UnknownAccountError, EntryNotFoundError)):
        status_code = 404
    elif isinstance(error, (DuplicateCodeError, DuplicateReferenceError, EntryStateError)):
        status_code = 409
    elif isinstance(error, LedgerIntegrityError):
        logger.error("Request aborted on integrity failure: %s", error)
        status_code = 500
    else:
        status_code = 400
    return HTTPException(status_code=status_code, detail=str(error))


# --- Accounts ---

@router.post("/accounts", response_model=AccountResponse, status_code=201)
def create_account(
    request: AccountCreate,
    db: Session = Depends(get_db),
):
    """
    Create a new ledger account.

    Every account must exist before entries can be posted to it.
    """
    registry = AccountRegistry(db)
    try:
        account = registry.create_account(request)
        db.commit()
        return account
    except ValueError as e:
        db.rollback()
        raise http_error(e)


@router.get("/accounts", response_model=list[AccountResponse])
def list_accounts(
    account_type: AccountType | None = None,
    active_only: bool = False,
    db: Session = Depends(get_db),
):
    return AccountRegistry(db).list_accounts(account_type, active_only)


@router.get("/accounts/{code}/balance", response_model=AccountBalanceResponse)
def get_account_balance(
    code: str,
    as_of: date | None = None,
    include_children: bool = True,
    db: Session = Depends(get_db),
):
    """
    Balance of an account, derived from posted lines.

    By default the balance includes every sub-account.
    """
    engine = BalanceEngine(db)
    try:
        account = engine.registry.require_account(code)
        balance = engine.compute_balance(code, as_of, include_children)
    except ValueError as e:
        raise http_error(e)

    return AccountBalanceResponse(
        account_code=account.code,
        account_name=account.name,
        account_type=account.account_type,
        balance=balance,
        as_of=as_of or date.today(),
        include_children=include_children,
    )


@router.get(
    "/accounts/{code}/entries",
    response_model=list[TransactionEntryResponse],
)
def get_account_entries(
    code: str,
    start: date | None = None,
    end: date | None = None,
    include_void: bool = False,
    db: Session = Depends(get_db),
):
    """Entries touching an account, newest first."""
    try:
        AccountRegistry(db).require_account(code)
    except ValueError as e:
        raise http_error(e)
    return EntryStore(db).list_entries_for_account(code, start, end, include_void)


# --- Entries ---

@router.post("/entries", response_model=TransactionEntryResponse, status_code=201)
def post_entry(
    request: PostEntryRequest,
    db: Session = Depends(get_db),
):
    """
    Post a balanced entry.

    Lines must balance to the cent and reference active accounts.
    A second entry with the same (source, reference) is
    rejected with 409.
    """
    store = EntryStore(db)
    try:
        entry = store.post_entry(request)
        db.commit()
        return entry
    except ValueError as e:
        db.rollback()
        raise http_error(e)


@router.get("/entries/{transaction_id}", response_model=TransactionEntryResponse)
def get_entry(
    transaction_id: str,
    db: Session = Depends(get_db),
):
    try:
        return EntryStore(db).get_entry(transaction_id)
    except ValueError as e:
        raise http_error(e)


@router.post(
    "/entries/{transaction_id}/void",
    response_model=TransactionEntryResponse,
)
def void_entry(
    transaction_id: str,
    request: VoidEntryRequest,
    db: Session = Depends(get_db),
):
    store = EntryStore(db)
    try:
        entry = store.void_entry(transaction_id, request.reason)
        db.commit()
        return entry
    except ValueError as e:
        db.rollback()
        raise http_error(e)


@router.post(
    "/entries/{transaction_id}/reverse",
    response_model=TransactionEntryResponse,
    status_code=201,
)
def reverse_entry(
    transaction_id: str,
    request: ReverseEntryRequest,
    db: Session = Depends(get_db),
):
    """Post the mirror entry of a posted one."""
    store = EntryStore(db)
    try:
        reversal = store.reverse_entry(transaction_id, request.date, request.reason)
        db.commit()
        return reversal
    except ValueError as e:
        db.rollback()
        raise http_error(e)
