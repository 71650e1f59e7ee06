"""
Pydantic schemas for ledger operations.

These define the contract: what data comes in, what data goes
out. They are separate from the database models: amounts are
Decimal here and integer cents in storage.
"""

from datetime import date as date_type, datetime
from decimal import Decimal

from pydantic import BaseModel, Field, ConfigDict

from property_ledger.models.enums import AccountType, EntrySource, EntryStatus
from property_ledger.models.transaction_entry import generate_transaction_id


# --- Account Schemas ---

class AccountCreate(BaseModel):
    """Request to create a new ledger account."""
    code: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=200)
    account_type: AccountType
    parent_code: str | None = Field(default=None, max_length=64)
    category: str | None = Field(default=None, max_length=100)


class AccountResponse(BaseModel):
    """Ledger account in API responses."""
    id: int
    code: str
    name: str
    account_type: AccountType
    category: str
    parent_code: str | None
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class AccountBalanceResponse(BaseModel):
    """Response for an account balance query."""
    account_code: str
    account_name: str
    account_type: AccountType
    balance: Decimal
    as_of: date_type
    include_children: bool


# --- Entry Schemas ---

class EntryLineCreate(BaseModel):
    """
    A single line of an entry.

    Exactly one of debit/credit must be nonzero. That rule, and
    the balance of the whole entry, are enforced by the EntryStore.
    """
    account_code: str = Field(min_length=1, max_length=64)
    debit: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    credit: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    description: str = Field(default="", max_length=255)


class PostEntryRequest(BaseModel):
    """
    A complete financial event: lines that must balance.

    (source, reference) is unique across the ledger when a
    reference is given; it is the idempotency key for callers.
    """
    transaction_id: str = Field(
        default_factory=generate_transaction_id, min_length=1, max_length=40
    )
    date: date_type = Field(default_factory=date_type.today)
    lines: list[EntryLineCreate] = Field(min_length=1)
    source: EntrySource = EntrySource.MANUAL
    source_id: str | None = Field(default=None, max_length=64)
    source_model: str | None = Field(default=None, max_length=64)
    reference: str | None = Field(default=None, max_length=128)
    description: str = Field(default="", max_length=255)
    metadata: dict = Field(default_factory=dict)
    created_by: str = Field(default="system", max_length=255)


class VoidEntryRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=255)


class ReverseEntryRequest(BaseModel):
    date: date_type | None = None
    reason: str = Field(default="", max_length=255)


class TransactionLineResponse(BaseModel):
    """Single line in API responses."""
    account_code: str
    account_name: str
    account_type: AccountType
    debit: Decimal
    credit: Decimal
    description: str

    model_config = {"from_attributes": True}


class TransactionEntryResponse(BaseModel):
    """A posted (or voided) entry with its lines."""
    transaction_id: str
    date: date_type
    description: str
    source: EntrySource
    source_id: str | None
    source_model: str | None
    reference: str | None
    status: EntryStatus
    total_debit: Decimal
    total_credit: Decimal
    metadata: dict = Field(validation_alias="entry_metadata")
    created_by: str
    created_at: datetime
    voided_at: datetime | None
    void_reason: str | None
    lines: list[TransactionLineResponse]

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)
