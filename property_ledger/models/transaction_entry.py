"""
Transaction entry model.

A TransactionEntry is one financial event: a balanced set of
lines tagged with the business process that produced it. Entries
are append-only. A mistake is fixed by voiding, reversing or
posting a correction, never by editing amounts.

Amounts are stored as integer cents.
"""

import secrets
import string
import time
from datetime import date as date_type, datetime
from decimal import Decimal

from sqlalchemy import (
    String, Date, DateTime, Integer, BigInteger, ForeignKey, JSON,
    UniqueConstraint, Enum as SAEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from property_ledger.models.base import Base
from property_ledger.models.enums import AccountType, EntrySource, EntryStatus
from property_ledger.money import from_cents


_ID_ALPHABET = string.ascii_uppercase + string.digits


def generate_transaction_id() -> str:
    """TXN + epoch milliseconds + five random characters."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(5))
    return f"TXN{int(time.time() * 1000)}{suffix}"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class TransactionEntry(Base):
    """
    Header of a balanced entry.

    total_debit_cents and total_credit_cents duplicate the line
    sums. The EntryStore checks both before anything is written.
    """

    __tablename__ = "transaction_entries"
    __table_args__ = (
        # NULL references never collide, so unreferenced entries are unaffected
        UniqueConstraint("source", "reference", name="uq_entry_source_reference"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    transaction_id: Mapped[str] = mapped_column(
        String(40), unique=True, nullable=False, index=True
    )
    date: Mapped[date_type] = mapped_column(Date, nullable=False, index=True)
    description: Mapped[str] = mapped_column(
        String(255), nullable=False, default=""
    )
    source: Mapped[EntrySource] = mapped_column(
        SAEnum(
            EntrySource,
            name="entry_source_enum",
            values_callable=_enum_values,
        ),
        nullable=False,
        index=True,
    )
    source_id: Mapped[str | None] = mapped_column(
        String(64), nullable=True, index=True
    )
    source_model: Mapped[str | None] = mapped_column(
        String(64), nullable=True
    )
    reference: Mapped[str | None] = mapped_column(
        String(128), nullable=True
    )
    status: Mapped[EntryStatus] = mapped_column(
        SAEnum(
            EntryStatus,
            name="entry_status_enum",
            values_callable=_enum_values,
        ),
        nullable=False,
        default=EntryStatus.POSTED,
    )
    total_debit_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    total_credit_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    # "metadata" is reserved on declarative classes
    entry_metadata: Mapped[dict] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )
    created_by: Mapped[str] = mapped_column(
        String(255), nullable=False, default="system"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    voided_at: Mapped[datetime | None] = mapped_column(
        DateTime, nullable=True, default=None
    )
    void_reason: Mapped[str | None] = mapped_column(
        String(255), nullable=True, default=None
    )

    lines: Mapped[list["TransactionLine"]] = relationship(
        back_populates="entry",
        order_by="TransactionLine.position",
        cascade="all, delete-orphan",
    )

    @property
    def total_debit(self) -> Decimal:
        return from_cents(self.total_debit_cents)

    @property
    def total_credit(self) -> Decimal:
        return from_cents(self.total_credit_cents)

    @property
    def is_posted(self) -> bool:
        return self.status == EntryStatus.POSTED

    def __repr__(self) -> str:
        return (
            f"<TransactionEntry {self.transaction_id} "
            f"{self.source.value} {self.total_debit} ({self.status.value})>"
        )


class TransactionLine(Base):
    """
    One debit or one credit within an entry.

    account_name and account_type are snapshots taken at posting
    time so historical entries read the same after a rename.
    """

    __tablename__ = "transaction_lines"

    id: Mapped[int] = mapped_column(primary_key=True)
    entry_id: Mapped[int] = mapped_column(
        ForeignKey("transaction_entries.id"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    account_code: Mapped[str] = mapped_column(
        ForeignKey("ledger_accounts.code"), nullable=False, index=True
    )
    account_name: Mapped[str] = mapped_column(String(200), nullable=False)
    account_type: Mapped[AccountType] = mapped_column(
        SAEnum(AccountType, name="account_type_enum"),
        nullable=False,
    )
    debit_cents: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0
    )
    credit_cents: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0
    )
    description: Mapped[str] = mapped_column(
        String(255), nullable=False, default=""
    )

    entry: Mapped["TransactionEntry"] = relationship(back_populates="lines")

    @property
    def debit(self) -> Decimal:
        return from_cents(self.debit_cents)

    @property
    def credit(self) -> Decimal:
        return from_cents(self.credit_cents)

    def __repr__(self) -> str:
        side = "Dr" if self.debit_cents else "Cr"
        amount = self.debit if self.debit_cents else self.credit
        return f"<TransactionLine {side} {self.account_code} {amount}>"
