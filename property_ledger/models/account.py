"""
Ledger account model (chart of accounts).

Every account in the system (bank, tenant receivables, vendor
payables, rental income, expenses) is a ledger account. Lines
are posted against these accounts by code.

Accounts form a tree through parent_code. Per-tenant and
per-vendor sub-accounts ("1100-<studentId>") hang under their
control account so balances roll up.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from property_ledger.models.base import Base
from property_ledger.models.enums import AccountType


class Account(Base):
    """
    A single account in the chart of accounts.

    Once referenced by entries, an account is never deleted,
    only deactivated via is_active=False.
    """

    __tablename__ = "ledger_accounts"

    id: Mapped[int] = mapped_column(primary_key=True)
    code: Mapped[str] = mapped_column(
        String(64), unique=True, nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    account_type: Mapped[AccountType] = mapped_column(
        SAEnum(AccountType, name="account_type_enum"),
        nullable=False,
    )
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    parent_code: Mapped[str | None] = mapped_column(
        ForeignKey("ledger_accounts.code"), nullable=True, index=True
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    parent: Mapped[Optional["Account"]] = relationship(
        remote_side=[code], back_populates="children"
    )
    children: Mapped[list["Account"]] = relationship(
        back_populates="parent", order_by="Account.code"
    )

    @property
    def is_debit_normal(self) -> bool:
        return self.account_type.is_debit_normal

    def signed_balance_cents(self, debit_cents: int, credit_cents: int) -> int:
        """Apply this account's normal-side convention to raw totals."""
        if self.is_debit_normal:
            return debit_cents - credit_cents
        return credit_cents - debit_cents

    def __repr__(self) -> str:
        return f"<Account {self.code} ({self.account_type.value})>"
