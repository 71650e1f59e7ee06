"""
Database models package.

All models must be imported here so that Alembic can discover
them through Base.metadata when generating migrations.
"""

from property_ledger.models.base import Base
from property_ledger.models.enums import (
    AccountType,
    EntrySource,
    EntryStatus,
)
from property_ledger.models.audit_log import AuditLog
from property_ledger.models.account import Account
from property_ledger.models.transaction_entry import (
    TransactionEntry,
    TransactionLine,
)

__all__ = [
    "Base",
    "AccountType",
    "EntrySource",
    "EntryStatus",
    "AuditLog",
    "Account",
    "TransactionEntry",
    "TransactionLine",
]
