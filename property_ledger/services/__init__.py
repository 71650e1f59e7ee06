"""Ledger services."""

from property_ledger.services.account_registry import AccountRegistry
from property_ledger.services.balance_engine import BalanceEngine
from property_ledger.services.entry_store import EntryStore
from property_ledger.services.statement_builder import StatementBuilder
from property_ledger.services.reconciliation import ReconciliationService
from property_ledger.services.posting_service import PostingService

__all__ = [
    "AccountRegistry",
    "BalanceEngine",
    "EntryStore",
    "StatementBuilder",
    "ReconciliationService",
    "PostingService",
]
