"""
Tests for the AccountRegistry.

Tests cover:
- Account creation, uniqueness and code families
- Parent/child hierarchy rules
- Lazily created counterparty sub-accounts
- Deactivation and deletion of unused accounts
- Idempotent chart-of-accounts seeding
"""

from decimal import Decimal

import pytest

from property_ledger.errors import (
    AccountInUseError,
    DuplicateCodeError,
    InvalidAccountCodeError,
    InvalidParentError,
    UnknownAccountError,
)
from property_ledger.models.audit_log import AuditLog
from property_ledger.models.enums import AccountType
from property_ledger.schemas.ledger import (
    AccountCreate,
    EntryLineCreate,
    PostEntryRequest,
)
from property_ledger.services.account_registry import (
    AccountRegistry,
    DEFAULT_CHART,
)
from property_ledger.services.entry_store import EntryStore


def make_account(registry, code, name, account_type, parent_code=None):
    """Create a ledger account and return it."""
    return registry.create_account(AccountCreate(
        code=code,
        name=name,
        account_type=account_type,
        parent_code=parent_code,
    ))


# --- Account Creation Tests ---

class TestCreateAccount:

    def test_create_account_succeeds(self, db_session):
        registry = AccountRegistry(db_session)
        account = make_account(registry, "1000", "Cash", AccountType.ASSET)
        db_session.commit()

        assert account.id is not None
        assert account.code == "1000"
        assert account.account_type == AccountType.ASSET
        assert account.category == "Current Assets"
        assert account.is_active is True

    def test_duplicate_code_rejected(self, db_session):
        registry = AccountRegistry(db_session)
        make_account(registry, "1000", "Cash", AccountType.ASSET)
        db_session.commit()

        with pytest.raises(DuplicateCodeError, match="already exists"):
            make_account(registry, "1000", "Cash Again", AccountType.ASSET)

    def test_code_family_must_match_type(self, db_session):
        registry = AccountRegistry(db_session)

        with pytest.raises(InvalidAccountCodeError, match="ASSET family"):
            make_account(registry, "1500", "Misfiled", AccountType.LIABILITY)

    def test_codes_outside_families_accept_any_type(self, db_session):
        registry = AccountRegistry(db_session)
        account = make_account(registry, "9998", "Balance Correction", AccountType.ASSET)
        assert account.account_type == AccountType.ASSET

    def test_missing_parent_rejected(self, db_session):
        registry = AccountRegistry(db_session)

        with pytest.raises(InvalidParentError, match="not found"):
            make_account(registry, "1001", "Bank", AccountType.ASSET, parent_code="1000")

    def test_parent_of_other_type_rejected(self, db_session):
        registry = AccountRegistry(db_session)
        make_account(registry, "9000", "Memo", AccountType.LIABILITY)

        with pytest.raises(InvalidParentError, match="LIABILITY"):
            make_account(registry, "9001", "Memo child", AccountType.ASSET, parent_code="9000")

    def test_child_is_linked_to_parent(self, db_session):
        registry = AccountRegistry(db_session)
        parent = make_account(registry, "1000", "Cash and Bank", AccountType.ASSET)
        child = make_account(registry, "1001", "Bank", AccountType.ASSET, parent_code="1000")
        db_session.commit()

        assert child.parent.code == parent.code
        assert [c.code for c in registry.list_children("1000")] == ["1001"]


# --- Lookup Tests ---

class TestResolveAccount:

    def test_unknown_code_resolves_to_none(self, db_session):
        assert AccountRegistry(db_session).resolve_account("4242") is None

    def test_require_unknown_code_raises(self, db_session):
        with pytest.raises(UnknownAccountError, match="not found"):
            AccountRegistry(db_session).require_account("4242")

    def test_list_accounts_filters_by_type(self, seeded_session):
        registry = AccountRegistry(seeded_session)
        income = registry.list_accounts(AccountType.INCOME)
        assert [a.code for a in income] == ["4000", "4001", "4002"]

    def test_list_descendants_is_depth_first(self, db_session):
        registry = AccountRegistry(db_session)
        make_account(registry, "1000", "Root", AccountType.ASSET)
        make_account(registry, "1010", "A", AccountType.ASSET, parent_code="1000")
        make_account(registry, "1011", "A.1", AccountType.ASSET, parent_code="1010")
        make_account(registry, "1020", "B", AccountType.ASSET, parent_code="1000")

        codes = [a.code for a in registry.list_descendants("1000")]
        assert codes == ["1010", "1011", "1020"]


# --- Scoped Account Tests ---

class TestScopedAccounts:

    def test_scoped_account_created_under_base(self, seeded_session):
        registry = AccountRegistry(seeded_session)
        account = registry.get_or_create_scoped_account("1100", "STU-7")

        assert account.code == "1100-STU-7"
        assert account.parent_code == "1100"
        assert account.account_type == AccountType.ASSET
        assert account.name == "Accounts Receivable - Tenants - STU-7"

    def test_scoped_account_is_idempotent(self, seeded_session):
        registry = AccountRegistry(seeded_session)
        first = registry.get_or_create_scoped_account("2000", "VEN-1")
        second = registry.get_or_create_scoped_account("2000", "VEN-1")

        assert first.id == second.id
        assert len(registry.list_children("2000")) == 1

    def test_display_name_function_used(self, seeded_session):
        registry = AccountRegistry(seeded_session)
        account = registry.get_or_create_scoped_account(
            "2000", "VEN-1", lambda base, entity_id: f"Payable to {entity_id}"
        )
        assert account.name == "Payable to VEN-1"

    def test_unknown_base_rejected(self, db_session):
        with pytest.raises(UnknownAccountError):
            AccountRegistry(db_session).get_or_create_scoped_account("1100", "STU-7")


# --- Deactivation / Deletion Tests ---

class TestDeactivateAndDelete:

    def test_deactivate_records_audit(self, seeded_session):
        registry = AccountRegistry(seeded_session)
        account = registry.deactivate_account("1007")
        seeded_session.commit()

        assert account.is_active is False
        audit = seeded_session.query(AuditLog).filter_by(event_type="ACCOUNT_DEACTIVATED").one()
        assert audit.subject == "1007"

    def test_delete_unused_account(self, seeded_session):
        registry = AccountRegistry(seeded_session)
        registry.delete_account("1007")
        seeded_session.commit()

        assert registry.resolve_account("1007") is None

    def test_delete_account_with_entries_rejected(self, seeded_session):
        EntryStore(seeded_session).post_entry(PostEntryRequest(
            lines=[
                EntryLineCreate(account_code="1001", debit=Decimal("10.00")),
                EntryLineCreate(account_code="3000", credit=Decimal("10.00")),
            ],
        ))
        seeded_session.commit()

        with pytest.raises(AccountInUseError, match="has entries"):
            AccountRegistry(seeded_session).delete_account("1001")

    def test_delete_parent_account_rejected(self, seeded_session):
        with pytest.raises(AccountInUseError, match="child accounts"):
            AccountRegistry(seeded_session).delete_account("1000")


# --- Seeding Tests ---

class TestSeedChart:

    def test_seed_creates_default_chart(self, db_session):
        created = AccountRegistry(db_session).seed_chart_of_accounts()
        db_session.commit()

        assert len(created) == len(DEFAULT_CHART)

    def test_seed_is_idempotent(self, seeded_session):
        created = AccountRegistry(seeded_session).seed_chart_of_accounts()
        assert created == []
