"""
Ledger error taxonomy.

Every error derives from LedgerError, which is itself a
ValueError. Callers that only know about ValueError (the API
layer, scripts) keep working; callers that care can catch the
specific class.

None of these are recovered automatically. A rejected post
leaves the ledger unchanged, and corrections only ever happen
through the reconciliation protocol.
"""


class LedgerError(ValueError):
    """Base class for all ledger errors."""


# --- Chart of accounts ---

class DuplicateCodeError(LedgerError):
    """An account with this code already exists."""


class InvalidParentError(LedgerError):
    """Parent account is missing or of an incompatible type."""


class InvalidAccountCodeError(LedgerError):
    """Account code family prefix contradicts the account type."""


class AccountInUseError(LedgerError):
    """Account is referenced by entries or child accounts."""


class UnknownAccountError(LedgerError):
    """Account code does not resolve."""


class InactiveAccountError(LedgerError):
    """Account exists but no longer accepts new entries."""


# --- Entries ---

class InvalidAmountError(LedgerError):
    """Amount is negative or has sub-cent precision."""


class InvalidEntryLineError(LedgerError):
    """A line is not exactly one of debit or credit."""


class UnbalancedEntryError(LedgerError):
    """Debits and credits of a proposed entry differ."""


class DuplicateReferenceError(LedgerError):
    """An entry already exists for this (source, reference)."""


class EntryNotFoundError(LedgerError):
    """No entry with this transaction id."""


class EntryStateError(LedgerError):
    """Operation not allowed for the entry's current status."""


# --- Integrity and reconciliation ---

class LedgerIntegrityError(LedgerError):
    """Trial balance does not net to zero."""


class ReconciliationSourceUnavailableError(LedgerError):
    """Expected balance could not be obtained; reconciliation aborted."""
