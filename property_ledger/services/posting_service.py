"""
Posting service: business events in, balanced entries out.

Rent accruals, tenant payments, vendor expenses and refunds are
owned elsewhere in the property system. Each record_* method:
1. Resolves (or lazily creates) the accounts the event touches
2. Builds the balanced lines for it
3. Posts through EntryStore with a (source, reference) key

A replayed event finds its existing entry and returns it, so the
originating business action can be retried safely. A replay that
disagrees with the stored entry raises DuplicateReferenceError.

Rent paid ahead of its accrual is held in Deferred Income until
recognise_deferred_income moves it for a period.
"""

import logging

from sqlalchemy.orm import Session

from property_ledger.errors import (
    DuplicateReferenceError,
    EntryStateError,
    InvalidAmountError,
)
from property_ledger.models.enums import EntrySource, EntryStatus
from property_ledger.models.transaction_entry import TransactionEntry
from property_ledger.money import from_cents, to_cents
from property_ledger.schemas.events import (
    ExpenseAccrualEvent,
    ExpensePaymentEvent,
    PaymentEvent,
    RefundEvent,
    RentAccrualEvent,
)
from property_ledger.schemas.ledger import EntryLineCreate, PostEntryRequest
from property_ledger.services.account_registry import (
    AccountRegistry,
    DEFERRED_INCOME_CODE,
    PAYABLES_CODE,
    RECEIVABLES_CODE,
)
from property_ledger.services.balance_engine import BalanceEngine
from property_ledger.services.entry_store import EntryStore

logger = logging.getLogger(__name__)

RENTAL_INCOME_CODE = "4001"

PAYMENT_METHOD_ACCOUNTS = {
    "Bank Transfer": "1001",
    "Cash": "1002",
    "Ecocash": "1003",
    "Innbucks": "1004",
    "Online Payment": "1005",
    "MasterCard": "1006",
    "Visa": "1006",
    "PayPal": "1007",
}
DEFAULT_PAYMENT_ACCOUNT = "1002"

EXPENSE_CATEGORY_ACCOUNTS = {
    "Maintenance": "5001",
    "Supplies": "5002",
    "Utilities": "5003",
    "Cleaning": "5004",
    "Transportation": "5005",
    "Office": "5006",
    "Miscellaneous": "5007",
}
DEFAULT_EXPENSE_ACCOUNT = "5007"


def payment_account_code(payment_method: str) -> str:
    return PAYMENT_METHOD_ACCOUNTS.get(payment_method, DEFAULT_PAYMENT_ACCOUNT)


def expense_account_code(category: str) -> str:
    return EXPENSE_CATEGORY_ACCOUNTS.get(category, DEFAULT_EXPENSE_ACCOUNT)


class PostingService:

    def __init__(self, db: Session):
        self.db = db
        self.registry = AccountRegistry(db)
        self.store = EntryStore(db)
        self.engine = BalanceEngine(db)

    def _receivable(self, student_id: str, student_name: str):
        """The student's own sub-account under Accounts Receivable."""
        return self.registry.get_or_create_scoped_account(
            RECEIVABLES_CODE,
            student_id,
            lambda base, entity_id: f"{base.name}: {student_name or entity_id}",
        )

    def _payable(self, vendor_id: str, vendor_name: str):
        """The vendor's own sub-account under Accounts Payable."""
        return self.registry.get_or_create_scoped_account(
            PAYABLES_CODE,
            vendor_id,
            lambda base, entity_id: f"{base.name}: {vendor_name or entity_id}",
        )

    def _deferred(self, student_id: str, student_name: str):
        """The student's advance balance under Deferred Income."""
        return self.registry.get_or_create_scoped_account(
            DEFERRED_INCOME_CODE,
            student_id,
            lambda base, entity_id: f"{base.name}: {student_name or entity_id}",
        )

    def _replayed(self, source: EntrySource, reference: str, amount) -> TransactionEntry | None:
        """
        The entry already posted for (source, reference), if any.

        Used where the split of an entry depends on balances that
        the entry itself changed, so only the amount is compared.
        """
        existing = self.store.find_by_reference(source, reference)
        if existing is not None and existing.total_debit_cents != to_cents(amount):
            raise DuplicateReferenceError(
                f"Entry {existing.transaction_id} already exists for "
                f"{source.value}/{reference} with amount {existing.total_debit}"
            )
        return existing

    def _own_balance(self, account, as_of) -> int:
        return self.engine.compute_balance_cents(account.code, as_of, include_children=False)

    def record_rent_accrual(self, event: RentAccrualEvent) -> TransactionEntry:
        """
        Rent earned for a period.

        Accounting:
            DEBIT  Accounts Receivable: <student> (asset increases)
            CREDIT Rental Income (income increases)
        """
        recognised = self.store.find_by_reference(
            EntrySource.DEFERRED_INCOME_TRANSFER,
            f"DEFERRED-{event.student_id}-{event.period}",
        )
        if recognised is not None and recognised.status == EntryStatus.POSTED:
            if any(line.account_code == RENTAL_INCOME_CODE for line in recognised.lines):
                raise EntryStateError(
                    f"Rent for {event.student_id} {event.period} was already "
                    f"recognised from deferred income by {recognised.transaction_id}"
                )

        receivable = self._receivable(event.student_id, event.student_name)
        description = f"Rent accrual {event.period} for {receivable.name}"

        return self.store.post_entry_if_absent(PostEntryRequest(
            date=event.date,
            lines=[
                EntryLineCreate(
                    account_code=receivable.code,
                    debit=event.amount,
                    description=description,
                ),
                EntryLineCreate(
                    account_code=RENTAL_INCOME_CODE,
                    credit=event.amount,
                    description=description,
                ),
            ],
            source=EntrySource.RENTAL_ACCRUAL,
            source_id=event.lease_id,
            source_model="Lease" if event.lease_id else None,
            reference=f"ACCRUAL-{event.student_id}-{event.period}",
            description=description,
            metadata={
                "student_id": event.student_id,
                "accrual_period": event.period,
            },
        ))

    def record_rent_payment(self, event: PaymentEvent) -> TransactionEntry:
        """
        Cash received from a student.

        Accounting:
            DEBIT  Bank / Cash / wallet per payment method (asset increases)
            CREDIT Accounts Receivable: <student> (up to the open balance)
            CREDIT Deferred Income: <student> (any excess, a liability)
        """
        existing = self._replayed(EntrySource.PAYMENT, event.payment_id, event.amount)
        if existing is not None:
            return existing

        receivable = self._receivable(event.student_id, event.student_name)
        description = f"Payment {event.payment_id} from {receivable.name}"

        amount = to_cents(event.amount)
        applied = min(amount, max(self._own_balance(receivable, event.date), 0))
        advance = amount - applied

        lines = [
            EntryLineCreate(
                account_code=payment_account_code(event.payment_method),
                debit=event.amount,
                description=description,
            ),
        ]
        if applied:
            lines.append(EntryLineCreate(
                account_code=receivable.code,
                credit=from_cents(applied),
                description=description,
            ))
        if advance:
            deferred = self._deferred(event.student_id, event.student_name)
            lines.append(EntryLineCreate(
                account_code=deferred.code,
                credit=from_cents(advance),
                description=f"Advance payment {event.payment_id}",
            ))
            logger.info(
                "Payment %s holds %s in advance for %s",
                event.payment_id, from_cents(advance), event.student_id,
            )

        return self.store.post_entry(PostEntryRequest(
            date=event.date,
            lines=lines,
            source=EntrySource.PAYMENT,
            source_id=event.payment_id,
            source_model="Payment",
            reference=event.payment_id,
            description=description,
            metadata={
                "student_id": event.student_id,
                "payment_method": event.payment_method,
                "advance": str(from_cents(advance)),
            },
        ))

    def recognise_deferred_income(self, event: RentAccrualEvent) -> TransactionEntry:
        """
        Rent for a period settled from the student's advance.

        When the period's rent was already accrued, the advance
        clears that receivable. Otherwise it becomes rental income
        directly and takes the place of the accrual.

        Accounting:
            DEBIT  Deferred Income: <student> (liability decreases)
            CREDIT Accounts Receivable: <student>, or Rental Income
        """
        reference = f"DEFERRED-{event.student_id}-{event.period}"
        existing = self._replayed(
            EntrySource.DEFERRED_INCOME_TRANSFER, reference, event.amount
        )
        if existing is not None:
            return existing

        deferred = self._deferred(event.student_id, event.student_name)
        available = self._own_balance(deferred, event.date)
        if to_cents(event.amount) > available:
            raise InvalidAmountError(
                f"{event.amount} exceeds the deferred balance "
                f"{from_cents(available)} of {event.student_id}"
            )

        accrual = self.store.find_by_reference(
            EntrySource.RENTAL_ACCRUAL, f"ACCRUAL-{event.student_id}-{event.period}"
        )
        if accrual is not None and accrual.status == EntryStatus.POSTED:
            credit_code = self._receivable(event.student_id, event.student_name).code
        else:
            credit_code = RENTAL_INCOME_CODE
        description = f"Deferred income for {event.period} to {deferred.name}"

        return self.store.post_entry(PostEntryRequest(
            date=event.date,
            lines=[
                EntryLineCreate(
                    account_code=deferred.code,
                    debit=event.amount,
                    description=description,
                ),
                EntryLineCreate(
                    account_code=credit_code,
                    credit=event.amount,
                    description=description,
                ),
            ],
            source=EntrySource.DEFERRED_INCOME_TRANSFER,
            source_id=event.lease_id,
            source_model="Lease" if event.lease_id else None,
            reference=reference,
            description=description,
            metadata={
                "student_id": event.student_id,
                "accrual_period": event.period,
            },
        ))

    def record_expense_accrual(self, event: ExpenseAccrualEvent) -> TransactionEntry:
        """
        An approved expense, not yet paid.

        Accounting:
            DEBIT  Expense account for the category (expense increases)
            CREDIT Accounts Payable: <vendor> (liability increases)
        """
        payable = self._payable(event.vendor_id, event.vendor_name)
        description = event.description or f"{event.category} expense {event.expense_id}"

        return self.store.post_entry_if_absent(PostEntryRequest(
            date=event.date,
            lines=[
                EntryLineCreate(
                    account_code=expense_account_code(event.category),
                    debit=event.amount,
                    description=description,
                ),
                EntryLineCreate(
                    account_code=payable.code,
                    credit=event.amount,
                    description=description,
                ),
            ],
            source=EntrySource.EXPENSE_ACCRUAL,
            source_id=event.expense_id,
            source_model="Expense",
            reference=event.expense_id,
            description=description,
            metadata={"vendor_id": event.vendor_id, "category": event.category},
        ))

    def record_expense_payment(self, event: ExpensePaymentEvent) -> TransactionEntry:
        """
        One payment against a vendor payable.

        An expense may be settled in installments; each payment is
        keyed by its own payment_id and linked to the expense
        through source_id.

        Accounting:
            DEBIT  Accounts Payable: <vendor> (liability decreases)
            CREDIT Bank / Cash per payment method (asset decreases)
        """
        payable = self._payable(event.vendor_id, event.vendor_name)
        description = (
            f"Payment {event.payment_id} of expense {event.expense_id} to {payable.name}"
        )

        return self.store.post_entry_if_absent(PostEntryRequest(
            date=event.date,
            lines=[
                EntryLineCreate(
                    account_code=payable.code,
                    debit=event.amount,
                    description=description,
                ),
                EntryLineCreate(
                    account_code=payment_account_code(event.payment_method),
                    credit=event.amount,
                    description=description,
                ),
            ],
            source=EntrySource.EXPENSE_PAYMENT,
            source_id=event.expense_id,
            source_model="Expense",
            reference=event.payment_id,
            description=description,
            metadata={
                "vendor_id": event.vendor_id,
                "payment_method": event.payment_method,
            },
        ))

    def record_refund(self, event: RefundEvent) -> TransactionEntry:
        """
        Money returned to a student, typically an overpayment.

        The student's advance is drawn down first; any rest clears
        a credit balance on the receivable.

        Accounting:
            DEBIT  Deferred Income: <student> (up to the advance held)
            DEBIT  Accounts Receivable: <student> (the rest)
            CREDIT Bank / Cash per payment method (asset decreases)
        """
        existing = self._replayed(EntrySource.REFUND, event.refund_id, event.amount)
        if existing is not None:
            return existing

        receivable = self._receivable(event.student_id, event.student_name)
        description = event.reason or f"Refund {event.refund_id} to {receivable.name}"

        amount = to_cents(event.amount)
        deferred = self.registry.resolve_account(f"{DEFERRED_INCOME_CODE}-{event.student_id}")
        from_advance = 0
        if deferred is not None:
            from_advance = min(amount, max(self._own_balance(deferred, event.date), 0))

        lines = []
        if from_advance:
            lines.append(EntryLineCreate(
                account_code=deferred.code,
                debit=from_cents(from_advance),
                description=description,
            ))
        if amount - from_advance:
            lines.append(EntryLineCreate(
                account_code=receivable.code,
                debit=from_cents(amount - from_advance),
                description=description,
            ))
        lines.append(EntryLineCreate(
            account_code=payment_account_code(event.payment_method),
            credit=event.amount,
            description=description,
        ))

        return self.store.post_entry(PostEntryRequest(
            date=event.date,
            lines=lines,
            source=EntrySource.REFUND,
            source_id=event.refund_id,
            source_model="Refund",
            reference=event.refund_id,
            description=description,
            metadata={"student_id": event.student_id},
        ))
