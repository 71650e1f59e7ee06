"""
Pydantic schemas for business events.

Payments, expenses, refunds and rent accruals are owned by other
parts of the property system. They hand the ledger just enough
data to build balanced lines.
"""

from datetime import date as date_type
from decimal import Decimal

from pydantic import BaseModel, Field


class RentAccrualEvent(BaseModel):
    """Rent earned for one student for one period."""
    student_id: str = Field(min_length=1, max_length=48)
    student_name: str = ""
    amount: Decimal = Field(gt=0, decimal_places=2)
    date: date_type
    period: str = Field(pattern=r"^\d{4}-\d{2}$")
    lease_id: str | None = None


class PaymentEvent(BaseModel):
    """
    Cash received from a student.

    The part above the open receivable is held as an advance.
    """
    payment_id: str = Field(min_length=1, max_length=64)
    student_id: str = Field(min_length=1, max_length=48)
    student_name: str = ""
    amount: Decimal = Field(gt=0, decimal_places=2)
    date: date_type
    payment_method: str = "Cash"


class ExpenseAccrualEvent(BaseModel):
    """An approved expense owed to a vendor."""
    expense_id: str = Field(min_length=1, max_length=64)
    vendor_id: str = Field(min_length=1, max_length=48)
    vendor_name: str = ""
    amount: Decimal = Field(gt=0, decimal_places=2)
    date: date_type
    category: str = "Miscellaneous"
    description: str = ""


class ExpensePaymentEvent(BaseModel):
    """One payment, possibly partial, against a vendor payable."""
    payment_id: str = Field(min_length=1, max_length=64)
    expense_id: str = Field(min_length=1, max_length=64)
    vendor_id: str = Field(min_length=1, max_length=48)
    vendor_name: str = ""
    amount: Decimal = Field(gt=0, decimal_places=2)
    date: date_type
    payment_method: str = "Bank Transfer"


class RefundEvent(BaseModel):
    """Money returned to a student."""
    refund_id: str = Field(min_length=1, max_length=64)
    student_id: str = Field(min_length=1, max_length=48)
    student_name: str = ""
    amount: Decimal = Field(gt=0, decimal_places=2)
    date: date_type
    payment_method: str = "Bank Transfer"
    reason: str = ""
