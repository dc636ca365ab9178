from datetime import datetime
from decimal import Decimal
from pydantic import Field
from typing import Optional
from library_backend.models.enums import BookCondition, PaymentMethod
from library_backend.schemas.common import CamelModel

class IssueBookRequest(CamelModel):
    book_id: str
    user_id: str
    due_date: Optional[datetime] = None
    is_home_delivery: bool = False
    notes: Optional[str] = None

class ReturnBookRequest(CamelModel):
    damage_charge: Decimal = Field(Decimal("0"), ge=0)
    return_condition: Optional[BookCondition] = None
    notes: Optional[str] = None

class RenewTransactionRequest(CamelModel):
    new_due_date: Optional[datetime] = None

class PayFineRequest(CamelModel):
    amount: Decimal = Field(..., gt=0)
    payment_method: PaymentMethod
    # Optional external reference (receipt or gateway id)
    transaction_id: Optional[str] = None

class BorrowRequestCreate(CamelModel):
    book_id: str
    notes: Optional[str] = None

class ApproveBorrowRequest(CamelModel):
    book_copy_id: Optional[str] = None
    due_date: Optional[datetime] = None
    notes: Optional[str] = None

class RejectBorrowRequest(CamelModel):
    reason: str = Field(..., min_length=1)
