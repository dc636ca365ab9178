from decimal import Decimal
from pydantic import Field
from typing import Optional
from library_backend.models.enums import PaymentMethod
from library_backend.schemas.common import CamelModel

class RecordPaymentRequest(CamelModel):
    transaction_id: str
    amount: Decimal = Field(..., gt=0)
    payment_method: PaymentMethod
    late_fee: Decimal = Field(Decimal("0"), ge=0)
    damage_charge: Decimal = Field(Decimal("0"), ge=0)
    security_deposit: Decimal = Field(Decimal("0"), ge=0)
    notes: Optional[str] = None

class RefundPaymentRequest(CamelModel):
    refund_amount: Decimal = Field(..., gt=0)
    refund_reason: str = Field(..., min_length=1)
