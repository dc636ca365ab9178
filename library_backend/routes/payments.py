from datetime import datetime
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional
from library_backend.database import get_db
from library_backend.models.enums import PaymentMethod, PaymentStatus, UserRole
from library_backend.models.user import User
from library_backend.schemas.common import ApiResponse, ok, paged
from library_backend.schemas.payment import RecordPaymentRequest, RefundPaymentRequest
from library_backend.services import payments
from library_backend.services.auth import get_current_user, require_roles

router = APIRouter(prefix="/api/payments", tags=["Payments"])

staff_only = require_roles(UserRole.LIBRARIAN, UserRole.ADMIN)
admin_only = require_roles(UserRole.ADMIN)

@router.post("/record", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def record_payment(
    payment_data: RecordPaymentRequest,
    current_user: User = Depends(staff_only),
    db: Session = Depends(get_db)
):
    payment = payments.record_payment(db, payment_data, recorded_by=current_user.id)
    return ok({"payment": payment.to_dict()}, "Payment recorded successfully")

@router.get("/user/{user_id}", response_model=ApiResponse)
async def list_user_payments(
    user_id: str,
    payment_status: Optional[PaymentStatus] = Query(None, alias="status"),
    payment_method: Optional[PaymentMethod] = Query(None, alias="paymentMethod"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    items, pagination = payments.list_user_payments(
        db, user_id, current_user, payment_status, payment_method, start_date, end_date, page, limit
    )
    return paged([payment.to_dict() for payment in items], pagination)

@router.get("/transaction/{transaction_id}/breakdown", response_model=ApiResponse)
async def get_payment_breakdown(
    transaction_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return ok(payments.calculate_payment_breakdown(db, transaction_id, current_user))

@router.get("/transaction/{transaction_id}", response_model=ApiResponse)
async def list_transaction_payments(
    transaction_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return ok(payments.list_transaction_payments(db, transaction_id, current_user))

@router.get("/{payment_id}", response_model=ApiResponse)
async def get_payment(
    payment_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return ok({"payment": payments.get_payment(db, payment_id, current_user).to_dict()})

@router.post("/{payment_id}/refund", response_model=ApiResponse)
async def refund_payment(
    payment_id: str,
    refund_data: RefundPaymentRequest,
    current_user: User = Depends(admin_only),
    db: Session = Depends(get_db)
):
    payment = payments.process_refund(db, payment_id, refund_data.refund_amount, refund_data.refund_reason)
    return ok({"payment": payment.to_dict()}, "Refund processed successfully")
