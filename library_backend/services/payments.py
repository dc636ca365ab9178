import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from library_backend.models.enums import NotificationCategory, PaymentMethod, PaymentStatus
from library_backend.models.payment import Payment
from library_backend.models.transaction import Transaction
from library_backend.models.user import User
from library_backend.schemas.payment import RecordPaymentRequest
from library_backend.services import notifications
from library_backend.services.errors import BadRequestError, NotFoundError
from library_backend.services.policy import ensure_can_view
from library_backend.services.transactions import amount_paid, outstanding_balance
from library_backend.utils.money import ZERO, to_money
from library_backend.utils.pagination import paginate
from library_backend.utils.timezone import ensure_aware, now_utc

logger = logging.getLogger(__name__)

# Allowed gap between the declared amount and the sum of its breakdown
BREAKDOWN_TOLERANCE = Decimal("0.01")


def _get_transaction(db: Session, transaction_id: str, lock: bool = False) -> Transaction:
    query = db.query(Transaction).filter(Transaction.id == transaction_id)
    if lock:
        query = query.with_for_update()
    transaction = query.first()
    if not transaction:
        raise NotFoundError("Transaction not found")
    return transaction


def record_payment(db: Session, data: RecordPaymentRequest, recorded_by: Optional[str] = None) -> Payment:
    """Record money received against a transaction.

    The amount must equal late fee + damage charge + security deposit to
    within a cent. A payment carrying a late fee marks the fine as paid, as
    does any payment that clears the transaction's balance.
    """
    transaction = _get_transaction(db, data.transaction_id, lock=True)

    amount = to_money(data.amount)
    breakdown = to_money(data.late_fee) + to_money(data.damage_charge) + to_money(data.security_deposit)
    if abs(breakdown - amount) > BREAKDOWN_TOLERANCE:
        raise BadRequestError(
            f"Payment breakdown ({breakdown}) does not match the total amount ({amount})"
        )

    payment = Payment(
        user_id=transaction.user_id,
        transaction_id=transaction.id,
        amount=amount,
        payment_method=data.payment_method,
        payment_status=PaymentStatus.COMPLETED,
        late_fee=to_money(data.late_fee),
        damage_charge=to_money(data.damage_charge),
        security_deposit=to_money(data.security_deposit),
        payment_date=now_utc(),
        notes=data.notes,
        recorded_by=recorded_by,
    )
    db.add(payment)
    db.flush()
    db.expire(transaction, ["payments"])
    settled = transaction.return_date is not None and outstanding_balance(transaction) == 0
    if payment.late_fee > 0 or settled:
        transaction.fine_paid = True
    db.commit()
    db.refresh(payment)
    logger.info(f"Payment {payment.id} of {amount} recorded for transaction {transaction.id}")

    notifications.notifier.dispatch(
        db, payment.user_id, NotificationCategory.PAYMENT_CONFIRMATION,
        "Payment Received", f"We received your payment of {amount} via {data.payment_method.value}."
    )
    return payment


def process_refund(db: Session, payment_id: str, refund_amount: Decimal, reason: str) -> Payment:
    payment = db.query(Payment).filter(Payment.id == payment_id).with_for_update().first()
    if not payment:
        raise NotFoundError("Payment not found")

    refund_amount = to_money(refund_amount)
    refundable = to_money(payment.amount) - to_money(payment.refund_amount)
    if refund_amount > refundable:
        raise BadRequestError(
            f"Refund amount ({refund_amount}) exceeds the refundable balance ({refundable})"
        )

    payment.refund_amount = to_money(payment.refund_amount) + refund_amount
    payment.refund_date = now_utc()
    payment.refund_reason = reason
    if payment.refund_amount >= to_money(payment.amount):
        payment.payment_status = PaymentStatus.REFUNDED
    else:
        payment.payment_status = PaymentStatus.PARTIALLY_REFUNDED
    db.commit()
    db.refresh(payment)
    logger.info(f"Refunded {refund_amount} on payment {payment.id} ({payment.payment_status.value})")
    return payment


def calculate_payment_breakdown(db: Session, transaction_id: str, actor: Optional[User] = None) -> dict:
    transaction = _get_transaction(db, transaction_id)
    if actor is not None:
        ensure_can_view(actor, transaction.user_id, "payments")
    fine = to_money(transaction.fine_amount)
    damage = to_money(transaction.damage_charge)
    total_due = fine + damage
    total_paid = amount_paid(transaction)
    return {
        "transactionId": transaction.id,
        "fineAmount": float(fine),
        "damageCharge": float(damage),
        "securityDeposit": float(to_money(transaction.book.security_deposit)),
        "totalDue": float(total_due),
        "totalPaid": float(total_paid),
        "pendingAmount": float(max(ZERO, total_due - total_paid)),
        "finePaid": transaction.fine_paid,
    }


def get_payment(db: Session, payment_id: str, actor: User) -> Payment:
    payment = db.query(Payment).filter(Payment.id == payment_id).first()
    if not payment:
        raise NotFoundError("Payment not found")
    ensure_can_view(actor, payment.user_id, "payments")
    return payment


def list_user_payments(db: Session, user_id: str, actor: User, status: Optional[PaymentStatus] = None,
                       payment_method: Optional[PaymentMethod] = None, start_date: Optional[datetime] = None,
                       end_date: Optional[datetime] = None, page: int = 1, limit: int = 20):
    ensure_can_view(actor, user_id, "payments")
    query = db.query(Payment).filter(Payment.user_id == user_id)
    if status:
        query = query.filter(Payment.payment_status == status)
    if payment_method:
        query = query.filter(Payment.payment_method == payment_method)
    if start_date:
        query = query.filter(Payment.payment_date >= ensure_aware(start_date))
    if end_date:
        query = query.filter(Payment.payment_date <= ensure_aware(end_date))
    return paginate(query.order_by(Payment.payment_date.desc()), page, limit)


def list_transaction_payments(db: Session, transaction_id: str, actor: User) -> dict:
    transaction = _get_transaction(db, transaction_id)
    ensure_can_view(actor, transaction.user_id, "payments")

    payments = db.query(Payment).filter(
        Payment.transaction_id == transaction.id
    ).order_by(Payment.payment_date.desc()).all()

    total_paid = sum((to_money(p.amount) for p in payments), ZERO)
    total_refunded = sum((to_money(p.refund_amount) for p in payments), ZERO)
    return {
        "payments": [payment.to_dict() for payment in payments],
        "summary": {
            "totalPaid": float(total_paid),
            "totalRefunded": float(total_refunded),
            "netAmount": float(total_paid - total_refunded),
            "paymentCount": len(payments),
        },
    }
