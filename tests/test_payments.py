from decimal import Decimal

import pytest

from conftest import move_due_date
from library_backend.models.enums import PaymentMethod, PaymentStatus
from library_backend.schemas.payment import RecordPaymentRequest
from library_backend.services import payments
from library_backend.services import transactions as circulation
from library_backend.services.errors import BadRequestError, ForbiddenError, NotFoundError


@pytest.fixture
def late_return(db, book, member):
    """A returned loan three days late (fine 15) with a 10.00 damage charge."""
    transaction = circulation.issue_book(db, book.id, member.id)
    move_due_date(db, transaction, days_ago=3)
    return circulation.return_book(db, transaction.id, damage_charge=Decimal("10"))


def _payment(transaction_id, amount, late_fee="0", damage_charge="0", security_deposit="0"):
    return RecordPaymentRequest(
        transactionId=transaction_id,
        amount=Decimal(amount),
        paymentMethod=PaymentMethod.CASH,
        lateFee=Decimal(late_fee),
        damageCharge=Decimal(damage_charge),
        securityDeposit=Decimal(security_deposit),
    )


def test_record_payment_with_matching_breakdown(db, late_return, librarian):
    payment = payments.record_payment(db, _payment(late_return.id, "25", "15", "10"), recorded_by=librarian.id)

    assert payment.payment_status == PaymentStatus.COMPLETED
    assert payment.user_id == late_return.user_id
    assert payment.recorded_by == librarian.id
    db.refresh(late_return)
    assert late_return.fine_paid is True


def test_breakdown_within_one_cent_is_accepted(db, late_return):
    payment = payments.record_payment(db, _payment(late_return.id, "25.00", "15.00", "9.99"))
    assert payment.amount == Decimal("25.00")


def test_breakdown_mismatch_is_rejected(db, late_return):
    with pytest.raises(BadRequestError):
        payments.record_payment(db, _payment(late_return.id, "25", "15", "5"))
    assert payments.calculate_payment_breakdown(db, late_return.id)["totalPaid"] == 0


def test_damage_only_payment_leaves_fine_open_until_balance_clears(db, late_return):
    payments.record_payment(db, _payment(late_return.id, "10", damage_charge="10"))
    db.refresh(late_return)
    assert late_return.fine_paid is False


def test_record_payment_for_unknown_transaction(db):
    with pytest.raises(NotFoundError):
        payments.record_payment(db, _payment("missing", "5", "5"))


def test_partial_then_full_refund(db, late_return):
    payment = payments.record_payment(db, _payment(late_return.id, "25", "15", "10"))

    payment = payments.process_refund(db, payment.id, Decimal("10"), "Damage waived")
    assert payment.payment_status == PaymentStatus.PARTIALLY_REFUNDED
    assert payment.refund_amount == Decimal("10.00")
    assert payment.refund_reason == "Damage waived"
    assert payment.refund_date is not None

    payment = payments.process_refund(db, payment.id, Decimal("15"), "Fine waived")
    assert payment.payment_status == PaymentStatus.REFUNDED
    assert payment.refund_amount == payment.amount


def test_refund_cannot_exceed_remaining_amount(db, late_return):
    payment = payments.record_payment(db, _payment(late_return.id, "25", "15", "10"))
    payments.process_refund(db, payment.id, Decimal("20"), "Goodwill")

    with pytest.raises(BadRequestError):
        payments.process_refund(db, payment.id, Decimal("5.01"), "Too much")

    db.refresh(payment)
    assert payment.refund_amount == Decimal("20.00")
    assert payment.payment_status == PaymentStatus.PARTIALLY_REFUNDED


def test_refund_unknown_payment(db):
    with pytest.raises(NotFoundError):
        payments.process_refund(db, "missing", Decimal("1"), "n/a")


def test_payment_breakdown_tracks_paid_and_pending(db, late_return):
    breakdown = payments.calculate_payment_breakdown(db, late_return.id)
    assert breakdown["fineAmount"] == 15.0
    assert breakdown["damageCharge"] == 10.0
    assert breakdown["totalDue"] == 25.0
    assert breakdown["pendingAmount"] == 25.0

    payment = payments.record_payment(db, _payment(late_return.id, "10", damage_charge="10"))
    breakdown = payments.calculate_payment_breakdown(db, late_return.id)
    assert breakdown["totalPaid"] == 10.0
    assert breakdown["pendingAmount"] == 15.0

    payments.process_refund(db, payment.id, Decimal("4"), "Partial waiver")
    breakdown = payments.calculate_payment_breakdown(db, late_return.id)
    assert breakdown["totalPaid"] == 6.0
    assert breakdown["pendingAmount"] == 19.0


def test_transaction_payments_summary(db, late_return, member):
    first = payments.record_payment(db, _payment(late_return.id, "10", damage_charge="10"))
    payments.record_payment(db, _payment(late_return.id, "15", "15"))
    payments.process_refund(db, first.id, Decimal("2.50"), "Rounding")

    result = payments.list_transaction_payments(db, late_return.id, member)

    assert result["summary"] == {
        "totalPaid": 25.0,
        "totalRefunded": 2.5,
        "netAmount": 22.5,
        "paymentCount": 2,
    }
    assert len(result["payments"]) == 2


def test_members_only_see_their_own_payments(db, late_return, member, make_user, librarian):
    payment = payments.record_payment(db, _payment(late_return.id, "25", "15", "10"))
    stranger = make_user()

    assert payments.get_payment(db, payment.id, member).id == payment.id
    assert payments.get_payment(db, payment.id, librarian).id == payment.id
    with pytest.raises(ForbiddenError):
        payments.get_payment(db, payment.id, stranger)
    with pytest.raises(ForbiddenError):
        payments.list_user_payments(db, member.id, stranger)
    with pytest.raises(ForbiddenError):
        payments.list_transaction_payments(db, late_return.id, stranger)


def test_list_user_payments_filters(db, late_return, member):
    payments.record_payment(db, _payment(late_return.id, "10", damage_charge="10"))
    refunded = payments.record_payment(db, _payment(late_return.id, "15", "15"))
    payments.process_refund(db, refunded.id, Decimal("15"), "Waived")

    items, pagination = payments.list_user_payments(db, member.id, member)
    assert pagination["total"] == 2

    items, pagination = payments.list_user_payments(db, member.id, member, status=PaymentStatus.REFUNDED)
    assert [p.id for p in items] == [refunded.id]

    items, _ = payments.list_user_payments(db, member.id, member, payment_method=PaymentMethod.CARD)
    assert items == []
