# workledger/services/payments.py
from __future__ import annotations

"""
Payment ledger: records payments against service orders and sales orders and
keeps each order's outstanding balance and payment status in step.

Balances are integer minor units, so "fully paid" is an exact comparison
against zero.
"""

from datetime import datetime
from typing import Optional, Union

from flask import current_app

from workledger.errors import (
    InvalidTransitionError,
    NotFoundError,
    OverpaymentError,
    ValidationError,
)
from workledger.extensions import db
from workledger.models import (
    Order,
    OrderStatus,
    Organization,
    Payment,
    PaymentMethod,
    PaymentStatus,
    ReferenceType,
    SalesOrder,
    SalesOrderStatus,
    TransactionStatus,
    User,
)
from workledger.services.transactions import atomic, lock_row, swap_balance
from workledger.utils.money import format_amount, positive_minor
from workledger.utils.parsing import clean_str, coerce_enum, require_id

PAYMENT_REFERENCE_MAXLEN = 120

Reference = Union[Order, SalesOrder]

_REFERENCE_MODELS = {
    ReferenceType.SERVICE_ORDER: Order,
    ReferenceType.SALES_ORDER: SalesOrder,
}


def derive_payment_status(balance_minor: int, total_minor: int) -> PaymentStatus:
    if balance_minor == 0:
        return PaymentStatus.PAID
    if balance_minor >= total_minor:
        return PaymentStatus.UNPAID
    return PaymentStatus.PARTIALLY_PAID


def is_cancelled(ref: Reference) -> bool:
    return ref.status in (OrderStatus.CANCELLED, SalesOrderStatus.CANCELLED)


def _currency(ref: Reference) -> Optional[str]:
    org = db.session.get(Organization, ref.organization_id)
    return org.currency if org else None


def lock_reference(reference_type: ReferenceType, reference_id) -> Reference:
    model = _REFERENCE_MODELS[reference_type]
    ref = lock_row(model, reference_id)
    if ref is None:
        label = "Order" if model is Order else "Sales order"
        raise NotFoundError(f"{label} {reference_id} not found.")
    return ref


def payments_for(reference_type: ReferenceType, reference_id: int) -> list[Payment]:
    return (
        Payment.query
        .filter_by(reference_type=reference_type, reference_id=reference_id)
        .order_by(Payment.created_at.asc(), Payment.id.asc())
        .all()
    )


# =========================================================
# Building blocks (run inside the caller's transaction)
# =========================================================
def apply_payment(
    ref: Reference,
    reference_type: ReferenceType,
    amount_minor: int,
    method: PaymentMethod,
    reference: Optional[str] = None,
    actor: Optional[User] = None,
) -> Payment:
    if is_cancelled(ref):
        raise InvalidTransitionError(f"Cannot record a payment against cancelled order {ref.order_number}.")

    balance = ref.outstanding_balance_minor
    if amount_minor > balance:
        raise OverpaymentError(
            f"Amount cannot exceed outstanding balance of {format_amount(balance, _currency(ref))}."
        )

    payment = Payment(
        organization_id=ref.organization_id,
        reference_type=reference_type,
        reference_id=ref.id,
        amount_minor=amount_minor,
        payment_method=method,
        payment_reference=reference,
        status=TransactionStatus.ACTIVE,
        recorded_by_user_id=getattr(actor, "id", None),
    )
    db.session.add(payment)

    new_balance = balance - amount_minor
    swap_balance(ref, balance, new_balance, derive_payment_status(new_balance, ref.total_amount_minor))
    return payment


def mark_cancelled(payment: Payment, reason: str, actor: Optional[User], when: datetime) -> None:
    payment.status = TransactionStatus.CANCELLED
    payment.cancelled_at = when
    payment.cancelled_by_user_id = getattr(actor, "id", None)
    payment.cancellation_reason = reason


def restore_balance(payment: Payment, ref: Reference) -> int:
    """
    Adds a cancelled payment back onto the balance, never past the order total.
    Returns the new balance.
    """
    balance = ref.outstanding_balance_minor
    new_balance = min(ref.total_amount_minor, balance + payment.amount_minor)
    swap_balance(ref, balance, new_balance, derive_payment_status(new_balance, ref.total_amount_minor))
    return new_balance


def cancel_payments_for_reference(
    reference_type: ReferenceType,
    reference_id: int,
    reason: str,
    actor: Optional[User],
    when: datetime,
) -> int:
    """
    Cascade helper for order cancellation: voids every active payment on the
    order without touching its balance.
    """
    active = (
        Payment.query
        .filter_by(reference_type=reference_type, reference_id=reference_id, status=TransactionStatus.ACTIVE)
        .with_for_update(of=Payment)
        .all()
    )
    for payment in active:
        mark_cancelled(payment, reason, actor, when)
    return len(active)


# =========================================================
# Record payment
# =========================================================
def parse_method(value) -> PaymentMethod:
    return coerce_enum(PaymentMethod, value, "payment method")


def parse_reference(value) -> Optional[str]:
    reference = clean_str(value) or None
    if reference and len(reference) > PAYMENT_REFERENCE_MAXLEN:
        raise ValidationError(f"Payment reference too long (max {PAYMENT_REFERENCE_MAXLEN}).")
    return reference


def record_payment(
    order_id,
    amount,
    method,
    reference: Optional[str] = None,
    reference_type=ReferenceType.SERVICE_ORDER,
    actor: Optional[User] = None,
) -> Payment:
    amount_minor = positive_minor(amount)
    method = parse_method(method)
    reference = parse_reference(reference)
    reference_type = coerce_enum(ReferenceType, reference_type, "reference type")
    order_id = require_id(order_id, "Order")

    with atomic("Record payment"):
        ref = lock_reference(reference_type, order_id)
        payment = apply_payment(ref, reference_type, amount_minor, method, reference, actor)

    current_app.logger.info(
        "Payment %s of %s recorded against %s %s (balance now %s)",
        payment.id,
        amount_minor,
        reference_type.value,
        order_id,
        ref.outstanding_balance_minor,
    )
    return payment
