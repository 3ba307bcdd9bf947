# workledger/services/reconciliation.py
from __future__ import annotations

"""
Operations that touch more than one entity: order cancellation, payment
cancellation, closing an order, sales order cancellation.

Each runs as a single transaction split into named steps. When a step fails
the whole transaction is rolled back and a ReconciliationError names the
step that broke.
"""

from dataclasses import dataclass
from typing import Optional

from flask import current_app

from workledger.errors import InvalidTransitionError, MissingReasonError, NotFoundError
from workledger.extensions import db
from workledger.models import (
    TERMINAL_ORDER_STATUSES,
    Order,
    OrderStatus,
    OrderWorkerStatus,
    Payment,
    PaymentStatus,
    ReferenceType,
    SalesOrder,
    SalesOrderStatus,
    TransactionStatus,
    User,
    utcnow_naive,
)
from workledger.services.orders import set_order_status
from workledger.services.payments import (
    cancel_payments_for_reference,
    is_cancelled,
    lock_reference,
    mark_cancelled,
    restore_balance,
)
from workledger.services.tasks import cancel_tasks_for_order
from workledger.services.transactions import atomic, lock_row, step
from workledger.utils.parsing import clean_str


@dataclass(frozen=True)
class CancellationResult:
    order: object
    workers_cancelled: int = 0
    tasks_cancelled: int = 0
    payments_cancelled: int = 0


def _require_reason(reason, what: str) -> str:
    cleaned = clean_str(reason)
    if not cleaned:
        raise MissingReasonError(f"Please provide a reason for cancelling this {what}.")
    return cleaned


# =========================================================
# Order cancellation
# =========================================================
def cancel_order(
    order_id,
    reason,
    cascade_to_tasks: bool = False,
    actor: Optional[User] = None,
) -> CancellationResult:
    """
    Cancels an order and everything hanging off it.

    Order workers are always cancelled, linked tasks only when
    `cascade_to_tasks` is set. Active payments are voided but the
    outstanding balance is left as it was.
    """
    reason = _require_reason(reason, "order")

    with atomic("Cancel order"):
        order = lock_row(Order, order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found.")
        if order.status in TERMINAL_ORDER_STATUSES:
            raise InvalidTransitionError(f"Order {order.order_number} is already {order.status.value}.")

        now = utcnow_naive()

        with step("order status"):
            order.status = OrderStatus.CANCELLED
            order.payment_status = PaymentStatus.CANCELLED
            order.cancellation_reason = reason
            order.cancelled_at = now
            order.cancelled_by_user_id = getattr(actor, "id", None)

        with step("order workers"):
            workers_cancelled = 0
            for ow in order.workers:
                if ow.status != OrderWorkerStatus.CANCELLED:
                    ow.status = OrderWorkerStatus.CANCELLED
                    workers_cancelled += 1

        tasks_cancelled = 0
        if cascade_to_tasks:
            with step("task cascade"):
                tasks_cancelled = cancel_tasks_for_order(order.id, now)

        with step("payment cascade"):
            payments_cancelled = cancel_payments_for_reference(
                ReferenceType.SERVICE_ORDER,
                order.id,
                f"Order cancelled: {reason}",
                actor,
                now,
            )

    current_app.logger.info(
        "Order %s cancelled (%s workers, %s tasks, %s payments)",
        order.order_number,
        workers_cancelled,
        tasks_cancelled,
        payments_cancelled,
    )
    return CancellationResult(order, workers_cancelled, tasks_cancelled, payments_cancelled)


def cancel_sales_order(sales_order_id, reason, actor: Optional[User] = None) -> CancellationResult:
    reason = _require_reason(reason, "sales order")

    with atomic("Cancel sales order"):
        so = lock_row(SalesOrder, sales_order_id)
        if so is None:
            raise NotFoundError(f"Sales order {sales_order_id} not found.")
        if so.status == SalesOrderStatus.CANCELLED:
            raise InvalidTransitionError(f"Sales order {so.order_number} is already cancelled.")

        now = utcnow_naive()

        with step("sales order status"):
            so.status = SalesOrderStatus.CANCELLED
            so.payment_status = PaymentStatus.CANCELLED
            so.cancellation_reason = reason
            so.cancelled_at = now
            so.cancelled_by_user_id = getattr(actor, "id", None)

        with step("payment cascade"):
            payments_cancelled = cancel_payments_for_reference(
                ReferenceType.SALES_ORDER,
                so.id,
                f"Sales order cancelled: {reason}",
                actor,
                now,
            )

    current_app.logger.info("Sales order %s cancelled (%s payments)", so.order_number, payments_cancelled)
    return CancellationResult(so, payments_cancelled=payments_cancelled)


# =========================================================
# Payment cancellation
# =========================================================
def cancel_payment(payment_id, reason, actor: Optional[User] = None) -> Payment:
    reason = _require_reason(reason, "payment")

    with atomic("Cancel payment"):
        payment = db.session.get(Payment, payment_id)
        if payment is None:
            raise NotFoundError(f"Payment {payment_id} not found.")

        # Order row first, then the payment row: same lock order as record_payment.
        ref = lock_reference(payment.reference_type, payment.reference_id)
        payment = lock_row(Payment, payment.id)

        if payment.status == TransactionStatus.CANCELLED:
            raise InvalidTransitionError("This payment is already cancelled.")
        if is_cancelled(ref) or ref.status == OrderStatus.CLOSED:
            raise InvalidTransitionError(
                f"Payments on {ref.status.value} order {ref.order_number} cannot be cancelled."
            )

        with step("payment status"):
            mark_cancelled(payment, reason, actor, utcnow_naive())

        with step("balance restore"):
            new_balance = restore_balance(payment, ref)

    current_app.logger.info(
        "Payment %s cancelled on %s (balance now %s)",
        payment.id,
        ref.order_number,
        new_balance,
    )
    return payment


# =========================================================
# Closing
# =========================================================
def close_order(order_id) -> Order:
    """Closing is a single guarded write: the order must be fully paid."""
    return set_order_status(order_id, OrderStatus.CLOSED)
