# workledger/api.py
from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required

from .errors import NotFoundError
from .extensions import db, limiter
from .models import (
    Order,
    OrderStatus,
    OrderWorker,
    Payment,
    ReferenceType,
    SalesOrder,
    Task,
    Worker,
)
from .serializers import (
    cancellation_to_dict,
    date_range_to_dict,
    earnings_to_dict,
    method_totals_to_dict,
    order_summary_to_dict,
    order_to_dict,
    order_worker_to_dict,
    payment_to_dict,
    sales_order_to_dict,
    task_to_dict,
)
from .services import orders as order_service
from .services import payments as payment_service
from .services import reconciliation
from .services import statistics
from .services import tasks as task_service
from .utils.guards import manager_required
from .utils.parsing import coerce_enum, require_id

api = Blueprint("api", __name__, url_prefix="/api")


# =========================================================
# Helpers
# =========================================================
def _payload() -> dict:
    return request.get_json(silent=True) or {}


def _flag(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in ("1", "true", "yes", "on")


def _org_id() -> int:
    return current_user.organization_id


def _owned(model, pk, label: str):
    """Fetch a row of the current user's organization, 404 otherwise."""
    obj = db.session.get(model, pk)
    if obj is None or obj.organization_id != _org_id():
        raise NotFoundError(f"{label} {pk} not found.")
    return obj


def _owned_order_worker(pk) -> OrderWorker:
    ow = db.session.get(OrderWorker, pk)
    if ow is None or ow.order.organization_id != _org_id():
        raise NotFoundError(f"Order worker {pk} not found.")
    return ow


def _payment_limit() -> str:
    return current_app.config["PAYMENT_RATE_LIMIT"]


def _order_detail(order: Order) -> dict:
    payments = payment_service.payments_for(ReferenceType.SERVICE_ORDER, order.id)
    return order_to_dict(order, payments=payments, detail=True)


def _sales_order_detail(so: SalesOrder) -> dict:
    payments = payment_service.payments_for(ReferenceType.SALES_ORDER, so.id)
    return sales_order_to_dict(so, payments=payments)


# ======================
# Tasks
# ======================
@api.route("/tasks", methods=["POST"])
@login_required
def create_task():
    data = _payload()
    worker = _owned(Worker, require_id(data.get("worker_id"), "Worker"), "Worker")

    task = task_service.create_task(
        worker.id,
        data.get("project_id"),
        data.get("due_date"),
        description=data.get("description"),
        delay_reason=data.get("delay_reason"),
        order_id=data.get("order_id"),
    )
    return jsonify({"success": True, "task": task_to_dict(task)}), 201


@api.route("/tasks/<int:task_id>/status", methods=["POST"])
@login_required
def update_task_status(task_id):
    _owned(Task, task_id, "Task")
    data = _payload()
    task = task_service.update_task_status(task_id, data.get("status"), data.get("delay_reason"))
    return jsonify({"success": True, "task": task_to_dict(task)})


@api.route("/tasks/<int:task_id>/cancel", methods=["POST"])
@login_required
def cancel_task(task_id):
    _owned(Task, task_id, "Task")
    task = task_service.cancel_task(task_id)
    return jsonify({"success": True, "task": task_to_dict(task)})


@api.route("/workers/<int:worker_id>/earnings", methods=["GET"])
@login_required
def worker_earnings(worker_id):
    _owned(Worker, worker_id, "Worker")
    earnings = task_service.worker_earnings(worker_id, request.args.get("start"), request.args.get("end"))
    return jsonify({"success": True, "earnings": earnings_to_dict(earnings)})


# ======================
# Orders
# ======================
@api.route("/orders", methods=["POST"])
@login_required
def create_order():
    data = _payload()
    order = order_service.create_order(
        _org_id(),
        data.get("client_id"),
        data.get("services") or [],
        workers=data.get("workers") or [],
        custom_field_ids=data.get("custom_field_ids") or [],
        description=data.get("description"),
        due_date=data.get("due_date"),
        initial_payment=data.get("initial_payment"),
        actor=current_user,
    )
    return jsonify({"success": True, "order": _order_detail(order)}), 201


@api.route("/orders/<int:order_id>", methods=["GET"])
@login_required
def view_order(order_id):
    order = _owned(Order, order_id, "Order")
    return jsonify({"success": True, "order": _order_detail(order)})


@api.route("/orders/<int:order_id>/status", methods=["POST"])
@login_required
def set_order_status(order_id):
    _owned(Order, order_id, "Order")
    target = coerce_enum(OrderStatus, _payload().get("status"), "order status")

    if target == OrderStatus.CLOSED:
        order = reconciliation.close_order(order_id)
    else:
        order = order_service.set_order_status(order_id, target)
    return jsonify({"success": True, "order": order_to_dict(order)})


@api.route("/orders/<int:order_id>/cancel", methods=["POST"])
@manager_required
def cancel_order(order_id):
    _owned(Order, order_id, "Order")
    data = _payload()
    result = reconciliation.cancel_order(
        order_id,
        data.get("reason"),
        cascade_to_tasks=_flag(data.get("cascade_to_tasks")),
        actor=current_user,
    )
    return jsonify({"success": True, **cancellation_to_dict(result, _order_detail(result.order))})


@api.route("/orders/<int:order_id>/workers", methods=["POST"])
@login_required
def add_workers(order_id):
    _owned(Order, order_id, "Order")
    assigned = order_service.add_workers_to_order(order_id, _payload().get("workers") or [])
    return jsonify({"success": True, "workers": [order_worker_to_dict(ow) for ow in assigned]}), 201


@api.route("/order-workers/<int:order_worker_id>/status", methods=["POST"])
@login_required
def update_order_worker_status(order_worker_id):
    _owned_order_worker(order_worker_id)
    ow = order_service.update_order_worker_status(order_worker_id, _payload().get("status"))
    return jsonify({"success": True, "worker": order_worker_to_dict(ow)})


# ======================
# Sales orders
# ======================
@api.route("/sales-orders", methods=["POST"])
@login_required
def create_sales_order():
    data = _payload()
    so = order_service.create_sales_order(
        _org_id(),
        data.get("client_id"),
        data.get("items") or [],
        notes=data.get("notes"),
    )
    return jsonify({"success": True, "sales_order": _sales_order_detail(so)}), 201


@api.route("/sales-orders/<int:sales_order_id>", methods=["GET"])
@login_required
def view_sales_order(sales_order_id):
    so = _owned(SalesOrder, sales_order_id, "Sales order")
    return jsonify({"success": True, "sales_order": _sales_order_detail(so)})


@api.route("/sales-orders/<int:sales_order_id>/cancel", methods=["POST"])
@manager_required
def cancel_sales_order(sales_order_id):
    _owned(SalesOrder, sales_order_id, "Sales order")
    result = reconciliation.cancel_sales_order(sales_order_id, _payload().get("reason"), actor=current_user)
    return jsonify(
        {
            "success": True,
            "sales_order": _sales_order_detail(result.order),
            "payments_cancelled": result.payments_cancelled,
        }
    )


# ======================
# Payments
# ======================
def _record(reference_type: ReferenceType, reference_id: int):
    data = _payload()
    payment = payment_service.record_payment(
        reference_id,
        data.get("amount"),
        data.get("method") or data.get("payment_method"),
        reference=data.get("reference") or data.get("payment_reference"),
        reference_type=reference_type,
        actor=current_user,
    )
    return jsonify({"success": True, "payment": payment_to_dict(payment)}), 201


@api.route("/orders/<int:order_id>/payments", methods=["POST"])
@login_required
@limiter.limit(_payment_limit)
def record_order_payment(order_id):
    _owned(Order, order_id, "Order")
    return _record(ReferenceType.SERVICE_ORDER, order_id)


@api.route("/sales-orders/<int:sales_order_id>/payments", methods=["POST"])
@login_required
@limiter.limit(_payment_limit)
def record_sales_order_payment(sales_order_id):
    _owned(SalesOrder, sales_order_id, "Sales order")
    return _record(ReferenceType.SALES_ORDER, sales_order_id)


@api.route("/payments/<int:payment_id>/cancel", methods=["POST"])
@manager_required
def cancel_payment(payment_id):
    _owned(Payment, payment_id, "Payment")
    payment = reconciliation.cancel_payment(payment_id, _payload().get("reason"), actor=current_user)
    return jsonify({"success": True, "payment": payment_to_dict(payment)})


# ======================
# Statistics
# ======================
@api.route("/stats/payments/by-method", methods=["GET"])
@login_required
def payments_by_method():
    rows = statistics.aggregate_by_method(_org_id(), request.args.get("start"), request.args.get("end"))
    return jsonify({"success": True, **method_totals_to_dict(rows)})


@api.route("/stats/payments/by-date", methods=["GET"])
@login_required
def payments_by_date():
    summary = statistics.aggregate_by_date_range(_org_id(), request.args.get("start"), request.args.get("end"))
    return jsonify({"success": True, **date_range_to_dict(summary)})


@api.route("/stats/orders", methods=["GET"])
@login_required
def order_stats():
    summary = statistics.order_status_summary(_org_id())
    return jsonify({"success": True, **order_summary_to_dict(summary)})
