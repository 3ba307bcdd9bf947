# workledger/serializers.py
from __future__ import annotations

"""
Plain-dict views of models and service results for the JSON API.
Amounts are rendered as strings ("40.00") so no float ever carries money.
"""

from datetime import date, datetime

from workledger.utils.money import from_minor


def _money(minor) -> str:
    return str(from_minor(minor))


def _iso(value):
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return None


def _enum(value):
    return getattr(value, "value", value)


def user_to_dict(user) -> dict:
    return {
        "id": user.id,
        "organization_id": user.organization_id,
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "last_login_at": _iso(user.last_login_at),
    }


def task_to_dict(task) -> dict:
    return {
        "id": task.id,
        "worker_id": task.worker_id,
        "project_id": task.project_id,
        "order_id": task.order_id,
        "order_worker_id": task.order_worker_id,
        "description": task.description,
        "due_date": _iso(task.due_date),
        "status": _enum(task.status),
        "amount": _money(task.amount_minor),
        "delay_reason": task.delay_reason,
        "completed_at": _iso(task.completed_at),
        "status_changed_at": _iso(task.status_changed_at),
    }


def order_worker_to_dict(ow) -> dict:
    return {
        "id": ow.id,
        "order_id": ow.order_id,
        "worker_id": ow.worker_id,
        "worker_name": ow.worker.name if ow.worker else None,
        "project_id": ow.project_id,
        "rate": _money(ow.project.price_minor) if ow.project else None,
        "status": _enum(ow.status),
        "task_description": ow.task_description,
        "start_date": _iso(ow.start_date),
        "end_date": _iso(ow.end_date),
    }


def payment_to_dict(payment) -> dict:
    return {
        "id": payment.id,
        "reference_type": _enum(payment.reference_type),
        "reference_id": payment.reference_id,
        "amount": _money(payment.amount_minor),
        "payment_method": _enum(payment.payment_method),
        "payment_reference": payment.payment_reference,
        "status": _enum(payment.status),
        "recorded_by": payment.recorded_by_user_id,
        "created_at": _iso(payment.created_at),
        "cancelled_at": _iso(payment.cancelled_at),
        "cancelled_by": payment.cancelled_by_user_id,
        "cancellation_reason": payment.cancellation_reason,
    }


def _balance(ref) -> dict:
    return {
        "total_amount": _money(ref.total_amount_minor),
        "outstanding_balance": _money(ref.outstanding_balance_minor),
        "amount_paid": _money(ref.total_amount_minor - ref.outstanding_balance_minor),
        "payment_status": _enum(ref.payment_status),
    }


def order_to_dict(order, payments=None, detail: bool = False) -> dict:
    data = {
        "id": order.id,
        "order_number": order.order_number,
        "client_id": order.client_id,
        "description": order.description,
        "due_date": _iso(order.due_date),
        "status": _enum(order.status),
        **_balance(order),
        "cancellation_reason": order.cancellation_reason,
        "cancelled_at": _iso(order.cancelled_at),
        "created_at": _iso(order.created_at),
    }
    if detail:
        data["services"] = [
            {
                "service_id": line.service_id,
                "name": line.service.name if line.service else None,
                "quantity": line.quantity,
                "cost": _money(line.cost_minor),
            }
            for line in order.services
        ]
        data["workers"] = [order_worker_to_dict(ow) for ow in order.workers]
        data["custom_fields"] = [
            {"id": cf.field_id, "title": cf.field.title, "value": cf.field.value}
            for cf in order.custom_fields
        ]
        data["tasks"] = [task_to_dict(t) for t in order.tasks]
    if payments is not None:
        data["payments"] = [payment_to_dict(p) for p in payments]
    return data


def sales_order_to_dict(so, payments=None) -> dict:
    data = {
        "id": so.id,
        "order_number": so.order_number,
        "client_id": so.client_id,
        "status": _enum(so.status),
        **_balance(so),
        "notes": so.notes,
        "items": [
            {
                "name": item.name,
                "quantity": item.quantity,
                "unit_price": _money(item.unit_price_minor),
                "total_price": _money(item.total_price_minor),
            }
            for item in so.items
        ],
        "cancellation_reason": so.cancellation_reason,
        "created_at": _iso(so.created_at),
    }
    if payments is not None:
        data["payments"] = [payment_to_dict(p) for p in payments]
    return data


def cancellation_to_dict(result, order_dict) -> dict:
    return {
        "order": order_dict,
        "workers_cancelled": result.workers_cancelled,
        "tasks_cancelled": result.tasks_cancelled,
        "payments_cancelled": result.payments_cancelled,
    }


def earnings_to_dict(earnings) -> dict:
    return {
        "worker_id": earnings.worker_id,
        "task_count": earnings.task_count,
        "total": _money(earnings.total_minor),
        "completed": _money(earnings.completed_minor),
    }


def method_totals_to_dict(rows) -> dict:
    return {
        "methods": [
            {"method": _enum(r.method), "count": r.count, "total": _money(r.total_minor)}
            for r in rows
        ],
        "count": sum(r.count for r in rows),
        "total": _money(sum(r.total_minor for r in rows)),
    }


def date_range_to_dict(summary) -> dict:
    return {
        "start": _iso(summary.start),
        "end": _iso(summary.end),
        "count": summary.count,
        "total": _money(summary.total_minor),
        "days": [
            {"date": _iso(d.day), "count": d.count, "total": _money(d.total_minor)}
            for d in summary.days
        ],
    }


def order_summary_to_dict(summary) -> dict:
    return {
        "counts": dict(summary.counts),
        "billed": _money(summary.billed_minor),
        "outstanding": _money(summary.outstanding_minor),
        "collected": _money(summary.collected_minor),
    }
