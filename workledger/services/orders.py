# workledger/services/orders.py
from __future__ import annotations

from typing import Iterable, Mapping, Optional

import sqlalchemy as sa
from flask import current_app
from sqlalchemy.exc import IntegrityError

from workledger.errors import (
    ConcurrencyConflictError,
    InvalidTransitionError,
    NotFoundError,
    PaymentRequiredError,
    ValidationError,
    WorkLedgerError,
)
from workledger.extensions import db
from workledger.models import (
    TERMINAL_ORDER_STATUSES,
    Client,
    ClientCustomField,
    Order,
    OrderCustomField,
    OrderService,
    OrderStatus,
    OrderWorker,
    OrderWorkerStatus,
    PaymentStatus,
    ProjectStatus,
    ReferenceType,
    SalesOrder,
    SalesOrderItem,
    SalesOrderStatus,
    Service,
    User,
    Worker,
    WorkerProject,
    can_transition_order,
    utcnow_naive,
)
from workledger.services.payments import apply_payment, derive_payment_status, parse_method, parse_reference
from workledger.services.transactions import atomic, lock_row
from workledger.utils.money import positive_minor, to_minor
from workledger.utils.parsing import clean_str, coerce_enum, parse_date, parse_int, require_id

ORDER_PREFIX = "ORD"
SALES_ORDER_PREFIX = "SO"


def next_order_number(model, prefix: str, organization_id: int) -> str:
    """
    Human-friendly sequential number, per organization.
    Two requests racing for the same number hit the unique constraint;
    callers retry once.
    """
    year = utcnow_naive().year
    count = (
        db.session.query(sa.func.count(model.id))
        .filter(model.organization_id == organization_id)
        .scalar()
        or 0
    ) + 1
    return f"{prefix}-{year}-{count:04d}"


def _lock_order_or_404(order_id) -> Order:
    order = lock_row(Order, order_id)
    if order is None:
        raise NotFoundError(f"Order {order_id} not found.")
    return order


def _get_client(organization_id: int, client_id) -> Client:
    client = db.session.get(Client, require_id(client_id, "Client"))
    if client is None or client.organization_id != organization_id:
        raise ValidationError("Selected client not found.")
    return client


def _quantity(value) -> int:
    if value is None or value == "":
        return 1
    # int() would truncate 2.7 to 2 and read True as 1.
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        qty = None
    else:
        qty = parse_int(value)
    if qty is None or qty < 1:
        raise ValidationError("Quantity must be a whole number of at least 1.")
    return qty


# =========================================================
# Create order
# =========================================================
def _service_lines(organization_id: int, services: Iterable[Mapping]) -> list[OrderService]:
    lines = []
    for row in services or ():
        service = db.session.get(Service, require_id(row.get("service_id"), "Service"))
        if service is None or service.organization_id != organization_id:
            raise ValidationError("Selected service not found.")
        qty = _quantity(row.get("quantity"))
        lines.append(OrderService(service=service, quantity=qty, cost_minor=service.cost_minor * qty))

    if not lines:
        raise ValidationError("Please add at least one service.")
    return lines


def _assign_workers(order: Order, workers: Iterable[Mapping], existing: Iterable[int] = ()) -> list[OrderWorker]:
    seen = set(existing)
    assigned = []
    for row in workers or ():
        worker_id = require_id(row.get("worker_id"), "Worker")
        project_id = require_id(row.get("project_id"), "Project")

        worker = db.session.get(Worker, worker_id)
        if worker is None or worker.organization_id != order.organization_id:
            raise ValidationError("Selected worker not found.")
        if worker.id in seen:
            raise ValidationError(f"{worker.name} is already assigned to this order.")

        project = db.session.get(WorkerProject, project_id)
        if project is None or project.worker_id != worker.id:
            raise ValidationError("Selected project does not belong to this worker.")
        if project.status != ProjectStatus.ACTIVE:
            raise ValidationError(f"Project '{project.name}' is not active.")

        start = parse_date(row.get("start_date"))
        end = parse_date(row.get("end_date"))
        if start and end and start > end:
            raise ValidationError("Start date must be on or before end date.")

        ow = OrderWorker(
            order=order,
            worker=worker,
            project=project,
            status=OrderWorkerStatus.ASSIGNED,
            task_description=clean_str(row.get("task_description")) or None,
            start_date=start,
            end_date=end,
        )
        db.session.add(ow)
        seen.add(worker.id)
        assigned.append(ow)
    return assigned


def _build_order(
    organization_id: int,
    client_id,
    services,
    workers,
    custom_field_ids,
    description,
    due_date,
    initial_payment,
    actor,
) -> Order:
    client = _get_client(organization_id, client_id)
    lines = _service_lines(organization_id, services)
    total = sum(line.cost_minor for line in lines)

    order = Order(
        organization_id=organization_id,
        order_number=next_order_number(Order, ORDER_PREFIX, organization_id),
        client=client,
        description=clean_str(description) or None,
        due_date=parse_date(due_date),
        status=OrderStatus.PENDING,
        total_amount_minor=total,
        outstanding_balance_minor=total,
        payment_status=derive_payment_status(total, total),
    )
    order.services.extend(lines)
    db.session.add(order)

    for field_id in custom_field_ids or ():
        field = db.session.get(ClientCustomField, require_id(field_id, "Custom field"))
        if field is None or field.client_id != client.id:
            raise ValidationError("Custom field does not belong to this client.")
        order.custom_fields.append(OrderCustomField(field=field))

    _assign_workers(order, workers)
    db.session.flush()

    if initial_payment:
        apply_payment(
            order,
            ReferenceType.SERVICE_ORDER,
            positive_minor(initial_payment.get("amount")),
            parse_method(initial_payment.get("method")),
            parse_reference(initial_payment.get("reference")),
            actor,
        )
    return order


def create_order(
    organization_id: int,
    client_id,
    services: Iterable[Mapping],
    workers: Iterable[Mapping] = (),
    custom_field_ids: Iterable = (),
    description: Optional[str] = None,
    due_date=None,
    initial_payment: Optional[Mapping] = None,
    actor: Optional[User] = None,
) -> Order:
    """
    Creates a service order from service lines and worker assignments.

    `services`: [{"service_id", "quantity"}]
    `workers`: [{"worker_id", "project_id", "task_description"?, "start_date"?, "end_date"?}]
    `initial_payment`: {"amount", "method", "reference"?} recorded in the same transaction.
    """
    services = list(services or ())
    workers = list(workers or ())
    custom_field_ids = list(custom_field_ids or ())

    # Retry once on order-number collision.
    for attempt in range(2):
        try:
            order = _build_order(
                organization_id,
                client_id,
                services,
                workers,
                custom_field_ids,
                description,
                due_date,
                initial_payment,
                actor,
            )
            db.session.commit()
            break
        except IntegrityError:
            db.session.rollback()
            if attempt == 0:
                continue
            current_app.logger.exception("Create order failed")
            raise ConcurrencyConflictError("Order creation failed due to a numbering conflict. Try again.")
        except WorkLedgerError:
            db.session.rollback()
            raise
        except Exception:
            db.session.rollback()
            current_app.logger.exception("Create order failed")
            raise

    current_app.logger.info(
        "Order %s created (total %s, balance %s)",
        order.order_number,
        order.total_amount_minor,
        order.outstanding_balance_minor,
    )
    return order


# =========================================================
# Order status
# =========================================================
def set_order_status(order_id, new_status) -> Order:
    target = coerce_enum(OrderStatus, new_status, "order status")

    with atomic("Update order status"):
        order = _lock_order_or_404(order_id)
        current = order.status

        if target == current:
            return order
        if target == OrderStatus.CLOSED and order.payment_status != PaymentStatus.PAID:
            raise PaymentRequiredError(
                f"Order {order.order_number} cannot be closed until it is fully paid."
            )
        if target == OrderStatus.CANCELLED:
            raise InvalidTransitionError("Orders are cancelled with a reason through the cancel action.")
        if not can_transition_order(current, target):
            raise InvalidTransitionError(
                f"Cannot move order {order.order_number} from {current.value} to {target.value}."
            )

        order.status = target

    current_app.logger.info("Order %s moved %s -> %s", order.order_number, current.value, target.value)
    return order


# =========================================================
# Order workers
# =========================================================
def add_workers_to_order(order_id, workers: Iterable[Mapping]) -> list[OrderWorker]:
    workers = list(workers or ())
    if not workers:
        raise ValidationError("Please select at least one worker.")

    with atomic("Add workers to order"):
        order = _lock_order_or_404(order_id)
        if order.status in TERMINAL_ORDER_STATUSES:
            raise InvalidTransitionError(f"Cannot add workers to a {order.status.value} order.")
        existing = [ow.worker_id for ow in order.workers]
        assigned = _assign_workers(order, workers, existing)

    return assigned


def update_order_worker_status(order_worker_id, new_status) -> OrderWorker:
    target = coerce_enum(OrderWorkerStatus, new_status, "order worker status")

    with atomic("Update order worker status"):
        ow = db.session.get(OrderWorker, order_worker_id)
        if ow is None:
            raise NotFoundError(f"Order worker {order_worker_id} not found.")
        if ow.status == target:
            return ow
        if ow.status == OrderWorkerStatus.CANCELLED:
            raise InvalidTransitionError("Cancelled assignments cannot change status.")
        if ow.order.status in TERMINAL_ORDER_STATUSES:
            raise InvalidTransitionError(f"Order {ow.order.order_number} is {ow.order.status.value}.")
        ow.status = target

    return ow


# =========================================================
# Sales orders
# =========================================================
def _sales_items(items: Iterable[Mapping]) -> list[dict]:
    parsed = []
    for item in items or ():
        name = clean_str(item.get("name"))
        if not name:
            raise ValidationError("Item name is required.")
        qty = _quantity(item.get("quantity"))
        unit_minor = to_minor(item.get("unit_price"))
        if unit_minor < 0:
            raise ValidationError("Unit price cannot be negative.")
        parsed.append(
            {"name": name, "quantity": qty, "unit_price_minor": unit_minor, "total_price_minor": unit_minor * qty}
        )
    if not parsed:
        raise ValidationError("Please add at least one item.")
    return parsed


def create_sales_order(organization_id: int, client_id, items: Iterable[Mapping], notes: Optional[str] = None) -> SalesOrder:
    """`items`: [{"name", "quantity", "unit_price"}]"""
    parsed = _sales_items(items)
    total = sum(row["total_price_minor"] for row in parsed)

    for attempt in range(2):
        try:
            so = SalesOrder(
                organization_id=organization_id,
                order_number=next_order_number(SalesOrder, SALES_ORDER_PREFIX, organization_id),
                client=_get_client(organization_id, client_id),
                status=SalesOrderStatus.CONFIRMED,
                notes=clean_str(notes) or None,
                total_amount_minor=total,
                outstanding_balance_minor=total,
                payment_status=derive_payment_status(total, total),
            )
            so.items.extend(SalesOrderItem(**row) for row in parsed)
            db.session.add(so)
            db.session.commit()
            break
        except IntegrityError:
            db.session.rollback()
            if attempt == 0:
                continue
            current_app.logger.exception("Create sales order failed")
            raise ConcurrencyConflictError("Sales order creation failed due to a numbering conflict. Try again.")
        except WorkLedgerError:
            db.session.rollback()
            raise
        except Exception:
            db.session.rollback()
            current_app.logger.exception("Create sales order failed")
            raise

    current_app.logger.info("Sales order %s created (total %s)", so.order_number, total)
    return so
