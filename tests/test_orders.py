# tests/test_orders.py
from __future__ import annotations

from datetime import date

import pytest

from workledger.errors import (
    InvalidTransitionError,
    NotFoundError,
    OverpaymentError,
    PaymentRequiredError,
    ValidationError,
)
from workledger.extensions import db
from workledger.models import (
    Order,
    OrderStatus,
    OrderWorkerStatus,
    PaymentStatus,
    SalesOrder,
    SalesOrderStatus,
    WorkerProject,
)
from workledger.services import orders as order_service
from workledger.services.orders import (
    add_workers_to_order,
    create_order,
    create_sales_order,
    set_order_status,
    update_order_worker_status,
)
from workledger.services.reconciliation import cancel_order


def test_create_order_totals_and_number(make_order):
    order = make_order(quantity=2, description="Respray")

    year = date.today().year
    assert order.order_number == f"ORD-{year}-0001"
    assert order.status == OrderStatus.PENDING
    assert order.total_amount_minor == 20000
    assert order.outstanding_balance_minor == 20000
    assert order.payment_status == PaymentStatus.UNPAID
    assert [line.cost_minor for line in order.services] == [20000]

    assert make_order().order_number == f"ORD-{year}-0002"


def test_create_order_assigns_workers_and_custom_fields(order, worker, client_row, make_order):
    assert len(order.workers) == 1
    assert order.workers[0].worker_id == worker.id
    assert order.workers[0].status == OrderWorkerStatus.ASSIGNED

    field_id = client_row.custom_fields[0].id
    with_fields = make_order(custom_field_ids=[field_id])
    assert [cf.field_id for cf in with_fields.custom_fields] == [field_id]


def test_create_order_with_initial_payment(make_order, owner):
    order = make_order(initial_payment={"amount": "40", "method": "cash"}, actor=owner)

    assert order.outstanding_balance_minor == 6000
    assert order.payment_status == PaymentStatus.PARTIALLY_PAID


def test_create_order_requires_services(org, client_row):
    with pytest.raises(ValidationError):
        create_order(org.id, client_row.id, [])
    assert Order.query.count() == 0


@pytest.mark.parametrize("quantity", [2.7, "2.7", True, 0, -1, "two"])
def test_create_order_rejects_non_whole_quantity(make_order, quantity):
    with pytest.raises(ValidationError):
        make_order(quantity=quantity)
    assert Order.query.count() == 0


def test_create_order_accepts_whole_float_quantity(make_order):
    order = make_order(quantity=3.0)
    assert order.services[0].quantity == 3
    assert order.total_amount_minor == 30000


def test_create_order_rejects_duplicate_worker(make_order, worker, project):
    row = {"worker_id": worker.id, "project_id": project.id}
    with pytest.raises(ValidationError):
        make_order(workers=[row, row])
    assert Order.query.count() == 0


def test_create_order_rejects_foreign_client(other_org, client_row, service):
    with pytest.raises(ValidationError):
        create_order(other_org.id, client_row.id, [{"service_id": service.id}])


def test_overpaying_initial_payment_rolls_back_order(make_order):
    with pytest.raises(OverpaymentError):
        make_order(initial_payment={"amount": "150", "method": "cash"})
    assert Order.query.count() == 0


def test_order_number_collision_retried_once(make_order, monkeypatch):
    first = make_order()
    taken = first.order_number
    real = order_service.next_order_number
    calls = []

    def colliding(model, prefix, organization_id):
        calls.append(prefix)
        if len(calls) == 1:
            return taken
        return real(model, prefix, organization_id)

    monkeypatch.setattr(order_service, "next_order_number", colliding)
    second = make_order()

    assert len(calls) == 2
    assert second.order_number != taken


def test_close_requires_paid(order):
    with pytest.raises(PaymentRequiredError):
        set_order_status(order.id, "closed")

    order = db.session.get(Order, order.id)
    assert order.status == OrderStatus.PENDING


def test_open_statuses_interchangeable(order):
    for target in ("in_progress", "completed", "pending", "completed"):
        order = set_order_status(order.id, target)
        assert order.status.value == target


def test_same_status_is_noop(order):
    before = order.updated_at
    order = set_order_status(order.id, "pending")
    assert order.status == OrderStatus.PENDING
    assert order.updated_at == before


def test_cancel_through_status_rejected(order):
    with pytest.raises(InvalidTransitionError):
        set_order_status(order.id, "cancelled")


def test_terminal_statuses_cannot_be_left(order):
    cancel_order(order.id, "Client withdrew")
    with pytest.raises(InvalidTransitionError):
        set_order_status(order.id, "pending")


def test_missing_order(app):
    with pytest.raises(NotFoundError):
        set_order_status(12345, "in_progress")


def test_add_workers(order, worker, second_worker):
    project = WorkerProject.query.filter_by(worker_id=second_worker.id).one()
    added = add_workers_to_order(order.id, [{"worker_id": second_worker.id, "project_id": project.id}])

    assert [ow.worker_id for ow in added] == [second_worker.id]
    assert len(db.session.get(Order, order.id).workers) == 2


def test_add_worker_already_on_order(order, worker, project):
    with pytest.raises(ValidationError):
        add_workers_to_order(order.id, [{"worker_id": worker.id, "project_id": project.id}])


def test_add_worker_with_foreign_project(order, second_worker, project):
    with pytest.raises(ValidationError):
        add_workers_to_order(order.id, [{"worker_id": second_worker.id, "project_id": project.id}])


def test_add_workers_to_cancelled_order(order, second_worker):
    cancel_order(order.id, "Duplicate order")
    project = WorkerProject.query.filter_by(worker_id=second_worker.id).one()
    with pytest.raises(InvalidTransitionError):
        add_workers_to_order(order.id, [{"worker_id": second_worker.id, "project_id": project.id}])


def test_update_order_worker_status(order):
    ow_id = order.workers[0].id
    ow = update_order_worker_status(ow_id, "in_progress")
    assert ow.status == OrderWorkerStatus.IN_PROGRESS

    update_order_worker_status(ow_id, "cancelled")
    with pytest.raises(InvalidTransitionError):
        update_order_worker_status(ow_id, "assigned")


def test_create_sales_order(org, client_row):
    so = create_sales_order(
        org.id,
        client_row.id,
        [
            {"name": "Brake pads", "quantity": 2, "unit_price": "35.50"},
            {"name": "Oil filter", "unit_price": 12},
        ],
        notes="Walk-in",
    )

    assert so.order_number.startswith("SO-")
    assert so.status == SalesOrderStatus.CONFIRMED
    assert so.total_amount_minor == 8300
    assert so.outstanding_balance_minor == 8300
    assert [i.total_price_minor for i in so.items] == [7100, 1200]


def test_create_sales_order_validates_items(org, client_row):
    with pytest.raises(ValidationError):
        create_sales_order(org.id, client_row.id, [])
    with pytest.raises(ValidationError):
        create_sales_order(org.id, client_row.id, [{"name": "", "unit_price": 1}])
    with pytest.raises(ValidationError):
        create_sales_order(org.id, client_row.id, [{"name": "Bolt", "quantity": 0, "unit_price": 1}])


@pytest.mark.parametrize("quantity", [1.5, "1.5", True])
def test_create_sales_order_rejects_non_whole_quantity(org, client_row, quantity):
    with pytest.raises(ValidationError):
        create_sales_order(org.id, client_row.id, [{"name": "Bolt", "quantity": quantity, "unit_price": 4}])
    assert SalesOrder.query.count() == 0
