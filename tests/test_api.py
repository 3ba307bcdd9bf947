# tests/test_api.py
from __future__ import annotations

from datetime import date, timedelta

import pytest

from workledger.extensions import db
from workledger.models import Order, User, utcnow_naive
from workledger.utils.passwords import hash_password

TOMORROW = (date.today() + timedelta(days=1)).isoformat()


@pytest.fixture
def owner_http(app, owner):
    return app.test_client(user=owner)


@pytest.fixture
def member_http(app, member):
    return app.test_client(user=member)


def _create_order(http, client_row, service, **extra):
    body = {"client_id": client_row.id, "services": [{"service_id": service.id, "quantity": 1}], **extra}
    resp = http.post("/api/orders", json=body)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["order"]


def test_anonymous_is_rejected(app):
    resp = app.test_client().post("/api/orders", json={})
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "unauthorized"


def test_order_payment_close_flow(owner_http, client_row, service):
    order = _create_order(owner_http, client_row, service, description="Brake job")
    assert order["total_amount"] == "100.00"
    assert order["payment_status"] == "unpaid"

    resp = owner_http.post(f"/api/orders/{order['id']}/payments", json={"amount": "40", "method": "cash"})
    assert resp.status_code == 201
    assert resp.get_json()["payment"]["amount"] == "40.00"

    resp = owner_http.post(f"/api/orders/{order['id']}/status", json={"status": "closed"})
    assert resp.status_code == 409
    assert resp.get_json() == {
        "success": False,
        "error": "payment_required",
        "message": f"Order {order['order_number']} cannot be closed until it is fully paid.",
    }

    owner_http.post(f"/api/orders/{order['id']}/payments", json={"amount": 60, "payment_method": "cash"})

    detail = owner_http.get(f"/api/orders/{order['id']}").get_json()["order"]
    assert detail["outstanding_balance"] == "0.00"
    assert detail["amount_paid"] == "100.00"
    assert len(detail["payments"]) == 2

    resp = owner_http.post(f"/api/orders/{order['id']}/status", json={"status": "closed"})
    assert resp.status_code == 200
    assert resp.get_json()["order"]["status"] == "closed"


def test_overpayment_json(owner_http, client_row, service):
    order = _create_order(owner_http, client_row, service)
    resp = owner_http.post(f"/api/orders/{order['id']}/payments", json={"amount": 150, "method": "cash"})

    assert resp.status_code == 400
    assert resp.get_json()["error"] == "overpayment"
    assert "₵100.00" in resp.get_json()["message"]


def test_invalid_amount_json(owner_http, client_row, service):
    order = _create_order(owner_http, client_row, service)
    resp = owner_http.post(f"/api/orders/{order['id']}/payments", json={"amount": "abc", "method": "cash"})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "invalid_amount"


def test_member_cannot_cancel(member_http, client_row, service):
    order = _create_order(member_http, client_row, service)
    resp = member_http.post(f"/api/orders/{order['id']}/cancel", json={"reason": "No"})
    assert resp.status_code == 403
    assert resp.get_json()["error"] == "forbidden"


def test_owner_cancels_with_cascade(owner_http, client_row, service, worker, project):
    order = _create_order(
        owner_http,
        client_row,
        service,
        workers=[{"worker_id": worker.id, "project_id": project.id}],
        initial_payment={"amount": "25", "method": "cash"},
    )
    owner_http.post(
        "/api/tasks",
        json={"worker_id": worker.id, "project_id": project.id, "due_date": TOMORROW, "order_id": order["id"]},
    )

    resp = owner_http.post(
        f"/api/orders/{order['id']}/cancel",
        json={"reason": "Client withdrew", "cascade_to_tasks": "true"},
    )
    body = resp.get_json()
    assert resp.status_code == 200
    assert body["tasks_cancelled"] == 1
    assert body["payments_cancelled"] == 1
    assert body["order"]["status"] == "cancelled"
    assert body["order"]["outstanding_balance"] == "75.00"


def test_cancel_without_reason(owner_http, client_row, service):
    order = _create_order(owner_http, client_row, service)
    resp = owner_http.post(f"/api/orders/{order['id']}/cancel", json={})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "missing_reason"


def test_cancel_payment_endpoint(owner_http, client_row, service):
    order = _create_order(owner_http, client_row, service)
    payment = owner_http.post(
        f"/api/orders/{order['id']}/payments", json={"amount": 30, "method": "check"}
    ).get_json()["payment"]

    resp = owner_http.post(f"/api/payments/{payment['id']}/cancel", json={"reason": "Bounced"})
    assert resp.status_code == 200
    assert resp.get_json()["payment"]["status"] == "cancelled"
    assert db.session.get(Order, order["id"]).outstanding_balance_minor == 10000


def test_other_organization_sees_404(app, other_org, owner_http, client_row, service):
    order = _create_order(owner_http, client_row, service)
    outsider = User(
        organization_id=other_org.id,
        name="Outsider",
        email="outsider@elsewhere.test",
        role="owner",
        password_hash=hash_password("another-pass-99"),
    )
    db.session.add(outsider)
    db.session.commit()

    http = app.test_client(user=outsider)
    assert http.get(f"/api/orders/{order['id']}").status_code == 404
    assert http.post(f"/api/orders/{order['id']}/payments", json={"amount": 1, "method": "cash"}).status_code == 404


def test_task_endpoints(owner_http, worker, project):
    resp = owner_http.post("/api/tasks", json={"worker_id": worker.id, "project_id": project.id, "due_date": TOMORROW})
    assert resp.status_code == 201
    task = resp.get_json()["task"]
    assert task["amount"] == "25.00"

    resp = owner_http.post(f"/api/tasks/{task['id']}/status", json={"status": "delayed"})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "missing_reason"

    resp = owner_http.post(f"/api/tasks/{task['id']}/status", json={"status": "completed"})
    assert resp.get_json()["task"]["status"] == "completed"

    earnings = owner_http.get(f"/api/workers/{worker.id}/earnings").get_json()["earnings"]
    assert earnings == {"worker_id": worker.id, "task_count": 1, "total": "25.00", "completed": "25.00"}

    resp = owner_http.post(f"/api/tasks/{task['id']}/cancel")
    assert resp.get_json()["task"]["status"] == "cancelled"

    resp = owner_http.post(f"/api/tasks/{task['id']}/status", json={"status": "pending"})
    assert resp.status_code == 409
    assert resp.get_json()["error"] == "invalid_transition"


def test_order_worker_endpoints(owner_http, client_row, service, worker, project, second_worker):
    order = _create_order(owner_http, client_row, service)
    other_project_id = second_worker.projects[0].id

    resp = owner_http.post(
        f"/api/orders/{order['id']}/workers",
        json={"workers": [
            {"worker_id": worker.id, "project_id": project.id},
            {"worker_id": second_worker.id, "project_id": other_project_id},
        ]},
    )
    assert resp.status_code == 201
    assigned = resp.get_json()["workers"]
    assert [w["rate"] for w in assigned] == ["25.00", "40.00"]

    resp = owner_http.post(f"/api/order-workers/{assigned[0]['id']}/status", json={"status": "completed"})
    assert resp.get_json()["worker"]["status"] == "completed"


def test_sales_order_endpoints(owner_http, member_http, client_row):
    resp = owner_http.post(
        "/api/sales-orders",
        json={"client_id": client_row.id, "items": [{"name": "Spark plugs", "quantity": 4, "unit_price": "7.50"}]},
    )
    assert resp.status_code == 201
    so = resp.get_json()["sales_order"]
    assert so["total_amount"] == "30.00"

    resp = owner_http.post(f"/api/sales-orders/{so['id']}/payments", json={"amount": 10, "method": "cash"})
    assert resp.status_code == 201

    assert member_http.post(f"/api/sales-orders/{so['id']}/cancel", json={"reason": "x"}).status_code == 403

    resp = owner_http.post(f"/api/sales-orders/{so['id']}/cancel", json={"reason": "Customer left"})
    assert resp.status_code == 200
    assert resp.get_json()["sales_order"]["status"] == "cancelled"
    assert resp.get_json()["payments_cancelled"] == 1


def test_stats_endpoints(owner_http, client_row, service):
    order = _create_order(owner_http, client_row, service)
    owner_http.post(f"/api/orders/{order['id']}/payments", json={"amount": 40, "method": "cash"})
    owner_http.post(f"/api/orders/{order['id']}/payments", json={"amount": 10, "method": "card_payment"})

    by_method = owner_http.get("/api/stats/payments/by-method").get_json()
    assert by_method["total"] == "50.00"
    assert {m["method"]: m["total"] for m in by_method["methods"]} == {"cash": "40.00", "card_payment": "10.00"}

    today = utcnow_naive().date().isoformat()
    by_date = owner_http.get(f"/api/stats/payments/by-date?start={today}&end={today}").get_json()
    assert by_date["count"] == 2
    assert by_date["days"] == [{"date": today, "count": 2, "total": "50.00"}]

    resp = owner_http.get("/api/stats/payments/by-date")
    assert resp.status_code == 400

    orders = owner_http.get("/api/stats/orders").get_json()
    assert orders["counts"]["pending"] == 1
    assert orders["outstanding"] == "50.00"
    assert orders["collected"] == "50.00"
