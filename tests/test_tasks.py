# tests/test_tasks.py
from __future__ import annotations

from datetime import date, timedelta

import pytest

from workledger.errors import InvalidTransitionError, MissingReasonError, NotFoundError, ValidationError
from workledger.extensions import db
from workledger.models import ProjectStatus, Task, TaskStatus, WorkerProject
from workledger.services.tasks import (
    cancel_task,
    create_task,
    update_task_status,
    worker_earnings,
)

TODAY = date.today()
YESTERDAY = TODAY - timedelta(days=1)
TOMORROW = TODAY + timedelta(days=1)


def test_create_task_takes_amount_from_project(worker, project):
    task = create_task(worker.id, project.id, TOMORROW, description="Fix bumper")

    assert task.status == TaskStatus.PENDING
    assert task.amount_minor == 2500
    assert str(task.amount) == "25.00"
    assert task.delay_reason is None
    assert task.status_changed_at is not None


def test_past_due_date_requires_reason(worker, project):
    with pytest.raises(ValidationError):
        create_task(worker.id, project.id, YESTERDAY)
    assert Task.query.count() == 0


def test_past_due_date_with_reason_starts_delayed(worker, project):
    task = create_task(worker.id, project.id, YESTERDAY.isoformat(), delay_reason="Parts arrived late")

    assert task.status == TaskStatus.DELAYED
    assert task.delay_reason == "Parts arrived late"


def test_reason_ignored_for_future_task(worker, project):
    task = create_task(worker.id, project.id, TOMORROW, delay_reason="not needed")
    assert task.status == TaskStatus.PENDING
    assert task.delay_reason is None


def test_project_must_belong_to_worker(worker, second_worker):
    foreign = WorkerProject.query.filter_by(worker_id=second_worker.id).one()
    with pytest.raises(ValidationError):
        create_task(worker.id, foreign.id, TOMORROW)


def test_inactive_project_rejected(worker, project):
    project.status = ProjectStatus.INACTIVE
    db.session.commit()
    with pytest.raises(ValidationError):
        create_task(worker.id, project.id, TOMORROW)


def test_bad_due_date_rejected(worker, project):
    with pytest.raises(ValidationError):
        create_task(worker.id, project.id, "next tuesday")


def test_task_linked_to_order_worker(order, worker, project):
    task = create_task(worker.id, project.id, TOMORROW, order_id=order.id)

    assert task.order_id == order.id
    assert task.order_worker is not None
    assert task.order_worker.worker_id == worker.id


def test_task_for_unassigned_worker_rejected(order, second_worker):
    project = WorkerProject.query.filter_by(worker_id=second_worker.id).one()
    with pytest.raises(ValidationError):
        create_task(second_worker.id, project.id, TOMORROW, order_id=order.id)


def test_status_flow_stamps_completion(worker, project):
    task = create_task(worker.id, project.id, TOMORROW)

    update_task_status(task.id, "in_progress")
    task = update_task_status(task.id, TaskStatus.COMPLETED)

    assert task.status == TaskStatus.COMPLETED
    assert task.completed_at is not None
    assert task.amount_minor == 2500


def test_delay_requires_reason_and_leaves_task_untouched(worker, project):
    task = create_task(worker.id, project.id, TOMORROW)
    stamped = task.status_changed_at

    with pytest.raises(MissingReasonError):
        update_task_status(task.id, "delayed", "   ")

    task = db.session.get(Task, task.id)
    assert task.status == TaskStatus.PENDING
    assert task.status_changed_at == stamped

    task = update_task_status(task.id, "delayed", "Client unavailable")
    assert task.delay_reason == "Client unavailable"


def test_delayed_task_reason_can_be_restated(worker, project):
    task = update_task_status(create_task(worker.id, project.id, TOMORROW).id, "delayed", "Client unavailable")
    first_stamp = task.status_changed_at

    with pytest.raises(MissingReasonError):
        update_task_status(task.id, "delayed")

    task = update_task_status(task.id, "delayed", "Parts on back order")
    assert task.status == TaskStatus.DELAYED
    assert task.delay_reason == "Parts on back order"
    assert task.status_changed_at >= first_stamp


def test_transition_outside_table_rejected(worker, project):
    task = create_task(worker.id, project.id, TOMORROW)
    update_task_status(task.id, "completed")

    with pytest.raises(InvalidTransitionError):
        update_task_status(task.id, "in_progress")


def test_cancelled_is_terminal(worker, project):
    task = create_task(worker.id, project.id, TOMORROW)
    cancel_task(task.id)

    for target in ("pending", "in_progress", "completed", "delayed"):
        with pytest.raises(InvalidTransitionError):
            update_task_status(task.id, target, "reason")


def test_unknown_status_rejected(worker, project):
    task = create_task(worker.id, project.id, TOMORROW)
    with pytest.raises(ValidationError):
        update_task_status(task.id, "archived")


def test_cancel_task_is_idempotent(worker, project):
    task = create_task(worker.id, project.id, TOMORROW)
    first = cancel_task(task.id)
    stamped = first.status_changed_at

    again = cancel_task(task.id)
    assert again.status == TaskStatus.CANCELLED
    assert again.status_changed_at == stamped


def test_missing_task(app):
    with pytest.raises(NotFoundError):
        update_task_status(999, "completed")


def test_worker_earnings(worker, project):
    done = create_task(worker.id, project.id, TOMORROW)
    update_task_status(done.id, "completed")
    create_task(worker.id, project.id, TOMORROW)
    dropped = create_task(worker.id, project.id, TOMORROW)
    cancel_task(dropped.id)

    earnings = worker_earnings(worker.id)
    assert earnings.task_count == 2
    assert earnings.total_minor == 5000
    assert earnings.completed_minor == 2500

    assert worker_earnings(worker.id, start=TOMORROW + timedelta(days=1)).task_count == 0

    with pytest.raises(ValidationError):
        worker_earnings(worker.id, start=TOMORROW, end=TODAY)
