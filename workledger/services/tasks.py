# workledger/services/tasks.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

import sqlalchemy as sa
from flask import current_app

from workledger.errors import (
    InvalidTransitionError,
    MissingReasonError,
    NotFoundError,
    ValidationError,
)
from workledger.extensions import db
from workledger.models import (
    TERMINAL_ORDER_STATUSES,
    Order,
    OrderWorker,
    ProjectStatus,
    Task,
    TaskStatus,
    Worker,
    WorkerProject,
    can_transition_task,
    utcnow_naive,
)
from workledger.services.transactions import atomic
from workledger.utils.parsing import clean_str, coerce_enum, parse_date, require_date, require_id


@dataclass(frozen=True)
class WorkerEarnings:
    worker_id: int
    task_count: int
    total_minor: int
    completed_minor: int


def _today() -> date:
    return date.today()


def _get_task_or_404(task_id) -> Task:
    task = db.session.get(Task, task_id)
    if task is None:
        raise NotFoundError(f"Task {task_id} not found.")
    return task


# =========================================================
# Add task
# =========================================================
def create_task(
    worker_id,
    project_id,
    due_date,
    description: Optional[str] = None,
    delay_reason: Optional[str] = None,
    order_id=None,
) -> Task:
    """
    Adds a task for a worker. The amount always comes from the project's
    price so billed amounts cannot drift from the rate table.

    A due date before today needs a delay reason and starts the task as delayed.
    """
    worker_id = require_id(worker_id, "Worker")
    project_id = require_id(project_id, "Project")
    due = require_date(due_date, "Due date")
    reason = clean_str(delay_reason) or None

    is_past = due < _today()
    if is_past and not reason:
        raise ValidationError("Please provide a reason for adding a task for a past date.")

    with atomic("Add task"):
        worker = db.session.get(Worker, worker_id)
        if worker is None:
            raise ValidationError("Selected worker not found.")

        project = db.session.get(WorkerProject, project_id)
        if project is None or project.worker_id != worker.id:
            raise ValidationError("Selected project does not belong to this worker.")
        if project.status != ProjectStatus.ACTIVE:
            raise ValidationError(f"Project '{project.name}' is not active.")

        order = None
        order_worker = None
        if order_id not in (None, ""):
            order = db.session.get(Order, require_id(order_id, "Order"))
            if order is None or order.organization_id != worker.organization_id:
                raise ValidationError("Selected order not found.")
            if order.status in TERMINAL_ORDER_STATUSES:
                raise ValidationError(f"Cannot add tasks to a {order.status.value} order.")
            order_worker = OrderWorker.query.filter_by(order_id=order.id, worker_id=worker.id).first()
            if order_worker is None:
                raise ValidationError(f"{worker.name} is not assigned to order {order.order_number}.")

        now = utcnow_naive()
        task = Task(
            organization_id=worker.organization_id,
            worker=worker,
            project=project,
            order=order,
            order_worker=order_worker,
            description=clean_str(description) or None,
            due_date=due,
            status=TaskStatus.DELAYED if is_past else TaskStatus.PENDING,
            amount_minor=project.price_minor,
            delay_reason=reason if is_past else None,
            status_changed_at=now,
        )
        db.session.add(task)

    current_app.logger.info("Task %s added for worker %s (%s)", task.id, worker.id, task.status.value)
    return task


# =========================================================
# Status updates
# =========================================================
def update_task_status(task_id, new_status, delay_reason: Optional[str] = None) -> Task:
    target = coerce_enum(TaskStatus, new_status, "task status")
    reason = clean_str(delay_reason)

    with atomic("Update task status"):
        task = _get_task_or_404(task_id)
        current = task.status

        if current == TaskStatus.CANCELLED:
            raise InvalidTransitionError("Cancelled tasks cannot change status.")
        if not can_transition_task(current, target):
            raise InvalidTransitionError(
                f"Cannot move a task from {current.value} to {target.value}."
            )
        if target == TaskStatus.DELAYED and not reason:
            raise MissingReasonError("Please provide a reason for the delay.")

        now = utcnow_naive()
        task.status = target
        task.status_changed_at = now
        if target == TaskStatus.COMPLETED:
            task.completed_at = now
        elif target == TaskStatus.DELAYED:
            task.delay_reason = reason

    return task


def cancel_task(task_id) -> Task:
    """Cancelling an already cancelled task is a no-op."""
    task = _get_task_or_404(task_id)
    if task.status == TaskStatus.CANCELLED:
        return task
    return update_task_status(task.id, TaskStatus.CANCELLED)


def cancel_tasks_for_order(order_id: int, when: datetime) -> int:
    """
    Cascade helper for order cancellation. Runs inside the caller's
    transaction and does not commit.
    """
    tasks = (
        Task.query
        .filter(Task.order_id == order_id, Task.status != TaskStatus.CANCELLED)
        .with_for_update(of=Task)
        .all()
    )
    for task in tasks:
        task.status = TaskStatus.CANCELLED
        task.status_changed_at = when
    return len(tasks)


# =========================================================
# Earnings (aggregated in SQL)
# =========================================================
def worker_earnings(worker_id, start=None, end=None) -> WorkerEarnings:
    worker_id = require_id(worker_id, "Worker")
    if db.session.get(Worker, worker_id) is None:
        raise NotFoundError(f"Worker {worker_id} not found.")

    start_d = parse_date(start)
    end_d = parse_date(end)
    if start_d and end_d and start_d > end_d:
        raise ValidationError("Start date must be on or before end date.")

    completed_amount = sa.case((Task.status == TaskStatus.COMPLETED, Task.amount_minor), else_=0)
    qry = db.session.query(
        sa.func.count(Task.id),
        sa.func.coalesce(sa.func.sum(Task.amount_minor), 0),
        sa.func.coalesce(sa.func.sum(completed_amount), 0),
    ).filter(Task.worker_id == worker_id, Task.status != TaskStatus.CANCELLED)

    if start_d:
        qry = qry.filter(Task.due_date >= start_d)
    if end_d:
        qry = qry.filter(Task.due_date <= end_d)

    count, total, completed = qry.one()
    return WorkerEarnings(
        worker_id=worker_id,
        task_count=int(count or 0),
        total_minor=int(total or 0),
        completed_minor=int(completed or 0),
    )
