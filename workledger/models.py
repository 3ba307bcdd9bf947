# workledger/models.py
from __future__ import annotations

import enum
from datetime import datetime, timezone
from decimal import Decimal

from flask_login import UserMixin
from sqlalchemy import Enum as SAEnum

from .extensions import db
from .utils.money import from_minor


# Naive UTC everywhere: DB columns are "timestamp without time zone".
def utcnow_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _status_enum(enum_cls: type[enum.Enum], name: str) -> SAEnum:
    # Stored as plain strings (values, not member names) so the DB stays readable.
    return SAEnum(
        enum_cls,
        name=name,
        values_callable=lambda enum_cls: [e.value for e in enum_cls],
        native_enum=False,
        validate_strings=True,
    )


# =========================================================
# Enumerations
# =========================================================
class TaskStatus(enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DELAYED = "delayed"
    CANCELLED = "cancelled"


class OrderStatus(enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    CLOSED = "closed"


class SalesOrderStatus(enum.Enum):
    DRAFT = "draft"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(enum.Enum):
    """Financial state of an order (service or sales)."""

    UNPAID = "unpaid"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    CANCELLED = "cancelled"


class TransactionStatus(enum.Enum):
    """State of a single payment row."""

    ACTIVE = "active"
    CANCELLED = "cancelled"


class PaymentMethod(enum.Enum):
    CASH = "cash"
    MOBILE_MONEY = "mobile_money"
    BANK_TRANSFER = "bank_transfer"
    CHECK = "check"
    CARD_PAYMENT = "card_payment"


class ReferenceType(enum.Enum):
    SERVICE_ORDER = "service_order"
    SALES_ORDER = "sales_order"


class OrderWorkerStatus(enum.Enum):
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ProjectStatus(enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


# =========================================================
# State machines
# =========================================================
TASK_TRANSITIONS = {
    TaskStatus.PENDING: {
        TaskStatus.IN_PROGRESS,
        TaskStatus.DELAYED,
        TaskStatus.COMPLETED,
        TaskStatus.CANCELLED,
    },
    TaskStatus.IN_PROGRESS: {TaskStatus.COMPLETED, TaskStatus.DELAYED, TaskStatus.CANCELLED},
    # delayed -> delayed re-states the reason.
    TaskStatus.DELAYED: {
        TaskStatus.DELAYED,
        TaskStatus.IN_PROGRESS,
        TaskStatus.COMPLETED,
        TaskStatus.CANCELLED,
    },
    TaskStatus.COMPLETED: {TaskStatus.CANCELLED},
    TaskStatus.CANCELLED: set(),
}

# CANCELLED is only entered through the cancellation cascade (needs a reason),
# CLOSED additionally requires the order to be paid.
ORDER_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.IN_PROGRESS, OrderStatus.COMPLETED, OrderStatus.CLOSED},
    OrderStatus.IN_PROGRESS: {OrderStatus.PENDING, OrderStatus.COMPLETED, OrderStatus.CLOSED},
    OrderStatus.COMPLETED: {OrderStatus.PENDING, OrderStatus.IN_PROGRESS, OrderStatus.CLOSED},
    OrderStatus.CANCELLED: set(),
    OrderStatus.CLOSED: set(),
}

TERMINAL_ORDER_STATUSES = {OrderStatus.CANCELLED, OrderStatus.CLOSED}


def can_transition_task(current: TaskStatus, target: TaskStatus) -> bool:
    return target in TASK_TRANSITIONS.get(current, set())


def can_transition_order(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ORDER_TRANSITIONS.get(current, set())


# =========================================================
# Organization + members
# =========================================================
class Organization(db.Model):
    __tablename__ = "organization"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(160), nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="USD")
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)

    def __repr__(self) -> str:
        return f"<Organization {self.id} {self.name}>"


class User(UserMixin, db.Model):
    __tablename__ = "user"

    id = db.Column(db.Integer, primary_key=True)

    organization_id = db.Column(db.Integer, db.ForeignKey("organization.id"), nullable=False, index=True)
    organization = db.relationship("Organization", foreign_keys=[organization_id], lazy="joined")

    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(120), nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)

    # owner | admin | member
    role = db.Column(db.String(30), nullable=False, default="member")

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    last_login_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)

    __table_args__ = (
        db.Index("ix_user_email", "email", unique=True),
    )

    def __repr__(self) -> str:
        return f"<User {self.id} {self.email}>"


# =========================================================
# Clients
# =========================================================
class Client(db.Model):
    __tablename__ = "client"

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organization.id"), nullable=False, index=True)

    name = db.Column(db.String(160), nullable=False)
    email = db.Column(db.String(120), nullable=True)
    phone = db.Column(db.String(30), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)

    custom_fields = db.relationship(
        "ClientCustomField",
        back_populates="client",
        cascade="all, delete-orphan",
        lazy="select",
    )

    def __repr__(self) -> str:
        return f"<Client {self.id} {self.name}>"


class ClientCustomField(db.Model):
    __tablename__ = "client_custom_field"

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("client.id", ondelete="CASCADE"), nullable=False, index=True)
    client = db.relationship("Client", back_populates="custom_fields")

    title = db.Column(db.String(120), nullable=False)
    value = db.Column(db.Text, nullable=True)


# =========================================================
# Workers + rate table
# =========================================================
class Worker(db.Model):
    __tablename__ = "worker"

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organization.id"), nullable=False, index=True)

    name = db.Column(db.String(120), nullable=False)
    whatsapp = db.Column(db.String(30), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)

    projects = db.relationship("WorkerProject", back_populates="worker", lazy="select")

    def __repr__(self) -> str:
        return f"<Worker {self.id} {self.name}>"


class WorkerProject(db.Model):
    __tablename__ = "worker_project"

    id = db.Column(db.Integer, primary_key=True)
    worker_id = db.Column(db.Integer, db.ForeignKey("worker.id"), nullable=False, index=True)
    worker = db.relationship("Worker", back_populates="projects")

    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)
    price_minor = db.Column(db.BigInteger, nullable=False, default=0)
    status = db.Column(_status_enum(ProjectStatus, "project_status"), nullable=False, default=ProjectStatus.ACTIVE)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)

    @property
    def price(self) -> Decimal:
        return from_minor(self.price_minor)

    def __repr__(self) -> str:
        return f"<WorkerProject {self.id} {self.name} {self.price_minor}>"


# =========================================================
# Service catalogue
# =========================================================
class Service(db.Model):
    __tablename__ = "service"

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organization.id"), nullable=False, index=True)

    name = db.Column(db.String(160), nullable=False)
    cost_minor = db.Column(db.BigInteger, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<Service {self.id} {self.name}>"


# =========================================================
# Balance columns shared by service orders and sales orders
# =========================================================
class BalanceMixin:
    total_amount_minor = db.Column(db.BigInteger, nullable=False, default=0)
    outstanding_balance_minor = db.Column(db.BigInteger, nullable=False, default=0)
    payment_status = db.Column(
        _status_enum(PaymentStatus, "payment_status"),
        nullable=False,
        default=PaymentStatus.UNPAID,
    )

    @property
    def total_amount(self) -> Decimal:
        return from_minor(self.total_amount_minor)

    @property
    def outstanding_balance(self) -> Decimal:
        return from_minor(self.outstanding_balance_minor)

    @property
    def amount_paid(self) -> Decimal:
        return from_minor((self.total_amount_minor or 0) - (self.outstanding_balance_minor or 0))


# =========================================================
# Service Order
# =========================================================
class Order(BalanceMixin, db.Model):
    __tablename__ = "service_order"

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organization.id"), nullable=False, index=True)
    order_number = db.Column(db.String(40), nullable=False)

    client_id = db.Column(db.Integer, db.ForeignKey("client.id"), nullable=False, index=True)
    client = db.relationship("Client", foreign_keys=[client_id], lazy="joined")

    description = db.Column(db.Text, nullable=True)
    due_date = db.Column(db.Date, nullable=True)

    status = db.Column(
        _status_enum(OrderStatus, "order_status"),
        nullable=False,
        default=OrderStatus.PENDING,
        index=True,
    )

    cancellation_reason = db.Column(db.Text, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="SET NULL"), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, onupdate=utcnow_naive)

    workers = db.relationship(
        "OrderWorker",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="select",
        order_by="OrderWorker.id",
    )
    services = db.relationship(
        "OrderService",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="select",
        order_by="OrderService.id",
    )
    custom_fields = db.relationship(
        "OrderCustomField",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="select",
    )
    # Weak link: tasks belong to workers, never deleted with the order.
    tasks = db.relationship("Task", back_populates="order", lazy="select", order_by="Task.id")

    __table_args__ = (
        db.UniqueConstraint("organization_id", "order_number", name="uq_service_order_org_number"),
        db.CheckConstraint(
            "outstanding_balance_minor >= 0 AND outstanding_balance_minor <= total_amount_minor",
            name="ck_service_order_balance_range",
        ),
        db.CheckConstraint(
            "status <> 'closed' OR payment_status = 'paid'",
            name="ck_service_order_closed_paid",
        ),
    )

    def __repr__(self) -> str:
        return f"<Order {self.id} {self.order_number} {self.status}>"


class OrderService(db.Model):
    __tablename__ = "order_service"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("service_order.id", ondelete="CASCADE"), nullable=False, index=True)
    order = db.relationship("Order", back_populates="services")

    service_id = db.Column(db.Integer, db.ForeignKey("service.id"), nullable=False)
    service = db.relationship("Service", foreign_keys=[service_id], lazy="joined")

    quantity = db.Column(db.Integer, nullable=False, default=1)
    cost_minor = db.Column(db.BigInteger, nullable=False, default=0)

    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_order_service_quantity"),
    )


class OrderCustomField(db.Model):
    __tablename__ = "order_custom_field"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("service_order.id", ondelete="CASCADE"), nullable=False, index=True)
    order = db.relationship("Order", back_populates="custom_fields")

    field_id = db.Column(db.Integer, db.ForeignKey("client_custom_field.id"), nullable=False)
    field = db.relationship("ClientCustomField", foreign_keys=[field_id], lazy="joined")


# =========================================================
# OrderWorker (Worker + rate assigned to an Order)
# =========================================================
class OrderWorker(db.Model):
    __tablename__ = "order_worker"

    id = db.Column(db.Integer, primary_key=True)

    order_id = db.Column(db.Integer, db.ForeignKey("service_order.id", ondelete="CASCADE"), nullable=False, index=True)
    order = db.relationship("Order", back_populates="workers")

    worker_id = db.Column(db.Integer, db.ForeignKey("worker.id"), nullable=False, index=True)
    worker = db.relationship("Worker", foreign_keys=[worker_id], lazy="joined")

    project_id = db.Column(db.Integer, db.ForeignKey("worker_project.id"), nullable=False)
    project = db.relationship("WorkerProject", foreign_keys=[project_id], lazy="joined")

    status = db.Column(
        _status_enum(OrderWorkerStatus, "order_worker_status"),
        nullable=False,
        default=OrderWorkerStatus.ASSIGNED,
    )
    task_description = db.Column(db.Text, nullable=True)
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)

    tasks = db.relationship("Task", back_populates="order_worker", lazy="select")

    __table_args__ = (
        db.UniqueConstraint("order_id", "worker_id", name="uq_order_worker_order_worker"),
    )

    def __repr__(self) -> str:
        return f"<OrderWorker {self.id} order={self.order_id} worker={self.worker_id} {self.status}>"


# =========================================================
# Task
# =========================================================
class Task(db.Model):
    __tablename__ = "task"

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organization.id"), nullable=False, index=True)

    worker_id = db.Column(db.Integer, db.ForeignKey("worker.id"), nullable=False, index=True)
    worker = db.relationship("Worker", foreign_keys=[worker_id], lazy="joined")

    project_id = db.Column(db.Integer, db.ForeignKey("worker_project.id"), nullable=False)
    project = db.relationship("WorkerProject", foreign_keys=[project_id], lazy="joined")

    order_id = db.Column(db.Integer, db.ForeignKey("service_order.id"), nullable=True, index=True)
    order = db.relationship("Order", back_populates="tasks")

    order_worker_id = db.Column(db.Integer, db.ForeignKey("order_worker.id"), nullable=True, index=True)
    order_worker = db.relationship("OrderWorker", back_populates="tasks")

    description = db.Column(db.Text, nullable=True)
    due_date = db.Column(db.Date, nullable=False)

    status = db.Column(
        _status_enum(TaskStatus, "task_status"),
        nullable=False,
        default=TaskStatus.PENDING,
        index=True,
    )

    # Copied from the project price at creation; never recomputed.
    amount_minor = db.Column(db.BigInteger, nullable=False, default=0)

    delay_reason = db.Column(db.Text, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    status_changed_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, onupdate=utcnow_naive)

    __table_args__ = (
        db.CheckConstraint(
            "status <> 'delayed' OR (delay_reason IS NOT NULL AND delay_reason <> '')",
            name="ck_task_delay_reason",
        ),
    )

    @property
    def amount(self) -> Decimal:
        return from_minor(self.amount_minor)

    def __repr__(self) -> str:
        return f"<Task {self.id} worker={self.worker_id} {self.status}>"


# =========================================================
# Sales Order
# =========================================================
class SalesOrder(BalanceMixin, db.Model):
    __tablename__ = "sales_order"

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organization.id"), nullable=False, index=True)
    order_number = db.Column(db.String(40), nullable=False)

    client_id = db.Column(db.Integer, db.ForeignKey("client.id"), nullable=False, index=True)
    client = db.relationship("Client", foreign_keys=[client_id], lazy="joined")

    status = db.Column(
        _status_enum(SalesOrderStatus, "sales_order_status"),
        nullable=False,
        default=SalesOrderStatus.CONFIRMED,
        index=True,
    )
    notes = db.Column(db.Text, nullable=True)

    cancellation_reason = db.Column(db.Text, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="SET NULL"), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, onupdate=utcnow_naive)

    items = db.relationship(
        "SalesOrderItem",
        back_populates="sales_order",
        cascade="all, delete-orphan",
        lazy="select",
        order_by="SalesOrderItem.id",
    )

    __table_args__ = (
        db.UniqueConstraint("organization_id", "order_number", name="uq_sales_order_org_number"),
        db.CheckConstraint(
            "outstanding_balance_minor >= 0 AND outstanding_balance_minor <= total_amount_minor",
            name="ck_sales_order_balance_range",
        ),
    )

    def __repr__(self) -> str:
        return f"<SalesOrder {self.id} {self.order_number} {self.status}>"


class SalesOrderItem(db.Model):
    __tablename__ = "sales_order_item"

    id = db.Column(db.Integer, primary_key=True)
    sales_order_id = db.Column(db.Integer, db.ForeignKey("sales_order.id", ondelete="CASCADE"), nullable=False, index=True)
    sales_order = db.relationship("SalesOrder", back_populates="items")

    name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    unit_price_minor = db.Column(db.BigInteger, nullable=False, default=0)
    total_price_minor = db.Column(db.BigInteger, nullable=False, default=0)


# =========================================================
# Payment
# =========================================================
class Payment(db.Model):
    __tablename__ = "payment"

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organization.id"), nullable=False, index=True)

    # Polymorphic reference: service_order.id or sales_order.id
    reference_type = db.Column(_status_enum(ReferenceType, "payment_reference_type"), nullable=False)
    reference_id = db.Column(db.Integer, nullable=False)

    # Never mutated after insert.
    amount_minor = db.Column(db.BigInteger, nullable=False)
    payment_method = db.Column(_status_enum(PaymentMethod, "payment_method"), nullable=False)
    payment_reference = db.Column(db.String(120), nullable=True)

    status = db.Column(
        _status_enum(TransactionStatus, "payment_transaction_status"),
        nullable=False,
        default=TransactionStatus.ACTIVE,
        index=True,
    )

    recorded_by_user_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, index=True)

    cancelled_at = db.Column(db.DateTime, nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="SET NULL"), nullable=True)
    cancellation_reason = db.Column(db.Text, nullable=True)

    __table_args__ = (
        db.CheckConstraint("amount_minor > 0", name="ck_payment_amount_positive"),
        db.Index("ix_payment_reference", "reference_type", "reference_id"),
    )

    @property
    def amount(self) -> Decimal:
        return from_minor(self.amount_minor)

    def __repr__(self) -> str:
        return f"<Payment {self.id} {self.reference_type} #{self.reference_id} {self.amount_minor} {self.status}>"
