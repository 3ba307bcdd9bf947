"""initial_schema

Revision ID: 3f9a1c2d7b40
Revises:
Create Date: 2026-10-19 09:12:41.518220

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3f9a1c2d7b40'
down_revision = None
branch_labels = None
depends_on = None


def _enum(name, *values):
    return sa.Enum(*values, name=name, native_enum=False)


PAYMENT_STATUS = ("unpaid", "partially_paid", "paid", "cancelled")


def upgrade():
    # =========================
    # organization / user
    # =========================
    op.create_table(
        "organization",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=160), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="USD"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "user",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organization.id"), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("email", sa.String(length=120), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=30), nullable=False, server_default="member"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_login_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_user_email", "user", ["email"], unique=True)
    op.create_index("ix_user_organization_id", "user", ["organization_id"])

    # =========================
    # clients
    # =========================
    op.create_table(
        "client",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organization.id"), nullable=False),
        sa.Column("name", sa.String(length=160), nullable=False),
        sa.Column("email", sa.String(length=120), nullable=True),
        sa.Column("phone", sa.String(length=30), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_client_organization_id", "client", ["organization_id"])

    op.create_table(
        "client_custom_field",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("client.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(length=120), nullable=False),
        sa.Column("value", sa.Text(), nullable=True),
    )
    op.create_index("ix_client_custom_field_client_id", "client_custom_field", ["client_id"])

    # =========================
    # workers + rates
    # =========================
    op.create_table(
        "worker",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organization.id"), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("whatsapp", sa.String(length=30), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_worker_organization_id", "worker", ["organization_id"])

    op.create_table(
        "worker_project",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("worker_id", sa.Integer(), sa.ForeignKey("worker.id"), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("price_minor", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("status", _enum("project_status", "active", "inactive"), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_worker_project_worker_id", "worker_project", ["worker_id"])

    op.create_table(
        "service",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organization.id"), nullable=False),
        sa.Column("name", sa.String(length=160), nullable=False),
        sa.Column("cost_minor", sa.BigInteger(), nullable=False, server_default="0"),
    )
    op.create_index("ix_service_organization_id", "service", ["organization_id"])

    # =========================
    # service_order
    # =========================
    op.create_table(
        "service_order",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organization.id"), nullable=False),
        sa.Column("order_number", sa.String(length=40), nullable=False),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("client.id"), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column(
            "status",
            _enum("order_status", "pending", "in_progress", "completed", "cancelled", "closed"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("total_amount_minor", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("outstanding_balance_minor", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("payment_status", _enum("payment_status", *PAYMENT_STATUS), nullable=False, server_default="unpaid"),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_by_user_id", sa.Integer(), sa.ForeignKey("user.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("organization_id", "order_number", name="uq_service_order_org_number"),
        sa.CheckConstraint(
            "outstanding_balance_minor >= 0 AND outstanding_balance_minor <= total_amount_minor",
            name="ck_service_order_balance_range",
        ),
        sa.CheckConstraint("status <> 'closed' OR payment_status = 'paid'", name="ck_service_order_closed_paid"),
    )
    op.create_index("ix_service_order_organization_id", "service_order", ["organization_id"])
    op.create_index("ix_service_order_client_id", "service_order", ["client_id"])
    op.create_index("ix_service_order_status", "service_order", ["status"])

    op.create_table(
        "order_service",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("service_order.id", ondelete="CASCADE"), nullable=False),
        sa.Column("service_id", sa.Integer(), sa.ForeignKey("service.id"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("cost_minor", sa.BigInteger(), nullable=False, server_default="0"),
        sa.CheckConstraint("quantity >= 1", name="ck_order_service_quantity"),
    )
    op.create_index("ix_order_service_order_id", "order_service", ["order_id"])

    op.create_table(
        "order_custom_field",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("service_order.id", ondelete="CASCADE"), nullable=False),
        sa.Column("field_id", sa.Integer(), sa.ForeignKey("client_custom_field.id"), nullable=False),
    )
    op.create_index("ix_order_custom_field_order_id", "order_custom_field", ["order_id"])

    # =========================
    # order_worker
    # one row per (order, worker)
    # =========================
    op.create_table(
        "order_worker",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("service_order.id", ondelete="CASCADE"), nullable=False),
        sa.Column("worker_id", sa.Integer(), sa.ForeignKey("worker.id"), nullable=False),
        sa.Column("project_id", sa.Integer(), sa.ForeignKey("worker_project.id"), nullable=False),
        sa.Column(
            "status",
            _enum("order_worker_status", "assigned", "in_progress", "completed", "cancelled"),
            nullable=False,
            server_default="assigned",
        ),
        sa.Column("task_description", sa.Text(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("order_id", "worker_id", name="uq_order_worker_order_worker"),
    )
    op.create_index("ix_order_worker_order_id", "order_worker", ["order_id"])
    op.create_index("ix_order_worker_worker_id", "order_worker", ["worker_id"])

    # =========================
    # task
    # =========================
    op.create_table(
        "task",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organization.id"), nullable=False),
        sa.Column("worker_id", sa.Integer(), sa.ForeignKey("worker.id"), nullable=False),
        sa.Column("project_id", sa.Integer(), sa.ForeignKey("worker_project.id"), nullable=False),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("service_order.id"), nullable=True),
        sa.Column("order_worker_id", sa.Integer(), sa.ForeignKey("order_worker.id"), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column(
            "status",
            _enum("task_status", "pending", "in_progress", "completed", "delayed", "cancelled"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("amount_minor", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("delay_reason", sa.Text(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("status_changed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "status <> 'delayed' OR (delay_reason IS NOT NULL AND delay_reason <> '')",
            name="ck_task_delay_reason",
        ),
    )
    op.create_index("ix_task_organization_id", "task", ["organization_id"])
    op.create_index("ix_task_worker_id", "task", ["worker_id"])
    op.create_index("ix_task_order_id", "task", ["order_id"])
    op.create_index("ix_task_order_worker_id", "task", ["order_worker_id"])
    op.create_index("ix_task_status", "task", ["status"])

    # =========================
    # sales_order
    # =========================
    op.create_table(
        "sales_order",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organization.id"), nullable=False),
        sa.Column("order_number", sa.String(length=40), nullable=False),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("client.id"), nullable=False),
        sa.Column(
            "status",
            _enum("sales_order_status", "draft", "confirmed", "in_progress", "completed", "cancelled"),
            nullable=False,
            server_default="confirmed",
        ),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("total_amount_minor", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("outstanding_balance_minor", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("payment_status", _enum("payment_status", *PAYMENT_STATUS), nullable=False, server_default="unpaid"),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_by_user_id", sa.Integer(), sa.ForeignKey("user.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("organization_id", "order_number", name="uq_sales_order_org_number"),
        sa.CheckConstraint(
            "outstanding_balance_minor >= 0 AND outstanding_balance_minor <= total_amount_minor",
            name="ck_sales_order_balance_range",
        ),
    )
    op.create_index("ix_sales_order_organization_id", "sales_order", ["organization_id"])
    op.create_index("ix_sales_order_client_id", "sales_order", ["client_id"])
    op.create_index("ix_sales_order_status", "sales_order", ["status"])

    op.create_table(
        "sales_order_item",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("sales_order_id", sa.Integer(), sa.ForeignKey("sales_order.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("unit_price_minor", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("total_price_minor", sa.BigInteger(), nullable=False, server_default="0"),
    )
    op.create_index("ix_sales_order_item_sales_order_id", "sales_order_item", ["sales_order_id"])

    # =========================
    # payment
    # reference_id points at service_order.id or sales_order.id
    # =========================
    op.create_table(
        "payment",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organization.id"), nullable=False),
        sa.Column(
            "reference_type",
            _enum("payment_reference_type", "service_order", "sales_order"),
            nullable=False,
        ),
        sa.Column("reference_id", sa.Integer(), nullable=False),
        sa.Column("amount_minor", sa.BigInteger(), nullable=False),
        sa.Column(
            "payment_method",
            _enum("payment_method", "cash", "mobile_money", "bank_transfer", "check", "card_payment"),
            nullable=False,
        ),
        sa.Column("payment_reference", sa.String(length=120), nullable=True),
        sa.Column(
            "status",
            _enum("payment_transaction_status", "active", "cancelled"),
            nullable=False,
            server_default="active",
        ),
        sa.Column("recorded_by_user_id", sa.Integer(), sa.ForeignKey("user.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_by_user_id", sa.Integer(), sa.ForeignKey("user.id", ondelete="SET NULL"), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.CheckConstraint("amount_minor > 0", name="ck_payment_amount_positive"),
    )
    op.create_index("ix_payment_organization_id", "payment", ["organization_id"])
    op.create_index("ix_payment_reference", "payment", ["reference_type", "reference_id"])
    op.create_index("ix_payment_status", "payment", ["status"])
    op.create_index("ix_payment_created_at", "payment", ["created_at"])


def downgrade():
    op.drop_table("payment")
    op.drop_table("sales_order_item")
    op.drop_table("sales_order")
    op.drop_table("task")
    op.drop_table("order_worker")
    op.drop_table("order_custom_field")
    op.drop_table("order_service")
    op.drop_table("service_order")
    op.drop_table("service")
    op.drop_table("worker_project")
    op.drop_table("worker")
    op.drop_table("client_custom_field")
    op.drop_table("client")
    op.drop_table("user")
    op.drop_table("organization")
