# workledger/services/statistics.py
from __future__ import annotations

"""
Payment and order statistics, aggregated in SQL.

A payment counts when it is active and the order it points at (service or
sales) has not been cancelled.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Optional

import sqlalchemy as sa

from workledger.errors import ValidationError
from workledger.extensions import db
from workledger.models import (
    Order,
    OrderStatus,
    Payment,
    PaymentMethod,
    ReferenceType,
    SalesOrder,
    SalesOrderStatus,
    TransactionStatus,
)
from workledger.utils.parsing import parse_date, require_date


@dataclass(frozen=True)
class MethodTotal:
    method: PaymentMethod
    count: int
    total_minor: int


@dataclass(frozen=True)
class DailyTotal:
    day: date
    count: int
    total_minor: int


@dataclass(frozen=True)
class DateRangeSummary:
    start: date
    end: date
    count: int
    total_minor: int
    days: list[DailyTotal] = field(default_factory=list)


@dataclass(frozen=True)
class OrderStatusSummary:
    counts: dict[str, int]
    billed_minor: int
    outstanding_minor: int

    @property
    def collected_minor(self) -> int:
        return self.billed_minor - self.outstanding_minor


def _window(start: Optional[date], end: Optional[date]):
    if start and end and start > end:
        raise ValidationError("Start date must be on or before end date.")
    lo = datetime.combine(start, time.min) if start else None
    # The last calendar day has no following midnight; leave it open-ended.
    hi = datetime.combine(end + timedelta(days=1), time.min) if end and end < date.max else None
    return lo, hi


def _active_payments_query(organization_id: int, *columns):
    q = (
        db.session.query(*columns)
        .select_from(Payment)
        .outerjoin(
            Order,
            sa.and_(
                Payment.reference_type == ReferenceType.SERVICE_ORDER,
                Order.id == Payment.reference_id,
            ),
        )
        .outerjoin(
            SalesOrder,
            sa.and_(
                Payment.reference_type == ReferenceType.SALES_ORDER,
                SalesOrder.id == Payment.reference_id,
            ),
        )
        .filter(
            Payment.organization_id == organization_id,
            Payment.status == TransactionStatus.ACTIVE,
            sa.or_(Order.id.is_(None), Order.status != OrderStatus.CANCELLED),
            sa.or_(SalesOrder.id.is_(None), SalesOrder.status != SalesOrderStatus.CANCELLED),
        )
    )
    return q


def aggregate_by_method(organization_id: int, start=None, end=None) -> list[MethodTotal]:
    lo, hi = _window(parse_date(start), parse_date(end))

    q = _active_payments_query(
        organization_id,
        Payment.payment_method,
        sa.func.count(Payment.id),
        sa.func.coalesce(sa.func.sum(Payment.amount_minor), 0),
    )
    if lo is not None:
        q = q.filter(Payment.created_at >= lo)
    if hi is not None:
        q = q.filter(Payment.created_at < hi)

    rows = q.group_by(Payment.payment_method).order_by(Payment.payment_method).all()
    return [MethodTotal(method=m, count=int(c), total_minor=int(t)) for m, c, t in rows]


def aggregate_by_date_range(organization_id: int, start, end) -> DateRangeSummary:
    start_d = require_date(start, "Start date")
    end_d = require_date(end, "End date")
    lo, hi = _window(start_d, end_d)

    day_col = sa.func.date(Payment.created_at)
    q = _active_payments_query(
        organization_id,
        day_col,
        sa.func.count(Payment.id),
        sa.func.coalesce(sa.func.sum(Payment.amount_minor), 0),
    ).filter(Payment.created_at >= lo)
    if hi is not None:
        q = q.filter(Payment.created_at < hi)
    rows = q.group_by(day_col).order_by(day_col).all()

    # SQLite hands back date() as text, Postgres as a date.
    days = [DailyTotal(day=parse_date(d), count=int(c), total_minor=int(t)) for d, c, t in rows]
    return DateRangeSummary(
        start=start_d,
        end=end_d,
        count=sum(d.count for d in days),
        total_minor=sum(d.total_minor for d in days),
        days=days,
    )


def order_status_summary(organization_id: int) -> OrderStatusSummary:
    rows = (
        db.session.query(Order.status, sa.func.count(Order.id))
        .filter(Order.organization_id == organization_id)
        .group_by(Order.status)
        .all()
    )
    counts = {s.value: 0 for s in OrderStatus}
    for status, n in rows:
        counts[status.value] = int(n)

    billed, outstanding = (
        db.session.query(
            sa.func.coalesce(sa.func.sum(Order.total_amount_minor), 0),
            sa.func.coalesce(sa.func.sum(Order.outstanding_balance_minor), 0),
        )
        .filter(Order.organization_id == organization_id, Order.status != OrderStatus.CANCELLED)
        .one()
    )
    return OrderStatusSummary(counts=counts, billed_minor=int(billed), outstanding_minor=int(outstanding))
