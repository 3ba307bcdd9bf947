# workledger/services/transactions.py
from __future__ import annotations

"""
Transaction boundary for every engine operation.

Service functions do their reads and writes inside `atomic()`, which commits
once at the end. Anything raised inside rolls the whole session back, so a
caller never observes a half-applied operation.
"""

from contextlib import contextmanager
from typing import Iterator, Optional, Type, TypeVar

import sqlalchemy as sa
from flask import current_app
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from workledger.errors import ConcurrencyConflictError, ReconciliationError, WorkLedgerError
from workledger.extensions import db
from workledger.models import PaymentStatus, utcnow_naive

M = TypeVar("M")


@contextmanager
def atomic(action: str) -> Iterator[Session]:
    try:
        yield db.session
        db.session.commit()
    except ReconciliationError as exc:
        db.session.rollback()
        if not isinstance(exc.cause, WorkLedgerError):
            current_app.logger.exception("%s failed at step %r", action, exc.step)
        raise
    except WorkLedgerError:
        db.session.rollback()
        raise
    except Exception:
        db.session.rollback()
        current_app.logger.exception("%s failed", action)
        raise


@contextmanager
def step(name: str) -> Iterator[None]:
    """
    One step of a multi-entity operation. Pending writes are flushed at the
    end of the step so a storage failure is attributed to the right step.
    """
    try:
        yield
        db.session.flush()
    except ReconciliationError:
        raise
    except Exception as exc:
        raise ReconciliationError(name, exc) from exc


def lock_row(model: Type[M], pk) -> Optional[M]:
    """SELECT ... FOR UPDATE by primary key, refreshing any copy already in the session."""
    stmt = (
        sa.select(model)
        .where(model.id == pk)
        .with_for_update(of=model)
        .execution_options(populate_existing=True)
    )
    return db.session.execute(stmt).scalar_one_or_none()


def swap_balance(ref, expected_minor: int, new_minor: int, payment_status: PaymentStatus) -> None:
    """
    Compare-and-set the outstanding balance of an Order / SalesOrder.

    The UPDATE only matches while the stored balance still equals the value
    the caller read; otherwise someone else moved it first.
    """
    model = type(ref)
    result = db.session.execute(
        sa.update(model)
        .where(model.id == ref.id, model.outstanding_balance_minor == expected_minor)
        .values(
            outstanding_balance_minor=new_minor,
            payment_status=payment_status,
            updated_at=utcnow_naive(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConcurrencyConflictError(
            f"{ref.order_number} was updated by someone else. Reload it and try again."
        )

    set_committed_value(ref, "outstanding_balance_minor", new_minor)
    set_committed_value(ref, "payment_status", payment_status)
