# workledger/utils/parsing.py
from __future__ import annotations

import enum
from datetime import date, datetime
from typing import Type, TypeVar

from workledger.errors import ValidationError

E = TypeVar("E", bound=enum.Enum)


def parse_int(val):
    try:
        if val is None or str(val).strip() == "":
            return None
        return int(val)
    except (TypeError, ValueError, OverflowError):
        return None


def parse_date(val):
    if isinstance(val, datetime):
        return val.date()
    if isinstance(val, date):
        return val
    try:
        if not val:
            return None
        return date.fromisoformat(str(val).strip())
    except (TypeError, ValueError):
        return None


def clean_str(value) -> str:
    return "" if value is None else str(value).strip()


def require_date(val, label: str) -> date:
    parsed = parse_date(val)
    if parsed is None:
        raise ValidationError(f"{label} must be a date (YYYY-MM-DD).")
    return parsed


def require_id(val, label: str) -> int:
    parsed = parse_int(val)
    if parsed is None:
        raise ValidationError(f"{label} is required.")
    return parsed


def coerce_enum(enum_cls: Type[E], value, label: str) -> E:
    """Accept an enum member or its string value ("in_progress")."""
    if isinstance(value, enum_cls):
        return value
    raw = clean_str(value).lower()
    try:
        return enum_cls(raw)
    except ValueError:
        allowed = ", ".join(e.value for e in enum_cls)
        raise ValidationError(f"Invalid {label} '{raw}'. Expected one of: {allowed}.") from None
