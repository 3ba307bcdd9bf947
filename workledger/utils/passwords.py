# workledger/utils/passwords.py
from __future__ import annotations

import re
from typing import Tuple

from werkzeug.security import check_password_hash, generate_password_hash


# =========================
# Password hashing / verify
# =========================
def hash_password(plain_password: str) -> str:
    """Hash with werkzeug's scrypt KDF."""
    if not isinstance(plain_password, str) or not plain_password.strip():
        raise ValueError("Password must be a non-empty string.")
    return generate_password_hash(plain_password, method="scrypt")


def verify_password(password_hash: str | None, plain_password: str | None) -> bool:
    if not password_hash or not plain_password:
        return False
    return check_password_hash(password_hash, plain_password)


# =========================
# Password policy
# =========================
MIN_LENGTH = 10

_PASSWORD_RULES = [
    (lambda s: len(s) >= MIN_LENGTH, f"Password must be at least {MIN_LENGTH} characters."),
    (lambda s: re.search(r"[A-Za-z]", s) is not None, "Include at least one letter."),
    (lambda s: re.search(r"\d", s) is not None, "Include at least one number."),
]


def validate_password(plain_password) -> Tuple[bool, str]:
    """
    Returns (ok, message). If ok is False, message explains what to fix.
    """
    if not isinstance(plain_password, str):
        return False, "Password must be text."
    pw = plain_password.strip()
    if not pw:
        return False, "Password cannot be empty."

    for rule, msg in _PASSWORD_RULES:
        if not rule(pw):
            return False, msg
    return True, ""
