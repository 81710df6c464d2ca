# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

Residents log in with their CPF and a password. New residents get a
default password (first four CPF digits) and are flagged is_first_login
until they change it.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor BCRYPT_ROUNDS)
- Minimum 6 characters for chosen passwords
- Only ACTIVE residents may authenticate
- Session tokens managed separately (see session_service.py)
"""

from __future__ import annotations

import bcrypt
from flask import current_app

from ..errors import InvalidRequestError
from ..extensions import db
from ..models import Resident
from ..models.residents import STATUS_ACTIVE
from condostock.time_utils import utcnow

MIN_PASSWORD_LENGTH = 6


class PasswordValidationError(InvalidRequestError):
    """Raised when password doesn't meet strength requirements."""


def validate_password_strength(password: str) -> None:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )


def default_password(cpf: str) -> str:
    """Initial password of a new resident: the first four digits of the CPF."""
    digits = "".join(ch for ch in cpf if ch.isdigit())
    return digits[:4]


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt (cost factor BCRYPT_ROUNDS, default 12).

    No strength check here: default passwords are shorter than the
    minimum a resident may choose.
    """
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_ROUNDS", 12))
    hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt check. Malformed hashes never match."""
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def authenticate(cpf: str, password: str) -> Resident | None:
    """
    Authenticate a resident by CPF and password.

    Returns the Resident if credentials are valid and the resident is
    ACTIVE, None otherwise. Updates last_login_at on success.
    """
    digits = "".join(ch for ch in (cpf or "") if ch.isdigit())
    if not digits:
        return None

    resident = db.session.query(Resident).filter_by(cpf=digits).first()
    if resident is None or resident.status != STATUS_ACTIVE:
        return None

    if verify_password(password, resident.password_hash):
        resident.last_login_at = utcnow()
        db.session.commit()
        return resident

    return None
