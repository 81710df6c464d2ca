# Overview: Service-layer operations for residents; encapsulates business logic and database work.

"""
Residents Service

A unit (household) is one OWNER plus the MEMBERs pointing at it through
owner_id. Every resident has exactly one ResidentAccount holding the tab.

Deletion is a manual cascade in one transaction, dependents first:
sale items, sales, account, sessions, then the resident row itself.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from flask import current_app

from ..extensions import db
from ..errors import ConflictError, InvalidRequestError, NotFoundError, PermissionDeniedError
from ..models import Resident, ResidentAccount, Sale, SaleItem, SessionToken
from ..models.residents import (
    ACCESS_STATUSES,
    ACCOUNT_ACTIVE,
    ACCOUNT_STATUSES,
    ROLE_ADMIN,
    ROLE_RESIDENT,
    ROLES,
    STATUS_ACTIVE,
    STATUS_PENDING,
    UNIT_ROLE_MEMBER,
    UNIT_ROLE_OWNER,
    UNIT_ROLES,
)
from ..validation import (
    CENTS,
    ModelValidationPolicy,
    enforce_rules_account,
    normalize_cpf,
    to_decimal,
    validate_payload,
)
from . import auth_service, session_service
from .concurrency import lock_for_update, run_with_retry


RESIDENT_POLICY = ModelValidationPolicy(
    writable_fields={
        "cpf", "name", "email", "phone", "apartment", "block",
        "role", "unit_role", "status", "owner_id",
    },
    required_on_create={"cpf", "name"},
    aliases={"unitRole": "unit_role", "ownerId": "owner_id"},
)

DEPENDENT_POLICY = ModelValidationPolicy(
    writable_fields={"cpf", "name", "email", "phone"},
    required_on_create={"cpf", "name"},
)

# Fields only an ADMIN may change on an existing resident
ADMIN_ONLY_FIELDS = {"cpf", "role", "unit_role", "status", "owner_id"}


def _clean_payload(payload: Any, policy: ModelValidationPolicy, *, partial: bool) -> dict:
    if isinstance(payload, dict) and payload.get("cpf") is not None:
        payload = {**payload, "cpf": normalize_cpf(payload["cpf"])}
    patch = validate_payload(model=Resident, payload=payload, policy=policy, partial=partial)

    if patch.get("role") is not None and patch["role"] not in ROLES:
        raise InvalidRequestError(f"role must be one of: {', '.join(sorted(ROLES))}")
    if patch.get("unit_role") is not None and patch["unit_role"] not in UNIT_ROLES:
        raise InvalidRequestError(f"unit_role must be one of: {', '.join(sorted(UNIT_ROLES))}")
    if patch.get("status") is not None and patch["status"] not in ACCESS_STATUSES:
        raise InvalidRequestError(f"status must be one of: {', '.join(sorted(ACCESS_STATUSES))}")
    return patch


def _ensure_cpf_free(cpf: str, exclude_id: str | None = None) -> None:
    query = db.session.query(Resident).filter(Resident.cpf == cpf)
    if exclude_id is not None:
        query = query.filter(Resident.id != exclude_id)
    if query.first() is not None:
        raise ConflictError("CPF already registered", details={"cpf": cpf})


def _default_credit_limit() -> Decimal:
    return to_decimal(current_app.config["DEFAULT_CREDIT_LIMIT"], "DEFAULT_CREDIT_LIMIT")


def _new_resident(patch: dict) -> Resident:
    resident = Resident(
        cpf=patch["cpf"],
        name=patch["name"],
        email=patch.get("email"),
        phone=patch.get("phone"),
        apartment=patch.get("apartment") or "",
        block=patch.get("block") or "",
        role=patch.get("role") or ROLE_RESIDENT,
        unit_role=patch.get("unit_role") or UNIT_ROLE_OWNER,
        status=patch.get("status") or STATUS_ACTIVE,
        owner_id=patch.get("owner_id"),
        password_hash=auth_service.hash_password(auth_service.default_password(patch["cpf"])),
        is_first_login=True,
    )
    db.session.add(resident)
    db.session.flush()

    db.session.add(ResidentAccount(
        resident_id=resident.id,
        balance=Decimal("0.00"),
        credit_limit=_default_credit_limit(),
        status=ACCOUNT_ACTIVE,
    ))
    db.session.flush()
    return resident


def get_resident(resident_id: str) -> Resident:
    resident = db.session.query(Resident).filter_by(id=resident_id).first()
    if resident is None:
        raise NotFoundError("resident", resident_id)
    return resident


def _ensure_valid_owner(owner_id: str, resident: Resident | None = None) -> Resident:
    """
    Households are one level deep: owner_id must point at an OWNER that
    has no owner itself, and a resident with members cannot be attached
    to another unit.
    """
    if resident is not None and owner_id == resident.id:
        raise InvalidRequestError("A resident cannot own itself")

    owner = get_resident(owner_id)
    if owner.unit_role != UNIT_ROLE_OWNER or owner.owner_id is not None:
        raise InvalidRequestError(
            "owner_id must reference a unit owner",
            details={"owner_id": owner_id},
        )

    if resident is not None and _has_members(resident):
        raise InvalidRequestError(
            "A resident with members cannot join another unit",
            details={"resident_id": resident.id},
        )
    return owner


def _has_members(resident: Resident) -> bool:
    return db.session.query(Resident.id).filter(Resident.owner_id == resident.id).first() is not None


def household_ids(resident: Resident) -> list[str]:
    """Ids of the resident's unit: the owner and every member."""
    owner_id = resident.household_owner_id
    member_ids = [
        rid for (rid,) in db.session.query(Resident.id).filter(Resident.owner_id == owner_id)
    ]
    return [owner_id] + member_ids


def ensure_can_view(actor: Resident, target: Resident) -> None:
    if actor.is_admin:
        return
    if target.household_owner_id != actor.household_owner_id:
        raise PermissionDeniedError("You can only access residents of your own unit")


def ensure_can_charge(actor: Resident, resident_id: str) -> None:
    """A RESIDENT may only put a FIADO sale on their own household's tab."""
    if actor.is_admin:
        return
    if resident_id not in household_ids(actor):
        raise PermissionDeniedError(
            "You can only charge residents of your own unit",
            details={"resident_id": resident_id},
        )


def create_resident(payload: Any) -> Resident:
    """Admin registration. The new resident logs in with the first 4 CPF digits."""
    patch = _clean_payload(payload, RESIDENT_POLICY, partial=False)

    def _op():
        _ensure_cpf_free(patch["cpf"])
        if patch.get("owner_id"):
            _ensure_valid_owner(patch["owner_id"])
        resident = _new_resident(patch)
        db.session.commit()
        current_app.logger.info("Resident %s created (unit %s/%s)", resident.id, resident.block, resident.apartment)
        return resident

    return run_with_retry(_op)


def request_dependent(actor: Resident, payload: Any) -> Resident:
    """
    A resident registers a family member in their unit.

    The member starts PENDING until an ADMIN approves it, and inherits the
    owner's apartment and block.
    """
    patch = _clean_payload(payload, DEPENDENT_POLICY, partial=False)

    def _op():
        owner = get_resident(actor.household_owner_id)
        _ensure_cpf_free(patch["cpf"])
        resident = _new_resident({
            **patch,
            "apartment": owner.apartment,
            "block": owner.block,
            "role": ROLE_RESIDENT,
            "unit_role": UNIT_ROLE_MEMBER,
            "status": STATUS_PENDING,
            "owner_id": owner.id,
        })
        db.session.commit()
        current_app.logger.info("Dependent %s requested by %s", resident.id, actor.id)
        return resident

    return run_with_retry(_op)


def update_status(resident_id: str, status: Any) -> Resident:
    """Approve or reject a resident (ACTIVE / PENDING / REJECTED)."""
    if not isinstance(status, str) or status not in ACCESS_STATUSES:
        raise InvalidRequestError(f"status must be one of: {', '.join(sorted(ACCESS_STATUSES))}")

    def _op():
        resident = get_resident(resident_id)
        resident.status = status
        db.session.commit()
        current_app.logger.info("Resident %s status -> %s", resident_id, status)
        return resident

    return run_with_retry(_op)


def get_unit(resident: Resident) -> list[Resident]:
    """Owner first, then members by name."""
    owner_id = resident.household_owner_id
    owner = get_resident(owner_id)
    members = (
        db.session.query(Resident)
        .filter(Resident.owner_id == owner_id)
        .order_by(Resident.name.asc(), Resident.id.asc())
        .all()
    )
    return [owner] + members


def list_pending() -> list[dict]:
    residents = (
        db.session.query(Resident)
        .filter(Resident.status == STATUS_PENDING)
        .order_by(Resident.created_at.desc(), Resident.id.desc())
        .all()
    )
    out = []
    for r in residents:
        data = r.to_dict()
        data["owner"] = (
            {"name": r.owner.name, "apartment": r.owner.apartment, "block": r.owner.block}
            if r.owner else None
        )
        out.append(data)
    return out


def list_residents() -> list[Resident]:
    return db.session.query(Resident).order_by(Resident.name.asc(), Resident.id.asc()).all()


def get_history(resident_id: str) -> list[Sale]:
    """Sales charged to the resident, newest first."""
    get_resident(resident_id)
    return (
        db.session.query(Sale)
        .filter(Sale.resident_id == resident_id)
        .order_by(Sale.created_at.desc(), Sale.id.desc())
        .all()
    )


def update_resident(actor: Resident, resident_id: str, payload: Any) -> Resident:
    patch = _clean_payload(payload, RESIDENT_POLICY, partial=True)

    def _op():
        resident = get_resident(resident_id)
        ensure_can_view(actor, resident)

        restricted = sorted(ADMIN_ONLY_FIELDS & patch.keys())
        if restricted and not actor.is_admin:
            raise PermissionDeniedError(
                "Only an administrator can change these fields",
                details={"fields": restricted},
            )
        if patch.get("cpf"):
            _ensure_cpf_free(patch["cpf"], exclude_id=resident.id)
        if patch.get("owner_id"):
            _ensure_valid_owner(patch["owner_id"], resident)
        if patch.get("unit_role") == UNIT_ROLE_MEMBER and _has_members(resident):
            raise InvalidRequestError(
                "A resident with members must stay the unit owner",
                details={"resident_id": resident.id},
            )

        for key, value in patch.items():
            setattr(resident, key, value)
        db.session.commit()
        return resident

    return run_with_retry(_op)


def change_password(
    actor: Resident,
    resident_id: str,
    new_password: Any,
    current_session_id: int | None = None,
) -> Resident:
    """
    Set a new password and clear is_first_login.

    Every other session of the resident is revoked; the caller's own
    session survives when they change their own password.
    """
    auth_service.validate_password_strength(new_password)

    resident = get_resident(resident_id)
    if not actor.is_admin and actor.id != resident.id:
        raise PermissionDeniedError("You can only change your own password")

    resident.password_hash = auth_service.hash_password(new_password)
    resident.is_first_login = False
    db.session.commit()

    keep = current_session_id if actor.id == resident.id else None
    revoked = session_service.revoke_all_resident_sessions(
        resident.id, reason="Password changed", except_session_id=keep
    )
    current_app.logger.info("Password changed for %s (%d sessions revoked)", resident.id, revoked)
    return resident


def update_account(resident_id: str, payload: Any) -> ResidentAccount:
    """Admin change of credit_limit and/or status (ACTIVE / BLOCKED)."""
    if not isinstance(payload, dict):
        raise InvalidRequestError("Invalid JSON payload")
    unknown = sorted(set(payload) - {"credit_limit", "creditLimit", "status"})
    if unknown:
        raise InvalidRequestError(f"Field not allowed: {unknown[0]}")

    patch: dict = {}
    raw_limit = payload.get("credit_limit", payload.get("creditLimit"))
    if raw_limit is not None:
        patch["credit_limit"] = to_decimal(raw_limit, "credit_limit")
    enforce_rules_account(patch)
    if payload.get("status") is not None:
        if not isinstance(payload["status"], str) or payload["status"] not in ACCOUNT_STATUSES:
            raise InvalidRequestError(
                f"status must be one of: {', '.join(sorted(ACCOUNT_STATUSES))}"
            )
        patch["status"] = payload["status"]

    def _op():
        account = lock_for_update(
            db.session.query(ResidentAccount).filter_by(resident_id=resident_id)
        ).first()
        if account is None:
            raise NotFoundError("account", resident_id, message="Resident account not found")
        for key, value in patch.items():
            setattr(account, key, value)
        db.session.commit()
        current_app.logger.info("Account of %s updated: %s", resident_id, patch)
        return account

    return run_with_retry(_op)


def pay_account(resident_id: str, amount: Any) -> ResidentAccount:
    """Settle part (or all) of a resident's tab."""
    value = to_decimal(amount, "amount")
    if value <= 0:
        raise InvalidRequestError("amount must be > 0")

    def _op():
        account = lock_for_update(
            db.session.query(ResidentAccount).filter_by(resident_id=resident_id)
        ).first()
        if account is None:
            raise NotFoundError("account", resident_id, message="Resident account not found")

        balance = Decimal(account.balance or 0)
        if value > balance:
            raise InvalidRequestError(
                "amount exceeds the outstanding balance",
                details={"balance": str(balance.quantize(CENTS)), "amount": str(value)},
            )
        account.balance = (balance - value).quantize(CENTS)
        db.session.commit()
        current_app.logger.info("Payment of %s received from %s", value, resident_id)
        return account

    return run_with_retry(_op)


def _delete_resident_rows(resident_id: str, seen: set[str] | None = None) -> dict[str, int]:
    counts = {"residents": 0, "sales": 0, "sale_items": 0}
    seen = set() if seen is None else seen
    seen.add(resident_id)

    dependent_ids = [rid for (rid,) in db.session.query(Resident.id).filter(Resident.owner_id == resident_id)]
    for dependent_id in dependent_ids:
        if dependent_id in seen:
            continue
        for key, value in _delete_resident_rows(dependent_id, seen).items():
            counts[key] += value

    sale_ids = [sid for (sid,) in db.session.query(Sale.id).filter(Sale.resident_id == resident_id)]
    if sale_ids:
        counts["sale_items"] += (
            db.session.query(SaleItem).filter(SaleItem.sale_id.in_(sale_ids)).delete()
        )
        counts["sales"] += db.session.query(Sale).filter(Sale.id.in_(sale_ids)).delete()

    # Sales they rang up for others stay, unattributed
    db.session.query(Sale).filter(Sale.created_by_id == resident_id).update({Sale.created_by_id: None})

    db.session.query(ResidentAccount).filter(ResidentAccount.resident_id == resident_id).delete()
    db.session.query(SessionToken).filter(SessionToken.resident_id == resident_id).delete()
    # Only a cyclic back-reference can still point here
    db.session.query(Resident).filter(Resident.owner_id == resident_id).update({Resident.owner_id: None})
    counts["residents"] += db.session.query(Resident).filter(Resident.id == resident_id).delete()
    return counts


def delete_resident(actor: Resident, resident_id: str) -> None:
    """
    Remove a resident, its dependents and everything they own.

    Allowed for an ADMIN, or for an owner removing a member of their unit.
    """
    def _op():
        resident = get_resident(resident_id)
        if not actor.is_admin and resident.owner_id != actor.id:
            raise PermissionDeniedError("Only an administrator can remove this resident")

        counts = _delete_resident_rows(resident.id)
        db.session.commit()
        current_app.logger.info(
            "Resident %s deleted (residents=%d sales=%d sale_items=%d)",
            resident_id, counts["residents"], counts["sales"], counts["sale_items"],
        )

    run_with_retry(_op)


def ensure_admin(*, cpf: str, name: str, password: str, apartment: str = "", block: str = "") -> tuple[Resident, bool]:
    """
    Idempotent bootstrap of an ADMIN (the building manager).

    Returns (resident, created). An existing CPF is left untouched.
    """
    digits = normalize_cpf(cpf)
    existing = db.session.query(Resident).filter_by(cpf=digits).first()
    if existing is not None:
        return existing, False

    resident = _new_resident({
        "cpf": digits,
        "name": name,
        "apartment": apartment,
        "block": block,
        "role": ROLE_ADMIN,
        "unit_role": UNIT_ROLE_OWNER,
        "status": STATUS_ACTIVE,
    })
    resident.password_hash = auth_service.hash_password(password)
    resident.is_first_login = False
    db.session.commit()
    return resident, True
