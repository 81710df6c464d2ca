from __future__ import annotations

from ..extensions import db
from condostock.time_utils import to_utc_z
from .common import new_id, money

ROLE_ADMIN = "ADMIN"
ROLE_RESIDENT = "RESIDENT"
ROLES = {ROLE_ADMIN, ROLE_RESIDENT}

UNIT_ROLE_OWNER = "OWNER"
UNIT_ROLE_MEMBER = "MEMBER"
UNIT_ROLES = {UNIT_ROLE_OWNER, UNIT_ROLE_MEMBER}

STATUS_ACTIVE = "ACTIVE"
STATUS_PENDING = "PENDING"
STATUS_REJECTED = "REJECTED"
ACCESS_STATUSES = {STATUS_ACTIVE, STATUS_PENDING, STATUS_REJECTED}

ACCOUNT_ACTIVE = "ACTIVE"
ACCOUNT_BLOCKED = "BLOCKED"
ACCOUNT_STATUSES = {ACCOUNT_ACTIVE, ACCOUNT_BLOCKED}


class Resident(db.Model):
    """
    A condominium resident and the login principal of the API.

    The CPF (digits only) is the login. An OWNER holds the unit; a MEMBER
    points at its owner via owner_id and starts PENDING until an ADMIN
    approves it.
    """
    __tablename__ = "residents"

    id = db.Column(db.String(36), primary_key=True, default=new_id)

    cpf = db.Column(db.String(11), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)
    is_first_login = db.Column(db.Boolean, nullable=False, default=True)

    role = db.Column(db.String(16), nullable=False, default=ROLE_RESIDENT)
    unit_role = db.Column(db.String(16), nullable=False, default=UNIT_ROLE_OWNER)
    status = db.Column(db.String(16), nullable=False, default=STATUS_ACTIVE, index=True)

    apartment = db.Column(db.String(16), nullable=False, default="")
    block = db.Column(db.String(16), nullable=False, default="")

    owner_id = db.Column(db.String(36), db.ForeignKey("residents.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    owner = db.relationship(
        "Resident",
        remote_side=[id],
        backref=db.backref("dependents", lazy=True),
    )

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def household_owner_id(self) -> str:
        """Id of the resident who holds the unit (self for owners)."""
        if self.unit_role == UNIT_ROLE_MEMBER and self.owner_id:
            return self.owner_id
        return self.id

    def __repr__(self) -> str:
        return f"<Resident id={self.id} cpf={self.cpf!r} role={self.role}>"

    def to_dict(self, include_account: bool = False, include_dependents: bool = False) -> dict:
        data = {
            "id": self.id,
            "cpf": self.cpf,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "role": self.role,
            "unit_role": self.unit_role,
            "status": self.status,
            "apartment": self.apartment,
            "block": self.block,
            "owner_id": self.owner_id,
            "is_first_login": self.is_first_login,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }
        if include_account:
            data["account"] = self.account.to_dict() if self.account else None
        if include_dependents:
            data["dependents"] = [d.to_dict() for d in self.dependents]
        return data


class ResidentAccount(db.Model):
    """
    Tab ledger of one resident: balance is the amount currently owed.

    FIADO sales raise the balance and must keep it <= credit_limit.
    """
    __tablename__ = "resident_accounts"
    __table_args__ = (
        db.CheckConstraint("credit_limit >= 0", name="ck_accounts_credit_limit_non_negative"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    resident_id = db.Column(db.String(36), db.ForeignKey("residents.id"), nullable=False, unique=True)

    balance = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    credit_limit = db.Column(db.Numeric(10, 2), nullable=False, default=500)
    status = db.Column(db.String(16), nullable=False, default=ACCOUNT_ACTIVE)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    resident = db.relationship("Resident", backref=db.backref("account", uselist=False, lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_blocked(self) -> bool:
        return self.status == ACCOUNT_BLOCKED

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "resident_id": self.resident_id,
            "balance": money(self.balance),
            "credit_limit": money(self.credit_limit),
            "status": self.status,
            "updated_at": to_utc_z(self.updated_at),
        }
