from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .common import generate_id


class Company(db.Model):
    """
    Tenant root: every client business is a Company.

    MULTI-TENANT: stocks, sub-users, subscriptions and adjustment requests are
    scoped to a company. A company may also log in as itself (role "client");
    that principal is the company owner for approval purposes.

    analyst_id is the staff analyst assigned to the company. Only that analyst
    (or an admin) may approve the company's inventory adjustment requests.
    """
    __tablename__ = "companies"

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    name = db.Column(db.String(255), nullable=False)
    company_name = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=True, unique=True)

    analyst_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    analyst = db.relationship("User", foreign_keys=[analyst_id])

    def __repr__(self) -> str:
        return f"<Company id={self.id} name={self.name!r}>"

    @property
    def display_name(self) -> str:
        return self.company_name or self.name

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "company_name": self.company_name,
            "email": self.email,
            "analyst_id": self.analyst_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class CompanyUser(db.Model):
    """Sub-user of a company. Creates adjustment requests; never approves them."""
    __tablename__ = "company_users"

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    company_id = db.Column(db.String(36), db.ForeignKey("companies.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    company = db.relationship("Company", backref=db.backref("users", lazy=True))

    def __repr__(self) -> str:
        return f"<CompanyUser id={self.id} company_id={self.company_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "name": self.name,
            "email": self.email,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class User(db.Model):
    """Staff account: role is "admin" or "analyst"."""
    __tablename__ = "users"

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True)
    role = db.Column(db.String(16), nullable=False, default="analyst", index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<User id={self.id} role={self.role!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
