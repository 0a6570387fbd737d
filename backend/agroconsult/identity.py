# Overview: Caller identity resolved once at the authentication boundary.

"""
Caller identities.

A request is made by exactly one of four principal kinds. The identity is
built by session_service.validate_session() and passed as an opaque value into
every service call; services never re-derive the role from loose strings.

    AdminIdentity        staff administrator
    AnalystIdentity      staff analyst (assigned to companies via Company.analyst_id)
    CompanyIdentity      a company logged in as itself (the company "owner" account)
    CompanyUserIdentity  a sub-user of a company

Recipient keys are the (recipient_type, recipient_id) pairs whose
notification deliveries the identity may read and act on.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar


RECIPIENT_COMPANY = "company"
RECIPIENT_COMPANY_USER = "company_user"
RECIPIENT_ANALYST = "analyst"
VALID_RECIPIENT_TYPES = {RECIPIENT_COMPANY, RECIPIENT_COMPANY_USER, RECIPIENT_ANALYST}

PRINCIPAL_USER = "user"
PRINCIPAL_COMPANY = "company"
PRINCIPAL_COMPANY_USER = "company_user"
VALID_PRINCIPAL_TYPES = {PRINCIPAL_USER, PRINCIPAL_COMPANY, PRINCIPAL_COMPANY_USER}


class CallerIdentity:
    role: ClassVar[str] = ""
    principal_type: ClassVar[str] = ""
    id: str

    @property
    def company_id(self) -> str | None:
        return None

    @property
    def is_staff(self) -> bool:
        return False

    def recipient_keys(self) -> list[tuple[str, str]]:
        return []

    def may_act_as(self, recipient_type: str, recipient_id: str) -> bool:
        return (recipient_type, recipient_id) in self.recipient_keys()

    def to_dict(self) -> dict:
        return {"role": self.role, "id": self.id, "company_id": self.company_id}


@dataclass(frozen=True)
class AdminIdentity(CallerIdentity):
    id: str
    role: ClassVar[str] = "admin"
    principal_type: ClassVar[str] = PRINCIPAL_USER

    @property
    def is_staff(self) -> bool:
        return True


@dataclass(frozen=True)
class AnalystIdentity(CallerIdentity):
    id: str
    role: ClassVar[str] = "analyst"
    principal_type: ClassVar[str] = PRINCIPAL_USER

    @property
    def is_staff(self) -> bool:
        return True

    def recipient_keys(self) -> list[tuple[str, str]]:
        return [(RECIPIENT_ANALYST, self.id)]


@dataclass(frozen=True)
class CompanyIdentity(CallerIdentity):
    id: str
    role: ClassVar[str] = "client"
    principal_type: ClassVar[str] = PRINCIPAL_COMPANY

    @property
    def company_id(self) -> str | None:
        return self.id

    def recipient_keys(self) -> list[tuple[str, str]]:
        return [(RECIPIENT_COMPANY, self.id)]


@dataclass(frozen=True)
class CompanyUserIdentity(CallerIdentity):
    id: str
    employer_id: str
    role: ClassVar[str] = "company_user"
    principal_type: ClassVar[str] = PRINCIPAL_COMPANY_USER

    @property
    def company_id(self) -> str | None:
        return self.employer_id

    def recipient_keys(self) -> list[tuple[str, str]]:
        # Sub-users see their own deliveries and their employer's.
        return [
            (RECIPIENT_COMPANY_USER, self.id),
            (RECIPIENT_COMPANY, self.employer_id),
        ]
