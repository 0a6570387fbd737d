# Overview: Service-layer operations for session; bearer tokens resolved to caller identities.

"""
Session Token Management Service

WHY: Every request carries one bearer token. The token is resolved once, here,
into a CallerIdentity; services receive that identity and never look at raw
roles or ids from the request.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage (fast, one-way)
- Absolute timeout (SESSION_TTL_HOURS, default 24)
- Revocable on logout or when the principal is deactivated
- Identity is rebuilt from the principal's current record on each request,
  so a company user moved to another company never keeps the old tenant
"""

import hashlib
import secrets
from datetime import timedelta

from flask import current_app

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..identity import (
    AdminIdentity,
    AnalystIdentity,
    CallerIdentity,
    CompanyIdentity,
    CompanyUserIdentity,
    PRINCIPAL_COMPANY,
    PRINCIPAL_COMPANY_USER,
    PRINCIPAL_USER,
    VALID_PRINCIPAL_TYPES,
)
from ..models import Company, CompanyUser, SessionToken, User
from ..time_utils import coerce_datetime, utcnow


# Deleted by cleanup once expired or revoked for this long
SESSION_RETENTION = timedelta(days=30)


def generate_token() -> str:
    """64-character hex string; the plaintext token sent to the client, never stored."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    Hash token for database storage using SHA-256.

    WHY SHA-256 not bcrypt: Tokens are already high-entropy (unlike passwords).
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _session_ttl() -> timedelta:
    return timedelta(hours=int(current_app.config.get("SESSION_TTL_HOURS", 24)))


def _load_identity(principal_type: str, principal_id: str) -> CallerIdentity | None:
    """Build the identity from the principal's current record; None if gone or inactive."""
    if principal_type == PRINCIPAL_USER:
        user = db.session.query(User).filter_by(id=principal_id).first()
        if not user or not user.is_active:
            return None
        if user.role == "admin":
            return AdminIdentity(id=user.id)
        if user.role == "analyst":
            return AnalystIdentity(id=user.id)
        return None

    if principal_type == PRINCIPAL_COMPANY:
        company = db.session.query(Company).filter_by(id=principal_id).first()
        if not company or not company.is_active:
            return None
        return CompanyIdentity(id=company.id)

    if principal_type == PRINCIPAL_COMPANY_USER:
        member = db.session.query(CompanyUser).filter_by(id=principal_id).first()
        if not member or not member.is_active:
            return None
        company = db.session.query(Company).filter_by(id=member.company_id).first()
        if not company or not company.is_active:
            return None
        return CompanyUserIdentity(id=member.id, employer_id=member.company_id)

    return None


def issue_session(principal_type: str, principal_id: str) -> tuple[SessionToken, str]:
    """
    Create a session for a principal.

    Returns (session_record, plaintext_token). Client receives the plaintext
    token, the database stores only the hash.
    """
    if principal_type not in VALID_PRINCIPAL_TYPES:
        raise ValidationError(
            f"principal_type must be one of: {', '.join(sorted(VALID_PRINCIPAL_TYPES))}"
        )
    if _load_identity(principal_type, principal_id) is None:
        raise NotFoundError("Principal not found or inactive")

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        principal_type=principal_type,
        principal_id=principal_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _session_ttl(),
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()

    current_app.logger.info("Session issued for %s %s", principal_type, principal_id)
    return session, plaintext_token


def validate_session(token: str) -> CallerIdentity | None:
    """
    Resolve a bearer token to the caller identity.

    Returns None if the token is unknown, expired or revoked, or if the
    principal has been deactivated (in which case the session is revoked).
    """
    if not token:
        return None

    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()
    if not session:
        return None

    now = utcnow()
    if coerce_datetime(session.expires_at) < now:
        return None

    identity = _load_identity(session.principal_type, session.principal_id)
    if identity is None:
        session.is_revoked = True
        session.revoked_at = now
        session.revoked_reason = "Principal deactivated"
        db.session.commit()
        return None

    session.last_used_at = now
    db.session.commit()
    return identity


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """Returns True if a live session was revoked, False if not found."""
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()
    if not session:
        return False

    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason
    db.session.commit()
    return True


def cleanup_expired_sessions() -> int:
    """
    Delete expired and revoked sessions older than 30 days.

    Run this periodically (flask sessions cleanup).
    """
    now = utcnow()
    deleted = db.session.query(SessionToken).filter(
        db.or_(
            SessionToken.expires_at < now,
            SessionToken.is_revoked.is_(True),
        ),
        SessionToken.created_at < now - SESSION_RETENTION,
    ).delete(synchronize_session=False)

    db.session.commit()
    return deleted
