from __future__ import annotations

from ..extensions import db


class SessionToken(db.Model):
    """
    Bearer session bound to one principal.

    principal_type is "user" (staff), "company" or "company_user". The caller
    identity is rebuilt from this row plus the principal's current record on
    every request, so deactivating a principal takes effect immediately.

    SECURITY NOTES:
    - Tokens stored hashed in database (SHA-256)
    - Absolute expiry set at issue time
    - Revocable
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        db.Index("ix_session_tokens_principal", "principal_type", "principal_id", "is_revoked"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    principal_type = db.Column(db.String(16), nullable=False)
    principal_id = db.Column(db.String(36), nullable=False)

    token_hash = db.Column(db.String(255), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=True)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<SessionToken id={self.id} {self.principal_type}:{self.principal_id}>"
