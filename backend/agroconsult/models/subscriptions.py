from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .common import generate_id


class SubscriptionPlan(db.Model):
    """
    Billing plan. ``permissions`` is JSON text: capability name -> bool,
    e.g. {"canViewGoals": true, "canViewInventory": false}.

    Stored as opaque text and decoded defensively by plan_permission_service.
    """
    __tablename__ = "subscription_plans"

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    name = db.Column(db.String(128), nullable=False)
    permissions = db.Column(db.Text, nullable=True)
    max_users = db.Column(db.Integer, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<SubscriptionPlan id={self.id} name={self.name!r}>"


class Subscription(db.Model):
    """
    A company's subscription to a plan.

    Only rows in status "active" or "trialing" grant plan capabilities; the
    most recently created one wins.
    """
    __tablename__ = "subscriptions"
    __table_args__ = (
        db.Index("ix_subscriptions_company_status", "company_id", "status"),
    )

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    company_id = db.Column(db.String(36), db.ForeignKey("companies.id"), nullable=False, index=True)
    plan_id = db.Column(db.String(36), db.ForeignKey("subscription_plans.id"), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="active")  # active, trialing, past_due, canceled, incomplete

    current_period_end = db.Column(db.DateTime(timezone=True), nullable=True)
    trial_end = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    plan = db.relationship("SubscriptionPlan")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "plan_id": self.plan_id,
            "status": self.status,
            "current_period_end": to_utc_z(self.current_period_end),
            "trial_end": to_utc_z(self.trial_end),
            "created_at": to_utc_z(self.created_at),
        }
