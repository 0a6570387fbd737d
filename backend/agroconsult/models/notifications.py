from __future__ import annotations

from ..extensions import db
from ..serialization import parse_or_default
from ..time_utils import to_utc_z, utcnow
from .common import generate_id


class NotificationEvent(db.Model):
    """
    Something notification-worthy happened.

    APPEND-ONLY: events are never updated or deleted. Visibility is tracked per
    recipient on NotificationDelivery; an event whose deliveries are all
    archived is simply no longer shown.

    ``data`` is opaque JSON text round-tripped to the client verbatim.
    """
    __tablename__ = "notification_events"
    __table_args__ = (
        db.Index("ix_notification_events_company_created", "company_id", "created_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    company_id = db.Column(db.String(36), nullable=True, index=True)
    analyst_id = db.Column(db.String(36), nullable=True, index=True)

    created_by_type = db.Column(db.String(16), nullable=False, default="system")  # system, analyst, admin
    created_by_id = db.Column(db.String(36), nullable=True)

    category = db.Column(db.String(32), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False, default="")
    link_url = db.Column(db.String(1024), nullable=True)
    data = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    deliveries = db.relationship("NotificationDelivery", back_populates="event", lazy=True)

    def __repr__(self) -> str:
        return f"<NotificationEvent id={self.id} category={self.category!r}>"

    @property
    def payload(self):
        return parse_or_default(self.data, None)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "analyst_id": self.analyst_id,
            "created_by_type": self.created_by_type,
            "created_by_id": self.created_by_id,
            "type": self.category,
            "title": self.title,
            "message": self.message,
            "link_url": self.link_url,
            "data": self.payload,
            "created_at": to_utc_z(self.created_at),
        }


class NotificationDelivery(db.Model):
    """
    One event delivered to one recipient.

    Exactly one row per (event_id, recipient_type, recipient_id), written at
    fan-out time only. Recipients may set is_read / is_archived; archive is
    terminal and rows are never hard-deleted.
    """
    __tablename__ = "notification_deliveries"
    __table_args__ = (
        db.UniqueConstraint("event_id", "recipient_type", "recipient_id", name="uq_delivery_event_recipient"),
        db.Index("ix_deliveries_recipient_state", "recipient_type", "recipient_id", "is_archived", "is_read"),
        db.Index("ix_deliveries_recipient_created", "recipient_type", "recipient_id", "created_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    event_id = db.Column(db.String(36), db.ForeignKey("notification_events.id"), nullable=False, index=True)

    recipient_type = db.Column(db.String(16), nullable=False)  # company, company_user, analyst
    recipient_id = db.Column(db.String(36), nullable=False)

    is_read = db.Column(db.Boolean, nullable=False, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)
    is_archived = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    event = db.relationship("NotificationEvent", back_populates="deliveries")

    def __repr__(self) -> str:
        return f"<NotificationDelivery id={self.id} {self.recipient_type}:{self.recipient_id}>"

    def to_dict(self) -> dict:
        event = self.event
        return {
            "delivery_id": self.id,
            "recipient_type": self.recipient_type,
            "recipient_id": self.recipient_id,
            "is_read": self.is_read,
            "read_at": to_utc_z(self.read_at),
            "is_archived": self.is_archived,
            "delivered_at": to_utc_z(self.created_at, keep_microseconds=True),
            "event_id": event.id,
            "type": event.category,
            "title": event.title,
            "message": event.message,
            "link_url": event.link_url,
            "data": event.payload,
            "event_created_at": to_utc_z(event.created_at),
        }
