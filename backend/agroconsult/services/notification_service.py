# Overview: Notification event store and per-recipient delivery fan-out.

"""
Notification Invariants (authoritative)

Events:
- One NotificationEvent per occurrence; append-only, never updated.

Deliveries:
- Fan-out writes the event and one delivery per surviving recipient in ONE
  transaction. A failure anywhere rolls back all of them: an event without
  deliveries is invisible to everyone and can never be cleaned up.
- Exactly one delivery per (event, recipient_type, recipient_id).
- No deliveries are added to an existing event after fan-out.
- Recipients may only mark read / archive deliveries addressed to one of
  their own recipient keys (see identity.CallerIdentity.recipient_keys).
- Archive is terminal; archived deliveries drop out of listings and counts.

Plan gating:
- The {company, company_id} recipient is dropped when the company's plan
  denies the category. No recipients left -> nothing is written, None returned.
"""

from __future__ import annotations

from typing import Iterable

from flask import current_app
from sqlalchemy import and_, false, or_

from ..errors import ForbiddenError, NotFoundError, ValidationError
from ..extensions import db
from ..identity import CallerIdentity, RECIPIENT_COMPANY, VALID_RECIPIENT_TYPES
from ..models import NotificationDelivery, NotificationEvent
from ..serialization import dumps_or_none
from ..signals import notification_created, publish
from ..time_utils import coerce_datetime, utcnow
from .concurrency import affected_rows, run_with_retry
from .plan_permission_service import CATEGORY_CAPABILITIES, company_may_receive


VALID_CATEGORIES = set(CATEGORY_CAPABILITIES)
VALID_CREATOR_TYPES = {"system", "analyst", "admin"}


def _normalize_recipients(recipients: Iterable) -> list[tuple[str, str]]:
    """
    Accept {"recipient_type", "recipient_id"} dicts or (type, id) pairs.

    Order is preserved and duplicates collapse to one entry.
    """
    seen: set[tuple[str, str]] = set()
    normalized: list[tuple[str, str]] = []
    for recipient in recipients or ():
        if isinstance(recipient, dict):
            recipient_type = recipient.get("recipient_type")
            recipient_id = recipient.get("recipient_id")
        else:
            try:
                recipient_type, recipient_id = recipient
            except (TypeError, ValueError):
                raise ValidationError("recipients must be (recipient_type, recipient_id) pairs")

        if recipient_type not in VALID_RECIPIENT_TYPES:
            raise ValidationError(
                f"recipient_type must be one of: {', '.join(sorted(VALID_RECIPIENT_TYPES))}"
            )
        if not recipient_id:
            raise ValidationError("recipient_id is required")

        key = (recipient_type, str(recipient_id))
        if key in seen:
            continue
        seen.add(key)
        normalized.append(key)
    return normalized


def filter_recipients_by_plan(
    company_id: str | None,
    category: str,
    recipients: list[tuple[str, str]],
) -> list[tuple[str, str]]:
    """Drop the company's own recipient entry when its plan denies the category."""
    if not company_id or CATEGORY_CAPABILITIES.get(category) is None:
        return recipients
    if company_may_receive(company_id, category):
        return recipients
    current_app.logger.info(
        "Plan for company %s excludes %s notifications; skipping company delivery",
        company_id,
        category,
    )
    return [r for r in recipients if r != (RECIPIENT_COMPANY, str(company_id))]


def _new_delivery(event: NotificationEvent, recipient: tuple[str, str]) -> NotificationDelivery:
    recipient_type, recipient_id = recipient
    return NotificationDelivery(
        event_id=event.id,
        recipient_type=recipient_type,
        recipient_id=recipient_id,
        is_read=False,
        is_archived=False,
    )


def _insert_event_with_deliveries(
    *,
    category: str,
    title: str,
    message: str,
    company_id: str | None,
    analyst_id: str | None,
    created_by_type: str,
    created_by_id: str | None,
    link_url: str | None,
    data,
    recipients: list[tuple[str, str]],
) -> NotificationEvent:
    """Core fan-out writes without commit. Caller owns the transaction."""
    event = NotificationEvent(
        company_id=company_id,
        analyst_id=analyst_id,
        created_by_type=created_by_type,
        created_by_id=created_by_id,
        category=category,
        title=title,
        message=message or "",
        link_url=link_url,
        data=dumps_or_none(data),
    )
    db.session.add(event)
    db.session.flush()

    for recipient in recipients:
        db.session.add(_new_delivery(event, recipient))
    db.session.flush()
    return event


def create_notification_event(
    *,
    category: str,
    title: str,
    message: str = "",
    company_id: str | None = None,
    analyst_id: str | None = None,
    created_by_type: str = "system",
    created_by_id: str | None = None,
    link_url: str | None = None,
    data=None,
    recipients: Iterable = (),
    commit: bool = True,
) -> str | None:
    """
    Create one event and fan it out to its eligible recipients.

    Returns the event id, or None when no recipient is eligible (not an error).

    commit=False flushes into the caller's open transaction instead of
    committing, so a business change and its notification land together. The
    caller then commits and is responsible for publishing the realtime signal.
    """
    if category not in VALID_CATEGORIES:
        raise ValidationError(f"category must be one of: {', '.join(sorted(VALID_CATEGORIES))}")
    if created_by_type not in VALID_CREATOR_TYPES:
        raise ValidationError("created_by_type must be system, analyst, or admin")
    if not title or not str(title).strip():
        raise ValidationError("title is required")

    normalized = _normalize_recipients(recipients)
    eligible = filter_recipients_by_plan(company_id, category, normalized)
    if not eligible:
        return None

    fields = dict(
        category=category,
        title=str(title).strip(),
        message=message,
        company_id=company_id,
        analyst_id=analyst_id,
        created_by_type=created_by_type,
        created_by_id=created_by_id,
        link_url=link_url,
        data=data,
        recipients=eligible,
    )

    if not commit:
        return _insert_event_with_deliveries(**fields).id

    def _op():
        event = _insert_event_with_deliveries(**fields)
        db.session.commit()
        return event.id

    event_id = run_with_retry(_op)
    publish(notification_created, event_id=event_id, category=category, recipients=eligible)
    return event_id


def get_event(event_id: str) -> NotificationEvent:
    event = db.session.query(NotificationEvent).filter_by(id=event_id).first()
    if event is None:
        raise NotFoundError("Notification event not found")
    return event


def _recipient_filter(identity: CallerIdentity):
    keys = identity.recipient_keys()
    if not keys:
        return false()
    return or_(*[
        and_(
            NotificationDelivery.recipient_type == recipient_type,
            NotificationDelivery.recipient_id == recipient_id,
        )
        for recipient_type, recipient_id in keys
    ])


def _clamp_limit(limit) -> int:
    default = current_app.config.get("NOTIFICATION_PAGE_LIMIT", 30)
    maximum = current_app.config.get("NOTIFICATION_MAX_LIMIT", 100)
    if limit is None or limit == "":
        return default
    try:
        value = int(limit)
    except (TypeError, ValueError):
        raise ValidationError("limit must be an integer")
    if value <= 0:
        raise ValidationError("limit must be positive")
    return min(value, maximum)


def list_deliveries(
    identity: CallerIdentity,
    *,
    unread_only: bool = False,
    limit=None,
    before=None,
    before_id: str | None = None,
    include_archived: bool = False,
) -> dict:
    """
    Deliveries addressed to any of the caller's recipient keys, newest first.

    - unread_only: only unread AND unarchived deliveries
    - before / before_id: keyset cursor taken from the last row of the previous
      page (its delivered_at and delivery_id). Without before_id, only rows
      created strictly before `before` are returned.
    - include_archived: archived rows are excluded unless explicitly asked for
    """
    page_size = _clamp_limit(limit)
    if not identity.recipient_keys():
        return {"deliveries": [], "has_more": False}

    q = (
        db.session.query(NotificationDelivery)
        .join(NotificationEvent, NotificationEvent.id == NotificationDelivery.event_id)
        .filter(_recipient_filter(identity))
    )

    if unread_only:
        q = q.filter(NotificationDelivery.is_read.is_(False), NotificationDelivery.is_archived.is_(False))
    elif not include_archived:
        q = q.filter(NotificationDelivery.is_archived.is_(False))

    if before is not None and before != "":
        try:
            before_dt = coerce_datetime(before)
        except ValueError:
            raise ValidationError("before must be an ISO-8601 datetime")
        if before_id:
            q = q.filter(or_(
                NotificationDelivery.created_at < before_dt,
                and_(NotificationDelivery.created_at == before_dt, NotificationDelivery.id < before_id),
            ))
        else:
            q = q.filter(NotificationDelivery.created_at < before_dt)

    rows = (
        q.order_by(NotificationDelivery.created_at.desc(), NotificationDelivery.id.desc())
        .limit(page_size)
        .all()
    )
    return {
        "deliveries": [row.to_dict() for row in rows],
        "has_more": len(rows) == page_size,
    }


def unread_count(identity: CallerIdentity) -> int:
    if not identity.recipient_keys():
        return 0
    return (
        db.session.query(NotificationDelivery)
        .filter(
            _recipient_filter(identity),
            NotificationDelivery.is_archived.is_(False),
            NotificationDelivery.is_read.is_(False),
        )
        .count()
    )


def _get_owned_delivery(delivery_id: str, identity: CallerIdentity) -> NotificationDelivery:
    delivery = db.session.query(NotificationDelivery).filter_by(id=delivery_id).first()
    if delivery is None:
        raise NotFoundError("Notification not found")
    if not identity.may_act_as(delivery.recipient_type, delivery.recipient_id):
        current_app.logger.warning(
            "%s %s denied access to delivery %s", identity.role, identity.id, delivery_id
        )
        raise ForbiddenError("Access denied")
    return delivery


def mark_read(delivery_id: str, identity: CallerIdentity) -> dict:
    """
    Mark one delivery read. Idempotent: read_at is stamped on the first call
    only and left untouched afterwards.
    """
    def _op():
        delivery = _get_owned_delivery(delivery_id, identity)
        if not delivery.is_read:
            delivery.is_read = True
            delivery.read_at = utcnow()
            db.session.commit()
        return delivery.to_dict()

    return run_with_retry(_op)


def mark_all_read(identity: CallerIdentity) -> int:
    """Mark every unread, unarchived delivery of the caller read. Returns rows changed."""
    if not identity.recipient_keys():
        return 0

    def _op():
        result = (
            db.session.query(NotificationDelivery)
            .filter(
                _recipient_filter(identity),
                NotificationDelivery.is_archived.is_(False),
                NotificationDelivery.is_read.is_(False),
            )
            .update({"is_read": True, "read_at": utcnow()}, synchronize_session=False)
        )
        db.session.commit()
        return affected_rows(result)

    return run_with_retry(_op)


def archive(delivery_id: str, identity: CallerIdentity) -> dict:
    """Archive one delivery. There is no unarchive."""
    def _op():
        delivery = _get_owned_delivery(delivery_id, identity)
        if not delivery.is_archived:
            delivery.is_archived = True
            db.session.commit()
        return delivery.to_dict()

    return run_with_retry(_op)


