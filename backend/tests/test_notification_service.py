# Overview: Pytest coverage for notification fan-out, listing and read/archive state.

"""
Notification Service Tests

Covers:
1. Fan-out writes one event + one delivery per recipient, atomically
2. Plan gating drops only the company recipient
3. Listing, unread counts and cursor paging per caller identity
4. mark_read / mark_all_read / archive state transitions and ownership
"""

from datetime import timedelta

import pytest

from agroconsult.errors import ForbiddenError, NotFoundError, ValidationError
from agroconsult.identity import AdminIdentity, CompanyIdentity, CompanyUserIdentity
from agroconsult.models import NotificationDelivery, NotificationEvent
from agroconsult.services import notification_service
from agroconsult.services.notification_service import (
    archive,
    create_notification_event,
    filter_recipients_by_plan,
    get_event,
    list_deliveries,
    mark_all_read,
    mark_read,
    unread_count,
)
from agroconsult.signals import notification_created
from conftest import subscribe


def _notify(company, recipients, category="alert", **kwargs):
    return create_notification_event(
        category=category,
        title=kwargs.pop("title", "Frost warning"),
        message=kwargs.pop("message", "Low temperatures expected"),
        company_id=company.id if company else None,
        recipients=recipients,
        **kwargs,
    )


# =============================================================================
# FAN-OUT
# =============================================================================


class TestFanOut:

    def test_one_delivery_per_recipient(self, db_session, company_a, member_a, analyst_user):
        event_id = _notify(company_a, [
            ("company", company_a.id),
            ("company_user", member_a.id),
            {"recipient_type": "analyst", "recipient_id": analyst_user.id},
        ])

        assert event_id is not None
        deliveries = db_session.query(NotificationDelivery).filter_by(event_id=event_id).all()
        assert sorted(d.recipient_type for d in deliveries) == ["analyst", "company", "company_user"]
        assert all(not d.is_read and not d.is_archived for d in deliveries)

    def test_duplicate_recipients_collapse(self, db_session, company_a):
        event_id = _notify(company_a, [("company", company_a.id), ("company", company_a.id)])
        assert db_session.query(NotificationDelivery).filter_by(event_id=event_id).count() == 1

    def test_empty_recipients_writes_nothing(self, db_session, company_a):
        assert _notify(company_a, []) is None
        assert db_session.query(NotificationEvent).count() == 0

    def test_payload_round_trips(self, db_session, company_a):
        payload = {"field": "North", "readings": [1.5, 2.0], "nested": {"ok": True}}
        event_id = _notify(company_a, [("company", company_a.id)], data=payload)
        event = db_session.get(NotificationEvent, event_id)
        assert event.payload == payload

    def test_missing_payload_reads_as_null(self, db_session, company_a):
        event_id = _notify(company_a, [("company", company_a.id)])
        event = db_session.get(NotificationEvent, event_id)
        assert event.data is None
        assert event.payload is None

    def test_malformed_payload_reads_as_null(self, db_session, company_a):
        event_id = _notify(company_a, [("company", company_a.id)])
        event = db_session.get(NotificationEvent, event_id)
        event.data = "{truncated"
        db_session.commit()
        assert event.to_dict()["data"] is None

    def test_fan_out_is_atomic(self, db_session, company_a, member_a, monkeypatch):
        real_new_delivery = notification_service._new_delivery
        calls = {"n": 0}

        def failing_new_delivery(event, recipient):
            calls["n"] += 1
            if calls["n"] == 2:
                raise RuntimeError("disk full")
            return real_new_delivery(event, recipient)

        monkeypatch.setattr(notification_service, "_new_delivery", failing_new_delivery)

        with pytest.raises(RuntimeError):
            _notify(company_a, [("company", company_a.id), ("company_user", member_a.id)])

        assert db_session.query(NotificationEvent).count() == 0
        assert db_session.query(NotificationDelivery).count() == 0

    @pytest.mark.parametrize("kwargs", [
        {"category": "gossip"},
        {"title": "   "},
        {"created_by_type": "company"},
    ])
    def test_invalid_event_rejected(self, db_session, company_a, kwargs):
        with pytest.raises(ValidationError):
            _notify(company_a, [("company", company_a.id)], **kwargs)

    def test_invalid_recipient_type_rejected(self, db_session, company_a):
        with pytest.raises(ValidationError):
            _notify(company_a, [("robot", "r1")])

    def test_signal_published_after_commit(self, db_session, app, company_a):
        received = []

        def receiver(sender, **payload):
            received.append(payload)

        with notification_created.connected_to(receiver, app):
            event_id = _notify(company_a, [("company", company_a.id)])

        assert received == [{"event_id": event_id, "category": "alert", "recipients": [("company", company_a.id)]}]

    def test_failing_receiver_does_not_break_creation(self, db_session, app, company_a):
        def receiver(sender, **payload):
            raise RuntimeError("socket closed")

        with notification_created.connected_to(receiver, app):
            event_id = _notify(company_a, [("company", company_a.id)])

        assert event_id is not None


# =============================================================================
# PLAN GATING
# =============================================================================


class TestPlanGating:

    def test_denied_category_skips_company_only(self, db_session, company_a, member_a, analyst_user):
        subscribe(company_a, {"canViewAlerts": False})
        event_id = _notify(company_a, [
            ("company", company_a.id),
            ("company_user", member_a.id),
            ("analyst", analyst_user.id),
        ])

        recipients = {
            d.recipient_type
            for d in db_session.query(NotificationDelivery).filter_by(event_id=event_id)
        }
        assert recipients == {"company_user", "analyst"}

    def test_denied_company_only_recipient_writes_nothing(self, db_session, company_a):
        subscribe(company_a, {"canViewAlerts": False})
        assert _notify(company_a, [("company", company_a.id)]) is None
        assert db_session.query(NotificationEvent).count() == 0

    def test_system_category_bypasses_plan(self, db_session, company_a):
        subscribe(company_a, {})
        assert _notify(company_a, [("company", company_a.id)], category="system") is not None

    def test_no_company_id_means_no_gating(self, db_session, company_a):
        subscribe(company_a, {"canViewAlerts": False})
        assert _notify(None, [("company", company_a.id)]) is not None

    def test_malformed_plan_fails_open(self, db_session, company_a):
        subscribe(company_a, "{{{")
        assert _notify(company_a, [("company", company_a.id)]) is not None


# =============================================================================
# LISTING
# =============================================================================


class TestListing:

    def test_company_user_sees_own_and_company_deliveries(self, db_session, company_a, member_a, company_b):
        _notify(company_a, [("company_user", member_a.id)], title="personal")
        _notify(company_a, [("company", company_a.id)], title="company-wide")
        _notify(company_b, [("company", company_b.id)], title="other tenant")

        identity = CompanyUserIdentity(id=member_a.id, employer_id=company_a.id)
        titles = {d["title"] for d in list_deliveries(identity)["deliveries"]}
        assert titles == {"personal", "company-wide"}

    def test_company_does_not_see_sub_user_deliveries(self, db_session, company_a, member_a):
        _notify(company_a, [("company_user", member_a.id)], title="personal")
        result = list_deliveries(CompanyIdentity(id=company_a.id))
        assert result["deliveries"] == []

    def test_admin_sees_nothing(self, db_session, company_a, admin_user):
        _notify(company_a, [("company", company_a.id)])
        assert list_deliveries(AdminIdentity(id=admin_user.id)) == {"deliveries": [], "has_more": False}
        assert unread_count(AdminIdentity(id=admin_user.id)) == 0

    def test_newest_first_with_limit_and_cursor(self, db_session, owner_a, company_a):
        ids = [_notify(company_a, [("company", company_a.id)], title=f"n{i}") for i in range(3)]
        base = db_session.query(NotificationDelivery).first().created_at
        for offset, event_id in enumerate(ids):
            delivery = db_session.query(NotificationDelivery).filter_by(event_id=event_id).one()
            delivery.created_at = base + timedelta(minutes=offset)
        db_session.commit()

        first_page = list_deliveries(owner_a, limit=2)
        assert [d["title"] for d in first_page["deliveries"]] == ["n2", "n1"]
        assert first_page["has_more"] is True

        cursor = first_page["deliveries"][-1]["delivered_at"]
        second_page = list_deliveries(owner_a, limit=2, before=cursor)
        assert [d["title"] for d in second_page["deliveries"]] == ["n0"]
        assert second_page["has_more"] is False

    def test_cursor_keeps_rows_from_the_same_second(self, db_session, owner_a, company_a):
        ids = [_notify(company_a, [("company", company_a.id)], title=f"n{i}") for i in range(5)]
        base = db_session.query(NotificationDelivery).first().created_at.replace(microsecond=0)
        for offset, event_id in enumerate(ids):
            delivery = db_session.query(NotificationDelivery).filter_by(event_id=event_id).one()
            delivery.created_at = base + timedelta(microseconds=1000 * offset)
        db_session.commit()

        seen = []
        page = list_deliveries(owner_a, limit=2)
        while True:
            seen.extend(d["title"] for d in page["deliveries"])
            if not page["has_more"]:
                break
            page = list_deliveries(owner_a, limit=2, before=page["deliveries"][-1]["delivered_at"])

        assert seen == ["n4", "n3", "n2", "n1", "n0"]

    def test_keyset_cursor_with_identical_timestamps(self, db_session, owner_a, company_a):
        for i in range(5):
            _notify(company_a, [("company", company_a.id)], title=f"n{i}")
        stamp = db_session.query(NotificationDelivery).first().created_at
        for delivery in db_session.query(NotificationDelivery).all():
            delivery.created_at = stamp
        db_session.commit()

        seen = []
        page = list_deliveries(owner_a, limit=2)
        while True:
            seen.extend(d["delivery_id"] for d in page["deliveries"])
            if not page["has_more"]:
                break
            last = page["deliveries"][-1]
            page = list_deliveries(owner_a, limit=2, before=last["delivered_at"], before_id=last["delivery_id"])

        all_ids = [d.id for d in db_session.query(NotificationDelivery).all()]
        assert seen == sorted(all_ids, reverse=True)

    def test_limit_is_clamped(self, db_session, owner_a, company_a, app):
        for i in range(3):
            _notify(company_a, [("company", company_a.id)], title=f"n{i}")
        app.config["NOTIFICATION_MAX_LIMIT"] = 2
        try:
            assert len(list_deliveries(owner_a, limit=50)["deliveries"]) == 2
        finally:
            app.config["NOTIFICATION_MAX_LIMIT"] = 100

    @pytest.mark.parametrize("limit", ["abc", 0, -5])
    def test_bad_limit_rejected(self, db_session, owner_a, limit):
        with pytest.raises(ValidationError):
            list_deliveries(owner_a, limit=limit)

    def test_bad_cursor_rejected(self, db_session, owner_a):
        with pytest.raises(ValidationError):
            list_deliveries(owner_a, before="yesterday-ish")

    def test_unread_only_and_count(self, db_session, owner_a, company_a):
        first = _notify(company_a, [("company", company_a.id)], title="first")
        _notify(company_a, [("company", company_a.id)], title="second")
        delivery = db_session.query(NotificationDelivery).filter_by(event_id=first).one()
        mark_read(delivery.id, owner_a)

        unread = list_deliveries(owner_a, unread_only=True)["deliveries"]
        assert [d["title"] for d in unread] == ["second"]
        assert unread_count(owner_a) == 1

    def test_delivery_dict_shape(self, db_session, owner_a, company_a):
        _notify(company_a, [("company", company_a.id)], data={"k": 1}, link_url="http://x/y")
        row = list_deliveries(owner_a)["deliveries"][0]
        assert row["type"] == "alert"
        assert row["data"] == {"k": 1}
        assert row["link_url"] == "http://x/y"
        assert row["recipient_type"] == "company"
        assert row["is_read"] is False


# =============================================================================
# READ / ARCHIVE
# =============================================================================


class TestReadState:

    def _delivery(self, db_session, event_id, recipient_type):
        return db_session.query(NotificationDelivery).filter_by(
            event_id=event_id, recipient_type=recipient_type
        ).one()

    def test_mark_read_is_idempotent(self, db_session, owner_a, company_a):
        event_id = _notify(company_a, [("company", company_a.id)])
        delivery = self._delivery(db_session, event_id, "company")

        first = mark_read(delivery.id, owner_a)
        second = mark_read(delivery.id, owner_a)

        assert first["is_read"] is True
        assert first["read_at"] is not None
        assert second["read_at"] == first["read_at"]

    def test_company_user_can_read_company_delivery(self, db_session, requester_a, company_a):
        event_id = _notify(company_a, [("company", company_a.id)])
        delivery = self._delivery(db_session, event_id, "company")
        assert mark_read(delivery.id, requester_a)["is_read"] is True

    def test_foreign_delivery_is_forbidden(self, db_session, owner_b, company_a):
        event_id = _notify(company_a, [("company", company_a.id)])
        delivery = self._delivery(db_session, event_id, "company")

        with pytest.raises(ForbiddenError):
            mark_read(delivery.id, owner_b)
        with pytest.raises(ForbiddenError):
            archive(delivery.id, owner_b)

        db_session.refresh(delivery)
        assert delivery.is_read is False
        assert delivery.is_archived is False

    def test_unknown_delivery_not_found(self, db_session, owner_a):
        with pytest.raises(NotFoundError):
            mark_read("does-not-exist", owner_a)

    def test_mark_all_read_only_touches_own(self, db_session, requester_a, company_a, company_b):
        _notify(company_a, [("company", company_a.id)])
        _notify(company_a, [("company_user", requester_a.id)])
        _notify(company_b, [("company", company_b.id)])

        assert mark_all_read(requester_a) == 2
        assert unread_count(requester_a) == 0
        assert unread_count(CompanyIdentity(id=company_b.id)) == 1
        assert mark_all_read(requester_a) == 0

    def test_archive_hides_delivery(self, db_session, owner_a, company_a):
        event_id = _notify(company_a, [("company", company_a.id)])
        delivery = self._delivery(db_session, event_id, "company")

        result = archive(delivery.id, owner_a)

        assert result["is_archived"] is True
        assert list_deliveries(owner_a)["deliveries"] == []
        assert unread_count(owner_a) == 0
        assert len(list_deliveries(owner_a, include_archived=True)["deliveries"]) == 1

    def test_mark_all_read_skips_archived(self, db_session, owner_a, company_a):
        event_id = _notify(company_a, [("company", company_a.id)])
        delivery = self._delivery(db_session, event_id, "company")
        archive(delivery.id, owner_a)

        assert mark_all_read(owner_a) == 0
        db_session.refresh(delivery)
        assert delivery.is_read is False


class TestHelpers:

    def test_filter_keeps_other_recipients(self, db_session, company_a, member_a, analyst_user):
        subscribe(company_a, {"canViewAlerts": False})
        recipients = [("company", company_a.id), ("company_user", member_a.id), ("analyst", analyst_user.id)]
        kept = filter_recipients_by_plan(company_a.id, "alert", recipients)
        assert kept == [("company_user", member_a.id), ("analyst", analyst_user.id)]

    def test_filter_without_company_is_noop(self, db_session, member_a):
        recipients = [("company_user", member_a.id)]
        assert filter_recipients_by_plan(None, "alert", recipients) == recipients

    def test_get_event(self, db_session, company_a):
        event_id = _notify(company_a, [("company", company_a.id)])
        assert get_event(event_id).title == "Frost warning"
        with pytest.raises(NotFoundError):
            get_event("missing")
