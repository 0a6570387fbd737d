# Overview: Pytest coverage for plan capability resolution and category gating.

import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from agroconsult.extensions import db
from agroconsult.models import NotificationDelivery
from agroconsult.services import plan_permission_service
from agroconsult.services.notification_service import create_notification_event
from agroconsult.services.plan_permission_service import (
    DEFAULT_PLAN_CAPABILITIES,
    company_may_receive,
    resolve_plan_permissions,
)
from conftest import subscribe


class TestResolvePlanPermissions:

    def test_no_subscription_fails_open(self, db_session, company_a):
        assert resolve_plan_permissions(company_a.id) == dict(DEFAULT_PLAN_CAPABILITIES)

    def test_active_plan_is_used(self, db_session, company_a):
        subscribe(company_a, {"canViewInventory": False, "canViewGoals": True})
        perms = resolve_plan_permissions(company_a.id)
        assert perms == {"canViewInventory": False, "canViewGoals": True}

    def test_trialing_counts_as_entitled(self, db_session, company_a):
        subscribe(company_a, {"canViewReports": False}, status="trialing")
        assert resolve_plan_permissions(company_a.id) == {"canViewReports": False}

    def test_canceled_subscription_ignored(self, db_session, company_a):
        subscribe(company_a, {"canViewReports": False}, status="canceled")
        assert resolve_plan_permissions(company_a.id) == dict(DEFAULT_PLAN_CAPABILITIES)

    @pytest.mark.parametrize("raw", ["{broken", "[1, 2, 3]", "", None, '"just text"'])
    def test_unreadable_permissions_fail_open(self, db_session, company_a, raw):
        subscribe(company_a, raw)
        assert resolve_plan_permissions(company_a.id) == dict(DEFAULT_PLAN_CAPABILITIES)

    def test_lookup_failure_fails_open(self, db_session, company_a, monkeypatch):
        def broken_lookup(company_id):
            raise OperationalError("SELECT", {}, Exception("database is locked"))

        monkeypatch.setattr(plan_permission_service, "_latest_plan_permissions", broken_lookup)
        assert resolve_plan_permissions(company_a.id) == dict(DEFAULT_PLAN_CAPABILITIES)

    def test_only_json_true_grants(self, db_session, company_a):
        subscribe(company_a, {"canViewAlerts": "false", "canViewGoals": 1, "canViewReports": True})
        assert resolve_plan_permissions(company_a.id) == {
            "canViewAlerts": False,
            "canViewGoals": False,
            "canViewReports": True,
        }
        assert not company_may_receive(company_a.id, "alert")

    def test_failed_lookup_keeps_outer_transaction_usable(self, db_session, company_a, monkeypatch):
        def missing_table(company_id):
            return db.session.execute(text("SELECT permissions FROM no_such_table")).scalar()

        monkeypatch.setattr(plan_permission_service, "_latest_plan_permissions", missing_table)

        event_id = create_notification_event(
            category="inventory", title="Stock approved", company_id=company_a.id,
            recipients=[("company", company_a.id)], commit=False,
        )
        db.session.commit()

        delivery = db_session.query(NotificationDelivery).filter_by(event_id=event_id).one()
        assert delivery.recipient_id == company_a.id

    def test_defaults_are_not_shared(self, db_session, company_a):
        first = resolve_plan_permissions(company_a.id)
        first["canViewGoals"] = False
        assert resolve_plan_permissions(company_a.id)["canViewGoals"] is True


class TestCompanyMayReceive:

    def test_system_category_never_gated(self, db_session, company_a):
        subscribe(company_a, {})
        assert company_may_receive(company_a.id, "system")

    def test_denied_capability(self, db_session, company_a):
        subscribe(company_a, {"canViewInventory": False})
        assert not company_may_receive(company_a.id, "inventory")

    def test_missing_capability_counts_as_denied(self, db_session, company_a):
        subscribe(company_a, {"canViewGoals": True})
        assert company_may_receive(company_a.id, "goal")
        assert not company_may_receive(company_a.id, "alert")

    def test_unknown_category_is_not_gated(self, db_session, company_a):
        assert plan_permission_service.capability_for_category("weather") is None
        assert company_may_receive(company_a.id, "weather")
