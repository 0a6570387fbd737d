# Overview: Resolves which notification categories a company's subscription plan allows.

"""
Plan capability resolution.

FAIL OPEN: a company without an active/trialing subscription, or whose plan
carries unreadable permission data, is treated as having every capability.
This keeps companies that predate billing working. It is a compatibility
policy, not a security boundary: nothing but notification delivery to the
company recipient is gated by it.

Only the {company, company_id} recipient is ever filtered by these
capabilities. Analysts and company sub-users addressed directly always
receive their deliveries.
"""

from __future__ import annotations

from types import MappingProxyType

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Subscription, SubscriptionPlan
from ..serialization import parse_or_default


ENTITLED_SUBSCRIPTION_STATUSES = ("active", "trialing")

DEFAULT_PLAN_CAPABILITIES = MappingProxyType({
    "canViewGoals": True,
    "canViewAlerts": True,
    "canViewInsights": True,
    "canViewReports": True,
    "canViewInventory": True,
    "canViewArticles": True,
    "canViewSubscription": True,
})

# None means the category is never gated.
CATEGORY_CAPABILITIES = MappingProxyType({
    "goal": "canViewGoals",
    "alert": "canViewAlerts",
    "insight": "canViewInsights",
    "report": "canViewReports",
    "inventory": "canViewInventory",
    "article": "canViewArticles",
    "subscription": "canViewSubscription",
    "system": None,
})


def _default_capabilities() -> dict[str, bool]:
    return dict(DEFAULT_PLAN_CAPABILITIES)


def _latest_plan_permissions(company_id: str):
    row = (
        db.session.query(SubscriptionPlan.permissions)
        .join(Subscription, Subscription.plan_id == SubscriptionPlan.id)
        .filter(
            Subscription.company_id == company_id,
            Subscription.status.in_(ENTITLED_SUBSCRIPTION_STATUSES),
        )
        .order_by(Subscription.created_at.desc())
        .first()
    )
    return row[0] if row else None


def resolve_plan_permissions(company_id: str) -> dict[str, bool]:
    """
    Capability map of the company's most recent active or trialing plan.

    Never raises. Falls back to DEFAULT_PLAN_CAPABILITIES when there is no
    such subscription, when the plan has no permission data, or when the data
    is not a JSON object.
    """
    try:
        # Savepoint: a failed lookup must leave the caller's transaction usable.
        with db.session.begin_nested():
            raw = _latest_plan_permissions(company_id)
    except SQLAlchemyError:
        current_app.logger.warning(
            "Plan permission lookup failed for company %s; using permissive defaults",
            company_id,
            exc_info=True,
        )
        return _default_capabilities()

    if not raw:
        return _default_capabilities()

    permissions = parse_or_default(raw, None, expected_type=dict)
    if permissions is None:
        current_app.logger.warning(
            "Malformed plan permissions for company %s; using permissive defaults", company_id
        )
        return _default_capabilities()

    # Only a JSON true grants; strings such as "false" do not.
    return {str(key): value is True for key, value in permissions.items()}


def capability_for_category(category: str) -> str | None:
    return CATEGORY_CAPABILITIES.get(category)


def company_may_receive(company_id: str, category: str) -> bool:
    """
    Whether the company recipient may receive an event of this category.

    A capability missing from a plan's permission map counts as not granted.
    """
    capability = capability_for_category(category)
    if capability is None:
        return True
    return resolve_plan_permissions(company_id).get(capability, False) is True
