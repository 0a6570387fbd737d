# Overview: Inventory adjustment request workflow (propose -> approve/reject -> committed movement).

"""
Adjustment Request Workflow

WHY: Company sub-users may not move stock directly. They propose a movement;
the company owner account, the company's assigned analyst, or an admin then
approves or rejects it. Only approval touches the ledger.

LIFECYCLE:
    pending --approve--> approved   (terminal)
    pending --reject---> rejected   (terminal)

APPROVAL (one transaction, all-or-nothing):
1. Lock the request and item rows; re-check status and CURRENT stock.
2. Insert the InventoryMovement (notes reference the request id).
3. Update the item with a relative / guarded UPDATE, never a blind overwrite
   of a value computed from an earlier read.
4. Flip the request pending -> approved with a conditional UPDATE
   (WHERE status = 'pending'); zero affected rows means another approver won.
5. Fan out the decision notification into the same transaction.

Error precedence for approve/reject: not found, then forbidden, then already
processed, then insufficient stock.
"""

from __future__ import annotations

import math
from decimal import Decimal

from flask import current_app
from sqlalchemy import func
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConflictError, ForbiddenError, InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..identity import (
    AdminIdentity,
    AnalystIdentity,
    CallerIdentity,
    CompanyIdentity,
    CompanyUserIdentity,
    RECIPIENT_ANALYST,
    RECIPIENT_COMPANY,
    RECIPIENT_COMPANY_USER,
)
from ..models import (
    Company,
    InventoryAdjustmentRequest,
    InventoryDestination,
    InventoryItem,
    InventoryMovement,
    InventoryStock,
    NotificationDelivery,
    User,
)
from ..signals import adjustment_request_changed, notification_created, publish
from ..time_utils import coerce_datetime, utcnow
from .concurrency import affected_rows, lock_for_update, run_with_retry
from .inventory_service import (
    ADDITIVE_MOVEMENTS,
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_TRANSFER_IN,
    MOVEMENT_TRANSFER_OUT,
    SUBTRACTIVE_MOVEMENTS,
    apply_movement,
    can_view_company,
    get_item_with_company,
    has_sufficient_stock,
    to_decimal,
    validate_movement_type,
)
from .notification_service import create_notification_event


STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"
VALID_STATUSES = {STATUS_PENDING, STATUS_APPROVED, STATUS_REJECTED}

DECIDER_USER = "user"
DECIDER_COMPANY = "company"

MAX_PAGE_SIZE = 100
MIN_REASON_LENGTH = 5


# =============================================================================
# AUTHORIZATION
# =============================================================================


def can_decide(identity: CallerIdentity, company: Company) -> bool:
    """Admin, the company's assigned analyst, or the company account itself."""
    if isinstance(identity, AdminIdentity):
        return True
    if isinstance(identity, AnalystIdentity):
        return company.analyst_id is not None and company.analyst_id == identity.id
    if isinstance(identity, CompanyIdentity):
        return identity.id == company.id
    return False


def _require_decider(identity: CallerIdentity, req: InventoryAdjustmentRequest, action: str) -> Company:
    company = db.session.query(Company).filter_by(id=req.company_id).first()
    if company is None or not can_decide(identity, company):
        current_app.logger.warning(
            "%s %s denied %s on adjustment request %s", identity.role, identity.id, action, req.id
        )
        raise ForbiddenError(f"Access denied. Only company owner or assigned analyst can {action}.")
    return company


def _decider_type(identity: CallerIdentity) -> str:
    return DECIDER_COMPANY if isinstance(identity, CompanyIdentity) else DECIDER_USER


def _creator_type(identity: CallerIdentity) -> str:
    if isinstance(identity, AdminIdentity):
        return "admin"
    if isinstance(identity, AnalystIdentity):
        return "analyst"
    return "system"


# =============================================================================
# SERIALIZATION
# =============================================================================


def _approver_name(req: InventoryAdjustmentRequest) -> str | None:
    if not req.approved_by:
        return None
    if req.approved_by_type == DECIDER_COMPANY:
        company = db.session.query(Company).filter_by(id=req.approved_by).first()
        return company.display_name if company else None
    return db.session.query(User.name).filter(User.id == req.approved_by).scalar()


def serialize_request(req: InventoryAdjustmentRequest) -> dict:
    """Request joined with item / stock / company / requester / approver display fields."""
    data = req.to_dict()
    item = req.item
    stock = item.stock if item else None
    data.update({
        "item_name": item.item_name if item else None,
        "current_quantity": float(item.current_quantity) if item and item.current_quantity is not None else None,
        "unit": item.unit if item else None,
        "stock_name": stock.name if stock else None,
        "company_name": req.company.display_name if req.company else None,
        "requested_by_name": req.requester.name if req.requester else None,
        "requested_by_email": req.requester.email if req.requester else None,
        "approved_by_name": _approver_name(req),
    })
    return data


def _load_request(request_id) -> InventoryAdjustmentRequest:
    req = db.session.query(InventoryAdjustmentRequest).filter_by(id=request_id).first()
    if req is None:
        raise NotFoundError("Adjustment request not found")
    return req


def _link(path: str) -> str:
    base = (current_app.config.get("FRONTEND_URL") or "").rstrip("/")
    return f"{base}{path}"


# =============================================================================
# CREATE
# =============================================================================


def _validate_related_stock(company_id: str, stock_id, field: str) -> str | None:
    if not stock_id:
        return None
    stock = db.session.query(InventoryStock).filter_by(id=stock_id).first()
    if stock is None or stock.company_id != company_id:
        raise ValidationError(f"{field} must reference one of the company's stocks")
    return stock.id


def _validate_destination(company_id: str, destination_id) -> str | None:
    if not destination_id:
        return None
    destination = db.session.query(InventoryDestination).filter_by(id=destination_id).first()
    if destination is None or destination.company_id != company_id:
        raise ValidationError("destination_id must reference one of the company's destinations")
    return destination.id


def create_adjustment_request(identity: CallerIdentity, data: dict) -> dict:
    """
    Propose a movement on one of the caller's company items.

    Only company sub-users may propose. The stock check for exit/transfer_out
    here is a courtesy; approval re-checks against the quantity at that time.
    """
    if not isinstance(identity, CompanyUserIdentity):
        raise ForbiddenError("Only company users can create adjustment requests")

    data = data or {}
    item_id = data.get("item_id")
    if not item_id:
        raise ValidationError("item_id is required")
    movement_type = validate_movement_type(data.get("movement_type"))
    if data.get("quantity") is None:
        raise ValidationError("quantity is required")
    quantity = to_decimal(data.get("quantity"))
    if movement_type == MOVEMENT_ADJUSTMENT:
        if quantity < 0:
            raise ValidationError("quantity cannot be negative")
    elif quantity <= 0:
        raise ValidationError("quantity must be greater than zero")

    unit_cost = None
    if data.get("unit_cost") not in (None, ""):
        unit_cost = to_decimal(data["unit_cost"], "unit_cost")
        if unit_cost < 0:
            raise ValidationError("unit_cost cannot be negative")

    try:
        movement_date = coerce_datetime(data.get("movement_date")) or utcnow()
    except ValueError:
        raise ValidationError("movement_date must be an ISO-8601 datetime")

    reason = data.get("reason")
    if not isinstance(reason, str) or len(reason.strip()) < MIN_REASON_LENGTH:
        raise ValidationError(f"reason must be at least {MIN_REASON_LENGTH} characters")
    reason = reason.strip()

    def _op():
        item, company_id = get_item_with_company(item_id)
        if company_id != identity.company_id:
            current_app.logger.warning(
                "company_user %s attempted request on foreign item %s", identity.id, item_id
            )
            raise ForbiddenError("Access denied to this item")

        if not has_sufficient_stock(item.current_quantity, movement_type, quantity):
            raise InsufficientStockError(
                f"Quantity cannot exceed current stock ({item.current_quantity})",
                details={"current_quantity": float(item.current_quantity)},
            )

        to_stock_id = _validate_related_stock(company_id, data.get("to_stock_id"), "to_stock_id")
        from_stock_id = _validate_related_stock(company_id, data.get("from_stock_id"), "from_stock_id")
        if movement_type == MOVEMENT_TRANSFER_OUT:
            from_stock_id = item.stock_id
        elif movement_type == MOVEMENT_TRANSFER_IN:
            to_stock_id = item.stock_id

        req = InventoryAdjustmentRequest(
            item_id=item.id,
            company_id=company_id,
            requested_by=identity.id,
            movement_type=movement_type,
            quantity=quantity,
            unit_cost=unit_cost,
            total_cost=(quantity * unit_cost) if unit_cost is not None else None,
            from_stock_id=from_stock_id,
            to_stock_id=to_stock_id,
            destination_id=_validate_destination(company_id, data.get("destination_id")),
            destination_details=data.get("destination_details"),
            movement_date=movement_date,
            reference_number=data.get("reference_number"),
            notes=data.get("notes"),
            reason=reason,
            status=STATUS_PENDING,
        )
        db.session.add(req)
        db.session.flush()

        recipients = []
        company = db.session.query(Company).filter_by(id=company_id).first()
        if company is not None and company.analyst_id:
            recipients.append((RECIPIENT_ANALYST, company.analyst_id))
        event_id = create_notification_event(
            company_id=company_id,
            analyst_id=company.analyst_id if company else None,
            created_by_type="system",
            created_by_id=identity.id,
            category="inventory",
            title="Inventory adjustment requested",
            message=f'A {movement_type} of {quantity} for "{item.item_name}" awaits approval.',
            link_url=_link(f"/analyst/inventory-adjustments/{req.id}"),
            data={"adjustmentRequestId": req.id, "itemId": item.id, "status": STATUS_PENDING},
            recipients=recipients,
            commit=False,
        )

        db.session.commit()
        return req.id, event_id, recipients

    request_id, event_id, recipients = run_with_retry(_op)
    current_app.logger.info("Adjustment request %s created by company_user %s", request_id, identity.id)
    _publish_change(request_id, STATUS_PENDING, event_id, "inventory", recipients)
    return serialize_request(_load_request(request_id))


# =============================================================================
# APPROVE / REJECT
# =============================================================================


def _approval_note(req: InventoryAdjustmentRequest) -> str:
    prefix = f"{req.notes}\n" if req.notes else ""
    return f"{prefix}[Approved via request #{req.id}]"


def _commit_quantity_change(item_id: str, observed: Decimal, movement_type: str, quantity: Decimal) -> None:
    """
    Apply the movement at the storage layer.

    entry/transfer_in and exit/transfer_out are relative UPDATEs; subtractive
    ones are guarded so concurrent approvals can never drive stock negative.
    adjustment is an absolute value, written as compare-and-swap against the
    quantity observed under lock; a lost race raises StaleDataError so
    run_with_retry re-reads and tries again.
    """
    q = db.session.query(InventoryItem).filter(InventoryItem.id == item_id)

    if movement_type in ADDITIVE_MOVEMENTS:
        result = q.update(
            {InventoryItem.current_quantity: InventoryItem.current_quantity + quantity},
            synchronize_session=False,
        )
        if affected_rows(result) != 1:
            raise NotFoundError("Item not found")
        return

    if movement_type in SUBTRACTIVE_MOVEMENTS:
        result = q.filter(InventoryItem.current_quantity >= quantity).update(
            {InventoryItem.current_quantity: InventoryItem.current_quantity - quantity},
            synchronize_session=False,
        )
        if affected_rows(result) != 1:
            raise InsufficientStockError("Cannot approve: quantity exceeds current stock")
        return

    result = q.filter(InventoryItem.current_quantity == observed).update(
        {InventoryItem.current_quantity: quantity},
        synchronize_session=False,
    )
    if affected_rows(result) != 1:
        raise StaleDataError(f"inventory item {item_id} changed during adjustment")


def _claim_pending(request_id: int, values: dict) -> None:
    """pending -> decided as a conditional UPDATE; zero rows means someone else decided first."""
    result = (
        db.session.query(InventoryAdjustmentRequest)
        .filter(
            InventoryAdjustmentRequest.id == request_id,
            InventoryAdjustmentRequest.status == STATUS_PENDING,
        )
        .update(values, synchronize_session=False)
    )
    if affected_rows(result) != 1:
        raise ConflictError("Request has already been processed")


def _notify_decision(identity: CallerIdentity, req: InventoryAdjustmentRequest, item: InventoryItem | None,
                     status: str, extra: dict) -> tuple[str | None, list]:
    recipients = [
        (RECIPIENT_COMPANY_USER, req.requested_by),
        (RECIPIENT_COMPANY, req.company_id),
    ]
    verb = "approved" if status == STATUS_APPROVED else "rejected"
    event_id = create_notification_event(
        company_id=req.company_id,
        created_by_type=_creator_type(identity),
        created_by_id=identity.id,
        category="inventory",
        title=f"Inventory adjustment {verb}",
        message=f'Your {req.movement_type} request for "{item.item_name if item else req.item_id}" was {verb}.',
        link_url=_link(f"/client/inventory-adjustments/{req.id}"),
        data={"adjustmentRequestId": req.id, "itemId": req.item_id, "status": status, **extra},
        recipients=recipients,
        commit=False,
    )
    return event_id, recipients


def _delivered_recipients(event_id: str | None) -> list[tuple[str, str]]:
    if event_id is None:
        return []
    rows = (
        db.session.query(NotificationDelivery.recipient_type, NotificationDelivery.recipient_id)
        .filter(NotificationDelivery.event_id == event_id)
        .all()
    )
    return [(r[0], r[1]) for r in rows]


def _publish_change(request_id: int, status: str, event_id: str | None, category: str, recipients) -> None:
    publish(adjustment_request_changed, request_id=request_id, status=status)
    if event_id is not None:
        publish(
            notification_created,
            event_id=event_id,
            category=category,
            recipients=_delivered_recipients(event_id) or list(recipients),
        )


def approve_adjustment_request(identity: CallerIdentity, request_id) -> dict:
    """
    Approve a pending request and commit its movement to the ledger.

    Raises NotFoundError, ForbiddenError, ConflictError (not pending) or
    InsufficientStockError (current stock no longer covers an exit/transfer_out).
    On any error nothing is written.
    """
    def _op():
        req = lock_for_update(
            db.session.query(InventoryAdjustmentRequest).filter_by(id=request_id)
        ).first()
        if req is None:
            raise NotFoundError("Adjustment request not found")
        _require_decider(identity, req, "approve")
        if req.status != STATUS_PENDING:
            raise ConflictError("Request has already been processed", details={"status": req.status})

        item = lock_for_update(db.session.query(InventoryItem).filter_by(id=req.item_id)).first()
        if item is None:
            raise NotFoundError("Item not found")

        observed = to_decimal(item.current_quantity, "current_quantity")
        quantity = to_decimal(req.quantity)
        if not has_sufficient_stock(observed, req.movement_type, quantity):
            raise InsufficientStockError(
                f"Cannot approve: quantity exceeds current stock ({observed})",
                details={"current_quantity": float(observed), "requested_quantity": float(quantity)},
            )
        new_quantity = apply_movement(observed, req.movement_type, quantity)

        movement = InventoryMovement(
            item_id=req.item_id,
            movement_type=req.movement_type,
            quantity=quantity,
            unit_cost=req.unit_cost,
            total_cost=req.total_cost,
            from_stock_id=req.from_stock_id,
            to_stock_id=req.to_stock_id,
            destination_id=req.destination_id,
            destination_details=req.destination_details,
            movement_date=req.movement_date or utcnow(),
            reference_number=req.reference_number,
            notes=_approval_note(req),
            created_by=identity.id,
            is_client=isinstance(identity, CompanyIdentity),
            adjustment_request_id=req.id,
        )
        db.session.add(movement)
        db.session.flush()

        _commit_quantity_change(item.id, observed, req.movement_type, quantity)

        _claim_pending(req.id, {
            "status": STATUS_APPROVED,
            "approved_by": identity.id,
            "approved_by_type": _decider_type(identity),
            "approved_at": utcnow(),
            "movement_id": movement.id,
            "updated_at": utcnow(),
        })

        event_id, recipients = _notify_decision(
            identity, req, item, STATUS_APPROVED, {"movementId": movement.id}
        )

        db.session.commit()
        return req.id, movement.id, new_quantity, event_id, recipients

    req_id, movement_id, new_quantity, event_id, recipients = run_with_retry(_op)
    current_app.logger.info(
        "Adjustment request %s approved by %s %s (movement %s, new quantity %s)",
        req_id, identity.role, identity.id, movement_id, new_quantity,
    )
    _publish_change(req_id, STATUS_APPROVED, event_id, "inventory", recipients)
    return serialize_request(_load_request(req_id))


def reject_adjustment_request(identity: CallerIdentity, request_id, rejection_reason: str | None) -> dict:
    """Reject a pending request with a mandatory reason. No ledger change."""
    reason = (rejection_reason or "").strip() if isinstance(rejection_reason, str) else ""
    if not reason:
        raise ValidationError("Rejection reason is required")

    def _op():
        req = lock_for_update(
            db.session.query(InventoryAdjustmentRequest).filter_by(id=request_id)
        ).first()
        if req is None:
            raise NotFoundError("Adjustment request not found")
        _require_decider(identity, req, "reject")
        if req.status != STATUS_PENDING:
            raise ConflictError("Request has already been processed", details={"status": req.status})

        _claim_pending(req.id, {
            "status": STATUS_REJECTED,
            "approved_by": identity.id,
            "approved_by_type": _decider_type(identity),
            "approved_at": utcnow(),
            "rejection_reason": reason,
            "updated_at": utcnow(),
        })

        item = db.session.query(InventoryItem).filter_by(id=req.item_id).first()
        event_id, recipients = _notify_decision(
            identity, req, item, STATUS_REJECTED, {"rejectionReason": reason}
        )

        db.session.commit()
        return req.id, event_id, recipients

    req_id, event_id, recipients = run_with_retry(_op)
    current_app.logger.info("Adjustment request %s rejected by %s %s", req_id, identity.role, identity.id)
    _publish_change(req_id, STATUS_REJECTED, event_id, "inventory", recipients)
    return serialize_request(_load_request(req_id))


# =============================================================================
# READS
# =============================================================================


def get_adjustment_request(identity: CallerIdentity, request_id) -> dict:
    req = _load_request(request_id)
    if not can_view_company(identity, req.company_id):
        raise ForbiddenError("Access denied to this adjustment request")
    return serialize_request(req)


def _scoped_query(identity: CallerIdentity):
    q = db.session.query(InventoryAdjustmentRequest).join(
        Company, Company.id == InventoryAdjustmentRequest.company_id
    )
    if isinstance(identity, AnalystIdentity):
        q = q.filter(Company.analyst_id == identity.id)
    elif not isinstance(identity, AdminIdentity):
        q = q.filter(InventoryAdjustmentRequest.company_id == identity.company_id)
    return q


def _page_args(page, limit) -> tuple[int, int]:
    try:
        page = int(page or 1)
        limit = int(limit or 20)
    except (TypeError, ValueError):
        raise ValidationError("page and limit must be integers")
    if page < 1 or limit < 1:
        raise ValidationError("page and limit must be positive")
    return page, min(limit, MAX_PAGE_SIZE)


def list_adjustment_requests(
    identity: CallerIdentity,
    *,
    status: str | None = None,
    company_id: str | None = None,
    page=1,
    limit=20,
) -> dict:
    """
    Role-scoped listing, newest first.

    analyst -> requests of companies assigned to them
    client / company_user -> their own company
    admin -> everything
    """
    page, limit = _page_args(page, limit)
    q = _scoped_query(identity)

    if status:
        if status not in VALID_STATUSES:
            raise ValidationError("status must be pending, approved, or rejected")
        q = q.filter(InventoryAdjustmentRequest.status == status)
    if company_id:
        q = q.filter(InventoryAdjustmentRequest.company_id == company_id)

    total = q.count()
    rows = (
        q.order_by(InventoryAdjustmentRequest.created_at.desc(), InventoryAdjustmentRequest.id.desc())
        .limit(limit)
        .offset((page - 1) * limit)
        .all()
    )
    return {
        "requests": [serialize_request(r) for r in rows],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit) if total else 0,
        },
    }


def list_company_requests(identity: CallerIdentity, company_id: str, **kwargs) -> dict:
    if not can_view_company(identity, company_id):
        raise ForbiddenError("Access denied to this company's adjustment requests")
    return list_adjustment_requests(identity, company_id=company_id, **kwargs)


def adjustment_summary(identity: CallerIdentity) -> dict:
    base = _scoped_query(identity)

    by_status = (
        base.with_entities(InventoryAdjustmentRequest.status, func.count(InventoryAdjustmentRequest.id))
        .group_by(InventoryAdjustmentRequest.status)
        .all()
    )
    by_type = (
        base.with_entities(InventoryAdjustmentRequest.movement_type, func.count(InventoryAdjustmentRequest.id))
        .group_by(InventoryAdjustmentRequest.movement_type)
        .all()
    )
    recent = (
        base.order_by(InventoryAdjustmentRequest.created_at.desc(), InventoryAdjustmentRequest.id.desc())
        .limit(5)
        .all()
    )
    return {
        "by_status": [{"status": s, "total": int(n)} for s, n in by_status],
        "by_type": [{"movement_type": t, "total": int(n)} for t, n in by_type],
        "recent": [serialize_request(r) for r in recent],
    }
