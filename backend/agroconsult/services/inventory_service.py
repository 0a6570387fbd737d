# Overview: Service-layer operations for inventory; ledger arithmetic and company-scoped reads.

"""
Inventory Invariants (authoritative)

Quantity model:
- InventoryItem.current_quantity is the on-hand balance. It is stored, not
  derived, and changes only when an approved adjustment request commits an
  InventoryMovement in the same transaction.
- On-hand quantity never goes below zero (CHECK constraint plus guarded
  UPDATE in adjustment_service).

Movement arithmetic (apply_movement):
- entry, transfer_in      -> current + quantity
- exit, transfer_out      -> current - quantity
- adjustment              -> quantity (absolute replacement, not a delta)
apply_movement does not guard against negative results. Validating stock
before a subtractive movement is the workflow's job.

Tenancy:
- An item's company is item -> stock -> company. Every read here is scoped to
  the caller's company (or assigned companies for analysts).
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from sqlalchemy import case, func

from ..errors import ForbiddenError, NotFoundError, ValidationError
from ..extensions import db
from ..identity import AdminIdentity, AnalystIdentity, CallerIdentity
from ..models import Company, InventoryItem, InventoryMovement, InventoryStock


MOVEMENT_ENTRY = "entry"
MOVEMENT_EXIT = "exit"
MOVEMENT_TRANSFER_OUT = "transfer_out"
MOVEMENT_TRANSFER_IN = "transfer_in"
MOVEMENT_ADJUSTMENT = "adjustment"

ADDITIVE_MOVEMENTS = {MOVEMENT_ENTRY, MOVEMENT_TRANSFER_IN}
SUBTRACTIVE_MOVEMENTS = {MOVEMENT_EXIT, MOVEMENT_TRANSFER_OUT}
VALID_MOVEMENT_TYPES = ADDITIVE_MOVEMENTS | SUBTRACTIVE_MOVEMENTS | {MOVEMENT_ADJUSTMENT}


def to_decimal(value, field: str = "quantity") -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError, TypeError):
            raise ValidationError(f"{field} must be a number")
    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return result


def validate_movement_type(movement_type: str) -> str:
    if movement_type not in VALID_MOVEMENT_TYPES:
        raise ValidationError(
            f"movement_type must be one of: {', '.join(sorted(VALID_MOVEMENT_TYPES))}"
        )
    return movement_type


def apply_movement(current_quantity, movement_type: str, quantity) -> Decimal:
    """
    New on-hand quantity after a movement. Pure; no I/O.

    >>> apply_movement(100, "entry", 20)
    Decimal('120')
    >>> apply_movement(100, "adjustment", 42)
    Decimal('42')
    """
    current = to_decimal(current_quantity, "current_quantity")
    amount = to_decimal(quantity)
    validate_movement_type(movement_type)

    if movement_type in ADDITIVE_MOVEMENTS:
        return current + amount
    if movement_type in SUBTRACTIVE_MOVEMENTS:
        return current - amount
    return amount


def quantity_delta(current_quantity, movement_type: str, quantity) -> Decimal:
    """Signed change a movement makes to current_quantity."""
    return apply_movement(current_quantity, movement_type, quantity) - to_decimal(current_quantity, "current_quantity")


def requires_stock_check(movement_type: str) -> bool:
    return movement_type in SUBTRACTIVE_MOVEMENTS


def has_sufficient_stock(current_quantity, movement_type: str, quantity) -> bool:
    if not requires_stock_check(movement_type):
        return True
    return to_decimal(quantity) <= to_decimal(current_quantity, "current_quantity")


def get_item_with_company(item_id: str, *, query=None) -> tuple[InventoryItem, str]:
    """Load an item and the id of the company owning its stock."""
    q = query if query is not None else db.session.query(InventoryItem)
    item = q.filter(InventoryItem.id == item_id).first()
    if item is None:
        raise NotFoundError("Item not found")
    company_id = (
        db.session.query(InventoryStock.company_id)
        .filter(InventoryStock.id == item.stock_id)
        .scalar()
    )
    return item, company_id


def can_view_company(identity: CallerIdentity, company_id: str) -> bool:
    if isinstance(identity, AdminIdentity):
        return True
    if isinstance(identity, AnalystIdentity):
        analyst_id = db.session.query(Company.analyst_id).filter(Company.id == company_id).scalar()
        return analyst_id == identity.id
    return identity.company_id == company_id


def _require_company_access(identity: CallerIdentity, company_id: str) -> None:
    if not can_view_company(identity, company_id):
        raise ForbiddenError("Access denied to this company's inventory")


def list_items(identity: CallerIdentity, stock_id: str) -> list[dict]:
    stock = db.session.query(InventoryStock).filter_by(id=stock_id).first()
    if stock is None:
        raise NotFoundError("Stock not found")
    _require_company_access(identity, stock.company_id)

    items = (
        db.session.query(InventoryItem)
        .filter(InventoryItem.stock_id == stock_id)
        .order_by(InventoryItem.item_name.asc())
        .all()
    )
    return [item.to_dict() for item in items]


def list_item_movements(identity: CallerIdentity, item_id: str, *, limit: int = 200) -> list[dict]:
    item, company_id = get_item_with_company(item_id)
    _require_company_access(identity, company_id)

    movements = (
        db.session.query(InventoryMovement)
        .filter(InventoryMovement.item_id == item.id)
        .order_by(InventoryMovement.movement_date.desc(), InventoryMovement.created_at.desc())
        .limit(limit)
        .all()
    )
    return [m.to_dict() for m in movements]


def inventory_summary(identity: CallerIdentity, company_id: str) -> dict:
    _require_company_access(identity, company_id)

    stocks = db.session.query(
        func.count(InventoryStock.id),
        func.coalesce(func.sum(case((InventoryStock.is_active.is_(True), 1), else_=0)), 0),
    ).filter(InventoryStock.company_id == company_id).one()

    items = (
        db.session.query(
            func.count(InventoryItem.id),
            func.coalesce(func.sum(InventoryItem.current_quantity), 0),
            func.coalesce(func.sum(InventoryItem.current_quantity * func.coalesce(InventoryItem.unit_cost, 0)), 0),
            func.coalesce(
                func.sum(case((InventoryItem.current_quantity <= InventoryItem.minimum_quantity, 1), else_=0)),
                0,
            ),
        )
        .join(InventoryStock, InventoryStock.id == InventoryItem.stock_id)
        .filter(InventoryStock.company_id == company_id, InventoryStock.is_active.is_(True))
        .one()
    )

    return {
        "company_id": company_id,
        "total_stocks": int(stocks[0] or 0),
        "active_stocks": int(stocks[1] or 0),
        "total_items": int(items[0] or 0),
        "total_quantity": float(items[1] or 0),
        "total_value": float(items[2] or 0),
        "low_stock_items": int(items[3] or 0),
    }
