from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .common import generate_id


QUANTITY = db.Numeric(14, 3)
MONEY = db.Numeric(14, 2)


def _num(value):
    if value is None:
        return None
    return float(value) if isinstance(value, Decimal) else value


class InventoryStock(db.Model):
    """
    A stock location (warehouse, silo, shed) owned by a company.

    MULTI-TENANT: items belong to stocks, stocks belong to companies, so an
    item's company is resolved item -> stock -> company.
    """
    __tablename__ = "inventory_stocks"

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    company_id = db.Column(db.String(36), db.ForeignKey("companies.id"), nullable=False, index=True)
    analyst_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    location = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    company = db.relationship("Company", backref=db.backref("stocks", lazy=True))

    def __repr__(self) -> str:
        return f"<InventoryStock id={self.id} name={self.name!r} company_id={self.company_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "analyst_id": self.analyst_id,
            "name": self.name,
            "location": self.location,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class InventoryDestination(db.Model):
    """Named outbound destination for exits (buyer, field, processing plant)."""
    __tablename__ = "inventory_destinations"

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    company_id = db.Column(db.String(36), db.ForeignKey("companies.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {"id": self.id, "company_id": self.company_id, "name": self.name, "is_active": self.is_active}


class InventoryItem(db.Model):
    """
    On-hand quantity of one good within one stock.

    INVARIANT: current_quantity is changed only by the adjustment approval path,
    in the same transaction that inserts the InventoryMovement describing the
    change. It never goes below zero.
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        db.CheckConstraint("current_quantity >= 0", name="ck_inventory_items_quantity_non_negative"),
        db.Index("ix_inventory_items_stock_name", "stock_id", "item_name"),
    )

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    stock_id = db.Column(db.String(36), db.ForeignKey("inventory_stocks.id"), nullable=False, index=True)

    item_name = db.Column(db.String(255), nullable=False)
    unit = db.Column(db.String(32), nullable=True)

    current_quantity = db.Column(QUANTITY, nullable=False, default=0)
    minimum_quantity = db.Column(QUANTITY, nullable=False, default=0)
    unit_cost = db.Column(MONEY, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    stock = db.relationship("InventoryStock", backref=db.backref("items", lazy=True))

    def __repr__(self) -> str:
        return f"<InventoryItem id={self.id} item_name={self.item_name!r} qty={self.current_quantity}>"

    @property
    def low_stock(self) -> bool:
        return Decimal(self.current_quantity or 0) <= Decimal(self.minimum_quantity or 0)

    def to_dict(self) -> dict:
        total_value = None
        if self.unit_cost is not None:
            total_value = _num(Decimal(self.current_quantity or 0) * Decimal(self.unit_cost))
        return {
            "id": self.id,
            "stock_id": self.stock_id,
            "item_name": self.item_name,
            "unit": self.unit,
            "current_quantity": _num(self.current_quantity),
            "minimum_quantity": _num(self.minimum_quantity),
            "unit_cost": _num(self.unit_cost),
            "total_value": total_value,
            "low_stock": self.low_stock,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryMovement(db.Model):
    """
    Committed, immutable change to an item's quantity.

    APPEND-ONLY: the quantity change this row describes was applied to
    InventoryItem.current_quantity by the transaction that inserted it.
    quantity is a positive magnitude; movement_type gives the direction. For
    "adjustment" it is the new absolute quantity, which may be zero.

    is_client only drives attribution display: created_by is a company id when
    true, a staff user id when false.
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.CheckConstraint(
            "quantity > 0 OR (movement_type = 'adjustment' AND quantity >= 0)",
            name="ck_inventory_movements_quantity_positive",
        ),
        db.Index("ix_inventory_movements_item_date", "item_id", "movement_date"),
    )

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    item_id = db.Column(db.String(36), db.ForeignKey("inventory_items.id"), nullable=False, index=True)

    movement_type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(QUANTITY, nullable=False)
    unit_cost = db.Column(MONEY, nullable=True)
    total_cost = db.Column(MONEY, nullable=True)

    from_stock_id = db.Column(db.String(36), nullable=True)
    to_stock_id = db.Column(db.String(36), nullable=True)
    destination_id = db.Column(db.String(36), nullable=True)
    destination_details = db.Column(db.Text, nullable=True)

    movement_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    reference_number = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.String(36), nullable=False)
    is_client = db.Column(db.Boolean, nullable=False, default=False)
    adjustment_request_id = db.Column(db.Integer, nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    item = db.relationship("InventoryItem", backref=db.backref("movements", lazy=True))

    def __repr__(self) -> str:
        return f"<InventoryMovement id={self.id} type={self.movement_type} qty={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "movement_type": self.movement_type,
            "quantity": _num(self.quantity),
            "unit_cost": _num(self.unit_cost),
            "total_cost": _num(self.total_cost),
            "from_stock_id": self.from_stock_id,
            "to_stock_id": self.to_stock_id,
            "destination_id": self.destination_id,
            "destination_details": self.destination_details,
            "movement_date": to_utc_z(self.movement_date),
            "reference_number": self.reference_number,
            "notes": self.notes,
            "created_by": self.created_by,
            "is_client": self.is_client,
            "adjustment_request_id": self.adjustment_request_id,
            "created_at": to_utc_z(self.created_at),
        }


class InventoryAdjustmentRequest(db.Model):
    """
    Company-proposed inventory movement awaiting authorization.

    LIFECYCLE:
    1. pending: created by a company user; no ledger effect
    2. approved: movement inserted, item quantity updated, movement_id set
    3. rejected: rejection_reason recorded; no ledger effect

    approved and rejected are terminal. approved_by / approved_at record who
    decided either way; approved_by_type tells whether that was a staff user
    ("user") or the company account ("company").
    """
    __tablename__ = "inventory_adjustment_requests"
    __table_args__ = (
        db.Index("ix_adjustment_requests_company_status", "company_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.String(36), db.ForeignKey("inventory_items.id"), nullable=False, index=True)
    company_id = db.Column(db.String(36), db.ForeignKey("companies.id"), nullable=False, index=True)
    requested_by = db.Column(db.String(36), db.ForeignKey("company_users.id"), nullable=False, index=True)

    movement_type = db.Column(db.String(16), nullable=False)
    quantity = db.Column(QUANTITY, nullable=False)
    unit_cost = db.Column(MONEY, nullable=True)
    total_cost = db.Column(MONEY, nullable=True)

    from_stock_id = db.Column(db.String(36), nullable=True)
    to_stock_id = db.Column(db.String(36), nullable=True)
    destination_id = db.Column(db.String(36), nullable=True)
    destination_details = db.Column(db.Text, nullable=True)

    movement_date = db.Column(db.DateTime(timezone=True), nullable=True)
    reference_number = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    reason = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    approved_by = db.Column(db.String(36), nullable=True)
    approved_by_type = db.Column(db.String(16), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)
    movement_id = db.Column(db.String(36), db.ForeignKey("inventory_movements.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=db.func.now(),
        onupdate=utcnow,
    )

    item = db.relationship("InventoryItem")
    company = db.relationship("Company")
    requester = db.relationship("CompanyUser")
    movement = db.relationship("InventoryMovement", foreign_keys=[movement_id])

    def __repr__(self) -> str:
        return f"<InventoryAdjustmentRequest id={self.id} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "company_id": self.company_id,
            "requested_by": self.requested_by,
            "movement_type": self.movement_type,
            "quantity": _num(self.quantity),
            "unit_cost": _num(self.unit_cost),
            "total_cost": _num(self.total_cost),
            "from_stock_id": self.from_stock_id,
            "to_stock_id": self.to_stock_id,
            "destination_id": self.destination_id,
            "destination_details": self.destination_details,
            "movement_date": to_utc_z(self.movement_date),
            "reference_number": self.reference_number,
            "notes": self.notes,
            "reason": self.reason,
            "status": self.status,
            "approved_by": self.approved_by,
            "approved_by_type": self.approved_by_type,
            "approved_at": to_utc_z(self.approved_at),
            "rejection_reason": self.rejection_reason,
            "movement_id": self.movement_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
