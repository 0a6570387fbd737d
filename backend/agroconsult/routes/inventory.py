# backend/agroconsult/routes/inventory.py
"""
Read-only inventory routes. Quantities change only through approved
adjustment requests (routes/inventory_adjustments.py).
"""
from flask import Blueprint, jsonify, request, g

from ..decorators import require_auth
from ..errors import ValidationError
from ..services import inventory_service


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/stocks/<stock_id>/items")
@require_auth
def list_stock_items(stock_id: str):
    return jsonify({"success": True, "data": inventory_service.list_items(g.identity, stock_id)})


@inventory_bp.get("/items/<item_id>/movements")
@require_auth
def list_item_movements(item_id: str):
    try:
        limit = int(request.args.get("limit", 200))
    except ValueError:
        raise ValidationError("limit must be an integer")
    limit = max(1, min(limit, 500))
    movements = inventory_service.list_item_movements(g.identity, item_id, limit=limit)
    return jsonify({"success": True, "data": movements})


@inventory_bp.get("/companies/<company_id>/summary")
@require_auth
def company_summary(company_id: str):
    return jsonify({"success": True, "data": inventory_service.inventory_summary(g.identity, company_id)})
