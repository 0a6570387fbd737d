# backend/agroconsult/routes/inventory_adjustments.py
"""
Inventory adjustment request routes.

SECURITY: All routes require authentication.
- Company users create requests for items of their own company
- Company owner, the assigned analyst, or an admin approve/reject
- Listings are scoped to the caller's role (see adjustment_service)

Time semantics:
- movement_date accepts ISO-8601 with Z/offsets; stored UTC-naive.
"""
from flask import Blueprint, jsonify, request, g

from ..decorators import require_auth
from ..services import adjustment_service


inventory_adjustments_bp = Blueprint(
    "inventory_adjustments", __name__, url_prefix="/api/inventory-adjustments"
)

# What clients may set on a new request; everything else is server-owned
ADJUSTMENT_REQUEST_FIELDS = {
    "item_id",
    "movement_type",
    "quantity",
    "unit_cost",
    "from_stock_id",
    "to_stock_id",
    "destination_id",
    "destination_details",
    "movement_date",
    "reference_number",
    "notes",
    "reason",
}


def _list_args() -> dict:
    return {
        "status": request.args.get("status") or None,
        "page": request.args.get("page", 1),
        "limit": request.args.get("limit", 20),
    }


@inventory_adjustments_bp.get("")
@require_auth
def list_requests():
    result = adjustment_service.list_adjustment_requests(
        g.identity,
        company_id=request.args.get("company_id") or None,
        **_list_args(),
    )
    return jsonify({"success": True, "data": result})


@inventory_adjustments_bp.get("/summary")
@require_auth
def summary():
    return jsonify({"success": True, "data": adjustment_service.adjustment_summary(g.identity)})


@inventory_adjustments_bp.get("/company/<company_id>")
@require_auth
def list_company_requests(company_id: str):
    result = adjustment_service.list_company_requests(g.identity, company_id, **_list_args())
    return jsonify({"success": True, "data": result})


@inventory_adjustments_bp.get("/<int:request_id>")
@require_auth
def get_request(request_id: int):
    return jsonify({"success": True, "data": adjustment_service.get_adjustment_request(g.identity, request_id)})


@inventory_adjustments_bp.post("")
@require_auth
def create_request():
    payload = request.get_json(silent=True) or {}
    data = {k: v for k, v in payload.items() if k in ADJUSTMENT_REQUEST_FIELDS}
    created = adjustment_service.create_adjustment_request(g.identity, data)
    return jsonify({"success": True, "data": created}), 201


@inventory_adjustments_bp.put("/<int:request_id>/approve")
@require_auth
def approve_request(request_id: int):
    approved = adjustment_service.approve_adjustment_request(g.identity, request_id)
    return jsonify({"success": True, "data": approved})


@inventory_adjustments_bp.put("/<int:request_id>/reject")
@require_auth
def reject_request(request_id: int):
    payload = request.get_json(silent=True) or {}
    rejected = adjustment_service.reject_adjustment_request(
        g.identity, request_id, payload.get("rejection_reason")
    )
    return jsonify({"success": True, "data": rejected})
