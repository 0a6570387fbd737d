# Overview: Pytest coverage for ledger arithmetic and company-scoped inventory reads.

from decimal import Decimal

import pytest

from agroconsult.errors import ForbiddenError, NotFoundError, ValidationError
from agroconsult.models import InventoryItem, InventoryMovement
from agroconsult.services.inventory_service import (
    apply_movement,
    has_sufficient_stock,
    inventory_summary,
    list_item_movements,
    list_items,
    quantity_delta,
    to_decimal,
)


class TestApplyMovement:

    @pytest.mark.parametrize("movement_type,quantity,expected", [
        ("entry", 20, Decimal("120")),
        ("transfer_in", 5, Decimal("105")),
        ("exit", 30, Decimal("70")),
        ("transfer_out", 100, Decimal("0")),
        ("adjustment", 42, Decimal("42")),
    ])
    def test_each_movement_type(self, movement_type, quantity, expected):
        assert apply_movement(100, movement_type, quantity) == expected

    def test_adjustment_is_absolute_not_additive(self):
        assert apply_movement(100, "adjustment", 42) == Decimal("42")
        assert quantity_delta(100, "adjustment", 42) == Decimal("-58")

    def test_does_not_guard_negative(self):
        assert apply_movement(10, "exit", 25) == Decimal("-15")

    def test_fractional_quantities(self):
        assert apply_movement("12.500", "exit", "0.125") == Decimal("12.375")

    def test_unknown_movement_type(self):
        with pytest.raises(ValidationError):
            apply_movement(100, "teleport", 1)

    @pytest.mark.parametrize("value", ["abc", None, True, "NaN", "Infinity"])
    def test_to_decimal_rejects_non_numbers(self, value):
        with pytest.raises(ValidationError):
            to_decimal(value)


class TestStockCheck:

    def test_only_subtractive_types_are_checked(self):
        assert has_sufficient_stock(10, "entry", 1000)
        assert has_sufficient_stock(10, "adjustment", 1000)
        assert not has_sufficient_stock(10, "exit", 11)
        assert not has_sufficient_stock(10, "transfer_out", 11)

    def test_exact_stock_is_sufficient(self):
        assert has_sufficient_stock(10, "exit", 10)


# =============================================================================
# Reads
# =============================================================================


class TestInventoryReads:

    def test_list_items_for_own_company(self, db_session, owner_a, stock_a, item_a):
        items = list_items(owner_a, stock_a.id)
        assert [i["item_name"] for i in items] == ["Fertilizer"]
        assert items[0]["current_quantity"] == 100.0
        assert items[0]["low_stock"] is False
        assert items[0]["total_value"] == 250.0

    def test_assigned_analyst_can_read(self, db_session, analyst, stock_a, item_a):
        assert len(list_items(analyst, stock_a.id)) == 1

    def test_unassigned_analyst_forbidden(self, db_session, stranger_analyst, stock_a, item_a):
        with pytest.raises(ForbiddenError):
            list_items(stranger_analyst, stock_a.id)

    def test_cross_company_forbidden(self, db_session, owner_b, stock_a, item_a):
        with pytest.raises(ForbiddenError):
            list_items(owner_b, stock_a.id)

    def test_unknown_stock(self, db_session, admin):
        with pytest.raises(NotFoundError):
            list_items(admin, "missing")

    def test_movements_newest_first(self, db_session, requester_a, item_a, member_a):
        for qty in (1, 2):
            db_session.add(InventoryMovement(
                item_id=item_a.id, movement_type="entry", quantity=qty, created_by=member_a.id,
            ))
        db_session.commit()

        movements = list_item_movements(requester_a, item_a.id)
        assert len(movements) == 2
        assert {m["quantity"] for m in movements} == {1.0, 2.0}

    def test_summary(self, db_session, owner_a, company_a, stock_a, item_a):
        db_session.add(InventoryItem(stock_id=stock_a.id, item_name="Lime", current_quantity=5, minimum_quantity=10))
        db_session.commit()

        summary = inventory_summary(owner_a, company_a.id)
        assert summary["total_stocks"] == 1
        assert summary["active_stocks"] == 1
        assert summary["total_items"] == 2
        assert summary["total_quantity"] == pytest.approx(105.0)
        assert summary["total_value"] == pytest.approx(250.0)
        assert summary["low_stock_items"] == 1
