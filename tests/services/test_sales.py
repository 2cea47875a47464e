"""
Tests for SalesService -- the sale lifecycle and product stock.

Verifies:
- Drafts snapshot the unit cost and never move stock
- Completion is all-or-nothing
- Revert returns stock (to Draft or Cancelled)
- Edit and delete permissions per status
"""

from dataclasses import replace
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from costbook_kernel.domain.dtos import SaleHeader, SaleLine
from costbook_kernel.exceptions import (
    InsufficientStockError,
    InvalidCostError,
    InvalidQuantityError,
    InvalidSaleTransitionError,
    ProductNotFoundError,
    SaleIntegrityError,
    SaleLockedError,
    SaleNotFoundError,
    ValidationError,
)
from costbook_kernel.models.sale import Sale, SaleStatus
from costbook_kernel.services import sales as sales_module


@pytest.fixture
def flour(make_material, purchase):
    material = make_material("Flour")
    purchase(material, 10, 50)
    purchase(material, 10, 70)
    return material


@pytest.fixture
def bread(flour, make_recipe, make_product, manufacturing, user_id):
    product = make_product(make_recipe([(flour, 1)], yield_quantity=2), price="10")
    manufacturing.build(user_id, product.id, Decimal("3"))
    return product


@pytest.fixture
def stocked(make_product):
    """A recipe-less product with hand-set stock."""

    def _make(stock, name="Gift card", price="25"):
        product = make_product(name=name, price=price)
        product.current_stock = Decimal(stock)
        return product

    return _make


def _sell(product, quantity, **kwargs):
    return SaleLine(quantity=Decimal(str(quantity)), product_id=product.id, **kwargs)


class TestDrafts:

    def test_draft_snapshots_cost_and_price(self, bread, sales, user_id, clock):
        sale = sales.create_draft(user_id, SaleHeader(customer_details="Ana"), [_sell(bread, 2)])

        item = sale.items[0]
        assert sale.status is SaleStatus.DRAFT
        assert sale.sale_date == clock.today()
        assert item.price_per_unit == Decimal("10")
        assert item.cost_per_unit_at_sale == Decimal("3.00")
        assert item.subtotal == Decimal("20")
        assert sale.total_amount == Decimal("20")
        assert bread.current_stock == Decimal("3")

    def test_explicit_price_overrides_selling_price(self, bread, sales, user_id):
        sale = sales.create_draft(
            user_id, SaleHeader(), [_sell(bread, 2, price_per_unit=Decimal("7.5"))]
        )
        assert sale.total_amount == Decimal("15.0")

    def test_free_text_line(self, sales, user_id, session):
        sale = sales.create_draft(
            user_id,
            SaleHeader(sale_date=date(2024, 2, 1)),
            [
                SaleLine(quantity=Decimal("1"), description="Delivery", price_per_unit=Decimal("4")),
                SaleLine(quantity=Decimal("2"), description="Gift wrap"),
            ],
        )
        assert [i.cost_per_unit_at_sale for i in sale.items] == [Decimal("0"), Decimal("0")]
        assert sale.total_amount == Decimal("4")
        assert sale.sale_date == date(2024, 2, 1)

    def test_product_without_recipe_costs_zero(self, stocked, sales, user_id, captured_logs):
        card = stocked("5")
        sale = sales.create_draft(user_id, SaleHeader(), [_sell(card, 1)])
        assert sale.items[0].cost_per_unit_at_sale == Decimal("0")
        assert any(
            r["message"] == "sale_cost_snapshot_without_recipe" for r in captured_logs()
        )

    def test_invalid_lines(self, bread, sales, user_id):
        with pytest.raises(InvalidQuantityError):
            sales.create_draft(user_id, SaleHeader(), [_sell(bread, 0)])
        with pytest.raises(InvalidCostError):
            sales.create_draft(
                user_id, SaleHeader(), [_sell(bread, 1, price_per_unit=Decimal("-1"))]
            )
        with pytest.raises(ProductNotFoundError):
            sales.create_draft(
                user_id, SaleHeader(), [SaleLine(quantity=Decimal("1"), product_id=uuid4())]
            )

    @pytest.mark.parametrize("value", ["NaN", "Infinity", "-Infinity"])
    def test_non_finite_lines(self, bread, sales, user_id, session, value):
        with pytest.raises(InvalidQuantityError):
            sales.create_draft(user_id, SaleHeader(), [_sell(bread, value)])
        with pytest.raises(InvalidCostError):
            sales.create_draft(
                user_id, SaleHeader(), [_sell(bread, 1, price_per_unit=Decimal(value))]
            )

        sale = sales.create_draft(user_id, SaleHeader(), [_sell(bread, 1)])
        item_id = sale.items[0].id
        with pytest.raises(InvalidQuantityError):
            sales.update_draft(
                user_id, sale.id, SaleHeader(), [_sell(bread, value, item_id=item_id)]
            )
        assert sale.items[0].quantity == Decimal("1")

    def test_update_keeps_cost_snapshot(self, bread, flour, sales, purchase, user_id):
        sale = sales.create_draft(user_id, SaleHeader(), [_sell(bread, 1)])
        item = sale.items[0]
        purchase(flour, 10, 300)

        sales.update_draft(
            user_id, sale.id, SaleHeader(), [_sell(bread, 3, item_id=item.id)]
        )

        assert item.cost_per_unit_at_sale == Decimal("3.00")
        assert item.quantity == Decimal("3")
        assert sale.total_amount == Decimal("30")

    def test_update_reconciles_items(self, bread, stocked, sales, user_id):
        card = stocked("5")
        sale = sales.create_draft(
            user_id,
            SaleHeader(),
            [_sell(bread, 1), SaleLine(quantity=Decimal("1"), description="Tip")],
        )
        bread_item, tip = sale.items

        sales.update_draft(
            user_id,
            sale.id,
            SaleHeader(notes="changed"),
            [_sell(card, 2, item_id=bread_item.id)],
        )

        assert [i.id for i in sale.items] == [bread_item.id]
        assert bread_item.product_id == card.id
        assert bread_item.price_per_unit == Decimal("25")
        assert sale.total_amount == Decimal("50")
        assert sale.notes == "changed"

    def test_update_unknown_item(self, bread, sales, user_id):
        sale = sales.create_draft(user_id, SaleHeader(), [_sell(bread, 1)])
        with pytest.raises(ValidationError):
            sales.update_draft(
                user_id, sale.id, SaleHeader(), [_sell(bread, 1, item_id=uuid4())]
            )

    def test_completed_sale_is_locked(self, bread, sales, user_id):
        sale = sales.create_and_complete(user_id, SaleHeader(), [_sell(bread, 1)])
        with pytest.raises(SaleLockedError):
            sales.update_draft(user_id, sale.id, SaleHeader(), [])


class TestCompletion:

    def test_complete_deducts_stock(self, bread, sales, user_id):
        sale = sales.create_draft(user_id, SaleHeader(), [_sell(bread, 2)])
        sales.complete(user_id, sale.id)
        assert sale.status is SaleStatus.COMPLETED
        assert bread.current_stock == Decimal("1")

    def test_same_product_on_two_lines(self, bread, sales, user_id):
        sale = sales.create_draft(user_id, SaleHeader(), [_sell(bread, 2), _sell(bread, 2)])
        with pytest.raises(InsufficientStockError):
            sales.complete(user_id, sale.id)
        assert bread.current_stock == Decimal("3")

    def test_all_or_nothing(self, bread, stocked, sales, user_id):
        card = stocked("1")
        sale = sales.create_draft(user_id, SaleHeader(), [_sell(bread, 1), _sell(card, 2)])

        with pytest.raises(InsufficientStockError) as exc_info:
            sales.complete(user_id, sale.id)

        assert exc_info.value.entity_id == str(card.id)
        assert bread.current_stock == Decimal("3")
        assert card.current_stock == Decimal("1")
        assert sale.status is SaleStatus.DRAFT

    def test_stock_follows_the_transition(self, bread, sales, user_id, monkeypatch):
        real = sales_module.require_transition

        def doubled_and_unguarded(sale_id, from_state, to_state):
            transition = real(sale_id, from_state, to_state)
            return replace(transition, guard=None, stock_effect=2 * transition.stock_effect)

        monkeypatch.setattr(sales_module, "require_transition", doubled_and_unguarded)
        sale = sales.create_and_complete(user_id, SaleHeader(), [_sell(bread, 2)])
        assert bread.current_stock == Decimal("-1")

        sales.revert(user_id, sale.id)
        assert bread.current_stock == Decimal("3")

    def test_free_text_sale_completes_without_stock(self, sales, user_id, session):
        sale = sales.create_and_complete(
            user_id, SaleHeader(), [SaleLine(quantity=Decimal("1"), description="Class")]
        )
        assert sale.status is SaleStatus.COMPLETED

    def test_cannot_complete_twice(self, bread, sales, user_id):
        sale = sales.create_and_complete(user_id, SaleHeader(), [_sell(bread, 1)])
        with pytest.raises(InvalidSaleTransitionError):
            sales.complete(user_id, sale.id)
        assert bread.current_stock == Decimal("2")


class TestRevertAndCancel:

    def test_revert_to_draft(self, bread, sales, user_id):
        sale = sales.create_and_complete(user_id, SaleHeader(), [_sell(bread, 2)])
        sales.revert(user_id, sale.id)
        assert sale.status is SaleStatus.DRAFT
        assert bread.current_stock == Decimal("3")

    def test_revert_to_cancelled(self, bread, sales, user_id):
        sale = sales.create_and_complete(user_id, SaleHeader(), [_sell(bread, 2)])
        sales.revert(user_id, sale.id, "Cancelled")
        assert sale.status is SaleStatus.CANCELLED
        assert bread.current_stock == Decimal("3")

    def test_revert_draft_is_invalid(self, bread, sales, user_id):
        sale = sales.create_draft(user_id, SaleHeader(), [_sell(bread, 1)])
        with pytest.raises(InvalidSaleTransitionError):
            sales.revert(user_id, sale.id)

    def test_revert_to_unknown_status(self, bread, sales, user_id):
        sale = sales.create_and_complete(user_id, SaleHeader(), [_sell(bread, 1)])
        with pytest.raises(InvalidSaleTransitionError):
            sales.revert(user_id, sale.id, "Refunded")

    def test_revert_with_vanished_product(self, stocked, sales, user_id, session):
        card = stocked("2")
        sale = sales.create_and_complete(user_id, SaleHeader(), [_sell(card, 1)])
        session.delete(card)
        session.flush()

        with pytest.raises(SaleIntegrityError):
            sales.revert(user_id, sale.id)

    def test_cancel_draft(self, bread, sales, user_id):
        sale = sales.create_draft(user_id, SaleHeader(), [_sell(bread, 1)])
        sales.cancel(user_id, sale.id)
        assert sale.status is SaleStatus.CANCELLED
        assert bread.current_stock == Decimal("3")

    def test_cancel_completed_goes_through_revert(self, bread, sales, user_id):
        sale = sales.create_and_complete(user_id, SaleHeader(), [_sell(bread, 1)])
        with pytest.raises(InvalidSaleTransitionError):
            sales.cancel(user_id, sale.id)

    def test_cancelled_is_terminal(self, bread, sales, user_id):
        sale = sales.create_draft(user_id, SaleHeader(), [_sell(bread, 1)])
        sales.cancel(user_id, sale.id)
        with pytest.raises(InvalidSaleTransitionError):
            sales.complete(user_id, sale.id)


class TestDelete:

    def test_delete_draft_and_cancelled(self, bread, sales, user_id, session):
        draft = sales.create_draft(user_id, SaleHeader(), [_sell(bread, 1)])
        cancelled = sales.create_draft(user_id, SaleHeader(), [_sell(bread, 1)])
        sales.cancel(user_id, cancelled.id)

        sales.delete(user_id, draft.id)
        sales.delete(user_id, cancelled.id)

        assert session.get(Sale, draft.id) is None
        assert session.get(Sale, cancelled.id) is None

    def test_completed_cannot_be_deleted(self, bread, sales, user_id):
        sale = sales.create_and_complete(user_id, SaleHeader(), [_sell(bread, 1)])
        with pytest.raises(SaleLockedError):
            sales.delete(user_id, sale.id)

    def test_other_user(self, bread, sales, user_id, other_user_id):
        sale = sales.create_draft(user_id, SaleHeader(), [_sell(bread, 1)])
        with pytest.raises(SaleNotFoundError):
            sales.delete(other_user_id, sale.id)
