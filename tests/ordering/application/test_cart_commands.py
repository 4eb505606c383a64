"""Application tests for cart line commands and cart aggregation."""

import pytest
from ordering.cart.aggregation import aggregate_cart
from ordering.cart.cart import ShoppingCart
from ordering.cart.items import AddToCart, RefreshCartPrices, RemoveCartLine, UpdateCartLine
from ordering.exceptions import EmptyCartError, InsufficientStockError, ProductUnavailableError
from protean import current_domain
from protean.exceptions import ObjectNotFoundError, ValidationError

CUSTOMER_ID = "cust-001"


def _cart():
    return current_domain.repository_for(ShoppingCart).find_active(CUSTOMER_ID)


class TestAddToCart:
    def test_first_add_opens_a_cart(self, add_to_cart):
        line_id = add_to_cart("prod-a1", 2)

        cart = _cart()
        assert cart is not None
        assert cart.find_line(line_id).quantity == 2

    def test_adds_from_several_retailers_share_one_cart(self, add_to_cart):
        add_to_cart("prod-a1")
        add_to_cart("prod-b1")
        add_to_cart("prod-c1")

        cart = _cart()
        assert len(cart.lines) == 3
        assert {line.retailer_id for line in cart.lines} == {"ret-a", "ret-b", "ret-c"}

    def test_unknown_product(self, add_to_cart):
        with pytest.raises(ProductUnavailableError):
            add_to_cart("prod-unknown")

    def test_stock_is_checked(self, add_to_cart):
        with pytest.raises(InsufficientStockError) as exc:
            add_to_cart("prod-c1", 6)
        assert exc.value.shortages[0]["available"] == 5

    def test_stock_check_includes_quantity_already_in_cart(self, add_to_cart):
        add_to_cart("prod-c1", 4)
        with pytest.raises(InsufficientStockError):
            add_to_cart("prod-c1", 2)

    def test_quantity_must_be_positive(self):
        with pytest.raises(ValidationError):
            current_domain.process(
                AddToCart(customer_id=CUSTOMER_ID, product_id="prod-a1", quantity=0),
                asynchronous=False,
            )


class TestUpdateAndRemove:
    def test_update_quantity(self, add_to_cart):
        line_id = add_to_cart("prod-a1")
        current_domain.process(
            UpdateCartLine(customer_id=CUSTOMER_ID, line_id=line_id, new_quantity=3),
            asynchronous=False,
        )
        assert _cart().find_line(line_id).quantity == 3

    def test_update_beyond_stock(self, add_to_cart):
        line_id = add_to_cart("prod-c1")
        with pytest.raises(InsufficientStockError):
            current_domain.process(
                UpdateCartLine(customer_id=CUSTOMER_ID, line_id=line_id, new_quantity=9),
                asynchronous=False,
            )

    def test_remove_line(self, add_to_cart):
        line_id = add_to_cart("prod-a1")
        add_to_cart("prod-b1")
        current_domain.process(RemoveCartLine(customer_id=CUSTOMER_ID, line_id=line_id), asynchronous=False)
        assert [line.product_id for line in _cart().lines] == ["prod-b1"]

    def test_remove_without_cart(self):
        with pytest.raises(ObjectNotFoundError):
            current_domain.process(RemoveCartLine(customer_id=CUSTOMER_ID, line_id="line-001"), asynchronous=False)


class TestRefreshCartPrices:
    def test_lines_take_current_catalog_price(self, add_to_cart, catalog):
        add_to_cart("prod-a1", 2)
        add_to_cart("prod-b1")
        catalog.set_price("prod-a1", 2500)

        repriced = current_domain.process(RefreshCartPrices(customer_id=CUSTOMER_ID), asynchronous=False)

        assert repriced == 1
        assert aggregate_cart(CUSTOMER_ID).subtotal == 6000
        assert _cart().revision == 3

    def test_unchanged_prices_leave_cart_alone(self, add_to_cart):
        add_to_cart("prod-a1", 2)

        assert current_domain.process(RefreshCartPrices(customer_id=CUSTOMER_ID), asynchronous=False) == 0
        assert _cart().revision == 1

    def test_without_cart(self):
        assert current_domain.process(RefreshCartPrices(customer_id=CUSTOMER_ID), asynchronous=False) == 0


class TestAggregateCart:
    def test_snapshot_groups_by_retailer(self, add_to_cart):
        add_to_cart("prod-b1")
        add_to_cart("prod-a1", 2)

        snapshot = aggregate_cart(CUSTOMER_ID)

        assert [g.retailer_id for g in snapshot.groups] == ["ret-a", "ret-b"]
        assert snapshot.subtotal == 4000
        assert snapshot.revision == 2
        assert snapshot.cart_id == str(_cart().id)

    def test_empty_cart(self):
        with pytest.raises(EmptyCartError):
            aggregate_cart(CUSTOMER_ID)

    def test_all_shortages_are_reported(self, add_to_cart, catalog):
        add_to_cart("prod-a1", 5)
        add_to_cart("prod-b1", 5)
        catalog.set_stock("prod-a1", 1)
        catalog.set_stock("prod-b1", 2)

        with pytest.raises(InsufficientStockError) as exc:
            aggregate_cart(CUSTOMER_ID)

        assert {s["product_id"] for s in exc.value.shortages} == {"prod-a1", "prod-b1"}

    def test_stock_check_can_be_skipped(self, add_to_cart, catalog):
        add_to_cart("prod-a1", 5)
        catalog.set_stock("prod-a1", 0)
        assert aggregate_cart(CUSTOMER_ID, check_stock=False).subtotal == 7500
