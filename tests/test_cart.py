import random
from decimal import Decimal
from unittest import TestCase

from billing_counter.cart import CartEngine
from billing_counter.exceptions import (
    CartLineNotFound,
    CheckoutInProgress,
    EmptyCart,
    InsufficientStock,
    InvalidQuantity,
    ProductNotFound,
    ServiceFailure,
)
from billing_counter.schemas import Product

from support import gadget, widget


class TestCartEngine(TestCase):
    def setUp(self) -> None:
        self.engine = CartEngine([widget(), gadget()])

    def assertTotalMatchesLines(self) -> None:
        cart = self.engine.cart
        expected = sum((line.unit_price * line.quantity for line in cart.lines), Decimal("0"))
        self.assertEqual(cart.total, expected)

    def test_walkthrough_add_merge_update_checkout(self) -> None:
        cart = self.engine.add_to_cart(1, 3)
        self.assertEqual(cart.total, Decimal("29.97"))

        with self.assertRaises(InsufficientStock) as cm:
            self.engine.add_to_cart(1, 3)
        self.assertEqual(cm.exception.product_id, 1)
        self.assertEqual(cm.exception.requested, 6)
        self.assertEqual(cm.exception.available, 5)
        self.assertEqual(self.engine.cart.lines[0].quantity, 3)
        self.assertEqual(self.engine.cart.total, Decimal("29.97"))

        cart = self.engine.update_line_quantity(1, 5)
        self.assertEqual(cart.total, Decimal("49.95"))

        with self.engine.checkout() as snapshot:
            self.assertEqual(len(snapshot.lines), 1)
            line = snapshot.lines[0]
            self.assertEqual(line.product_id, 1)
            self.assertEqual(line.name, "Widget")
            self.assertEqual(line.unit_price, Decimal("9.99"))
            self.assertEqual(line.quantity, 5)
            self.assertEqual(snapshot.total, Decimal("49.95"))

        self.assertEqual(self.engine.cart.lines, ())
        self.assertEqual(self.engine.cart.total, Decimal("0"))

    def test_add_more_than_available_leaves_cart_unchanged(self) -> None:
        with self.assertRaises(InsufficientStock):
            self.engine.add_to_cart(1, 6)
        self.assertEqual(self.engine.cart.lines, ())
        self.assertEqual(self.engine.cart.total, Decimal("0"))

    def test_repeated_add_merges_into_one_line(self) -> None:
        self.engine.add_to_cart(1, 2)
        self.engine.add_to_cart(2, 1)
        cart = self.engine.add_to_cart(1, 3)
        self.assertEqual(len(cart.lines), 2)
        self.assertEqual(cart.lines[0].product_id, 1)
        self.assertEqual(cart.lines[0].quantity, 5)
        self.assertEqual(cart.total, Decimal("9.99") * 5 + Decimal("4.50"))

    def test_new_lines_are_appended_in_insertion_order(self) -> None:
        self.engine.add_to_cart(2, 1)
        cart = self.engine.add_to_cart(1, 1)
        self.assertEqual([line.product_id for line in cart.lines], [2, 1])

    def test_merge_takes_current_catalog_price(self) -> None:
        self.engine.add_to_cart(1, 1)
        self.engine.refresh_catalog([widget(price="12.00"), gadget()])
        self.assertEqual(self.engine.cart.lines[0].unit_price, Decimal("9.99"))

        cart = self.engine.add_to_cart(1, 1)
        self.assertEqual(cart.lines[0].unit_price, Decimal("12.00"))
        self.assertEqual(cart.total, Decimal("24.00"))

    def test_update_keeps_line_position(self) -> None:
        self.engine.add_to_cart(1, 1)
        self.engine.add_to_cart(2, 1)
        cart = self.engine.update_line_quantity(1, 4)
        self.assertEqual([line.product_id for line in cart.lines], [1, 2])
        self.assertEqual(cart.lines[0].quantity, 4)

    def test_update_over_stock_is_rejected(self) -> None:
        self.engine.add_to_cart(1, 2)
        with self.assertRaises(InsufficientStock):
            self.engine.update_line_quantity(1, 6)
        self.assertEqual(self.engine.cart.lines[0].quantity, 2)

    def test_update_rejects_non_positive_and_non_integer_quantities(self) -> None:
        self.engine.add_to_cart(1, 2)
        for bad in (0, -1, 1.5, "2", True):
            with self.subTest(quantity=bad):
                with self.assertRaises(InvalidQuantity):
                    self.engine.update_line_quantity(1, bad)
        self.assertEqual(self.engine.cart.lines[0].quantity, 2)

    def test_add_rejects_non_positive_quantity(self) -> None:
        with self.assertRaises(InvalidQuantity):
            self.engine.add_to_cart(1, 0)

    def test_update_of_missing_line(self) -> None:
        with self.assertRaises(CartLineNotFound) as cm:
            self.engine.update_line_quantity(1, 1)
        self.assertEqual(cm.exception.product_id, 1)

    def test_add_of_unknown_product(self) -> None:
        with self.assertRaises(ProductNotFound):
            self.engine.add_to_cart(99, 1)

    def test_remove_of_absent_product_is_a_noop(self) -> None:
        self.engine.add_to_cart(1, 2)
        before = self.engine.cart
        after = self.engine.remove_from_cart(2)
        self.assertEqual(after, before)
        self.engine.remove_from_cart(1)
        self.assertEqual(self.engine.remove_from_cart(1).lines, ())

    def test_clear(self) -> None:
        self.engine.add_to_cart(1, 2)
        cart = self.engine.clear()
        self.assertEqual(cart.lines, ())
        self.assertEqual(cart.total, Decimal("0"))

    def test_checkout_of_empty_cart(self) -> None:
        with self.assertRaises(EmptyCart):
            with self.engine.checkout():
                self.fail("checkout body must not run")

    def test_checkout_after_stock_shrank_keeps_the_cart(self) -> None:
        self.engine.add_to_cart(1, 5)
        self.engine.add_to_cart(2, 3)
        self.engine.refresh_catalog([widget(quantity=2), gadget(quantity=1)])

        with self.assertRaises(InsufficientStock) as cm:
            with self.engine.checkout():
                self.fail("checkout body must not run")

        shortages = {s.product_id: (s.requested, s.available) for s in cm.exception.shortages}
        self.assertEqual(shortages, {1: (5, 2), 2: (3, 1)})
        self.assertEqual(self.engine.cart.lines[0].quantity, 5)

        self.engine.update_line_quantity(1, 2)
        self.engine.update_line_quantity(2, 1)
        with self.engine.checkout() as snapshot:
            self.assertEqual(snapshot.total, Decimal("9.99") * 2 + Decimal("4.50"))
        self.assertEqual(self.engine.cart.lines, ())

    def test_product_dropped_from_catalog_counts_as_out_of_stock(self) -> None:
        self.engine.add_to_cart(1, 1)
        self.engine.refresh_catalog([gadget()])
        self.assertEqual(self.engine.validate_stock()[0].available, 0)
        with self.assertRaises(InsufficientStock):
            self.engine.update_line_quantity(1, 1)

    def test_failed_submission_keeps_the_cart(self) -> None:
        self.engine.add_to_cart(1, 2)
        before = self.engine.cart
        with self.assertRaises(ServiceFailure):
            with self.engine.checkout():
                raise ServiceFailure("billing unavailable", status_code=503)
        self.assertEqual(self.engine.cart, before)
        self.assertFalse(self.engine.checkout_in_progress)

    def test_cart_is_locked_while_checkout_is_open(self) -> None:
        self.engine.add_to_cart(1, 2)
        with self.engine.checkout():
            self.assertTrue(self.engine.checkout_in_progress)
            with self.assertRaises(CheckoutInProgress):
                self.engine.add_to_cart(2, 1)
            with self.assertRaises(CheckoutInProgress):
                self.engine.remove_from_cart(1)
            with self.assertRaises(CheckoutInProgress):
                self.engine.clear()
        self.assertFalse(self.engine.checkout_in_progress)

    def test_refresh_does_not_shrink_lines(self) -> None:
        self.engine.add_to_cart(1, 5)
        self.engine.refresh_catalog([widget(quantity=2)])
        self.assertEqual(self.engine.cart.lines[0].quantity, 5)
        self.assertEqual(self.engine.cart.total, Decimal("49.95"))

    def test_check_product_exists_ignores_case(self) -> None:
        self.assertEqual(self.engine.check_product_exists("wIdGeT").id, 1)
        self.assertIsNone(self.engine.check_product_exists("widget", exclude_id=1))
        self.assertIsNone(self.engine.check_product_exists("Sprocket"))

    def test_total_always_equals_sum_of_lines(self) -> None:
        rng = random.Random(20261018)
        catalog = [
            Product(id=i, name=f"P{i}", price=Decimal(rng.randint(1, 9999)) / 100, quantity=rng.randint(0, 8))
            for i in range(1, 6)
        ]
        self.engine.refresh_catalog(catalog)
        for _ in range(500):
            op = rng.choice(("add", "update", "remove"))
            product_id = rng.randint(1, 6)
            quantity = rng.randint(-1, 6)
            before = self.engine.cart
            try:
                if op == "add":
                    self.engine.add_to_cart(product_id, quantity)
                elif op == "update":
                    self.engine.update_line_quantity(product_id, quantity)
                else:
                    self.engine.remove_from_cart(product_id)
            except (InsufficientStock, InvalidQuantity, ProductNotFound, CartLineNotFound):
                self.assertEqual(self.engine.cart, before)
            self.assertTotalMatchesLines()
            for line in self.engine.cart.lines:
                self.assertLessEqual(line.quantity, self.engine.available_quantity(line.product_id))
