"""Tests for entity models and the inventory delta rules."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError

from backoffice.events import InventoryRelease, InventoryReserve, inventory_deltas
from backoffice.models import (
    UNNAMED_CUSTOMER,
    Customer,
    CustomerInput,
    EntityKey,
    Order,
    Product,
    ProductInput,
    next_order_number,
    order_partition_key,
    to_minor_units,
)

APPLES = EntityKey(partition_key="FRUIT", row_key="apples")
PEARS = EntityKey(partition_key="FRUIT", row_key="pears")


def _customer(**fields) -> Customer:
    return Customer(partition_key="N", row_key="c1", **fields)


def _product(**fields) -> Product:
    return Product(partition_key="FRUIT", row_key="apples", **fields)


class TestMinorUnits:
    @pytest.mark.parametrize(
        "price, minor",
        [
            (Decimal("25.00"), 2500),
            (Decimal("0.01"), 1),
            (Decimal("12.345"), 1235),
            (Decimal("12.344"), 1234),
            (Decimal("0.005"), 1),
            (Decimal("19.999"), 2000),
            (None, None),
        ],
    )
    def test_to_minor_units(self, price, minor):
        assert to_minor_units(price) == minor


class TestCustomer:
    @pytest.mark.parametrize(
        "surname, partition",
        [("Nkosi", "N"), ("  van Wyk", "V"), ("Érasmus", "_"), ("", "_"), ("1st", "_")],
    )
    def test_partition_key(self, surname, partition):
        assert Customer.compute_partition_key(surname) == partition

    def test_display_name(self):
        assert _customer(first_name="Thandi", surname="Nkosi").display_name == "Thandi Nkosi"
        assert _customer(first_name="", surname="Nkosi").display_name == "Nkosi"

    def test_display_name_fallbacks(self):
        assert _customer(company_name="Acme Traders").display_name == "Acme Traders"
        assert _customer(email="ops@acme.test").display_name == "ops@acme.test"
        assert _customer().display_name == UNNAMED_CUSTOMER

    def test_new_from_trims_and_normalises(self):
        customer = Customer.new_from(
            CustomerInput(
                first_name=" Thandi ",
                surname=" Nkosi ",
                company_name="   ",
                date_of_birth=datetime(1990, 4, 1, 0, 0),
                city=" Durban ",
            )
        )
        assert customer.partition_key == "N"
        assert len(customer.row_key) == 32
        assert customer.first_name == "Thandi"
        assert customer.company_name is None
        assert customer.city == "Durban"
        assert customer.date_of_birth.tzinfo == timezone.utc


class TestProduct:
    def test_partition_key_from_category(self):
        assert Product.compute_partition_key(" Coffee ") == "COFFEE"
        assert Product.compute_partition_key(None) == "_"

    def test_new_from_converts_price(self):
        product = Product.new_from(ProductInput(name="Beans", category="Coffee", price=Decimal("25.50"), stock_quantity=4))
        assert product.partition_key == "COFFEE"
        assert product.price_minor_units == 2550
        assert product.stock_quantity == 4

    def test_category_change_repartitions(self):
        product = Product.new_from(ProductInput(name="Beans", category="Coffee"))
        moved = product.updated_from(ProductInput(name="Beans", category="Pantry"))
        assert moved.partition_key == "PANTRY"
        assert moved.row_key == product.row_key

    def test_currency_fallback(self):
        assert _product(currency_code="  ").currency_or("ZAR") == "ZAR"
        assert _product(currency_code="USD").currency_or("ZAR") == "USD"

    def test_negative_stock_rejected(self):
        with pytest.raises(ValidationError):
            _product(stock_quantity=-1)


class TestOrder:
    def test_place_computes_total(self):
        now = datetime(2026, 3, 9, 8, 0, tzinfo=timezone.utc)
        order = Order.place(
            _customer(first_name="A", surname="B"),
            _product(name="Apples", price_minor_units=333, stock_quantity=9),
            quantity=7,
            default_currency="ZAR",
            now=now,
        )
        assert order.total_minor_units == 2331
        assert order.partition_key == "ORD-2026-03"
        assert order.created_at_utc == now

    def test_total_invariant_enforced(self):
        order = Order.place(
            _customer(first_name="A", surname="B"),
            _product(name="Apples", price_minor_units=100, stock_quantity=9),
            quantity=2,
            default_currency="ZAR",
        )
        with pytest.raises(ValidationError):
            Order.model_validate({**order.model_dump(), "total_minor_units": 201})

    @pytest.mark.parametrize("field, value", [("quantity", 0), ("unit_price_minor_units", 0)])
    def test_positive_fields(self, field, value):
        order = Order.place(
            _customer(first_name="A", surname="B"),
            _product(name="Apples", price_minor_units=100, stock_quantity=9),
            quantity=1,
            default_currency="ZAR",
        )
        with pytest.raises(ValidationError):
            Order.model_validate({**order.model_dump(), field: value, "total_minor_units": 0})

    def test_order_numbers_strictly_increase_within_a_millisecond(self):
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        first = next_order_number(now)
        second = next_order_number(now)
        assert second == first + 1

    def test_order_partition_key(self):
        assert order_partition_key(datetime(2025, 12, 31, 23, 59, tzinfo=timezone.utc)) == "ORD-2025-12"


class TestInventoryDeltas:
    def test_product_changed(self):
        events = inventory_deltas(APPLES, 5, PEARS, 1, reason="Order 1 edit")
        assert events == [
            InventoryRelease(product_key=APPLES, quantity=5, reason="Order 1 edit"),
            InventoryReserve(product_key=PEARS, quantity=1, reason="Order 1 edit"),
        ]

    @pytest.mark.parametrize(
        "old, new, expected",
        [
            (3, 5, [InventoryReserve(product_key=APPLES, quantity=2, reason="r")]),
            (5, 3, [InventoryRelease(product_key=APPLES, quantity=2, reason="r")]),
            (4, 4, []),
        ],
    )
    def test_same_product(self, old, new, expected):
        assert inventory_deltas(APPLES, old, APPLES, new, reason="r") == expected

    def test_key_equality_is_by_value(self):
        same = EntityKey(partition_key="FRUIT", row_key="apples")
        assert inventory_deltas(APPLES, 2, same, 2, reason="r") == []

    def test_partition_change_counts_as_product_change(self):
        moved = EntityKey(partition_key="PANTRY", row_key="apples")
        events = inventory_deltas(APPLES, 2, moved, 2, reason="r")
        assert [e.event_type for e in events] == ["inventory-release", "inventory-reserve"]
