"""Tests for the cart engine"""

import random
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from storefront.models.catalog import Coupon, Product
from storefront.services.cart import CART_KEY, CartEngine

SOAP = {"id": "p1", "name": "Sandal Soap", "price": 2.5, "image_url": "/img/soap.png"}
TEA = {"id": "p2", "name": "Masala Tea", "price": 4.0}
LADDU = {"id": 3, "name": "Besan Laddu", "price": 7.25, "category": "snacks"}


@pytest.fixture
def cart(store, events):
    return CartEngine(store, events)


def test_add_new_item(cart):
    item = cart.add_item(SOAP)
    assert item.product_id == "p1"
    assert item.quantity == 1
    assert item.image == "/img/soap.png"
    assert cart.totals().item_count == 1


def test_add_existing_increments(cart):
    cart.add_item(SOAP, 2)
    item = cart.add_item(SOAP, 3)
    assert item.quantity == 5
    assert len(cart) == 1


def test_add_rejects_non_positive_quantity(cart):
    with pytest.raises(ValueError):
        cart.add_item(SOAP, 0)
    assert len(cart) == 0


def test_add_rejects_invalid_product(cart):
    with pytest.raises(ValidationError):
        cart.add_item({"id": "p9", "price": -1})


def test_update_quantity_sets_exactly(cart):
    cart.add_item(TEA, 4)
    item = cart.update_quantity("p2", 2)
    assert item.quantity == 2
    assert cart.totals().item_count == 2


def test_update_quantity_zero_removes(cart):
    cart.add_item(TEA)
    assert cart.update_quantity("p2", 0) is None
    assert "p2" not in cart


def test_update_quantity_unknown_product_is_noop(cart):
    assert cart.update_quantity("ghost", 3) is None
    assert len(cart) == 0


def test_remove_is_idempotent(cart):
    cart.add_item(SOAP)
    cart.remove_item("p1")
    cart.remove_item("p1")
    assert len(cart) == 0


def test_clear(cart):
    cart.add_item(SOAP)
    cart.add_item(TEA)
    cart.clear()
    assert cart.items == []
    assert cart.totals().subtotal == 0


def test_totals_are_derived(cart):
    cart.add_item(SOAP, 2)
    cart.add_item(TEA, 1)
    cart.add_item(LADDU, 2)
    totals = cart.totals()
    assert totals.item_count == 5
    assert totals.subtotal == pytest.approx(23.5)
    assert totals.total == pytest.approx(23.5)


def test_numeric_ids_are_normalized(cart):
    cart.add_item(LADDU)
    cart.add_item(Product(id="3", name="Besan Laddu", price=7.25))
    assert cart.get(3).quantity == 2


def test_random_mutations_keep_invariants(cart, store):
    rng = random.Random(7)
    products = [SOAP, TEA, LADDU]
    for _ in range(200):
        product = rng.choice(products)
        op = rng.choice(["add", "update", "remove"])
        if op == "add":
            cart.add_item(product, rng.randint(1, 3))
        elif op == "update":
            cart.update_quantity(str(product["id"]), rng.randint(-1, 4))
        else:
            cart.remove_item(str(product["id"]))

        ids = [item.product_id for item in cart.items]
        assert len(ids) == len(set(ids))
        persisted = store.get_json(CART_KEY) or []
        assert cart.totals().item_count == sum(entry["quantity"] for entry in persisted)


def test_write_through_and_reload(cart, store, events):
    cart.add_item(SOAP, 2)
    cart.add_item(TEA)
    cart.add_item(LADDU, 3)
    before_items = cart.items
    before_totals = cart.totals()

    reloaded = CartEngine(store, events)
    assert reloaded.items == before_items
    assert reloaded.totals() == before_totals


def test_load_drops_invalid_entries(store, events):
    store.set_json(
        CART_KEY,
        [
            {"product_id": "p1", "quantity": 2, "price": 2.5, "name": "Sandal Soap"},
            {"product_id": "p2", "quantity": 0, "price": 4.0, "name": "Masala Tea"},
            {"quantity": 1, "price": 1.0, "name": "No id"},
            "garbage",
        ],
    )
    cart = CartEngine(store, events)
    assert [item.product_id for item in cart.items] == ["p1"]


def test_load_merges_duplicate_entries(store, events):
    entry = {"product_id": "p1", "quantity": 1, "price": 2.5, "name": "Sandal Soap"}
    store.set_json(CART_KEY, [entry, entry])
    cart = CartEngine(store, events)
    assert len(cart) == 1
    assert cart.get("p1").quantity == 2


def test_corrupt_cart_loads_empty(store, events):
    store.set(CART_KEY, "[{broken")
    assert CartEngine(store, events).items == []
    store.set_json(CART_KEY, {"not": "a list"})
    assert CartEngine(store, events).items == []


def test_cart_changed_event_carries_totals(cart, recorded):
    cart.add_item(TEA, 2)
    name, payload = recorded[-1]
    assert name == "cartChanged"
    assert payload["totals"].item_count == 2
    assert payload["totals"].subtotal == pytest.approx(8.0)


def test_line_items_are_immutable(cart):
    item = cart.add_item(SOAP)
    with pytest.raises(ValidationError):
        item.quantity = 99
    assert cart.get("p1").quantity == 1


def test_coupon_discount(cart, store, events):
    cart.add_item(TEA, 5)
    totals = cart.apply_coupon(Coupon(code="FEST10", discount_percent=10))
    assert totals.subtotal == pytest.approx(20.0)
    assert totals.discount == pytest.approx(2.0)
    assert totals.total == pytest.approx(18.0)
    assert totals.coupon_code == "FEST10"

    # Coupon survives a reload
    assert CartEngine(store, events).totals().discount == pytest.approx(2.0)

    totals = cart.remove_coupon()
    assert totals.discount == 0
    assert totals.total == pytest.approx(20.0)


def test_expired_coupon_rejected(cart):
    expired = Coupon(code="OLD", discount_percent=50, expiry_date=datetime.now(timezone.utc) - timedelta(days=1))
    with pytest.raises(ValueError):
        cart.apply_coupon(expired)


def test_clear_drops_coupon(cart):
    cart.add_item(TEA)
    cart.apply_coupon(Coupon(code="FEST10", discount_percent=10))
    cart.clear()
    assert cart.coupon is None


def test_coupon_expiry_accepts_naive_and_aware_dates():
    yesterday = datetime.now(timezone.utc) - timedelta(days=1)
    tomorrow = datetime.now(timezone.utc) + timedelta(days=1)
    assert Coupon(code="A", discount_percent=5, expiry_date=yesterday.replace(tzinfo=None)).is_expired()
    assert not Coupon(code="B", discount_percent=5, expiry_date=tomorrow).is_expired()
    assert not Coupon(code="C", discount_percent=5, expiry_date="2999-01-01T00:00:00").is_expired()
