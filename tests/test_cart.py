"""Tests for cart line management, totals and persistence."""

from collections import Counter
from decimal import Decimal

import pytest
from hypothesis import given, settings, HealthCheck, strategies as st

from mums_server.cart import CartStore, ColorVariants, clamp_quantity
from mums_server.config import DEFAULT_COLOR_VARIANTS
from mums_server.errors import CartError
from mums_server.models import Product
from mums_server.storage import LocalStorage

from conftest import CATALOG


def test_scenario_two_colors_then_remove_one(cart):
    cart.set_line_quantity("MUM1", "Red", 2)
    cart.set_line_quantity("MUM1", "Yellow", 1)
    assert cart.total() == Decimal("36.00")

    cart.set_line_quantity("MUM1", "Red", 0)
    assert cart.total() == Decimal("12.00")
    assert len(cart) == 1
    assert cart.lines[0].color == "Yellow"


def test_setting_existing_pair_updates_in_place(cart):
    cart.set_line_quantity("MUM1", "Red", 2)
    cart.set_line_quantity("MUM1", "Red", 5)
    assert len(cart) == 1
    assert cart.get_quantity("MUM1", "Red") == 5


@pytest.mark.parametrize(
    "requested, applied",
    [(150, 99), (99, 99), (-3, 0), ("7", 7), ("abc", 0), ("", 0), (None, 0), ("4.7", 4)],
)
def test_quantity_is_clamped(cart, requested, applied):
    assert cart.set_line_quantity("MUM1", "Red", requested) == applied
    assert cart.get_quantity("MUM1", "Red") == applied


def test_zero_on_absent_pair_is_noop(cart):
    cart.set_line_quantity("MUM1", "Red", 3)
    before = cart.lines
    assert cart.set_line_quantity("MUM1", "White", 0) == 0
    assert cart.set_line_quantity("MUM1", "White", 0) == 0
    assert cart.lines == before


def test_color_required(cart):
    with pytest.raises(CartError, match="color"):
        cart.set_line_quantity("MUM1", None, 1)
    assert cart.is_empty


def test_color_must_be_offered(cart):
    with pytest.raises(CartError):
        cart.set_line_quantity("APPLE", "Purple", 1)
    assert cart.set_line_quantity("APPLE", "Red", 1) == 1
    with pytest.raises(CartError):
        cart.set_line_quantity("TRICOLOR", "Red", 1)
    assert cart.set_line_quantity("TRICOLOR", "Tricolor", 2) == 2


def test_unknown_and_unavailable_products(cart):
    assert cart.get_product("NOPE") is None
    assert cart.get_product("OLD").available is False
    with pytest.raises(CartError):
        cart.set_line_quantity("NOPE", "Red", 1)
    with pytest.raises(CartError):
        cart.set_line_quantity("OLD", "Red", 1)


def test_price_is_locked_in_when_line_is_written(cart):
    cart.set_line_quantity("MUM1", "Red", 2)
    cart.set_catalog([Product(id="MUM1", title="9 inch Mum", price="15", available=True)])
    assert cart.get_product("MUM1").price == Decimal("15")
    assert cart.total() == Decimal("24")
    # Rewriting the line captures the new price
    cart.set_line_quantity("MUM1", "Red", 2)
    assert cart.total() == Decimal("30")


def test_adjust_uses_displayed_quantity(cart):
    cart.set_line_quantity("MUM1", "Red", 2)
    assert cart.adjust_line_quantity("MUM1", "Red", 1) == 3
    assert cart.adjust_line_quantity("MUM1", "Red", 1, displayed_quantity=10) == 11
    assert cart.adjust_line_quantity("MUM1", "Red", -20) == 0
    assert cart.is_empty


def test_adjust_clamps_at_upper_bound(cart):
    cart.set_line_quantity("MUM1", "Red", 99)
    assert cart.adjust_line_quantity("MUM1", "Red", 1) == 99


def test_decrement_line(cart):
    cart.set_line_quantity("MUM1", "Red", 3)
    cart.set_line_quantity("MUM1", "White", 1)
    assert cart.decrement_line(0).quantity == 2
    assert cart.decrement_line(1).quantity == 1
    assert cart.get_quantity("MUM1", "White") == 1
    assert len(cart) == 2


def test_remove_line(cart):
    cart.set_line_quantity("MUM1", "Red", 3)
    cart.add_donation("10")
    removed = cart.remove_line(0)
    assert removed.product_id == "MUM1"
    assert cart.is_donation_only()


@pytest.mark.parametrize("index", [-1, 5])
def test_bad_index(cart, index):
    cart.set_line_quantity("MUM1", "Red", 1)
    with pytest.raises(CartError):
        cart.remove_line(index)
    with pytest.raises(CartError):
        cart.decrement_line(index)


def test_donation_line(cart):
    line = cart.add_donation(20)
    assert line.is_donation
    assert line.color is None
    assert line.quantity == 1
    assert cart.total() == Decimal("20.00")
    assert cart.decrement_line(0).quantity == 1


@pytest.mark.parametrize("amount", [0, -5, "abc", "NaN"])
def test_invalid_donation(cart, amount):
    with pytest.raises(CartError):
        cart.add_donation(amount)


def test_totals_include_donations(cart):
    cart.set_line_quantity("APPLE", "Red", 2)
    cart.add_donation("5.50")
    assert cart.total() == Decimal("55.50")
    assert cart.total_cents() == 5550
    assert not cart.is_donation_only()


def test_every_mutation_persists(cart, storage):
    cart.set_line_quantity("MUM1", "Red", 2)
    assert storage.get("mums_cart")[0]["quantity"] == 2
    cart.add_donation(5)
    assert len(storage.get("mums_cart")) == 2
    cart.clear()
    assert storage.get("mums_cart") == []


def test_restore_reproduces_lines(cart, storage, products):
    cart.set_line_quantity("MUM1", "Red", 2)
    cart.set_line_quantity("APPLE", "Orange", 4)
    cart.add_donation("12.34")

    reloaded = CartStore(LocalStorage(storage.storage_file), ColorVariants(DEFAULT_COLOR_VARIANTS))
    reloaded.restore()
    assert reloaded.lines == cart.lines
    assert reloaded.total() == cart.total()


def test_restore_repairs_bad_snapshot(storage):
    storage.set(
        "mums_cart",
        [
            {"productId": "MUM1", "color": "Red", "title": "Mum", "price": "12", "quantity": 2},
            {"productId": "MUM1", "color": "Red", "title": "Mum", "price": "12", "quantity": 3},
            {"productId": "MUM1", "color": "White", "title": "Mum", "price": "12", "quantity": 0},
            {"productId": "MUM1", "color": "Orange", "title": "Mum", "price": "12", "quantity": 500},
            {"garbage": True},
        ],
    )
    store = CartStore(storage)
    store.restore()
    assert [(l.color, l.quantity) for l in store.lines] == [("Red", 3), ("Orange", 99)]


def test_restore_ignores_wrong_type(storage):
    storage.set("mums_cart", {"not": "a list"})
    store = CartStore(storage)
    store.restore()
    assert store.is_empty


def test_clamp_quantity_bool_is_zero():
    assert clamp_quantity(True) == 0


PRODUCT_IDS = [row["id"] for row in CATALOG] + ["NOPE"]
COLORS = ["Yellow", "Orange", "Red", "Purple", "White", "Tricolor", None]

operations = st.lists(
    st.tuples(
        st.sampled_from(PRODUCT_IDS),
        st.sampled_from(COLORS),
        st.one_of(st.integers(min_value=-200, max_value=200), st.text(max_size=3)),
    ),
    max_size=40,
)


@settings(suppress_health_check=[HealthCheck.function_scoped_fixture], max_examples=75)
@given(ops=operations, donations=st.lists(st.integers(min_value=1, max_value=500), max_size=3))
def test_cart_invariants_hold_for_any_sequence(tmp_path_factory, products, ops, donations):
    storage = LocalStorage(str(tmp_path_factory.mktemp("cart") / "s.json"))
    store = CartStore(storage, ColorVariants(DEFAULT_COLOR_VARIANTS))
    store.set_catalog(products)

    for amount in donations:
        store.add_donation(amount)
    for product_id, color, quantity in ops:
        try:
            applied = store.set_line_quantity(product_id, color, quantity)
        except CartError:
            continue
        assert 0 <= applied <= 99

    lines = store.lines
    keys = Counter(line.key for line in lines if not line.is_donation)
    assert all(count == 1 for count in keys.values())
    assert all(1 <= line.quantity <= 99 for line in lines)
    assert store.total() == sum((line.price * line.quantity for line in lines), Decimal("0"))

    restored = CartStore(LocalStorage(storage.storage_file))
    restored.restore()
    assert Counter(l.model_dump_json() for l in restored.lines) == Counter(l.model_dump_json() for l in lines)
    assert restored.total() == store.total()
