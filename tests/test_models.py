"""Tests for catalog ingestion and payload serialization."""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from mums_server.models import Address, CartLine, OrderSubmission, Product


@pytest.mark.parametrize("raw", [True, "TRUE", "true", " True "])
def test_available_truthy_values(raw):
    assert Product(id="MUM1", available=raw).available is True


@pytest.mark.parametrize("raw", [False, "FALSE", "false", "", None, 1, "yes"])
def test_available_other_values(raw):
    assert Product(id="MUM1", available=raw).available is False


def test_product_coerces_sheet_types():
    product = Product.model_validate({"id": 42, "title": "Mum", "price": "$12.50"})
    assert product.id == "42"
    assert product.price == Decimal("12.50")


def test_blank_price_is_zero():
    assert Product(id="X", price="").price == Decimal("0")


def test_negative_price_rejected():
    with pytest.raises(ValidationError):
        Product(id="X", price="-1")


def test_cart_line_camel_case_round_trip():
    line = CartLine(product_id="MUM1", color="Red", title="Mum", price=Decimal("12.00"), quantity=2)
    dumped = line.model_dump(mode="json", by_alias=True)
    assert dumped["productId"] == "MUM1"
    assert dumped["isDonation"] is False
    assert CartLine.model_validate(dumped) == line


def test_order_payload_uses_sheet_field_names():
    submission = OrderSubmission(
        first_name="Ann",
        last_name="Lee",
        email="ann@example.com",
        phone="555-123-4567",
        address=Address(street="1 Main St", city="Springfield", state="IL", zip="62701"),
        products=[CartLine(product_id="MUM1", color="Red", title="Mum", price=Decimal("12.00"), quantity=2)],
        total_price=Decimal("24.00"),
        payment_method="Cash",
    )
    payload = submission.to_payload()
    assert payload["firstName"] == "Ann"
    assert payload["totalPrice"] == 24.0
    assert payload["paymentMethod"] == "Cash"
    assert payload["products"][0]["price"] == 12.0
    assert payload["address"]["zip"] == "62701"
    assert payload["isDonationOnly"] is False
