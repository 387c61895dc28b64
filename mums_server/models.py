"""Data models for the mum sale storefront."""

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

DONATION_ID = "DONATION"


class CamelModel(BaseModel):
    """Model serialized with the camelCase keys the order sheet expects."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Product(BaseModel):
    """Represents a product row from the catalog sheet."""

    id: str = Field(description="Stable product identifier")
    title: str = Field(default="", description="Product name")
    price: Decimal = Field(default=Decimal("0"), ge=0, description="Unit price in USD")
    description: Optional[str] = Field(None, description="Product description")
    image_url: Optional[str] = Field(None, description="Product image URL")
    available: bool = Field(default=False, description="Product availability")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        # Sheets hands back numeric ids as numbers
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("price", mode="before")
    @classmethod
    def _parse_price(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return Decimal("0")
        if isinstance(value, float):
            return Decimal(str(value))
        if isinstance(value, str):
            try:
                return Decimal(value.strip().lstrip("$"))
            except InvalidOperation:
                raise ValueError(f"Invalid price: {value!r}")
        return value

    @field_validator("available", mode="before")
    @classmethod
    def _normalize_available(cls, value: Any) -> bool:
        """Map ``True``, ``"TRUE"`` and ``"true"`` to True, anything else to False."""
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.strip().lower() == "true"
        return False


class CartLine(CamelModel):
    """
    One orderable unit in the cart.

    ``title`` and ``price`` are copied from the product when the line is
    written, so later catalog price changes do not alter an in-progress cart.
    """

    product_id: str
    color: Optional[str] = None
    title: str
    price: Decimal
    quantity: int
    is_donation: bool = False

    @property
    def subtotal(self) -> Decimal:
        return self.price * self.quantity

    @property
    def key(self) -> tuple[str, Optional[str]]:
        return (self.product_id, self.color)


class Address(CamelModel):
    """Structured postal address."""

    street: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""


class CustomerInfo(CamelModel):
    """Customer contact details, saved locally between visits."""

    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    address: Address = Field(default_factory=Address)


class OrderSubmission(CamelModel):
    """Payload posted to ``?path=order``."""

    first_name: str
    last_name: str
    email: str
    phone: str
    address: Address
    products: list[CartLine]
    total_price: Decimal
    payment_method: str
    comments: str = ""
    is_donation_only: bool = False
    is_donated_order: bool = False
    donated_to: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        """Serialize for the order sheet (camelCase keys, prices as numbers)."""
        payload = self.model_dump(mode="json", by_alias=True)
        payload["totalPrice"] = float(self.total_price)
        for line, item in zip(self.products, payload["products"]):
            item["price"] = float(line.price)
        return payload


class SubmitResult(BaseModel):
    """Response envelope of a write request."""

    success: bool
    order_id: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None


class OrderHistory(CamelModel):
    """Minimal record of the last confirmed order."""

    order_id: str
    date: datetime
    total: Decimal


class VolunteerSubmission(CamelModel):
    """Payload posted to ``?path=volunteer``."""

    name: str
    email: str
    phone: str = ""
    interests: list[str] = Field(default_factory=list)
    availability: str = ""
    comments: str = ""


class HelperContact(CamelModel):
    """Payload posted to ``?path=submitHelper``."""

    name: str
    email: str
    phone: str = ""
    message: str = ""
