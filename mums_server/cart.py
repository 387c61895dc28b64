"""Cart state: order lines keyed by product and color."""

import logging
from decimal import Decimal
from typing import Any, Optional

from pydantic import ValidationError

from .config import DEFAULT_COLORS
from .errors import CartError
from .models import DONATION_ID, CartLine, Product
from .storage import LocalStorage

logger = logging.getLogger(__name__)

MAX_QUANTITY = 99


def parse_quantity(value: Any) -> int:
    """Lenient integer parse; anything unparseable counts as 0."""
    if isinstance(value, bool):
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        try:
            return int(float(value))
        except (TypeError, ValueError, OverflowError):
            return 0


def clamp_quantity(value: Any) -> int:
    return max(0, min(MAX_QUANTITY, parse_quantity(value)))


class ColorVariants:
    """Lookup of the colors each product is offered in."""

    def __init__(
        self,
        overrides: Optional[dict[str, list[str]]] = None,
        default_colors: Optional[list[str]] = None,
    ) -> None:
        self.overrides = dict(overrides or {})
        self.default_colors = list(default_colors or DEFAULT_COLORS)

    def colors_for(self, product_id: str) -> list[str]:
        return list(self.overrides.get(product_id, self.default_colors))


class CartStore:
    """
    Owns the in-session cart.

    The in-memory lines are authoritative; every mutation writes a snapshot to
    local storage, which is only read back by ``restore()`` at startup.
    """

    def __init__(
        self,
        storage: LocalStorage,
        variants: Optional[ColorVariants] = None,
        storage_key: str = "mums_cart",
    ) -> None:
        self.storage = storage
        self.variants = variants or ColorVariants()
        self.storage_key = storage_key
        self._lines: list[CartLine] = []
        self._products: dict[str, Product] = {}

    def set_catalog(self, products: list[Product]) -> None:
        """Install the product snapshot used when writing lines."""
        self._products = {product.id: product for product in products}

    def get_product(self, product_id: str) -> Optional[Product]:
        return self._products.get(product_id)

    @property
    def lines(self) -> list[CartLine]:
        return [line.model_copy() for line in self._lines]

    @property
    def is_empty(self) -> bool:
        return not self._lines

    def __len__(self) -> int:
        return len(self._lines)

    def _find(self, product_id: str, color: Optional[str]) -> Optional[int]:
        for index, line in enumerate(self._lines):
            if not line.is_donation and line.product_id == product_id and line.color == color:
                return index
        return None

    def get_quantity(self, product_id: str, color: Optional[str]) -> int:
        index = self._find(product_id, color)
        return self._lines[index].quantity if index is not None else 0

    def set_line_quantity(self, product_id: str, color: Optional[str], quantity: Any) -> int:
        """
        Set the quantity for a product/color pair.

        Args:
            product_id: Product to order
            color: One of the product's colors (required when quantity > 0)
            quantity: Desired quantity, clamped to 0..99

        Returns:
            The clamped quantity actually stored

        Raises:
            CartError: Unknown or unavailable product, or invalid color
        """
        quantity = clamp_quantity(quantity)
        index = self._find(product_id, color)

        if quantity == 0:
            if index is not None:
                del self._lines[index]
                logger.debug(f"Removed {product_id}/{color} from cart")
                self.persist()
            return 0

        product = self.get_product(product_id)
        if product is None:
            raise CartError(f"Unknown product: {product_id}")
        if not product.available:
            raise CartError(f"{product.title or product_id} is not available")
        if not color:
            raise CartError("Please select a color first")
        colors = self.variants.colors_for(product_id)
        if color not in colors:
            raise CartError(
                f"{color} is not offered for {product.title or product_id}; choose one of {', '.join(colors)}"
            )

        line = CartLine(
            product_id=product_id,
            color=color,
            title=product.title,
            price=product.price,
            quantity=quantity,
        )
        if index is not None:
            self._lines[index] = line
        else:
            self._lines.append(line)
        logger.debug(f"Set {product_id}/{color} quantity to {quantity}")
        self.persist()
        return quantity

    def adjust_line_quantity(
        self,
        product_id: str,
        color: Optional[str],
        delta: int,
        displayed_quantity: Optional[Any] = None,
    ) -> int:
        """
        Change a quantity by ``delta`` starting from what the customer sees.

        ``displayed_quantity`` wins over the stored value when given.
        """
        if displayed_quantity is not None:
            current = parse_quantity(displayed_quantity)
        else:
            current = self.get_quantity(product_id, color)
        return self.set_line_quantity(product_id, color, current + delta)

    def _line_at(self, index: int) -> CartLine:
        if not 0 <= index < len(self._lines):
            raise CartError(f"No cart line at position {index}")
        return self._lines[index]

    def remove_line(self, index: int) -> CartLine:
        line = self._line_at(index)
        del self._lines[index]
        self.persist()
        return line

    def decrement_line(self, index: int) -> CartLine:
        """Reduce a line by one. A line at quantity 1 is left as is; use ``remove_line``."""
        line = self._line_at(index)
        if line.quantity <= 1:
            return line.model_copy()
        self._lines[index] = line.model_copy(update={"quantity": line.quantity - 1})
        self.persist()
        return self._lines[index].model_copy()

    def add_donation(self, amount: Any, title: str = "Donation") -> CartLine:
        """Append a flat donation line."""
        try:
            price = Decimal(str(amount)).quantize(Decimal("0.01"))
        except ArithmeticError:
            raise CartError(f"Invalid donation amount: {amount!r}")
        if not price.is_finite() or price <= 0:
            raise CartError("Donation amount must be greater than zero")

        line = CartLine(
            product_id=DONATION_ID,
            color=None,
            title=title,
            price=price,
            quantity=1,
            is_donation=True,
        )
        self._lines.append(line)
        logger.info(f"Added donation of ${price}")
        self.persist()
        return line.model_copy()

    def total(self) -> Decimal:
        return sum((line.subtotal for line in self._lines), Decimal("0"))

    def total_cents(self) -> int:
        return int((self.total() * 100).to_integral_value())

    def is_donation_only(self) -> bool:
        return bool(self._lines) and all(line.is_donation for line in self._lines)

    def clear(self) -> None:
        self._lines = []
        self.persist()

    def persist(self) -> None:
        """Write the full cart snapshot to local storage."""
        snapshot = [line.model_dump(mode="json", by_alias=True) for line in self._lines]
        self.storage.set(self.storage_key, snapshot)
        logger.debug(f"Cart saved ({len(snapshot)} lines)")

    def restore(self) -> None:
        """Load the saved cart; call once at startup."""
        saved = self.storage.get(self.storage_key)
        if not saved:
            return
        if not isinstance(saved, list):
            logger.error(f"Failed to load cart: expected a list, got {type(saved).__name__}")
            return

        lines: list[CartLine] = []
        seen: dict[tuple[str, Optional[str]], int] = {}
        for item in saved:
            try:
                line = CartLine.model_validate(item)
            except ValidationError as e:
                logger.warning(f"Dropping unreadable cart line {item!r}: {e}")
                continue
            if line.is_donation:
                line.quantity = 1
            elif line.quantity <= 0:
                continue
            else:
                line.quantity = min(line.quantity, MAX_QUANTITY)
                if line.key in seen:
                    lines[seen[line.key]] = line
                    continue
                seen[line.key] = len(lines)
            lines.append(line)

        self._lines = lines
        logger.info(f"Cart loaded ({len(lines)} lines)")
