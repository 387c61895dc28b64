"""Wires storage, API client, cart and checkout flows together."""

import logging
from typing import Optional

import httpx

from .cart import CartStore, ColorVariants
from .checkout import CheckoutFlow, VolunteerFlow
from .config import StoreConfig
from .errors import CatalogUnavailableError
from .models import Product
from .sheets_client import SheetsClient, default_settings
from .storage import LocalStorage

logger = logging.getLogger(__name__)


class Storefront:
    """One storefront session: constructed at startup and handed to the servers."""

    def __init__(self, config: StoreConfig, transport: Optional[httpx.BaseTransport] = None) -> None:
        self.config = config
        keys = config.storage_keys
        self.storage = LocalStorage(config.storage_file)
        self.client = SheetsClient(
            config.api_url,
            cache_duration=config.cache_duration,
            max_retries=config.max_retries,
            retry_delay=config.retry_delay,
            transport=transport,
        )
        self.cart = CartStore(
            self.storage,
            ColorVariants(config.color_variants, config.default_colors),
            storage_key=keys.cart,
        )
        self.checkout = CheckoutFlow(
            self.cart,
            self.client,
            self.storage,
            keys=keys,
            test_order_delay=config.test_order_delay,
        )
        self.volunteer = VolunteerFlow(self.client, kind="volunteer")
        self.helper = VolunteerFlow(self.client, kind="helper")
        self.products: list[Product] = []
        self.settings: dict[str, str] = default_settings()
        self.catalog_error: Optional[str] = None

    def load(self) -> None:
        """Restore the saved cart and fetch settings and catalog."""
        self.cart.restore()
        self.settings = self.client.fetch_settings()
        self.refresh_catalog()

    def refresh_catalog(self) -> list[Product]:
        """Fetch the catalog; a failure is recorded in ``catalog_error``."""
        try:
            self.products = self.client.fetch_catalog()
            self.catalog_error = None
        except CatalogUnavailableError as e:
            logger.error(f"Failed to load products: {e}")
            self.catalog_error = str(e)
        self.cart.set_catalog(self.products)
        return self.products

    def available_products(self) -> list[Product]:
        return [product for product in self.products if product.available]

    def colors_for(self, product_id: str) -> list[str]:
        return self.cart.variants.colors_for(product_id)

    def close(self) -> None:
        self.client.close()
