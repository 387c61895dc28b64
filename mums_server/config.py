"""Runtime configuration loaded from environment variables."""

import json
import os
from pathlib import Path
from typing import Optional
import logging

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://script.google.com/macros/s/YOUR_DEPLOYMENT_ID/exec"

DEFAULT_COLORS = ["Yellow", "Orange", "Red", "Purple", "White"]

# Products whose color choices differ from DEFAULT_COLORS
DEFAULT_COLOR_VARIANTS: dict[str, list[str]] = {
    "APPLE": ["Yellow", "Orange", "Red"],
    "TRICOLOR": ["Tricolor"],
}

PHONE_PATTERN = r"^\d{3}-\d{3}-\d{4}$"
EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"


class StorageKeys(BaseModel):
    """Keys used in local storage."""

    cart: str = "mums_cart"
    customer_info: str = "mums_customer_info"
    last_order: str = "mums_last_order"

    @classmethod
    def for_mode(cls, test_mode: bool) -> "StorageKeys":
        """Return the production keys, or the ``mums_test_*`` keys in test mode."""
        if test_mode:
            return cls(
                cart="mums_test_cart",
                customer_info="mums_test_customer_info",
                last_order="mums_test_last_order",
            )
        return cls()


class StoreConfig(BaseModel):
    """Storefront settings."""

    api_url: str = Field(default=DEFAULT_API_URL, description="Spreadsheet web app URL")
    storage_file: str = Field(
        default_factory=lambda: str(Path.home() / ".mums_storage.json"),
        description="Path of the local storage file",
    )
    cache_duration: float = Field(default=300.0, ge=0, description="Read cache lifetime in seconds")
    max_retries: int = Field(default=3, ge=0, description="Retries for read requests")
    retry_delay: float = Field(default=1.0, ge=0, description="Seconds between read retries")
    auto_save_interval: float = Field(default=5.0, gt=0, description="Customer info auto-save period")
    test_order_delay: float = Field(default=1.5, ge=0, description="Display delay for test orders")
    test_mode: bool = Field(default=False, description="Use the mums_test_* storage keys")
    debug: bool = Field(default=False, description="Enable debug logging")
    color_variants: dict[str, list[str]] = Field(
        default_factory=lambda: dict(DEFAULT_COLOR_VARIANTS),
        description="Per-product color choices overriding the default set",
    )
    default_colors: list[str] = Field(default_factory=lambda: list(DEFAULT_COLORS))

    @property
    def storage_keys(self) -> StorageKeys:
        return StorageKeys.for_mode(self.test_mode)

    @classmethod
    def from_env(cls, environ: Optional[dict[str, str]] = None) -> "StoreConfig":
        """
        Build configuration from ``MUMS_*`` environment variables.

        Args:
            environ: Mapping to read instead of ``os.environ``

        Raises:
            ValueError: If a variable holds an invalid value
        """
        env = os.environ if environ is None else environ
        values: dict = {}

        if env.get("MUMS_API_URL"):
            values["api_url"] = env["MUMS_API_URL"]
        else:
            logger.warning("MUMS_API_URL not set, using placeholder deployment URL")

        if env.get("MUMS_STORAGE_FILE"):
            values["storage_file"] = env["MUMS_STORAGE_FILE"]

        for name, field in [
            ("MUMS_CACHE_DURATION", "cache_duration"),
            ("MUMS_RETRY_DELAY", "retry_delay"),
            ("MUMS_AUTO_SAVE_INTERVAL", "auto_save_interval"),
            ("MUMS_TEST_ORDER_DELAY", "test_order_delay"),
        ]:
            if env.get(name):
                try:
                    values[field] = float(env[name])
                except ValueError:
                    raise ValueError(f"{name} must be a number, got {env[name]!r}")

        if env.get("MUMS_MAX_RETRIES"):
            try:
                values["max_retries"] = int(env["MUMS_MAX_RETRIES"])
            except ValueError:
                raise ValueError(f"MUMS_MAX_RETRIES must be an integer, got {env['MUMS_MAX_RETRIES']!r}")

        values["test_mode"] = _env_flag(env.get("MUMS_TEST_MODE"))
        values["debug"] = _env_flag(env.get("MUMS_DEBUG"))

        variants_json = env.get("MUMS_COLOR_VARIANTS")
        if variants_json:
            try:
                variants = json.loads(variants_json)
            except json.JSONDecodeError as e:
                raise ValueError(f"Failed to parse MUMS_COLOR_VARIANTS: {e}")
            if not isinstance(variants, dict):
                raise ValueError("MUMS_COLOR_VARIANTS must be a JSON object")
            values["color_variants"] = variants

        config = cls(**values)
        if config.test_mode:
            logger.info("Test mode enabled, orders use mums_test_* storage keys")
        return config


def _env_flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")
