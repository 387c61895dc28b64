"""Client for the spreadsheet-backed order system API."""

import json
import logging
import time
from typing import Any, Callable, Optional

import httpx
from pydantic import ValidationError

from .errors import CatalogUnavailableError, SubmissionError
from .models import HelperContact, OrderSubmission, Product, SubmitResult, VolunteerSubmission

logger = logging.getLogger(__name__)

NETWORK_ERROR_MESSAGE = (
    "Network error: Unable to connect to order system. "
    "Please check your connection and try again."
)
SERVER_ERROR_MESSAGE = (
    "Server error: The order system is not responding correctly. "
    "Please try again in a few moments."
)


def default_settings() -> dict[str, str]:
    """Settings used whenever the settings sheet cannot be read."""
    return {
        "welcome_title": "Cub Scouts Mum Sale",
        "welcome_message": "Support our pack by purchasing beautiful fall mums!",
        "instructions": "Select your mums, complete the order form, and submit your order.",
        "zelle_email": "threebridgespack182@gmail.com",
        "zelle_qr_url": "https://api.qrserver.com/v1/create-qr-code/?size=300x300&data=ZELLE:threebridgespack182@gmail.com",
        "venmo_handle": "@CubScouts",
        "venmo_qr_url": "",
        "payment_instructions": "Please include your Order ID in the payment description.",
        "pickup_location": "School Parking Lot",
        "pickup_date": "Saturday, 9am-2pm",
    }


class SheetsClient:
    """
    Client for the order system web app.

    Every request targets ``api_url?path=<name>``. Reads are cached for
    ``cache_duration`` seconds and retried on failure; writes go out once.
    """

    def __init__(
        self,
        api_url: str,
        cache_duration: float = 300.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        transport: Optional[httpx.BaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """
        Initialize the client.

        Args:
            api_url: Deployed web app URL
            cache_duration: Seconds a cached read stays fresh
            max_retries: Extra attempts for a failing read
            retry_delay: Seconds to wait between read attempts
            transport: Optional httpx transport (used by tests)
            clock: Time source for cache ages
            sleep: Function used to wait between retries
        """
        self.api_url = api_url
        self.cache_duration = cache_duration
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._clock = clock
        self._sleep = sleep
        self._cache: dict[str, tuple[Any, float]] = {}
        self.client = httpx.Client(
            timeout=30.0,
            follow_redirects=True,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()

    def clear_cache(self) -> None:
        """Drop all cached reads."""
        self._cache.clear()
        logger.debug("Cache cleared")

    @staticmethod
    def _cache_key(method: str, path: str, data: Any) -> str:
        return f"{method}-{path}-{json.dumps(data, sort_keys=True, default=str)}"

    def _forget(self, path: str, params: Any = None) -> None:
        """Drop one cached read, e.g. after its body turned out to be malformed."""
        self._cache.pop(self._cache_key("GET", path, params), None)

    def _request(self, path: str, method: str = "GET", data: Any = None) -> Any:
        """Send one request and return the decoded JSON body."""
        logger.debug(f"API call: {method} {path}")
        if method == "POST":
            # The web app only accepts simple CORS requests, so JSON goes as text/plain
            response = self.client.post(
                self.api_url,
                params={"path": path},
                content=json.dumps(data, default=str),
                headers={"Content-Type": "text/plain"},
            )
        else:
            response = self.client.request(method, self.api_url, params={"path": path})
        response.raise_for_status()
        result = response.json()
        logger.debug(f"API response for {path}: {result}")
        return result

    def _read(self, path: str, params: Any = None) -> Any:
        """GET with caching and retry."""
        key = self._cache_key("GET", path, params)
        cached = self._cache.get(key)
        if cached is not None:
            data, timestamp = cached
            if self._clock() - timestamp < self.cache_duration:
                logger.debug(f"Using cached data for: {path}")
                return data

        attempts = self.max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                data = self._request(path)
            except (httpx.HTTPError, ValueError) as e:
                if attempt >= attempts:
                    logger.error(f"Read {path} failed after {attempt} attempt(s): {e}")
                    raise
                logger.warning(
                    f"Read {path} failed ({e}), retrying... ({attempts - attempt} attempts remaining)"
                )
                self._sleep(self.retry_delay)
                continue

            self._cache[key] = (data, self._clock())
            return data

    def _write(self, path: str, payload: dict[str, Any], action: str) -> SubmitResult:
        """POST once and classify any failure into a SubmissionError."""
        try:
            data = self._request(path, "POST", payload)
        except httpx.TransportError as e:
            logger.error(f"Failed to {action} - network error: {e}")
            raise SubmissionError(NETWORK_ERROR_MESSAGE, kind="network") from e
        except httpx.HTTPStatusError as e:
            logger.error(f"Failed to {action} - HTTP {e.response.status_code}")
            raise SubmissionError(SERVER_ERROR_MESSAGE, kind="server") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Failed to {action}: {e}")
            raise SubmissionError(f"Failed to {action}: {e}") from e

        if not isinstance(data, dict) or "success" not in data:
            logger.error(f"Failed to {action} - malformed response: {data!r}")
            raise SubmissionError(f"Failed to {action}: Invalid response from server")

        order_id = data.get("orderId")
        return SubmitResult(
            success=bool(data["success"]),
            order_id=str(order_id) if order_id is not None else None,
            message=data.get("message"),
            error=data.get("error"),
        )

    def fetch_catalog(self) -> list[Product]:
        """
        Get all products.

        Returns:
            Products from the catalog sheet, availability normalized

        Raises:
            CatalogUnavailableError: If the catalog cannot be read
        """
        try:
            response = self._read("products")
        except (httpx.HTTPError, ValueError) as e:
            raise CatalogUnavailableError() from e

        rows = response.get("products", []) if isinstance(response, dict) else None
        if not isinstance(rows, list):
            logger.error(f"Malformed catalog response: {response!r}")
            self._forget("products")
            raise CatalogUnavailableError()

        products = []
        for row in rows:
            try:
                products.append(Product.model_validate(row))
            except ValidationError as e:
                logger.warning(f"Skipping invalid product row {row!r}: {e}")
        logger.info(f"Loaded {len(products)} products")
        return products

    def fetch_settings(self) -> dict[str, str]:
        """Get site settings, falling back to defaults on any failure."""
        try:
            response = self._read("settings")
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Failed to fetch settings: {e}")
            return default_settings()

        settings = response.get("settings") if isinstance(response, dict) else None
        if not isinstance(settings, dict):
            logger.error(f"Malformed settings response, using defaults: {response!r}")
            self._forget("settings")
            return default_settings()
        return {str(key): "" if value is None else str(value) for key, value in settings.items()}

    def fetch_scout_names(self) -> list[str]:
        """Get the scout roster used for order credit, empty on failure."""
        try:
            response = self._read("scouts")
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Failed to fetch scout names: {e}")
            return []
        scouts = response.get("scouts") if isinstance(response, dict) else None
        if not isinstance(scouts, list):
            return []
        return [str(name) for name in scouts if name]

    def submit_order(self, submission: OrderSubmission) -> SubmitResult:
        """
        Submit an order.

        Never cached or retried; a second call sends a second order.

        Raises:
            SubmissionError: On network failure, non-2xx or malformed response
        """
        logger.info(
            f"Submitting order for {submission.first_name} {submission.last_name} "
            f"({len(submission.products)} lines, total ${submission.total_price})"
        )
        result = self._write("order", submission.to_payload(), "submit order")
        logger.info(f"Order submission response: success={result.success}, order_id={result.order_id}")
        return result

    def submit_volunteer(self, volunteer: VolunteerSubmission) -> SubmitResult:
        """Submit volunteer interest."""
        logger.info(f"Submitting volunteer interest for {volunteer.name}")
        return self._write(
            "volunteer", volunteer.model_dump(mode="json", by_alias=True), "submit volunteer interest"
        )

    def submit_helper_contact(self, contact: HelperContact) -> SubmitResult:
        """Submit a helper contact request."""
        logger.info(f"Submitting helper request for {contact.name}")
        return self._write(
            "submitHelper", contact.model_dump(mode="json", by_alias=True), "submit helper request"
        )
