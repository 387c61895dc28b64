"""Order assembly and the submit/confirm lifecycle."""

import asyncio
import logging
import re
import time
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Callable, Optional, Union

from pydantic import ValidationError

from .cart import CartStore
from .config import EMAIL_PATTERN, PHONE_PATTERN, StorageKeys
from .errors import (
    EmptyCartError,
    InvalidTransitionError,
    OrderValidationError,
    SubmissionError,
)
from .models import (
    CustomerInfo,
    HelperContact,
    OrderHistory,
    OrderSubmission,
    SubmitResult,
    VolunteerSubmission,
)
from .sheets_client import SheetsClient
from .storage import LocalStorage

logger = logging.getLogger(__name__)

PAYMENT_METHODS = ("Venmo", "Zelle", "Cash", "Check")
TEST_ORDER_PATTERN = re.compile(r"^TEST-\d{13}$")

_REQUIRED_FIELDS = [
    ("first_name", "First name"),
    ("last_name", "Last name"),
    ("email", "Email"),
    ("phone", "Phone"),
]
_REQUIRED_ADDRESS_FIELDS = [
    ("street", "Street address"),
    ("city", "City"),
    ("state", "State"),
    ("zip", "ZIP code"),
]


class CheckoutState(str, Enum):
    BROWSING = "browsing"
    FORM = "form"
    SUBMITTING = "submitting"
    CONFIRMED = "confirmed"
    FAILED = "failed"


def format_phone(raw: str) -> str:
    """Reformat typed digits as NNN-NNN-NNNN, as the order form does while typing."""
    digits = re.sub(r"\D", "", raw or "")
    if len(digits) >= 6:
        return f"{digits[:3]}-{digits[3:6]}-{digits[6:10]}"
    if len(digits) >= 3:
        return f"{digits[:3]}-{digits[3:]}"
    return digits


def is_valid_phone(phone: str) -> bool:
    return re.match(PHONE_PATTERN, phone or "") is not None


def validate_customer(info: CustomerInfo) -> None:
    """
    Check the customer fields required to place an order.

    Raises:
        OrderValidationError: For the first missing or malformed field
    """
    for field, label in _REQUIRED_FIELDS:
        if not getattr(info, field).strip():
            raise OrderValidationError(f"{label} is required", field=field)
    for field, label in _REQUIRED_ADDRESS_FIELDS:
        if not getattr(info.address, field).strip():
            raise OrderValidationError(f"{label} is required", field=f"address.{field}")
    if re.match(EMAIL_PATTERN, info.email.strip()) is None:
        raise OrderValidationError("Please enter a valid email address", field="email")
    if not is_valid_phone(info.phone):
        raise OrderValidationError(
            "Please enter phone number in format: 123-456-7890", field="phone"
        )


def validate_payment_method(method: str) -> str:
    for choice in PAYMENT_METHODS:
        if (method or "").strip().lower() == choice.lower():
            return choice
    raise OrderValidationError(
        f"Please choose a payment method: {', '.join(PAYMENT_METHODS)}", field="payment_method"
    )


def is_test_customer(info: CustomerInfo) -> bool:
    # Operators rehearse the flow by ordering as "Test"; a real customer named Test hits this too
    return info.first_name.strip().lower() == "test" or info.last_name.strip().lower() == "test"


def generate_test_order_id(now: Optional[Callable[[], float]] = None) -> str:
    millis = int((now or time.time)() * 1000)
    return f"TEST-{millis:013d}"


def build_submission(
    cart: CartStore,
    customer: CustomerInfo,
    payment_method: str,
    comments: str = "",
    donated_to: Optional[str] = None,
) -> OrderSubmission:
    """Merge a cart snapshot with customer and payment data."""
    donated_to = (donated_to or "").strip() or None
    return OrderSubmission(
        first_name=customer.first_name.strip(),
        last_name=customer.last_name.strip(),
        email=customer.email.strip(),
        phone=customer.phone.strip(),
        address=customer.address,
        products=cart.lines,
        total_price=cart.total(),
        payment_method=payment_method,
        comments=comments or "",
        is_donation_only=cart.is_donation_only(),
        is_donated_order=donated_to is not None,
        donated_to=donated_to,
    )


def payment_instructions(method: str, order_id: str, settings: dict[str, str]) -> str:
    """Confirmation text telling the customer how to pay and where to pick up."""
    if method == "Venmo":
        lines = [
            f"Send payment via Venmo to {settings.get('venmo_handle') or '@CubScouts'}.",
            f"Please include Order ID: {order_id} in your payment note",
        ]
        if settings.get("venmo_qr_url"):
            lines.append(f"QR code: {settings['venmo_qr_url']}")
    elif method == "Zelle":
        lines = [
            f"Send payment via Zelle to {settings.get('zelle_email') or 'the pack treasurer'}.",
            f"Please include Order ID: {order_id} in your payment memo",
        ]
        if settings.get("zelle_qr_url"):
            lines.append(f"QR code: {settings['zelle_qr_url']}")
    elif method == "Cash":
        lines = [f"Please bring cash payment when picking up your order. Order ID: {order_id}"]
    elif method == "Check":
        lines = [
            'Please make check payable to "Cub Scouts Pack" and bring when picking up. '
            f"Order ID: {order_id}"
        ]
    else:
        lines = [settings.get("payment_instructions") or f"Order ID: {order_id}"]

    lines.append(
        f"Pickup: {settings.get('pickup_location') or 'Location TBD'}, "
        f"{settings.get('pickup_date') or 'Date TBD'}"
    )
    return "\n".join(lines)


class SubmissionFlow:
    """
    FORM -> SUBMITTING -> CONFIRMED | FAILED skeleton shared by all forms.

    FAILED goes back to FORM on the next attempt; ``restart()`` returns to
    BROWSING from anywhere except SUBMITTING.
    """

    def __init__(self) -> None:
        self.state = CheckoutState.BROWSING
        self.error: Optional[str] = None
        self.result: Optional[SubmitResult] = None

    def _require(self, *states: CheckoutState) -> None:
        if self.state not in states:
            allowed = ", ".join(s.name for s in states)
            raise InvalidTransitionError(f"Cannot do that while {self.state.name} (expected {allowed})")

    def _transition(self, state: CheckoutState) -> None:
        logger.debug(f"{type(self).__name__}: {self.state.name} -> {state.name}")
        self.state = state

    def open_form(self) -> None:
        self._require(CheckoutState.BROWSING, CheckoutState.FORM, CheckoutState.FAILED)
        self.error = None
        self._transition(CheckoutState.FORM)

    def _begin_submit(self) -> None:
        if self.state == CheckoutState.SUBMITTING:
            raise InvalidTransitionError("A submission is already in progress")
        self._require(CheckoutState.FORM, CheckoutState.FAILED)
        if self.state == CheckoutState.FAILED:
            self._transition(CheckoutState.FORM)
        self.error = None

    def _fail(self, message: str) -> None:
        self.error = message
        self._transition(CheckoutState.FAILED)

    def restart(self) -> None:
        if self.state == CheckoutState.SUBMITTING:
            raise InvalidTransitionError("Cannot start over while a submission is in progress")
        self.error = None
        self.result = None
        self._transition(CheckoutState.BROWSING)


class CheckoutFlow(SubmissionFlow):
    """Drives an order from the catalog through confirmation."""

    def __init__(
        self,
        cart: CartStore,
        client: SheetsClient,
        storage: LocalStorage,
        keys: Optional[StorageKeys] = None,
        test_order_delay: float = 1.5,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        super().__init__()
        self.cart = cart
        self.client = client
        self.storage = storage
        self.keys = keys or StorageKeys()
        self.test_order_delay = test_order_delay
        self._sleep = sleep
        self.draft = CustomerInfo()
        self.order_total: Optional[Decimal] = None
        self.payment_method: Optional[str] = None

    def proceed_to_form(self) -> CustomerInfo:
        """
        Move from the catalog to the order form.

        Returns:
            Saved customer info used to prefill the form

        Raises:
            EmptyCartError: If the cart has no lines (state is unchanged)
        """
        if self.cart.is_empty:
            raise EmptyCartError()
        self.open_form()
        saved = self.load_customer_info()
        if saved is not None:
            self.draft = saved
        return self.draft.model_copy(deep=True)

    def return_to_catalog(self) -> None:
        """Leave the form to keep shopping; the cart and draft are kept."""
        self._require(CheckoutState.FORM, CheckoutState.FAILED)
        self.error = None
        self._transition(CheckoutState.BROWSING)

    def ensure_cart_editable(self) -> None:
        """
        Refuse cart changes while an order is in flight or already placed.

        Raises:
            InvalidTransitionError: In SUBMITTING or CONFIRMED
        """
        if self.state == CheckoutState.SUBMITTING:
            raise InvalidTransitionError("Cannot change the cart while the order is being submitted")
        if self.state == CheckoutState.CONFIRMED:
            raise InvalidTransitionError("This order has already been placed; start a new order first")

    def update_customer(self, info: CustomerInfo) -> None:
        """Record what the customer has typed so far."""
        self.draft = info.model_copy(deep=True)

    def save_customer_info(self, info: Optional[CustomerInfo] = None) -> None:
        info = info or self.draft
        self.storage.set(self.keys.customer_info, info.model_dump(mode="json", by_alias=True))
        logger.debug("Customer info saved")

    def load_customer_info(self) -> Optional[CustomerInfo]:
        saved = self.storage.get(self.keys.customer_info)
        if not saved:
            return None
        try:
            return CustomerInfo.model_validate(saved)
        except ValidationError as e:
            logger.error(f"Failed to load customer info: {e}")
            return None

    def last_order(self) -> Optional[OrderHistory]:
        saved = self.storage.get(self.keys.last_order)
        if not saved:
            return None
        try:
            return OrderHistory.model_validate(saved)
        except ValidationError as e:
            logger.error(f"Failed to load last order: {e}")
            return None

    def submit(
        self,
        customer: CustomerInfo,
        payment_method: str,
        comments: str = "",
        donated_to: Optional[str] = None,
    ) -> SubmitResult:
        """
        Validate and submit the order.

        Returns:
            The successful result (state CONFIRMED)

        Raises:
            OrderValidationError: Local validation failed; state stays FORM
            SubmissionError: The order system rejected or could not take the
                order; state is FAILED and the cart is untouched
            InvalidTransitionError: Not on the order form, or already submitting
        """
        self._begin_submit()
        if self.cart.is_empty:
            raise EmptyCartError()
        validate_customer(customer)
        method = validate_payment_method(payment_method)

        self.draft = customer
        self.save_customer_info(customer)
        submission = build_submission(self.cart, customer, method, comments, donated_to)

        self._transition(CheckoutState.SUBMITTING)
        if is_test_customer(customer):
            result = self._submit_test_order()
        else:
            try:
                result = self.client.submit_order(submission)
            except SubmissionError as e:
                logger.error(f"Order submission failed: {e}")
                self._fail(str(e))
                raise
            if not result.success:
                message = result.message or result.error or "Failed to submit order"
                logger.error(f"Order rejected: {message}")
                self._fail(message)
                raise SubmissionError(message, kind="server")
            if not result.order_id:
                self._fail("Failed to submit order: Invalid response from server")
                raise SubmissionError("Failed to submit order: Invalid response from server")

        self._confirm(result, submission)
        return result

    def _submit_test_order(self) -> SubmitResult:
        order_id = generate_test_order_id()
        logger.info(f"Test order detected, skipping submission (order id {order_id})")
        if self.test_order_delay > 0:
            self._sleep(self.test_order_delay)
        return SubmitResult(success=True, order_id=order_id, message="Test order - not submitted")

    def _confirm(self, result: SubmitResult, submission: OrderSubmission) -> None:
        self.result = result
        self.order_total = submission.total_price
        self.payment_method = submission.payment_method
        self.cart.clear()
        history = OrderHistory(
            order_id=result.order_id,
            date=datetime.now(timezone.utc),
            total=submission.total_price,
        )
        self.storage.set(self.keys.last_order, history.model_dump(mode="json", by_alias=True))
        self._transition(CheckoutState.CONFIRMED)
        logger.info(f"Order {result.order_id} confirmed, total ${submission.total_price}")

    def new_order(self) -> None:
        """Start over with an empty cart."""
        self.restart()
        self.order_total = None
        self.payment_method = None
        self.cart.clear()


class VolunteerFlow(SubmissionFlow):
    """Volunteer and helper forms: no cart, no payment."""

    def __init__(self, client: SheetsClient, kind: str = "volunteer") -> None:
        super().__init__()
        if kind not in ("volunteer", "helper"):
            raise ValueError(f"Unknown form kind: {kind}")
        self.client = client
        self.kind = kind

    def submit(self, payload: Union[VolunteerSubmission, HelperContact]) -> SubmitResult:
        self._begin_submit()
        if not payload.name.strip():
            raise OrderValidationError("Name is required", field="name")
        if re.match(EMAIL_PATTERN, payload.email.strip()) is None:
            raise OrderValidationError("Please enter a valid email address", field="email")
        if payload.phone and not is_valid_phone(payload.phone):
            raise OrderValidationError(
                "Please enter phone number in format: 123-456-7890", field="phone"
            )

        self._transition(CheckoutState.SUBMITTING)
        try:
            if self.kind == "volunteer":
                result = self.client.submit_volunteer(payload)
            else:
                result = self.client.submit_helper_contact(payload)
        except SubmissionError as e:
            self._fail(str(e))
            raise

        if not result.success:
            message = result.error or result.message or f"Failed to submit {self.kind} request"
            self._fail(message)
            raise SubmissionError(message, kind="server")

        self.result = result
        self._transition(CheckoutState.CONFIRMED)
        return result


async def auto_save_customer_info(flow: CheckoutFlow, interval: float) -> None:
    """Save the customer draft every ``interval`` seconds while the order form is open."""
    while True:
        await asyncio.sleep(interval)
        if flow.state == CheckoutState.FORM:
            try:
                flow.save_customer_info()
            except OSError as e:
                logger.error(f"Auto-save failed: {e}")
