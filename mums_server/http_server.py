"""HTTP server for the mum sale storefront."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from .checkout import auto_save_customer_info, format_phone, payment_instructions
from .config import StoreConfig
from .errors import (
    CartError,
    EmptyCartError,
    InvalidTransitionError,
    OrderValidationError,
    StorefrontError,
    SubmissionError,
)
from .models import CustomerInfo, HelperContact, VolunteerSubmission
from .storefront import Storefront

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("mums-http-server")

# Global state; tests may install a storefront before startup
storefront: Optional[Storefront] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown."""
    global storefront

    # Startup
    logger.info("Starting Mums HTTP Server...")
    if storefront is None:
        config = StoreConfig.from_env()
        if config.debug:
            logging.getLogger().setLevel(logging.DEBUG)
        storefront = Storefront(config)
    storefront.load()
    auto_save = asyncio.create_task(
        auto_save_customer_info(storefront.checkout, storefront.config.auto_save_interval)
    )

    yield

    # Shutdown
    logger.info("Shutting down Mums HTTP Server...")
    auto_save.cancel()
    storefront.close()


app = FastAPI(
    title="Mums Order Server",
    description="HTTP API for the Cub Scouts mum sale storefront",
    version="0.1.0",
    lifespan=lifespan,
)


# Request/Response Models
class SetQuantityRequest(BaseModel):
    product_id: str
    color: Optional[str] = None
    quantity: Any = 0


class AdjustQuantityRequest(BaseModel):
    product_id: str
    color: Optional[str] = None
    delta: int
    displayed_quantity: Optional[int] = None


class DonationRequest(BaseModel):
    amount: float = Field(gt=0)


class SubmitOrderRequest(BaseModel):
    customer: Optional[CustomerInfo] = None
    payment_method: str
    comments: str = ""
    donated_to: Optional[str] = None


def _error_status(error: StorefrontError) -> int:
    if isinstance(error, InvalidTransitionError):
        return 409
    if isinstance(error, SubmissionError):
        return 502
    return 400


def _guard_cart_edit() -> None:
    try:
        storefront.checkout.ensure_cart_editable()
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))


def _cart_response() -> dict[str, Any]:
    return {
        "lines": [line.model_dump(mode="json", by_alias=True) for line in storefront.cart.lines],
        "total": f"{storefront.cart.total():.2f}",
        "state": storefront.checkout.state.value,
    }


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "Mums Order Server",
        "version": "0.1.0",
        "description": "HTTP API for the Cub Scouts mum sale storefront",
        "endpoints": {
            "docs": "/docs",
            "health": "/health",
            "settings": "GET /settings",
            "catalog": {"get": "GET /catalog", "refresh": "POST /catalog/refresh", "scouts": "GET /scouts"},
            "cart": {
                "get": "GET /cart",
                "set": "POST /cart/set",
                "adjust": "POST /cart/adjust",
                "donation": "POST /cart/donation",
                "remove": "DELETE /cart/lines/{index}",
                "decrement": "POST /cart/lines/{index}/decrement",
            },
            "checkout": {
                "start": "POST /checkout/start",
                "customer": "PUT /checkout/customer",
                "submit": "POST /checkout/submit",
                "new_order": "POST /checkout/new",
                "last_order": "GET /orders/last",
            },
            "forms": {"volunteer": "POST /volunteer", "helper": "POST /helper"},
        },
    }


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy" if not storefront.catalog_error else "degraded",
        "catalog_error": storefront.catalog_error,
    }


@app.get("/settings")
async def get_settings():
    """Get storefront settings (defaults when the sheet is unreachable)."""
    return storefront.settings


# Catalog endpoints
@app.get("/catalog")
async def get_catalog():
    """List products for sale."""
    if storefront.catalog_error:
        raise HTTPException(status_code=503, detail=storefront.catalog_error)
    products = storefront.available_products()
    return {
        "count": len(products),
        "products": [
            {**product.model_dump(mode="json"), "colors": storefront.colors_for(product.id)}
            for product in products
        ],
    }


@app.post("/catalog/refresh")
async def refresh_catalog():
    """Drop cached reads and reload the catalog."""
    storefront.client.clear_cache()
    await asyncio.to_thread(storefront.refresh_catalog)
    return await get_catalog()


@app.get("/scouts")
async def get_scouts():
    """List scout names."""
    return {"scouts": storefront.client.fetch_scout_names()}


# Cart endpoints
@app.get("/cart")
async def get_cart():
    """Get current cart."""
    return _cart_response()


@app.post("/cart/set")
async def set_quantity(request: SetQuantityRequest):
    """Set a product/color quantity (0 removes the line)."""
    _guard_cart_edit()
    try:
        applied = storefront.cart.set_line_quantity(request.product_id, request.color, request.quantity)
    except CartError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"quantity": applied, **_cart_response()}


@app.post("/cart/adjust")
async def adjust_quantity(request: AdjustQuantityRequest):
    """Change a product/color quantity by a delta."""
    _guard_cart_edit()
    try:
        applied = storefront.cart.adjust_line_quantity(
            request.product_id, request.color, request.delta, request.displayed_quantity
        )
    except CartError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"quantity": applied, **_cart_response()}


@app.post("/cart/donation")
async def add_donation(request: DonationRequest):
    """Add a donation line."""
    _guard_cart_edit()
    try:
        storefront.cart.add_donation(request.amount)
    except CartError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _cart_response()


@app.delete("/cart/lines/{index}")
async def remove_line(index: int):
    """Remove a cart line by position."""
    _guard_cart_edit()
    try:
        storefront.cart.remove_line(index)
    except CartError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _cart_response()


@app.post("/cart/lines/{index}/decrement")
async def decrement_line(index: int):
    """Reduce a cart line by one."""
    _guard_cart_edit()
    try:
        storefront.cart.decrement_line(index)
    except CartError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _cart_response()


# Checkout endpoints
@app.post("/checkout/start")
async def start_checkout():
    """Move to the order form."""
    try:
        saved = storefront.checkout.proceed_to_form()
    except StorefrontError as e:
        raise HTTPException(status_code=_error_status(e), detail=str(e))
    return {"state": storefront.checkout.state.value, "customer": saved.model_dump(by_alias=True)}


@app.put("/checkout/customer")
async def update_customer(customer: CustomerInfo):
    """Update the order form draft."""
    customer = customer.model_copy(update={"phone": format_phone(customer.phone)})
    storefront.checkout.update_customer(customer)
    return {"customer": customer.model_dump(by_alias=True)}


@app.post("/checkout/submit")
async def submit_order(request: SubmitOrderRequest):
    """Submit the order on the form."""
    checkout = storefront.checkout
    customer = request.customer or checkout.draft
    try:
        result = await asyncio.to_thread(
            checkout.submit,
            customer,
            request.payment_method,
            comments=request.comments,
            donated_to=request.donated_to,
        )
    except EmptyCartError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except OrderValidationError as e:
        raise HTTPException(status_code=422, detail={"field": e.field, "message": str(e)})
    except StorefrontError as e:
        raise HTTPException(status_code=_error_status(e), detail=str(e))

    return {
        "success": True,
        "order_id": result.order_id,
        "total": f"{checkout.order_total:.2f}",
        "payment_instructions": payment_instructions(
            checkout.payment_method, result.order_id, storefront.settings
        ),
        "state": checkout.state.value,
    }


@app.post("/checkout/new")
async def new_order():
    """Start over with an empty cart."""
    try:
        storefront.checkout.new_order()
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _cart_response()


@app.get("/orders/last")
async def last_order():
    """Most recent confirmed order."""
    order = storefront.checkout.last_order()
    if not order:
        raise HTTPException(status_code=404, detail="No previous order found")
    return order.model_dump(mode="json", by_alias=True)


# Volunteer and helper forms
@app.post("/volunteer")
async def submit_volunteer(volunteer: VolunteerSubmission):
    """Sign up to volunteer."""
    flow = storefront.volunteer
    try:
        flow.restart()
        flow.open_form()
        await asyncio.to_thread(flow.submit, volunteer)
    except StorefrontError as e:
        raise HTTPException(status_code=_error_status(e), detail=str(e))
    return {"success": True, "message": "Thank you for volunteering!"}


@app.post("/helper")
async def submit_helper(contact: HelperContact):
    """Send a helper contact request."""
    flow = storefront.helper
    try:
        flow.restart()
        flow.open_form()
        await asyncio.to_thread(flow.submit, contact)
    except StorefrontError as e:
        raise HTTPException(status_code=_error_status(e), detail=str(e))
    return {"success": True, "message": "Thank you! Your request has been sent."}


def run_http_server(host: str = "0.0.0.0", port: int = 8000, reload: bool = False):
    """
    Run the HTTP server.

    Args:
        host: Host to bind to (default: 0.0.0.0)
        port: Port to bind to (default: 8000)
        reload: Enable hot reloading (default: False)
    """
    import uvicorn

    logger.info(f"Starting server on {host}:{port} (reload={'enabled' if reload else 'disabled'})")

    if reload:
        uvicorn.run(
            "mums_server.http_server:app",
            host=host,
            port=port,
            reload=True,
            reload_dirs=["mums_server"],
            log_level="info",
        )
    else:
        uvicorn.run(app, host=host, port=port, log_level="info")


if __name__ == "__main__":
    run_http_server()
