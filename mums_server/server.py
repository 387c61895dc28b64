"""MCP Server for the Cub Scouts mum sale storefront."""

import asyncio
import json
import logging
from typing import Any, Optional

from mcp.server import Server
from mcp.types import Resource, TextContent, Tool
from pydantic import AnyUrl

from .checkout import CheckoutState, auto_save_customer_info, format_phone, payment_instructions
from .config import StoreConfig
from .errors import StorefrontError, SubmissionError
from .models import CartLine, CustomerInfo, HelperContact, VolunteerSubmission
from .storefront import Storefront

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("mums-mcp-server")

# Initialize server
app = Server("mums-mcp-server")

# Global state
storefront: Storefront

_CUSTOMER_PROPERTIES = {
    "first_name": {"type": "string", "description": "Customer first name"},
    "last_name": {"type": "string", "description": "Customer last name"},
    "email": {"type": "string", "description": "Customer email"},
    "phone": {"type": "string", "description": "Phone number (123-456-7890)"},
    "street": {"type": "string", "description": "Street address"},
    "city": {"type": "string", "description": "City"},
    "state": {"type": "string", "description": "State"},
    "zip": {"type": "string", "description": "ZIP code"},
}


def customer_from_arguments(arguments: dict[str, Any], base: Optional[CustomerInfo] = None) -> CustomerInfo:
    """Overlay tool arguments on a customer draft."""
    base = base or CustomerInfo()
    address = base.address.model_copy(
        update={
            field: str(arguments[field])
            for field in ("street", "city", "state", "zip")
            if arguments.get(field) is not None
        }
    )
    updates: dict[str, Any] = {
        field: str(arguments[field])
        for field in ("first_name", "last_name", "email")
        if arguments.get(field) is not None
    }
    if arguments.get("phone") is not None:
        updates["phone"] = format_phone(str(arguments["phone"]))
    updates["address"] = address
    return base.model_copy(update=updates)


def format_line(index: int, line: CartLine) -> list[str]:
    if line.is_donation:
        return [f"\n{index}. {line.title}", f"   Amount: ${line.price:.2f}"]
    return [
        f"\n{index}. {line.title} - {line.color}",
        f"   Product ID: {line.product_id}",
        f"   {line.quantity} × ${line.price:.2f} = ${line.subtotal:.2f}",
    ]


def format_cart() -> str:
    lines = storefront.cart.lines
    if not lines:
        return "No items selected\nTotal: $0.00"
    result_lines = [f"Cart ({len(lines)} line(s)):"]
    for i, line in enumerate(lines, 1):
        result_lines.extend(format_line(i, line))
    result_lines.append(f"\n{'='*50}")
    result_lines.append(f"Total: ${storefront.cart.total():.2f}")
    return "\n".join(result_lines)


def format_catalog() -> str:
    if storefront.catalog_error:
        return f"Error: {storefront.catalog_error}"
    products = storefront.available_products()
    if not products:
        return "No products are available right now"
    result_lines = [f"{len(products)} product(s) available:\n"]
    for i, product in enumerate(products, 1):
        result_lines.append(f"\n{i}. {product.title}")
        result_lines.append(f"   ID: {product.id}")
        result_lines.append(f"   Price: ${product.price:.2f}")
        result_lines.append(f"   Colors: {', '.join(storefront.colors_for(product.id))}")
        if product.description:
            result_lines.append(f"   {product.description}")
    return "\n".join(result_lines)


def format_settings() -> str:
    settings = storefront.settings
    return "\n".join(
        [
            settings.get("welcome_title", ""),
            settings.get("welcome_message", ""),
            "",
            settings.get("instructions", ""),
            "",
            f"Pickup: {settings.get('pickup_location') or 'Location TBD'}, "
            f"{settings.get('pickup_date') or 'Date TBD'}",
        ]
    )


def text(message: str) -> list[TextContent]:
    return [TextContent(type="text", text=message)]


@app.list_resources()
async def list_resources() -> list[Resource]:
    """List available resources."""
    return [
        Resource(
            uri=AnyUrl("mums://cart"),
            name="Cart",
            mimeType="application/json",
            description="Current cart lines and total",
        ),
        Resource(
            uri=AnyUrl("mums://catalog"),
            name="Catalog",
            mimeType="application/json",
            description="Products currently for sale",
        ),
    ]


@app.read_resource()
async def read_resource(uri: AnyUrl) -> str:
    """Read a resource by URI."""
    uri_str = str(uri)

    if uri_str == "mums://cart":
        return json.dumps(
            {
                "lines": [line.model_dump(mode="json", by_alias=True) for line in storefront.cart.lines],
                "total": f"{storefront.cart.total():.2f}",
            },
            indent=2,
        )

    elif uri_str == "mums://catalog":
        products = storefront.available_products()
        return json.dumps(
            [
                {**product.model_dump(mode="json"), "colors": storefront.colors_for(product.id)}
                for product in products
            ],
            indent=2,
        )

    raise ValueError(f"Unknown resource: {uri}")


@app.list_tools()
async def list_tools() -> list[Tool]:
    """List available tools."""
    return [
        Tool(
            name="mums_get_settings",
            description="Get the sale's welcome text, instructions and pickup details",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="mums_get_catalog",
            description="List products for sale with prices and color choices",
            inputSchema={
                "type": "object",
                "properties": {
                    "refresh": {
                        "type": "boolean",
                        "description": "Bypass the cache and reload from the sheet",
                        "default": False,
                    },
                },
            },
        ),
        Tool(
            name="mums_get_scouts",
            description="List scout names orders can be credited to",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="mums_set_quantity",
            description="Set the quantity of a product in a given color (0 removes it)",
            inputSchema={
                "type": "object",
                "properties": {
                    "product_id": {"type": "string", "description": "Product ID"},
                    "color": {"type": "string", "description": "Color choice"},
                    "quantity": {"type": "integer", "description": "Quantity (0-99)"},
                },
                "required": ["product_id", "quantity"],
            },
        ),
        Tool(
            name="mums_adjust_quantity",
            description="Increase or decrease the quantity of a product in a given color",
            inputSchema={
                "type": "object",
                "properties": {
                    "product_id": {"type": "string", "description": "Product ID"},
                    "color": {"type": "string", "description": "Color choice"},
                    "delta": {"type": "integer", "description": "Change, e.g. 1 or -1"},
                    "displayed_quantity": {
                        "type": "integer",
                        "description": "Quantity currently shown to the customer (optional)",
                    },
                },
                "required": ["product_id", "delta"],
            },
        ),
        Tool(
            name="mums_add_donation",
            description="Add a direct donation to the cart",
            inputSchema={
                "type": "object",
                "properties": {
                    "amount": {"type": "number", "description": "Donation amount in USD"},
                },
                "required": ["amount"],
            },
        ),
        Tool(
            name="mums_remove_line",
            description="Remove a cart line by its position (1-based, as listed by mums_get_cart)",
            inputSchema={
                "type": "object",
                "properties": {"position": {"type": "integer", "description": "Line position"}},
                "required": ["position"],
            },
        ),
        Tool(
            name="mums_decrement_line",
            description="Reduce a cart line by one (lines at quantity 1 are left unchanged)",
            inputSchema={
                "type": "object",
                "properties": {"position": {"type": "integer", "description": "Line position"}},
                "required": ["position"],
            },
        ),
        Tool(
            name="mums_get_cart",
            description="Get current cart contents and total",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="mums_start_checkout",
            description="Move to the order form; returns any saved customer details",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="mums_update_customer",
            description="Fill in customer details on the order form (saved automatically)",
            inputSchema={"type": "object", "properties": dict(_CUSTOMER_PROPERTIES)},
        ),
        Tool(
            name="mums_submit_order",
            description="Submit the order. Fields not given are taken from the order form draft.",
            inputSchema={
                "type": "object",
                "properties": {
                    **_CUSTOMER_PROPERTIES,
                    "payment_method": {
                        "type": "string",
                        "enum": ["Venmo", "Zelle", "Cash", "Check"],
                        "description": "Payment method",
                    },
                    "comments": {"type": "string", "description": "Order comments"},
                    "donated_to": {
                        "type": "string",
                        "description": "Donate the mums to this organization instead of picking up",
                    },
                },
                "required": ["payment_method"],
            },
        ),
        Tool(
            name="mums_new_order",
            description="Start a new order with an empty cart",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="mums_get_last_order",
            description="Show the most recent confirmed order",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="mums_submit_volunteer",
            description="Sign up to volunteer at the sale",
            inputSchema={
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "email": {"type": "string"},
                    "phone": {"type": "string"},
                    "interests": {"type": "array", "items": {"type": "string"}},
                    "availability": {"type": "string"},
                    "comments": {"type": "string"},
                },
                "required": ["name", "email"],
            },
        ),
        Tool(
            name="mums_submit_helper",
            description="Send a helper contact request",
            inputSchema={
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "email": {"type": "string"},
                    "phone": {"type": "string"},
                    "message": {"type": "string"},
                },
                "required": ["name", "email"],
            },
        ),
    ]


@app.call_tool()
async def call_tool(name: str, arguments: Any) -> list[TextContent]:
    """Handle tool calls."""
    arguments = arguments or {}
    try:
        if name == "mums_get_settings":
            return text(format_settings())

        elif name == "mums_get_catalog":
            if arguments.get("refresh"):
                storefront.client.clear_cache()
                await asyncio.to_thread(storefront.refresh_catalog)
            return text(format_catalog())

        elif name == "mums_get_scouts":
            scouts = storefront.client.fetch_scout_names()
            if not scouts:
                return text("No scouts listed")
            return text("\n".join(scouts))

        elif name == "mums_set_quantity":
            storefront.checkout.ensure_cart_editable()
            product_id = arguments["product_id"]
            color = arguments.get("color")
            applied = storefront.cart.set_line_quantity(product_id, color, arguments["quantity"])
            return text(f"{product_id} ({color}) quantity is now {applied}\n\n{format_cart()}")

        elif name == "mums_adjust_quantity":
            storefront.checkout.ensure_cart_editable()
            product_id = arguments["product_id"]
            color = arguments.get("color")
            applied = storefront.cart.adjust_line_quantity(
                product_id, color, int(arguments["delta"]), arguments.get("displayed_quantity")
            )
            return text(f"{product_id} ({color}) quantity is now {applied}\n\n{format_cart()}")

        elif name == "mums_add_donation":
            storefront.checkout.ensure_cart_editable()
            line = storefront.cart.add_donation(arguments["amount"])
            return text(f"Added donation of ${line.price:.2f}\n\n{format_cart()}")

        elif name == "mums_remove_line":
            storefront.checkout.ensure_cart_editable()
            line = storefront.cart.remove_line(int(arguments["position"]) - 1)
            return text(f"Removed {line.title}\n\n{format_cart()}")

        elif name == "mums_decrement_line":
            storefront.checkout.ensure_cart_editable()
            storefront.cart.decrement_line(int(arguments["position"]) - 1)
            return text(format_cart())

        elif name == "mums_get_cart":
            return text(format_cart())

        elif name == "mums_start_checkout":
            saved = storefront.checkout.proceed_to_form()
            result_lines = ["Order form opened.", "", format_cart()]
            if saved.first_name or saved.email:
                result_lines.append("\nSaved customer details:")
                result_lines.append(saved.model_dump_json(indent=2))
            return text("\n".join(result_lines))

        elif name == "mums_update_customer":
            info = customer_from_arguments(arguments, storefront.checkout.draft)
            storefront.checkout.update_customer(info)
            return text("Customer details updated:\n" + info.model_dump_json(indent=2))

        elif name == "mums_submit_order":
            checkout = storefront.checkout
            if checkout.state == CheckoutState.BROWSING:
                checkout.proceed_to_form()
            customer = customer_from_arguments(arguments, checkout.draft)
            try:
                result = await asyncio.to_thread(
                    checkout.submit,
                    customer,
                    arguments["payment_method"],
                    comments=arguments.get("comments", ""),
                    donated_to=arguments.get("donated_to"),
                )
            except SubmissionError as e:
                return text(f"Error: {e}\nYour cart has been kept; you can try again.")
            return text(
                "\n".join(
                    [
                        "Order confirmed!",
                        f"Order ID: {result.order_id}",
                        f"Total: ${checkout.order_total:.2f}",
                        "",
                        payment_instructions(checkout.payment_method, result.order_id, storefront.settings),
                    ]
                )
            )

        elif name == "mums_new_order":
            storefront.checkout.new_order()
            return text("Started a new order")

        elif name == "mums_get_last_order":
            order = storefront.checkout.last_order()
            if not order:
                return text("No previous order found")
            return text(
                f"Order ID: {order.order_id}\n"
                f"Date: {order.date.strftime('%Y-%m-%d %H:%M')}\n"
                f"Total: ${order.total:.2f}"
            )

        elif name == "mums_submit_volunteer":
            flow = storefront.volunteer
            flow.restart()
            flow.open_form()
            await asyncio.to_thread(flow.submit, VolunteerSubmission.model_validate(arguments))
            return text("Thank you for volunteering! We'll be in touch.")

        elif name == "mums_submit_helper":
            flow = storefront.helper
            flow.restart()
            flow.open_form()
            await asyncio.to_thread(flow.submit, HelperContact.model_validate(arguments))
            return text("Thank you! Your request has been sent.")

        else:
            return text(f"Unknown tool: {name}")

    except StorefrontError as e:
        return text(f"Error: {e}")
    except Exception as e:
        logger.error(f"Error executing tool {name}: {e}", exc_info=True)
        return text(f"Error: {str(e)}")


async def main() -> None:
    """Main entry point for the MCP server."""
    global storefront

    config = StoreConfig.from_env()
    if config.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    storefront = Storefront(config)
    storefront.load()

    logger.info("Starting Mums MCP Server...")

    # Import and run the server
    from mcp.server.stdio import stdio_server

    auto_save = asyncio.create_task(
        auto_save_customer_info(storefront.checkout, config.auto_save_interval)
    )
    try:
        async with stdio_server() as (read_stream, write_stream):
            await app.run(
                read_stream,
                write_stream,
                app.create_initialization_options(),
            )
    finally:
        auto_save.cancel()
        storefront.close()


if __name__ == "__main__":
    asyncio.run(main())
