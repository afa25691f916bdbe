"""
Checkout Payment MCP Server.

Exposes the payment step of a storefront checkout over stdio: billing
address choice and edits, payment method selection, and the single payment
submission. Card details are typed by the shopper into the processor's
widget, which opens in its own browser window; they never pass through here.
"""
import asyncio
import json
import logging
from datetime import datetime
from typing import Any, Optional

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import Tool, TextContent
from pydantic import ValidationError

from .config import get_settings
from .coordinator import SubmissionCoordinator
from .errors import CheckoutError
from .form import SetBillingFields, SelectPaymentMethod, ToggleSameAsShipping
from .models.schema import Address, CheckoutContext
from .output_sanitizer import redact_token, sanitize_output
from .services.storefront import StorefrontClient
from .tokenization.playwright_widget import PlaywrightCardWidget

logger = logging.getLogger(__name__)


def _debug_log(tool_name: str, args: dict, result: str) -> None:
    """Append a tool call entry to the debug log file."""
    try:
        debug_dir = get_settings().debug_dir
        debug_dir.mkdir(parents=True, exist_ok=True)
        log_file = debug_dir / f"session_{datetime.now().strftime('%Y-%m-%d')}.log"
        timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]

        entry = (
            f"\n{'='*80}\n"
            f"[{timestamp}] TOOL: {tool_name}\n"
            f"ARGS: {sanitize_output(json.dumps(args, indent=2))}\n"
            f"RESPONSE:\n{result}\n"
        )

        with open(log_file, "a") as f:
            f.write(entry)
    except OSError as e:
        logger.debug("Debug log write failed: %s", e)


server = Server("checkout-payment")

# Lazy-initialized singletons
_storefront: Optional[StorefrontClient] = None
_coordinator: Optional[SubmissionCoordinator] = None
_stage: str = "payment"


def _get_storefront() -> StorefrontClient:
    global _storefront
    if _storefront is None:
        _storefront = StorefrontClient()
    return _storefront


def _require_coordinator() -> SubmissionCoordinator:
    if _coordinator is None:
        raise CheckoutError("No payment step loaded. Use load_payment_step first.")
    return _coordinator


def _advance(stage: str) -> None:
    global _stage
    _stage = stage
    logger.info("Checkout advanced to stage %s", stage)


def _address_summary(address: Address) -> dict:
    return {
        "address_id": address.address_id,
        "name": f"{address.first_name} {address.last_name}".strip(),
        "address1": address.address1,
        "address2": address.address2,
        "city": address.city,
        "state_code": address.state_code,
        "postal_code": address.postal_code,
        "country_code": address.country_code,
    }


def _status_summary(coordinator: SubmissionCoordinator) -> dict:
    form = coordinator.form
    snapshot = coordinator.directory.snapshot
    session = coordinator.resolver.session
    return {
        "stage": _stage,
        "billing": _address_summary(form.billing),
        "use_shipping_as_billing": form.use_shipping_as_billing,
        "saved_addresses": [_address_summary(a) for a in coordinator.resolver.saved_addresses()],
        "payment_method": form.payment_method,
        "available_methods": [
            {"id": m.id, "name": m.name, "card_widget": m.tokenized}
            for m in (snapshot.methods if snapshot else ())
        ],
        "methods_unavailable": coordinator.methods_unavailable,
        "card_form": coordinator.bridge.state.value,
        "card": {"type": form.card_type, "number": form.masked_card_number},
        "address_edit": None if session is None else {
            "address_id": session.address.address_id,
            "fields": session.fields,
            "error": session.error,
        },
        "submitting": coordinator.pending,
        "submitted": coordinator.submitted,
    }


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------

_ADDRESS_FIELDS_DESCRIPTION = (
    "Address fields (first_name, last_name, address1, address2, city, "
    "country_code, state_code, postal_code, phone)"
)


@server.list_tools()
async def list_tools() -> list[Tool]:
    return [
        Tool(
            name="load_payment_step",
            description=(
                "Load the payment step for a checkout. Resolves the billing address, fetches the "
                "available payment methods and opens the card form in a browser window."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "checkout": {
                        "type": "object",
                        "description": "Checkout data from the storefront: token, customer, order, adyen",
                    },
                },
                "required": ["checkout"],
            },
        ),
        Tool(
            name="payment_step_status",
            description="Show the current billing address, payment method, card form state and submission state.",
            inputSchema={
                "type": "object",
                "properties": {},
                "required": [],
            },
        ),
        Tool(
            name="use_shipping_as_billing",
            description=(
                "Turn 'billing same as shipping' on or off. Turning it on resets the billing "
                "address to the shipping-derived default."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "enabled": {
                        "type": "boolean",
                        "description": "True to bill to the shipping address",
                    },
                },
                "required": ["enabled"],
            },
        ),
        Tool(
            name="select_billing_address",
            description="Bill to one of the customer's saved addresses.",
            inputSchema={
                "type": "object",
                "properties": {
                    "address_id": {
                        "type": "string",
                        "description": "Saved address id (shown in payment_step_status)",
                    },
                },
                "required": ["address_id"],
            },
        ),
        Tool(
            name="set_billing_fields",
            description="Type billing address fields. Requires 'same as shipping' to be off.",
            inputSchema={
                "type": "object",
                "properties": {
                    "fields": {
                        "type": "object",
                        "description": _ADDRESS_FIELDS_DESCRIPTION,
                    },
                },
                "required": ["fields"],
            },
        ),
        Tool(
            name="select_payment_method",
            description="Choose one of the available payment methods.",
            inputSchema={
                "type": "object",
                "properties": {
                    "method_id": {
                        "type": "string",
                        "description": "Payment method id (shown in payment_step_status)",
                    },
                },
                "required": ["method_id"],
            },
        ),
        Tool(
            name="retry_payment_methods",
            description="Retry loading payment methods after a failure.",
            inputSchema={
                "type": "object",
                "properties": {},
                "required": [],
            },
        ),
        Tool(
            name="edit_billing_address",
            description=(
                "Edit a saved address. begin opens the edit, update changes fields, commit saves "
                "it to the address book, cancel discards it. Only one edit at a time."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "action": {
                        "type": "string",
                        "enum": ["begin", "update", "commit", "cancel"],
                        "description": "What to do with the edit",
                    },
                    "address_id": {
                        "type": "string",
                        "description": "Address to edit (begin only; defaults to the billing address)",
                    },
                    "fields": {
                        "type": "object",
                        "description": _ADDRESS_FIELDS_DESCRIPTION,
                    },
                },
                "required": ["action"],
            },
        ),
        Tool(
            name="submit_payment",
            description=(
                "Submit the payment. For card payments the card form is tokenized first; the "
                "shopper must have entered card details in the card window."
            ),
            inputSchema={
                "type": "object",
                "properties": {},
                "required": [],
            },
        ),
    ]


# ---------------------------------------------------------------------------
# Tool dispatch
# ---------------------------------------------------------------------------

@server.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    try:
        if name == "load_payment_step":
            result = await _handle_load_payment_step(arguments)
        elif name == "payment_step_status":
            result = await _handle_payment_step_status(arguments)
        elif name == "use_shipping_as_billing":
            result = await _handle_use_shipping_as_billing(arguments)
        elif name == "select_billing_address":
            result = await _handle_select_billing_address(arguments)
        elif name == "set_billing_fields":
            result = await _handle_set_billing_fields(arguments)
        elif name == "select_payment_method":
            result = await _handle_select_payment_method(arguments)
        elif name == "retry_payment_methods":
            result = await _handle_retry_payment_methods(arguments)
        elif name == "edit_billing_address":
            result = await _handle_edit_billing_address(arguments)
        elif name == "submit_payment":
            result = await _handle_submit_payment(arguments)
        else:
            return [TextContent(type="text", text=f"Unknown tool: {name}")]

        sanitized = sanitize_output(json.dumps(result, indent=2))
        _debug_log(name, arguments, sanitized)
        return [TextContent(type="text", text=sanitized)]

    except (CheckoutError, ValueError) as e:
        error_text = sanitize_output(f"Error: {e}")
        _debug_log(name, arguments, error_text)
        return [TextContent(type="text", text=error_text)]
    except Exception as e:
        logger.exception("Tool %s failed", name)
        error_text = sanitize_output(f"Error: {e}")
        _debug_log(name, arguments, error_text)
        return [TextContent(type="text", text=error_text)]


# ---------------------------------------------------------------------------
# Tool implementations
# ---------------------------------------------------------------------------

async def _handle_load_payment_step(args: dict) -> dict:
    """Build a fresh coordinator for the given checkout and load it."""
    global _coordinator, _stage
    try:
        context = CheckoutContext.model_validate(args["checkout"])
    except ValidationError as e:
        return {"status": "error", "message": f"Invalid checkout data: {e.error_count()} problems"}

    if _coordinator is not None:
        await _coordinator.close()

    storefront = _get_storefront()
    _stage = "payment"
    _coordinator = SubmissionCoordinator(
        context,
        address_book=storefront,
        payment_methods=storefront,
        orders=storefront,
        widget_factory=PlaywrightCardWidget,
        on_advance=_advance,
        on_complete=lambda: logger.info("Payment step complete"),
    )
    logger.info("Loading payment step (session %s)", redact_token(context.token))
    await _coordinator.load()
    return {"status": "loaded", "payment_step": _status_summary(_coordinator)}


async def _handle_payment_step_status(args: dict) -> dict:
    return {"status": "ok", "payment_step": _status_summary(_require_coordinator())}


async def _handle_use_shipping_as_billing(args: dict) -> dict:
    coordinator = _require_coordinator()
    coordinator.dispatch(ToggleSameAsShipping(bool(args["enabled"])))
    return {"status": "updated", "payment_step": _status_summary(coordinator)}


async def _handle_select_billing_address(args: dict) -> dict:
    coordinator = _require_coordinator()
    coordinator.select_saved_address(args["address_id"])
    return {"status": "updated", "payment_step": _status_summary(coordinator)}


async def _handle_set_billing_fields(args: dict) -> dict:
    coordinator = _require_coordinator()
    fields = args.get("fields") or {}
    if not fields:
        return {"status": "error", "message": "set_billing_fields requires 'fields'."}
    coordinator.dispatch(SetBillingFields({k: str(v) for k, v in fields.items()}))
    return {"status": "updated", "payment_step": _status_summary(coordinator)}


async def _handle_select_payment_method(args: dict) -> dict:
    coordinator = _require_coordinator()
    coordinator.dispatch(SelectPaymentMethod(args["method_id"]))
    return {"status": "updated", "payment_step": _status_summary(coordinator)}


async def _handle_retry_payment_methods(args: dict) -> dict:
    coordinator = _require_coordinator()
    await coordinator.retry_payment_methods()
    return {"status": "loaded", "payment_step": _status_summary(coordinator)}


async def _handle_edit_billing_address(args: dict) -> dict:
    """Drive the address edit session."""
    coordinator = _require_coordinator()
    action = args["action"]

    if action == "begin":
        coordinator.begin_address_edit(args.get("address_id"))
        if args.get("fields"):
            coordinator.update_address_edit(**args["fields"])
        return {"status": "editing", "payment_step": _status_summary(coordinator)}

    if action == "update":
        fields = args.get("fields")
        if not fields:
            return {"status": "error", "message": "update requires 'fields'."}
        coordinator.update_address_edit(**fields)
        return {"status": "editing", "payment_step": _status_summary(coordinator)}

    if action == "commit":
        saved = await coordinator.commit_address_edit()
        return {"status": "saved", "address": _address_summary(saved), "payment_step": _status_summary(coordinator)}

    if action == "cancel":
        coordinator.cancel_address_edit()
        return {"status": "cancelled", "payment_step": _status_summary(coordinator)}

    return {"status": "error", "message": f"Unknown action: {action}"}


async def _handle_submit_payment(args: dict) -> dict:
    coordinator = _require_coordinator()
    result = await coordinator.submit()
    response: dict[str, Any] = {"status": result.status.value, "stage": _stage}
    if result.message:
        response["message"] = result.message
    if result.field_errors:
        response["field_errors"] = result.field_errors
    return response


# ---------------------------------------------------------------------------
# Server entry point
# ---------------------------------------------------------------------------

async def main():
    """Run the MCP server over stdio."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    logger.info("Checkout Payment MCP server starting...")

    try:
        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())
    finally:
        if _coordinator:
            await _coordinator.close()
        if _storefront:
            await _storefront.aclose()


def run():
    """Sync entry point for console_scripts."""
    asyncio.run(main())
