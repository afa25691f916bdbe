"""
Storefront HTTP client: the three controllers the payment step talks to.

Every call is a form-encoded POST carrying the session CSRF token; every
response is JSON. Nothing here retries.
"""
import json
import logging
from typing import Any, Optional

import httpx

from ..config import Settings, get_settings
from ..errors import ServiceError, SubmissionError
from ..models.schema import Address, AddressSaveRequest, MethodDescriptor, MethodList
from . import fields
from .base import AddressBookService, OrderSubmissionService, PaymentMethodService

logger = logging.getLogger(__name__)

ROUTES = {
    "save_address": "Address-SaveAddress",
    "payment_methods": "Adyen-GetPaymentMethods",
    "submit_payment": "CheckoutServices-SubmitPayment",
}

# Processor method types rendered by the embedded card component
TOKENIZED_METHOD_TYPES = {"scheme"}

GENERIC_SUBMIT_ERROR = "Payment could not be submitted. Please try again."


def parse_payment_methods(data: Any, settings: Optional[Settings] = None) -> MethodList:
    """Turn a payment-methods response into a directory snapshot."""
    settings = settings or get_settings()
    if not isinstance(data, dict):
        raise ServiceError("Malformed payment methods response")

    container = data.get("AdyenPaymentMethods") if isinstance(data.get("AdyenPaymentMethods"), dict) else data
    entries = container.get("paymentMethods")
    if not isinstance(entries, list):
        raise ServiceError("Payment methods response has no method list")

    methods: list[MethodDescriptor] = []
    for entry in entries:
        if not isinstance(entry, dict) or not isinstance(entry.get("type"), str):
            logger.warning("Skipping malformed payment method entry: %r", entry)
            continue
        method_type = entry["type"]
        brands = entry.get("brands") if isinstance(entry.get("brands"), list) else []
        methods.append(MethodDescriptor(
            id=method_type,
            name=str(entry.get("name") or method_type),
            brands=tuple(str(b) for b in brands),
            tokenized=method_type in TOKENIZED_METHOD_TYPES,
            requires_fingerprint=method_type in settings.fingerprint_methods,
        ))
    return MethodList(methods=tuple(methods), raw=container)


def _submit_error_message(body: dict[str, Any]) -> str:
    server_errors = body.get("serverErrors")
    if isinstance(server_errors, list) and server_errors:
        return str(server_errors[0])
    if body.get("errorMessage"):
        return str(body["errorMessage"])
    field_errors = body.get("fieldErrors")
    if isinstance(field_errors, list):
        messages = [str(m) for group in field_errors if isinstance(group, dict) for m in group.values()]
        if messages:
            return "; ".join(messages)
    return GENERIC_SUBMIT_ERROR


class StorefrontClient(AddressBookService, PaymentMethodService, OrderSubmissionService):
    """httpx-backed implementation of the storefront services."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._settings = settings or get_settings()
        self._base_url = (base_url or self._settings.storefront_url).rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=self._settings.http_timeout)
        self._owns_client = client is None

    def url_for(self, route: str) -> str:
        return f"{self._base_url}/{ROUTES[route]}"

    async def _post_form(self, route: str, data: dict[str, str]) -> dict[str, Any]:
        url = self.url_for(route)
        try:
            response = await self._client.post(url, data=data)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ServiceError(f"{ROUTES[route]} request failed: {e}") from e

        try:
            body = response.json()
        except json.JSONDecodeError as e:
            raise ServiceError(f"{ROUTES[route]} returned a non-JSON body") from e
        if not isinstance(body, dict):
            raise ServiceError(f"{ROUTES[route]} returned an unexpected body")
        return body

    async def save_address(self, request: AddressSaveRequest, session_token: str) -> Address:
        address = Address(
            address_id=request.address_id,
            first_name=request.first_name,
            last_name=request.last_name,
            address1=request.address1,
            address2=request.address2,
            country_code=request.country,
            state_code=request.state_code,
            city=request.city,
            postal_code=request.postal_code,
            phone=request.phone,
        )
        form = fields.address_form_fields(address)
        form[fields.CSRF_TOKEN] = session_token
        if request.address_id:
            form["addressId"] = request.address_id

        body = await self._post_form("save_address", form)
        if body.get("success") is False or body.get("error"):
            raise ServiceError(str(body.get("errorMessage") or "Address was not saved"))

        saved_id = body.get("addressId") or request.address_id
        logger.info("Saved address %s", saved_id or "(new)")
        return address.model_copy(update={"address_id": saved_id})

    async def get_payment_methods(self, session_token: str) -> MethodList:
        body = await self._post_form("payment_methods", {fields.CSRF_TOKEN: session_token})
        methods = parse_payment_methods(body, self._settings)
        logger.info("Loaded %d payment methods: %s", len(methods), ", ".join(methods.ids))
        return methods

    async def submit_payment(self, payload: dict[str, str]) -> dict[str, Any]:
        try:
            body = await self._post_form("submit_payment", payload)
        except ServiceError as e:
            raise SubmissionError(GENERIC_SUBMIT_ERROR) from e
        if body.get("error"):
            raise SubmissionError(_submit_error_message(body))
        return body

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
