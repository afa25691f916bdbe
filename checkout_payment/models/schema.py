"""Pydantic models for the payment step.

Storefront payloads arrive camelCase (``addressId``, ``countryCode``), so every
model accepts both the alias and the Python field name.
"""
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from ..config import DEFAULT_COUNTRY

ADDRESS_FIELDS = (
    "first_name",
    "last_name",
    "address1",
    "address2",
    "city",
    "country_code",
    "state_code",
    "postal_code",
    "phone",
)


class _StorefrontModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)


class Address(_StorefrontModel):
    """An address snapshot. Immutable; edits go through an EditSession."""
    address_id: Optional[str] = None
    first_name: str = ""
    last_name: str = ""
    address1: str = ""
    address2: str = ""
    city: str = ""
    country_code: str = DEFAULT_COUNTRY
    state_code: str = ""
    postal_code: str = ""
    phone: str = ""

    @model_validator(mode="before")
    @classmethod
    def _accept_storefront_shape(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = {k: v for k, v in data.items() if v is not None}
            # Account address book entries carry their id as "ID"
            if "ID" in data and "addressId" not in data and "address_id" not in data:
                data["addressId"] = data.pop("ID")
        return data

    @field_validator("country_code", mode="before")
    @classmethod
    def _country_value(cls, value: Any) -> Any:
        # {"displayValue": "United States", "value": "US"}
        if isinstance(value, dict):
            return value.get("value") or DEFAULT_COUNTRY
        return value

    def field_values(self) -> dict[str, str]:
        """Editable fields only (no identity)."""
        return {name: getattr(self, name) for name in ADDRESS_FIELDS}


class Customer(_StorefrontModel):
    addresses: list[Address] = Field(default_factory=list)
    preferred_address: Optional[Address] = None

    @model_validator(mode="before")
    @classmethod
    def _flatten_address_book(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("addressBook"), dict):
            data = {**data, **data["addressBook"]}
        return data


class StorefrontPaymentMethod(_StorefrontModel):
    """An entry of the order's applicable payment methods (informational)."""
    id: str = Field(alias="ID")
    name: str = ""


class Order(_StorefrontModel):
    billing_address: Optional[Address] = None
    matching_address_id: Optional[str] = None
    applicable_payment_methods: list[StorefrontPaymentMethod] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _flatten_billing(cls, data: Any) -> Any:
        # Storefront shape: {"billing": {"billingAddress": {"address": {...}},
        #                    "matchingAddressId": ..., "payment": {...}}}
        if not isinstance(data, dict) or "billing" not in data:
            return data
        billing = data.get("billing") or {}
        flat: dict[str, Any] = {}
        address = (billing.get("billingAddress") or {}).get("address")
        if address:
            flat["billing_address"] = address
        if billing.get("matchingAddressId"):
            flat["matching_address_id"] = billing["matchingAddressId"]
        methods = (billing.get("payment") or {}).get("applicablePaymentMethods")
        if methods:
            flat["applicable_payment_methods"] = methods
        return flat


class ProcessorConfig(_StorefrontModel):
    """Widget configuration handed down by the storefront."""
    client_key: str = ""
    environment: str = "test"


class CheckoutContext(_StorefrontModel):
    """Everything the payment step is built from. A reload brings a new one."""
    token: str
    customer: Customer = Field(default_factory=Customer)
    order: Order = Field(default_factory=Order)
    processor: ProcessorConfig = Field(default_factory=ProcessorConfig, alias="adyen")


class MethodDescriptor(_StorefrontModel):
    """One payment method offered by the processor."""
    id: str
    name: str = ""
    brands: tuple[str, ...] = ()
    tokenized: bool = False
    requires_fingerprint: bool = False


class MethodList(_StorefrontModel):
    """Ordered directory snapshot plus the raw processor response."""
    methods: tuple[MethodDescriptor, ...] = ()
    raw: dict[str, Any] = Field(default_factory=dict)

    @property
    def ids(self) -> list[str]:
        return [m.id for m in self.methods]

    def get(self, method_id: str) -> Optional[MethodDescriptor]:
        for method in self.methods:
            if method.id == method_id:
                return method
        return None

    def __len__(self) -> int:
        return len(self.methods)


class TokenizedPaymentState(_StorefrontModel):
    """Output of one tokenization attempt. Single-use, never persisted."""
    state_data: str
    brand_code: str = "scheme"
    holder_name: str = ""
    fingerprint: Optional[str] = None
    card_brand: str = ""


class AddressSaveRequest(_StorefrontModel):
    """Body of an address book save."""
    address_id: Optional[str] = None
    first_name: str
    last_name: str
    address1: str
    address2: str = ""
    country: str
    state_code: str
    city: str
    postal_code: str
    phone: str

    @classmethod
    def from_address(cls, address: Address) -> "AddressSaveRequest":
        return cls(
            address_id=address.address_id,
            first_name=address.first_name,
            last_name=address.last_name,
            address1=address.address1,
            address2=address.address2,
            country=address.country_code,
            state_code=address.state_code,
            city=address.city,
            postal_code=address.postal_code,
            phone=address.phone,
        )


class SubmissionStatus(str, Enum):
    ACCEPTED = "accepted"
    DUPLICATE = "duplicate"
    ALREADY_SUBMITTED = "already_submitted"
    INVALID = "invalid"
    METHODS_UNAVAILABLE = "methods_unavailable"
    TOKENIZATION_FAILED = "tokenization_failed"
    FAILED = "failed"


class SubmissionResult(BaseModel):
    status: SubmissionStatus
    message: str = ""
    field_errors: dict[str, str] = Field(default_factory=dict)
    order_response: dict[str, Any] = Field(default_factory=dict)

    @property
    def accepted(self) -> bool:
        return self.status == SubmissionStatus.ACCEPTED
