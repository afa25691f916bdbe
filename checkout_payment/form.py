"""
FormState (the in-progress billing submission) and the reducer that is
the only way to change it.

Tokenized payment data never lives here: it is merged into the
outbound payload by ``build_payment_payload`` and nowhere else.
"""
from dataclasses import dataclass, field
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict

from .config import get_settings
from .errors import ValidationFailedError
from .models.schema import ADDRESS_FIELDS, Address, MethodDescriptor, MethodList, TokenizedPaymentState
from .services import fields as wire
from .tokenization.events import CardBrandDetected, CardDigitsCaptured

# Field -> message for required billing fields
REQUIRED_FIELDS = {
    "first_name": "First name is required",
    "last_name": "Last name is required",
    "address1": "Address is required",
    "country_code": "Country is required",
    "state_code": "State is required",
    "city": "City is required",
    "postal_code": "Postal code is required",
    "phone": "Phone number is required",
}
PAYMENT_METHOD_REQUIRED = "Please select a payment method"


class FormState(BaseModel):
    model_config = ConfigDict(frozen=True)

    address_selector: str = ""
    billing: Address = Address()
    shipping_defaults: Address = Address()
    use_shipping_as_billing: bool = True
    payment_method: str = ""
    card_type: str = "visa"
    masked_card_number: str = ""


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SetBillingFields:
    fields: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ToggleSameAsShipping:
    enabled: bool


@dataclass(frozen=True)
class SelectBillingAddress:
    address: Address


@dataclass(frozen=True)
class SelectPaymentMethod:
    method_id: str
    directory: Optional[MethodList] = None


@dataclass(frozen=True)
class DefaultsChanged:
    shipping_defaults: Address


FormAction = Union[
    SetBillingFields,
    ToggleSameAsShipping,
    SelectBillingAddress,
    SelectPaymentMethod,
    DefaultsChanged,
    CardBrandDetected,
    CardDigitsCaptured,
]


def create_form_state(
    billing: Address,
    shipping_defaults: Address,
    matching_address_id: Optional[str] = None,
    payment_method: Optional[str] = None,
) -> FormState:
    """Initial FormState, derived from the resolver's snapshots."""
    return FormState(
        address_selector=matching_address_id or "",
        billing=billing,
        shipping_defaults=shipping_defaults,
        use_shipping_as_billing=True,
        payment_method=payment_method or get_settings().default_payment_method,
    )


def reduce_form(state: FormState, action: FormAction) -> FormState:
    """Apply one action. Returns a new FormState; ``state`` is untouched."""
    if isinstance(action, SetBillingFields):
        unknown = set(action.fields) - set(ADDRESS_FIELDS)
        if unknown:
            raise ValueError(f"Unknown billing fields: {', '.join(sorted(unknown))}")
        if state.use_shipping_as_billing:
            raise ValueError("Billing fields follow the shipping address; turn off same-as-shipping first")
        billing = state.billing.model_copy(update={k: v or "" for k, v in action.fields.items()})
        return state.model_copy(update={"billing": billing})

    if isinstance(action, ToggleSameAsShipping):
        if action.enabled:
            # Partially typed values are discarded
            return state.model_copy(update={
                "use_shipping_as_billing": True,
                "billing": state.shipping_defaults,
                "address_selector": state.shipping_defaults.address_id or "",
            })
        return state.model_copy(update={"use_shipping_as_billing": False})

    if isinstance(action, SelectBillingAddress):
        return state.model_copy(update={
            "use_shipping_as_billing": False,
            "billing": action.address,
            "address_selector": action.address.address_id or "",
        })

    if isinstance(action, SelectPaymentMethod):
        if action.directory is not None and action.directory.get(action.method_id) is None:
            raise ValueError(
                f"Payment method {action.method_id!r} is not offered "
                f"(available: {', '.join(action.directory.ids) or 'none'})"
            )
        return state.model_copy(update={"payment_method": action.method_id})

    if isinstance(action, DefaultsChanged):
        update = {"shipping_defaults": action.shipping_defaults}
        if state.use_shipping_as_billing:
            update["billing"] = action.shipping_defaults
            update["address_selector"] = action.shipping_defaults.address_id or ""
        return state.model_copy(update=update)

    if isinstance(action, CardBrandDetected):
        return state.model_copy(update={"card_type": action.brand})

    if isinstance(action, CardDigitsCaptured):
        return state.model_copy(update={"masked_card_number": f"************{action.end_digits}"})

    raise TypeError(f"Unsupported form action: {type(action).__name__}")


def validate_form(state: FormState) -> dict[str, str]:
    """Required-field errors, keyed by field name. Empty when submittable."""
    errors = {
        name: message
        for name, message in REQUIRED_FIELDS.items()
        if not str(getattr(state.billing, name) or "").strip()
    }
    if not state.payment_method:
        errors["payment_method"] = PAYMENT_METHOD_REQUIRED
    return errors


def require_valid(state: FormState) -> None:
    errors = validate_form(state)
    if errors:
        raise ValidationFailedError(errors)


def build_payment_payload(
    state: FormState,
    method: MethodDescriptor,
    session_token: str,
    tokenized: Optional[TokenizedPaymentState] = None,
) -> dict[str, str]:
    """The single order-submission form for one attempt."""
    payload = {
        "addressSelector": state.address_selector,
        "localizedNewAddressTitle": "New Address",
        **wire.address_form_fields(state.billing),
        wire.SAME_AS_SHIPPING: "true" if state.use_shipping_as_billing else "false",
        wire.PAYMENT_METHOD: wire.COMPONENT_METHOD_ID if method.tokenized else method.id,
        "adyenPaymentMethod": method.name,
        wire.CARD_TYPE: state.card_type,
        wire.CARD_NUMBER: state.masked_card_number,
        wire.PARTIAL_PAYMENTS_ORDER: "",
        wire.ISSUER: "",
        "adyenIssuerName": "",
        wire.STATE_DATA: "",
        "brandCode": "",
        "holderName": "",
        wire.FINGERPRINT: "",
        wire.CSRF_TOKEN: session_token,
    }
    if tokenized is not None:
        payload.update({
            wire.STATE_DATA: tokenized.state_data,
            "brandCode": tokenized.brand_code,
            "holderName": tokenized.holder_name,
            wire.FINGERPRINT: tokenized.fingerprint or "",
        })
        if tokenized.card_brand:
            payload[wire.CARD_TYPE] = tokenized.card_brand
    return payload
