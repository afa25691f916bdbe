"""Storefront form field names for the billing step."""
from ..models.schema import Address

# Address attribute -> billing form field
BILLING_ADDRESS_FIELDS = {
    "first_name": "dwfrm_billing_addressFields_firstName",
    "last_name": "dwfrm_billing_addressFields_lastName",
    "address1": "dwfrm_billing_addressFields_address1",
    "address2": "dwfrm_billing_addressFields_address2",
    "country_code": "dwfrm_billing_addressFields_country",
    "state_code": "dwfrm_billing_addressFields_states_stateCode",
    "city": "dwfrm_billing_addressFields_city",
    "postal_code": "dwfrm_billing_addressFields_postalCode",
    "phone": "dwfrm_billing_contactInfoFields_phone",
}

PAYMENT_METHOD = "dwfrm_billing_paymentMethod"
STATE_DATA = "dwfrm_billing_adyenPaymentFields_adyenStateData"
PARTIAL_PAYMENTS_ORDER = "dwfrm_billing_adyenPaymentFields_adyenPartialPaymentsOrder"
FINGERPRINT = "dwfrm_billing_adyenPaymentFields_adyenFingerprint"
ISSUER = "dwfrm_billing_adyenPaymentFields_issuer"
CARD_NUMBER = "dwfrm_billing_creditCardFields_cardNumber"
CARD_TYPE = "dwfrm_billing_creditCardFields_cardType"
SAME_AS_SHIPPING = "dwfrm_billing_shippingAddressUseAsBillingAddress"
CSRF_TOKEN = "csrf_token"

# Storefront method id used for every method rendered by the card component
COMPONENT_METHOD_ID = "AdyenComponent"


def address_form_fields(address: Address) -> dict[str, str]:
    return {form_name: getattr(address, attr) or "" for attr, form_name in BILLING_ADDRESS_FIELDS.items()}
