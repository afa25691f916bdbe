"""Shared test fixtures."""
import asyncio
from typing import Any, Optional

import pytest

from checkout_payment.errors import ServiceError, SubmissionError
from checkout_payment.models.schema import (
    Address,
    AddressSaveRequest,
    CheckoutContext,
    Customer,
    MethodDescriptor,
    MethodList,
    Order,
    ProcessorConfig,
)
from checkout_payment.services.base import AddressBookService, OrderSubmissionService, PaymentMethodService
from checkout_payment.tokenization.widget import TokenizationWidget


def card_submit_payload(fingerprint: Optional[str] = "risk-client-data", holder: str = "Jane Doe") -> dict:
    """A widget onSubmit payload shaped like the processor's card state."""
    data: dict[str, Any] = {
        "paymentMethod": {
            "type": "scheme",
            "holderName": holder,
            "brand": "visa",
            "encryptedCardNumber": "adyenjs_0_1_25$number",
            "encryptedExpiryMonth": "adyenjs_0_1_25$month",
            "encryptedExpiryYear": "adyenjs_0_1_25$year",
            "encryptedSecurityCode": "adyenjs_0_1_25$cvc",
            "checkoutAttemptId": "attempt-1",
        },
        "browserInfo": {"acceptHeader": "*/*", "colorDepth": 24, "language": "en-US"},
        "origin": "http://localhost",
        "clientStateDataIndicator": True,
    }
    if fingerprint is not None:
        data["riskData"] = {"clientData": fingerprint}
    return {"data": data, "isValid": True}


class FakeWidget(TokenizationWidget):
    """Widget double: reports ready on mount, answers submit with a queued payload."""

    def __init__(self, auto_ready: bool = True):
        self.auto_ready = auto_ready
        self.submit_payloads: list[Any] = [card_submit_payload()]
        self.dispatch = None
        self.mount_calls = 0
        self.submit_calls = 0
        self.unmounted = False

    async def mount(self, methods, processor, dispatch) -> None:
        self.mount_calls += 1
        self.dispatch = dispatch
        if self.auto_ready:
            dispatch("ready", {})

    async def submit(self) -> None:
        self.submit_calls += 1
        payload = self.submit_payloads.pop(0) if self.submit_payloads else card_submit_payload()
        asyncio.get_running_loop().call_soon(self.dispatch, "submit", payload)

    async def unmount(self) -> None:
        self.unmounted = True


class FakeStorefront(AddressBookService, PaymentMethodService, OrderSubmissionService):
    """In-memory storefront that records every call."""

    def __init__(self, methods: MethodList):
        self.methods = methods
        self.methods_error = False
        self.method_calls = 0
        self.saved: list[AddressSaveRequest] = []
        self.save_error = False
        self.submitted: list[dict] = []
        self.submit_error: Optional[str] = None
        self.submit_gate: Optional[asyncio.Event] = None

    async def get_payment_methods(self, session_token: str) -> MethodList:
        self.method_calls += 1
        if self.methods_error:
            raise ServiceError("Adyen-GetPaymentMethods request failed: 503")
        return self.methods

    async def save_address(self, request: AddressSaveRequest, session_token: str) -> Address:
        if self.save_error:
            raise ServiceError("Address-SaveAddress request failed: 500")
        self.saved.append(request)
        return Address(
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

    async def submit_payment(self, payload: dict[str, str]) -> dict:
        self.submitted.append(payload)
        if self.submit_gate is not None:
            await self.submit_gate.wait()
        if self.submit_error:
            raise SubmissionError(self.submit_error)
        return {"error": False, "orderID": "00001234"}


@pytest.fixture
def home_address():
    return Address(
        address_id="home",
        first_name="Jane",
        last_name="Doe",
        address1="123 Main Street",
        address2="Apt 4B",
        city="San Francisco",
        country_code="US",
        state_code="CA",
        postal_code="94102",
        phone="415-555-0100",
    )


@pytest.fixture
def work_address():
    return Address(
        address_id="work",
        first_name="Jane",
        last_name="Doe",
        address1="500 Market St",
        city="San Francisco",
        country_code="US",
        state_code="CA",
        postal_code="94105",
        phone="415-555-0199",
    )


@pytest.fixture
def order_billing_address():
    return Address(
        address_id="billing-1",
        first_name="John",
        last_name="Roe",
        address1="9 Elm Road",
        city="Portland",
        country_code="US",
        state_code="OR",
        postal_code="97201",
        phone="503-555-0100",
    )


@pytest.fixture
def customer(home_address, work_address):
    return Customer(addresses=[home_address, work_address], preferred_address=work_address)


@pytest.fixture
def order():
    return Order(matching_address_id="home")


@pytest.fixture
def card_methods():
    return MethodList(
        methods=(
            MethodDescriptor(id="scheme", name="Cards", brands=("visa", "mc"), tokenized=True, requires_fingerprint=True),
            MethodDescriptor(id="paypal", name="PayPal"),
        ),
        raw={"paymentMethods": [{"type": "scheme", "name": "Cards"}, {"type": "paypal", "name": "PayPal"}]},
    )


@pytest.fixture
def context(customer, order):
    return CheckoutContext(
        token="csrf-abc123",
        customer=customer,
        order=order,
        processor=ProcessorConfig(client_key="test_CLIENTKEY", environment="test"),
    )


@pytest.fixture
def storefront(card_methods):
    return FakeStorefront(card_methods)


@pytest.fixture
def fake_widget():
    return FakeWidget()


@pytest.fixture
def storefront_checkout():
    """Checkout props as the storefront renders them."""
    return {
        "token": "csrf-abc123",
        "customer": {
            "addresses": [
                {
                    "addressId": "home",
                    "firstName": "Jane",
                    "lastName": "Doe",
                    "address1": "123 Main Street",
                    "address2": None,
                    "city": "San Francisco",
                    "countryCode": {"displayValue": "United States", "value": "US"},
                    "stateCode": "CA",
                    "postalCode": "94102",
                    "phone": "415-555-0100",
                },
            ],
            "preferredAddress": None,
        },
        "order": {
            "billing": {
                "matchingAddressId": "home",
                "billingAddress": {"address": None},
                "payment": {"applicablePaymentMethods": [{"ID": "AdyenComponent", "name": "Adyen"}]},
            },
        },
        "adyen": {"clientKey": "test_CLIENTKEY", "environment": "test"},
    }
