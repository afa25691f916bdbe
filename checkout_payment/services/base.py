"""Storefront service interfaces consumed by the payment step."""
from abc import ABC, abstractmethod
from typing import Any

from ..models.schema import Address, AddressSaveRequest, MethodList


class AddressBookService(ABC):
    """Persists address edits."""

    @abstractmethod
    async def save_address(self, request: AddressSaveRequest, session_token: str) -> Address:
        """Save an address and return the stored snapshot. Raises ServiceError."""
        ...


class PaymentMethodService(ABC):
    """Lists the processor's payment methods for the current order session."""

    @abstractmethod
    async def get_payment_methods(self, session_token: str) -> MethodList:
        """Fetch the method directory. Raises ServiceError."""
        ...


class OrderSubmissionService(ABC):
    """Accepts the final payment payload."""

    @abstractmethod
    async def submit_payment(self, payload: dict[str, str]) -> dict[str, Any]:
        """Submit the merged payment form. Raises SubmissionError on rejection."""
        ...
