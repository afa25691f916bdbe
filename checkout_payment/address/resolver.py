"""Address resolver: picks the authoritative billing address and runs edits."""
import logging
from typing import Awaitable, Callable, Optional, Union

from ..config import get_settings
from ..errors import AddressEditError, EditSessionActiveError, ServiceError
from ..models.schema import ADDRESS_FIELDS, Address, AddressSaveRequest, Customer, Order
from ..services.base import AddressBookService

logger = logging.getLogger(__name__)

EDIT_FAILED_MESSAGE = "Failed to update address. Please try again."

CommitListener = Callable[[Address], Union[None, Awaitable[None]]]


def resolve_shipping_default(
    order: Order,
    customer: Optional[Customer],
    default_country: Optional[str] = None,
) -> Address:
    """Address the "same as shipping" toggle falls back to.

    The customer's address matching the order's billing-match id, else the
    preferred address, else an empty snapshot in the default country.
    """
    if customer is not None:
        if order.matching_address_id:
            for address in customer.addresses:
                if address.address_id == order.matching_address_id:
                    return address
        if customer.preferred_address is not None:
            return customer.preferred_address
    return Address(country_code=default_country or get_settings().default_country)


def resolve_default_billing(
    order: Order,
    customer: Optional[Customer],
    default_country: Optional[str] = None,
) -> Address:
    """Authoritative billing address for an order. The order's own wins."""
    if order.billing_address is not None:
        return order.billing_address
    return resolve_shipping_default(order, customer, default_country)


def same_address(a: Address, b: Address) -> bool:
    """Same snapshot, or the same saved address by id."""
    return a == b or (a.address_id is not None and a.address_id == b.address_id)


class EditSession:
    """Mutable working copy of one address under edit."""

    def __init__(self, address: Address):
        self.address = address
        self.fields: dict[str, str] = address.field_values()
        self.error: Optional[str] = None
        self.open = True

    @property
    def dirty(self) -> bool:
        return self.fields != self.address.field_values()

    def update(self, **fields: str) -> None:
        unknown = set(fields) - set(ADDRESS_FIELDS)
        if unknown:
            raise ValueError(f"Unknown address fields: {', '.join(sorted(unknown))}")
        self.fields.update({k: "" if v is None else str(v) for k, v in fields.items()})

    def to_address(self) -> Address:
        return Address(address_id=self.address.address_id, **self.fields)


class AddressResolver:
    """Owns the billing snapshot and the single address edit session."""

    def __init__(
        self,
        order: Order,
        customer: Optional[Customer],
        address_book: AddressBookService,
        session_token: str,
        on_commit: Optional[CommitListener] = None,
    ):
        self._address_book = address_book
        self._token = session_token
        self._on_commit = on_commit
        self._billing = resolve_default_billing(order, customer)
        self._shipping_default = resolve_shipping_default(order, customer)
        # Committed edits land here; the customer's book is the load-time copy
        self._addresses: list[Address] = list(customer.addresses) if customer else []
        self._session: Optional[EditSession] = None

    @property
    def billing(self) -> Address:
        return self._billing

    @property
    def shipping_default(self) -> Address:
        return self._shipping_default

    @property
    def session(self) -> Optional[EditSession]:
        return self._session

    def saved_addresses(self) -> list[Address]:
        return list(self._addresses)

    def find_saved(self, address_id: str) -> Optional[Address]:
        for address in self.saved_addresses():
            if address.address_id == address_id:
                return address
        return None

    def begin_edit(self, snapshot: Address) -> EditSession:
        if self._session is not None and self._session.open:
            raise EditSessionActiveError(
                f"Address {self._session.address.address_id or '(new)'} is already being edited"
            )
        self._session = EditSession(snapshot)
        logger.info("Editing address %s", snapshot.address_id or "(new)")
        return self._session

    def discard_edit(self, session: EditSession) -> None:
        session.open = False
        if self._session is session:
            self._session = None
        logger.info("Discarded edit of address %s", session.address.address_id or "(new)")

    async def commit_edit(self, session: EditSession) -> Address:
        """Persist the session. On failure the session stays open with an error."""
        if not session.open or session is not self._session:
            raise AddressEditError("Edit session is no longer open")

        session.error = None
        edited = session.to_address()
        try:
            saved = await self._address_book.save_address(
                AddressSaveRequest.from_address(edited), self._token
            )
        except ServiceError as e:
            logger.error("Address save failed for %s: %s", edited.address_id or "(new)", e)
            session.error = EDIT_FAILED_MESSAGE
            raise AddressEditError(EDIT_FAILED_MESSAGE) from e

        # Keep the id we sent unless the address book assigned one
        if saved.address_id is None and edited.address_id is not None:
            saved = saved.model_copy(update={"address_id": edited.address_id})

        original = session.address
        if same_address(self._shipping_default, original):
            self._shipping_default = saved
        if same_address(self._billing, original):
            self._billing = saved
        self._store_saved(original, saved)
        session.open = False
        self._session = None
        logger.info("Committed edit of address %s", saved.address_id or "(new)")

        if self._on_commit is not None:
            result = self._on_commit(saved)
            if result is not None:
                await result
        return saved

    def _store_saved(self, original: Address, saved: Address) -> None:
        for index, address in enumerate(self._addresses):
            if same_address(address, original) or (
                saved.address_id is not None and address.address_id == saved.address_id
            ):
                self._addresses[index] = saved
                return
        if saved.address_id is not None:
            self._addresses.append(saved)
