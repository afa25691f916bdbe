"""Tests for billing address resolution and the address edit session."""
import pytest

from checkout_payment.address.resolver import (
    EDIT_FAILED_MESSAGE,
    AddressResolver,
    resolve_default_billing,
    resolve_shipping_default,
)
from checkout_payment.errors import AddressEditError, EditSessionActiveError
from checkout_payment.models.schema import Address, CheckoutContext, Customer, Order


class TestResolveDefaultBilling:
    def test_order_billing_address_wins_verbatim(self, order_billing_address, customer):
        order = Order(billing_address=order_billing_address, matching_address_id="home")
        assert resolve_default_billing(order, customer) is order_billing_address

    def test_matching_address_id(self, order, customer, home_address):
        assert resolve_default_billing(order, customer) == home_address

    def test_falls_back_to_preferred(self, customer, work_address):
        order = Order(matching_address_id="gone")
        assert resolve_default_billing(order, customer) == work_address

    def test_empty_snapshot_without_customer(self):
        billing = resolve_default_billing(Order(), None)
        assert billing.country_code == "US"
        assert billing.first_name == ""
        assert billing.address_id is None

    def test_empty_snapshot_uses_given_country(self):
        billing = resolve_default_billing(Order(), Customer(), default_country="CA")
        assert billing.country_code == "CA"

    def test_shipping_default_ignores_order_billing(self, order_billing_address, customer, home_address):
        order = Order(billing_address=order_billing_address, matching_address_id="home")
        assert resolve_shipping_default(order, customer) == home_address


class TestStorefrontShape:
    def test_checkout_props_parse(self, storefront_checkout):
        context = CheckoutContext.model_validate(storefront_checkout)
        assert context.token == "csrf-abc123"
        assert context.processor.client_key == "test_CLIENTKEY"
        assert context.order.billing_address is None
        assert context.order.matching_address_id == "home"
        assert context.order.applicable_payment_methods[0].id == "AdyenComponent"

        home = context.customer.addresses[0]
        assert home.country_code == "US"
        assert home.address2 == ""
        assert resolve_default_billing(context.order, context.customer) == home

    def test_address_book_shape(self):
        customer = Customer.model_validate({
            "addressBook": {
                "addresses": [{"ID": "a1", "firstName": "Ann", "countryCode": "GB"}],
                "preferredAddress": {"ID": "a1", "firstName": "Ann", "countryCode": "GB"},
            }
        })
        assert customer.addresses[0].address_id == "a1"
        assert customer.preferred_address.country_code == "GB"


class TestEditSession:
    def test_edit_does_not_touch_snapshot(self, order, customer, storefront, home_address):
        resolver = AddressResolver(order, customer, storefront, "csrf-abc123")
        session = resolver.begin_edit(resolver.billing)
        session.update(city="Oakland")

        assert session.dirty
        assert resolver.billing.city == "San Francisco"
        assert home_address.city == "San Francisco"

    def test_unknown_field_rejected(self, order, customer, storefront):
        resolver = AddressResolver(order, customer, storefront, "csrf-abc123")
        session = resolver.begin_edit(resolver.billing)
        with pytest.raises(ValueError, match="email"):
            session.update(email="jane@example.com")

    def test_only_one_session(self, order, customer, storefront, work_address):
        resolver = AddressResolver(order, customer, storefront, "csrf-abc123")
        session = resolver.begin_edit(resolver.billing)
        with pytest.raises(EditSessionActiveError):
            resolver.begin_edit(work_address)

        resolver.discard_edit(session)
        assert resolver.session is None
        assert resolver.begin_edit(work_address).address == work_address

    @pytest.mark.asyncio
    async def test_commit_unchanged_round_trips(self, order, customer, storefront, home_address):
        resolver = AddressResolver(order, customer, storefront, "csrf-abc123")
        session = resolver.begin_edit(resolver.billing)
        saved = await resolver.commit_edit(session)

        assert saved == home_address
        assert resolver.billing == home_address
        assert storefront.saved[0].country == "US"
        assert storefront.saved[0].address_id == "home"

    @pytest.mark.asyncio
    async def test_commit_updates_billing_and_shipping_default(self, order, customer, storefront):
        resolver = AddressResolver(order, customer, storefront, "csrf-abc123")
        session = resolver.begin_edit(resolver.billing)
        session.update(address1="1 Ferry Building", postal_code="94111")
        saved = await resolver.commit_edit(session)

        assert saved.address1 == "1 Ferry Building"
        assert resolver.billing == saved
        assert resolver.shipping_default == saved
        assert resolver.session is None
        assert not session.open

    @pytest.mark.asyncio
    async def test_commit_of_other_address_keeps_shipping_default(self, order, customer, storefront, home_address, work_address):
        resolver = AddressResolver(order, customer, storefront, "csrf-abc123")
        session = resolver.begin_edit(work_address)
        session.update(phone="415-555-0000")
        saved = await resolver.commit_edit(session)

        assert resolver.billing == home_address
        assert resolver.shipping_default == home_address
        assert resolver.find_saved("work") == saved

    @pytest.mark.asyncio
    async def test_saved_list_reflects_commit(self, order, customer, storefront, home_address, work_address):
        resolver = AddressResolver(order, customer, storefront, "csrf-abc123")
        session = resolver.begin_edit(resolver.find_saved("work"))
        session.update(phone="415-555-0000")
        await resolver.commit_edit(session)

        assert resolver.find_saved("work").phone == "415-555-0000"
        assert [a.address_id for a in resolver.saved_addresses()] == ["home", "work"]
        assert resolver.saved_addresses()[0] == home_address
        assert customer.addresses[1] == work_address

    @pytest.mark.asyncio
    async def test_new_address_with_assigned_id_is_listed(self, order, customer, storefront):
        async def save_address(request, session_token):
            return Address(address_id="new-1", first_name=request.first_name, country_code=request.country)

        storefront.save_address = save_address
        resolver = AddressResolver(order, customer, storefront, "csrf-abc123")
        session = resolver.begin_edit(Address(country_code="US"))
        session.update(first_name="Jo")
        saved = await resolver.commit_edit(session)

        assert resolver.find_saved("new-1") == saved
        assert len(resolver.saved_addresses()) == 3
        assert resolver.billing.address_id == "home"

    @pytest.mark.asyncio
    async def test_failed_commit_keeps_session_open(self, order, customer, storefront, home_address):
        storefront.save_error = True
        resolver = AddressResolver(order, customer, storefront, "csrf-abc123")
        session = resolver.begin_edit(resolver.billing)
        session.update(city="Oakland")

        with pytest.raises(AddressEditError, match=EDIT_FAILED_MESSAGE):
            await resolver.commit_edit(session)

        assert session.open
        assert session.error == EDIT_FAILED_MESSAGE
        assert session.fields["city"] == "Oakland"
        assert resolver.session is session
        assert resolver.billing == home_address

        storefront.save_error = False
        saved = await resolver.commit_edit(session)
        assert saved.city == "Oakland"
        assert session.error is None

    @pytest.mark.asyncio
    async def test_commit_after_discard_fails(self, order, customer, storefront):
        resolver = AddressResolver(order, customer, storefront, "csrf-abc123")
        session = resolver.begin_edit(resolver.billing)
        resolver.discard_edit(session)
        with pytest.raises(AddressEditError):
            await resolver.commit_edit(session)
        assert storefront.saved == []

    @pytest.mark.asyncio
    async def test_async_commit_listener_is_awaited(self, order, customer, storefront):
        seen = []

        async def listener(address: Address) -> None:
            seen.append(address.address_id)

        resolver = AddressResolver(order, customer, storefront, "csrf-abc123", on_commit=listener)
        await resolver.commit_edit(resolver.begin_edit(resolver.billing))
        assert seen == ["home"]
