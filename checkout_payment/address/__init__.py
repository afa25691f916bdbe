"""Billing address resolution and the address edit sub-flow."""
from .resolver import AddressResolver, EditSession, resolve_default_billing, resolve_shipping_default

__all__ = ["AddressResolver", "EditSession", "resolve_default_billing", "resolve_shipping_default"]
