"""Storefront services: address book, payment method directory, order submission."""
from .base import AddressBookService, OrderSubmissionService, PaymentMethodService
from .storefront import StorefrontClient

__all__ = ["AddressBookService", "OrderSubmissionService", "PaymentMethodService", "StorefrontClient"]
