"""Exception taxonomy for the payment step."""


class CheckoutError(Exception):
    """Base class for every error raised by the payment step."""


class ValidationFailedError(CheckoutError):
    """Local field-level errors. Never reaches the network."""

    def __init__(self, field_errors: dict[str, str]):
        self.field_errors = field_errors
        super().__init__("Form has invalid fields: " + ", ".join(sorted(field_errors)))


class MethodsUnavailableError(CheckoutError):
    """The payment method directory could not be loaded."""


class TokenizationError(CheckoutError):
    """A capture attempt produced no usable payment state."""


class IllegalTransitionError(CheckoutError):
    """A tokenization event arrived in a state that does not accept it."""


class ServiceError(CheckoutError):
    """A storefront service call failed (transport, status or body)."""


class SubmissionError(ServiceError):
    """The order-submission service rejected the payment."""


class AddressEditError(CheckoutError):
    """The address book refused an edit. The edit session stays open."""


class EditSessionActiveError(CheckoutError):
    """Another address edit is already in progress."""
