"""Data model shared by every payment-step component."""
from .schema import (
    Address,
    AddressSaveRequest,
    CheckoutContext,
    Customer,
    MethodDescriptor,
    MethodList,
    Order,
    ProcessorConfig,
    SubmissionResult,
    SubmissionStatus,
    TokenizedPaymentState,
)

__all__ = [
    "Address",
    "AddressSaveRequest",
    "CheckoutContext",
    "Customer",
    "MethodDescriptor",
    "MethodList",
    "Order",
    "ProcessorConfig",
    "SubmissionResult",
    "SubmissionStatus",
    "TokenizedPaymentState",
]
