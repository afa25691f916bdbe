"""Checkout payment step: billing address, card tokenization and a single payment submission."""
from .coordinator import SubmissionCoordinator
from .models import CheckoutContext, SubmissionResult, SubmissionStatus

__all__ = ["CheckoutContext", "SubmissionCoordinator", "SubmissionResult", "SubmissionStatus"]
