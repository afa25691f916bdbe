"""Embedded card tokenization: widget lifecycle and event state machine."""
from .bridge import TokenizationBridge
from .events import BridgeState, CardBrandDetected, CardDigitsCaptured
from .widget import TokenizationWidget

__all__ = ["BridgeState", "CardBrandDetected", "CardDigitsCaptured", "TokenizationBridge", "TokenizationWidget"]
