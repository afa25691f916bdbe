"""
Tokenization events: the closed set the bridge's state machine consumes,
plus lenient parsing of the widget's loosely-typed callback payloads.
"""
import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, ValidationError

from ..errors import IllegalTransitionError, TokenizationError
from ..models.schema import MethodList, TokenizedPaymentState


class BridgeState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    CAPTURING = "capturing"
    CAPTURED = "captured"


@dataclass(frozen=True)
class DirectoryResolved:
    methods: MethodList


@dataclass(frozen=True)
class WidgetMounted:
    pass


@dataclass(frozen=True)
class CaptureRequested:
    pass


@dataclass(frozen=True)
class CaptureSucceeded:
    state: TokenizedPaymentState


@dataclass(frozen=True)
class CaptureRejected:
    reason: str


@dataclass(frozen=True)
class CaptureReleased:
    pass


@dataclass(frozen=True)
class CardBrandDetected:
    brand: str


@dataclass(frozen=True)
class CardDigitsCaptured:
    end_digits: str


@dataclass(frozen=True)
class TornDown:
    pass


BridgeEvent = Union[
    DirectoryResolved,
    WidgetMounted,
    CaptureRequested,
    CaptureSucceeded,
    CaptureRejected,
    CaptureReleased,
    CardBrandDetected,
    CardDigitsCaptured,
    TornDown,
]

_S = BridgeState
_TRANSITIONS: dict[tuple[BridgeState, type], BridgeState] = {
    (_S.UNINITIALIZED, DirectoryResolved): _S.INITIALIZING,
    (_S.INITIALIZING, WidgetMounted): _S.READY,
    (_S.READY, CaptureRequested): _S.CAPTURING,
    (_S.CAPTURING, CaptureSucceeded): _S.CAPTURED,
    (_S.CAPTURING, CaptureRejected): _S.READY,
    (_S.CAPTURED, CaptureReleased): _S.READY,
    # Field-level events are cosmetic only
    (_S.READY, CardBrandDetected): _S.READY,
    (_S.READY, CardDigitsCaptured): _S.READY,
    (_S.CAPTURING, CardBrandDetected): _S.CAPTURING,
    (_S.CAPTURING, CardDigitsCaptured): _S.CAPTURING,
}


def transition(state: BridgeState, event: BridgeEvent) -> BridgeState:
    """Next state for ``event``. Raises IllegalTransitionError for any other pair."""
    if isinstance(event, TornDown):
        return BridgeState.UNINITIALIZED
    try:
        return _TRANSITIONS[(state, type(event))]
    except KeyError:
        raise IllegalTransitionError(
            f"{type(event).__name__} is not allowed in state {state.value}"
        ) from None


def accepts(state: BridgeState, event_type: type) -> bool:
    return event_type is TornDown or (state, event_type) in _TRANSITIONS


# ---------------------------------------------------------------------------
# Widget payload parsing
# ---------------------------------------------------------------------------

class _Lenient(BaseModel):
    model_config = ConfigDict(extra="ignore")


class _PaymentMethodData(_Lenient):
    type: str
    holderName: Optional[str] = None
    brand: Optional[str] = None


class _RiskData(_Lenient):
    clientData: Optional[str] = None


class _SubmitData(_Lenient):
    paymentMethod: _PaymentMethodData
    riskData: Optional[_RiskData] = None


class _SubmitState(_Lenient):
    data: _SubmitData
    isValid: Optional[bool] = None


class _ChangeMethod(_Lenient):
    brand: Optional[str] = None


class _ChangeData(_Lenient):
    paymentMethod: Optional[_ChangeMethod] = None


class _ChangeState(_Lenient):
    data: Optional[_ChangeData] = None


class _FieldValid(_Lenient):
    endDigits: Optional[str] = None


_END_DIGITS = re.compile(r"^\d{1,4}$")


def _decode(payload: Any) -> Any:
    if isinstance(payload, (str, bytes)):
        try:
            return json.loads(payload)
        except json.JSONDecodeError as e:
            raise TokenizationError("Widget sent a payload that is not JSON") from e
    return payload


def parse_submit(payload: Any, requires_fingerprint: bool) -> TokenizedPaymentState:
    """Parse a widget submit payload. Raises TokenizationError if unusable."""
    raw = _decode(payload)
    try:
        state = _SubmitState.model_validate(raw)
    except ValidationError as e:
        raise TokenizationError(f"Unusable submit payload ({e.error_count()} problems)") from e

    if state.isValid is False:
        raise TokenizationError("Widget reported the card details as invalid")
    method = state.data.paymentMethod
    if not method.type:
        raise TokenizationError("Submit payload has no payment method type")

    # Fraud signals come from the processor's structured risk data
    fingerprint = state.data.riskData.clientData if state.data.riskData else None
    if requires_fingerprint and not fingerprint:
        raise TokenizationError("Submit payload is missing the fraud-signal fingerprint")

    return TokenizedPaymentState(
        state_data=json.dumps(raw["data"], separators=(",", ":")),
        brand_code=method.type,
        holder_name=method.holderName or "",
        fingerprint=fingerprint or None,
        card_brand=method.brand or "",
    )


def parse_change(payload: Any) -> Optional[CardBrandDetected]:
    """Brand projection from an onChange payload, or None if there is none."""
    try:
        state = _ChangeState.model_validate(_decode(payload))
    except (ValidationError, TokenizationError):
        return None
    if state.data and state.data.paymentMethod and state.data.paymentMethod.brand:
        return CardBrandDetected(brand=state.data.paymentMethod.brand)
    return None


def parse_field_valid(payload: Any) -> Optional[CardDigitsCaptured]:
    """Card suffix projection from an onFieldValid payload, or None."""
    try:
        data = _FieldValid.model_validate(_decode(payload))
    except (ValidationError, TokenizationError):
        return None
    if data.endDigits and _END_DIGITS.match(data.endDigits):
        return CardDigitsCaptured(end_digits=data.endDigits)
    return None
