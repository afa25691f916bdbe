"""
Tokenization bridge: owns the embedded widget and its lifecycle.

The widget talks back through ``dispatch``; every inbound event is parsed
into a typed event and run through ``transition`` before anything else
happens. The live widget object never leaves this class.
"""
import asyncio
import logging
from typing import Any, Callable, Optional, Union

from ..errors import IllegalTransitionError, TokenizationError
from ..models.schema import MethodDescriptor, MethodList, ProcessorConfig, TokenizedPaymentState
from ..output_sanitizer import sanitize_output
from .events import (
    BridgeEvent,
    BridgeState,
    CaptureRejected,
    CaptureReleased,
    CaptureRequested,
    CaptureSucceeded,
    CardBrandDetected,
    CardDigitsCaptured,
    DirectoryResolved,
    TornDown,
    WidgetMounted,
    accepts,
    parse_change,
    parse_field_valid,
    parse_submit,
    transition,
)
from .widget import TokenizationWidget

logger = logging.getLogger(__name__)

GENERIC_CAPTURE_ERROR = "We could not read your card details. Please try again."

ProjectionListener = Callable[[Union[CardBrandDetected, CardDigitsCaptured]], None]


class TokenizationBridge:
    """State machine around one tokenization widget."""

    def __init__(
        self,
        widget_factory: Callable[[], TokenizationWidget],
        on_projection: Optional[ProjectionListener] = None,
    ):
        self._widget_factory = widget_factory
        self._on_projection = on_projection
        self._state = BridgeState.UNINITIALIZED
        self._widget: Optional[TokenizationWidget] = None
        self._methods: Optional[MethodList] = None
        self._capture: Optional[asyncio.Future] = None
        self._requires_fingerprint = False

    @property
    def state(self) -> BridgeState:
        return self._state

    @property
    def ready(self) -> bool:
        return self._state == BridgeState.READY

    def _apply(self, event: BridgeEvent) -> BridgeState:
        previous = self._state
        self._state = transition(previous, event)
        if previous != self._state:
            logger.info("Tokenization %s -> %s (%s)", previous.value, self._state.value, type(event).__name__)
        return self._state

    async def initialize(self, methods: MethodList, processor: ProcessorConfig) -> None:
        """Mount a widget for ``methods``. Called once the directory has resolved."""
        if methods is None:
            raise ValueError("Cannot initialize tokenization without a payment method list")

        if self._widget is not None:
            if self._state == BridgeState.CAPTURING:
                logger.warning("Ignoring re-initialization while a capture is in flight")
                return
            if methods == self._methods:
                logger.debug("Widget already live for this method list")
                return
            await self.teardown()

        self._apply(DirectoryResolved(methods))
        self._methods = methods
        self._widget = self._widget_factory()
        try:
            await self._widget.mount(methods, processor, self.dispatch)
        except Exception as e:
            logger.error("Widget mount failed: %s", e)
            await self.teardown()
            raise TokenizationError("Payment form could not be loaded") from e

    async def capture(self, method: MethodDescriptor) -> TokenizedPaymentState:
        """Tokenize the card details currently in the widget.

        READY -> CAPTURING, then waits for the widget's submit event. Raises
        TokenizationError if the widget is not ready or the payload is unusable.
        """
        if self._widget is None or self._state != BridgeState.READY:
            raise TokenizationError(f"Payment form is not ready ({self._state.value})")

        self._apply(CaptureRequested())
        self._requires_fingerprint = method.requires_fingerprint
        capture = asyncio.get_running_loop().create_future()
        self._capture = capture
        try:
            await self._widget.submit()
        except Exception as e:
            logger.error("Widget submit failed: %s", e)
            if self._state == BridgeState.CAPTURING:
                self._reject(GENERIC_CAPTURE_ERROR)
        try:
            return await capture
        finally:
            if self._capture is capture:
                self._capture = None

    def release(self) -> None:
        """Mark the captured state as consumed. A new attempt must re-tokenize."""
        if self._state == BridgeState.CAPTURED:
            self._apply(CaptureReleased())

    async def teardown(self) -> None:
        widget, self._widget = self._widget, None
        self._methods = None
        if self._capture is not None and not self._capture.done():
            self._capture.set_exception(TokenizationError("Payment form was closed"))
        if widget is not None:
            await widget.unmount()
        self._apply(TornDown())

    # ------------------------------------------------------------------
    # Widget callbacks
    # ------------------------------------------------------------------

    def dispatch(self, name: str, payload: Any) -> None:
        """Entry point for widget events. Never raises into the widget."""
        if name == "ready":
            self._on_ready()
        elif name == "submit":
            self._on_submit(payload)
        elif name == "change":
            self._on_projection_event(parse_change(payload))
        elif name == "fieldValid":
            self._on_projection_event(parse_field_valid(payload))
        elif name == "error":
            logger.error("Widget error: %s", sanitize_output(str(payload)))
            if self._state == BridgeState.CAPTURING:
                self._reject(GENERIC_CAPTURE_ERROR)
        else:
            logger.warning("Ignoring unknown widget event: %s", name)

    def _on_ready(self) -> None:
        if not accepts(self._state, WidgetMounted):
            logger.warning("Ignoring widget ready in state %s", self._state.value)
            return
        self._apply(WidgetMounted())

    def _on_submit(self, payload: Any) -> None:
        if self._state != BridgeState.CAPTURING or self._capture is None:
            logger.warning("Ignoring widget submit in state %s", self._state.value)
            return
        try:
            state = parse_submit(payload, self._requires_fingerprint)
        except TokenizationError as e:
            logger.error("Rejected tokenization payload: %s", e)
            self._reject(GENERIC_CAPTURE_ERROR)
            return
        self._apply(CaptureSucceeded(state))
        if not self._capture.done():
            self._capture.set_result(state)

    def _on_projection_event(self, event: Optional[Union[CardBrandDetected, CardDigitsCaptured]]) -> None:
        if event is None:
            return
        try:
            self._apply(event)
        except IllegalTransitionError:
            logger.debug("Ignoring %s in state %s", type(event).__name__, self._state.value)
            return
        if self._on_projection is not None:
            self._on_projection(event)

    def _reject(self, message: str) -> None:
        self._apply(CaptureRejected(message))
        if self._capture is not None and not self._capture.done():
            self._capture.set_exception(TokenizationError(message))
