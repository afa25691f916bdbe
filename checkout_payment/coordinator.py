"""
Submission coordinator. Turns the payment step into exactly one request.

Three sources feed it: the address resolver (billing snapshot), the payment
method directory (what may be selected, and whether the widget may start),
and the tokenization bridge (the card token, produced asynchronously).
FormState only changes through ``reduce_form``; the token only ever lives in
the payload of the attempt that captured it.
"""
import logging
from typing import Any, Callable, Optional

from .address.resolver import AddressResolver, EditSession, same_address
from .directory import PaymentMethodDirectory
from .errors import (
    AddressEditError,
    MethodsUnavailableError,
    ServiceError,
    TokenizationError,
    ValidationFailedError,
)
from .form import (
    DefaultsChanged,
    FormAction,
    FormState,
    SelectBillingAddress,
    SelectPaymentMethod,
    build_payment_payload,
    create_form_state,
    reduce_form,
    require_valid,
)
from .models.schema import (
    Address,
    CheckoutContext,
    MethodDescriptor,
    MethodList,
    SubmissionResult,
    SubmissionStatus,
    TokenizedPaymentState,
)
from .services.base import AddressBookService, OrderSubmissionService, PaymentMethodService
from .tokenization.bridge import TokenizationBridge
from .tokenization.events import CardBrandDetected, CardDigitsCaptured
from .tokenization.widget import TokenizationWidget

logger = logging.getLogger(__name__)

NEXT_STAGE = "placeOrder"
METHODS_UNAVAILABLE_MESSAGE = "Card payment is unavailable right now. Retry loading payment methods."
NOT_READY_MESSAGE = "The card form is still loading. Please wait a moment and try again."


class SubmissionCoordinator:
    """Orchestrates one payment step, from load to the single submission."""

    def __init__(
        self,
        context: CheckoutContext,
        address_book: AddressBookService,
        payment_methods: PaymentMethodService,
        orders: OrderSubmissionService,
        widget_factory: Callable[[], TokenizationWidget],
        on_advance: Optional[Callable[[str], Any]] = None,
        on_complete: Optional[Callable[[], Any]] = None,
    ):
        self._context = context
        self._orders = orders
        self._on_advance = on_advance
        self._on_complete = on_complete

        self.resolver = AddressResolver(
            context.order,
            context.customer,
            address_book,
            context.token,
            on_commit=self._on_address_committed,
        )
        self.directory = PaymentMethodDirectory(payment_methods)
        self.bridge = TokenizationBridge(widget_factory, on_projection=self._on_projection)

        self._form = create_form_state(
            billing=self.resolver.billing,
            shipping_defaults=self.resolver.shipping_default,
            matching_address_id=context.order.matching_address_id,
        )
        self._pending = False
        self._submitted = False

    @property
    def form(self) -> FormState:
        return self._form

    @property
    def pending(self) -> bool:
        return self._pending

    @property
    def submitted(self) -> bool:
        return self._submitted

    @property
    def methods_unavailable(self) -> bool:
        return self.directory.unavailable

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load(self) -> None:
        """Fetch the method directory, then start the widget.

        A directory failure is not raised: it leaves the step in the
        methods-unavailable condition until ``retry_payment_methods``.
        """
        try:
            methods = await self.directory.fetch(self._context.token)
        except MethodsUnavailableError:
            return
        await self._after_directory(methods)

    async def retry_payment_methods(self) -> None:
        """Manual retry after a directory failure. Raises MethodsUnavailableError."""
        methods = await self.directory.refresh(self._context.token)
        await self._after_directory(methods)

    async def _after_directory(self, methods: MethodList) -> None:
        if methods.get(self._form.payment_method) is None:
            self._form = reduce_form(
                self._form, SelectPaymentMethod(self.directory.default_method())
            )
        if any(m.tokenized for m in methods.methods):
            await self.bridge.initialize(methods, self._context.processor)

    async def close(self) -> None:
        await self.bridge.teardown()

    # ------------------------------------------------------------------
    # Form input
    # ------------------------------------------------------------------

    def dispatch(self, action: FormAction) -> FormState:
        """Apply user input. Payment method choices are checked against the directory."""
        if isinstance(action, SelectPaymentMethod) and action.directory is None:
            if self.directory.snapshot is None and action.method_id != self.directory.default_method():
                raise ValueError("Payment methods are not loaded; only the default method can be selected")
            action = SelectPaymentMethod(action.method_id, self.directory.snapshot)
        self._form = reduce_form(self._form, action)
        return self._form

    def select_saved_address(self, address_id: str) -> FormState:
        address = self.resolver.find_saved(address_id)
        if address is None:
            raise ValueError(f"No saved address with id {address_id!r}")
        return self.dispatch(SelectBillingAddress(address))

    def _on_projection(self, event) -> None:
        if isinstance(event, (CardBrandDetected, CardDigitsCaptured)):
            self._form = reduce_form(self._form, event)

    # ------------------------------------------------------------------
    # Address edit sub-flow
    # ------------------------------------------------------------------

    def begin_address_edit(self, address_id: Optional[str] = None) -> EditSession:
        """Open the edit session for a saved address, or for the billing address on the form."""
        snapshot = self._form.billing
        if address_id:
            snapshot = self.resolver.find_saved(address_id)
            if snapshot is None:
                raise ValueError(f"No saved address with id {address_id!r}")
        return self.resolver.begin_edit(snapshot)

    def update_address_edit(self, **fields: str) -> EditSession:
        session = self._require_session()
        session.update(**fields)
        return session

    async def commit_address_edit(self) -> Address:
        session = self._require_session()
        bills_edited = not self._form.use_shipping_as_billing and same_address(
            session.address, self._form.billing
        )
        saved = await self.resolver.commit_edit(session)
        if bills_edited:
            self._form = reduce_form(self._form, SelectBillingAddress(saved))
        return saved

    def cancel_address_edit(self) -> None:
        session = self.resolver.session
        if session is not None:
            self.resolver.discard_edit(session)

    def _require_session(self) -> EditSession:
        session = self.resolver.session
        if session is None:
            raise AddressEditError("No address edit in progress")
        return session

    def _on_address_committed(self, saved: Address) -> None:
        self._form = reduce_form(self._form, DefaultsChanged(self.resolver.shipping_default))

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def _selected_method(self) -> Optional[MethodDescriptor]:
        if self.directory.snapshot is not None:
            return self.directory.get(self._form.payment_method)
        return None

    async def submit(self) -> SubmissionResult:
        """Submit the payment step. At most one attempt is ever in flight."""
        if self._submitted:
            return SubmissionResult(
                status=SubmissionStatus.ALREADY_SUBMITTED,
                message="Payment was already submitted.",
            )
        if self._pending:
            logger.info("Submit ignored: an attempt is already in flight")
            return SubmissionResult(status=SubmissionStatus.DUPLICATE, message="Payment is already being submitted.")

        form = self._form
        try:
            require_valid(form)
        except ValidationFailedError as e:
            return SubmissionResult(
                status=SubmissionStatus.INVALID,
                message="Please correct the highlighted fields.",
                field_errors=e.field_errors,
            )

        method = self._selected_method()
        if method is None:
            # Without a directory only the default method can be selected,
            # and that one needs the card widget
            return SubmissionResult(status=SubmissionStatus.METHODS_UNAVAILABLE, message=METHODS_UNAVAILABLE_MESSAGE)
        if method.tokenized and not self.bridge.ready:
            return SubmissionResult(status=SubmissionStatus.METHODS_UNAVAILABLE, message=NOT_READY_MESSAGE)

        self._pending = True
        try:
            return await self._attempt(form, method)
        finally:
            self._pending = False

    async def _attempt(self, form: FormState, method: MethodDescriptor) -> SubmissionResult:
        tokenized: Optional[TokenizedPaymentState] = None
        try:
            if method.tokenized:
                try:
                    tokenized = await self.bridge.capture(method)
                except TokenizationError as e:
                    return SubmissionResult(status=SubmissionStatus.TOKENIZATION_FAILED, message=str(e))
                # Only card projections from the capture window join the validated snapshot
                form = form.model_copy(update={
                    "card_type": self._form.card_type,
                    "masked_card_number": self._form.masked_card_number,
                })

            payload = build_payment_payload(form, method, self._context.token, tokenized)
            logger.info("Submitting payment with method %s", method.id)
            try:
                response = await self._orders.submit_payment(payload)
            except ServiceError as e:
                logger.error("Payment submission failed: %s", e)
                return SubmissionResult(status=SubmissionStatus.FAILED, message=str(e))
        finally:
            # The token is single-use whatever happened
            self.bridge.release()

        self._submitted = True
        logger.info("Payment accepted; advancing to %s", NEXT_STAGE)
        if self._on_advance is not None:
            self._on_advance(NEXT_STAGE)
        if self._on_complete is not None:
            self._on_complete()
        return SubmissionResult(status=SubmissionStatus.ACCEPTED, order_response=response)

