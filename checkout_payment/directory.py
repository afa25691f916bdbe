"""Payment method directory: fetches and caches the processor's method list."""
import asyncio
import logging
from typing import Optional

from .config import get_settings
from .errors import MethodsUnavailableError, ServiceError
from .models.schema import MethodDescriptor, MethodList
from .services.base import PaymentMethodService

logger = logging.getLogger(__name__)


class PaymentMethodDirectory:
    """Cached method list for one payment step. No TTL; refetched only on demand."""

    def __init__(self, service: PaymentMethodService):
        self._service = service
        self._snapshot: Optional[MethodList] = None
        self._inflight: Optional[asyncio.Task] = None
        self._error: Optional[str] = None

    @property
    def snapshot(self) -> Optional[MethodList]:
        return self._snapshot

    @property
    def loaded(self) -> bool:
        return self._snapshot is not None

    @property
    def unavailable(self) -> bool:
        """True once a fetch has failed and no later fetch succeeded."""
        return self._snapshot is None and self._error is not None

    @property
    def error(self) -> Optional[str]:
        return self._error

    def get(self, method_id: str) -> Optional[MethodDescriptor]:
        if self._snapshot is None:
            return None
        return self._snapshot.get(method_id)

    def default_method(self) -> str:
        """The configured default if offered, else the first offered method."""
        default = get_settings().default_payment_method
        if self._snapshot is None or not self._snapshot.methods or self._snapshot.get(default):
            return default
        return self._snapshot.methods[0].id

    async def fetch(self, session_token: str) -> MethodList:
        """Return the cached list, or load it. Concurrent callers share one request."""
        if self._snapshot is not None:
            return self._snapshot
        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._load(session_token))
        task = self._inflight
        try:
            return await asyncio.shield(task)
        finally:
            if task.done() and self._inflight is task:
                self._inflight = None

    async def refresh(self, session_token: str) -> MethodList:
        """Drop the cache and fetch again (manual retry)."""
        if self._inflight is None:
            self._snapshot = None
        return await self.fetch(session_token)

    async def _load(self, session_token: str) -> MethodList:
        try:
            methods = await self._service.get_payment_methods(session_token)
        except ServiceError as e:
            self._error = str(e)
            logger.error("Payment methods unavailable: %s", e)
            raise MethodsUnavailableError("Payment methods are unavailable. Please try again.") from e
        self._snapshot = methods
        self._error = None
        logger.info("Payment method directory loaded (%d methods)", len(methods))
        return methods
