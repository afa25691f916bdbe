"""Abstract tokenization widget: the processor's embedded card component."""
from abc import ABC, abstractmethod
from typing import Any, Callable

from ..models.schema import MethodList, ProcessorConfig

# dispatch(event_name, payload); names: "ready", "submit", "change", "fieldValid", "error"
WidgetDispatch = Callable[[str, Any], None]


class TokenizationWidget(ABC):
    """One live widget instance. Created and owned by a TokenizationBridge."""

    @abstractmethod
    async def mount(self, methods: MethodList, processor: ProcessorConfig, dispatch: WidgetDispatch) -> None:
        """Render the widget. Mount completion is reported through ``dispatch("ready", ...)``."""
        ...

    @abstractmethod
    async def submit(self) -> None:
        """Ask the widget to tokenize. The result arrives as a ``submit`` event."""
        ...

    @abstractmethod
    async def unmount(self) -> None:
        """Release the widget and everything it holds."""
        ...
