"""UI-facing event names and a small synchronous event bus"""

from collections import defaultdict
from typing import Any, Callable, Dict, List

from ..utils.logger import get_logger

logger = get_logger(__name__)

SESSION_ESTABLISHED = "sessionEstablished"
SESSION_ENDED = "sessionEnded"
ADMIN_SESSION_ESTABLISHED = "adminSessionEstablished"
ADMIN_SESSION_ENDED = "adminSessionEnded"
CART_CHANGED = "cartChanged"
WISHLIST_CHANGED = "wishlistChanged"

Handler = Callable[..., Any]


class EventBus:
    """
    Delivers events to presentation-layer subscribers, in subscription order.

    A failing handler is logged and skipped; it never aborts the core
    operation that emitted the event.
    """

    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = defaultdict(list)

    def subscribe(self, event: str, handler: Handler) -> Callable[[], None]:
        """Register ``handler`` and return a callable that unsubscribes it."""
        self._handlers[event].append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(event, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def emit(self, event: str, **payload: Any) -> None:
        for handler in list(self._handlers.get(event, [])):
            try:
                handler(**payload)
            except Exception as e:
                logger.exception("Event handler failed", event_name=event, error=str(e))

    def clear(self) -> None:
        self._handlers.clear()
