import inspect
import logging
from typing import Any, Callable, Dict, List

logger = logging.getLogger("observers")

Handler = Callable[..., Any]


class Observers:
    """
    Small event-subscription registry. Handlers may be plain callables or
    coroutine functions; a failing handler is logged and never stops the
    others from running.
    """

    def __init__(self) -> None:
        self._handlers: Dict[str, List[Handler]] = {}

    def subscribe(self, event: str, handler: Handler) -> Callable[[], None]:
        self._handlers.setdefault(event, []).append(handler)

        def _unsubscribe() -> None:
            self.unsubscribe(event, handler)

        return _unsubscribe

    def unsubscribe(self, event: str, handler: Handler) -> None:
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    async def emit(self, event: str, *args: Any) -> None:
        for handler in list(self._handlers.get(event, [])):
            try:
                result = handler(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"[EVENTS] handler for '{event}' failed")
