"""In-process dispatch of task domain events to the timeline handlers."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Callable

from pydantic import BaseModel

logger = logging.getLogger(__name__)

Handler = Callable[[BaseModel], None]


class EventBus:
    """Calls every handler subscribed to an event's type, in order.

    Dispatch is synchronous: a handler that raises stops the remaining
    handlers and the error reaches whoever published the event.
    """

    def __init__(self) -> None:
        self._handlers: dict[type[BaseModel], list[Handler]] = defaultdict(list)

    def subscribe(self, event_type: type[BaseModel], handler: Handler) -> None:
        self._handlers[event_type].append(handler)

    def publish(self, event: BaseModel) -> None:
        handlers = list(self._handlers.get(type(event), ()))
        logger.debug(
            "Publishing %s to %d handler(s)", type(event).__name__, len(handlers)
        )
        for handler in handlers:
            handler(event)
