import logging
from collections import defaultdict
from typing import Awaitable, Callable, Dict, List, Sequence

from strategy_agent.state import PipelineEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[PipelineEvent], Awaitable[None]]


class EventDispatcher:
    """Runs the side effects a pipeline asked for once it has finished.

    Handlers are registered per event name. A failing handler is logged and
    does not stop the remaining events from being delivered.
    """

    def __init__(self):
        self._handlers: Dict[str, List[EventHandler]] = defaultdict(list)

    def register(self, name: str, handler: EventHandler) -> None:
        self._handlers[name].append(handler)

    async def dispatch(self, events: Sequence[PipelineEvent]) -> int:
        """Deliver events in order. Returns how many handler calls succeeded."""
        delivered = 0
        for event in events:
            handlers = self._handlers.get(event.name)
            if not handlers:
                logger.debug(f"No handler registered for event {event.name}")
                continue
            for handler in handlers:
                try:
                    await handler(event)
                    delivered += 1
                except Exception as e:
                    logger.error(f"Handler for {event.name} failed: {e}")
        return delivered


async def log_event(event: PipelineEvent) -> None:
    # Large fields (full documents) are summarized rather than logged.
    summary = {
        key: (f"<{len(value)} chars>" if isinstance(value, str) and len(value) > 200 else value)
        for key, value in event.payload.items()
        if key != "structured_output"
    }
    logger.info(f"Pipeline event {event.name}: {summary}")


def create_logging_dispatcher() -> EventDispatcher:
    dispatcher = EventDispatcher()
    for name in (
        "run_completed",
        "run_failed",
        "send_run_ready_email",
        "send_run_failed_email",
        "accumulate_context",
        "send_free_brief_email",
        "strategy_context_ready",
    ):
        dispatcher.register(name, log_event)
    return dispatcher
