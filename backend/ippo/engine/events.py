"""Observer hooks for UI, notifications and persistence.

The engine emits events and carries on whether or not anybody listens; a
failing observer is logged and skipped.
"""
import logging
from collections import defaultdict
from typing import Any, Callable

logger = logging.getLogger(__name__)

SPRINT_START = "sprint_start"
COUNTDOWN_TICK = "countdown_tick"
SPRINT_END = "sprint_end"
ENCOUNTER_TRIGGERED = "encounter_triggered"
ENCOUNTER_COMPLETE = "encounter_complete"
RECOVERY_ENDED = "recovery_ended"
PET_CAUGHT = "pet_caught"
REWARD_APPLIED = "reward_applied"

Handler = Callable[..., Any]


class EventBus:
    def __init__(self):
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    def subscribe(self, event: str, handler: Handler) -> Callable[[], None]:
        """Register `handler` for `event`. Returns an unsubscribe function."""
        self._handlers[event].append(handler)

        def _unsubscribe():
            if handler in self._handlers[event]:
                self._handlers[event].remove(handler)

        return _unsubscribe

    def emit(self, event: str, *args: Any) -> None:
        for handler in list(self._handlers.get(event, ())):
            try:
                handler(*args)
            except Exception:
                logger.exception("Observer %r failed on %s", handler, event)
