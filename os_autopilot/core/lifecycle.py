# os_autopilot/core/lifecycle.py

import logging
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

SESSION_COMMITTED = "session_committed"
RUN_STARTED = "run_started"
ACTION_EXECUTED = "action_executed"
ACTION_FAILED = "action_failed"
RUN_FINISHED = "run_finished"


class LifecycleManager:
    """Synchronous observer hooks; a failing handler never breaks the run."""

    def __init__(self):
        self._registry: Dict[str, List[Callable]] = {}

    def register(self, event_name: str, handler: Callable[[Dict[str, Any]], None]):
        self._registry.setdefault(event_name, []).append(handler)

    def unregister(self, event_name: str, handler: Callable[[Dict[str, Any]], None]):
        handlers = self._registry.get(event_name, [])
        if handler in handlers:
            handlers.remove(handler)

    def emit(self, event_name: str, context: Dict[str, Any]):
        handlers = self._registry.get(event_name, [])
        for handler in list(handlers):
            try:
                handler(context)
            except Exception:
                logger.exception("[Lifecycle] Error in %s handler", event_name)


# Global instance
lifecycle = LifecycleManager()
