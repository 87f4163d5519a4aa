# utils/events.py
import logging
from typing import Callable, Dict, List


class EventHub:
    """Tiny publish/subscribe used by the core to notify views.

    A failing listener is logged and skipped; it never breaks the emitter.
    """
    def __init__(self):
        self._listeners: Dict[str, List[Callable]] = {}

    def on(self, name: str, callback: Callable) -> Callable:
        self._listeners.setdefault(name, []).append(callback)
        return callback

    def off(self, name: str, callback: Callable):
        cbs = self._listeners.get(name)
        if cbs and callback in cbs:
            cbs.remove(callback)

    def emit(self, name: str, *args):
        for cb in list(self._listeners.get(name, ())):
            try:
                cb(*args)
            except Exception:
                logging.exception("listener for '%s' failed", name)
