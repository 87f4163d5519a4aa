# timeline/tick.py
import itertools
import logging
from typing import Callable, Dict


class TickSource:
    """Periodic callback registry driven by whoever owns the frame loop.

    ``fire(now_ms)`` runs every registered callback once. A callback cancelled during
    a fire still finishes if it was already running; it simply gets no further ticks.
    """
    def __init__(self):
        self._callbacks: Dict[int, Callable[[float], None]] = {}
        self._ids = itertools.count(1)

    def register_tick(self, callback: Callable[[float], None]) -> int:
        handle = next(self._ids)
        self._callbacks[handle] = callback
        return handle

    def cancel_tick(self, handle: int):
        self._callbacks.pop(handle, None)

    def fire(self, now_ms: float):
        for handle, cb in list(self._callbacks.items()):
            if handle not in self._callbacks:
                continue
            try:
                cb(now_ms)
            except Exception:
                logging.exception("tick callback %d failed", handle)

    def __len__(self):
        return len(self._callbacks)
