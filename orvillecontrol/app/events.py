from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any


class Event:
    """Minimal signal: `connect` callbacks, `emit` calls them in order.

    A failing listener is logged and doesn't stop the others.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._listeners: list[Callable[..., Any]] = []
        self._logger = logging.getLogger(self.__class__.__name__)

    def connect(self, callback: Callable[..., Any]) -> None:
        self._listeners.append(callback)

    def disconnect(self, callback: Callable[..., Any]) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def emit(self, *args: Any) -> None:
        for listener in list(self._listeners):
            try:
                listener(*args)
            except Exception:
                self._logger.exception("Listener for %s failed", self.name)


class SessionEvents:
    """Callbacks fired by the session.

    - menu_updated(MenuDump): the displayed menu (or an embedded child) changed
    - value_updated(key, value)
    - bitmap_updated(Bitmap)
    - protocol_error(OrvilleError)
    - warning(UserWarning): stale responses, value mismatches
    """

    def __init__(self) -> None:
        self.menu_updated = Event("menu_updated")
        self.value_updated = Event("value_updated")
        self.bitmap_updated = Event("bitmap_updated")
        self.protocol_error = Event("protocol_error")
        self.warning = Event("warning")
