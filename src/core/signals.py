"""Refresh signal raised whenever the message history changes."""

from __future__ import annotations

import logging
from typing import Callable

LOGGER = logging.getLogger(__name__)

RefreshCallback = Callable[[str], None]


class RefreshSignal:
    """Fan-out of refresh notifications to subscribed observers."""

    def __init__(self) -> None:
        self._subscribers: list[RefreshCallback] = []

    def subscribe(self, callback: RefreshCallback) -> None:
        self._subscribers.append(callback)

    def unsubscribe(self, callback: RefreshCallback) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def emit(self, reason: str) -> None:
        # An observer failing must never break message handling.
        for callback in list(self._subscribers):
            try:
                callback(reason)
            except Exception:
                LOGGER.exception("Refresh subscriber failed (%s)", reason)
