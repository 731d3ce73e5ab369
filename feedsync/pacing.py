"""Rate-limit delays and run cancellation."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

LOGGER = logging.getLogger(__name__)


class IngestionCancelled(RuntimeError):
    """Raised when a run is cancelled between two scheduled steps."""


class Pacer:
    """Performs the scheduled pauses between upstream requests.

    ``sleep`` is injectable so tests can record delays instead of waiting.
    When a cancellation event is supplied it is checked around every pause.
    """

    def __init__(
        self,
        *,
        sleep: Callable[[float], None] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self._sleep = sleep or time.sleep
        self._cancel_event = cancel_event

    def check(self) -> None:
        if self._cancel_event is not None and self._cancel_event.is_set():
            raise IngestionCancelled("Ingestion run cancelled")

    def wait(self, seconds: float, reason: str = "") -> None:
        self.check()
        if seconds > 0:
            LOGGER.debug("Waiting %.2fs%s", seconds, f" ({reason})" if reason else "")
            self._sleep(seconds)
        self.check()
