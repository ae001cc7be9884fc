"""Coalesce bursts of stream text into rate-limited refreshes."""

from __future__ import annotations

import logging
import time

from PyQt6.QtCore import QObject, QTimer, pyqtSignal


logger = logging.getLogger(__name__)


DEFAULT_BATCH_UPDATE_MS = 25


class UpdateScheduler(QObject):
    """Emit ``refresh_requested`` at most once per ``interval_ms``.

    Callers invoke :meth:`schedule` for every arriving fragment. While a
    refresh is pending further calls are absorbed; the refresh reads the
    whole accumulated buffer, so nothing is lost.
    """

    refresh_requested = pyqtSignal()

    def __init__(
        self,
        interval_ms: int = DEFAULT_BATCH_UPDATE_MS,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self.interval_ms = max(0, int(interval_ms))
        self._last_update: float | None = None
        self._timer = QTimer(self)
        self._timer.setSingleShot(True)
        self._timer.timeout.connect(self._fire)

    @property
    def is_pending(self) -> bool:
        return self._timer.isActive()

    @property
    def timer(self) -> QTimer:
        return self._timer

    def schedule(self) -> None:
        if self._timer.isActive():
            return
        if self._last_update is None:
            delay = 0
        else:
            elapsed_ms = (time.monotonic() - self._last_update) * 1000.0
            delay = max(0, round(self.interval_ms - elapsed_ms))
        self._timer.start(delay)

    def cancel(self) -> None:
        """Drop a pending refresh; safe to call repeatedly."""

        self._timer.stop()

    def reset(self) -> None:
        self.cancel()
        self._last_update = None

    def _fire(self) -> None:
        self.refresh_requested.emit()
        self._last_update = time.monotonic()
        logger.debug("Stream refresh emitted")


__all__ = ["DEFAULT_BATCH_UPDATE_MS", "UpdateScheduler"]
