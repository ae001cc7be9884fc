"""Own one streaming connection at a time and drive retry with backoff."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from PyQt6.QtCore import QObject, QTimer, pyqtSignal

from ..config import StreamingSettings
from ..logging import log_call
from .sse_client import (
    SseTransport,
    StreamConnectionError,
    StreamEvent,
    StreamEventKind,
    StreamMessageError,
    TransportFactory,
    build_stream_url,
    decode_stream_line,
)


logger = logging.getLogger(__name__)


class ConnectionPhase(Enum):
    """Lifecycle of the current streaming attempt."""

    IDLE = "idle"
    OPENING = "opening"
    STREAMING = "streaming"
    WAITING_RETRY = "waiting_retry"
    DONE = "done"
    FAILED = "failed"


class CompletionReason(Enum):
    """Which signal ended a successful stream."""

    DONE_SIGNAL = "done_signal"
    FINAL_ANSWER = "final_answer"
    STEPS_COMPLETED = "steps_completed"
    STREAM_CLOSED = "stream_closed"
    PARTIAL = "partial"


class ConnectionManager(QObject):
    """Stream one question, interpreting upstream control messages.

    The manager owns the transport, the accumulated answer text and the
    retry and completion timers. Results are published through signals;
    the session applies them to its own state.
    """

    opened = pyqtSignal()
    text_appended = pyqtSignal()
    checkpoint = pyqtSignal()
    progress_received = pyqtSignal(object)
    suggestions_received = pyqtSignal(object)
    retry_scheduled = pyqtSignal(int, int)
    completed = pyqtSignal(object)
    failed = pyqtSignal(str)

    def __init__(
        self,
        settings: StreamingSettings | None = None,
        parent: QObject | None = None,
        *,
        transport_factory: TransportFactory | None = None,
    ) -> None:
        super().__init__(parent)
        self.settings = settings or StreamingSettings()
        self._transport_factory = transport_factory or self._build_transport
        self._transport: Any = None
        self._question: str | None = None
        self._attempt = 0
        self._buffer = ""
        self._received_text = False
        self._phase = ConnectionPhase.IDLE

        self._retry_timer = QTimer(self)
        self._retry_timer.setSingleShot(True)
        self._retry_timer.timeout.connect(self._on_retry_timeout)

        self._completion_timer = QTimer(self)
        self._completion_timer.setSingleShot(True)
        self._completion_timer.timeout.connect(self._on_completion_timeout)

    # ------------------------------------------------------------------
    # Read-only state
    @property
    def phase(self) -> ConnectionPhase:
        return self._phase

    @property
    def attempt(self) -> int:
        return self._attempt

    @property
    def question(self) -> str | None:
        return self._question

    @property
    def buffer(self) -> str:
        return self._buffer

    @property
    def has_transport(self) -> bool:
        return self._transport is not None

    @property
    def retry_timer(self) -> QTimer:
        return self._retry_timer

    @property
    def completion_timer(self) -> QTimer:
        return self._completion_timer

    @property
    def is_retrying(self) -> bool:
        return self._retry_timer.isActive()

    # ------------------------------------------------------------------
    # Commands
    @log_call(logger=logger, include_args=False)
    def start(self, question: str) -> None:
        """Tear down anything in flight and open attempt 0 for ``question``."""

        self.shutdown()
        self._question = question
        self._attempt = 0
        self._buffer = ""
        self._received_text = False
        self._open_attempt()

    @log_call(logger=logger)
    def shutdown(self) -> None:
        """Release the transport and every pending timer; idempotent."""

        self._teardown()
        if self._phase in {ConnectionPhase.OPENING, ConnectionPhase.STREAMING, ConnectionPhase.WAITING_RETRY}:
            self._phase = ConnectionPhase.IDLE

    def clear_buffer(self) -> None:
        self._buffer = ""

    # ------------------------------------------------------------------
    # Attempt lifecycle
    def _build_transport(self, parent: QObject) -> SseTransport:
        return SseTransport(parent, timeout_ms=self.settings.request_timeout_ms)

    def _open_attempt(self) -> None:
        question = self._question or ""
        url = build_stream_url(self.settings.endpoint, question)
        logger.info(
            "Opening answer stream",
            extra={"attempt": self._attempt, "question_length": len(question)},
        )
        self._phase = ConnectionPhase.OPENING
        try:
            transport = self._transport_factory(self)
            transport.opened.connect(self._on_open)
            transport.message.connect(self._on_message)
            transport.error.connect(self._on_error)
            transport.closed.connect(self._on_close)
            self._transport = transport
            transport.open(url)
        except (StreamConnectionError, OSError, ValueError, TypeError) as exc:
            logger.error(
                "Failed to start answer stream",
                extra={"attempt": self._attempt, "error": str(exc)},
            )
            self._teardown()
            self._phase = ConnectionPhase.FAILED
            self.failed.emit("Failed to start connection.")

    def _teardown(self) -> None:
        transport = self._transport
        self._transport = None
        self._retry_timer.stop()
        self._completion_timer.stop()
        if transport is None:
            return
        for signal, slot in (
            (transport.opened, self._on_open),
            (transport.message, self._on_message),
            (transport.error, self._on_error),
            (transport.closed, self._on_close),
        ):
            try:
                signal.disconnect(slot)
            except TypeError:
                pass
        transport.close()
        if isinstance(transport, QObject):
            transport.deleteLater()

    def _finish(self, reason: CompletionReason) -> None:
        self._teardown()
        self._phase = ConnectionPhase.DONE
        logger.info(
            "Answer stream completed",
            extra={"reason": reason.value, "buffered_chars": len(self._buffer)},
        )
        self.completed.emit(reason)

    # ------------------------------------------------------------------
    # Transport events
    def _on_open(self) -> None:
        if self._transport is None:
            return
        self._phase = ConnectionPhase.STREAMING
        logger.info("Answer stream opened", extra={"attempt": self._attempt})
        self.opened.emit()

    def _on_message(self, line: str) -> None:
        if self._transport is None:
            return
        try:
            event = decode_stream_line(line)
        except StreamMessageError as exc:
            logger.debug("Skipping malformed stream line", extra={"error": str(exc)})
            return
        if event is not None:
            self._dispatch(event)

    def _dispatch(self, event: StreamEvent) -> None:
        kind = event.kind
        if kind is StreamEventKind.DONE:
            self._finish(CompletionReason.DONE_SIGNAL)
        elif kind is StreamEventKind.CHECKPOINT:
            logger.debug("Upstream is saving the answer")
            self.checkpoint.emit()
        elif kind is StreamEventKind.FINAL_ANSWER:
            if event.text:
                self._buffer = event.text
                self._received_text = True
            self._finish(CompletionReason.FINAL_ANSWER)
        elif kind is StreamEventKind.DELTA:
            if event.text:
                self._buffer += event.text
                if event.text.strip():
                    self._received_text = True
                self.text_appended.emit()
        elif kind is StreamEventKind.STEPS:
            steps = list(event.steps)
            self.progress_received.emit(steps)
            all_completed = bool(steps) and all(step.is_completed for step in steps)
            if all_completed and not self._completion_timer.isActive():
                logger.debug(
                    "All progress steps completed; arming completion timer",
                    extra={"grace_ms": self.settings.completion_timeout_ms},
                )
                self._completion_timer.start(self.settings.completion_timeout_ms)
        elif kind is StreamEventKind.SUGGEST:
            self.suggestions_received.emit(list(event.suggestions))

    def _on_completion_timeout(self) -> None:
        # The timer is stopped on teardown, but a queued timeout may still land.
        if self._transport is None:
            return
        self._finish(CompletionReason.STEPS_COMPLETED)

    def _on_error(self, message: str = "") -> None:
        if self._transport is None:
            return
        self._teardown()
        budget = self.settings.max_retry_attempts
        logger.warning(
            "Answer stream error",
            extra={"attempt": self._attempt, "budget": budget, "error": message},
        )
        if self._attempt < budget:
            delay_ms = self.settings.retry_delay_for(self._attempt)
            self._phase = ConnectionPhase.WAITING_RETRY
            self._retry_timer.start(delay_ms)
            self.retry_scheduled.emit(self._attempt + 1, delay_ms)
            return
        if self._received_text:
            self._finish(CompletionReason.PARTIAL)
            return
        self._phase = ConnectionPhase.FAILED
        self.failed.emit(f"Connection failed after {budget} attempts. Please try again.")

    def _on_close(self) -> None:
        if self._transport is None:
            return
        self._finish(CompletionReason.STREAM_CLOSED)

    def _on_retry_timeout(self) -> None:
        if self._question is None:
            return
        self._attempt += 1
        # The upstream service replays the whole answer on a new connection.
        self._buffer = ""
        self._open_attempt()


__all__ = ["CompletionReason", "ConnectionManager", "ConnectionPhase"]
