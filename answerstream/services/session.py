"""Question/answer session state machine."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any

from PyQt6.QtCore import QObject, pyqtSignal

from ..config import StreamingSettings
from ..logging import log_call
from ..parsing import (
    Section,
    SectionType,
    merge_sections,
    parse_streaming_sections,
    parse_tagged_content,
)
from .connection_manager import CompletionReason, ConnectionManager
from .sse_client import ProgressStep, TransportFactory
from .update_scheduler import UpdateScheduler


logger = logging.getLogger(__name__)


PARTIAL_SAVED_MESSAGE = "Connection interrupted but partial response saved."


class SessionStatus(Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    DONE = "done"
    ERROR = "error"


@dataclass(frozen=True)
class QAPair:
    """Record of a finished question/answer exchange."""

    id: str
    question: str
    sections: tuple[Section, ...]
    progress_steps: tuple[ProgressStep, ...] = ()
    answered_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "question": self.question,
            "sections": [section.to_dict() for section in self.sections],
            "progressSteps": [step.to_dict() for step in self.progress_steps],
            "answeredAt": self.answered_at.isoformat() if self.answered_at else None,
        }


@dataclass(frozen=True)
class SessionState:
    """Immutable view of a :class:`ChatSession` for observers."""

    status: SessionStatus
    current_question: str
    current_sections: tuple[Section, ...]
    current_progress_steps: tuple[ProgressStep, ...]
    error: str | None
    retry_count: int
    qa_history: tuple[QAPair, ...] = ()
    can_ask: bool = False
    can_stop: bool = False
    is_busy: bool = False
    is_retrying: bool = False

    @property
    def total_qa_count(self) -> int:
        return len(self.qa_history)


class ChatSession(QObject):
    """Own the question/answer lifecycle and the finished history.

    The session is the only place mutable interaction state lives. The
    connection manager and update scheduler report through signals and the
    session applies their results.
    """

    state_changed = pyqtSignal(object)
    sections_changed = pyqtSignal(object)
    progress_changed = pyqtSignal(object)
    history_changed = pyqtSignal(object)
    retry_scheduled = pyqtSignal(int, int)

    def __init__(
        self,
        settings: StreamingSettings | None = None,
        parent: QObject | None = None,
        *,
        transport_factory: TransportFactory | None = None,
    ) -> None:
        super().__init__(parent)
        self.settings = settings or StreamingSettings()
        self._status = SessionStatus.IDLE
        self._question = ""
        self._sections: list[Section] = []
        self._steps: list[ProgressStep] = []
        self._error: str | None = None
        self._retry_count = 0
        self._history: list[QAPair] = []

        self._connection = ConnectionManager(
            self.settings, self, transport_factory=transport_factory
        )
        self._scheduler = UpdateScheduler(self.settings.batch_update_ms, self)

        self._scheduler.refresh_requested.connect(self._refresh_streaming_display)
        self._connection.opened.connect(self._on_opened)
        self._connection.text_appended.connect(self._scheduler.schedule)
        self._connection.checkpoint.connect(self._on_checkpoint)
        self._connection.progress_received.connect(self._on_progress)
        self._connection.suggestions_received.connect(self._on_suggestions)
        self._connection.retry_scheduled.connect(self._on_retry_scheduled)
        self._connection.completed.connect(self._on_completed)
        self._connection.failed.connect(self._on_failed)

    # ------------------------------------------------------------------
    # Read-only state
    @property
    def connection(self) -> ConnectionManager:
        return self._connection

    @property
    def scheduler(self) -> UpdateScheduler:
        return self._scheduler

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def current_question(self) -> str:
        return self._question

    @property
    def current_sections(self) -> list[Section]:
        return list(self._sections)

    @property
    def current_progress_steps(self) -> list[ProgressStep]:
        return list(self._steps)

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def retry_count(self) -> int:
        return self._retry_count

    @property
    def qa_history(self) -> list[QAPair]:
        return list(self._history)

    @property
    def total_qa_count(self) -> int:
        return len(self._history)

    @property
    def is_busy(self) -> bool:
        return self._status in {SessionStatus.CONNECTING, SessionStatus.STREAMING}

    @property
    def can_stop(self) -> bool:
        return self.is_busy

    @property
    def can_ask(self) -> bool:
        return (
            self._status in {SessionStatus.IDLE, SessionStatus.DONE, SessionStatus.ERROR}
            and len(self._history) < self.settings.max_qa_history
        )

    @property
    def is_retrying(self) -> bool:
        return self._connection.is_retrying

    def snapshot(self) -> SessionState:
        return SessionState(
            status=self._status,
            current_question=self._question,
            current_sections=tuple(self._sections),
            current_progress_steps=tuple(self._steps),
            error=self._error,
            retry_count=self._retry_count,
            qa_history=tuple(self._history),
            can_ask=self.can_ask,
            can_stop=self.can_stop,
            is_busy=self.is_busy,
            is_retrying=self.is_retrying,
        )

    # ------------------------------------------------------------------
    # Commands
    @log_call(logger=logger, include_args=False, include_result=True)
    def submit(self, question: str) -> bool:
        """Start streaming an answer for ``question``.

        Returns ``False`` when the question is blank, a stream is already in
        flight or the history is full.
        """

        trimmed = question.strip()
        if not trimmed:
            return False
        if self.is_busy:
            logger.info("Ignoring submission while busy", extra={"status": self._status.value})
            return False
        cap = self.settings.max_qa_history
        if len(self._history) >= cap:
            self._error = (
                f"Maximum history limit reached ({cap} items). Please clear some history."
            )
            self._emit_state()
            return False

        self._teardown()
        self._error = None
        self._question = trimmed
        self._set_sections([])
        self._set_steps([])
        self._retry_count = 0
        logger.info(
            "Question submitted",
            extra={"question_preview": trimmed[:120], "history_size": len(self._history)},
        )
        self._set_status(SessionStatus.CONNECTING)
        self._connection.start(trimmed)
        return True

    @log_call(logger=logger)
    def cancel(self) -> None:
        """Stop streaming and keep whatever was produced so far."""

        sections = self._commit_pending_text(truncated=True)
        self._teardown()
        self._archive(sections)
        self._clear_interaction()
        self._set_status(SessionStatus.IDLE)

    @log_call(logger=logger)
    def reset(self) -> None:
        """Drop the history and the current interaction."""

        self._teardown()
        self._scheduler.reset()
        self._history.clear()
        self._clear_interaction()
        self._error = None
        self._retry_count = 0
        self.history_changed.emit([])
        self._set_status(SessionStatus.IDLE)

    def toggle_section(self, section_id: str) -> bool:
        """Flip the collapse state of a current section.

        Untagged answer sections and empty sections cannot collapse.
        """

        for index, section in enumerate(self._sections):
            if section.id != section_id:
                continue
            if section.type is SectionType.ANSWER or not section.content:
                return False
            sections = list(self._sections)
            sections[index] = replace(section, is_collapsed=not section.is_collapsed)
            self._set_sections(sections)
            self._emit_state()
            return True
        return False

    # ------------------------------------------------------------------
    # Helpers
    def _emit_state(self) -> None:
        self.state_changed.emit(self.snapshot())

    def _set_status(self, status: SessionStatus) -> None:
        if status is not self._status:
            logger.debug(
                "Session status changed",
                extra={"from": self._status.value, "to": status.value},
            )
        self._status = status
        self._emit_state()

    def _set_sections(self, sections: list[Section]) -> None:
        self._sections = sections
        self.sections_changed.emit(list(sections))

    def _set_steps(self, steps: list[ProgressStep]) -> None:
        self._steps = steps
        self.progress_changed.emit(list(steps))

    def _teardown(self) -> None:
        self._scheduler.cancel()
        self._connection.shutdown()
        self._connection.clear_buffer()

    def _clear_interaction(self) -> None:
        self._question = ""
        self._set_sections([])
        self._set_steps([])

    def _refresh_streaming_display(self) -> None:
        text = self._connection.buffer
        if not text:
            return
        parsed = parse_streaming_sections(text)
        if parsed:
            self._set_sections(merge_sections(self._sections, parsed))
            self._emit_state()

    def _commit_pending_text(self, *, truncated: bool) -> list[Section]:
        """Parse the whole buffer into the current sections and return them."""

        self._scheduler.cancel()
        text = self._connection.buffer
        if not text:
            return list(self._sections)
        parsed = parse_streaming_sections(text) if truncated else parse_tagged_content(text)
        if parsed:
            self._set_sections(merge_sections(self._sections, parsed))
        return list(self._sections)

    def _archive(self, sections: list[Section]) -> None:
        if not self._question or not sections:
            return
        pair = QAPair(
            id=uuid.uuid4().hex,
            question=self._question,
            sections=tuple(sections),
            progress_steps=tuple(self._steps),
            answered_at=datetime.now(),
        )
        self._history.append(pair)
        logger.info(
            "Answer archived",
            extra={"qa_id": pair.id, "sections": len(pair.sections), "history_size": len(self._history)},
        )
        self.history_changed.emit(list(self._history))

    # ------------------------------------------------------------------
    # Connection events
    def _on_opened(self) -> None:
        self._retry_count = 0
        self._error = None
        self._set_status(SessionStatus.STREAMING)

    def _on_checkpoint(self) -> None:
        self._commit_pending_text(truncated=False)
        self._emit_state()

    def _on_progress(self, steps: list[ProgressStep]) -> None:
        self._set_steps(list(steps))
        self._emit_state()

    def _on_suggestions(self, suggestions: list[Any]) -> None:
        logger.debug("Suggestions received", extra={"count": len(suggestions)})

    def _on_retry_scheduled(self, attempt: int, delay_ms: int) -> None:
        # Show what the dead connection delivered before its buffer is replayed.
        self._scheduler.cancel()
        self._refresh_streaming_display()
        self._retry_count = attempt
        self._error = (
            f"Connection lost. Retrying in {delay_ms / 1000:g}s... "
            f"(Attempt {attempt}/{self.settings.max_retry_attempts})"
        )
        self.retry_scheduled.emit(attempt, delay_ms)
        self._emit_state()

    def _on_completed(self, reason: CompletionReason) -> None:
        partial = reason is CompletionReason.PARTIAL
        self._commit_pending_text(truncated=partial)
        self._connection.clear_buffer()
        if partial:
            self._error = PARTIAL_SAVED_MESSAGE
        self._set_status(SessionStatus.DONE)
        if self._question and self._sections:
            self._archive(list(self._sections))
            self._clear_interaction()
            self._set_status(SessionStatus.IDLE)

    def _on_failed(self, message: str) -> None:
        self._scheduler.cancel()
        self._error = message
        self._set_status(SessionStatus.ERROR)


__all__ = [
    "ChatSession",
    "PARTIAL_SAVED_MESSAGE",
    "QAPair",
    "SessionState",
    "SessionStatus",
]
