"""Server-sent event transport and message decoding for the answer stream."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable
from urllib.parse import quote

from PyQt6.QtCore import QByteArray, QObject, QUrl, pyqtSignal
from PyQt6.QtNetwork import QNetworkAccessManager, QNetworkReply, QNetworkRequest

from ..logging import log_call


logger = logging.getLogger(__name__)


DONE_TOKEN = "[DONE]"
DATA_PREFIX = "data:"


class StreamError(RuntimeError):
    """Base exception for answer stream failures."""


class StreamConnectionError(StreamError):
    """Raised when a streaming connection cannot be started."""


class StreamMessageError(StreamError):
    """Raised when a single stream line cannot be decoded."""


@dataclass(slots=True, frozen=True)
class ProgressStep:
    """Status line describing backend work in progress."""

    text: str
    is_active: bool = False
    is_completed: bool = False
    extra_info: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "ProgressStep":
        if not isinstance(payload, dict):
            return cls(text="")
        extra = payload.get("info") or payload.get("extraInfo")
        # Only a literal JSON true counts; "false" or 1 must not complete a step.
        is_completed = payload.get("isCompleted") is True
        return cls(
            text=str(payload.get("text") or ""),
            # A completed step is never also active.
            is_active=payload.get("isActive") is True and not is_completed,
            is_completed=is_completed,
            extra_info=str(extra) if extra else None,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "text": self.text,
            "isActive": self.is_active,
            "isCompleted": self.is_completed,
        }
        if self.extra_info is not None:
            data["extraInfo"] = self.extra_info
        return data


class StreamEventKind(Enum):
    """Decoded meaning of a single stream line."""

    DONE = "done"
    CHECKPOINT = "checkpoint"
    FINAL_ANSWER = "final_answer"
    DELTA = "delta"
    STEPS = "steps"
    SUGGEST = "suggest"


@dataclass(slots=True, frozen=True)
class StreamEvent:
    kind: StreamEventKind
    text: str | None = None
    steps: tuple[ProgressStep, ...] = ()
    suggestions: tuple[Any, ...] = ()


def _node_event(content: dict[str, Any]) -> StreamEvent | None:
    node_name = content.get("nodeName")
    if not isinstance(node_name, str):
        return None
    payload = content.get("content")
    if node_name in {"STREAM", "SEARCH_REASONING"}:
        return StreamEvent(StreamEventKind.DELTA, text=payload if isinstance(payload, str) else "")
    if node_name == "SEARCH_STEPS":
        raw_steps = payload if isinstance(payload, list) else []
        return StreamEvent(
            StreamEventKind.STEPS,
            steps=tuple(ProgressStep.from_payload(step) for step in raw_steps),
        )
    if node_name == "SUGGEST":
        suggestions = payload if isinstance(payload, list) else []
        return StreamEvent(StreamEventKind.SUGGEST, suggestions=tuple(suggestions))
    return None


def _final_answer(content: Any) -> str | None:
    node: Any = content
    for key in ("outputs", "vera_answer", "value", "answer"):
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node if isinstance(node, str) and node else None


def decode_stream_line(line: str) -> StreamEvent | None:
    """Decode one raw line of the event stream.

    Returns ``None`` for lines that carry nothing actionable (blank lines,
    comments, unknown message types). Raises :class:`StreamMessageError`
    when the payload is not valid JSON.
    """

    data = line.strip()
    if not data or data.startswith(":"):
        return None
    if data.startswith(DATA_PREFIX):
        data = data[len(DATA_PREFIX) :].strip()
    if not data:
        return None
    if data == DONE_TOKEN:
        return StreamEvent(StreamEventKind.DONE)

    try:
        parsed = json.loads(data)
    except json.JSONDecodeError as exc:
        raise StreamMessageError(f"Malformed stream message: {exc.msg}") from exc
    except RecursionError as exc:
        raise StreamMessageError("Stream message is nested too deeply") from exc
    if not isinstance(parsed, dict):
        return None

    message_type = parsed.get("type")
    content = parsed.get("content")
    if message_type == "Status":
        if isinstance(content, dict) and content.get("status") == "saving":
            return StreamEvent(StreamEventKind.CHECKPOINT)
        return None
    if message_type == "Done":
        return StreamEvent(StreamEventKind.DONE)
    if message_type == "END":
        return StreamEvent(StreamEventKind.FINAL_ANSWER, text=_final_answer(content))
    if message_type == "NodeChunk":
        if isinstance(content, dict) and content.get("nodeName"):
            return _node_event(content)
        return None

    for key in ("content", "text", "chunk"):
        value = parsed.get(key)
        if isinstance(value, str) and value:
            return StreamEvent(StreamEventKind.DELTA, text=value)
    return None


def build_stream_url(endpoint: str, question: str) -> str:
    """Return ``endpoint`` with ``question`` as the percent-encoded prompt."""

    separator = "&" if "?" in endpoint else "?"
    return f"{endpoint}{separator}prompt={quote(question, safe='')}"


class SseTransport(QObject):
    """Line-oriented streaming GET on top of :class:`QNetworkAccessManager`.

    Emits ``opened`` once response headers arrive, ``message`` for every
    received line and exactly one of ``error`` or ``closed`` at the end.
    """

    opened = pyqtSignal()
    message = pyqtSignal(str)
    error = pyqtSignal(str)
    closed = pyqtSignal()

    def __init__(
        self,
        parent: QObject | None = None,
        *,
        network: QNetworkAccessManager | None = None,
        timeout_ms: int = 0,
    ) -> None:
        super().__init__(parent)
        self._network = network or QNetworkAccessManager(self)
        self._timeout_ms = timeout_ms
        self._reply: QNetworkReply | None = None
        self._pending = b""
        self._opened = False

    @property
    def is_active(self) -> bool:
        return self._reply is not None

    @log_call(logger=logger)
    def open(self, url: str) -> None:
        """Start the streaming request; raises on an unusable ``url``."""

        if self._reply is not None:
            raise StreamConnectionError("Transport is already open")
        qurl = QUrl(url)
        if not qurl.isValid() or qurl.scheme() not in {"http", "https"}:
            raise StreamConnectionError(f"Invalid stream URL: {url}")
        request = QNetworkRequest(qurl)
        request.setRawHeader(QByteArray(b"Accept"), QByteArray(b"text/event-stream"))
        request.setRawHeader(QByteArray(b"Cache-Control"), QByteArray(b"no-cache"))
        if self._timeout_ms > 0:
            request.setTransferTimeout(self._timeout_ms)
        self._pending = b""
        self._opened = False
        reply = self._network.get(request)
        reply.metaDataChanged.connect(self._on_meta_data)
        reply.readyRead.connect(self._on_ready_read)
        reply.finished.connect(self._on_finished)
        self._reply = reply

    @log_call(logger=logger)
    def close(self) -> None:
        """Abort the request without emitting any further signals."""

        reply = self._reply
        if reply is None:
            return
        self._reply = None
        reply.metaDataChanged.disconnect(self._on_meta_data)
        reply.readyRead.disconnect(self._on_ready_read)
        reply.finished.disconnect(self._on_finished)
        reply.abort()
        reply.deleteLater()
        self._pending = b""

    def _http_status(self) -> int | None:
        if self._reply is None:
            return None
        status = self._reply.attribute(QNetworkRequest.Attribute.HttpStatusCodeAttribute)
        return int(status) if status is not None else None

    def _on_meta_data(self) -> None:
        status = self._http_status()
        if self._opened or status is None or status >= 400:
            return
        self._opened = True
        self.opened.emit()

    def _on_ready_read(self) -> None:
        if self._reply is None:
            return
        status = self._http_status()
        if status is not None and status >= 400:
            return
        if not self._opened:
            self._opened = True
            self.opened.emit()
        self._pending += bytes(self._reply.readAll())
        *lines, self._pending = self._pending.split(b"\n")
        for raw in lines:
            if self._reply is None:
                # A listener tore the transport down mid-chunk.
                return
            self.message.emit(raw.rstrip(b"\r").decode("utf-8", errors="replace"))

    def _on_finished(self) -> None:
        reply = self._reply
        if reply is None:
            return
        status = self._http_status()
        network_error = reply.error()
        if network_error == QNetworkReply.NetworkError.NoError and (status is None or status < 400):
            tail = self._pending + bytes(reply.readAll())
            self._pending = b""
            for raw in tail.split(b"\n"):
                if self._reply is None:
                    return
                if raw.strip():
                    self.message.emit(raw.rstrip(b"\r").decode("utf-8", errors="replace"))
            if self._reply is None:
                return
            self._release()
            self.closed.emit()
            return
        if status is not None and status >= 400:
            description = f"Stream endpoint returned HTTP {status}"
        else:
            description = reply.errorString() or "Stream connection failed"
        logger.warning(
            "Stream transport error",
            extra={"status": status, "error": description},
        )
        self._release()
        self.error.emit(description)

    def _release(self) -> None:
        reply = self._reply
        self._reply = None
        self._pending = b""
        if reply is not None:
            reply.deleteLater()


TransportFactory = Callable[[QObject], Any]


__all__ = [
    "DONE_TOKEN",
    "ProgressStep",
    "SseTransport",
    "StreamConnectionError",
    "StreamError",
    "StreamEvent",
    "StreamEventKind",
    "StreamMessageError",
    "TransportFactory",
    "build_stream_url",
    "decode_stream_line",
]
