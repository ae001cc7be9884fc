"""Streaming services for the AnswerStream client."""

from .connection_manager import CompletionReason, ConnectionManager, ConnectionPhase
from .session import (
    PARTIAL_SAVED_MESSAGE,
    ChatSession,
    QAPair,
    SessionState,
    SessionStatus,
)
from .sse_client import (
    ProgressStep,
    SseTransport,
    StreamConnectionError,
    StreamError,
    StreamEvent,
    StreamEventKind,
    StreamMessageError,
    build_stream_url,
    decode_stream_line,
)
from .update_scheduler import UpdateScheduler

__all__ = [
    "ChatSession",
    "CompletionReason",
    "ConnectionManager",
    "ConnectionPhase",
    "PARTIAL_SAVED_MESSAGE",
    "ProgressStep",
    "QAPair",
    "SessionState",
    "SessionStatus",
    "SseTransport",
    "StreamConnectionError",
    "StreamError",
    "StreamEvent",
    "StreamEventKind",
    "StreamMessageError",
    "UpdateScheduler",
    "build_stream_url",
    "decode_stream_line",
]
