"""Deterministic stand-ins for the streaming transport."""

from __future__ import annotations

import json
import time
from typing import Callable

from PyQt6.QtCore import QObject, pyqtSignal
from PyQt6.QtTest import QTest


class FakeTransport(QObject):
    """Transport double that the test drives by emitting its signals."""

    opened = pyqtSignal()
    message = pyqtSignal(str)
    error = pyqtSignal(str)
    closed = pyqtSignal()

    def __init__(self, recorder: "TransportRecorder", parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._recorder = recorder

    def open(self, url: str) -> None:
        self._recorder.urls.append(url)
        if self._recorder.fail_open:
            raise ValueError("cannot open")

    def close(self) -> None:
        self._recorder.close_count += 1

    def send_json(self, payload: dict[str, object]) -> None:
        self.message.emit("data: " + json.dumps(payload))

    def send_delta(self, text: str) -> None:
        self.send_json({"type": "NodeChunk", "content": {"nodeName": "STREAM", "content": text}})

    def send_steps(self, *completed: bool) -> None:
        steps = [
            {"text": f"Step {index}", "isActive": not done, "isCompleted": done}
            for index, done in enumerate(completed)
        ]
        self.send_json(
            {"type": "NodeChunk", "content": {"nodeName": "SEARCH_STEPS", "content": steps}}
        )


class TransportRecorder:
    """Transport factory that remembers every transport it created."""

    def __init__(self) -> None:
        self.created: list[FakeTransport] = []
        self.urls: list[str] = []
        self.close_count = 0
        self.fail_open = False

    def __call__(self, parent: QObject) -> FakeTransport:
        transport = FakeTransport(self, parent)
        self.created.append(transport)
        return transport

    @property
    def latest(self) -> FakeTransport:
        return self.created[-1]


def wait_until(predicate: Callable[[], bool], timeout_ms: int = 2000) -> bool:
    """Spin the Qt event loop until ``predicate`` holds or the timeout expires."""

    deadline = time.monotonic() + timeout_ms / 1000.0
    while not predicate():
        if time.monotonic() > deadline:
            return False
        QTest.qWait(5)
    return True
