from __future__ import annotations

import os
import sys

import pytest
from PyQt6.QtCore import QCoreApplication

from stream_fakes import TransportRecorder


os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")


@pytest.fixture(scope="session")
def qt_app() -> QCoreApplication:
    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication([])
    return app


@pytest.fixture(autouse=True)
def slot_exceptions(monkeypatch):
    """Fail the test when an exception escapes a Qt slot."""

    captured: list[BaseException] = []

    def hook(exc_type, exc_value, exc_traceback):
        captured.append(exc_value)

    monkeypatch.setattr(sys, "excepthook", hook)
    yield captured
    assert not captured, f"Exception raised inside a Qt slot: {captured[0]!r}"


@pytest.fixture()
def transports(qt_app) -> TransportRecorder:
    return TransportRecorder()
