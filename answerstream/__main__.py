"""Command-line entry point that streams one answer to the terminal."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace

from PyQt6.QtCore import QCoreApplication, QTimer

from .config import ConfigManager
from .logging import install_exception_hook, setup_logging
from .services.session import ChatSession, QAPair, SessionState, SessionStatus


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="answerstream",
        description="Stream a tagged answer for a single question.",
    )
    parser.add_argument("question", help="question to send to the answer service")
    parser.add_argument("--endpoint", help="override the configured stream endpoint")
    parser.add_argument(
        "--json", action="store_true", help="print the finished exchange as JSON"
    )
    parser.add_argument(
        "--verbose", action="store_true", help="enable debug logging"
    )
    return parser


def _print_pair(pair: QAPair, *, as_json: bool) -> None:
    if as_json:
        print(json.dumps(pair.to_dict(), indent=2))
        return
    for section in pair.sections:
        print(f"## {section.title}")
        print(section.content)
        print()


def main(argv: list[str] | None = None) -> int:
    """Submit the question and run the Qt event loop until it settles."""

    args = _build_parser().parse_args(argv)
    logger = setup_logging(level=logging.DEBUG if args.verbose else logging.WARNING)
    install_exception_hook(logger)

    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
    app.setApplicationName("AnswerStream")

    settings = ConfigManager().load_streaming_settings()
    if args.endpoint:
        settings = replace(settings, endpoint=args.endpoint)
    logger.info(
        "Streaming question",
        extra={
            "endpoint": settings.endpoint,
            "max_retry_attempts": settings.max_retry_attempts,
            "retry_delays_ms": list(settings.retry_delays_ms),
            "batch_update_ms": settings.batch_update_ms,
        },
    )

    session = ChatSession(settings)
    outcome = {"code": 0, "settled": False}

    def _on_history(history: list[QAPair]) -> None:
        if history:
            _print_pair(history[-1], as_json=args.json)

    def _on_state(state: SessionState) -> None:
        if state.is_busy or outcome["settled"]:
            return
        outcome["settled"] = True
        if state.status is SessionStatus.ERROR:
            print(state.error or "Request failed", file=sys.stderr)
            outcome["code"] = 1
        elif state.error:
            print(state.error, file=sys.stderr)
        # Let the DONE -> IDLE archive step finish before leaving the loop.
        QTimer.singleShot(0, app.quit)

    session.history_changed.connect(_on_history)
    session.state_changed.connect(_on_state)

    if not session.submit(args.question):
        print("Question was not accepted", file=sys.stderr)
        return 2
    if session.is_busy:
        app.exec()
    session.cancel()
    logger.info("Command-line session finished", extra={"exit_code": outcome["code"]})
    return int(outcome["code"])


if __name__ == "__main__":
    sys.exit(main())
