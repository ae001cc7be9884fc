"""Logging setup and call tracing for the AnswerStream client."""

from __future__ import annotations

import functools
import inspect
import logging
import reprlib
import sys
import time
from typing import Any, Callable, Optional

from .config import get_user_config_dir

LOG_FILENAME = "answerstream.log"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_argument_repr = reprlib.Repr()
_argument_repr.maxstring = 120
_argument_repr.maxother = 120

_hook_installed = False


def setup_logging(
    app_name: str = "AnswerStream",
    *,
    level: int = logging.INFO,
    log_filename: Optional[str] = None,
) -> logging.Logger:
    """Attach console and file handlers to the root logger.

    The ``answerstream.*`` module loggers propagate to the root, so the
    stream, session and scheduler all land in the same file under the user
    config directory. Returns the application logger; a second call leaves
    the existing handlers alone.
    """

    app_logger = logging.getLogger(app_name)
    root = logging.getLogger()
    if root.handlers:
        return app_logger

    log_path = get_user_config_dir(app_name) / (log_filename or LOG_FILENAME)
    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    handlers: list[logging.Handler] = [
        logging.StreamHandler(),
        logging.FileHandler(log_path, encoding="utf-8"),
    ]
    for handler in handlers:
        handler.setFormatter(formatter)
    logging.basicConfig(level=level, handlers=handlers)

    app_logger.info(
        "Logging initialised",
        extra={"log_path": str(log_path), "level": logging.getLevelName(level)},
    )
    return app_logger


def install_exception_hook(logger: logging.Logger) -> None:
    """Log exceptions that escape Qt slots instead of aborting the process.

    PyQt6 calls ``qFatal`` for an exception raised inside a slot unless
    :data:`sys.excepthook` has been replaced, which would take down a stream
    that is still being rendered.
    """

    global _hook_installed
    if _hook_installed:
        return
    _hook_installed = True
    previous_hook = sys.excepthook

    def handle_exception(exc_type, exc_value, exc_traceback):
        if issubclass(exc_type, KeyboardInterrupt):
            previous_hook(exc_type, exc_value, exc_traceback)
            return
        logger.critical(
            "Unhandled exception in event loop callback",
            exc_info=(exc_type, exc_value, exc_traceback),
        )

    sys.excepthook = handle_exception


def _describe_arguments(signature: inspect.Signature, args: tuple, kwargs: dict) -> str:
    try:
        bound = signature.bind_partial(*args, **kwargs)
    except TypeError:
        return "?"
    parts = []
    for name, value in bound.arguments.items():
        if name in {"self", "cls"}:
            continue
        try:
            rendered = _argument_repr.repr(value)
        except Exception:
            rendered = object.__repr__(value)
        parts.append(f"{name}={rendered}")
    return ", ".join(parts)


def log_call(
    _func: Optional[Callable[..., Any]] = None,
    *,
    logger: logging.Logger | str | None = None,
    level: int = logging.DEBUG,
    include_args: bool = True,
    include_result: bool = False,
) -> Any:
    """Trace a public operation: start, finish with elapsed time, or failure.

    Works bare (``@log_call``) or configured
    (``@log_call(logger=logger, include_args=False)``). Arguments are
    abbreviated so question text and buffers never flood the log. Nothing
    is formatted when ``level`` is disabled for the target logger.
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        signature = inspect.signature(func)
        name = func.__qualname__

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            if isinstance(logger, logging.Logger):
                target = logger
            else:
                target = logging.getLogger(logger or func.__module__)
            if not target.isEnabledFor(level):
                return func(*args, **kwargs)

            arguments = _describe_arguments(signature, args, kwargs) if include_args else "..."
            target.log(level, "%s(%s) started", name, arguments)
            started = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception:
                target.exception(
                    "%s failed after %.1f ms", name, (time.perf_counter() - started) * 1000
                )
                raise
            elapsed_ms = (time.perf_counter() - started) * 1000
            if include_result:
                target.log(level, "%s finished in %.1f ms -> %s", name, elapsed_ms, _argument_repr.repr(result))
            else:
                target.log(level, "%s finished in %.1f ms", name, elapsed_ms)
            return result

        return wrapper

    if callable(_func):
        return decorator(_func)
    return decorator


__all__ = ["install_exception_hook", "log_call", "setup_logging"]
