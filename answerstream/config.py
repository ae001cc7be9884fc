"""Configuration for the streaming answer client."""

from __future__ import annotations

import json
import logging
import os
import sys
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Mapping, MutableMapping

CONFIG_DIR_NAME = "AnswerStream"
DEFAULT_JSON_FILENAME = "settings.json"
SETTINGS_SECTION = "streaming"

DEFAULT_ENDPOINT = "https://vera-assignment-api.vercel.app/api/stream"


logger = logging.getLogger(__name__)


def get_user_config_dir(app_name: str = CONFIG_DIR_NAME) -> Path:
    """Return the configuration directory for the current user.

    The directory is created on first use. On Windows the directory is
    under ``%APPDATA%``; otherwise the XDG base directory or ``~/.config``
    is used.
    """
    if sys.platform.startswith("win"):
        base_dir = Path(os.getenv("APPDATA", Path.home()))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", Path.home() / ".config"))
    config_dir = base_dir / app_name
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


@dataclass(slots=True, frozen=True)
class StreamingSettings:
    """Tunables for the connection, scheduler and session layers."""

    endpoint: str = DEFAULT_ENDPOINT
    batch_update_ms: int = 25
    max_retry_attempts: int = 3
    retry_delays_ms: tuple[int, ...] = (1000, 2000, 4000)
    max_qa_history: int = 100
    completion_timeout_ms: int = 500
    request_timeout_ms: int = 0

    def retry_delay_for(self, attempt: int) -> int:
        """Return the backoff delay before reconnect number ``attempt + 1``."""

        if not self.retry_delays_ms:
            return 0
        index = min(max(attempt, 0), len(self.retry_delays_ms) - 1)
        return self.retry_delays_ms[index]

    def to_mapping(self) -> dict[str, Any]:
        data = asdict(self)
        data["retry_delays_ms"] = list(self.retry_delays_ms)
        return data

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "StreamingSettings":
        """Build settings from ``data``, keeping defaults for invalid fields."""

        if not isinstance(data, Mapping):
            return cls()
        defaults = cls()
        values: dict[str, Any] = {}
        for item in fields(cls):
            if item.name not in data:
                continue
            raw = data[item.name]
            default = getattr(defaults, item.name)
            coerced = _coerce_field(item.name, raw, default)
            if coerced is None:
                logger.warning(
                    "Ignoring invalid streaming setting",
                    extra={"setting": item.name, "value": repr(raw)},
                )
                continue
            values[item.name] = coerced
        return cls(**values)


def _coerce_field(name: str, raw: Any, default: Any) -> Any:
    if name == "endpoint":
        if isinstance(raw, str) and raw.strip():
            return raw.strip()
        return None
    if name == "retry_delays_ms":
        if not isinstance(raw, (list, tuple)):
            return None
        delays: list[int] = []
        for value in raw:
            delay = _coerce_non_negative_int(value)
            if delay is None:
                return None
            delays.append(delay)
        return tuple(delays)
    value = _coerce_non_negative_int(raw)
    if value is None:
        return None
    if name == "max_qa_history" and value == 0:
        return None
    return value


def _coerce_non_negative_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, float):
        if not value.is_integer():
            return None
        value = int(value)
    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            return None
    if not isinstance(value, int) or value < 0:
        return None
    return value


class ConfigManager:
    """Handle loading and saving the user's JSON settings file."""

    def __init__(
        self,
        app_name: str = CONFIG_DIR_NAME,
        *,
        filename: str | None = None,
    ) -> None:
        self.app_name = app_name
        self.config_dir = get_user_config_dir(app_name)
        self.config_path = self.config_dir / (filename or DEFAULT_JSON_FILENAME)

    def load(self) -> dict[str, Any]:
        """Load configuration from disk.

        Returns an empty dictionary if the configuration file is absent or
        does not hold a JSON object.
        """
        if not self.config_path.exists():
            return {}
        with self.config_path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
        if not isinstance(data, dict):
            logger.warning(
                "Settings file does not contain an object",
                extra={"path": str(self.config_path)},
            )
            return {}
        return data

    def save(self, data: MutableMapping[str, Any]) -> None:
        """Persist configuration data to disk."""
        with self.config_path.open("w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2, sort_keys=True)
            fh.write("\n")

    def update(self, data: MutableMapping[str, Any]) -> dict[str, Any]:
        """Update the stored configuration with ``data`` and return the result."""
        current = self.load()
        current.update(data)
        self.save(current)
        return current

    def load_streaming_settings(self) -> StreamingSettings:
        """Return the ``streaming`` section as :class:`StreamingSettings`."""

        try:
            data = self.load()
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning(
                "Falling back to default streaming settings",
                extra={"path": str(self.config_path), "error": str(exc)},
            )
            return StreamingSettings()
        return StreamingSettings.from_mapping(data.get(SETTINGS_SECTION))

    def save_streaming_settings(self, settings: StreamingSettings) -> None:
        self.update({SETTINGS_SECTION: settings.to_mapping()})

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"ConfigManager(app_name={self.app_name!r}, path={self.config_path!s})"


__all__ = [
    "ConfigManager",
    "DEFAULT_ENDPOINT",
    "StreamingSettings",
    "get_user_config_dir",
]
