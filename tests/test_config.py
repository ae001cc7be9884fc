from __future__ import annotations

import json

import pytest

from answerstream.config import (
    DEFAULT_ENDPOINT,
    ConfigManager,
    StreamingSettings,
    get_user_config_dir,
)


@pytest.fixture()
def config(tmp_path, monkeypatch) -> ConfigManager:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    return ConfigManager(app_name="AnswerStreamTest", filename="settings.json")


def test_defaults_match_documented_tunables() -> None:
    settings = StreamingSettings()

    assert settings.endpoint == DEFAULT_ENDPOINT
    assert settings.batch_update_ms == 25
    assert settings.max_retry_attempts == 3
    assert settings.retry_delays_ms == (1000, 2000, 4000)
    assert settings.max_qa_history == 100
    assert settings.completion_timeout_ms == 500


def test_retry_delay_clamps_to_last_entry() -> None:
    settings = StreamingSettings(retry_delays_ms=(5, 7))

    assert [settings.retry_delay_for(attempt) for attempt in (0, 1, 2, 9)] == [5, 7, 7, 7]
    assert settings.retry_delay_for(-1) == 5
    assert StreamingSettings(retry_delays_ms=()).retry_delay_for(0) == 0


def test_from_mapping_coerces_and_skips_invalid_values() -> None:
    settings = StreamingSettings.from_mapping(
        {
            "endpoint": "  http://localhost:9000/stream  ",
            "batch_update_ms": "40",
            "max_retry_attempts": True,
            "retry_delays_ms": [100, 200.0],
            "max_qa_history": 0,
            "completion_timeout_ms": -1,
            "unknown": "ignored",
        }
    )

    assert settings.endpoint == "http://localhost:9000/stream"
    assert settings.batch_update_ms == 40
    assert settings.max_retry_attempts == 3
    assert settings.retry_delays_ms == (100, 200)
    assert settings.max_qa_history == 100
    assert settings.completion_timeout_ms == 500


def test_from_mapping_rejects_partially_invalid_delay_list() -> None:
    settings = StreamingSettings.from_mapping({"retry_delays_ms": [100, "soon"]})

    assert settings.retry_delays_ms == (1000, 2000, 4000)


def test_from_mapping_without_mapping_returns_defaults() -> None:
    assert StreamingSettings.from_mapping(None) == StreamingSettings()
    assert StreamingSettings.from_mapping(["not", "a", "mapping"]) == StreamingSettings()


def test_config_dir_respects_xdg(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))

    path = get_user_config_dir("AnswerStreamTest")

    assert path == tmp_path / "AnswerStreamTest"
    assert path.is_dir()


def test_load_missing_file_returns_empty(config: ConfigManager) -> None:
    assert config.load() == {}
    assert config.load_streaming_settings() == StreamingSettings()


def test_save_and_reload_streaming_settings(config: ConfigManager) -> None:
    config.update({"theme": "dark"})
    settings = StreamingSettings(endpoint="http://example.test/s", retry_delays_ms=(50,))

    config.save_streaming_settings(settings)

    stored = json.loads(config.config_path.read_text(encoding="utf-8"))
    assert stored["theme"] == "dark"
    assert stored["streaming"]["retry_delays_ms"] == [50]
    assert config.load_streaming_settings() == settings


def test_corrupt_file_falls_back_to_defaults(config: ConfigManager) -> None:
    config.config_path.write_text("{not json", encoding="utf-8")

    assert config.load_streaming_settings() == StreamingSettings()


def test_non_object_file_loads_as_empty(config: ConfigManager) -> None:
    config.config_path.write_text("[1, 2]", encoding="utf-8")

    assert config.load() == {}
