from __future__ import annotations

from pathlib import Path

import pytest

from domain.exceptions import ValidationError
from infrastructure.config.settings import Settings


def test_defaults_without_env(tmp_path: Path) -> None:
    settings = Settings.from_env(env_path=tmp_path / "missing.env", environ={})
    assert settings == Settings()


def test_reads_prefixed_environment(tmp_path: Path) -> None:
    settings = Settings.from_env(
        env_path=tmp_path / "missing.env",
        environ={
            "CURLRUNNER_MONGO_URI": "mongodb://db:27017",
            "CURLRUNNER_MAX_BATCH_SIZE": "50",
            "CURLRUNNER_REQUEST_TIMEOUT_SEC": "2.5",
            "CURLRUNNER_LOG_LEVEL": "debug",
            "MAX_BATCH_SIZE": "1",
        },
    )
    assert settings.mongo_uri == "mongodb://db:27017"
    assert settings.max_batch_size == 50
    assert settings.request_timeout_sec == 2.5
    assert settings.log_level == "DEBUG"


def test_env_file_wins_over_environment(tmp_path: Path) -> None:
    # Arrange
    env_file = tmp_path / ".env"
    env_file.write_text("CURLRUNNER_TRACE_SAMPLE_SIZE=3\nCURLRUNNER_SCHEDULER_WORKERS=8\n", encoding="utf-8")

    # Act
    settings = Settings.from_env(env_path=env_file, environ={"CURLRUNNER_TRACE_SAMPLE_SIZE": "20"})

    # Assert
    assert settings.trace_sample_size == 3
    assert settings.scheduler_workers == 8


@pytest.mark.parametrize(
    "key, value, message",
    [
        ("CURLRUNNER_MAX_BATCH_SIZE", "lots", "must be a number"),
        ("CURLRUNNER_MAX_BATCH_SIZE", "0", "must be >= 1"),
        ("CURLRUNNER_TRACE_SAMPLE_SIZE", "-1", "must be >= 0"),
    ],
)
def test_invalid_values(tmp_path: Path, key, value, message) -> None:
    with pytest.raises(ValidationError, match=message):
        Settings.from_env(env_path=tmp_path / "missing.env", environ={key: value})
