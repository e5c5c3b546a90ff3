# infrastructure/config/settings.py
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional

from dotenv import dotenv_values

from domain.exceptions import ValidationError

ENV_PREFIX = "CURLRUNNER_"

# プロジェクトルートの .env
DEFAULT_ENV_PATH = Path(__file__).parent.parent.parent / ".env"


@dataclass(frozen=True)
class Settings:
    mongo_uri: str = "mongodb://localhost:27017"
    request_timeout_sec: float = 30.0
    max_batch_size: int = 100
    trace_sample_size: int = 10
    log_level: str = "INFO"
    scheduler_workers: int = 4

    @classmethod
    def from_env(
        cls,
        env_path: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "Settings":
        """
        Read ``CURLRUNNER_*`` values from the process environment and the
        .env file; values in the .env file win.
        """
        values = _collect(env_path or DEFAULT_ENV_PATH, os.environ if environ is None else environ)
        defaults = cls()
        return cls(
            mongo_uri=values.get("MONGO_URI") or defaults.mongo_uri,
            request_timeout_sec=_number(values, "REQUEST_TIMEOUT_SEC", defaults.request_timeout_sec, float, minimum=0.001),
            max_batch_size=_number(values, "MAX_BATCH_SIZE", defaults.max_batch_size, int, minimum=1),
            trace_sample_size=_number(values, "TRACE_SAMPLE_SIZE", defaults.trace_sample_size, int, minimum=0),
            log_level=(values.get("LOG_LEVEL") or defaults.log_level).upper(),
            scheduler_workers=_number(values, "SCHEDULER_WORKERS", defaults.scheduler_workers, int, minimum=1),
        )


def _collect(env_path: Path, environ: Mapping[str, str]) -> Dict[str, str]:
    merged: Dict[str, str] = {}
    for key, value in environ.items():
        if key.startswith(ENV_PREFIX):
            merged[key[len(ENV_PREFIX):]] = value
    # .env の値を環境変数より優先
    if env_path.exists():
        for key, value in dotenv_values(env_path).items():
            if key.startswith(ENV_PREFIX) and value is not None:
                merged[key[len(ENV_PREFIX):]] = value
    return merged


def _number(values: Dict[str, str], key: str, default, cast, minimum):
    raw = values.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = cast(raw.strip())
    except ValueError:
        raise ValidationError(f"{ENV_PREFIX}{key} must be a number: {raw!r}")
    if value < minimum:
        raise ValidationError(f"{ENV_PREFIX}{key} must be >= {minimum}: {raw!r}")
    return value
