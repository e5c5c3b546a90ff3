# application/services/value_generators.py
from __future__ import annotations

import random
import string
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict

from domain.exceptions import BindingError


def _random_string(length: int = 12) -> str:
    alphabet = string.ascii_letters + string.digits
    return "".join(random.choice(alphabet) for _ in range(length))


_GENERATORS: Dict[str, Callable[[], Any]] = {
    "uuid": lambda: str(uuid.uuid4()),
    "uuid_v4": lambda: str(uuid.uuid4()),
    "uuid_v4_short": lambda: uuid.uuid4().hex[:8],
    "uuid_v1": lambda: str(uuid.uuid1()),
    "timestamp": lambda: datetime.now(timezone.utc).isoformat(),
    "unix_timestamp": lambda: int(time.time()),
    "date_only": lambda: datetime.now(timezone.utc).date().isoformat(),
    "random_int": lambda: random.randint(0, 1_000_000),
    "random_float": lambda: round(random.uniform(0, 1000), 2),
    "random_string": _random_string,
    "random_email": lambda: f"{_random_string(8).lower()}@example.com",
}


def generator_names() -> list[str]:
    return sorted(_GENERATORS)


def generate(name: str) -> Any:
    fn = _GENERATORS.get((name or "").strip().lower())
    if fn is None:
        raise BindingError(f"unknown value generator: {name}")
    return fn()
