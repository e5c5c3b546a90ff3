# infrastructure/plan/json_loader.py
from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from infrastructure.plan.base_loader import PlanLoaderBase, PlanLoadError


class JsonPlanLoader(PlanLoaderBase):
    def _load_file(self, path: Path) -> Any:
        try:
            with path.open("r", encoding="utf-8") as handle:
                return json.load(handle)
        except json.JSONDecodeError as e:
            raise PlanLoadError(f"Invalid JSON in plan file: {path}: {e}") from e
