# infrastructure/plan/yaml_loader.py
from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from infrastructure.plan.base_loader import PlanLoaderBase, PlanLoadError


class YamlPlanLoader(PlanLoaderBase):
    """YAMLファイルからTestPlanをロード"""

    def _load_file(self, path: Path) -> Any:
        try:
            with path.open("r", encoding="utf-8") as f:
                return yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise PlanLoadError(f"Invalid YAML in plan file: {path}: {e}") from e
