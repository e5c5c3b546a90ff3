# infrastructure/plan/loader_registry.py
from __future__ import annotations

from pathlib import Path
from typing import Dict

from domain.plan import TestPlan
from infrastructure.plan.base_loader import PlanLoaderBase, PlanLoadError
from infrastructure.plan.json_loader import JsonPlanLoader
from infrastructure.plan.yaml_loader import YamlPlanLoader


class PlanLoaderRegistry:
    def __init__(self) -> None:
        self._loaders: Dict[str, PlanLoaderBase] = {
            ".yaml": YamlPlanLoader(),
            ".yml": YamlPlanLoader(),
            ".json": JsonPlanLoader(),
        }

    def get_loader(self, path: Path) -> PlanLoaderBase:
        ext = path.suffix.lower()
        loader = self._loaders.get(ext)
        if loader is None:
            raise PlanLoadError(f"Unsupported plan format: {ext}")
        return loader

    def load(self, path: Path) -> TestPlan:
        return self.get_loader(path).load_from_file(path)
