# infrastructure/plan/__init__.py
from infrastructure.plan.base_loader import PlanLoadError, PlanLoaderBase
from infrastructure.plan.file_finder import PlanFileFinder
from infrastructure.plan.json_loader import JsonPlanLoader
from infrastructure.plan.loader_registry import PlanLoaderRegistry
from infrastructure.plan.yaml_loader import YamlPlanLoader

__all__ = [
    "PlanLoadError",
    "PlanLoaderBase",
    "PlanFileFinder",
    "PlanLoaderRegistry",
    "YamlPlanLoader",
    "JsonPlanLoader",
]
