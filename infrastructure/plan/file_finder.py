# infrastructure/plan/file_finder.py
"""Locate plan files by name."""
from pathlib import Path
from typing import Optional

PLAN_EXTENSIONS = [".yaml", ".yml", ".json"]


class PlanFileFinder:
    """Search plan files under the given base directory."""

    def __init__(self, base_dir: Path):
        self.base_dir = base_dir

    def find(self, name_or_path: str) -> Optional[Path]:
        """
        Resolve a plan reference.

        An existing file path is returned as is. Otherwise ``name_or_path`` is
        treated as a plan name and searched recursively under ``base_dir``;
        when several extensions match, YAML wins over JSON.
        """
        direct = Path(name_or_path)
        if direct.suffix.lower() in PLAN_EXTENSIONS and direct.is_file():
            return direct

        if not self.base_dir.is_dir():
            return None

        candidates = [
            p
            for ext in PLAN_EXTENSIONS
            for p in self.base_dir.rglob(f"{name_or_path}{ext}")
            if p.is_file()
        ]
        if not candidates:
            return None
        candidates.sort(key=lambda p: (PLAN_EXTENSIONS.index(p.suffix.lower()), str(p)))
        return candidates[0]
