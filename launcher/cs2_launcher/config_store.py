from __future__ import annotations
from pathlib import Path
from typing import List
from .errors import ValidationError
from .logging_setup import get_logger

log = get_logger("cs2.launcher.configs")

class ConfigStore:
    """Flat directory of operator-editable config files, addressed by file name."""

    def __init__(self, root: Path):
        self.root = root

    def _path(self, name: str) -> Path:
        if not name or "/" in name or "\\" in name or name in (".", ".."):
            raise ValidationError([f"invalid config name {name!r}"], message="Invalid config name")
        return self.root / name

    def list(self) -> List[str]:
        if not self.root.exists():
            return []
        return sorted(p.name for p in self.root.iterdir() if p.is_file())

    def read(self, name: str) -> str:
        return self._path(name).read_text(encoding="utf-8")

    def write(self, name: str, text: str) -> None:
        path = self._path(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        log.info("Saved config %s", name)

