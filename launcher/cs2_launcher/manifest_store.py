from __future__ import annotations
import json
from pathlib import Path
from typing import Any, Dict, List
from .errors import ValidationError
from .logging_setup import get_logger

log = get_logger("cs2.launcher.manifest")

class JsonManifestStore:
    """plugins.json: a JSON array of plugin records, rewritten in full on every save."""

    def __init__(self, path: Path):
        self.path = path

    def load(self) -> List[Dict[str, Any]]:
        if not self.path.exists():
            log.warning("Plugins configuration not found at %s, starting with no plugins.", self.path)
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ValidationError([f"{self.path}: {e}"]) from e
        if not isinstance(data, list):
            raise ValidationError([f"{self.path}: root must be an array of plugins"])
        return data

    def save(self, records: List[Dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        temp_path.write_text(json.dumps(records, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
        temp_path.replace(self.path)
        log.info("Saved %d plugin(s) to %s", len(records), self.path)
