"""Backup export.

Snapshots every store record together with the current application settings
into a single versioned payload:

    {"version": 1, "settings": {...}, "stores": [StoreRecord, ...]}

Design goals:
 - Read-only: never mutates the store
 - Lossless: every field (including ``id``) survives a round trip through import
 - Minimal dependencies (stdlib json only)
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any, Dict

from config.settings import BACKUP_FILENAME_TEMPLATE, BACKUP_VERSION
from db.repositories import StoreReadRepository

from .settings_store import SettingsStore

__all__ = [
    "ExportResult",
    "ExportSerializer",
    "serialize_payload",
]

log = logging.getLogger(__name__)


@dataclass
class ExportResult:
    content: str
    suggested_filename: str
    store_count: int


def serialize_payload(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False, indent=2)


class ExportSerializer:
    """Facade producing backup payloads from an injected store.

    Usage:
        result = ExportSerializer(repo, settings_store).export()
        path.write_text(result.content, encoding='utf-8')
    """

    def __init__(self, repo: StoreReadRepository, settings: SettingsStore):
        self._repo = repo
        self._settings = settings

    def snapshot(self) -> Dict[str, Any]:
        stores = [r.to_dict() for r in self._repo.list_all()]
        return {
            "version": BACKUP_VERSION,
            "settings": self._settings.load().to_backup(),
            "stores": stores,
        }

    def export(self, today: date | None = None) -> ExportResult:
        payload = self.snapshot()
        day = (today or date.today()).isoformat()
        result = ExportResult(
            content=serialize_payload(payload),
            suggested_filename=BACKUP_FILENAME_TEMPLATE.format(date=day),
            store_count=len(payload["stores"]),
        )
        log.info("exported %d stores", result.store_count)
        return result

    def write_to(self, target: str | Path, today: date | None = None) -> Path:
        """Write a backup file; ``target`` may be a directory (uses the suggested name)."""
        result = self.export(today)
        path = Path(target)
        if path.is_dir():
            path = path / result.suggested_filename
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_text(result.content, encoding="utf-8")
        tmp.replace(path)
        return path
