"""Application settings persistence.

Stores the small amount of user-facing state that travels with a backup: the
announcement banner visibility flag and its text.

Design principles:
- Pure logic (no Qt import) so it can be unit-tested headless.
- Explicit schema with version field.
- Graceful fallback: corrupt or incompatible files produce defaults instead of raising.
- Atomic writes (tmp file + replace).
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
import json
from pathlib import Path
from typing import Any, Dict

from config.settings import DEFAULT_ANNOUNCEMENT, SETTINGS_FILENAME

__all__ = ["AppSettings", "SettingsStore", "SETTINGS_VERSION"]

SETTINGS_VERSION = 1  # Increment when structure changes


@dataclass(slots=True)
class AppSettings:
    """Serializable application settings.

    Attributes
    ----------
    version: Schema version.
    show_announcement: Whether the announcement banner is visible.
    announcement_content: Banner text.
    """

    version: int = SETTINGS_VERSION
    show_announcement: bool = True
    announcement_content: str = DEFAULT_ANNOUNCEMENT

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppSettings":
        content = data.get("announcement_content", DEFAULT_ANNOUNCEMENT)
        return cls(
            version=int(data.get("version", SETTINGS_VERSION)),
            show_announcement=bool(data.get("show_announcement", True)),
            announcement_content=content if isinstance(content, str) else DEFAULT_ANNOUNCEMENT,
        )

    def to_backup(self) -> Dict[str, Any]:
        return {
            "showAnnouncement": self.show_announcement,
            "announcementContent": self.announcement_content,
        }

    def with_backup(self, data: Any) -> "AppSettings":
        """Return a copy updated from backup ``settings``; unknown keys are ignored.

        Raises ValueError when the payload or a known key has the wrong type.
        """
        if not isinstance(data, dict):
            raise ValueError("settings must be an object")
        updated = AppSettings.from_dict(self.to_dict())
        show = data.get("showAnnouncement")
        if show is not None:
            if not isinstance(show, bool):
                raise ValueError("showAnnouncement must be a boolean")
            updated.show_announcement = show
        content = data.get("announcementContent")
        if content is not None:
            if not isinstance(content, str):
                raise ValueError("announcementContent must be a string")
            updated.announcement_content = content
        return updated


class SettingsStore:
    """Load / save ``AppSettings`` as JSON inside a directory."""

    def __init__(self, base_dir: str | Path | None = None, filename: str = SETTINGS_FILENAME):
        self.base_dir = Path(base_dir) if base_dir else Path.cwd()
        self.filename = filename

    def path(self) -> Path:
        return self.base_dir / self.filename

    def load(self) -> AppSettings:
        path = self.path()
        if not path.exists():
            return AppSettings()
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            cfg = AppSettings.from_dict(data)
            if cfg.version != SETTINGS_VERSION:
                return AppSettings()
            return cfg
        except Exception:  # noqa: BLE001
            return AppSettings()

    def save(self, cfg: AppSettings) -> Path:
        path = self.path()
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_text(json.dumps(cfg.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
        tmp.replace(path)
        return path

    def apply_backup(self, data: Any) -> AppSettings:
        """Merge backup settings into the stored settings and persist them."""
        cfg = self.load().with_backup(data)
        self.save(cfg)
        return cfg
