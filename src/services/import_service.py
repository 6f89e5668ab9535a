"""Backup import / reconciliation.

Parses an externally supplied backup payload and reconciles it with the
persistent store inside a single atomic transaction, under one of two
policies:

 - ``merge``: records are matched by ``name`` (first match in store order);
   matches are overwritten in place keeping their id, the rest are added.
   Nothing is deleted.
 - ``replace``: the store is cleared first, then every record is added.

Every incoming ``menuImage`` passes the same signature check used at upload
time; failures are coerced to ``""`` and never abort the import. Any record
that cannot be written aborts the whole transaction.

Settings carried by a versioned payload are applied only after the
transaction committed; a failure there is logged and reported on the
summary, never rolled back and never treated as an import failure.

Accepted payload shapes:
    [StoreRecord, ...]                                    (legacy)
    {"version": 1, "settings": {...}, "stores": [...]}    (versioned)
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import asdict, dataclass, replace
from enum import Enum
from typing import Any, Callable, List, Optional

from config.settings import BACKUP_VERSION
from db.repositories import PersistentStore
from domain.models import StoreRecord

from .errors import FormatError, ParseError, TransactionFailure
from .image_validation import sanitize_image
from .settings_store import SettingsStore

__all__ = [
    "ImportMode",
    "ImportSummary",
    "ImportPreview",
    "BackupPayload",
    "parse_backup",
    "ImportReconciler",
]

log = logging.getLogger(__name__)


class ImportMode(str, Enum):
    MERGE = "merge"
    REPLACE = "replace"


@dataclass
class BackupPayload:
    stores: List[Any]
    settings: Optional[Any] = None
    version: Optional[int] = None

    @property
    def is_legacy(self) -> bool:
        return self.version is None and self.settings is None


@dataclass
class ImportSummary:
    mode: ImportMode
    added: int = 0
    updated: int = 0
    images_rejected: int = 0
    # None when the payload carried no settings
    settings_applied: Optional[bool] = None

    def to_dict(self) -> dict:
        return {
            "mode": self.mode.value,
            "added": self.added,
            "updated": self.updated,
            "images_rejected": self.images_rejected,
            "settings_applied": self.settings_applied,
        }


@dataclass
class ImportPreview:
    mode: ImportMode
    records: int
    would_add: int
    would_update: int
    would_delete: int
    has_settings: bool
    # records without a usable name
    invalid: int = 0


def _now_ms() -> int:
    return int(time.time() * 1000)


def parse_backup(raw: str | bytes) -> BackupPayload:
    """Parse backup text and detect its shape.

    Raises ParseError for malformed JSON and FormatError for any shape other
    than a bare list or an object with a ``stores`` list.
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError, TypeError) as e:
        raise ParseError(f"backup is not valid JSON: {e}") from e
    if isinstance(data, list):
        return BackupPayload(stores=data)
    if isinstance(data, dict) and isinstance(data.get("stores"), list):
        version = data.get("version")
        if version is not None and (
            isinstance(version, bool) or not isinstance(version, int) or version != BACKUP_VERSION
        ):
            raise FormatError(f"unsupported backup version: {version!r}")
        return BackupPayload(stores=data["stores"], settings=data.get("settings"), version=version)
    raise FormatError("backup must be a list of stores or an object with a 'stores' list")


def _writable_fields(record: StoreRecord) -> dict:
    fields = asdict(record)
    fields.pop("id")
    return fields


class ImportReconciler:
    """Apply backup payloads to an injected persistent store."""

    def __init__(
        self,
        repo: PersistentStore,
        settings: SettingsStore | None = None,
        *,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._repo = repo
        self._settings = settings
        self._clock = clock

    def preview(self, raw_payload: str | bytes, mode: ImportMode | str) -> ImportPreview:
        """Describe what ``reconcile`` would do without writing anything."""
        mode = ImportMode(mode)
        payload = parse_backup(raw_payload)
        existing = self._repo.list_all()
        names = {r.name for r in existing}
        would_add = would_update = invalid = 0
        for raw in payload.stores:
            name = raw.get("name") if isinstance(raw, dict) else None
            # reconcile would abort on these
            if not isinstance(name, str) or not name.strip():
                invalid += 1
                continue
            if mode is ImportMode.MERGE and name in names:
                would_update += 1
            else:
                would_add += 1
                names.add(name)
        return ImportPreview(
            mode=mode,
            records=len(payload.stores),
            would_add=would_add,
            would_update=would_update,
            would_delete=len(existing) if mode is ImportMode.REPLACE else 0,
            has_settings=payload.settings is not None,
            invalid=invalid,
        )

    def reconcile(self, raw_payload: str | bytes, mode: ImportMode | str) -> ImportSummary:
        mode = ImportMode(mode)
        payload = parse_backup(raw_payload)
        log.debug(
            "importing %s backup with %d stores",
            "legacy" if payload.is_legacy else f"v{payload.version or BACKUP_VERSION}",
            len(payload.stores),
        )
        summary = ImportSummary(mode=mode)
        try:
            self._repo.run_atomic(lambda repo: self._apply(repo, payload.stores, summary))
        except TransactionFailure:
            raise
        except Exception as e:  # noqa: BLE001 - commit failure
            raise TransactionFailure(f"import transaction failed: {e}") from e
        log.info(
            "import committed (mode=%s): %d added, %d updated, %d images rejected",
            mode.value,
            summary.added,
            summary.updated,
            summary.images_rejected,
        )
        if payload.settings is not None:
            summary.settings_applied = self._apply_settings(payload.settings)
        return summary

    # Transaction body --------------------------------------------------
    def _apply(self, repo: PersistentStore, stores: List[Any], summary: ImportSummary) -> None:
        if summary.mode is ImportMode.REPLACE:
            try:
                repo.clear_all()
            except Exception as e:  # noqa: BLE001
                raise TransactionFailure(f"could not clear existing stores: {e}") from e
        for index, raw in enumerate(stores, start=1):
            try:
                self._apply_one(repo, raw, summary)
            except Exception as e:  # noqa: BLE001
                raise TransactionFailure(f"record #{index} could not be imported: {e}") from e

    def _apply_one(self, repo: PersistentStore, raw: Any, summary: ImportSummary) -> None:
        record = StoreRecord.from_dict(raw)
        image = sanitize_image(record.menu_image)
        if not image and record.menu_image.strip():
            summary.images_rejected += 1
        record = replace(
            record,
            id=None,
            menu_image=image,
            updated_at=record.updated_at if record.updated_at is not None else self._clock(),
        )
        if summary.mode is ImportMode.MERGE:
            existing = repo.find_first_by_field("name", record.name)
            if existing is not None:
                repo.update_record(existing.id, _writable_fields(record))
                summary.updated += 1
                return
        repo.add_record(record)
        summary.added += 1

    # Post-commit -------------------------------------------------------
    def _apply_settings(self, settings: Any) -> bool:
        if self._settings is None:
            log.info("backup settings ignored: no settings store configured")
            return False
        try:
            self._settings.apply_backup(settings)
        except Exception as e:  # noqa: BLE001 - never affects the committed import
            log.warning("backup settings could not be applied: %s", e)
            return False
        return True
