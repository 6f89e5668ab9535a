"""Background worker threads for backup and storage tasks used by the GUI.

Each worker opens its own SQLite connection inside ``run()``; connections are
never shared across threads. Results are delivered through a single
``finished(result, error)`` signal where ``error`` is an empty string on
success and a human-readable message otherwise.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Optional

from PyQt6.QtCore import QThread, pyqtSignal

from config import settings
from db.repositories import StoreRepository
from db.schema import open_database
from services.errors import BackupError
from services.export_service import ExportSerializer
from services.import_service import ImportMode, ImportReconciler
from services.logging_service import LoggingService
from services.settings_store import SettingsStore
from services.storage_monitor import (
    DirectoryQuotaProbe,
    StorageProbe,
    VolumeStorageProbe,
    estimate_usage,
    storage_warning_message,
)

__all__ = ["ImportWorker", "ExportWorker", "StorageCheckWorker"]

log = logging.getLogger(__name__)


class ImportWorker(QThread):
    finished = pyqtSignal(object, str)  # summary dict (with "warnings") or None, error

    def __init__(
        self,
        db_path: str | Path,
        raw_payload: str | bytes,
        mode: ImportMode | str = ImportMode.MERGE,
        settings_dir: str | Path | None = None,
    ):
        super().__init__()
        self.db_path = db_path
        self.raw_payload = raw_payload
        self.mode = mode
        self.settings_dir = settings_dir if settings_dir is not None else settings.DATA_DIR

    def run(self) -> None:  # type: ignore[override]
        # Cancellation is only honoured before the transaction starts.
        if self.isInterruptionRequested():
            self.finished.emit(None, "import cancelled")
            return
        conn = None
        try:
            conn = open_database(self.db_path)
            reconciler = ImportReconciler(
                StoreRepository(conn), SettingsStore(self.settings_dir)
            )
            with LoggingService(level=logging.WARNING, logger_name="services") as captured:
                summary = reconciler.reconcile(self.raw_payload, self.mode)
            result = summary.to_dict()
            result["warnings"] = captured.warnings()
            self.finished.emit(result, "")
        except (BackupError, ValueError, sqlite3.Error) as e:
            log.warning("import failed: %s", e)
            self.finished.emit(None, str(e))
        finally:
            if conn is not None:
                conn.close()


class ExportWorker(QThread):
    finished = pyqtSignal(object, str)  # written path (str) or None, error

    def __init__(
        self,
        db_path: str | Path,
        target: str | Path,
        settings_dir: str | Path | None = None,
    ):
        super().__init__()
        self.db_path = db_path
        self.target = target
        self.settings_dir = settings_dir if settings_dir is not None else settings.DATA_DIR

    def run(self) -> None:  # type: ignore[override]
        conn = None
        try:
            conn = open_database(self.db_path)
            serializer = ExportSerializer(StoreRepository(conn), SettingsStore(self.settings_dir))
            path = serializer.write_to(self.target)
            self.finished.emit(str(path), "")
        except (OSError, sqlite3.Error) as e:
            log.warning("export failed: %s", e)
            self.finished.emit(None, str(e))
        finally:
            if conn is not None:
                conn.close()


class StorageCheckWorker(QThread):
    """Estimate storage usage off the GUI thread.

    Emits ``finished(dict, message)`` where the dict is ``StorageInfo.to_dict()``
    and the message is the warning text, or ``finished(None, "")`` when no
    estimate is available.
    """

    finished = pyqtSignal(object, str)

    def __init__(self, probe: Optional[StorageProbe] = None):
        super().__init__()
        self.probe = probe if probe is not None else default_probe()

    def run(self) -> None:  # type: ignore[override]
        info = estimate_usage(self.probe)
        if info is None:
            self.finished.emit(None, "")
            return
        self.finished.emit(info.to_dict(), storage_warning_message(info))


def default_probe() -> StorageProbe:
    """Quota-backed probe when a quota is configured, else the data volume."""
    if settings.STORAGE_QUOTA_BYTES:
        return DirectoryQuotaProbe(settings.DATA_DIR, settings.STORAGE_QUOTA_BYTES)
    return VolumeStorageProbe(settings.DATA_DIR)
