"""Backup CLI

Command-line surface over the local store: export a versioned backup, import
one under a merge or replace policy, and report storage pressure.

Features:
 - ``export`` writes ``food-map-backup-YYYY-MM-DD.json`` (or ``--out``).
 - ``import`` asks for confirmation unless ``--yes`` is given; declining leaves
   the store untouched. ``--dry-run`` prints what would change.
 - ``storage`` estimates usage of the data directory against a quota or the
   volume capacity.
 - ``--json`` emits machine-readable output; ``--log-jsonl`` dumps captured log
   records after the command ran.
 - Exit code 0 on success, 1 when the operation failed, 2 for usage errors.

Example:
  foodmap-backup import backup.json --db data/food_map.sqlite --mode replace --yes --json
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sqlite3
import sys
from typing import Any, Callable, Dict

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
    VolumeStorageProbe,
    estimate_usage,
    storage_warning_message,
)

DEFAULT_DB = os.path.join(settings.DATA_DIR, settings.DB_FILENAME)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Export, import and inspect the local store")
    p.add_argument("--json", action="store_true", help="Emit JSON instead of human-readable text")
    p.add_argument("--log-jsonl", help="Write captured log records to this JSON Lines file")
    sub = p.add_subparsers(dest="command", required=True)

    exp = sub.add_parser("export", help="Write a backup file")
    exp.add_argument("--db", default=DEFAULT_DB, help=f"SQLite database path (default: {DEFAULT_DB})")
    exp.add_argument("--out", default=".", help="Output file or directory (default: current directory)")
    exp.add_argument("--settings-dir", default=settings.DATA_DIR, help="Directory holding app settings")

    imp = sub.add_parser("import", help="Import a backup file")
    imp.add_argument("file", help="Backup JSON file")
    imp.add_argument("--db", default=DEFAULT_DB, help=f"SQLite database path (default: {DEFAULT_DB})")
    imp.add_argument(
        "--mode",
        choices=[m.value for m in ImportMode],
        default=ImportMode.MERGE.value,
        help="merge: update by name and add the rest; replace: clear the store first",
    )
    imp.add_argument("--yes", action="store_true", help="Do not ask for confirmation")
    imp.add_argument("--dry-run", action="store_true", help="Only report what would change")
    imp.add_argument("--settings-dir", default=settings.DATA_DIR, help="Directory holding app settings")

    st = sub.add_parser("storage", help="Report storage usage")
    st.add_argument("--data-dir", default=settings.DATA_DIR, help="Directory to measure")
    st.add_argument(
        "--quota",
        type=int,
        default=settings.STORAGE_QUOTA_BYTES,
        help="Quota in bytes; 0 uses the capacity of the volume",
    )
    return p.parse_args(argv)


def _emit(args: argparse.Namespace, payload: Dict[str, Any], text: str) -> None:
    if args.json:
        print(json.dumps(payload, ensure_ascii=False, indent=2))
    else:
        print(text)


def run_export(args: argparse.Namespace) -> int:
    conn = open_database(args.db)
    try:
        serializer = ExportSerializer(StoreRepository(conn), SettingsStore(args.settings_dir))
        path = serializer.write_to(args.out)
        count = StoreRepository(conn).count()
    except OSError as e:
        print(f"Export failed: {e}", file=sys.stderr)
        return 1
    finally:
        conn.close()
    _emit(args, {"status": "ok", "path": str(path), "stores": count}, f"Exported {count} stores to {path}")
    return 0


def _confirm(mode: str, input_fn: Callable[[str], str]) -> bool:
    warning = (
        "This will DELETE all existing stores before importing. Continue? [y/N] "
        if mode == ImportMode.REPLACE.value
        else "Stores with matching names will be overwritten. Continue? [y/N] "
    )
    try:
        answer = input_fn(warning)
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


def run_import(args: argparse.Namespace, input_fn: Callable[[str], str] = input) -> int:
    if not os.path.isfile(args.file):
        print(f"Backup file not found: {args.file}", file=sys.stderr)
        return 2
    with open(args.file, "rb") as fh:
        raw = fh.read()
    conn = open_database(args.db)
    try:
        reconciler = ImportReconciler(StoreRepository(conn), SettingsStore(args.settings_dir))
        if args.dry_run:
            preview = reconciler.preview(raw, args.mode)
            payload = {
                "status": "preview",
                "mode": preview.mode.value,
                "records": preview.records,
                "would_add": preview.would_add,
                "would_update": preview.would_update,
                "would_delete": preview.would_delete,
                "has_settings": preview.has_settings,
                "invalid": preview.invalid,
            }
            _emit(
                args,
                payload,
                f"Would add {preview.would_add}, update {preview.would_update}, "
                f"delete {preview.would_delete} ({preview.records} records in backup, "
                f"{preview.invalid} invalid)",
            )
            return 0
        if not args.yes and not _confirm(args.mode, input_fn):
            _emit(args, {"status": "cancelled"}, "Import cancelled")
            return 0
        with LoggingService(level=logging.WARNING, logger_name="services") as captured:
            summary = reconciler.reconcile(raw, args.mode)
    except BackupError as e:
        if args.json:
            print(json.dumps({"status": "fail", "error": str(e), "type": type(e).__name__}, ensure_ascii=False))
        else:
            print(f"Import failed: {e}", file=sys.stderr)
        return 1
    finally:
        conn.close()
    text = [
        f"Import ({summary.mode.value}) complete:",
        f"  Added: {summary.added}",
        f"  Updated: {summary.updated}",
        f"  Images rejected: {summary.images_rejected}",
    ]
    if summary.settings_applied is not None:
        text.append(f"  Settings applied: {'yes' if summary.settings_applied else 'no'}")
    warnings = captured.warnings()
    text.extend(f"  ! {w}" for w in warnings)
    _emit(
        args,
        {"status": "ok", "summary": summary.to_dict(), "warnings": warnings},
        "\n".join(text),
    )
    return 0


def run_storage(args: argparse.Namespace) -> int:
    probe = (
        DirectoryQuotaProbe(args.data_dir, args.quota)
        if args.quota
        else VolumeStorageProbe(args.data_dir)
    )
    info = estimate_usage(probe)
    if info is None:
        _emit(args, {"status": "unavailable"}, "Storage usage is unavailable on this host")
        return 0
    _emit(
        args,
        {"status": "ok", "level": info.level.value, "storage": info.to_dict()},
        storage_warning_message(info),
    )
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    handlers = {"export": run_export, "import": run_import, "storage": run_storage}
    with LoggingService() as logs:
        try:
            code = handlers[args.command](args)
        except sqlite3.Error as e:
            print(f"Database error: {e}", file=sys.stderr)
            code = 1
        if args.log_jsonl:
            try:
                logs.export_jsonl(args.log_jsonl)
            except OSError as e:
                print(f"Could not write log file: {e}", file=sys.stderr)
    return code


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
