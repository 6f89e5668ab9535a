"""CLI: Run integrity checks against the store database file.

Usage:
  python -m scripts.check_db_integrity path/to/food_map.sqlite

Exits with code 0 if clean, 1 if issues found, 2 for usage errors.
"""

from __future__ import annotations

import json
import sqlite3
import sys
from pathlib import Path

from db.integrity import run_integrity_checks


def main(argv: list[str] | None = None) -> int:
    argv = argv or sys.argv[1:]
    if not argv:
        print("Usage: python -m scripts.check_db_integrity <db_path>", file=sys.stderr)
        return 2
    db_path = Path(argv[0])
    if not db_path.exists():
        print(f"Database file not found: {db_path}", file=sys.stderr)
        return 2
    conn = sqlite3.connect(str(db_path))
    try:
        issues = run_integrity_checks(conn)
    except sqlite3.DatabaseError as e:
        print(f"Not a store database: {e}", file=sys.stderr)
        return 2
    finally:
        conn.close()
    if issues:
        print(
            json.dumps(
                {"status": "fail", "issue_count": len(issues), "issues": issues},
                indent=2,
                ensure_ascii=False,
            )
        )
        return 1
    print(json.dumps({"status": "ok", "issue_count": 0}, indent=2))
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
