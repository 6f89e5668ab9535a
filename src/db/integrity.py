"""Database Integrity Checks

Provides programmatic verification of the store invariants:
 - Delivery thresholds are non-negative (or unknown)
 - Menu images are empty or pass signature validation
 - Every record carries an ``updated_at`` timestamp
 - Store names are unique in practice. The schema allows duplicates, but merge
   import matches on the first record with a given name, so duplicates make
   matching ambiguous and are reported

Returned structure is a list of dictionaries so callers (CLI, GUI, tests) can render or assert.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import List, Dict, Any
import sqlite3

from services.image_validation import validate_encoded_image


@dataclass
class IntegrityIssue:
    category: str
    message: str
    details: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _check_delivery_thresholds(conn: sqlite3.Connection) -> List[IntegrityIssue]:
    cur = conn.cursor()
    cur.execute(
        "SELECT store_id, name, delivery_threshold FROM store WHERE delivery_threshold < 0"
    )
    return [
        IntegrityIssue(
            category="negative_delivery_threshold",
            message=f"Store '{name}' has negative delivery threshold {value}",
            details={"store_id": sid, "name": name, "delivery_threshold": value},
        )
        for sid, name, value in cur.fetchall()
    ]


def _check_menu_images(conn: sqlite3.Connection) -> List[IntegrityIssue]:
    cur = conn.cursor()
    cur.execute("SELECT store_id, name, menu_image FROM store WHERE menu_image != ''")
    issues: List[IntegrityIssue] = []
    for sid, name, image in cur.fetchall():
        if not validate_encoded_image(image):
            issues.append(
                IntegrityIssue(
                    category="invalid_menu_image",
                    message=f"Store '{name}' has a menu image failing signature validation",
                    details={"store_id": sid, "name": name},
                )
            )
    return issues


def _check_timestamps(conn: sqlite3.Connection) -> List[IntegrityIssue]:
    cur = conn.cursor()
    cur.execute("SELECT store_id, name FROM store WHERE updated_at IS NULL OR updated_at <= 0")
    return [
        IntegrityIssue(
            category="missing_updated_at",
            message=f"Store '{name}' has no update timestamp",
            details={"store_id": sid, "name": name},
        )
        for sid, name in cur.fetchall()
    ]


def _check_duplicate_names(conn: sqlite3.Connection) -> List[IntegrityIssue]:
    cur = conn.cursor()
    cur.execute(
        """
        SELECT name, COUNT(*) AS n, MIN(store_id)
        FROM store
        GROUP BY name
        HAVING n > 1
        """
    )
    issues: List[IntegrityIssue] = []
    for name, count, first_id in cur.fetchall():
        issues.append(
            IntegrityIssue(
                category="duplicate_store_name",
                message=f"Store name '{name}' is used by {count} records; merge import matches id {first_id}",
                details={"name": name, "count": count, "merge_target_id": first_id},
            )
        )
    return issues


def run_integrity_checks(conn: sqlite3.Connection) -> List[Dict[str, Any]]:
    """Run all integrity checks and return list of issue dictionaries.

    Empty list indicates a clean database according to current rules.
    """
    issues: List[IntegrityIssue] = []
    issues.extend(_check_delivery_thresholds(conn))
    issues.extend(_check_menu_images(conn))
    issues.extend(_check_timestamps(conn))
    issues.extend(_check_duplicate_names(conn))
    return [i.to_dict() for i in issues]


__all__ = ["run_integrity_checks", "IntegrityIssue"]
