from __future__ import annotations

import json
import sqlite3

from db.integrity import run_integrity_checks
from db.repositories import StoreRepository
from db.schema import apply_schema
from scripts import check_db_integrity
from tests.factories import create_store, data_uri, make_conn


def _unconstrained_conn():
    # store table as written by tools that do not apply our CHECK constraints
    conn = sqlite3.connect(":memory:")
    conn.execute(
        """
        CREATE TABLE store (
            store_id INTEGER PRIMARY KEY,
            name TEXT,
            address TEXT DEFAULT '',
            opening_hours TEXT DEFAULT '',
            delivery_threshold NUMERIC,
            notes TEXT DEFAULT '',
            menu_image TEXT DEFAULT '',
            is_favorite INTEGER DEFAULT 0,
            updated_at INTEGER
        )
        """
    )
    return conn


def test_integrity_clean_db():
    conn = make_conn()
    try:
        create_store(StoreRepository(conn), "A", menu_image=data_uri())
        assert run_integrity_checks(conn) == []
    finally:
        conn.close()


def test_duplicate_names_detected():
    conn = make_conn()
    repo = StoreRepository(conn)
    first = create_store(repo, "Shared")
    create_store(repo, "Shared")
    issues = run_integrity_checks(conn)
    dup = [i for i in issues if i["category"] == "duplicate_store_name"]
    assert len(dup) == 1
    assert dup[0]["details"]["merge_target_id"] == first
    assert dup[0]["details"]["count"] == 2


def test_invalid_image_detected():
    conn = make_conn()
    conn.execute(
        "INSERT INTO store(name, menu_image, updated_at) VALUES(?,?,?)",
        ("Bad image", "data:image/png;base64,aGVsbG8gd29ybGQ=", 1),
    )
    issues = run_integrity_checks(conn)
    assert [i["category"] for i in issues] == ["invalid_menu_image"]


def test_unconstrained_table_violations_detected():
    conn = _unconstrained_conn()
    conn.execute("INSERT INTO store(name, delivery_threshold, updated_at) VALUES('Neg', -5, 1)")
    conn.execute("INSERT INTO store(name, updated_at) VALUES('No time', NULL)")
    categories = {i["category"] for i in run_integrity_checks(conn)}
    assert categories == {"negative_delivery_threshold", "missing_updated_at"}


def test_script_reports_ok(tmp_path, capsys):
    db_path = tmp_path / "store.sqlite"
    conn = sqlite3.connect(str(db_path))
    apply_schema(conn)
    conn.close()
    assert check_db_integrity.main([str(db_path)]) == 0
    assert json.loads(capsys.readouterr().out)["status"] == "ok"


def test_script_reports_issues(tmp_path, capsys):
    db_path = tmp_path / "store.sqlite"
    conn = sqlite3.connect(str(db_path))
    apply_schema(conn)
    conn.execute("INSERT INTO store(name, updated_at) VALUES('Twin', 1)")
    conn.execute("INSERT INTO store(name, updated_at) VALUES('Twin', 2)")
    conn.commit()
    conn.close()
    assert check_db_integrity.main([str(db_path)]) == 1
    out = json.loads(capsys.readouterr().out)
    assert out["status"] == "fail"
    assert out["issue_count"] == 1


def test_script_missing_file(tmp_path):
    assert check_db_integrity.main([str(tmp_path / "nope.sqlite")]) == 2
