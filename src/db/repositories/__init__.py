"""Repository layer

Defines typed repository interfaces separating read and write concerns for
the ``store`` table, plus the concrete SQLite implementation consumed by the
import / export services.

Rationale:
 - Simplifies unit testing by allowing test doubles / in-memory DB.
 - Encapsulates SQL, keeping higher layers (services) decoupled.
 - The store owns identity assignment; callers never invent an id.

Transactions:
 ``atomic()`` opens a SAVEPOINT; nested calls nest savepoints. Leaving the
 outermost block commits, an exception rolls every write of the block back
 and propagates. Individual write methods do not commit on their own.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from typing import (
    Any,
    Callable,
    Iterator,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    TypeVar,
    runtime_checkable,
)

from domain.models import StoreRecord

log = logging.getLogger(__name__)

T = TypeVar("T")

# record attribute -> column
FIELD_COLUMNS: dict[str, str] = {
    "name": "name",
    "address": "address",
    "opening_hours": "opening_hours",
    "delivery_threshold": "delivery_threshold",
    "notes": "notes",
    "menu_image": "menu_image",
    "is_favorite": "is_favorite",
    "updated_at": "updated_at",
}

_SELECT = (
    "SELECT store_id, name, address, opening_hours, delivery_threshold, notes, "
    "menu_image, is_favorite, updated_at FROM store"
)


class RecordNotFoundError(KeyError):
    """Raised when an update / delete targets an id that does not exist."""


@runtime_checkable
class StoreReadRepository(Protocol):
    def get_by_id(self, store_id: int) -> Optional[StoreRecord]: ...  # pragma: no cover
    def find_first_by_field(
        self, field: str, value: Any
    ) -> Optional[StoreRecord]: ...  # pragma: no cover
    def list_all(self) -> Sequence[StoreRecord]: ...  # pragma: no cover


@runtime_checkable
class StoreWriteRepository(Protocol):
    def add_record(self, record: StoreRecord) -> int: ...  # pragma: no cover
    def update_record(
        self, store_id: int, fields: Mapping[str, Any]
    ) -> None: ...  # pragma: no cover
    def delete_record(self, store_id: int) -> None: ...  # pragma: no cover
    def clear_all(self) -> None: ...  # pragma: no cover


@runtime_checkable
class PersistentStore(StoreReadRepository, StoreWriteRepository, Protocol):
    def run_atomic(self, body: Callable[[Any], T]) -> T: ...  # pragma: no cover


def _column(field: str) -> str:
    try:
        return FIELD_COLUMNS[field]
    except KeyError:
        raise ValueError(f"Unknown store field: {field!r}") from None


def _db_value(field: str, value: Any) -> Any:
    if field == "is_favorite":
        return 1 if value else 0
    return value


def _row_to_record(row: Sequence[Any]) -> StoreRecord:
    store_id, name, address, hours, threshold, notes, image, fav, updated = row
    if isinstance(threshold, float) and threshold.is_integer():
        threshold = int(threshold)
    return StoreRecord(
        id=int(store_id),
        name=name,
        address=address,
        opening_hours=hours,
        delivery_threshold=threshold,
        notes=notes,
        menu_image=image,
        is_favorite=bool(fav),
        updated_at=updated,
    )


class _BaseRepo:
    def __init__(self, conn: sqlite3.Connection):
        self._c = conn


class StoreRepository(StoreReadRepository, StoreWriteRepository, _BaseRepo):
    """SQLite-backed persistent store for StoreRecord rows."""

    def __init__(self, conn: sqlite3.Connection):
        # Protocol bases do not forward __init__ to _BaseRepo
        _BaseRepo.__init__(self, conn)
        self._depth = 0

    # Transactions ------------------------------------------------------
    @contextmanager
    def atomic(self) -> Iterator["StoreRepository"]:
        self._depth += 1
        sp = f"store_atomic_{self._depth}"
        outermost = self._depth == 1 and not self._c.in_transaction
        self._c.execute(f"SAVEPOINT {sp}")
        try:
            yield self
        except BaseException:
            try:
                self._c.execute(f"ROLLBACK TO SAVEPOINT {sp}")
                self._c.execute(f"RELEASE SAVEPOINT {sp}")
            except sqlite3.Error:
                # SQLite may already have rolled the whole transaction back
                log.warning("savepoint %s already released during rollback", sp)
            raise
        else:
            self._c.execute(f"RELEASE SAVEPOINT {sp}")
            if outermost and self._c.in_transaction:
                self._c.commit()
        finally:
            self._depth -= 1

    def run_atomic(self, body: Callable[["StoreRepository"], T]) -> T:
        with self.atomic():
            return body(self)

    # Writes ------------------------------------------------------------
    def add_record(self, record: StoreRecord) -> int:
        cur = self._c.cursor()
        cur.execute(
            """
            INSERT INTO store(name, address, opening_hours, delivery_threshold, notes,
                              menu_image, is_favorite, updated_at)
            VALUES(?,?,?,?,?,?,?,?)
            """,
            (
                record.name,
                record.address,
                record.opening_hours,
                record.delivery_threshold,
                record.notes,
                record.menu_image,
                1 if record.is_favorite else 0,
                record.updated_at,
            ),
        )
        return int(cur.lastrowid)

    def update_record(self, store_id: int, fields: Mapping[str, Any]) -> None:
        if not fields:
            return
        assignments = ", ".join(f"{_column(f)}=?" for f in fields)
        params = [_db_value(f, v) for f, v in fields.items()]
        cur = self._c.cursor()
        cur.execute(f"UPDATE store SET {assignments} WHERE store_id=?", (*params, store_id))
        if cur.rowcount == 0:
            raise RecordNotFoundError(store_id)

    def delete_record(self, store_id: int) -> None:
        cur = self._c.cursor()
        cur.execute("DELETE FROM store WHERE store_id=?", (store_id,))
        if cur.rowcount == 0:
            raise RecordNotFoundError(store_id)

    def clear_all(self) -> None:
        self._c.execute("DELETE FROM store")

    # Reads -------------------------------------------------------------
    def get_by_id(self, store_id: int) -> Optional[StoreRecord]:
        cur = self._c.cursor()
        cur.execute(f"{_SELECT} WHERE store_id=?", (store_id,))
        row = cur.fetchone()
        return _row_to_record(row) if row else None

    def find_first_by_field(self, field: str, value: Any) -> Optional[StoreRecord]:
        """Return the first record whose ``field`` equals ``value``.

        "First" is the store's stable order: ascending id.
        """
        column = _column(field)
        cur = self._c.cursor()
        cur.execute(
            f"{_SELECT} WHERE {column}=? ORDER BY store_id LIMIT 1",
            (_db_value(field, value),),
        )
        row = cur.fetchone()
        return _row_to_record(row) if row else None

    def list_all(self) -> Sequence[StoreRecord]:
        cur = self._c.cursor()
        cur.execute(f"{_SELECT} ORDER BY store_id")
        return [_row_to_record(r) for r in cur.fetchall()]

    def count(self) -> int:
        return int(self._c.execute("SELECT COUNT(*) FROM store").fetchone()[0])


__all__ = [
    "StoreRepository",
    "RecordNotFoundError",
    "FIELD_COLUMNS",
    # Protocols
    "StoreReadRepository",
    "StoreWriteRepository",
    "PersistentStore",
]
