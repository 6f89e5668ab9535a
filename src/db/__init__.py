"""Database package exposing schema, repository and integrity helpers.

Public API:
"""

from .schema import apply_schema, get_existing_tables, get_schema_version, open_database  # noqa: F401
from .integrity import run_integrity_checks  # noqa: F401
from .repositories import (  # noqa: F401
    StoreRepository,
    StoreReadRepository,
    StoreWriteRepository,
    PersistentStore,
    RecordNotFoundError,
)

__all__ = [
    "apply_schema",
    "get_existing_tables",
    "get_schema_version",
    "open_database",
    "run_integrity_checks",
    # Repositories
    "StoreRepository",
    "RecordNotFoundError",
    # Protocol exports
    "StoreReadRepository",
    "StoreWriteRepository",
    "PersistentStore",
]
