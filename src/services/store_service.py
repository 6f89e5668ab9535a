"""Store catalogue service.

Explicit record lifecycle used by the interactive surfaces: add, edit,
favorite toggle, delete and the display listing. Every mutation stamps
``updated_at`` and runs inside ``atomic()`` so it commits on its own.

Unlike import, this is the upload path: an invalid menu image is reported to
the caller (``ValidationRejected``) instead of being silently dropped.
"""

from __future__ import annotations

import base64
import logging
import time
from dataclasses import replace
from typing import Any, Callable, List

from config.settings import DEFAULT_OPENING_HOURS
from db.repositories import RecordNotFoundError, StoreRepository
from domain.models import StoreRecord

from .errors import ValidationRejected
from .image_validation import FileInput, ensure_valid_image, validate_file

__all__ = ["StoreService", "encode_data_uri"]

log = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


def encode_data_uri(payload: bytes, content_type: str) -> str:
    return f"data:{content_type};base64,{base64.b64encode(payload).decode('ascii')}"


class StoreService:
    def __init__(self, repo: StoreRepository, *, clock: Callable[[], int] = _now_ms):
        self._repo = repo
        self._clock = clock

    def add(self, record: StoreRecord) -> int:
        ensure_valid_image(record.menu_image)
        record = replace(
            record,
            id=None,
            opening_hours=record.opening_hours or DEFAULT_OPENING_HOURS,
            is_favorite=False,
            updated_at=self._clock(),
        )
        with self._repo.atomic():
            store_id = self._repo.add_record(record)
        log.info("store added: id=%d name=%r", store_id, record.name)
        return store_id

    def edit(self, store_id: int, **fields: Any) -> StoreRecord:
        if "id" in fields:
            raise ValueError("store id cannot be changed")
        if "menu_image" in fields:
            ensure_valid_image(fields["menu_image"])
        threshold = fields.get("delivery_threshold")
        if threshold is not None and threshold < 0:
            raise ValueError("delivery_threshold must be non-negative")
        fields["updated_at"] = self._clock()
        with self._repo.atomic():
            self._repo.update_record(store_id, fields)
            updated = self._repo.get_by_id(store_id)
        return updated  # type: ignore[return-value]

    def toggle_favorite(self, store_id: int) -> bool:
        with self._repo.atomic():
            current = self._repo.get_by_id(store_id)
            if current is None:
                raise RecordNotFoundError(store_id)
            favorite = not current.is_favorite
            self._repo.update_record(
                store_id, {"is_favorite": favorite, "updated_at": self._clock()}
            )
        return favorite

    def delete(self, store_id: int) -> None:
        with self._repo.atomic():
            self._repo.delete_record(store_id)
        log.info("store deleted: id=%d", store_id)

    def list_for_display(self, query: str = "") -> List[StoreRecord]:
        """Most recently updated first, favorites pinned to the top.

        ``query`` filters case-insensitively on name or notes.
        """
        records = sorted(self._repo.list_all(), key=lambda r: r.updated_at or 0, reverse=True)
        needle = query.strip().casefold()
        if needle:
            records = [
                r for r in records if needle in r.name.casefold() or needle in r.notes.casefold()
            ]
        # stable sort keeps recency order within each group
        return sorted(records, key=lambda r: not r.is_favorite)

    def attach_image_file(
        self, store_id: int, upload: FileInput, encoded: bytes, content_type: str
    ) -> StoreRecord:
        """Attach a menu image to a store.

        ``upload`` is the user's original file, checked by signature and size;
        ``encoded`` is the recompressed payload produced outside this package.
        """
        if not validate_file(upload):
            raise ValidationRejected("uploaded file is not a supported image or is too large")
        return self.edit(store_id, menu_image=encode_data_uri(encoded, content_type))
