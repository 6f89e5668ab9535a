"""Domain models for the food map store catalogue.

``StoreRecord`` is the single persisted entity (one row per restaurant). The
JSON wire form used by backups is camelCase; ``from_dict`` / ``to_dict``
translate between the two and enforce the record-level rules (non-empty name,
non-negative delivery threshold).
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Optional

__all__ = ["StoreRecord", "DeliveryStatus", "RecordFormatError"]


class RecordFormatError(ValueError):
    """Raised when an incoming record cannot be turned into a StoreRecord."""


class DeliveryStatus(str, Enum):
    UNKNOWN = "unknown"
    FREE = "free"
    THRESHOLD = "threshold"


def _text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _threshold(value: Any) -> Optional[float | int]:
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return None
    if isinstance(value, bool):
        raise RecordFormatError(f"deliveryThreshold must be a number, got {value!r}")
    if isinstance(value, str):
        try:
            value = float(value)
        except ValueError as e:
            raise RecordFormatError(f"deliveryThreshold must be a number, got {value!r}") from e
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        raise RecordFormatError(f"deliveryThreshold must be a number, got {value!r}")
    if value < 0:
        raise RecordFormatError(f"deliveryThreshold must be non-negative, got {value!r}")
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _timestamp(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise RecordFormatError(f"updatedAt must be an integer timestamp, got {value!r}")
    return int(value)


@dataclass(slots=True)
class StoreRecord:
    """One restaurant / place entry.

    Attributes
    ----------
    id: Store-assigned identity (None until persisted).
    name: Natural key used for merge matching (not unique in the store).
    delivery_threshold: None = unknown, 0 = free delivery, >0 = minimum order.
    menu_image: "" or a Base64 data URI that passed signature validation.
    updated_at: Milliseconds since epoch of the last mutation.
    """

    name: str
    address: str = ""
    opening_hours: str = ""
    delivery_threshold: Optional[float | int] = None
    notes: str = ""
    menu_image: str = ""
    is_favorite: bool = False
    updated_at: Optional[int] = None
    id: Optional[int] = None

    @property
    def delivery_status(self) -> DeliveryStatus:
        if self.delivery_threshold is None:
            return DeliveryStatus.UNKNOWN
        if self.delivery_threshold == 0:
            return DeliveryStatus.FREE
        return DeliveryStatus.THRESHOLD

    def without_id(self) -> "StoreRecord":
        return replace(self, id=None)

    @classmethod
    def from_dict(cls, data: Any) -> "StoreRecord":
        if not isinstance(data, dict):
            raise RecordFormatError(f"store record must be an object, got {type(data).__name__}")
        name = data.get("name")
        if not isinstance(name, str) or not name.strip():
            raise RecordFormatError("store record requires a non-empty 'name'")
        raw_id = data.get("id")
        image = data.get("menuImage")
        return cls(
            id=raw_id if isinstance(raw_id, int) and not isinstance(raw_id, bool) else None,
            name=name,
            address=_text(data.get("address")),
            opening_hours=_text(data.get("openingHours")),
            delivery_threshold=_threshold(data.get("deliveryThreshold")),
            notes=_text(data.get("notes")),
            menu_image=image if isinstance(image, str) else "",
            is_favorite=bool(data.get("isFavorite", False)),
            updated_at=_timestamp(data.get("updatedAt")),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.id is not None:
            data["id"] = self.id
        data.update(
            {
                "name": self.name,
                "address": self.address,
                "openingHours": self.opening_hours,
                "deliveryThreshold": self.delivery_threshold,
                "notes": self.notes,
                "menuImage": self.menu_image,
                "isFavorite": self.is_favorite,
                "updatedAt": self.updated_at,
            }
        )
        return data
