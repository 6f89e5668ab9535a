"""Storage quota monitoring.

Reports how much of the available persistent storage the application uses
and classifies the pressure level so the UI can warn before writes start to
fail. The host capability is abstracted as a *probe* returning
``(used_bytes, total_bytes)``; a probe raises ``QuotaUnavailable`` when the
host cannot answer, which ``estimate_usage`` reports as ``None``.

Probes:
 - ``VolumeStorageProbe``: capacity of the volume holding the data directory
   (``QStorageInfo``).
 - ``DirectoryQuotaProbe``: on-disk size of the data directory measured
   against a configured byte quota.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Protocol, Tuple

from config.settings import STORAGE_CRITICAL_PERCENT, STORAGE_LOW_PERCENT

from .errors import QuotaUnavailable

__all__ = [
    "StorageLevel",
    "StorageInfo",
    "StorageProbe",
    "VolumeStorageProbe",
    "DirectoryQuotaProbe",
    "estimate_usage",
    "format_storage_size",
    "storage_warning_message",
]

log = logging.getLogger(__name__)

_MB = 1024 * 1024
_UNITS = ["Bytes", "KB", "MB", "GB", "TB"]


class StorageLevel(str, Enum):
    HEALTHY = "healthy"
    LOW = "low"
    CRITICAL = "critical"


@dataclass(frozen=True)
class StorageInfo:
    usage: int
    quota: int

    @property
    def usage_mb(self) -> float:
        return self.usage / _MB

    @property
    def quota_mb(self) -> float:
        return self.quota / _MB

    @property
    def percentage(self) -> float:
        return (self.usage / self.quota) * 100 if self.quota > 0 else 0.0

    @property
    def is_low(self) -> bool:
        return self.percentage > STORAGE_LOW_PERCENT

    @property
    def is_critical(self) -> bool:
        return self.percentage > STORAGE_CRITICAL_PERCENT

    @property
    def level(self) -> StorageLevel:
        if self.is_critical:
            return StorageLevel.CRITICAL
        if self.is_low:
            return StorageLevel.LOW
        return StorageLevel.HEALTHY

    def to_dict(self) -> dict:
        return {
            "usage": self.usage,
            "quota": self.quota,
            "usage_mb": round(self.usage_mb, 2),
            "quota_mb": round(self.quota_mb, 2),
            "percentage": round(self.percentage, 2),
            "is_low": self.is_low,
            "is_critical": self.is_critical,
            "level": self.level.value,
        }


class StorageProbe(Protocol):  # pragma: no cover - structural
    def estimate(self) -> Tuple[int, int]: ...


def _existing_ancestor(path: Path) -> Path:
    path = path.resolve()
    while not path.exists() and path != path.parent:
        path = path.parent
    return path


class VolumeStorageProbe:
    """Report used / total bytes of the volume holding ``path``."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def estimate(self) -> Tuple[int, int]:
        from PyQt6.QtCore import QStorageInfo  # local import keeps module import light

        info = QStorageInfo(str(_existing_ancestor(self.path)))
        if not info.isValid() or not info.isReady():
            raise QuotaUnavailable(f"storage volume for {self.path} is not available")
        total = int(info.bytesTotal())
        available = int(info.bytesAvailable())
        if total <= 0:
            raise QuotaUnavailable(f"storage volume for {self.path} reports no capacity")
        return max(0, total - available), total


class DirectoryQuotaProbe:
    """Report on-disk size of a data directory against a fixed byte quota."""

    def __init__(self, path: str | Path, quota_bytes: int):
        self.path = Path(path)
        self.quota_bytes = int(quota_bytes)

    def estimate(self) -> Tuple[int, int]:
        if self.quota_bytes <= 0:
            raise QuotaUnavailable("no storage quota configured")
        if not self.path.exists():
            return 0, self.quota_bytes
        used = sum(p.stat().st_size for p in self.path.rglob("*") if p.is_file())
        return used, self.quota_bytes


def estimate_usage(probe: Optional[StorageProbe]) -> Optional[StorageInfo]:
    """Query the host for storage usage; ``None`` when the capability is unavailable."""
    if probe is None:
        log.info("storage estimate unavailable: no host probe")
        return None
    try:
        used, total = probe.estimate()
    except (QuotaUnavailable, OSError) as e:
        log.info("storage estimate unavailable: %s", e)
        return None
    return StorageInfo(usage=int(used), quota=int(total))


def format_storage_size(num_bytes: float) -> str:
    """Format a byte count with base-1024 units, e.g. ``1.5 KB`` or ``250 MB``."""
    if num_bytes < 0:
        raise ValueError("byte count must be non-negative")
    if num_bytes == 0:
        return "0 Bytes"
    i = 0
    while i < len(_UNITS) - 1 and num_bytes >= 1024 ** (i + 1):
        i += 1
    value = math.floor(num_bytes / (1024**i) * 100 + 0.5) / 100
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {_UNITS[i]}"


def storage_warning_message(info: StorageInfo) -> str:
    usage = f"{info.percentage:.1f}% ({format_storage_size(info.usage)} / {format_storage_size(info.quota)})"
    if info.is_critical:
        return (
            f"Storage is critically low! {usage} used.\n\n"
            "Suggestions:\n"
            "1. Export a backup, then delete stores you no longer need\n"
            "2. Remove unnecessary menu images"
        )
    if info.is_low:
        return f"Storage is running low: {usage} used.\n\nConsider cleaning up data you no longer need."
    return f"Storage is healthy: {usage} used."
