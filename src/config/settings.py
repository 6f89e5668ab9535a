"""Global configuration and constants for the local store and backup pipeline."""

from __future__ import annotations

import os
from typing import Final

DATA_DIR: Final = os.environ.get("FOODMAP_DATA_DIR", "data")
DB_FILENAME: Final = "food_map.sqlite"
SETTINGS_FILENAME: Final = "app_settings.json"

# Backup payload format; a single fixed version is supported
BACKUP_VERSION: Final = 1
BACKUP_FILENAME_TEMPLATE: Final = "food-map-backup-{date}.json"

# Image uploads
MAX_IMAGE_BYTES: Final = 5 * 1024 * 1024  # 5 MiB
IMAGE_HEADER_BYTES: Final = 16
ENCODED_HEADER_CHARS: Final = 20

# Storage pressure thresholds (percent)
STORAGE_LOW_PERCENT: Final = 80.0
STORAGE_CRITICAL_PERCENT: Final = 95.0
# Optional byte quota for the data directory; 0 means "use the volume capacity"
STORAGE_QUOTA_BYTES: Final = int(os.environ.get("FOODMAP_STORAGE_QUOTA_BYTES", "0") or 0)

DEFAULT_OPENING_HOURS: Final = "All day"
DEFAULT_ANNOUNCEMENT: Final = (
    "Welcome to the food map!\nPlease place lunch orders before 10:30.\n"
    "Call extension #1234 when a delivery arrives."
)
