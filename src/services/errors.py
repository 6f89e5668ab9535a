"""Error taxonomy for backup import / export and storage checks.

Terminal errors (abort the operation, reported verbatim to the user):
 - ``ParseError``: input is not well-formed JSON
 - ``FormatError``: well-formed but not a recognised backup shape / version
 - ``TransactionFailure``: a write inside the atomic import failed; nothing persisted

Non-fatal conditions:
 - ``ValidationRejected``: an image payload failed signature inspection. During
   import the field is coerced to ``""``; the interactive add/edit path raises it.
 - ``QuotaUnavailable``: the host cannot report storage usage. ``estimate_usage``
   turns it into ``None``.
"""

from __future__ import annotations

__all__ = [
    "BackupError",
    "ParseError",
    "FormatError",
    "TransactionFailure",
    "ValidationRejected",
    "QuotaUnavailable",
]


class BackupError(Exception):
    """Base class for terminal import / export failures."""


class ParseError(BackupError):
    """Backup text is not valid JSON."""


class FormatError(BackupError):
    """Backup JSON has an unrecognised shape or version."""


class TransactionFailure(BackupError):
    """A write failed mid-import; the whole transaction was rolled back."""


class ValidationRejected(ValueError):
    """An image payload did not match any known image signature."""


class QuotaUnavailable(RuntimeError):
    """Host environment cannot report storage usage."""
