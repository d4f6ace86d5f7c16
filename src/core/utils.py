"""Shared utility functions for Rehearse."""

from datetime import UTC, datetime


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(UTC).isoformat()


def progress_percent(loaded: int, total: int) -> int:
    """Round ``loaded / total`` to a whole percentage clamped to 0..100."""
    if total <= 0:
        return 100
    return max(0, min(100, round(loaded * 100 / total)))
