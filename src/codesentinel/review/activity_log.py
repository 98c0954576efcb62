"""Operator-facing activity log for CodeSentinel.

The log is an append-only ring buffer stored inside the review state: every
append returns a new list holding at most ``capacity`` entries, dropping the
oldest first.
"""

from __future__ import annotations

import random
import string
import time
from collections.abc import Sequence
from datetime import datetime

from codesentinel.review.models import LogEntry, LogLevel, ReviewPhase

LOG_CAPACITY = 100


def clock_time() -> str:
    """Wall-clock time formatted for display (HH:MM:SS)."""
    return datetime.now().strftime("%H:%M:%S")


def _entry_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=5))
    return f"LOG-{int(time.time() * 1000)}-{suffix}"


def make_log_entry(
    message: str,
    level: LogLevel = LogLevel.INFO,
    phase: ReviewPhase | None = None,
) -> LogEntry:
    """Create a timestamped log entry with a fresh identifier."""
    return LogEntry(
        id=_entry_id(),
        timestamp=clock_time(),
        level=level,
        message=message,
        phase=phase,
    )


def append_log(
    logs: Sequence[LogEntry],
    entry: LogEntry,
    capacity: int = LOG_CAPACITY,
) -> list[LogEntry]:
    """Append ``entry`` and keep only the most recent ``capacity`` entries.

    Args:
        logs: Existing entries, oldest first.
        entry: Entry to append.
        capacity: Maximum number of entries retained.

    Returns:
        New list of entries, oldest first.
    """
    if capacity < 1:
        raise ValueError(f"Log capacity must be positive, got {capacity}")
    return [*logs, entry][-capacity:]


def tail(logs: Sequence[LogEntry], limit: int | None = None) -> list[LogEntry]:
    """Return the last ``limit`` entries (all of them when limit is None)."""
    if limit is None:
        return list(logs)
    if limit <= 0:
        return []
    return list(logs[-limit:])
