"""
Log entry records.

An ``Entry`` is one structured log event. Builders create the base record
without a level; each severity call produces a new frozen record with the
level stamped, so a record's level is set exactly once.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Mapping

from .serialization import serialize_exception

DEFAULT_CODE = 5500

_BASE_FIELDS = frozenset({"code", "data", "error", "message"})


def _now_iso() -> str:
    # Millisecond precision with a Z suffix, e.g. 2024-05-01T12:30:00.123Z
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class Entry:
    """One structured log record."""

    time: str
    level: str | None = None
    code: int = DEFAULT_CODE
    data: Any = None
    error: Any = None
    message: str | None = None
    caller: str | None = None

    def with_level(self, level: str, *, caller: str | None = None) -> Entry:
        """Return a copy with the level (and optional caller) stamped."""
        return replace(self, level=level, caller=caller)

    def to_dict(self, *, exceptions_max_frames: int = 50) -> dict[str, Any]:
        """JSON-compatible mapping of this record.

        ``caller`` is only included when a location was captured.
        """
        error = self.error
        if isinstance(error, BaseException):
            error = serialize_exception(error, max_frames=exceptions_max_frames)
        out: dict[str, Any] = {
            "time": self.time,
            "level": self.level,
            "code": self.code,
            "data": self.data,
            "error": error,
            "message": self.message,
        }
        if self.caller is not None:
            out["caller"] = self.caller
        return out


def build_entry(
    base: Mapping[str, Any] | None = None,
    **fields: Any,
) -> Entry:
    """Build a level-less entry from a partial record.

    Args:
        base: Optional mapping with any of ``code``, ``data``, ``error`` and
            ``message``.
        **fields: The same fields as keywords; keywords win over ``base``.

    Returns:
        A new ``Entry``. Missing or ``None`` fields take their defaults:
        ``code`` is ``DEFAULT_CODE``, everything else is ``None``.

    Raises:
        TypeError: If an unknown field is supplied.
    """
    merged: dict[str, Any] = {}
    if base:
        merged.update(base)
    merged.update(fields)
    unknown = set(merged) - _BASE_FIELDS
    if unknown:
        raise TypeError(f"Unknown entry field(s): {', '.join(sorted(unknown))}")
    code = merged.get("code")
    return Entry(
        time=_now_iso(),
        code=DEFAULT_CODE if code is None else int(code),
        data=merged.get("data"),
        error=merged.get("error"),
        message=merged.get("message"),
    )
