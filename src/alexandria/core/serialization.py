"""
JSON serialization for log entries.

Entries are serialized with orjson into the single transport payload handed
to every sink. Serialization is best-effort: values that orjson cannot encode
are converted through ``model_dump()`` or ``str()``, strings that are not
valid UTF-8 are backslash-escaped, and a payload is always produced.
"""

from __future__ import annotations

import traceback
from typing import Any, Mapping

import orjson

from . import diagnostics

_INT_MIN = -(2**63)
_INT_MAX = 2**64 - 1


def serialize_exception(
    exc: BaseException,
    *,
    max_frames: int = 50,
) -> dict[str, Any]:
    """Convert an exception into a JSON-compatible mapping.

    The ``stack`` key holds the last ``max_frames`` formatted frames and is
    only present when the exception carries a traceback.
    """
    data: dict[str, Any] = {
        "type": type(exc).__name__,
        "message": str(exc),
    }
    tb = exc.__traceback__
    if tb is not None:
        frames = traceback.extract_tb(tb)[-max_frames:]
        data["stack"] = [
            f"{frame.filename}:{frame.lineno} in {frame.name}" for frame in frames
        ]
    return data


def _default(obj: Any) -> Any:
    """Default serializer hook for unsupported types."""
    if isinstance(obj, BaseException):
        return serialize_exception(obj)
    if hasattr(obj, "model_dump"):
        return obj.model_dump(exclude_none=True)
    if isinstance(obj, (set, frozenset)):
        return list(obj)
    return str(obj)


def _safe_text(value: Any) -> str:
    # Lone surrogates (e.g. from os.fsdecode) are not valid UTF-8
    return str(value).encode("utf-8", "backslashreplace").decode("utf-8")


def _scrub(value: Any) -> Any:
    """Replace values orjson rejects while keeping the JSON structure."""
    if isinstance(value, str):
        return _safe_text(value)
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, int):
        return value if _INT_MIN <= value <= _INT_MAX else str(value)
    if isinstance(value, Mapping):
        return {_safe_text(k): _scrub(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_scrub(v) for v in value]
    return value


def _minimal(payload: Mapping[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {
        key: _safe_text(payload[key])
        for key in ("time", "level", "code")
        if payload.get(key) is not None
    }
    out["message"] = "entry could not be serialized"
    return out


def dumps(payload: Mapping[str, Any]) -> bytes:
    """Serialize a mapping to JSON bytes; never raises."""
    try:
        return orjson.dumps(payload, default=_default, option=orjson.OPT_NON_STR_KEYS)
    except (TypeError, orjson.JSONEncodeError) as e:
        diagnostics.warn(
            "serialization",
            "entry serialization failed",
            reason=type(e).__name__,
            detail=_safe_text(e),
        )
    try:
        return orjson.dumps(
            _scrub(payload), default=_default, option=orjson.OPT_NON_STR_KEYS
        )
    except Exception:
        # Unencodable output from the default hook; fall through to strings
        pass
    try:
        # Degrade to a string rendition of each value
        safe = {
            _safe_text(k): (v if v is None else _safe_text(v))
            for k, v in payload.items()
        }
        return orjson.dumps(safe)
    except Exception:
        return orjson.dumps(_minimal(payload))


def serialize_entry(payload: Mapping[str, Any]) -> str:
    """Serialize an entry mapping into the string payload sent to sinks."""
    return dumps(payload).decode("utf-8")
