"""Severity levels and per-sink thresholds.

Severities are ordered by ordinal, lowest is most severe:

    fatal=0, error=1, warn=2, info=3, debug=4

A sink configured with a threshold receives an event only when the event's
ordinal is less than or equal to that threshold. A sink at ``info`` therefore
receives info, warn, error and fatal events, but never debug ones, and every
enabled sink receives fatal events.

Example:
    >>> thresholds = SeverityThresholds({"kafka": get_level_ordinal("error")})
    >>> thresholds.admits("kafka", "fatal")
    True
    >>> thresholds.admits("kafka", "warn")
    False
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Final, Literal, Mapping

if TYPE_CHECKING:
    from .settings import Settings

LevelName = Literal["debug", "info", "warn", "error", "fatal"]

LEVELS: Final[tuple[LevelName, ...]] = ("fatal", "error", "warn", "info", "debug")

_ORDINALS: Final[dict[str, int]] = {name: idx for idx, name in enumerate(LEVELS)}

_ALIASES: Final[dict[str, str]] = {
    "warning": "warn",
    "critical": "fatal",
}

# Console output uses the conventional Python level vocabulary
CONSOLE_LEVELS: Final[dict[str, str]] = {
    "debug": "debug",
    "info": "info",
    "warn": "warning",
    "error": "error",
    "fatal": "critical",
}

# Sinks gated by thresholds; console always receives every event
GATED_SINKS: Final[tuple[str, ...]] = ("sentry", "apm", "fluent", "kafka")


def normalize_level(level: str) -> LevelName:
    """Return the canonical lowercase level name.

    Args:
        level: Level name (case-insensitive). ``warning`` and ``critical``
            are accepted as aliases of ``warn`` and ``fatal``.

    Raises:
        ValueError: If the name is not a known level.
    """
    name = level.strip().lower()
    name = _ALIASES.get(name, name)
    if name not in _ORDINALS:
        raise ValueError(
            f"Unknown level '{level}'; expected one of {', '.join(reversed(LEVELS))}"
        )
    return name  # type: ignore[return-value]


def get_level_ordinal(level: str) -> int:
    """Get the ordinal for a level name (fatal=0 ... debug=4)."""
    return _ORDINALS[normalize_level(level)]


@dataclass(frozen=True)
class SeverityThresholds:
    """Immutable mapping of sink name to its threshold ordinal."""

    levels: Mapping[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "levels", MappingProxyType(dict(self.levels)))

    @classmethod
    def from_settings(cls, settings: Settings) -> SeverityThresholds:
        return cls(
            {
                name: get_level_ordinal(getattr(settings, name).level)
                for name in GATED_SINKS
            }
        )

    def threshold(self, sink: str) -> int:
        """Threshold ordinal for ``sink``; unknown sinks only admit fatal."""
        return self.levels.get(sink, 0)

    def admits(self, sink: str, level: str) -> bool:
        return get_level_ordinal(level) <= self.threshold(sink)
