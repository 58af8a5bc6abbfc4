"""
Public entrypoints for Alexandria.

Alexandria is a logging facade that fans one structured entry out to the
console, Sentry, Elastic APM, Fluentd and Kafka, each with its own minimum
severity.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from ._version import __version__
from .core.entry import DEFAULT_CODE, Entry
from .core.errors import (
    AlexandriaError,
    SinkConfigurationError,
    SinkWriteError,
    capture_unhandled_exceptions,
    uninstall_unhandled_hooks,
)
from .core.levels import LEVELS, SeverityThresholds, get_level_ordinal
from .core.logger import Alexandria, AlexandriaEntry
from .core.settings import Settings

__all__ = [
    "Alexandria",
    "AlexandriaEntry",
    "AlexandriaError",
    "DEFAULT_CODE",
    "Entry",
    "LEVELS",
    "SeverityThresholds",
    "Settings",
    "SinkConfigurationError",
    "SinkWriteError",
    "VERSION",
    "__version__",
    "capture_unhandled_exceptions",
    "get_level_ordinal",
    "get_logger",
    "runtime",
    "uninstall_unhandled_hooks",
]


def get_logger(*, settings: Settings | None = None) -> Alexandria:
    """Return a ready-to-use facade, installing uncaught exception capture.

    This is the process bootstrap helper: it builds an ``Alexandria`` from
    ``settings`` (or the environment) and, when
    ``capture_unhandled.enabled`` is true, installs the process-wide hooks
    after ``capture_unhandled.delay_seconds``.

    Example:
        >>> from alexandria import Settings, get_logger
        >>> alexa = get_logger(settings=Settings(service_name="billing"))
        >>> alexa.log(code=2200, message="Success").info()
    """
    cfg = settings or Settings()
    logger = Alexandria(cfg)
    if cfg.capture_unhandled.enabled:
        capture_unhandled_exceptions(
            logger,
            delay_seconds=cfg.capture_unhandled.delay_seconds,
        )
    return logger


@contextmanager
def runtime(*, settings: Settings | None = None) -> Iterator[Alexandria]:
    """Context manager that builds a facade and drains it on exit.

    Uncaught exception hooks are not installed; use ``get_logger`` for that.
    """
    logger = Alexandria(settings)
    try:
        yield logger
    finally:
        logger.close()


VERSION = __version__
