"""Call-site capture for log entries.

The caller is the first stack frame outside the ``alexandria`` package, so
the result does not depend on how many internal frames sit between the
severity method and this function.
"""

from __future__ import annotations

import os
import sys

_PACKAGE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def _is_internal(filename: str) -> bool:
    return os.path.abspath(filename).startswith(_PACKAGE_DIR + os.sep)


def find_caller() -> str | None:
    """Return ``"function (file:line)"`` for the nearest external frame."""
    frame = sys._getframe(1)
    while frame is not None:
        code = frame.f_code
        if not _is_internal(code.co_filename):
            return f"{code.co_name} ({code.co_filename}:{frame.f_lineno})"
        frame = frame.f_back
    return None
