"""Ephemeral namespace tokens — collision-free prefixes for one test run."""

from __future__ import annotations

import os
import re
import secrets
import threading
import time

_PREFIX_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9-]*$")

_lock = threading.Lock()
_last_ns = 0


def _next_timestamp() -> int:
    """Current time in nanoseconds, strictly increasing within the process."""
    global _last_ns
    with _lock:
        now = time.time_ns()
        if now <= _last_ns:
            now = _last_ns + 1
        _last_ns = now
        return now


def new_namespace(prefix: str = "test") -> str:
    """Return a fresh namespace token ``<prefix>-<ns>-<pid>-<random>``.

    The nanosecond clock reading never repeats inside one process. The process
    id and 32 random bits keep concurrently running processes apart, even when
    their clocks agree.

    :param prefix: Leading label, letters, digits and dashes only.
    :raises ValueError: If ``prefix`` contains other characters.
    """
    if not _PREFIX_PATTERN.match(prefix):
        raise ValueError(f"Invalid namespace prefix: {prefix!r}")
    return f"{prefix}-{_next_timestamp()}-{os.getpid():x}-{secrets.token_hex(4)}"
