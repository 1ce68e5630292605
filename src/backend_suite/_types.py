"""Type aliases used throughout backend_suite."""

from __future__ import annotations

from typing import BinaryIO

WritableContent = BinaryIO | bytes
Options = dict[str, object]
