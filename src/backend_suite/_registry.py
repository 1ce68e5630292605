"""Registry — maps backend type names to backend classes."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from backend_suite._errors import ConfigError

if TYPE_CHECKING:
    from backend_suite._backend import Backend

log = logging.getLogger(__name__)

# Global backend class registry: maps type strings to backend classes.
_BACKEND_CLASSES: dict[str, type[Backend]] = {}


def register_backend(type_name: str, cls: type[Backend]) -> None:
    """Register a backend class for a given type string.

    :param type_name: The type identifier used in descriptors (e.g. ``"local"``).
    :param cls: The backend class.
    """
    _BACKEND_CLASSES[type_name] = cls


def _register_builtin_backends() -> None:
    """Register the built-in backends.

    Their third-party libraries are imported lazily, so registering never fails
    on a missing optional dependency.
    """
    from backend_suite.backends._gs import GSBackend
    from backend_suite.backends._local import LocalBackend
    from backend_suite.backends._s3 import S3Backend
    from backend_suite.backends._sftp import SFTPBackend

    for cls in (LocalBackend, S3Backend, SFTPBackend, GSBackend):
        _BACKEND_CLASSES.setdefault(cls.type_name, cls)


def backend_class(type_name: str) -> type[Backend]:
    """Look up the class registered for ``type_name``.

    :raises ConfigError: If no backend is registered under that name.
    """
    _register_builtin_backends()
    try:
        return _BACKEND_CLASSES[type_name]
    except KeyError:
        raise ConfigError(
            f"Unknown backend type '{type_name}'. Registered types: {sorted(_BACKEND_CLASSES)}"
        ) from None


def registered_types() -> list[str]:
    _register_builtin_backends()
    return sorted(_BACKEND_CLASSES)
