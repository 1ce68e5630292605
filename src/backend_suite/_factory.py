"""Backend factory — Create, Open and the default Teardown for a configuration."""

from __future__ import annotations

import json
import logging
import time
from typing import TYPE_CHECKING

from backend_suite._capabilities import Capability
from backend_suite._errors import AlreadyExistsError, BackendSuiteError, ConfigError, TeardownError
from backend_suite._handle import MARKER
from backend_suite._registry import backend_class

if TYPE_CHECKING:
    from backend_suite._backend import Backend
    from backend_suite._config import BackendConfig

log = logging.getLogger(__name__)


def _instantiate(config: BackendConfig) -> Backend:
    cls = backend_class(config.type)
    try:
        return cls.from_config(config)
    except TypeError as exc:
        raise ConfigError(
            f"Invalid options for backend type {config.type!r}: {exc}. "
            f"Provided options: {sorted(config.options.keys())}"
        ) from exc


def marker_content(config: BackendConfig) -> bytes:
    """Content written to the marker object by :func:`create_backend`."""
    stamp = {"namespace": config.namespace, "created_at": time.time()}
    return json.dumps(stamp, sort_keys=True).encode()


def open_backend(config: BackendConfig) -> Backend:
    """Attach to the namespace in ``config`` without creating anything.

    An empty but reachable namespace is a valid open.

    :raises ConnectivityError: If the backend cannot be reached.
    """
    backend = _instantiate(config)
    try:
        backend.connect()
    except BaseException:
        backend.close()
        raise
    log.debug("Opened %s", backend.location())
    return backend


def create_backend(config: BackendConfig) -> Backend:
    """Initialize a new backend instance in the namespace in ``config``.

    The marker object must be absent before anything is written; the namespace
    is then prepared and the marker saved.

    :raises AlreadyExistsError: If the marker already exists.
    :raises ConnectivityError: If the backend cannot be reached.
    """
    backend = open_backend(config)
    try:
        if backend.test(MARKER):
            raise AlreadyExistsError(
                f"config already exists at {backend.location()}",
                path=MARKER.path,
                backend=backend.name,
            )
        backend.initialize()
        backend.save(MARKER, marker_content(config))
    except BaseException:
        backend.close()
        raise
    log.info("Created %s", backend.location())
    return backend


def delete_backend(config: BackendConfig) -> None:
    """Remove every object in the namespace in ``config``.

    Deleting an empty namespace succeeds. A config without a namespace is
    refused, since its backend would address the whole repository root.

    :raises TeardownError: If the namespace is empty or could not be removed.
    """
    if not config.namespace:
        raise TeardownError(
            f"refusing to delete {config.type}:{config.location} without a namespace", backend=config.type
        )
    try:
        with open_backend(config) as backend:
            backend.capabilities.require(Capability.BULK_DELETE, backend=backend.name)
            backend.delete()
            log.info("Deleted %s", backend.location())
    except TeardownError:
        raise
    except BackendSuiteError as exc:
        raise TeardownError(f"cleanup of namespace {config.namespace!r} failed: {exc}", backend=config.type) from exc
