"""Normalized error hierarchy for backend_suite."""

from __future__ import annotations

from typing import Optional


class BackendSuiteError(Exception):
    """Base class for all backend_suite errors.

    :param message: Human-readable error description.
    :param path: The object path involved in the error, if any.
    :param backend: The backend name involved, if any.
    """

    def __init__(self, message: str = "", *, path: Optional[str] = None, backend: Optional[str] = None) -> None:
        self.path = path
        self.backend = backend
        super().__init__(message)

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.path is not None:
            parts.append(f"path={self.path!r}")
        if self.backend is not None:
            parts.append(f"backend={self.backend!r}")
        return " | ".join(parts) if len(parts) > 1 else parts[0]

    def __repr__(self) -> str:
        cls = type(self).__name__
        args = [repr(super().__str__())]
        if self.path is not None:
            args.append(f"path={self.path!r}")
        if self.backend is not None:
            args.append(f"backend={self.backend!r}")
        return f"{cls}({', '.join(args)})"


class ConfigError(BackendSuiteError):
    """Raised for malformed or missing configuration input."""


class AlreadyExistsError(BackendSuiteError):
    """Raised when a namespace or object already exists and must not be reused."""


class ConnectivityError(BackendSuiteError):
    """Raised when the backend cannot be reached, authenticated or initialized."""


class PermissionDenied(ConnectivityError):
    """Raised when access is denied by the storage backend."""


class NotFound(BackendSuiteError):
    """Raised when an object does not exist."""


class InvalidHandle(BackendSuiteError):
    """Raised for malformed resource identifiers."""


class TeardownError(BackendSuiteError):
    """Raised when removing a run's namespace failed or was abandoned."""


class CapabilityNotSupported(BackendSuiteError):
    """Raised when an operation requires an unsupported capability.

    :param capability: The name of the unsupported capability.
    """

    def __init__(
        self,
        message: str = "",
        *,
        path: Optional[str] = None,
        backend: Optional[str] = None,
        capability: str = "",
    ) -> None:
        self.capability = capability
        super().__init__(message, path=path, backend=backend)

    def __str__(self) -> str:
        base = super().__str__()
        if self.capability:
            if base:
                return f"{base} | capability={self.capability!r}"
            return f"capability={self.capability!r}"
        return base

    def __repr__(self) -> str:
        cls = type(self).__name__
        args = [repr(self.args[0] if self.args else "")]
        if self.path is not None:
            args.append(f"path={self.path!r}")
        if self.backend is not None:
            args.append(f"backend={self.backend!r}")
        if self.capability:
            args.append(f"capability={self.capability!r}")
        return f"{cls}({', '.join(args)})"


class ConformanceFailure(AssertionError):
    """Raised by a conformance check when the backend violates the contract.

    :param check: Name of the failing check.
    """

    def __init__(self, message: str, *, check: str = "") -> None:
        self.check = check
        super().__init__(message)

    def __str__(self) -> str:
        base = super().__str__()
        if self.check:
            return f"{self.check}: {base}"
        return base
