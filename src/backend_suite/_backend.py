"""Backend abstract base class — the contract every storage transport honors."""

from __future__ import annotations

import abc
from typing import TYPE_CHECKING, ClassVar

from backend_suite._errors import CapabilityNotSupported

if TYPE_CHECKING:
    from collections.abc import Iterator
    from types import TracebackType

    from backend_suite._capabilities import CapabilitySet
    from backend_suite._config import BackendConfig
    from backend_suite._handle import Handle, ObjectInfo, ResourceKind
    from backend_suite._types import Options, WritableContent


class Backend(abc.ABC):
    """Abstract base class for all storage backends.

    One instance is a live session scoped to one namespace. Backend-native
    exceptions must never leak; they are mapped to ``backend_suite`` errors.
    """

    type_name: ClassVar[str] = ""

    # region: construction from configuration

    @classmethod
    @abc.abstractmethod
    def parse_location(cls, location: str) -> Options:
        """Parse the backend-specific part of a connection descriptor.

        :raises ConfigError: If the location is malformed.
        """

    @classmethod
    @abc.abstractmethod
    def from_config(cls, config: BackendConfig) -> Backend:
        """Build an unconnected backend for ``config``.

        :raises ConfigError: If the configuration cannot be applied.
        """

    # endregion

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Unique identifier for this backend type (e.g. ``'local'``, ``'s3'``)."""

    @property
    @abc.abstractmethod
    def capabilities(self) -> CapabilitySet:
        """Declared capabilities of this backend."""

    @abc.abstractmethod
    def location(self) -> str:
        """Human-readable location of the namespace, e.g. ``s3:bucket/prefix``."""

    @abc.abstractmethod
    def connect(self) -> None:
        """Establish connectivity without creating anything.

        :raises ConnectivityError: If the endpoint is unreachable or rejects the credentials.
        """

    def initialize(self) -> None:  # noqa: B027
        """Prepare the namespace for writing (buckets, directories). Default is a no-op."""

    @abc.abstractmethod
    def test(self, handle: Handle) -> bool:
        """Return whether the object exists. Never raises ``NotFound``."""

    @abc.abstractmethod
    def save(self, handle: Handle, content: WritableContent, *, overwrite: bool = False) -> None:
        """Store an object.

        :raises AlreadyExistsError: If the object exists and ``overwrite`` is ``False``.
        """

    @abc.abstractmethod
    def load(self, handle: Handle, *, length: int = 0, offset: int = 0) -> bytes:
        """Read an object, or ``length`` bytes of it starting at ``offset``.

        A ``length`` of zero reads to the end.

        :raises NotFound: If the object does not exist.
        """

    @abc.abstractmethod
    def stat(self, handle: Handle) -> ObjectInfo:
        """Get object metadata.

        :raises NotFound: If the object does not exist.
        """

    @abc.abstractmethod
    def remove(self, handle: Handle, *, missing_ok: bool = False) -> None:
        """Remove an object.

        :raises NotFound: If the object is missing and ``missing_ok`` is ``False``.
        """

    @abc.abstractmethod
    def list(self, kind: ResourceKind) -> Iterator[ObjectInfo]:
        """List all objects of ``kind`` in the namespace."""

    def delete(self) -> None:
        """Remove every object under the namespace. Idempotent.

        :raises CapabilityNotSupported: If the backend lacks ``BULK_DELETE``.
        """
        raise CapabilityNotSupported(
            f"Backend '{self.name}' cannot delete a whole namespace",
            capability="bulk_delete",
            backend=self.name,
        )

    def close(self) -> None:  # noqa: B027
        """Release resources. Default is a no-op."""

    def __enter__(self) -> Backend:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.location()!r})"

    @staticmethod
    def _check_range(length: int, offset: int) -> None:
        if length < 0 or offset < 0:
            raise ValueError(f"Invalid range: length={length}, offset={offset}")

    @staticmethod
    def _read_content(content: WritableContent) -> bytes:
        if isinstance(content, bytes):
            return content
        return content.read()


def join_key(*parts: str) -> str:
    """Join non-empty key segments with ``/``."""
    return "/".join(p.strip("/") for p in parts if p and p.strip("/"))
