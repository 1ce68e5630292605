"""Resource identifiers — typed handles naming one stored object."""

from __future__ import annotations

import dataclasses
import enum

from backend_suite._errors import InvalidHandle


class ResourceKind(enum.Enum):
    """Kinds of objects a backup repository stores.

    The value is the directory the kind lives under.
    """

    CONFIG = "config"
    KEY = "keys"
    LOCK = "locks"
    SNAPSHOT = "snapshots"
    INDEX = "index"
    DATA = "data"


@dataclasses.dataclass(frozen=True)
class Handle:
    """Immutable identifier of a single object within a namespace.

    :param kind: The resource kind.
    :param name: Object name. Must be empty for ``CONFIG``.
    :raises InvalidHandle: If the name is malformed for the kind.
    """

    kind: ResourceKind
    name: str = ""

    def __post_init__(self) -> None:
        if not isinstance(self.kind, ResourceKind):
            raise InvalidHandle(f"Unknown resource kind: {self.kind!r}")
        if self.kind is ResourceKind.CONFIG:
            if self.name:
                raise InvalidHandle("Config handle must not carry a name", path=self.name)
            return
        if not self.name:
            raise InvalidHandle(f"{self.kind.name} handle needs a name")
        if self.name in (".", "..") or any(c in self.name for c in ("/", "\\", "\0")):
            raise InvalidHandle(f"Invalid object name: {self.name!r}", path=self.name)

    @property
    def path(self) -> str:
        """Layout-relative key of the object.

        Data objects are fanned out by the first two characters of their name:
        ``Handle(DATA, "abcdef").path == "data/ab/abcdef"``.
        """
        if self.kind is ResourceKind.CONFIG:
            return self.kind.value
        if self.kind is ResourceKind.DATA:
            return f"{self.kind.value}/{self.name[:2]}/{self.name}"
        return f"{self.kind.value}/{self.name}"

    @classmethod
    def from_path(cls, path: str) -> Handle:
        """Inverse of :attr:`path`.

        :raises InvalidHandle: If the path does not follow the layout.
        """
        parts = path.strip("/").split("/")
        if parts == [ResourceKind.CONFIG.value]:
            return cls(ResourceKind.CONFIG)
        try:
            kind = ResourceKind(parts[0])
        except ValueError:
            raise InvalidHandle(f"Path is outside the layout: {path!r}", path=path) from None
        expected = 3 if kind is ResourceKind.DATA else 2
        if kind is ResourceKind.CONFIG or len(parts) != expected:
            raise InvalidHandle(f"Path is outside the layout: {path!r}", path=path)
        handle = cls(kind, parts[-1])
        if handle.path != "/".join(parts):
            raise InvalidHandle(f"Path is outside the layout: {path!r}", path=path)
        return handle

    def __str__(self) -> str:
        if self.kind is ResourceKind.CONFIG:
            return "<config>"
        return f"<{self.kind.value}/{self.name}>"


MARKER = Handle(ResourceKind.CONFIG)
"""The repository configuration object; its presence means "initialized"."""


@dataclasses.dataclass(frozen=True)
class ObjectInfo:
    """Immutable snapshot of object metadata.

    :param handle: The object's handle.
    :param size: Object size in bytes.
    """

    handle: Handle
    size: int
