"""Local filesystem backend — stdlib-only reference implementation."""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

from backend_suite._backend import Backend
from backend_suite._capabilities import ALL_CAPABILITIES, CapabilitySet
from backend_suite._errors import (
    AlreadyExistsError,
    ConfigError,
    ConnectivityError,
    InvalidHandle,
    NotFound,
    PermissionDenied,
)
from backend_suite._handle import Handle, ObjectInfo, ResourceKind

if TYPE_CHECKING:
    from collections.abc import Iterator

    from backend_suite._config import BackendConfig
    from backend_suite._types import Options, WritableContent

_TMP_PREFIX = ".tmp-"


class LocalBackend(Backend):
    """Local filesystem backend using only the Python standard library.

    :param root: Repository directory on the local filesystem.
    :param prefix: Namespace directory below ``root`` (may be empty).
    """

    type_name = "local"

    def __init__(self, root: str, *, prefix: str = "") -> None:
        if not root:
            raise ConfigError("root must be a non-empty path")
        self._base = Path(root).expanduser().resolve()
        self._root = (self._base / prefix).resolve() if prefix else self._base
        try:
            self._root.relative_to(self._base)
        except ValueError:
            raise ConfigError(f"Namespace escapes root directory: {prefix}", backend=self.type_name) from None

    @classmethod
    def parse_location(cls, location: str) -> Options:
        if not location.strip():
            raise ConfigError("local: location must be a directory path", backend=cls.type_name)
        return {"root": location}

    @classmethod
    def from_config(cls, config: BackendConfig) -> LocalBackend:
        opts = cls.parse_location(config.location)
        return cls(root=str(opts["root"]), prefix=config.namespace, **config.options)  # type: ignore[arg-type]

    @property
    def name(self) -> str:
        return "local"

    @property
    def capabilities(self) -> CapabilitySet:
        return ALL_CAPABILITIES

    def location(self) -> str:
        return f"local:{self._root}"

    # region: path helpers
    def _file(self, handle: Handle) -> Path:
        return self._root / handle.path

    def _handle_for(self, path: Path) -> Handle | None:
        try:
            return Handle.from_path(path.relative_to(self._root).as_posix())
        except InvalidHandle:
            return None

    # endregion

    # region: lifecycle
    def connect(self) -> None:
        if self._base.exists():
            if not self._base.is_dir():
                raise ConnectivityError(f"Not a directory: {self._base}", backend=self.name)
            if not os.access(self._base, os.R_OK | os.W_OK | os.X_OK):
                raise PermissionDenied(f"Permission denied: {self._base}", backend=self.name)

    def initialize(self) -> None:
        try:
            for kind in ResourceKind:
                if kind is not ResourceKind.CONFIG:
                    (self._root / kind.value).mkdir(parents=True, exist_ok=True)
        except PermissionError:
            raise PermissionDenied(f"Permission denied: {self._root}", backend=self.name) from None
        except OSError as exc:
            raise ConnectivityError(f"Cannot initialize {self._root}: {exc}", backend=self.name) from None

    def delete(self) -> None:
        if not self._root.exists():
            return
        try:
            shutil.rmtree(self._root)
        except FileNotFoundError:
            return
        except PermissionError:
            raise PermissionDenied(f"Permission denied: {self._root}", backend=self.name) from None

    # endregion

    # region: object operations
    def test(self, handle: Handle) -> bool:
        return self._file(handle).is_file()

    def save(self, handle: Handle, content: WritableContent, *, overwrite: bool = False) -> None:
        full = self._file(handle)
        if not overwrite and full.exists():
            raise AlreadyExistsError(f"Object already exists: {handle}", path=handle.path, backend=self.name)
        try:
            full.parent.mkdir(parents=True, exist_ok=True)
            data = self._read_content(content)
            fd, tmp_path = tempfile.mkstemp(dir=str(full.parent), prefix=_TMP_PREFIX)
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                os.replace(tmp_path, str(full))
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except PermissionError:
            raise PermissionDenied(f"Permission denied: {handle}", path=handle.path, backend=self.name) from None

    def load(self, handle: Handle, *, length: int = 0, offset: int = 0) -> bytes:
        self._check_range(length, offset)
        full = self._file(handle)
        try:
            with full.open("rb") as f:
                f.seek(offset)
                return f.read(length or -1)
        except FileNotFoundError:
            raise NotFound(f"Object not found: {handle}", path=handle.path, backend=self.name) from None
        except PermissionError:
            raise PermissionDenied(f"Permission denied: {handle}", path=handle.path, backend=self.name) from None

    def stat(self, handle: Handle) -> ObjectInfo:
        full = self._file(handle)
        if not full.is_file():
            raise NotFound(f"Object not found: {handle}", path=handle.path, backend=self.name)
        return ObjectInfo(handle=handle, size=full.stat().st_size)

    def remove(self, handle: Handle, *, missing_ok: bool = False) -> None:
        try:
            self._file(handle).unlink()
        except FileNotFoundError:
            if not missing_ok:
                raise NotFound(f"Object not found: {handle}", path=handle.path, backend=self.name) from None
        except PermissionError:
            raise PermissionDenied(f"Permission denied: {handle}", path=handle.path, backend=self.name) from None

    def list(self, kind: ResourceKind) -> Iterator[ObjectInfo]:
        if kind is ResourceKind.CONFIG:
            if self.test(Handle(kind)):
                yield self.stat(Handle(kind))
            return
        directory = self._root / kind.value
        if not directory.is_dir():
            return
        items = directory.rglob("*") if kind is ResourceKind.DATA else directory.iterdir()
        for item in items:
            if not item.is_file() or item.name.startswith(_TMP_PREFIX):
                continue
            handle = self._handle_for(item)
            if handle is not None:
                yield ObjectInfo(handle=handle, size=item.stat().st_size)

    # endregion
