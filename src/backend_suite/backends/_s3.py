"""S3-compatible object storage backend using s3fs."""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from backend_suite._backend import Backend, join_key
from backend_suite._capabilities import ALL_CAPABILITIES, CapabilitySet
from backend_suite._errors import (
    AlreadyExistsError,
    BackendSuiteError,
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


class S3Backend(Backend):
    """S3-compatible object storage backend using s3fs.

    :param bucket: S3 bucket name (required, non-empty).
    :param prefix: Key prefix of the namespace inside the bucket.
    :param endpoint_url: Custom endpoint URL (e.g. for MinIO).
    :param key: AWS access key ID.
    :param secret: AWS secret access key.
    :param region_name: AWS region name.
    :param client_options: Additional options passed to s3fs.
    """

    type_name = "s3"

    def __init__(
        self,
        bucket: str,
        *,
        prefix: str = "",
        endpoint_url: str | None = None,
        key: str | None = None,
        secret: str | None = None,
        region_name: str | None = None,
        client_options: dict[str, Any] | None = None,
    ) -> None:
        if not bucket or not bucket.strip():
            raise ConfigError("bucket must be a non-empty string", backend=self.type_name)
        self._bucket = bucket
        self._prefix = join_key(prefix)
        self._endpoint_url = endpoint_url
        self._key = key
        self._secret = secret
        self._region_name = region_name
        self._client_options = client_options or {}
        self._fs_instance: Any = None

    @classmethod
    def parse_location(cls, location: str) -> Options:
        """Accept ``bucket[/prefix]`` or ``http(s)://endpoint/bucket[/prefix]``."""
        endpoint_url = None
        rest = location
        for scheme in ("http://", "https://"):
            if location.startswith(scheme):
                host, _, rest = location[len(scheme) :].partition("/")
                if not host:
                    raise ConfigError(f"s3: missing endpoint host in {location!r}", backend=cls.type_name)
                endpoint_url = f"{scheme}{host}"
                break
        bucket, _, prefix = rest.strip("/").partition("/")
        if not bucket:
            raise ConfigError(f"s3: missing bucket name in {location!r}", backend=cls.type_name)
        opts: Options = {"bucket": bucket, "prefix": prefix}
        if endpoint_url is not None:
            opts["endpoint_url"] = endpoint_url
        return opts

    @classmethod
    def from_config(cls, config: BackendConfig) -> S3Backend:
        opts = cls.parse_location(config.location)
        kwargs: dict[str, Any] = dict(config.options)
        if config.credentials:
            key, sep, secret = config.credentials.partition(":")
            if not sep or not key or not secret:
                raise ConfigError("s3: credentials must be of the form KEY:SECRET", backend=cls.type_name)
            kwargs.setdefault("key", key)
            kwargs.setdefault("secret", secret)
        if "endpoint_url" in opts:
            kwargs.setdefault("endpoint_url", opts["endpoint_url"])
        return cls(
            bucket=str(opts["bucket"]),
            prefix=join_key(str(opts["prefix"]), config.namespace),
            **kwargs,
        )

    @property
    def name(self) -> str:
        return "s3"

    @property
    def capabilities(self) -> CapabilitySet:
        return ALL_CAPABILITIES

    def location(self) -> str:
        return f"s3:{join_key(self._bucket, self._prefix)}"

    # region: lazy filesystem

    @property
    def _fs(self) -> Any:
        if self._fs_instance is None:
            import s3fs  # type: ignore[import-untyped]

            opts: dict[str, Any] = dict(self._client_options)
            if self._endpoint_url is not None:
                opts["endpoint_url"] = self._endpoint_url
            if self._key is not None:
                opts["key"] = self._key
            if self._secret is not None:
                opts["secret"] = self._secret
            if self._region_name is not None:
                client_kwargs: dict[str, Any] = opts.setdefault("client_kwargs", {})
                client_kwargs["region_name"] = self._region_name
            opts.setdefault("anon", False)
            # Instance caching would hand two runs the same listing cache.
            opts.setdefault("skip_instance_cache", True)
            self._fs_instance = s3fs.S3FileSystem(**opts)
        return self._fs_instance

    # endregion

    # region: path helpers

    def _s3_path(self, key: str = "") -> str:
        return join_key(self._bucket, self._prefix, key)

    def _rel_key(self, s3_path: str) -> str:
        root = self._s3_path() + "/"
        if s3_path.startswith(root):
            return s3_path[len(root) :]
        return s3_path

    # endregion

    # region: error mapping

    @contextmanager
    def _errors(self, path: str = "") -> Iterator[None]:
        """Map s3fs/botocore exceptions to backend_suite errors."""
        try:
            yield
        except BackendSuiteError:
            raise
        except FileNotFoundError:
            raise NotFound(f"Not found: {path}", path=path, backend=self.name) from None
        except PermissionError:
            raise PermissionDenied(f"Permission denied: {path}", path=path, backend=self.name) from None
        except Exception as exc:
            raise self._classify_error(exc, path) from None

    def _classify_error(self, exc: Exception, path: str) -> BackendSuiteError:
        """Classify an unknown exception into a backend_suite error type."""
        msg = str(exc).lower()
        if "nosuchkey" in msg or "not found" in msg:
            return NotFound(f"Not found: {path}", path=path, backend=self.name)
        if "403" in msg or "accessdenied" in msg or "access denied" in msg or "invalidaccesskeyid" in msg:
            return PermissionDenied(f"Permission denied: {path}", path=path, backend=self.name)
        return ConnectivityError(str(exc) or type(exc).__name__, path=path, backend=self.name)

    # endregion

    # region: lifecycle

    def connect(self) -> None:
        with self._errors(self._bucket):
            try:
                self._fs.ls(self._bucket, refresh=True)
            except FileNotFoundError:
                # A missing bucket is reachable-but-empty; initialize() creates it.
                pass

    def initialize(self) -> None:
        with self._errors(self._bucket):
            if not self._fs.exists(self._bucket):
                self._fs.mkdir(self._bucket)

    def delete(self) -> None:
        with self._errors(self._prefix):
            root = self._s3_path()
            try:
                keys = list(self._fs.find(root))
            except FileNotFoundError:
                return
            if keys:
                self._fs.rm(keys)
            self._fs.invalidate_cache(root)

    def close(self) -> None:
        if self._fs_instance is not None:
            self._fs_instance.clear_instance_cache()
            self._fs_instance = None

    # endregion

    # region: object operations

    def test(self, handle: Handle) -> bool:
        with self._errors(handle.path):
            try:
                self._fs.info(self._s3_path(handle.path), refresh=True)
            except FileNotFoundError:
                return False
            return True

    def save(self, handle: Handle, content: WritableContent, *, overwrite: bool = False) -> None:
        with self._errors(handle.path):
            if not overwrite and self.test(handle):
                raise AlreadyExistsError(f"Object already exists: {handle}", path=handle.path, backend=self.name)
            self._fs.pipe_file(self._s3_path(handle.path), self._read_content(content))

    def load(self, handle: Handle, *, length: int = 0, offset: int = 0) -> bytes:
        self._check_range(length, offset)
        with self._errors(handle.path):
            end = offset + length if length else None
            return bytes(self._fs.cat_file(self._s3_path(handle.path), start=offset or None, end=end))

    def stat(self, handle: Handle) -> ObjectInfo:
        with self._errors(handle.path):
            info = self._fs.info(self._s3_path(handle.path), refresh=True)
            if info.get("type") != "file":
                raise NotFound(f"Object not found: {handle}", path=handle.path, backend=self.name)
            return ObjectInfo(handle=handle, size=int(info.get("size", info.get("Size", 0)) or 0))

    def remove(self, handle: Handle, *, missing_ok: bool = False) -> None:
        with self._errors(handle.path):
            if not self.test(handle):
                if not missing_ok:
                    raise NotFound(f"Object not found: {handle}", path=handle.path, backend=self.name)
                return
            self._fs.rm_file(self._s3_path(handle.path))

    def list(self, kind: ResourceKind) -> Iterator[ObjectInfo]:
        if kind is ResourceKind.CONFIG:
            if self.test(Handle(kind)):
                yield self.stat(Handle(kind))
            return
        with self._errors(kind.value):
            try:
                results: dict[str, Any] = self._fs.find(self._s3_path(kind.value), detail=True)
            except FileNotFoundError:
                return
        for s3_key, info in results.items():
            if info.get("type") != "file":
                continue
            try:
                handle = Handle.from_path(self._rel_key(s3_key))
            except InvalidHandle:
                continue
            if handle.kind is kind:
                yield ObjectInfo(handle=handle, size=int(info.get("size", info.get("Size", 0)) or 0))

    # endregion
