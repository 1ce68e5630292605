"""Google Cloud Storage backend using google-cloud-storage."""

from __future__ import annotations

import logging
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

log = logging.getLogger(__name__)


class GSBackend(Backend):
    """Google Cloud Storage backend.

    Authenticates with a service account JSON key when ``credentials_file`` is
    given, otherwise with Application Default Credentials.

    :param bucket: GCS bucket name (required, non-empty).
    :param prefix: Object name prefix of the namespace.
    :param project_id: GCP project owning the bucket.
    :param credentials_file: Path to a service account JSON key.
    :param client: Pre-built ``google.cloud.storage.Client``.
    """

    type_name = "gs"

    def __init__(
        self,
        bucket: str,
        *,
        prefix: str = "",
        project_id: str | None = None,
        credentials_file: str | None = None,
        client: Any = None,
    ) -> None:
        if not bucket or not bucket.strip():
            raise ConfigError("bucket must be a non-empty string", backend=self.type_name)
        self._bucket_name = bucket
        self._prefix = join_key(prefix)
        self._project_id = project_id
        self._credentials_file = credentials_file
        self._client_instance = client
        self._owns_client = client is None

    @classmethod
    def parse_location(cls, location: str) -> Options:
        """Accept ``bucket:/prefix`` (the prefix is optional)."""
        bucket, _, prefix = location.partition(":")
        if not bucket or "/" in bucket:
            raise ConfigError(f"gs: invalid bucket in {location!r}", backend=cls.type_name)
        return {"bucket": bucket, "prefix": prefix.strip("/")}

    @classmethod
    def from_config(cls, config: BackendConfig) -> GSBackend:
        opts = cls.parse_location(config.location)
        kwargs: dict[str, Any] = dict(config.options)
        if config.project_id:
            kwargs.setdefault("project_id", config.project_id)
        if config.credentials:
            kwargs.setdefault("credentials_file", config.credentials)
        return cls(
            bucket=str(opts["bucket"]),
            prefix=join_key(str(opts["prefix"]), config.namespace),
            **kwargs,
        )

    @property
    def name(self) -> str:
        return "gs"

    @property
    def capabilities(self) -> CapabilitySet:
        return ALL_CAPABILITIES

    def location(self) -> str:
        return f"gs:{self._bucket_name}:/{self._prefix}"

    # region: lazy client

    @property
    def _client(self) -> Any:
        if self._client_instance is None:
            from google.cloud import storage

            if self._credentials_file:
                self._client_instance = storage.Client.from_service_account_json(
                    self._credentials_file, project=self._project_id
                )
            else:
                self._client_instance = storage.Client(project=self._project_id)
        return self._client_instance

    @property
    def _bucket(self) -> Any:
        return self._client.bucket(self._bucket_name)

    def _key(self, path: str = "") -> str:
        return join_key(self._prefix, path)

    # endregion

    # region: error mapping

    @contextmanager
    def _errors(self, path: str = "") -> Iterator[None]:
        """Map google-cloud exceptions to backend_suite errors."""
        from google.api_core import exceptions as gexc

        try:
            yield
        except BackendSuiteError:
            raise
        except gexc.NotFound:
            raise NotFound(f"Not found: {path}", path=path, backend=self.name) from None
        except gexc.PreconditionFailed:
            raise AlreadyExistsError(f"Object already exists: {path}", path=path, backend=self.name) from None
        except (gexc.Forbidden, gexc.Unauthorized) as exc:
            raise PermissionDenied(f"Permission denied: {exc}", path=path, backend=self.name) from None
        except FileNotFoundError as exc:
            raise ConfigError(f"Credentials file not found: {exc.filename}", backend=self.name) from None
        except Exception as exc:
            raise ConnectivityError(str(exc) or type(exc).__name__, path=path, backend=self.name) from None

    # endregion

    # region: lifecycle

    def connect(self) -> None:
        with self._errors(self._bucket_name):
            # lookup_bucket returns None for a missing bucket; initialize() creates it.
            self._client.lookup_bucket(self._bucket_name)

    def initialize(self) -> None:
        with self._errors(self._bucket_name):
            if self._client.lookup_bucket(self._bucket_name) is None:
                log.info("Creating bucket %s in project %s", self._bucket_name, self._project_id)
                self._client.create_bucket(self._bucket_name, project=self._project_id)

    def delete(self) -> None:
        from google.api_core import exceptions as gexc

        prefix = f"{self._prefix}/" if self._prefix else None
        with self._errors(self._prefix):
            for blob in self._client.list_blobs(self._bucket_name, prefix=prefix):
                try:
                    blob.delete()
                except gexc.NotFound:
                    continue

    def close(self) -> None:
        if self._owns_client and self._client_instance is not None:
            self._client_instance.close()
            self._client_instance = None

    # endregion

    # region: object operations

    def test(self, handle: Handle) -> bool:
        with self._errors(handle.path):
            return bool(self._bucket.blob(self._key(handle.path)).exists())

    def save(self, handle: Handle, content: WritableContent, *, overwrite: bool = False) -> None:
        with self._errors(handle.path):
            blob = self._bucket.blob(self._key(handle.path))
            blob.upload_from_string(
                self._read_content(content),
                content_type="application/octet-stream",
                if_generation_match=None if overwrite else 0,
            )

    def load(self, handle: Handle, *, length: int = 0, offset: int = 0) -> bytes:
        self._check_range(length, offset)
        with self._errors(handle.path):
            blob = self._bucket.blob(self._key(handle.path))
            if not offset and not length:
                return bytes(blob.download_as_bytes())
            end = offset + length - 1 if length else None
            return bytes(blob.download_as_bytes(start=offset, end=end))

    def stat(self, handle: Handle) -> ObjectInfo:
        with self._errors(handle.path):
            blob = self._bucket.get_blob(self._key(handle.path))
            if blob is None:
                raise NotFound(f"Object not found: {handle}", path=handle.path, backend=self.name)
            return ObjectInfo(handle=handle, size=int(blob.size or 0))

    def remove(self, handle: Handle, *, missing_ok: bool = False) -> None:
        from google.api_core import exceptions as gexc

        with self._errors(handle.path):
            try:
                self._bucket.blob(self._key(handle.path)).delete()
            except gexc.NotFound:
                if not missing_ok:
                    raise NotFound(f"Object not found: {handle}", path=handle.path, backend=self.name) from None

    def list(self, kind: ResourceKind) -> Iterator[ObjectInfo]:
        if kind is ResourceKind.CONFIG:
            if self.test(Handle(kind)):
                yield self.stat(Handle(kind))
            return
        root = f"{self._prefix}/" if self._prefix else ""
        with self._errors(kind.value):
            blobs = [(b.name, b.size) for b in self._client.list_blobs(self._bucket_name, prefix=f"{root}{kind.value}/")]
        for name, size in blobs:
            try:
                handle = Handle.from_path(name[len(root) :])
            except InvalidHandle:
                continue
            yield ObjectInfo(handle=handle, size=int(size or 0))

    # endregion
