"""S3 backend tests, against a moto server.

Requires: moto[server], s3fs, boto3 (test dependencies).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from backend_suite import BackendConfig, Handle, ResourceKind
from backend_suite._errors import AlreadyExistsError, ConfigError, NotFound
from backend_suite.backends._s3 import S3Backend
from tests.backends.helpers import S3_KEY, S3_SECRET, requires_s3

if TYPE_CHECKING:
    from collections.abc import Iterator

DATA = Handle(ResourceKind.DATA, "ef" + "2" * 62)


@pytest.fixture
def s3_backend(moto_server: str, s3_bucket: str) -> Iterator[S3Backend]:
    backend = S3Backend(
        bucket=s3_bucket,
        prefix="repo/test-1",
        key=S3_KEY,
        secret=S3_SECRET,
        region_name="us-east-1",
        endpoint_url=moto_server,
    )
    backend.connect()
    yield backend
    backend.close()


class TestS3Configuration:
    def test_parse_bucket_and_prefix(self) -> None:
        assert S3Backend.parse_location("bucket/repo/sub") == {"bucket": "bucket", "prefix": "repo/sub"}

    def test_parse_endpoint(self) -> None:
        assert S3Backend.parse_location("http://localhost:9000/bucket/repo") == {
            "bucket": "bucket",
            "prefix": "repo",
            "endpoint_url": "http://localhost:9000",
        }

    @pytest.mark.parametrize("location", ["", "/", "https://", "https://host/"])
    def test_parse_rejects_missing_parts(self, location: str) -> None:
        with pytest.raises(ConfigError):
            S3Backend.parse_location(location)

    def test_from_config_splits_credentials(self) -> None:
        config = BackendConfig.parse("s3:bucket/repo").replace(namespace="test-3", credentials="AK:SK")
        backend = S3Backend.from_config(config)
        assert backend.location() == "s3:bucket/repo/test-3"
        assert (backend._key, backend._secret) == ("AK", "SK")

    @pytest.mark.parametrize("credentials", ["AK", "AK:", ":SK"])
    def test_from_config_rejects_malformed_credentials(self, credentials: str) -> None:
        config = BackendConfig.parse("s3:bucket").replace(credentials=credentials)
        with pytest.raises(ConfigError, match="KEY:SECRET"):
            S3Backend.from_config(config)

    def test_construction_is_lazy(self) -> None:
        backend = S3Backend(bucket="bucket", endpoint_url="http://127.0.0.1:1")
        assert backend._fs_instance is None


@requires_s3
class TestS3Objects:
    def test_object_key_layout(self, s3_backend: S3Backend, s3_bucket: str) -> None:
        s3_backend.save(DATA, b"payload")
        assert s3_backend._fs.cat_file(f"{s3_bucket}/repo/test-1/data/ef/{DATA.name}") == b"payload"

    def test_save_existing_raises(self, s3_backend: S3Backend) -> None:
        s3_backend.save(DATA, b"one")
        with pytest.raises(AlreadyExistsError):
            s3_backend.save(DATA, b"two")

    def test_ranged_load(self, s3_backend: S3Backend) -> None:
        s3_backend.save(DATA, b"0123456789")
        assert s3_backend.load(DATA, offset=4, length=2) == b"45"
        assert s3_backend.load(DATA, offset=9) == b"9"

    def test_missing_object(self, s3_backend: S3Backend) -> None:
        assert not s3_backend.test(DATA)
        with pytest.raises(NotFound):
            s3_backend.load(DATA)
        with pytest.raises(NotFound):
            s3_backend.remove(DATA)

    def test_delete_only_touches_namespace(self, s3_backend: S3Backend, s3_bucket: str) -> None:
        s3_backend._fs.pipe_file(f"{s3_bucket}/repo/test-10/config", b"other run")
        s3_backend.save(DATA, b"x")
        s3_backend.delete()
        assert not s3_backend.test(DATA)
        assert s3_backend._fs.cat_file(f"{s3_bucket}/repo/test-10/config") == b"other run"

    def test_delete_is_idempotent(self, s3_backend: S3Backend) -> None:
        s3_backend.delete()
        s3_backend.delete()

    def test_list_by_kind(self, s3_backend: S3Backend) -> None:
        key = Handle(ResourceKind.KEY, "k1")
        s3_backend.save(DATA, b"abc")
        s3_backend.save(key, b"key")
        assert [(i.handle, i.size) for i in s3_backend.list(ResourceKind.DATA)] == [(DATA, 3)]
        assert [i.handle for i in s3_backend.list(ResourceKind.KEY)] == [key]
        assert list(s3_backend.list(ResourceKind.LOCK)) == []
