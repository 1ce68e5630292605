"""Backend test fixtures: an S3 endpoint served by moto and an in-process SFTP server."""

from __future__ import annotations

import socket
import uuid
from typing import TYPE_CHECKING

import pytest

from backend_suite import MappingEnvironment
from tests.backends.helpers import S3_KEY, S3_SECRET, s3_available, sftp_available

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

    from tests.backends.sftp_server import SFTPTestServer


def _free_port() -> int:
    with socket.socket() as s:
        s.bind(("", 0))
        return s.getsockname()[1]


@pytest.fixture(scope="session")
def moto_server() -> Iterator[str]:
    """Start a moto HTTP server for the test session.

    Server mode keeps s3fs's aiobotocore client talking real HTTP.
    """
    if not s3_available():
        pytest.skip("moto/s3fs not installed")
    from moto.moto_server.threaded_moto_server import ThreadedMotoServer

    port = _free_port()
    server = ThreadedMotoServer(port=port, verbose=False)
    server.start()
    yield f"http://127.0.0.1:{port}"
    server.stop()


@pytest.fixture
def s3_bucket(moto_server: str) -> str:
    """A new, empty bucket on the moto server."""
    import boto3

    bucket = f"suite-{uuid.uuid4().hex[:8]}"
    client = boto3.client(
        "s3",
        endpoint_url=moto_server,
        aws_access_key_id=S3_KEY,
        aws_secret_access_key=S3_SECRET,
        region_name="us-east-1",
    )
    client.create_bucket(Bucket=bucket)
    return bucket


@pytest.fixture
def s3_environment(moto_server: str, s3_bucket: str) -> MappingEnvironment:
    """Variables of the s3 suite, pointing at the moto server."""
    return MappingEnvironment(
        {
            "BACKEND_SUITE_TEST_S3_REPOSITORY": f"s3:{moto_server}/{s3_bucket}/repo",
            "BACKEND_SUITE_TEST_S3_CREDENTIALS": f"{S3_KEY}:{S3_SECRET}",
        }
    )


@pytest.fixture(scope="session")
def sftp_server(tmp_path_factory: pytest.TempPathFactory) -> Iterator[SFTPTestServer]:
    """Start an in-process SFTP server for the test session."""
    if not sftp_available():
        pytest.skip("paramiko not installed")
    from tests.backends.sftp_server import SFTPTestServer

    with SFTPTestServer(str(tmp_path_factory.mktemp("sftp_root"))) as server:
        yield server


@pytest.fixture
def sftp_environment(sftp_server: SFTPTestServer) -> MappingEnvironment:
    """Variables of the sftp suite, pointing at the in-process server."""
    return MappingEnvironment(
        {
            "BACKEND_SUITE_TEST_SFTP_REPOSITORY": (
                f"sftp://{sftp_server.username}@{sftp_server.host}:{sftp_server.port}/repo-{uuid.uuid4().hex[:8]}"
            ),
            "BACKEND_SUITE_TEST_SFTP_CREDENTIALS": sftp_server.password,
        }
    )


@pytest.fixture
def sftp_options(sftp_server: SFTPTestServer) -> dict[str, object]:
    """Backend options pinning the server's host key."""
    return {
        "host_key_policy": "strict",
        "known_host_keys": sftp_server.known_hosts_entry,
        "connect_kwargs": {"allow_agent": False, "look_for_keys": False},
    }


@pytest.fixture
def local_environment(tmp_path: Path) -> MappingEnvironment:
    return MappingEnvironment({"BACKEND_SUITE_TEST_LOCAL_REPOSITORY": f"local:{tmp_path}"})
