"""Conformance suites run end to end against every reference backend.

The local, S3 (moto) and SFTP (in-process server) suites always run. The GCS
suite runs against an in-memory client; the live GCS suite only runs when
its ``BACKEND_SUITE_TEST_GS_*`` variables are set.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from backend_suite import MappingEnvironment, RunStatus, SkipPolicy, bindings, testing
from backend_suite._checks import CHECKS
from tests.backends.helpers import requires_gs, requires_s3, requires_sftp

if TYPE_CHECKING:
    from backend_suite import RunResult, Suite


def _assert_passed_and_clean(result: RunResult) -> None:
    assert result.status is RunStatus.PASSED, result.describe()
    assert [f.name for f in result.failures] == []
    assert result.teardown_error is None


class TestLocalConformance:
    def test_all_checks_pass(self, local_environment: MappingEnvironment, tmp_path: Path) -> None:
        result = bindings.local_suite(local_environment, SkipPolicy()).run_tests()
        _assert_passed_and_clean(result)
        assert list(tmp_path.iterdir()) == []

    def test_benchmarks(self, local_environment: MappingEnvironment, tmp_path: Path) -> None:
        result = bindings.local_suite(local_environment, SkipPolicy(), minimal_data=True).run_benchmarks(iterations=2)
        _assert_passed_and_clean(result)
        assert {b.name for b in result.benchmarks} == {
            "save",
            "load_file",
            "load_partial_file",
            "load_partial_file_offset",
            "test",
        }
        assert all(b.iterations == 2 for b in result.benchmarks)
        assert list(tmp_path.iterdir()) == []

    def test_skips_without_repository(self) -> None:
        result = bindings.local_suite(MappingEnvironment(), SkipPolicy()).run_tests()
        assert result.skipped
        assert "BACKEND_SUITE_TEST_LOCAL_REPOSITORY" in result.skip_reason

    def test_pytest_glue_returns_passing_result(self, local_environment: MappingEnvironment) -> None:
        result = testing.run_tests(bindings.local_suite(local_environment, SkipPolicy()), checks=["save_load"])
        assert result.passed


@requires_s3
class TestS3Conformance:
    @pytest.fixture
    def suite(self, s3_environment: MappingEnvironment) -> Suite:
        return bindings.s3_suite(s3_environment, SkipPolicy(), options={"region_name": "us-east-1"})

    def test_all_checks_pass(self, suite: Suite) -> None:
        _assert_passed_and_clean(suite.run_tests())

    def test_namespace_is_removed(self, suite: Suite, moto_server: str, s3_bucket: str) -> None:
        import boto3

        result = suite.run_tests(["marker_present", "save_load"])
        _assert_passed_and_clean(result)
        client = boto3.client(
            "s3",
            endpoint_url=moto_server,
            aws_access_key_id="testing",
            aws_secret_access_key="testing",
            region_name="us-east-1",
        )
        listing = client.list_objects_v2(Bucket=s3_bucket, Prefix=f"repo/{result.namespace}/")
        assert listing.get("KeyCount", 0) == 0

    def test_benchmarks(self, suite: Suite) -> None:
        result = suite.run_benchmarks(["save", "load_partial_file_offset"], iterations=1)
        _assert_passed_and_clean(result)
        assert [b.name for b in result.benchmarks] == ["save", "load_partial_file_offset"]


@requires_sftp
class TestSFTPConformance:
    def test_all_checks_pass(self, sftp_environment: MappingEnvironment, sftp_options: dict[str, object]) -> None:
        suite = bindings.sftp_suite(sftp_environment, SkipPolicy(), options=sftp_options)
        result = suite.run_tests()
        _assert_passed_and_clean(result)

    def test_wrong_password_fails_in_create(
        self, sftp_environment: MappingEnvironment, sftp_options: dict[str, object]
    ) -> None:
        env = MappingEnvironment(
            {
                "BACKEND_SUITE_TEST_SFTP_REPOSITORY": sftp_environment.get("BACKEND_SUITE_TEST_SFTP_REPOSITORY") or "",
                "BACKEND_SUITE_TEST_SFTP_CREDENTIALS": "wrong",
            }
        )
        result = bindings.sftp_suite(env, SkipPolicy(), options=sftp_options).run_tests(["location"])
        assert result.failed
        assert result.phase.value == "created"
        assert "Authentication failed" in str(result.error)


@requires_gs
class TestGSConformance:
    def test_all_checks_pass(self, tmp_path: Path) -> None:
        from tests.backends.fake_gcs import FakeClient

        client = FakeClient("bucket")
        key_file = tmp_path / "key.json"
        key_file.write_text("{}")
        env = MappingEnvironment(
            {
                "BACKEND_SUITE_TEST_GS_PROJECT_ID": "project",
                "BACKEND_SUITE_TEST_GS_APPLICATION_CREDENTIALS": str(key_file),
                "BACKEND_SUITE_TEST_GS_REPOSITORY": "gs:bucket:/repo",
            }
        )
        result = bindings.gs_suite(env, SkipPolicy(), options={"client": client}).run_tests()
        _assert_passed_and_clean(result)
        assert client.buckets["bucket"] == {}

    def test_skip_names_first_missing_variable(self) -> None:
        env = MappingEnvironment({"BACKEND_SUITE_TEST_GS_REPOSITORY": "gs:bucket:/repo"})
        result = bindings.gs_suite(env, SkipPolicy()).run_tests()
        assert result.skipped
        assert result.skip_reason == "environment variable BACKEND_SUITE_TEST_GS_PROJECT_ID not set"


@pytest.mark.integration
def test_gs_backend() -> None:
    """Live Google Cloud Storage run; skipped unless configured."""
    testing.run_tests(bindings.gs_suite())


@pytest.mark.integration
def test_gs_benchmarks() -> None:
    testing.run_benchmarks(bindings.gs_suite())


def test_every_check_is_registered() -> None:
    assert {
        "location",
        "marker_present",
        "create_rejects_existing",
        "reopen_preserves_state",
        "open_empty_namespace",
        "save_load",
        "ranged_load",
        "zero_length",
        "duplicate_save",
        "missing_object",
        "list",
        "remove",
        "kinds",
    } <= set(CHECKS)
