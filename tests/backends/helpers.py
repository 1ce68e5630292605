"""Availability checks and constants shared by the backend tests."""

from __future__ import annotations

import pytest

S3_KEY = "testing"
S3_SECRET = "testing"


def s3_available() -> bool:
    try:
        import boto3  # noqa: F401
        import moto  # noqa: F401
        import s3fs  # noqa: F401

        return True
    except ImportError:
        return False


def sftp_available() -> bool:
    try:
        import paramiko  # noqa: F401

        return True
    except ImportError:
        return False


def gs_available() -> bool:
    try:
        import google.cloud.storage  # noqa: F401

        return True
    except ImportError:
        return False


requires_s3 = pytest.mark.skipif(not s3_available(), reason="moto/s3fs not installed")
requires_sftp = pytest.mark.skipif(not sftp_available(), reason="paramiko not installed")
requires_gs = pytest.mark.skipif(not gs_available(), reason="google-cloud-storage not installed")
