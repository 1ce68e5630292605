"""Reference backend implementations.

Third-party libraries are imported on first use, so every class here imports
even when its optional dependency is missing.
"""

from backend_suite.backends._gs import GSBackend
from backend_suite.backends._local import LocalBackend
from backend_suite.backends._s3 import S3Backend
from backend_suite.backends._sftp import HostKeyPolicy, SFTPBackend

__all__ = ["GSBackend", "HostKeyPolicy", "LocalBackend", "S3Backend", "SFTPBackend"]
