"""Ready-made suites for the built-in backends, configured from the environment.

Each suite is skipped unless its variables are set, e.g.::

    BACKEND_SUITE_TEST_S3_REPOSITORY=s3:http://localhost:9000/bucket/restic
    BACKEND_SUITE_TEST_S3_CREDENTIALS=KEY:SECRET
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

from backend_suite._config import EnvConfigFactory
from backend_suite._environment import Environment, ProcessEnvironment
from backend_suite._suite import Suite

if TYPE_CHECKING:
    from collections.abc import Mapping

    from backend_suite._environment import SkipPolicy

LOCAL_REPOSITORY = "BACKEND_SUITE_TEST_LOCAL_REPOSITORY"
S3_REPOSITORY = "BACKEND_SUITE_TEST_S3_REPOSITORY"
S3_CREDENTIALS = "BACKEND_SUITE_TEST_S3_CREDENTIALS"
SFTP_REPOSITORY = "BACKEND_SUITE_TEST_SFTP_REPOSITORY"
SFTP_CREDENTIALS = "BACKEND_SUITE_TEST_SFTP_CREDENTIALS"
GS_PROJECT_ID = "BACKEND_SUITE_TEST_GS_PROJECT_ID"
GS_APPLICATION_CREDENTIALS = "BACKEND_SUITE_TEST_GS_APPLICATION_CREDENTIALS"
GS_REPOSITORY = "BACKEND_SUITE_TEST_GS_REPOSITORY"


def _suite(
    name: str,
    factory: EnvConfigFactory,
    required_vars: tuple[str, ...],
    environment: Environment,
    policy: Optional[SkipPolicy],
    remote: bool,
    overrides: dict[str, Any],
) -> Suite:
    params: dict[str, Any] = {
        "name": name,
        "new_config": factory,
        "required_vars": required_vars,
        "environment": environment,
        "policy": policy,
        "minimal_data": remote,
        "requires_network": remote,
    }
    params.update(overrides)
    return Suite(**params)


def local_suite(
    environment: Optional[Environment] = None,
    policy: Optional[SkipPolicy] = None,
    **overrides: Any,
) -> Suite:
    """Suite for the local filesystem backend.

    :param environment: Variable source; defaults to the process environment.
    :param policy: Skip policy; read from ``environment`` when omitted.
    :param overrides: Further :class:`Suite` fields.
    """
    env = environment or ProcessEnvironment()
    factory = EnvConfigFactory(repository_var=LOCAL_REPOSITORY, environment=env)
    return _suite("local", factory, (LOCAL_REPOSITORY,), env, policy, False, overrides)


def s3_suite(
    environment: Optional[Environment] = None,
    policy: Optional[SkipPolicy] = None,
    options: Optional[Mapping[str, object]] = None,
    **overrides: Any,
) -> Suite:
    """Suite for S3-compatible storage. Credentials are a ``KEY:SECRET`` token."""
    env = environment or ProcessEnvironment()
    factory = EnvConfigFactory(
        repository_var=S3_REPOSITORY,
        credentials_var=S3_CREDENTIALS,
        options=dict(options or {}),
        environment=env,
    )
    return _suite("s3", factory, (S3_REPOSITORY, S3_CREDENTIALS), env, policy, True, overrides)


def sftp_suite(
    environment: Optional[Environment] = None,
    policy: Optional[SkipPolicy] = None,
    options: Optional[Mapping[str, object]] = None,
    **overrides: Any,
) -> Suite:
    """Suite for SFTP servers.

    Credentials are a private key file or a password. ``options`` reach
    :class:`~backend_suite.backends.SFTPBackend`, e.g. ``host_key_policy``.
    """
    env = environment or ProcessEnvironment()
    factory = EnvConfigFactory(
        repository_var=SFTP_REPOSITORY,
        credentials_var=SFTP_CREDENTIALS,
        options=dict(options or {}),
        environment=env,
    )
    return _suite("sftp", factory, (SFTP_REPOSITORY, SFTP_CREDENTIALS), env, policy, True, overrides)


def gs_suite(
    environment: Optional[Environment] = None,
    policy: Optional[SkipPolicy] = None,
    options: Optional[Mapping[str, object]] = None,
    **overrides: Any,
) -> Suite:
    """Suite for Google Cloud Storage.

    Needs the project id, a service account JSON key and a
    ``gs:bucket:/prefix`` descriptor.
    """
    env = environment or ProcessEnvironment()
    factory = EnvConfigFactory(
        repository_var=GS_REPOSITORY,
        project_var=GS_PROJECT_ID,
        credentials_var=GS_APPLICATION_CREDENTIALS,
        options=dict(options or {}),
        environment=env,
    )
    required = (GS_PROJECT_ID, GS_APPLICATION_CREDENTIALS, GS_REPOSITORY)
    return _suite("gs", factory, required, env, policy, True, overrides)
