"""Configuration model — immutable backend configurations and the env-driven factory."""

from __future__ import annotations

import dataclasses
import logging
import types
from collections.abc import Mapping
from typing import Optional

from backend_suite._environment import Environment, ProcessEnvironment
from backend_suite._errors import ConfigError
from backend_suite._namespace import new_namespace

log = logging.getLogger(__name__)


def _freeze(options: Mapping[str, object] | None) -> Mapping[str, object]:
    return types.MappingProxyType(dict(options or {}))


@dataclasses.dataclass(frozen=True)
class BackendConfig:
    """Describes one temporary backend instance.

    :param type: Backend type identifier (e.g. ``"local"``, ``"s3"``).
    :param location: Backend-specific remainder of the connection descriptor.
    :param namespace: Prefix scoping every object of the run.
    :param project_id: Deployment/project identifier, if the backend needs one.
    :param credentials: Credential reference (file path or token).
    :param options: Backend-specific options, read-only.
    """

    type: str
    location: str = ""
    namespace: str = ""
    project_id: Optional[str] = None
    credentials: Optional[str] = dataclasses.field(default=None, repr=False)
    options: Mapping[str, object] = dataclasses.field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.type:
            raise ConfigError("Backend type must not be empty")
        if not isinstance(self.options, types.MappingProxyType):
            object.__setattr__(self, "options", _freeze(self.options))

    def __hash__(self) -> int:
        return hash((self.type, self.location, self.namespace, self.project_id))

    @classmethod
    def parse(cls, descriptor: str) -> BackendConfig:
        """Parse a ``<type>:<location>`` connection descriptor.

        The backend registered for ``<type>`` validates the location.

        :raises ConfigError: If the descriptor is malformed or the type is unknown.
        """
        from backend_suite._registry import backend_class

        if not descriptor or ":" not in descriptor:
            raise ConfigError(f"Invalid connection descriptor: {descriptor!r}")
        type_name, location = descriptor.split(":", 1)
        cls_ = backend_class(type_name)
        cls_.parse_location(location)
        return cls(type=type_name, location=location)

    def replace(self, **changes: object) -> BackendConfig:
        """Return a copy with ``changes`` applied."""
        return dataclasses.replace(self, **changes)  # type: ignore[arg-type]

    def with_namespace(self, namespace: str) -> BackendConfig:
        return self.replace(namespace=namespace)

    def parsed_location(self) -> dict[str, object]:
        """Location options as parsed by the backend class."""
        from backend_suite._registry import backend_class

        return dict(backend_class(self.type).parse_location(self.location))


@dataclasses.dataclass(frozen=True)
class EnvConfigFactory:
    """Builds a fresh configuration for a temporary backend from the environment.

    Every call injects a newly generated namespace, so two configurations from
    the same factory never share one.

    :param repository_var: Variable holding the connection descriptor.
    :param project_var: Variable holding the project identifier, if any.
    :param credentials_var: Variable holding the credential reference, if any.
    :param namespace_prefix: Leading label of generated namespaces.
    :param options: Extra backend options merged into every configuration.
    :param environment: Variable source; defaults to the process environment.
    """

    repository_var: str
    project_var: Optional[str] = None
    credentials_var: Optional[str] = None
    namespace_prefix: str = "test"
    options: Mapping[str, object] = dataclasses.field(default_factory=dict)
    environment: Environment = dataclasses.field(default_factory=ProcessEnvironment)

    def __call__(self) -> BackendConfig:
        descriptor = self.environment.get(self.repository_var)
        if not descriptor:
            raise ConfigError(f"environment variable {self.repository_var} not set")
        config = BackendConfig.parse(descriptor)
        namespace = new_namespace(self.namespace_prefix)
        log.debug("New %s config in namespace %s", config.type, namespace)
        return config.replace(
            namespace=namespace,
            project_id=self.environment.get(self.project_var) if self.project_var else None,
            credentials=self.environment.get(self.credentials_var) if self.credentials_var else None,
            options=_freeze(self.options),
        )
