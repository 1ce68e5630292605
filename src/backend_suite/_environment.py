"""Environment providers, the pre-flight gate and the skip policy."""

from __future__ import annotations

import abc
import dataclasses
import enum
import logging
import os
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

log = logging.getLogger(__name__)

DISALLOW_SKIP_VAR = "BACKEND_SUITE_DISALLOW_SKIP"
OFFLINE_VAR = "BACKEND_SUITE_OFFLINE"

_TRUTHY = frozenset({"1", "true", "yes", "on"})


class Environment(abc.ABC):
    """Source of external configuration variables."""

    @abc.abstractmethod
    def get(self, name: str) -> str | None:
        """Return the variable's value, or ``None`` if it is unset."""


class ProcessEnvironment(Environment):
    """Reads the process environment at call time."""

    def get(self, name: str) -> str | None:
        return os.environ.get(name)

    def __repr__(self) -> str:
        return "ProcessEnvironment()"


class MappingEnvironment(Environment):
    """A fixed, synthetic environment.

    :param values: Variable names mapped to values.
    """

    def __init__(self, values: Mapping[str, str] | None = None) -> None:
        self._values = dict(values or {})

    def get(self, name: str) -> str | None:
        return self._values.get(name)

    def __repr__(self) -> str:
        return f"MappingEnvironment({sorted(self._values)!r})"


def missing_variable(environment: Environment, names: Iterable[str]) -> str | None:
    """Return the first variable in ``names`` that is unset or empty.

    Checking stops at the first missing variable.
    """
    for name in names:
        if not environment.get(name):
            return name
    return None


class SkipVerdict(enum.Enum):
    """How the skip policy judges a run that was skipped for lack of configuration."""

    NOT_CONFIGURED = "not_configured"
    DISALLOWED = "disallowed"
    REQUIRED = "required"


@dataclasses.dataclass(frozen=True)
class SkipPolicy:
    """Process-wide policy consulted after a run skipped itself.

    :param required: Suite names that must not be skipped.
    :param offline: Network-touching suites are deliberately disabled.
    """

    required: frozenset[str] = frozenset()
    offline: bool = False

    @classmethod
    def from_environment(cls, environment: Environment) -> SkipPolicy:
        raw = environment.get(DISALLOW_SKIP_VAR) or ""
        required = frozenset(name.strip() for name in raw.split(",") if name.strip())
        offline = (environment.get(OFFLINE_VAR) or "").strip().lower() in _TRUTHY
        return cls(required=required, offline=offline)

    def judge(self, suite: str, *, requires_network: bool) -> SkipVerdict:
        """Classify a skip of ``suite``."""
        if self.offline and requires_network:
            return SkipVerdict.DISALLOWED
        if suite in self.required:
            log.error("Suite %s skipped, but skipping it is disallowed", suite)
            return SkipVerdict.REQUIRED
        return SkipVerdict.NOT_CONFIGURED
