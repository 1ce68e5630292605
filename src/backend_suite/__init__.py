"""Conformance and benchmark harness for backup repository storage backends."""

from backend_suite._backend import Backend
from backend_suite._benchmarks import BenchmarkResult
from backend_suite._capabilities import ALL_CAPABILITIES, Capability, CapabilitySet
from backend_suite._checks import CheckFailure, RunContext
from backend_suite._config import BackendConfig, EnvConfigFactory
from backend_suite._environment import (
    Environment,
    MappingEnvironment,
    ProcessEnvironment,
    SkipPolicy,
    SkipVerdict,
    missing_variable,
)
from backend_suite._errors import (
    AlreadyExistsError,
    BackendSuiteError,
    CapabilityNotSupported,
    ConfigError,
    ConformanceFailure,
    ConnectivityError,
    InvalidHandle,
    NotFound,
    PermissionDenied,
    TeardownError,
)
from backend_suite._factory import create_backend, delete_backend, open_backend
from backend_suite._handle import MARKER, Handle, ObjectInfo, ResourceKind
from backend_suite._namespace import new_namespace
from backend_suite._registry import backend_class, register_backend, registered_types
from backend_suite._suite import Phase, RunMode, RunResult, RunStatus, Suite

__version__ = "0.1.0"

__all__ = [
    # Orchestration
    "Suite",
    "RunResult",
    "RunStatus",
    "RunMode",
    "Phase",
    "RunContext",
    "CheckFailure",
    "BenchmarkResult",
    # Backends
    "Backend",
    "create_backend",
    "open_backend",
    "delete_backend",
    "register_backend",
    "backend_class",
    "registered_types",
    # Resources
    "Handle",
    "ResourceKind",
    "ObjectInfo",
    "MARKER",
    # Capabilities
    "Capability",
    "CapabilitySet",
    "ALL_CAPABILITIES",
    # Config
    "BackendConfig",
    "EnvConfigFactory",
    "new_namespace",
    "Environment",
    "ProcessEnvironment",
    "MappingEnvironment",
    "SkipPolicy",
    "SkipVerdict",
    "missing_variable",
    # Errors
    "BackendSuiteError",
    "ConfigError",
    "AlreadyExistsError",
    "ConnectivityError",
    "PermissionDenied",
    "NotFound",
    "InvalidHandle",
    "TeardownError",
    "CapabilityNotSupported",
    "ConformanceFailure",
    # Version
    "__version__",
]
