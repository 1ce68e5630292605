"""Error handling — failed runs, skips, and the backend error hierarchy.

Demonstrates how run outcomes and backend errors carry structured
attributes that can be handled programmatically.
"""

from __future__ import annotations

import tempfile

from backend_suite import (
    MARKER,
    AlreadyExistsError,
    BackendConfig,
    BackendSuiteError,
    ConfigError,
    Handle,
    InvalidHandle,
    MappingEnvironment,
    NotFound,
    ResourceKind,
    SkipPolicy,
    bindings,
    create_backend,
    delete_backend,
)

if __name__ == "__main__":
    with tempfile.TemporaryDirectory() as tmp:
        config = BackendConfig.parse(f"local:{tmp}").with_namespace("demo")

        with create_backend(config) as backend:
            # --- NotFound ---
            try:
                backend.load(Handle(ResourceKind.DATA, "ab" * 32))
            except NotFound as exc:
                print(f"NotFound: {exc}")
                print(f"  path={exc.path}, backend={exc.backend}")

            # --- AlreadyExistsError on a second save ---
            try:
                backend.save(MARKER, b"{}")
            except AlreadyExistsError as exc:
                print(f"\nAlreadyExistsError: {exc}")

        # --- AlreadyExistsError on a second create ---
        try:
            create_backend(config)
        except AlreadyExistsError as exc:
            print(f"\nAlreadyExistsError: {exc}")
        delete_backend(config)

        # --- InvalidHandle ---
        try:
            Handle(ResourceKind.KEY, "../escape")
        except InvalidHandle as exc:
            print(f"\nInvalidHandle: {exc}")

        # --- Catch any backend_suite error with the base class ---
        for descriptor in ["no-colon", "ftp:host/path", "s3:"]:
            try:
                BackendConfig.parse(descriptor)
            except BackendSuiteError as exc:
                print(f"\n{type(exc).__name__}: {exc}")

    # --- Skips and required suites ---
    result = bindings.s3_suite(MappingEnvironment(), SkipPolicy()).run_tests()
    print(f"\n{result.describe()}")

    result = bindings.s3_suite(MappingEnvironment(), SkipPolicy(required=frozenset({"s3"}))).run_tests()
    print(result.describe())
    assert isinstance(result.error, ConfigError)

    print("\nDone!")
