"""Tests for the error hierarchy."""

from __future__ import annotations

import pytest

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


class TestBaseError:
    def test_default_attributes(self) -> None:
        e = BackendSuiteError("boom")
        assert e.path is None
        assert e.backend is None
        assert str(e) == "boom"

    def test_with_attributes(self) -> None:
        e = BackendSuiteError("boom", path="data/ab/abc", backend="s3")
        assert str(e) == "boom | path='data/ab/abc' | backend='s3'"
        assert repr(e) == "BackendSuiteError('boom', path='data/ab/abc', backend='s3')"


class TestHierarchy:
    @pytest.mark.parametrize(
        "cls",
        [ConfigError, AlreadyExistsError, ConnectivityError, NotFound, InvalidHandle, TeardownError],
    )
    def test_is_backend_suite_error(self, cls: type[BackendSuiteError]) -> None:
        assert issubclass(cls, BackendSuiteError)

    def test_permission_denied_is_a_connectivity_error(self) -> None:
        assert issubclass(PermissionDenied, ConnectivityError)

    def test_already_exists_is_distinct_from_connectivity(self) -> None:
        assert not issubclass(AlreadyExistsError, ConnectivityError)
        assert not issubclass(ConnectivityError, AlreadyExistsError)


class TestCapabilityNotSupported:
    def test_carries_capability(self) -> None:
        e = CapabilityNotSupported("nope", capability="bulk_delete", backend="x")
        assert e.capability == "bulk_delete"
        assert str(e) == "nope | backend='x' | capability='bulk_delete'"
        assert repr(e) == "CapabilityNotSupported('nope', backend='x', capability='bulk_delete')"


class TestConformanceFailure:
    def test_is_an_assertion_error(self) -> None:
        assert issubclass(ConformanceFailure, AssertionError)
        assert not issubclass(ConformanceFailure, BackendSuiteError)

    def test_names_the_check(self) -> None:
        assert str(ConformanceFailure("content differs", check="save_load")) == "save_load: content differs"
        assert str(ConformanceFailure("content differs")) == "content differs"
