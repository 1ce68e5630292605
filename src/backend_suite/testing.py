"""pytest glue: run a suite inside a test and report its outcome to pytest.

Usage::

    from backend_suite import bindings, testing

    def test_s3_backend():
        testing.run_tests(bindings.s3_suite())
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from collections.abc import Iterable

    from backend_suite._suite import RunResult, Suite


def _report(result: RunResult) -> RunResult:
    if result.skipped:
        pytest.skip(result.describe())
    if result.failed:
        lines = [result.describe()]
        lines.extend(f"  {failure}" for failure in result.failures[1:])
        pytest.fail("\n".join(lines), pytrace=False)
    return result


def run_tests(suite: Suite, checks: Iterable[str] | None = None) -> RunResult:
    """Run ``suite``'s conformance checks; skip or fail the calling test accordingly."""
    return _report(suite.run_tests(checks))


def run_benchmarks(suite: Suite, benchmarks: Iterable[str] | None = None, iterations: int | None = None) -> RunResult:
    """Run ``suite``'s benchmarks; skip or fail the calling test accordingly."""
    return _report(suite.run_benchmarks(benchmarks, iterations))
