"""Benchmarks — timed bodies run against a created backend."""

from __future__ import annotations

import dataclasses
import hashlib
import logging
import time
from typing import TYPE_CHECKING, Callable

from backend_suite._capabilities import Capability
from backend_suite._checks import CheckFailure, RunContext, expect
from backend_suite._handle import Handle, ResourceKind

if TYPE_CHECKING:
    from collections.abc import Iterable

log = logging.getLogger(__name__)

_KiB = 1024
_MiB = 1024 * _KiB


@dataclasses.dataclass(frozen=True)
class BenchmarkResult:
    """Timing of one benchmark.

    :param name: Benchmark name.
    :param iterations: Number of timed operations.
    :param seconds: Total wall time of the timed operations.
    :param bytes_per_op: Payload size moved by one operation (0 if none).
    """

    name: str
    iterations: int
    seconds: float
    bytes_per_op: int = 0

    @property
    def ns_per_op(self) -> float:
        return self.seconds * 1e9 / self.iterations if self.iterations else 0.0

    @property
    def mb_per_second(self) -> float:
        if not self.bytes_per_op or not self.seconds:
            return 0.0
        return self.bytes_per_op * self.iterations / _MiB / self.seconds

    def __str__(self) -> str:
        line = f"{self.name}\t{self.iterations}\t{self.ns_per_op:.0f} ns/op"
        if self.bytes_per_op:
            line += f"\t{self.mb_per_second:.2f} MB/s"
        return line


BenchmarkFn = Callable[[RunContext, int], BenchmarkResult]
BENCHMARKS: dict[str, BenchmarkFn] = {}


def benchmark(fn: BenchmarkFn) -> BenchmarkFn:
    """Register ``fn`` as a benchmark named after the function."""
    BENCHMARKS[fn.__name__.removeprefix("bench_")] = fn
    return fn


def payload_size(ctx: RunContext) -> int:
    return 256 * _KiB if ctx.minimal_data else 4 * _MiB


def default_iterations(ctx: RunContext) -> int:
    return 3 if ctx.minimal_data else 10


class _Timer:
    def __init__(self) -> None:
        self.elapsed_ns = 0

    def __enter__(self) -> _Timer:
        self._start = time.perf_counter_ns()
        return self

    def __exit__(self, *exc: object) -> None:
        self.elapsed_ns += time.perf_counter_ns() - self._start


def _load_benchmark(ctx: RunContext, name: str, iterations: int, *, length: int, offset: int) -> BenchmarkResult:
    if (length or offset) and not ctx.backend.capabilities.supports(Capability.RANGED_LOAD):
        log.info("%s does not support ranged loads, loading whole objects", ctx.backend.name)
        length = offset = 0
    handle, data = ctx.random_object(payload_size(ctx))
    ctx.backend.save(handle, data)
    want = data[offset : offset + length] if length else data[offset:]
    timer = _Timer()
    try:
        for _ in range(iterations):
            with timer:
                got = ctx.backend.load(handle, length=length, offset=offset)
            expect(got == want, f"{name}: loaded content differs")
    finally:
        ctx.backend.remove(handle, missing_ok=True)
    return BenchmarkResult(name, iterations, timer.elapsed_ns / 1e9, len(want))


@benchmark
def bench_save(ctx: RunContext, iterations: int) -> BenchmarkResult:
    _, data = ctx.random_object(payload_size(ctx))
    timer = _Timer()
    saved: list[Handle] = []
    try:
        for i in range(iterations):
            handle = Handle(ResourceKind.DATA, hashlib.sha256(data + i.to_bytes(4, "big")).hexdigest())
            with timer:
                ctx.backend.save(handle, data)
            saved.append(handle)
    finally:
        for handle in saved:
            ctx.backend.remove(handle, missing_ok=True)
    return BenchmarkResult("save", iterations, timer.elapsed_ns / 1e9, len(data))


@benchmark
def bench_load_file(ctx: RunContext, iterations: int) -> BenchmarkResult:
    return _load_benchmark(ctx, "load_file", iterations, length=0, offset=0)


@benchmark
def bench_load_partial_file(ctx: RunContext, iterations: int) -> BenchmarkResult:
    return _load_benchmark(ctx, "load_partial_file", iterations, length=payload_size(ctx) // 2, offset=0)


@benchmark
def bench_load_partial_file_offset(ctx: RunContext, iterations: int) -> BenchmarkResult:
    size = payload_size(ctx)
    return _load_benchmark(ctx, "load_partial_file_offset", iterations, length=size // 2, offset=size // 4)


@benchmark
def bench_test(ctx: RunContext, iterations: int) -> BenchmarkResult:
    handle, data = ctx.random_object(1 * _KiB)
    ctx.backend.save(handle, data)
    timer = _Timer()
    try:
        for _ in range(iterations):
            with timer:
                present = ctx.backend.test(handle)
            expect(present, "test: saved object not found")
    finally:
        ctx.backend.remove(handle, missing_ok=True)
    return BenchmarkResult("test", iterations, timer.elapsed_ns / 1e9)


def run_benchmarks(
    ctx: RunContext, names: Iterable[str], iterations: int | None = None
) -> tuple[list[BenchmarkResult], list[CheckFailure]]:
    """Run the named benchmarks in order.

    :param iterations: Timed operations per benchmark. Defaults to a size
        suited to the suite's data mode.
    :raises ValueError: If ``iterations`` is not positive.
    """
    if iterations is None:
        iterations = default_iterations(ctx)
    if iterations < 1:
        raise ValueError(f"iterations must be positive, got {iterations}")
    results: list[BenchmarkResult] = []
    failures: list[CheckFailure] = []
    for name in names:
        try:
            result = BENCHMARKS[name](ctx, iterations)
        except Exception as exc:
            log.warning("Benchmark %s failed: %s", name, exc)
            failures.append(CheckFailure(name=name, error=exc))
            continue
        log.info("%s", result)
        results.append(result)
    return results, failures
