"""Conformance checks — the generic test bodies run against a created backend."""

from __future__ import annotations

import dataclasses
import hashlib
import io
import logging
import os
from typing import TYPE_CHECKING, Callable

from tenacity import Retrying, retry_if_result, stop_after_delay, wait_fixed

from backend_suite._capabilities import Capability
from backend_suite._errors import AlreadyExistsError, ConformanceFailure, NotFound
from backend_suite._handle import MARKER, Handle, ResourceKind

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from backend_suite._backend import Backend
    from backend_suite._config import BackendConfig
    from backend_suite._suite import Suite

log = logging.getLogger(__name__)

_KiB = 1024
_MiB = 1024 * _KiB


@dataclasses.dataclass(frozen=True)
class CheckFailure:
    """One failed check or benchmark of a run.

    :param name: Name of the check.
    :param error: The exception it raised.
    """

    name: str
    error: BaseException

    def __str__(self) -> str:
        text = str(self.error)
        return text if text.startswith(f"{self.name}: ") else f"{self.name}: {text}"


@dataclasses.dataclass(frozen=True)
class RunContext:
    """Everything a body needs: the suite, its configuration and the created backend."""

    suite: Suite
    config: BackendConfig
    backend: Backend

    @property
    def minimal_data(self) -> bool:
        return self.suite.minimal_data

    def reopen(self) -> Backend:
        """Open a second handle on the run's namespace."""
        return self.suite.open(self.config)

    def random_object(self, size: int, kind: ResourceKind = ResourceKind.DATA) -> tuple[Handle, bytes]:
        """Random content and a handle named after its SHA-256."""
        data = os.urandom(size)
        return Handle(kind, hashlib.sha256(data).hexdigest()), data

    def wait_removed(self, handle: Handle) -> bool:
        """Return whether ``handle`` is gone, polling on eventually consistent backends."""
        delay = self.suite.wait_for_delayed_removal
        if delay <= 0:
            return not self.backend.test(handle)
        retrying = Retrying(
            retry=retry_if_result(bool),
            stop=stop_after_delay(delay),
            wait=wait_fixed(min(0.2, delay)),
            retry_error_callback=lambda state: state.outcome.result(),  # type: ignore[union-attr]
        )
        return not retrying(self.backend.test, handle)


def expect(condition: object, message: str) -> None:
    """Raise :class:`ConformanceFailure` unless ``condition`` holds."""
    if not condition:
        raise ConformanceFailure(message)


CheckFn = Callable[[RunContext], None]
CHECKS: dict[str, CheckFn] = {}


def check(fn: CheckFn) -> CheckFn:
    """Register ``fn`` as a conformance check named after the function."""
    CHECKS[fn.__name__.removeprefix("check_")] = fn
    return fn


def _sizes(ctx: RunContext) -> list[int]:
    if ctx.minimal_data:
        return [1, 1023, 64 * _KiB + 7]
    return [1, 1023, 64 * _KiB + 7, _MiB + 17, 5 * _MiB + 3]


def _saved(ctx: RunContext, handle: Handle, data: bytes) -> None:
    ctx.backend.save(handle, data)
    expect(ctx.backend.test(handle), f"{handle} missing right after save")


# region: creation and reopening


@check
def check_location(ctx: RunContext) -> None:
    location = ctx.backend.location()
    expect(isinstance(location, str) and location, "location() must return a non-empty string")
    expect(ctx.config.namespace in location, f"location {location!r} does not mention namespace")


@check
def check_marker_present(ctx: RunContext) -> None:
    expect(ctx.backend.test(MARKER), "marker missing after create")
    content = ctx.backend.load(MARKER)
    expect(content, "marker is empty")
    expect(ctx.backend.stat(MARKER).size == len(content), "stat size of marker differs from its content")
    listed = [info.handle for info in ctx.backend.list(ResourceKind.CONFIG)]
    expect(listed == [MARKER], f"list(CONFIG) returned {listed}")


@check
def check_create_rejects_existing(ctx: RunContext) -> None:
    try:
        duplicate = ctx.suite.create(ctx.config)
    except AlreadyExistsError:
        return
    duplicate.close()
    raise ConformanceFailure("create succeeded on a namespace that already holds a marker")


@check
def check_reopen_preserves_state(ctx: RunContext) -> None:
    handle, data = ctx.random_object(4 * _KiB)
    _saved(ctx, handle, data)
    try:
        with ctx.reopen() as reopened:
            expect(reopened.test(MARKER), "marker not visible after reopen")
            expect(reopened.test(handle), f"{handle} not visible after reopen")
            expect(reopened.load(handle) == data, f"{handle} content changed after reopen")
    finally:
        ctx.backend.remove(handle, missing_ok=True)


@check
def check_open_empty_namespace(ctx: RunContext) -> None:
    fresh = ctx.suite.new_config()
    expect(fresh.namespace != ctx.config.namespace, "config factory repeated a namespace")
    with ctx.suite.open(fresh) as backend:
        expect(not backend.test(MARKER), "fresh namespace already holds a marker")
        expect(not list(backend.list(ResourceKind.DATA)), "fresh namespace already holds data")
        expect(not backend.test(Handle(ResourceKind.DATA, "0" * 64)), "test() reports a missing object")


# endregion

# region: save and load


@check
def check_save_load(ctx: RunContext) -> None:
    for size in _sizes(ctx):
        handle, data = ctx.random_object(size)
        _saved(ctx, handle, data)
        try:
            loaded = ctx.backend.load(handle)
            expect(len(loaded) == size, f"loaded {len(loaded)} bytes, saved {size}")
            expect(loaded == data, f"content of {handle} differs after load")
            expect(ctx.backend.stat(handle).size == size, f"stat size of {handle} is wrong")
        finally:
            ctx.backend.remove(handle, missing_ok=True)
        expect(ctx.wait_removed(handle), f"{handle} still present after remove")


@check
def check_save_stream(ctx: RunContext) -> None:
    handle, data = ctx.random_object(16 * _KiB + 3)
    ctx.backend.save(handle, io.BytesIO(data))
    try:
        expect(ctx.backend.load(handle) == data, "content saved from a stream differs")
    finally:
        ctx.backend.remove(handle, missing_ok=True)


@check
def check_ranged_load(ctx: RunContext) -> None:
    if not ctx.backend.capabilities.supports(Capability.RANGED_LOAD):
        log.info("%s does not support ranged loads", ctx.backend.name)
        return
    handle, data = ctx.random_object(4 * _KiB + 11)
    _saved(ctx, handle, data)
    try:
        size = len(data)
        for offset, length in ((0, 10), (5, 0), (100, 100), (size - 1, 1), (0, size), (size // 2, size // 3)):
            got = ctx.backend.load(handle, length=length, offset=offset)
            want = data[offset : offset + length] if length else data[offset:]
            expect(got == want, f"load(length={length}, offset={offset}) returned {len(got)} wrong bytes")
    finally:
        ctx.backend.remove(handle, missing_ok=True)


@check
def check_zero_length(ctx: RunContext) -> None:
    handle = Handle(ResourceKind.DATA, hashlib.sha256(b"").hexdigest())
    _saved(ctx, handle, b"")
    try:
        expect(ctx.backend.load(handle) == b"", "empty object loads as non-empty")
        expect(ctx.backend.stat(handle).size == 0, "empty object has non-zero size")
    finally:
        ctx.backend.remove(handle, missing_ok=True)


@check
def check_duplicate_save(ctx: RunContext) -> None:
    handle, data = ctx.random_object(1 * _KiB)
    _saved(ctx, handle, data)
    try:
        try:
            ctx.backend.save(handle, b"other")
        except AlreadyExistsError:
            pass
        else:
            raise ConformanceFailure("saving over an existing object did not fail")
        expect(ctx.backend.load(handle) == data, "rejected save modified the object")
        ctx.backend.save(handle, b"other", overwrite=True)
        expect(ctx.backend.load(handle) == b"other", "overwrite did not replace the content")
    finally:
        ctx.backend.remove(handle, missing_ok=True)


@check
def check_missing_object(ctx: RunContext) -> None:
    handle = Handle(ResourceKind.DATA, hashlib.sha256(ctx.config.namespace.encode()).hexdigest())
    expect(not ctx.backend.test(handle), "test() reports a missing object")
    for op in (ctx.backend.load, ctx.backend.stat):
        try:
            op(handle)
        except NotFound:
            continue
        raise ConformanceFailure(f"{op.__name__}() of a missing object did not raise NotFound")


# endregion

# region: listing and removal


@check
def check_list(ctx: RunContext) -> None:
    saved: dict[Handle, int] = {}
    key: Handle | None = None
    try:
        for i in range(5):
            handle, data = ctx.random_object(100 + i)
            _saved(ctx, handle, data)
            saved[handle] = len(data)
        key, key_data = ctx.random_object(32, ResourceKind.KEY)
        _saved(ctx, key, key_data)
        listed = {info.handle: info.size for info in ctx.backend.list(ResourceKind.DATA)}
        expect(listed == saved, f"list(DATA) returned {len(listed)} objects, expected {len(saved)}")
        keys = [info.handle for info in ctx.backend.list(ResourceKind.KEY)]
        expect(keys == [key], f"list(KEY) returned {keys}")
        expect(not list(ctx.backend.list(ResourceKind.SNAPSHOT)), "list(SNAPSHOT) of an empty kind is not empty")
    finally:
        for handle in saved:
            ctx.backend.remove(handle, missing_ok=True)
        if key is not None:
            ctx.backend.remove(key, missing_ok=True)


@check
def check_remove(ctx: RunContext) -> None:
    handle, data = ctx.random_object(512)
    _saved(ctx, handle, data)
    ctx.backend.remove(handle)
    expect(ctx.wait_removed(handle), f"{handle} still present after remove")
    try:
        ctx.backend.remove(handle)
    except NotFound:
        pass
    else:
        raise ConformanceFailure("removing a missing object did not raise NotFound")
    ctx.backend.remove(handle, missing_ok=True)


@check
def check_kinds(ctx: RunContext) -> None:
    for kind in ResourceKind:
        if kind is ResourceKind.CONFIG:
            continue
        handle, data = ctx.random_object(64, kind)
        _saved(ctx, handle, data)
        try:
            expect(ctx.backend.load(handle) == data, f"content of {handle} differs")
            listed = [info.handle for info in ctx.backend.list(kind)]
            expect(handle in listed, f"{handle} missing from list({kind.name})")
        finally:
            ctx.backend.remove(handle, missing_ok=True)


# endregion


def select(names: Iterable[str] | None, registry: Mapping[str, object]) -> list[str]:
    """Validate ``names`` against ``registry``; ``None`` selects everything."""
    if names is None:
        return list(registry)
    selected = list(names)
    unknown = sorted(set(selected) - set(registry))
    if unknown:
        raise ValueError(f"Unknown names {unknown}. Available: {sorted(registry)}")
    return selected


def run_checks(ctx: RunContext, names: Iterable[str]) -> list[CheckFailure]:
    """Run the named checks in order and collect their failures."""
    failures: list[CheckFailure] = []
    for name in names:
        log.debug("Running check %s against %s", name, ctx.backend.location())
        try:
            CHECKS[name](ctx)
        except Exception as exc:
            if isinstance(exc, ConformanceFailure) and not exc.check:
                exc.check = name
            log.warning("Check %s failed: %s", name, exc)
            failures.append(CheckFailure(name=name, error=exc))
    return failures
