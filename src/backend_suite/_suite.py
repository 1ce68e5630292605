"""Suite orchestrator — runs one gated, isolated, always-cleaned-up test or benchmark run."""

from __future__ import annotations

import contextlib
import dataclasses
import enum
import logging
import threading
from typing import TYPE_CHECKING, Callable, Optional

from backend_suite import _benchmarks, _checks
from backend_suite._capabilities import Capability
from backend_suite._environment import Environment, ProcessEnvironment, SkipPolicy, SkipVerdict, missing_variable
from backend_suite._errors import AlreadyExistsError, BackendSuiteError, ConfigError, TeardownError
from backend_suite._factory import create_backend, delete_backend, open_backend
from backend_suite._handle import MARKER

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Sequence

    from backend_suite._backend import Backend
    from backend_suite._benchmarks import BenchmarkResult
    from backend_suite._checks import CheckFailure, RunContext
    from backend_suite._config import BackendConfig

log = logging.getLogger(__name__)


class Phase(enum.Enum):
    """Phases of a run, in the order they are entered."""

    INIT = "init"
    GATE_CHECKED = "gate_checked"
    CONFIGURED = "configured"
    CREATED = "created"
    BODY_EXECUTING = "body_executing"
    TORN_DOWN = "torn_down"
    DONE = "done"


class RunStatus(enum.Enum):
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


class RunMode(enum.Enum):
    TESTS = "tests"
    BENCHMARKS = "benchmarks"


@dataclasses.dataclass(frozen=True)
class RunResult:
    """Outcome of one run.

    :param suite: Name of the suite.
    :param mode: Whether the conformance checks or the benchmarks ran.
    :param status: Overall status.
    :param phase: The phase the run failed in, or ``DONE``.
    :param error: The error that decided a ``FAILED`` status.
    :param teardown_error: The teardown failure, reported even when the body failed too.
    :param teardown_skipped: The backend lacks bulk delete so the namespace was left behind.
    :param skip_reason: Why the run was skipped.
    :param skip_verdict: The skip policy's verdict on a skip.
    :param namespace: Namespace of the run, once configured.
    :param failures: Every failed check or benchmark.
    :param benchmarks: Timings of the benchmarks that completed.
    :param transitions: Every phase entered, in order.
    """

    suite: str
    mode: RunMode
    status: RunStatus
    phase: Phase
    error: Optional[BaseException] = None
    teardown_error: Optional[TeardownError] = None
    teardown_skipped: bool = False
    skip_reason: str = ""
    skip_verdict: Optional[SkipVerdict] = None
    namespace: str = ""
    failures: tuple[CheckFailure, ...] = ()
    benchmarks: tuple[BenchmarkResult, ...] = ()
    transitions: tuple[Phase, ...] = ()

    @property
    def passed(self) -> bool:
        return self.status is RunStatus.PASSED

    @property
    def failed(self) -> bool:
        return self.status is RunStatus.FAILED

    @property
    def skipped(self) -> bool:
        return self.status is RunStatus.SKIPPED

    def describe(self) -> str:
        """One-line, human-readable summary of the run."""
        head = f"{self.suite} {self.mode.value}"
        if self.skipped:
            text = f"{head}: skipped: {self.skip_reason}"
            if self.skip_verdict is SkipVerdict.DISALLOWED:
                text += " (network tests disallowed by policy)"
            return text
        if self.passed:
            text = f"{head}: passed"
            if self.teardown_skipped:
                text += f" (namespace {self.namespace} not removed: no bulk delete)"
            return text
        text = f"{head}: failed in phase {self.phase.value}: {self.error}"
        if len(self.failures) > 1:
            text += f" (+{len(self.failures) - 1} more failures)"
        if self.teardown_error is not None and self.teardown_error is not self.error:
            text += f"; teardown also failed: {self.teardown_error}"
        return text


class _Recorder:
    """Mutable state of a run in progress; frozen into a :class:`RunResult` at the end."""

    def __init__(self, suite: str, mode: RunMode) -> None:
        self.suite = suite
        self.mode = mode
        self.transitions: list[Phase] = []
        self.namespace = ""
        self.teardown_error: Optional[TeardownError] = None
        self.teardown_skipped = False
        self.enter(Phase.INIT)

    def enter(self, phase: Phase) -> None:
        log.debug("Suite %s (%s): entering %s", self.suite, self.mode.value, phase.name)
        self.transitions.append(phase)

    def finish(self, status: RunStatus, phase: Phase, **fields: object) -> RunResult:
        self.enter(Phase.DONE)
        result = RunResult(
            suite=self.suite,
            mode=self.mode,
            status=status,
            phase=phase,
            teardown_error=self.teardown_error,
            teardown_skipped=self.teardown_skipped,
            namespace=self.namespace,
            transitions=tuple(self.transitions),
            **fields,  # type: ignore[arg-type]
        )
        if result.failed:
            log.error("%s", result.describe())
        else:
            log.info("%s", result.describe())
        return result


Body = Callable[["RunContext"], "tuple[list[BenchmarkResult], list[CheckFailure]]"]


@dataclasses.dataclass(frozen=True)
class Suite:
    """A backend's conformance suite: the parameters of its runs.

    Runs share no state; a suite may be run from several threads or
    processes at once.

    :param name: Suite name, as used by the skip policy.
    :param new_config: Builds a configuration with a fresh namespace.
    :param create: Creates the backend instance for a configuration.
    :param open: Attaches to an existing backend instance.
    :param cleanup: Removes everything under a configuration's namespace.
    :param required_vars: Environment variables that must be set, in order.
    :param environment: Source of those variables and of the skip policy.
    :param policy: Skip policy; read from ``environment`` when ``None``.
    :param minimal_data: Use smaller payloads, for slow remote backends.
    :param requires_network: The suite talks to a remote service.
    :param wait_for_delayed_removal: Seconds to poll for eventually consistent removals.
    :param teardown_grace: Seconds teardown may take before it is abandoned.
    """

    name: str
    new_config: Callable[[], BackendConfig]
    create: Callable[[BackendConfig], Backend] = create_backend
    open: Callable[[BackendConfig], Backend] = open_backend
    cleanup: Callable[[BackendConfig], None] = delete_backend
    required_vars: Sequence[str] = ()
    environment: Environment = dataclasses.field(default_factory=ProcessEnvironment)
    policy: Optional[SkipPolicy] = None
    minimal_data: bool = False
    requires_network: bool = False
    wait_for_delayed_removal: float = 0.0
    teardown_grace: float = 60.0

    def __post_init__(self) -> None:
        if self.teardown_grace <= 0:
            raise ValueError(f"teardown_grace must be positive, got {self.teardown_grace}")
        if self.wait_for_delayed_removal < 0:
            raise ValueError(f"wait_for_delayed_removal must not be negative, got {self.wait_for_delayed_removal}")

    # region: entry points

    def run_tests(self, checks: Iterable[str] | None = None) -> RunResult:
        """Run the conformance checks against a freshly created namespace.

        :param checks: Names of the checks to run, in order. All by default.
        :raises ValueError: If a name is unknown.
        """
        names = _checks.select(checks, _checks.CHECKS)

        def body(ctx: RunContext) -> tuple[list[BenchmarkResult], list[CheckFailure]]:
            return [], _checks.run_checks(ctx, names)

        return self._run(RunMode.TESTS, body)

    def run_benchmarks(self, benchmarks: Iterable[str] | None = None, iterations: int | None = None) -> RunResult:
        """Time the benchmarks against a freshly created namespace.

        :param benchmarks: Names of the benchmarks to run, in order. All by default.
        :param iterations: Timed operations per benchmark.
        :raises ValueError: If a name is unknown or ``iterations`` is not positive.
        """
        names = _checks.select(benchmarks, _benchmarks.BENCHMARKS)
        if iterations is not None and iterations < 1:
            raise ValueError(f"iterations must be positive, got {iterations}")

        def body(ctx: RunContext) -> tuple[list[BenchmarkResult], list[CheckFailure]]:
            return _benchmarks.run_benchmarks(ctx, names, iterations)

        return self._run(RunMode.BENCHMARKS, body)

    # endregion

    # region: state machine

    def _run(self, mode: RunMode, body: Body) -> RunResult:
        run = _Recorder(self.name, mode)

        missing = missing_variable(self.environment, self.required_vars)
        run.enter(Phase.GATE_CHECKED)
        if missing is not None:
            return self._skip(run, f"environment variable {missing} not set")

        try:
            config = self.new_config()
        except Exception as exc:
            return run.finish(RunStatus.FAILED, Phase.CONFIGURED, error=exc)
        run.namespace = config.namespace
        run.enter(Phase.CONFIGURED)

        try:
            backend = self.create(config)
        except (AlreadyExistsError, ConfigError) as exc:
            # Nothing was written: either the probe found a marker or no backend was built.
            return run.finish(RunStatus.FAILED, Phase.CREATED, error=exc)
        except Exception as exc:
            self._teardown(run, config)
            return run.finish(RunStatus.FAILED, Phase.CREATED, error=exc)
        except BaseException:
            self._teardown(run, config)
            raise

        with self._acquired(run, config, backend):
            try:
                if not backend.test(MARKER):
                    raise BackendSuiteError(
                        f"marker missing right after create at {backend.location()}", backend=backend.name
                    )
            except Exception as exc:
                setup_error: Optional[Exception] = exc
            else:
                setup_error = None
                run.enter(Phase.CREATED)
                run.enter(Phase.BODY_EXECUTING)
                ctx = _checks.RunContext(suite=self, config=config, backend=backend)
                try:
                    timings, failures = body(ctx)
                except Exception as exc:
                    timings, failures = [], [_checks.CheckFailure(name=mode.value, error=exc)]

        if setup_error is not None:
            return run.finish(RunStatus.FAILED, Phase.CREATED, error=setup_error)
        fields: dict[str, object] = {"failures": tuple(failures), "benchmarks": tuple(timings)}
        if failures:
            return run.finish(RunStatus.FAILED, Phase.BODY_EXECUTING, error=failures[0].error, **fields)
        if run.teardown_error is not None:
            return run.finish(RunStatus.FAILED, Phase.TORN_DOWN, error=run.teardown_error, **fields)
        return run.finish(RunStatus.PASSED, Phase.DONE, **fields)

    def _skip(self, run: _Recorder, reason: str) -> RunResult:
        log.info("Suite %s skipped: %s", self.name, reason)
        policy = self.policy if self.policy is not None else SkipPolicy.from_environment(self.environment)
        verdict = policy.judge(self.name, requires_network=self.requires_network)
        if verdict is SkipVerdict.REQUIRED:
            error = ConfigError(f"{reason}, but skipping suite {self.name} is disallowed")
            return run.finish(RunStatus.FAILED, Phase.GATE_CHECKED, error=error, skip_reason=reason, skip_verdict=verdict)
        return run.finish(RunStatus.SKIPPED, Phase.GATE_CHECKED, skip_reason=reason, skip_verdict=verdict)

    @contextlib.contextmanager
    def _acquired(self, run: _Recorder, config: BackendConfig, backend: Backend) -> Iterator[Backend]:
        """Hold ``backend`` for the body; tear the namespace down on every exit path."""
        bulk_delete = backend.capabilities.supports(Capability.BULK_DELETE)
        if not bulk_delete:
            log.warning("%s cannot bulk delete; namespace %s will be left behind", backend.name, config.namespace)
        try:
            yield backend
        finally:
            try:
                backend.close()
            except Exception as exc:  # noqa: BLE001
                log.warning("Closing the backend of namespace %s failed: %s", config.namespace, exc)
            finally:
                if bulk_delete:
                    self._teardown(run, config)
                else:
                    run.teardown_skipped = True
                run.enter(Phase.TORN_DOWN)

    def _teardown(self, run: _Recorder, config: BackendConfig) -> None:
        """Run ``cleanup`` in a worker thread and wait at most ``teardown_grace`` seconds."""
        done = threading.Event()
        outcome: dict[str, BaseException] = {}

        def target() -> None:
            try:
                self.cleanup(config)
            except BaseException as exc:  # noqa: BLE001
                outcome["error"] = exc
            finally:
                done.set()

        worker = threading.Thread(target=target, name=f"teardown-{config.namespace}", daemon=True)
        worker.start()
        if not done.wait(self.teardown_grace):
            log.error(
                "Teardown of namespace %s did not finish within %.1fs; abandoning it",
                config.namespace,
                self.teardown_grace,
            )
            run.teardown_error = TeardownError(
                f"teardown of namespace {config.namespace!r} abandoned after {self.teardown_grace:.1f}s",
                backend=config.type,
            )
            return
        error = outcome.get("error")
        if error is None:
            log.debug("Tore down namespace %s", config.namespace)
            return
        log.error("Teardown of namespace %s failed: %s", config.namespace, error)
        if isinstance(error, TeardownError):
            run.teardown_error = error
        else:
            run.teardown_error = TeardownError(
                f"teardown of namespace {config.namespace!r} failed: {error}", backend=config.type
            )
            run.teardown_error.__cause__ = error

    # endregion
