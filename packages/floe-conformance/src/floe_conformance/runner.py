"""Scenario execution, timeouts and scoped collaborator handling.

ScenarioRunner turns a Scenario into a ScenarioResult: it drives the
lifecycle under a deadline, classifies an aborted run into a failing
Verdict, and validates a completed run. A failure in one scenario never
prevents another from running.

ConformanceSession owns the collaborators for a run: it builds them,
creates the shared schema, and always tears both down again, including
after a partially failed setup.

Example:
    >>> with ConformanceSession(config, make_executor, make_lister) as session:
    ...     report = session.runner().run_all(LocationPatternSet().scenarios())
    >>> report.passed
    True
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from types import TracebackType
from typing import Any

import structlog

from floe_conformance.dialect import SqlDialect
from floe_conformance.driver import LifecycleDriver
from floe_conformance.errors import (
    CommandExecutionError,
    InvariantViolation,
    LocationError,
    ScenarioTimeout,
)
from floe_conformance.models import (
    ConformanceReport,
    HarnessConfig,
    LifecycleKind,
    LifecycleRecord,
    Scenario,
    ScenarioResult,
    Verdict,
    VerdictKind,
)
from floe_conformance.protocols import CommandExecutor, ObjectLister
from floe_conformance.telemetry import traced
from floe_conformance.validator import InvariantValidator

logger = structlog.get_logger(__name__)


# =============================================================================
# Scenario Runner
# =============================================================================


class ScenarioRunner:
    """Runs scenarios with a deadline and reports verdicts.

    Args:
        driver: LifecycleDriver bound to the collaborators.
        validator: InvariantValidator. Defaults to a new instance.
        timeout: Per-scenario deadline in seconds. Defaults to the driver
            config's scenario_timeout_seconds.
    """

    def __init__(
        self,
        driver: LifecycleDriver,
        validator: InvariantValidator | None = None,
        timeout: float | None = None,
    ) -> None:
        self._driver = driver
        self._validator = validator or InvariantValidator()
        self._timeout = timeout if timeout is not None else driver.config.scenario_timeout_seconds

    @property
    def timeout(self) -> float:
        """Per-scenario deadline in seconds."""
        return self._timeout

    @traced(operation_name="conformance.run_scenario")
    def run(
        self,
        scenario: Scenario,
        lifecycle: LifecycleKind = LifecycleKind.BASIC,
    ) -> ScenarioResult:
        """Drive and validate one scenario.

        The lifecycle runs on a worker thread. When the deadline passes the
        worker is asked to stop at its next step (and then releases what it
        created), and a TIMEOUT verdict is returned without waiting for it.

        Args:
            scenario: Scenario to run.
            lifecycle: Lifecycle variant.

        Returns:
            ScenarioResult. Aborted runs carry a single failing verdict and
            the checkpoints recorded before the abort.
        """
        record = LifecycleRecord(scenario, lifecycle)
        cancel = threading.Event()
        log = logger.bind(scenario=scenario.scenario_id, lifecycle=lifecycle.value)
        started = time.monotonic()

        drive = self._driver.run
        if lifecycle is LifecycleKind.COMPACTION:
            drive = self._driver.run_compaction
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="conformance-scenario")
        try:
            future = pool.submit(drive, scenario, record, cancel)
            try:
                future.result(timeout=self._timeout)
            except FutureTimeoutError:
                cancel.set()
                log.error(
                    "runner.scenario_timeout",
                    timeout=self._timeout,
                    checkpoints=list(record.names),
                )
                error = ScenarioTimeout(
                    f"Scenario exceeded {self._timeout}s",
                    scenario_id=scenario.scenario_id,
                    timeout=self._timeout,
                )
                return self._aborted(record, error, VerdictKind.TIMEOUT, started)
            except InvariantViolation as e:
                log.warning("runner.scenario_failed", error=str(e))
                return self._result(record, (Verdict.from_violation("lifecycle", e),), started)
            except ScenarioTimeout as e:
                return self._aborted(record, e, VerdictKind.TIMEOUT, started)
            except LocationError as e:
                log.error("runner.location_failure", error=str(e))
                return self._aborted(record, e, VerdictKind.LOCATION_FAILURE, started)
            except CommandExecutionError as e:
                log.error("runner.command_failure", error=str(e))
                return self._aborted(record, e, VerdictKind.INFRASTRUCTURE_FAILURE, started)
            except Exception as e:
                log.error("runner.unexpected_failure", error=str(e), error_type=type(e).__name__)
                return self._aborted(record, e, VerdictKind.INFRASTRUCTURE_FAILURE, started)
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        verdicts = self._validator.validate(record)
        result = self._result(record, verdicts, started)
        log.info("runner.scenario_completed", passed=result.passed)
        return result

    def run_all(
        self,
        scenarios: Iterable[Scenario],
        lifecycle: LifecycleKind = LifecycleKind.BASIC,
        max_workers: int | None = None,
    ) -> ConformanceReport:
        """Run scenarios concurrently and aggregate a report.

        Args:
            scenarios: Scenarios to run.
            lifecycle: Lifecycle variant for every scenario.
            max_workers: Concurrency. Defaults to the config's max_workers.

        Returns:
            ConformanceReport with results in input order.
        """
        scenario_list = list(scenarios)
        workers = max_workers or self._driver.config.max_workers
        logger.info(
            "runner.run_all_started",
            scenario_count=len(scenario_list),
            lifecycle=lifecycle.value,
            max_workers=workers,
        )
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="conformance") as pool:
            results = list(pool.map(lambda s: self.run(s, lifecycle), scenario_list))
        report = ConformanceReport(results=tuple(results))
        logger.info(
            "runner.run_all_completed",
            passed=report.passed,
            counts={k.value: v for k, v in report.count_by_kind().items()},
        )
        return report

    def _aborted(
        self,
        record: LifecycleRecord,
        error: Exception,
        kind: VerdictKind,
        started: float,
    ) -> ScenarioResult:
        verdict = Verdict.from_error(record.scenario.scenario_id, error, kind, record.names)
        return self._result(record, (verdict,), started)

    def _result(
        self,
        record: LifecycleRecord,
        verdicts: tuple[Verdict, ...],
        started: float,
    ) -> ScenarioResult:
        return ScenarioResult(
            scenario=record.scenario,
            lifecycle=record.lifecycle,
            verdicts=verdicts,
            checkpoints=record.checkpoints,
            duration_seconds=time.monotonic() - started,
        )


# =============================================================================
# Session
# =============================================================================


class ConformanceSession:
    """Scoped acquisition of collaborators and the shared schema.

    Teardown always runs and never raises: it drops the shared schema if it
    was created and closes every collaborator that was built, skipping
    anything that never initialised.

    Args:
        config: Shared run configuration.
        executor_factory: Builds the CommandExecutor.
        lister_factory: Builds the ObjectLister.
        dialect: Command builder shared with the driver.
        create_shared_schema: Create config.schema_name on entry.
    """

    def __init__(
        self,
        config: HarnessConfig,
        executor_factory: Callable[[], CommandExecutor],
        lister_factory: Callable[[], ObjectLister],
        dialect: SqlDialect | None = None,
        create_shared_schema: bool = True,
    ) -> None:
        self.config = config
        self._executor_factory = executor_factory
        self._lister_factory = lister_factory
        self._dialect = dialect or SqlDialect(
            partition_keyword=config.partition_keyword,
            location_keyword=config.location_keyword,
        )
        self._create_shared_schema = create_shared_schema
        self._schema_created = False
        self.executor: CommandExecutor | None = None
        self.lister: ObjectLister | None = None

    def __enter__(self) -> ConformanceSession:
        try:
            self.executor = self._executor_factory()
            self.lister = self._lister_factory()
            if self._create_shared_schema:
                self.executor.execute(self._dialect.create_schema(self.config.schema_name))
                self._schema_created = True
                logger.info("session.schema_created", schema=self.config.schema_name)
        except Exception:
            self.close()
            raise
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def driver(self) -> LifecycleDriver:
        """Build a LifecycleDriver over this session's collaborators."""
        if self.executor is None or self.lister is None:
            msg = "ConformanceSession is not open"
            raise RuntimeError(msg)
        return LifecycleDriver(self.executor, self.lister, self.config, self._dialect)

    def runner(
        self,
        validator: InvariantValidator | None = None,
        timeout: float | None = None,
    ) -> ScenarioRunner:
        """Build a ScenarioRunner over this session's collaborators."""
        return ScenarioRunner(self.driver(), validator=validator, timeout=timeout)

    def close(self) -> None:
        """Release the shared schema and collaborators. Safe to call repeatedly."""
        if self._schema_created and self.executor is not None:
            try:
                self.executor.execute(
                    self._dialect.drop_schema(self.config.schema_name, cascade=True)
                )
                logger.info("session.schema_dropped", schema=self.config.schema_name)
            except Exception as e:
                logger.warning(
                    "session.schema_drop_failed",
                    schema=self.config.schema_name,
                    error=str(e),
                )
            self._schema_created = False

        for name in ("lister", "executor"):
            collaborator = getattr(self, name)
            if collaborator is not None:
                _close_quietly(name, collaborator)
            setattr(self, name, None)


def _close_quietly(name: str, collaborator: Any) -> None:
    close = getattr(collaborator, "close", None)
    if not callable(close):
        return
    try:
        close()
    except Exception as e:
        logger.warning("session.close_failed", collaborator=name, error=str(e))


__all__ = ["ConformanceSession", "ScenarioRunner"]
