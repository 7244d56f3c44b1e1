"""floe-conformance: storage-location conformance harness for table systems.

This package drives a lakehouse table system through create, mutate,
compact and drop lifecycles for tables whose locations exercise URI edge
cases (trailing slash, double slash, percent, whitespace), and checks what
the engine reports and what the object store actually holds at each step.

The harness depends only on two contracts supplied by the caller: a
CommandExecutor bound to the query engine and an ObjectLister bound to the
object store.

Example:
    >>> from floe_conformance import ConformanceSession, HarnessConfig, LocationPatternSet
    >>>
    >>> config = HarnessConfig(bucket_name="lake")
    >>> with ConformanceSession(config, make_executor, make_lister) as session:
    ...     report = session.runner().run_all(LocationPatternSet().scenarios())
    >>> report.passed
    True

Modules:
    patterns: Location patterns and the scenario matrix
    codec: Location extraction and storage-key conversion
    dialect: Command construction
    driver: Lifecycle driver
    validator: Invariant checks and the compaction retention law
    runner: Scenario runner and session
    models: Pydantic models and enumerations
    errors: Custom exception types
    telemetry: OpenTelemetry instrumentation
"""

from __future__ import annotations

__version__ = "0.1.0"
__all__ = [
    # Orchestration
    "ConformanceSession",
    "ScenarioRunner",
    "LifecycleDriver",
    "InvariantValidator",
    # Scenario matrix
    "LocationPatternSet",
    "HarnessConfig",
    # Contracts
    "CommandExecutor",
    "ObjectLister",
]

_LAZY_IMPORTS = {
    "ConformanceSession": "floe_conformance.runner",
    "ScenarioRunner": "floe_conformance.runner",
    "LifecycleDriver": "floe_conformance.driver",
    "InvariantValidator": "floe_conformance.validator",
    "LocationPatternSet": "floe_conformance.patterns",
    "HarnessConfig": "floe_conformance.models",
    "CommandExecutor": "floe_conformance.protocols",
    "ObjectLister": "floe_conformance.protocols",
}


# Lazy imports to avoid circular dependencies and improve startup time
def __getattr__(name: str) -> object:
    """Lazy import of package components."""
    module_name = _LAZY_IMPORTS.get(name)
    if module_name is not None:
        import importlib

        return getattr(importlib.import_module(module_name), name)
    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
