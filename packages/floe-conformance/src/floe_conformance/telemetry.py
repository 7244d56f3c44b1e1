"""OpenTelemetry spans for lifecycle runs.

Spans come from the globally configured tracer provider; with none
configured they are no-ops. When a traced call receives a Scenario, the
span carries its id so every step of one scenario can be found together.

Example:
    >>> from floe_conformance.telemetry import traced
    >>>
    >>> @traced(operation_name="conformance.optimize")
    ... def optimize(scenario: Scenario) -> None:
    ...     ...

Attributes:
    TRACER_NAME: Instrumentation library name for OpenTelemetry.
    SCENARIO_ATTRIBUTE: Span attribute holding the scenario id.
"""

from __future__ import annotations

import functools
from typing import TYPE_CHECKING, Any, ParamSpec, TypeVar, overload

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode, Tracer

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

P = ParamSpec("P")
R = TypeVar("R")

TRACER_NAME = "floe-conformance"
SCENARIO_ATTRIBUTE = "floe.conformance.scenario"


def get_tracer() -> Tracer:
    """Return the package tracer."""
    return trace.get_tracer(TRACER_NAME)


def _scenario_id(args: tuple[Any, ...], kwargs: Mapping[str, Any]) -> str | None:
    for value in (kwargs.get("scenario"), *args):
        scenario_id = getattr(value, "scenario_id", None)
        if isinstance(scenario_id, str):
            return scenario_id
    return None


@overload
def traced(
    func: Callable[P, R],
    *,
    operation_name: str | None = ...,
    attributes: dict[str, Any] | None = ...,
) -> Callable[P, R]: ...


@overload
def traced(
    func: None = ...,
    *,
    operation_name: str | None = ...,
    attributes: dict[str, Any] | None = ...,
) -> Callable[[Callable[P, R]], Callable[P, R]]: ...


def traced(
    func: Callable[P, R] | None = None,
    *,
    operation_name: str | None = None,
    attributes: dict[str, Any] | None = None,
) -> Callable[P, R] | Callable[[Callable[P, R]], Callable[P, R]]:
    """Wrap a function in a span, with or without parentheses.

    A raised exception is recorded on the span, which is then marked as
    ERROR, and the exception propagates unchanged.

    Args:
        func: Function being decorated (bare ``@traced`` form).
        operation_name: Span name; the function name when omitted.
        attributes: Attributes set on every span.

    Returns:
        The wrapped function.
    """

    def decorator(fn: Callable[P, R]) -> Callable[P, R]:
        span_name = operation_name or fn.__name__

        @functools.wraps(fn)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            with get_tracer().start_as_current_span(span_name) as span:
                span.set_attribute("floe.conformance.operation", fn.__name__)
                scenario_id = _scenario_id(args, kwargs)
                if scenario_id is not None:
                    span.set_attribute(SCENARIO_ATTRIBUTE, scenario_id)
                for key, value in (attributes or {}).items():
                    span.set_attribute(key, value)

                try:
                    return fn(*args, **kwargs)
                except Exception as exc:
                    span.record_exception(exc)
                    span.set_status(Status(StatusCode.ERROR, str(exc)))
                    raise

        return wrapper

    return decorator if func is None else decorator(func)


__all__ = ["SCENARIO_ATTRIBUTE", "TRACER_NAME", "get_tracer", "traced"]
