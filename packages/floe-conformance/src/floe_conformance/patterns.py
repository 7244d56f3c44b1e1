"""Location-encoding edge cases and the scenario matrix.

LocationPatternSet enumerates the path shapes a storage-backed table
implementation must tolerate without normalising or re-encoding them:

    regular              s3://<bucket>/<schema>/regular/<leaf>
    trailing_slash       s3://<bucket>/<schema>/trailing_slash/<leaf>/
    double_slash         s3://<bucket>/<schema>//double_slash/<leaf>
    percent              s3://<bucket>/<schema>/a%percent/<leaf>
    whitespace           s3://<bucket>/<schema>/a whitespace/<leaf>
    trailing_whitespace  s3://<bucket>/<schema>/trailing_whitespace/<leaf>␠

Example:
    >>> from floe_conformance.patterns import LocationPatternSet
    >>> pattern_set = LocationPatternSet()
    >>> [p.name for p in pattern_set.patterns()][:2]
    ['regular', 'trailing_slash']
    >>> len(pattern_set.scenarios())
    12
"""

from __future__ import annotations

import itertools
from collections.abc import Iterable, Sequence

from floe_conformance.models import LocationPattern, LocationTarget, Scenario

# (name, path after "<scheme>://%s/%s") -- "%%" is a literal percent sign
_EDGE_CASES: tuple[tuple[str, str], ...] = (
    ("regular", "/regular/%s"),
    ("trailing_slash", "/trailing_slash/%s/"),
    ("double_slash", "//double_slash/%s"),
    ("percent", "/a%%percent/%s"),
    ("whitespace", "/a whitespace/%s"),
    ("trailing_whitespace", "/trailing_whitespace/%s "),
)

PARTITIONED_VALUES: tuple[bool, ...] = (False, True)
"""Partitioning axis of the scenario matrix, in matrix order."""


class LocationPatternSet:
    """Fixed, restartable set of location patterns.

    Every call to patterns() or scenarios() builds a fresh sequence, so the
    matrix can be enumerated any number of times (e.g., once per pytest
    collection and once per report).

    Args:
        scheme: URI scheme of the generated templates.
        extra_patterns: Additional patterns appended after the built-in ones.

    Example:
        >>> LocationPatternSet(scheme="gs").patterns()[0].template
        'gs://%s/%s/regular/%s'
    """

    def __init__(
        self,
        scheme: str = "s3",
        extra_patterns: Iterable[LocationPattern] = (),
    ) -> None:
        self._scheme = scheme
        self._extra = tuple(extra_patterns)

    @property
    def scheme(self) -> str:
        """URI scheme used by the built-in templates."""
        return self._scheme

    def patterns(self) -> Sequence[LocationPattern]:
        """Return every location pattern, built-in ones first."""
        built_in = [
            LocationPattern(template=f"{self._scheme}://%s/%s{path}", name=name)
            for name, path in _EDGE_CASES
        ]
        return tuple(built_in) + self._extra

    def scenarios(
        self,
        targets: Iterable[LocationTarget] = (LocationTarget.TABLE,),
    ) -> Sequence[Scenario]:
        """Return the cartesian product of targets, patterns and partitioning.

        Order is deterministic (targets, then patterns, then unpartitioned
        before partitioned) so generated test names are reproducible.

        Args:
            targets: Location targets to include. Defaults to TABLE only.

        Returns:
            One Scenario per matrix cell.
        """
        return tuple(
            Scenario(pattern=pattern, partitioned=partitioned, target=target)
            for target, pattern, partitioned in itertools.product(
                tuple(targets), self.patterns(), PARTITIONED_VALUES
            )
        )


def scenario_matrix(
    scheme: str = "s3",
    targets: Iterable[LocationTarget] = (LocationTarget.TABLE,),
) -> list[Scenario]:
    """Return the full scenario matrix as a list.

    Pure convenience for test parametrisation, e.g.
    ``@pytest.mark.parametrize("scenario", scenario_matrix(), ids=scenario_id)``.
    """
    return list(LocationPatternSet(scheme=scheme).scenarios(targets=targets))


def scenario_id(scenario: Scenario) -> str:
    """Return the scenario's identity (usable as a pytest ``ids`` callable)."""
    return scenario.scenario_id


__all__ = [
    "PARTITIONED_VALUES",
    "LocationPatternSet",
    "scenario_id",
    "scenario_matrix",
]
