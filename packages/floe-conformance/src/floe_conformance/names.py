"""Unique identifier generation for scenario isolation.

Every scenario creates its schema and table objects under names that no
other scenario (in this run or a concurrent one) can produce, so that no
two scenarios contend on the same storage prefix.

Example:
    >>> from floe_conformance.names import unique_name
    >>> unique_name("test_basic_operations")
    'test_basic_operations_k3v9x0q2ma'
"""

from __future__ import annotations

import re
import uuid

SUFFIX_LENGTH = 10
"""Number of characters in a random name suffix."""

_IDENTIFIER_CHARS = re.compile(r"[^a-z0-9_]")


def random_name_suffix() -> str:
    """Return a random lowercase alphanumeric suffix.

    Returns:
        A SUFFIX_LENGTH character string drawn from a fresh UUID4.
    """
    return uuid.uuid4().hex[:SUFFIX_LENGTH]


def unique_name(prefix: str) -> str:
    """Build a globally-unique identifier from a prefix.

    The prefix is lowercased and reduced to ``[a-z0-9_]`` so the result is a
    valid unquoted identifier for common SQL engines.

    Args:
        prefix: Human-readable prefix (e.g., "test_merge").

    Returns:
        ``<prefix>_<suffix>`` where suffix comes from random_name_suffix().

    Example:
        >>> a, b = unique_name("t"), unique_name("t")
        >>> a != b
        True
    """
    normalized = _IDENTIFIER_CHARS.sub("", prefix.lower()).strip("_") or "test"
    return f"{normalized}_{random_name_suffix()}"


__all__ = ["SUFFIX_LENGTH", "random_name_suffix", "unique_name"]
