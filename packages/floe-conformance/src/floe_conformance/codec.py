"""Location extraction and storage-key conversion.

Two concerns live here:

- Finding the single ``location = '<value>'`` assignment in the free-form
  description text an engine returns for a table or schema
  (e.g., ``SHOW CREATE TABLE`` output).
- Splitting a ``scheme://bucket/key...`` location into the bucket and key
  prefix an object store lists by, and qualifying listed keys back into
  full locations.

Nothing in this module normalises a location: whitespace, doubled slashes
and percent characters survive byte-for-byte, because those are exactly the
edge cases under test.

Example:
    >>> from floe_conformance.codec import extract_location, to_storage_key
    >>> text = "CREATE TABLE t (x int)\\nWITH (\\n   location = 's3://bkt/a%b/t '\\n)"
    >>> location = extract_location(text)
    >>> to_storage_key(location).key_prefix
    'a%b/t '
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Union

from floe_conformance.errors import (
    AmbiguousLocationError,
    LocationNotFoundError,
    MalformedLocationError,
)

DEFAULT_LOCATION_KEYWORD = "location"

_LOCATION_SHAPE = re.compile(
    r"(?P<scheme>[a-zA-Z][a-zA-Z0-9+.-]*)://(?P<bucket>[^/]+)/(?P<key>.+)",
    re.DOTALL,
)


# =============================================================================
# Location Extraction
# =============================================================================


@dataclass(frozen=True)
class Found:
    """Exactly one location assignment was found."""

    location: str


@dataclass(frozen=True)
class NotFound:
    """No location assignment was found."""


@dataclass(frozen=True)
class Ambiguous:
    """More than one location assignment was found."""

    locations: tuple[str, ...]


LocationMatch = Union[Found, NotFound, Ambiguous]


@lru_cache(maxsize=16)
def _assignment_pattern(keyword: str) -> re.Pattern[str]:
    return re.compile(rf"{re.escape(keyword)} = '(.*?)'", re.DOTALL)


def find_location(text: str, keyword: str = DEFAULT_LOCATION_KEYWORD) -> LocationMatch:
    """Search description text for ``<keyword> = '<value>'`` assignments.

    The whole text is scanned; a second occurrence makes the result
    Ambiguous even when it repeats the first value verbatim.

    Args:
        text: Description text returned by the engine.
        keyword: Property name holding the location.

    Returns:
        Found, NotFound or Ambiguous.
    """
    values = tuple(m.group(1) for m in _assignment_pattern(keyword).finditer(text))
    if not values:
        return NotFound()
    if len(values) > 1:
        return Ambiguous(locations=values)
    return Found(location=values[0])


def extract_location(text: str, keyword: str = DEFAULT_LOCATION_KEYWORD) -> str:
    """Return the single location assigned in a description text.

    Args:
        text: Description text returned by the engine.
        keyword: Property name holding the location.

    Returns:
        The location value, verbatim.

    Raises:
        LocationNotFoundError: If no assignment exists.
        AmbiguousLocationError: If more than one assignment exists.
    """
    match = find_location(text, keyword)
    if isinstance(match, Found):
        return match.location
    if isinstance(match, Ambiguous):
        raise AmbiguousLocationError(
            "Unexpected second location assignment in description",
            matches=match.locations,
            details={"keyword": keyword},
        )
    raise LocationNotFoundError(
        "Location not found in description",
        details={"keyword": keyword, "text_length": len(text)},
    )


# =============================================================================
# Storage Keys
# =============================================================================


@dataclass(frozen=True)
class StorageKey:
    """Bucket and key prefix addressed by a location.

    Attributes:
        scheme: URI scheme (e.g., "s3").
        bucket: Bucket (authority) name.
        key_prefix: Object key prefix, verbatim.
    """

    scheme: str
    bucket: str
    key_prefix: str

    @property
    def location(self) -> str:
        """Location string this key was parsed from."""
        return qualify(self.scheme, self.bucket, self.key_prefix)

    def qualify(self, key: str) -> str:
        """Re-qualify an object key listed from this key's bucket."""
        return qualify(self.scheme, self.bucket, key)


def to_storage_key(location: str) -> StorageKey:
    """Split a location into scheme, bucket and key prefix.

    Args:
        location: ``scheme://bucket/key...`` location.

    Returns:
        StorageKey with the key prefix preserved byte-for-byte.

    Raises:
        MalformedLocationError: If the location has no scheme, an empty
            authority, or no key after the bucket.

    Example:
        >>> to_storage_key("s3://bkt/sch//double_slash/t").key_prefix
        'sch//double_slash/t'
    """
    match = _LOCATION_SHAPE.fullmatch(location)
    if match is None:
        raise MalformedLocationError(
            f"Does not match [{_LOCATION_SHAPE.pattern}]",
            location=location,
        )
    return StorageKey(
        scheme=match.group("scheme"),
        bucket=match.group("bucket"),
        key_prefix=match.group("key"),
    )


def qualify(scheme: str, bucket: str, key: str) -> str:
    """Build ``scheme://bucket/key`` without altering any component."""
    return f"{scheme}://{bucket}/{key}"


def join_location(base: str, child: str) -> str:
    """Append a child path segment, adding a separator only when missing.

    Example:
        >>> join_location("s3://b/s/trailing_slash/x/", "t")
        's3://b/s/trailing_slash/x/t'
        >>> join_location("s3://b/s/trailing_whitespace/x ", "t")
        's3://b/s/trailing_whitespace/x /t'
    """
    return base + child if base.endswith("/") else f"{base}/{child}"


__all__ = [
    "DEFAULT_LOCATION_KEYWORD",
    "Ambiguous",
    "Found",
    "LocationMatch",
    "NotFound",
    "StorageKey",
    "extract_location",
    "find_location",
    "join_location",
    "qualify",
    "to_storage_key",
]
