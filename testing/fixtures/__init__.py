"""Collaborator bindings for conformance tests.

Modules:
    minio: MinIOObjectLister and MinIO client configuration
    memory_table_system: InMemoryTableSystem reference implementation

Example:
    from testing.fixtures import InMemoryTableSystem

    system = InMemoryTableSystem(leaky_drop=True)
"""

from __future__ import annotations

from testing.fixtures.memory_table_system import (
    InMemoryTableSystem,
    is_data_file,
    normalize_location,
)
from testing.fixtures.minio import (
    MinIOConfig,
    MinIOConnectionError,
    MinIOObjectLister,
    create_minio_client,
    ensure_bucket,
)

__all__ = [
    "InMemoryTableSystem",
    "MinIOConfig",
    "MinIOConnectionError",
    "MinIOObjectLister",
    "create_minio_client",
    "ensure_bucket",
    "is_data_file",
    "normalize_location",
]
