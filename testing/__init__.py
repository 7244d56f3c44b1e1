"""Testing infrastructure for floe-conformance.

Provides the pytest base class that turns the conformance harness into a
parametrised test suite for a concrete table system, plus fixtures binding
the harness contracts to MinIO/S3 and to an in-process reference system.

Components:
    base_classes: BaseTableStorageTests for table-system compliance suites
    fixtures: MinIO object lister and the in-memory reference table system

Usage:
    from testing.base_classes import BaseTableStorageTests

    class TestMyEngine(BaseTableStorageTests):
        @pytest.fixture
        def command_executor(self):
            return MyEngineExecutor(...)

        @pytest.fixture
        def object_lister(self):
            return MinIOObjectLister.from_config()
"""

from __future__ import annotations

__version__ = "0.1.0"
