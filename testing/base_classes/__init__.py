"""Test base classes for table-system conformance testing.

Classes:
    BaseTableStorageTests: Base class for table-system storage compliance

Example:
    from testing.base_classes import BaseTableStorageTests

    class TestMyEngine(BaseTableStorageTests):
        @pytest.fixture
        def command_executor(self):
            return MyEngineExecutor(...)
"""

from __future__ import annotations

from testing.base_classes.base_table_storage_tests import BaseTableStorageTests

__all__ = ["BaseTableStorageTests"]
