"""
Tests for storage.py - imported key sets.
"""

import pytest

from stale_entities.errors import InvalidJobId
from stale_entities.storage import ImportedKeyStore


class TestImportedKeyStore:
    """Test recording and reading imported keys."""

    def test_record_and_read(self, imported_store):
        assert imported_store.record_import("job", {1, 2}) == 2
        assert imported_store.imported_keys("job") == {"1": "1", "2": "2"}

    def test_record_replaces_previous(self, imported_store):
        imported_store.record_import("job", {"1", "2"})
        imported_store.record_import("job", {"3"})
        assert imported_store.imported_keys("job") == {"3": "3"}

    def test_mapping(self, imported_store):
        imported_store.record_import("job", {"guid-a": 10})
        assert imported_store.imported_keys("job") == {"guid-a": "10"}

    def test_jobs_are_separate(self, imported_store):
        imported_store.record_import("a", {"1"})
        imported_store.record_import("b", {"2"})
        assert imported_store.imported_keys("a") == {"1": "1"}

    def test_unknown_job_is_empty(self, imported_store):
        assert imported_store.imported_keys("job") == {}

    def test_forget(self, imported_store):
        imported_store.record_import("job", {"1", "2"})
        assert imported_store.forget("job") == 2
        assert imported_store.imported_keys("job") == {}

    def test_invalid_job_id(self, imported_store):
        with pytest.raises(InvalidJobId):
            imported_store.record_import("", {"1"})

    def test_survives_restart(self, db_path):
        first = ImportedKeyStore(db_path)
        first.record_import("job", {"1"})
        first.dispose()

        second = ImportedKeyStore(db_path)
        assert second.imported_keys("job") == {"1": "1"}
        second.dispose()
