"""Tests for TrackerStore transactions."""

import copy
import pytest
from unittest.mock import patch


class TestTransaction:
    """Test all-or-nothing writes."""

    def test_rolls_back_on_error(self, store):
        with pytest.raises(RuntimeError):
            with store.transaction():
                store.update_issue("i-3", {"status": "DONE"})
                raise RuntimeError("boom")

        assert store.get_issue("i-3")["status"] == "TODO"

    def test_nested_transaction_joins_outer(self, store):
        """An inner failure caught inside the outer block does not undo the outer writes."""
        with store.transaction():
            store.update_issue("i-3", {"status": "IN_PROGRESS"})
            with pytest.raises(RuntimeError):
                with store.transaction():
                    store.update_issue("i-1", {"order": 9})
                    raise RuntimeError("inner")

        assert store.get_issue("i-3")["status"] == "IN_PROGRESS"
        assert store.get_issue("i-1")["order"] == 9

    def test_outer_rollback_undoes_nested_writes(self, store):
        with pytest.raises(RuntimeError):
            with store.transaction():
                with store.transaction():
                    store.update_issue("i-3", {"status": "DONE"})
                store.delete_issue("i-1")
                raise RuntimeError("outer")

        assert store.get_issue("i-3")["status"] == "TODO"
        assert store.get_issue("i-1") is not None
        assert store.get_analytic("i-1") is not None

    def test_snapshot_taken_once(self, store):
        with patch("services.store.copy.deepcopy", wraps=copy.deepcopy) as mock_copy:
            with store.transaction():
                calls = mock_copy.call_count
                with store.transaction():
                    pass
                store.delete_issue("i-1")
                assert mock_copy.call_count == calls

    def test_depth_resets_after_failure(self, store):
        with pytest.raises(RuntimeError):
            with store.transaction():
                raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            with store.transaction():
                store.update_issue("i-3", {"status": "DONE"})
                raise RuntimeError("again")

        assert store.get_issue("i-3")["status"] == "TODO"
