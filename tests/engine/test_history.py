"""Tests for undo/redo history."""

import pytest

from statecanvas.engine import consistency
from statecanvas.engine.history import HistoryStore


class TestHistoryStore:
    """Tests for HistoryStore."""

    @pytest.fixture
    def history(self):
        return HistoryStore(max_depth=3)

    def test_empty(self, history, simple_document):
        assert not history.can_undo("wf")
        assert not history.can_redo("wf")
        assert history.undo("wf", simple_document) is None
        assert history.redo("wf", simple_document) is None

    def test_undo_redo_symmetry(self, history, simple_document):
        """undo then redo returns to the document after the edit."""
        edited = consistency.add_state(simple_document, "review")
        history.add_entry("wf", simple_document, "Added state: review")

        restored = history.undo("wf", edited)
        assert restored == simple_document
        assert history.can_redo("wf")

        replayed = history.redo("wf", restored)
        assert replayed == edited
        assert history.undo_count("wf") == 1
        assert history.redo_count("wf") == 0

    def test_new_entry_clears_redo(self, history, simple_document):
        edited = consistency.add_state(simple_document, "review")
        history.add_entry("wf", simple_document, "Added state: review")
        history.undo("wf", edited)

        history.add_entry("wf", simple_document, "Moved state: start")

        assert not history.can_redo("wf")
        assert history.undo_count("wf") == 1

    def test_oldest_entry_evicted(self, history, simple_document):
        for i in range(5):
            history.add_entry("wf", simple_document, f"edit {i}")

        assert history.undo_count("wf") == 3
        assert history.peek_undo_description("wf") == "edit 4"

        descriptions = []
        while history.can_undo("wf"):
            descriptions.append(history.peek_undo_description("wf"))
            history.undo("wf", simple_document)
        assert descriptions == ["edit 4", "edit 3", "edit 2"]

    def test_snapshots_are_copies(self, history, simple_document):
        history.add_entry("wf", simple_document, "edit")

        restored = history.undo("wf", simple_document)

        assert restored == simple_document
        assert restored is not simple_document

    def test_redo_description(self, history, simple_document):
        history.add_entry("wf", simple_document, "Deleted state: end")
        history.undo("wf", simple_document)

        assert history.peek_redo_description("wf") == "Deleted state: end"

    def test_histories_are_per_workflow(self, history, simple_document):
        history.add_entry("a", simple_document, "edit")

        assert history.can_undo("a")
        assert not history.can_undo("b")
        assert history.workflow_ids() == ["a"]

    def test_discard(self, history, simple_document):
        history.add_entry("a", simple_document, "edit")
        history.add_entry("b", simple_document, "edit")

        history.discard("a")

        assert not history.can_undo("a")
        assert history.debug_info() == {"b": {"undo_count": 1, "redo_count": 0}}

    def test_invalid_max_depth(self):
        with pytest.raises(ValueError):
            HistoryStore(max_depth=0)
