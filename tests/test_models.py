"""Tests for the node/tree data model."""

import json
import re

from calltree.models import (
    ROOT_TITLE,
    UNNAMED_TITLE,
    TreeState,
    create_initial_state,
    create_node,
    now_iso,
    sanitize_title,
)


class TestSanitizeTitle:
    def test_trims_whitespace(self):
        assert sanitize_title("  Write report \n") == "Write report"

    def test_empty_becomes_placeholder(self):
        assert sanitize_title("") == UNNAMED_TITLE
        assert sanitize_title("   ") == UNNAMED_TITLE

    def test_none_becomes_placeholder(self):
        assert sanitize_title(None) == UNNAMED_TITLE


class TestTimestamps:
    def test_now_iso_is_utc_with_milliseconds(self):
        assert re.fullmatch(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z", now_iso())


class TestCreateNode:
    def test_stamps_created_and_updated_equal(self):
        node = create_node("n1", "root", "  Task  ")
        assert node.created_at == node.updated_at
        assert node.title == "Task"
        assert node.status == "active"
        assert node.children_ids == []
        assert node.deleted_at is None


class TestInitialState:
    def test_root_only_with_focus_on_root(self):
        state = create_initial_state("2026-10-19_08-00-00")
        assert state.session_id == "2026-10-19_08-00-00"
        assert list(state.nodes) == [state.root_id]
        root = state.nodes[state.root_id]
        assert root.parent_id is None
        assert root.title == ROOT_TITLE
        assert state.focused_node_id == state.root_id
        assert state.undo_stack == []
        assert state.redo_stack == []

    def test_each_state_gets_a_new_root_id(self):
        assert create_initial_state("a").root_id != create_initial_state("a").root_id


class TestSerialization:
    def test_json_uses_camel_case_keys(self):
        state = create_initial_state("s1")
        data = json.loads(state.to_json())
        assert set(data) == {
            "sessionId", "rootId", "focusedNodeId", "nodes", "undoStack", "redoStack",
        }
        root = data["nodes"][state.root_id]
        assert root["parentId"] is None
        assert root["childrenIds"] == []
        assert "createdAt" in root and "updatedAt" in root

    def test_json_is_pretty_printed_with_trailing_newline(self):
        text = create_initial_state("s1").to_json()
        assert text.endswith("}\n")
        assert '\n  "sessionId": "s1"' in text

    def test_from_json_restores_equal_state(self):
        state = create_initial_state("s1")
        assert TreeState.from_json(state.to_json()) == state

    def test_clone_is_independent(self):
        state = create_initial_state("s1")
        copy = state.clone()
        copy.nodes[copy.root_id].title = "changed"
        copy.nodes[copy.root_id].children_ids.append("x")
        assert state.nodes[state.root_id].title == ROOT_TITLE
        assert state.nodes[state.root_id].children_ids == []
