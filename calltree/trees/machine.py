"""Tree state machine: applies task-tree mutations with bounded undo/redo.

All operations are synchronous and act on a single private TreeState. Every
returned state is a deep copy, so callers never observe a mutation in
progress. Validation runs before anything is touched: a rejected command
leaves the state exactly as it was.
"""

import copy
from uuid import uuid4

from calltree.models import (
    CamelModel,
    HistorySnapshot,
    Node,
    TreeState,
    create_node,
    now_iso,
    sanitize_title,
)

MAX_HISTORY = 200


class AddResult(CamelModel):
    node_id: str
    state: TreeState


class DeleteResult(CamelModel):
    next_focus_id: str
    state: TreeState


class TreeStateMachine:
    """Owns one session's in-memory tree."""

    def __init__(self, state: TreeState) -> None:
        self._state = state.clone()
        self._ensure_focus()

    def get_state(self) -> TreeState:
        return self._state.clone()

    # -- History --

    def _snapshot(self) -> HistorySnapshot:
        return HistorySnapshot(
            root_id=self._state.root_id,
            focused_node_id=self._state.focused_node_id,
            nodes=copy.deepcopy(self._state.nodes),
        )

    def _apply_snapshot(self, snapshot: HistorySnapshot) -> None:
        self._state.root_id = snapshot.root_id
        self._state.focused_node_id = snapshot.focused_node_id
        self._state.nodes = copy.deepcopy(snapshot.nodes)
        self._ensure_focus()

    def _push_undo(self) -> None:
        """Record the current tree before a mutation. Any redo future is discarded."""
        self._state.undo_stack.append(self._snapshot())
        if len(self._state.undo_stack) > MAX_HISTORY:
            del self._state.undo_stack[0]
        self._state.redo_stack = []

    def _ensure_focus(self) -> None:
        focused = self._state.nodes.get(self._state.focused_node_id)
        if focused is None or not focused.is_active:
            self._state.focused_node_id = self._state.root_id

    def _require_active(self, node_id: str) -> Node:
        node = self._state.nodes.get(node_id)
        if node is None or not node.is_active:
            raise NodeNotFoundError(node_id)
        return node

    # -- Mutations --

    def add_child(self, parent_id: str, title: str | None) -> AddResult:
        """Append a new node as the last child of parent_id and focus it."""
        parent = self._require_active(parent_id)
        self._push_undo()

        node_id = str(uuid4())
        node = create_node(node_id, parent.id, title)
        self._state.nodes[node_id] = node
        parent.children_ids.append(node_id)
        parent.updated_at = node.created_at
        self._state.focused_node_id = node_id
        return AddResult(node_id=node_id, state=self.get_state())

    def add_sibling(self, node_id: str, title: str | None) -> AddResult:
        """Add a node under node_id's parent (the root when node_id is the root)."""
        node = self._require_active(node_id)
        parent_id = node.parent_id if node.parent_id is not None else self._state.root_id
        return self.add_child(parent_id, title)

    def rename_node(self, node_id: str, title: str | None) -> TreeState:
        node = self._require_active(node_id)
        self._push_undo()
        node.title = sanitize_title(title)
        node.updated_at = now_iso()
        return self.get_state()

    def focus_node(self, node_id: str) -> TreeState:
        """Move focus. Not recorded in undo history."""
        node = self._require_active(node_id)
        self._state.focused_node_id = node.id
        return self.get_state()

    def complete_node(self, node_id: str) -> DeleteResult:
        return self._soft_delete(node_id)

    def delete_node(self, node_id: str) -> DeleteResult:
        return self._soft_delete(node_id)

    def _collect_subtree(self, node_id: str) -> list[str]:
        """Ids of node_id and all its active descendants, each exactly once."""
        stack = [node_id]
        seen: set[str] = set()
        collected: list[str] = []
        while stack:
            current_id = stack.pop()
            if current_id in seen:
                continue
            node = self._state.nodes.get(current_id)
            if node is None or not node.is_active:
                continue
            seen.add(current_id)
            collected.append(current_id)
            stack.extend(node.children_ids)
        return collected

    def _soft_delete(self, node_id: str) -> DeleteResult:
        """Mark node_id and its subtree deleted, then return focus to its parent."""
        node = self._require_active(node_id)
        if node.id == self._state.root_id:
            raise RootNodeProtectedError(node_id)

        self._push_undo()
        timestamp = now_iso()
        for target_id in self._collect_subtree(node.id):
            target = self._state.nodes[target_id]
            target.status = "deleted"
            target.deleted_at = timestamp
            target.updated_at = timestamp

        parent_id = node.parent_id if node.parent_id is not None else self._state.root_id
        parent = self._state.nodes.get(parent_id)
        if parent is not None and parent.is_active:
            parent.children_ids = [cid for cid in parent.children_ids if cid != node.id]
            parent.updated_at = timestamp
            self._state.focused_node_id = parent.id
        else:
            self._state.focused_node_id = self._state.root_id

        self._ensure_focus()
        return DeleteResult(
            next_focus_id=self._state.focused_node_id,
            state=self.get_state(),
        )

    # -- Undo / redo --

    def undo(self) -> TreeState:
        if not self._state.undo_stack:
            return self.get_state()
        previous = self._state.undo_stack.pop()
        self._state.redo_stack.append(self._snapshot())
        self._apply_snapshot(previous)
        return self.get_state()

    def redo(self) -> TreeState:
        if not self._state.redo_stack:
            return self.get_state()
        following = self._state.redo_stack.pop()
        self._state.undo_stack.append(self._snapshot())
        self._apply_snapshot(following)
        return self.get_state()


class NodeNotFoundError(Exception):
    def __init__(self, node_id: str) -> None:
        self.node_id = node_id
        super().__init__(f"Node not found or inactive: {node_id}")


class RootNodeProtectedError(Exception):
    def __init__(self, node_id: str) -> None:
        self.node_id = node_id
        super().__init__(f"Root node cannot be deleted: {node_id}")
