"""Canonical data structures for calltree.

Defined once here, referenced everywhere else. Attributes are snake_case in
Python; the persisted JSON (active.json, *.snapshot.json) and the HTTP
surface use camelCase keys via the alias generator on CamelModel.
"""

import json
from datetime import UTC, datetime
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

UNNAMED_TITLE = "Untitled task"
ROOT_TITLE = "Session Root"

NodeStatus = Literal["active", "deleted"]


def now_iso() -> str:
    """UTC timestamp with millisecond precision, e.g. 2026-10-19T08:37:00.123Z."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def sanitize_title(title: str | None) -> str:
    """Trim a title; empty or missing titles become the placeholder."""
    cleaned = (title or "").strip()
    return cleaned if cleaned else UNNAMED_TITLE


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Tree structures
# ---------------------------------------------------------------------------


class Node(CamelModel):
    id: str
    parent_id: str | None = None
    title: str
    children_ids: list[str] = Field(default_factory=list)  # display order
    status: NodeStatus = "active"
    created_at: str
    updated_at: str
    deleted_at: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == "active"


class HistorySnapshot(CamelModel):
    """Full point-in-time copy of the tree, used for undo/redo. Not a diff."""

    root_id: str
    focused_node_id: str
    nodes: dict[str, Node]


class TreeState(CamelModel):
    """Everything one session owns in memory, and what active.json holds."""

    session_id: str
    root_id: str
    focused_node_id: str
    nodes: dict[str, Node]
    undo_stack: list[HistorySnapshot] = Field(default_factory=list)
    redo_stack: list[HistorySnapshot] = Field(default_factory=list)

    def clone(self) -> "TreeState":
        """Deep, independent copy. Mutating the copy never touches self."""
        return self.model_copy(deep=True)

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)

    def to_json(self) -> str:
        """Pretty-printed JSON with a trailing newline, as written to disk."""
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False) + "\n"

    @classmethod
    def from_dict(cls, data: dict) -> "TreeState":
        return cls.model_validate(data)

    @classmethod
    def from_json(cls, raw: str) -> "TreeState":
        return cls.model_validate_json(raw)


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


def create_node(node_id: str, parent_id: str | None, title: str | None) -> Node:
    """Build an active, childless node stamped with created_at == updated_at."""
    timestamp = now_iso()
    return Node(
        id=node_id,
        parent_id=parent_id,
        title=sanitize_title(title),
        children_ids=[],
        status="active",
        created_at=timestamp,
        updated_at=timestamp,
    )


def create_initial_state(session_id: str) -> TreeState:
    """A root-only tree with focus on the root and empty history."""
    root_id = str(uuid4())
    root = create_node(root_id, None, ROOT_TITLE)
    return TreeState(
        session_id=session_id,
        root_id=root_id,
        focused_node_id=root_id,
        nodes={root_id: root},
        undo_stack=[],
        redo_stack=[],
    )
