"""Shared test helpers."""

import json
from pathlib import Path

from calltree.models import TreeState
from calltree.trees.machine import TreeStateMachine

FAST_FLUSH = 0.01


def build_chain(machine: TreeStateMachine, *titles: str) -> list[str]:
    """Add each title as a child of the previous one, starting at the root.

    Returns the new node ids in creation order.
    """
    parent_id = machine.get_state().root_id
    node_ids: list[str] = []
    for title in titles:
        result = machine.add_child(parent_id, title)
        node_ids.append(result.node_id)
        parent_id = result.node_id
    return node_ids


def read_active(sessions_dir: Path) -> dict:
    """Parse active.json as raw JSON (camelCase keys)."""
    return json.loads((sessions_dir / "active.json").read_text(encoding="utf-8"))


def files_with_suffix(sessions_dir: Path, suffix: str) -> list[str]:
    return sorted(p.name for p in sessions_dir.iterdir() if p.name.endswith(suffix))


def event_actions(lines: list[str]) -> list[str]:
    """ACTION names from formatted event lines, in order."""
    return [line.split("] ", 1)[1].split(" ", 1)[0] for line in lines]


def active_titles(state: TreeState) -> set[str]:
    return {node.title for node in state.nodes.values() if node.is_active}
