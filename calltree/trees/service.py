"""Tree service: the command facade over one SessionStore and one TreeStateMachine.

Every public call, read or write, is queued behind the previous one and
starts only after it has settled (success or failure). At most one mutation
is in flight, and event-log lines appear in the order calls were issued.
A failing call raises to its own caller and the queue carries on.
"""

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TypeVar

from calltree.models import TreeState
from calltree.sessions.store import DEFAULT_FLUSH_DELAY, SessionStore
from calltree.trees.machine import DeleteResult, TreeStateMachine

T = TypeVar("T")


class TreeService:
    """Serializes commands and records each mutation in the session store."""

    def __init__(self, store: SessionStore, machine: TreeStateMachine) -> None:
        self._store = store
        self._machine = machine
        # asyncio.Lock hands itself to waiters in FIFO order.
        self._queue = asyncio.Lock()

    @classmethod
    async def create(
        cls, data_dir: Path | str, flush_delay: float = DEFAULT_FLUSH_DELAY
    ) -> "TreeService":
        """Open (or resume) the session stored under data_dir/sessions."""
        store = SessionStore(Path(data_dir) / "sessions", flush_delay=flush_delay)
        initial_state = await store.init_session()
        return cls(store, TreeStateMachine(initial_state))

    @property
    def store(self) -> SessionStore:
        return self._store

    async def _enqueue(self, task: Callable[[], Awaitable[T]]) -> T:
        async with self._queue:
            return await task()

    def _schedule_persist(self) -> None:
        self._store.schedule_state_write(self._machine.get_state())

    # -- Tree commands --

    async def get_state(self) -> TreeState:
        async def run() -> TreeState:
            return self._machine.get_state()

        return await self._enqueue(run)

    async def add_child(self, parent_id: str, title: str | None) -> TreeState:
        async def run() -> TreeState:
            result = self._machine.add_child(parent_id, title)
            node = result.state.nodes[result.node_id]
            await self._store.append_event(
                "ADD_CHILD", node_id=node.id, parent_id=node.parent_id, title=node.title
            )
            self._schedule_persist()
            return result.state

        return await self._enqueue(run)

    async def add_sibling(self, node_id: str, title: str | None) -> TreeState:
        async def run() -> TreeState:
            result = self._machine.add_sibling(node_id, title)
            node = result.state.nodes[result.node_id]
            await self._store.append_event(
                "ADD_SIBLING",
                node_id=node.id,
                parent_id=node.parent_id,
                title=node.title,
                extra=f"from={node_id}",
            )
            self._schedule_persist()
            return result.state

        return await self._enqueue(run)

    async def rename_node(self, node_id: str, title: str | None) -> TreeState:
        async def run() -> TreeState:
            state = self._machine.rename_node(node_id, title)
            node = state.nodes[node_id]
            await self._store.append_event(
                "RENAME_NODE", node_id=node.id, parent_id=node.parent_id, title=node.title
            )
            self._schedule_persist()
            return state

        return await self._enqueue(run)

    async def focus_node(self, node_id: str) -> TreeState:
        async def run() -> TreeState:
            state = self._machine.focus_node(node_id)
            node = state.nodes[node_id]
            await self._store.append_event(
                "FOCUS_NODE", node_id=node.id, parent_id=node.parent_id, title=node.title
            )
            self._schedule_persist()
            return state

        return await self._enqueue(run)

    async def complete_node(self, node_id: str) -> DeleteResult:
        return await self._enqueue(
            lambda: self._soft_delete("COMPLETE_NODE", self._machine.complete_node, node_id)
        )

    async def delete_node(self, node_id: str) -> DeleteResult:
        return await self._enqueue(
            lambda: self._soft_delete("DELETE_NODE", self._machine.delete_node, node_id)
        )

    async def _soft_delete(
        self, action: str, apply: Callable[[str], DeleteResult], node_id: str
    ) -> DeleteResult:
        """Shared body of complete/delete. Logs the action plus a RETURN_PARENT line."""
        before = self._machine.get_state().nodes.get(node_id)
        result = apply(node_id)
        await self._store.append_event(
            action,
            node_id=node_id,
            parent_id=before.parent_id if before else None,
            title=before.title if before else "",
            extra=f"nextFocus={result.next_focus_id}",
        )
        focused = result.state.nodes.get(result.next_focus_id)
        await self._store.append_event(
            "RETURN_PARENT",
            node_id=result.next_focus_id,
            parent_id=focused.parent_id if focused else None,
            title=focused.title if focused else "",
        )
        self._schedule_persist()
        return result

    async def undo(self) -> TreeState:
        return await self._enqueue(lambda: self._step_history("UNDO", self._machine.undo))

    async def redo(self) -> TreeState:
        return await self._enqueue(lambda: self._step_history("REDO", self._machine.redo))

    async def _step_history(self, action: str, step: Callable[[], TreeState]) -> TreeState:
        state = step()
        focused = state.nodes.get(state.focused_node_id)
        await self._store.append_event(
            action,
            node_id=state.focused_node_id,
            parent_id=focused.parent_id if focused else None,
            title=focused.title if focused else "",
        )
        self._schedule_persist()
        return state

    # -- Archive reads --

    async def list_sessions(self) -> list[str]:
        return await self._enqueue(self._store.list_sessions)

    async def read_events(self, session_id: str) -> list[str]:
        return await self._enqueue(lambda: self._store.read_events(session_id))

    async def list_snapshots(self) -> list[str]:
        return await self._enqueue(self._store.list_snapshots)

    async def read_snapshot(self, snapshot_id: str) -> TreeState:
        return await self._enqueue(lambda: self._store.read_snapshot(snapshot_id))

    # -- Session commands --

    async def save_session(self) -> TreeState:
        """Explicit checkpoint: flush to disk and resume this session on next start."""

        async def run() -> TreeState:
            await self._store.flush_pending_state()
            await self._store.mark_continue()
            state = self._machine.get_state()
            await self._store.append_event(
                "SESSION_SAVE", node_id=state.root_id, title="User saved session"
            )
            return state

        return await self._enqueue(run)

    async def restore_session(self, snapshot_id: str) -> TreeState:
        """Replace the live session with an archived snapshot and a fresh machine."""

        async def run() -> TreeState:
            await self._store.flush_pending_state()
            state = await self._store.restore_to_snapshot(snapshot_id)
            self._machine = TreeStateMachine(state)
            return self._machine.get_state()

        return await self._enqueue(run)

    async def shutdown(self) -> None:
        """Write any pending debounced state before the process exits."""
        await self._enqueue(self._store.flush_pending_state)
