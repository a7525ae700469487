"""Session store: on-disk state, audit trail and session lifecycle.

Files (all in one directory per installation):

    active.json                  live TreeState of the current session
    continue.flag                presence = resume active.json on next start
    <sessionId>.events.log       append-only audit trail of a session
    <sessionId>.snapshot.json    archived TreeState of a finished session

The store is the only writer of these files. Writes of active.json are
serialized by a lock so a debounced flush never interleaves with a direct one.
Blocking file I/O runs in worker threads via asyncio.to_thread.
"""

import asyncio
import logging
import os
import re
from datetime import datetime
from pathlib import Path

from pydantic import ValidationError

from calltree.events.log import EventLog
from calltree.models import ROOT_TITLE, TreeState, create_initial_state

logger = logging.getLogger(__name__)

ACTIVE_FILENAME = "active.json"
CONTINUE_FLAG_FILENAME = "continue.flag"
EVENTS_SUFFIX = ".events.log"
SNAPSHOT_SUFFIX = ".snapshot.json"
DEFAULT_FLUSH_DELAY = 0.25

# <YYYY-MM-DD_HH-mm-ss> with an optional -N collision suffix.
_ID_PATTERN = re.compile(r"^(\d{4}-\d{2}-\d{2}_\d{2}-\d{2}-\d{2})(?:-(\d+))?$")


def timestamp_for_file(moment: datetime | None = None) -> str:
    """Local-time session id stem: YYYY-MM-DD_HH-mm-ss."""
    return (moment or datetime.now()).strftime("%Y-%m-%d_%H-%M-%S")


def _is_safe_id(value: str) -> bool:
    """A session/snapshot id must be a bare file stem inside the store directory."""
    return bool(value) and value not in (".", "..") and Path(value).name == value and "\\" not in value


def _id_sort_key(value: str) -> tuple[str, int]:
    match = _ID_PATTERN.match(value)
    if match is None:
        return (value, 0)
    return (match.group(1), int(match.group(2) or 0))


class SessionStore:
    """Translates between the in-memory TreeState and the session directory."""

    def __init__(self, base_dir: Path | str, flush_delay: float = DEFAULT_FLUSH_DELAY) -> None:
        self.base_dir = Path(base_dir)
        self.active_path = self.base_dir / ACTIVE_FILENAME
        self.continue_flag_path = self.base_dir / CONTINUE_FLAG_FILENAME
        self.flush_delay = flush_delay
        self.session_id: str | None = None
        self._events: EventLog | None = None
        self._pending_state: TreeState | None = None
        self._flush_handle: asyncio.TimerHandle | None = None
        self._flush_task: asyncio.Task | None = None
        self._write_lock = asyncio.Lock()

    @property
    def has_pending_write(self) -> bool:
        return self._pending_state is not None

    # -- Session lifecycle --

    async def init_session(self) -> TreeState:
        """Resume a flagged session, or archive the previous one and start fresh."""
        await asyncio.to_thread(self._ensure_dir)

        if await self.has_continue_flag():
            try:
                return await self.restore_session()
            except (OSError, ValueError) as exc:
                logger.warning("Failed to restore session, starting fresh: %s", exc)

        await asyncio.to_thread(self._archive_active)
        self._open_session(await asyncio.to_thread(self._allocate_session_id))

        state = create_initial_state(self.session_id)
        await self.write_state_now(state)
        await self.append_event("SESSION_START", node_id=state.root_id, title=ROOT_TITLE)
        logger.info("Started session %s", self.session_id)
        return state

    async def restore_session(self) -> TreeState:
        """Load active.json verbatim and keep appending to its events log."""
        await asyncio.to_thread(self._ensure_dir)
        # The flag is one-shot: the next start is fresh unless saved again.
        await self.clear_continue()

        raw = await asyncio.to_thread(self.active_path.read_text, encoding="utf-8")
        state = TreeState.from_json(raw)
        self._open_session(state.session_id)

        await self.append_event("SESSION_RESUME", node_id=state.root_id, title="Resumed session")
        logger.info("Resumed session %s", self.session_id)
        return state

    async def restore_to_snapshot(self, snapshot_id: str) -> TreeState:
        """Make an archived snapshot the active session, under a brand-new session id.

        The node tree is kept; focus goes back to the root and both history
        stacks start empty.
        """
        snapshot = await self.read_snapshot(snapshot_id)
        await self.flush_pending_state()

        await asyncio.to_thread(self._archive_active)
        await self.clear_continue()
        self._open_session(await asyncio.to_thread(self._allocate_session_id))

        state = TreeState(
            session_id=self.session_id,
            root_id=snapshot.root_id,
            focused_node_id=snapshot.root_id,
            nodes=snapshot.nodes,
            undo_stack=[],
            redo_stack=[],
        )
        await self.write_state_now(state)
        root = state.nodes.get(state.root_id)
        await self.append_event(
            "SESSION_RESTORED_FROM",
            node_id=state.root_id,
            title=root.title if root else ROOT_TITLE,
            extra=f"snapshot={snapshot_id}",
        )
        logger.info("Restored snapshot %s as session %s", snapshot_id, self.session_id)
        return state

    def _open_session(self, session_id: str) -> None:
        self.session_id = session_id
        self._events = EventLog(self.base_dir / f"{session_id}{EVENTS_SUFFIX}")

    def _ensure_dir(self) -> None:
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _allocate_session_id(self) -> str:
        base = timestamp_for_file()
        session_id = base
        suffix = 1
        while (self.base_dir / f"{session_id}{EVENTS_SUFFIX}").exists():
            session_id = f"{base}-{suffix}"
            suffix += 1
        return session_id

    def _archive_active(self) -> str | None:
        """Rename active.json to a fresh, collision-suffixed snapshot file."""
        if not self.active_path.exists():
            return None
        base = timestamp_for_file()
        snapshot_id = base
        suffix = 1
        while (self.base_dir / f"{snapshot_id}{SNAPSHOT_SUFFIX}").exists():
            snapshot_id = f"{base}-{suffix}"
            suffix += 1
        self.active_path.rename(self.base_dir / f"{snapshot_id}{SNAPSHOT_SUFFIX}")
        logger.info("Archived active state as snapshot %s", snapshot_id)
        return snapshot_id

    # -- Continue marker --

    async def has_continue_flag(self) -> bool:
        return await asyncio.to_thread(self.continue_flag_path.exists)

    async def mark_continue(self) -> None:
        """Ask the next start to resume the active session."""
        await asyncio.to_thread(self._ensure_dir)
        await asyncio.to_thread(self.continue_flag_path.touch)

    async def clear_continue(self) -> None:
        await asyncio.to_thread(self.continue_flag_path.unlink, missing_ok=True)

    # -- State persistence --

    async def write_state_now(self, state: TreeState) -> None:
        """Atomically replace active.json: write a temp file, then rename over it.

        Readers see either the previous file or the new one, never a partial
        write. Raises PersistenceError.
        """
        serialized = state.to_json()
        async with self._write_lock:
            try:
                await asyncio.to_thread(self._replace_active, serialized)
            except OSError as exc:
                raise PersistenceError(self.active_path, exc) from exc

    def _replace_active(self, serialized: str) -> None:
        self._ensure_dir()
        temp_path = self.active_path.with_name(f"{ACTIVE_FILENAME}.tmp")
        temp_path.write_text(serialized, encoding="utf-8")
        try:
            os.replace(temp_path, self.active_path)
        except (FileExistsError, PermissionError):
            # Some platforms refuse to rename over an existing file.
            self.active_path.unlink(missing_ok=True)
            os.replace(temp_path, self.active_path)

    def schedule_state_write(self, state: TreeState) -> None:
        """Debounced write. Calls within the delay window collapse into one write
        of the latest state. Must be called from the running event loop."""
        self._pending_state = state.clone()
        if self._flush_handle is not None:
            return
        loop = asyncio.get_running_loop()
        self._flush_handle = loop.call_later(self.flush_delay, self._on_flush_timer)

    def _on_flush_timer(self) -> None:
        self._flush_handle = None
        self._flush_task = asyncio.get_running_loop().create_task(self._write_pending())

    async def _write_pending(self) -> None:
        state = self._pending_state
        self._pending_state = None
        if state is None:
            return
        try:
            await self.write_state_now(state)
        except PersistenceError:
            logger.exception("Deferred state write failed")

    async def flush_pending_state(self) -> None:
        """Cancel the debounce timer and write any pending state right now.

        Afterwards active.json matches the last scheduled state.
        """
        if self._flush_handle is not None:
            self._flush_handle.cancel()
            self._flush_handle = None
        if self._flush_task is not None:
            task, self._flush_task = self._flush_task, None
            await task
        state = self._pending_state
        self._pending_state = None
        if state is None:
            return
        await self.write_state_now(state)

    # -- Audit trail --

    async def append_event(
        self,
        action: str,
        *,
        node_id: str | None = None,
        parent_id: str | None = None,
        title: str | None = None,
        extra: str | None = None,
    ) -> None:
        """Best-effort append to the current session's events log."""
        if self._events is None:
            return
        await self._events.append(
            action, node_id=node_id, parent_id=parent_id, title=title, extra=extra
        )

    # -- Archive browsing --

    async def list_sessions(self) -> list[str]:
        """Session ids that have an events log, newest first."""
        return await asyncio.to_thread(self._list_ids, EVENTS_SUFFIX)

    async def read_events(self, session_id: str) -> list[str]:
        if not _is_safe_id(session_id):
            raise SessionNotFoundError(session_id)
        try:
            return await EventLog(self.base_dir / f"{session_id}{EVENTS_SUFFIX}").read_lines()
        except FileNotFoundError:
            raise SessionNotFoundError(session_id)

    async def list_snapshots(self) -> list[str]:
        """Archived snapshot ids, newest first."""
        return await asyncio.to_thread(self._list_ids, SNAPSHOT_SUFFIX)

    async def read_snapshot(self, snapshot_id: str) -> TreeState:
        if not _is_safe_id(snapshot_id):
            raise SnapshotNotFoundError(snapshot_id)
        path = self.base_dir / f"{snapshot_id}{SNAPSHOT_SUFFIX}"
        try:
            raw = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except FileNotFoundError:
            raise SnapshotNotFoundError(snapshot_id)
        try:
            return TreeState.from_json(raw)
        except ValidationError as exc:
            raise SnapshotCorruptError(snapshot_id, exc) from exc

    def _list_ids(self, suffix: str) -> list[str]:
        self._ensure_dir()
        ids = [
            entry.name[: -len(suffix)]
            for entry in self.base_dir.iterdir()
            if entry.is_file() and entry.name.endswith(suffix)
        ]
        return sorted(ids, key=_id_sort_key, reverse=True)


class PersistenceError(Exception):
    def __init__(self, path: Path, cause: OSError) -> None:
        self.path = path
        self.cause = cause
        super().__init__(f"Failed to write {path}: {cause}")


class SessionNotFoundError(Exception):
    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")


class SnapshotNotFoundError(Exception):
    def __init__(self, snapshot_id: str) -> None:
        self.snapshot_id = snapshot_id
        super().__init__(f"Snapshot not found: {snapshot_id}")


class SnapshotCorruptError(Exception):
    def __init__(self, snapshot_id: str, cause: ValidationError) -> None:
        self.snapshot_id = snapshot_id
        self.cause = cause
        super().__init__(f"Snapshot is unreadable: {snapshot_id} ({cause.error_count()} errors)")
