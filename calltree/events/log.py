"""Append-only, human-readable audit log. One file per session.

Each event is a single line:

    [2026-10-19T08:37:00.123Z] ADD_CHILD nodeId=<id> parentId=<id> title="Task" extra

Lines are never rewritten. Appending is best-effort: the log is a
supplementary trail, so a failed write is logged and the caller carries on.
"""

import asyncio
import logging
from pathlib import Path

from calltree.models import now_iso

logger = logging.getLogger(__name__)


def escape_title(title: str | None) -> str:
    """Escape double quotes; newlines too, so one event stays one line."""
    return (
        (title or "")
        .replace('"', '\\"')
        .replace("\r", "\\r")
        .replace("\n", "\\n")
    )


def format_event_line(
    action: str,
    *,
    node_id: str | None = None,
    parent_id: str | None = None,
    title: str | None = None,
    extra: str | None = None,
    timestamp: str | None = None,
) -> str:
    """Build one event line (without the trailing newline)."""
    line = (
        f"[{timestamp or now_iso()}] {action}"
        f" nodeId={node_id or 'none'}"
        f" parentId={parent_id or 'none'}"
        f' title="{escape_title(title)}"'
    )
    if extra:
        line += f" {extra}"
    return line


class EventLog:
    """The events file of a single session."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    async def append(
        self,
        action: str,
        *,
        node_id: str | None = None,
        parent_id: str | None = None,
        title: str | None = None,
        extra: str | None = None,
    ) -> bool:
        """Append one event. Returns False (after logging) if the write failed."""
        line = format_event_line(
            action, node_id=node_id, parent_id=parent_id, title=title, extra=extra
        )
        try:
            await asyncio.to_thread(self._write_line, line)
        except OSError:
            logger.exception("Event log write failed: %s", self._path)
            return False
        return True

    def _write_line(self, line: str) -> None:
        with self._path.open("a", encoding="utf-8") as handle:
            handle.write(line)
            handle.write("\n")

    async def read_lines(self) -> list[str]:
        """Stripped, non-empty lines in append order. Raises FileNotFoundError."""
        raw = await asyncio.to_thread(self._path.read_text, encoding="utf-8")
        # Only \n ends an event. splitlines() would also split titles on \x0c or \x85.
        return [line.strip() for line in raw.split("\n") if line.strip()]
