"""Session audit trail: append-only event log files."""

from calltree.events.log import EventLog, format_event_line

__all__ = ["EventLog", "format_event_line"]
