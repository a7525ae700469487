"""calltree: a task tree with call-stack focus, undo/redo and session archives."""

__version__ = "0.1.0"
