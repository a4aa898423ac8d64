"""Child-process supervision for backend sessions."""

from .process_tracker import OsProcessKiller, ProcessKiller, ProcessTracker

__all__ = ["OsProcessKiller", "ProcessKiller", "ProcessTracker"]
