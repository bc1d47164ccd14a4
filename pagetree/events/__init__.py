"""Activity log and post-commit change notification."""

from pagetree.events.notifier import LoggingNotifier, Notifier, dispatch
from pagetree.events.store import EventStore

__all__ = ["EventStore", "LoggingNotifier", "Notifier", "dispatch"]
