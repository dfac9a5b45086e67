"""File watching with debounce and cooldown."""

from ._debounce import Debouncer
from ._watcher import ChangeCallback, FileWatcher, WatchTarget

__all__ = ["ChangeCallback", "Debouncer", "FileWatcher", "WatchTarget"]
