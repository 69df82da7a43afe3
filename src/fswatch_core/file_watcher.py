"""Directory tree watching and change filtering using watchdog.

The observer gets one recursive watch per root directory. Which directories
count as registered is decided by the TreeWatcher's watch set alone: a raw
notification is only considered when the path itself or its parent directory
is registered, so hidden or too-deep directories stay silent even though the
OS may report them.
"""

import logging
import os
import threading
from collections.abc import Callable

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers.api import BaseObserver, ObservedWatch

from fswatch_core.models import FSEvent
from fswatch_core.notifier import FswatchNotifier, NoOpNotifier

logger = logging.getLogger(__name__)

DEBOUNCE_SECONDS = 0.1


def _raise(error: OSError) -> None:
    raise error


def is_hidden(path: str) -> bool:
    """Check whether a directory's base name starts with a dot."""
    return os.path.basename(os.path.normpath(path)).startswith(".")


def list_all_dirs(root: str, depth: int) -> list[str]:
    """List root and every qualifying directory below it.

    Hidden directories (other than root itself) and directories nested deeper
    than depth are excluded together with their whole subtree.

    Args:
        root: Directory to walk
        depth: Maximum nesting depth relative to root (root is depth 0)

    Returns:
        Directories in walk order, root first

    Raises:
        OSError: If the tree cannot be listed
    """
    dirs = []
    for current, subdirs, _files in os.walk(root, onerror=_raise):
        dirs.append(current)
        current_depth = 0 if current == root else len(os.path.relpath(current, root).split(os.sep))
        if current_depth >= depth:
            subdirs[:] = []
            continue
        subdirs[:] = [d for d in subdirs if not d.startswith(".")]
    return dirs


class TreeWatcher:
    """Owns the watch set and the observer watches backing it."""

    def __init__(self, observer: BaseObserver, notifier: FswatchNotifier | None = None):
        """Initialize tree watcher.

        Args:
            observer: watchdog observer (started or not)
            notifier: Where warnings are reported
        """
        self.observer = observer
        self.notifier = notifier or NoOpNotifier()
        self._watch_set: dict[str, bool] = {}
        self._scheduled: dict[str, ObservedWatch] = {}
        # The observer thread and the startup thread both reach the watch set
        self._lock = threading.Lock()

    def __contains__(self, path: str) -> bool:
        return self.is_watched(path)

    def __len__(self) -> int:
        with self._lock:
            return len(self._watch_set)

    @property
    def watched(self) -> list[str]:
        """Snapshot of registered directories, sorted."""
        with self._lock:
            return sorted(p for p, registered in self._watch_set.items() if registered)

    def is_watched(self, path: str) -> bool:
        with self._lock:
            return self._watch_set.get(os.path.abspath(path), False)

    def covers(self, path: str) -> bool:
        """Whether a notification about path comes from a registered directory."""
        path = os.path.abspath(path)
        with self._lock:
            return self._watch_set.get(path, False) or self._watch_set.get(os.path.dirname(path), False)

    def add(self, path: str) -> bool:
        """Register a directory.

        Returns:
            True if the directory was newly registered
        """
        path = os.path.abspath(path)
        with self._lock:
            if self._watch_set.get(path):
                return False
            self._watch_set[path] = True
        logger.debug(f"Watch directory: {path}")
        return True

    def remove(self, path: str) -> bool:
        """Unregister a directory and anything registered beneath it.

        Returns:
            True if the directory was registered
        """
        path = os.path.abspath(path)
        prefix = path.rstrip(os.sep) + os.sep
        with self._lock:
            if not self._watch_set.get(path):
                return False
            for watched in [p for p in self._watch_set if p == path or p.startswith(prefix)]:
                del self._watch_set[watched]
            watch = self._scheduled.pop(path, None)

        if watch is not None:
            try:
                self.observer.unschedule(watch)
            except (KeyError, OSError) as e:
                # Already gone together with the directory
                logger.debug(f"Unschedule {path} failed: {e}")
        return True

    def watch(self, paths: list[str], depth: int, handler: FileSystemEventHandler) -> None:
        """Register every qualifying directory below each root path.

        A root that cannot be scheduled or listed is reported as a warning and
        skipped; the remaining roots are still watched.

        Args:
            paths: Root directories
            depth: Maximum nesting depth below each root
            handler: Event handler receiving the observer's notifications
        """
        for path in paths:
            root = os.path.abspath(path)
            if self.is_watched(root):
                continue

            if not os.path.isdir(root):
                self.notifier.warning(f"ERR watch path: {path} is not a directory")
                continue

            try:
                self._schedule(root, handler)
            except OSError as e:
                self.notifier.warning(f"ERR watch path: {path}, {e}")
                continue

            self.add(root)
            try:
                dirs = list_all_dirs(root, depth)
            except OSError as e:
                self.notifier.warning(f"ERR list dir: {path}, depth: {depth}, {e}")
                continue

            for directory in dirs:
                self.add(directory)

    def _schedule(self, root: str, handler: FileSystemEventHandler) -> None:
        with self._lock:
            for scheduled in self._scheduled:
                if os.path.commonpath([scheduled, root]) == scheduled:
                    # Already reported by an enclosing root's watch
                    return
        watch = self.observer.schedule(handler, root, recursive=True)
        with self._lock:
            self._scheduled[root] = watch


class ChangeFilter(FileSystemEventHandler):
    """Classify raw notifications into watch-set updates and change events.

    Called from the observer's single dispatch thread, so the debounce map is
    only ever touched serially.
    """

    def __init__(
        self,
        tree_watcher: TreeWatcher,
        publish: Callable[[FSEvent], None],
        notifier: FswatchNotifier | None = None,
        debounce: float = DEBOUNCE_SECONDS,
    ):
        """Initialize change filter.

        Args:
            tree_watcher: Owner of the watch set
            publish: Receives every accepted FSEvent
            notifier: Where watch-set changes are reported
            debounce: Minimum mtime advance (seconds) for a path to count as changed again
        """
        self.tree_watcher = tree_watcher
        self.publish = publish
        self.notifier = notifier or NoOpNotifier()
        self.debounce = debounce
        self._mtimes: dict[str, float] = {}

    def is_changed(self, path: str) -> bool:
        """Debounce check on the file's modification time.

        A path that can no longer be stat'ed counts as changed.
        """
        try:
            mtime = os.stat(path).st_mtime
        except OSError:
            return True

        last = self._mtimes.get(path)
        if last is None or mtime - last > self.debounce:
            self._mtimes[path] = mtime
            return True
        return False

    def on_created(self, event: FileSystemEvent) -> None:
        """Handle file/directory creation events."""
        path = os.path.abspath(event.src_path)
        if not self.tree_watcher.covers(path):
            return
        if event.is_directory:
            self._add_directory(path)
            return
        self._forward(path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        """Handle file/directory removal events."""
        path = os.path.abspath(event.src_path)
        if not self.tree_watcher.covers(path):
            return
        if self.tree_watcher.is_watched(path):
            self._remove_directory(path)
            return
        self._forward(path)

    def on_modified(self, event: FileSystemEvent) -> None:
        """Handle file modification events."""
        if event.is_directory:
            return
        path = os.path.abspath(event.src_path)
        if self.tree_watcher.covers(path):
            self._forward(path)

    def on_moved(self, event: FileSystemEvent) -> None:
        """Handle renames: source goes away, destination appears."""
        src = os.path.abspath(event.src_path)
        dest = os.path.abspath(event.dest_path)
        if event.is_directory:
            if self.tree_watcher.is_watched(src):
                self._remove_directory(src)
            if self.tree_watcher.covers(dest):
                self._add_directory(dest)
            return
        if self.tree_watcher.covers(dest):
            self._forward(dest)

    def _add_directory(self, path: str) -> None:
        if is_hidden(path):
            logger.debug(f"Skip hidden directory: {path}")
            return
        if self.tree_watcher.add(path):
            self.notifier.info(f"Add watcher {path}")

    def _remove_directory(self, path: str) -> None:
        if self.tree_watcher.remove(path):
            self.notifier.info(f"Remove watcher {path}")

    def _forward(self, path: str) -> None:
        if not self.is_changed(path):
            logger.debug(f"Debounced: {path}")
            return
        self.publish(FSEvent(path=path))
