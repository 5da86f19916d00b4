"""
Patch directory watcher.

Uses watchdog to monitor a directory of patch fragments and feeds every
created or modified ``.py`` file to a :class:`LivePatcher`.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from typing import Optional

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .patching import Exporter, LivePatcher, ParseError

logger = logging.getLogger(__name__)

_PATCH_EXTENSIONS = {".py"}


class PatchFileHandler(FileSystemEventHandler):
    """
    Watchdog event handler that applies changed patch files.

    The patcher is not thread-safe; every patch and export runs under one
    lock, since watchdog delivers events on its observer thread.

    Parameters
    ----------
    patcher:
        The :class:`LivePatcher` receiving the fragments.
    watch_root:
        Absolute path of the watched directory.
    namespace:
        Namespace override passed with every fragment.
    export_dir:
        When set, pending/original/diff files are rewritten there after each
        applied fragment.
    debounce_seconds:
        Minimum delay between processing the same file (prevents rapid
        re-patching on editor auto-saves).
    """

    def __init__(
        self,
        patcher: LivePatcher,
        watch_root: str,
        namespace: Optional[str] = None,
        export_dir: Optional[str] = None,
        debounce_seconds: float = 0.5,
    ) -> None:
        super().__init__()
        self._patcher = patcher
        self._watch_root = os.path.abspath(watch_root)
        self._namespace = namespace
        self._export_dir = export_dir
        self._exporter = Exporter(patcher) if export_dir else None
        self._debounce = debounce_seconds
        self._last_event: dict[str, float] = {}
        self._event_lock = threading.Lock()
        self._patch_lock = threading.Lock()
        self._restart_reported = False

    # ------------------------------------------------------------------
    # Watchdog event dispatch
    # ------------------------------------------------------------------

    def on_modified(self, event) -> None:  # type: ignore[override]
        """Handle a file modification event."""
        if not event.is_directory:
            self.handle_change(event.src_path)

    def on_created(self, event) -> None:  # type: ignore[override]
        """Handle a file creation event."""
        if not event.is_directory:
            self.handle_change(event.src_path)

    def on_moved(self, event) -> None:  # type: ignore[override]
        """Handle a file move/rename event (editors often save via rename)."""
        if not event.is_directory:
            self.handle_change(event.dest_path)

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    def handle_change(self, abs_path: str) -> bool:
        """Apply the fragment at *abs_path*. Returns True when it was patched."""
        if self._should_ignore(abs_path):
            return False
        if self._is_debounced(abs_path):
            return False

        rel_path = os.path.relpath(abs_path, self._watch_root)
        try:
            with open(abs_path, "r", encoding="utf-8") as f:
                source = f.read()
        except OSError as exc:
            logger.warning("[LivePatch watcher] Cannot read %s: %s", rel_path, exc)
            return False

        if not source.strip():
            return False

        with self._patch_lock:
            try:
                self._patcher.patch(source, self._namespace)
            except ParseError as exc:
                logger.warning("[LivePatch watcher] Skipping %s: %s", rel_path, exc)
                return False

            logger.info("[LivePatch watcher] Applied %s", rel_path)
            self._export()

            if self._patcher.needs_restart() and not self._restart_reported:
                self._restart_reported = True
                logger.warning(
                    "[LivePatch watcher] %s could not be applied live; "
                    "a process restart is required", rel_path,
                )
        return True

    def _should_ignore(self, abs_path: str) -> bool:
        """Return True if this file is not a patch fragment."""
        ext = os.path.splitext(abs_path)[1].lower()
        if ext not in _PATCH_EXTENSIONS:
            return True
        name = os.path.basename(abs_path)
        # editor swap/backup files and hidden files
        return name.startswith(".") or name.endswith("~")

    def _is_debounced(self, abs_path: str) -> bool:
        """Return True if this file was recently processed (debounce)."""
        now = time.time()
        with self._event_lock:
            last = self._last_event.get(abs_path, 0.0)
            if now - last < self._debounce:
                return True
            self._last_event[abs_path] = now
        return False

    def _export(self) -> None:
        if self._exporter is None:
            return
        try:
            self._exporter.write_merged_to(os.path.join(self._export_dir, "pending.py"))
            self._exporter.write_original_to(os.path.join(self._export_dir, "original.py"))
            self._exporter.write_unified_diff(os.path.join(self._export_dir, "patch.diff"))
        except OSError as exc:
            logger.warning("[LivePatch watcher] Export to %s failed: %s", self._export_dir, exc)


class PatchWatcher:
    """
    High-level wrapper around watchdog that monitors a patch directory.

    Usage::

        watcher = PatchWatcher(patcher, "/path/to/patches")
        watcher.start()   # blocking (call from a thread) or use start_background()
        watcher.stop()
    """

    def __init__(
        self,
        patcher: LivePatcher,
        watch_root: str,
        namespace: Optional[str] = None,
        export_dir: Optional[str] = None,
        debounce_seconds: Optional[float] = None,
    ) -> None:
        self._watch_root = os.path.abspath(watch_root)
        self._observer: Optional[Observer] = None
        self._thread: Optional[threading.Thread] = None
        if debounce_seconds is None:
            debounce_seconds = patcher.config.WATCH_DEBOUNCE_SECONDS
        self.handler = PatchFileHandler(
            patcher, self._watch_root,
            namespace=namespace,
            export_dir=export_dir,
            debounce_seconds=debounce_seconds,
        )

    def start(self) -> None:
        """
        Start watching the patch directory.

        Blocks until :meth:`stop` is called or the process is interrupted.
        """
        self._wait(self._start_observer())

    def start_background(self) -> None:
        """Start the observer now and wait on it from a background daemon thread."""
        observer = self._start_observer()
        self._thread = threading.Thread(
            target=self._wait, args=(observer,), daemon=True, name="livepatch-watcher",
        )
        self._thread.start()

    def _start_observer(self) -> Observer:
        observer = Observer()
        observer.schedule(self.handler, self._watch_root, recursive=False)
        observer.start()
        self._observer = observer
        logger.info("[LivePatch watcher] Watching %s", self._watch_root)
        return observer

    @staticmethod
    def _wait(observer: Observer) -> None:
        try:
            while observer.is_alive():
                observer.join(timeout=1)
        except KeyboardInterrupt:
            observer.stop()
        observer.join()

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the observer and wait for it (and the background thread) to finish."""
        if self._observer is not None:
            self._observer.stop()
            if self._observer.is_alive():
                self._observer.join(timeout)
            logger.info("[LivePatch watcher] Stopped")
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)
            self._thread = None
