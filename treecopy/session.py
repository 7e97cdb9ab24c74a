"""
Coordinator for one source/destination pair.

SyncSession is the sole owner of the snapshot tree, the status map, the
selection state and the error log. Workers compute results on background
threads and hand them back as signals; every mutation of session state
happens here, in the session's own thread, one event at a time.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from PyQt6.QtCore import QObject, QTimer, pyqtSignal, pyqtSlot

from treecopy.core.folder.sync import build_plan
from treecopy.core.folder.selection import SelectionModel
from treecopy.core.folder.tree import (
    DisplayRow,
    SortKey,
    directory_paths,
    flatten_visible,
)
from treecopy.core.models import (
    ErrorLogEntry,
    FileNode,
    PlanItem,
    SyncProgress,
    SyncResult,
    SyncStatus,
)
from treecopy.services.settings import (
    ApplicationSettings,
    SettingsManager,
    SyncSettings,
    resolve_existing_directory,
)
from treecopy.workers.base_worker import WorkerThread
from treecopy.workers.scan_worker import ScanOutcome, ScanWorker
from treecopy.workers.sync_worker import SyncWorker


# Configuration changes arriving within this window are coalesced
RESCAN_DEBOUNCE_MS = 100


class SyncSession(QObject):
    """
    Scan/compare/select/execute coordinator.

    At most one scan and one copy run exist at a time. A rescan requested
    while a scan or copy is in flight is queued (and coalesced); a copy
    requested while anything is in flight is rejected.
    """

    scan_started = pyqtSignal()
    scan_finished = pyqtSignal(object)          # ScanOutcome
    copy_started = pyqtSignal(int)              # planned item count
    progress_changed = pyqtSignal(object)       # SyncProgress
    item_status_changed = pyqtSignal(int, object)  # (node id, SyncStatus)
    error_logged = pyqtSignal(object)           # ErrorLogEntry
    copy_finished = pyqtSignal(object)          # SyncResult
    destination_required = pyqtSignal(str)      # source path
    status_message = pyqtSignal(str)
    worker_failed = pyqtSignal(str, str)        # (error_type, message)

    def __init__(
        self,
        settings_manager: Optional[SettingsManager] = None,
        sync_settings: Optional[SyncSettings] = None,
        parent: Optional[QObject] = None
    ):
        super().__init__(parent)
        self.settings_manager = settings_manager or SettingsManager()
        # Options for this session only; stored settings stay untouched
        self._sync_override = sync_settings

        self.source_root: Optional[Path] = self.settings_manager.last_source()
        self.dest_root: Optional[Path] = self.settings_manager.last_dest()

        self.nodes: list[FileNode] = []
        self.statuses: dict[int, SyncStatus] = {}
        self.selection = SelectionModel()
        self.error_log: list[ErrorLogEntry] = []
        self.expanded: set[Path] = set()
        self.dest_item_count = 0

        self.last_progress: Optional[SyncProgress] = None
        self.last_result: Optional[SyncResult] = None

        self._scan_thread: Optional[WorkerThread] = None
        self._sync_thread: Optional[WorkerThread] = None
        self._threads: list[WorkerThread] = []
        self._rescan_pending = False
        self._generation = 0

        self._debounce = QTimer(self)
        self._debounce.setSingleShot(True)
        self._debounce.setInterval(RESCAN_DEBOUNCE_MS)
        self._debounce.timeout.connect(self.request_scan)

        self.settings_manager.add_observer(self._on_settings_changed)

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def sync_settings(self) -> SyncSettings:
        if self._sync_override is not None:
            return self._sync_override
        return self.settings_manager.settings.sync

    @property
    def is_scanning(self) -> bool:
        return self._scan_thread is not None

    @property
    def is_copying(self) -> bool:
        return self._sync_thread is not None

    @property
    def is_busy(self) -> bool:
        return self.is_scanning or self.is_copying

    def status_of(self, node: FileNode) -> Optional[SyncStatus]:
        return self.statuses.get(node.id)

    def is_selected(self, node: FileNode) -> bool:
        return self.selection.is_selected(node.id)

    def plan(self) -> list[PlanItem]:
        """Copy plan for the current tree, statuses and selection."""
        return build_plan(self.nodes, self.statuses, self.selection.excluded)

    # -------------------------------------------------------------------------
    # Roots
    # -------------------------------------------------------------------------

    def open_path(self, path: str | Path) -> bool:
        """
        Accept an externally supplied source path.

        Returns True if a scan was requested. Without a destination the
        session emits ``destination_required`` instead.
        """
        source = resolve_existing_directory(str(path))
        if source is None:
            logging.warning(f"SyncSession - Ignoring nonexistent path {path}")
            self.status_message.emit(f"Path not found: {path}")
            return False

        self.source_root = source
        self._remember_paths()
        if self.dest_root is None:
            self.destination_required.emit(str(source))
            return False
        return self.request_scan()

    def set_source(self, path: str | Path) -> bool:
        self.source_root = Path(path)
        self._remember_paths()
        return self.request_scan()

    def set_destination(self, path: str | Path) -> bool:
        self.dest_root = Path(path)
        self._remember_paths()
        return self.request_scan()

    def set_roots(self, source: str | Path, dest: str | Path) -> bool:
        """Replace both roots with a single scan request."""
        self.source_root = Path(source)
        self.dest_root = Path(dest)
        self._remember_paths()
        return self.request_scan()

    def _remember_paths(self) -> None:
        self.settings_manager.remember_paths(self.source_root, self.dest_root)

    # -------------------------------------------------------------------------
    # Scanning
    # -------------------------------------------------------------------------

    @pyqtSlot()
    def request_scan(self) -> bool:
        """
        Start a scan, or queue one behind the run in flight.

        Returns False when the roots are incomplete.
        """
        if self.source_root is None:
            return False
        if self.dest_root is None:
            self.destination_required.emit(str(self.source_root))
            return False

        if self.is_busy:
            logging.debug("SyncSession - Busy, rescan queued")
            self._rescan_pending = True
            return True

        self._start_scan()
        return True

    def _start_scan(self) -> None:
        self._generation += 1
        worker = ScanWorker(
            self.source_root,
            self.dest_root,
            settings=self.sync_settings,
            generation=self._generation,
        )
        thread = WorkerThread(worker)
        worker.signals.finished.connect(self._on_scan_finished)
        worker.signals.error.connect(self._on_scan_error)
        worker.signals.status.connect(self.status_message)

        self._scan_thread = thread
        self._track(thread)
        logging.info(f"SyncSession - Scanning {self.source_root} -> {self.dest_root}")
        self.scan_started.emit()
        thread.start()

    @pyqtSlot(object)
    def _on_scan_finished(self, outcome: ScanOutcome) -> None:
        self._scan_thread = None

        if self._rescan_pending or outcome.generation != self._generation:
            # Superseded by a newer request
            self._run_pending_scan()
            return

        self.nodes = outcome.nodes
        self.statuses = outcome.statuses
        self.selection.reset(outcome.nodes)
        self.selection.apply_exclusions(outcome.excluded)
        self.dest_item_count = outcome.dest_item_count
        self.expanded &= directory_paths(outcome.nodes)

        logging.info(
            f"SyncSession - Scan complete: {len(self.plan())} items to copy, "
            f"{outcome.scan_errors} unreadable, {outcome.compare_failures} unverifiable"
        )
        self.scan_finished.emit(outcome)

    @pyqtSlot(str, str)
    def _on_scan_error(self, error_type: str, message: str) -> None:
        self._scan_thread = None
        logging.error(f"SyncSession - Scan failed: {error_type}: {message}")
        self.worker_failed.emit(error_type, message)
        self._run_pending_scan()

    def _run_pending_scan(self) -> None:
        if self._rescan_pending and not self.is_busy:
            self._rescan_pending = False
            self._start_scan()

    @pyqtSlot(object)
    def _on_settings_changed(self, settings: ApplicationSettings) -> None:
        # Restarting the single-shot timer coalesces bursts of changes
        self._debounce.start()

    # -------------------------------------------------------------------------
    # Selection
    # -------------------------------------------------------------------------

    def toggle(self, node: FileNode) -> bool:
        return self.selection.toggle(node)

    def set_selection(self, node: FileNode, selected: bool) -> None:
        self.selection.set_selection(node, selected)

    def smart_select(self) -> None:
        self.selection.smart_select(self.statuses)

    def toggle_select_all(self) -> None:
        self.selection.toggle_select_all(self.statuses)

    # -------------------------------------------------------------------------
    # Display
    # -------------------------------------------------------------------------

    def toggle_expand(self, node: FileNode) -> None:
        if node.path in self.expanded:
            self.expanded.discard(node.path)
        else:
            self.expanded.add(node.path)

    def toggle_expand_all(self) -> None:
        if self.expanded:
            self.expanded.clear()
        else:
            self.expanded = directory_paths(self.nodes)

    def visible_rows(
        self,
        query: str = "",
        sort_key: SortKey = SortKey.NAME,
        ascending: bool = True,
    ) -> list[DisplayRow]:
        return flatten_visible(self.nodes, self.expanded, query, sort_key, ascending)

    # -------------------------------------------------------------------------
    # Copying
    # -------------------------------------------------------------------------

    def execute(self) -> bool:
        """
        Start a copy run for the current plan.

        Returns False (and does nothing) while a scan or copy is in flight
        or the roots are incomplete.
        """
        if self.is_busy:
            logging.warning("SyncSession - Copy rejected, another operation is running")
            self.status_message.emit("Busy")
            return False
        if self.source_root is None or self.dest_root is None:
            return False

        self.error_log.clear()
        self.last_progress = None
        self.last_result = None

        worker = SyncWorker(
            self.nodes,
            self.statuses,
            self.selection.excluded,
            self.source_root,
            self.dest_root,
            settings=self.sync_settings,
            dest_item_count=self.dest_item_count,
        )
        thread = WorkerThread(worker)
        worker.item_status.connect(self._on_item_status)
        worker.error_logged.connect(self._on_error_logged)
        worker.progress_detail.connect(self._on_progress)
        worker.signals.finished.connect(self._on_copy_finished)
        worker.signals.error.connect(self._on_copy_error)
        worker.signals.status.connect(self.status_message)

        self._sync_thread = thread
        self._track(thread)
        self.copy_started.emit(len(self.plan()))
        thread.start()
        return True

    @pyqtSlot(int, object)
    def _on_item_status(self, node_id: int, status: SyncStatus) -> None:
        self.statuses[node_id] = status
        self.item_status_changed.emit(node_id, status)

    @pyqtSlot(object)
    def _on_error_logged(self, entry: ErrorLogEntry) -> None:
        self.error_log.append(entry)
        self.error_logged.emit(entry)

    @pyqtSlot(object)
    def _on_progress(self, progress: SyncProgress) -> None:
        self.last_progress = progress
        self.dest_item_count = progress.dest_item_count
        self.progress_changed.emit(progress)

    @pyqtSlot(object)
    def _on_copy_finished(self, result: SyncResult) -> None:
        self._sync_thread = None
        self.last_result = result
        self.dest_item_count = result.dest_item_count
        self.copy_finished.emit(result)
        self._run_pending_scan()

    @pyqtSlot(str, str)
    def _on_copy_error(self, error_type: str, message: str) -> None:
        self._sync_thread = None
        logging.error(f"SyncSession - Copy run aborted: {error_type}: {message}")
        self.worker_failed.emit(error_type, message)
        self._run_pending_scan()

    # -------------------------------------------------------------------------
    # Threads
    # -------------------------------------------------------------------------

    def _track(self, thread: WorkerThread) -> None:
        # Keep a reference until the thread has really stopped
        self._threads.append(thread)
        thread.finished.connect(lambda: self._release(thread))

    def _release(self, thread: WorkerThread) -> None:
        thread.wait()
        if thread in self._threads:
            self._threads.remove(thread)

    def shutdown(self, timeout_ms: int = 30000) -> None:
        """Wait for running workers and detach from settings."""
        self._debounce.stop()
        self.settings_manager.remove_observer(self._on_settings_changed)
        for thread in list(self._threads):
            thread.wait(timeout_ms)
