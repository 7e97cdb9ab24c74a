"""
Worker for executing a copy plan.
"""

from __future__ import annotations

from pathlib import Path
from typing import Mapping, Optional, Sequence

from PyQt6.QtCore import QObject, pyqtSignal

from treecopy.core.folder.comparer import create_comparator
from treecopy.core.folder.sync import SyncExecutor, SyncOptions
from treecopy.core.models import ErrorLogEntry, FileNode, SyncProgress, SyncResult, SyncStatus
from treecopy.services.settings import SyncSettings
from treecopy.workers.base_worker import BaseWorker


class SyncWorker(BaseWorker):
    """
    Worker for executing folder synchronization.

    Reports each item's outcome and a progress event per item.
    """

    # Emitted once per planned item with its final status
    item_status = pyqtSignal(int, object)  # (node id, SyncStatus)

    # Emitted when an item fails (the run continues)
    error_logged = pyqtSignal(object)  # ErrorLogEntry

    # Emitted after every item
    progress_detail = pyqtSignal(object)  # SyncProgress

    def __init__(
        self,
        nodes: Sequence[FileNode],
        statuses: Mapping[int, SyncStatus],
        excluded: set[int],
        source_root: str | Path,
        dest_root: str | Path,
        settings: Optional[SyncSettings] = None,
        dest_item_count: int = 0,
        parent: Optional[QObject] = None
    ):
        super().__init__(parent)
        # Snapshots: the coordinator keeps mutating its own copies
        self.nodes = list(nodes)
        self.statuses = dict(statuses)
        self.excluded = set(excluded)
        self.source_root = Path(source_root)
        self.dest_root = Path(dest_root)
        self.settings = settings or SyncSettings()
        self.dest_item_count = dest_item_count

    def do_work(self) -> SyncResult:
        """Execute synchronization."""
        self.report_status("Copying...")

        executor = SyncExecutor(
            SyncOptions(
                overwrite_rule=self.settings.overwrite_rule,
                compare_by_hash=self.settings.compare_by_hash,
                preserve_attributes=self.settings.preserve_attributes,
            ),
            comparator=create_comparator(self.settings.hash_algorithm),
        )

        return executor.execute(
            self.nodes,
            self.statuses,
            self.excluded,
            self.source_root,
            self.dest_root,
            progress_callback=self._on_progress,
            item_callback=self._on_item,
            dest_item_count=self.dest_item_count,
        )

    def _on_item(self, node: FileNode, status: SyncStatus, error: Optional[ErrorLogEntry]) -> None:
        self.item_status.emit(node.id, status)
        if error is not None:
            self.error_logged.emit(error)

    def _on_progress(self, progress: SyncProgress) -> None:
        self.progress_detail.emit(progress)
