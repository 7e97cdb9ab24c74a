"""
Worker for the scan and compare phases.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from PyQt6.QtCore import QObject

from treecopy.core.folder.comparer import create_comparator
from treecopy.core.folder.paths import PathMapper
from treecopy.core.folder.scanner import TreeScanner
from treecopy.core.folder.selection import smart_exclusions
from treecopy.core.models import FileNode, SyncStatus
from treecopy.services.settings import SyncSettings
from treecopy.workers.base_worker import BaseWorker


@dataclass
class ScanOutcome:
    """Everything the coordinator needs after a scan."""
    source_root: Path
    dest_root: Path
    nodes: list[FileNode]
    statuses: dict[int, SyncStatus]
    excluded: set[int]
    dest_item_count: int = 0
    scan_errors: int = 0
    compare_failures: int = 0
    generation: int = 0


class ScanWorker(BaseWorker):
    """
    Scans the source, compares it against the destination and derives
    the default (smart) exclusion set.

    The source is always scanned recursively so the whole structure can be
    displayed; ``recursive_scan`` only limits which levels get compared.
    """

    def __init__(
        self,
        source_root: str | Path,
        dest_root: str | Path,
        settings: Optional[SyncSettings] = None,
        generation: int = 0,
        parent: Optional[QObject] = None
    ):
        super().__init__(parent)
        self.source_root = Path(source_root)
        self.dest_root = Path(dest_root)
        self.settings = settings or SyncSettings()
        self.generation = generation

    def do_work(self) -> ScanOutcome:
        """Scan, compare and smart-select."""
        self.report_status(f"Scanning {self.source_root.name}...")

        scanner = TreeScanner()
        nodes = scanner.scan(
            self.source_root,
            include_hidden=self.settings.copy_hidden_files,
            recursive=True,
        )
        scan_errors = len(scanner.errors)
        dest_item_count = scanner.count_items(
            self.dest_root, include_hidden=self.settings.copy_hidden_files
        )

        self.report_status("Comparing...")
        comparator = create_comparator(self.settings.hash_algorithm)
        statuses = comparator.compare_tree(
            nodes,
            PathMapper(self.source_root, self.dest_root),
            rule=self.settings.overwrite_rule,
            compare_by_hash=self.settings.compare_by_hash,
            recursive=self.settings.recursive_scan,
        )

        return ScanOutcome(
            source_root=self.source_root,
            dest_root=self.dest_root,
            nodes=nodes,
            statuses=statuses,
            excluded=smart_exclusions(nodes, statuses),
            dest_item_count=dest_item_count,
            scan_errors=scan_errors,
            compare_failures=len(comparator.failures),
            generation=self.generation,
        )
