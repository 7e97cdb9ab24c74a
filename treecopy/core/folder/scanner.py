"""
Directory scanner producing snapshot trees.

Provides directory traversal with:
- Optional recursion
- Hidden entry filtering
- Natural name ordering
- Error resilience (unreadable entries are dropped, never raised)
"""

from __future__ import annotations

import logging
import os
import re
import stat
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from treecopy.core.errors import ScanFailure
from treecopy.core.folder.paths import canonicalize_root
from treecopy.core.models import FileNode


_DIGITS = re.compile(r'(\d+)')


def natural_sort_key(name: str) -> tuple:
    """
    Sort key comparing digit runs numerically and text case-insensitively.

    ``file2`` sorts before ``file10``. The raw name is the final tie-breaker
    so the order is total and deterministic.
    """
    parts = _DIGITS.split(name)
    key = [int(part) if i % 2 else part.casefold() for i, part in enumerate(parts)]
    return (key, name)


def is_hidden(name: str, stat_result: Optional[os.stat_result] = None) -> bool:
    """Check whether an entry is conventionally hidden."""
    if name.startswith('.'):
        return True
    # st_file_attributes only exists on Windows
    attributes = getattr(stat_result, 'st_file_attributes', 0) if stat_result else 0
    return bool(attributes & getattr(stat, 'FILE_ATTRIBUTE_HIDDEN', 0x2))


@dataclass
class ScanOptions:
    """Options for directory scanning."""
    include_hidden: bool = False
    recursive: bool = True


class TreeScanner:
    """
    Walks a root directory and builds an immutable tree of FileNodes.

    Symbolic links are recorded as leaves and never followed. Every scan
    creates brand new nodes (and therefore new ids).
    """

    def __init__(self, options: Optional[ScanOptions] = None):
        self.options = options or ScanOptions()
        self.errors: list[ScanFailure] = []

    def scan(
        self,
        root_path: Path | str,
        include_hidden: Optional[bool] = None,
        recursive: Optional[bool] = None,
    ) -> list[FileNode]:
        """
        Scan a directory.

        Args:
            root_path: Directory to scan
            include_hidden: Override ``options.include_hidden``
            recursive: Override ``options.recursive``

        Returns:
            Top-level children of ``root_path``; an empty list if the root
            is missing or not a directory.
        """
        if include_hidden is None:
            include_hidden = self.options.include_hidden
        if recursive is None:
            recursive = self.options.recursive

        self.errors = []

        root = canonicalize_root(root_path)

        if not root.is_dir():
            logging.info(f"TreeScanner - Root is missing or not a directory: {root}")
            return []

        nodes = self._scan_level(root, include_hidden, recursive)
        if self.errors:
            logging.info(f"TreeScanner - Scan of {root} skipped {len(self.errors)} unreadable entries")
        return nodes

    def count_items(self, root_path: Path | str, include_hidden: bool = False) -> int:
        """
        Count all entries below a root.

        Used for display only (e.g. the destination item count); per-item
        decisions always stat the destination afresh.
        """
        root = Path(root_path)
        if not root.is_dir():
            return 0

        count = 0
        for dirpath, dirnames, filenames in os.walk(root, onerror=self._on_walk_error):
            if not include_hidden:
                dirnames[:] = [d for d in dirnames if not d.startswith('.')]
                filenames = [f for f in filenames if not f.startswith('.')]
            count += len(dirnames) + len(filenames)
        return count

    def _scan_level(self, directory: Path, include_hidden: bool, recursive: bool) -> list[FileNode]:
        """Scan one directory level, descending when requested."""
        try:
            with os.scandir(directory) as it:
                entries = list(it)
        except OSError as e:
            self._record_error(directory, e)
            return []

        nodes: list[FileNode] = []
        for entry in entries:
            try:
                stat_result = entry.stat(follow_symlinks=False)
            except OSError as e:
                # Permission denied or the entry vanished since listing
                self._record_error(directory / entry.name, e)
                continue

            if not include_hidden and is_hidden(entry.name, stat_result):
                continue

            path = directory / entry.name
            is_dir = stat.S_ISDIR(stat_result.st_mode)
            modified_time = datetime.fromtimestamp(stat_result.st_mtime, tz=timezone.utc)

            if is_dir:
                children = (
                    tuple(self._scan_level(path, include_hidden, recursive))
                    if recursive else None
                )
                nodes.append(FileNode(
                    path=path,
                    is_directory=True,
                    modified_time=modified_time,
                    size=0,
                    children=children,
                ))
            else:
                nodes.append(FileNode(
                    path=path,
                    is_directory=False,
                    modified_time=modified_time,
                    size=stat_result.st_size,
                ))

        nodes.sort(key=lambda node: natural_sort_key(node.name))
        return nodes

    def _record_error(self, path: Path, error: OSError) -> None:
        self.errors.append(ScanFailure(str(error), path))
        logging.warning(f"TreeScanner - Skipping unreadable entry {path}: {error}")

    def _on_walk_error(self, error: OSError) -> None:
        logging.warning(f"TreeScanner - Walk error at {error.filename}: {error}")
