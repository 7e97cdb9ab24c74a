"""
Staleness comparison between a source node and its destination path.

Classifies each node as:
- ADD (no destination entry)
- UPDATE (destination is stale under the active rule)
- SKIP (destination is current or ahead of the source)

Comparison never raises: unreadable destinations degrade to a status that
errs on the side of copying.
"""

from __future__ import annotations

import logging
import os
import stat
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, Optional

from treecopy.core.errors import ComparisonFailure, PathMappingError
from treecopy.core.folder.paths import PathMapper
from treecopy.core.models import FileNode, OverwriteRule, SyncStatus
from treecopy.services.hashing import HashAlgorithm, HashingService


# Absorbs timestamp resolution differences between filesystems
# (FAT32 keeps 2 s, HFS+ 1 s, others sub-second).
TIMESTAMP_TOLERANCE = timedelta(seconds=2)


class Comparator:
    """
    Decides what the executor should do with a node.

    Destination metadata always comes from a fresh ``stat`` at comparison
    time, never from a previous scan of the destination.
    """

    def __init__(self, hashing: Optional[HashingService] = None):
        self.hashing = hashing or HashingService()
        self.failures: list[ComparisonFailure] = []

    def compare(
        self,
        node: FileNode,
        dest_path: Path,
        rule: OverwriteRule = OverwriteRule.IF_NEWER,
        compare_by_hash: bool = False,
    ) -> SyncStatus:
        """Classify one node against its destination path."""
        if not os.path.lexists(dest_path):
            return SyncStatus.ADD

        if rule == OverwriteRule.ALWAYS:
            return SyncStatus.UPDATE
        if rule == OverwriteRule.NEVER:
            return SyncStatus.SKIP

        try:
            dest_stat = os.stat(dest_path)
        except FileNotFoundError:
            # Removed between the existence check and the stat
            return SyncStatus.ADD
        except OSError as e:
            self._record_failure(dest_path, f"Cannot stat destination: {e}")
            return SyncStatus.UPDATE

        if compare_by_hash:
            return self._compare_content(node, dest_path, dest_stat)
        return self._compare_dates(node, dest_stat)

    def compare_tree(
        self,
        nodes: Iterable[FileNode],
        mapper: PathMapper,
        rule: OverwriteRule = OverwriteRule.IF_NEWER,
        compare_by_hash: bool = False,
        recursive: bool = True,
    ) -> dict[int, SyncStatus]:
        """
        Compare a whole tree, pre-order.

        With ``recursive`` false only the top level receives a status;
        deeper nodes stay unclassified and are never actionable.
        """
        self.failures = []
        statuses: dict[int, SyncStatus] = {}
        self._compare_level(nodes, mapper, rule, compare_by_hash, recursive, statuses)
        if self.failures:
            logging.info(f"Comparator - {len(self.failures)} items could not be verified and will be updated")
        return statuses

    def _compare_level(
        self,
        nodes: Iterable[FileNode],
        mapper: PathMapper,
        rule: OverwriteRule,
        compare_by_hash: bool,
        recursive: bool,
        statuses: dict[int, SyncStatus],
    ) -> None:
        for node in nodes:
            try:
                dest_path = mapper.map(node.path)
            except PathMappingError as e:
                logging.error(f"Comparator - {e}")
                continue

            statuses[node.id] = self.compare(node, dest_path, rule, compare_by_hash)

            if node.children and recursive:
                self._compare_level(node.children, mapper, rule, compare_by_hash, recursive, statuses)

    def _compare_dates(self, node: FileNode, dest_stat: os.stat_result) -> SyncStatus:
        dest_time = datetime.fromtimestamp(dest_stat.st_mtime, tz=timezone.utc)
        if node.modified_time > dest_time + TIMESTAMP_TOLERANCE:
            return SyncStatus.UPDATE
        # Within tolerance, or the destination is ahead: the destination wins
        return SyncStatus.SKIP

    def _compare_content(self, node: FileNode, dest_path: Path, dest_stat: os.stat_result) -> SyncStatus:
        dest_is_dir = stat.S_ISDIR(dest_stat.st_mode)

        if node.is_directory:
            return SyncStatus.SKIP if dest_is_dir else SyncStatus.UPDATE
        if dest_is_dir:
            return SyncStatus.UPDATE

        if node.size != dest_stat.st_size:
            return SyncStatus.UPDATE

        try:
            identical = self.hashing.files_match(node.path, dest_path)
        except OSError as e:
            # Never treat unverifiable content as identical
            self._record_failure(dest_path, f"Cannot hash {node.path.name}: {e}")
            return SyncStatus.UPDATE

        return SyncStatus.SKIP if identical else SyncStatus.UPDATE

    def _record_failure(self, path: Path, message: str) -> None:
        self.failures.append(ComparisonFailure(message, path))
        logging.warning(f"Comparator - {message}")


def create_comparator(hash_algorithm: str = "sha256") -> Comparator:
    """Build a comparator for a configured hash algorithm name."""
    return Comparator(HashingService(HashAlgorithm.from_string(hash_algorithm)))
