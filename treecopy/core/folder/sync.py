"""
One-way copy executor.

Provides plan execution with:
- Plan building that honours the exclusion set
- Re-validation of every item right before it is copied
- Attribute handling (timestamps preserved or reset)
- Progress, throughput and ETA reporting
- Per-item error capture (a failure never aborts the batch)
"""

from __future__ import annotations

import contextlib
import logging
import os
import stat
import tempfile
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, Mapping, Optional

from treecopy.core.errors import CopyFailure, PathMappingError
from treecopy.core.folder.comparer import Comparator
from treecopy.core.folder.paths import PathMapper
from treecopy.core.models import (
    ErrorLogEntry,
    FileNode,
    OverwriteRule,
    PlanItem,
    SyncProgress,
    SyncResult,
    SyncStatus,
)


# Rate and ETA are noise until some time has passed
RATE_WARMUP_SECONDS = 0.5

# Suffix of in-progress copies written next to their destination
TEMP_SUFFIX = ".partial"


@dataclass
class SyncOptions:
    """Options for plan execution."""
    overwrite_rule: OverwriteRule = OverwriteRule.IF_NEWER
    compare_by_hash: bool = False
    preserve_attributes: bool = True
    buffer_size: int = 65536


def build_plan(
    nodes: Iterable[FileNode],
    statuses: Mapping[int, SyncStatus],
    excluded: set[int],
) -> list[PlanItem]:
    """
    Collect the actionable, included nodes in pre-order.

    Excluded nodes are not entered at all, so their whole subtree is
    skipped. Directories come before their own contents.
    """
    plan: list[PlanItem] = []
    for node in nodes:
        if node.id in excluded:
            continue
        status = statuses.get(node.id)
        if status is not None and status.is_actionable:
            plan.append(PlanItem(node=node, status=status))
        if node.children:
            plan.extend(build_plan(node.children, statuses, excluded))
    return plan


class SyncExecutor:
    """
    Executes a copy plan item by item.

    Status updates are reported through callbacks and collected in the
    returned SyncResult; the caller's status map is never mutated.
    """

    def __init__(
        self,
        options: Optional[SyncOptions] = None,
        comparator: Optional[Comparator] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.options = options or SyncOptions()
        self.comparator = comparator or Comparator()
        self._clock = clock

    def execute(
        self,
        nodes: Iterable[FileNode],
        statuses: Mapping[int, SyncStatus],
        excluded: set[int],
        source_root: Path | str,
        dest_root: Path | str,
        progress_callback: Optional[Callable[[SyncProgress], None]] = None,
        item_callback: Optional[Callable[[FileNode, SyncStatus, Optional[ErrorLogEntry]], None]] = None,
        dest_item_count: int = 0,
    ) -> SyncResult:
        """
        Execute the plan derived from (tree, statuses, exclusions).

        Args:
            nodes: Top-level nodes of the source snapshot
            statuses: Status per node id from the comparison phase
            excluded: Excluded node ids
            source_root: Root the snapshot was scanned from
            dest_root: Destination root
            progress_callback: Called after every item
            item_callback: Called with (node, final status, error entry or None)
            dest_item_count: Destination item count before the run

        Returns:
            SyncResult; the run itself never fails.
        """
        start_time = self._clock()
        plan = build_plan(nodes, statuses, excluded)
        result = SyncResult(planned=len(plan), dest_item_count=dest_item_count)

        if not plan:
            logging.info("SyncExecutor - Nothing to copy")
            return result

        mapper = PathMapper(source_root, dest_root)
        total_bytes = sum(item.size for item in plan)
        processed_bytes = 0
        logging.info(f"SyncExecutor - Copying {len(plan)} items ({total_bytes} bytes) to {mapper.dest_root}")

        for index, item in enumerate(plan):
            node = item.node
            error_entry: Optional[ErrorLogEntry] = None

            try:
                status, bytes_copied = self._process_item(node, mapper)
            except CopyFailure as e:
                status = SyncStatus.ERROR
                error_entry = ErrorLogEntry(
                    timestamp=datetime.now(),
                    message=str(e),
                    path=node.path,
                )
                result.errors.append(error_entry)
                result.failed += 1
                logging.error(f"SyncExecutor - Failed to copy {node.path}: {e}")
            else:
                if status == SyncStatus.SKIP:
                    result.skipped += 1
                else:
                    if status == SyncStatus.ADD:
                        result.dest_item_count += 1
                    status = SyncStatus.DONE
                    result.succeeded += 1
                    result.bytes_copied += bytes_copied

            # Bytes count as processed either way so the ETA keeps moving
            processed_bytes += item.size
            result.statuses[node.id] = status

            if item_callback:
                item_callback(node, status, error_entry)

            if progress_callback:
                progress_callback(self._progress(
                    node, index + 1, len(plan), processed_bytes, total_bytes,
                    self._clock() - start_time, result.dest_item_count
                ))

        result.duration = self._clock() - start_time
        logging.info(f"SyncExecutor - {result.summary()}")
        return result

    def _process_item(self, node: FileNode, mapper: PathMapper) -> tuple[SyncStatus, int]:
        """
        Re-check and perform one item.

        Returns:
            (status, bytes copied). The status is the re-checked one:
            ADD/UPDATE when acted on, SKIP otherwise.

        Raises:
            CopyFailure: on any filesystem error.
        """
        try:
            dest = mapper.map(node.path)
        except PathMappingError as e:
            raise CopyFailure(str(e), node.path) from e

        # The destination may have changed since the comparison phase
        status = self.comparator.compare(
            node, dest, self.options.overwrite_rule, self.options.compare_by_hash
        )
        if not status.is_actionable:
            logging.debug(f"SyncExecutor - {dest} is now current, skipping")
            return SyncStatus.SKIP, 0

        bytes_copied = 0
        try:
            if node.is_directory:
                dest.mkdir(parents=True, exist_ok=True)
            else:
                bytes_copied = self._copy_file(node.path, dest)
        except OSError as e:
            raise CopyFailure(e.strerror or str(e), node.path) from e

        return status, bytes_copied

    def _copy_file(self, source: Path, dest: Path) -> int:
        """
        Copy file bytes, replacing whatever is at ``dest``.

        The bytes go to a temporary file beside ``dest`` which is renamed
        over it only once complete, so a failed copy leaves the previous
        destination file as it was.

        Returns bytes copied.
        """
        dest.parent.mkdir(parents=True, exist_ok=True)

        bytes_copied = 0
        with open(source, 'rb') as src:
            source_stat = os.fstat(src.fileno())
            fd, temp_name = tempfile.mkstemp(
                prefix=f".{dest.name}.", suffix=TEMP_SUFFIX, dir=dest.parent
            )
            try:
                with os.fdopen(fd, 'wb') as dst:
                    while chunk := src.read(self.options.buffer_size):
                        dst.write(chunk)
                        bytes_copied += len(chunk)

                os.chmod(temp_name, stat.S_IMODE(source_stat.st_mode))
                if self.options.preserve_attributes:
                    os.utime(temp_name, ns=(source_stat.st_atime_ns, source_stat.st_mtime_ns))
                else:
                    # Explicitly stamp the copy with the current time
                    os.utime(temp_name)

                os.replace(temp_name, dest)
            except Exception:
                with contextlib.suppress(OSError):
                    os.unlink(temp_name)
                raise

        return bytes_copied

    def _progress(
        self,
        node: FileNode,
        completed: int,
        total: int,
        processed_bytes: int,
        total_bytes: int,
        elapsed: float,
        dest_item_count: int,
    ) -> SyncProgress:
        rate: Optional[float] = None
        eta: Optional[float] = None
        if elapsed > RATE_WARMUP_SECONDS and processed_bytes > 0:
            rate = processed_bytes / elapsed
            eta = max(total_bytes - processed_bytes, 0) / rate

        return SyncProgress(
            current_item=node.name,
            items_completed=completed,
            total_items=total,
            bytes_copied=processed_bytes,
            total_bytes=total_bytes,
            elapsed=elapsed,
            bytes_per_second=rate,
            eta_seconds=eta,
            dest_item_count=dest_item_count,
        )
