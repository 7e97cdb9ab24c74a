"""
Core data models for the synchronization engine.

This module defines all data structures shared by the pipeline:
- Snapshot tree nodes produced by the scanner
- Sync status and overwrite rule enumerations
- Copy plan items, progress events and run results
- Error log entries

Statuses are never stored on the nodes themselves: a status depends on the
destination root and the active rule, so it lives in a separate mapping
keyed by node id.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Iterator, Optional


# Process-local node ids. Stable for the lifetime of one scan result only.
_node_ids = itertools.count(1)


def next_node_id() -> int:
    """Allocate a fresh node id."""
    return next(_node_ids)


# =============================================================================
# Enumerations
# =============================================================================

class SyncStatus(Enum):
    """Per-node classification produced by comparison and execution."""
    ADD = "add"         # Destination entry is missing
    UPDATE = "update"   # Destination exists but is stale under the active rule
    SKIP = "skip"       # Destination is current (or ahead of the source)
    DONE = "done"       # Copied successfully in the current run
    ERROR = "error"     # Copy attempt failed in the current run

    @property
    def is_actionable(self) -> bool:
        """Only ADD and UPDATE nodes may enter a copy plan."""
        return self in (SyncStatus.ADD, SyncStatus.UPDATE)

    @property
    def symbol(self) -> str:
        """Short marker used by text front ends."""
        return {
            SyncStatus.ADD: '+',
            SyncStatus.UPDATE: '~',
            SyncStatus.SKIP: ' ',
            SyncStatus.DONE: '*',
            SyncStatus.ERROR: '!',
        }[self]


class OverwriteRule(Enum):
    """Policy for replacing an existing destination entry."""
    ALWAYS = "always"
    NEVER = "never"
    IF_NEWER = "if_newer"

    @classmethod
    def from_string(cls, value: str) -> 'OverwriteRule':
        """Create from a stored or user-supplied string."""
        try:
            normalized = value.strip().lower().replace('-', '_').replace(' ', '_')
            for rule in cls:
                if rule.value == normalized:
                    return rule
            return cls[value.upper()]
        except (KeyError, AttributeError):
            return cls.IF_NEWER


# =============================================================================
# Tree Models
# =============================================================================

@dataclass(frozen=True, eq=False)
class FileNode:
    """
    One filesystem entry under a scan root.

    A directory node owns its children exclusively; there are no parent
    back-references (see ``tree.build_parent_index``). ``children`` is None
    for files, and for directories whose contents were not scanned.
    """
    path: Path
    is_directory: bool
    modified_time: datetime                 # timezone-aware, UTC
    size: int = 0
    children: Optional[tuple['FileNode', ...]] = None
    id: int = field(default_factory=next_node_id)

    @property
    def name(self) -> str:
        """Last path component."""
        return self.path.name

    def iter_all(self) -> Iterator['FileNode']:
        """Iterate over this node and all descendants, pre-order."""
        yield self
        for child in self.children or ():
            yield from child.iter_all()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FileNode):
            return NotImplemented
        return (self.path == other.path
                and self.modified_time == other.modified_time
                and self.size == other.size)

    def __hash__(self) -> int:
        return hash((self.path, self.modified_time, self.size))


# =============================================================================
# Execution Models
# =============================================================================

@dataclass(frozen=True)
class ErrorLogEntry:
    """A failure recorded during a copy run."""
    timestamp: datetime
    message: str
    path: Path

    def __str__(self) -> str:
        return f"[{self.timestamp:%Y-%m-%d %H:%M:%S}] {self.path}: {self.message}"


@dataclass(frozen=True)
class PlanItem:
    """One step of a copy plan."""
    node: FileNode
    status: SyncStatus  # Status computed at compare time

    @property
    def size(self) -> int:
        return 0 if self.node.is_directory else self.node.size


@dataclass
class SyncProgress:
    """Progress event emitted after each planned item."""
    current_item: str
    items_completed: int
    total_items: int
    bytes_copied: int
    total_bytes: int
    elapsed: float
    bytes_per_second: Optional[float] = None   # None until meaningful
    eta_seconds: Optional[float] = None
    dest_item_count: int = 0

    @property
    def fraction(self) -> float:
        """Completed share of the plan, 0.0 to 1.0."""
        if self.total_items == 0:
            return 1.0
        return self.items_completed / self.total_items

    @property
    def percent(self) -> float:
        return self.fraction * 100


@dataclass
class SyncResult:
    """Terminal outcome of a copy run. A run never fails as a whole."""
    planned: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    bytes_copied: int = 0
    errors: list[ErrorLogEntry] = field(default_factory=list)
    statuses: dict[int, SyncStatus] = field(default_factory=dict)
    dest_item_count: int = 0
    duration: float = 0.0

    @property
    def success(self) -> bool:
        return self.failed == 0

    @property
    def is_empty(self) -> bool:
        return self.planned == 0

    def summary(self) -> str:
        """One-line human readable summary."""
        return (f"{self.succeeded} copied, {self.skipped} skipped, "
                f"{self.failed} failed of {self.planned} planned")
