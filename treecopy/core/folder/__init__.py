"""
Folder synchronization pipeline.

Provides functionality for:
- Recursive tree scanning
- Source-to-destination path mapping
- Per-node staleness comparison
- Selection state with ancestor/descendant propagation
- Copy plan execution
"""

from treecopy.core.folder.scanner import (
    TreeScanner,
    ScanOptions,
    natural_sort_key,
)
from treecopy.core.folder.paths import (
    PathMapper,
    map_path,
    canonicalize,
    canonicalize_root,
)
from treecopy.core.folder.comparer import (
    Comparator,
    TIMESTAMP_TOLERANCE,
    create_comparator,
)
from treecopy.core.folder.selection import (
    SelectionModel,
    smart_exclusions,
)
from treecopy.core.folder.sync import (
    SyncExecutor,
    SyncOptions,
    build_plan,
)
from treecopy.core.folder.tree import (
    DisplayRow,
    SortKey,
    build_parent_index,
    filter_nodes,
    flatten_visible,
    iter_nodes,
    sort_nodes,
)

__all__ = [
    # Scanner
    'TreeScanner',
    'ScanOptions',
    'natural_sort_key',
    # Paths
    'PathMapper',
    'map_path',
    'canonicalize',
    'canonicalize_root',
    # Comparer
    'Comparator',
    'TIMESTAMP_TOLERANCE',
    'create_comparator',
    # Selection
    'SelectionModel',
    'smart_exclusions',
    # Sync
    'SyncExecutor',
    'SyncOptions',
    'build_plan',
    # Tree
    'DisplayRow',
    'SortKey',
    'build_parent_index',
    'filter_nodes',
    'flatten_visible',
    'iter_nodes',
    'sort_nodes',
]
