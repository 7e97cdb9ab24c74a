"""
Core synchronization engine: data models, errors and the folder pipeline.
"""

from treecopy.core.errors import (
    ComparisonFailure,
    CopyFailure,
    PathMappingError,
    ScanFailure,
    TreeCopyError,
)
from treecopy.core.models import (
    ErrorLogEntry,
    FileNode,
    OverwriteRule,
    PlanItem,
    SyncProgress,
    SyncResult,
    SyncStatus,
)

__all__ = [
    # Errors
    'TreeCopyError',
    'ScanFailure',
    'PathMappingError',
    'ComparisonFailure',
    'CopyFailure',
    # Models
    'FileNode',
    'SyncStatus',
    'OverwriteRule',
    'ErrorLogEntry',
    'PlanItem',
    'SyncProgress',
    'SyncResult',
]
