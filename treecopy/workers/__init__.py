"""
Background workers for non-blocking operations.

Provides QThread-based workers for:
- Scanning and comparing a source tree
- Executing a copy plan

All workers use Qt signals for thread-safe communication
with the coordinating thread.
"""

from treecopy.workers.base_worker import (
    BaseWorker,
    WorkerSignals,
    WorkerState,
    WorkerThread,
)
from treecopy.workers.scan_worker import (
    ScanOutcome,
    ScanWorker,
)
from treecopy.workers.sync_worker import (
    SyncWorker,
)

__all__ = [
    # Base
    'BaseWorker',
    'WorkerSignals',
    'WorkerState',
    'WorkerThread',
    # Scan
    'ScanOutcome',
    'ScanWorker',
    # Sync
    'SyncWorker',
]
