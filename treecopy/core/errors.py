"""
Exception taxonomy for the synchronization pipeline.

Only ``CopyFailure`` ever becomes user visible (as an error log entry);
the scanner and comparator log and degrade instead of raising.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class TreeCopyError(Exception):
    """Base class for all engine errors."""

    def __init__(self, message: str, path: Optional[Path] = None):
        super().__init__(message)
        self.path = path


class ScanFailure(TreeCopyError):
    """A single entry could not be read during a scan."""


class PathMappingError(TreeCopyError):
    """A node path does not lie under the source root."""


class ComparisonFailure(TreeCopyError):
    """Destination stat or content digest could not be computed."""


class CopyFailure(TreeCopyError):
    """Creating a directory or copying a file failed."""
