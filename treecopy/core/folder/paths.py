"""
Source-to-destination path mapping.

A single canonicalization policy is shared by scanning, comparison and
execution so the phases can never disagree on a path:
- roots are fully resolved (symlinks followed, separators normalized),
  which absorbs OS-level aliases such as /var -> /private/var;
- node paths get their parent directory resolved and keep their own last
  component, so a symlink leaf is never followed out of the tree.
"""

from __future__ import annotations

import os
from pathlib import Path

from treecopy.core.errors import PathMappingError


def canonicalize_root(path: Path | str) -> Path:
    """Canonical form of a scan root."""
    return Path(os.path.realpath(os.path.normpath(os.fspath(path))))


def canonicalize(path: Path | str) -> Path:
    """Canonical form of a node path."""
    path = Path(os.path.normpath(os.fspath(path)))
    if path.parent == path:
        return path
    return Path(os.path.realpath(path.parent)) / path.name


def relative_to_root(node_path: Path | str, source_root: Path | str) -> Path:
    """
    Path of a node relative to the source root.

    Raises:
        PathMappingError: if the node does not lie under the root.
    """
    node = canonicalize(node_path)
    root = canonicalize_root(source_root)
    try:
        return node.relative_to(root)
    except ValueError:
        raise PathMappingError(
            f"{node} is not inside source root {root}", Path(node_path)
        ) from None


def map_path(node_path: Path | str, source_root: Path | str, dest_root: Path | str) -> Path:
    """Re-root a source node path under the destination root."""
    relative = relative_to_root(node_path, source_root)
    return canonicalize_root(dest_root) / relative


class PathMapper:
    """
    Maps source node paths for a fixed pair of roots.

    Both roots are canonicalized once at construction.
    """

    def __init__(self, source_root: Path | str, dest_root: Path | str):
        self.source_root = canonicalize_root(source_root)
        self.dest_root = canonicalize_root(dest_root)

    def relative(self, node_path: Path | str) -> Path:
        node = canonicalize(node_path)
        try:
            return node.relative_to(self.source_root)
        except ValueError:
            raise PathMappingError(
                f"{node} is not inside source root {self.source_root}", Path(node_path)
            ) from None

    def map(self, node_path: Path | str) -> Path:
        """Destination path for a source node path."""
        return self.dest_root / self.relative(node_path)
