"""
Helpers over snapshot trees.

The tree itself is a strict ownership hierarchy; anything that needs to walk
upwards uses the parent index built here instead of back-references.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from pathlib import Path
from typing import Iterable, Iterator, Optional, Sequence

from treecopy.core.folder.scanner import natural_sort_key
from treecopy.core.models import FileNode


class SortKey(Enum):
    """Display ordering for a tree level."""
    NAME = auto()
    DATE = auto()
    SIZE = auto()


@dataclass(frozen=True)
class DisplayRow:
    """A node flattened for list display."""
    node: FileNode
    depth: int


def iter_nodes(nodes: Iterable[FileNode]) -> Iterator[FileNode]:
    """Iterate over every node of a forest, pre-order."""
    for node in nodes:
        yield from node.iter_all()


def build_parent_index(nodes: Iterable[FileNode]) -> dict[int, int]:
    """Map child id -> parent id with a single traversal."""
    index: dict[int, int] = {}
    stack = [(node, None) for node in nodes]
    while stack:
        node, parent_id = stack.pop()
        if parent_id is not None:
            index[node.id] = parent_id
        for child in node.children or ():
            stack.append((child, node.id))
    return index


def iter_ancestors(node_id: int, parent_index: dict[int, int]) -> Iterator[int]:
    """Yield ancestor ids from the direct parent up to the top level."""
    current = parent_index.get(node_id)
    while current is not None:
        yield current
        current = parent_index.get(current)


def find_node(nodes: Iterable[FileNode], node_id: int) -> Optional[FileNode]:
    for node in iter_nodes(nodes):
        if node.id == node_id:
            return node
    return None


def sort_nodes(
    nodes: Sequence[FileNode],
    key: SortKey = SortKey.NAME,
    ascending: bool = True,
) -> list[FileNode]:
    """Sort one level for display. Children are not touched."""
    if key == SortKey.DATE:
        sort_key = lambda node: node.modified_time
    elif key == SortKey.SIZE:
        sort_key = lambda node: node.size
    else:
        sort_key = lambda node: natural_sort_key(node.name)
    return sorted(nodes, key=sort_key, reverse=not ascending)


def node_matches(node: FileNode, query: str) -> bool:
    """True if the node or any descendant contains ``query`` in its name."""
    needle = query.casefold()
    return any(needle in candidate.name.casefold() for candidate in node.iter_all())


def filter_nodes(nodes: Sequence[FileNode], query: str) -> list[FileNode]:
    """Keep nodes that match ``query`` themselves or through a descendant."""
    if not query:
        return list(nodes)
    return [node for node in nodes if node_matches(node, query)]


def flatten_visible(
    nodes: Sequence[FileNode],
    expanded: set[Path],
    query: str = "",
    sort_key: SortKey = SortKey.NAME,
    ascending: bool = True,
    depth: int = 0,
) -> list[DisplayRow]:
    """
    Flatten a tree into display rows.

    Directories are only descended into when their path is in ``expanded``.
    """
    rows: list[DisplayRow] = []
    for node in sort_nodes(filter_nodes(nodes, query), sort_key, ascending):
        rows.append(DisplayRow(node, depth))
        if node.is_directory and node.children and node.path in expanded:
            rows.extend(flatten_visible(
                node.children, expanded, query, sort_key, ascending, depth + 1
            ))
    return rows


def directory_paths(nodes: Iterable[FileNode]) -> set[Path]:
    """Paths of every directory in a forest."""
    return {node.path for node in iter_nodes(nodes) if node.is_directory}
