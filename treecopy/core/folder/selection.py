"""
Inclusion/exclusion state over a scanned tree.

State is an exclusion set of node ids plus a parent index. Every operation
here is built so that an included node never has an excluded ancestor;
nothing re-validates this afterwards, so new operations must keep it by
construction.
"""

from __future__ import annotations

from typing import Iterable, Mapping, Optional, Sequence

from treecopy.core.folder.tree import build_parent_index, iter_ancestors, iter_nodes
from treecopy.core.models import FileNode, SyncStatus


def smart_exclusions(nodes: Iterable[FileNode], statuses: Mapping[int, SyncStatus]) -> set[int]:
    """
    Exclusion set that includes exactly the actionable nodes.

    A node is actionable if its own status is ADD/UPDATE or any descendant
    is actionable. Bottom-up fold: actionability is computed on the way back
    up and non-actionable nodes are excluded.
    """
    excluded: set[int] = set()
    _fold_actionable(nodes, statuses, excluded)
    return excluded


def _fold_actionable(
    nodes: Iterable[FileNode],
    statuses: Mapping[int, SyncStatus],
    excluded: set[int],
) -> bool:
    any_actionable = False
    for node in nodes:
        actionable = False
        if node.children:
            actionable = _fold_actionable(node.children, statuses, excluded)

        status = statuses.get(node.id)
        if status is not None and status.is_actionable:
            actionable = True

        if actionable:
            any_actionable = True
        else:
            excluded.add(node.id)
    return any_actionable


class SelectionModel:
    """
    Per-node selection over one snapshot tree.

    Owned by the coordinating context; workers only ever compute exclusion
    sets and hand them over.
    """

    def __init__(self, nodes: Optional[Sequence[FileNode]] = None):
        self.nodes: Sequence[FileNode] = ()
        self.excluded: set[int] = set()
        self.parent_index: dict[int, int] = {}
        if nodes is not None:
            self.reset(nodes)

    def reset(self, nodes: Sequence[FileNode]) -> None:
        """Adopt a freshly scanned tree; everything starts included."""
        self.nodes = nodes
        self.parent_index = build_parent_index(nodes)
        self.excluded = set()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def is_marked_excluded(self, node_id: int) -> bool:
        """Raw membership in the exclusion set."""
        return node_id in self.excluded

    def is_selected(self, node_id: int) -> bool:
        """
        Effective inclusion: the node and every ancestor are not excluded.

        This is what the executor honours, since it never descends into an
        excluded directory.
        """
        if node_id in self.excluded:
            return False
        return not any(a in self.excluded for a in iter_ancestors(node_id, self.parent_index))

    def selected_ids(self) -> set[int]:
        return {node.id for node in iter_nodes(self.nodes) if self.is_selected(node.id)}

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def toggle(self, node: FileNode) -> bool:
        """
        Flip the inclusion of one node.

        Including a node also includes all of its ancestors. Excluding a node
        leaves its descendants untouched (use ``set_selection`` for subtrees).

        Returns:
            The node's new effective inclusion state.
        """
        if not self.is_selected(node.id):
            self.excluded.discard(node.id)
            self._include_ancestors(node.id)
            return True
        self.excluded.add(node.id)
        return False

    def set_selection(self, node: FileNode, selected: bool) -> None:
        """Set a node and its whole subtree to the same state."""
        for candidate in node.iter_all():
            if selected:
                self.excluded.discard(candidate.id)
            else:
                self.excluded.add(candidate.id)
        if selected:
            self._include_ancestors(node.id)

    def smart_select(self, statuses: Mapping[int, SyncStatus]) -> None:
        """Include exactly the actionable nodes and their ancestors."""
        self.excluded = smart_exclusions(self.nodes, statuses)

    def apply_exclusions(self, excluded: set[int]) -> None:
        """Adopt an exclusion set computed elsewhere (e.g. by a worker)."""
        self.excluded = set(excluded)

    def toggle_select_all(self, statuses: Mapping[int, SyncStatus]) -> None:
        """
        Switch between "all copy targets selected" and "nothing selected".

        If every ADD/UPDATE node is currently included, everything is
        excluded. Otherwise everything is excluded and then each target and
        its ancestors are re-included, which also drops manual selections
        made on non-actionable nodes.
        """
        all_nodes = list(iter_nodes(self.nodes))
        targets = [
            node for node in all_nodes
            if statuses.get(node.id) is not None and statuses[node.id].is_actionable
        ]

        all_targets_selected = all(self.is_selected(node.id) for node in targets)

        excluded = {node.id for node in all_nodes}
        if not (targets and all_targets_selected):
            for node in targets:
                excluded.discard(node.id)
                for ancestor_id in iter_ancestors(node.id, self.parent_index):
                    excluded.discard(ancestor_id)
        self.excluded = excluded

    def _include_ancestors(self, node_id: int) -> None:
        for ancestor_id in iter_ancestors(node_id, self.parent_index):
            self.excluded.discard(ancestor_id)
