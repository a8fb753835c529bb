"""
Hierarchy resolution for expandable diagrams.

A node is visible when it is a root or when its parent is both visible and
expanded. Edges whose endpoints are hidden are rerouted to the nearest
visible ancestor, and edges that land on the same (from, to) pair are
merged into one thicker edge.

Expansion and selection are plain sets of names owned by the caller; the
toggle helpers at the bottom of this module are the only functions that
change them.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Iterable, Optional

from nestgraph_mcp.models import Edge, Node, RoutedEdge
from nestgraph_mcp.negotiation import SizeOverrides

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------

class HierarchyResolver:
    """Index over a node forest answering visibility and ancestry queries.

    Parent pointers are expected to form a forest. Walks up the tree keep a
    visited set, so a cyclic input terminates instead of looping.
    """

    def __init__(self, nodes: Iterable[Node]) -> None:
        self._nodes: dict[str, Node] = {}
        for node in nodes:
            if node.name in self._nodes:
                logger.warning("Duplicate node '%s'; keeping the last definition", node.name)
            self._nodes[node.name] = node

        self._children: dict[Optional[str], list[str]] = {}
        self._parents: dict[str, Optional[str]] = {}
        for node in self._nodes.values():
            parent = node.parent
            if parent is not None and parent not in self._nodes:
                logger.warning(
                    "Node '%s' references unknown parent '%s'; treating it as a root",
                    node.name, parent,
                )
                parent = None
            self._parents[node.name] = parent
            self._children.setdefault(parent, []).append(node.name)

    # -- lookup ------------------------------------------------------------

    def __contains__(self, name: object) -> bool:
        return name in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    @property
    def nodes(self) -> list[Node]:
        return list(self._nodes.values())

    def get(self, name: str) -> Node | None:
        return self._nodes.get(name)

    def parent_of(self, name: str) -> Optional[str]:
        return self._parents.get(name)

    def roots(self) -> list[Node]:
        return [self._nodes[n] for n in self._children.get(None, [])]

    def get_subgraph(self, name: str) -> list[Node]:
        """Direct children of *name*, in input order."""
        return [self._nodes[n] for n in self._children.get(name, [])]

    def has_children(self, name: str) -> bool:
        return bool(self._children.get(name))

    def ancestors(self, name: str) -> list[str]:
        """Parent chain of *name*, nearest first. Stops on a repeated name."""
        chain: list[str] = []
        visited = {name}
        parent = self._parents.get(name)
        while parent is not None and parent not in visited:
            chain.append(parent)
            visited.add(parent)
            parent = self._parents.get(parent)
        return chain

    def depth(self, name: str) -> int:
        return len(self.ancestors(name))

    def descendants(self, name: str) -> set[str]:
        """*name* plus every node beneath it."""
        result: set[str] = set()
        stack = [name]
        while stack:
            current = stack.pop()
            if current in result:
                continue
            result.add(current)
            stack.extend(self._children.get(current, []))
        return result

    def find_cycle(self) -> list[str] | None:
        """Return one cycle of parent pointers, or None for a proper forest."""
        done: set[str] = set()
        for start in self._nodes:
            path: list[str] = []
            on_path: set[str] = set()
            current: Optional[str] = start
            while current is not None and current not in done:
                if current in on_path:
                    return path[path.index(current):]
                path.append(current)
                on_path.add(current)
                current = self._parents.get(current)
            done.update(path)
        return None

    # -- visibility --------------------------------------------------------

    def is_visible(self, name: str, expanded: set[str] | frozenset[str]) -> bool:
        if name not in self._nodes:
            return False
        visited: set[str] = set()
        current = name
        while True:
            parent = self._parents.get(current)
            if parent is None:
                return True
            if parent not in expanded or parent in visited:
                return False
            visited.add(current)
            current = parent

    def visible_nodes(self, expanded: set[str] | frozenset[str]) -> list[Node]:
        return [n for n in self._nodes.values() if self.is_visible(n.name, expanded)]

    def get_visible_node(self, name: str, expanded: set[str] | frozenset[str]) -> Optional[str]:
        """Name of the visible node currently representing *name*.

        Walks up while the current node is hidden. Returns None for a name
        that is not in the graph.
        """
        if name not in self._nodes:
            return None
        visited: set[str] = set()
        current = name
        while not self.is_visible(current, expanded):
            visited.add(current)
            parent = self._parents.get(current)
            if parent is None or parent in visited:
                break
            current = parent
        return current

    # -- edges -------------------------------------------------------------

    def reroute_edges(
        self,
        edges: Iterable[Edge],
        expanded: set[str] | frozenset[str],
    ) -> tuple[list[RoutedEdge], list[Edge]]:
        """Map edge endpoints to their visible representatives.

        Returns:
            (routed, dropped) where *dropped* holds the edges with an
            endpoint missing from the graph.
        """
        routed: list[RoutedEdge] = []
        dropped: list[Edge] = []
        for edge in edges:
            source = self.get_visible_node(edge.from_name, expanded)
            target = self.get_visible_node(edge.to_name, expanded)
            if source is None or target is None:
                logger.warning("Dropping edge %s: endpoint not found", edge.name)
                dropped.append(edge)
                continue
            routed.append(RoutedEdge(
                from_name=source,
                to_name=target,
                original_from=edge.from_name,
                original_to=edge.to_name,
                label=edge.label,
            ))
        return routed, dropped


def merge_edges(routed: Iterable[RoutedEdge]) -> list[RoutedEdge]:
    """Collapse edges sharing a rerouted (from, to) pair into one.

    Multiplicities add up, so merging an already merged list is a no-op.
    Self loops (both ends rerouted onto the same node) are removed. Only a
    group of exactly one original edge keeps its label.
    """
    groups: OrderedDict[tuple[str, str], list[RoutedEdge]] = OrderedDict()
    for edge in routed:
        if edge.is_self_loop:
            continue
        groups.setdefault((edge.from_name, edge.to_name), []).append(edge)

    merged: list[RoutedEdge] = []
    for (source, target), members in groups.items():
        count = sum(e.multiplicity for e in members)
        first = members[0]
        merged.append(RoutedEdge(
            from_name=source,
            to_name=target,
            original_from=first.original_from,
            original_to=first.original_to,
            label=first.label if count == 1 else None,
            multiplicity=count,
        ))
    return merged


def selected_edges(routed: Iterable[RoutedEdge], selected: set[str] | frozenset[str]) -> set[str]:
    """Names of edges with at least one end in *selected*."""
    return {
        e.name for e in routed
        if e.from_name in selected or e.to_name in selected
        or e.original_from in selected or e.original_to in selected
    }


# ---------------------------------------------------------------------------
# Toggle semantics
# ---------------------------------------------------------------------------

def expand(expanded: set[str], name: str) -> set[str]:
    return expanded | {name}


def collapse(expanded: set[str], name: str, resolver: HierarchyResolver) -> set[str]:
    """Remove *name* and every expanded descendant, so re-expanding starts closed."""
    return expanded - resolver.descendants(name)


def select(selected: set[str], name: str, resolver: HierarchyResolver) -> set[str]:
    return selected | resolver.descendants(name)


def deselect(selected: set[str], name: str, resolver: HierarchyResolver) -> set[str]:
    return selected - resolver.descendants(name)


def include_edges(filtered: set[str], names: Iterable[str]) -> set[str]:
    return filtered | set(names)


def exclude_edges(filtered: set[str], names: Iterable[str], resolver: HierarchyResolver) -> set[str]:
    """Drop *names* and all their descendants from the edge filter."""
    removed: set[str] = set()
    for name in names:
        removed |= resolver.descendants(name)
    return filtered - removed


@dataclass
class ViewState:
    """Caller-owned interaction state read at the start of every pass.

    ``filtered`` names the nodes whose edges the caller wants to pick out;
    rendered edges touching one of them carry ``filtered=True``.
    """
    expanded: set[str] = field(default_factory=set)
    selected: set[str] = field(default_factory=set)
    size_overrides: SizeOverrides = field(default_factory=SizeOverrides)
    filtered: set[str] = field(default_factory=set)

    def toggle_expand(self, name: str, resolver: HierarchyResolver) -> bool:
        """Flip expansion of *name*; returns the new state."""
        if name in self.expanded:
            subtree = resolver.descendants(name)
            self.expanded = collapse(self.expanded, name, resolver)
            self.size_overrides.clear(subtree)
            return False
        self.expanded = expand(self.expanded, name)
        return True

    def toggle_select(self, name: str, resolver: HierarchyResolver) -> bool:
        """Flip selection of *name* together with its descendants."""
        if name in self.selected:
            self.selected = deselect(self.selected, name, resolver)
            return False
        self.selected = select(self.selected, name, resolver)
        return True

    def set_expanded(self, name: str, value: bool, resolver: HierarchyResolver) -> None:
        if (name in self.expanded) != value:
            self.toggle_expand(name, resolver)

    def set_selected(self, name: str, value: bool, resolver: HierarchyResolver) -> None:
        if (name in self.selected) != value:
            self.toggle_select(name, resolver)

    def filter_edges(self, names: Iterable[str], include: bool, resolver: HierarchyResolver) -> None:
        """Add *names* to the edge filter, or remove them with their descendants."""
        if include:
            self.filtered = include_edges(self.filtered, names)
        else:
            self.filtered = exclude_edges(self.filtered, names, resolver)

    def toggle_filter(self, names: Iterable[str], resolver: HierarchyResolver) -> bool:
        """Exclude *names* when all of them are filtered, include them otherwise."""
        names = list(names)
        include = not all(name in self.filtered for name in names)
        self.filter_edges(names, include, resolver)
        return include

    def reset(self) -> None:
        self.expanded = set()
        self.selected = set()
        self.size_overrides = SizeOverrides()
        self.filtered = set()

    def to_dict(self) -> dict:
        return {
            "expanded": sorted(self.expanded),
            "selected": sorted(self.selected),
            "filtered": sorted(self.filtered),
            "size_overrides": self.size_overrides.to_dict(),
        }
