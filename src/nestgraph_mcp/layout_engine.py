"""
Render pipeline for expandable node-link diagrams.

One pass turns the caller's nodes, edges and view state into screen
rectangles and edge curves:

- resolve which nodes are visible and reroute edges onto them
- lay out every level (physics, projection, overlap check), recursing into
  expanded nodes inside the rectangle their parent level gave them
- merge parallel edges and pick boundary anchors for each

A pass never mutates the view state. Levels that want a different size
report a ``ResizeRequest``; the caller applies it before the next pass
(``settle`` does this in a loop).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Iterator, Optional, Sequence

from nestgraph_mcp.geometry import AnchorDetails, get_anchors
from nestgraph_mcp.hierarchy import HierarchyResolver, ViewState, merge_edges, selected_edges
from nestgraph_mcp.models import (
    ROOT_LEVEL,
    Edge,
    GraphOptions,
    Node,
    Point,
    RoutedEdge,
    VECTOR_PROJECTION,
    ScreenRect,
    Size,
    VisibleNode,
    ZERO_POINT,
)
from nestgraph_mcp.negotiation import ResizeRequest, negotiate_fit, negotiate_resize
from nestgraph_mcp.physics import run_physics_layout
from nestgraph_mcp.projection import (
    ScreenProjection,
    calculate_screen_scale,
    place_nodes_by_vector,
    project_nodes,
)

logger = logging.getLogger(__name__)

GetSubgraph = Callable[[str], Sequence[Node]]
OnPositions = Callable[[str, list[ScreenRect]], None]

DEFAULT_VIEWPORT = Size(1200, 800)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass
class LevelLayout:
    """One laid-out level: the roots, or the children of an expanded node.

    ``projection`` is set when the level was scaled into its rectangle and
    ``needed_size`` when it was placed by vector at natural size.
    """
    name: str
    origin: Point
    size: Size
    projection: Optional[ScreenProjection] = None
    nodes: list[VisibleNode] = field(default_factory=list)
    resize_request: Optional[ResizeRequest] = None
    children: list[LevelLayout] = field(default_factory=list)
    needed_size: Optional[Size] = None

    def walk(self) -> Iterator[LevelLayout]:
        yield self
        for child in self.children:
            yield from child.walk()

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "origin": self.origin.to_dict(),
            "size": self.size.to_dict(),
            "projection": self.projection.to_dict() if self.projection else None,
            "needed_size": self.needed_size.to_dict() if self.needed_size else None,
            "nodes": [n.name for n in self.nodes],
            "resize_request": self.resize_request.to_dict() if self.resize_request else None,
            "children": [c.to_dict() for c in self.children],
        }


@dataclass
class EdgeLayout:
    """A merged, anchored edge ready to draw."""
    from_name: str
    to_name: str
    thickness: float
    multiplicity: int
    anchors: AnchorDetails
    label: Optional[str] = None
    selected: bool = False
    filtered: bool = False

    @property
    def name(self) -> str:
        return f"{self.from_name}->{self.to_name}"

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "from": self.from_name,
            "to": self.to_name,
            "thickness": round(self.thickness, 4),
            "multiplicity": self.multiplicity,
            "label": self.label,
            "selected": self.selected,
            "filtered": self.filtered,
            "points": [p.to_dict() for p in self.anchors.points],
            "from_side": self.anchors.from_side,
            "to_side": self.anchors.to_side,
        }


@dataclass
class RenderResult:
    """Everything one pass produced."""
    root: LevelLayout
    nodes: list[VisibleNode]
    edges: list[EdgeLayout]
    resize_requests: list[ResizeRequest]
    dropped_edges: list[Edge]
    screen_size: Size
    passes: int = 1

    def node(self, name: str) -> VisibleNode | None:
        for n in self.nodes:
            if n.name == name:
                return n
        return None

    def edge(self, name: str) -> EdgeLayout | None:
        for e in self.edges:
            if e.name == name:
                return e
        return None

    @property
    def rects(self) -> dict[str, ScreenRect]:
        return {n.name: n.rect for n in self.nodes}

    def to_dict(self) -> dict:
        return {
            "screen_size": self.screen_size.to_dict(),
            "passes": self.passes,
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
            "resize_requests": [r.to_dict() for r in self.resize_requests],
            "dropped_edges": [e.name for e in self.dropped_edges],
        }


# ---------------------------------------------------------------------------
# Position tracking
# ---------------------------------------------------------------------------

class PositionTracker:
    """Collects the rectangles each level reports and notices changes.

    An instance can be passed directly as ``on_positions``.
    """

    def __init__(self) -> None:
        self.positions: dict[str, ScreenRect] = {}
        self.levels: dict[str, list[str]] = {}
        self.dirty = False

    def __call__(self, level: str, rects: list[ScreenRect]) -> None:
        self.levels[level] = [r.name for r in rects]
        if self.update(rects):
            self.dirty = True

    def update(self, rects: Iterable[ScreenRect]) -> bool:
        """Store *rects*; True when any of them is new or moved or resized."""
        changed = False
        for rect in rects:
            if self.positions.get(rect.name) != rect:
                self.positions[rect.name] = rect
                changed = True
        return changed

    def get(self, name: str) -> ScreenRect | None:
        return self.positions.get(name)

    def reset(self) -> None:
        self.positions.clear()
        self.levels.clear()
        self.dirty = False


# ---------------------------------------------------------------------------
# Levels
# ---------------------------------------------------------------------------

def _node_size(node: Node, state: ViewState, options: GraphOptions) -> Size:
    override = state.size_overrides.get(node.name)
    if override is not None and node.name in state.expanded:
        return override
    return node.size or options.default_size


def layout_level(
    level: str,
    members: Sequence[Node],
    edges: Sequence[RoutedEdge],
    origin: Point,
    screen_size: Size,
    natural_size: Size,
    state: ViewState,
    options: GraphOptions,
    get_subgraph: GetSubgraph,
    on_positions: Optional[OnPositions] = None,
    depth: int = 0,
) -> LevelLayout:
    """Lay out *members* inside the rectangle at *origin* and recurse.

    Args:
        level: Name of the level, ``ROOT_LEVEL`` or the expanded node's name.
        members: The visible nodes of this level.
        edges: Rerouted edges of the whole pass; only those with both ends
            in *members* take part in this level's physics.
        origin: Top-left corner of the level's rectangle.
        screen_size: Size allotted to the level.
        natural_size: Smallest size the level may ask to shrink to.
        get_subgraph: Returns the children of an expanded node.
        on_positions: Called with the level's rectangles once they are known.
    """
    title_padding = options.node_margin if level == ROOT_LEVEL else options.title_height
    names = {n.name for n in members}
    sizes = {n.name: _node_size(n, state, options) for n in members}

    local_edges = [
        Edge(e.from_name, e.to_name)
        for e in edges
        if e.from_name in names and e.to_name in names
    ]
    physics = run_physics_layout(
        ((n.name, sizes[n.name], n.position_hint) for n in members),
        local_edges,
        options,
    )
    positioned = physics.positioned_nodes()
    projection: Optional[ScreenProjection] = None
    needed_size: Optional[Size] = None
    if options.projection == VECTOR_PROJECTION:
        placement = place_nodes_by_vector(positioned, options.node_margin, title_padding, origin)
        rects = placement.rects
        if members:
            needed_size = placement.needed_size
    else:
        projection = calculate_screen_scale(
            positioned,
            screen_size,
            container_padding=options.node_margin,
            title_padding=title_padding,
            step=options.scale_step,
            max_attempts=options.max_scale_attempts,
        )
        rects = project_nodes(positioned, projection, origin)
    if on_positions is not None:
        on_positions(level, rects)

    if needed_size is not None:
        request = negotiate_fit(level, needed_size, screen_size, options)
    elif projection is not None:
        request = negotiate_resize(level, rects, screen_size, natural_size, options, title_padding)
    else:
        request = None

    by_name = {r.name: r for r in rects}
    result = LevelLayout(
        level, origin, screen_size, projection,
        resize_request=request, needed_size=needed_size,
    )
    for node in members:
        rect = by_name[node.name]
        children = list(get_subgraph(node.name))
        expanded = node.name in state.expanded
        result.nodes.append(VisibleNode(
            name=node.name,
            parent=node.parent,
            screen_position=rect.screen_position,
            size=rect.size,
            depth=depth,
            expanded=expanded,
            selected=node.name in state.selected,
            has_children=bool(children),
            style=dict(node.style),
        ))
        if expanded and children:
            result.children.append(layout_level(
                node.name,
                children,
                edges,
                rect.bounds.top_left,
                rect.size,
                node.size or options.default_size,
                state,
                options,
                get_subgraph,
                on_positions,
                depth + 1,
            ))
    return result


# ---------------------------------------------------------------------------
# Edges
# ---------------------------------------------------------------------------

def route_edges(
    merged: Iterable[RoutedEdge],
    positions: dict[str, ScreenRect],
    options: GraphOptions,
    selected: set[str] | frozenset[str] = frozenset(),
    filtered: set[str] | frozenset[str] = frozenset(),
) -> tuple[list[EdgeLayout], list[RoutedEdge]]:
    """Anchor every merged edge to the rectangles of its two ends.

    *filtered* holds the names of edges to flag, as computed by
    ``selected_edges`` over the edge filter set.

    Returns:
        (edges, skipped) where *skipped* holds edges with an end that has
        no rectangle in *positions*.
    """
    merged = list(merged)
    highlighted = selected_edges(merged, selected) if selected else set()
    routed: list[EdgeLayout] = []
    skipped: list[RoutedEdge] = []
    for edge in merged:
        source = positions.get(edge.from_name)
        target = positions.get(edge.to_name)
        if source is None or target is None:
            logger.warning("Dropping edge %s: no screen rectangle for an endpoint", edge.name)
            skipped.append(edge)
            continue
        anchors = get_anchors(
            target.screen_position,
            target.size,
            source.screen_position,
            source.size,
            arrow_clearance=options.arrow_height * edge.thickness,
            max_angle=options.anchor_max_angle,
        )
        routed.append(EdgeLayout(
            from_name=edge.from_name,
            to_name=edge.to_name,
            thickness=edge.thickness,
            multiplicity=edge.multiplicity,
            anchors=anchors,
            label=edge.label,
            selected=edge.name in highlighted,
            filtered=edge.name in filtered,
        ))
    return routed, skipped


# ---------------------------------------------------------------------------
# Passes
# ---------------------------------------------------------------------------

def _original_edges(rerouted: Iterable[RoutedEdge], names: set[str]) -> list[Edge]:
    return [
        Edge(e.original_from, e.original_to, e.label)
        for e in rerouted
        if e.name in names
    ]


def render(
    nodes: Iterable[Node],
    edges: Iterable[Edge],
    state: ViewState | None = None,
    viewport: Size = DEFAULT_VIEWPORT,
    options: GraphOptions | None = None,
    on_positions: Optional[OnPositions] = None,
) -> RenderResult:
    """Run one full layout pass.

    Args:
        nodes: All nodes of the diagram; parents name their container.
        edges: All edges, between any nodes (leaf or parent).
        state: Expansion, selection, edge filter and size overrides; read
            only. Everything collapsed when omitted.
        viewport: Pixel size of the outermost rectangle.
        options: Tuning values, defaults when omitted.
        on_positions: Notified once per level with its screen rectangles.
    """
    opts = options or GraphOptions()
    state = state or ViewState()
    resolver = HierarchyResolver(nodes)
    expanded = frozenset(state.expanded)

    rerouted, dropped = resolver.reroute_edges(edges, expanded)
    merged = merge_edges(rerouted)

    screen_size = state.size_overrides.get(ROOT_LEVEL) or viewport
    root = layout_level(
        ROOT_LEVEL,
        resolver.roots(),
        merged,
        ZERO_POINT,
        screen_size,
        viewport,
        state,
        opts,
        resolver.get_subgraph,
        on_positions,
    )

    flat: list[VisibleNode] = []
    requests: list[ResizeRequest] = []
    for level in root.walk():
        flat.extend(level.nodes)
        if level.resize_request is not None:
            requests.append(level.resize_request)

    positions = {n.name: n.rect for n in flat}
    filtered = selected_edges(rerouted, state.filtered) if state.filtered else set()
    routed, skipped = route_edges(merged, positions, opts, state.selected, filtered)
    if skipped:
        dropped.extend(_original_edges(rerouted, {e.name for e in skipped}))

    logger.debug(
        "Rendered %d nodes, %d edges (%d dropped), %d resize requests",
        len(flat), len(routed), len(dropped), len(requests),
    )
    return RenderResult(
        root=root,
        nodes=flat,
        edges=routed,
        resize_requests=requests,
        dropped_edges=dropped,
        screen_size=screen_size,
    )


def settle(
    nodes: Sequence[Node],
    edges: Sequence[Edge],
    state: ViewState | None = None,
    viewport: Size = DEFAULT_VIEWPORT,
    options: GraphOptions | None = None,
    max_passes: int = 10,
    on_positions: Optional[OnPositions] = None,
) -> RenderResult:
    """Render repeatedly, applying resize requests, until none remain.

    Requests from the final pass are applied too, so a later call picks up
    where this one stopped.
    """
    if state is None:
        state = ViewState()
    result = render(nodes, edges, state, viewport, options, on_positions)
    passes = 1
    while result.resize_requests and passes < max_passes:
        state.size_overrides.apply_all(result.resize_requests)
        result = render(nodes, edges, state, viewport, options, on_positions)
        passes += 1
    if result.resize_requests:
        state.size_overrides.apply_all(result.resize_requests)
    result.passes = passes
    return result
