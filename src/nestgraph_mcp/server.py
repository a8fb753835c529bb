"""
Nestgraph MCP Server: lay out expandable node-link diagrams via Model Context Protocol.

Exposes 4 tools that let an LLM agent build a hierarchical graph, expand
and select nodes, and get back screen positions and edge curves.

Tools:
  1. graph    - lifecycle: create, add_nodes, add_edges, get, list, delete
  2. view     - interaction: expand, collapse, toggle_expand, select,
                deselect, toggle_select, filter, unfilter, toggle_filter,
                state, reset
  3. layout   - positioning: render, settle
  4. inspect  - read-only: visible, subgraph, representative, edges, overlaps
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Optional

from mcp.server.fastmcp import FastMCP

from nestgraph_mcp.hierarchy import HierarchyResolver, ViewState, merge_edges, selected_edges
from nestgraph_mcp.layout_engine import DEFAULT_VIEWPORT, RenderResult, render, settle
from nestgraph_mcp.models import Edge, GraphOptions, Node, Point, Size
from nestgraph_mcp.negotiation import find_overlaps
from nestgraph_mcp.validation import (
    ValidationError,
    validate_action,
    validate_edge_dict,
    validate_int,
    validate_list,
    validate_name_list,
    validate_node_dict,
    validate_non_empty_string,
    validate_non_negative_number,
    validate_options,
    validate_viewport,
    _GRAPH_ACTIONS,
    _VIEW_ACTIONS,
    _LAYOUT_ACTIONS,
    _INSPECT_ACTIONS,
)

# ---------------------------------------------------------------------------
# Logging - keep routine FastMCP INFO messages off stderr.
# ---------------------------------------------------------------------------
logging.getLogger("mcp.server").setLevel(logging.WARNING)
logger = logging.getLogger("nestgraph-mcp")

# ---------------------------------------------------------------------------
# MCP Server
# ---------------------------------------------------------------------------
mcp = FastMCP(
    "nestgraph-mcp",
    instructions=(
        "MCP server for laying out hierarchical, expandable node-link diagrams.\n\n"
        "=== ONLY 4 TOOLS - use the 'action' parameter to pick the operation ===\n\n"
        "1. graph(action, ...) - lifecycle: create, add_nodes, add_edges, get,\n"
        "   list, delete.\n"
        "2. view(action, ...) - interaction: expand, collapse, toggle_expand,\n"
        "   select, deselect, toggle_select, filter, unfilter, toggle_filter,\n"
        "   state, reset.\n"
        "3. layout(action, ...) - positioning: render (one pass), settle\n"
        "   (repeat passes until nested levels stop asking for resizes).\n"
        "4. inspect(action, ...) - read-only: visible, subgraph, representative,\n"
        "   edges, overlaps.\n\n"
        "=== MODEL ===\n"
        "- Nodes have a unique 'name' and an optional 'parent' name.\n"
        "- A node is shown only when it is a root or its parent is expanded.\n"
        "- Edges may join any two nodes; an edge to a hidden node is drawn to\n"
        "  its nearest visible ancestor, and parallel edges are merged.\n"
        "- Collapsing a node also collapses everything below it.\n"
        "- Edges touching a filtered node come back with filtered=true.\n"
        "- options.projection='vector' keeps boxes at natural size and lets\n"
        "  every level ask for exactly the room it needs.\n"
        "- Positions returned by layout are screen centers in pixels.\n"
    ),
)


@dataclass
class GraphSession:
    """One in-memory graph with its view state and last layout."""
    name: str
    nodes: dict[str, Node] = field(default_factory=dict)
    edges: list[Edge] = field(default_factory=list)
    state: ViewState = field(default_factory=ViewState)
    options: GraphOptions = field(default_factory=GraphOptions)
    viewport: Size = DEFAULT_VIEWPORT
    last_result: Optional[RenderResult] = None

    def resolver(self) -> HierarchyResolver:
        return HierarchyResolver(self.nodes.values())

    def summary(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "nodes": len(self.nodes),
            "edges": len(self.edges),
            "expanded": len(self.state.expanded),
            "selected": len(self.state.selected),
            "filtered": len(self.state.filtered),
        }


# In-memory graph registry: name -> GraphSession
# Guarded by _graphs_lock for thread-safety.
_graphs: dict[str, GraphSession] = {}
_graphs_lock = threading.Lock()


# ===================================================================
# TOOL 1: graph - lifecycle
# ===================================================================

@mcp.tool()
def graph(
    action: str,
    name: str = "",
    nodes: list[dict] | None = None,
    edges: list[dict] | None = None,
    width: float = 1200,
    height: float = 800,
    options: dict | None = None,
) -> str:
    """Graph lifecycle management.

    Actions:
      create    - Create a graph. Params: name, nodes, edges, width, height, options.
      add_nodes - Add nodes to a graph. Params: name, nodes.
      add_edges - Add edges to a graph. Params: name, edges.
      get       - Get nodes, edges, viewport and options as JSON. Params: name.
      list      - List all in-memory graphs. No params needed.
      delete    - Remove a graph. Params: name.

    Args:
        action: One of: create, add_nodes, add_edges, get, list, delete.
        name: Graph name (used as key in memory).
        nodes: List of {name, parent?, width?, height?, x?, y?, style?} dicts.
               x/y is a position hint for the physics layout.
        edges: List of {from, to, label?} dicts.
        width: Viewport width in pixels (create only).
        height: Viewport height in pixels (create only).
        options: Layout options, e.g. {"iterations": 60, "node_margin": 12}.

    Returns:
        Result string or JSON depending on action.
    """
    try:
        action = validate_action(action, "graph", _GRAPH_ACTIONS)
    except ValidationError as exc:
        return f"Error: {exc.message}"

    if action == "list":
        result = [s.summary() for s in _graphs.values()]
        return json.dumps(result, indent=2)

    try:
        name = validate_non_empty_string(name, "name")
    except ValidationError as exc:
        return f"Error: {exc.message}"

    if action == "create":
        try:
            vw, vh = validate_viewport(width, height)
            opts = validate_options(options)
            node_map = _parse_nodes(nodes or [], {})
            edge_list = _parse_edges(edges or [], node_map)
        except ValidationError as exc:
            return f"Error: {exc.message}"
        session = GraphSession(name, node_map, edge_list, options=opts, viewport=Size(vw, vh))
        with _graphs_lock:
            _graphs[name] = session
        logger.info("Graph '%s' created with %d nodes, %d edges", name, len(node_map), len(edge_list))
        return f"Graph '{name}' created with {len(node_map)} node(s) and {len(edge_list)} edge(s)."

    session = _graphs.get(name)
    if not session:
        return f"Error: graph '{name}' not found."

    if action == "add_nodes":
        try:
            validate_list(nodes, "nodes", min_length=1)
            added = _parse_nodes(nodes, session.nodes)
        except ValidationError as exc:
            return f"Error: {exc.message}"
        with _graphs_lock:
            session.nodes.update(added)
            session.last_result = None
        return json.dumps(list(added))

    elif action == "add_edges":
        try:
            validate_list(edges, "edges", min_length=1)
            added_edges = _parse_edges(edges, session.nodes)
        except ValidationError as exc:
            return f"Error: {exc.message}"
        with _graphs_lock:
            session.edges.extend(added_edges)
            session.last_result = None
        return json.dumps([e.name for e in added_edges])

    elif action == "get":
        return json.dumps({
            "name": session.name,
            "viewport": session.viewport.to_dict(),
            "options": session.options.to_dict(),
            "nodes": [n.to_dict() for n in session.nodes.values()],
            "edges": [e.to_dict() for e in session.edges],
        }, indent=2)

    elif action == "delete":
        with _graphs_lock:
            _graphs.pop(name, None)
        return f"Graph '{name}' deleted."

    else:
        return f"Error: unknown graph action '{action}'. Use: create, add_nodes, add_edges, get, list, delete."


# ===================================================================
# TOOL 2: view - expansion and selection
# ===================================================================

@mcp.tool()
def view(
    action: str,
    graph_name: str = "",
    node: str = "",
    names: Optional[list] = None,
) -> str:
    """Expansion, selection and edge filter state of a graph.

    Actions:
      expand        - Show the children of a node. Params: graph_name, node.
      collapse      - Hide a node's subtree (descendants collapse too).
      toggle_expand - Flip expansion of a node.
      select        - Select a node and all its descendants.
      deselect      - Deselect a node and all its descendants.
      toggle_select - Flip selection of a node.
      filter        - Flag the edges of the given nodes. Params: graph_name, names (or node).
      unfilter      - Stop flagging edges of the given nodes and their descendants.
      toggle_filter - Unfilter when all given nodes are filtered, filter otherwise.
      state         - Current expanded/selected/filtered sets and size overrides.
      reset         - Collapse, deselect and unfilter everything.

    Args:
        action: One of the actions above.
        graph_name: Target graph name.
        node: Node name for the expand/collapse/select actions.
        names: List of node names for the filter actions.

    Returns:
        JSON view state.
    """
    try:
        action = validate_action(action, "view", _VIEW_ACTIONS)
        graph_name = validate_non_empty_string(graph_name, "graph_name")
    except ValidationError as exc:
        return f"Error: {exc.message}"
    session = _graphs.get(graph_name)
    if not session:
        return f"Error: graph '{graph_name}' not found."

    if action == "state":
        return json.dumps(session.state.to_dict(), indent=2)

    if action == "reset":
        with _graphs_lock:
            session.state.reset()
            session.last_result = None
        return json.dumps(session.state.to_dict(), indent=2)

    if action in ("filter", "unfilter", "toggle_filter"):
        try:
            targets = validate_name_list(names if names is not None else [node], "names")
        except ValidationError as exc:
            return f"Error: {exc.message}"
        missing = [n for n in targets if n not in session.nodes]
        if missing:
            return f"Error: node '{missing[0]}' not found in graph '{graph_name}'."
        resolver = session.resolver()
        with _graphs_lock:
            if action == "toggle_filter":
                session.state.toggle_filter(targets, resolver)
            else:
                session.state.filter_edges(targets, action == "filter", resolver)
            session.last_result = None
        return json.dumps(session.state.to_dict(), indent=2)

    try:
        node = validate_non_empty_string(node, "node")
    except ValidationError as exc:
        return f"Error: {exc.message}"
    if node not in session.nodes:
        return f"Error: node '{node}' not found in graph '{graph_name}'."

    resolver = session.resolver()
    with _graphs_lock:
        if action == "expand":
            session.state.set_expanded(node, True, resolver)
        elif action == "collapse":
            session.state.set_expanded(node, False, resolver)
        elif action == "toggle_expand":
            session.state.toggle_expand(node, resolver)
        elif action == "select":
            session.state.set_selected(node, True, resolver)
        elif action == "deselect":
            session.state.set_selected(node, False, resolver)
        elif action == "toggle_select":
            session.state.toggle_select(node, resolver)
        session.last_result = None
    return json.dumps(session.state.to_dict(), indent=2)


# ===================================================================
# TOOL 3: layout - positioning
# ===================================================================

@mcp.tool()
def layout(
    action: str,
    graph_name: str = "",
    width: float = 0,
    height: float = 0,
    max_passes: int = 10,
) -> str:
    """Compute screen positions and edge curves.

    Actions:
      render - Run one layout pass. Resize requests from nested levels are
               recorded and take effect on the next pass.
               Params: graph_name, width, height.
      settle - Run passes until no level asks for a resize.
               Params: graph_name, width, height, max_passes.

    Args:
        action: One of: render, settle.
        graph_name: Target graph name.
        width: Viewport width override (0 = graph's viewport).
        height: Viewport height override (0 = graph's viewport).
        max_passes: Upper bound on passes for settle (1..100).

    Returns:
        JSON with nodes, edges, resize requests and dropped edges.
    """
    try:
        action = validate_action(action, "layout", _LAYOUT_ACTIONS)
        graph_name = validate_non_empty_string(graph_name, "graph_name")
    except ValidationError as exc:
        return f"Error: {exc.message}"
    session = _graphs.get(graph_name)
    if not session:
        return f"Error: graph '{graph_name}' not found."

    viewport = session.viewport
    if width or height:
        try:
            vw, vh = validate_viewport(width or viewport.width, height or viewport.height)
        except ValidationError as exc:
            return f"Error: {exc.message}"
        viewport = Size(vw, vh)

    nodes = list(session.nodes.values())
    if action == "render":
        with _graphs_lock:
            result = render(nodes, session.edges, session.state, viewport, session.options)
            session.state.size_overrides.apply_all(result.resize_requests)
            session.last_result = result

    elif action == "settle":
        try:
            validate_int(max_passes, "max_passes", min_val=1, max_val=100)
        except ValidationError as exc:
            return f"Error: {exc.message}"
        with _graphs_lock:
            result = settle(nodes, session.edges, session.state, viewport,
                            session.options, max_passes=max_passes)
            session.last_result = result

    else:
        return f"Error: unknown layout action '{action}'. Use: render, settle."

    return json.dumps(result.to_dict(), indent=2)


# ===================================================================
# TOOL 4: inspect - read-only queries
# ===================================================================

@mcp.tool()
def inspect(
    action: str,
    graph_name: str = "",
    node: str = "",
    margin: float = -1,
) -> str:
    """Read-only inspection of graphs.

    Actions:
      visible        - Visible nodes under the current expansion, with depth.
      subgraph       - Direct children of a node (roots when node is empty).
      representative - The visible node an edge to *node* is drawn to.
      edges          - Rerouted and merged edges without geometry.
      overlaps       - Overlapping boxes per level of the last layout.
                       Params: margin (default: the node_margin option).

    Args:
        action: One of: visible, subgraph, representative, edges, overlaps.
        graph_name: Target graph name.
        node: Node name for subgraph / representative.
        margin: Gap kept between boxes for the overlap check.

    Returns:
        JSON data or formatted text.
    """
    try:
        action = validate_action(action, "inspect", _INSPECT_ACTIONS)
        graph_name = validate_non_empty_string(graph_name, "graph_name")
    except ValidationError as exc:
        return f"Error: {exc.message}"
    session = _graphs.get(graph_name)
    if not session:
        return f"Error: graph '{graph_name}' not found."

    resolver = session.resolver()
    expanded = session.state.expanded

    if action == "visible":
        result = [
            {
                "name": n.name,
                "parent": n.parent,
                "depth": resolver.depth(n.name),
                "expanded": n.name in expanded,
                "has_children": resolver.has_children(n.name),
            }
            for n in resolver.visible_nodes(expanded)
        ]
        return json.dumps(result, indent=2)

    elif action == "subgraph":
        if node and node not in session.nodes:
            return f"Error: node '{node}' not found in graph '{graph_name}'."
        children = resolver.get_subgraph(node) if node else resolver.roots()
        return json.dumps([c.name for c in children])

    elif action == "representative":
        try:
            node = validate_non_empty_string(node, "node")
        except ValidationError as exc:
            return f"Error: {exc.message}"
        if node not in session.nodes:
            return f"Error: node '{node}' not found in graph '{graph_name}'."
        return json.dumps({"node": node, "visible_as": resolver.get_visible_node(node, expanded)})

    elif action == "edges":
        routed, dropped = resolver.reroute_edges(session.edges, expanded)
        merged = merge_edges(routed)
        filtered = selected_edges(routed, session.state.filtered)
        return json.dumps({
            "edges": [
                {
                    "name": e.name,
                    "from": e.from_name,
                    "to": e.to_name,
                    "multiplicity": e.multiplicity,
                    "thickness": round(e.thickness, 4),
                    "label": e.label,
                    "filtered": e.name in filtered,
                }
                for e in merged
            ],
            "dropped": [e.name for e in dropped],
        }, indent=2)

    elif action == "overlaps":
        if margin == -1:
            margin = session.options.node_margin
        else:
            try:
                margin = validate_non_negative_number(margin, "margin")
            except ValidationError as exc:
                return f"Error: {exc.message}"
        result_obj = session.last_result
        if result_obj is None:
            result_obj = render(list(session.nodes.values()), session.edges, session.state,
                                session.viewport, session.options)
        report: list[dict[str, Any]] = []
        for level in result_obj.root.walk():
            for a, b in find_overlaps([n.rect for n in level.nodes], margin):
                report.append({"level": level.name, "node_a": a, "node_b": b})
        if not report:
            return "No overlaps found. Layout is clean!"
        return json.dumps(report, indent=2)

    else:
        return f"Error: unknown inspect action '{action}'. Use: visible, subgraph, representative, edges, overlaps."


# ===================================================================
# Internal helpers
# ===================================================================

def _parse_nodes(items: list, existing: dict[str, Node]) -> dict[str, Node]:
    """Validate node dicts against *existing* and build ``Node`` objects.

    Rejects duplicate names, unknown parents and parent cycles.
    """
    validate_list(items, "nodes")
    added: dict[str, Node] = {}
    for i, item in enumerate(items):
        validate_node_dict(item, i)
        name = item["name"].strip()
        if name in existing or name in added:
            raise ValidationError(f"Node at index {i}: duplicate name '{name}'.")
        parent = item.get("parent")
        size = Size(float(item["width"]), float(item["height"])) if "width" in item else None
        hint = Point(float(item["x"]), float(item["y"])) if "x" in item else None
        added[name] = Node(
            name=name,
            parent=parent.strip() if parent is not None else None,
            size=size,
            position_hint=hint,
            style=dict(item.get("style") or {}),
        )

    combined = {**existing, **added}
    for n in added.values():
        if n.parent is not None and n.parent not in combined:
            raise ValidationError(f"Node '{n.name}': unknown parent '{n.parent}'.")
    cycle = HierarchyResolver(combined.values()).find_cycle()
    if cycle:
        raise ValidationError(f"Parent cycle detected: {' -> '.join(cycle)}.")
    return added


def _parse_edges(items: list, nodes: dict[str, Node]) -> list[Edge]:
    """Validate edge dicts and build ``Edge`` objects between known nodes."""
    validate_list(items, "edges")
    result: list[Edge] = []
    for i, item in enumerate(items):
        validate_edge_dict(item, i)
        source = item["from"].strip()
        target = item["to"].strip()
        for end in (source, target):
            if end not in nodes:
                raise ValidationError(f"Edge at index {i}: unknown node '{end}'.")
        result.append(Edge(source, target, item.get("label") or None))
    return result


# ===================================================================
# Entry point
# ===================================================================

def main() -> None:
    """Run the MCP server."""
    mcp.run()


if __name__ == "__main__":
    main()
