"""Tests for the MCP server tools (4-tool architecture)."""

import json

from nestgraph_mcp.server import (
    _graphs,
    graph,
    inspect,
    layout,
    view,
)

_NODES = [
    {"name": "A"},
    {"name": "B"},
    {"name": "a1", "parent": "A"},
    {"name": "a2", "parent": "A"},
]


def setup_function() -> None:
    """Clear graphs between tests."""
    _graphs.clear()


def _create(name: str = "g", **kwargs) -> str:
    return graph(action="create", name=name, nodes=_NODES, **kwargs)


# ===================================================================
# graph
# ===================================================================

def test_create_and_get() -> None:
    result = _create(edges=[{"from": "a1", "to": "B", "label": "uses"}])
    assert "created" in result
    data = json.loads(graph(action="get", name="g"))
    assert [n["name"] for n in data["nodes"]] == ["A", "B", "a1", "a2"]
    assert data["edges"] == [{"from": "a1", "to": "B", "label": "uses"}]
    assert data["viewport"] == {"width": 1200, "height": 800}


def test_create_with_options_and_viewport() -> None:
    _create(width=640, height=480, options={"iterations": 10})
    data = json.loads(graph(action="get", name="g"))
    assert data["viewport"] == {"width": 640, "height": 480}
    assert data["options"]["iterations"] == 10


def test_create_rejects_duplicate_names() -> None:
    result = graph(action="create", name="g", nodes=[{"name": "A"}, {"name": "A"}])
    assert result.startswith("Error:")
    assert "duplicate" in result
    assert "g" not in _graphs


def test_create_rejects_unknown_parent() -> None:
    result = graph(action="create", name="g", nodes=[{"name": "a1", "parent": "A"}])
    assert "unknown parent 'A'" in result


def test_create_rejects_parent_cycle() -> None:
    result = graph(action="create", name="g", nodes=[
        {"name": "X", "parent": "Y"}, {"name": "Y", "parent": "X"},
    ])
    assert "cycle" in result


def test_create_rejects_unknown_edge_endpoint() -> None:
    result = _create(edges=[{"from": "A", "to": "ghost"}])
    assert "unknown node 'ghost'" in result


def test_create_rejects_bad_options() -> None:
    assert "Unknown option" in _create(options={"speed": 3})


def test_add_nodes_and_edges() -> None:
    _create()
    added = json.loads(graph(action="add_nodes", name="g", nodes=[{"name": "b1", "parent": "B"}]))
    assert added == ["b1"]
    edges = json.loads(graph(action="add_edges", name="g", edges=[{"from": "a1", "to": "b1"}]))
    assert edges == ["a1->b1"]
    data = json.loads(graph(action="get", name="g"))
    assert len(data["nodes"]) == 5


def test_add_nodes_rejects_existing_name() -> None:
    _create()
    result = graph(action="add_nodes", name="g", nodes=[{"name": "A"}])
    assert result.startswith("Error:")


def test_add_edges_requires_list() -> None:
    _create()
    assert "Error:" in graph(action="add_edges", name="g")


def test_list_and_delete() -> None:
    _create("one")
    _create("two")
    listing = json.loads(graph(action="list"))
    assert {g["name"] for g in listing} == {"one", "two"}
    assert "deleted" in graph(action="delete", name="one")
    assert [g["name"] for g in json.loads(graph(action="list"))] == ["two"]


def test_unknown_graph() -> None:
    assert "not found" in graph(action="get", name="nope")


def test_invalid_action() -> None:
    result = graph(action="explode", name="g")
    assert result.startswith("Error:")
    assert "Valid actions" in result


# ===================================================================
# view
# ===================================================================

def test_expand_and_collapse() -> None:
    _create()
    state = json.loads(view(action="expand", graph_name="g", node="A"))
    assert state["expanded"] == ["A"]
    state = json.loads(view(action="collapse", graph_name="g", node="A"))
    assert state["expanded"] == []


def test_toggle_select_closure() -> None:
    _create()
    state = json.loads(view(action="toggle_select", graph_name="g", node="A"))
    assert state["selected"] == ["A", "a1", "a2"]
    state = json.loads(view(action="deselect", graph_name="g", node="A"))
    assert state["selected"] == []


def test_collapse_cascades() -> None:
    graph(action="create", name="g", nodes=_NODES + [{"name": "x", "parent": "a1"}])
    view(action="expand", graph_name="g", node="A")
    view(action="expand", graph_name="g", node="a1")
    state = json.loads(view(action="toggle_expand", graph_name="g", node="A"))
    assert state["expanded"] == []


def test_view_unknown_node() -> None:
    _create()
    assert "not found" in view(action="expand", graph_name="g", node="ghost")


def test_view_requires_node() -> None:
    _create()
    assert "Error:" in view(action="select", graph_name="g")


def test_reset() -> None:
    _create()
    view(action="expand", graph_name="g", node="A")
    state = json.loads(view(action="reset", graph_name="g"))
    assert state == {"expanded": [], "selected": [], "filtered": [], "size_overrides": {}}


# ===================================================================
# layout
# ===================================================================

def test_render_collapsed() -> None:
    _create(edges=[{"from": "a1", "to": "B"}])
    data = json.loads(layout(action="render", graph_name="g"))
    assert {n["name"] for n in data["nodes"]} == {"A", "B"}
    assert [e["name"] for e in data["edges"]] == ["A->B"]
    assert data["screen_size"] == {"width": 1200, "height": 800}


def test_render_records_resize_requests() -> None:
    _create()
    view(action="expand", graph_name="g", node="A")
    data = json.loads(layout(action="render", graph_name="g"))
    assert any(r["name"] == "A" for r in data["resize_requests"])
    state = json.loads(view(action="state", graph_name="g"))
    assert "A" in state["size_overrides"]


def test_render_viewport_override() -> None:
    _create()
    data = json.loads(layout(action="render", graph_name="g", width=300, height=200))
    assert data["screen_size"] == {"width": 300, "height": 200}


def test_settle() -> None:
    _create()
    view(action="expand", graph_name="g", node="A")
    data = json.loads(layout(action="settle", graph_name="g", max_passes=4))
    assert 1 <= data["passes"] <= 4
    assert {n["name"] for n in data["nodes"]} == {"A", "B", "a1", "a2"}


def test_settle_bad_max_passes() -> None:
    _create()
    assert "Error:" in layout(action="settle", graph_name="g", max_passes=0)


def test_layout_unknown_graph() -> None:
    assert "not found" in layout(action="render", graph_name="nope")


# ===================================================================
# inspect
# ===================================================================

def test_inspect_visible() -> None:
    _create()
    visible = json.loads(inspect(action="visible", graph_name="g"))
    assert [v["name"] for v in visible] == ["A", "B"]
    assert visible[0]["has_children"] is True
    view(action="expand", graph_name="g", node="A")
    visible = json.loads(inspect(action="visible", graph_name="g"))
    assert {v["name"]: v["depth"] for v in visible} == {"A": 0, "B": 0, "a1": 1, "a2": 1}


def test_inspect_subgraph() -> None:
    _create()
    assert json.loads(inspect(action="subgraph", graph_name="g", node="A")) == ["a1", "a2"]
    assert json.loads(inspect(action="subgraph", graph_name="g")) == ["A", "B"]
    assert "not found" in inspect(action="subgraph", graph_name="g", node="ghost")


def test_inspect_representative() -> None:
    _create()
    data = json.loads(inspect(action="representative", graph_name="g", node="a1"))
    assert data == {"node": "a1", "visible_as": "A"}
    view(action="expand", graph_name="g", node="A")
    data = json.loads(inspect(action="representative", graph_name="g", node="a1"))
    assert data["visible_as"] == "a1"


def test_inspect_edges_merged() -> None:
    _create(edges=[{"from": "a1", "to": "B"}, {"from": "a2", "to": "B"}, {"from": "a1", "to": "a2"}])
    data = json.loads(inspect(action="edges", graph_name="g"))
    assert len(data["edges"]) == 1
    assert data["edges"][0]["multiplicity"] == 2
    assert data["dropped"] == []


def test_inspect_overlaps_clean() -> None:
    _create()
    layout(action="render", graph_name="g")
    assert "No overlaps" in inspect(action="overlaps", graph_name="g")


def test_inspect_overlaps_without_render() -> None:
    _create()
    assert "No overlaps" in inspect(action="overlaps", graph_name="g", margin=0)


def test_inspect_bad_margin() -> None:
    _create()
    assert "Error:" in inspect(action="overlaps", graph_name="g", margin=-5)


def test_graph_name_is_stripped_everywhere() -> None:
    _create()
    assert "not found" not in view(action="state", graph_name=" g ")
    assert "not found" not in layout(action="render", graph_name=" g ")
    assert "not found" not in inspect(action="visible", graph_name=" g ")


def test_create_rejects_reserved_root_name() -> None:
    result = graph(action="create", name="g", nodes=[{"name": "<root>"}])
    assert "reserved" in result
    assert "g" not in _graphs


def test_render_with_vector_projection() -> None:
    _create(options={"projection": "vector"})
    view(action="expand", graph_name="g", node="A")
    data = json.loads(layout(action="settle", graph_name="g"))
    assert data["resize_requests"] == []
    sizes = {n["name"]: n["size"] for n in data["nodes"]}
    assert sizes["a1"] == {"width": 110, "height": 30}


# ===================================================================
# edge filter
# ===================================================================

def test_filter_and_unfilter() -> None:
    _create()
    state = json.loads(view(action="filter", graph_name="g", names=["a1", "B"]))
    assert state["filtered"] == ["B", "a1"]
    state = json.loads(view(action="unfilter", graph_name="g", node="A"))
    assert state["filtered"] == ["B"]


def test_toggle_filter() -> None:
    _create()
    assert json.loads(view(action="toggle_filter", graph_name="g", node="B"))["filtered"] == ["B"]
    assert json.loads(view(action="toggle_filter", graph_name="g", node="B"))["filtered"] == []


def test_filter_unknown_node() -> None:
    _create()
    assert "not found" in view(action="filter", graph_name="g", names=["A", "ghost"])
    assert "Error:" in view(action="filter", graph_name="g", names=[])


def test_filtered_edges_in_layout_and_inspect() -> None:
    _create(edges=[{"from": "a1", "to": "B"}, {"from": "B", "to": "A"}])
    view(action="filter", graph_name="g", names=["a1"])
    data = json.loads(layout(action="render", graph_name="g"))
    flags = {e["name"]: e["filtered"] for e in data["edges"]}
    assert flags == {"A->B": True, "B->A": False}
    edges = json.loads(inspect(action="edges", graph_name="g"))["edges"]
    assert {e["name"]: e["filtered"] for e in edges} == flags
