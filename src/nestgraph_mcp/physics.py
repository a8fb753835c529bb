"""
Force-directed placement for the nodes of one diagram level.

Nodes are massed bodies that repel each other (n-body gravity with a
negative coefficient, approximated with a Barnes-Hut quadtree) and edges
are springs pulling their endpoints towards a rest length. Drag bleeds off
velocity and an explicit Euler step integrates the result.

Every call starts from a fresh placement and runs a fixed number of steps,
so identical inputs always produce identical virtual positions.
"""

from __future__ import annotations

import hashlib
import logging
import math
from dataclasses import dataclass, field
from typing import Iterable, Optional

from nestgraph_mcp.models import Edge, GraphOptions, Point, PositionedNode, Size

logger = logging.getLogger(__name__)

# Subdivision stops here; deeper coincident bodies share one leaf.
_MAX_TREE_DEPTH = 24


def _deterministic_jitter(key: str, scale: float = 0.5) -> tuple[float, float]:
    """Reproducible pseudo-random offset in [-scale, scale] for *key*."""
    h = hashlib.md5(key.encode()).hexdigest()
    x_val = int(h[:8], 16) / 0xFFFFFFFF
    y_val = int(h[8:16], 16) / 0xFFFFFFFF
    return (x_val * 2 * scale - scale, y_val * 2 * scale - scale)


def _separation(name: str, other: str) -> tuple[float, float, float]:
    """Stand-in (dx, dy, r) from *name* to *other* for coincident bodies.

    Antisymmetric in its arguments, so the two bodies are pushed apart.
    """
    first, second = sorted((name, other))
    dx, dy = _deterministic_jitter(f"{first}|{second}", 0.01)
    if dx == 0 and dy == 0:
        dx = 0.01
    if name != first:
        dx, dy = -dx, -dy
    return dx, dy, math.hypot(dx, dy)


# ---------------------------------------------------------------------------
# Bodies and springs
# ---------------------------------------------------------------------------

@dataclass
class Body:
    """Simulation state of one visible node."""
    name: str
    mass: float
    x: float
    y: float
    vx: float = 0.0
    vy: float = 0.0
    fx: float = 0.0
    fy: float = 0.0

    @property
    def position(self) -> Point:
        return Point(self.x, self.y)


@dataclass
class Spring:
    source: Body
    target: Body
    length: float
    coefficient: float


def body_mass(size: Size, options: GraphOptions) -> float:
    """Mass proportional to the node's pixel area relative to the default area."""
    default_area = options.default_width * options.default_height
    if default_area <= 0:
        return options.mass_scale
    return max(options.mass_scale * size.area / default_area, 1e-6)


def initial_position(name: str, hint: Optional[Point], spread: float) -> tuple[float, float]:
    """Start position: the hint if given, else a fixed hashed offset for *name*."""
    if hint is not None:
        return hint.x, hint.y
    return _deterministic_jitter(name, spread)


# ---------------------------------------------------------------------------
# Barnes-Hut quadtree
# ---------------------------------------------------------------------------

class _QuadNode:
    __slots__ = ("x0", "y0", "size", "depth", "mass", "mass_x", "mass_y",
                 "bodies", "children")

    def __init__(self, x0: float, y0: float, size: float, depth: int) -> None:
        self.x0 = x0
        self.y0 = y0
        self.size = size
        self.depth = depth
        self.mass = 0.0
        self.mass_x = 0.0
        self.mass_y = 0.0
        self.bodies: list[Body] = []
        self.children: list[_QuadNode] | None = None

    def _child_for(self, body: Body) -> _QuadNode:
        half = self.size / 2
        col = 1 if body.x >= self.x0 + half else 0
        row = 1 if body.y >= self.y0 + half else 0
        return self.children[row * 2 + col]

    def insert(self, body: Body) -> None:
        self.mass += body.mass
        self.mass_x += body.mass * body.x
        self.mass_y += body.mass * body.y

        if self.children is not None:
            self._child_for(body).insert(body)
            return
        if not self.bodies or self.depth >= _MAX_TREE_DEPTH:
            self.bodies.append(body)
            return

        half = self.size / 2
        self.children = [
            _QuadNode(self.x0, self.y0, half, self.depth + 1),
            _QuadNode(self.x0 + half, self.y0, half, self.depth + 1),
            _QuadNode(self.x0, self.y0 + half, half, self.depth + 1),
            _QuadNode(self.x0 + half, self.y0 + half, half, self.depth + 1),
        ]
        existing = self.bodies
        self.bodies = []
        for other in existing:
            self._child_for(other).insert(other)
        self._child_for(body).insert(body)


def _build_tree(bodies: list[Body]) -> _QuadNode:
    min_x = min(b.x for b in bodies)
    min_y = min(b.y for b in bodies)
    max_x = max(b.x for b in bodies)
    max_y = max(b.y for b in bodies)
    size = max(max_x - min_x, max_y - min_y) + 1
    root = _QuadNode(min_x, min_y, size, 0)
    for body in bodies:
        root.insert(body)
    return root


def _apply_gravity(body: Body, root: _QuadNode, gravity: float, theta: float) -> None:
    fx = 0.0
    fy = 0.0
    stack = [root]
    while stack:
        node = stack.pop()
        if node.children is None:
            for other in node.bodies:
                if other is body:
                    continue
                dx = other.x - body.x
                dy = other.y - body.y
                r = math.hypot(dx, dy)
                if r == 0:
                    dx, dy, r = _separation(body.name, other.name)
                v = gravity * other.mass * body.mass / (r * r * r)
                fx += v * dx
                fy += v * dy
            continue

        dx = node.mass_x / node.mass - body.x
        dy = node.mass_y / node.mass - body.y
        r = math.hypot(dx, dy)
        if r > 0 and node.size / r < theta:
            v = gravity * node.mass * body.mass / (r * r * r)
            fx += v * dx
            fy += v * dy
        else:
            stack.extend(c for c in node.children if c.mass > 0)

    body.fx += fx
    body.fy += fy


def _apply_spring(spring: Spring) -> None:
    source = spring.source
    target = spring.target
    dx = target.x - source.x
    dy = target.y - source.y
    r = math.hypot(dx, dy)
    if r == 0:
        dx, dy, r = _separation(source.name, target.name)
    coefficient = spring.coefficient * (r - spring.length) / r
    source.fx += coefficient * dx
    source.fy += coefficient * dy
    target.fx -= coefficient * dx
    target.fy -= coefficient * dy


def _integrate(bodies: list[Body], time_step: float) -> None:
    for body in bodies:
        coefficient = time_step / body.mass
        body.vx += coefficient * body.fx
        body.vy += coefficient * body.fy
        v = math.hypot(body.vx, body.vy)
        if v > 1:
            body.vx /= v
            body.vy /= v
        body.x += time_step * body.vx
        body.y += time_step * body.vy


# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------

@dataclass
class PhysicsLayout:
    """Result of one simulation run over a level."""
    bodies: dict[str, Body]
    edges: list[Edge] = field(default_factory=list)
    sizes: dict[str, Size] = field(default_factory=dict)

    def position(self, name: str) -> Point:
        return self.bodies[name].position

    @property
    def positions(self) -> dict[str, Point]:
        return {name: body.position for name, body in self.bodies.items()}

    def edge_endpoints(self, edge: Edge) -> tuple[Point, Point]:
        return self.position(edge.from_name), self.position(edge.to_name)

    def positioned_nodes(self) -> list[PositionedNode]:
        return [
            PositionedNode(name, body.position, self.sizes[name])
            for name, body in self.bodies.items()
        ]


def run_physics_layout(
    nodes: Iterable[tuple[str, Size, Optional[Point]]],
    edges: Iterable[Edge],
    options: GraphOptions | None = None,
) -> PhysicsLayout:
    """Place one level's nodes in unbounded virtual space.

    Args:
        nodes: (name, size, position_hint) for every visible node of the level.
        edges: Local edges; edges with an endpoint outside *nodes*, self loops
            and repeated (from, to) pairs are ignored.
        options: Physics parameters; ``iterations`` steps are always run.

    Returns:
        The simulated bodies keyed by node name.
    """
    opts = options or GraphOptions()
    node_list = list(nodes)
    spread = max(opts.spring_length, 1.0) * max(math.sqrt(len(node_list)), 1.0)

    bodies: dict[str, Body] = {}
    sizes: dict[str, Size] = {}
    for name, size, hint in node_list:
        x, y = initial_position(name, hint, spread)
        bodies[name] = Body(name=name, mass=body_mass(size, opts), x=x, y=y)
        sizes[name] = size

    springs: list[Spring] = []
    layout_edges: list[Edge] = []
    seen: set[tuple[str, str]] = set()
    for edge in edges:
        key = (edge.from_name, edge.to_name)
        if edge.from_name == edge.to_name or key in seen:
            continue
        source = bodies.get(edge.from_name)
        target = bodies.get(edge.to_name)
        if source is None or target is None:
            logger.debug("Skipping spring for %s: endpoint not in level", edge.name)
            continue
        seen.add(key)
        layout_edges.append(edge)
        springs.append(Spring(source, target, opts.spring_length, opts.spring_coefficient))

    body_list = list(bodies.values())
    if len(body_list) > 1:
        for _ in range(opts.iterations):
            for body in body_list:
                body.fx = 0.0
                body.fy = 0.0
            tree = _build_tree(body_list)
            for body in body_list:
                _apply_gravity(body, tree, opts.gravity, opts.theta)
            for spring in springs:
                _apply_spring(spring)
            for body in body_list:
                body.fx -= opts.drag_coefficient * body.vx
                body.fy -= opts.drag_coefficient * body.vy
            _integrate(body_list, opts.time_step)

    return PhysicsLayout(bodies=bodies, edges=layout_edges, sizes=sizes)
