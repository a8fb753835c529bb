"""
Core model classes for expandable node-link diagrams.

Provides the typed value objects shared by the layout pipeline: input nodes
and edges, the per-pass positioned/visible projections of them, screen
rectangles, and the numeric options that tune every stage.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields, replace
from typing import Any, Optional


# Name used for the outermost level when it negotiates with the viewport.
ROOT_LEVEL = "<root>"

# How a level maps its physics positions onto the screen.
SCALE_PROJECTION = "scale"
VECTOR_PROJECTION = "vector"
PROJECTION_METHODS = (SCALE_PROJECTION, VECTOR_PROJECTION)


# ---------------------------------------------------------------------------
# Geometry primitives
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Point:
    """A 2-D coordinate."""
    x: float
    y: float

    def __add__(self, other: Point) -> Point:
        return Point(self.x + other.x, self.y + other.y)

    def __sub__(self, other: Point) -> Point:
        return Point(self.x - other.x, self.y - other.y)

    def scaled(self, factor: float) -> Point:
        return Point(self.x * factor, self.y * factor)

    def length(self) -> float:
        return math.hypot(self.x, self.y)

    def distance_to(self, other: Point) -> float:
        return math.hypot(other.x - self.x, other.y - self.y)

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y}


ZERO_POINT = Point(0.0, 0.0)


@dataclass(frozen=True)
class Size:
    """Width x height in screen pixels."""
    width: float
    height: float

    @property
    def area(self) -> float:
        return self.width * self.height

    def scaled(self, factor: float) -> Size:
        return Size(self.width * factor, self.height * factor)

    def to_dict(self) -> dict[str, float]:
        return {"width": self.width, "height": self.height}


@dataclass(frozen=True)
class RectBounds:
    """Axis-aligned bounding box stored as top-left + size."""
    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_center(cls, center: Point, size: Size) -> RectBounds:
        return cls(
            center.x - size.width / 2,
            center.y - size.height / 2,
            size.width,
            size.height,
        )

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def top_left(self) -> Point:
        return Point(self.x, self.y)

    @property
    def bottom_right(self) -> Point:
        return Point(self.right, self.bottom)

    @property
    def center(self) -> Point:
        return Point(self.x + self.width / 2, self.y + self.height / 2)

    def expanded(self, margin: float) -> RectBounds:
        """Grow the box by *margin* on every side."""
        return RectBounds(
            self.x - margin,
            self.y - margin,
            self.width + 2 * margin,
            self.height + 2 * margin,
        )

    def union(self, other: RectBounds) -> RectBounds:
        x = min(self.x, other.x)
        y = min(self.y, other.y)
        return RectBounds(
            x, y,
            max(self.right, other.right) - x,
            max(self.bottom, other.bottom) - y,
        )


# ---------------------------------------------------------------------------
# Input graph
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Node:
    """A caller-supplied node.

    ``parent`` is the name of the containing node, or ``None`` for a root.
    ``style`` is carried through to the renderer untouched.
    """
    name: str
    parent: Optional[str] = None
    size: Optional[Size] = None
    position_hint: Optional[Point] = None
    style: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name, "parent": self.parent}
        if self.size is not None:
            data["size"] = self.size.to_dict()
        if self.position_hint is not None:
            data["position_hint"] = self.position_hint.to_dict()
        if self.style:
            data["style"] = dict(self.style)
        return data


@dataclass(frozen=True)
class Edge:
    """A caller-supplied edge between two node names (leaf or parent)."""
    from_name: str
    to_name: str
    label: Optional[str] = None

    @property
    def name(self) -> str:
        return f"{self.from_name}->{self.to_name}"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"from": self.from_name, "to": self.to_name}
        if self.label:
            data["label"] = self.label
        return data


@dataclass(frozen=True)
class RoutedEdge:
    """An edge after its endpoints were mapped to visible representatives.

    ``multiplicity`` counts how many original edges collapsed onto this
    (from, to) pair; it is 1 for an edge that has not been merged yet.
    """
    from_name: str
    to_name: str
    original_from: str
    original_to: str
    label: Optional[str] = None
    multiplicity: int = 1

    @property
    def name(self) -> str:
        return f"{self.from_name}->{self.to_name}"

    @property
    def thickness(self) -> float:
        return math.log10(1.5 * self.multiplicity) + 1

    @property
    def is_self_loop(self) -> bool:
        return self.from_name == self.to_name


# ---------------------------------------------------------------------------
# Per-pass projections
# ---------------------------------------------------------------------------

@dataclass
class PositionedNode:
    """A node of one level after the physics pass (virtual coordinates)."""
    name: str
    virtual_position: Point
    size: Size


@dataclass(frozen=True)
class ScreenRect:
    """Screen rectangle of a node: center position plus size."""
    name: str
    screen_position: Point
    size: Size

    @property
    def bounds(self) -> RectBounds:
        return RectBounds.from_center(self.screen_position, self.size)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "screen_position": self.screen_position.to_dict(),
            "size": self.size.to_dict(),
        }


@dataclass
class VisibleNode:
    """Everything a renderer needs to paint one node for the current pass."""
    name: str
    parent: Optional[str]
    screen_position: Point
    size: Size
    depth: int = 0
    visible: bool = True
    expanded: bool = False
    selected: bool = False
    has_children: bool = False
    style: dict[str, Any] = field(default_factory=dict)

    @property
    def rect(self) -> ScreenRect:
        return ScreenRect(self.name, self.screen_position, self.size)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "parent": self.parent,
            "screen_position": self.screen_position.to_dict(),
            "size": self.size.to_dict(),
            "depth": self.depth,
            "visible": self.visible,
            "expanded": self.expanded,
            "selected": self.selected,
            "has_children": self.has_children,
            "style": dict(self.style),
        }


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass
class GraphOptions:
    """Numeric options for every stage of the layout pipeline."""
    # Dimensions
    default_width: float = 110
    default_height: float = 30
    text_size: Optional[float] = None   # Defaults to default_width / 12
    node_margin: float = 10             # Gap kept between sibling boxes
    title_height: float = 30            # Header band reserved in expanded nodes

    # Physics
    iterations: int = 30
    gravity: float = -12               # Negative values repel
    spring_length: float = 10
    spring_coefficient: float = 0.8
    drag_coefficient: float = 0.9
    theta: float = 0.8                 # Barnes-Hut accuracy
    time_step: float = 0.5
    mass_scale: float = 50

    # Projection
    projection: str = SCALE_PROJECTION  # "vector" places boxes at natural size
    scale_step: float = 0.95
    max_scale_attempts: int = 400

    # Negotiation
    grow_factor: float = 1.1
    shrink_factor: float = 0.9
    loose_margin_factor: float = 3
    resize_tolerance: float = 0.01

    # Edges
    arrow_height: float = 6
    anchor_max_angle: float = math.pi / 2.5

    def __post_init__(self) -> None:
        if self.text_size is None:
            self.text_size = self.default_width / 12

    @property
    def default_size(self) -> Size:
        return Size(self.default_width, self.default_height)

    def scaled(self, zoom: float) -> GraphOptions:
        """Return a copy with every pixel-valued option multiplied by *zoom*."""
        return replace(
            self,
            default_width=self.default_width * zoom,
            default_height=self.default_height * zoom,
            text_size=(self.text_size or 0) * zoom,
            node_margin=self.node_margin * zoom,
            title_height=self.title_height * zoom,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> GraphOptions:
        """Build options from a plain mapping, ignoring ``None`` values."""
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known and v is not None}
        if "iterations" in kwargs:
            kwargs["iterations"] = int(kwargs["iterations"])
        if "max_scale_attempts" in kwargs:
            kwargs["max_scale_attempts"] = int(kwargs["max_scale_attempts"])
        if "projection" in kwargs:
            kwargs["projection"] = str(kwargs["projection"]).strip().lower()
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}
