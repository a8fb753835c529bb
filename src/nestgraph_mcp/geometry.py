"""
Geometry kernel: rectangle overlap and edge anchor selection.

Anchors are chosen among the four side midpoints of each box rather than
the box centers, so that curves attach to the boundary facing the other
node and never cut back through either box.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from nestgraph_mcp.models import Point, RectBounds, Size


# ---------------------------------------------------------------------------
# Rectangle overlap
# ---------------------------------------------------------------------------

def rectangles_overlap(
    top_left1: Point,
    bottom_right1: Point,
    top_left2: Point,
    bottom_right2: Point,
) -> tuple[bool, bool]:
    """Axis-aligned overlap test returning independent (overlap_x, overlap_y).

    A rectangle with zero (or negative) width or height is a line and can
    never overlap anything, so both flags are False for it.
    """
    if (
        top_left1.x >= bottom_right1.x
        or top_left1.y >= bottom_right1.y
        or top_left2.x >= bottom_right2.x
        or top_left2.y >= bottom_right2.y
    ):
        return False, False

    overlap_x = top_left1.x < bottom_right2.x and top_left2.x < bottom_right1.x
    overlap_y = top_left1.y < bottom_right2.y and top_left2.y < bottom_right1.y
    return overlap_x, overlap_y


def bounds_overlap(a: RectBounds, b: RectBounds, margin: float = 0) -> bool:
    """True when both boxes, each grown by *margin*, overlap on both axes."""
    a = a.expanded(margin)
    b = b.expanded(margin)
    overlap_x, overlap_y = rectangles_overlap(
        a.top_left, a.bottom_right, b.top_left, b.bottom_right,
    )
    return overlap_x and overlap_y


# ---------------------------------------------------------------------------
# Anchor selection
# ---------------------------------------------------------------------------

# Side name -> outward unit normal, in enumeration order.
_SIDES: tuple[tuple[str, Point], ...] = (
    ("top", Point(0.0, -1.0)),
    ("bottom", Point(0.0, 1.0)),
    ("left", Point(-1.0, 0.0)),
    ("right", Point(1.0, 0.0)),
)

DEFAULT_MAX_ANGLE = math.pi / 2.5


@dataclass(frozen=True)
class _Candidate:
    side: str
    normal: Point
    anchor: Point
    stem: Point


@dataclass(frozen=True)
class AnchorDetails:
    """Attachment and control points for one rendered edge.

    The curve runs ``from_anchor -> (from_normal, to_normal) -> to_stem`` and
    the arrow head spans ``to_stem -> to_anchor``.
    """
    from_anchor: Point
    from_stem: Point
    from_normal: Point
    to_normal: Point
    to_stem: Point
    to_anchor: Point
    direction: Point
    from_side: str | None = None
    to_side: str | None = None

    @property
    def is_fallback(self) -> bool:
        return self.from_side is None

    @property
    def points(self) -> list[Point]:
        return [
            self.from_anchor,
            self.from_normal,
            self.to_normal,
            self.to_stem,
            self.to_anchor,
        ]

    def to_dict(self) -> dict:
        return {
            "from_anchor": self.from_anchor.to_dict(),
            "from_stem": self.from_stem.to_dict(),
            "from_normal": self.from_normal.to_dict(),
            "to_normal": self.to_normal.to_dict(),
            "to_stem": self.to_stem.to_dict(),
            "to_anchor": self.to_anchor.to_dict(),
            "direction": self.direction.to_dict(),
            "from_side": self.from_side,
            "to_side": self.to_side,
        }


def _candidates(center: Point, size: Size, clearance: float) -> list[_Candidate]:
    result: list[_Candidate] = []
    for side, normal in _SIDES:
        anchor = Point(
            center.x + normal.x * size.width / 2,
            center.y + normal.y * size.height / 2,
        )
        stem = anchor + normal.scaled(clearance)
        result.append(_Candidate(side, normal, anchor, stem))
    return result


def _angle_to_normal(vector: Point, normal: Point) -> float:
    """Angle between *vector* and a unit *normal*; 0 for a zero vector."""
    length = vector.length()
    if length == 0:
        return 0.0
    cos = (vector.x * normal.x + vector.y * normal.y) / length
    return math.acos(max(-1.0, min(1.0, cos)))


def _unit(vector: Point, default: Point = Point(1.0, 0.0)) -> Point:
    length = vector.length()
    if length == 0:
        return default
    return Point(vector.x / length, vector.y / length)


def _normal_point(anchor: Point, normal: Point, span: Point) -> Point:
    """Control point half the anchor-to-anchor span out along *normal*."""
    extent_x = abs(span.x) / 2
    extent_y = abs(span.y) / 2
    return Point(anchor.x + normal.x * extent_x, anchor.y + normal.y * extent_y)


def get_anchors(
    to_center: Point,
    to_size: Size,
    from_center: Point,
    from_size: Size,
    arrow_clearance: float = 0,
    max_angle: float = DEFAULT_MAX_ANGLE,
) -> AnchorDetails:
    """Pick the best pair of boundary anchors joining two boxes.

    Every (from side, to side) pair is scored by the distance between the
    two arrow stems. Pairs where the stem-to-stem vector leaves either side
    at more than *max_angle* from its outward normal are discarded, since
    they would draw a connector pointing back into its own box. The
    shortest surviving pair wins; on equal distances the first pair in
    top/bottom/left/right order is kept.

    When no pair survives (for example overlapping boxes) the raw centers
    are returned for every point.
    """
    clearance = max(0.0, arrow_clearance)
    from_candidates = _candidates(from_center, from_size, clearance)
    to_candidates = _candidates(to_center, to_size, clearance)

    best: tuple[_Candidate, _Candidate] | None = None
    best_distance = math.inf
    for f in from_candidates:
        for t in to_candidates:
            forward = t.stem - f.stem
            if _angle_to_normal(forward, f.normal) > max_angle:
                continue
            if _angle_to_normal(f.stem - t.stem, t.normal) > max_angle:
                continue
            distance = forward.length()
            if distance < best_distance:
                best_distance = distance
                best = (f, t)

    if best is None:
        direction = _unit(to_center - from_center)
        return AnchorDetails(
            from_anchor=from_center,
            from_stem=from_center,
            from_normal=from_center,
            to_normal=to_center,
            to_stem=to_center,
            to_anchor=to_center,
            direction=direction,
        )

    f, t = best
    span = t.anchor - f.anchor
    return AnchorDetails(
        from_anchor=f.anchor,
        from_stem=f.stem,
        from_normal=_normal_point(f.anchor, f.normal, span),
        to_normal=_normal_point(t.anchor, t.normal, span),
        to_stem=t.stem,
        to_anchor=t.anchor,
        direction=Point(-t.normal.x, -t.normal.y),
        from_side=f.side,
        to_side=t.side,
    )
