"""
Projection of a level's virtual positions into a pixel rectangle.

The scale is searched independently along X and Y: start from the ratio of
the screen to the virtual span and shrink geometrically until the projected
boxes plus padding fit. The search accepts the first scale that fits rather
than the largest one, which bounds the work at ``max_attempts`` steps.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from typing import Optional, Sequence

from nestgraph_mcp.geometry import bounds_overlap
from nestgraph_mcp.models import PositionedNode, Point, ScreenRect, Size, ZERO_POINT

logger = logging.getLogger(__name__)

DEFAULT_SCALE_STEP = 0.95
DEFAULT_MAX_ATTEMPTS = 400


@dataclass(frozen=True)
class ScreenProjection:
    """Scale and offset mapping one level's virtual space onto its rectangle."""
    virtual_top_left: Point
    scale_x: float
    scale_y: float
    fitness_x: float
    fitness_y: float
    container_padding: float
    title_padding: float
    converged: bool = True
    attempts: int = 0
    # Set for single-node levels: the fixed center relative to the origin.
    fixed_offset: Optional[Point] = None

    @property
    def scale(self) -> float:
        return min(self.scale_x, self.scale_y)

    def to_screen(self, virtual: Point, origin: Point = ZERO_POINT) -> Point:
        if self.fixed_offset is not None:
            return origin + self.fixed_offset
        return Point(
            (virtual.x - self.virtual_top_left.x) * self.scale_x + origin.x + self.container_padding,
            (virtual.y - self.virtual_top_left.y) * self.scale_y + origin.y + self.title_padding,
        )

    def to_dict(self) -> dict:
        return {
            "scale_x": self.scale_x,
            "scale_y": self.scale_y,
            "fitness_x": self.fitness_x,
            "fitness_y": self.fitness_y,
            "converged": self.converged,
            "attempts": self.attempts,
        }


def _projected_extent(centers: Sequence[float], halves: Sequence[float], r: float) -> float:
    high = max(c * r + h for c, h in zip(centers, halves))
    low = min(c * r - h for c, h in zip(centers, halves))
    return high - low


def _fit_axis(
    centers: Sequence[float],
    halves: Sequence[float],
    available: float,
    padding: float,
    step: float,
    max_attempts: int,
) -> tuple[float, float, int, bool]:
    """Greedy scale search along one axis.

    Returns:
        (scale, fitness, attempts, converged)
    """
    if available <= 0:
        return 1.0, 0.0, 0, True

    span = max(centers) - min(centers)
    denominator = max(span, halves[0] * 2)
    r = available / denominator if denominator > 0 else 1.0

    fitness = (_projected_extent(centers, halves, r) + padding) / available
    attempts = 0
    while fitness > 1 and attempts < max_attempts:
        r *= step
        attempts += 1
        fitness = (_projected_extent(centers, halves, r) + padding) / available
    return r, fitness, attempts, fitness <= 1


def calculate_screen_scale(
    nodes: Sequence[PositionedNode],
    screen_size: Size,
    container_padding: float,
    title_padding: float,
    step: float = DEFAULT_SCALE_STEP,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> ScreenProjection:
    """Find the scale that fits *nodes* into *screen_size*.

    Args:
        nodes: Virtual positions and pixel sizes of one level.
        screen_size: Target rectangle size.
        container_padding: Gap kept left, right and below the contents.
        title_padding: Header band kept above the contents.
        step: Multiplier applied to the scale on every failed attempt.
        max_attempts: Upper bound on shrink steps per axis.
    """
    if not nodes:
        return ScreenProjection(ZERO_POINT, 1.0, 1.0, 0.0, 0.0,
                                container_padding, title_padding)

    pad_x = 2 * container_padding
    pad_y = title_padding + container_padding

    if len(nodes) == 1:
        size = nodes[0].size
        width, height = screen_size.width, screen_size.height
        scale_x = min(1.0, width / (size.width + pad_x)) if width > 0 and size.width + pad_x > 0 else 1.0
        scale_y = min(1.0, height / (size.height + pad_y)) if height > 0 and size.height + pad_y > 0 else 1.0
        offset = Point(
            container_padding + (width - pad_x) / 2,
            title_padding + (height - pad_y) / 2,
        )
        return ScreenProjection(
            virtual_top_left=nodes[0].virtual_position,
            scale_x=scale_x,
            scale_y=scale_y,
            fitness_x=(size.width + pad_x) / width if width > 0 else 0.0,
            fitness_y=(size.height + pad_y) / height if height > 0 else 0.0,
            container_padding=container_padding,
            title_padding=title_padding,
            fixed_offset=offset,
        )

    xs = [n.virtual_position.x for n in nodes]
    ys = [n.virtual_position.y for n in nodes]
    half_w = [n.size.width / 2 for n in nodes]
    half_h = [n.size.height / 2 for n in nodes]

    scale_x, fitness_x, attempts_x, ok_x = _fit_axis(
        xs, half_w, screen_size.width, pad_x, step, max_attempts)
    scale_y, fitness_y, attempts_y, ok_y = _fit_axis(
        ys, half_h, screen_size.height, pad_y, step, max_attempts)

    if not (ok_x and ok_y):
        logger.debug(
            "Scale search did not converge for %d nodes in %.0fx%.0f (fitness %.3f, %.3f)",
            len(nodes), screen_size.width, screen_size.height, fitness_x, fitness_y,
        )

    top_left = Point(
        min(x - h / scale_x for x, h in zip(xs, half_w)),
        min(y - h / scale_y for y, h in zip(ys, half_h)),
    )
    return ScreenProjection(
        virtual_top_left=top_left,
        scale_x=scale_x,
        scale_y=scale_y,
        fitness_x=fitness_x,
        fitness_y=fitness_y,
        container_padding=container_padding,
        title_padding=title_padding,
        converged=ok_x and ok_y,
        attempts=attempts_x + attempts_y,
    )


def project_nodes(
    nodes: Sequence[PositionedNode],
    projection: ScreenProjection,
    origin: Point = ZERO_POINT,
) -> list[ScreenRect]:
    """Screen rectangles for *nodes* under *projection*, offset by *origin*."""
    return [
        ScreenRect(n.name, projection.to_screen(n.virtual_position, origin), n.size)
        for n in nodes
    ]


# ---------------------------------------------------------------------------
# Vector placement
# ---------------------------------------------------------------------------

# Pushes are scaled by the unit vector of a square screen.
_SCREEN_RATIO = math.sqrt(0.5)
_COINCIDENT_DIRECTION = (_SCREEN_RATIO, _SCREEN_RATIO)


@dataclass(frozen=True)
class VectorPlacement:
    """Result of placing one level at natural size.

    ``needed_size`` is the rectangle the level must be given so that every
    box plus the container and title padding fits.
    """
    rects: list[ScreenRect]
    needed_size: Size


@dataclass(frozen=True)
class _Direction:
    origin: str
    test: str
    distance: float
    vx: float
    vy: float


def _directions(nodes: Sequence[PositionedNode]) -> list[_Direction]:
    """Every ordered pair of distinct nodes, nearest first."""
    result = []
    for origin in nodes:
        for test in nodes:
            if origin is test:
                continue
            dx = test.virtual_position.x - origin.virtual_position.x
            dy = test.virtual_position.y - origin.virtual_position.y
            distance = math.hypot(dx, dy)
            vx, vy = (dx / distance, dy / distance) if distance > 0 else _COINCIDENT_DIRECTION
            result.append(_Direction(origin.name, test.name, distance, vx, vy))
    result.sort(key=lambda d: d.distance)

    if len(nodes) == 2:
        # Two nodes line up along one axis: stacked when side by side would be wider.
        total_w = nodes[0].size.width + nodes[1].size.width
        total_h = nodes[0].size.height + nodes[1].size.height
        ratio_x = total_w / math.hypot(total_w, total_h)
        if ratio_x > _SCREEN_RATIO:
            result = [replace(d, vx=0.0, vy=1.0 if d.vy >= 0 else -1.0) for d in result]
        else:
            result = [replace(d, vx=1.0 if d.vx >= 0 else -1.0, vy=0.0) for d in result]
    return result


def _push_clear(
    existing: ScreenRect,
    moving: ScreenRect,
    margin: float,
    vx: float,
    vy: float,
) -> Point | None:
    """Move *moving* along (vx, vy) until it clears *existing*.

    Returns None when the two boxes (each grown by *margin*) do not overlap.
    Of the positions that clear the box horizontally or vertically, the one
    needing the shorter move wins.
    """
    if not bounds_overlap(existing.bounds, moving.bounds, margin):
        return None
    if vx == 0 and vy == 0:
        vx = 1.0

    half_w = moving.size.width / 2 + margin
    half_h = moving.size.height / 2 + margin
    edge = existing.bounds.expanded(margin)
    start = moving.screen_position
    candidates: list[Point] = []
    if vx != 0:
        x = edge.right + half_w + 1 if vx > 0 else edge.x - half_w - 1
        candidates.append(Point(x, start.y + (x - start.x) * vy / vx))
    if vy != 0:
        y = edge.bottom + half_h + 1 if vy > 0 else edge.y - half_h - 1
        candidates.append(Point(start.x + (y - start.y) * vx / vy, y))
    return min(candidates, key=start.distance_to)


def _place_one(
    start: Point,
    node: PositionedNode,
    vx: float,
    vy: float,
    placed: Sequence[ScreenRect],
    margin: float,
) -> ScreenRect:
    rect = ScreenRect(node.name, start, node.size)
    for _ in range(len(placed) * 100):
        for existing in placed:
            moved = _push_clear(existing, rect, margin, vx, vy)
            if moved is not None:
                rect = ScreenRect(node.name, moved, node.size)
                break
        else:
            return rect
    logger.debug("Gave up clearing %s after %d pushes", node.name, len(placed) * 100)
    return rect


def place_nodes_by_vector(
    nodes: Sequence[PositionedNode],
    node_margin: float,
    title_padding: float,
    origin: Point = ZERO_POINT,
) -> VectorPlacement:
    """Place *nodes* at their natural size without overlaps.

    Nodes are placed nearest pair first: each new node starts on the center
    of an already placed neighbour and is pushed along the direction the
    physics layout gave between the two until it clears every placed box.
    The result is then shifted so the contents start at *origin* plus the
    padding, and ``needed_size`` reports the rectangle this takes.
    """
    if not nodes:
        return VectorPlacement([], Size(2 * node_margin, title_padding + node_margin))

    by_name = {n.name: n for n in nodes}
    directions = _directions(nodes)
    first = directions[0].origin if directions else nodes[0].name
    placed: dict[str, ScreenRect] = {first: ScreenRect(first, ZERO_POINT, by_name[first].size)}

    while len(placed) < len(nodes):
        for d in directions:
            if d.origin in placed and d.test not in placed:
                placed[d.test] = _place_one(
                    placed[d.origin].screen_position,
                    by_name[d.test],
                    d.vx * _SCREEN_RATIO,
                    d.vy * _SCREEN_RATIO,
                    list(placed.values()),
                    node_margin,
                )
                break

    rects = list(placed.values())
    left = min(r.bounds.x for r in rects)
    top = min(r.bounds.y for r in rects)
    right = max(r.bounds.right for r in rects)
    bottom = max(r.bounds.bottom for r in rects)
    shift = Point(origin.x - left + node_margin, origin.y - top + title_padding)
    return VectorPlacement(
        rects=[
            ScreenRect(n.name, placed[n.name].screen_position + shift, n.size)
            for n in nodes
        ],
        needed_size=Size(right - left + 2 * node_margin, bottom - top + title_padding + node_margin),
    )
