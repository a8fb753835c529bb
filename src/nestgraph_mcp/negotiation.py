"""
Overlap detection and resize negotiation between nested levels.

A level never resizes itself. After its nodes are projected it checks them
for crowding and, if needed, returns a ``ResizeRequest`` that the caller
records in ``SizeOverrides``; the new size is used on the next pass.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

from nestgraph_mcp.geometry import bounds_overlap
from nestgraph_mcp.models import GraphOptions, RectBounds, ScreenRect, Size

logger = logging.getLogger(__name__)

GROW = "grow"
SHRINK = "shrink"


# ---------------------------------------------------------------------------
# Overlap checks
# ---------------------------------------------------------------------------

def find_overlaps(rects: Sequence[ScreenRect], margin: float = 0) -> list[tuple[str, str]]:
    """Find all pairs of rectangles that overlap once grown by *margin*."""
    overlaps: list[tuple[str, str]] = []
    bounds = [r.bounds for r in rects]
    for i in range(len(rects)):
        for j in range(i + 1, len(rects)):
            if bounds_overlap(bounds[i], bounds[j], margin):
                overlaps.append((rects[i].name, rects[j].name))
    return overlaps


def _any_overlap(bounds: Sequence[RectBounds], margin: float) -> bool:
    for i in range(len(bounds)):
        for j in range(i + 1, len(bounds)):
            if bounds_overlap(bounds[i], bounds[j], margin):
                return True
    return False


def check_overlap(
    rects: Sequence[ScreenRect],
    node_margin: float,
    loose_factor: float = 3,
) -> tuple[bool, bool]:
    """Return (tight, loose): overlap at ``node_margin`` and at ``loose_factor`` times it."""
    if len(rects) < 2:
        return False, False
    bounds = [r.bounds for r in rects]
    tight = _any_overlap(bounds, node_margin)
    loose = tight or _any_overlap(bounds, node_margin * loose_factor)
    return tight, loose


def content_bounds(rects: Iterable[ScreenRect]) -> RectBounds | None:
    result: RectBounds | None = None
    for rect in rects:
        result = rect.bounds if result is None else result.union(rect.bounds)
    return result


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ResizeRequest:
    """A level asking its container for a different size on the next pass."""
    name: str
    action: str
    current_size: Size
    suggested_size: Size

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "action": self.action,
            "current_size": self.current_size.to_dict(),
            "suggested_size": self.suggested_size.to_dict(),
        }


@dataclass
class SizeOverrides:
    """Screen size granted to each level, persisted across passes."""
    sizes: dict[str, Size] = field(default_factory=dict)

    def __contains__(self, name: object) -> bool:
        return name in self.sizes

    def __len__(self) -> int:
        return len(self.sizes)

    def get(self, name: str, default: Optional[Size] = None) -> Optional[Size]:
        return self.sizes.get(name, default)

    def set(self, name: str, size: Size) -> None:
        self.sizes[name] = size

    def apply(self, request: ResizeRequest) -> None:
        self.sizes[request.name] = request.suggested_size

    def apply_all(self, requests: Iterable[ResizeRequest]) -> int:
        count = 0
        for request in requests:
            self.apply(request)
            count += 1
        return count

    def clear(self, names: Iterable[str] | None = None) -> None:
        """Forget overrides for *names*, or all of them when None."""
        if names is None:
            self.sizes.clear()
            return
        for name in names:
            self.sizes.pop(name, None)

    def to_dict(self) -> dict:
        return {name: size.to_dict() for name, size in sorted(self.sizes.items())}


def negotiate_resize(
    level: str,
    rects: Sequence[ScreenRect],
    screen_size: Size,
    natural_size: Size,
    options: GraphOptions,
    title_padding: float | None = None,
) -> ResizeRequest | None:
    """Decide whether *level* needs more or less room from its container.

    Grows on a tight overlap or when the projected contents overflow the
    allotted size. Shrinks, never below *natural_size*, when even the loose
    margin shows no overlap. Returns None when the size should stay.
    """
    margin = options.node_margin
    if title_padding is None:
        title_padding = options.title_height
    tight, loose = check_overlap(rects, margin, options.loose_margin_factor)

    width, height = screen_size.width, screen_size.height
    if tight:
        width *= options.grow_factor
        height *= options.grow_factor

    bounds = content_bounds(rects)
    if bounds is not None:
        needed_w = bounds.width + 2 * margin
        needed_h = bounds.height + title_padding + margin
        limit = 1 + options.resize_tolerance
        if needed_w > screen_size.width * limit:
            width = max(width, screen_size.width * options.grow_factor, needed_w)
        if needed_h > screen_size.height * limit:
            height = max(height, screen_size.height * options.grow_factor, needed_h)

    if width != screen_size.width or height != screen_size.height:
        suggested = Size(width, height)
        logger.debug("Level %s requests grow %s -> %s", level, screen_size, suggested)
        return ResizeRequest(level, GROW, screen_size, suggested)

    if loose:
        return None

    # Floor: the natural size and the largest single box plus padding.
    floor_w = max([natural_size.width] + [r.size.width + 2 * margin for r in rects])
    floor_h = max([natural_size.height] + [r.size.height + title_padding + margin for r in rects])
    suggested = Size(
        max(floor_w, screen_size.width * options.shrink_factor),
        max(floor_h, screen_size.height * options.shrink_factor),
    )
    if suggested.width >= screen_size.width and suggested.height >= screen_size.height:
        return None
    suggested = Size(min(suggested.width, screen_size.width), min(suggested.height, screen_size.height))
    logger.debug("Level %s may shrink %s -> %s", level, screen_size, suggested)
    return ResizeRequest(level, SHRINK, screen_size, suggested)


def negotiate_fit(
    level: str,
    needed_size: Size,
    screen_size: Size,
    options: GraphOptions,
) -> ResizeRequest | None:
    """Ask for exactly *needed_size* when either axis is off by more than the tolerance.

    Used with vector placement, where boxes keep their natural size and the
    level knows the rectangle it needs. An axis within tolerance keeps its
    current length.
    """
    def differs(current: float, needed: float) -> bool:
        if current <= 0:
            return needed > 0
        return abs((current - needed) / current) > options.resize_tolerance

    change_w = differs(screen_size.width, needed_size.width)
    change_h = differs(screen_size.height, needed_size.height)
    if not (change_w or change_h):
        return None
    suggested = Size(
        needed_size.width if change_w else screen_size.width,
        needed_size.height if change_h else screen_size.height,
    )
    grows = suggested.width > screen_size.width or suggested.height > screen_size.height
    action = GROW if grows else SHRINK
    logger.debug("Level %s requests %s %s -> %s", level, action, screen_size, suggested)
    return ResizeRequest(level, action, screen_size, suggested)
