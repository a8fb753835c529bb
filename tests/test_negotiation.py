"""Tests for overlap checks and resize negotiation."""

from nestgraph_mcp.models import GraphOptions, Point, ScreenRect, Size
from nestgraph_mcp.negotiation import (
    GROW,
    SHRINK,
    ResizeRequest,
    SizeOverrides,
    check_overlap,
    content_bounds,
    find_overlaps,
    negotiate_fit,
    negotiate_resize,
)

_BOX = Size(100, 40)


def _pair(dx: float, y: float = 500) -> list[ScreenRect]:
    """Two 100x40 boxes whose centers are *dx* apart."""
    return [
        ScreenRect("a", Point(500, y), _BOX),
        ScreenRect("b", Point(500 + dx, y), _BOX),
    ]


# ===================================================================
# Overlap checks
# ===================================================================

class TestCheckOverlap:
    """Tight margin = node_margin, loose margin = 3 x node_margin."""

    def test_far_apart(self) -> None:
        # 100px gap: clear of both margins
        assert check_overlap(_pair(200), 10) == (False, False)

    def test_only_loose(self) -> None:
        # 50px gap: clear at 2 x 10, not at 2 x 30
        assert check_overlap(_pair(150), 10) == (False, True)

    def test_tight(self) -> None:
        # 10px gap: closer than 2 x 10
        assert check_overlap(_pair(110), 10) == (True, True)

    def test_fewer_than_two_never_overlap(self) -> None:
        assert check_overlap([], 10) == (False, False)
        assert check_overlap([ScreenRect("a", Point(0, 0), _BOX)], 10) == (False, False)

    def test_custom_loose_factor(self) -> None:
        assert check_overlap(_pair(150), 10, loose_factor=2) == (False, False)


class TestFindOverlaps:
    def test_lists_pairs(self) -> None:
        rects = _pair(50) + [ScreenRect("c", Point(2000, 2000), _BOX)]
        assert find_overlaps(rects) == [("a", "b")]

    def test_margin(self) -> None:
        assert find_overlaps(_pair(110)) == []
        assert find_overlaps(_pair(110), margin=10) == [("a", "b")]

    def test_content_bounds(self) -> None:
        b = content_bounds(_pair(200))
        assert (b.x, b.y, b.width, b.height) == (450, 480, 300, 40)
        assert content_bounds([]) is None


# ===================================================================
# Negotiation
# ===================================================================

class TestNegotiateResize:
    """Tests for grow / shrink decisions."""

    def test_tight_overlap_grows_both_axes(self) -> None:
        req = negotiate_resize("A", _pair(110), Size(1000, 1000), Size(110, 30), GraphOptions())
        assert req is not None
        assert req.action == GROW
        assert req.name == "A"
        assert req.current_size == Size(1000, 1000)
        assert abs(req.suggested_size.width - 1100) < 1e-9
        assert abs(req.suggested_size.height - 1100) < 1e-9

    def test_overflow_grows_the_axis_to_fit(self) -> None:
        rects = [ScreenRect("a", Point(100, 100), Size(300, 100))]
        req = negotiate_resize("A", rects, Size(200, 200), Size(110, 30), GraphOptions())
        assert req is not None
        assert req.action == GROW
        # 300 wide + 2 x 10 padding; height 100 + 30 + 10 still fits in 200
        assert req.suggested_size == Size(320, 200)

    def test_small_overflow_grows_at_least_one_step(self) -> None:
        rects = [ScreenRect("a", Point(100, 100), Size(190, 100))]
        req = negotiate_resize("A", rects, Size(200, 200), Size(110, 30), GraphOptions())
        assert req is not None
        assert abs(req.suggested_size.width - 220) < 1e-9

    def test_overflow_within_tolerance_is_ignored(self) -> None:
        rects = [ScreenRect("a", Point(100, 100), Size(181, 100))]
        # 181 + 20 = 201 is within 1% of 200; nothing overlaps, but 201 > 200 * 0.9
        req = negotiate_resize("A", rects, Size(200, 200), Size(110, 30), GraphOptions())
        assert req is None or req.action == SHRINK

    def test_loose_overlap_keeps_size(self) -> None:
        assert negotiate_resize("A", _pair(150), Size(1000, 1000), Size(110, 30), GraphOptions()) is None

    def test_roomy_level_shrinks(self) -> None:
        req = negotiate_resize("A", _pair(200), Size(1000, 1000), Size(110, 30), GraphOptions())
        assert req is not None
        assert req.action == SHRINK
        assert req.suggested_size == Size(900, 900)

    def test_shrink_is_floored_at_natural_size(self) -> None:
        req = negotiate_resize("A", _pair(200), Size(1000, 1000), Size(950, 980), GraphOptions())
        assert req is not None
        assert req.suggested_size == Size(950, 980)

    def test_shrink_is_floored_at_largest_box(self) -> None:
        rects = [ScreenRect("a", Point(62.5, 72.5), Size(100, 40))]
        req = negotiate_resize("A", rects, Size(125, 85), Size(110, 30), GraphOptions())
        assert req is not None
        assert req.action == SHRINK
        assert req.suggested_size == Size(120, 80)

    def test_no_request_at_the_floor(self) -> None:
        rects = [ScreenRect("a", Point(60, 70), Size(100, 40))]
        assert negotiate_resize("A", rects, Size(120, 80), Size(110, 30), GraphOptions()) is None

    def test_root_never_shrinks_below_viewport(self) -> None:
        viewport = Size(1000, 1000)
        assert negotiate_resize("<root>", _pair(200), viewport, viewport, GraphOptions()) is None

    def test_empty_level_shrinks_to_natural(self) -> None:
        req = negotiate_resize("A", [], Size(200, 100), Size(110, 30), GraphOptions())
        assert req is not None
        assert req.suggested_size == Size(180, 90)

    def test_custom_factors(self) -> None:
        opts = GraphOptions(grow_factor=1.5)
        req = negotiate_resize("A", _pair(110), Size(100, 100), Size(10, 10), opts)
        assert req is not None
        assert req.suggested_size.width >= 150

    def test_request_to_dict(self) -> None:
        req = ResizeRequest("A", GROW, Size(1, 2), Size(3, 4))
        assert req.to_dict() == {
            "name": "A",
            "action": "grow",
            "current_size": {"width": 1, "height": 2},
            "suggested_size": {"width": 3, "height": 4},
        }


class TestNegotiateFit:
    """Vector placement asks for the exact size it needs."""

    def test_within_tolerance(self) -> None:
        assert negotiate_fit("A", Size(100.5, 100), Size(100, 100), GraphOptions()) is None

    def test_grow_to_needed(self) -> None:
        req = negotiate_fit("A", Size(150, 100.5), Size(100, 100), GraphOptions())
        assert req is not None
        assert req.action == GROW
        # Height is within 1% and keeps its current length
        assert req.suggested_size == Size(150, 100)

    def test_shrink_to_needed(self) -> None:
        req = negotiate_fit("A", Size(80, 60), Size(100, 100), GraphOptions())
        assert req is not None
        assert req.action == SHRINK
        assert req.suggested_size == Size(80, 60)

    def test_any_larger_axis_is_a_grow(self) -> None:
        req = negotiate_fit("A", Size(150, 50), Size(100, 100), GraphOptions())
        assert req is not None
        assert req.action == GROW
        assert req.suggested_size == Size(150, 50)

    def test_zero_current_size(self) -> None:
        req = negotiate_fit("A", Size(50, 50), Size(0, 0), GraphOptions())
        assert req is not None
        assert req.suggested_size == Size(50, 50)


class TestSizeOverrides:
    def test_apply_and_get(self) -> None:
        overrides = SizeOverrides()
        overrides.apply(ResizeRequest("A", GROW, Size(10, 10), Size(11, 11)))
        assert overrides.get("A") == Size(11, 11)
        assert "A" in overrides
        assert overrides.get("B") is None
        assert overrides.get("B", Size(1, 1)) == Size(1, 1)

    def test_apply_all(self) -> None:
        overrides = SizeOverrides()
        count = overrides.apply_all([
            ResizeRequest("A", GROW, Size(10, 10), Size(11, 11)),
            ResizeRequest("B", SHRINK, Size(10, 10), Size(9, 9)),
        ])
        assert count == 2
        assert len(overrides) == 2

    def test_clear_names(self) -> None:
        overrides = SizeOverrides({"A": Size(1, 1), "B": Size(2, 2)})
        overrides.clear(["A", "missing"])
        assert "A" not in overrides
        assert "B" in overrides
        overrides.clear()
        assert len(overrides) == 0

    def test_to_dict(self) -> None:
        overrides = SizeOverrides({"B": Size(2, 2), "A": Size(1, 1)})
        assert list(overrides.to_dict()) == ["A", "B"]
