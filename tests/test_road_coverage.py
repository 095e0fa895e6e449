"""Tests for road_coverage.py"""

import math

import pytest

from road_coverage import (
    CoverageResult, InvalidViewport, Node, Segment, Viewport, Way,
    build_node_index, estimate_coverage, extract_segments, km_per_degree,
    road_width_m, round_percent, viewport_area_km2,
)


# --- Fixtures ------------------------------------------------------------- #

# Downtown Portland, roughly 1.5 km x 4.4 km
PORTLAND = Viewport(west=-122.68, south=45.50, east=-122.66, north=45.54)

NODE_A = Node(1, -122.67, 45.51)
NODE_B = Node(2, -122.67, 45.53)
NODE_C = Node(3, -122.665, 45.53)
NODE_D = Node(4, -122.665, 45.52)
NODE_OUTSIDE = Node(9, -122.70, 45.52)


def _residential(way_id, *node_ids):
    return Way(way_id, "residential", tuple(node_ids))


# --- Tests ---------------------------------------------------------------- #

class TestKmPerDegree:
    def test_latitude_scale_is_constant(self):
        assert km_per_degree(0)[1] == 111.32
        assert km_per_degree(60)[1] == 111.32

    def test_longitude_scale_at_equator(self):
        scale_lon, _ = km_per_degree(0)
        assert scale_lon == pytest.approx(111.32)

    def test_longitude_scale_shrinks_with_latitude(self):
        scale_lon, _ = km_per_degree(60)
        assert scale_lon == pytest.approx(111.32 * 0.5)


class TestViewport:
    def test_valid_viewport(self):
        assert PORTLAND.validate() is PORTLAND

    def test_degenerate_longitude_raises(self):
        with pytest.raises(InvalidViewport):
            Viewport(-122.67, 45.50, -122.67, 45.54).validate()

    def test_degenerate_latitude_raises(self):
        with pytest.raises(InvalidViewport):
            Viewport(-122.68, 45.52, -122.66, 45.52).validate()

    def test_inverted_viewport_raises(self):
        with pytest.raises(InvalidViewport):
            Viewport(-122.66, 45.54, -122.68, 45.50).validate()

    def test_nan_bounds_raise(self):
        with pytest.raises(InvalidViewport):
            Viewport(float("nan"), 45.50, -122.66, 45.54).validate()

    def test_latitude_beyond_pole_raises(self):
        with pytest.raises(InvalidViewport):
            Viewport(0.0, 80.0, 1.0, 95.0).validate()

    def test_invalid_viewport_is_a_value_error(self):
        with pytest.raises(ValueError):
            Viewport(1.0, 1.0, 1.0, 1.0).validate()

    def test_area(self):
        assert viewport_area_km2(PORTLAND) == pytest.approx(6.95, abs=0.05)


class TestBuildNodeIndex:
    def test_keeps_only_inside_nodes(self):
        index = build_node_index([NODE_A, NODE_B, NODE_OUTSIDE], PORTLAND)
        assert index == {1: (-122.67, 45.51), 2: (-122.67, 45.53)}

    def test_edge_nodes_are_inside(self):
        corner = Node(5, -122.68, 45.50)
        far_corner = Node(6, -122.66, 45.54)
        index = build_node_index([corner, far_corner], PORTLAND)
        assert set(index) == {5, 6}

    def test_no_nodes_gives_empty_index(self):
        assert build_node_index([NODE_OUTSIDE], PORTLAND) == {}
        assert build_node_index([], PORTLAND) == {}


class TestExtractSegments:
    def setup_method(self):
        self.index = build_node_index([NODE_A, NODE_B, NODE_C, NODE_D], PORTLAND)

    def test_consecutive_pairs(self):
        segments = extract_segments([_residential(10, 1, 2, 3)], self.index)
        assert [s.key for s in segments] == [(1, 2), (2, 3)]

    def test_keys_are_sorted(self):
        segments = extract_segments([_residential(10, 3, 2)], self.index)
        assert segments == [Segment(2, 3, "residential")]

    def test_shared_segment_counted_once(self):
        ways = [_residential(10, 1, 2), _residential(11, 2, 1)]
        assert len(extract_segments(ways, self.index)) == 1

    def test_repeated_segment_within_way_counted_once(self):
        segments = extract_segments([_residential(10, 1, 2, 1, 2)], self.index)
        assert [s.key for s in segments] == [(1, 2)]

    def test_first_seen_type_wins(self):
        ways = [
            Way(10, "motorway", (1, 2)),
            Way(11, "residential", (2, 1, 4)),
        ]
        segments = extract_segments(ways, self.index)
        assert segments[0] == Segment(1, 2, "motorway")
        assert segments[1] == Segment(1, 4, "residential")

    def test_untagged_way_skipped(self):
        ways = [Way(10, None, (1, 2)), Way(11, "", (2, 3))]
        assert extract_segments(ways, self.index) == []

    def test_segment_with_outside_endpoint_dropped(self):
        segments = extract_segments([_residential(10, 9, 1, 2)], self.index)
        assert [s.key for s in segments] == [(1, 2)]

    def test_self_loop_pair_dropped(self):
        segments = extract_segments([_residential(10, 1, 1, 2)], self.index)
        assert [s.key for s in segments] == [(1, 2)]


class TestRoadWidth:
    def test_known_types(self):
        assert road_width_m("motorway") == 12
        assert road_width_m("service") == 2.5

    def test_unknown_type_uses_default(self):
        assert road_width_m("footway") == 4


class TestEstimateCoverage:
    def test_portland_scenario(self):
        result = estimate_coverage(
            PORTLAND, [NODE_A, NODE_B], [_residential(100, 1, 2)]
        )
        assert isinstance(result, CoverageResult)
        assert result.road_area_km2 == pytest.approx(0.00888, abs=1e-4)
        assert result.viewport_area_km2 == pytest.approx(7.0, abs=0.1)
        assert result.coverage_percent == 0.13

    def test_segment_length_uses_scaled_plane(self):
        # east-west segment: length scales with cos(avg_lat)
        result = estimate_coverage(
            PORTLAND, [NODE_C, Node(7, -122.675, 45.53)],
            [Way(1, "motorway", (3, 7))],
        )
        scale_lon, _ = km_per_degree(PORTLAND.avg_lat)
        expected = 0.01 * scale_lon * 12 / 1000
        assert result.road_area_km2 == pytest.approx(expected)

    def test_empty_input_is_zero_coverage(self):
        result = estimate_coverage(PORTLAND, [], [])
        assert result.road_area_km2 == 0
        assert result.coverage_percent == 0
        assert result.viewport_area_km2 > 0

    def test_degenerate_viewport_raises(self):
        point = Viewport(-122.67, 45.51, -122.67, 45.51)
        with pytest.raises(InvalidViewport):
            estimate_coverage(point, [NODE_A], [])

    def test_area_underflowing_to_zero_raises(self):
        tiny = Viewport(0.0, 0.0, 5e-324, 5e-324)
        assert viewport_area_km2(tiny) == 0
        with pytest.raises(InvalidViewport, match="zero area"):
            estimate_coverage(tiny, [], [])

    def test_subnormal_area_raises(self):
        sliver = Viewport(0.0, 0.0, 1.0, 1e-320)
        nodes = [Node(1, 0.0, 0.0), Node(2, 1.0, 0.0)]
        with pytest.raises(InvalidViewport):
            estimate_coverage(sliver, nodes, [Way(1, "motorway", (1, 2))])

    def test_overflowing_coverage_raises(self):
        # area is just above the smallest normal float, road area is not small
        sliver = Viewport(0.0, 0.0, 100.0, 2e-314)
        nodes = [Node(1, 0.0, 0.0), Node(2, 100.0, 0.0)]
        with pytest.raises(InvalidViewport, match="too small"):
            estimate_coverage(sliver, nodes, [Way(1, "motorway", (1, 2))])

    def test_shared_segment_equals_single_way(self):
        nodes = [NODE_A, NODE_B]
        single = estimate_coverage(PORTLAND, nodes, [_residential(1, 1, 2)])
        shared = estimate_coverage(
            PORTLAND, nodes, [_residential(1, 1, 2), _residential(2, 2, 1)]
        )
        assert shared == single

    def test_boundary_segment_contributes_nothing(self):
        result = estimate_coverage(
            PORTLAND, [NODE_A, NODE_OUTSIDE], [_residential(1, 9, 1)]
        )
        assert result.road_area_km2 == 0

    def test_deterministic(self):
        nodes = [NODE_A, NODE_B, NODE_C, NODE_D]
        ways = [_residential(1, 1, 2, 3), Way(2, "primary", (3, 4, 1))]
        first = estimate_coverage(PORTLAND, nodes, ways)
        second = estimate_coverage(PORTLAND, nodes, ways)
        assert first == second
        assert repr(first) == repr(second)

    def test_adding_disjoint_segment_never_decreases_area(self):
        nodes = [NODE_A, NODE_B, NODE_C, NODE_D]
        before = estimate_coverage(PORTLAND, nodes, [_residential(1, 1, 2)])
        after = estimate_coverage(
            PORTLAND, nodes, [_residential(1, 1, 2), Way(2, "service", (3, 4))]
        )
        assert after.road_area_km2 > before.road_area_km2

    def test_coverage_is_rounded_to_two_places(self):
        result = estimate_coverage(
            PORTLAND, [NODE_A, NODE_B, NODE_C, NODE_D],
            [Way(1, "primary", (1, 2, 3, 4))],
        )
        assert result.coverage_percent == round(result.coverage_percent, 2)
        raw = result.road_area_km2 / result.viewport_area_km2 * 100
        assert math.isclose(result.coverage_percent, raw, abs_tol=0.005)


class TestRoundPercent:
    def test_exact_tie_rounds_up(self):
        assert round_percent(0.125) == 0.13

    def test_near_tie_uses_stored_value(self):
        # 1.005 is stored as 1.00499999...
        assert round_percent(1.005) == 1.0

    def test_zero(self):
        assert round_percent(0.0) == 0.0
