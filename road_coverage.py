"""
road_coverage.py — Estimate how much of a map viewport is covered by road surface.

The estimate is a pure function of (viewport, nodes, ways):

  1. Scale    — km per degree of lon/lat at the viewport's average latitude
  2. Index    — keep only nodes inside the viewport, keyed by id
  3. Segments — walk every highway=* way, keep consecutive node pairs whose
                both ends are indexed, dedupe them as undirected pairs
  4. Area     — segment length (local tangent plane) × assumed road width

Known limitations:
  - Segments with one end outside the viewport are dropped, not clipped, so
    roads crossing the edge are undercounted.
  - The equirectangular scale is only good for city/metro-sized viewports and
    understates longitude distance near the poles.
"""

import logging
import math
import sys
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from shapely.geometry import LineString

from config import KM_PER_DEGREE, ROAD_WIDTHS_M

logger = logging.getLogger(__name__)


# ── Errors ───────────────────────────────────────────────────────────

class CoverageError(Exception):
    """Base class for every failure the coverage pipeline reports."""


class InvalidViewport(CoverageError, ValueError):
    """The viewport is inverted, degenerate, or has zero area."""


class DataFetchFailure(CoverageError):
    """The road-network source was unreachable or returned malformed data."""


# ── Data model ───────────────────────────────────────────────────────

@dataclass(frozen=True)
class Viewport:
    west: float
    south: float
    east: float
    north: float

    def validate(self) -> "Viewport":
        """Raise InvalidViewport unless west < east and south < north."""
        values = (self.west, self.south, self.east, self.north)
        if not all(math.isfinite(v) for v in values):
            raise InvalidViewport(f"Viewport has non-finite bounds: {values}")
        if not (-90 <= self.south <= 90 and -90 <= self.north <= 90):
            raise InvalidViewport(f"Viewport latitudes out of range: {values}")
        if self.west >= self.east:
            raise InvalidViewport(
                f"Viewport west ({self.west}) must be less than east ({self.east})"
            )
        if self.south >= self.north:
            raise InvalidViewport(
                f"Viewport south ({self.south}) must be less than north ({self.north})"
            )
        return self

    @property
    def avg_lat(self) -> float:
        return (self.south + self.north) / 2

    def contains(self, lon: float, lat: float) -> bool:
        """Inclusive bounds check; points on the edge count as inside."""
        return self.west <= lon <= self.east and self.south <= lat <= self.north


@dataclass(frozen=True)
class Node:
    id: int
    lon: float
    lat: float


@dataclass(frozen=True)
class Way:
    id: int
    highway: Optional[str]
    node_ids: Tuple[int, ...]


@dataclass(frozen=True)
class Segment:
    """Undirected road edge; ``a < b`` always holds."""
    a: int
    b: int
    highway: str

    @property
    def key(self) -> Tuple[int, int]:
        return (self.a, self.b)


@dataclass(frozen=True)
class CoverageResult:
    viewport_area_km2: float
    road_area_km2: float
    coverage_percent: float


NodeIndex = Dict[int, Tuple[float, float]]


# ── Stage 1: Scale ───────────────────────────────────────────────────

def km_per_degree(avg_lat: float) -> Tuple[float, float]:
    """Return (km per degree longitude, km per degree latitude) at avg_lat."""
    scale_lat = KM_PER_DEGREE
    scale_lon = KM_PER_DEGREE * math.cos(math.radians(avg_lat))
    return scale_lon, scale_lat


def viewport_area_km2(viewport: Viewport) -> float:
    scale_lon, scale_lat = km_per_degree(viewport.avg_lat)
    return abs(
        scale_lon * scale_lat
        * (viewport.east - viewport.west)
        * (viewport.north - viewport.south)
    )


# ── Stage 2: Index ───────────────────────────────────────────────────

def build_node_index(nodes: Iterable[Node], viewport: Viewport) -> NodeIndex:
    """Map node id -> (lon, lat) for every node inside the viewport."""
    return {
        node.id: (node.lon, node.lat)
        for node in nodes
        if viewport.contains(node.lon, node.lat)
    }


# ── Stage 3: Segments ────────────────────────────────────────────────

def extract_segments(ways: Iterable[Way], node_index: NodeIndex) -> List[Segment]:
    """
    Return the unique in-viewport segments of all highway ways, in first-seen order.

    A segment shared by several ways (or repeated within one) keeps the highway
    type of the first way it was seen on.
    """
    seen = set()
    segments = []
    for way in ways:
        if not way.highway:
            continue
        for a, b in zip(way.node_ids, way.node_ids[1:]):
            if a == b or a not in node_index or b not in node_index:
                continue
            segment = Segment(min(a, b), max(a, b), way.highway)
            if segment.key in seen:
                continue
            seen.add(segment.key)
            segments.append(segment)
    return segments


# ── Stage 4: Area ────────────────────────────────────────────────────

def road_width_m(highway: str) -> float:
    return ROAD_WIDTHS_M.get(highway, ROAD_WIDTHS_M["default"])


def segment_line(segment: Segment, node_index: NodeIndex,
                 scale_lon: float, scale_lat: float) -> LineString:
    """Project a segment onto the local km plane defined by the scale factors."""
    lon1, lat1 = node_index[segment.a]
    lon2, lat2 = node_index[segment.b]
    return LineString([
        (lon1 * scale_lon, lat1 * scale_lat),
        (lon2 * scale_lon, lat2 * scale_lat),
    ])


def segment_area_km2(segment: Segment, node_index: NodeIndex,
                     scale_lon: float, scale_lat: float) -> float:
    length_km = segment_line(segment, node_index, scale_lon, scale_lat).length
    return length_km * (road_width_m(segment.highway) / 1000)


def round_percent(value: float) -> float:
    """Round to 2 places, ties away from zero on the exact binary value.

    Matches JavaScript's Number.toFixed(2): 0.125 -> 0.13, but 1.005 (stored as
    1.00499...) -> 1.0.
    """
    return float(Decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def estimate_coverage(viewport: Viewport, nodes: Iterable[Node],
                      ways: Iterable[Way]) -> CoverageResult:
    """Compute road area, viewport area and coverage percent for one viewport.

    Raises InvalidViewport before touching the graph if the viewport is
    inverted or degenerate.  Empty input is not an error: it yields 0 %.
    """
    viewport.validate()
    total_area = viewport_area_km2(viewport)
    # subnormal areas are as degenerate as zero
    if total_area < sys.float_info.min:
        raise InvalidViewport(f"Viewport {viewport} has zero area")

    scale_lon, scale_lat = km_per_degree(viewport.avg_lat)
    node_index = build_node_index(nodes, viewport)
    segments = extract_segments(ways, node_index)

    road_area = 0.0
    for segment in segments:
        road_area += segment_area_km2(segment, node_index, scale_lon, scale_lat)

    ratio = road_area / total_area * 100
    if not math.isfinite(ratio):
        raise InvalidViewport(f"Viewport {viewport} is too small to estimate coverage")
    coverage = round_percent(ratio)

    logger.info(f"Viewport area: {total_area:.4f} km²")
    logger.info(f"Road area: {road_area:.4f} km²")
    logger.debug(f"Indexed {len(node_index)} nodes, processed {len(segments)} segments")

    return CoverageResult(
        viewport_area_km2=total_area,
        road_area_km2=road_area,
        coverage_percent=coverage,
    )
