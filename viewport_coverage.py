#!/usr/bin/env python3
"""
viewport_coverage.py — Estimate road coverage for a map viewport.

Stages:
  1. Viewport — taken from --bbox (or config.BBOX) via a ViewportProvider
  2. Fetch    — query Overpass for highway ways in the viewport (or load cache)
  3. Estimate — dedupe in-viewport segments and compare road to viewport area
  4. Report   — print coverage, optionally dump segments as GeoJSON / stats

Usage:
    python3 viewport_coverage.py                          # default viewport
    python3 viewport_coverage.py --bbox="-122.68,45.50,-122.66,45.54"
    python3 viewport_coverage.py --offline                # reuse cached response
    python3 viewport_coverage.py --geojson --stats        # extra outputs
"""

import argparse
import json
import logging
import sys
from typing import Callable, Iterable, Protocol

from shapely.geometry import LineString, mapping

from config import BBOX, CACHE_FILE, LOG_FILE, OVERPASS_URL, SEGMENTS_FILE
from overpass_roads import (
    fetch_road_network, load_cached_response, parse_road_network, save_response,
)
from road_coverage import (
    CoverageError, CoverageResult, Node, NodeIndex, Segment,
    Viewport, Way, build_node_index, estimate_coverage, extract_segments,
    km_per_degree, road_width_m, segment_line,
)

logger = logging.getLogger(__name__)


# ── Viewport providers ───────────────────────────────────────────────

class ViewportProvider(Protocol):
    def get_bounds(self) -> Viewport:
        ...


class StaticViewportProvider:
    """Provider for a fixed bounding box (CLI flag, config, tests)."""

    def __init__(self, viewport: Viewport):
        self.viewport = viewport

    def get_bounds(self) -> Viewport:
        return self.viewport


def parse_bbox(bbox_str: str) -> Viewport:
    """Parse "west,south,east,north" into a validated Viewport."""
    try:
        parts = bbox_str.split(',')
        if len(parts) != 4:
            raise ValueError("Bbox must have 4 values: west,south,east,north")
        west, south, east, north = (float(p) for p in parts)
    except ValueError as e:
        logger.error(f"Invalid bounding box format: {e}")
        raise
    return Viewport(west, south, east, north).validate()


# ── Pipeline ─────────────────────────────────────────────────────────

def calculate_viewport_coverage(
    provider: ViewportProvider,
    fetch: Callable[[Viewport], dict] = fetch_road_network,
) -> CoverageResult:
    """Fetch the road network for the provider's viewport and estimate coverage.

    The viewport is validated before the fetch, so a bad box never costs a
    network round trip.
    """
    viewport = provider.get_bounds().validate()
    nodes, ways = parse_road_network(fetch(viewport))
    return estimate_coverage(viewport, nodes, ways)


def segments_to_geojson(segments: Iterable[Segment], node_index: NodeIndex,
                        avg_lat: float) -> dict:
    """Convert counted segments into a GeoJSON FeatureCollection ([lon, lat] order)."""
    scale_lon, scale_lat = km_per_degree(avg_lat)
    features = []
    for segment in segments:
        line = segment_line(segment, node_index, scale_lon, scale_lat)
        lonlat = [node_index[segment.a], node_index[segment.b]]
        features.append({
            'type': 'Feature',
            'geometry': mapping(LineString(lonlat)),
            'properties': {
                'from': segment.a,
                'to': segment.b,
                'highway': segment.highway,
                'width_m': road_width_m(segment.highway),
                'length_km': round(line.length, 6),
            },
        })
    return {'type': 'FeatureCollection', 'features': features}


def coverage_statistics(viewport: Viewport, nodes: Iterable[Node],
                        ways: Iterable[Way]) -> dict:
    """Per-highway breakdown of counted segments, length and area."""
    scale_lon, scale_lat = km_per_degree(viewport.avg_lat)
    node_index = build_node_index(nodes, viewport)
    segments = extract_segments(ways, node_index)

    by_type = {}
    for segment in segments:
        length_km = segment_line(segment, node_index, scale_lon, scale_lat).length
        entry = by_type.setdefault(
            segment.highway, {'segments': 0, 'length_km': 0.0, 'area_km2': 0.0}
        )
        entry['segments'] += 1
        entry['length_km'] += length_km
        entry['area_km2'] += length_km * road_width_m(segment.highway) / 1000

    for entry in by_type.values():
        entry['length_km'] = round(entry['length_km'], 3)
        entry['area_km2'] = round(entry['area_km2'], 6)

    return {
        'indexed_nodes': len(node_index),
        'total_segments': len(segments),
        'highway_types': by_type,
    }


# ── CLI ──────────────────────────────────────────────────────────────

def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(LOG_FILE),
            logging.StreamHandler()
        ]
    )


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description='Estimate the share of a map viewport covered by road surface',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python viewport_coverage.py --bbox="-122.68,45.50,-122.66,45.54"
  python viewport_coverage.py --offline --stats
  python viewport_coverage.py --geojson --cache portland.json
        """
    )
    parser.add_argument('--bbox', type=str,
                        help='Viewport: west,south,east,north (default: config.BBOX); use --bbox=... when west is negative')
    parser.add_argument('--offline', action='store_true',
                        help='Skip Overpass and load the cached response')
    parser.add_argument('--cache', type=str, default=CACHE_FILE,
                        help=f'Cached Overpass response file (default: {CACHE_FILE})')
    parser.add_argument('--overpass-url', type=str, default=OVERPASS_URL,
                        help='Overpass interpreter endpoint')
    parser.add_argument('--geojson', nargs='?', const=SEGMENTS_FILE, default=None,
                        help=f'Write counted segments as GeoJSON (default: {SEGMENTS_FILE})')
    parser.add_argument('--stats', action='store_true',
                        help='Log a per-highway breakdown of counted segments')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')

    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    try:
        if args.bbox:
            viewport = parse_bbox(args.bbox)
        else:
            viewport = Viewport(*BBOX).validate()
    except ValueError as e:
        # InvalidViewport is a ValueError too
        logger.error(f"Bad viewport: {e}")
        return 1

    provider = StaticViewportProvider(viewport)

    raw = {}

    def fetch(vp: Viewport) -> dict:
        if args.offline:
            logger.info(f"Offline mode — loading {args.cache}")
            raw["data"] = load_cached_response(args.cache)
        else:
            raw["data"] = fetch_road_network(vp, overpass_url=args.overpass_url)
            save_response(raw["data"], args.cache)
        return raw["data"]

    try:
        result = calculate_viewport_coverage(provider, fetch=fetch)
    except CoverageError as e:
        logger.error(f"Coverage estimate failed: {e}")
        return 1
    except OSError as e:
        logger.error(f"Error saving Overpass response: {e}")
        return 1

    print(f"Viewport area: {result.viewport_area_km2:.2f} km²")
    print(f"Road area:     {result.road_area_km2:.4f} km²")
    print(f"Road coverage: {result.coverage_percent:.2f}%")

    if args.geojson or args.stats:
        nodes, ways = parse_road_network(raw['data'])
        if args.geojson:
            node_index = build_node_index(nodes, viewport)
            segments = extract_segments(ways, node_index)
            try:
                with open(args.geojson, 'w') as f:
                    json.dump(segments_to_geojson(segments, node_index, viewport.avg_lat), f, indent=2)
            except OSError as e:
                logger.error(f"Error saving GeoJSON: {e}")
                return 1
            logger.info(f"Wrote {len(segments)} segments to {args.geojson}")
        if args.stats:
            stats = coverage_statistics(viewport, nodes, ways)
            logger.info(f"Coverage statistics: {json.dumps(stats, indent=2)}")

    return 0


if __name__ == '__main__':
    sys.exit(main())
