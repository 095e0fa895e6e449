"""
overpass_roads.py — Fetch the road network for a viewport from the Overpass API.

The response is the raw Overpass JSON (``{"elements": [...]}``); use
``parse_road_network`` to turn it into the Node / Way records the estimator
consumes.  There is no retry here: one request per estimate, failures are
raised to the caller as DataFetchFailure.
"""

import json
import logging
from pathlib import Path

import requests

from config import OVERPASS_URL, OVERPASS_TIMEOUT, OVERPASS_HTTP_GRACE, USER_AGENT
from road_coverage import DataFetchFailure, Node, Viewport, Way

logger = logging.getLogger(__name__)


def build_overpass_query(viewport: Viewport, timeout: int = OVERPASS_TIMEOUT) -> str:
    """Build an Overpass QL query for every highway way in the viewport plus its nodes."""
    # Overpass bbox order is (south, west, north, east)
    bbox = f"{viewport.south},{viewport.west},{viewport.north},{viewport.east}"
    return f"""
[out:json][timeout:{timeout}];
(
  way["highway"]({bbox});
);
out body;
>;
out skel qt;
"""


def fetch_road_network(viewport: Viewport, overpass_url: str = OVERPASS_URL,
                       timeout: int = OVERPASS_TIMEOUT) -> dict:
    """POST the viewport query to Overpass and return the decoded JSON body."""
    query = build_overpass_query(viewport, timeout)
    logger.info(f"Querying Overpass for viewport {viewport}")

    try:
        response = requests.post(
            overpass_url,
            data={"data": query},
            headers={"User-Agent": USER_AGENT},
            timeout=timeout + OVERPASS_HTTP_GRACE,
        )
    except requests.exceptions.RequestException as exc:
        raise DataFetchFailure(
            f"Overpass request to {overpass_url} failed ({exc.__class__.__name__}: {exc})"
        ) from exc

    if response.status_code != 200:
        raise DataFetchFailure(f"Overpass returned HTTP {response.status_code}")

    try:
        data = response.json()
    except ValueError as exc:
        raise DataFetchFailure(f"Overpass returned a non-JSON body: {exc}") from exc

    if not isinstance(data, dict) or not isinstance(data.get("elements"), list):
        raise DataFetchFailure("Overpass response has no 'elements' list")

    logger.info(f"Received {len(data['elements'])} elements")
    return data


def parse_road_network(data: dict):
    """Split an Overpass JSON response into (nodes, ways).

    Elements other than nodes and ways are ignored.  A node without numeric
    lon/lat or a way without a node list raises DataFetchFailure.
    """
    if not isinstance(data, dict) or not isinstance(data.get("elements"), list):
        raise DataFetchFailure("Road-network data has no 'elements' list")

    nodes = []
    ways = []
    for element in data["elements"]:
        kind = element.get("type") if isinstance(element, dict) else None
        try:
            if kind == "node":
                nodes.append(Node(
                    id=int(element["id"]),
                    lon=float(element["lon"]),
                    lat=float(element["lat"]),
                ))
            elif kind == "way":
                tags = element.get("tags") or {}
                if not isinstance(tags, dict):
                    raise TypeError(f"tags must be an object, got {type(tags).__name__}")
                highway = tags.get("highway")
                if highway is not None and not isinstance(highway, str):
                    raise TypeError(f"highway must be a string, got {type(highway).__name__}")
                ways.append(Way(
                    id=int(element["id"]),
                    highway=highway,
                    node_ids=tuple(int(ref) for ref in element["nodes"]),
                ))
        except (KeyError, TypeError, ValueError) as exc:
            raise DataFetchFailure(
                f"Malformed {kind} element {element.get('id', '?')}: {exc!r}"
            ) from exc

    logger.debug(f"Parsed {len(nodes)} nodes and {len(ways)} ways")
    return nodes, ways


def load_cached_response(path) -> dict:
    """Load a previously saved Overpass response."""
    cache = Path(path)
    if not cache.exists():
        raise DataFetchFailure(f"Cache file not found: {cache}")
    try:
        return json.loads(cache.read_text())
    except json.JSONDecodeError as exc:
        raise DataFetchFailure(f"Cache file {cache} is not valid JSON: {exc}") from exc


def save_response(data: dict, path) -> None:
    Path(path).write_text(json.dumps(data))
    logger.info(f"Overpass response saved to {path}")
