# config.py — Viewport road-coverage configuration
# Edit this file to change the default viewport, Overpass endpoint, road widths, etc.

# ── Viewport ─────────────────────────────────────────────────────────
# Default viewport when no --bbox is given (downtown Portland, OR)
# Format: (west, south, east, north)
BBOX = (-122.68, 45.50, -122.66, 45.54)

# ── Overpass ─────────────────────────────────────────────────────────
OVERPASS_URL = "https://overpass-api.de/api/interpreter"

# Server-side query timeout in seconds.  The HTTP client waits this long
# plus OVERPASS_HTTP_GRACE before giving up on the response.
OVERPASS_TIMEOUT = 25
OVERPASS_HTTP_GRACE = 30

USER_AGENT = "viewport-road-coverage/0.1"

# ── Geodesy ──────────────────────────────────────────────────────────
# Kilometres per degree of latitude (and of longitude at the equator) under
# the equirectangular approximation.
KM_PER_DEGREE = 111.32

# ── Road widths ──────────────────────────────────────────────────────
# Assumed carriageway width in metres per OSM highway=* value.  Any type not
# listed here falls back to the "default" entry.
ROAD_WIDTHS_M = {
    "motorway": 12,
    "trunk": 10,
    "primary": 8,
    "secondary": 6,
    "tertiary": 5,
    "residential": 4,
    "service": 2.5,
    "unclassified": 4,
    "default": 4,
}

# ── Cache / output files ─────────────────────────────────────────────
CACHE_FILE = "road_network.json"
SEGMENTS_FILE = "road_segments.geojson"
LOG_FILE = "viewport_coverage.log"
