"""
Distance calculation using the Haversine formula.

Assumption
----------
We use great-circle (Haversine) distance instead of a real routing engine
so pricing and driver search need no external mapping provider.  The same
function backs both, which keeps a search result's distance identical to
the distance a ride would be priced on.

Complexity: O(1) per call.
"""

from __future__ import annotations

import math

from .errors import InvalidCoordinate

EARTH_RADIUS_KM = 6_371.0


def validate_coordinates(lat: float, lng: float) -> None:
    """Raise ``InvalidCoordinate`` unless *lat*/*lng* is a point on Earth."""
    if not (math.isfinite(lat) and math.isfinite(lng)):
        raise InvalidCoordinate(f"Coordinates must be finite, got ({lat}, {lng})")
    if not -90.0 <= lat <= 90.0:
        raise InvalidCoordinate(f"Latitude {lat} is outside [-90, 90]")
    if not -180.0 <= lng <= 180.0:
        raise InvalidCoordinate(f"Longitude {lng} is outside [-180, 180]")


def haversine_km(
    lat1: float, lng1: float, lat2: float, lng2: float
) -> float:
    """Return the great-circle distance in **km** between two points."""
    lat1_r, lat2_r = math.radians(lat1), math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlng / 2) ** 2
    )
    # clamp: rounding can push a fractionally above 1 for antipodes
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(min(1.0, a)))
