"""Geographic helpers for community-map.

Great-circle distance, Web Mercator pixel projection, bounds fitting and
display formatting. Everything here is a pure function of its inputs.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

EARTH_RADIUS_KM = 6371.0

# Leaflet's default tile size; world width at zoom z is TILE_SIZE * 2**z pixels.
TILE_SIZE = 256

# Web Mercator is undefined at the poles.
MAX_MERCATOR_LATITUDE = 85.0511287798

# Privacy offset range in degrees (roughly 200-400 meters).
PRIVACY_MIN_OFFSET = 0.002
PRIVACY_MAX_OFFSET = 0.004


@dataclass(frozen=True)
class Coordinate:
    """A WGS84 position in decimal degrees."""

    latitude: float
    longitude: float

    def is_valid(self) -> bool:
        """Check that both components are finite and in range.

        Returns:
            True if the coordinate can be used for distance and projection.
        """
        return is_valid_coordinate(self)

    def to_lnglat(self) -> list[float]:
        """Return the GeoJSON ``[lng, lat]`` ordering."""
        return [self.longitude, self.latitude]

    @classmethod
    def from_lnglat(cls, value: Any) -> Coordinate | None:
        """Build a coordinate from a GeoJSON ``[lng, lat]`` pair.

        Args:
            value: Sequence of two numbers in longitude/latitude order.

        Returns:
            Coordinate, or None if the value has the wrong arity, is not
            numeric, or is out of range.
        """
        if not isinstance(value, (list, tuple)) or len(value) != 2:
            return None
        try:
            lng = float(value[0])
            lat = float(value[1])
        except (TypeError, ValueError):
            return None
        coord = cls(latitude=lat, longitude=lng)
        return coord if coord.is_valid() else None


def is_valid_coordinate(coord: Any) -> bool:
    """Check whether ``coord`` is a usable coordinate.

    Args:
        coord: Candidate value (anything with latitude/longitude attributes).

    Returns:
        True if both components are finite and within [-90, 90] / [-180, 180].
    """
    if coord is None:
        return False
    try:
        lat = float(coord.latitude)
        lng = float(coord.longitude)
    except (AttributeError, TypeError, ValueError):
        return False
    if not (math.isfinite(lat) and math.isfinite(lng)):
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0


def distance_km(a: Coordinate | None, b: Coordinate | None) -> float:
    """Great-circle distance between two coordinates (haversine).

    Invalid or missing coordinates yield ``math.inf`` so that distance
    filters exclude them instead of failing.

    Args:
        a: First coordinate.
        b: Second coordinate.

    Returns:
        Distance in kilometers.
    """
    if a is None or b is None:
        return math.inf
    if not (is_valid_coordinate(a) and is_valid_coordinate(b)):
        return math.inf

    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    dlat = math.radians(b.latitude - a.latitude)
    dlon = math.radians(b.longitude - a.longitude)

    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    # Rounding can push h slightly outside [0, 1] near antipodes.
    h = min(1.0, max(0.0, h))
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(h))


def format_distance(km: float | None) -> str:
    """Format a distance for display next to a marker.

    Args:
        km: Distance in kilometers.

    Returns:
        Human readable string, e.g. "350m away" or "2.4km away".
    """
    if km is None or not math.isfinite(km):
        return "Distance unknown"
    if km < 1:
        return f"{round(km * 1000)}m away"
    return f"{round(km, 1)}km away"


def privacy_offset(member_id: str, coord: Coordinate) -> Coordinate:
    """Shift a member position by a stable pseudo-random offset.

    The same id always produces the same offset, so a member does not
    jump around between snapshots.

    Args:
        member_id: Member identifier used as the seed.
        coord: True position.

    Returns:
        Offset position, 0.002-0.004 degrees away on each axis.
    """
    seed = sum(ord(ch) for ch in member_id)
    r1 = math.sin(seed) * 10000
    r2 = math.cos(seed) * 10000
    span = PRIVACY_MAX_OFFSET - PRIVACY_MIN_OFFSET

    lat_offset = ((r1 - math.floor(r1)) * span + PRIVACY_MIN_OFFSET) * (1 if r1 > 0 else -1)
    lng_offset = ((r2 - math.floor(r2)) * span + PRIVACY_MIN_OFFSET) * (1 if r2 > 0 else -1)

    lat = max(-90.0, min(90.0, coord.latitude + lat_offset))
    lng = coord.longitude + lng_offset
    if lng > 180.0:
        lng -= 360.0
    elif lng < -180.0:
        lng += 360.0
    return Coordinate(latitude=lat, longitude=lng)


# --- Web Mercator pixel space ---------------------------------------------


def world_size_px(zoom: float) -> float:
    """Width (and height) of the projected world at ``zoom`` in pixels."""
    return TILE_SIZE * (2.0**zoom)


def project(coord: Coordinate, zoom: float) -> tuple[float, float]:
    """Project a coordinate to global pixel space at ``zoom``.

    Args:
        coord: Position to project.
        zoom: Map zoom level.

    Returns:
        (x, y) pixels, origin at the north-west corner of the world.
    """
    size = world_size_px(zoom)
    lat = max(-MAX_MERCATOR_LATITUDE, min(MAX_MERCATOR_LATITUDE, coord.latitude))
    sin_lat = math.sin(math.radians(lat))
    x = (coord.longitude + 180.0) / 360.0 * size
    y = (0.5 - math.log((1 + sin_lat) / (1 - sin_lat)) / (4 * math.pi)) * size
    return x, y


def unproject(x: float, y: float, zoom: float) -> Coordinate:
    """Inverse of :func:`project`."""
    size = world_size_px(zoom)
    lng = x / size * 360.0 - 180.0
    n = math.pi - 2 * math.pi * y / size
    lat = math.degrees(math.atan(math.sinh(n)))
    return Coordinate(latitude=lat, longitude=lng)


def pixel_distance(a: tuple[float, float], b: tuple[float, float]) -> float:
    """Euclidean distance between two pixel positions."""
    return math.hypot(a[0] - b[0], a[1] - b[1])


# --- Bounds ----------------------------------------------------------------


@dataclass(frozen=True)
class Bounds:
    """Axis-aligned lat/lng box."""

    south: float
    west: float
    north: float
    east: float

    @property
    def center(self) -> Coordinate:
        return Coordinate(
            latitude=(self.south + self.north) / 2,
            longitude=(self.west + self.east) / 2,
        )

    @classmethod
    def around(cls, coord: Coordinate) -> Bounds:
        """Zero-area box at a single position."""
        return cls(
            south=coord.latitude,
            west=coord.longitude,
            north=coord.latitude,
            east=coord.longitude,
        )

    def contains(self, coord: Coordinate) -> bool:
        return (
            self.south <= coord.latitude <= self.north
            and self.west <= coord.longitude <= self.east
        )


def bounds_of(coords: Iterable[Coordinate]) -> Bounds | None:
    """Smallest box containing every valid coordinate.

    Args:
        coords: Positions to enclose.

    Returns:
        Bounds, or None if there is no valid coordinate.
    """
    valid = [c for c in coords if is_valid_coordinate(c)]
    if not valid:
        return None
    return Bounds(
        south=min(c.latitude for c in valid),
        west=min(c.longitude for c in valid),
        north=max(c.latitude for c in valid),
        east=max(c.longitude for c in valid),
    )


def fit_bounds_zoom(
    bounds: Bounds,
    width_px: int,
    height_px: int,
    padding_px: int = 50,
    max_zoom: int = 18,
) -> int:
    """Largest integer zoom at which ``bounds`` fits in the viewport.

    Args:
        bounds: Box to show.
        width_px: Viewport width.
        height_px: Viewport height.
        padding_px: Padding kept free on each side.
        max_zoom: Upper limit for the result.

    Returns:
        Zoom level in [0, max_zoom].
    """
    avail_w = max(1, width_px - 2 * padding_px)
    avail_h = max(1, height_px - 2 * padding_px)
    for zoom in range(max_zoom, -1, -1):
        x1, y1 = project(Coordinate(bounds.north, bounds.west), zoom)
        x2, y2 = project(Coordinate(bounds.south, bounds.east), zoom)
        if abs(x2 - x1) <= avail_w and abs(y2 - y1) <= avail_h:
            return zoom
    return 0
