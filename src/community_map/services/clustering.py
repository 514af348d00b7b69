"""Marker clustering for community-map.

Groups markers that would overlap on screen into clusters, the way
leaflet.markercluster does for the community map: greedy grouping in
Web Mercator pixel space below the "disable clustering" zoom, one marker
per cluster above it, and a radial fan (spiderfy) for markers that share
a pixel.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from community_map.lib.geo import (
    Bounds,
    Coordinate,
    bounds_of,
    is_valid_coordinate,
    pixel_distance,
    project,
    unproject,
)
from community_map.models.marker import Marker

logger = logging.getLogger("community_map.clustering")

# leaflet.markercluster spiderfier geometry (pixels)
CIRCLE_FOOT_SEPARATION = 25
SPIRAL_FOOT_SEPARATION = 28
SPIRAL_LENGTH_START = 11
SPIRAL_LENGTH_FACTOR = 5
CIRCLE_SPIRAL_SWITCHOVER = 9
CIRCLE_START_ANGLE = math.pi / 6

# Markers closer than this on screen look like one marker.
SAME_PIXEL_PX = 1.0


@dataclass(frozen=True)
class ClusterSettings:
    """Clustering options, mirroring the map component's MarkerClusterGroup."""

    max_cluster_radius_px: float = 50.0
    disable_clustering_at_zoom: int = 15
    max_zoom: int = 18
    spiderfy_distance_multiplier: float = 1.0


@dataclass(frozen=True)
class Cluster:
    """A screen-space group of markers drawn as one glyph."""

    centroid: Coordinate
    radius_px: float
    members: tuple[Marker, ...]
    zoom_level: int
    spider_position: Coordinate | None = None

    @property
    def display_coordinate(self) -> Coordinate:
        """Where the glyph is drawn; differs from the centroid only when spiderfied."""
        return self.spider_position or self.centroid

    @property
    def spiderfied(self) -> bool:
        return self.spider_position is not None

    @property
    def size(self) -> int:
        return len(self.members)

    @property
    def is_singleton(self) -> bool:
        return len(self.members) == 1

    @property
    def member_ids(self) -> list[str]:
        return [m.id for m in self.members]

    def bounds(self) -> Bounds:
        """Box around the true member positions (zoom-to-bounds on click)."""
        placed = [m.coordinate for m in self.members if m.coordinate is not None]
        return bounds_of(placed) or Bounds.around(self.centroid)

    def to_dict(self) -> dict[str, Any]:
        position = self.display_coordinate
        return {
            "centroid": [self.centroid.latitude, self.centroid.longitude],
            "position": [position.latitude, position.longitude],
            "radius_px": round(self.radius_px, 2),
            "zoom_level": self.zoom_level,
            "spiderfied": self.spiderfied,
            "members": self.member_ids,
        }


class _Group:
    """Greedy cluster under construction, with a running-sum centroid."""

    def __init__(self, zoom: int) -> None:
        self.zoom = zoom
        self.members: list[Marker] = []
        self.points: list[tuple[float, float]] = []
        self.center_px: tuple[float, float] = (0.0, 0.0)
        self._lat_sum = 0.0
        self._lng_sum = 0.0

    def add(self, marker: Marker, coord: Coordinate, point: tuple[float, float]) -> None:
        self.members.append(marker)
        self.points.append(point)
        self._lat_sum += coord.latitude
        self._lng_sum += coord.longitude
        self.center_px = project(self.center, self.zoom)

    @property
    def center(self) -> Coordinate:
        n = len(self.members)
        return Coordinate(latitude=self._lat_sum / n, longitude=self._lng_sum / n)

    def to_cluster(self) -> Cluster:
        return Cluster(
            centroid=self.center,
            radius_px=max(pixel_distance(p, self.center_px) for p in self.points),
            members=tuple(self.members),
            zoom_level=self.zoom,
        )


def spiderfy_offsets(count: int, multiplier: float = 1.0) -> list[tuple[float, float]]:
    """Pixel offsets fanning ``count`` markers around a shared point.

    Uses a circle for small groups and a spiral from
    CIRCLE_SPIRAL_SWITCHOVER markers on.

    Args:
        count: Number of markers sharing the point.
        multiplier: Scales every distance (spiderfyDistanceMultiplier).

    Returns:
        One (dx, dy) offset per marker, in input order.
    """
    if count <= 0:
        return []
    if count == 1:
        return [(0.0, 0.0)]

    if count < CIRCLE_SPIRAL_SWITCHOVER:
        circumference = multiplier * CIRCLE_FOOT_SEPARATION * (2 + count)
        leg_length = circumference / (2 * math.pi)
        step = 2 * math.pi / count
        return [
            (
                round(leg_length * math.cos(CIRCLE_START_ANGLE + i * step)),
                round(leg_length * math.sin(CIRCLE_START_ANGLE + i * step)),
            )
            for i in range(count)
        ]

    leg_length = multiplier * SPIRAL_LENGTH_START
    separation = multiplier * SPIRAL_FOOT_SEPARATION
    length_factor = multiplier * SPIRAL_LENGTH_FACTOR * 2 * math.pi
    angle = 0.0
    offsets: list[tuple[float, float]] = [(0.0, 0.0)] * count
    # Filled from the outside in, matching the markercluster spiral.
    for i in range(count, -1, -1):
        if i < count:
            offsets[i] = (
                round(leg_length * math.cos(angle)),
                round(leg_length * math.sin(angle)),
            )
        angle += separation / leg_length + i * 0.0005
        leg_length += length_factor / angle
    return offsets


class ClusteringEngine:
    """Groups a render set into clusters for a zoom level."""

    def __init__(self, settings: ClusterSettings | None = None) -> None:
        self.settings = settings or ClusterSettings()

    def clamp_zoom(self, zoom: float) -> int:
        return max(0, min(int(zoom), self.settings.max_zoom))

    def cluster(
        self,
        markers: Sequence[Marker],
        viewport_zoom: float,
        max_cluster_radius_px: float | None = None,
    ) -> list[Cluster]:
        """Cluster markers for display.

        Every input marker appears in exactly one returned cluster.

        Args:
            markers: Render set; every marker must have a valid coordinate.
            viewport_zoom: Current map zoom.
            max_cluster_radius_px: Grouping radius; defaults to the settings.

        Returns:
            Clusters in discovery order.

        Raises:
            ValueError: If a marker has no valid coordinate.
        """
        placed: list[tuple[Marker, Coordinate]] = []
        for marker in markers:
            coord = marker.coordinate
            if coord is None or not is_valid_coordinate(coord):
                raise ValueError(f"Marker {marker.id} has no valid coordinate")
            placed.append((marker, coord))

        zoom = self.clamp_zoom(viewport_zoom)
        radius = (
            self.settings.max_cluster_radius_px
            if max_cluster_radius_px is None
            else max_cluster_radius_px
        )

        if zoom >= self.settings.disable_clustering_at_zoom:
            clusters = self._singletons(placed, zoom)
        else:
            clusters = self._greedy(placed, zoom, radius)

        logger.debug(
            "Clustered %d markers into %d clusters at zoom %d", len(markers), len(clusters), zoom
        )
        return clusters

    def hierarchy(
        self,
        markers: Sequence[Marker],
        min_zoom: int = 0,
        max_zoom: int | None = None,
    ) -> dict[int, list[Cluster]]:
        """Clusters for every zoom level in a range.

        Args:
            markers: Render set.
            min_zoom: Lowest zoom level.
            max_zoom: Highest zoom level (defaults to settings.max_zoom).

        Returns:
            Mapping of zoom level to clusters.
        """
        top = self.settings.max_zoom if max_zoom is None else max_zoom
        return {z: self.cluster(markers, z) for z in range(min_zoom, top + 1)}

    def _greedy(
        self, placed: Sequence[tuple[Marker, Coordinate]], zoom: int, radius: float
    ) -> list[Cluster]:
        groups: list[_Group] = []
        for marker, coord in placed:
            point = project(coord, zoom)

            best: _Group | None = None
            best_distance = math.inf
            for group in groups:
                d = pixel_distance(point, group.center_px)
                # Strict "<" keeps the earliest group on ties.
                if d <= radius and d < best_distance:
                    best = group
                    best_distance = d

            if best is None:
                best = _Group(zoom)
                groups.append(best)
            best.add(marker, coord, point)

        return [group.to_cluster() for group in groups]

    def _singletons(
        self, placed: Sequence[tuple[Marker, Coordinate]], zoom: int
    ) -> list[Cluster]:
        # Markers less than a pixel apart are fanned out instead of stacked.
        points = [project(coord, zoom) for _, coord in placed]
        stacks: list[list[int]] = []
        for index, point in enumerate(points):
            for stack in stacks:
                if pixel_distance(point, points[stack[0]]) < SAME_PIXEL_PX:
                    stack.append(index)
                    break
            else:
                stacks.append([index])

        spider: dict[int, Coordinate] = {}
        for indexes in stacks:
            if len(indexes) < 2:
                continue
            cx = sum(points[i][0] for i in indexes) / len(indexes)
            cy = sum(points[i][1] for i in indexes) / len(indexes)
            offsets = spiderfy_offsets(len(indexes), self.settings.spiderfy_distance_multiplier)
            for i, (dx, dy) in zip(indexes, offsets):
                spider[i] = unproject(cx + dx, cy + dy, zoom)

        return [
            Cluster(
                centroid=coord,
                radius_px=0.0,
                members=(marker,),
                zoom_level=zoom,
                spider_position=spider.get(index),
            )
            for index, (marker, coord) in enumerate(placed)
        ]


def find_cluster(clusters: Sequence[Cluster], marker_id: str) -> Cluster | None:
    """Cluster containing ``marker_id``, if any."""
    for cluster in clusters:
        if marker_id in cluster.member_ids:
            return cluster
    return None
