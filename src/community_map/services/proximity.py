"""Proximity filtering for community-map.

Annotates markers with their distance from the viewer and applies the
distance and rating filters chosen in the map sidebar.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from community_map.lib.geo import Coordinate, distance_km, is_valid_coordinate
from community_map.models.marker import AnnotatedMarker, Marker

logger = logging.getLogger("community_map.proximity")


@dataclass(frozen=True)
class FilterCriteria:
    """Sidebar filter settings.

    ``max_distance_km`` and ``min_rating`` use 0 to mean "no filter",
    not "zero kilometers" or "zero stars".
    """

    max_distance_km: float = 0.0
    min_rating: float = 0.0
    search_text: str = ""

    def __post_init__(self) -> None:
        if self.max_distance_km < 0:
            raise ValueError(f"max_distance_km must be >= 0, got {self.max_distance_km}")
        if self.min_rating < 0:
            raise ValueError(f"min_rating must be >= 0, got {self.min_rating}")

    @property
    def distance_limited(self) -> bool:
        return self.max_distance_km > 0

    @property
    def rating_limited(self) -> bool:
        return self.min_rating > 0

    def describe(self) -> str:
        """One-line summary shown under the filter panel."""
        distance = f"{self.max_distance_km:g}km" if self.distance_limited else "unlimited distance"
        rating = f"{self.min_rating:g}+ rating" if self.rating_limited else "any rating"
        return f"Showing users within {distance} from your location, {rating}"


def viewer_location_available(viewer: Coordinate | None) -> bool:
    """Check whether proximity filtering can run for this viewer."""
    return is_valid_coordinate(viewer)


class ProximityFilterEngine:
    """Filters and sorts markers by distance from the viewer."""

    def apply(
        self,
        markers: Iterable[Marker],
        viewer: Coordinate | None,
        criteria: FilterCriteria,
        *,
        exclude_id: str | None = None,
    ) -> list[AnnotatedMarker]:
        """Annotate, filter and sort a marker collection.

        Args:
            markers: Source markers (not modified).
            viewer: Viewer position; None when geolocation is unavailable.
            criteria: Distance and rating limits.
            exclude_id: Marker id to leave out (the viewer's own record).

        Returns:
            Annotated markers sorted by ascending distance. Empty when the
            viewer has no valid location.
        """
        if not viewer_location_available(viewer):
            logger.warning("Viewer location unavailable; proximity results are empty")
            return []

        annotated: list[AnnotatedMarker] = []
        dropped = 0
        for marker in markers:
            if exclude_id is not None and marker.id == exclude_id:
                continue
            if not is_valid_coordinate(marker.coordinate):
                dropped += 1
                continue

            distance = distance_km(viewer, marker.coordinate)

            if criteria.distance_limited and distance > criteria.max_distance_km:
                continue
            if criteria.rating_limited and (
                marker.rating is None or marker.rating < criteria.min_rating
            ):
                continue

            annotated.append(AnnotatedMarker(marker=marker, distance_from_viewer_km=distance))

        if dropped:
            logger.debug("Dropped %d markers with invalid coordinates", dropped)

        # sorted() is stable, so equal distances keep feed order.
        return sorted(annotated, key=lambda a: a.distance_from_viewer_km)
