"""Map session for community-map.

Ties the proximity, selection, clustering and popup components together
around one marker snapshot and exposes the interface the rendering
layer uses. Fetches are identified by generation tokens: only the most
recently issued fetch may replace the snapshot, and frames computed from
an older snapshot can be recognised and dropped.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from community_map.lib.geo import (
    Coordinate,
    bounds_of,
    fit_bounds_zoom,
    format_distance,
    is_valid_coordinate,
    privacy_offset,
)
from community_map.models.marker import AnnotatedMarker, Marker, MemberMarker, parse_markers
from community_map.models.popup import CameraTarget, PopupState
from community_map.services.clustering import Cluster, ClusteringEngine, ClusterSettings
from community_map.services.popup import CloseReason, PopupStateMachine
from community_map.services.presence import NoPresence, OnlineStatusOverlay, with_presence
from community_map.services.proximity import (
    FilterCriteria,
    ProximityFilterEngine,
    viewer_location_available,
)
from community_map.services.selection import SelectionStateManager, search_matches

logger = logging.getLogger("community_map.session")

# Indore, the map's default centre when there is nothing to show.
DEFAULT_CENTER = Coordinate(latitude=22.7196, longitude=75.8577)
DEFAULT_ZOOM = 12
FIT_PADDING_PX = 50


class LocationStatus(Enum):
    """Whether proximity filtering has a viewer position to work with."""

    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class RenderFrame:
    """Everything the rendering layer needs for one paint."""

    generation: int
    zoom: int
    clusters: list[Cluster]
    entries: list[AnnotatedMarker]
    popup: PopupState
    recenter: CameraTarget | None
    location_status: LocationStatus
    online_count: int
    criteria: FilterCriteria

    def to_dict(self) -> dict[str, Any]:
        return {
            "generation": self.generation,
            "zoom": self.zoom,
            "location_status": self.location_status.value,
            "online_count": self.online_count,
            "popup": self.popup.to_dict(),
            "recenter": self.recenter.to_dict() if self.recenter else None,
            "clusters": [c.to_dict() for c in self.clusters],
            "entries": [
                {**e.to_dict(), "distance_text": format_distance(e.distance_from_viewer_km)}
                for e in self.entries
            ],
        }


class MapSession:
    """State of one viewer's community map."""

    def __init__(
        self,
        viewer: Coordinate | None = None,
        viewer_id: str | None = None,
        criteria: FilterCriteria | None = None,
        cluster_settings: ClusterSettings | None = None,
        presence: OnlineStatusOverlay | None = None,
        privacy_offsets: bool = False,
    ) -> None:
        self.viewer_id = viewer_id
        self.presence: OnlineStatusOverlay = presence or NoPresence()
        self.privacy_offsets = privacy_offsets
        self.proximity = ProximityFilterEngine()
        self.selection = SelectionStateManager()
        self.clustering = ClusteringEngine(cluster_settings)
        self.popup = PopupStateMachine(
            focus_zoom=self.clustering.settings.disable_clustering_at_zoom
        )

        self._viewer = viewer
        self._criteria = criteria or FilterCriteria()
        self._snapshot: list[Marker] = []
        self._snapshot_loaded = False
        self._issued = 0
        self._generation = 0
        self._zoom = DEFAULT_ZOOM

    # --- inputs ------------------------------------------------------------

    @property
    def criteria(self) -> FilterCriteria:
        return self._criteria

    @property
    def generation(self) -> int:
        """Token of the snapshot currently displayed."""
        return self._generation

    @property
    def location_status(self) -> LocationStatus:
        if viewer_location_available(self._viewer):
            return LocationStatus.AVAILABLE
        return LocationStatus.UNAVAILABLE

    def set_viewer_location(self, viewer: Coordinate | None) -> None:
        """Update the viewer position; None means geolocation failed."""
        if viewer is not None and not is_valid_coordinate(viewer):
            logger.warning("Ignoring invalid viewer location %r", viewer)
            viewer = None
        self._viewer = viewer

    def set_presence(self, presence: OnlineStatusOverlay) -> None:
        self.presence = presence

    def set_filter_criteria(self, criteria: FilterCriteria) -> None:
        self._criteria = criteria

    def set_search_text(self, text: str) -> None:
        self._criteria = dataclasses.replace(self._criteria, search_text=text)

    def toggle_selection(self, marker_id: str) -> bool:
        return self.selection.toggle(marker_id)

    # --- snapshots ---------------------------------------------------------

    def begin_fetch(self) -> int:
        """Register a new fetch and return its token."""
        self._issued += 1
        return self._issued

    def complete_fetch(self, token: int, records: Iterable[Any]) -> bool:
        """Deliver the result of a fetch.

        Only the most recently issued fetch is accepted; results of older
        fetches are discarded so the map never flips back to stale data.

        Args:
            token: Value returned by :meth:`begin_fetch`.
            records: Raw API records.

        Returns:
            True if the snapshot was replaced.
        """
        if token != self._issued:
            logger.debug("Discarding stale fetch %d (latest is %d)", token, self._issued)
            return False

        markers = parse_markers(records, self.viewer_id)
        if self.privacy_offsets:
            markers = [self._offset(m) for m in markers]

        self._snapshot = markers
        self._snapshot_loaded = True
        self._generation = token
        # Every fresh snapshot starts fully selected so the map is never empty.
        self.selection.select_all(markers)
        logger.debug("Snapshot %d loaded with %d markers", token, len(markers))
        return True

    def load_snapshot(self, records: Iterable[Any]) -> None:
        """Fetch-and-deliver in one step, for synchronous sources."""
        self.complete_fetch(self.begin_fetch(), records)

    def is_current(self, frame: RenderFrame) -> bool:
        """Check whether a frame was computed from the displayed snapshot."""
        return frame.generation == self._generation

    @staticmethod
    def _offset(marker: Marker) -> Marker:
        if isinstance(marker, MemberMarker) and marker.coordinate is not None:
            return dataclasses.replace(marker, coordinate=privacy_offset(marker.id, marker.coordinate))
        return marker

    # --- pipeline ----------------------------------------------------------

    def _annotated(self) -> list[AnnotatedMarker]:
        markers = [with_presence(m, self.presence) for m in self._snapshot]
        return self.proximity.apply(
            markers, self._viewer, self._criteria, exclude_id=self.viewer_id or None
        )

    def render_entries(self) -> list[AnnotatedMarker]:
        """The render set: filtered, selected and searched markers."""
        return self.selection.visible_set(self._annotated(), self._criteria.search_text)

    def sidebar_entries(self) -> list[AnnotatedMarker]:
        """Sidebar list: filtered markers matching the search, selected or not."""
        return search_matches(self._annotated(), self._criteria.search_text)

    def visible_clusters(self, zoom: int) -> list[Cluster]:
        return self.render(zoom).clusters

    def render(self, zoom: int | None = None) -> RenderFrame:
        """Run one full pass over the current snapshot.

        While a card is open the frame is clustered at least at the card's
        recenter zoom, so the open marker is always drawn on its own.

        Args:
            zoom: Viewport zoom; keeps the previous zoom when None.

        Returns:
            RenderFrame tagged with the snapshot generation.
        """
        if zoom is not None:
            self._zoom = self.clustering.clamp_zoom(zoom)

        entries = self.render_entries()
        markers = [e.marker for e in entries]

        if self._snapshot_loaded:
            self.popup.reconcile(markers, current_zoom=self._zoom)
        recenter = self.popup.recenter
        if recenter is not None and recenter.zoom > self._zoom:
            self._zoom = self.clustering.clamp_zoom(recenter.zoom)

        clusters = self.clustering.cluster(markers, self._zoom)

        return RenderFrame(
            generation=self._generation,
            zoom=self._zoom,
            clusters=clusters,
            entries=entries,
            popup=self.popup.state,
            recenter=recenter,
            location_status=self.location_status,
            online_count=self.presence.online_count(),
            criteria=self._criteria,
        )

    def cluster_levels(self, min_zoom: int = 0) -> dict[int, list[Cluster]]:
        """Clusters of the render set for every zoom from ``min_zoom`` up.

        Lets a page swap marker layers as the viewer zooms instead of
        keeping the clusters of a single zoom level.
        """
        markers = [e.marker for e in self.render_entries()]
        return self.clustering.hierarchy(markers, min_zoom=min_zoom)

    # --- popup -------------------------------------------------------------

    def popup_state(self) -> PopupState:
        return self.popup.state

    def recenter_target(self) -> CameraTarget | None:
        return self.popup.recenter

    def marker_clicked(self, marker_id: str) -> PopupState:
        """Open the card of a rendered marker.

        Clicks on ids that are not rendered are ignored.
        """
        for entry in self.render_entries():
            if entry.id == marker_id:
                return self.popup.marker_clicked(entry.marker, current_zoom=self._zoom)
        logger.debug("Ignoring click on marker %s which is not rendered", marker_id)
        return self.popup.state

    def close_popup(self, reason: CloseReason = CloseReason.BUTTON) -> PopupState:
        return self.popup.close_requested(reason)

    def request_focus(self, marker_id: str, request_key: str | None = None) -> PopupState:
        """Programmatic "show this marker" request from outside the map."""
        render_set = (
            [e.marker for e in self.render_entries()] if self._snapshot_loaded else None
        )
        return self.popup.external_focus_requested(
            marker_id, render_set, request_key=request_key, current_zoom=self._zoom
        )

    # --- camera ------------------------------------------------------------

    def initial_camera(self, width_px: int = 1280, height_px: int = 720) -> CameraTarget:
        """Camera that fits every rendered marker, or the default centre.

        Args:
            width_px: Viewport width.
            height_px: Viewport height.

        Returns:
            CameraTarget for the first paint.
        """
        bounds = bounds_of(e.coordinate for e in self.render_entries() if e.coordinate is not None)
        if bounds is None:
            return CameraTarget(coordinate=DEFAULT_CENTER, zoom=DEFAULT_ZOOM)
        zoom = fit_bounds_zoom(
            bounds,
            width_px,
            height_px,
            padding_px=FIT_PADDING_PX,
            max_zoom=self.clustering.settings.max_zoom,
        )
        return CameraTarget(coordinate=bounds.center, zoom=zoom)
