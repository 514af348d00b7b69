"""Popup state machine for community-map.

At most one marker detail card is open at a time. Cards open on marker
clicks and on programmatic "focus this marker" requests (links from the
events list, notifications, ...). Focus requests are consumed once, so
re-rendering the map with the same pending request does not re-open a
card that left the map. Any user interaction re-arms the guard, so the
same request made after a click or a close is honored again.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from enum import Enum
from typing import Any

from community_map.models.popup import CLOSED, CameraTarget, PopupOpen, PopupState

logger = logging.getLogger("community_map.popup")

DEFAULT_FOCUS_ZOOM = 15

ESCAPE_KEY = "Escape"


class CloseReason(Enum):
    """Why a popup was closed."""

    BUTTON = "button"
    CLICK_OUTSIDE = "click-outside"
    ESCAPE = "escape"
    VANISHED = "vanished"


def _find(render_set: Iterable[Any], marker_id: str) -> Any | None:
    for marker in render_set:
        if marker.id == marker_id:
            return marker
    return None


class PopupStateMachine:
    """Owns which single marker, if any, is showing its detail card."""

    def __init__(self, focus_zoom: int = DEFAULT_FOCUS_ZOOM) -> None:
        self.focus_zoom = focus_zoom
        self._state: PopupState = CLOSED
        self._recenter: CameraTarget | None = None
        # Key of the last external request acted upon since the last user interaction.
        self._consumed_request: str | None = None
        # (request_key, marker_id) waiting for the first render set.
        self._pending: tuple[str, str] | None = None

    @property
    def state(self) -> PopupState:
        return self._state

    @property
    def recenter(self) -> CameraTarget | None:
        """Camera suggestion for the open marker; None while closed."""
        return self._recenter

    @property
    def has_pending_request(self) -> bool:
        return self._pending is not None

    def _open(self, marker: Any, current_zoom: int | None) -> PopupState:
        self._state = PopupOpen(marker.id)
        zoom = max(current_zoom or 0, self.focus_zoom)
        self._recenter = CameraTarget(coordinate=marker.coordinate, zoom=zoom)
        logger.debug("Popup open for %s", marker.id)
        return self._state

    def _close(self, reason: CloseReason) -> PopupState:
        if self._state.is_open:
            logger.debug("Popup closed (%s)", reason.value)
        self._state = CLOSED
        self._recenter = None
        return self._state

    def marker_clicked(self, marker: Any, current_zoom: int | None = None) -> PopupState:
        """Open the card of a clicked marker, replacing any open card.

        Args:
            marker: The clicked marker (anything with ``id`` and ``coordinate``).
            current_zoom: Zoom of the view, used for the recenter suggestion.

        Returns:
            New state.
        """
        self._consumed_request = None
        return self._open(marker, current_zoom)

    def close_requested(self, reason: CloseReason = CloseReason.BUTTON) -> PopupState:
        """Close the card (close button, click outside, Escape)."""
        if reason is not CloseReason.VANISHED:
            self._consumed_request = None
        return self._close(reason)

    def key_pressed(self, key: str) -> PopupState:
        """Handle a keyboard event; only Escape has an effect."""
        if key == ESCAPE_KEY:
            return self.close_requested(CloseReason.ESCAPE)
        return self._state

    def external_focus_requested(
        self,
        marker_id: str,
        render_set: Iterable[Any] | None = None,
        *,
        request_key: str | None = None,
        current_zoom: int | None = None,
    ) -> PopupState:
        """Open the card for a marker chosen outside the map.

        Each distinct request is processed once. A request that arrives
        before any render set exists is kept until the next reconcile.

        Args:
            marker_id: Marker to focus.
            render_set: Markers currently on the map, or None if the first
                snapshot has not been rendered yet.
            request_key: Identity of the request; defaults to ``marker_id``.
            current_zoom: Zoom of the view.

        Returns:
            New state.
        """
        key = request_key if request_key is not None else marker_id
        if key == self._consumed_request:
            logger.debug("Focus request %s already handled", key)
            return self._state

        if render_set is None:
            self._pending = (key, marker_id)
            return self._state

        self._pending = None
        self._consumed_request = key

        marker = _find(render_set, marker_id)
        if marker is None:
            logger.warning("Focus requested for marker %s which is not on the map", marker_id)
            return self._close(CloseReason.VANISHED)
        return self._open(marker, current_zoom)

    def reconcile(
        self, render_set: Iterable[Any], current_zoom: int | None = None
    ) -> PopupState:
        """Bring the state in line with a new render set.

        Processes a pending focus request and closes the card if its
        marker is no longer rendered.

        Args:
            render_set: Markers currently on the map.
            current_zoom: Zoom of the view.

        Returns:
            New state.
        """
        markers = list(render_set)

        if self._pending is not None:
            key, marker_id = self._pending
            self.external_focus_requested(
                marker_id, markers, request_key=key, current_zoom=current_zoom
            )

        if isinstance(self._state, PopupOpen):
            marker = _find(markers, self._state.marker_id)
            if marker is None:
                return self._close(CloseReason.VANISHED)
            if self._recenter is not None and self._recenter.coordinate != marker.coordinate:
                self._recenter = CameraTarget(coordinate=marker.coordinate, zoom=self._recenter.zoom)
        return self._state

    def reset(self) -> None:
        """Forget the open card and any request history."""
        self._state = CLOSED
        self._recenter = None
        self._consumed_request = None
        self._pending = None
