"""Popup state values for community-map."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from community_map.lib.geo import Coordinate


@dataclass(frozen=True)
class PopupClosed:
    """No detail card is shown."""

    @property
    def is_open(self) -> bool:
        return False

    def to_dict(self) -> dict[str, Any]:
        return {"state": "closed"}


@dataclass(frozen=True)
class PopupOpen:
    """The detail card for one marker is shown."""

    marker_id: str

    @property
    def is_open(self) -> bool:
        return True

    def to_dict(self) -> dict[str, Any]:
        return {"state": "open", "marker_id": self.marker_id}


PopupState = Union[PopupClosed, PopupOpen]

CLOSED = PopupClosed()


@dataclass(frozen=True)
class CameraTarget:
    """Where the view should pan/zoom to show a focused marker."""

    coordinate: Coordinate
    zoom: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "latitude": self.coordinate.latitude,
            "longitude": self.coordinate.longitude,
            "zoom": self.zoom,
        }
