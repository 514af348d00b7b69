"""Marker model for community-map.

Members and organizer events placed on the map, plus parsing of the raw
records returned by the community REST API.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, ClassVar, Union
from urllib.parse import quote

from community_map.lib.geo import Coordinate

logger = logging.getLogger("community_map.models")

MEMBER = "member"
EVENT = "event"


@dataclass(frozen=True)
class MemberMarker:
    """A community member with a known position."""

    kind: ClassVar[str] = MEMBER

    id: str
    name: str
    coordinate: Coordinate | None
    avatar_url: str = ""
    is_online: bool = False
    last_seen: datetime | None = None
    rating: float | None = None
    books_owned_count: int = 0
    friends_count: int = 0
    contributions_count: int = 0
    joined_at: datetime | None = None
    is_verified: bool = False

    @property
    def label(self) -> str:
        return self.name

    @property
    def display_avatar(self) -> str:
        """Avatar URL with a generated-initials fallback."""
        if self.avatar_url:
            return self.avatar_url
        return f"https://ui-avatars.com/api/?name={quote(self.name)}&background=random&color=fff"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary.

        Returns:
            Dictionary representation.
        """
        return {
            "kind": self.kind,
            "id": self.id,
            "name": self.name,
            "avatar_url": self.avatar_url,
            "coordinate": _coordinate_dict(self.coordinate),
            "is_online": self.is_online,
            "last_seen": self.last_seen.isoformat() if self.last_seen else None,
            "rating": self.rating,
            "books_owned_count": self.books_owned_count,
            "friends_count": self.friends_count,
            "contributions_count": self.contributions_count,
            "joined_at": self.joined_at.isoformat() if self.joined_at else None,
            "is_verified": self.is_verified,
        }


@dataclass(frozen=True)
class EventMarker:
    """An organizer event with a venue position."""

    kind: ClassVar[str] = EVENT

    id: str
    title: str
    coordinate: Coordinate | None
    event_type: str = "other"
    start_at: datetime | None = None
    end_at: datetime | None = None
    venue: str = ""
    address: str = ""
    capacity: int = 0  # 0 = unlimited
    current_registrations: int = 0
    organizer_id: str = ""
    viewer_is_organizer: bool = False
    viewer_is_registered: bool = False

    @property
    def label(self) -> str:
        return self.title

    @property
    def rating(self) -> None:
        # Events are never rated; rating filters exclude them.
        return None

    @property
    def is_full(self) -> bool:
        return self.capacity > 0 and self.current_registrations >= self.capacity

    @property
    def spots_left(self) -> int | None:
        """Remaining places, or None when capacity is unlimited."""
        if self.capacity == 0:
            return None
        return max(0, self.capacity - self.current_registrations)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary.

        Returns:
            Dictionary representation.
        """
        return {
            "kind": self.kind,
            "id": self.id,
            "title": self.title,
            "coordinate": _coordinate_dict(self.coordinate),
            "event_type": self.event_type,
            "start_at": self.start_at.isoformat() if self.start_at else None,
            "end_at": self.end_at.isoformat() if self.end_at else None,
            "venue": self.venue,
            "address": self.address,
            "capacity": self.capacity,
            "current_registrations": self.current_registrations,
            "organizer_id": self.organizer_id,
            "viewer_is_organizer": self.viewer_is_organizer,
            "viewer_is_registered": self.viewer_is_registered,
        }


Marker = Union[MemberMarker, EventMarker]


@dataclass(frozen=True)
class AnnotatedMarker:
    """A marker together with its distance from the viewer."""

    marker: Marker
    distance_from_viewer_km: float

    @property
    def id(self) -> str:
        return self.marker.id

    @property
    def coordinate(self) -> Coordinate | None:
        return self.marker.coordinate

    @property
    def label(self) -> str:
        return self.marker.label

    @property
    def kind(self) -> str:
        return self.marker.kind

    def to_dict(self) -> dict[str, Any]:
        data = self.marker.to_dict()
        data["distance_from_viewer_km"] = self.distance_from_viewer_km
        return data


def _coordinate_dict(coord: Coordinate | None) -> dict[str, float] | None:
    if coord is None:
        return None
    return {"latitude": coord.latitude, "longitude": coord.longitude}


def _parse_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _parse_rating(value: Any) -> float | None:
    """Ratings come as a bare number or as {"value": x} / {"overallRating": x}."""
    if isinstance(value, dict):
        value = value.get("value", value.get("overallRating"))
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _count(record: dict[str, Any], count_key: str, list_key: str | None = None) -> int:
    if count_key in record:
        try:
            return int(record[count_key])
        except (TypeError, ValueError):
            return 0
    if list_key and isinstance(record.get(list_key), list):
        return len(record[list_key])
    return 0


def _ref_id(value: Any) -> str:
    """Organizer references are either an id or a populated document."""
    if isinstance(value, dict):
        value = value.get("_id", value.get("id", ""))
    return str(value) if value else ""


def _record_coordinate(record: dict[str, Any]) -> Coordinate | None:
    location = record.get("location")
    if isinstance(location, dict):
        return Coordinate.from_lnglat(location.get("coordinates"))
    return None


def record_kind(record: dict[str, Any]) -> str:
    """Kind of a raw record: explicit ``kind``, else event if it has a title."""
    kind = record.get("kind")
    if kind in (MEMBER, EVENT):
        return kind
    if "title" in record or "startAt" in record:
        return EVENT
    return MEMBER


def member_from_dict(record: dict[str, Any]) -> MemberMarker:
    """Create a MemberMarker from a ``/users/with-books`` record.

    Args:
        record: Raw user document.

    Returns:
        MemberMarker instance.
    """
    return MemberMarker(
        id=str(record.get("_id", record.get("id"))),
        name=str(record.get("name") or ""),
        avatar_url=record.get("avatar") or "",
        coordinate=_record_coordinate(record),
        is_online=bool(record.get("isOnline", False)),
        last_seen=_parse_datetime(record.get("lastSeen")),
        rating=_parse_rating(record.get("rating")),
        books_owned_count=_count(record, "booksOwnedCount", "booksOwned"),
        friends_count=_count(record, "friendsCount", "friends"),
        contributions_count=_count(record, "contributionsCount"),
        joined_at=_parse_datetime(record.get("createdAt")),
        is_verified=bool(record.get("isVerified", False)),
    )


def event_from_dict(record: dict[str, Any], viewer_id: str | None = None) -> EventMarker:
    """Create an EventMarker from an ``/events`` record.

    Args:
        record: Raw event document.
        viewer_id: Current viewer, used to derive ``viewer_is_organizer``.

    Returns:
        EventMarker instance.
    """
    location = record.get("location") if isinstance(record.get("location"), dict) else {}
    organizer_id = _ref_id(record.get("organizer"))
    return EventMarker(
        id=str(record.get("_id", record.get("id"))),
        title=str(record.get("title") or ""),
        coordinate=_record_coordinate(record),
        event_type=record.get("eventType") or "other",
        start_at=_parse_datetime(record.get("startAt")),
        end_at=_parse_datetime(record.get("endAt")),
        venue=location.get("venue") or "",
        address=location.get("address") or "",
        capacity=_count(record, "capacity"),
        current_registrations=_count(record, "currentRegistrations"),
        organizer_id=organizer_id,
        viewer_is_organizer=bool(viewer_id) and organizer_id == viewer_id,
        viewer_is_registered=bool(record.get("isRegistered", False)),
    )


def marker_from_dict(record: Any, viewer_id: str | None = None) -> Marker | None:
    """Create a marker from a raw API record of either kind.

    Args:
        record: Raw record.
        viewer_id: Current viewer id.

    Returns:
        Marker, or None if the record has no identity.
    """
    if not isinstance(record, dict):
        return None
    if not (record.get("_id") or record.get("id")):
        return None
    if record_kind(record) == EVENT:
        return event_from_dict(record, viewer_id)
    return member_from_dict(record)


def parse_markers(records: Iterable[Any], viewer_id: str | None = None) -> list[Marker]:
    """Parse a raw feed, dropping records that cannot be identified.

    Markers with missing or malformed coordinates are kept with
    ``coordinate=None``; distance filtering removes them.

    Args:
        records: Raw member and event records.
        viewer_id: Current viewer id.

    Returns:
        Parsed markers in feed order.
    """
    markers: list[Marker] = []
    seen: set[str] = set()
    for record in records:
        marker = marker_from_dict(record, viewer_id)
        if marker is None:
            logger.debug("Dropping record without id: %r", record)
            continue
        if marker.id in seen:
            logger.debug("Dropping duplicate record %s", marker.id)
            continue
        seen.add(marker.id)
        markers.append(marker)
    return markers
