"""Unit tests for marker parsing."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import pytest

from community_map.lib.geo import Coordinate
from community_map.models.marker import (
    AnnotatedMarker,
    EventMarker,
    MemberMarker,
    event_from_dict,
    marker_from_dict,
    member_from_dict,
    parse_markers,
    record_kind,
)


@pytest.mark.ai_generated
class TestMemberFromDict:
    """Tests for member record parsing."""

    def test_full_record(self) -> None:
        """Test parsing a populated /users/with-books record."""
        member = member_from_dict({
            "_id": "u1",
            "name": "Asha Verma",
            "avatar": "https://example.org/a.png",
            "location": {"type": "Point", "coordinates": [75.8577, 22.7196]},
            "isOnline": True,
            "lastSeen": "2026-10-01T08:30:00Z",
            "rating": {"value": 4.5, "count": 10},
            "booksOwned": ["b1", "b2", "b3"],
            "friendsCount": 7,
            "contributionsCount": "4",
            "createdAt": "2025-01-15T00:00:00.000Z",
            "isVerified": True,
        })

        assert member.id == "u1"
        assert member.label == "Asha Verma"
        assert member.coordinate == Coordinate(latitude=22.7196, longitude=75.8577)
        assert member.is_online is True
        assert member.last_seen == datetime(2026, 10, 1, 8, 30, tzinfo=timezone.utc)
        assert member.rating == 4.5
        assert member.books_owned_count == 3
        assert member.friends_count == 7
        assert member.contributions_count == 4
        assert member.is_verified is True
        assert member.display_avatar == "https://example.org/a.png"

    def test_sparse_record(self) -> None:
        """Test defaults when optional fields are missing."""
        member = member_from_dict({"_id": "u2", "name": "Ravi Kumar"})

        assert member.coordinate is None
        assert member.rating is None
        assert member.books_owned_count == 0
        assert member.last_seen is None
        assert member.display_avatar.startswith("https://ui-avatars.com/api/?name=Ravi%20Kumar")

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            (3.5, 3.5),
            ({"value": 2}, 2.0),
            ({"overallRating": 4.2}, 4.2),
            ({"count": 0}, None),
            ("n/a", None),
            (True, None),
        ],
    )
    def test_rating_shapes(self, raw: Any, expected: float | None) -> None:
        """Test the different rating payloads."""
        member = member_from_dict({"_id": "u1", "name": "A", "rating": raw})
        assert member.rating == expected

    def test_malformed_location_has_no_coordinate(self) -> None:
        """Test that a bad location leaves the coordinate empty."""
        member = member_from_dict(
            {"_id": "u1", "name": "A", "location": {"coordinates": [75.8]}}
        )
        assert member.coordinate is None


@pytest.mark.ai_generated
class TestEventFromDict:
    """Tests for event record parsing."""

    def test_full_record(self) -> None:
        """Test parsing an /events record."""
        event = event_from_dict(
            {
                "_id": "e1",
                "title": "Book Swap Meetup",
                "eventType": "book-swap",
                "startAt": "2026-11-02T10:00:00.000Z",
                "location": {
                    "coordinates": [75.86, 22.72],
                    "venue": "City Library",
                    "address": "MG Road",
                },
                "capacity": 20,
                "currentRegistrations": 20,
                "organizer": {"_id": "u1", "name": "Asha"},
            },
            viewer_id="u1",
        )

        assert event.label == "Book Swap Meetup"
        assert event.event_type == "book-swap"
        assert event.venue == "City Library"
        assert event.organizer_id == "u1"
        assert event.viewer_is_organizer is True
        assert event.is_full is True
        assert event.spots_left == 0
        assert event.rating is None

    def test_unlimited_capacity(self) -> None:
        """Test that capacity 0 means no limit."""
        event = event_from_dict({"_id": "e2", "title": "Reading Circle", "organizer": "u9"})

        assert event.capacity == 0
        assert event.spots_left is None
        assert event.is_full is False
        assert event.viewer_is_organizer is False
        assert event.event_type == "other"


@pytest.mark.ai_generated
class TestParseMarkers:
    """Tests for parsing a mixed feed."""

    def test_kind_inference(self) -> None:
        """Test explicit and inferred record kinds."""
        assert record_kind({"kind": "event", "name": "x"}) == "event"
        assert record_kind({"title": "Meetup"}) == "event"
        assert record_kind({"name": "Asha"}) == "member"

    def test_drops_unidentified_and_duplicates(self, sample_records: list[dict[str, Any]]) -> None:
        """Test that records without id and repeated ids are dropped."""
        records = [*sample_records, sample_records[0], "not a record"]
        markers = parse_markers(records)

        ids = [m.id for m in markers]
        assert ids == ["u1", "u2", "u3", "u4", "u5", "e1"]
        assert isinstance(markers[0], MemberMarker)
        assert isinstance(markers[-1], EventMarker)

    def test_keeps_markers_without_coordinate(self, sample_records: list[dict[str, Any]]) -> None:
        """Test that missing positions are kept for the filters to drop."""
        markers = {m.id: m for m in parse_markers(sample_records)}
        assert markers["u5"].coordinate is None

    def test_marker_from_dict_rejects_non_dict(self) -> None:
        """Test that non-dict input gives None."""
        assert marker_from_dict(["u1"]) is None
        assert marker_from_dict({"name": "no id"}) is None


@pytest.mark.ai_generated
class TestSerialization:
    """Tests for to_dict output."""

    def test_annotated_marker_to_dict(self) -> None:
        """Test that the distance is added to the marker dictionary."""
        member = MemberMarker(
            id="u1", name="Asha", coordinate=Coordinate(latitude=22.7, longitude=75.8)
        )
        data = AnnotatedMarker(marker=member, distance_from_viewer_km=1.25).to_dict()

        assert data["kind"] == "member"
        assert data["coordinate"] == {"latitude": 22.7, "longitude": 75.8}
        assert data["distance_from_viewer_km"] == 1.25
