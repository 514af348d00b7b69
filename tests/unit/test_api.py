"""Unit tests for the community API client."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
import responses
from responses import matchers

from community_map.lib.geo import Coordinate
from community_map.services.api import (
    ApiError,
    CommunityApiClient,
    LocationUnavailableError,
    extract_records,
    load_markers_file,
    resolve_viewer_location,
)

BASE_URL = "http://api.test/api"


@pytest.fixture
def client() -> CommunityApiClient:
    return CommunityApiClient(BASE_URL, token="tok")


@pytest.mark.ai_generated
class TestExtractRecords:
    """Tests for envelope handling."""

    @pytest.mark.parametrize(
        "payload",
        [
            {"users": [{"_id": "a"}]},
            {"success": True, "data": [{"_id": "a"}]},
            {"events": [{"_id": "a"}]},
            [{"_id": "a"}, "junk"],
        ],
    )
    def test_envelopes(self, payload: Any) -> None:
        """Test every supported envelope shape."""
        assert extract_records(payload) == [{"_id": "a"}]

    def test_unknown_shape(self) -> None:
        """Test that unexpected payloads give no records."""
        assert extract_records({"message": "ok"}) == []
        assert extract_records("nope") == []


@pytest.mark.ai_generated
class TestCommunityApiClient:
    """Tests for HTTP fetching."""

    @responses.activate
    def test_fetch_markers(
        self,
        client: CommunityApiClient,
        member_records: list[dict[str, Any]],
        event_records: list[dict[str, Any]],
    ) -> None:
        """Test that members and events are fetched and tagged."""
        responses.get(
            f"{BASE_URL}/users/with-books",
            json={"users": member_records},
            match=[matchers.header_matcher({"Authorization": "Bearer tok"})],
        )
        responses.get(f"{BASE_URL}/events", json={"success": True, "data": event_records})

        records = client.fetch_markers()

        assert len(records) == len(member_records) + len(event_records)
        assert records[0]["kind"] == "member"
        assert records[-1]["kind"] == "event"

    @responses.activate
    def test_fetch_markers_without_events(
        self, client: CommunityApiClient, member_records: list[dict[str, Any]]
    ) -> None:
        """Test that events are skipped on request."""
        responses.get(f"{BASE_URL}/users/with-books", json={"users": member_records})

        records = client.fetch_markers(include_events=False)

        assert {r["kind"] for r in records} == {"member"}
        assert len(responses.calls) == 1

    @responses.activate
    def test_server_side_filters(self, client: CommunityApiClient) -> None:
        """Test that distance and rating are sent as query parameters."""
        responses.get(
            f"{BASE_URL}/users/with-books",
            json={"users": []},
            match=[matchers.query_param_matcher({"maxDistance": "10", "minRating": "3.5"})],
        )

        assert client.fetch_members(max_distance_km=10, min_rating=3.5) == []

    @responses.activate
    def test_http_error(self, client: CommunityApiClient) -> None:
        """Test that error statuses become ApiError."""
        responses.get(f"{BASE_URL}/events", status=500)

        with pytest.raises(ApiError) as exc_info:
            client.fetch_events()
        assert exc_info.value.status_code == 500

    @responses.activate
    def test_invalid_json(self, client: CommunityApiClient) -> None:
        """Test that a non-JSON body becomes ApiError."""
        responses.get(f"{BASE_URL}/events", body="<html>oops</html>")

        with pytest.raises(ApiError, match="invalid JSON"):
            client.fetch_events()

    @responses.activate
    def test_connection_error(self, client: CommunityApiClient) -> None:
        """Test that connection failures become ApiError."""
        with pytest.raises(ApiError, match="failed"):
            client.fetch_events()

    @responses.activate
    def test_viewer_location(self, client: CommunityApiClient) -> None:
        """Test reading the viewer position from the profile."""
        responses.get(
            f"{BASE_URL}/auth/profile",
            json={"_id": "u1", "name": "Asha", "location": {"coordinates": [75.8577, 22.7196]}},
        )

        assert client.viewer_location() == Coordinate(latitude=22.7196, longitude=75.8577)

    @responses.activate
    def test_viewer_without_location(self, client: CommunityApiClient) -> None:
        """Test a profile that has no location set."""
        responses.get(f"{BASE_URL}/auth/profile", json={"_id": "u1", "name": "Asha"})

        profile = client.fetch_viewer()
        assert profile.id == "u1"
        assert profile.coordinate is None
        with pytest.raises(LocationUnavailableError):
            client.viewer_location()


@pytest.mark.ai_generated
class TestLocationAndFiles:
    """Tests for location resolution and offline files."""

    def test_resolve_viewer_location_success(self) -> None:
        """Test a working provider."""
        coord = Coordinate(latitude=22.7196, longitude=75.8577)
        assert resolve_viewer_location(lambda: coord) == coord

    @pytest.mark.parametrize(
        "error", [LocationUnavailableError("denied"), TimeoutError("slow"), ApiError("down")]
    )
    def test_resolve_viewer_location_failure(self, error: Exception) -> None:
        """Test that provider failures mean no location."""

        def provider() -> Coordinate:
            raise error

        assert resolve_viewer_location(provider) is None

    def test_resolve_viewer_location_invalid(self) -> None:
        """Test that an out-of-range answer means no location."""
        assert resolve_viewer_location(lambda: Coordinate(latitude=95.0, longitude=0.0)) is None

    def test_load_markers_file(self, markers_file: Path) -> None:
        """Test the users + events file layout."""
        records = load_markers_file(markers_file)

        kinds = [r["kind"] for r in records]
        assert kinds.count("event") == 1
        assert kinds[0] == "member"

    def test_load_bare_list(self, tmp_path: Path) -> None:
        """Test a file holding a plain record list."""
        path = tmp_path / "list.json"
        path.write_text(json.dumps([{"_id": "u1", "name": "Asha"}]))

        assert load_markers_file(path) == [{"_id": "u1", "name": "Asha"}]
