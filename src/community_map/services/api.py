"""Community REST API feeds for community-map.

Fetches the member and event snapshots the map is built from, and the
viewer's profile location. Also reads the same payloads from JSON files
for offline use.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import requests

from community_map.lib.geo import Coordinate

logger = logging.getLogger("community_map.api")

MEMBERS_ENDPOINT = "/users/with-books"
EVENTS_ENDPOINT = "/events"
PROFILE_ENDPOINT = "/auth/profile"


class ApiError(Exception):
    """The community API could not be reached or returned an error."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class LocationUnavailableError(Exception):
    """The viewer's location could not be determined."""


@dataclass(frozen=True)
class ViewerProfile:
    """The authenticated viewer as returned by the profile endpoint."""

    id: str
    name: str
    coordinate: Coordinate | None


def extract_records(payload: Any) -> list[dict[str, Any]]:
    """Pull the record list out of any of the API's envelope shapes.

    Accepts ``{"users": [...]}``, ``{"data": [...]}``, ``{"events": [...]}``,
    ``{"markers": [...]}`` or a bare list.

    Args:
        payload: Decoded JSON body.

    Returns:
        List of record dictionaries (non-dict entries are dropped).
    """
    if isinstance(payload, dict):
        for key in ("users", "data", "events", "markers"):
            if isinstance(payload.get(key), list):
                payload = payload[key]
                break
        else:
            return []
    if not isinstance(payload, list):
        return []
    return [r for r in payload if isinstance(r, dict)]


def _tag(records: list[dict[str, Any]], kind: str) -> list[dict[str, Any]]:
    return [{**r, "kind": kind} for r in records]


class CommunityApiClient:
    """Client for the community platform REST API."""

    def __init__(self, base_url: str, token: str = "", timeout: float = 30.0) -> None:
        """Initialize the client.

        Args:
            base_url: API root, e.g. http://localhost:5000/api.
            token: Bearer token of the viewer.
            timeout: Request timeout in seconds.
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers["Content-Type"] = "application/json"
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    def _get(self, endpoint: str, params: dict[str, Any] | None = None) -> Any:
        url = f"{self.base_url}{endpoint}"
        logger.debug("GET %s %s", url, params or "")
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise ApiError(f"Request to {url} failed: {e}") from e

        if response.status_code != 200:
            raise ApiError(
                f"{url} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise ApiError(f"{url} returned invalid JSON") from e

    def fetch_members(
        self,
        max_distance_km: float | None = None,
        min_rating: float | None = None,
    ) -> list[dict[str, Any]]:
        """Fetch community members with their locations.

        Args:
            max_distance_km: Server-side pre-filter by distance (km).
            min_rating: Server-side pre-filter by rating.

        Returns:
            Raw member records tagged with ``kind="member"``.
        """
        params: dict[str, Any] = {}
        if max_distance_km:
            params["maxDistance"] = max_distance_km
        if min_rating:
            params["minRating"] = min_rating
        payload = self._get(MEMBERS_ENDPOINT, params or None)
        return _tag(extract_records(payload), "member")

    def fetch_events(self) -> list[dict[str, Any]]:
        """Fetch published public events.

        Returns:
            Raw event records tagged with ``kind="event"``.
        """
        payload = self._get(EVENTS_ENDPOINT)
        return _tag(extract_records(payload), "event")

    def fetch_markers(self, include_events: bool = True) -> list[dict[str, Any]]:
        """Fetch the full marker feed.

        Args:
            include_events: Also fetch organizer events.

        Returns:
            Member records followed by event records.
        """
        records = self.fetch_members()
        if include_events:
            records.extend(self.fetch_events())
        logger.info("Fetched %d marker records", len(records))
        return records

    def fetch_viewer(self) -> ViewerProfile:
        """Fetch the authenticated viewer's profile.

        Returns:
            ViewerProfile; ``coordinate`` is None if no location is set.
        """
        payload = self._get(PROFILE_ENDPOINT)
        if not isinstance(payload, dict):
            raise ApiError(f"{PROFILE_ENDPOINT} returned an unexpected payload")
        location = payload.get("location") if isinstance(payload.get("location"), dict) else {}
        return ViewerProfile(
            id=str(payload.get("_id", payload.get("id", ""))),
            name=str(payload.get("name") or ""),
            coordinate=Coordinate.from_lnglat(location.get("coordinates")),
        )

    def viewer_location(self) -> Coordinate:
        """Viewer location from the profile, for use as a location provider.

        Raises:
            LocationUnavailableError: If the profile has no usable location.
        """
        profile = self.fetch_viewer()
        if profile.coordinate is None:
            raise LocationUnavailableError("Profile has no location set")
        return profile.coordinate


def load_markers_file(path: Path) -> list[dict[str, Any]]:
    """Load raw marker records from a JSON file.

    The file may hold a bare list, an API envelope, or an object with
    separate ``users`` and ``events`` lists.

    Args:
        path: Path to the JSON file.

    Returns:
        Raw records.
    """
    with open(path, encoding="utf-8") as f:
        payload = json.load(f)

    if isinstance(payload, dict) and "users" in payload and "events" in payload:
        return _tag(extract_records(payload["users"]), "member") + _tag(
            extract_records(payload["events"]), "event"
        )
    return extract_records(payload)


def resolve_viewer_location(provider: Callable[[], Coordinate | None]) -> Coordinate | None:
    """Ask a location provider for the viewer position.

    Failures are treated as "no location available" rather than errors.

    Args:
        provider: Callable returning the viewer coordinate.

    Returns:
        Valid coordinate, or None.
    """
    try:
        coord = provider()
    except (ApiError, LocationUnavailableError, TimeoutError, OSError) as e:
        logger.warning("Viewer location unavailable: %s", e)
        return None
    if coord is None or not coord.is_valid():
        logger.warning("Viewer location unavailable: provider returned %r", coord)
        return None
    return coord
