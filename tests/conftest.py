"""Shared pytest fixtures for community-map tests."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner


def member_record(
    member_id: str,
    name: str,
    lnglat: list[float] | None,
    rating: float | None = None,
    **extra: Any,
) -> dict[str, Any]:
    """Build a raw ``/users/with-books`` record."""
    record: dict[str, Any] = {"_id": member_id, "name": name, **extra}
    if lnglat is not None:
        record["location"] = {"type": "Point", "coordinates": lnglat}
    if rating is not None:
        record["rating"] = {"value": rating, "count": 3}
    return record


def event_record(event_id: str, title: str, lnglat: list[float], **extra: Any) -> dict[str, Any]:
    """Build a raw ``/events`` record."""
    return {
        "_id": event_id,
        "title": title,
        "eventType": "book-swap",
        "startAt": "2026-11-02T10:00:00.000Z",
        "location": {
            "type": "Point",
            "coordinates": lnglat,
            "venue": "City Library",
            "address": "MG Road, Indore",
        },
        **extra,
    }


@pytest.fixture
def member_records() -> list[dict[str, Any]]:
    """Members around the viewer, plus two that cannot be placed."""
    return [
        member_record("u1", "Asha Verma", [75.8577, 22.7196], rating=4.5, booksOwnedCount=12),
        member_record("u2", "Ravi Kumar", [75.8577, 22.7646], rating=3.0),
        member_record("u3", "Meera Joshi", [75.8577, 22.7376]),
        member_record("u4", "Kabir Shah", [77.4126, 23.2599], rating=5.0),
        member_record("u5", "No Location", None, rating=4.0),
        {"name": "Missing Id", "location": {"coordinates": [75.86, 22.72]}},
    ]


@pytest.fixture
def event_records() -> list[dict[str, Any]]:
    """One event a few hundred meters from the viewer."""
    return [
        event_record(
            "e1",
            "Book Swap Meetup",
            [75.8600, 22.7200],
            capacity=20,
            currentRegistrations=5,
            organizer={"_id": "u1", "name": "Asha Verma"},
        )
    ]


@pytest.fixture
def sample_records(
    member_records: list[dict[str, Any]], event_records: list[dict[str, Any]]
) -> list[dict[str, Any]]:
    """Full raw feed: members followed by events."""
    return [{**r, "kind": "member"} for r in member_records] + [
        {**r, "kind": "event"} for r in event_records
    ]


@pytest.fixture
def markers_file(
    tmp_path: Path,
    member_records: list[dict[str, Any]],
    event_records: list[dict[str, Any]],
) -> Path:
    """JSON file in the offline ``users`` + ``events`` layout."""
    path = tmp_path / "markers.json"
    path.write_text(json.dumps({"users": member_records, "events": event_records}))
    return path


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's own configuration out of the tests."""
    for key in (
        "COMMUNITY_MAP_CONFIG",
        "COMMUNITY_MAP_API_URL",
        "COMMUNITY_MAP_API_TOKEN",
        "COMMUNITY_MAP_VIEWER_LAT",
        "COMMUNITY_MAP_VIEWER_LON",
    ):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture(autouse=True)
def reset_logging() -> Iterator[None]:
    """Drop handlers the CLI attached to streams of a finished run."""
    yield
    logging.getLogger("community_map").handlers.clear()


@pytest.fixture
def cli_runner() -> CliRunner:
    """Click test runner."""
    return CliRunner()


@pytest.fixture
def cli_env(tmp_path: Path) -> dict[str, str]:
    """Environment pointing the CLI at a config file that does not exist."""
    return {"COMMUNITY_MAP_CONFIG": str(tmp_path / "missing-config.toml")}
