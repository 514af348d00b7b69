"""Unit tests for marker selection and search."""

from __future__ import annotations

import pytest

from community_map.lib.geo import Coordinate
from community_map.models.marker import EventMarker, Marker, MemberMarker
from community_map.services.selection import SelectionStateManager, search_matches

HERE = Coordinate(latitude=22.72, longitude=75.86)


@pytest.fixture
def markers() -> list[Marker]:
    return [
        MemberMarker(id="u1", name="Asha Verma", coordinate=HERE),
        MemberMarker(id="u2", name="Ravi Kumar", coordinate=HERE),
        MemberMarker(id="u3", name="Lost Location", coordinate=None),
        EventMarker(id="e1", title="Ravi's Reading Circle", coordinate=HERE),
    ]


@pytest.mark.ai_generated
class TestSearch:
    """Tests for name search."""

    def test_case_insensitive_substring(self, markers: list[Marker]) -> None:
        """Test that search ignores case and matches inside names."""
        assert [m.id for m in search_matches(markers, "RAVI")] == ["u2", "e1"]
        assert [m.id for m in search_matches(markers, "verm")] == ["u1"]

    def test_empty_search_matches_everything(self, markers: list[Marker]) -> None:
        """Test that an empty search does not filter."""
        assert search_matches(markers, "") == markers

    def test_no_match(self, markers: list[Marker]) -> None:
        """Test a search nobody matches."""
        assert search_matches(markers, "zzz") == []


@pytest.mark.ai_generated
class TestSelectionStateManager:
    """Tests for the selection set."""

    def test_toggle_twice_restores_state(self) -> None:
        """Test that toggling twice is a no-op."""
        selection = SelectionStateManager()
        selection.select_all([MemberMarker(id="u1", name="A", coordinate=HERE)])
        before = selection.selected_ids

        assert selection.toggle("u1") is False
        assert selection.toggle("u1") is True
        assert selection.selected_ids == before

    def test_toggle_unknown_id(self) -> None:
        """Test that ids outside the feed can be toggled harmlessly."""
        selection = SelectionStateManager()
        assert selection.toggle("ghost") is True
        assert selection.is_selected("ghost")

    def test_select_all_replaces_selection(self, markers: list[Marker]) -> None:
        """Test that a fresh snapshot reselects every marker."""
        selection = SelectionStateManager()
        selection.toggle("old")
        selection.select_all(markers)
        assert selection.selected_ids == {"u1", "u2", "u3", "e1"}

    def test_clear(self, markers: list[Marker]) -> None:
        """Test that clear deselects everything."""
        selection = SelectionStateManager()
        selection.select_all(markers)
        selection.clear()
        assert selection.selected_ids == frozenset()

    def test_visible_set(self, markers: list[Marker]) -> None:
        """Test selected, matching and positioned markers only."""
        selection = SelectionStateManager()
        selection.select_all(markers)
        selection.toggle("e1")

        assert [m.id for m in selection.visible_set(markers, "")] == ["u1", "u2"]
        assert [m.id for m in selection.visible_set(markers, "ravi")] == ["u2"]

    def test_visible_set_is_subset(self, markers: list[Marker]) -> None:
        """Test that the render set only holds selected, searched markers."""
        selection = SelectionStateManager()
        selection.toggle("u2")
        selection.toggle("u3")

        visible = selection.visible_set(markers, "a")
        assert all(selection.is_selected(m.id) for m in visible)
        assert all(m in search_matches(markers, "a") for m in visible)
        assert [m.id for m in visible] == ["u2"]
