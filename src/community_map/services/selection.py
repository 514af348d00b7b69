"""Marker selection state for community-map.

Tracks which markers the viewer has toggled on in the sidebar. The
selection is advisory: ids that are no longer in the feed are ignored.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Protocol, TypeVar

from community_map.lib.geo import Coordinate, is_valid_coordinate


class _Selectable(Protocol):
    @property
    def id(self) -> str: ...

    @property
    def label(self) -> str: ...

    @property
    def coordinate(self) -> Coordinate | None: ...


T = TypeVar("T", bound=_Selectable)


def search_matches(markers: Iterable[T], search_text: str) -> list[T]:
    """Markers whose label contains ``search_text``, case-insensitively.

    Args:
        markers: Candidate markers.
        search_text: Substring to look for; empty matches everything.

    Returns:
        Matching markers in input order.
    """
    needle = search_text.lower()
    if not needle:
        return list(markers)
    return [m for m in markers if needle in m.label.lower()]


class SelectionStateManager:
    """Set of marker ids toggled on for display."""

    def __init__(self) -> None:
        self._selected: set[str] = set()

    @property
    def selected_ids(self) -> frozenset[str]:
        return frozenset(self._selected)

    def toggle(self, marker_id: str) -> bool:
        """Flip the selection of one marker.

        Args:
            marker_id: Marker to toggle.

        Returns:
            New selection state of the marker.
        """
        if marker_id in self._selected:
            self._selected.discard(marker_id)
            return False
        self._selected.add(marker_id)
        return True

    def is_selected(self, marker_id: str) -> bool:
        return marker_id in self._selected

    def select_all(self, markers: Iterable[_Selectable]) -> None:
        """Replace the selection with every marker of a fresh snapshot."""
        self._selected = {m.id for m in markers}

    def clear(self) -> None:
        self._selected.clear()

    def visible_set(self, all_markers: Sequence[T], search_text: str) -> list[T]:
        """Markers that are selected, match the search and have a position.

        Args:
            all_markers: Current marker collection.
            search_text: Sidebar search text.

        Returns:
            Render set in input order.
        """
        return [
            m
            for m in search_matches(all_markers, search_text)
            if m.id in self._selected and is_valid_coordinate(m.coordinate)
        ]
