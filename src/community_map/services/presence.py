"""Online status overlay for community-map.

Liveness comes from the chat server's ``presence:update`` broadcasts. The
map only reads it; it never owns marker data.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable
from typing import Protocol

from community_map.models.marker import Marker, MemberMarker


class OnlineStatusOverlay(Protocol):
    """Read-only view of which members are online."""

    def is_online(self, member_id: str) -> bool: ...

    def online_count(self) -> int: ...


class PresenceSnapshot:
    """Online members as of the last presence broadcast."""

    def __init__(self, online_ids: Iterable[str] = ()) -> None:
        self._online = frozenset(str(i) for i in online_ids)

    def is_online(self, member_id: str) -> bool:
        return member_id in self._online

    def online_count(self) -> int:
        return len(self._online)

    @property
    def online_ids(self) -> frozenset[str]:
        return self._online


class NoPresence:
    """Overlay used when no presence feed is connected."""

    def is_online(self, member_id: str) -> bool:
        return False

    def online_count(self) -> int:
        return 0


def with_presence(marker: Marker, overlay: OnlineStatusOverlay) -> Marker:
    """Copy of ``marker`` with ``is_online`` taken from the overlay.

    Events are returned unchanged.
    """
    if not isinstance(marker, MemberMarker):
        return marker
    online = overlay.is_online(marker.id)
    if online == marker.is_online:
        return marker
    return dataclasses.replace(marker, is_online=online)
