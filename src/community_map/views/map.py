"""Map visualization for community-map.

Renders a session frame as a standalone Leaflet page: per-zoom clusters
as count badges, members as avatar pins with a profile card, events as
calendar pins, spiderfied markers with legs back to their true position.
"""

from __future__ import annotations

import html
import http.server
import json
import socketserver
from pathlib import Path
from typing import Any

from community_map.lib.geo import format_distance
from community_map.models.marker import EventMarker, Marker, MemberMarker
from community_map.models.popup import CameraTarget, PopupOpen
from community_map.services.clustering import Cluster
from community_map.services.session import RenderFrame

# Badge size classes used by leaflet.markercluster's default stylesheet.
SMALL_CLUSTER = 10
MEDIUM_CLUSTER = 100


def _script_json(value: Any) -> str:
    # "</" would end the surrounding script element.
    return json.dumps(value).replace("</", "<\\/")


def _cluster_size_class(count: int) -> str:
    if count < SMALL_CLUSTER:
        return "marker-cluster-small"
    if count < MEDIUM_CLUSTER:
        return "marker-cluster-medium"
    return "marker-cluster-large"


def _member_card(member: MemberMarker, distance_km: float | None) -> str:
    rating = f"{member.rating:.1f}" if member.rating is not None else "N/A"
    status = '<span class="online-badge">Online</span>' if member.is_online else ""
    verified = " &#10003;" if member.is_verified else ""
    return (
        '<div class="popup-card">'
        f'<img class="avatar" src="{html.escape(member.display_avatar)}" alt="{html.escape(member.name)}">'
        f"<h2>{html.escape(member.name)}{verified}</h2>"
        f"<p>Community Member {status}</p>"
        '<div class="stats">'
        f"<span><strong>{member.books_owned_count}</strong> Books</span>"
        f"<span><strong>{rating}</strong> Rating</span>"
        "</div>"
        f'<p class="distance">{html.escape(format_distance(distance_km))}</p>'
        f'<a class="profile-btn" href="/profile/{html.escape(member.id)}">View Profile</a>'
        "</div>"
    )


def _event_card(event: EventMarker, distance_km: float | None) -> str:
    when = event.start_at.strftime("%Y-%m-%d %H:%M") if event.start_at else "Date TBA"
    if event.spots_left is None:
        spots = "Unlimited spots"
    elif event.is_full:
        spots = "Fully booked"
    else:
        spots = f"{event.spots_left} spots left"
    badges = ""
    if event.viewer_is_organizer:
        badges += '<span class="badge">Organizer</span>'
    if event.viewer_is_registered:
        badges += '<span class="badge">Registered</span>'
    return (
        '<div class="popup-card">'
        f"<h2>{html.escape(event.title)}</h2>"
        f"<p>{html.escape(event.event_type.replace('-', ' ').title())} &middot; {when}</p>"
        f"<p>{html.escape(event.venue or event.address)}</p>"
        f'<div class="stats"><span>{spots}</span></div>'
        f'<p class="distance">{html.escape(format_distance(distance_km))}</p>'
        f"{badges}"
        f'<a class="profile-btn" href="/events/{html.escape(event.id)}">View Event</a>'
        "</div>"
    )


def _popup_html(marker: Marker, distances: dict[str, float]) -> str:
    distance = distances.get(marker.id)
    if isinstance(marker, EventMarker):
        return _event_card(marker, distance)
    return _member_card(marker, distance)


def _marker_json(marker: Marker, distances: dict[str, float]) -> dict[str, Any]:
    return {
        "kind": marker.kind,
        "label": marker.label,
        "avatar": html.escape(marker.display_avatar) if isinstance(marker, MemberMarker) else "",
        "online": isinstance(marker, MemberMarker) and marker.is_online,
        "popup": _popup_html(marker, distances),
    }


def _cluster_json(cluster: Cluster) -> dict[str, Any]:
    position = cluster.display_coordinate
    data: dict[str, Any] = {
        "position": [position.latitude, position.longitude],
        "count": cluster.size,
    }
    if cluster.is_singleton:
        data["id"] = cluster.members[0].id
        if cluster.spiderfied:
            data["anchor"] = [cluster.centroid.latitude, cluster.centroid.longitude]
    else:
        bounds = cluster.bounds()
        data.update(
            {
                "size_class": _cluster_size_class(cluster.size),
                "bounds": [[bounds.south, bounds.west], [bounds.north, bounds.east]],
            }
        )
    return data


def generate_map_html(
    frame: RenderFrame,
    camera: CameraTarget,
    title: str = "Community Map",
    levels: dict[int, list[Cluster]] | None = None,
) -> str:
    """Generate HTML for one rendered frame.

    Marker details are embedded once; clusters are embedded per zoom level
    and the page swaps them as the viewer zooms, so clicking a badge zooms
    in far enough to split it.

    Args:
        frame: Session frame; its clusters are used for the frame's zoom.
        camera: Initial map view; the popup recenter target wins if set.
        title: Page title.
        levels: Clusters per zoom level (see ``MapSession.cluster_levels``).
            Without it the page only knows the frame's own zoom.

    Returns:
        HTML content as string.
    """
    distances = {e.id: e.distance_from_viewer_km for e in frame.entries}
    markers_json = {e.id: _marker_json(e.marker, distances) for e in frame.entries}

    by_zoom = dict(levels or {})
    by_zoom[frame.zoom] = frame.clusters
    levels_json = {
        str(zoom): [_cluster_json(c) for c in clusters]
        for zoom, clusters in sorted(by_zoom.items())
    }

    view = frame.recenter or camera
    center = [view.coordinate.latitude, view.coordinate.longitude]
    open_id = frame.popup.marker_id if isinstance(frame.popup, PopupOpen) else None

    if frame.location_status.value == "unavailable":
        notice = "Please set your location in your profile to see nearby users and use distance filtering."
    elif not frame.entries:
        notice = "No users found within your selected distance and rating criteria. Try adjusting your filters."
    else:
        notice = ""

    info_html = f"<b>Community</b><br>{len(frame.entries)} on map<br>{frame.online_count} online"
    if notice:
        info_html += f"<br><small>{html.escape(notice)}</small>"

    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{html.escape(title)}</title>
    <link rel="stylesheet" href="https://unpkg.com/leaflet@1.9.4/dist/leaflet.css">
    <link rel="stylesheet" href="https://unpkg.com/leaflet.markercluster@1.4.1/dist/MarkerCluster.Default.css">
    <style>
        body {{ margin: 0; padding: 0; font-family: 'Inter', Arial, sans-serif; }}
        #map {{ position: absolute; top: 0; bottom: 0; width: 100%; }}
        .info {{
            padding: 6px 8px;
            font: 14px/16px Arial, Helvetica, sans-serif;
            background: rgba(255,255,255,0.9);
            box-shadow: 0 0 15px rgba(0,0,0,0.2);
            border-radius: 5px;
        }}
        .member-pin {{
            border-radius: 50%;
            padding: 3px;
            background: white;
            box-shadow: 0 2px 5px rgba(0,0,0,0.2);
        }}
        .member-pin img {{ width: 40px; height: 40px; border-radius: 50%; object-fit: cover; }}
        .member-pin.online {{ box-shadow: 0 0 0 3px #22c55e; }}
        .event-pin {{
            width: 34px; height: 34px; border-radius: 8px;
            background: #4F46E5; color: white; font-weight: bold;
            display: flex; align-items: center; justify-content: center;
            border: 2px solid white; box-shadow: 0 2px 5px rgba(0,0,0,0.3);
        }}
        .popup-card {{ width: 240px; text-align: center; }}
        .popup-card .avatar {{ width: 90px; height: 90px; border-radius: 50%; object-fit: cover; }}
        .popup-card h2 {{ font-size: 1.25rem; margin: 0.5rem 0 0; }}
        .popup-card p {{ color: #6b7280; margin: 0.25rem 0; }}
        .popup-card .stats {{ display: flex; justify-content: center; gap: 1rem; padding: 0.75rem; background: #f8fafc; border-radius: 0.75rem; }}
        .popup-card .profile-btn {{ display: block; margin-top: 0.75rem; padding: 0.5rem; background: #111827; color: white; border-radius: 0.5rem; text-decoration: none; }}
        .online-badge, .badge {{ font-size: 11px; background: #dcfce7; color: #166534; border-radius: 4px; padding: 1px 4px; margin: 0 2px; }}
    </style>
</head>
<body>
    <div id="map"></div>
    <script src="https://unpkg.com/leaflet@1.9.4/dist/leaflet.js"></script>
    <script>
        var map = L.map('map').setView({json.dumps(center)}, {view.zoom});

        L.tileLayer('https://tile.openstreetmap.org/{{z}}/{{x}}/{{y}}.png', {{
            maxZoom: 19,
            attribution: '&copy; <a href="https://www.openstreetmap.org/copyright">OpenStreetMap</a> contributors'
        }}).addTo(map);

        var markers = {_script_json(markers_json)};
        var levels = {_script_json(levels_json)};
        var zooms = Object.keys(levels).map(Number).sort(function(a, b) {{ return a - b; }});
        var openId = {_script_json(open_id)};
        var layer = L.layerGroup().addTo(map);
        var redrawing = false;

        function levelFor(zoom) {{
            var best = zooms[0];
            zooms.forEach(function(z) {{ if (z <= zoom) {{ best = z; }} }});
            return levels[best];
        }}

        function badge(c) {{
            var marker = L.marker(c.position, {{
                icon: L.divIcon({{
                    html: '<div><span>' + c.count + '</span></div>',
                    className: 'marker-cluster ' + c.size_class,
                    iconSize: [40, 40]
                }})
            }});
            marker.on('click', function() {{
                var bounds = L.latLngBounds(c.bounds);
                var zoom = Math.max(map.getBoundsZoom(bounds), map.getZoom() + 1);
                map.setView(bounds.getCenter(), Math.min(zoom, map.getMaxZoom()));
            }});
            return marker;
        }}

        function pin(c) {{
            var m = markers[c.id];
            var icon = m.kind === 'event'
                ? L.divIcon({{ html: '<div class="event-pin">&#128197;</div>', className: '', iconSize: [34, 34], iconAnchor: [17, 34], popupAnchor: [0, -36] }})
                : L.divIcon({{ html: '<div class="member-pin' + (m.online ? ' online' : '') + '"><img src="' + m.avatar + '"></div>', className: '', iconSize: [46, 46], iconAnchor: [23, 46], popupAnchor: [0, -48] }});
            var marker = L.marker(c.position, {{ icon: icon, title: m.label }});
            marker.bindPopup(m.popup, {{ maxWidth: 280 }});
            marker.on('popupopen', function() {{ openId = c.id; }});
            marker.on('popupclose', function() {{ if (!redrawing) {{ openId = null; }} }});
            return marker;
        }}

        function draw() {{
            redrawing = true;
            layer.clearLayers();
            redrawing = false;
            var toOpen = null;
            levelFor(map.getZoom()).forEach(function(c) {{
                if (c.count > 1) {{
                    layer.addLayer(badge(c));
                    return;
                }}
                var marker = pin(c);
                if (c.anchor) {{
                    layer.addLayer(L.polyline([c.anchor, c.position], {{ color: '#222', weight: 1.5, opacity: 0.5 }}));
                }}
                layer.addLayer(marker);
                if (openId && c.id === openId) {{ toOpen = marker; }}
            }});
            if (toOpen) {{ toOpen.openPopup(); }}
        }}

        map.on('zoomend', draw);
        draw();

        document.addEventListener('keydown', function(e) {{
            if (e.key === 'Escape') {{ map.closePopup(); }}
        }});

        var info = L.control({{position: 'topright'}});
        info.onAdd = function(map) {{
            var div = L.DomUtil.create('div', 'info');
            div.innerHTML = {_script_json(info_html)};
            return div;
        }};
        info.addTo(map);
    </script>
</body>
</html>"""


def serve_map(
    html_path: Path,
    port: int = 8080,
    host: str = "127.0.0.1",
) -> None:
    """Start a local HTTP server to serve the map.

    Args:
        html_path: Path to the HTML file.
        port: Server port.
        host: Server host.
    """
    # Change to directory containing the HTML file
    directory = html_path.parent

    class Handler(http.server.SimpleHTTPRequestHandler):
        def __init__(self, *args: Any, **kwargs: Any) -> None:
            super().__init__(*args, directory=str(directory), **kwargs)

        def log_message(self, format: str, *args: object) -> None:
            pass  # Suppress logging

    # Allow port reuse to avoid "Address already in use" errors
    socketserver.TCPServer.allow_reuse_address = True

    with socketserver.TCPServer((host, port), Handler) as httpd:
        url = f"http://{host}:{port}/{html_path.name}"
        print(f"Serving at {url}")
        print("Press Ctrl+C to stop")

        try:
            httpd.serve_forever()
        except KeyboardInterrupt:
            print("\nServer stopped")
