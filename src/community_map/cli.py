"""Command-line interface for community-map.

Provides CLI commands for listing nearby members and events, inspecting
marker clusters, and generating the interactive community map.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any, NoReturn

import click

from community_map import __version__
from community_map.config import DEFAULT_CONFIG_PATH, load_config
from community_map.lib.geo import Coordinate, format_distance
from community_map.lib.logging import setup_logging, verbosity_to_level

if TYPE_CHECKING:
    from community_map.config import Config
    from community_map.services.session import MapSession


class JSONOutput:
    """Helper for JSON output formatting."""

    def __init__(self, enabled: bool = False) -> None:
        self.enabled = enabled
        self._data: dict[str, Any] = {}

    def set(self, key: str, value: Any) -> None:
        """Set a value in the output."""
        self._data[key] = value

    def update(self, data: dict[str, Any]) -> None:
        """Update with multiple values."""
        self._data.update(data)

    def output(self) -> None:
        """Print JSON output if enabled."""
        if self.enabled:
            click.echo(json.dumps(self._data, indent=2, default=str))


# Custom context class to hold shared state
class Context:
    """CLI context holding shared configuration and state."""

    def __init__(self) -> None:
        self.config: Config | None = None
        self.verbose: int = 0
        self.quiet: bool = False
        self.json_output: bool = False
        self.output: JSONOutput = JSONOutput()

    def log(self, message: str, level: int = 0) -> None:
        """Log a message if verbosity allows.

        Args:
            message: Message to log.
            level: Required verbosity level (0=normal, 1=-v, 2=-vv).
        """
        if self.json_output:
            return
        if self.quiet and level == 0:
            return
        if level <= self.verbose or level == 0:
            click.echo(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        if self.json_output:
            self.output.set("error", message)
            self.output.set("status", "error")
        else:
            click.echo(f"Error: {message}", err=True)

    def fail(self, message: str) -> NoReturn:
        """Report an error and exit with status 1."""
        self.error(message)
        if self.json_output:
            self.output.output()
        sys.exit(1)


pass_context = click.make_pass_decorator(Context, ensure=True)


def marker_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options shared by every command that builds a map session."""
    options = [
        click.option(
            "--input",
            "-i",
            "input_path",
            type=click.Path(exists=True, dir_okay=False, path_type=Path),
            help="Read markers from a JSON file instead of the API",
        ),
        click.option("--lat", type=float, help="Viewer latitude"),
        click.option("--lon", type=float, help="Viewer longitude"),
        click.option(
            "--max-distance",
            type=float,
            help="Maximum distance in km (0 = no limit)",
        ),
        click.option(
            "--min-rating",
            type=float,
            help="Minimum member rating (0 = no limit)",
        ),
        click.option(
            "--search",
            default="",
            help="Only show markers whose name contains this text",
        ),
        click.option(
            "--no-events",
            is_flag=True,
            help="Leave organizer events off the map",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group()
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help=f"Configuration file path (default: {DEFAULT_CONFIG_PATH})",
)
@click.option(
    "--verbose",
    "-v",
    count=True,
    help="Increase verbosity (can be repeated: -v, -vv)",
)
@click.option(
    "--quiet",
    "-q",
    is_flag=True,
    help="Suppress non-error output",
)
@click.option(
    "--json",
    "json_output",
    is_flag=True,
    help="Output in JSON format",
)
@click.version_option(version=__version__, prog_name="community-map")
@pass_context
def main(
    ctx: Context,
    config_path: Path | None,
    verbose: int,
    quiet: bool,
    json_output: bool,
) -> None:
    """Community map proximity and clustering CLI.

    Find members and events near you, inspect how markers cluster at a
    zoom level, and render the community map.
    """
    ctx.verbose = verbose
    ctx.quiet = quiet
    ctx.json_output = json_output
    ctx.output = JSONOutput(json_output)

    console_level = verbosity_to_level(verbose)
    if json_output:
        # Warnings would interleave with the JSON document.
        console_level = logging.ERROR
    setup_logging(console_level=console_level, quiet=quiet)

    # Load configuration
    ctx.config = load_config(config_path)


def _build_session(
    ctx: Context,
    input_path: Path | None,
    lat: float | None,
    lon: float | None,
    max_distance: float | None,
    min_rating: float | None,
    search: str,
    no_events: bool,
    presence: Any = None,
) -> MapSession:
    """Load markers and viewer location into a fresh session.

    Exits through ``ctx.fail`` on unusable options or an unreachable API.
    """
    from community_map.models.marker import EVENT, record_kind
    from community_map.services.api import (
        ApiError,
        CommunityApiClient,
        load_markers_file,
        resolve_viewer_location,
    )
    from community_map.services.proximity import FilterCriteria
    from community_map.services.session import MapSession

    config = ctx.config
    if config is None:
        ctx.fail("Configuration not loaded")

    if (lat is None) != (lon is None):
        ctx.fail("--lat and --lon must be given together")

    try:
        criteria = FilterCriteria(
            max_distance_km=config.filters.max_distance_km if max_distance is None else max_distance,
            min_rating=config.filters.min_rating if min_rating is None else min_rating,
            search_text=search,
        )
        settings = config.clustering.settings()
    except ValueError as e:
        ctx.fail(str(e))

    viewer_id = config.viewer.id
    viewer: Coordinate | None = None
    if lat is not None and lon is not None:
        viewer = Coordinate(latitude=lat, longitude=lon)
        if not viewer.is_valid():
            ctx.fail(f"Invalid viewer location: {lat}, {lon}")
    else:
        viewer = config.viewer.coordinate

    try:
        if input_path is not None:
            records = load_markers_file(input_path)
            if no_events:
                records = [r for r in records if record_kind(r) != EVENT]
        else:
            client = CommunityApiClient(
                config.api.base_url, token=config.api.token, timeout=config.api.timeout
            )
            records = client.fetch_markers(include_events=not no_events)
            if viewer is None:
                viewer = resolve_viewer_location(client.viewer_location)
    except ApiError as e:
        ctx.fail(f"Could not fetch markers: {e}")
    except (OSError, ValueError) as e:
        ctx.fail(f"Could not read {input_path}: {e}")

    session = MapSession(
        viewer=viewer,
        viewer_id=viewer_id or None,
        criteria=criteria,
        cluster_settings=settings,
        presence=presence,
        privacy_offsets=config.privacy.offset_members,
    )
    session.load_snapshot(records)
    ctx.log(f"Loaded {len(records)} marker records", level=1)
    return session


@main.command()
@marker_options
@pass_context
def nearby(
    ctx: Context,
    input_path: Path | None,
    lat: float | None,
    lon: float | None,
    max_distance: float | None,
    min_rating: float | None,
    search: str,
    no_events: bool,
) -> None:
    """List members and events sorted by distance."""
    from community_map.services.session import LocationStatus

    session = _build_session(
        ctx, input_path, lat, lon, max_distance, min_rating, search, no_events
    )
    entries = session.sidebar_entries()

    if ctx.json_output:
        ctx.output.update({
            "status": "success",
            "location_status": session.location_status.value,
            "filters": session.criteria.describe(),
            "count": len(entries),
            "markers": [
                {**e.to_dict(), "distance_text": format_distance(e.distance_from_viewer_km)}
                for e in entries
            ],
        })
        ctx.output.output()
        return

    if session.location_status is LocationStatus.UNAVAILABLE:
        click.echo("Location unavailable: set --lat/--lon or a profile location.")
        return

    if not entries:
        click.echo("No members or events match the current filters.")
        return

    click.echo(session.criteria.describe())
    click.echo(f"{len(entries)} nearby:")
    for entry in entries:
        rating = entry.marker.rating
        rating_text = f"{rating:.1f}" if rating is not None else "N/A"
        click.echo(
            f"  {entry.label:<30} {entry.kind:<7} "
            f"{format_distance(entry.distance_from_viewer_km):<14} rating {rating_text}"
        )


@main.command()
@marker_options
@click.option(
    "--zoom",
    "-z",
    type=int,
    default=None,
    help="Map zoom level (default: zoom that fits all markers)",
)
@pass_context
def clusters(
    ctx: Context,
    input_path: Path | None,
    lat: float | None,
    lon: float | None,
    max_distance: float | None,
    min_rating: float | None,
    search: str,
    no_events: bool,
    zoom: int | None,
) -> None:
    """Show how markers cluster at a zoom level."""
    session = _build_session(
        ctx, input_path, lat, lon, max_distance, min_rating, search, no_events
    )
    if zoom is None:
        zoom = session.initial_camera().zoom
    frame = session.render(zoom)

    if ctx.json_output:
        ctx.output.update({
            "status": "success",
            "zoom": frame.zoom,
            "marker_count": len(frame.entries),
            "clusters": [c.to_dict() for c in frame.clusters],
        })
        ctx.output.output()
        return

    click.echo(f"Zoom {frame.zoom}: {len(frame.clusters)} clusters, {len(frame.entries)} markers")
    for cluster in frame.clusters:
        position = cluster.display_coordinate
        suffix = " (spiderfied)" if cluster.spiderfied else ""
        click.echo(
            f"  [{cluster.size:>3}] {position.latitude:.5f}, {position.longitude:.5f}"
            f"  {', '.join(cluster.member_ids)}{suffix}"
        )


@main.command(name="map")
@marker_options
@click.option(
    "--zoom",
    "-z",
    type=int,
    default=None,
    help="Map zoom level (default: zoom that fits all markers)",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(path_type=Path),
    help="Output HTML file (default: stdout or ./map.html)",
)
@click.option(
    "--focus",
    help="Open the card of this member or event",
)
@click.option(
    "--online",
    multiple=True,
    help="Mark this member id as online (can be repeated)",
)
@click.option(
    "--serve",
    is_flag=True,
    help="Start local HTTP server to view map",
)
@click.option(
    "--port",
    default=8080,
    help="Server port (default: 8080)",
)
@pass_context
def map_cmd(
    ctx: Context,
    input_path: Path | None,
    lat: float | None,
    lon: float | None,
    max_distance: float | None,
    min_rating: float | None,
    search: str,
    no_events: bool,
    zoom: int | None,
    output: Path | None,
    focus: str | None,
    online: tuple[str, ...],
    serve: bool,
    port: int,
) -> None:
    """Generate interactive community map."""
    from community_map.models.popup import PopupOpen
    from community_map.services.presence import PresenceSnapshot
    from community_map.views.map import generate_map_html, serve_map

    session = _build_session(
        ctx,
        input_path,
        lat,
        lon,
        max_distance,
        min_rating,
        search,
        no_events,
        presence=PresenceSnapshot(online),
    )
    camera = session.initial_camera()
    if focus:
        state = session.request_focus(focus)
        if not isinstance(state, PopupOpen):
            ctx.log(f"Marker {focus} is not on the map")
    frame = session.render(zoom if zoom is not None else camera.zoom)

    try:
        html = generate_map_html(frame, camera, levels=session.cluster_levels())

        if serve:
            output_path = output or Path("./map.html")
            output_path.write_text(html, encoding="utf-8")
            ctx.log(f"Map saved to {output_path}")
            ctx.log(f"Starting server at http://127.0.0.1:{port}")
            serve_map(output_path, port=port)
        elif output:
            output.write_text(html, encoding="utf-8")
            ctx.log(f"Map saved to {output}")
        elif not ctx.json_output:
            click.echo(html)

    except OSError as e:
        ctx.fail(f"Map generation failed: {e}")

    if ctx.json_output:
        ctx.output.update({
            "status": "success",
            "output": str(output) if output else None,
            "frame": frame.to_dict(),
        })
        ctx.output.output()


if __name__ == "__main__":
    main()
