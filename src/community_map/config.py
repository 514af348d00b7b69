"""Configuration management for community-map.

Handles loading configuration from TOML files, environment variables,
and command-line options with proper precedence.
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from community_map.lib.geo import Coordinate
from community_map.services.clustering import ClusterSettings
from community_map.services.proximity import FilterCriteria

logger = logging.getLogger("community_map.config")

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "community-map" / "config.toml"
LOCAL_CONFIG_NAME = ".community-map.toml"
DEFAULT_API_URL = "http://localhost:5000/api"


@dataclass
class ApiConfig:
    """Community REST API configuration."""

    base_url: str = DEFAULT_API_URL
    token: str = ""
    timeout: float = 30.0


@dataclass
class ViewerConfig:
    """Fallback viewer identity and position."""

    id: str = ""
    latitude: float | None = None
    longitude: float | None = None

    @property
    def coordinate(self) -> Coordinate | None:
        if self.latitude is None or self.longitude is None:
            return None
        coord = Coordinate(latitude=self.latitude, longitude=self.longitude)
        return coord if coord.is_valid() else None


@dataclass
class FiltersConfig:
    """Default sidebar filters."""

    max_distance_km: float = 0.0
    min_rating: float = 0.0

    def criteria(self, search_text: str = "") -> FilterCriteria:
        return FilterCriteria(
            max_distance_km=self.max_distance_km,
            min_rating=self.min_rating,
            search_text=search_text,
        )


@dataclass
class ClusteringConfig:
    """Marker clustering configuration."""

    max_cluster_radius_px: float = 50.0
    disable_clustering_at_zoom: int = 15
    max_zoom: int = 18
    spiderfy_distance_multiplier: float = 1.0

    def settings(self) -> ClusterSettings:
        return ClusterSettings(
            max_cluster_radius_px=self.max_cluster_radius_px,
            disable_clustering_at_zoom=self.disable_clustering_at_zoom,
            max_zoom=self.max_zoom,
            spiderfy_distance_multiplier=self.spiderfy_distance_multiplier,
        )


@dataclass
class PrivacyConfig:
    """Location privacy configuration."""

    offset_members: bool = False


@dataclass
class Config:
    """Main configuration container."""

    api: ApiConfig = field(default_factory=ApiConfig)
    viewer: ViewerConfig = field(default_factory=ViewerConfig)
    filters: FiltersConfig = field(default_factory=FiltersConfig)
    clustering: ClusteringConfig = field(default_factory=ClusteringConfig)
    privacy: PrivacyConfig = field(default_factory=PrivacyConfig)
    config_path: Path | None = None


def _get_env_value(key: str, default: str = "") -> str:
    """Get environment variable value."""
    return os.environ.get(key, default)


def _get_env_float(key: str) -> float | None:
    """Get environment variable as float, ignoring malformed values."""
    value = os.environ.get(key, "")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        logger.warning("Ignoring %s=%r: not a number", key, value)
        return None


def load_config(config_path: Path | None = None) -> Config:
    """Load configuration from file and environment variables.

    Configuration is loaded with the following precedence (highest to lowest):
    1. Environment variables
    2. Configuration file
    3. Default values

    Args:
        config_path: Path to configuration file. If None, uses a local
            .community-map.toml if present, else the default location.

    Returns:
        Populated Config object.
    """
    config = Config()

    # Determine config path
    if config_path is None:
        env_config = _get_env_value("COMMUNITY_MAP_CONFIG")
        if env_config:
            config_path = Path(env_config)
        elif Path(LOCAL_CONFIG_NAME).exists():
            config_path = Path(LOCAL_CONFIG_NAME)
        else:
            config_path = DEFAULT_CONFIG_PATH

    config.config_path = config_path

    # Load from file if exists
    if config_path.exists():
        config = _load_from_file(config_path, config)

    # Override with environment variables
    config = _apply_env_overrides(config)

    return config


def _load_from_file(path: Path, config: Config) -> Config:
    """Load configuration from TOML file.

    Args:
        path: Path to TOML file.
        config: Existing config to update.

    Returns:
        Updated Config object.
    """
    with open(path, "rb") as f:
        data: dict[str, Any] = tomllib.load(f)

    # API section
    if "api" in data:
        api = data["api"]
        config.api.base_url = api.get("base_url", config.api.base_url)
        config.api.token = api.get("token", config.api.token)
        config.api.timeout = float(api.get("timeout", config.api.timeout))

    # Viewer section
    if "viewer" in data:
        viewer = data["viewer"]
        config.viewer.id = str(viewer.get("id", config.viewer.id))
        if "latitude" in viewer:
            config.viewer.latitude = float(viewer["latitude"])
        if "longitude" in viewer:
            config.viewer.longitude = float(viewer["longitude"])

    # Filters section
    if "filters" in data:
        filters = data["filters"]
        config.filters.max_distance_km = float(
            filters.get("max_distance_km", config.filters.max_distance_km)
        )
        config.filters.min_rating = float(filters.get("min_rating", config.filters.min_rating))

    # Clustering section
    if "clustering" in data:
        cl = data["clustering"]
        config.clustering.max_cluster_radius_px = float(
            cl.get("max_cluster_radius_px", config.clustering.max_cluster_radius_px)
        )
        config.clustering.disable_clustering_at_zoom = int(
            cl.get("disable_clustering_at_zoom", config.clustering.disable_clustering_at_zoom)
        )
        config.clustering.max_zoom = int(cl.get("max_zoom", config.clustering.max_zoom))
        config.clustering.spiderfy_distance_multiplier = float(
            cl.get("spiderfy_distance_multiplier", config.clustering.spiderfy_distance_multiplier)
        )

    # Privacy section
    if "privacy" in data:
        config.privacy.offset_members = bool(
            data["privacy"].get("offset_members", config.privacy.offset_members)
        )

    return config


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to configuration.

    Args:
        config: Config to update.

    Returns:
        Updated Config object.
    """
    # API environment variables
    if api_url := _get_env_value("COMMUNITY_MAP_API_URL"):
        config.api.base_url = api_url
    if api_token := _get_env_value("COMMUNITY_MAP_API_TOKEN"):
        config.api.token = api_token

    # Viewer position
    if (lat := _get_env_float("COMMUNITY_MAP_VIEWER_LAT")) is not None:
        config.viewer.latitude = lat
    if (lon := _get_env_float("COMMUNITY_MAP_VIEWER_LON")) is not None:
        config.viewer.longitude = lon

    return config
