"""Unit tests for configuration management."""

from __future__ import annotations

import tempfile
from pathlib import Path

import pytest

from community_map.config import DEFAULT_API_URL, Config, load_config
from community_map.lib.geo import Coordinate


@pytest.mark.ai_generated
class TestConfig:
    """Tests for configuration management."""

    def test_default_config(self) -> None:
        """Test default configuration values."""
        config = Config()

        assert config.api.base_url == DEFAULT_API_URL
        assert config.viewer.coordinate is None
        assert config.filters.criteria().distance_limited is False
        assert config.clustering.settings().max_cluster_radius_px == 50.0
        assert config.clustering.settings().disable_clustering_at_zoom == 15
        assert config.privacy.offset_members is False

    def test_load_config_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test loading configuration from environment variables."""
        monkeypatch.setenv("COMMUNITY_MAP_API_URL", "https://books.example.org/api")
        monkeypatch.setenv("COMMUNITY_MAP_API_TOKEN", "secret")
        monkeypatch.setenv("COMMUNITY_MAP_VIEWER_LAT", "22.7196")
        monkeypatch.setenv("COMMUNITY_MAP_VIEWER_LON", "75.8577")

        with tempfile.TemporaryDirectory() as tmpdir:
            config = load_config(Path(tmpdir) / "config.toml")

            assert config.api.base_url == "https://books.example.org/api"
            assert config.api.token == "secret"
            assert config.viewer.coordinate == Coordinate(latitude=22.7196, longitude=75.8577)

    def test_malformed_env_number_ignored(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        """Test that a non-numeric viewer position is ignored."""
        monkeypatch.setenv("COMMUNITY_MAP_VIEWER_LAT", "north")

        config = load_config(tmp_path / "config.toml")

        assert config.viewer.latitude is None

    def test_load_config_from_file(self, tmp_path: Path) -> None:
        """Test loading configuration from TOML file."""
        config_path = tmp_path / "config.toml"
        config_path.write_text("""
[api]
base_url = "https://file.example.org/api"
timeout = 5

[viewer]
id = "u1"
latitude = 22.7196
longitude = 75.8577

[filters]
max_distance_km = 25
min_rating = 3.5

[clustering]
max_cluster_radius_px = 80
disable_clustering_at_zoom = 16

[privacy]
offset_members = true
        """)

        config = load_config(config_path)

        assert config.api.base_url == "https://file.example.org/api"
        assert config.api.timeout == 5.0
        assert config.viewer.id == "u1"
        assert config.filters.criteria("asha").max_distance_km == 25.0
        assert config.filters.criteria("asha").search_text == "asha"
        assert config.clustering.settings().max_cluster_radius_px == 80.0
        assert config.clustering.settings().disable_clustering_at_zoom == 16
        assert config.privacy.offset_members is True

    def test_env_overrides_file(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        """Test that environment variables win over the file."""
        config_path = tmp_path / "config.toml"
        config_path.write_text('[api]\nbase_url = "https://file.example.org/api"\n')
        monkeypatch.setenv("COMMUNITY_MAP_API_URL", "https://env.example.org/api")

        config = load_config(config_path)

        assert config.api.base_url == "https://env.example.org/api"

    def test_load_config_from_local_file(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        """Test loading configuration from local .community-map.toml file."""
        local_config = tmp_path / ".community-map.toml"
        local_config.write_text('[viewer]\nid = "local"\n')

        monkeypatch.chdir(tmp_path)

        config = load_config()

        assert config.viewer.id == "local"
        assert config.config_path is not None
        assert config.config_path.name == ".community-map.toml"

    def test_config_path_from_env(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        """Test COMMUNITY_MAP_CONFIG selects the file."""
        config_path = tmp_path / "elsewhere.toml"
        config_path.write_text('[viewer]\nid = "from-env"\n')
        monkeypatch.setenv("COMMUNITY_MAP_CONFIG", str(config_path))

        assert load_config().viewer.id == "from-env"

    def test_out_of_range_viewer_has_no_coordinate(self) -> None:
        """Test that an impossible configured position is unusable."""
        config = Config()
        config.viewer.latitude = 120.0
        config.viewer.longitude = 75.0
        assert config.viewer.coordinate is None
