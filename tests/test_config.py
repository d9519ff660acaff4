"""Tests for configuration loading."""

from pathlib import Path

import pytest
import yaml

from vaultbets.common.config import AppConfig, SchedulerConfig, load_config


class TestLoadConfig:
    """Test configuration loading."""

    def test_load_valid_config(self, dev_config_path: Path):
        """Test loading a valid configuration file."""
        config = load_config(dev_config_path)

        assert isinstance(config, AppConfig)
        assert config.environment == "test"
        assert config.football_api.league_ids == [39]
        assert config.annotator.model == "test-model"
        assert config.scheduler.auto_start is False

    def test_load_minimal_config(self, temp_dir: Path):
        """Test loading a minimal configuration with defaults."""
        config_data = {"environment": "minimal"}
        config_path = temp_dir / "minimal.yaml"
        with open(config_path, "w") as f:
            yaml.dump(config_data, f)

        config = load_config(config_path)

        assert config.environment == "minimal"
        assert config.database.path == "data/vaultbets.db"
        assert config.logging.level == "INFO"
        assert config.scheduler.timezone == "Europe/London"
        assert config.pipeline.annotation_concurrency == 3

    def test_load_empty_config(self, temp_dir: Path):
        """Test loading an empty configuration file."""
        config_path = temp_dir / "empty.yaml"
        config_path.write_text("")

        config = load_config(config_path)

        assert config.environment == "dev"
        assert config.football_api.league_ids == [39, 40, 41, 42]

    def test_load_missing_config(self, temp_dir: Path):
        """Test loading a missing configuration file."""
        with pytest.raises(FileNotFoundError):
            load_config(temp_dir / "missing.yaml")

    def test_env_overrides(self, dev_config_path: Path, monkeypatch: pytest.MonkeyPatch):
        """Test environment variables override file values."""
        monkeypatch.setenv("FOOTBALL_API_KEY", "env_football")
        monkeypatch.setenv("ANNOTATOR_API_KEY", "env_annotator")
        monkeypatch.setenv("VAULTBETS_DB_PATH", "/tmp/override.db")
        monkeypatch.setenv("VAULTBETS_TIMEZONE", "Europe/Dublin")

        config = load_config(dev_config_path)

        assert config.football_api.api_key == "env_football"
        assert config.annotator.api_key == "env_annotator"
        assert config.database.path == "/tmp/override.db"
        assert config.scheduler.timezone == "Europe/Dublin"


class TestSchedulerConfig:
    """Test scheduler section validation."""

    def test_unknown_timezone_rejected(self):
        with pytest.raises(ValueError):
            SchedulerConfig(timezone="Mars/Olympus")

    def test_known_timezone_accepted(self):
        assert SchedulerConfig(timezone="America/New_York").timezone == "America/New_York"
