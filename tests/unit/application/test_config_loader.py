"""Tests for ConfigLoader."""

from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

from taskpilot.application.config_loader import ConfigLoader
from taskpilot.core.domain.config_schema import EngineConfigSchema
from taskpilot.core.domain.errors import ConfigError


@pytest.fixture
def config_dir(tmp_path: Path) -> Path:
    (tmp_path / "dev.yaml").write_text(
        "max_cascade_depth: 3\n"
        "tick_interval_seconds: 30\n"
        "timezone: Europe/Berlin\n"
        "logging:\n"
        "  level: debug\n",
        encoding="utf-8",
    )
    return tmp_path


class TestConfigLoader:
    def test_load_profile(self, config_dir: Path) -> None:
        config = ConfigLoader(config_dir).load("dev")

        assert config.max_cascade_depth == 3
        assert config.tick_interval_seconds == 30
        assert config.min_interval_minutes == 5
        assert config.logging.level == "DEBUG"
        assert config.tzinfo == ZoneInfo("Europe/Berlin")

    def test_missing_profile_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            ConfigLoader(tmp_path).load("prod")

    def test_load_safe_falls_back_to_defaults(self, tmp_path: Path) -> None:
        config = ConfigLoader(tmp_path).load_safe("prod")
        assert config == EngineConfigSchema()

    def test_empty_profile_uses_defaults(self, tmp_path: Path) -> None:
        (tmp_path / "empty.yaml").write_text("", encoding="utf-8")
        assert ConfigLoader(tmp_path).load("empty").max_cascade_depth == 5

    def test_unknown_key_rejected(self, tmp_path: Path) -> None:
        (tmp_path / "bad.yaml").write_text("max_depth: 3\n", encoding="utf-8")
        with pytest.raises(ConfigError) as exc_info:
            ConfigLoader(tmp_path).load("bad")
        assert "max_depth" in exc_info.value.message

    def test_out_of_range_value_rejected(self, tmp_path: Path) -> None:
        (tmp_path / "bad.yaml").write_text("max_cascade_depth: 0\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            ConfigLoader(tmp_path).load_safe("bad")

    def test_unknown_timezone_rejected(self, tmp_path: Path) -> None:
        (tmp_path / "bad.yaml").write_text("timezone: Mars/Olympus\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            ConfigLoader(tmp_path).load("bad")

    def test_non_mapping_rejected(self, tmp_path: Path) -> None:
        (tmp_path / "list.yaml").write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            ConfigLoader(tmp_path).load_raw("list")

    def test_invalid_yaml_rejected(self, tmp_path: Path) -> None:
        (tmp_path / "broken.yaml").write_text("key: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            ConfigLoader(tmp_path).load_raw("broken")

    def test_shipped_dev_profile_is_valid(self) -> None:
        config_dir = Path(__file__).parents[3] / "configs"
        config = ConfigLoader(config_dir).load("dev")
        assert config.max_cascade_depth == 5
