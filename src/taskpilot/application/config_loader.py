"""
Config Loader
=============

Loads YAML configuration profiles for the automation engine.

Responsibilities:
- Load ``{config_dir}/{profile}.yaml``
- Validate the profile against the Pydantic engine schema
- Fall back to schema defaults when no profile exists
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import structlog
import yaml

from taskpilot.core.domain.config_schema import (
    ConfigValidationError,
    EngineConfigSchema,
    validate_engine_config,
)
from taskpilot.core.domain.errors import ConfigError

logger = structlog.get_logger(__name__)

DEFAULT_CONFIG_DIR = Path("configs")
DEFAULT_PROFILE = "dev"


class ConfigLoader:
    """Load and validate engine configuration profiles.

    Args:
        config_dir: Directory containing profile YAML files.
    """

    def __init__(self, config_dir: Path = DEFAULT_CONFIG_DIR) -> None:
        self._config_dir = Path(config_dir)
        self._logger = logger.bind(component="config_loader")

    @property
    def config_dir(self) -> Path:
        return self._config_dir

    def profile_path(self, profile: str) -> Path:
        return self._config_dir / f"{profile}.yaml"

    def load_raw(self, profile: str) -> dict[str, Any]:
        """Read a profile without validating it.

        Raises:
            FileNotFoundError: If the profile file does not exist.
            ConfigError: If the file is not a YAML mapping.
        """
        path = self.profile_path(profile)
        if not path.exists():
            raise FileNotFoundError(f"Profile not found: {path}")

        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigError(
                f"Profile {path} is not valid YAML: {exc}", details={"path": str(path)}
            ) from exc

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(
                f"Profile {path} must contain a mapping, got {type(data).__name__}",
                details={"path": str(path)},
            )
        return data

    def load(self, profile: str = DEFAULT_PROFILE) -> EngineConfigSchema:
        """Load and validate a profile.

        Raises:
            FileNotFoundError: If the profile file does not exist.
            ConfigError: If the profile cannot be read or fails validation.
        """
        path = self.profile_path(profile)
        data = self.load_raw(profile)
        try:
            config = validate_engine_config(data, file_path=path)
        except ConfigValidationError as exc:
            raise ConfigError(str(exc), details={"path": str(path)}) from exc

        self._logger.debug("profile_loaded", profile=profile, path=str(path))
        return config

    def load_safe(self, profile: str = DEFAULT_PROFILE) -> EngineConfigSchema:
        """Load a profile, falling back to defaults when it does not exist.

        Invalid profiles still raise :class:`ConfigError`.
        """
        try:
            return self.load(profile)
        except FileNotFoundError:
            self._logger.debug(
                "profile_not_found_using_defaults",
                profile=profile,
                config_dir=str(self._config_dir),
            )
            return EngineConfigSchema()
