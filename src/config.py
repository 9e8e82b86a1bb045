"""
Configuration management for lptunes.
"""
import json
import os
from pathlib import Path
from dataclasses import dataclass, asdict, fields
from typing import Optional, Dict, Any, List

from logging_config import get_logger, ConfigurationError

logger = get_logger('config')

VALID_PLAYERS = ["auto", "mpg123", "ffplay"]
VALID_IMAGE_PROTOCOLS = ["auto", "iterm2", "kitty", "blocks", "none"]
VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


@dataclass
class AppConfig:
    """Application configuration settings."""

    # Library
    database_directory: str = ".database"

    # Audio settings
    audio_player: str = "auto"  # auto, mpg123, ffplay

    # Playback panel
    poll_interval_ms: int = 500
    jump_timeout_ms: int = 500
    panel_lines: int = 11
    cover_width: int = 20
    image_protocol: str = "auto"  # auto, iterm2, kitty, blocks, none
    use_colors: bool = True

    # Logging settings
    log_level: str = "INFO"
    log_file: Optional[str] = None


class ConfigManager:
    """Manages configuration loading, saving, and validation."""

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = config_path or self._get_default_config_path()
        self.config: AppConfig = AppConfig()
        self._load_config()

    def _get_default_config_path(self) -> Path:
        """Get default configuration file path."""
        xdg_config = os.environ.get("XDG_CONFIG_HOME")
        if xdg_config:
            return Path(xdg_config) / "lptunes" / "config.json"
        return Path.home() / ".config" / "lptunes" / "config.json"

    def _load_config(self) -> None:
        """Load configuration from file."""
        if not self.config_path.exists():
            logger.info(f"Config file not found at {self.config_path}, using defaults")
            self._create_default_config()
            return

        try:
            with open(self.config_path, 'r') as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.error(f"Failed to load config: {e}")
            logger.info("Using default configuration")
            return

        if not isinstance(data, dict):
            logger.error(f"Config root must be an object, got {type(data).__name__}")
            return
        self._apply_config_data(data)
        logger.info(f"Loaded configuration from {self.config_path}")

    def _create_default_config(self) -> None:
        """Create a default configuration file."""
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_path, 'w') as f:
                json.dump(asdict(self.config), f, indent=2)
            logger.info(f"Created default config at {self.config_path}")
        except IOError as e:
            logger.warning(f"Failed to create default config: {e}")

    def _apply_config_data(self, data: Dict[str, Any]) -> None:
        """Apply configuration data to AppConfig object."""
        known = {f.name for f in fields(AppConfig)}
        for key, value in data.items():
            if key in known:
                setattr(self.config, key, value)
            else:
                logger.warning(f"Ignoring unknown config key: {key}")

    def save_config(self) -> bool:
        """Save current configuration to file."""
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_path, 'w') as f:
                json.dump(asdict(self.config), f, indent=2)
            logger.info(f"Configuration saved to {self.config_path}")
            return True
        except IOError as e:
            logger.error(f"Failed to save configuration: {e}")
            return False

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value."""
        return getattr(self.config, key, default)

    def set(self, key: str, value: Any) -> None:
        """Set configuration value."""
        if hasattr(self.config, key):
            setattr(self.config, key, value)
            logger.debug(f"Config updated: {key} = {value}")

    def validate_config(self) -> List[str]:
        """Validate current configuration and return the issues found."""
        issues = []

        if self.config.audio_player not in VALID_PLAYERS:
            issues.append(f"Invalid audio player: {self.config.audio_player}")

        if self.config.image_protocol not in VALID_IMAGE_PROTOCOLS:
            issues.append(f"Invalid image protocol: {self.config.image_protocol}")

        if not (50 <= self.config.poll_interval_ms <= 5000):
            issues.append(f"Poll interval must be 50-5000 ms, got {self.config.poll_interval_ms}")

        if not (100 <= self.config.jump_timeout_ms <= 5000):
            issues.append(f"Jump timeout must be 100-5000 ms, got {self.config.jump_timeout_ms}")

        if not (4 <= self.config.cover_width <= 80):
            issues.append(f"Cover width must be 4-80, got {self.config.cover_width}")

        if str(self.config.log_level).upper() not in VALID_LOG_LEVELS:
            issues.append(f"Invalid log level: {self.config.log_level}")

        if issues:
            logger.warning(f"Configuration validation issues: {issues}")

        return issues

    def require_valid(self) -> None:
        """Raise ConfigurationError if validation finds any issue."""
        issues = self.validate_config()
        if issues:
            raise ConfigurationError(f"Invalid configuration in {self.config_path}: {'; '.join(issues)}")

    def reset_to_defaults(self) -> None:
        """Reset configuration to defaults."""
        self.config = AppConfig()
        logger.info("Configuration reset to defaults")

    def get_database_directory_path(self) -> Path:
        """Get the actual path to the database directory."""
        return Path(self.config.database_directory).expanduser()


def load_config(config_path: Optional[Path] = None) -> ConfigManager:
    """Load configuration and return manager."""
    return ConfigManager(config_path)
