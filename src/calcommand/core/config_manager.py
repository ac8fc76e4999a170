"""Configuration Management for CalCommand

Loads and validates the engine configuration. Supports hierarchical YAML files
(default, per-environment, local) with environment variable overrides.
"""

import os
import threading
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .error_handler import ConfigurationError
from .logging_manager import LoggingManager


DAYPART_NAMES = ("morning", "afternoon", "evening", "night", "tonight")


class DefaultsConfig(BaseModel):
    """Fallback values applied when an utterance leaves a field out."""
    calendar: str = Field(default="Calendar", min_length=1)
    reminder_list: str = Field(default="Reminders", min_length=1)
    notes_folder: str = Field(default="Notes", min_length=1)
    start_time: str = Field(default="09:00", pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    duration_minutes: int = Field(default=60, ge=1, le=24 * 60)
    event_title: str = Field(default="Event", min_length=1)
    reminder_title: str = Field(default="Reminder", min_length=1)
    note_title: str = Field(default="Note", min_length=1)


class TimeParsingConfig(BaseModel):
    """AM/PM inference policy."""
    ambiguous_hour_default: str = Field(default="pm", pattern="^(am|pm|reject)$")
    # Hours 1..ambiguous_hour_max without a suffix are ambiguous
    ambiguous_hour_max: int = Field(default=7, ge=0, le=11)
    daypart_bias: Dict[str, str] = Field(default_factory=lambda: {
        "tonight": "pm",
        "evening": "pm",
        "night": "pm",
        "afternoon": "pm",
        "morning": "am",
    })

    @field_validator('daypart_bias')
    @classmethod
    def validate_daypart_bias(cls, v):
        """Validate daypart names and meridiem values"""
        normalized = {}
        for daypart, meridiem in v.items():
            daypart = daypart.lower()
            meridiem = str(meridiem).lower()
            if daypart not in DAYPART_NAMES:
                raise ValueError(f"Unknown daypart '{daypart}'")
            if meridiem not in ("am", "pm"):
                raise ValueError(f"Daypart bias must be 'am' or 'pm', got '{meridiem}'")
            normalized[daypart] = meridiem
        return normalized


class TimezoneConfig(BaseModel):
    """Overrides for abbreviations shared by several zones."""
    precedence: Dict[str, str] = Field(default_factory=dict)

    @field_validator('precedence')
    @classmethod
    def validate_precedence(cls, v):
        """Upper-case abbreviation keys"""
        return {abbreviation.upper(): zone_id for abbreviation, zone_id in v.items()}


class RecurrenceConfig(BaseModel):
    """Recurrence limits and conflict policy."""
    max_interval: int = Field(default=100, ge=1)
    max_count: int = Field(default=500, ge=1)
    reject_on_conflict: bool = Field(default=False)


class LoggingConfig(BaseModel):
    """Configuration for logging."""
    level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    log_to_console: bool = Field(default=True)
    file_path: Optional[str] = Field(default=None)
    max_file_size_mb: int = Field(default=10, ge=1, le=1024)
    backup_count: int = Field(default=5, ge=1, le=20)

    @field_validator('level', mode='before')
    @classmethod
    def upper_level(cls, v):
        return v.upper() if isinstance(v, str) else v


class EngineConfig(BaseModel):
    """Main engine configuration."""
    model_config = ConfigDict(validate_assignment=True)

    environment: str = Field(default="development",
                             pattern="^(development|testing|staging|production)$")
    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)
    time_parsing: TimeParsingConfig = Field(default_factory=TimeParsingConfig)
    timezones: TimezoneConfig = Field(default_factory=TimezoneConfig)
    recurrence: RecurrenceConfig = Field(default_factory=RecurrenceConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


class ConfigManager:
    """Manages engine configuration loading and validation."""

    ENV_PREFIX = "CALCOMMAND_"

    def __init__(self, config_path: Optional[Path] = None, environment: Optional[str] = None):
        """Initialize configuration manager.

        Args:
            config_path: Optional directory holding the configuration files
            environment: Environment name (development, testing, staging, production)
        """
        self.config_base_path = Path(config_path) if config_path else self._get_default_config_path()
        self.environment = environment or os.getenv('CALCOMMAND_ENV', 'development')
        self._config: Optional[EngineConfig] = None
        self._lock = threading.Lock()
        self.logger = LoggingManager.get_logger(__name__)

        self.config_files = self._get_config_files()

    def _get_default_config_path(self) -> Path:
        """Get the default configuration directory."""
        config_locations = [
            Path("config"),
            Path.home() / ".calcommand",
            Path("/etc/calcommand"),
        ]

        for location in config_locations:
            if location.exists() and location.is_dir():
                return location

        return Path("config")

    def _get_config_files(self) -> Dict[str, Path]:
        """Get configuration file paths for hierarchical loading."""
        base_dir = self.config_base_path

        return {
            'default': base_dir / 'default_config.yaml',
            'environment': base_dir / f'{self.environment}.yaml',
            'local': base_dir / 'local.yaml'
        }

    def load_config(self) -> EngineConfig:
        """Load and validate configuration with hierarchical overrides.

        Returns:
            Validated engine configuration

        Raises:
            ConfigurationError: If a file cannot be parsed or validation fails
        """
        with self._lock:
            if self._config:
                return self._config

            config_data: Dict[str, Any] = {'environment': self.environment}

            for config_type, config_file in self.config_files.items():
                if config_file.exists():
                    self.logger.info(f"Loading {config_type} config from {config_file}")
                    self._deep_merge(config_data, self._load_yaml_file(config_file))

            env_overrides = self._get_env_overrides()
            if env_overrides:
                self.logger.info(f"Applying environment overrides: {list(env_overrides.keys())}")
                self._deep_merge(config_data, env_overrides)

            try:
                self._config = EngineConfig(**config_data)
            except ValidationError as e:
                self.logger.error(f"Configuration validation failed: {e}")
                raise ConfigurationError(f"Invalid configuration: {e}") from e

            return self._config

    def reload_config(self) -> EngineConfig:
        """Drop the cached configuration and load it again."""
        with self._lock:
            self._config = None
        return self.load_config()

    def _load_yaml_file(self, file_path: Path) -> Dict[str, Any]:
        """Load YAML configuration file.

        Returns:
            Configuration dictionary
        """
        try:
            with open(file_path, 'r') as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            self.logger.error(f"Failed to parse YAML file {file_path}: {e}")
            raise ConfigurationError(f"Invalid YAML in {file_path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Top level of {file_path} must be a mapping")
        return data

    def _get_env_overrides(self) -> Dict[str, Any]:
        """Get configuration overrides from environment variables.

        Environment variables follow pattern: CALCOMMAND_<SECTION>_<KEY>
        Example: CALCOMMAND_TIME_PARSING_AMBIGUOUS_HOUR_DEFAULT -> time_parsing.ambiguous_hour_default
        """
        overrides: Dict[str, Any] = {}
        sections = sorted(EngineConfig.model_fields, key=len, reverse=True)

        for key, value in os.environ.items():
            if not key.startswith(self.ENV_PREFIX) or key == 'CALCOMMAND_ENV':
                continue

            name = key[len(self.ENV_PREFIX):].lower()
            for section in sections:
                if name == section:
                    overrides[section] = self._convert_env_value(value)
                    break
                if name.startswith(section + '_'):
                    overrides.setdefault(section, {})
                    if isinstance(overrides[section], dict):
                        overrides[section][name[len(section) + 1:]] = self._convert_env_value(value)
                    break
            else:
                self.logger.debug(f"Ignoring unknown configuration variable {key}")

        return overrides

    def _convert_env_value(self, value: str) -> Union[str, int, float, bool]:
        """Convert environment variable string to appropriate type."""
        if value.lower() in ('true', 'false'):
            return value.lower() == 'true'

        try:
            if '.' in value:
                return float(value)
            return int(value)
        except ValueError:
            pass

        return value

    def _deep_merge(self, base_dict: Dict[str, Any], update_dict: Dict[str, Any]):
        """Recursively merge nested dictionaries."""
        for key, value in update_dict.items():
            if isinstance(value, dict) and key in base_dict and isinstance(base_dict[key], dict):
                self._deep_merge(base_dict[key], value)
            else:
                base_dict[key] = value

    def save_config(self, target: str = "local"):
        """Save current configuration to file.

        Args:
            target: Which config file to save to ('default', 'environment', 'local')
        """
        with self._lock:
            if not self._config:
                raise ConfigurationError("No configuration loaded")

            if target not in self.config_files:
                raise ConfigurationError(f"Invalid target: {target}")

            target_file = self.config_files[target]
            target_file.parent.mkdir(parents=True, exist_ok=True)

            with open(target_file, 'w') as f:
                yaml.dump(self._config.model_dump(), f, default_flow_style=False, sort_keys=False)

            self.logger.info(f"Configuration saved to {target_file}")
