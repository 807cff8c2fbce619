"""
Configuration management for the vegetation change analysis.

Configuration is assembled from defaults, an optional JSON file and
environment variables (a ``.env`` file is loaded first when present).
The analysis parameters end up in an immutable ``AnalysisConfig`` that is
passed explicitly to every processing component.
"""

import os
import json
import logging
import logging.handlers
from typing import Dict, Any, Optional
from dataclasses import dataclass, asdict, field, fields
from dotenv import load_dotenv

logger = logging.getLogger(__name__)


TAXONOMIES = ("strict", "edge", "hybrid")
PROJECTION_SLOPES = ("long_term", "recent")


class InvalidConfiguration(ValueError):
    """Raised when analysis parameters cannot produce a meaningful run."""


@dataclass(frozen=True)
class AnalysisConfig:
    """Parameters of the per-pixel classification and trend analysis."""
    # Analysis period (inclusive calendar years)
    start_year: int = 1985
    end_year: int = 2025

    # Seasonal compositing window (calendar months, may wrap the year end)
    season_start_month: int = 6
    season_end_month: int = 9

    # Baseline / current state windows, in years from each end of the period
    baseline_years: int = 5
    current_years: int = 5

    # NDVI density thresholds
    dense_threshold: float = 0.6
    transitional_threshold: float = 0.4
    sparse_threshold: float = 0.2
    sensitivity_offset: float = 0.0

    # Trend thresholds (NDVI per year)
    gaining_slope: float = 0.005
    losing_slope: float = -0.005
    recent_window_years: int = 10
    significance_level: Optional[float] = None
    momentum_tolerance: float = 0.002

    # Sensor harmonization (OLI -> ETM+ reference)
    harmonize_sensors: bool = True
    reflectance_scale: float = 0.0000275
    reflectance_offset: float = -0.2

    # Change taxonomy: strict (6 classes), edge (9 classes), hybrid (8 classes)
    active_taxonomy: str = "edge"

    # Establishment epochs
    epoch_width_years: int = 5
    min_final_epoch_years: int = 3

    # Trajectory projection
    projection_cap_years: float = 50.0
    projection_slope: str = "long_term"

    @property
    def dense(self) -> float:
        return self.dense_threshold + self.sensitivity_offset

    @property
    def transitional(self) -> float:
        return self.transitional_threshold + self.sensitivity_offset

    @property
    def sparse(self) -> float:
        return self.sparse_threshold + self.sensitivity_offset

    @property
    def recent_start_year(self) -> int:
        """First year of the trailing trend window (``end_year - recent_window_years``)."""
        return self.end_year - self.recent_window_years

    def validate(self) -> "AnalysisConfig":
        """
        Check the parameters before any pixel is processed.

        Raises:
            InvalidConfiguration: on the first violated constraint
        """
        if self.start_year >= self.end_year:
            raise InvalidConfiguration(
                f"start_year ({self.start_year}) must be before end_year ({self.end_year})"
            )
        for name in ("season_start_month", "season_end_month"):
            month = getattr(self, name)
            if not 1 <= month <= 12:
                raise InvalidConfiguration(f"{name} must be in 1..12, got {month}")

        for name in ("baseline_years", "current_years", "recent_window_years",
                     "epoch_width_years", "min_final_epoch_years"):
            if getattr(self, name) <= 0:
                raise InvalidConfiguration(f"{name} must be positive, got {getattr(self, name)}")

        span = self.end_year - self.start_year + 1
        if self.baseline_years > span or self.current_years > span:
            raise InvalidConfiguration(
                f"baseline/current windows cannot exceed the {span}-year analysis period"
            )
        if self.epoch_width_years >= span:
            raise InvalidConfiguration(
                f"epoch_width_years ({self.epoch_width_years}) leaves no epochs in a {span}-year period"
            )

        if not self.sparse_threshold < self.transitional_threshold < self.dense_threshold:
            raise InvalidConfiguration(
                "thresholds must satisfy sparse < transitional < dense, got "
                f"{self.sparse_threshold} / {self.transitional_threshold} / {self.dense_threshold}"
            )
        if not (-1.0 <= self.sparse and self.dense <= 1.0):
            raise InvalidConfiguration(
                f"sensitivity_offset {self.sensitivity_offset} pushes thresholds outside [-1, 1]"
            )

        if self.gaining_slope <= self.losing_slope:
            raise InvalidConfiguration(
                f"gaining_slope ({self.gaining_slope}) must exceed losing_slope ({self.losing_slope})"
            )
        if self.significance_level is not None and not 0.0 < self.significance_level < 1.0:
            raise InvalidConfiguration(
                f"significance_level must be in (0, 1), got {self.significance_level}"
            )
        if self.momentum_tolerance < 0:
            raise InvalidConfiguration("momentum_tolerance cannot be negative")
        if self.reflectance_scale <= 0:
            raise InvalidConfiguration("reflectance_scale must be positive")

        if self.active_taxonomy not in TAXONOMIES:
            raise InvalidConfiguration(
                f"active_taxonomy must be one of {TAXONOMIES}, got {self.active_taxonomy!r}"
            )
        if self.projection_slope not in PROJECTION_SLOPES:
            raise InvalidConfiguration(
                f"projection_slope must be one of {PROJECTION_SLOPES}, got {self.projection_slope!r}"
            )
        if self.projection_cap_years <= 0:
            raise InvalidConfiguration("projection_cap_years must be positive")
        return self


@dataclass
class ProcessingConfig:
    """Tile processing configuration."""
    # Resource limits
    max_workers: int = 4
    tile_size: int = 64

    # Output settings
    output_directory: str = "data/vegetation_change"
    pixel_area_ha: float = 0.09  # 30 m Landsat pixel


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    log_directory: str = "logs"
    log_file: str = ""
    max_log_size_mb: int = 100
    backup_count: int = 5

    # Log to console
    console_logging: bool = True

    # Log format
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class SystemConfig:
    """Complete system configuration."""
    analysis: AnalysisConfig
    processing: ProcessingConfig = field(default_factory=ProcessingConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Environment settings
    environment: str = "development"  # development, staging, production


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes")


def _parse_optional_float(value: str) -> Optional[float]:
    if value.strip().lower() in ("", "none", "off"):
        return None
    return float(value)


# Environment variable -> (section, field, parser)
_ENV_OVERRIDES = {
    "START_YEAR": ("analysis", "start_year", int),
    "END_YEAR": ("analysis", "end_year", int),
    "SEASON_START_MONTH": ("analysis", "season_start_month", int),
    "SEASON_END_MONTH": ("analysis", "season_end_month", int),
    "DENSE_THRESHOLD": ("analysis", "dense_threshold", float),
    "TRANSITIONAL_THRESHOLD": ("analysis", "transitional_threshold", float),
    "SPARSE_THRESHOLD": ("analysis", "sparse_threshold", float),
    "SENSITIVITY_OFFSET": ("analysis", "sensitivity_offset", float),
    "GAINING_SLOPE": ("analysis", "gaining_slope", float),
    "LOSING_SLOPE": ("analysis", "losing_slope", float),
    "RECENT_WINDOW_YEARS": ("analysis", "recent_window_years", int),
    "SIGNIFICANCE_LEVEL": ("analysis", "significance_level", _parse_optional_float),
    "HARMONIZE_SENSORS": ("analysis", "harmonize_sensors", _parse_bool),
    "ACTIVE_TAXONOMY": ("analysis", "active_taxonomy", str.lower),
    "EPOCH_WIDTH_YEARS": ("analysis", "epoch_width_years", int),
    "PROJECTION_CAP_YEARS": ("analysis", "projection_cap_years", float),
    "PROJECTION_SLOPE": ("analysis", "projection_slope", str.lower),
    "MAX_WORKERS": ("processing", "max_workers", int),
    "TILE_SIZE": ("processing", "tile_size", int),
    "OUTPUT_DIRECTORY": ("processing", "output_directory", str),
    "LOG_LEVEL": ("logging", "level", str.upper),
    "LOG_DIRECTORY": ("logging", "log_directory", str),
    "LOG_FILE": ("logging", "log_file", str),
}


class ConfigManager:
    """Builds a SystemConfig from defaults, a JSON file and the environment."""

    def __init__(self, config_file: str = None, env_file: str = ".env"):
        """
        Initialize configuration manager.

        Args:
            config_file: Path to JSON configuration file
            env_file: Path to environment variables file
        """
        self.config_file = config_file
        self.env_file = env_file
        self._config = None

        # Load environment variables
        if env_file and os.path.exists(env_file):
            load_dotenv(env_file)
            logger.info(f"Loaded environment variables from {env_file}")

        self._load_config()

    def _load_config(self):
        """Load configuration from all sources."""
        # Start with default configuration
        config_dict = self._get_default_config()

        # Override with file configuration if exists
        if self.config_file:
            file_config = self._load_from_file(self.config_file)
            config_dict = self._merge_configs(config_dict, file_config)
            logger.info(f"Loaded configuration from {self.config_file}")

        # Override with environment variables
        env_config = self._load_from_environment()
        config_dict = self._merge_configs(config_dict, env_config)

        self._config = SystemConfig(
            analysis=_build_section(AnalysisConfig, config_dict.get("analysis", {})),
            processing=_build_section(ProcessingConfig, config_dict.get("processing", {})),
            logging=_build_section(LoggingConfig, config_dict.get("logging", {})),
            environment=config_dict.get("environment", "development"),
        )

        logger.info(f"Configuration loaded for environment: {self._config.environment}")

    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration values."""
        return {
            "analysis": asdict(AnalysisConfig()),
            "processing": asdict(ProcessingConfig()),
            "logging": asdict(LoggingConfig()),
            "environment": "development",
        }

    def _load_from_file(self, file_path: str) -> Dict[str, Any]:
        """Load configuration from JSON file."""
        try:
            with open(file_path, "r") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise InvalidConfiguration(f"Failed to load config file {file_path}: {e}") from e

    def _load_from_environment(self) -> Dict[str, Any]:
        """Load configuration from environment variables."""
        env_config: Dict[str, Any] = {}
        for var, (section, name, parse) in _ENV_OVERRIDES.items():
            if var not in os.environ:
                continue
            try:
                value = parse(os.environ[var])
            except ValueError as e:
                raise InvalidConfiguration(f"Invalid value for {var}: {os.environ[var]!r}") from e
            env_config.setdefault(section, {})[name] = value

        if "ENVIRONMENT" in os.environ:
            env_config["environment"] = os.environ["ENVIRONMENT"]
        return env_config

    def _merge_configs(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Merge two configuration dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_configs(result[key], value)
            else:
                result[key] = value

        return result

    @property
    def config(self) -> SystemConfig:
        """Get the current configuration."""
        return self._config

    def save_config(self, file_path: str):
        """Save current configuration to a file."""
        config_dict = {
            "analysis": asdict(self._config.analysis),
            "processing": asdict(self._config.processing),
            "logging": asdict(self._config.logging),
            "environment": self._config.environment,
        }

        with open(file_path, "w") as f:
            json.dump(config_dict, f, indent=2)

        logger.info(f"Configuration saved to {file_path}")

    def validate_config(self) -> bool:
        """Validate the current configuration, raising on invalid analysis parameters."""
        self._config.analysis.validate()

        if self._config.processing.max_workers < 1:
            raise InvalidConfiguration("max_workers must be at least 1")
        if self._config.processing.tile_size < 1:
            raise InvalidConfiguration("tile_size must be at least 1")

        logger.info("Configuration validation passed")
        return True


def _build_section(cls, values: Dict[str, Any]):
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise InvalidConfiguration(f"Unknown {cls.__name__} option(s): {', '.join(unknown)}")
    return cls(**values)


def load_config(config_file: str = None, env_file: str = ".env") -> SystemConfig:
    """Load configuration from specified sources."""
    return ConfigManager(config_file, env_file).config


def configure_logging(config: LoggingConfig) -> None:
    """Install console and rotating file handlers on the root logger."""
    handlers = []
    if config.console_logging:
        handlers.append(logging.StreamHandler())
    if config.log_file:
        os.makedirs(config.log_directory, exist_ok=True)
        handlers.append(logging.handlers.RotatingFileHandler(
            os.path.join(config.log_directory, config.log_file),
            maxBytes=config.max_log_size_mb * 1024 * 1024,
            backupCount=config.backup_count,
        ))
    logging.basicConfig(level=config.level, format=config.format, handlers=handlers or [logging.NullHandler()], force=True)
