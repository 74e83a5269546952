"""
Engine configuration and logging setup.

Settings are read from an optional YAML file; every key is optional and
falls back to the defaults below.

    default_page_size: 100
    default_breakdown_field: host_name
    missing_label: N/A
    bucket_policy:
      day_threshold_hours: 48
      half_hour_threshold_hours: 12
    data_file: null
    mock_records: 5000
    mock_seed: null
    log_level: INFO
"""

import logging
import os
import sys
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .bucketing import BucketPolicy
from .fields import parse_field_id
from .models import FieldId, QueryError

CONFIG_ENV_VAR = 'ERRLOG_ENGINE_CONFIG'
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised when the configuration file is unreadable or malformed."""


@dataclass
class EngineSettings:
    """Runtime settings for the engine and its outer surfaces.

    Attributes:
        default_page_size: Page size when a request omits pagination
        default_breakdown_field: Trend breakdown field when none is requested
        missing_label: Group/breakdown key for absent values
        bucket_policy: Trend granularity thresholds
        data_file: JSON/NDJSON file of records to serve; None serves mock data
        mock_records: Number of mock records generated when no data file is set
        mock_seed: Seed for the mock generator
        log_level: Root logging level name
    """
    default_page_size: int = 100
    default_breakdown_field: FieldId = FieldId.HOST_NAME
    missing_label: str = 'N/A'
    bucket_policy: BucketPolicy = field(default_factory=BucketPolicy)
    data_file: Optional[str] = None
    mock_records: int = 5000
    mock_seed: Optional[int] = None
    log_level: str = 'INFO'


def _expect(value: Any, expected: type, key: str) -> Any:
    if isinstance(value, bool) and expected is not bool:
        raise ConfigError(f"'{key}' must be {expected.__name__}")
    if expected is float and isinstance(value, int):
        return float(value)
    if not isinstance(value, expected):
        raise ConfigError(f"'{key}' must be {expected.__name__}")
    return value


def settings_from_dict(data: Optional[Dict[str, Any]]) -> EngineSettings:
    """Build EngineSettings from a decoded YAML mapping.

    Raises:
        ConfigError: If a known key has the wrong type
    """
    settings = EngineSettings()
    if not data:
        return settings
    if not isinstance(data, dict):
        raise ConfigError("Configuration root must be a mapping")

    known = {f.name for f in fields(EngineSettings)}
    for key in data:
        if key not in known:
            logger.warning(f"Ignoring unknown configuration key '{key}'")

    if 'default_page_size' in data:
        settings.default_page_size = _expect(data['default_page_size'], int, 'default_page_size')
        if settings.default_page_size <= 0:
            raise ConfigError("'default_page_size' must be positive")

    if 'default_breakdown_field' in data:
        try:
            settings.default_breakdown_field = parse_field_id(data['default_breakdown_field'])
        except QueryError as e:
            raise ConfigError(f"'default_breakdown_field': {e.message}")

    if 'missing_label' in data:
        settings.missing_label = _expect(data['missing_label'], str, 'missing_label')

    policy = data.get('bucket_policy') or {}
    if not isinstance(policy, dict):
        raise ConfigError("'bucket_policy' must be a mapping")
    day = _expect(policy.get('day_threshold_hours', 48), float, 'bucket_policy.day_threshold_hours')
    half = _expect(policy.get('half_hour_threshold_hours', 12), float, 'bucket_policy.half_hour_threshold_hours')
    if half > day:
        raise ConfigError("half_hour_threshold_hours must not exceed day_threshold_hours")
    settings.bucket_policy = BucketPolicy(day_threshold_hours=day, half_hour_threshold_hours=half)

    if data.get('data_file') is not None:
        settings.data_file = _expect(data['data_file'], str, 'data_file')
    if 'mock_records' in data:
        settings.mock_records = _expect(data['mock_records'], int, 'mock_records')
    if data.get('mock_seed') is not None:
        settings.mock_seed = _expect(data['mock_seed'], int, 'mock_seed')
    if 'log_level' in data:
        settings.log_level = _expect(data['log_level'], str, 'log_level').upper()

    return settings


def load_settings(config_path: Optional[str] = None) -> EngineSettings:
    """Load settings from a YAML file.

    Args:
        config_path: Path to the YAML file; falls back to the
            ERRLOG_ENGINE_CONFIG environment variable, then to defaults

    Returns:
        Parsed EngineSettings

    Raises:
        ConfigError: If the file cannot be read or is invalid
    """
    config_path = config_path or os.environ.get(CONFIG_ENV_VAR)
    if not config_path:
        return EngineSettings()

    path = Path(config_path)
    try:
        with open(path, 'r') as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to load config: {e}")
        raise ConfigError(f"Cannot load configuration from {path}: {e}")

    settings = settings_from_dict(data)
    logger.info(f"Loaded configuration from {path}")
    return settings


def configure_logging(level: str = 'INFO', debug: bool = False) -> None:
    """Configure root logging for the CLI and the HTTP app."""
    log_level = logging.DEBUG if debug else getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stderr)],
    )
