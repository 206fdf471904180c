"""
Configuration Loader

Loads configuration from YAML files with environment variable substitution
and maps the cloudwatch section onto InputConfig.
"""

import yaml
import os
from pathlib import Path
from typing import Dict, Any, List, Optional, Union
import re
import logging

from cloudwatch_poller.ingestion.config import (
    DEFAULT_EVENT_LIMIT,
    DEFAULT_POLL_INTERVAL,
    InputConfig,
)
from cloudwatch_poller.ingestion.errors import ConfigurationError


_DURATION_PART = re.compile(r'(\d+(?:\.\d+)?)(ms|h|m|s)')

_UNIT_SECONDS = {
    'h': 3600.0,
    'm': 60.0,
    's': 1.0,
    'ms': 0.001,
}

CLOUDWATCH_KEYS = {
    'region',
    'profile',
    'log_group_name',
    'log_groups',
    'log_group_prefix',
    'log_stream_names',
    'log_stream_name_prefix',
    'start_at',
    'poll_interval',
    'event_limit',
}


class ConfigLoader:
    """
    Loads configuration from YAML files with environment variable support.

    Supports:
    - Environment variable substitution ${VAR_NAME}
    - Dotted key lookup
    - Validation
    """

    def __init__(self, config_path: str):
        """
        Initialize config loader.

        Args:
            config_path: Path to configuration file
        """
        self.config_path = Path(config_path)
        self.logger = logging.getLogger(self.__class__.__name__)
        self.config: Dict[str, Any] = {}

    def load(self) -> Dict[str, Any]:
        """
        Load configuration from file.

        Returns:
            Configuration dictionary

        Raises:
            FileNotFoundError: If the file does not exist
            ConfigurationError: If the file is not valid YAML or not a mapping
        """
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        with open(self.config_path, 'r') as f:
            content = f.read()

        # Substitute environment variables
        content = self._substituteEnvVars(content)

        try:
            loaded = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Error loading config file {self.config_path}: {e}") from e

        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ConfigurationError(f"Config file {self.config_path} must contain a mapping")

        self.config = loaded
        self.logger.info(f"Configuration loaded from {self.config_path}")
        return self.config

    def _substituteEnvVars(self, content: str) -> str:
        """
        Substitute environment variables in format ${VAR_NAME}.

        Args:
            content: File content with variables

        Returns:
            Content with substituted values
        """
        pattern = r'\$\{([^}]+)\}'

        def replacer(match):
            var_name = match.group(1)
            value = os.environ.get(var_name)
            if value is None:
                self.logger.warning(f"Environment variable not found: {var_name}")
                return match.group(0)  # Leave the placeholder if not found
            return value

        return re.sub(pattern, replacer, content)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by key.

        Args:
            key: Configuration key (supports dot notation)
            default: Default value if key not found

        Returns:
            Configuration value
        """
        keys = key.split('.')
        value = self.config

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
                if value is None:
                    return default
            else:
                return default

        return value

    def validate(self) -> bool:
        if not isinstance(self.config.get('cloudwatch'), dict):
            self.logger.error("Missing required configuration section: cloudwatch")
            return False

        return True


def parseDuration(value: Union[str, int, float, None]) -> float:
    """
    Parse a duration into seconds.

    Numbers are seconds. Strings may be plain numbers or unit sequences
    such as "500ms", "15s", "1m" or "1h30m".

    Raises:
        ConfigurationError: If the value is not a duration
    """
    if value is None or isinstance(value, bool):
        raise ConfigurationError(f"invalid duration {value!r}")

    if isinstance(value, (int, float)):
        return float(value)

    text = str(value).strip()
    try:
        return float(text)
    except ValueError:
        pass

    total = 0.0
    position = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            break
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        position = match.end()

    if position == 0 or position != len(text):
        raise ConfigurationError(f"invalid duration {value!r}")

    return total


def _stringList(section: Dict[str, Any], key: str) -> List[Optional[str]]:
    value = section.get(key)
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        raise ConfigurationError(f"{key} must be a list of strings")
    return [None if item is None else str(item) for item in value]


def buildInputConfig(section: Optional[Dict[str, Any]]) -> InputConfig:
    """
    Map the cloudwatch section of a config file onto InputConfig.

    Raises:
        ConfigurationError: On unknown keys or values of the wrong type
    """
    if section is None:
        section = {}
    if not isinstance(section, dict):
        raise ConfigurationError("cloudwatch section must be a mapping")

    unknown = sorted(set(section) - CLOUDWATCH_KEYS)
    if unknown:
        raise ConfigurationError(f"unknown cloudwatch option(s): {', '.join(unknown)}")

    eventLimit = section.get('event_limit', DEFAULT_EVENT_LIMIT)
    if isinstance(eventLimit, bool):
        raise ConfigurationError(f"event_limit must be an integer, got {eventLimit!r}")
    try:
        eventLimit = int(eventLimit)
    except (TypeError, ValueError):
        raise ConfigurationError(f"event_limit must be an integer, got {eventLimit!r}") from None

    pollInterval = section.get('poll_interval')
    pollInterval = DEFAULT_POLL_INTERVAL if pollInterval is None else parseDuration(pollInterval)

    return InputConfig(
        region=str(section.get('region') or ''),
        profile=section.get('profile') or None,
        log_group_name=str(section.get('log_group_name') or ''),
        log_groups=[g for g in _stringList(section, 'log_groups') if g],
        log_group_prefix=str(section.get('log_group_prefix') or ''),
        log_stream_names=_stringList(section, 'log_stream_names'),
        log_stream_name_prefix=str(section.get('log_stream_name_prefix') or ''),
        start_at=section.get('start_at'),
        poll_interval=pollInterval,
        event_limit=eventLimit,
    )
