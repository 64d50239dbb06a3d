"""
Configuration management for Blocksync.

This module handles loading configuration values from config.yaml and
turning the ``settings`` section into a typed, validated ``Settings``
object. Engine functions never read configuration themselves; callers
build a ``ConfigManager`` and pass ``Settings`` down explicitly.
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

API_KEY_ENV_VAR = "BLOCKSYNC_TIMELOG_API_KEY"

DEFAULT_LOOKBACK_DAYS = 365
MAX_LOOKBACK_DAYS = 2000
DEFAULT_PAGE_SIZE = 100
MAX_PAGE_SIZE = 500


class Settings(BaseModel):
    """
    User settings consumed by the placement and reconciliation engines.

    Hours are whole hours of the (UTC) day. Keys are accepted in either
    snake_case or the camelCase used by persisted settings.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    start_hour: int = Field(9, ge=0, le=24)
    end_hour: int = Field(17, ge=0, le=24)
    lunch_start: Optional[int] = Field(12, ge=0, le=24)
    lunch_end: Optional[int] = Field(13, ge=0, le=24)
    work_days: List[int] = Field(default_factory=lambda: [0, 1, 2, 3, 4])
    block_minutes: int = 15

    time_log_base_url: str = ""
    time_log_org_id: str = ""
    time_log_api_key: str = ""
    time_log_user_id: str = ""
    time_log_user_name: str = ""
    time_log_project_id: Optional[str] = None
    time_log_lookback_days: Any = DEFAULT_LOOKBACK_DAYS
    time_log_page_size: Any = DEFAULT_PAGE_SIZE

    @property
    def lookback_days(self) -> int:
        return _parse_int(self.time_log_lookback_days) or DEFAULT_LOOKBACK_DAYS

    @property
    def page_size(self) -> int:
        return _parse_int(self.time_log_page_size) or DEFAULT_PAGE_SIZE


class ValidationResult(BaseModel):
    """Outcome of validating the time-log connection settings."""

    valid: bool
    errors: Dict[str, str] = Field(default_factory=dict)


def _parse_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def is_https_url(value: Any) -> bool:
    if not value or not isinstance(value, str):
        return False
    parsed = urlparse(value.strip())
    return parsed.scheme == "https" and bool(parsed.netloc)


def _is_blank(value: Any) -> bool:
    return not isinstance(value, str) or not value.strip()


def validate_time_log_settings(settings: Settings) -> ValidationResult:
    """
    Check that everything needed to talk to the time-log service is present.

    Args:
        settings: The settings to validate

    Returns:
        ValidationResult with one message per invalid field
    """
    errors: Dict[str, str] = {}

    if not is_https_url(settings.time_log_base_url):
        errors["timeLogBaseUrl"] = "Base URL must be a valid https URL"
    if _is_blank(settings.time_log_org_id):
        errors["timeLogOrgId"] = "Organization ID is required"
    if _is_blank(settings.time_log_user_id):
        errors["timeLogUserId"] = "User ID is required"
    if not settings.time_log_api_key:
        errors["timeLogApiKey"] = "API key is required"

    lookback = _parse_int(settings.time_log_lookback_days)
    if lookback is None or lookback <= 0 or lookback > MAX_LOOKBACK_DAYS:
        errors["timeLogLookbackDays"] = f"Lookback days must be between 1 and {MAX_LOOKBACK_DAYS}"

    page_size = _parse_int(settings.time_log_page_size)
    if page_size is None or page_size <= 0 or page_size > MAX_PAGE_SIZE:
        errors["timeLogPageSize"] = f"Page size must be between 1 and {MAX_PAGE_SIZE}"

    return ValidationResult(valid=not errors, errors=errors)


class ConfigManager:
    """
    Manages configuration loading and access for Blocksync.
    """

    def __init__(self, config_path: str = "config.yaml"):
        """
        Initialize the configuration manager.

        Args:
            config_path: Path to the configuration file
        """
        self.config_path = Path(config_path)
        self._config: Dict[str, Any] = {}
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from YAML file, layered over the defaults."""
        defaults = self._get_default_config()
        try:
            if not self.config_path.exists():
                raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

            with open(self.config_path, 'r', encoding='utf-8') as f:
                loaded = yaml.safe_load(f) or {}

            self._config = _deep_merge(defaults, loaded)
            logging.info(f"Configuration loaded from {self.config_path}")

        except (OSError, yaml.YAMLError) as e:
            logging.warning(f"Failed to load configuration, using defaults: {e}")
            self._config = defaults

    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration values as fallback."""
        return {
            "settings": {
                "startHour": 9,
                "endHour": 17,
                "lunchStart": 12,
                "lunchEnd": 13,
                "workDays": [0, 1, 2, 3, 4],
                "blockMinutes": 15,
                "timeLogBaseUrl": "",
                "timeLogOrgId": "",
                "timeLogUserId": "",
                "timeLogLookbackDays": DEFAULT_LOOKBACK_DAYS,
                "timeLogPageSize": DEFAULT_PAGE_SIZE,
            },
            "timelog": {
                "source": "TimeLog",
                "max_retries": 3,
                "base_delay": 0.4,
                "create_max_retries": 2,
                "create_base_delay": 0.3,
                "timeout": 30.0,
            },
            "storage": {
                "filename": "blocksync.db",
            },
            "logging": {
                "level": "INFO",
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "log_file": "blocksync.log",
            },
        }

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get a configuration value using dot notation.

        Args:
            key_path: Dot-separated path to the configuration value (e.g., "timelog.max_retries")
            default: Default value if key is not found

        Returns:
            The configuration value
        """
        keys = key_path.split('.')
        value = self._config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def get_section(self, section: str) -> Dict[str, Any]:
        return self._config.get(section, {})

    def reload(self) -> None:
        """Reload configuration from file."""
        self._load_config()

    @property
    def settings(self) -> Settings:
        """
        Build typed settings from the ``settings`` section.

        The API key falls back to the BLOCKSYNC_TIMELOG_API_KEY environment
        variable so it does not have to live in the YAML file.
        """
        data = dict(self.get_section("settings"))
        if not data.get("timeLogApiKey") and not data.get("time_log_api_key"):
            env_key = os.getenv(API_KEY_ENV_VAR)
            if env_key:
                data["timeLogApiKey"] = env_key
        return Settings.model_validate(data)

    @property
    def time_log_source(self) -> str:
        return self.get("timelog.source", "TimeLog")

    @property
    def max_retries(self) -> int:
        return self.get("timelog.max_retries", 3)

    @property
    def base_delay(self) -> float:
        return self.get("timelog.base_delay", 0.4)

    @property
    def create_max_retries(self) -> int:
        return self.get("timelog.create_max_retries", 2)

    @property
    def create_base_delay(self) -> float:
        return self.get("timelog.create_base_delay", 0.3)

    @property
    def request_timeout(self) -> float:
        return self.get("timelog.timeout", 30.0)

    @property
    def database_filename(self) -> str:
        return self.get("storage.filename", "blocksync.db")

    @property
    def log_filename(self) -> str:
        return self.get("logging.log_file", "blocksync.log")


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged
