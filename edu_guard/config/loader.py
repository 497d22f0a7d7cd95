"""
Configuration management and loading.

Handles the tier limit table file and environment settings.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from edu_guard.core.thresholds import USAGE_ALERT_COOLDOWN_DAYS
from edu_guard.core.tiers import DEFAULT_TIER_TABLE, Tier, TierLimits, TierTable
from edu_guard.storage.db import DEFAULT_DB_PATH

UNLIMITED = "unlimited"

_LIMIT_KEYS = ("lesson_plans", "activities", "assessments", "file_uploads")
_TIER_KEYS = set(_LIMIT_KEYS) | {"max_file_size_mb", "export_formats", "ai_model"}
_EXPORT_FORMATS = {"pdf", "docx", "pptx", "google-slides"}


@dataclass(frozen=True)
class Settings:
    """Runtime settings read from the environment."""
    db_path: str = DEFAULT_DB_PATH
    supabase_url: Optional[str] = None
    service_role_key: Optional[str] = None
    alert_cooldown_days: int = USAGE_ALERT_COOLDOWN_DAYS
    tier_config_path: Optional[str] = None

    def __post_init__(self):
        if self.alert_cooldown_days < 0:
            raise ValueError("alert_cooldown_days cannot be negative")

    @property
    def automation_url(self) -> Optional[str]:
        """Endpoint of the trigger-automation function, if configured."""
        if not self.supabase_url:
            return None
        return f"{self.supabase_url.rstrip('/')}/functions/v1/trigger-automation"


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from environment variables.

    Raises:
        ValueError: If a numeric setting cannot be parsed
    """
    env = os.environ if environ is None else environ
    raw_cooldown = env.get("EDU_GUARD_ALERT_COOLDOWN_DAYS")
    try:
        cooldown = int(raw_cooldown) if raw_cooldown else USAGE_ALERT_COOLDOWN_DAYS
    except ValueError:
        raise ValueError(f"EDU_GUARD_ALERT_COOLDOWN_DAYS must be an integer, got '{raw_cooldown}'")

    return Settings(
        db_path=env.get("EDU_GUARD_DB_PATH") or DEFAULT_DB_PATH,
        supabase_url=env.get("SUPABASE_URL") or None,
        service_role_key=env.get("SUPABASE_SERVICE_ROLE_KEY") or None,
        alert_cooldown_days=cooldown,
        tier_config_path=env.get("EDU_GUARD_TIER_CONFIG") or None,
    )


def load_tier_config(path: Optional[str] = None) -> TierTable:
    """Load and validate a tier limit table from a YAML file.

    Strict validation ensures a typo cannot silently lift a limit.
    With no path the built-in table is returned.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated TierTable

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    if path is None:
        return DEFAULT_TIER_TABLE

    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Tier config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    unknown_keys = set(raw_config.keys()) - {"tiers"}
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    if "tiers" not in raw_config:
        raise ValueError("Missing required 'tiers' section")

    tiers_data = raw_config["tiers"]
    if not isinstance(tiers_data, dict):
        raise ValueError("'tiers' must be a dictionary")

    valid_tiers = {tier.value for tier in Tier}
    unknown_tiers = set(tiers_data.keys()) - valid_tiers
    if unknown_tiers:
        raise ValueError(f"Unknown tiers: {unknown_tiers}")

    tiers: Dict[Tier, TierLimits] = {}
    for tier in Tier:
        if tier.value not in tiers_data:
            raise ValueError(f"Missing required tier '{tier.value}'")
        tier_data = tiers_data[tier.value]
        if not isinstance(tier_data, dict):
            raise ValueError(f"Tier '{tier.value}' must be a dictionary")
        tiers[tier] = _parse_tier_limits(tier_data, f"tiers.{tier.value}")

    return TierTable(tiers)


def _parse_tier_limits(data: Dict[str, Any], path: str) -> TierLimits:
    """Parse and validate one tier's limits.

    Args:
        data: Tier configuration data
        path: Path for error messages

    Returns:
        Validated TierLimits

    Raises:
        ValueError: If configuration is invalid
    """
    unknown_keys = set(data.keys()) - _TIER_KEYS
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")

    missing = [key for key in sorted(_TIER_KEYS) if key not in data]
    if missing:
        raise ValueError(f"Missing required keys in {path}: {missing}")

    limits = {key: _parse_limit(data[key], f"{path}.{key}") for key in _LIMIT_KEYS}

    max_size = data["max_file_size_mb"]
    if isinstance(max_size, bool) or not isinstance(max_size, int) or max_size <= 0:
        raise ValueError(f"'max_file_size_mb' in {path} must be a positive integer")

    formats = data["export_formats"]
    if not isinstance(formats, list) or not formats:
        raise ValueError(f"'export_formats' in {path} must be a non-empty list")
    bad_formats = [f for f in formats if f not in _EXPORT_FORMATS]
    if bad_formats:
        raise ValueError(
            f"'export_formats' in {path} has unknown formats {bad_formats}; "
            f"must be from: {sorted(_EXPORT_FORMATS)}"
        )

    model = data["ai_model"]
    if not isinstance(model, str) or not model.strip():
        raise ValueError(f"'ai_model' in {path} must be a non-empty string")

    return TierLimits(
        max_file_size_mb=max_size,
        export_formats=tuple(formats),
        ai_model=model.strip(),
        **limits,
    )


def _parse_limit(value: Any, path: str) -> Optional[int]:
    """A category limit is a non-negative integer or 'unlimited'."""
    if value == UNLIMITED:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"'{path}' must be a non-negative integer or 'unlimited'")
    return value
