"""
Configuration management and loading.

Handles application settings from a YAML file.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Tuple

import yaml

from token_meter.core.log_scanner import DEFAULT_LOG_DIRS
from token_meter.core.pricing import UnknownModelPolicy
from token_meter.storage.db import DEFAULT_DB_PATH

DEFAULT_CONFIG_PATH = Path.home() / ".token-meter" / "config.yaml"
DEFAULT_REMOTE_ENDPOINT = "https://api.anthropic.com/api/oauth/usage"
DEFAULT_CREDENTIALS_PATH = str(Path.home() / ".claude" / ".credentials.json")


class Plan(Enum):
    """Subscription tiers with known rate-limit ceilings."""
    PRO = "pro"
    MAX5 = "max5"
    MAX20 = "max20"
    CUSTOM = "custom"


class DataSource(Enum):
    """Where daily buckets come from."""
    NATIVE = "native"  # Parse session logs directly
    LEGACY = "legacy"  # Run the external ccusage binary


@dataclass(frozen=True)
class PlanLimits:
    """Token ceilings used for the local utilization estimate."""
    session: int
    weekly: int

    def __post_init__(self):
        """Validate limits are positive."""
        if self.session <= 0:
            raise ValueError("session_token_limit must be > 0")
        if self.weekly <= 0:
            raise ValueError("weekly_token_limit must be > 0")


# Approximate ceilings; the remote endpoint is authoritative when reachable
PLAN_LIMITS: Dict[Plan, PlanLimits] = {
    Plan.PRO: PlanLimits(session=19_000, weekly=300_000),
    Plan.MAX5: PlanLimits(session=88_000, weekly=1_500_000),
    Plan.MAX20: PlanLimits(session=220_000, weekly=3_500_000),
}


@dataclass(frozen=True)
class RemoteConfig:
    """Remote utilization endpoint settings."""
    enabled: bool = True
    endpoint: str = DEFAULT_REMOTE_ENDPOINT
    timeout_seconds: float = 10.0
    credentials_path: str = DEFAULT_CREDENTIALS_PATH

    def __post_init__(self):
        if self.timeout_seconds <= 0:
            raise ValueError("remote.timeout_seconds must be > 0")


@dataclass(frozen=True)
class AppConfig:
    """Complete application configuration."""
    log_dirs: Tuple[str, ...] = tuple(str(p) for p in DEFAULT_LOG_DIRS)
    history_days: int = 30
    refresh_interval_seconds: float = 300.0
    plan: Plan = Plan.PRO
    limits: PlanLimits = PLAN_LIMITS[Plan.PRO]
    unknown_model_pricing: UnknownModelPolicy = UnknownModelPolicy.SONNET
    data_source: DataSource = DataSource.NATIVE
    legacy_binary: Optional[str] = None
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    cache_db: str = DEFAULT_DB_PATH

    def __post_init__(self):
        """Validate numeric settings."""
        if self.history_days <= 0:
            raise ValueError("history_days must be > 0")
        if self.refresh_interval_seconds <= 0:
            raise ValueError("refresh_interval_seconds must be > 0")
        if not self.log_dirs:
            raise ValueError("log_dirs must not be empty")


_TOP_KEYS = {
    'log_dirs', 'history_days', 'refresh_interval_seconds', 'plan',
    'session_token_limit', 'weekly_token_limit', 'unknown_model_pricing',
    'data_source', 'legacy_binary', 'remote', 'cache_db',
}
_REMOTE_KEYS = {'enabled', 'endpoint', 'timeout_seconds', 'credentials_path'}


def load_config(path: Optional[str] = None) -> AppConfig:
    """Load and validate configuration from a YAML file.

    Unknown keys are rejected so a typo never silently falls back to a
    default.

    Args:
        path: Path to YAML configuration file. When None, the default path
            is used if it exists, otherwise built-in defaults apply.

    Returns:
        Validated AppConfig object

    Raises:
        FileNotFoundError: If an explicitly given config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    if path is None:
        if not DEFAULT_CONFIG_PATH.exists():
            return AppConfig()
        config_path = DEFAULT_CONFIG_PATH
    else:
        config_path = Path(path).expanduser()
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {config_path}: {e}")

    if raw_config is None:
        return AppConfig()
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a mapping")
    return parse_config(raw_config)


def parse_config(raw_config: Dict) -> AppConfig:
    """Validate a decoded configuration mapping.

    Args:
        raw_config: Mapping as loaded from YAML

    Returns:
        Validated AppConfig

    Raises:
        ValueError: If configuration is invalid
    """
    unknown_keys = set(raw_config.keys()) - _TOP_KEYS
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    kwargs = {}

    if 'log_dirs' in raw_config:
        log_dirs = raw_config['log_dirs']
        if isinstance(log_dirs, str):
            log_dirs = [log_dirs]
        if not isinstance(log_dirs, list) or not all(isinstance(d, str) for d in log_dirs):
            raise ValueError("'log_dirs' must be a list of paths")
        kwargs['log_dirs'] = tuple(log_dirs)

    if 'history_days' in raw_config:
        kwargs['history_days'] = _positive_number(raw_config['history_days'], 'history_days', int)

    if 'refresh_interval_seconds' in raw_config:
        kwargs['refresh_interval_seconds'] = _positive_number(
            raw_config['refresh_interval_seconds'], 'refresh_interval_seconds', float
        )

    plan = _parse_enum(raw_config.get('plan', Plan.PRO.value), Plan, 'plan')
    kwargs['plan'] = plan
    kwargs['limits'] = _parse_limits(plan, raw_config)

    if 'unknown_model_pricing' in raw_config:
        kwargs['unknown_model_pricing'] = _parse_enum(
            raw_config['unknown_model_pricing'], UnknownModelPolicy, 'unknown_model_pricing'
        )

    if 'data_source' in raw_config:
        kwargs['data_source'] = _parse_enum(raw_config['data_source'], DataSource, 'data_source')

    if raw_config.get('legacy_binary') is not None:
        if not isinstance(raw_config['legacy_binary'], str):
            raise ValueError("'legacy_binary' must be a path")
        kwargs['legacy_binary'] = raw_config['legacy_binary']

    if 'remote' in raw_config:
        kwargs['remote'] = _parse_remote(raw_config['remote'])

    if 'cache_db' in raw_config:
        if not isinstance(raw_config['cache_db'], str):
            raise ValueError("'cache_db' must be a path")
        kwargs['cache_db'] = raw_config['cache_db']

    return AppConfig(**kwargs)


def _parse_limits(plan: Plan, raw_config: Dict) -> PlanLimits:
    """Resolve plan ceilings, letting explicit limits override the plan's."""
    session = raw_config.get('session_token_limit')
    weekly = raw_config.get('weekly_token_limit')

    if plan == Plan.CUSTOM:
        if session is None or weekly is None:
            raise ValueError(
                "'session_token_limit' and 'weekly_token_limit' are required for plan 'custom'"
            )
        base = None
    else:
        base = PLAN_LIMITS[plan]

    return PlanLimits(
        session=_positive_number(session, 'session_token_limit', int) if session is not None else base.session,
        weekly=_positive_number(weekly, 'weekly_token_limit', int) if weekly is not None else base.weekly,
    )


def _parse_remote(data) -> RemoteConfig:
    """Parse and validate the remote endpoint section.

    Raises:
        ValueError: If the section is invalid
    """
    if not isinstance(data, dict):
        raise ValueError("'remote' must be a dictionary")

    unknown_keys = set(data.keys()) - _REMOTE_KEYS
    if unknown_keys:
        raise ValueError(f"Unknown keys in remote: {unknown_keys}")

    kwargs = {}
    if 'enabled' in data:
        if not isinstance(data['enabled'], bool):
            raise ValueError("'enabled' in remote must be true or false")
        kwargs['enabled'] = data['enabled']
    if 'endpoint' in data:
        endpoint = data['endpoint']
        if not isinstance(endpoint, str) or not endpoint.startswith(("http://", "https://")):
            raise ValueError("'endpoint' in remote must be an http(s) URL")
        kwargs['endpoint'] = endpoint
    if 'timeout_seconds' in data:
        kwargs['timeout_seconds'] = _positive_number(data['timeout_seconds'], 'remote.timeout_seconds', float)
    if 'credentials_path' in data:
        if not isinstance(data['credentials_path'], str):
            raise ValueError("'credentials_path' in remote must be a path")
        kwargs['credentials_path'] = data['credentials_path']
    return RemoteConfig(**kwargs)


def _parse_enum(value, enum_cls, name: str):
    if not isinstance(value, str):
        raise ValueError(f"'{name}' must be a string")
    try:
        return enum_cls(value.lower())
    except ValueError:
        valid = [member.value for member in enum_cls]
        raise ValueError(f"'{name}' must be one of: {valid}")


def _positive_number(value, name: str, cast):
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ValueError(f"'{name}' must be > 0")
    return cast(value)
