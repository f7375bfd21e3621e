from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, cast

import yaml

from .cache import DEFAULT_CACHE_EXPIRY
from .database import DEFAULT_LABEL
from .retry import DEFAULT_BASE_SLEEP, DEFAULT_TRIES, RetryConfig

_TRUTHY = {"1", "true", "yes", "on"}


class ConfigError(RuntimeError):
    pass


@dataclass
class DBConfig:
    repo: str | None = None
    label: str = DEFAULT_LABEL
    cache_expiry: float = DEFAULT_CACHE_EXPIRY
    init_label: bool = True
    # Retry configuration
    retry_tries: int = DEFAULT_TRIES
    retry_sleep: float = DEFAULT_BASE_SLEEP
    retry_exponential: bool = False
    # Logging configuration
    logging_json_enabled: bool = False
    logging_level: str = "INFO"
    # GitHub App configuration
    github_app_id: str | None = None
    github_app_installation_id: str | None = None
    github_app_key: str | None = None
    load_dotenv: bool = True

    def retry_config(self) -> RetryConfig:
        return RetryConfig(
            tries=self.retry_tries,
            base_sleep=self.retry_sleep,
            exponential=self.retry_exponential,
        )


def _resolve_env_var(value: Any) -> Any:
    """Resolve environment variable if value starts with $."""
    if isinstance(value, str) and value.startswith('$'):
        return os.getenv(value[1:], None)
    return value


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY
    return bool(value)


def _coerce(name: str, value: Any, kind: type) -> Any:
    try:
        coerced = kind(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f'Invalid value for {name}: {value!r}') from exc
    if kind in (int, float) and coerced < 0:
        raise ConfigError(f'{name} must not be negative: {value!r}')
    return coerced


def load_config(path: str | Path) -> DBConfig:
    p = Path(path)
    if not p.exists():
        raise ConfigError(f'Configuration file not found: {p}')
    try:
        raw_any = yaml.safe_load(p.read_text(encoding='utf-8')) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f'Invalid YAML in {p}: {exc}') from exc
    if not isinstance(raw_any, dict):
        raise ConfigError(f'Configuration root must be a mapping: {p}')
    raw = cast(dict[str, Any], raw_any)
    gh = cast(dict[str, Any], raw.get('github', {}) or {})
    db = cast(dict[str, Any], raw.get('database', {}) or {})
    retry = cast(dict[str, Any], raw.get('retry', {}) or {})
    logging_config = cast(dict[str, Any], raw.get('logging', {}) or {})
    github_app = cast(dict[str, Any], gh.get('app', {}) or {})

    return DBConfig(
        repo=_resolve_env_var(gh.get('repo')),
        label=str(db.get('label', DEFAULT_LABEL)),
        cache_expiry=_coerce('database.cache_expiry', db.get('cache_expiry', DEFAULT_CACHE_EXPIRY), float),
        init_label=_as_bool(db.get('init_label', True)),
        retry_tries=_coerce('retry.tries', retry.get('tries', DEFAULT_TRIES), int),
        retry_sleep=_coerce('retry.sleep', retry.get('sleep', DEFAULT_BASE_SLEEP), float),
        retry_exponential=_as_bool(retry.get('exponential_backoff', False)),
        logging_json_enabled=_as_bool(logging_config.get('json_enabled', False)),
        logging_level=str(logging_config.get('level', 'INFO')),
        # GitHub App configuration with environment variable resolution
        github_app_id=_resolve_env_var(github_app.get('app_id')),
        github_app_installation_id=_resolve_env_var(github_app.get('installation_id')),
        github_app_key=_resolve_env_var(github_app.get('private_key')),
        load_dotenv=_as_bool(raw.get('load_dotenv', True)),
    )


def config_from_env(base: DBConfig | None = None) -> DBConfig:
    """Overlay ``ISSUE_DB_*`` environment variables onto ``base``."""
    cfg = base or DBConfig()
    env = os.environ
    if env.get('ISSUE_DB_REPO'):
        cfg.repo = env['ISSUE_DB_REPO']
    if env.get('ISSUE_DB_LABEL'):
        cfg.label = env['ISSUE_DB_LABEL']
    if env.get('ISSUE_DB_CACHE_EXPIRY'):
        cfg.cache_expiry = _coerce('ISSUE_DB_CACHE_EXPIRY', env['ISSUE_DB_CACHE_EXPIRY'], float)
    if env.get('ISSUE_DB_RETRIES'):
        cfg.retry_tries = _coerce('ISSUE_DB_RETRIES', env['ISSUE_DB_RETRIES'], int)
    if env.get('ISSUE_DB_SLEEP'):
        cfg.retry_sleep = _coerce('ISSUE_DB_SLEEP', env['ISSUE_DB_SLEEP'], float)
    if env.get('ISSUE_DB_EXPONENTIAL_BACKOFF'):
        cfg.retry_exponential = _as_bool(env['ISSUE_DB_EXPONENTIAL_BACKOFF'])
    if env.get('LOG_LEVEL'):
        cfg.logging_level = env['LOG_LEVEL'].upper()
    if env.get('ISSUE_DB_LOG_JSON'):
        cfg.logging_json_enabled = _as_bool(env['ISSUE_DB_LOG_JSON'])
    return cfg


__all__ = ["ConfigError", "DBConfig", "load_config", "config_from_env"]
