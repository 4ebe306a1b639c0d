"""Provides functions for loading cache settings and building caches from them.

Supports loading from a YAML configuration file, a .env file and environment
variables prefixed with ``XFCACHE_``. Loading returns an explicit, immutable
CacheSettings object; nothing is kept in module globals, so several caches
with different settings can live in one process.
"""

import logging
import math
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from dotenv import dotenv_values

from xfcache.core.cache_manager import CacheManager
from xfcache.core.expiration_policy import DEFAULT_BETA, ExpirationPolicy
from xfcache.domain.errors import ConfigurationError
from xfcache.domain.interfaces.store import Store
from xfcache.infrastructure.store.disk_cache_store import DiskCacheStore
from xfcache.infrastructure.store.filesystem_store import FilesystemStore

logger = logging.getLogger(__name__)

# --- Configuration Constants ---
DEFAULT_CONFIG_DIR = Path.home() / ".xfcache"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"
ENV_FILE_NAME = ".env"
ENV_PREFIX = "XFCACHE_"
BACKENDS = ("filesystem", "diskcache")


@dataclass(frozen=True)
class CacheSettings:
    """Construction-time configuration of one cache."""
    cache_dir: Path = DEFAULT_CONFIG_DIR / "store"
    namespace: str = ""
    backend: str = "filesystem"
    default_beta: float = DEFAULT_BETA
    default_lifetime: Optional[float] = None   # None = values without declared expiry never expire
    lock_keys: bool = False
    strict_persistence: bool = False
    log_level: str = "INFO"
    log_file: Optional[str] = None


def load_settings(
    config_file: Optional[Path] = DEFAULT_CONFIG_FILE,
    env_file: Optional[Path] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> CacheSettings:
    """Loads settings from YAML, .env, environment and explicit overrides.

    Priority order (highest to lowest):
    1. Explicit overrides (e.g., CLI options); None values are ignored
    2. Environment Variables (XFCACHE_<NAME>)
    3. .env file
    4. YAML configuration file
    5. CacheSettings defaults

    Args:
        config_file: Path to the YAML configuration file (skipped if missing or None).
        env_file: Path to the .env file (searches upwards from cwd if None).
        overrides: Values that win over every other source.
        environ: Environment mapping, os.environ when omitted.

    Raises:
        ConfigurationError: If a value cannot be converted or is out of range.
    """
    raw: Dict[str, Any] = {}

    # 1. YAML file (Lowest priority)
    if config_file is not None and Path(config_file).exists():
        try:
            with open(config_file, "r") as f:
                yaml_config = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to load or parse YAML config {config_file}: {e}") from e
        if isinstance(yaml_config, dict):
            section = yaml_config.get("cache")
            raw.update(section if isinstance(section, dict) else yaml_config)
            logger.info(f"Loaded configuration from YAML: {config_file}")
        elif yaml_config is not None:
            logger.warning(f"YAML config file {config_file} did not contain a dictionary.")
    else:
        logger.debug(f"YAML config file not found: {config_file}")

    # 2. .env file
    dotenv_path = env_file or find_dotenv_path()
    if dotenv_path:
        raw.update(_prefixed(dotenv_values(dotenv_path)))
        logger.debug(f"Loaded environment values from: {dotenv_path}")

    # 3. Environment variables
    raw.update(_prefixed(os.environ if environ is None else environ))

    # 4. Overrides
    if overrides:
        raw.update({k: v for k, v in overrides.items() if v is not None})

    return _build_settings(raw)


def _prefixed(values: Mapping[str, Optional[str]]) -> Dict[str, Any]:
    """Picks XFCACHE_* variables and strips the prefix, coercing common types."""
    known = {f.name for f in fields(CacheSettings)}
    result = {}
    for env_key, value in values.items():
        if not env_key.upper().startswith(ENV_PREFIX) or value is None:
            continue
        name = env_key[len(ENV_PREFIX):].lower()
        if name in known:
            result[name] = coerce_value(value)
    return result


def coerce_value(value: Any) -> Any:
    """Converts string values from the environment to bool/None/int/float where they look like one."""
    if not isinstance(value, str):
        return value
    lowered = value.strip().lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    if lowered in ("none", "null", "never", ""):
        return None
    try:
        if "." in lowered or lowered in ("inf", "infinity") or "e" in lowered:
            return float(lowered)
        return int(lowered)
    except (ValueError, TypeError):
        return value


def _build_settings(raw: Mapping[str, Any]) -> CacheSettings:
    known = {f.name for f in fields(CacheSettings)}
    unknown = sorted(set(raw) - known)
    if unknown:
        logger.debug(f"Ignoring unknown cache settings: {unknown}")
    values = {k: coerce_value(v) for k, v in raw.items() if k in known}

    settings = CacheSettings()
    try:
        if "cache_dir" in values:
            settings = replace(settings, cache_dir=Path(str(values["cache_dir"])).expanduser())
        if "namespace" in values:
            settings = replace(settings, namespace="" if values["namespace"] is None else str(values["namespace"]))
        if "backend" in values:
            backend = str(values["backend"]).lower()
            if backend not in BACKENDS:
                raise ConfigurationError(f"Unknown backend '{backend}', expected one of {BACKENDS}")
            settings = replace(settings, backend=backend)
        if values.get("default_beta") is not None:
            beta = float(values["default_beta"])
            if math.isnan(beta) or beta < 0:
                raise ConfigurationError(f"default_beta must be >= 0, got {beta}")
            settings = replace(settings, default_beta=beta)
        if "default_lifetime" in values:
            lifetime = values["default_lifetime"]
            if lifetime is not None:
                lifetime = float(lifetime)
                if math.isnan(lifetime) or lifetime <= 0:
                    raise ConfigurationError(f"default_lifetime must be > 0 seconds or 'never', got {lifetime}")
            settings = replace(settings, default_lifetime=lifetime)
        for flag in ("lock_keys", "strict_persistence"):
            if values.get(flag) is not None:
                settings = replace(settings, **{flag: _as_bool(flag, values[flag])})
        if values.get("log_level") is not None:
            settings = replace(settings, log_level=str(values["log_level"]).upper())
        if "log_file" in values:
            settings = replace(settings, log_file=None if values["log_file"] is None else str(values["log_file"]))
    except ConfigurationError:
        raise
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid cache setting: {e}") from e
    return settings


def _as_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    raise ConfigurationError(f"Setting '{name}' must be true or false, got {value!r}")


def find_dotenv_path() -> Optional[Path]:
    """Searches for the .env file upwards from the current directory."""
    cwd = Path.cwd()
    for path in [cwd] + list(cwd.parents):
        env_path = path / ENV_FILE_NAME
        if env_path.is_file():
            return env_path
    return None


# --- Composition helpers ---

def build_store(settings: CacheSettings) -> Store:
    """Creates the storage backend named by settings.backend."""
    if settings.backend == "diskcache":
        return DiskCacheStore(settings.cache_dir, namespace=settings.namespace)
    return FilesystemStore(settings.cache_dir, namespace=settings.namespace)


def build_cache(settings: CacheSettings, store: Optional[Store] = None, **kwargs: Any) -> CacheManager:
    """Creates a CacheManager configured from settings.

    Extra keyword arguments (listeners, clock, ...) are passed to CacheManager.
    """
    return CacheManager(
        store or build_store(settings),
        policy=ExpirationPolicy(default_beta=settings.default_beta),
        default_lifetime=settings.default_lifetime,
        lock_keys=settings.lock_keys,
        strict_persistence=settings.strict_persistence,
        **kwargs,
    )
