"""Configuration loader for credcache.

Loads settings from a YAML file with built-in defaults. Supports environment
variable overrides using the CREDCACHE_ prefix with double-underscore
nesting (e.g., CREDCACHE_BACKEND__KIND=encrypted_file).
"""

from __future__ import annotations

import os
import pathlib
import sys
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Config sub-models
# ---------------------------------------------------------------------------

class ManagerConfig(BaseModel):
    # None defers to the platform rule, see insecure_fallback_default()
    allow_insecure_fallback: bool | None = None


class BackendConfig(BaseModel):
    kind: Literal["auto", "keychain", "keyring", "encrypted_file"] = "auto"
    keychain_command: str = "security"
    data_dir: str = "./data"
    fallback_file: str = "secrets.enc"
    fallback_passphrase: str = "credcache-default"

    @property
    def fallback_path(self) -> pathlib.Path:
        return pathlib.Path(self.data_dir) / self.fallback_file


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


# ---------------------------------------------------------------------------
# Top-level settings
# ---------------------------------------------------------------------------

class Settings(BaseModel):
    manager: ManagerConfig = Field(default_factory=ManagerConfig)
    backend: BackendConfig = Field(default_factory=BackendConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def allow_insecure_fallback(self) -> bool:
        if self.manager.allow_insecure_fallback is None:
            return insecure_fallback_default()
        return self.manager.allow_insecure_fallback


def insecure_fallback_default(platform: str | None = None, os_name: str | None = None) -> bool:
    """Unix-like platforms other than macOS may fall back to an insecure store."""
    platform = sys.platform if platform is None else platform
    os_name = os.name if os_name is None else os_name
    return os_name == "posix" and platform != "darwin"


# ---------------------------------------------------------------------------
# Deep merge helper
# ---------------------------------------------------------------------------

def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge *override* into *base*, returning a new dict."""
    merged = dict(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


# ---------------------------------------------------------------------------
# Environment variable overrides
# ---------------------------------------------------------------------------

_ENV_PREFIX = "CREDCACHE_"


def _coerce(value: str) -> Any:
    lowered = value.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    if lowered in ("null", "none"):
        return None
    return value


def _collect_env_overrides() -> dict[str, Any]:
    """Collect CREDCACHE_* env vars and build a nested dict.

    Double-underscore separates nesting levels.
    Example: CREDCACHE_BACKEND__KIND=keyring
    becomes  {"backend": {"kind": "keyring"}}

    Numbers are left as strings; pydantic coerces them per field.
    """
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(_ENV_PREFIX):
            continue
        parts = key[len(_ENV_PREFIX):].lower().split("__")
        current = overrides
        for part in parts[:-1]:
            current = current.setdefault(part, {})
        current[parts[-1]] = _coerce(value)
    return overrides


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

_BUILTIN_DEFAULTS_PATH = pathlib.Path(__file__).resolve().parents[3] / "config" / "credcache_defaults.yaml"


def load_settings(
    config_path: pathlib.Path | None = None,
) -> Settings:
    """Load settings with layered precedence: defaults < file < env vars.

    Parameters
    ----------
    config_path:
        Path to a YAML config file. If ``None``, the built-in defaults file
        is used; if the file does not exist, model defaults apply.
    """
    base: dict[str, Any] = {}

    path = config_path if config_path is not None else _BUILTIN_DEFAULTS_PATH
    if path.exists():
        with open(path) as fh:
            file_data = yaml.safe_load(fh)
        if isinstance(file_data, dict):
            base = _deep_merge(base, file_data)

    env_overrides = _collect_env_overrides()
    if env_overrides:
        base = _deep_merge(base, env_overrides)

    return Settings(**base)
