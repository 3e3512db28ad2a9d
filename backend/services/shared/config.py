"""Configuration manager for the audio analysis service.

Defaults live in ``backend/config/settings.yaml``; secrets and deployment
overrides come from the environment, in priority order:
  1. <repo>/.env            (lowest priority)
  2. Environment variables  (highest priority)
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

_config_instance: Optional["Config"] = None

REPO_ROOT = Path(__file__).parent.parent.parent.parent
DEFAULT_SETTINGS = REPO_ROOT / "backend" / "config" / "settings.yaml"
DEFAULT_PORT = 3000


class Config:
    """Dot-notation configuration with env override."""

    def __init__(self, config_path: str):
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        with open(path) as f:
            self._data: dict = yaml.safe_load(f)
        if not isinstance(self._data, dict):
            raise ValueError(f"Config file must be a YAML mapping, got: {type(self._data)}")
        self._load_env()

    # ── private ──────────────────────────────────────────────────────────────

    def _load_env(self) -> None:
        """Load <repo>/.env without clobbering variables already set."""
        local_env = REPO_ROOT / ".env"
        if local_env.exists():
            load_dotenv(local_env, override=False)

    # ── public ───────────────────────────────────────────────────────────────

    def get(self, key: str, default: Any = None) -> Any:
        """Dot-notation access into the YAML tree.

        Example::

            config.get("sampler.interval")         # 0.1
            config.get("remote.url_template")      # "https://...{asset_id}"
            config.get("missing.key", "fallback")  # "fallback"
        """
        keys = key.split(".")
        val: Any = self._data
        for k in keys:
            if isinstance(val, dict) and k in val:
                val = val[k]
            else:
                return default
        return val

    def get_path(self, key: str) -> Path:
        """Return a config value as a Path object.

        Relative values are resolved against the repository root.

        Raises KeyError if the key does not exist.
        """
        val = self.get(key)
        if val is None:
            raise KeyError(f"Config key not found: {key}")
        path = Path(str(val))
        if not path.is_absolute():
            path = REPO_ROOT / path
        return path

    def get_env(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Return an environment variable value."""
        return os.environ.get(name, default)

    def port(self) -> int:
        """Listening port: ``$PORT`` if set, else ``server.port``, else 3000.

        Raises:
            ValueError: If ``$PORT`` is set but not an integer.
        """
        raw = self.get_env("PORT")
        if raw:
            try:
                return int(raw)
            except ValueError:
                raise ValueError(f"PORT must be an integer, got: {raw!r}") from None
        return int(self.get("server.port", DEFAULT_PORT))


# ── module-level singleton ────────────────────────────────────────────────────


def get_config(config_path: Optional[str] = None) -> Config:
    """Return the singleton Config instance.

    The first call loads ``config_path`` (or the bundled settings.yaml when
    omitted). Subsequent calls return the existing instance.
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = Config(config_path or str(DEFAULT_SETTINGS))
    return _config_instance


def reset_config() -> None:
    """Clear the singleton (mainly for testing)."""
    global _config_instance
    _config_instance = None
