"""
Configuration: loads settings from .livepatch.yaml, environment variables,
and built-in defaults (in that priority order: CLI args > env > YAML > defaults).
"""

import os

import yaml


_DEFAULTS = {
    "live_capability": "auto",
    "default_module": "__livepatch__",
    "diff_backend": "difflib",
    "diff_context": 3,
    "log_dir": ".livepatch/logs",
    "export_dir": ".livepatch/exports",
    "watch_debounce_seconds": 0.5,
}

# Config file search locations
_CONFIG_FILENAMES = [".livepatch.yaml", ".livepatch.yml"]

_CAPABILITY_MODES = ("auto", "replaceable", "additive", "off")
_DIFF_BACKENDS = ("difflib", "naive")


def _find_config_file(explicit_path: str | None = None) -> str | None:
    """Find the config file. Checks explicit path, CWD, then user home."""
    if explicit_path:
        if os.path.isfile(explicit_path):
            return explicit_path
        return None

    # Search CWD first, then home directory
    search_dirs = [os.getcwd(), os.path.expanduser("~")]
    for d in search_dirs:
        for name in _CONFIG_FILENAMES:
            path = os.path.join(d, name)
            if os.path.isfile(path):
                return path
    return None


def _load_yaml(path: str) -> dict:
    """Load YAML file, returns empty dict on failure."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        return data if isinstance(data, dict) else {}
    except (OSError, yaml.YAMLError):
        return {}


class Config:
    """Live patcher configuration.

    Settings are resolved in priority order:
    1. CLI arguments (handled by caller)
    2. Environment variables
    3. .livepatch.yaml config file
    4. Built-in defaults
    """

    def __init__(self, yaml_data: dict | None = None):
        yd = yaml_data or {}

        # Helper: env var > yaml > default
        def _get(env_key: str, yaml_key: str, default, cast=str):
            env_val = os.getenv(env_key)
            if env_val is not None:
                return cast(env_val)
            yaml_val = yd.get(yaml_key)
            if yaml_val is not None:
                return cast(yaml_val)
            return default

        def _choice(value: str, allowed: tuple[str, ...], default: str) -> str:
            value = value.strip().lower()
            return value if value in allowed else default

        self.LIVE_CAPABILITY = _choice(
            _get("LIVEPATCH_CAPABILITY", "live_capability",
                 _DEFAULTS["live_capability"]),
            _CAPABILITY_MODES, _DEFAULTS["live_capability"])

        # Module that hosts units patched without a namespace
        self.DEFAULT_MODULE = _get("LIVEPATCH_DEFAULT_MODULE", "default_module",
                                   _DEFAULTS["default_module"])

        self.DIFF_BACKEND = _choice(
            _get("LIVEPATCH_DIFF_BACKEND", "diff_backend",
                 _DEFAULTS["diff_backend"]),
            _DIFF_BACKENDS, _DEFAULTS["diff_backend"])
        self.DIFF_CONTEXT = _get("LIVEPATCH_DIFF_CONTEXT", "diff_context",
                                 _DEFAULTS["diff_context"], cast=int)

        self.LOG_DIR = _get("LIVEPATCH_LOG_DIR", "log_dir", _DEFAULTS["log_dir"])
        self.EXPORT_DIR = _get("LIVEPATCH_EXPORT_DIR", "export_dir",
                               _DEFAULTS["export_dir"])

        # Watcher debounce (editor auto-saves fire several events)
        self.WATCH_DEBOUNCE_SECONDS = _get("LIVEPATCH_WATCH_DEBOUNCE",
                                           "watch_debounce_seconds",
                                           _DEFAULTS["watch_debounce_seconds"],
                                           cast=float)

    @property
    def live_enabled(self) -> bool:
        """False when live redefinition was switched off by configuration."""
        return self.LIVE_CAPABILITY != "off"

    @classmethod
    def load(cls, config_path: str | None = None) -> "Config":
        """Load config from YAML file (if found) + env vars + defaults."""
        path = _find_config_file(config_path)
        yaml_data = _load_yaml(path) if path else {}
        return cls(yaml_data)
