"""Defaults management for responsive image options"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from models.options import DEFAULT_QUALITY, DEFAULT_SIZES, DEFAULT_WIDTHS, clamp_quality, coerce_bool, coerce_widths

logger = logging.getLogger("ResponsiveImages")

# Configuration paths
CONFIG_DIR = Path.home() / ".config" / "responsive-images-mcp"
CONFIG_FILE = CONFIG_DIR / "config.json"

DEFAULT_KEYS = ("lazy", "webp", "sizes", "widths", "quality")

ENV_VARIABLES = {
    "lazy": "RESPONSIVE_IMAGES_LAZY",
    "webp": "RESPONSIVE_IMAGES_WEBP",
    "sizes": "RESPONSIVE_IMAGES_SIZES",
    "widths": "RESPONSIVE_IMAGES_WIDTHS",
    "quality": "RESPONSIVE_IMAGES_QUALITY",
}


def _normalize_value(key: str, value: Any) -> Any:
    if key in ("lazy", "webp"):
        return coerce_bool(value, True)
    if key == "widths":
        return coerce_widths(value)
    if key == "quality":
        return clamp_quality(value)
    return str(value)


class DefaultsManager:
    """Manages default options with precedence: per-call > runtime > config > env > hardcoded"""

    def __init__(self, config_file: Optional[Path] = None):
        self.config_file = Path(config_file) if config_file else CONFIG_FILE
        self._runtime_defaults: Dict[str, Any] = {}
        self._config_defaults = self._load_config_defaults()
        self._hardcoded_defaults: Dict[str, Any] = {
            "lazy": True,
            "webp": True,
            "sizes": DEFAULT_SIZES,
            "widths": list(DEFAULT_WIDTHS),
            "quality": DEFAULT_QUALITY,
        }

    def _load_config_defaults(self) -> Dict[str, Any]:
        """Load defaults from config file"""
        if not self.config_file.exists():
            return {}
        try:
            with open(self.config_file, "r", encoding="utf-8") as f:
                config = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning(f"Failed to load config file {self.config_file}: {e}")
            return {}
        defaults = config.get("defaults", {}) if isinstance(config, dict) else {}
        if not isinstance(defaults, dict):
            return {}
        return {key: _normalize_value(key, value) for key, value in defaults.items() if key in DEFAULT_KEYS}

    def _get_env_defaults(self) -> Dict[str, Any]:
        """Load defaults from environment variables"""
        defaults = {}
        for key, variable in ENV_VARIABLES.items():
            value = os.getenv(variable)
            if value:
                defaults[key] = _normalize_value(key, value)
        return defaults

    def get_default(self, key: str, provided_value: Any = None) -> Any:
        """Get default value with precedence: provided > runtime > config > env > hardcoded"""
        if provided_value is not None:
            return provided_value
        if key in self._runtime_defaults:
            return self._runtime_defaults[key]
        if key in self._config_defaults:
            return self._config_defaults[key]
        env_defaults = self._get_env_defaults()
        if key in env_defaults:
            return env_defaults[key]
        return self._hardcoded_defaults.get(key)

    def get_all_defaults(self) -> Dict[str, Any]:
        """Get all effective defaults (merged from all sources)"""
        result = dict(self._hardcoded_defaults)
        result["widths"] = list(result["widths"])
        result.update(self._get_env_defaults())
        result.update(self._config_defaults)
        result.update(self._runtime_defaults)
        return result

    def merge(self, overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Effective defaults with per-call overrides applied on top (None values ignored)."""
        merged = self.get_all_defaults()
        for key, value in (overrides or {}).items():
            if value is not None:
                merged[key] = value
        return merged

    def set_defaults(self, defaults: Dict[str, Any]) -> Dict[str, Any]:
        """Set runtime defaults. Returns validation errors if any."""
        unknown = sorted(key for key in defaults if key not in DEFAULT_KEYS)
        if unknown:
            return {"errors": [f"Unknown default option(s): {unknown}. Allowed: {list(DEFAULT_KEYS)}"]}

        normalized = {key: _normalize_value(key, value) for key, value in defaults.items()}
        if "widths" in normalized and not normalized["widths"]:
            return {"errors": ["widths must contain at least one positive integer"]}

        self._runtime_defaults.update(normalized)
        return {"success": True, "updated": normalized}

    def persist_defaults(self, defaults: Dict[str, Any]) -> Dict[str, Any]:
        """Persist defaults to config file"""
        self.config_file.parent.mkdir(parents=True, exist_ok=True)

        config: Dict[str, Any] = {}
        if self.config_file.exists():
            try:
                with open(self.config_file, "r", encoding="utf-8") as f:
                    config = json.load(f)
            except (json.JSONDecodeError, IOError):
                config = {}
        if not isinstance(config, dict):
            config = {}

        config.setdefault("defaults", {})
        config["defaults"].update(
            {key: _normalize_value(key, value) for key, value in defaults.items() if key in DEFAULT_KEYS}
        )

        try:
            with open(self.config_file, "w", encoding="utf-8") as f:
                json.dump(config, f, indent=2)
            self._config_defaults = self._load_config_defaults()
            return {"success": True, "persisted": defaults}
        except IOError as e:
            return {"error": f"Failed to write config file: {e}"}
