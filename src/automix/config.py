"""
Configuration management for AutoMix-Headless.

Loads and validates a TOML config against strict bounds.
All tunable parameters are bounded and validated at startup.
"""

import copy
import os
from pathlib import Path
from typing import Dict, Any, Optional
import toml
import logging

logger = logging.getLogger(__name__)

TRANSITION_STYLES = ("auto", "crossfade", "beatmatch", "drop", "cut")


class ConfigError(Exception):
    """Raised when config validation fails."""
    pass


class Config:
    """Configuration loader and validator."""

    PARAM_BOUNDS = {
        "automix": {
            "transition_time_seconds": (1, 64),
        },
        "analysis": {
            "max_analysis_seconds": (5, 120),
            "lowpass_cutoff_hz": (50.0, 500.0),
            "threshold_k": (0.5, 4.0),
            "min_onset_interval_seconds": (0.02, 0.5),
            "match_tolerance_seconds": (0.005, 0.2),
            "segment_beats": (1, 32),
            "fallback_bpm": (60.0, 200.0),
        },
        "scoring": {
            "jitter_max": (0.0, 20.0),
            "drop_window_seconds": (0.0, 600.0),
            "repeat_window": (0, 100),
        },
        "scheduler": {
            "decision_interval_ms": (100, 5000),
            "ramp_interval_ms": (10, 1000),
            "clear_grace_ms": (0, 5000),
            "default_outro_seconds": (1.0, 120.0),
        },
    }

    DEFAULT_CONFIG = {
        "config_version": "1.0",
        "automix": {
            "enabled": False,
            "transition_time_seconds": 16,
            "transition_style": "auto",
            "smart_sync": True,
            "energy_match": True,
            "harmonic": True,
        },
        "analysis": {
            "max_analysis_seconds": 30,
            "lowpass_cutoff_hz": 150.0,
            "threshold_k": 1.5,
            "min_onset_interval_seconds": 0.1,
            "match_tolerance_seconds": 0.05,
            "segment_beats": 8,
            "fallback_bpm": 128.0,
        },
        "scoring": {
            "jitter_max": 10.0,
            "drop_window_seconds": 60.0,
            "repeat_window": 5,
        },
        "scheduler": {
            "decision_interval_ms": 500,
            "ramp_interval_ms": 100,
            "clear_grace_ms": 500,
            "default_outro_seconds": 16.0,
        },
    }

    def __init__(self, config_dict: Dict[str, Any]):
        """Initialize config from dictionary."""
        self.data = config_dict
        self._validate()

    @classmethod
    def default(cls) -> "Config":
        """Config built purely from DEFAULT_CONFIG."""
        return cls(copy.deepcopy(cls.DEFAULT_CONFIG))

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "Config":
        """
        Load config from TOML file.

        Args:
            config_path: Path to automix.toml. If None, uses AUTOMIX_CONFIG_PATH env var
                        or defaults to configs/automix.toml.

        Returns:
            Config instance.

        Raises:
            ConfigError: If config is invalid or unreadable.
        """
        if config_path is None:
            config_path = os.getenv("AUTOMIX_CONFIG_PATH", "configs/automix.toml")

        config_path = Path(config_path)

        if not config_path.exists():
            logger.warning(f"Config file not found: {config_path}. Using defaults.")
            return cls.default()

        try:
            config_dict = toml.load(config_path)
        except Exception as e:
            raise ConfigError(f"Failed to load config from {config_path}: {e}")

        logger.info(f"Loaded config from {config_path}")
        return cls(config_dict)

    def _validate(self) -> None:
        """
        Validate all config parameters against PARAM_BOUNDS.

        Raises:
            ConfigError: If any parameter is out of bounds.
        """
        for section, defaults in self.DEFAULT_CONFIG.items():
            if not isinstance(defaults, dict):
                continue

            if section not in self.data:
                logger.warning(f"Missing config section: {section}. Using defaults.")
                self.data[section] = copy.deepcopy(defaults)
                continue

            section_data = self.data[section]

            for param, default_val in defaults.items():
                if param not in section_data:
                    logger.warning(f"Missing param {section}.{param}. Using default: {default_val}")
                    section_data[param] = default_val

            for param, (min_val, max_val) in self.PARAM_BOUNDS.get(section, {}).items():
                value = section_data[param]
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    raise ConfigError(f"Parameter {section}.{param}={value!r} is not numeric")
                if not (min_val <= value <= max_val):
                    raise ConfigError(
                        f"Parameter {section}.{param}={value} out of bounds "
                        f"[{min_val}, {max_val}]"
                    )

        style = self.data["automix"]["transition_style"]
        if style not in TRANSITION_STYLES:
            raise ConfigError(
                f"Parameter automix.transition_style={style!r} must be one of {TRANSITION_STYLES}"
            )

        logger.debug("✅ Config validation passed")

    def get(self, section: str, param: str, default: Any = None) -> Any:
        """Get a config parameter safely."""
        return self.data.get(section, {}).get(param, default)

    def __getitem__(self, section: str) -> Dict[str, Any]:
        """Allow dict-like access: config["automix"]"""
        return self.data.get(section, {})

    def __repr__(self) -> str:
        version = self.data.get('config_version', 'unknown')
        return f"Config(version={version})"
