"""
Configurator settings

Timing and logging knobs loaded from an optional JSON file. A missing or
invalid file falls back to the defaults.
"""

import json
import logging
from dataclasses import dataclass, asdict, fields
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class ConfiguratorSettings:
    """Configuration for auto-save and quote loading behavior."""
    # Auto-save
    autosave_interval: float = 30.0  # seconds

    # Bounded retry when loading a freshly cloned quote
    clone_load_attempts: int = 3
    clone_load_initial_delay: float = 0.5  # seconds
    clone_load_backoff: float = 2.0  # Exponential backoff factor

    # Logging
    log_level: str = "INFO"
    log_dir: Optional[str] = None

    @property
    def log_level_value(self) -> int:
        return getattr(logging, self.log_level.upper(), logging.INFO)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConfiguratorSettings":
        """Create from dictionary, ignoring unknown keys"""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown settings: {', '.join(sorted(unknown))}")
        settings = cls(**{k: v for k, v in data.items() if k in known})
        is_valid, error_msg = settings.validate()
        if not is_valid:
            raise ValueError(error_msg)
        return settings

    def validate(self) -> Tuple[bool, Optional[str]]:
        """
        Check value ranges

        Returns:
            Tuple[bool, Optional[str]]: (is_valid, error_message)
        """
        if self.autosave_interval <= 0:
            return False, f"autosave_interval must be positive, got {self.autosave_interval}"
        if self.clone_load_attempts < 1:
            return False, f"clone_load_attempts must be at least 1, got {self.clone_load_attempts}"
        if self.clone_load_initial_delay < 0:
            return False, f"clone_load_initial_delay must not be negative, got {self.clone_load_initial_delay}"
        if self.clone_load_backoff < 1:
            return False, f"clone_load_backoff must be at least 1, got {self.clone_load_backoff}"
        if self.log_level.upper() not in LOG_LEVELS:
            return False, f"Unknown log_level: {self.log_level}"
        return True, None


def load_settings(filepath: Optional[Union[str, Path]] = None) -> ConfiguratorSettings:
    """
    Load settings from a JSON file.

    Args:
        filepath: Path to JSON settings file, None for defaults

    Returns:
        Loaded settings, or defaults when the file is missing or invalid
    """
    if filepath is None:
        return ConfiguratorSettings()

    path = Path(filepath)
    if not path.exists():
        logger.warning(f"Settings file not found: {filepath}, using defaults")
        return ConfiguratorSettings()

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError("settings file must contain a JSON object")
        settings = ConfiguratorSettings.from_dict(data)
    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON in settings file {filepath} (line {e.lineno}): {e.msg}, using defaults")
        return ConfiguratorSettings()
    except (TypeError, ValueError) as e:
        logger.error(f"Invalid settings in {filepath}: {e}, using defaults")
        return ConfiguratorSettings()

    logger.info(f"Loaded settings from: {filepath}")
    return settings


def save_settings(settings: ConfiguratorSettings, filepath: Union[str, Path]) -> bool:
    """Save settings as JSON"""
    path = Path(filepath)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(settings.to_dict(), f, indent=2)
    except OSError as e:
        logger.error(f"Failed to save settings: {e}")
        return False
    logger.info(f"Saved settings to: {path}")
    return True
