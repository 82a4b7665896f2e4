"""Configuration loader for voxcap.

Loads config.py from the working directory (or a parent), falling back to defaults.
"""

import importlib.util
import sys
from pathlib import Path
from types import ModuleType
from typing import Any

from . import defaults


class Config:
    """Configuration object with attribute access."""

    def __init__(self, config_path: Path | None = None) -> None:
        for key in defaults.CONFIG_KEYS:
            value = getattr(defaults, key)
            if isinstance(value, dict):
                value = dict(value)
            setattr(self, key, value)

        self.source: Path | None = config_path or self._find_config_file()
        if self.source is not None:
            self._load_user_config(self.source)

    def _load_user_config(self, config_path: Path) -> None:
        """Override defaults with values from a user config.py."""
        user_config = self._load_module_from_path(config_path)

        for key in defaults.CONFIG_KEYS:
            if hasattr(user_config, key):
                setattr(self, key, getattr(user_config, key))

    def _find_config_file(self) -> Path | None:
        """Find config.py in current dir or parents."""
        current = Path.cwd()
        search_paths = [current, *current.parents]

        for path in search_paths:
            config_path = path / "config.py"
            if config_path.exists():
                return config_path

        return None

    def _load_module_from_path(self, path: Path) -> ModuleType:
        """Load a Python module from a file path."""
        spec = importlib.util.spec_from_file_location("voxcap_user_config", path)
        if spec is None or spec.loader is None:
            raise RuntimeError(f"Could not load config from {path}")

        module = importlib.util.module_from_spec(spec)
        sys.modules["voxcap_user_config"] = module
        spec.loader.exec_module(module)
        return module

    def get(self, key: str, default: Any = None) -> Any:
        """Get config value with optional default."""
        return getattr(self, key, default)

    def get_locale(self, language: str) -> str:
        """Get the recognizer locale tag for a language ("primary"/"secondary")."""
        return self.LANGUAGE_LOCALES.get(language, defaults.LANGUAGE_LOCALES["primary"])

    def validate(self) -> list[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if not isinstance(self.LANGUAGE_LOCALES, dict):
            errors.append("LANGUAGE_LOCALES must be a dict")
        else:
            for language in ("primary", "secondary"):
                if language not in self.LANGUAGE_LOCALES:
                    errors.append(f"LANGUAGE_LOCALES missing '{language}'")

        if self.VOICE_LANGUAGE not in ("primary", "secondary"):
            errors.append("VOICE_LANGUAGE must be 'primary' or 'secondary'")

        if self.PREFERRED_ENGINE not in ("continuous", "clip"):
            errors.append("PREFERRED_ENGINE must be 'continuous' or 'clip'")

        if self.VAD_SILENCE_THRESHOLD_DB > 0:
            errors.append("VAD_SILENCE_THRESHOLD_DB must be <= 0 dB")

        for key in (
            "VAD_SILENCE_DURATION_MS",
            "VAD_FFT_SIZE",
            "AUDIO_SAMPLE_RATE",
            "AUDIO_CHUNK_MS",
            "TRANSCRIBE_TIMEOUT_S",
            "RECOGNIZER_NO_SPEECH_TIMEOUT_S",
            "RECOGNIZER_PHRASE_LIMIT_S",
        ):
            if getattr(self, key) <= 0:
                errors.append(f"{key} must be positive")

        if not self.TRANSCRIBE_URL:
            errors.append("TRANSCRIBE_URL is not set")

        return errors

    def __repr__(self) -> str:
        return f"<Config source={self.source}>"


# Global config instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def reload_config() -> Config:
    """Reload configuration from disk."""
    global _config
    _config = Config()
    return _config
