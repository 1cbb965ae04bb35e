import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import devreload.settings as default_settings

log = logging.getLogger(__name__)


class MergedSettings:
    """
    Merges the default settings with JSON and programmatic overrides.

    This class provides a unified, attribute-based access point for all
    configuration. It follows a clear precedence:
    1. Base values from `settings.py` (which already honour `.env`).
    2. Overrides from `devreload.json` for settings in `MODIFIABLE_SETTINGS`.
    3. Programmatic overrides passed to the constructor, for any known setting.
    """

    def __init__(
        self,
        overrides_path: Optional[Path] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Initializes the settings object by loading defaults and overrides.

        :param overrides_path: JSON overrides file; defaults to `OVERRIDES_JSON_PATH`.
        :param overrides: Explicit values that take precedence over everything else.
        """
        self._load_defaults()
        if overrides_path is not None:
            self.OVERRIDES_JSON_PATH = Path(overrides_path)

        self._load_overrides()
        for key, value in (overrides or {}).items():
            if not hasattr(self, key):
                raise AttributeError(f"Unknown setting '{key}'.")
            self._apply(key, value)

    def _load_defaults(self) -> None:
        """Loads all uppercase attributes from the settings module as defaults."""
        for key in dir(default_settings):
            if key.isupper():
                setattr(self, key, getattr(default_settings, key))

    def _apply(self, key: str, value: Any) -> None:
        # Coerce path strings back to Path objects if necessary
        original_value = getattr(self, key)
        if isinstance(original_value, Path) and not isinstance(value, Path):
            value = Path(value)
        setattr(self, key, value)

    def _load_overrides(self) -> None:
        """
        Loads and applies settings from the overrides JSON file.

        Only keys listed in `MODIFIABLE_SETTINGS` are applied.
        """
        if not self.OVERRIDES_JSON_PATH.exists():
            return

        try:
            with self.OVERRIDES_JSON_PATH.open('r') as f:
                overrides = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            log.error(f"Failed to load or parse overrides file '{self.OVERRIDES_JSON_PATH}': {e}")
            return

        if not isinstance(overrides, dict):
            log.error(f"Overrides file '{self.OVERRIDES_JSON_PATH}' must contain a JSON object. Ignoring.")
            return

        log.info(f"Loading configuration overrides from {self.OVERRIDES_JSON_PATH}")
        for key, value in overrides.items():
            if not hasattr(self, key):
                log.warning(f"Override setting '{key}' not found in default settings. Ignoring.")
                continue
            if key not in self.MODIFIABLE_SETTINGS:
                log.warning(f"Attempted to override non-modifiable setting '{key}'. Ignoring.")
                continue
            self._apply(key, value)
            log.debug(f"Overridden setting: {key} = {value}")

    @property
    def artifact_path(self) -> Path:
        """The watched artifact as an absolute path, relative paths anchored at APP_ROOT."""
        path = Path(self.ARTIFACT_PATH)
        if not path.is_absolute():
            path = Path(self.APP_ROOT) / path
        return path.resolve()


# Singleton instance imported by the entry point and used as the component default
effective_settings = MergedSettings()
