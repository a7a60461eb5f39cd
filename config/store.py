"""Settings collaborator: keyed storage for the automation settings."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping, Optional

from pydantic import ValidationError

from config.models import AutomationSettings
from exceptions import ConfigurationError


class SettingsStore:
    """Holds the current AutomationSettings, optionally persisted as JSON."""

    def __init__(
        self,
        path: Optional[Path] = None,
        defaults: Optional[AutomationSettings] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.path = Path(path) if path else None
        self.defaults = defaults or AutomationSettings()
        self.logger = logger or logging.getLogger("formfill.settings")
        self._settings = self.defaults.model_copy()
        self._load()

    def _load(self) -> None:
        if not self.path or not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError("settings file must contain a JSON object")
            self._settings = AutomationSettings.model_validate({**self.defaults.model_dump(), **data})
        except (ValueError, ValidationError) as exc:
            self.logger.warning(f"Ignoring unreadable settings file {self.path}: {exc}")

    def _save(self) -> None:
        if not self.path:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(self._settings.model_dump_json(indent=2), encoding="utf-8")

    def get(self) -> AutomationSettings:
        return self._settings.model_copy()

    def save(self, changes: Mapping[str, Any]) -> AutomationSettings:
        """Merge changes into the current settings; raises ConfigurationError if invalid."""
        merged = {**self._settings.model_dump(), **dict(changes)}
        try:
            settings = AutomationSettings.model_validate(merged)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid settings: {exc}") from exc
        self._settings = settings
        self._save()
        return self.get()

    def reset(self) -> AutomationSettings:
        self._settings = self.defaults.model_copy()
        self._save()
        return self.get()
