"""Pydantic configuration models for the form-fill service."""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from automation_types import Locator, PipelineOptions
from exceptions import ConfigFileNotFoundError, ConfigurationError


# Load .env file if present
load_dotenv()

# Upper bound on how long submit waits for a navigation before the grace delay.
MAX_NAVIGATION_WAIT_MS = 10000


class AutomationSettings(BaseModel):
    """User-editable settings consumed at the start of every run."""

    value1: str = Field(default="14", description="Value typed into the first browser")
    value2: str = Field(default="15", description="Value typed into the second browser")
    headless: bool = Field(default=True, description="Run browsers without a window")
    show_notifications: bool = Field(default=True, description="Client-side notifications toggle")
    browser_type: Literal["chromium", "firefox", "webkit"] = Field(
        default="chromium",
        description="Browser engine to use",
    )
    timeout: int = Field(
        default=30,
        ge=1,
        le=600,
        description="Per-operation timeout in seconds",
    )
    form_field_selector: str = Field(
        default='[data-cy="enter-name-field"]',
        description="CSS selector or XPath (starting with //) of the input field",
    )
    submit_button_selector: str = Field(
        default='[data-cy="start-game-button"]',
        description="CSS selector or XPath (starting with //) of the submit control",
    )
    loading_selector: str = Field(
        default=".screen-loading",
        description="Loading indicator that must disappear before filling; empty to skip",
    )
    auto_retry: bool = Field(default=True, description="Retry failed page loads")
    screenshot_width: int = Field(
        default=640,
        ge=0,
        le=3840,
        description="Downscale screenshots to this width (0 keeps full size)",
    )

    @field_validator("browser_type", mode="before")
    @classmethod
    def map_legacy_browser(cls, v: Any) -> Any:
        """Accept the legacy 'chrome' name."""
        if isinstance(v, str) and v.lower() in {"chrome", "chromium"}:
            return "chromium"
        return v

    @field_validator("form_field_selector", "submit_button_selector")
    @classmethod
    def require_selector(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("selector must not be empty")
        return v

    @field_validator("loading_selector")
    @classmethod
    def strip_selector(cls, v: str) -> str:
        return v.strip()

    @property
    def values(self) -> list[str]:
        return [self.value1, self.value2]

    def to_pipeline_options(self) -> PipelineOptions:
        """Resolve locators and convert the timeout to milliseconds."""
        timeout_ms = self.timeout * 1000
        return PipelineOptions(
            field_locator=Locator.parse(self.form_field_selector),
            submit_locator=Locator.parse(self.submit_button_selector),
            loading_locator=Locator.parse(self.loading_selector) if self.loading_selector else None,
            headless=self.headless,
            browser_type=self.browser_type,
            timeout_ms=timeout_ms,
            navigation_timeout_ms=min(timeout_ms, MAX_NAVIGATION_WAIT_MS),
            auto_retry=self.auto_retry,
            screenshot_width=self.screenshot_width,
        )


class ServerConfig(BaseModel):
    """HTTP server and storage locations."""

    host: str = Field(default="127.0.0.1", description="Bind address")
    port: int = Field(default=5000, ge=1, le=65535, description="Bind port")
    data_dir: Path = Field(default=Path("./data"), description="Directory for history and settings files")
    log_file: Optional[Path] = Field(default=Path("./logs/server.log"), description="Rotating log file")

    @field_validator("data_dir", "log_file", mode="before")
    @classmethod
    def convert_to_path(cls, v: Any) -> Any:
        """Convert string to Path."""
        if isinstance(v, str):
            return Path(v) if v else None
        return v

    @property
    def history_file(self) -> Path:
        return self.data_dir / "history.json"

    @property
    def settings_file(self) -> Path:
        return self.data_dir / "settings.json"


class AppConfig(BaseModel):
    """Root configuration model combining all config sections."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    settings: AutomationSettings = Field(default_factory=AutomationSettings)
    verbose: bool = Field(default=False, description="Enable verbose logging")

    @model_validator(mode="before")
    @classmethod
    def load_from_env(cls, data: Any) -> Any:
        """Fill values from FORMFILL_* environment variables if not explicitly set."""
        if not isinstance(data, dict):
            return data
        env_mapping = {
            ("server", "host"): "FORMFILL_HOST",
            ("server", "port"): "FORMFILL_PORT",
            ("server", "data_dir"): "FORMFILL_DATA_DIR",
            ("settings", "headless"): "FORMFILL_HEADLESS",
            ("settings", "timeout"): "FORMFILL_TIMEOUT",
        }
        data = dict(data)
        for (section, field_name), env_var in env_mapping.items():
            env_value = os.getenv(env_var)
            if not env_value:
                continue
            section_data = dict(data.get(section) or {})
            if section_data.get(field_name) is None:
                section_data[field_name] = env_value
                data[section] = section_data
        return data


def load_config(
    config_path: Optional[Path] = None,
    cli_overrides: Optional[dict[str, Any]] = None,
) -> AppConfig:
    """
    Load configuration from file with CLI overrides.

    Priority (highest to lowest):
    1. CLI arguments
    2. Config file
    3. Environment variables (FORMFILL_*, .env)
    4. Defaults
    """
    config_data: dict[str, Any] = {}

    explicit = config_path is not None
    if config_path is None:
        config_path = Path("config.json")

    if config_path.exists():
        with open(config_path, "r", encoding="utf-8") as f:
            if config_path.suffix in {".yaml", ".yml"}:
                import yaml
                config_data = yaml.safe_load(f) or {}
            else:
                config_data = json.load(f)
    elif explicit:
        raise ConfigFileNotFoundError(str(config_path))

    if cli_overrides:
        _apply_overrides(config_data, cli_overrides)

    try:
        return AppConfig.model_validate(config_data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc


def _apply_overrides(config_dict: dict[str, Any], overrides: dict[str, Any]) -> None:
    """Apply CLI overrides to config dictionary."""
    override_mapping = {
        "host": ("server", "host"),
        "port": ("server", "port"),
        "data_dir": ("server", "data_dir"),
        "timeout": ("settings", "timeout"),
        "browser": ("settings", "browser_type"),
        "verbose": ("verbose", None),
    }

    for key, value in overrides.items():
        if value is None:
            continue

        if key == "headful":
            if value:
                config_dict.setdefault("settings", {})["headless"] = False
            continue

        mapping = override_mapping.get(key)
        if mapping:
            section, field = mapping
            if field is None:
                config_dict[section] = value
            else:
                config_dict.setdefault(section, {})[field] = value
