"""Custom exception hierarchy for the form-fill automation service."""
from __future__ import annotations

from typing import Any, Optional


class FormFillError(Exception):
    """Base exception for all form-fill errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# Browser-related exceptions
class BrowserError(FormFillError):
    """Base exception for browser automation errors."""

    pass


class NavigationError(BrowserError):
    """Raised when page navigation fails."""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        details = {}
        if url:
            details["url"] = url
        if timeout:
            details["timeout"] = timeout
        super().__init__(message, details)
        self.url = url
        self.timeout = timeout


class ElementNotFoundError(BrowserError):
    """Raised when no element matches a selector within the timeout."""

    def __init__(
        self,
        message: str,
        selector: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        details = {}
        if selector:
            details["selector"] = selector
        if timeout:
            details["timeout"] = timeout
        super().__init__(message, details)
        self.selector = selector
        self.timeout = timeout


class ElementNotInteractableError(BrowserError):
    """Raised when an element exists but cannot be typed into or clicked."""

    def __init__(
        self,
        message: str,
        selector: Optional[str] = None,
        reason: Optional[str] = None,
    ):
        details = {}
        if selector:
            details["selector"] = selector
        if reason:
            details["reason"] = reason
        super().__init__(message, details)
        self.selector = selector
        self.reason = reason


class BrowserNotStartedError(BrowserError):
    """Raised when attempting to use browser before starting."""

    def __init__(self):
        super().__init__("Browser has not been started. Call start() first.")


class ScreenshotError(BrowserError):
    """Raised when screenshot capture fails."""

    pass


# Automation run exceptions
class AutomationError(FormFillError):
    """Base exception for automation run errors."""

    pass


class AutomationAlreadyRunningError(AutomationError):
    """Raised when a run is requested while another one is active."""

    def __init__(self):
        super().__init__("Automation is already running")


class StageError(AutomationError):
    """Raised when a pipeline stage fails for at least one instance."""

    def __init__(self, stage: str, message: str, slot: Optional[int] = None):
        details = {"stage": stage}
        if slot is not None:
            details["slot"] = slot
        super().__init__(message, details)
        self.stage = stage
        self.slot = slot

    def __str__(self) -> str:
        # Step error messages surface this text directly.
        return self.message


class RunCancelledError(AutomationError):
    """Raised inside the pipeline when the run was cancelled between stages."""

    def __init__(self):
        super().__init__("Automation cancelled by user")


# Configuration exceptions
class ConfigurationError(FormFillError):
    """Raised when configuration is invalid."""

    pass


class ConfigFileNotFoundError(ConfigurationError):
    """Raised when a required config file is not found."""

    def __init__(self, file_path: str):
        super().__init__(f"Configuration file not found: {file_path}", {"file_path": file_path})
        self.file_path = file_path
