"""Exceptions raised by the voice activity detector."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .options import ValidationIssue


class VADError(Exception):
    """Base class for detector errors."""


class ConfigurationError(VADError):
    """Raised when detector options are out of range."""

    def __init__(self, message: str, issues: list[ValidationIssue] | None = None):
        super().__init__(message)
        self.issues = list(issues or [])


class InferenceError(VADError):
    """Raised when the probability source fails on a frame."""


class FrameQueueFull(VADError):
    """Raised when a frame cannot be queued for processing."""
