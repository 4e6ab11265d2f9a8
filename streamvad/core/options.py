"""
Per-stream detector options and their validation.

Options are fixed when an engine is built. Validation returns a list of
structured issues so callers can decide whether to hard-fail or proceed.
"""

import logging
import math
from dataclasses import dataclass, fields, replace
from enum import Enum

from . import config
from .errors import ConfigurationError

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class ValidationIssue:
    """A single problem found in a set of options."""

    field: str
    message: str
    severity: Severity = Severity.ERROR

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


@dataclass(frozen=True)
class VADOptions:
    """
    Tunable values for one detector instance.
    Thresholds are compared inclusively against the per-frame speech score.
    """

    positive_speech_threshold: float = config.POSITIVE_SPEECH_THRESHOLD
    negative_speech_threshold: float = config.NEGATIVE_SPEECH_THRESHOLD
    redemption_frames: int = config.REDEMPTION_FRAMES
    pre_speech_pad_frames: int = config.PRE_SPEECH_PAD_FRAMES
    min_speech_frames: int = config.MIN_SPEECH_FRAMES

    # Framing
    frame_samples: int = config.FRAME_SAMPLES
    sample_rate: int = config.SAMPLE_RATE

    @classmethod
    def with_overrides(cls, **overrides) -> "VADOptions":
        """Defaults merged with the given overrides; None values are ignored."""
        return cls().merged(**overrides)

    def merged(self, **overrides) -> "VADOptions":
        """Copy of these options with non-None overrides applied."""
        known = {f.name for f in fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ConfigurationError(f"Unknown VAD option(s): {', '.join(unknown)}")
        return replace(
            self, **{key: value for key, value in overrides.items() if value is not None}
        )

    @property
    def frame_duration_ms(self) -> float:
        return self.frame_samples * 1000.0 / self.sample_rate


def validate_options(options: VADOptions) -> list[ValidationIssue]:
    """
    Check option ranges.

    Returns:
        List of issues (empty when the options are usable as-is)
    """
    issues: list[ValidationIssue] = []

    if options.frame_samples <= 0:
        issues.append(ValidationIssue("frame_samples", "must be positive"))
    elif options.frame_samples not in config.RECOMMENDED_FRAME_SAMPLES:
        issues.append(
            ValidationIssue(
                "frame_samples",
                f"unusual frame size {options.frame_samples}, recommended "
                f"{', '.join(str(n) for n in config.RECOMMENDED_FRAME_SAMPLES)}",
                Severity.WARNING,
            )
        )

    if options.sample_rate <= 0:
        issues.append(ValidationIssue("sample_rate", "must be positive"))

    if not 0.0 <= options.positive_speech_threshold <= 1.0:
        issues.append(
            ValidationIssue("positive_speech_threshold", "must be between 0 and 1")
        )

    if not 0.0 <= options.negative_speech_threshold <= options.positive_speech_threshold:
        issues.append(
            ValidationIssue(
                "negative_speech_threshold",
                "must be between 0 and positive_speech_threshold",
            )
        )

    if options.pre_speech_pad_frames < 0:
        issues.append(ValidationIssue("pre_speech_pad_frames", "must be >= 0"))

    if options.redemption_frames < 0:
        issues.append(ValidationIssue("redemption_frames", "must be >= 0"))

    if options.min_speech_frames < 1:
        issues.append(ValidationIssue("min_speech_frames", "must be >= 1"))

    return issues


def check_options(options: VADOptions, strict: bool = True) -> list[ValidationIssue]:
    """
    Validate and log options.

    Raises:
        ConfigurationError: if any ERROR issue is found and strict is set
    """
    issues = validate_options(options)
    errors = [issue for issue in issues if issue.severity is Severity.ERROR]

    for issue in issues:
        if issue.severity is Severity.ERROR:
            logger.error("Invalid VAD option %s", issue)
        else:
            logger.warning("VAD option %s", issue)

    if errors and strict:
        raise ConfigurationError(
            "Invalid VAD options: " + "; ".join(str(issue) for issue in errors),
            issues,
        )
    return issues


def min_frames_for_target_ms(
    target_ms: float, frame_samples: int, sample_rate: int = config.SAMPLE_RATE
) -> int:
    """Smallest number of frames covering target_ms of audio."""
    return math.ceil((target_ms * sample_rate) / 1000 / frame_samples)
