"""
Voice Activity Detection (VAD) decision engine.
Turns a per-frame speech probability stream into speech segment events.
This module is independent of any transport, model or UI.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Protocol

import numpy as np

from .buffers import PadBuffer, SegmentAccumulator
from .errors import InferenceError
from .options import VADOptions, ValidationIssue, check_options

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SpeechProbabilities:
    """Model output for one frame."""

    is_speech: float
    not_speech: float


class ProbabilitySource(Protocol):
    """Acoustic model carrying recurrent state across frames."""

    def infer(self, frame: np.ndarray) -> SpeechProbabilities: ...

    def reset_state(self) -> None: ...


class EngineState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"


class FrameProcessor:
    """
    Frame-level speech segment detector.

    Feed frames in arrival order through process(). Per frame the
    probability source is queried once, then:

    - IDLE: a score >= positive threshold starts a segment seeded with
      the pad buffer's lead-in frames; otherwise the frame joins the pad.
    - ACTIVE: the frame is accumulated; a score >= negative threshold
      refills the redemption counter, anything lower counts it down.
      At zero the segment ends, or misfires if fewer than
      min_speech_frames were accumulated from onset.

    Not thread-safe: callers must serialize process() calls.
    """

    def __init__(
        self,
        source: ProbabilitySource,
        options: VADOptions | None = None,
        on_frame_processed: Callable[[SpeechProbabilities], None] | None = None,
        on_speech_start: Callable[[], None] | None = None,
        on_speech_end: Callable[[np.ndarray], None] | None = None,
        on_misfire: Callable[[], None] | None = None,
        strict: bool = True,
    ):
        self.options = options or VADOptions()
        self.issues: list[ValidationIssue] = check_options(self.options, strict=strict)

        self.source = source
        self.on_frame_processed = on_frame_processed
        self.on_speech_start = on_speech_start
        self.on_speech_end = on_speech_end
        self.on_misfire = on_misfire

        self._pad = PadBuffer(self.options.pre_speech_pad_frames)
        self._accumulator = SegmentAccumulator()

        # State
        self._state = EngineState.IDLE
        self._redemption_counter = 0
        self._paused = False

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def speaking(self) -> bool:
        return self._state is EngineState.ACTIVE

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def redemption_counter(self) -> int:
        return self._redemption_counter

    @property
    def lead_in_frames(self) -> int:
        """Frames currently held for lead-in (IDLE only)."""
        return len(self._pad)

    @property
    def segment_frames(self) -> int:
        """Frames accumulated for the current segment (ACTIVE only)."""
        return len(self._accumulator)

    def pause(self) -> None:
        """Stop consuming frames; buffers and counters are kept as they are."""
        logger.debug("Pausing frame processor")
        self._paused = True

    def resume(self) -> None:
        logger.debug("Resuming frame processor")
        self._paused = False

    def reset(self) -> None:
        """Drop any segment in progress and start listening afresh."""
        self._pad.clear()
        self._accumulator.clear()
        self._redemption_counter = 0
        self._state = EngineState.IDLE
        self.source.reset_state()

    def process(self, frame: np.ndarray) -> None:
        """
        Process one frame.

        Args:
            frame: float32 samples, same length for every call

        Raises:
            InferenceError: if the probability source fails. Nothing has
                been changed, so the same frame can be retried.
        """
        if self._paused:
            logger.debug("Frame processor paused, frame not consumed")
            return

        frame = np.array(frame, dtype=np.float32)

        try:
            probs = self.source.infer(frame)
        except InferenceError:
            raise
        except Exception as exc:
            raise InferenceError(f"Probability source failed: {exc}") from exc

        if self.on_frame_processed:
            self.on_frame_processed(probs)

        if self._state is EngineState.IDLE:
            self._process_idle(frame, probs.is_speech)
        else:
            self._process_active(frame, probs.is_speech)

    def _process_idle(self, frame: np.ndarray, score: float) -> None:
        if score < self.options.positive_speech_threshold:
            self._pad.push(frame)
            return

        # Onset: lead-in frames first, then the onset frame
        self._accumulator.seed(self._pad.drain())
        self._accumulator.append(frame)
        self._redemption_counter = self.options.redemption_frames
        self._state = EngineState.ACTIVE
        logger.debug(
            "Speech start (%d lead-in frames)", self._accumulator.lead_in_frames
        )

        if self.on_speech_start:
            self.on_speech_start()

    def _process_active(self, frame: np.ndarray, score: float) -> None:
        self._accumulator.append(frame)

        if score >= self.options.negative_speech_threshold:
            self._redemption_counter = self.options.redemption_frames
            return

        self._redemption_counter -= 1
        if self._redemption_counter <= 0:
            self._finalize_segment()

    def _finalize_segment(self) -> None:
        """End the current segment and return to IDLE."""
        speech_frames = self._accumulator.speech_frames
        misfire = speech_frames < self.options.min_speech_frames
        audio = None if misfire else self._accumulator.concatenate()

        self.source.reset_state()
        self._accumulator.clear()
        self._pad.clear()
        self._redemption_counter = 0
        self._state = EngineState.IDLE

        if misfire:
            logger.debug(
                "Misfire: %d speech frames < %d",
                speech_frames,
                self.options.min_speech_frames,
            )
            if self.on_misfire:
                self.on_misfire()
        else:
            logger.debug(
                "Speech end: %d speech frames, %d samples", speech_frames, len(audio)
            )
            if self.on_speech_end:
                self.on_speech_end(audio)
