"""
Microphone input interface using PyAudio.
"""

import logging
import time
from typing import Callable, Protocol

import numpy as np
import pyaudio

from ..app.pipeline import StreamingVAD
from ..core import config
from ..core.errors import InferenceError
from ..core.models import WebRTCSpeechSource
from ..core.options import VADOptions
from ..core.vad import ProbabilitySource, SpeechProbabilities

logger = logging.getLogger(__name__)


class AudioCallback(Protocol):
    """Protocol for audio chunk callbacks."""

    def __call__(self, audio_bytes: bytes, timestamp: float) -> None: ...


class MicrophoneInput:
    """
    Microphone input using PyAudio.

    Captures audio from the default microphone and sends chunks
    to a callback function.
    """

    def __init__(
        self,
        on_audio: AudioCallback | None = None,
        sample_rate: int = config.SAMPLE_RATE,
        channels: int = config.CHANNELS,
        chunk_ms: int = config.MIC_CHUNK_MS,
    ):
        self.on_audio = on_audio
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_ms = chunk_ms
        self.frames_per_buffer = int(sample_rate * chunk_ms / 1000)

        self._pa: pyaudio.PyAudio | None = None
        self._stream: pyaudio.Stream | None = None

    def _callback(
        self,
        in_data: bytes | None,
        frame_count: int,
        time_info: dict[str, float],
        status_flags: int,
    ) -> tuple[None, int]:
        """PyAudio callback."""
        if in_data is not None and self.on_audio:
            ts = time.time()
            try:
                self.on_audio(in_data, ts)
            except Exception:
                # Don't crash the audio thread
                logger.exception("Audio callback failed")
        return (None, pyaudio.paContinue)

    def start(self) -> None:
        """Start capturing audio from microphone."""
        if self._stream is not None:
            return  # Already running

        self._pa = pyaudio.PyAudio()
        self._stream = self._pa.open(
            format=pyaudio.paInt16,
            channels=self.channels,
            rate=self.sample_rate,
            input=True,
            frames_per_buffer=self.frames_per_buffer,
            stream_callback=self._callback,
        )
        self._stream.start_stream()

    def stop(self) -> None:
        """Stop capturing audio."""
        if self._stream is not None:
            self._stream.stop_stream()
            self._stream.close()
            self._stream = None

        if self._pa is not None:
            self._pa.terminate()
            self._pa = None

    def is_active(self) -> bool:
        """Check if the stream is active."""
        return self._stream is not None and self._stream.is_active()

    def __enter__(self) -> "MicrophoneInput":
        self.start()
        return self

    def __exit__(self, *args) -> None:
        self.stop()


class MicVAD:
    """
    Microphone-driven speech segment detector.

    Capture is stopped while paused, so no frames are queued
    until start() is called again.
    """

    def __init__(self, vad: StreamingVAD, mic: MicrophoneInput):
        self.vad = vad
        self.mic = mic
        self.mic.on_audio = self._on_audio

    @classmethod
    def new(
        cls,
        source: ProbabilitySource | None = None,
        on_speech_start: Callable[[], None] | None = None,
        on_speech_end: Callable[[np.ndarray], None] | None = None,
        on_misfire: Callable[[], None] | None = None,
        on_frame_processed: Callable[[SpeechProbabilities], None] | None = None,
        on_error: Callable[[InferenceError], None] | None = None,
        aggressiveness: int = config.WEBRTC_AGGRESSIVENESS,
        **options,
    ) -> "MicVAD":
        """Build the detector and microphone; options override VADOptions defaults."""
        vad_options = VADOptions.with_overrides(**options)
        if source is None:
            source = WebRTCSpeechSource(
                sample_rate=vad_options.sample_rate, aggressiveness=aggressiveness
            )
        vad = StreamingVAD(
            source,
            vad_options,
            on_speech_start=on_speech_start,
            on_speech_end=on_speech_end,
            on_misfire=on_misfire,
            on_frame_processed=on_frame_processed,
            on_error=on_error,
        )
        return cls(vad, MicrophoneInput(sample_rate=vad_options.sample_rate))

    def _on_audio(self, audio_bytes: bytes, timestamp: float) -> None:
        self.vad.submit_audio(audio_bytes)

    def start(self) -> None:
        logger.debug("Starting microphone VAD")
        self.vad.start()
        self.mic.start()

    def pause(self) -> None:
        logger.debug("Pausing microphone VAD")
        self.mic.stop()
        self.vad.pause()

    def close(self) -> None:
        self.mic.stop()
        self.vad.stop()
