"""
Utility functions for audio framing and packaging.
"""

import base64
import io
import wave
from typing import Iterator

import numpy as np

from .core import config


def pcm16_to_float32(audio_bytes: bytes) -> np.ndarray:
    """Convert PCM16 mono bytes to float32 samples in [-1, 1)."""
    audio_np = np.frombuffer(audio_bytes, dtype=np.int16).astype(np.float32)
    audio_np /= 32768.0
    return audio_np


def frame_generator(frame_samples: int, audio_bytes: bytes) -> Iterator[np.ndarray]:
    """Yield float32 frames of frame_samples from PCM16 audio_bytes."""
    samples = pcm16_to_float32(audio_bytes)
    offset = 0
    total = len(samples)
    while offset + frame_samples <= total:
        yield samples[offset : offset + frame_samples]
        offset += frame_samples


class FrameAssembler:
    """
    Cuts PCM16 chunks of arbitrary size into fixed-size float32 frames.
    The partial tail of one chunk is kept and completed by the next.
    """

    def __init__(self, frame_samples: int = config.FRAME_SAMPLES):
        self.frame_samples = frame_samples
        self._pending = bytearray()

    def feed(self, audio_bytes: bytes) -> list[np.ndarray]:
        self._pending.extend(audio_bytes)
        frame_bytes = self.frame_samples * config.SAMPLE_WIDTH
        usable = len(self._pending) - len(self._pending) % frame_bytes
        if usable == 0:
            return []

        chunk = bytes(self._pending[:usable])
        del self._pending[:usable]
        return list(frame_generator(self.frame_samples, chunk))

    @property
    def pending_samples(self) -> int:
        return len(self._pending) // config.SAMPLE_WIDTH

    def reset(self) -> None:
        self._pending = bytearray()


def encode_wav(
    samples: np.ndarray,
    sample_rate: int = config.SAMPLE_RATE,
    float_format: bool = False,
) -> bytes:
    """
    Package mono float32 samples as a WAV file.

    Args:
        samples: float32 audio in [-1, 1]
        sample_rate: Sample rate written to the header
        float_format: Write 32-bit IEEE float instead of PCM16

    Returns:
        Complete WAV file bytes
    """
    samples = np.asarray(samples, dtype=np.float32)
    if float_format:
        return _encode_float_wav(samples, sample_rate)

    pcm = (np.clip(samples, -1.0, 1.0) * 32767.0).astype("<i2")
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wav:
        wav.setnchannels(config.CHANNELS)
        wav.setsampwidth(config.SAMPLE_WIDTH)
        wav.setframerate(sample_rate)
        wav.writeframes(pcm.tobytes())
    return buf.getvalue()


def _encode_float_wav(samples: np.ndarray, sample_rate: int) -> bytes:
    # the wave module only writes PCM, so the header is built by hand
    data = samples.astype("<f4").tobytes()
    bytes_per_sample = 4
    block_align = config.CHANNELS * bytes_per_sample
    header = b"".join(
        [
            b"RIFF",
            (36 + len(data)).to_bytes(4, "little"),
            b"WAVE",
            b"fmt ",
            (16).to_bytes(4, "little"),
            (3).to_bytes(2, "little"),  # WAVE_FORMAT_IEEE_FLOAT
            config.CHANNELS.to_bytes(2, "little"),
            sample_rate.to_bytes(4, "little"),
            (sample_rate * block_align).to_bytes(4, "little"),
            block_align.to_bytes(2, "little"),
            (bytes_per_sample * 8).to_bytes(2, "little"),
            b"data",
            len(data).to_bytes(4, "little"),
        ]
    )
    return header + data


def array_to_base64(data: bytes | np.ndarray) -> str:
    """Base64 text of raw bytes or of an array's buffer."""
    if isinstance(data, np.ndarray):
        data = data.tobytes()
    return base64.b64encode(data).decode("ascii")
