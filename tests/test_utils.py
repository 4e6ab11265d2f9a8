import base64
import io
import wave

import numpy as np

from streamvad.utils import (
    FrameAssembler,
    array_to_base64,
    encode_wav,
    frame_generator,
    pcm16_to_float32,
)


def _pcm(values: range) -> bytes:
    return np.array(list(values), dtype=np.int16).tobytes()


def test_pcm16_to_float32_scales_to_unit_range() -> None:
    samples = pcm16_to_float32(np.array([0, 16384, -32768], dtype=np.int16).tobytes())
    assert samples.dtype == np.float32
    assert samples.tolist() == [0.0, 0.5, -1.0]


def test_frame_generator_drops_partial_tail() -> None:
    frames = list(frame_generator(4, _pcm(range(10))))
    assert len(frames) == 2
    assert (frames[1] * 32768).astype(int).tolist() == [4, 5, 6, 7]


def test_frame_assembler_carries_remainder_between_chunks() -> None:
    assembler = FrameAssembler(frame_samples=512)

    first = assembler.feed(_pcm(range(700)))
    assert len(first) == 1
    assert assembler.pending_samples == 188

    second = assembler.feed(_pcm(range(700, 1100)))
    assert len(second) == 1
    assert assembler.pending_samples == 76
    assert int(round(second[0][0] * 32768)) == 512
    assert int(round(second[0][-1] * 32768)) == 1023

    assembler.reset()
    assert assembler.pending_samples == 0


def test_encode_wav_pcm16() -> None:
    samples = np.linspace(-1.0, 1.0, 1600, dtype=np.float32)
    data = encode_wav(samples, sample_rate=16000)

    with wave.open(io.BytesIO(data), "rb") as wav:
        assert wav.getnchannels() == 1
        assert wav.getsampwidth() == 2
        assert wav.getframerate() == 16000
        assert wav.getnframes() == 1600
        pcm = np.frombuffer(wav.readframes(1600), dtype=np.int16)
    assert pcm[0] == -32767
    assert pcm[-1] == 32767


def test_encode_wav_float() -> None:
    samples = np.array([0.25, -0.5], dtype=np.float32)
    data = encode_wav(samples, sample_rate=8000, float_format=True)

    assert data[:4] == b"RIFF"
    assert data[8:12] == b"WAVE"
    assert int.from_bytes(data[20:22], "little") == 3
    assert int.from_bytes(data[24:28], "little") == 8000
    assert len(data) == 44 + 8
    assert np.frombuffer(data[44:], dtype="<f4").tolist() == [0.25, -0.5]


def test_array_to_base64() -> None:
    arr = np.array([1.0], dtype=np.float32)
    assert base64.b64decode(array_to_base64(arr)) == arr.tobytes()
    assert array_to_base64(b"vad") == "dmFk"
