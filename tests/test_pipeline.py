import threading
import time

import numpy as np
import pytest

from streamvad.app.pipeline import StreamingVAD
from streamvad.core.errors import FrameQueueFull, InferenceError
from streamvad.core.options import VADOptions
from streamvad.core.vad import EngineState, SpeechProbabilities

FRAME = 512
SCENARIO = [0.1, 0.1, 0.9, 0.9, 0.9, 0.1, 0.1, 0.1]


class ScriptedSource:
    def __init__(self, scores: list[float], fail_at: set[int] | None = None) -> None:
        self.scores = list(scores)
        self.fail_at = set(fail_at or ())
        self.calls = 0
        self.threads: set[str] = set()

    def infer(self, frame: np.ndarray) -> SpeechProbabilities:
        self.threads.add(threading.current_thread().name)
        if self.calls in self.fail_at:
            self.fail_at.discard(self.calls)
            raise RuntimeError("model crashed")
        score = self.scores[self.calls % len(self.scores)]
        self.calls += 1
        return SpeechProbabilities(is_speech=score, not_speech=1.0 - score)

    def reset_state(self) -> None:
        return None


def make_vad(source: ScriptedSource, events: list[str], **kwargs) -> StreamingVAD:
    options = VADOptions(
        redemption_frames=2,
        pre_speech_pad_frames=1,
        min_speech_frames=3,
        frame_samples=FRAME,
    )
    return StreamingVAD(
        source,
        options,
        on_speech_start=lambda: events.append("start"),
        on_speech_end=lambda audio: events.append(f"end:{len(audio) // FRAME}"),
        on_misfire=lambda: events.append("misfire"),
        **kwargs,
    )


def test_frames_are_processed_in_order_on_worker_thread() -> None:
    events: list[str] = []
    source = ScriptedSource(SCENARIO)
    vad = make_vad(source, events)

    for i in range(len(SCENARIO)):
        assert vad.submit_frame(np.full(FRAME, i, dtype=np.float32))
    vad.start()
    try:
        assert vad.join_pending(timeout=5.0)
    finally:
        vad.stop()

    assert events == ["start", "end:6"]
    assert source.calls == len(SCENARIO)
    assert threading.current_thread().name not in source.threads


def test_speaking_flag_follows_segments() -> None:
    events: list[str] = []
    vad = make_vad(ScriptedSource(SCENARIO), events)
    vad.start()
    try:
        for _ in range(4):
            vad.submit_frame(np.zeros(FRAME, dtype=np.float32))
        assert vad.join_pending(timeout=5.0)
        assert vad.speaking

        for _ in range(4):
            vad.submit_frame(np.zeros(FRAME, dtype=np.float32))
        assert vad.join_pending(timeout=5.0)
        assert not vad.speaking
    finally:
        vad.stop()


def test_submit_audio_reframes_pcm() -> None:
    vad = make_vad(ScriptedSource(SCENARIO), [])
    pcm = np.zeros(FRAME * 2 + FRAME // 2, dtype=np.int16).tobytes()
    assert vad.submit_audio(pcm) == 2
    assert vad.submit_audio(pcm[: FRAME]) == 1  # completes the carried half frame
    vad.stop()


def test_full_queue_drop_is_counted() -> None:
    vad = make_vad(ScriptedSource(SCENARIO), [], queue_size=1)
    frame = np.zeros(FRAME, dtype=np.float32)

    assert vad.submit_frame(frame)
    assert not vad.submit_frame(frame)
    assert vad.dropped_frames == 1

    with pytest.raises(FrameQueueFull):
        vad.submit_frame(frame, strict=True)
    vad.stop()


def test_paused_stream_does_not_dequeue() -> None:
    events: list[str] = []
    source = ScriptedSource(SCENARIO)
    vad = make_vad(source, events)
    vad.start()
    vad.pause()
    try:
        for i in range(len(SCENARIO)):
            vad.submit_frame(np.zeros(FRAME, dtype=np.float32))
        assert not vad.join_pending(timeout=0.3)
        assert source.calls == 0

        vad.resume()
        assert vad.join_pending(timeout=5.0)
    finally:
        vad.stop()
    assert events == ["start", "end:6"]


def test_inference_failure_pauses_and_retries_frame() -> None:
    events: list[str] = []
    failed = threading.Event()
    errors: list[InferenceError] = []

    def on_error(exc: InferenceError) -> None:
        errors.append(exc)
        failed.set()

    source = ScriptedSource(SCENARIO, fail_at={4})
    vad = make_vad(source, events, on_error=on_error)
    for _ in range(len(SCENARIO)):
        vad.submit_frame(np.zeros(FRAME, dtype=np.float32))
    vad.start()
    try:
        assert failed.wait(timeout=5.0)
        assert not vad.listening
        assert vad.last_error is errors[0]
        assert events == ["start"]

        vad.resume(retry=True)
        assert vad.join_pending(timeout=5.0)
    finally:
        vad.stop()

    assert events == ["start", "end:6"]


def test_dropping_failed_frame_resets_detector() -> None:
    events: list[str] = []
    failed = threading.Event()
    source = ScriptedSource(SCENARIO, fail_at={3})
    vad = make_vad(source, events, on_error=lambda exc: failed.set())

    for _ in range(4):
        vad.submit_frame(np.zeros(FRAME, dtype=np.float32))
    vad.start()
    try:
        assert failed.wait(timeout=5.0)
        assert vad.processor.state == EngineState.ACTIVE

        vad.resume(retry=False)
        assert vad.processor.state == EngineState.IDLE
        assert not vad.speaking
        assert vad.listening
    finally:
        vad.stop()


def test_pause_while_worker_waits_holds_next_frame() -> None:
    events: list[str] = []
    source = ScriptedSource(SCENARIO)
    vad = make_vad(source, events)
    vad.start()
    time.sleep(0.12)  # worker is now blocked waiting for a frame
    try:
        vad.pause()
        for _ in range(len(SCENARIO)):
            vad.submit_frame(np.zeros(FRAME, dtype=np.float32))
        time.sleep(0.15)
        assert source.calls == 0
        assert events == []
        assert not vad.join_pending(timeout=0.1)

        vad.resume()
        assert vad.join_pending(timeout=5.0)
    finally:
        vad.stop()
    assert source.calls == len(SCENARIO)
    assert events == ["start", "end:6"]


class GatedSource(ScriptedSource):
    """Blocks inside infer() on one call until released."""

    def __init__(self, scores: list[float], gate_at: int) -> None:
        super().__init__(scores)
        self.gate_at = gate_at
        self.entered = threading.Event()
        self.release = threading.Event()

    def infer(self, frame: np.ndarray) -> SpeechProbabilities:
        if self.calls == self.gate_at:
            self.entered.set()
            self.release.wait(timeout=5.0)
        return super().infer(frame)


def test_overflow_mid_segment_restarts_detector() -> None:
    events: list[str] = []
    source = GatedSource(SCENARIO, gate_at=3)
    vad = make_vad(source, events, queue_size=1)
    frame = np.zeros(FRAME, dtype=np.float32)
    vad.start()
    try:
        for _ in range(4):
            assert vad.submit_frame(frame, block=True, timeout=5.0)
        assert source.entered.wait(timeout=5.0)
        assert vad.speaking

        assert vad.submit_frame(frame)  # fills the queue
        assert not vad.submit_frame(frame)  # dropped mid-segment
        source.release.set()

        for _ in range(3):
            assert vad.submit_frame(frame, block=True, timeout=5.0)
        assert vad.join_pending(timeout=5.0)
    finally:
        vad.stop()

    # the low frames after the gap must not close a segment spanning it
    assert vad.dropped_frames == 1
    assert events == ["start"]
    assert source.calls == 8


def test_submit_audio_passes_strict_through() -> None:
    vad = make_vad(ScriptedSource(SCENARIO), [], queue_size=1)
    pcm = np.zeros(FRAME * 2, dtype=np.int16).tobytes()
    with pytest.raises(FrameQueueFull):
        vad.submit_audio(pcm, strict=True)
    assert vad.dropped_frames == 1
    vad.stop()


def test_failed_last_frame_counts_as_pending() -> None:
    failed = threading.Event()
    source = ScriptedSource(SCENARIO, fail_at={len(SCENARIO) - 1})
    vad = make_vad(source, [], on_error=lambda exc: failed.set())
    for _ in range(len(SCENARIO)):
        vad.submit_frame(np.zeros(FRAME, dtype=np.float32))
    vad.start()
    try:
        assert failed.wait(timeout=5.0)
        assert not vad.join_pending(timeout=0.2)

        vad.resume(retry=True)
        assert vad.join_pending(timeout=5.0)
    finally:
        vad.stop()
    assert source.calls == len(SCENARIO)
