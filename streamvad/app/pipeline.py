"""
Streaming VAD - serializes incoming frames into the decision engine.
"""

import logging
import queue
import threading
import time
from typing import Callable

import numpy as np

from ..core import config
from ..core.errors import FrameQueueFull, InferenceError
from ..core.options import VADOptions
from ..core.vad import FrameProcessor, ProbabilitySource, SpeechProbabilities
from ..utils import FrameAssembler

logger = logging.getLogger(__name__)

# (frame, reset the detector before evaluating it)
QueuedFrame = tuple[np.ndarray, bool]


class StreamingVAD:
    """
    Threaded front-end for FrameProcessor.

    Frames are queued in arrival order and evaluated one at a time by a
    single worker thread, so a slow probability source never sees
    overlapping calls. Events are delivered on the worker thread.

    A frame dropped on queue overflow leaves a gap in the audio, so the
    detector is reset to a fresh IDLE state before the frame that
    follows the gap; no segment ever spans a dropped frame.

    An inference failure pauses the stream and keeps the failed frame;
    resume(retry=True) evaluates it again, resume(retry=False) drops it
    and resets the engine to a fresh IDLE state.
    """

    def __init__(
        self,
        source: ProbabilitySource,
        options: VADOptions | None = None,
        on_speech_start: Callable[[], None] | None = None,
        on_speech_end: Callable[[np.ndarray], None] | None = None,
        on_misfire: Callable[[], None] | None = None,
        on_frame_processed: Callable[[SpeechProbabilities], None] | None = None,
        on_error: Callable[[InferenceError], None] | None = None,
        queue_size: int = config.FRAME_QUEUE_MAX,
        strict: bool = True,
    ):
        self.options = options or VADOptions()
        self.on_speech_start = on_speech_start
        self.on_speech_end = on_speech_end
        self.on_misfire = on_misfire
        self.on_error = on_error

        self._processor = FrameProcessor(
            source,
            self.options,
            on_frame_processed=on_frame_processed,
            on_speech_start=self._handle_speech_start,
            on_speech_end=self._handle_speech_end,
            on_misfire=self._handle_misfire,
            strict=strict,
        )
        self._assembler = FrameAssembler(self.options.frame_samples)

        self._frame_queue: queue.Queue[QueuedFrame] = queue.Queue(maxsize=queue_size)
        self._stop_event = threading.Event()
        self._running = threading.Event()
        self._thread: threading.Thread | None = None

        # Dequeued but not yet evaluated (paused in between, or failed)
        self._held: QueuedFrame | None = None
        self._held_failed = False
        # Set when a frame was dropped; marks the next queued frame
        self._gap = False

        self.speaking = False
        self.dropped_frames = 0
        self.last_error: InferenceError | None = None

    @property
    def processor(self) -> FrameProcessor:
        return self._processor

    @property
    def listening(self) -> bool:
        return self._running.is_set()

    def start(self) -> None:
        """Start the worker thread (if needed) and begin consuming frames."""
        logger.debug("Starting streaming VAD")
        if self._thread is None:
            self._stop_event.clear()
            self._thread = threading.Thread(target=self._worker, daemon=True)
            self._thread.start()
        self._running.set()

    def pause(self) -> None:
        """
        Stop evaluating frames after the one in hand; state is kept.
        A frame dequeued after pause() is held and evaluated first on resume.
        """
        logger.debug("Pausing streaming VAD")
        self._running.clear()

    def resume(self, retry: bool = True) -> None:
        """
        Continue after pause() or after an inference failure.

        Args:
            retry: Re-evaluate the frame that failed (if any). When False
                the frame is dropped and the engine restarts from IDLE.
        """
        if self._held is not None and self._held_failed and not retry:
            logger.warning("Dropping failed frame, resetting detector")
            self._release_held()
            self._reset_detector()
        self.start()

    def stop(self, timeout: float = 1.0) -> None:
        """Stop the worker, discard queued frames and reset the detector."""
        self._running.clear()
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            self._thread = None

        if self._held is not None:
            self._release_held()

        while True:
            try:
                self._frame_queue.get_nowait()
            except queue.Empty:
                break
            self._frame_queue.task_done()

        self._gap = False
        self._assembler.reset()
        self._reset_detector()

    def submit_frame(
        self,
        frame: np.ndarray,
        block: bool = False,
        timeout: float | None = None,
        strict: bool = False,
    ) -> bool:
        """
        Queue one frame for processing.

        A dropped frame makes the detector restart from IDLE before the
        next queued frame is evaluated.

        Returns:
            True if queued, False if the queue was full and the frame dropped

        Raises:
            FrameQueueFull: if the queue was full and strict is set
        """
        item = (np.asarray(frame, dtype=np.float32), self._gap)
        try:
            self._frame_queue.put(item, block, timeout)
        except queue.Full:
            self._gap = True
            self.dropped_frames += 1
            if strict:
                raise FrameQueueFull("Frame queue full") from None
            logger.warning(
                "Frame queue full, dropped frame (%d dropped so far)",
                self.dropped_frames,
            )
            return False

        self._gap = False
        return True

    def submit_audio(
        self,
        audio_bytes: bytes,
        block: bool = False,
        timeout: float | None = None,
        strict: bool = False,
    ) -> int:
        """
        Queue PCM16 mono audio of any length.
        block, timeout and strict apply to every frame as in submit_frame().

        Returns:
            Number of complete frames queued
        """
        queued = 0
        for frame in self._assembler.feed(audio_bytes):
            if self.submit_frame(frame, block=block, timeout=timeout, strict=strict):
                queued += 1
        return queued

    def join_pending(self, timeout: float | None = None) -> bool:
        """
        Wait until every queued frame has been processed.
        A frame held after a failure or a pause counts as pending.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._frame_queue.all_tasks_done:
            while self._frame_queue.unfinished_tasks:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return False
                self._frame_queue.all_tasks_done.wait(remaining)
        return True

    def _worker(self) -> None:
        """Frame worker thread."""
        while not self._stop_event.is_set():
            if not self._running.wait(timeout=config.WORKER_POLL_S):
                continue

            if self._held is None:
                try:
                    self._held = self._frame_queue.get(timeout=config.WORKER_POLL_S)
                except queue.Empty:
                    continue
                self._held_failed = False
                if not self._running.is_set():
                    # paused while waiting for the frame
                    continue

            frame, reset_before = self._held
            if reset_before:
                logger.warning("Frame dropped before this one, resetting detector")
                self._reset_detector()
                self._held = (frame, False)

            if self._evaluate(frame):
                self._release_held()

    def _evaluate(self, frame: np.ndarray) -> bool:
        try:
            self._processor.process(frame)
        except InferenceError as exc:
            self._running.clear()
            self._held_failed = True
            self.last_error = exc
            logger.error("Inference failed, streaming VAD paused: %s", exc)
            if self.on_error:
                self.on_error(exc)
            return False
        return True

    def _release_held(self) -> None:
        self._held = None
        self._held_failed = False
        self._frame_queue.task_done()

    def _reset_detector(self) -> None:
        self._processor.reset()
        self.speaking = False

    def _handle_speech_start(self) -> None:
        self.speaking = True
        if self.on_speech_start:
            self.on_speech_start()

    def _handle_speech_end(self, audio: np.ndarray) -> None:
        self.speaking = False
        if self.on_speech_end:
            self.on_speech_end(audio)

    def _handle_misfire(self) -> None:
        self.speaking = False
        if self.on_misfire:
            self.on_misfire()
