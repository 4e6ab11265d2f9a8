"""
Frame buffers owned by the decision engine.

PadBuffer keeps recent frames while listening, SegmentAccumulator
collects the frames of the segment in progress.
"""

from collections import deque

import numpy as np


class PadBuffer:
    """Fixed-capacity FIFO of the most recent frames; oldest evicted first."""

    def __init__(self, capacity: int):
        self.capacity = max(0, int(capacity))
        self._frames: deque[np.ndarray] = deque(maxlen=self.capacity)

    def push(self, frame: np.ndarray) -> None:
        if self.capacity:
            self._frames.append(frame)

    def drain(self) -> list[np.ndarray]:
        """Return held frames oldest-first and empty the buffer."""
        frames = list(self._frames)
        self._frames.clear()
        return frames

    def clear(self) -> None:
        self._frames.clear()

    def __len__(self) -> int:
        return len(self._frames)


class SegmentAccumulator:
    """
    Ordered frames of the in-progress segment.

    Lead-in frames are seeded first; every frame appended afterwards
    counts as a speech frame (from onset on).
    """

    def __init__(self):
        self._frames: list[np.ndarray] = []
        self._lead_in = 0

    def seed(self, frames: list[np.ndarray]) -> None:
        self._frames = list(frames)
        self._lead_in = len(self._frames)

    def append(self, frame: np.ndarray) -> None:
        self._frames.append(frame)

    @property
    def lead_in_frames(self) -> int:
        return self._lead_in

    @property
    def speech_frames(self) -> int:
        return len(self._frames) - self._lead_in

    def concatenate(self) -> np.ndarray:
        """All frames as one contiguous float32 array."""
        if not self._frames:
            return np.zeros(0, dtype=np.float32)
        return np.concatenate(self._frames).astype(np.float32, copy=False)

    def clear(self) -> None:
        self._frames = []
        self._lead_in = 0

    def __len__(self) -> int:
        return len(self._frames)
