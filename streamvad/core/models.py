"""
Probability sources backed by webrtcvad.
"""

import numpy as np
import webrtcvad

from . import config
from .errors import ConfigurationError
from .vad import SpeechProbabilities


class WebRTCSpeechSource:
    """
    Speech probability from the WebRTC VAD.

    WebRTC only answers yes/no for 10, 20 or 30 ms of PCM16 audio, so each
    frame is cut into sub-frames and the voiced fraction is reported as
    the speech score. A trailing remainder shorter than a sub-frame is
    not scored.
    """

    def __init__(
        self,
        sample_rate: int = config.SAMPLE_RATE,
        aggressiveness: int = config.WEBRTC_AGGRESSIVENESS,
        subframe_ms: int = 10,
    ):
        if sample_rate not in config.WEBRTC_SAMPLE_RATES:
            raise ConfigurationError(
                f"webrtcvad does not support sample rate {sample_rate}"
            )
        if subframe_ms not in config.WEBRTC_FRAME_MS:
            raise ConfigurationError(
                f"webrtcvad sub-frames must be 10, 20 or 30 ms, got {subframe_ms}"
            )
        if not 0 <= int(aggressiveness) <= 3:
            raise ConfigurationError("webrtcvad aggressiveness must be 0..3")

        self.sample_rate = sample_rate
        self.aggressiveness = int(aggressiveness)
        self.subframe_samples = sample_rate * subframe_ms // 1000
        self.vad = webrtcvad.Vad(self.aggressiveness)

    def infer(self, frame: np.ndarray) -> SpeechProbabilities:
        pcm = (np.clip(frame, -1.0, 1.0) * 32767.0).astype(np.int16)
        n = len(pcm) // self.subframe_samples
        if n == 0:
            return SpeechProbabilities(is_speech=0.0, not_speech=1.0)

        voiced = 0
        for i in range(n):
            chunk = pcm[i * self.subframe_samples : (i + 1) * self.subframe_samples]
            if self.vad.is_speech(chunk.tobytes(), self.sample_rate):
                voiced += 1

        score = voiced / n
        return SpeechProbabilities(is_speech=score, not_speech=1.0 - score)

    def reset_state(self) -> None:
        self.vad = webrtcvad.Vad(self.aggressiveness)
