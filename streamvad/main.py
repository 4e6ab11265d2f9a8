#!/usr/bin/env python3
"""
Real-time speech segment detection from the microphone.

- pyaudio callback -> StreamingVAD frame queue
- frame worker -> webrtcvad speech probability -> decision engine
- each finished segment is written to a WAV file
"""

import argparse
import logging
import sys
import threading
from pathlib import Path

import numpy as np

from .core import config
from .core.errors import ConfigurationError, InferenceError
from .interfaces.microphone import MicVAD
from .utils import encode_wav

logger = logging.getLogger("streamvad")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("--out-dir", type=Path, default=Path("segments"))
    parser.add_argument("--positive-threshold", type=float, default=None)
    parser.add_argument("--negative-threshold", type=float, default=None)
    parser.add_argument("--redemption-frames", type=int, default=None)
    parser.add_argument("--pre-speech-pad-frames", type=int, default=None)
    parser.add_argument("--min-speech-frames", type=int, default=None)
    parser.add_argument("--frame-samples", type=int, default=None)
    parser.add_argument(
        "--aggressiveness", type=int, default=config.WEBRTC_AGGRESSIVENESS
    )
    parser.add_argument("--log-level", default="INFO")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point: listen until interrupted."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    out_dir: Path = args.out_dir
    out_dir.mkdir(parents=True, exist_ok=True)
    failed = threading.Event()
    count = 0

    def on_speech_end(audio: np.ndarray) -> None:
        nonlocal count
        count += 1
        path = out_dir / f"segment-{count}.wav"
        path.write_bytes(encode_wav(audio, mic.vad.options.sample_rate))
        duration_s = len(audio) / mic.vad.options.sample_rate
        logger.info("Segment %d: %.2f s -> %s", count, duration_s, path)

    def on_error(exc: InferenceError) -> None:
        failed.set()

    try:
        mic = MicVAD.new(
            on_speech_start=lambda: logger.info("Speech start"),
            on_speech_end=on_speech_end,
            on_misfire=lambda: logger.info("Misfire"),
            on_error=on_error,
            aggressiveness=args.aggressiveness,
            positive_speech_threshold=args.positive_threshold,
            negative_speech_threshold=args.negative_threshold,
            redemption_frames=args.redemption_frames,
            pre_speech_pad_frames=args.pre_speech_pad_frames,
            min_speech_frames=args.min_speech_frames,
            frame_samples=args.frame_samples,
        )
    except ConfigurationError as exc:
        logger.error("%s", exc)
        return 2

    mic.start()
    logger.info("Listening, press Ctrl-C to stop")
    try:
        while not failed.wait(timeout=0.5):
            pass
        logger.error("Stopping after inference failure: %s", mic.vad.last_error)
        return 1
    except KeyboardInterrupt:
        return 0
    finally:
        mic.close()


if __name__ == "__main__":
    sys.exit(main())
