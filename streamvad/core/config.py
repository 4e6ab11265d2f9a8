"""
Core configuration constants for frame-level voice activity detection.
These are transport-agnostic settings.
"""

# -------------------------
# AUDIO CONFIG
# -------------------------
SAMPLE_RATE = 16000
CHANNELS = 1
SAMPLE_WIDTH = 2  # bytes per sample (int16) on the capture side

# frame sizes the probability models are tuned for (32/64/96 ms at 16 kHz)
RECOMMENDED_FRAME_SAMPLES = (512, 1024, 1536)
FRAME_SAMPLES = 1536

# -------------------------
# DECISION ENGINE DEFAULTS
# -------------------------
POSITIVE_SPEECH_THRESHOLD = 0.5  # score needed to enter a segment
NEGATIVE_SPEECH_THRESHOLD = 0.5 - 0.15  # score needed to stay in a segment
PRE_SPEECH_PAD_FRAMES = 1  # lead-in frames prepended on onset
REDEMPTION_FRAMES = 2  # low frames tolerated before a segment ends
MIN_SPEECH_FRAMES = 3  # shorter segments are reported as misfires

# -------------------------
# WEBRTC SOURCE
# -------------------------
WEBRTC_AGGRESSIVENESS = 2  # 0..3
WEBRTC_FRAME_MS = (10, 20, 30)
WEBRTC_SAMPLE_RATES = (8000, 16000, 32000, 48000)

# -------------------------
# STREAMING FRONT-END
# -------------------------
FRAME_QUEUE_MAX = 800
WORKER_POLL_S = 0.05
MIC_CHUNK_MS = 100
