"""
Shared audio processing constants.

Used by the compression processors and the upload views so that supported
formats, codec limits and conditioning parameters stay consistent.
"""

# Accepted input types, keyed by MIME type
SUPPORTED_CONTENT_TYPES = {
    "audio/mpeg": "mp3",
    "audio/mp3": "mp3",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/wave": "wav",
    "audio/mp4": "m4a",
    "audio/x-m4a": "m4a",
    "audio/m4a": "m4a",
    "audio/aac": "aac",
    "audio/x-aac": "aac",
    "audio/ogg": "ogg",
    "audio/flac": "flac",
    "audio/x-flac": "flac",
    "audio/webm": "webm",
    "video/webm": "webm",
}

SUPPORTED_EXTENSIONS = frozenset(SUPPORTED_CONTENT_TYPES.values())

# Typical source bitrates (kbps) used for ratio estimation
TYPICAL_SOURCE_BIT_RATES = {
    "wav": 1411,
    "flac": 800,
    "mp3": 128,
    "m4a": 128,
    "aac": 128,
    "ogg": 112,
    "webm": 64,
}
DEFAULT_SOURCE_BIT_RATE = 128

# MPEG audio: legal bitrates (kbps) per sample rate
MPEG1_BIT_RATES = (32, 40, 48, 56, 64, 80, 96, 112, 128, 160, 192, 224, 256, 320)
MPEG2_BIT_RATES = (8, 16, 24, 32, 40, 48, 56, 64, 80, 96, 112, 128, 144, 160)
MPEG25_BIT_RATES = (8, 16, 24, 32, 40, 48, 56, 64)
MP3_BIT_RATES_BY_SAMPLE_RATE = {
    48000: MPEG1_BIT_RATES,
    44100: MPEG1_BIT_RATES,
    32000: MPEG1_BIT_RATES,
    24000: MPEG2_BIT_RATES,
    22050: MPEG2_BIT_RATES,
    16000: MPEG2_BIT_RATES,
    12000: MPEG25_BIT_RATES,
    11025: MPEG25_BIT_RATES,
    8000: MPEG25_BIT_RATES,
}

AAC_MIN_BIT_RATE = 8
AAC_MAX_BIT_RATE = 320

# Signal conditioning, shared by every preset
NORMALIZE_CEILING = 0.95
NOISE_GATE_THRESHOLD = 0.02
NOISE_GATE_FADE_SAMPLES = 64
DYNAMICS_THRESHOLD = 0.3
DYNAMICS_RATIO = 8.0
DYNAMICS_WINDOW_SECONDS = 0.01
DYNAMICS_MAKEUP_GAIN = 1.2
DYNAMICS_BELOW_THRESHOLD_GAIN = 1.1
DYNAMICS_CEILING = 0.95

# A real ratio below this is worth a warning
LOW_COMPRESSION_RATIO = 0.1
