import io
import wave
from fractions import Fraction

import numpy as np
import pytest

# 44-byte RIFF header + 16-bit stereo frames
TEN_MIB = 10 * 1024 * 1024
TEN_MIB_STEREO_FRAMES = (TEN_MIB - 44) // 4


def speech_like(frames: int, sample_rate: int, channels: int = 1, seed: int = 0):
    """
    Voiced harmonics under a ~4 Hz syllable envelope, plus a little room
    noise. Shaped (channels, frames), float32 in [-1, 1].
    """
    rng = np.random.default_rng(seed)
    t = np.arange(frames) / sample_rate
    envelope = 0.5 + 0.5 * np.sin(2 * np.pi * 4 * t)
    voice = (
        0.5 * np.sin(2 * np.pi * 180 * t)
        + 0.25 * np.sin(2 * np.pi * 360 * t)
        + 0.1 * np.sin(2 * np.pi * 1100 * t)
    )
    mono = 0.6 * envelope * voice + 0.003 * rng.standard_normal(frames)
    samples = np.vstack([mono * (1.0 - 0.2 * c) for c in range(channels)])
    return np.clip(samples, -1.0, 1.0).astype(np.float32)


def wav_bytes(samples: np.ndarray, sample_rate: int) -> bytes:
    pcm = (samples.T * 32767).astype("<i2")
    output = io.BytesIO()
    with wave.open(output, "wb") as wav:
        wav.setnchannels(samples.shape[0])
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        wav.writeframes(pcm.tobytes())
    return output.getvalue()


@pytest.fixture
def make_wav():
    def _make_wav(duration: float = 2.0, sample_rate: int = 44100, channels: int = 2):
        frames = int(duration * sample_rate)
        return wav_bytes(speech_like(frames, sample_rate, channels), sample_rate)

    return _make_wav


@pytest.fixture
def wav_stereo_44k(make_wav) -> bytes:
    return make_wav(duration=3.0, sample_rate=44100, channels=2)


@pytest.fixture
def wav_10mib() -> bytes:
    data = wav_bytes(speech_like(TEN_MIB_STEREO_FRAMES, 44100, 2), 44100)
    assert len(data) == TEN_MIB
    return data


@pytest.fixture
def upload_storage_path(tmp_path):
    from callprep.settings import settings

    previous = settings.UPLOAD_STORAGE_LOCAL_PATH
    settings.UPLOAD_STORAGE_LOCAL_PATH = tmp_path.as_posix()
    yield tmp_path
    settings.UPLOAD_STORAGE_LOCAL_PATH = previous


@pytest.fixture
def audio_info():
    """Return (sample_rate, channels, duration) of an encoded payload"""
    import av

    def _audio_info(data: bytes):
        with av.open(io.BytesIO(data)) as container:
            stream = container.streams.audio[0]
            frames = list(container.decode(stream))
        assert frames
        samples = sum(frame.samples for frame in frames)
        rate = frames[0].sample_rate
        return rate, len(frames[0].layout.channels), samples / rate

    return _audio_info


@pytest.fixture
def make_buffer():
    from callprep.processors.types import AudioBuffer

    def _make_buffer(sample_rate: int, channels: int = 1, duration: float = 1.0):
        frames = int(sample_rate * duration)
        return AudioBuffer(
            samples=speech_like(frames, sample_rate, channels), sample_rate=sample_rate
        )

    return _make_buffer


# format -> (container, encoder, sample rate, content type); wav is written directly
SOURCE_FORMATS = {
    "wav": (None, None, 44100, "audio/wav"),
    "mp3": ("mp3", "libmp3lame", 44100, "audio/mpeg"),
    "flac": ("flac", "flac", 44100, "audio/flac"),
    "ogg": ("ogg", "libvorbis", 44100, "audio/ogg"),
    "m4a": ("ipod", "aac", 44100, "audio/mp4"),
    "aac": ("adts", "aac", 44100, "audio/aac"),
    "webm": ("webm", "libopus", 48000, "audio/webm"),
}


def encoded_bytes(
    samples: np.ndarray, sample_rate: int, container_format: str, codec: str
) -> bytes:
    import av

    layout = "mono" if samples.shape[0] == 1 else "stereo"
    output = io.BytesIO()
    with av.open(output, "w", format=container_format) as container:
        stream = container.add_stream(codec, rate=sample_rate)
        stream.codec_context.layout = layout
        if codec != "flac":
            stream.codec_context.bit_rate = 128000

        # the codec context reframes to its own frame size and sample format
        for start in range(0, samples.shape[1], 1024):
            chunk = np.ascontiguousarray(samples[:, start : start + 1024])
            frame = av.AudioFrame.from_ndarray(chunk, format="fltp", layout=layout)
            frame.sample_rate = sample_rate
            frame.pts = start
            frame.time_base = Fraction(1, sample_rate)
            for packet in stream.encode(frame):
                container.mux(packet)
        for packet in stream.encode(None):
            container.mux(packet)
    return output.getvalue()


@pytest.fixture
def make_encoded():
    """
    Build an AudioSource holding speech-like audio in one of the supported
    source formats. Returns (source, sample_rate). Skips when the local
    FFmpeg build lacks the encoder.
    """
    import av

    from callprep.processors.types import AudioSource

    def _make_encoded(fmt: str, duration: float = 2.0, channels: int = 2):
        container_format, codec, rate, content_type = SOURCE_FORMATS[fmt]
        samples = speech_like(int(duration * rate), rate, channels)
        if codec is None:
            data = wav_bytes(samples, rate)
        else:
            if codec not in av.codecs_available:
                pytest.skip(f"{codec} encoder not available")
            data = encoded_bytes(samples, rate, container_format, codec)
        source = AudioSource(
            data=data, filename=f"call.{fmt}", content_type=content_type
        )
        return source, rate

    return _make_encoded
