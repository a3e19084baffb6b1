import numpy as np
import pytest

from callprep.processors import AudioDecoderProcessor, AudioSource, DecodeError
from callprep.processors.audio_decoder import (
    decode_audio,
    resolve_format,
    sniff_content_type,
)


@pytest.mark.parametrize(
    "header,expected",
    [
        (b"RIFF\x00\x00\x00\x00WAVEfmt ", "wav"),
        (b"ID3\x04\x00\x00\x00\x00\x00\x00", "mp3"),
        (b"\xff\xfb\x90\x64\x00\x00", "mp3"),
        (b"\xff\xf1\x50\x80\x00\x00", "aac"),
        (b"fLaC\x00\x00\x00\x22", "flac"),
        (b"OggS\x00\x02\x00\x00", "ogg"),
        (b"\x1a\x45\xdf\xa3\x9f\x42", "webm"),
        (b"\x00\x00\x00\x20ftypM4A ", "m4a"),
        (b"hello world, not audio", None),
        (b"", None),
    ],
)
def test_sniff_content_type(header, expected):
    assert sniff_content_type(header) == expected


def test_resolve_format_prefers_declared_type():
    source = AudioSource(data=b"abc", filename="call.wav", content_type="audio/mpeg")
    assert resolve_format(source) == "mp3"


def test_resolve_format_octet_stream_uses_extension():
    source = AudioSource(
        data=b"abc", filename="call.flac", content_type="application/octet-stream"
    )
    assert resolve_format(source) == "flac"


def test_resolve_format_sniffs_without_hints():
    source = AudioSource(data=b"OggS\x00\x02", filename="recording")
    assert resolve_format(source) == "ogg"


def test_resolve_format_unsupported_type():
    source = AudioSource(data=b"abc", filename="doc.pdf", content_type="application/pdf")
    with pytest.raises(DecodeError) as excinfo:
        resolve_format(source)
    assert excinfo.value.filename == "doc.pdf"


def test_resolve_format_empty():
    with pytest.raises(DecodeError, match="empty"):
        resolve_format(AudioSource(data=b"", filename="call.mp3"))


def test_resolve_format_unrecognized():
    with pytest.raises(DecodeError):
        resolve_format(AudioSource(data=b"plain text", filename="notes"))


def test_decode_wav(make_wav):
    buffer = decode_audio(make_wav(duration=1.0, sample_rate=22050, channels=2))
    assert buffer.sample_rate == 22050
    assert buffer.channels == 2
    assert buffer.frames == 22050
    assert buffer.samples.dtype == np.float32
    assert np.abs(buffer.samples).max() <= 1.0
    assert np.abs(buffer.samples).max() > 0.1


def test_decode_garbage():
    with pytest.raises(DecodeError):
        decode_audio(b"\x00\x01garbage" * 64, filename="broken.wav")


@pytest.mark.asyncio
async def test_decoder_processor_emits_buffer(make_wav):
    outputs = []

    async def capture(buffer):
        outputs.append(buffer)

    processor = AudioDecoderProcessor(callback=capture)
    await processor.push(
        AudioSource(data=make_wav(duration=0.5, sample_rate=16000, channels=1))
    )
    assert len(outputs) == 1
    assert outputs[0].sample_rate == 16000
    assert outputs[0].channels == 1


SOURCE_FORMATS = ["wav", "mp3", "flac", "ogg", "m4a", "aac", "webm"]


@pytest.mark.parametrize("fmt", SOURCE_FORMATS)
def test_decode_source_formats(fmt, make_encoded):
    source, rate = make_encoded(fmt, duration=2.0, channels=2)
    assert sniff_content_type(source.data) == fmt
    assert resolve_format(source) == fmt

    buffer = decode_audio(source.data, filename=source.filename)
    assert buffer.sample_rate == rate
    assert buffer.channels == 2
    # lossy encoders add a few ms of priming/padding
    assert buffer.duration == pytest.approx(2.0, abs=0.15)
    assert np.abs(buffer.samples).max() > 0.1


@pytest.mark.parametrize("fmt", SOURCE_FORMATS)
def test_resolve_format_octet_stream_sniffs_content(fmt, make_encoded):
    source, _ = make_encoded(fmt, duration=0.5)
    unlabeled = AudioSource(
        data=source.data, filename="recording", content_type="application/octet-stream"
    )
    assert resolve_format(unlabeled) == fmt
