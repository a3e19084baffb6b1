import asyncio
import io

import av
import numpy as np
from av.audio.resampler import AudioResampler
from av.error import FFmpegError

from callprep.processors.base import Processor
from callprep.processors.errors import DecodeError
from callprep.processors.types import AudioBuffer, AudioSource, PipelineStage
from callprep.utils.audio_constants import (
    SUPPORTED_CONTENT_TYPES,
    SUPPORTED_EXTENSIONS,
)

# (offset, magic, format), checked in order
_MAGIC_SIGNATURES = (
    (0, b"ID3", "mp3"),
    (0, b"fLaC", "flac"),
    (0, b"OggS", "ogg"),
    (0, b"\x1a\x45\xdf\xa3", "webm"),
    (4, b"ftyp", "m4a"),
    (0, b"ADIF", "aac"),
)


def sniff_content_type(data: bytes) -> str | None:
    """
    Guess the audio format from the first bytes of a file.
    Returns the format name (mp3, wav, ...) or None.
    """
    if data[:4] == b"RIFF" and data[8:12] == b"WAVE":
        return "wav"
    for offset, magic, fmt in _MAGIC_SIGNATURES:
        if data[offset : offset + len(magic)] == magic:
            return fmt
    if len(data) >= 2 and data[0] == 0xFF:
        # ADTS sync word has layer bits 00, MPEG audio layer III has 01
        if data[1] & 0xF6 == 0xF0:
            return "aac"
        if data[1] & 0xE0 == 0xE0:
            return "mp3"
    return None


def resolve_format(source: AudioSource) -> str:
    """
    Find the audio format of `source` from its declared MIME type, then its
    extension, then its content. Raise DecodeError if unsupported.
    """
    if not source.data:
        raise DecodeError("empty audio file", filename=source.filename)

    content_type = (source.content_type or "").split(";")[0].strip().lower()
    if content_type and content_type != "application/octet-stream":
        fmt = SUPPORTED_CONTENT_TYPES.get(content_type)
        if fmt is None:
            raise DecodeError(
                f"unsupported audio format {content_type}",
                filename=source.filename,
            )
        return fmt

    if source.extension in SUPPORTED_EXTENSIONS:
        return source.extension

    fmt = sniff_content_type(source.data)
    if fmt is None:
        raise DecodeError("unrecognized audio format", filename=source.filename)
    return fmt


def decode_audio(data: bytes, filename: str | None = None) -> AudioBuffer:
    """
    Decode a complete audio file into planar float samples at the source
    rate and channel count. All or nothing: any FFmpeg failure is raised as
    DecodeError.
    """
    chunks = []
    try:
        with av.open(io.BytesIO(data), mode="r") as container:
            if not container.streams.audio:
                raise DecodeError("file has no audio stream", filename=filename)
            stream = container.streams.audio[0]
            sample_rate = stream.codec_context.sample_rate
            channels = len(stream.codec_context.layout.channels)

            resampler = None
            for frame in container.decode(stream):
                if resampler is None:
                    sample_rate = frame.sample_rate
                    channels = len(frame.layout.channels)
                    # format conversion only, rate and layout are kept
                    resampler = AudioResampler(
                        format="fltp", layout=frame.layout, rate=frame.sample_rate
                    )
                for rframe in resampler.resample(frame):
                    chunks.append(rframe.to_ndarray())
            if resampler is not None:
                for rframe in resampler.resample(None):
                    chunks.append(rframe.to_ndarray())
    except FFmpegError as e:
        raise DecodeError(
            f"unsupported or corrupt audio: {e}", filename=filename
        ) from e

    if not sample_rate or sample_rate <= 0:
        raise DecodeError("unknown sample rate", filename=filename)

    if chunks:
        samples = np.concatenate(chunks, axis=1)
    else:
        samples = np.zeros((max(channels, 1), 0), dtype=np.float32)
    np.clip(samples, -1.0, 1.0, out=samples)
    return AudioBuffer(samples=samples, sample_rate=sample_rate)


class AudioDecoderProcessor(Processor):
    """
    Decode an uploaded audio file into raw samples
    """

    INPUT_TYPE = AudioSource
    OUTPUT_TYPE = AudioBuffer
    STAGE = PipelineStage.DECODING

    async def _push(self, data: AudioSource):
        fmt = resolve_format(data)
        buffer = await asyncio.to_thread(decode_audio, data.data, data.filename)
        self.logger.info(
            "Audio decoded",
            format=fmt,
            size=data.size,
            duration=round(buffer.duration, 2),
            sample_rate=buffer.sample_rate,
            channels=buffer.channels,
        )
        await self.emit(buffer)
