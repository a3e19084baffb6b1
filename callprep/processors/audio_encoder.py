import asyncio
import io
from fractions import Fraction

import av
import numpy as np
from av.error import FFmpegError

from callprep.processors.base import Processor
from callprep.processors.errors import EncodeError
from callprep.processors.types import (
    AudioBuffer,
    CompressionSettings,
    EncodedAudio,
    OutputFormat,
    PipelineStage,
)
from callprep.utils.audio_constants import (
    AAC_MAX_BIT_RATE,
    AAC_MIN_BIT_RATE,
    MP3_BIT_RATES_BY_SAMPLE_RATE,
)

# output format -> (codec, container format, samples per frame)
ENCODERS = {
    OutputFormat.MP3: ("libmp3lame", "mp3", 1152),
    OutputFormat.AAC: ("aac", "adts", 1024),
}


def validate_encoding(settings: CompressionSettings) -> None:
    """
    Raise EncodeError if the codec cannot produce the requested
    sample rate / bitrate combination
    """
    rate = settings.sample_rate_hz
    bit_rate = settings.bit_rate_kbps
    if settings.output_format == OutputFormat.MP3:
        allowed = MP3_BIT_RATES_BY_SAMPLE_RATE.get(rate)
        if allowed is None:
            raise EncodeError(
                f"mp3 does not support a {rate} Hz sample rate, expected one of "
                f"{', '.join(str(r) for r in sorted(MP3_BIT_RATES_BY_SAMPLE_RATE))}"
            )
        if bit_rate not in allowed:
            raise EncodeError(
                f"mp3 does not support {bit_rate} kbps at {rate} Hz, expected one of "
                f"{', '.join(str(b) for b in allowed)}"
            )
    elif settings.output_format == OutputFormat.AAC:
        if not AAC_MIN_BIT_RATE <= bit_rate <= AAC_MAX_BIT_RATE:
            raise EncodeError(
                f"aac does not support {bit_rate} kbps, expected "
                f"{AAC_MIN_BIT_RATE}-{AAC_MAX_BIT_RATE} kbps"
            )
    else:
        raise EncodeError(f"unsupported output format {settings.output_format}")


def encode_audio(buffer: AudioBuffer, settings: CompressionSettings) -> EncodedAudio:
    """
    Encode conditioned samples at a constant bitrate. The buffer must
    already be at the settings' sample rate and channel count.
    """
    validate_encoding(settings)
    if buffer.sample_rate != settings.sample_rate_hz or buffer.channels != settings.channels:
        raise EncodeError(
            f"encoder input is {buffer.sample_rate} Hz / {buffer.channels} ch, "
            f"expected {settings.sample_rate_hz} Hz / {settings.channels} ch"
        )

    codec, container_format, frame_size = ENCODERS[settings.output_format]
    rate = settings.sample_rate_hz
    layout = "mono" if settings.channels == 1 else "stereo"
    output = io.BytesIO()

    try:
        with av.open(output, "w", format=container_format) as container:
            stream = container.add_stream(codec, rate=rate)
            stream.codec_context.layout = layout
            stream.codec_context.format = "fltp"
            stream.codec_context.bit_rate = settings.bit_rate_kbps * 1000

            for start in range(0, buffer.frames, frame_size):
                chunk = np.ascontiguousarray(buffer.samples[:, start : start + frame_size])
                frame = av.AudioFrame.from_ndarray(chunk, format="fltp", layout=layout)
                frame.sample_rate = rate
                frame.pts = start
                frame.time_base = Fraction(1, rate)
                for packet in stream.encode(frame):
                    container.mux(packet)

            # flush encoder
            for packet in stream.encode(None):
                container.mux(packet)
    except FFmpegError as e:
        raise EncodeError(f"{codec} encoding failed: {e}") from e

    data = output.getvalue()
    if not data:
        raise EncodeError(f"{codec} encoding produced no output")

    return EncodedAudio(
        data=data,
        sample_rate=rate,
        channels=settings.channels,
        output_format=settings.output_format,
    )


class AudioEncoderProcessor(Processor):
    """
    Encode conditioned audio into the compressed output format
    """

    INPUT_TYPE = AudioBuffer
    OUTPUT_TYPE = EncodedAudio
    STAGE = PipelineStage.ENCODING

    def __init__(self, settings: CompressionSettings, **kwargs):
        super().__init__(**kwargs)
        self.settings = settings

    async def _push(self, data: AudioBuffer):
        try:
            encoded = await asyncio.to_thread(encode_audio, data, self.settings)
        except EncodeError as e:
            e.filename = e.filename or self.filename
            raise
        self.logger.info(
            "Audio encoded",
            format=encoded.output_format,
            size=len(encoded.data),
            bit_rate_kbps=self.settings.bit_rate_kbps,
            actual_kbps=round(len(encoded.data) * 8 / data.duration / 1000, 1)
            if data.duration
            else None,
        )
        await self.emit(encoded)
