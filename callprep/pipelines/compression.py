"""
Compression pipeline
====================

Runs one audio file through decode -> downscale -> condition -> encode and
packages the outcome as a CompressionResult.

Each invocation builds its own Pipeline, so concurrent compressions share
no state. The pipeline state goes through:
- IDLE: created, nothing pushed yet
- DECODING, RESAMPLING, CONDITIONING, ENCODING: stage currently running
- DONE: result available
- FAILED: a stage raised; `failed_stage` and `error` tell which and why

There are no retries: the stage-tagged CompressionError is raised to the
caller, which decides whether to retry with another preset or keep the
original file.
"""

import asyncio
import time

from prometheus_client import Counter, Histogram

from callprep.processors import (
    AudioConditionerProcessor,
    AudioDecoderProcessor,
    AudioDownscaleProcessor,
    AudioEncoderProcessor,
    Pipeline,
)
from callprep.processors.errors import (
    CompressionCancelledError,
    CompressionError,
    EncodeError,
)
from callprep.processors.types import (
    AudioSource,
    CompressionResult,
    CompressionSettings,
    EncodedAudio,
    PipelineStage,
    compressed_filename,
)
from callprep.settings import settings as app_settings
from callprep.utils.audio_constants import (
    DEFAULT_SOURCE_BIT_RATE,
    LOW_COMPRESSION_RATIO,
    SUPPORTED_CONTENT_TYPES,
    TYPICAL_SOURCE_BIT_RATES,
)

m_compression = Histogram(
    "compression",
    "Time spent compressing one audio file",
    ["preset"],
)
m_compression_ratio = Histogram(
    "compression_ratio",
    "Size reduction of compressed audio files",
    ["preset"],
    buckets=(0.1, 0.25, 0.5, 0.75, 0.8, 0.85, 0.9, 0.95, 0.99, 1.0),
)
m_compression_failure = Counter(
    "compression_failure",
    "Number of failed compressions",
    ["stage"],
)


def default_settings() -> CompressionSettings:
    return CompressionSettings.from_preset(app_settings.COMPRESSION_DEFAULT_PRESET)


class CompressionRunner:
    """
    Compress a single audio file with a single set of settings
    """

    def __init__(
        self,
        source: AudioSource,
        settings: CompressionSettings | None = None,
        cancel_event: asyncio.Event | None = None,
        on_event=None,
    ):
        self.source = source
        self.settings = settings or default_settings()
        self._outputs: list[EncodedAudio] = []

        encoder = AudioEncoderProcessor(self.settings, callback=self._on_encoded)
        self.pipeline = Pipeline(
            AudioDecoderProcessor(),
            AudioDownscaleProcessor(self.settings),
            AudioConditionerProcessor(self.settings),
            encoder,
            filename=source.filename,
            cancel_event=cancel_event,
        )
        if on_event:
            self.pipeline.on(on_event)

        self.logger = self.pipeline.logger.bind(preset=self.settings.label)

    @property
    def state(self) -> PipelineStage:
        return self.pipeline.state

    @property
    def failed_stage(self) -> PipelineStage | None:
        return self.pipeline.failed_stage

    @property
    def error(self) -> CompressionError | None:
        return self.pipeline.error

    async def _on_encoded(self, encoded: EncodedAudio):
        self._outputs.append(encoded)

    async def run(self) -> CompressionResult:
        start = time.monotonic()
        original_size = self.source.size
        self.logger.info(
            "Compression started",
            size=original_size,
            content_type=self.source.content_type,
            bit_rate_kbps=self.settings.bit_rate_kbps,
            sample_rate=self.settings.sample_rate_hz,
            channels=self.settings.channels,
        )

        try:
            with m_compression.labels(self.settings.label).time():
                await self.pipeline.push(self.source)
                if not self._outputs:
                    error = EncodeError(
                        "pipeline produced no encoded audio",
                        filename=self.source.filename,
                    )
                    self.pipeline.fail(error)
                    raise error
        except CompressionError as e:
            m_compression_failure.labels(e.stage.value).inc()
            self.logger.error(
                "Compression failed", stage=e.stage.value, error=e.message
            )
            raise

        encoded = self._outputs[-1]
        self.pipeline.done()

        compressed_size = len(encoded.data)
        ratio = min(1.0, max(0.0, 1.0 - compressed_size / original_size))
        processing_time_ms = (time.monotonic() - start) * 1000
        m_compression_ratio.labels(self.settings.label).observe(ratio)

        result = CompressionResult(
            original_size_bytes=original_size,
            compressed_size_bytes=compressed_size,
            compression_ratio=ratio,
            processing_time_ms=processing_time_ms,
            settings_used=self.settings,
            compressed_payload=encoded.data,
            compressed_filename=compressed_filename(
                self.source.filename, encoded.output_format
            ),
            mime_type=encoded.mime_type,
        )

        self.logger.info(
            "Compression complete",
            original_size=original_size,
            compressed_size=compressed_size,
            ratio=round(ratio, 3),
            processing_time_ms=round(processing_time_ms),
        )
        if ratio < LOW_COMPRESSION_RATIO:
            self.logger.warning(
                "Low compression ratio, file may already be highly compressed",
                ratio=round(ratio, 3),
            )
        return result


async def compress(
    source: AudioSource,
    settings: CompressionSettings | None = None,
    *,
    cancel_event: asyncio.Event | None = None,
    timeout: float | None = None,
    on_event=None,
) -> CompressionResult:
    """
    Compress `source` with `settings` (default preset from configuration).

    Raise a CompressionError tagged with the failing stage. When `timeout`
    (default COMPRESSION_TIMEOUT) elapses, the in-flight stage is abandoned
    and CompressionCancelledError is raised.
    """
    runner = CompressionRunner(
        source, settings, cancel_event=cancel_event, on_event=on_event
    )
    timeout = timeout or app_settings.COMPRESSION_TIMEOUT
    try:
        return await asyncio.wait_for(runner.run(), timeout=timeout)
    except asyncio.TimeoutError:
        stage = runner.state
        error = CompressionCancelledError(
            f"timed out after {timeout}s",
            filename=source.filename,
            stage=stage if stage != PipelineStage.FAILED else runner.failed_stage,
        )
        runner.pipeline.fail(error)
        m_compression_failure.labels(error.stage.value).inc()
        runner.logger.error("Compression timed out", stage=error.stage.value)
        raise error from None


def compress_sync(
    source: AudioSource,
    settings: CompressionSettings | None = None,
    timeout: float | None = None,
) -> CompressionResult:
    """
    Compress synchronously (for non-asyncio callers)
    """
    return asyncio.run(compress(source, settings, timeout=timeout))


def _source_format(source_format: str | None) -> str | None:
    if not source_format:
        return None
    value = source_format.split(";")[0].strip().lower()
    if "/" in value:
        return SUPPORTED_CONTENT_TYPES.get(value)
    return value.rsplit(".", 1)[-1]


def estimate_ratio(
    file_size_bytes: int,
    settings: CompressionSettings,
    source_format: str | None = None,
) -> float:
    """
    Advisory compression ratio, computed without touching the audio.

    The source duration is inferred from a typical bitrate for its format,
    and the compressed size from the target bitrate (capped by the 16-bit
    PCM rate of the target profile). The real ratio after encoding may
    differ.
    """
    if file_size_bytes <= 0:
        raise ValueError("file_size_bytes must be positive")

    fmt = _source_format(source_format)
    source_kbps = TYPICAL_SOURCE_BIT_RATES.get(fmt, DEFAULT_SOURCE_BIT_RATE)
    pcm_kbps = settings.sample_rate_hz * settings.channels * 16 / 1000
    target_kbps = min(settings.bit_rate_kbps, pcm_kbps)

    duration = file_size_bytes * 8 / (source_kbps * 1000)
    estimated_size = duration * target_kbps * 1000 / 8
    ratio = 1.0 - estimated_size / file_size_bytes
    return min(1.0, max(0.0, ratio))
