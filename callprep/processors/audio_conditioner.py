"""
Speech conditioning applied before lossy encoding.

Steps run in a fixed order: peak normalization, noise gate, then dynamic
range compression. Each one keeps the buffer length and channel count and
clamps samples instead of letting them wrap.
"""

import asyncio

import numpy as np

from callprep.processors.base import Processor
from callprep.processors.errors import InvalidArgumentError
from callprep.processors.types import AudioBuffer, CompressionSettings, PipelineStage
from callprep.utils.audio_constants import (
    DYNAMICS_BELOW_THRESHOLD_GAIN,
    DYNAMICS_CEILING,
    DYNAMICS_MAKEUP_GAIN,
    DYNAMICS_RATIO,
    DYNAMICS_THRESHOLD,
    DYNAMICS_WINDOW_SECONDS,
    NOISE_GATE_FADE_SAMPLES,
    NOISE_GATE_THRESHOLD,
    NORMALIZE_CEILING,
)


def normalize_peak(samples: np.ndarray, ceiling: float = NORMALIZE_CEILING) -> np.ndarray:
    peak = float(np.abs(samples).max()) if samples.size else 0.0
    if peak == 0.0:
        return samples
    out = samples * np.float32(ceiling / peak)
    return np.clip(out, -1.0, 1.0, out=out)


def noise_gate(
    samples: np.ndarray,
    threshold: float = NOISE_GATE_THRESHOLD,
    fade_samples: int = NOISE_GATE_FADE_SAMPLES,
) -> np.ndarray:
    """
    Attenuate runs of samples quieter than `threshold`.

    Within a run, the n-th quiet sample is scaled by 1 - n / fade_samples,
    so room noise fades to silence after `fade_samples` samples. A sample
    at or above the threshold restores full gain.
    """
    out = np.empty_like(samples)
    frames = samples.shape[1]
    index = np.arange(frames)
    for channel in range(samples.shape[0]):
        data = samples[channel]
        quiet = np.abs(data) < threshold
        # index of the last loud sample at or before each position
        last_loud = np.maximum.accumulate(np.where(quiet, -1, index))
        run_length = index - last_loud
        gain = np.where(quiet, np.clip(1.0 - run_length / fade_samples, 0.0, 1.0), 1.0)
        out[channel] = data * gain.astype(np.float32)
    return out


def moving_average(values: np.ndarray, window: int) -> np.ndarray:
    """Centered moving average, same length as `values`, zero padded"""
    if window <= 1:
        return values.astype(np.float64)
    left = window // 2
    right = window - 1 - left
    padded = np.concatenate([np.zeros(left), values, np.zeros(right)])
    totals = np.concatenate([[0.0], np.cumsum(padded, dtype=np.float64)])
    return (totals[window:] - totals[:-window]) / window


def compress_dynamics(
    samples: np.ndarray,
    sample_rate: int,
    threshold: float = DYNAMICS_THRESHOLD,
    ratio: float = DYNAMICS_RATIO,
) -> np.ndarray:
    """
    Reduce the gap between loud and quiet passages.

    The envelope is a centred (non-causal) moving average of |x| over
    DYNAMICS_WINDOW_SECONDS, so gain reduction starts half a window ahead
    of a loud onset.
    Above `threshold` the envelope is brought down to
    threshold + excess / ratio before makeup gain.
    """
    window = max(1, int(sample_rate * DYNAMICS_WINDOW_SECONDS))
    out = np.empty_like(samples)
    for channel in range(samples.shape[0]):
        data = samples[channel]
        envelope = moving_average(np.abs(data), window)
        loud = envelope > threshold
        safe_envelope = np.where(loud, envelope, 1.0)
        reduction = (threshold + (safe_envelope - threshold) / ratio) / safe_envelope
        gain = np.where(
            loud,
            reduction * DYNAMICS_MAKEUP_GAIN,
            DYNAMICS_BELOW_THRESHOLD_GAIN,
        )
        out[channel] = data * gain.astype(np.float32)
    return np.clip(out, -DYNAMICS_CEILING, DYNAMICS_CEILING, out=out)


def condition(buffer: AudioBuffer, settings: CompressionSettings) -> AudioBuffer:
    if buffer.is_empty:
        raise InvalidArgumentError("cannot condition an empty audio buffer")

    samples = buffer.samples
    if settings.normalize:
        samples = normalize_peak(samples)
    if settings.remove_noise:
        samples = noise_gate(samples)
    if settings.compress_dynamics:
        samples = compress_dynamics(samples, buffer.sample_rate)
    samples = np.clip(samples, -1.0, 1.0)
    return AudioBuffer(samples=samples, sample_rate=buffer.sample_rate)


class AudioConditionerProcessor(Processor):
    """
    Improve voice intelligibility before encoding
    """

    INPUT_TYPE = AudioBuffer
    OUTPUT_TYPE = AudioBuffer
    STAGE = PipelineStage.CONDITIONING

    def __init__(self, settings: CompressionSettings, **kwargs):
        super().__init__(**kwargs)
        self.settings = settings

    async def _push(self, data: AudioBuffer):
        try:
            buffer = await asyncio.to_thread(condition, data, self.settings)
        except InvalidArgumentError as e:
            e.filename = e.filename or self.filename
            raise
        self.logger.info(
            "Audio conditioned",
            normalize=self.settings.normalize,
            remove_noise=self.settings.remove_noise,
            compress_dynamics=self.settings.compress_dynamics,
            peak=round(float(np.abs(buffer.samples).max()), 4),
        )
        await self.emit(buffer)
