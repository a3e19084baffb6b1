import asyncio

import numpy as np

from callprep.processors.base import Processor
from callprep.processors.errors import ResampleError
from callprep.processors.types import AudioBuffer, CompressionSettings, PipelineStage


def mix_channels(samples: np.ndarray, channels: int) -> np.ndarray:
    """
    Convert (source_channels, frames) to (channels, frames).

    Mono is the mean of every source channel, so both parties of a two-way
    call are kept. Stereo from mono duplicates the channel.
    """
    source_channels = samples.shape[0]
    if source_channels == channels:
        return samples
    mono = samples.mean(axis=0, dtype=np.float32, keepdims=True)
    if channels == 1:
        return mono
    return np.repeat(mono, channels, axis=0)


def resample_linear(samples: np.ndarray, source_rate: int, target_rate: int) -> np.ndarray:
    """
    Resample every channel with linear interpolation.

    Output frame i is read at source position i * source_rate / target_rate,
    interpolating between the two nearest source frames. The output has
    floor(frames * target_rate / source_rate) frames.
    """
    if source_rate == target_rate:
        return samples
    frames = samples.shape[1]
    target_frames = int(frames * target_rate // source_rate)
    positions = np.arange(target_frames, dtype=np.float64) * (source_rate / target_rate)
    source_positions = np.arange(frames, dtype=np.float64)
    out = np.empty((samples.shape[0], target_frames), dtype=np.float32)
    for channel in range(samples.shape[0]):
        out[channel] = np.interp(positions, source_positions, samples[channel])
    return out


def downscale(buffer: AudioBuffer, sample_rate: int, channels: int) -> AudioBuffer:
    if sample_rate <= 0:
        raise ResampleError(f"invalid target sample rate {sample_rate}")
    if channels not in (1, 2):
        raise ResampleError(f"invalid target channel count {channels}")
    if buffer.is_empty or buffer.sample_rate <= 0:
        raise ResampleError("source audio buffer is empty")

    samples = mix_channels(buffer.samples, channels)
    samples = resample_linear(samples, buffer.sample_rate, sample_rate)
    if samples.shape[1] == 0:
        raise ResampleError("source audio is too short for the target rate")
    return AudioBuffer(samples=samples, sample_rate=sample_rate)


class AudioDownscaleProcessor(Processor):
    """
    Downmix and resample audio to the target profile of the settings
    """

    INPUT_TYPE = AudioBuffer
    OUTPUT_TYPE = AudioBuffer
    STAGE = PipelineStage.RESAMPLING

    def __init__(self, settings: CompressionSettings, **kwargs):
        super().__init__(**kwargs)
        self.target_rate = settings.sample_rate_hz
        self.target_channels = settings.channels

    async def _push(self, data: AudioBuffer):
        try:
            buffer = await asyncio.to_thread(
                downscale, data, self.target_rate, self.target_channels
            )
        except ResampleError as e:
            e.filename = e.filename or self.filename
            raise
        self.logger.info(
            "Audio downscaled",
            source_rate=data.sample_rate,
            source_channels=data.channels,
            sample_rate=buffer.sample_rate,
            channels=buffer.channels,
            frames=buffer.frames,
        )
        await self.emit(buffer)
