from enum import StrEnum
from pathlib import PurePath

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator


class PipelineStage(StrEnum):
    IDLE = "IDLE"
    DECODING = "DECODING"
    RESAMPLING = "RESAMPLING"
    CONDITIONING = "CONDITIONING"
    ENCODING = "ENCODING"
    DONE = "DONE"
    FAILED = "FAILED"


class OutputFormat(StrEnum):
    MP3 = "mp3"
    AAC = "aac"

    @property
    def mime_type(self) -> str:
        return {
            OutputFormat.MP3: "audio/mpeg",
            OutputFormat.AAC: "audio/aac",
        }[self]


class CompressionPreset(StrEnum):
    MAXIMUM = "MAXIMUM"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class CompressionSettings(BaseModel):
    """
    Target profile of a compression run.

    Either one of the named presets (`preset` is set) or a custom explicit
    tuple (`preset` is None). Validated at construction.
    """

    model_config = ConfigDict(frozen=True)

    bit_rate_kbps: int = Field(gt=0)
    channels: int = Field(ge=1, le=2)
    sample_rate_hz: int = Field(gt=0)
    output_format: OutputFormat = OutputFormat.MP3
    normalize: bool = True
    remove_noise: bool = True
    compress_dynamics: bool = True
    preset: CompressionPreset | None = None

    @classmethod
    def from_preset(cls, preset: "CompressionPreset | str") -> "CompressionSettings":
        if isinstance(preset, str) and not isinstance(preset, CompressionPreset):
            try:
                preset = CompressionPreset(preset.strip().upper())
            except ValueError:
                raise ValueError(
                    f"Unknown compression preset {preset!r}, "
                    f"expected one of {', '.join(CompressionPreset)}"
                ) from None
        return COMPRESSION_PRESETS[preset]

    @property
    def label(self) -> str:
        return self.preset.value if self.preset else "CUSTOM"


COMPRESSION_PRESETS: dict[CompressionPreset, CompressionSettings] = {
    CompressionPreset.MAXIMUM: CompressionSettings(
        preset=CompressionPreset.MAXIMUM,
        bit_rate_kbps=16,
        channels=1,
        sample_rate_hz=11025,
    ),
    CompressionPreset.HIGH: CompressionSettings(
        preset=CompressionPreset.HIGH,
        bit_rate_kbps=32,
        channels=1,
        sample_rate_hz=16000,
    ),
    CompressionPreset.MEDIUM: CompressionSettings(
        preset=CompressionPreset.MEDIUM,
        bit_rate_kbps=64,
        channels=1,
        sample_rate_hz=22050,
    ),
    CompressionPreset.LOW: CompressionSettings(
        preset=CompressionPreset.LOW,
        bit_rate_kbps=96,
        channels=1,
        sample_rate_hz=44100,
        normalize=False,
        remove_noise=False,
        compress_dynamics=False,
    ),
}


class AudioSource(BaseModel):
    """Complete in-memory input file"""

    data: bytes
    filename: str = "audio"
    content_type: str | None = None

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        return PurePath(self.filename).suffix.lstrip(".").lower()


class AudioBuffer(BaseModel):
    """
    Decoded float32 samples shaped (channels, frames), values in [-1, 1]
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    samples: np.ndarray
    sample_rate: int

    @field_validator("samples")
    @classmethod
    def validate_samples(cls, value: np.ndarray) -> np.ndarray:
        if value.ndim != 2:
            raise ValueError("samples must be shaped (channels, frames)")
        return value.astype(np.float32, copy=False)

    @property
    def channels(self) -> int:
        return self.samples.shape[0]

    @property
    def frames(self) -> int:
        return self.samples.shape[1]

    @property
    def duration(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return self.frames / self.sample_rate

    @property
    def is_empty(self) -> bool:
        return self.samples.size == 0


class EncodedAudio(BaseModel):
    data: bytes
    sample_rate: int
    channels: int
    output_format: OutputFormat

    @property
    def mime_type(self) -> str:
        return self.output_format.mime_type


class CompressionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    original_size_bytes: int = Field(gt=0)
    compressed_size_bytes: int = Field(gt=0)
    compression_ratio: float = Field(ge=0.0, le=1.0)
    processing_time_ms: float = Field(ge=0.0)
    settings_used: CompressionSettings
    compressed_payload: bytes = Field(repr=False)
    compressed_filename: str
    mime_type: str

    def summary(self) -> dict:
        return self.model_dump(exclude={"compressed_payload"}, mode="json")


def compressed_filename(filename: str, output_format: OutputFormat) -> str:
    stem = PurePath(filename).stem or "audio"
    return f"{stem}_compressed.{output_format.value}"
