from .audio_conditioner import AudioConditionerProcessor  # noqa: F401
from .audio_decoder import AudioDecoderProcessor  # noqa: F401
from .audio_downscale import AudioDownscaleProcessor  # noqa: F401
from .audio_encoder import AudioEncoderProcessor  # noqa: F401
from .base import (  # noqa: F401
    Pipeline,
    PipelineEvent,
    Processor,
)
from .errors import (  # noqa: F401
    CompressionCancelledError,
    CompressionError,
    DecodeError,
    EncodeError,
    InvalidArgumentError,
    ResampleError,
)
from .types import (  # noqa: F401
    COMPRESSION_PRESETS,
    AudioBuffer,
    AudioSource,
    CompressionPreset,
    CompressionResult,
    CompressionSettings,
    EncodedAudio,
    OutputFormat,
    PipelineStage,
)
