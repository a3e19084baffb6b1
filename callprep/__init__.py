from callprep.pipelines.compression import (  # noqa: F401
    CompressionRunner,
    compress,
    compress_sync,
    estimate_ratio,
)
from callprep.processors.errors import (  # noqa: F401
    CompressionCancelledError,
    CompressionError,
    DecodeError,
    EncodeError,
    InvalidArgumentError,
    ResampleError,
)
from callprep.processors.types import (  # noqa: F401
    AudioSource,
    CompressionPreset,
    CompressionResult,
    CompressionSettings,
    OutputFormat,
)
