from callprep.processors.types import PipelineStage


class CompressionError(Exception):
    """
    Base error of the compression pipeline, tagged with the stage that
    raised it
    """

    STAGE: PipelineStage = PipelineStage.FAILED

    def __init__(
        self,
        message: str,
        filename: str | None = None,
        stage: PipelineStage | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.filename = filename
        self.stage = stage or self.STAGE

    def __str__(self):
        text = f"Compression failed at {self.stage.value}: {self.message}"
        if self.filename:
            text += f" ({self.filename})"
        return text

    def as_dict(self) -> dict:
        return {
            "stage": self.stage.value,
            "message": self.message,
            "filename": self.filename,
        }


class DecodeError(CompressionError):
    STAGE = PipelineStage.DECODING


class ResampleError(CompressionError):
    STAGE = PipelineStage.RESAMPLING


class InvalidArgumentError(CompressionError):
    STAGE = PipelineStage.CONDITIONING


class EncodeError(CompressionError):
    STAGE = PipelineStage.ENCODING


class CompressionCancelledError(CompressionError):
    pass


STAGE_ERRORS: dict[PipelineStage, type[CompressionError]] = {
    PipelineStage.DECODING: DecodeError,
    PipelineStage.RESAMPLING: ResampleError,
    PipelineStage.CONDITIONING: InvalidArgumentError,
    PipelineStage.ENCODING: EncodeError,
}
