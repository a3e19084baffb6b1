from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from callprep.pipelines.compression import default_settings, estimate_ratio
from callprep.processors.types import COMPRESSION_PRESETS, CompressionSettings

router = APIRouter()


class CompressionEstimateRequest(BaseModel):
    file_size_bytes: int = Field(gt=0)
    preset: str | None = None
    settings: CompressionSettings | None = None
    source_format: str | None = None


class CompressionEstimate(BaseModel):
    estimated_ratio: float
    settings: CompressionSettings


@router.get("/compression/presets")
async def compression_presets() -> list[CompressionSettings]:
    return list(COMPRESSION_PRESETS.values())


@router.post("/compression/estimate")
async def compression_estimate(
    request: CompressionEstimateRequest,
) -> CompressionEstimate:
    if request.settings is not None:
        settings = request.settings
    elif request.preset is not None:
        try:
            settings = CompressionSettings.from_preset(request.preset)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
    else:
        settings = default_settings()

    ratio = estimate_ratio(
        request.file_size_bytes, settings, source_format=request.source_format
    )
    return CompressionEstimate(estimated_ratio=ratio, settings=settings)
