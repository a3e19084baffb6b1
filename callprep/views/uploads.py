from typing import Annotated

from fastapi import APIRouter, Depends, Form, HTTPException, UploadFile
from pydantic import BaseModel

from callprep.logger import logger
from callprep.pipelines.compression import compress, default_settings
from callprep.processors.errors import CompressionError
from callprep.processors.types import AudioSource, CompressionSettings
from callprep.settings import settings
from callprep.storage import Storage, get_upload_storage
from callprep.utils.audio_constants import SUPPORTED_CONTENT_TYPES

router = APIRouter()


class CompressionFailure(BaseModel):
    stage: str
    message: str


class UploadResponse(BaseModel):
    id: str
    filename: str
    size: int
    content_type: str | None
    original_filename: str
    original_size: int
    compressed: bool
    compression: dict | None = None
    compression_error: CompressionFailure | None = None


@router.post("/uploads")
async def upload_audio(
    file: UploadFile,
    storage: Annotated[Storage, Depends(get_upload_storage)],
    preset: Annotated[str | None, Form()] = None,
    compress_audio: Annotated[bool, Form(alias="compress")] = True,
) -> UploadResponse:
    content_type = (file.content_type or "").split(";")[0].strip().lower()
    if content_type not in SUPPORTED_CONTENT_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file type {content_type or 'unknown'}",
        )

    too_large = HTTPException(
        status_code=413,
        detail=f"File too large, maximum is {settings.UPLOAD_MAX_BYTES} bytes",
    )
    # reject before loading the body when the size is already known
    if file.size is not None and file.size > settings.UPLOAD_MAX_BYTES:
        raise too_large

    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Empty file")
    if len(data) > settings.UPLOAD_MAX_BYTES:
        raise too_large

    compression_settings: CompressionSettings | None = None
    if preset:
        try:
            compression_settings = CompressionSettings.from_preset(preset)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    source = AudioSource(
        data=data,
        filename=file.filename or "audio",
        content_type=content_type,
    )

    payload, filename, payload_type = source.data, source.filename, content_type
    summary = None
    failure = None
    if settings.COMPRESSION_ENABLED and compress_audio:
        try:
            result = await compress(
                source,
                compression_settings or default_settings(),
                timeout=settings.COMPRESSION_TIMEOUT,
            )
        except CompressionError as e:
            if not settings.COMPRESSION_FALLBACK_TO_ORIGINAL:
                raise HTTPException(
                    status_code=422,
                    detail={"stage": e.stage.value, "message": e.message},
                )
            logger.warning(
                "Compression failed, storing original",
                filename=source.filename,
                stage=e.stage.value,
                error=e.message,
            )
            failure = CompressionFailure(stage=e.stage.value, message=e.message)
        else:
            payload = result.compressed_payload
            filename = result.compressed_filename
            payload_type = result.mime_type
            summary = result.summary()

    stored = await storage.put_file(filename, payload, content_type=payload_type)
    return UploadResponse(
        id=stored.id,
        filename=stored.filename,
        size=stored.size,
        content_type=stored.content_type,
        original_filename=source.filename,
        original_size=source.size,
        compressed=summary is not None,
        compression=summary,
        compression_error=failure,
    )
