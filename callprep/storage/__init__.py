from .base import FileResult, Storage, StorageError  # noqa
from callprep.settings import settings


def get_upload_storage() -> Storage:
    """
    Get storage for uploaded (compressed or original) audio files
    """
    assert settings.UPLOAD_STORAGE_BACKEND
    return Storage.get_instance(
        name=settings.UPLOAD_STORAGE_BACKEND,
        settings_prefix="UPLOAD_STORAGE_",
    )
