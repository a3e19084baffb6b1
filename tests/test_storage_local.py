import pytest

from callprep.storage import Storage, StorageError, get_upload_storage
from callprep.storage.storage_local import LocalStorage


@pytest.mark.asyncio
async def test_local_storage_roundtrip(tmp_path):
    storage = LocalStorage(local_path=tmp_path.as_posix())
    stored = await storage.put_file("call_compressed.mp3", b"ID3data", "audio/mpeg")

    assert stored.filename == "call_compressed.mp3"
    assert stored.size == 7
    assert stored.content_type == "audio/mpeg"
    assert (tmp_path / stored.id / "call_compressed.mp3").read_bytes() == b"ID3data"
    assert await storage.get_file(stored.id) == b"ID3data"

    await storage.delete_file(stored.id)
    assert not (tmp_path / stored.id).exists()
    with pytest.raises(StorageError):
        await storage.get_file(stored.id)


@pytest.mark.asyncio
async def test_local_storage_strips_directories(tmp_path):
    storage = LocalStorage(local_path=tmp_path.as_posix())
    stored = await storage.put_file("../../etc/passwd.wav", b"RIFF")
    assert stored.filename == "passwd.wav"
    assert (tmp_path / stored.id / "passwd.wav").exists()


@pytest.mark.asyncio
async def test_local_storage_rejects_invalid_ids(tmp_path):
    storage = LocalStorage(local_path=tmp_path.as_posix())
    with pytest.raises(StorageError):
        await storage.get_file("../secret")
    with pytest.raises(StorageError):
        await storage.delete_file("unknown")


def test_local_storage_requires_path():
    with pytest.raises(ValueError):
        LocalStorage(local_path="")


def test_get_upload_storage(upload_storage_path):
    storage = get_upload_storage()
    assert isinstance(storage, LocalStorage)
    assert storage.base_path == upload_storage_path


def test_get_instance_unknown_backend():
    with pytest.raises(ModuleNotFoundError):
        Storage.get_instance("nope", settings_prefix="UPLOAD_STORAGE_")
