import asyncio
from pathlib import Path, PurePath
from uuid import uuid4

from callprep.logger import logger
from callprep.storage.base import FileResult, Storage, StorageError


class LocalStorage(Storage):
    """
    Store files in a local directory, as `<id>/<filename>`
    """

    def __init__(self, local_path: str):
        if not local_path:
            raise ValueError("Storage `local_storage` require `local_path`")
        super().__init__()
        self.base_path = Path(local_path)

    def _file_dir(self, file_id: str) -> Path:
        # ids are generated by us, refuse anything that could escape base_path
        if not file_id or not file_id.isalnum():
            raise StorageError(f"Invalid file id {file_id!r}")
        return self.base_path / file_id

    def _find(self, file_id: str) -> Path:
        directory = self._file_dir(file_id)
        files = list(directory.glob("*")) if directory.is_dir() else []
        if not files:
            raise StorageError(f"File {file_id} not found")
        return files[0]

    def _write(self, path: Path, data: bytes):
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    async def _put_file(
        self, filename: str, data: bytes, content_type: str | None = None
    ) -> FileResult:
        file_id = uuid4().hex
        name = PurePath(filename).name or "audio"
        path = self._file_dir(file_id) / name
        await asyncio.to_thread(self._write, path, data)
        logger.info("File stored", id=file_id, filename=name, size=len(data))
        return FileResult(
            id=file_id,
            filename=name,
            size=len(data),
            content_type=content_type,
        )

    async def _get_file(self, file_id: str) -> bytes:
        path = self._find(file_id)
        return await asyncio.to_thread(path.read_bytes)

    async def _delete_file(self, file_id: str):
        path = self._find(file_id)
        await asyncio.to_thread(path.unlink)
        path.parent.rmdir()
        logger.info("File deleted", id=file_id)


Storage.register("local", LocalStorage)
