import importlib

from pydantic import BaseModel

from callprep.settings import settings


class StorageError(Exception):
    pass


class FileResult(BaseModel):
    id: str
    filename: str
    size: int
    content_type: str | None = None


class Storage:
    _registry = {}

    @classmethod
    def register(cls, name, kclass):
        cls._registry[name] = kclass

    @classmethod
    def get_instance(cls, name: str, settings_prefix: str = ""):
        if name not in cls._registry:
            module_name = f"callprep.storage.storage_{name}"
            importlib.import_module(module_name)

        # gather specific configuration for the backend
        # search `UPLOAD_STORAGE_LOCAL_XXX`, push to constructor as `local_xxx`
        config = {}
        name_upper = name.upper()
        config_prefix = f"{settings_prefix}{name_upper}_"
        for key, value in settings:
            if key.startswith(config_prefix):
                config_name = key[len(settings_prefix) :].lower()
                config[config_name] = value

        return cls._registry[name](**config)

    async def put_file(
        self, filename: str, data: bytes, content_type: str | None = None
    ) -> FileResult:
        return await self._put_file(filename, data, content_type)

    async def _put_file(
        self, filename: str, data: bytes, content_type: str | None = None
    ) -> FileResult:
        raise NotImplementedError

    async def get_file(self, file_id: str) -> bytes:
        return await self._get_file(file_id)

    async def _get_file(self, file_id: str) -> bytes:
        raise NotImplementedError

    async def delete_file(self, file_id: str):
        return await self._delete_file(file_id)

    async def _delete_file(self, file_id: str):
        raise NotImplementedError
