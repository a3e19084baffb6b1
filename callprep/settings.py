from pydantic.types import PositiveFloat, PositiveInt
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # CORS
    CORS_ORIGIN: str = "*"
    CORS_ALLOW_CREDENTIALS: bool = False

    # local data directory
    DATA_DIR: str = "./data"

    # Uploads
    UPLOAD_MAX_BYTES: PositiveInt = 50 * 1024 * 1024

    # Upload storage
    # backends: local
    UPLOAD_STORAGE_BACKEND: str = "local"

    # Upload storage: local backend
    UPLOAD_STORAGE_LOCAL_PATH: str = "./data/uploads"

    # Audio compression
    # presets: MAXIMUM, HIGH, MEDIUM, LOW
    COMPRESSION_ENABLED: bool = True
    COMPRESSION_DEFAULT_PRESET: str = "MAXIMUM"
    # store the original upload when compression fails
    COMPRESSION_FALLBACK_TO_ORIGINAL: bool = True
    # caller-side timeout, in seconds
    COMPRESSION_TIMEOUT: PositiveFloat = 300

    # Analysis monitoring (seconds)
    ANALYSIS_MONITOR_ENABLED: bool = True
    ANALYSIS_MONITOR_INTERVAL: PositiveFloat = 60
    ANALYSIS_STUCK_THRESHOLD: PositiveFloat = 300
    ANALYSIS_LONG_RUNNING_THRESHOLD: PositiveFloat = 900
    ANALYSIS_STALE_THRESHOLD: PositiveFloat = 1800


settings = Settings()
