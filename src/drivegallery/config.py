from pathlib import Path
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional
import logging
from functools import lru_cache

SUPPORTED_THUMBNAIL_FORMATS = {"webp": "image/webp", "jpeg": "image/jpeg", "png": "image/png"}


class Settings(BaseSettings):
    """
    Centralized application configuration with type validation.
    Automatically reads variables from the environment and the .env file.
    """
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # --- General Settings ---
    HOST: str = "0.0.0.0"
    PORT: int = 5001
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = Field(
        default_factory=lambda: ["http://localhost:3000"]
    )

    # --- Google Drive Settings ---
    # Either a service account key (inline JSON or a path to the file)
    # or an authorized user token produced by `drivegallery-auth`.
    GDRIVE_CREDENTIALS_JSON: Optional[str] = None
    GDRIVE_CREDENTIALS_FILE: Optional[str] = None
    GDRIVE_TOKEN_JSON: Optional[str] = None

    # --- Album Cache Settings ---
    ALBUM_CACHE_TTL_SECONDS: float = 300.0
    ALBUM_CACHE_SLIDING: bool = False
    ALBUM_CACHE_MAX_ENTRIES: int = 1024

    # --- Listing Settings ---
    IMAGES_PAGE_SIZE: int = Field(50, ge=1, le=1000)

    # --- Thumbnail Settings ---
    THUMBNAIL_DEFAULT_WIDTH: int = 600
    THUMBNAIL_MAX_WIDTH: int = 4000
    THUMBNAIL_FORMAT: str = "webp"
    THUMBNAIL_QUALITY: int = Field(80, ge=1, le=100)
    STREAM_CHUNK_SIZE: int = 256 * 1024  # 256 KB

    # --- Password Settings ---
    PASSWORD_FILE_NAME: str = "password.txt"
    PASSWORD_MAX_BYTES: int = 4096

    # Optional log file in addition to the console.
    LOG_FILE: Optional[Path] = None

    @model_validator(mode="after")
    def validate_credentials_and_formats(self):
        if not (
            self.GDRIVE_CREDENTIALS_JSON
            or self.GDRIVE_CREDENTIALS_FILE
            or self.GDRIVE_TOKEN_JSON
        ):
            raise ValueError(
                "One of GDRIVE_CREDENTIALS_JSON, GDRIVE_CREDENTIALS_FILE or GDRIVE_TOKEN_JSON is required."
            )

        self.THUMBNAIL_FORMAT = self.THUMBNAIL_FORMAT.lower()
        if self.THUMBNAIL_FORMAT not in SUPPORTED_THUMBNAIL_FORMATS:
            raise ValueError(
                f"Invalid THUMBNAIL_FORMAT. Must be one of {sorted(SUPPORTED_THUMBNAIL_FORMATS)}."
            )

        if self.THUMBNAIL_DEFAULT_WIDTH > self.THUMBNAIL_MAX_WIDTH:
            raise ValueError("THUMBNAIL_DEFAULT_WIDTH cannot exceed THUMBNAIL_MAX_WIDTH.")

        if self.GDRIVE_CREDENTIALS_JSON and self.GDRIVE_TOKEN_JSON:
            logging.warning(
                "Both a service account key and a user token are configured. The service account key wins."
            )
        return self

    def model_post_init(self, __context):
        """
        After settings are loaded from the environment, read the service
        account key from GDRIVE_CREDENTIALS_FILE if no inline key was given.
        """
        if self.GDRIVE_CREDENTIALS_JSON or not self.GDRIVE_CREDENTIALS_FILE:
            return
        key_file = Path(self.GDRIVE_CREDENTIALS_FILE)
        if not key_file.is_absolute():
            key_file = Path.cwd() / key_file
        if key_file.is_file():
            self.GDRIVE_CREDENTIALS_JSON = key_file.read_text().strip()
            logging.info(f"Loaded service account key from file: {key_file}")
        else:
            logging.warning(f"GDRIVE_CREDENTIALS_FILE points to a missing file: {key_file}")

    @property
    def THUMBNAIL_MIME_TYPE(self) -> str:
        return SUPPORTED_THUMBNAIL_FORMATS[self.THUMBNAIL_FORMAT]


@lru_cache()
def get_settings() -> Settings:
    """
    Returns a cached instance of the application settings.
    The first call to this function will initialize the settings.
    """
    return Settings()
