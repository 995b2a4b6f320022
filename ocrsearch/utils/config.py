"""Configuration management for the image text search service.

Loads YAML configuration with sensible defaults for preprocessing, OCR,
storage, upload limits and search. Environment variables (and a ``.env``
file) take precedence over the YAML values, so deployments only need to
export ``DATABASE_URL`` and ``PORT``.
"""

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("configs/config.yaml")


class PreprocessingConfig(BaseModel):
    """Configuration for the OCR preprocessing pass."""

    upscale_min_width: int = 1000
    upscale_factor: int = 2
    sharpen_sigma: float = 1.0
    threshold: int = Field(default=128, ge=0, le=255)
    scratch_dir: str = "temp"


class OCRConfig(BaseModel):
    """Configuration for the Tesseract invocation.

    Language, engine mode and segmentation mode are fixed and live in
    :mod:`ocrsearch.ocr.tesseract_engine`.
    """

    tesseract_cmd: str | None = None
    timeout_seconds: float = Field(default=60.0, ge=0)


class StorageConfig(BaseModel):
    """Configuration for uploaded image assets."""

    images_dir: str = "images"


class UploadConfig(BaseModel):
    """Limits applied to upload batches."""

    max_files: int = 10
    max_file_bytes: int = 10 * 1024 * 1024


class SearchConfig(BaseModel):
    """Configuration for record listing and search."""

    max_results: int = Field(default=100, ge=1, le=100)


class AppConfig(BaseSettings):
    """Top-level application configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
    )

    preprocessing: PreprocessingConfig = Field(default_factory=PreprocessingConfig)
    ocr: OCRConfig = Field(default_factory=OCRConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    upload: UploadConfig = Field(default_factory=UploadConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    database_url: str = "sqlite:///data/ocrsearch.db"
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # YAML values arrive as init kwargs; the environment wins over them.
        return env_settings, dotenv_settings, init_settings, file_secret_settings


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file.
            Defaults to configs/config.yaml.

    Returns:
        Validated application configuration.
    """
    if path is None:
        path = DEFAULT_CONFIG_PATH

    if path.exists():
        logger.info("Loading configuration from %s", path)
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        return AppConfig(**raw)

    logger.info("No config file found at %s, using defaults", path)
    return AppConfig()
