"""Wiring of the long-lived service objects.

The process entry point (API lifespan or CLI command) owns the database
engine's lifecycle; the record store, pipeline and search gateway only
receive it.
"""

from dataclasses import dataclass
from pathlib import Path

from sqlalchemy import Engine

from ocrsearch.ocr.tesseract_engine import TesseractEngine
from ocrsearch.preprocessing.pipeline import Preprocessor
from ocrsearch.processing.pipeline import ProcessingPipeline
from ocrsearch.search.gateway import SearchGateway
from ocrsearch.storage.assets import AssetStore
from ocrsearch.storage.record_store import RecordStore, create_database_engine
from ocrsearch.utils.config import AppConfig
from ocrsearch.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class Services:
    """Shared components for one process."""

    config: AppConfig
    engine: Engine
    record_store: RecordStore
    asset_store: AssetStore
    ocr_engine: TesseractEngine
    pipeline: ProcessingPipeline
    search: SearchGateway

    def close(self) -> None:
        self.engine.dispose()
        logger.info("Database connections closed")


def build_services(
    config: AppConfig, ocr_engine: TesseractEngine | None = None
) -> Services:
    """Create every component from configuration.

    Args:
        config: Application configuration.
        ocr_engine: Engine to use instead of one built from ``config.ocr``.

    Returns:
        Connected services; call :meth:`Services.close` when done.
    """
    engine = create_database_engine(config.database_url)
    record_store = RecordStore(engine)
    asset_store = AssetStore(Path(config.storage.images_dir))
    ocr = ocr_engine or TesseractEngine(
        tesseract_cmd=config.ocr.tesseract_cmd,
        timeout_seconds=config.ocr.timeout_seconds,
    )
    pipeline = ProcessingPipeline(
        preprocessor=Preprocessor(config.preprocessing),
        ocr_engine=ocr,
        record_store=record_store,
        asset_store=asset_store,
        upload_config=config.upload,
    )
    search = SearchGateway(record_store, max_results=config.search.max_results)
    logger.info("Services ready (images in %s)", asset_store.images_dir)
    return Services(
        config=config,
        engine=engine,
        record_store=record_store,
        asset_store=asset_store,
        ocr_engine=ocr,
        pipeline=pipeline,
        search=search,
    )
