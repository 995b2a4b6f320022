"""Tests for the image processing pipeline."""

from pathlib import Path
from unittest.mock import patch

import pytest

from ocrsearch.errors import (
    InvalidImageError,
    OCRSearchError,
    OcrFailureError,
    PersistenceError,
    RecordNotFoundError,
    ValidationFailureError,
)
from ocrsearch.processing.pipeline import (
    FileStatus,
    ProcessingPipeline,
    UploadedFile,
    is_image_type,
)
from ocrsearch.storage.assets import AssetStore
from ocrsearch.storage.record_store import RecordStore

from .conftest import StubEngine, make_oversized_png_bytes, make_png_bytes


def _upload(
    name: str = "scan.png", content: bytes | None = None, ctype: str = "image/png"
) -> UploadedFile:
    return UploadedFile(
        filename=name,
        content_type=ctype,
        content=make_png_bytes() if content is None else content,
    )


def _store_asset(asset_store: AssetStore) -> str:
    return asset_store.save("scan.png", make_png_bytes())


class TestIsImageType:
    def test_image_types(self) -> None:
        assert is_image_type("image/png")
        assert is_image_type("IMAGE/JPEG")
        assert not is_image_type("text/plain")
        assert not is_image_type(None)
        assert not is_image_type("")


class TestExtractText:
    """Tests for the preprocess-then-recognize step."""

    def test_returns_engine_text(
        self, pipeline: ProcessingPipeline, asset_store: AssetStore
    ) -> None:
        ref = _store_asset(asset_store)
        assert pipeline.extract_text(asset_store.path(ref)) == "Nutrition Facts"

    def test_artifact_removed_after_success(
        self,
        pipeline: ProcessingPipeline,
        asset_store: AssetStore,
        stub_engine: StubEngine,
        scratch_dir: Path,
    ) -> None:
        pipeline.extract_text(asset_store.path(_store_asset(asset_store)))
        assert stub_engine.calls[0].parent == scratch_dir
        assert not stub_engine.calls[0].exists()
        assert list(scratch_dir.iterdir()) == []

    def test_artifact_removed_after_ocr_failure(
        self,
        pipeline: ProcessingPipeline,
        asset_store: AssetStore,
        stub_engine: StubEngine,
        scratch_dir: Path,
    ) -> None:
        stub_engine.responses = [OcrFailureError("OCR processing failed: boom")]
        with pytest.raises(OcrFailureError):
            pipeline.extract_text(asset_store.path(_store_asset(asset_store)))
        assert list(scratch_dir.iterdir()) == []

    def test_cleanup_failure_is_swallowed(
        self,
        pipeline: ProcessingPipeline,
        asset_store: AssetStore,
        stub_engine: StubEngine,
    ) -> None:
        class DeletingEngine(StubEngine):
            def recognize(self, image_path: Path) -> str:
                text = super().recognize(image_path)
                Path(image_path).unlink()
                return text

        pipeline.ocr_engine = DeletingEngine()
        assert pipeline.extract_text(asset_store.path(_store_asset(asset_store)))

    def test_invalid_image_skips_ocr(
        self,
        pipeline: ProcessingPipeline,
        asset_store: AssetStore,
        stub_engine: StubEngine,
    ) -> None:
        ref = asset_store.save("bad.png", b"garbage")
        with pytest.raises(InvalidImageError):
            pipeline.extract_text(asset_store.path(ref))
        assert stub_engine.calls == []


class TestProcessFile:
    """Tests for single-file state transitions."""

    def test_completed(
        self,
        pipeline: ProcessingPipeline,
        asset_store: AssetStore,
        record_store: RecordStore,
    ) -> None:
        ref = _store_asset(asset_store)
        outcome = pipeline.process_file("scan.png", ref)
        assert outcome.status == FileStatus.COMPLETED
        assert outcome.saved
        assert outcome.record.image_ref == ref
        assert record_store.find_by_id(outcome.record.id).text == "Nutrition Facts"
        assert asset_store.exists(ref)

    def test_skipped_on_empty_text(
        self,
        pipeline: ProcessingPipeline,
        asset_store: AssetStore,
        record_store: RecordStore,
        stub_engine: StubEngine,
    ) -> None:
        stub_engine.responses = [""]
        ref = _store_asset(asset_store)
        outcome = pipeline.process_file("blank.png", ref)
        assert outcome.status == FileStatus.SKIPPED
        assert outcome.record is None
        assert record_store.count() == 0
        assert not asset_store.exists(ref)

    def test_failed_on_ocr_error(
        self,
        pipeline: ProcessingPipeline,
        asset_store: AssetStore,
        stub_engine: StubEngine,
    ) -> None:
        stub_engine.responses = [OcrFailureError("OCR processing failed: x", "x")]
        outcome = pipeline.process_file("scan.png", _store_asset(asset_store))
        assert outcome.status == FileStatus.FAILED
        assert isinstance(outcome.error, OcrFailureError)
        assert outcome.error.detail == "x"

    def test_failed_on_persistence_error(
        self, pipeline: ProcessingPipeline, asset_store: AssetStore
    ) -> None:
        with patch.object(
            RecordStore,
            "create",
            side_effect=PersistenceError("Database insert failed", "disk I/O error"),
        ):
            outcome = pipeline.process_file("scan.png", _store_asset(asset_store))
        assert outcome.status == FileStatus.FAILED
        assert isinstance(outcome.error, PersistenceError)
        assert outcome.text == "Nutrition Facts"

    def test_keep_asset_when_requested(
        self,
        pipeline: ProcessingPipeline,
        asset_store: AssetStore,
        stub_engine: StubEngine,
    ) -> None:
        stub_engine.responses = [""]
        ref = _store_asset(asset_store)
        pipeline.process_file("blank.png", ref, discard_unsaved=False)
        assert asset_store.exists(ref)


class TestProcessUpload:
    """Tests for batch semantics."""

    def test_corrupted_file_does_not_block_batch(
        self,
        pipeline: ProcessingPipeline,
        record_store: RecordStore,
        stub_engine: StubEngine,
    ) -> None:
        files = [
            _upload("a.png"),
            _upload("broken.png", content=b"not really a png"),
            _upload("c.png"),
        ]
        result = pipeline.process_upload(files)

        assert [o.filename for o in result.outcomes] == ["a.png", "broken.png", "c.png"]
        assert len(result.completed) == 2
        assert len(result.failed) == 1
        assert isinstance(result.failed[0].error, InvalidImageError)
        assert record_store.count() == 2
        assert len(stub_engine.calls) == 2

    def test_ocr_failure_does_not_block_batch(
        self, pipeline: ProcessingPipeline, stub_engine: StubEngine
    ) -> None:
        stub_engine.responses = [OcrFailureError("OCR processing failed"), "second"]
        result = pipeline.process_upload([_upload("a.png"), _upload("b.png")])
        assert [o.status for o in result.outcomes] == [
            FileStatus.FAILED,
            FileStatus.COMPLETED,
        ]
        assert result.completed[0].text == "second"

    def test_oversized_image_does_not_block_batch(
        self,
        pipeline: ProcessingPipeline,
        record_store: RecordStore,
        asset_store: AssetStore,
    ) -> None:
        files = [
            _upload("a.png"),
            _upload("bomb.png", content=make_oversized_png_bytes()),
            _upload("c.png"),
        ]
        result = pipeline.process_upload(files)

        assert [o.status for o in result.outcomes] == [
            FileStatus.COMPLETED,
            FileStatus.FAILED,
            FileStatus.COMPLETED,
        ]
        assert isinstance(result.outcomes[1].error, InvalidImageError)
        assert record_store.count() == 2
        stored = {p.name for p in asset_store.images_dir.iterdir()}
        assert stored == {o.image_ref for o in result.completed}

    def test_any_service_error_is_a_failed_file(
        self, pipeline: ProcessingPipeline, stub_engine: StubEngine
    ) -> None:
        stub_engine.responses = [OCRSearchError("engine misconfigured")]
        result = pipeline.process_upload([_upload("a.png"), _upload("b.png")])
        assert result.outcomes[0].status == FileStatus.FAILED
        assert result.outcomes[0].error.message == "engine misconfigured"
        assert result.outcomes[1].status == FileStatus.COMPLETED

    def test_empty_text_not_persisted(
        self,
        pipeline: ProcessingPipeline,
        record_store: RecordStore,
        stub_engine: StubEngine,
        asset_store: AssetStore,
    ) -> None:
        stub_engine.responses = [""]
        result = pipeline.process_upload([_upload("blank.png")])
        assert result.skipped[0].filename == "blank.png"
        assert record_store.count() == 0
        assert list(asset_store.images_dir.iterdir()) == []

    def test_non_image_rejected_per_file(
        self, pipeline: ProcessingPipeline, record_store: RecordStore
    ) -> None:
        result = pipeline.process_upload(
            [_upload("notes.txt", b"hello", "text/plain"), _upload("a.png")]
        )
        rejected = result.outcomes[0]
        assert rejected.status == FileStatus.FAILED
        assert isinstance(rejected.error, ValidationFailureError)
        assert rejected.image_ref is None
        assert record_store.count() == 1

    def test_oversized_file_rejected(self, pipeline: ProcessingPipeline) -> None:
        pipeline.upload_config.max_file_bytes = 10
        result = pipeline.process_upload([_upload("big.png"), _upload("ok.png", b"1")])
        assert "exceeds" in result.outcomes[0].error.message

    def test_empty_batch_rejected(self, pipeline: ProcessingPipeline) -> None:
        with pytest.raises(ValidationFailureError, match="No images uploaded"):
            pipeline.process_upload([])

    def test_all_invalid_rejected(self, pipeline: ProcessingPipeline) -> None:
        with pytest.raises(ValidationFailureError, match="No valid images"):
            pipeline.process_upload([_upload("a.txt", b"x", "text/plain")])

    def test_too_many_files_rejected(self, pipeline: ProcessingPipeline) -> None:
        with pytest.raises(ValidationFailureError, match="Too many files"):
            pipeline.process_upload([_upload(f"{i}.png") for i in range(11)])

    def test_persistence_errors_reported(self, pipeline: ProcessingPipeline) -> None:
        with patch.object(
            RecordStore,
            "create",
            side_effect=PersistenceError("Database insert failed"),
        ):
            result = pipeline.process_upload([_upload("a.png"), _upload("b.png")])
        assert len(result.persistence_errors) == 2
        assert len(result.outcomes) == 2

    def test_scratch_area_empty_after_batch(
        self, pipeline: ProcessingPipeline, scratch_dir: Path
    ) -> None:
        pipeline.process_upload([_upload("a.png"), _upload("b.png")])
        assert list(scratch_dir.iterdir()) == []


class TestRegenerate:
    """Tests for re-running OCR on stored records."""

    def test_overwrites_text(
        self,
        pipeline: ProcessingPipeline,
        asset_store: AssetStore,
        record_store: RecordStore,
        stub_engine: StubEngine,
    ) -> None:
        record = record_store.create(_store_asset(asset_store), "stale")
        stub_engine.default = "fresh text"

        result = pipeline.regenerate(record.id)

        assert result.updated is True
        assert result.record.id == record.id
        assert record_store.find_by_id(record.id).text == "fresh text"
        assert record_store.count() == 1

    def test_idempotent_on_stable_input(
        self,
        pipeline: ProcessingPipeline,
        asset_store: AssetStore,
        record_store: RecordStore,
    ) -> None:
        record = record_store.create(_store_asset(asset_store), "stale")
        first = pipeline.regenerate(record.id).record.text
        second = pipeline.regenerate(record.id).record.text
        assert first == second == "Nutrition Facts"

    def test_empty_text_leaves_record(
        self,
        pipeline: ProcessingPipeline,
        asset_store: AssetStore,
        record_store: RecordStore,
        stub_engine: StubEngine,
    ) -> None:
        record = record_store.create(_store_asset(asset_store), "keep me")
        stub_engine.responses = [""]

        result = pipeline.regenerate(record.id)

        assert result.updated is False
        assert result.record.text == "keep me"
        assert record_store.find_by_id(record.id).text == "keep me"

    def test_missing_asset(
        self,
        pipeline: ProcessingPipeline,
        record_store: RecordStore,
        stub_engine: StubEngine,
    ) -> None:
        record = record_store.create("images-gone.png", "old")
        with pytest.raises(RecordNotFoundError, match="file not found"):
            pipeline.regenerate(record.id)
        assert stub_engine.calls == []
        assert record_store.find_by_id(record.id).text == "old"

    def test_unknown_record(self, pipeline: ProcessingPipeline) -> None:
        with pytest.raises(RecordNotFoundError):
            pipeline.regenerate("nope")

    def test_ocr_failure_propagates(
        self,
        pipeline: ProcessingPipeline,
        asset_store: AssetStore,
        record_store: RecordStore,
        stub_engine: StubEngine,
    ) -> None:
        record = record_store.create(_store_asset(asset_store), "old")
        stub_engine.responses = [OcrFailureError("OCR processing failed")]
        with pytest.raises(OcrFailureError):
            pipeline.regenerate(record.id)
        assert record_store.find_by_id(record.id).text == "old"


class TestUpdateAndDelete:
    def test_update_text(
        self, pipeline: ProcessingPipeline, record_store: RecordStore
    ) -> None:
        record = record_store.create("a.png", "old")
        assert pipeline.update_text(record.id, "ok").text == "ok"

    def test_delete_removes_record_and_asset(
        self,
        pipeline: ProcessingPipeline,
        asset_store: AssetStore,
        record_store: RecordStore,
    ) -> None:
        ref = _store_asset(asset_store)
        record = record_store.create(ref, "text")

        deleted = pipeline.delete(record.id)

        assert deleted.image_ref == ref
        assert not asset_store.exists(ref)
        assert record_store.count() == 0

    def test_delete_tolerates_missing_asset(
        self, pipeline: ProcessingPipeline, record_store: RecordStore
    ) -> None:
        record = record_store.create("images-gone.png", "text")
        assert pipeline.delete(record.id).id == record.id
