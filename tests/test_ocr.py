"""Tests for the Tesseract engine wrapper and the scoped OCR worker."""

import asyncio
import io
from pathlib import Path
from unittest.mock import MagicMock, patch

import numpy as np
import pytest
import pytesseract
from PIL import Image

from atlas_verify.ocr.tesseract_engine import OCREngineError, TesseractEngine
from atlas_verify.ocr.worker import OCRWorker
from atlas_verify.utils.config import OCRConfig


def _mock_tesseract_data() -> dict:
    """Create mock pytesseract output data."""
    return {
        "text": ["", "PASSPORT", "ERIKSSON", "", "ANNA"],
        "conf": [-1, 95, 85, -1, 72],
    }


def _png_bytes() -> bytes:
    """Create a minimal PNG image as bytes."""
    img = Image.fromarray(np.zeros((100, 200, 3), dtype=np.uint8))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


class TestTesseractEngine:
    """Tests for the TesseractEngine class (mocked)."""

    def setup_method(self) -> None:
        self.engine = TesseractEngine(OCRConfig(psm=6))

    @patch("atlas_verify.ocr.tesseract_engine.pytesseract.image_to_data")
    @patch("atlas_verify.ocr.tesseract_engine.pytesseract.image_to_string")
    def test_recognize(self, mock_string: MagicMock, mock_data: MagicMock) -> None:
        mock_string.return_value = "PASSPORT\nERIKSSON ANNA\n"
        mock_data.return_value = _mock_tesseract_data()

        raw = self.engine.recognize(np.zeros((50, 50), dtype=np.uint8))

        assert raw.text == "PASSPORT\nERIKSSON ANNA\n"
        # mean of 95, 85 and 72
        assert raw.confidence == 84
        assert mock_string.call_args.kwargs["config"] == "--psm 6"
        assert mock_string.call_args.kwargs["lang"] == "eng"

    @patch("atlas_verify.ocr.tesseract_engine.pytesseract.image_to_data")
    @patch("atlas_verify.ocr.tesseract_engine.pytesseract.image_to_string")
    def test_recognize_without_words(self, mock_string: MagicMock, mock_data: MagicMock) -> None:
        mock_string.return_value = ""
        mock_data.return_value = {"text": ["", " "], "conf": [-1, 50]}
        raw = self.engine.recognize(_png_bytes())
        assert raw.text == ""
        assert raw.confidence == 0

    @patch("atlas_verify.ocr.tesseract_engine.pytesseract.image_to_string")
    def test_tesseract_error_is_wrapped(self, mock_string: MagicMock) -> None:
        mock_string.side_effect = pytesseract.TesseractError(1, "bad image")
        with pytest.raises(OCREngineError):
            self.engine.recognize(np.zeros((50, 50), dtype=np.uint8))

    def test_load_image_from_bytes(self) -> None:
        image = self.engine.load_image(_png_bytes())
        assert image.size == (200, 100)

    def test_load_image_from_path(self, tmp_path: Path) -> None:
        path = tmp_path / "scan.png"
        path.write_bytes(_png_bytes())
        assert self.engine.load_image(path).size == (200, 100)

    def test_unreadable_image(self, tmp_path: Path) -> None:
        with pytest.raises(OCREngineError):
            self.engine.load_image(b"not an image")
        with pytest.raises(OCREngineError):
            self.engine.load_image(tmp_path / "missing.png")

    @patch("atlas_verify.ocr.tesseract_engine.pytesseract.get_tesseract_version")
    def test_check_available(self, mock_version: MagicMock) -> None:
        mock_version.return_value = "5.3.0"
        assert self.engine.check_available() == "5.3.0"

    @patch("atlas_verify.ocr.tesseract_engine.pytesseract.get_tesseract_version")
    def test_missing_binary(self, mock_version: MagicMock) -> None:
        mock_version.side_effect = pytesseract.TesseractNotFoundError()
        with pytest.raises(OCREngineError, match="not found"):
            self.engine.check_available()


class TestOCRWorker:
    """Tests for the OCRWorker lifecycle."""

    def test_recognize_inside_scope(self) -> None:
        engine = MagicMock(spec=TesseractEngine)
        engine.recognize.return_value = "raw"

        async def scenario() -> tuple[object, bool]:
            async with OCRWorker(engine) as worker:
                result = await worker.recognize(b"img")
                assert worker.active is True
            return result, worker.active

        result, active_after = asyncio.run(scenario())
        assert result == "raw"
        assert active_after is False
        engine.check_available.assert_called_once()
        engine.recognize.assert_called_once_with(b"img")

    def test_released_on_error(self) -> None:
        engine = MagicMock(spec=TesseractEngine)
        engine.recognize.side_effect = OCREngineError("boom")
        worker = OCRWorker(engine)

        async def scenario() -> None:
            async with worker:
                await worker.recognize(b"img")

        with pytest.raises(OCREngineError):
            asyncio.run(scenario())
        assert worker.active is False

    def test_recognize_outside_scope(self) -> None:
        worker = OCRWorker(MagicMock(spec=TesseractEngine))
        with pytest.raises(OCREngineError, match="not running"):
            asyncio.run(worker.recognize(b"img"))

    def test_start_failure_propagates(self) -> None:
        engine = MagicMock(spec=TesseractEngine)
        engine.check_available.side_effect = OCREngineError("Tesseract binary not found")
        worker = OCRWorker(engine)

        async def scenario() -> None:
            async with worker:
                pass

        with pytest.raises(OCREngineError):
            asyncio.run(scenario())
        assert worker.active is False
