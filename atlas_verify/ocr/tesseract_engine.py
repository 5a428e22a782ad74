"""Tesseract OCR engine wrapper.

Turns a document image into ``RawText``: the recognised text plus the
mean word confidence on a 0..100 scale.
"""

import io
from pathlib import Path

import numpy as np
import pytesseract
from PIL import Image

from atlas_verify.models import RawText
from atlas_verify.utils.config import OCRConfig
from atlas_verify.utils.logger import get_logger

logger = get_logger(__name__)


class OCREngineError(RuntimeError):
    """Raised when the OCR engine cannot process a document."""


class TesseractEngine:
    """Wrapper around Tesseract for document text recognition.

    Args:
        config: OCR settings (binary path, language, segmentation mode).
    """

    def __init__(self, config: OCRConfig | None = None) -> None:
        self.config = config or OCRConfig()
        if self.config.tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = self.config.tesseract_cmd

    def check_available(self) -> str:
        """Return the Tesseract version, raising if the binary is missing."""
        try:
            version = str(pytesseract.get_tesseract_version())
        except pytesseract.TesseractNotFoundError as exc:
            raise OCREngineError("Tesseract binary not found") from exc
        logger.debug("Tesseract version %s available", version)
        return version

    def load_image(self, source: Path | bytes | np.ndarray) -> Image.Image:
        """Open a document image from a path, raw bytes or an array.

        Raises:
            OCREngineError: If the source is not a readable image.
        """
        try:
            if isinstance(source, np.ndarray):
                return Image.fromarray(source)
            if isinstance(source, bytes):
                return Image.open(io.BytesIO(source))
            return Image.open(Path(source))
        except (OSError, ValueError, TypeError) as exc:
            raise OCREngineError(f"Unsupported or unreadable image: {exc}") from exc

    def recognize(self, source: Path | bytes | np.ndarray) -> RawText:
        """Recognise the text of one document image.

        Args:
            source: Image path, encoded image bytes or pixel array.

        Returns:
            Recognised text and mean word confidence (0..100).
        """
        image = self.load_image(source)
        config = f"--psm {self.config.psm}"
        lang = self.config.default_lang

        try:
            text = pytesseract.image_to_string(image, lang=lang, config=config)
            data = pytesseract.image_to_data(
                image,
                lang=lang,
                config=config,
                output_type=pytesseract.Output.DICT,
            )
        except pytesseract.TesseractError as exc:
            raise OCREngineError(f"Tesseract failed: {exc}") from exc

        confidences = [
            float(conf)
            for conf, word in zip(data["conf"], data["text"], strict=False)
            if float(conf) > 0 and str(word).strip()
        ]
        mean_conf = sum(confidences) / len(confidences) if confidences else 0.0

        logger.info(
            "OCR recognised %d words with mean confidence %.1f",
            len(confidences),
            mean_conf,
        )
        return RawText(text=text, confidence=mean_conf)
