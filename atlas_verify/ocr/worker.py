"""Scoped OCR worker for one analysis run.

The worker is created once per run, used for every document in turn and
torn down on every exit path. Recognition is serialised because a single
engine instance is shared.
"""

import asyncio
from pathlib import Path
from types import TracebackType

import numpy as np

from atlas_verify.models import RawText
from atlas_verify.utils.logger import get_logger

from .tesseract_engine import OCREngineError, TesseractEngine

logger = get_logger(__name__)


class OCRWorker:
    """Async context manager owning a ``TesseractEngine`` for one run.

    Args:
        engine: Engine to drive. A default engine is built if omitted.
    """

    def __init__(self, engine: TesseractEngine | None = None) -> None:
        self.engine = engine or TesseractEngine()
        self._lock = asyncio.Lock()
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    async def __aenter__(self) -> "OCRWorker":
        await asyncio.to_thread(self.engine.check_available)
        self._active = True
        logger.info("OCR worker started")
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self._active = False
        logger.info("OCR worker released")

    async def recognize(self, source: Path | bytes | np.ndarray) -> RawText:
        """Recognise one document without blocking the event loop.

        Raises:
            OCREngineError: If the worker is not running or OCR fails.
        """
        if not self._active:
            raise OCREngineError("OCR worker is not running")
        async with self._lock:
            return await asyncio.to_thread(self.engine.recognize, source)
