"""Per-document lifecycle: pending -> processing -> done | error.

Tasks are immutable. Every transition returns the next task together
with a ``TransitionEvent`` that the orchestration layer can forward to
whatever displays progress.
"""

import uuid
from dataclasses import dataclass, replace
from enum import StrEnum
from pathlib import Path
from typing import Any

import numpy as np

from atlas_verify.models import DocumentExtraction, RawText

DocumentSource = Path | bytes | np.ndarray


class DocumentStatus(StrEnum):
    """Lifecycle state of one uploaded document."""

    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"


_TRANSITIONS: dict[DocumentStatus, frozenset[DocumentStatus]] = {
    DocumentStatus.PENDING: frozenset({DocumentStatus.PROCESSING}),
    DocumentStatus.PROCESSING: frozenset({DocumentStatus.DONE, DocumentStatus.ERROR}),
    DocumentStatus.DONE: frozenset(),
    DocumentStatus.ERROR: frozenset(),
}


class InvalidTransitionError(Exception):
    """Raised when a task is moved along an edge the lifecycle lacks."""


@dataclass(frozen=True)
class TransitionEvent:
    """A single state change of a document task."""

    document_id: str
    name: str
    previous: DocumentStatus
    current: DocumentStatus
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "documentId": self.document_id,
            "name": self.name,
            "previous": str(self.previous),
            "current": str(self.current),
            "message": self.message,
        }


@dataclass(frozen=True, eq=False)
class DocumentTask:
    """One uploaded document and its processing state."""

    document_id: str
    name: str
    source: DocumentSource | None = None
    status: DocumentStatus = DocumentStatus.PENDING
    raw_text: RawText | None = None
    extraction: DocumentExtraction | None = None
    error: str | None = None

    @classmethod
    def create(cls, name: str, source: DocumentSource | None = None) -> "DocumentTask":
        """Queue a new pending task with a fresh identifier."""
        return cls(document_id=uuid.uuid4().hex, name=name, source=source)

    @property
    def terminal(self) -> bool:
        return not _TRANSITIONS[self.status]

    def _move(
        self, target: DocumentStatus, message: str | None = None, **changes: Any
    ) -> tuple["DocumentTask", TransitionEvent]:
        if target not in _TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Document {self.document_id}: {self.status} -> {target} is not allowed"
            )
        moved = replace(self, status=target, **changes)
        event = TransitionEvent(self.document_id, self.name, self.status, target, message)
        return moved, event

    def start(self) -> tuple["DocumentTask", TransitionEvent]:
        """pending -> processing, when OCR is invoked."""
        return self._move(DocumentStatus.PROCESSING, error=None)

    def complete(
        self, raw_text: RawText, extraction: DocumentExtraction
    ) -> tuple["DocumentTask", TransitionEvent]:
        """processing -> done, even for a sparse extraction."""
        return self._move(
            DocumentStatus.DONE,
            f"Extracted {len(extraction.fields)} fields",
            raw_text=raw_text,
            extraction=extraction,
        )

    def fail(self, message: str) -> tuple["DocumentTask", TransitionEvent]:
        """processing -> error, when the OCR call itself fails."""
        return self._move(DocumentStatus.ERROR, message, error=message)

    def requeue(self) -> "DocumentTask":
        """A fresh pending entry for the same source after a terminal state."""
        if not self.terminal:
            raise InvalidTransitionError(
                f"Document {self.document_id} is {self.status}; only finished tasks can be requeued"
            )
        return DocumentTask.create(self.name, self.source)

    def to_dict(self) -> dict[str, Any]:
        return {
            "documentId": self.document_id,
            "name": self.name,
            "status": str(self.status),
            "error": self.error,
            "extraction": self.extraction.to_dict() if self.extraction else None,
        }
