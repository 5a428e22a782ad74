"""Analysis run orchestration.

Drives each queued document through OCR and extraction in sequence,
tracking lifecycle state, then assesses the applicant against every
successful extraction.
"""

from collections.abc import Callable, Sequence
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from atlas_verify.extraction.hybrid import HybridExtractor
from atlas_verify.models import ApplicantProfile, DocumentExtraction
from atlas_verify.ocr.tesseract_engine import TesseractEngine
from atlas_verify.ocr.worker import OCRWorker
from atlas_verify.policy.engine import PolicyEngine
from atlas_verify.policy.loader import PolicyLoadResult, parse_policy
from atlas_verify.reconcile.cross_check import CrossCheckReconciler
from atlas_verify.report.builder import StructuredReport
from atlas_verify.utils.config import AppConfig
from atlas_verify.utils.logger import get_logger

from .pipeline import assess, process_raw_text
from .state_machine import DocumentStatus, DocumentTask, TransitionEvent

logger = get_logger(__name__)

NO_DOCUMENTS_MESSAGE = "No documents queued for analysis."
ALL_FAILED_MESSAGE = "OCR failed for all documents; no report was produced."

EventCallback = Callable[[TransitionEvent], None]


@dataclass(frozen=True)
class AnalysisOutcome:
    """Everything one analysis run produced.

    ``report`` is ``None`` when no document was processed successfully;
    ``message`` then explains why.
    """

    report: StructuredReport | None
    tasks: tuple[DocumentTask, ...]
    policy: PolicyLoadResult
    events: tuple[TransitionEvent, ...] = field(default_factory=tuple)
    message: str | None = None

    @property
    def success(self) -> bool:
        return self.report is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "policySubstituted": self.policy.substituted,
            "policyNotice": self.policy.notice,
            "documents": [t.to_dict() for t in self.tasks],
            "report": self.report.to_dict() if self.report else None,
        }


class AnalysisRunner:
    """Runs OCR, extraction and assessment for a batch of documents.

    Args:
        config: Application configuration.
        worker_factory: Builds the OCR worker acquired for each run.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        worker_factory: Callable[[], OCRWorker] | None = None,
    ) -> None:
        self.config = config or AppConfig()
        self.extractor = HybridExtractor(self.config.extraction)
        self.engine = PolicyEngine()
        self.reconciler = CrossCheckReconciler(self.config.reconcile)
        self.worker_factory = worker_factory or (
            lambda: OCRWorker(TesseractEngine(self.config.ocr))
        )

    async def run(
        self,
        tasks: Sequence[DocumentTask],
        applicant: ApplicantProfile,
        policy_text: str | None = None,
        on_event: EventCallback | None = None,
        as_of: date | None = None,
        policy: PolicyLoadResult | None = None,
    ) -> AnalysisOutcome:
        """Analyse queued documents for one applicant.

        Tasks already ``done`` keep their extraction and are not sent to
        OCR again; ``error`` tasks are left as they are until requeued.

        Args:
            tasks: Documents of this run.
            applicant: Declared applicant data.
            policy_text: Policy document text; blank means the default.
            on_event: Receives every lifecycle transition.
            as_of: Reference date for the policy evaluation.
            policy: Policy already loaded by the caller; takes precedence
                over ``policy_text``.

        Returns:
            The run outcome, with or without a report.
        """
        if policy is None:
            policy = parse_policy(policy_text)
        events: list[TransitionEvent] = []

        def emit(event: TransitionEvent) -> None:
            events.append(event)
            if on_event is not None:
                on_event(event)

        if not tasks:
            return AnalysisOutcome(None, (), policy, (), NO_DOCUMENTS_MESSAGE)

        current = {t.document_id: t for t in tasks}
        pending = [t for t in tasks if t.status == DocumentStatus.PENDING]
        if pending:
            async with AsyncExitStack() as stack:
                try:
                    worker = await stack.enter_async_context(self.worker_factory())
                except Exception as exc:
                    logger.warning("OCR worker unavailable: %s", exc)
                    for task in pending:
                        current[task.document_id] = self._abort(
                            task, f"OCR worker unavailable: {exc}", emit
                        )
                else:
                    for task in pending:
                        current[task.document_id] = await self._process(
                            task, worker, emit
                        )
        finished = [current[t.document_id] for t in tasks]

        extractions: list[DocumentExtraction] = [
            t.extraction
            for t in finished
            if t.status == DocumentStatus.DONE and t.extraction is not None
        ]
        if not extractions:
            logger.warning("Run produced no extractions from %d documents", len(tasks))
            return AnalysisOutcome(
                None, tuple(finished), policy, tuple(events), ALL_FAILED_MESSAGE
            )

        report = assess(
            applicant,
            extractions,
            policy,
            engine=self.engine,
            reconciler=self.reconciler,
            as_of=as_of,
        )
        return AnalysisOutcome(report, tuple(finished), policy, tuple(events))

    def _abort(self, task: DocumentTask, message: str, emit: EventCallback) -> DocumentTask:
        task, event = task.start()
        emit(event)
        task, event = task.fail(message)
        emit(event)
        return task

    async def _process(
        self, task: DocumentTask, worker: OCRWorker, emit: EventCallback
    ) -> DocumentTask:
        task, event = task.start()
        emit(event)
        try:
            raw_text = await worker.recognize(task.source)
        except Exception as exc:
            logger.warning("OCR failed for %s: %s", task.name, exc)
            task, event = task.fail(str(exc) or "OCR failed unexpectedly.")
            emit(event)
            return task

        extraction = process_raw_text(task.document_id, raw_text, self.extractor)
        task, event = task.complete(raw_text, extraction)
        emit(event)
        return task
