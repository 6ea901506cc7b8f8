"""
Pipeline orchestrator: extraction -> validation -> scoring -> formatting.

Failure model:
- Extraction failure and unclassifiable documents are fatal (status "failed").
- Scoring failure degrades to the fallback scorer.
- Validation problems, low extraction quality and review-required fields
  are recorded as warnings; the run still completes.
- Anything unexpected is caught here and turned into a failed run.

``run()`` always returns a PipelineState and never raises.
"""

import asyncio
from typing import Optional
from loguru import logger
from .agents import ExtractionAgent, ScoringAgent, get_extraction_agent, get_scoring_agent
from .fallback_scorer import fallback_score
from .formatter import REVIEW_CONFIDENCE_THRESHOLD, format_for_form
from .progress import ProgressEvent, ProgressSink
from .validation import get_validation_summary, validate_document_fields
from ..core.errors import ACCEPTED_DOCUMENT_TYPES, AgentError, ErrorKind, get_user_friendly_error
from ..models.pipeline import PipelineState


class PipelineOrchestrator:
    """
    Drives one document through the four stages.

    Args:
        extraction_agent: Collaborator that reads the document image
        scoring_agent: Collaborator that assigns per-field confidence
    """

    def __init__(self, extraction_agent: ExtractionAgent, scoring_agent: ScoringAgent):
        self.extraction_agent = extraction_agent
        self.scoring_agent = scoring_agent

    async def run(
        self,
        image_payload: bytes | str,
        progress_sink: Optional[ProgressSink] = None,
        media_type: str = "image/jpeg",
    ) -> PipelineState:
        """
        Process a document image into a terminal PipelineState.

        Args:
            image_payload: Image bytes or base64 string
            progress_sink: Called synchronously with a ProgressEvent at every
                stage boundary
            media_type: MIME type of the payload

        Returns:
            PipelineState with status "complete" or "failed"
        """
        state = PipelineState()
        await self._execute(state, image_payload, progress_sink, media_type)
        return state

    async def run_with_timeout(
        self,
        image_payload: bytes | str,
        progress_sink: Optional[ProgressSink] = None,
        media_type: str = "image/jpeg",
        timeout: Optional[float] = None,
    ) -> PipelineState:
        """
        Like run(), bounded by ``timeout`` seconds.

        A run that times out (or whose task is cancelled) ends with the
        terminal status "canceled". Cancellation of the caller's own task is
        re-raised after the state has been finalized.
        """
        state = PipelineState()
        try:
            await asyncio.wait_for(self._execute(state, image_payload, progress_sink, media_type), timeout)
        except asyncio.TimeoutError:
            self._cancel(state, progress_sink, f"Processing timed out after {timeout} seconds", ErrorKind.TIMEOUT)
        except asyncio.CancelledError:
            self._cancel(state, progress_sink, "Processing was cancelled", ErrorKind.CANCELED)
            raise
        return state

    async def _execute(
        self,
        state: PipelineState,
        image_payload: bytes | str,
        progress_sink: Optional[ProgressSink],
        media_type: str,
    ) -> None:
        try:
            # 1. Extract
            self._report(progress_sink, state, "extracting", "Extracting document data...")
            logger.info("Starting document extraction", has_image=bool(image_payload), media_type=media_type)

            try:
                extraction = await self.extraction_agent.extract(image_payload, media_type)
            except AgentError as e:
                friendly = get_user_friendly_error(e)
                state.record_error(
                    "extract", e.message, user_message=friendly.message, title=friendly.title, kind=e.kind.value
                )
                logger.error("Extraction failed", kind=e.kind.value, status_code=e.status_code, error=e.message)
                self._fail(state, progress_sink, friendly.message)
                return

            state.extracted = extraction.fields
            state.add_cost("extract", extraction.cost)

            document_type = extraction.fields.document_type
            if document_type not in ACCEPTED_DOCUMENT_TYPES:
                friendly = get_user_friendly_error(kind=ErrorKind.UNSUPPORTED_DOCUMENT)
                state.record_error(
                    "extract",
                    f"Unable to identify document type (detected: {document_type})",
                    user_message=friendly.message,
                    title=friendly.title,
                    kind=ErrorKind.UNSUPPORTED_DOCUMENT.value,
                )
                logger.warning("Could not identify document type", document_type=document_type)
                self._fail(state, progress_sink, friendly.message)
                return

            if extraction.fields.extraction_quality == "low":
                friendly = get_user_friendly_error(kind=ErrorKind.LOW_QUALITY)
                state.record_warning("extract", friendly.message, kind=ErrorKind.LOW_QUALITY.value)
                logger.warning("Low extraction quality", quality="low")

            self._report(progress_sink, state, "extracted", "Extraction complete")

            # 2. Validate
            self._report(progress_sink, state, "validating", "Validating data...")
            state.validated = validate_document_fields(state.extracted)

            summary = get_validation_summary(state.validated)
            if not summary["all_valid"]:
                state.record_warning("validate", f"{summary['errors']} validation error(s) found")

            self._report(progress_sink, state, "validated", "Validation complete")

            # 3. Score
            self._report(progress_sink, state, "scoring", "Calculating confidence scores...")
            try:
                scoring = await self.scoring_agent.score(state.extracted, state.validated)
            except Exception as e:
                kind = e.kind.value if isinstance(e, AgentError) else ErrorKind.INTERNAL.value
                logger.exception("Confidence scoring failed, using fallback scores", kind=kind)
                state.record_warning(
                    "score", "Confidence scoring failed, using validation results as proxy", kind=kind
                )
                state.scored = fallback_score(state.validated)
            else:
                state.scored = scoring.scores
                state.add_cost("score", scoring.cost)

            self._report(progress_sink, state, "scored", "Scoring complete")

            # 4. Format
            self._report(progress_sink, state, "formatting", "Preparing form data...")
            state.formatted = format_for_form(state.extracted, state.validated, state.scored)

            review_count = len(state.formatted.review_required)
            if review_count:
                state.record_warning(
                    "format",
                    f"{review_count} field(s) require review (confidence < {REVIEW_CONFIDENCE_THRESHOLD:g})",
                )

            self._report(progress_sink, state, "formatted", "Format complete")

            state.finish("complete")
            logger.info(
                "Document processing complete",
                ready_to_fill=state.formatted.ready_to_fill,
                review_required=review_count,
                total_cost=state.costs.total,
            )
            self._report(progress_sink, state, "complete", "Processing complete")

        except Exception as e:
            logger.exception("Orchestrator error", current_step=state.current_step, status=state.status)
            if state.is_terminal:
                # Sink raised after the run already finished; the result stands
                return
            friendly = get_user_friendly_error(e)
            state.record_error(
                "orchestrator",
                str(e) or type(e).__name__,
                user_message=friendly.message,
                title=friendly.title,
                kind=ErrorKind.INTERNAL.value,
            )
            self._fail(state, progress_sink, friendly.message)

    def _report(self, sink: Optional[ProgressSink], state: PipelineState, step: str, message: str) -> None:
        if not state.is_terminal:
            state.enter(step)
        if sink is not None:
            sink(ProgressEvent(step=step, message=message, state=state))

    def _fail(self, state: PipelineState, sink: Optional[ProgressSink], message: str) -> None:
        state.finish("failed")
        self._report_terminal(sink, state, "failed", message)

    def _cancel(self, state: PipelineState, sink: Optional[ProgressSink], error: str, kind: ErrorKind) -> None:
        if state.is_terminal:
            return
        friendly = get_user_friendly_error(kind=kind)
        state.record_error(
            state.current_step or "orchestrator",
            error,
            user_message=friendly.message,
            title=friendly.title,
            kind=kind.value,
        )
        logger.warning("Document processing canceled", current_step=state.current_step, reason=kind.value)
        state.finish("canceled")
        self._report_terminal(sink, state, "canceled", friendly.message)

    def _report_terminal(self, sink: Optional[ProgressSink], state: PipelineState, step: str, message: str) -> None:
        # The run result must survive a misbehaving sink on the terminal event
        try:
            self._report(sink, state, step, message)
        except Exception:
            logger.exception("Progress sink raised on terminal event", step=step)


def build_default_orchestrator() -> PipelineOrchestrator:
    """Orchestrator wired with the collaborators selected from settings."""
    return PipelineOrchestrator(extraction_agent=get_extraction_agent(), scoring_agent=get_scoring_agent())


def get_pipeline_summary(state: Optional[PipelineState]) -> Optional[dict]:
    """Condensed view of a finished run (None while processing)."""
    if state is None or state.status == "processing":
        return None

    formatted = state.formatted
    return {
        "status": state.status,
        "fields_extracted": len(state.extracted.model_dump(exclude_none=True)) if state.extracted else 0,
        "fields_valid": sum(1 for r in state.validated.values() if r.valid) if state.validated else 0,
        "fields_requiring_review": len(formatted.review_required) if formatted else 0,
        "ready_to_fill": formatted.ready_to_fill if formatted else False,
        "total_cost": state.costs.total,
        "errors": sum(1 for issue in state.errors if issue.error),
        "warnings": len(state.warnings),
    }
