from typing import Any
from fastapi import APIRouter, Body, Depends, File, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import ValidationError
from ..deps import (
    ProcessResponse,
    ScoreRequest,
    ScoreResponse,
    ScoreUsage,
    get_budget,
    get_host_scoring_agent,
    get_orchestrator,
    get_store,
)
from ...core.config import settings
from ...core.errors import AgentError, BudgetExceededError, ErrorKind, get_user_friendly_error
from ...models.document import DocumentRecord
from ...models.pipeline import ValidationResult
from ...services.agents import ScoringAgent
from ...services.cost import DailyBudgetTracker
from ...services.document_types import ExtractedFields, alias_view, canonical_view
from ...services.orchestrator import PipelineOrchestrator, get_pipeline_summary
from ...services.progress import ProgressRecorder
from ...services.storage import DocumentStoreBase
from ...services.validation import validate_document_fields

router = APIRouter(prefix="/documents", tags=["documents"])

ALLOWED_MEDIA_TYPES = ("image/jpeg", "image/png", "image/gif", "image/webp", "application/pdf")

# AgentError kind -> HTTP status for the scoring endpoint
_KIND_STATUS = {
    ErrorKind.AUTHENTICATION: 401,
    ErrorKind.API_KEY_MISSING: 500,
    ErrorKind.RATE_LIMIT: 429,
    ErrorKind.INSUFFICIENT_CREDITS: 402,
    ErrorKind.TIMEOUT: 504,
    ErrorKind.NETWORK: 502,
    ErrorKind.SERVER: 502,
}


def _file_error(status_code: int, kind: ErrorKind) -> HTTPException:
    friendly = get_user_friendly_error(kind=kind)
    return HTTPException(
        status_code=status_code,
        detail={"error": friendly.message, "errorType": kind.value, "title": friendly.title},
    )


def _document_json(doc: DocumentRecord) -> dict:
    data = doc.model_dump(mode="json", by_alias=True)
    data["status"] = doc.effective_status()
    return data


def _get_or_404(store: DocumentStoreBase, document_id: str) -> DocumentRecord:
    doc = store.get_document(document_id)
    if doc is None:
        raise HTTPException(status_code=404, detail="Document not found")
    return doc


@router.post("/process", response_model=ProcessResponse)
async def process_document(
    request: Request,
    file: UploadFile = File(None),
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
    store: DocumentStoreBase = Depends(get_store),
):
    """
    Run the full pipeline on one document image.

    Accepts either:
    - multipart/form-data (file upload via form)
    - a raw image or PDF body with a matching Content-Type

    Completed runs are saved to the document store. Failed and canceled
    runs are returned with their errors but not saved.
    """
    if file:
        content = await file.read()
        media_type = file.content_type or ""
        file_name = file.filename
    else:
        content = await request.body()
        media_type = request.headers.get("content-type", "")
        file_name = None
    media_type = media_type.split(";")[0].strip().lower()

    if not content:
        raise HTTPException(status_code=422, detail="No file provided (either multipart or raw body)")
    if len(content) > settings.max_upload_bytes:
        raise _file_error(413, ErrorKind.FILE_TOO_LARGE)
    if media_type not in ALLOWED_MEDIA_TYPES:
        raise _file_error(415, ErrorKind.INVALID_FILE_TYPE)

    logger.info("Document received", file_name=file_name, media_type=media_type, size=len(content))

    recorder = ProgressRecorder()
    state = await orchestrator.run_with_timeout(
        content,
        recorder,
        media_type=media_type,
        timeout=settings.pipeline_timeout_seconds,
    )

    document_id = None
    if state.status == "complete":
        record = store.save_document(DocumentRecord.from_pipeline_state(state, file_name=file_name))
        document_id = record.id
        logger.info("Document saved", document_id=document_id, ready_to_fill=state.formatted.ready_to_fill)

    return ProcessResponse(
        document_id=document_id,
        state=state.model_dump(mode="json", by_alias=True),
        summary=get_pipeline_summary(state),
        events=[event.to_dict() for event in recorder],
    )


@router.post("/score", response_model=ScoreResponse)
async def score_document(
    req: ScoreRequest,
    budget: DailyBudgetTracker = Depends(get_budget),
    scoring_agent: ScoringAgent = Depends(get_host_scoring_agent),
):
    """
    Score extracted fields with the model, guarded by the daily cost limit.

    Example request:
    {
        "extractedData": {"vendor_name": "ACME Corp", "total_amount": "450.00"},
        "validationResults": {"total_amount": {"valid": true, "numericValue": 450.0}}
    }
    """
    try:
        budget.check()
    except BudgetExceededError as e:
        return JSONResponse(
            status_code=429,
            content={
                "error": "Daily API cost limit reached. Please try again tomorrow.",
                "errorType": ErrorKind.RATE_LIMIT.value,
                "dailyLimit": e.daily_limit,
                "currentUsage": e.current_usage,
            },
        )

    if not req.extracted_data:
        raise HTTPException(status_code=400, detail="Missing extractedData")

    try:
        extracted = ExtractedFields.from_agent_output(req.extracted_data)
        if req.validation_results:
            validated = {
                field: ValidationResult.model_validate(result)
                for field, result in canonical_view(req.validation_results).items()
            }
        else:
            validated = validate_document_fields(extracted)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid scoring request: {e}")

    try:
        result = await scoring_agent.score(extracted, validated)
    except AgentError as e:
        logger.error("Scoring endpoint failed", kind=e.kind.value, error=e.message)
        return JSONResponse(
            status_code=_KIND_STATUS.get(e.kind, 500),
            content={"success": False, "error": e.message, "errorType": e.kind.value},
        )

    usage = budget.usage()
    return ScoreResponse(
        data=alias_view({field: score.model_dump() for field, score in result.scores.items()}),
        usage=ScoreUsage(
            input_tokens=result.cost.input_tokens,
            output_tokens=result.cost.output_tokens,
            cost=result.cost.total_cost,
            daily_total=usage["daily_total"],
            daily_limit=usage["daily_limit"],
            remaining_budget=usage["remaining_budget"],
        ),
    )


@router.get("")
async def list_documents(status: str = "all", store: DocumentStoreBase = Depends(get_store)):
    """List stored documents, optionally filtered by payment status"""
    try:
        documents = store.list_by_status(status)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"total": len(documents), "documents": [_document_json(doc) for doc in documents]}


@router.get("/stats")
async def document_stats(store: DocumentStoreBase = Depends(get_store)):
    return store.stats()


@router.get("/{document_id}")
async def get_document(document_id: str, store: DocumentStoreBase = Depends(get_store)):
    return _document_json(_get_or_404(store, document_id))


@router.post("/{document_id}/mark-paid")
async def mark_document_paid(document_id: str, store: DocumentStoreBase = Depends(get_store)):
    _get_or_404(store, document_id)
    doc = store.mark_paid(document_id)
    logger.info("Document marked as paid", document_id=document_id)
    return _document_json(doc)


@router.patch("/{document_id}/edits")
async def save_user_edits(
    document_id: str,
    edits: dict[str, Any] = Body(...),
    store: DocumentStoreBase = Depends(get_store),
):
    """Merge reviewer corrections (form field -> value) into the document"""
    doc = _get_or_404(store, document_id)
    updated = store.update_document(document_id, {"user_edits": {**doc.user_edits, **edits}})
    return _document_json(updated)


@router.delete("/{document_id}")
async def delete_document(document_id: str, store: DocumentStoreBase = Depends(get_store)):
    if not store.delete_document(document_id):
        raise HTTPException(status_code=404, detail="Document not found")
    return {"deleted": True, "document_id": document_id}
