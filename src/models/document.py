import uuid
from datetime import date, datetime, UTC
from typing import Any, Literal
from pydantic import BaseModel, Field
from .pipeline import (
    ConfidenceScore,
    CostSummary,
    FormattedOutput,
    PipelineIssue,
    PipelineState,
    PipelineStatus,
    ValidationResult,
)
from ..services.document_types import ExtractedFields

DocumentStatus = Literal["unpaid", "paid", "overdue"]


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class DocumentRecord(BaseModel):
    """A processed document as kept by the host's document store"""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    upload_date: str = Field(default_factory=_now_iso)
    file_name: str | None = None

    # Pipeline results
    pipeline_status: PipelineStatus = "complete"
    extracted: ExtractedFields | None = None
    validated: dict[str, ValidationResult] | None = None
    scored: dict[str, ConfidenceScore] | None = None
    formatted: FormattedOutput | None = None
    costs: CostSummary = Field(default_factory=CostSummary)
    errors: list[PipelineIssue] = Field(default_factory=list)

    # Payment tracking
    status: DocumentStatus = "unpaid"
    paid_date: str | None = None
    updated_date: str | None = None
    user_edits: dict[str, Any] = Field(default_factory=dict)

    model_config = {"extra": "ignore"}

    @classmethod
    def from_pipeline_state(cls, state: PipelineState, file_name: str | None = None) -> "DocumentRecord":
        """Snapshot a finished run. Receipts already marked paid start as paid."""
        paid = state.extracted is not None and state.extracted.payment_status == "paid"
        results = state.model_dump(include={"extracted", "validated", "scored", "formatted", "costs", "errors"})
        return cls.model_validate({
            **results,
            "file_name": file_name,
            "pipeline_status": state.status,
            "status": "paid" if paid else "unpaid",
        })

    def is_overdue(self, today: date | None = None) -> bool:
        """Unpaid with a payment due date before today."""
        if self.status == "paid":
            return False
        if self.status == "overdue":
            return True
        if self.extracted is None or not self.extracted.payment_due_date:
            return False
        try:
            due = date.fromisoformat(self.extracted.payment_due_date)
        except ValueError:
            return False
        return due < (today or date.today())

    def effective_status(self, today: date | None = None) -> DocumentStatus:
        if self.status == "paid":
            return "paid"
        return "overdue" if self.is_overdue(today) else "unpaid"
