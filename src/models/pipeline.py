"""
Result records produced by the processing pipeline.

PipelineState is the working record of a single run. It is mutated only
through its own methods while ``status == "processing"`` and is sealed as
soon as it reaches a terminal status.
"""

from typing import Any, Literal
from pydantic import BaseModel, Field, PrivateAttr, computed_field, model_validator
from ..core.errors import PipelineStateSealedError
from ..services.document_types import ExtractedFields

PipelineStatus = Literal["processing", "complete", "failed", "canceled"]
TERMINAL_STATUSES = ("complete", "failed", "canceled")


def _refuse_change(self, *args, **kwargs):
    raise PipelineStateSealedError("Pipeline state is sealed and can no longer change")


class _SealedList(list):
    """Read-only list handed out once a state is terminal"""
    append = extend = insert = remove = pop = clear = sort = reverse = _refuse_change
    __setitem__ = __delitem__ = __iadd__ = __imul__ = _refuse_change


class _SealedDict(dict):
    """Read-only dict handed out once a state is terminal"""
    __setitem__ = __delitem__ = __ior__ = _refuse_change
    clear = pop = popitem = setdefault = update = _refuse_change



class ValidationResult(BaseModel):
    """Per-field verdict from the validation engine"""
    valid: bool
    error: str | None = None
    warning: str | None = None
    numeric_value: float | None = Field(default=None, alias="numericValue")

    model_config = {"populate_by_name": True}

    @model_validator(mode="after")
    def _consistent(self):
        if not self.valid:
            if not self.error:
                self.error = "invalid"
            self.warning = None
        else:
            self.error = None
        return self


class ConfidenceScore(BaseModel):
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str = ""


class ReviewItem(BaseModel):
    field: str
    value: Any
    confidence: float
    reasoning: str


class FormattedOutput(BaseModel):
    form_fields: dict[str, Any] = Field(default_factory=dict)
    review_required: list[ReviewItem] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    model_config = {"extra": "ignore"}

    @computed_field
    @property
    def ready_to_fill(self) -> bool:
        return not self.review_required and not self.warnings


class CostBreakdown(BaseModel):
    model_config = {"frozen": True}

    input: float = Field(default=0.0, ge=0.0)
    output: float = Field(default=0.0, ge=0.0)


class CostRecord(BaseModel):
    """Token usage and USD cost of one agent call"""
    model_config = {"frozen": True}

    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)
    total_cost: float = Field(default=0.0, ge=0.0)
    breakdown: CostBreakdown = Field(default_factory=CostBreakdown)


class CostSummary(BaseModel):
    total: float = 0.0
    breakdown: dict[str, CostRecord] = Field(default_factory=dict)

    _sealed: bool = PrivateAttr(default=False)

    def __setattr__(self, name: str, value: Any) -> None:
        if not name.startswith("_") and self._sealed:
            raise PipelineStateSealedError(f"Cannot set '{name}' on sealed costs")
        super().__setattr__(name, value)

    def add(self, stage: str, record: CostRecord) -> None:
        """Add a stage's cost to the running total (never subtracts)."""
        existing = self.breakdown.get(stage)
        if existing is not None:
            record = CostRecord(
                input_tokens=existing.input_tokens + record.input_tokens,
                output_tokens=existing.output_tokens + record.output_tokens,
                total_cost=existing.total_cost + record.total_cost,
                breakdown=CostBreakdown(
                    input=existing.breakdown.input + record.breakdown.input,
                    output=existing.breakdown.output + record.breakdown.output,
                ),
            )
            self.total += record.total_cost - existing.total_cost
        else:
            self.total += record.total_cost
        self.breakdown[stage] = record

    def seal(self) -> None:
        self.breakdown = _SealedDict(self.breakdown)
        self._sealed = True


class PipelineIssue(BaseModel):
    """An error or warning recorded against a pipeline step"""
    step: str
    error: str | None = None
    warning: str | None = None
    user_message: str | None = Field(default=None, alias="userMessage")
    title: str | None = None
    kind: str | None = None

    model_config = {"populate_by_name": True, "frozen": True}


class PipelineState(BaseModel):
    status: PipelineStatus = "processing"
    current_step: str | None = None
    extracted: ExtractedFields | None = None
    validated: dict[str, ValidationResult] | None = None
    scored: dict[str, ConfidenceScore] | None = None
    formatted: FormattedOutput | None = None
    errors: list[PipelineIssue] = Field(default_factory=list)
    costs: CostSummary = Field(default_factory=CostSummary)

    _sealed: bool = PrivateAttr(default=False)

    def __setattr__(self, name: str, value: Any) -> None:
        if not name.startswith("_") and self._sealed:
            raise PipelineStateSealedError(f"Cannot set '{name}' on a {self.status} pipeline state")
        super().__setattr__(name, value)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def warnings(self) -> list[PipelineIssue]:
        return [issue for issue in self.errors if issue.warning]

    def _ensure_open(self) -> None:
        if self._sealed:
            raise PipelineStateSealedError(f"Pipeline state is {self.status} and can no longer change")

    def enter(self, step: str) -> None:
        self._ensure_open()
        self.current_step = step

    def record_error(
        self,
        step: str,
        error: str,
        user_message: str | None = None,
        title: str | None = None,
        kind: str | None = None,
    ) -> PipelineIssue:
        self._ensure_open()
        issue = PipelineIssue(step=step, error=error, user_message=user_message, title=title, kind=kind)
        self.errors.append(issue)
        return issue

    def record_warning(self, step: str, warning: str, kind: str | None = None) -> PipelineIssue:
        self._ensure_open()
        issue = PipelineIssue(step=step, warning=warning, kind=kind)
        self.errors.append(issue)
        return issue

    def add_cost(self, stage: str, record: CostRecord) -> None:
        self._ensure_open()
        self.costs.add(stage, record)

    def finish(self, status: PipelineStatus) -> None:
        """
        Move to a terminal status and seal the record.

        The issue list, the per-field maps and the cost summary become
        read-only along with the state itself. Individual ValidationResult
        and ConfidenceScore entries are not frozen.
        """
        if status not in TERMINAL_STATUSES:
            raise ValueError(f"Not a terminal status: {status}")
        self._ensure_open()
        self.status = status
        self.current_step = status
        self.errors = _SealedList(self.errors)
        if self.validated is not None:
            self.validated = _SealedDict(self.validated)
        if self.scored is not None:
            self.scored = _SealedDict(self.scored)
        self.costs.seal()
        self._sealed = True
