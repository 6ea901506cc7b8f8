from typing import Any
from pydantic import BaseModel, Field
from ..services.agents import ClaudeScoringAgent, ScoringAgent, get_budget_tracker
from ..services.cost import DailyBudgetTracker
from ..services.orchestrator import PipelineOrchestrator, build_default_orchestrator
from ..services.storage import DocumentStoreBase, get_document_store


class ProcessResponse(BaseModel):
    document_id: str | None = None  # Only set when the run completed and was saved
    state: dict[str, Any]
    summary: dict[str, Any] | None = None
    events: list[dict[str, Any]] = Field(default_factory=list)


class ScoreRequest(BaseModel):
    """Body of /documents/score (same shape RemoteScoringAgent sends)"""
    extracted_data: dict[str, Any] | None = Field(default=None, alias="extractedData")
    validation_results: dict[str, Any] | None = Field(default=None, alias="validationResults")

    model_config = {"populate_by_name": True}


class ScoreUsage(BaseModel):
    input_tokens: int = Field(alias="inputTokens")
    output_tokens: int = Field(alias="outputTokens")
    cost: float
    daily_total: float = Field(alias="dailyTotal")
    daily_limit: float = Field(alias="dailyLimit")
    remaining_budget: float = Field(alias="remainingBudget")

    model_config = {"populate_by_name": True}


class ScoreResponse(BaseModel):
    success: bool = True
    data: dict[str, Any]
    usage: ScoreUsage


def get_orchestrator() -> PipelineOrchestrator:
    return build_default_orchestrator()


def get_store() -> DocumentStoreBase:
    return get_document_store()


def get_budget() -> DailyBudgetTracker:
    return get_budget_tracker()


def get_host_scoring_agent() -> ScoringAgent:
    """The scoring endpoint always calls the model directly, against the shared budget."""
    return ClaudeScoringAgent(budget=get_budget_tracker())
