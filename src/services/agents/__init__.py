from loguru import logger
from .base import ExtractionAgent, ExtractionResult, ScoringAgent, ScoringResult
from .extraction import ClaudeExtractionAgent, MockExtractionAgent
from .scoring import ClaudeScoringAgent, HeuristicScoringAgent, RemoteScoringAgent, normalize_scores
from ..cost import DailyBudgetTracker
from ...core.config import settings

# Shared across runs: one daily budget per process
_budget_tracker: DailyBudgetTracker | None = None


def get_budget_tracker() -> DailyBudgetTracker:
    global _budget_tracker
    if _budget_tracker is None:
        _budget_tracker = DailyBudgetTracker(daily_limit=settings.daily_cost_limit)
    return _budget_tracker


def get_extraction_agent() -> ExtractionAgent:
    """Claude extraction when an API key is configured, otherwise the demo mock."""
    if settings.anthropic_api_key:
        return ClaudeExtractionAgent()

    logger.warning(
        "ANTHROPIC_API_KEY not configured - using MOCK extraction data. "
        "Set ANTHROPIC_API_KEY to use real extraction."
    )
    return MockExtractionAgent()


def get_scoring_agent() -> ScoringAgent:
    """Remote endpoint if configured, then Claude, then the heuristic scorer."""
    if settings.scoring_endpoint_url:
        return RemoteScoringAgent()
    if settings.anthropic_api_key:
        return ClaudeScoringAgent(budget=get_budget_tracker())

    logger.warning("No scoring model configured - using heuristic confidence scores")
    return HeuristicScoringAgent()


__all__ = [
    "ExtractionAgent",
    "ExtractionResult",
    "ScoringAgent",
    "ScoringResult",
    "ClaudeExtractionAgent",
    "MockExtractionAgent",
    "ClaudeScoringAgent",
    "RemoteScoringAgent",
    "HeuristicScoringAgent",
    "normalize_scores",
    "get_budget_tracker",
    "get_extraction_agent",
    "get_scoring_agent",
]
