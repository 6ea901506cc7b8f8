"""
Integration tests against the live Messages API.

These tests are skipped by default. To run them:
    ANTHROPIC_API_KEY=... pytest -m integration --run-integration

Each test spends a small amount of real API credit.
"""

import asyncio
import base64
import pytest
from src.core.config import settings
from src.services.agents import ClaudeExtractionAgent, ClaudeScoringAgent
from src.services.orchestrator import PipelineOrchestrator
from src.services.progress import ProgressRecorder
from src.services.validation import validate_document_fields

# 1x1 white PNG: a valid image that is not a financial document
BLANK_PNG = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mP8/5+hHgAHggJ/PchI7wAAAABJRU5ErkJggg=="
)

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(not settings.anthropic_api_key, reason="ANTHROPIC_API_KEY not configured"),
]


def test_scoring_agent_returns_bounded_scores(invoice):
    validated = validate_document_fields(invoice)

    result = asyncio.run(ClaudeScoringAgent().score(invoice, validated))

    assert result.scores
    for field, score in result.scores.items():
        assert 0.0 <= score.confidence <= 1.0
        if field in validated and not validated[field].valid:
            assert score.confidence == 0.0
    assert result.cost.total_cost > 0


def test_blank_image_is_rejected_as_unsupported():
    orchestrator = PipelineOrchestrator(ClaudeExtractionAgent(), ClaudeScoringAgent())
    recorder = ProgressRecorder()

    state = asyncio.run(orchestrator.run(BLANK_PNG, recorder, media_type="image/png"))

    assert state.status == "failed"
    assert state.errors[0].step == "extract"
    assert recorder.steps[-1] == "failed"
    assert state.costs.total > 0
