import json
from typing import Any, Mapping
import httpx
from loguru import logger
from .anthropic_client import AnthropicMessagesClient
from .base import ScoringAgent, ScoringResult
from .json_tools import extract_json
from ..cost import DailyBudgetTracker, calculate_cost
from ..document_types import FIELD_ALIASES, ExtractedFields, canonical_view
from ...core.config import settings
from ...core.errors import AgentError, ErrorKind
from ...models.pipeline import ConfidenceScore, CostRecord, ValidationResult

SCORING_PROMPT = """You score how much to trust each field extracted from a financial document.

Extracted data:
{extracted}

Validation results:
{validation}

For every extracted field give a confidence between 0.0 and 1.0 and one short sentence of reasoning.
Take into account the extraction_quality metadata, whether the field passed validation, any
validation warning, and whether the field is consistent with the other fields.
Fields that failed validation must get confidence 0.0.
Anything below 0.7 will be sent to a person for review.

Return only a JSON object keyed by field name, without markdown or commentary:
{{
  "vendor_name": {{"confidence": 0.95, "reasoning": "Clearly printed business name in the header"}},
  "total_amount": {{"confidence": 0.70, "reasoning": "Legible, but line items do not add up to the total"}}
}}"""

# Base confidence per extraction quality for the heuristic scorer
QUALITY_CONFIDENCE = {"high": 0.95, "medium": 0.85, "low": 0.60}
WARNING_CONFIDENCE_CAP = 0.65


def _confidence_value(entry: Any) -> float | None:
    raw = entry.get("confidence") if isinstance(entry, Mapping) else entry
    if isinstance(raw, bool):
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None


def normalize_scores(
    raw: Mapping[str, Any],
    validation_results: Mapping[str, ValidationResult],
) -> dict[str, ConfidenceScore]:
    """
    Turn a scoring agent's JSON into canonical ConfidenceScores.

    Accepts a flat ``{field: {confidence, reasoning}}`` mapping or one nested
    under ``field_scores``, alias field names, bare numbers, and 0-100
    percentages. Confidences are clamped to [0, 1] and fields that failed
    validation are forced to 0. Entries without a readable confidence are
    dropped.
    """
    if isinstance(raw.get("field_scores"), Mapping):
        raw = raw["field_scores"]
    raw = canonical_view(raw)
    raw.pop("overall_confidence", None)

    values = {field: _confidence_value(entry) for field, entry in raw.items()}
    values = {field: value for field, value in values.items() if value is not None}
    percent_scale = any(value > 1.0 for value in values.values())

    scores: dict[str, ConfidenceScore] = {}
    for field, value in values.items():
        entry = raw[field]
        reasoning = str(entry.get("reasoning", "")) if isinstance(entry, Mapping) else ""
        confidence = value / 100.0 if percent_scale else value
        confidence = min(1.0, max(0.0, confidence))

        validation = validation_results.get(field)
        if validation is not None and not validation.valid:
            confidence = 0.0
            reasoning = reasoning or validation.error

        scores[field] = ConfidenceScore(confidence=confidence, reasoning=reasoning)
    return scores


def _scoring_payload(extracted: ExtractedFields, validation_results: Mapping[str, ValidationResult]) -> dict:
    return {
        "extractedData": extracted.model_dump(mode="json", exclude=set(FIELD_ALIASES)),
        "validationResults": {
            field: result.model_dump(by_alias=True, exclude_none=True)
            for field, result in validation_results.items()
        },
    }


class ClaudeScoringAgent(ScoringAgent):
    """
    Scoring via the Messages API (scoring pricing tier).

    When a budget tracker is given, calls are refused with a rate-limit
    AgentError once the daily ceiling is reached, and every call's cost is
    recorded against it.
    """

    name = "claude-scoring"

    def __init__(
        self,
        client: AnthropicMessagesClient | None = None,
        budget: DailyBudgetTracker | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
    ):
        self.client = client or AnthropicMessagesClient()
        self.budget = budget
        self.model = model or settings.scoring_model
        self.max_tokens = max_tokens or settings.scoring_max_tokens

    async def score(
        self,
        extracted: ExtractedFields,
        validation_results: dict[str, ValidationResult],
    ) -> ScoringResult:
        if self.budget is not None:
            self.budget.check()

        payload = _scoring_payload(extracted, validation_results)
        prompt = SCORING_PROMPT.format(
            extracted=json.dumps(payload["extractedData"], indent=2),
            validation=json.dumps(payload["validationResults"], indent=2),
        )
        response = await self.client.create_message(model=self.model, content=prompt, max_tokens=self.max_tokens)
        cost = calculate_cost("scoring", response.input_tokens, response.output_tokens)
        if self.budget is not None:
            self.budget.record(cost.total_cost)

        data = extract_json(response.text)
        if not isinstance(data, dict):
            raise AgentError(ErrorKind.INVALID_RESPONSE, "Failed to extract JSON from scoring response")

        scores = normalize_scores(data, validation_results)
        if not scores:
            raise AgentError(ErrorKind.INVALID_RESPONSE, "Scoring response contained no usable scores")

        logger.info("Confidence scores received", fields=len(scores), cost=cost.total_cost)
        return ScoringResult(scores=scores, cost=cost)


class RemoteScoringAgent(ScoringAgent):
    """
    Scoring through a host's ``/documents/score`` endpoint, which owns the
    API key and the daily budget.
    """

    name = "remote-scoring"

    def __init__(self, endpoint_url: str | None = None, timeout_seconds: float | None = None):
        self.endpoint_url = endpoint_url or settings.scoring_endpoint_url
        self.timeout_seconds = timeout_seconds or settings.llm_timeout_seconds

    async def score(
        self,
        extracted: ExtractedFields,
        validation_results: dict[str, ValidationResult],
    ) -> ScoringResult:
        if not self.endpoint_url:
            raise AgentError(ErrorKind.SCORING, "SCORING_ENDPOINT_URL is not configured")

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(self.endpoint_url, json=_scoring_payload(extracted, validation_results))
        except httpx.TimeoutException as e:
            raise AgentError(ErrorKind.TIMEOUT, f"Scoring endpoint timed out: {e}") from e
        except httpx.TransportError as e:
            raise AgentError(ErrorKind.NETWORK, f"Scoring endpoint unreachable: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            raise AgentError(
                ErrorKind.INVALID_RESPONSE,
                f"Scoring endpoint returned a non-object body ({type(body).__name__})",
                status_code=response.status_code,
            )

        if response.status_code != 200 or not body.get("success"):
            error_type = body.get("errorType")
            try:
                kind = ErrorKind(error_type)
            except ValueError:
                kind = ErrorKind.RATE_LIMIT if response.status_code == 429 else ErrorKind.SCORING
            raise AgentError(
                kind,
                body.get("error") or f"Scoring endpoint returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        data = body.get("data") or {}
        if not isinstance(data, Mapping):
            raise AgentError(ErrorKind.INVALID_RESPONSE, "Scoring endpoint returned malformed score data")

        scores = normalize_scores(data, validation_results)
        if not scores:
            raise AgentError(ErrorKind.INVALID_RESPONSE, "Scoring endpoint returned no usable scores")

        usage = body.get("usage")
        if not isinstance(usage, Mapping):
            usage = {}
        try:
            input_tokens = max(0, int(usage.get("inputTokens") or 0))
            output_tokens = max(0, int(usage.get("outputTokens") or 0))
        except (TypeError, ValueError) as e:
            raise AgentError(ErrorKind.INVALID_RESPONSE, f"Scoring endpoint returned malformed usage: {e}") from e
        cost = calculate_cost("scoring", input_tokens, output_tokens)
        return ScoringResult(scores=scores, cost=cost)


class HeuristicScoringAgent(ScoringAgent):
    """
    Deterministic scores derived from extraction quality and validation
    outcomes. Used when no model API is configured and in tests.
    """

    name = "heuristic-scoring"

    async def score(
        self,
        extracted: ExtractedFields,
        validation_results: dict[str, ValidationResult],
    ) -> ScoringResult:
        base = QUALITY_CONFIDENCE[extracted.extraction_quality]
        scores: dict[str, ConfidenceScore] = {}

        for field, result in validation_results.items():
            if not result.valid:
                scores[field] = ConfidenceScore(confidence=0.0, reasoning=result.error)
            elif result.warning:
                scores[field] = ConfidenceScore(confidence=min(base, WARNING_CONFIDENCE_CAP), reasoning=result.warning)
            else:
                scores[field] = ConfidenceScore(
                    confidence=base,
                    reasoning=f"Passed validation ({extracted.extraction_quality} extraction quality)",
                )

        return ScoringResult(scores=scores, cost=CostRecord())
