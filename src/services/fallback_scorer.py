"""
Confidence scores derived from validation results alone.

Used when the scoring agent is unavailable, so the pipeline degrades to a
predictable policy instead of dropping scores.
"""

from ..models.pipeline import ConfidenceScore, ValidationResult

CONFIDENCE_VALID = 0.80
CONFIDENCE_VALID_WITH_WARNING = 0.65
CONFIDENCE_INVALID = 0.00


def fallback_score(validation_results: dict[str, ValidationResult]) -> dict[str, ConfidenceScore]:
    scores: dict[str, ConfidenceScore] = {}
    for field, result in validation_results.items():
        if result.valid and not result.warning:
            scores[field] = ConfidenceScore(confidence=CONFIDENCE_VALID, reasoning="passed validation")
        elif result.valid:
            scores[field] = ConfidenceScore(confidence=CONFIDENCE_VALID_WITH_WARNING, reasoning=result.warning)
        else:
            scores[field] = ConfidenceScore(confidence=CONFIDENCE_INVALID, reasoning=result.error)
    return scores
