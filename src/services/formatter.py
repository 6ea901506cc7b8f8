"""
Deterministic mapping from extracted, validated and scored fields to the
payment form schema.

REVIEW_CONFIDENCE_THRESHOLD is the single gate between "safe to autofill"
and "a human must review". It applies to every score the same way, whether
it came from the scoring agent or the fallback scorer.
"""

import re
from typing import Any, Optional
from .document_types import ExtractedFields
from .validation import parse_amount
from ..models.pipeline import ConfidenceScore, FormattedOutput, ReviewItem, ValidationResult

REVIEW_CONFIDENCE_THRESHOLD = 0.70

# Payment form field -> canonical extracted field (order is the form order)
FIELD_MAP: dict[str, str] = {
    "payee_name": "vendor_name",
    "payment_amount": "total_amount",
    "reference_number": "reference_number",
    "payment_date": "payment_due_date",
    "transaction_date": "transaction_date",
    "account_holder": "customer_name",
}

_WHITESPACE = re.compile(r"\s+")


def _is_absent(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def format_value(field: str, value: Any, validation: ValidationResult) -> Any:
    """Normalize one value according to the semantic type of its source field."""
    if field == "total_amount":
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
        if validation.numeric_value is not None:
            return validation.numeric_value
        return parse_amount(value)

    if field in ("transaction_date", "payment_due_date"):
        # Already validated as YYYY-MM-DD
        return str(value).strip()

    if field in ("vendor_name", "customer_name", "reference_number"):
        return _WHITESPACE.sub(" ", str(value)).strip()

    return value


def format_for_form(
    extracted: ExtractedFields,
    validation_results: dict[str, ValidationResult],
    scores: Optional[dict[str, ConfidenceScore]],
) -> FormattedOutput:
    """
    Build payment form fields plus the review and warning lists.

    Args:
        extracted: Extracted document fields
        validation_results: Output of validate_document_fields
        scores: Confidence scores (agent or fallback); may be None

    Returns:
        FormattedOutput. ``ready_to_fill`` is True only when nothing needs
        review and nothing was missing or invalid.
    """
    form_fields: dict[str, Any] = {}
    review_required: list[ReviewItem] = []
    warnings: list[str] = []
    scores = scores or {}

    for form_field, source_field in FIELD_MAP.items():
        value = extracted.get(source_field)
        validation = validation_results.get(source_field)

        if _is_absent(value) or validation is None or not validation.valid:
            warnings.append(f"{form_field}: Missing or invalid data")
            continue

        formatted = format_value(source_field, value, validation)
        form_fields[form_field] = formatted

        score = scores.get(source_field)
        if score is not None and score.confidence < REVIEW_CONFIDENCE_THRESHOLD:
            review_required.append(
                ReviewItem(
                    field=form_field,
                    value=formatted,
                    confidence=score.confidence,
                    reasoning=score.reasoning,
                )
            )

    return FormattedOutput(form_fields=form_fields, review_required=review_required, warnings=warnings)


def get_form_summary(formatted: FormattedOutput) -> dict:
    return {
        "total_fields": len(formatted.form_fields),
        "review_required": len(formatted.review_required),
        "warnings": len(formatted.warnings),
        "ready_to_fill": formatted.ready_to_fill,
    }
