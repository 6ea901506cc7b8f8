"""
Tests for the payment form formatter.

The review rule under test: a field is listed in review_required iff it
made it into form_fields and its confidence is below 0.70.
"""

import pytest
from src.models.pipeline import ConfidenceScore
from src.services.document_types import ExtractedFields
from src.services.fallback_scorer import fallback_score
from src.services.formatter import (
    FIELD_MAP,
    REVIEW_CONFIDENCE_THRESHOLD,
    format_for_form,
    get_form_summary,
)
from src.services.validation import validate_document_fields


def _scores(validated, confidence=0.9):
    return {field: ConfidenceScore(confidence=confidence, reasoning="clear") for field in validated}


def test_maps_every_form_field(invoice):
    validated = validate_document_fields(invoice)
    output = format_for_form(invoice, validated, _scores(validated))

    assert list(output.form_fields) == list(FIELD_MAP)
    assert output.form_fields == {
        "payee_name": "ACME Corp",
        "payment_amount": 1200.50,
        "reference_number": "INV-2024-001",
        "payment_date": "2024-03-31",
        "transaction_date": "2024-03-01",
        "account_holder": "Ammons DataLabs",
    }
    assert output.ready_to_fill is True


def test_amount_becomes_a_number(invoice):
    validated = validate_document_fields(invoice)
    output = format_for_form(invoice, validated, _scores(validated))

    amount = output.form_fields["payment_amount"]
    assert isinstance(amount, float)
    assert amount == pytest.approx(1200.50)


def test_names_are_whitespace_collapsed(invoice_data):
    invoice_data["vendor_name"] = "  ACME \n  Corp  "
    extracted = ExtractedFields.from_agent_output(invoice_data)
    validated = validate_document_fields(extracted)

    output = format_for_form(extracted, validated, _scores(validated))

    assert output.form_fields["payee_name"] == "ACME Corp"


def test_missing_field_is_omitted_with_warning(invoice_data):
    invoice_data["customer_name"] = None
    extracted = ExtractedFields.from_agent_output(invoice_data)
    validated = validate_document_fields(extracted)

    output = format_for_form(extracted, validated, _scores(validated))

    assert "account_holder" not in output.form_fields
    assert output.warnings == ["account_holder: Missing or invalid data"]
    assert output.ready_to_fill is False


def test_invalid_field_is_omitted_and_never_reviewed(invoice_data):
    invoice_data["transaction_date"] = "yesterday"
    extracted = ExtractedFields.from_agent_output(invoice_data)
    validated = validate_document_fields(extracted)

    output = format_for_form(extracted, validated, fallback_score(validated))

    assert "transaction_date" not in output.form_fields
    assert "transaction_date: Missing or invalid data" in output.warnings
    assert all(item.field != "transaction_date" for item in output.review_required)


def test_review_required_iff_below_threshold(invoice):
    validated = validate_document_fields(invoice)
    scores = _scores(validated)
    scores["vendor_name"] = ConfidenceScore(confidence=0.69, reasoning="blurry header")
    scores["total_amount"] = ConfidenceScore(confidence=REVIEW_CONFIDENCE_THRESHOLD, reasoning="ok")

    output = format_for_form(invoice, validated, scores)

    assert [item.field for item in output.review_required] == ["payee_name"]
    item = output.review_required[0]
    assert item.value == "ACME Corp"
    assert item.confidence == 0.69
    assert item.reasoning == "blurry header"
    assert output.ready_to_fill is False


def test_field_without_score_is_not_reviewed(invoice):
    validated = validate_document_fields(invoice)

    output = format_for_form(invoice, validated, None)

    assert output.review_required == []
    assert output.ready_to_fill is True


def test_ready_to_fill_matches_lists(invoice_data):
    invoice_data["currency"] = "dollars"
    invoice_data["payment_due_date"] = None
    extracted = ExtractedFields.from_agent_output(invoice_data)
    validated = validate_document_fields(extracted)

    output = format_for_form(extracted, validated, fallback_score(validated))

    assert output.ready_to_fill == (not output.review_required and not output.warnings)


def test_formatting_is_idempotent(invoice):
    validated = validate_document_fields(invoice)
    scores = fallback_score(validated)

    first = format_for_form(invoice, validated, scores)
    second = format_for_form(invoice, validated, scores)

    assert first.model_dump() == second.model_dump()


def test_form_summary(invoice_data):
    invoice_data["customer_name"] = ""
    extracted = ExtractedFields.from_agent_output(invoice_data)
    validated = validate_document_fields(extracted)
    output = format_for_form(extracted, validated, _scores(validated, confidence=0.5))

    assert get_form_summary(output) == {
        "total_fields": 5,
        "review_required": 5,
        "warnings": 1,
        "ready_to_fill": False,
    }
