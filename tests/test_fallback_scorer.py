from src.models.pipeline import ValidationResult
from src.services.fallback_scorer import fallback_score


def test_fallback_confidence_table():
    results = {
        "vendor_name": ValidationResult(valid=True),
        "total_amount": ValidationResult(valid=True, warning="Total amount is zero", numeric_value=0.0),
        "transaction_date": ValidationResult(valid=False, error="Invalid transaction date format"),
    }

    scores = fallback_score(results)

    assert scores["vendor_name"].confidence == 0.80
    assert scores["vendor_name"].reasoning == "passed validation"
    assert scores["total_amount"].confidence == 0.65
    assert scores["total_amount"].reasoning == "Total amount is zero"
    assert scores["transaction_date"].confidence == 0.0
    assert scores["transaction_date"].reasoning == "Invalid transaction date format"


def test_zero_exactly_when_invalid():
    results = {
        "a": ValidationResult(valid=True),
        "b": ValidationResult(valid=True, warning="odd"),
        "c": ValidationResult(valid=False, error="missing"),
        "d": ValidationResult(valid=False),
    }

    scores = fallback_score(results)

    assert set(scores) == set(results)
    for field, score in scores.items():
        assert 0.0 <= score.confidence <= 1.0
        assert (score.confidence == 0.0) == (not results[field].valid)


def test_empty_results_give_empty_scores():
    assert fallback_score({}) == {}
