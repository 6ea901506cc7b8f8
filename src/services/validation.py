"""
Validation engine: deterministic per-field format and plausibility checks.

Hard format problems produce an ``error`` (field is unusable). Cross-field
plausibility checks only ever produce a ``warning``, since either side of
the comparison may legitimately be partial (e.g. line items that omit tax).
"""

import re
from datetime import date
from typing import Callable, Optional
from loguru import logger
from .document_types import ExtractedFields
from ..models.pipeline import ValidationResult

MISSING = "missing"

# Currency symbols, ISO codes and thousands separators stripped before parsing
_CURRENCY_SYMBOLS = re.compile(r"[$€£¥₹₩₽¢]")
_CURRENCY_CODES = re.compile(r"^[A-Z]{3}\s*|\s*[A-Z]{3}$")
_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_NUMBER = re.compile(r"^-?\d+(\.\d+)?$")

LINE_ITEM_TOLERANCE = 0.01


def parse_amount(raw) -> Optional[float]:
    """
    Parse a printed amount into a float.

    Handles "$1,234.56", "USD 1,234.56", "1 234.56", "(12.00)" and plain
    numbers. Returns None when the text is not a number.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return float(raw)

    text = str(raw).strip()
    negative = text.startswith("(") and text.endswith(")")
    if negative:
        text = text[1:-1]

    text = _CURRENCY_SYMBOLS.sub("", text).strip()
    text = _CURRENCY_CODES.sub("", text.upper())
    text = text.replace(",", "").replace(" ", "").replace("\u00a0", "")

    if not _NUMBER.match(text):
        return None

    value = float(text)
    return -value if negative else value


def parse_iso_date(raw) -> Optional[date]:
    """Parse a YYYY-MM-DD calendar date, or return None."""
    if not raw:
        return None
    text = str(raw).strip()
    if not _ISO_DATE.match(text):
        return None
    try:
        return date.fromisoformat(text)
    except ValueError:
        return None


def _validate_name(value, label: str) -> ValidationResult:
    if value is None or not str(value).strip():
        return ValidationResult(valid=False, error=f"{label} is empty")
    return ValidationResult(valid=True)


def _validate_identifier(value, label: str) -> ValidationResult:
    result = _validate_name(value, label)
    if result.valid and len(str(value).strip()) < 3:
        result.warning = f"{label} is unusually short"
    return result


def _validate_date(value, label: str) -> ValidationResult:
    if parse_iso_date(value) is None:
        return ValidationResult(valid=False, error=f"Invalid {label} format (expected YYYY-MM-DD): {value}")
    return ValidationResult(valid=True)


def _validate_amount(value, label: str) -> ValidationResult:
    amount = parse_amount(value)
    if amount is None:
        return ValidationResult(valid=False, error=f"Invalid {label}: {value}")
    if amount < 0:
        return ValidationResult(valid=False, error=f"{label} cannot be negative: {value}")
    result = ValidationResult(valid=True, numeric_value=amount)
    if amount == 0:
        result.warning = f"{label} is zero"
    return result


def _validate_currency(value, label: str) -> ValidationResult:
    result = _validate_name(value, label)
    if result.valid and not re.fullmatch(r"[A-Za-z]{3}", str(value).strip()):
        result.warning = f"Unrecognized currency code: {value}"
    return result


# field -> (validator, human label)
FIELD_RULES: dict[str, tuple[Callable[[object, str], ValidationResult], str]] = {
    "vendor_name": (_validate_name, "Vendor name"),
    "reference_number": (_validate_identifier, "Reference number"),
    "transaction_date": (_validate_date, "transaction date"),
    "payment_due_date": (_validate_date, "payment due date"),
    "total_amount": (_validate_amount, "Total amount"),
    "currency": (_validate_currency, "Currency"),
    "customer_name": (_validate_name, "Customer name"),
}


def _check_due_after_transaction(extracted: ExtractedFields, results: dict[str, ValidationResult]) -> None:
    due = results["payment_due_date"]
    if not (due.valid and results["transaction_date"].valid):
        return
    if parse_iso_date(extracted.payment_due_date) < parse_iso_date(extracted.transaction_date):
        due.warning = (
            f"Payment due date {extracted.payment_due_date} is before "
            f"transaction date {extracted.transaction_date}"
        )


def _check_line_items_total(extracted: ExtractedFields, results: dict[str, ValidationResult]) -> None:
    total = results["total_amount"]
    if not total.valid or not extracted.line_items:
        return

    amounts = [parse_amount(item.amount) for item in extracted.line_items]
    if any(amount is None for amount in amounts):
        return

    line_sum = round(sum(amounts), 2)
    if abs(line_sum - total.numeric_value) > LINE_ITEM_TOLERANCE:
        total.warning = (
            f"Line items sum ({line_sum:.2f}) does not match total ({total.numeric_value:.2f})"
        )


def validate_document_fields(extracted: ExtractedFields) -> dict[str, ValidationResult]:
    """
    Validate every recognized field of an extracted document.

    Args:
        extracted: Fields returned by the extraction agent

    Returns:
        Mapping of canonical field name to ValidationResult, one entry per
        recognized field. Absent fields are reported as invalid with
        error "missing".
    """
    results: dict[str, ValidationResult] = {}

    for field, (rule, label) in FIELD_RULES.items():
        value = getattr(extracted, field)
        if value is None or (isinstance(value, str) and not value.strip()):
            results[field] = ValidationResult(valid=False, error=MISSING)
            continue
        results[field] = rule(value, label)

    # Cross-field plausibility (warnings only)
    _check_due_after_transaction(extracted, results)
    _check_line_items_total(extracted, results)

    summary = get_validation_summary(results)
    logger.debug(
        "Validation finished",
        valid=summary["valid"],
        errors=summary["errors"],
        warnings=summary["warnings"],
    )
    return results


def get_validation_summary(results: dict[str, ValidationResult]) -> dict:
    """Count valid, invalid and warned fields."""
    errors = sum(1 for r in results.values() if not r.valid)
    warnings = sum(1 for r in results.values() if r.valid and r.warning)
    return {
        "total": len(results),
        "valid": len(results) - errors,
        "errors": errors,
        "warnings": warnings,
        "all_valid": errors == 0,
    }
