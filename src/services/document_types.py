from typing import Any, Literal, Mapping
from pydantic import BaseModel, Field, computed_field, field_validator

DocumentType = Literal["invoice", "receipt", "bill", "statement", "order_confirmation", "unknown"]
ExtractionQuality = Literal["high", "medium", "low"]
PaymentStatus = Literal["paid", "unpaid", "unknown"]

DOCUMENT_TYPES = ("invoice", "receipt", "bill", "statement", "order_confirmation", "unknown")
EXTRACTION_QUALITIES = ("high", "medium", "low")
PAYMENT_STATUSES = ("paid", "unpaid", "unknown")

# Alias name -> canonical field name. The only place aliases are defined.
FIELD_ALIASES: dict[str, str] = {
    "invoice_number": "reference_number",
    "invoice_date": "transaction_date",
    "amount_due": "total_amount",
    "due_date": "payment_due_date",
}


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped or stripped.lower() in ("null", "none"):
            return None
    return value


def _number_to_str(value: Any) -> Any:
    # Models sometimes return amounts as JSON numbers
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    return value


class LineItem(BaseModel):
    description: str | None = None
    quantity: float | None = None
    unit_price: str | None = None
    amount: str | None = None

    @field_validator("unit_price", "amount", mode="before")
    @classmethod
    def _amount_as_string(cls, value):
        return _number_to_str(_blank_to_none(value))

    @field_validator("quantity", mode="before")
    @classmethod
    def _quantity(cls, value):
        value = _blank_to_none(value)
        if isinstance(value, str):
            try:
                return float(value.replace(",", ""))
            except ValueError:
                return None
        return value


class ExtractedFields(BaseModel):
    """
    Fields produced by the extraction agent, in canonical names.

    Alias names (``invoice_number``, ``invoice_date``, ``amount_due``,
    ``due_date``) are read-only computed fields, so the two views can
    never drift apart. They are included when the model is serialized.
    """
    vendor_name: str | None = None
    reference_number: str | None = None
    transaction_date: str | None = None
    payment_due_date: str | None = None
    total_amount: str | None = None  # Numeric string, as printed
    currency: str | None = None
    customer_name: str | None = None
    customer_address: str | None = None
    line_items: list[LineItem] = Field(default_factory=list)

    # Metadata
    extraction_quality: ExtractionQuality = "medium"
    document_type: DocumentType = "unknown"
    payment_status: PaymentStatus = "unknown"
    missing_fields: list[str] = Field(default_factory=list)

    model_config = {"extra": "ignore"}

    @field_validator(
        "vendor_name", "reference_number", "transaction_date", "payment_due_date",
        "currency", "customer_name", "customer_address", mode="before",
    )
    @classmethod
    def _text(cls, value):
        value = _blank_to_none(value)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("total_amount", mode="before")
    @classmethod
    def _total(cls, value):
        return _number_to_str(_blank_to_none(value))

    @field_validator("line_items", "missing_fields", mode="before")
    @classmethod
    def _list_or_empty(cls, value):
        return value or []

    @field_validator("document_type", mode="before")
    @classmethod
    def _document_type(cls, value):
        value = str(value or "").strip().lower()
        return value if value in DOCUMENT_TYPES else "unknown"

    @field_validator("payment_status", mode="before")
    @classmethod
    def _payment_status(cls, value):
        value = str(value or "").strip().lower()
        return value if value in PAYMENT_STATUSES else "unknown"

    @field_validator("extraction_quality", mode="before")
    @classmethod
    def _quality(cls, value):
        value = str(value or "").strip().lower()
        return value if value in EXTRACTION_QUALITIES else "medium"

    @computed_field
    @property
    def invoice_number(self) -> str | None:
        return self.reference_number

    @computed_field
    @property
    def invoice_date(self) -> str | None:
        return self.transaction_date

    @computed_field
    @property
    def amount_due(self) -> str | None:
        return self.total_amount

    @computed_field
    @property
    def due_date(self) -> str | None:
        return self.payment_due_date

    def get(self, field: str, default: Any = None) -> Any:
        """Look up a field by canonical or alias name"""
        field = FIELD_ALIASES.get(field, field)
        return getattr(self, field, default)

    @classmethod
    def from_agent_output(cls, data: Mapping[str, Any]) -> "ExtractedFields":
        """
        Build from raw agent JSON, accepting alias keys when the canonical
        key is absent (e.g. ``invoice_number`` instead of ``reference_number``).
        """
        payload = dict(data)
        for alias, canonical in FIELD_ALIASES.items():
            if payload.get(canonical) is None and payload.get(alias) is not None:
                payload[canonical] = payload[alias]
            payload.pop(alias, None)
        return cls.model_validate(payload)


def alias_view(values: Mapping[str, Any]) -> dict[str, Any]:
    """
    Return a copy of a per-field mapping with alias keys added.

    Alias entries always mirror the canonical entry; an alias key that has
    no canonical counterpart is left out.
    """
    view = {key: value for key, value in values.items() if key not in FIELD_ALIASES}
    for alias, canonical in FIELD_ALIASES.items():
        if canonical in view:
            view[alias] = view[canonical]
    return view


def canonical_view(values: Mapping[str, Any]) -> dict[str, Any]:
    """Fold alias keys back onto canonical names (canonical wins on conflict)."""
    view: dict[str, Any] = {}
    for key, value in values.items():
        if key in FIELD_ALIASES:
            view.setdefault(FIELD_ALIASES[key], value)
        else:
            view[key] = value
    return view
