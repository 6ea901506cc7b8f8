import base64
from loguru import logger
from pydantic import ValidationError
from .anthropic_client import AnthropicMessagesClient
from .base import ExtractionAgent, ExtractionResult
from .json_tools import extract_json
from ..cost import calculate_cost
from ..document_types import ExtractedFields
from ...core.config import settings
from ...core.errors import AgentError, ErrorKind
from ...models.pipeline import CostRecord

EXTRACTION_PROMPT = """You extract payment information from photographed or scanned financial documents: invoices, receipts, bills, statements and order confirmations.

First decide what kind of document this is, then extract the fields using the rules for that kind.

Required fields:
- vendor_name: business that provided the goods or services
- reference_number: the primary identifier of the document (rules below)
- transaction_date: the main date on the document (issued, purchased or billed), YYYY-MM-DD
- total_amount: the final amount paid, due or charged, digits only (no currency symbol)
- currency: ISO currency code, USD if the document does not say

Optional fields:
- payment_due_date: only when a due date is printed and payment is still owed, YYYY-MM-DD
- customer_name: payer, customer, patient or account holder
- customer_address: billing or service address
- line_items: every visible item as {"description": str, "quantity": number|null, "unit_price": numeric string|null, "amount": numeric string}

Reference number rules by document type:
- receipt (shows PAID/APPROVED, card type, transaction time): prefer Order #, then Receipt #, then Transaction ID. Ignore member, loyalty and seat numbers. payment_status "paid".
- invoice (INVOICE header, Amount Due, Please Pay): prefer Invoice #/Invoice Number/Invoice No, then Reference #. payment_status "unpaid".
- bill (utility, phone, medical or other service charges): prefer Account #/Patient Account, then Bill # or Statement #. Ignore NPI, provider and member IDs. payment_status "unpaid" unless stamped PAID.
- statement (balances, previous charges, Statement Date): prefer Statement #, then Account #.
- order_confirmation (Order Confirmed, Confirmation #): prefer Order # or Confirmation #, then Reference #.
When several identifiers appear, choose the most prominent one for the document type and prefer longer alphanumeric codes over short numbers.

Metadata:
- extraction_quality: "high" (clear), "medium" (some ambiguity) or "low" (significant quality problems)
- document_type: "invoice" | "receipt" | "bill" | "statement" | "order_confirmation" | "unknown"
- payment_status: "paid" | "unpaid" | "unknown"
- missing_fields: names of required fields you could not read

Return only this JSON object, without markdown or commentary:
{
  "vendor_name": "value or null",
  "reference_number": "value or null",
  "transaction_date": "YYYY-MM-DD or null",
  "payment_due_date": "YYYY-MM-DD or null",
  "total_amount": "numeric string or null",
  "currency": "USD",
  "customer_name": "value or null",
  "customer_address": "value or null",
  "line_items": [],
  "extraction_quality": "high|medium|low",
  "document_type": "invoice|receipt|bill|statement|order_confirmation|unknown",
  "payment_status": "paid|unpaid|unknown",
  "missing_fields": []
}"""


def _encode_payload(image_payload: bytes | str) -> str:
    if isinstance(image_payload, (bytes, bytearray)):
        return base64.b64encode(image_payload).decode("ascii")
    return image_payload


class ClaudeExtractionAgent(ExtractionAgent):
    """Multimodal extraction via the Messages API (extraction pricing tier)."""

    name = "claude-extraction"

    def __init__(
        self,
        client: AnthropicMessagesClient | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
    ):
        self.client = client or AnthropicMessagesClient()
        self.model = model or settings.extraction_model
        self.max_tokens = max_tokens or settings.extraction_max_tokens

    def build_content(self, image_payload: bytes | str, media_type: str) -> list[dict]:
        block_type = "document" if media_type == "application/pdf" else "image"
        return [
            {
                "type": block_type,
                "source": {"type": "base64", "media_type": media_type, "data": _encode_payload(image_payload)},
            },
            {"type": "text", "text": EXTRACTION_PROMPT},
        ]

    async def extract(self, image_payload: bytes | str, media_type: str = "image/jpeg") -> ExtractionResult:
        if not image_payload:
            raise AgentError(ErrorKind.EXTRACTION, "No document image provided")

        logger.info("Requesting document extraction", model=self.model, media_type=media_type)
        response = await self.client.create_message(
            model=self.model,
            content=self.build_content(image_payload, media_type),
            max_tokens=self.max_tokens,
        )
        logger.debug("Extraction response received", response_length=len(response.text))

        data = extract_json(response.text)
        if not isinstance(data, dict):
            raise AgentError(
                ErrorKind.INVALID_RESPONSE,
                "Failed to extract JSON from extraction response",
                context={"response_preview": response.text[:200]},
            )

        try:
            fields = ExtractedFields.from_agent_output(data)
        except ValidationError as e:
            raise AgentError(ErrorKind.INVALID_RESPONSE, f"Extraction response did not match schema: {e}") from e

        logger.info(
            "Document data extracted",
            document_type=fields.document_type,
            extraction_quality=fields.extraction_quality,
            payment_status=fields.payment_status,
            has_vendor=fields.vendor_name is not None,
            has_amount=fields.total_amount is not None,
        )
        return ExtractionResult(
            fields=fields,
            cost=calculate_cost("extraction", response.input_tokens, response.output_tokens),
        )


class MockExtractionAgent(ExtractionAgent):
    """
    Demo extraction used when no API key is configured.

    Any non-empty payload yields the same well-formed invoice; an empty
    payload yields an unreadable, unclassified document.
    """

    name = "mock-extraction"

    async def extract(self, image_payload: bytes | str, media_type: str = "image/jpeg") -> ExtractionResult:
        size = len(image_payload or b"")
        logger.info("Returning mock document extraction", payload_size=size)

        if size == 0:
            fields = ExtractedFields(
                extraction_quality="low",
                document_type="unknown",
                missing_fields=["vendor_name", "reference_number", "transaction_date", "total_amount"],
            )
        else:
            fields = ExtractedFields.from_agent_output({
                "vendor_name": "Contoso Pty Ltd",
                "reference_number": "INV-10023",
                "transaction_date": "2025-09-30",
                "payment_due_date": "2025-10-15",
                "total_amount": "385.00",
                "currency": "AUD",
                "customer_name": "Ammons DataLabs",
                "customer_address": "1 Example Street, Brisbane QLD 4000",
                "line_items": [
                    {"description": "Consulting services", "quantity": 3, "unit_price": "110.00", "amount": "330.00"},
                    {"description": "GST", "quantity": None, "unit_price": None, "amount": "55.00"},
                ],
                "extraction_quality": "high",
                "document_type": "invoice",
                "payment_status": "unpaid",
                "missing_fields": [],
            })

        return ExtractionResult(fields=fields, cost=CostRecord())
