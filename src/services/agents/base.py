"""
Contracts for the two external collaborators the pipeline awaits on.

Implementations raise AgentError (with an ErrorKind) on failure and never
return partial results.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from ..document_types import ExtractedFields
from ...models.pipeline import ConfidenceScore, CostRecord, ValidationResult


@dataclass(frozen=True)
class ExtractionResult:
    fields: ExtractedFields
    cost: CostRecord


@dataclass(frozen=True)
class ScoringResult:
    scores: dict[str, ConfidenceScore]
    cost: CostRecord


class ExtractionAgent(ABC):
    """Turns a document image into ExtractedFields."""

    name: str = "extraction"

    @abstractmethod
    async def extract(self, image_payload: bytes | str, media_type: str = "image/jpeg") -> ExtractionResult:
        """
        Extract structured fields from a document image.

        Args:
            image_payload: Raw image bytes, or an already base64-encoded string
            media_type: MIME type of the image

        Returns:
            ExtractionResult with fields and the call's cost

        Raises:
            AgentError: The collaborator failed or returned unusable output
        """
        pass


class ScoringAgent(ABC):
    """Assigns a confidence score and rationale to each extracted field."""

    name: str = "scoring"

    @abstractmethod
    async def score(
        self,
        extracted: ExtractedFields,
        validation_results: dict[str, ValidationResult],
    ) -> ScoringResult:
        """
        Score extracted fields given their validation results.

        Returns:
            ScoringResult with confidences in [0, 1]; fields that failed
            validation carry confidence 0

        Raises:
            AgentError: The collaborator failed or returned unusable output
        """
        pass
