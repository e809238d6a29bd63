"""
Order Comparison Service

Asks the model provider to compare two extracted shipping orders under a
fixed severity rubric. The manual-review flag is computed here from the
returned confidence rather than left to the model.
"""

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from app.core.config import Settings, get_settings
from app.core.errors import InputValidationError, UpstreamError
from app.core.logging import get_logger
from app.models.comparison import OrderComparison
from app.services.llm_service import LLMServiceError, StructuredLLMService, StructuredPrompt

logger = get_logger(__name__)

COMPARISON_PROMPT = """
You are an expert shipping order analyst. Please compare these two shipping orders and identify any discrepancies or differences.

SHIPPING ORDER 1:
{order1}

SHIPPING ORDER 2:
{order2}

Please analyze these orders carefully and provide:

1. DISCREPANCIES: Any differences between the orders, categorized by severity:
   - CRITICAL: Different recipients, addresses, or tracking numbers that could cause delivery failures
   - MAJOR: Different carriers, shipping methods, dates, or costs that significantly impact the shipment
   - MINOR: Small differences in formatting, optional fields, or non-critical information

2. MATCHES: Fields that are identical or substantially similar between both orders

3. ANALYSIS: Overall assessment including:
   - Confidence score (0.0 to 1.0) representing how confident you are in this comparison
   - Quality assessment of the comparison
   - Any potential issues or concerns
   - Recommendation for next steps

4. SUMMARY: Brief overview of the comparison results

IMPORTANT GUIDELINES:
- Pay special attention to critical shipping information (addresses, recipients, tracking numbers)
- Consider variations in formatting (e.g., "123 Main St" vs "123 Main Street") as minor if the meaning is the same
- Assign higher confidence scores when the data is clear and complete
- Assign lower confidence scores when data is missing, unclear, or potentially extracted incorrectly
- If confidence is below {threshold}, recommend manual review
- Consider empty/missing fields carefully - they might indicate incomplete extraction rather than actual differences
"""


class ComparisonError(UpstreamError):
    """Raised when two orders cannot be compared."""

    pass


class MissingOrderError(ComparisonError, InputValidationError):
    """Raised when either order is absent or empty."""

    status_code = 400


def needs_manual_review(confidence: float, threshold: float = 0.8) -> bool:
    """A comparison needs a human when its overall confidence is below the threshold."""
    return confidence < threshold


@dataclass
class ComparisonOutcome:
    comparison: OrderComparison
    needs_manual_review: bool
    compared_at: datetime


class OrderComparator:
    """Compares two extracted orders through a StructuredLLMService."""

    def __init__(self, llm: StructuredLLMService, settings: Optional[Settings] = None):
        self.llm = llm
        self.settings = settings or get_settings()

    def build_prompt(self, order1: Dict[str, Any], order2: Dict[str, Any]) -> str:
        return COMPARISON_PROMPT.format(
            order1=json.dumps(order1, indent=2, ensure_ascii=False, default=str),
            order2=json.dumps(order2, indent=2, ensure_ascii=False, default=str),
            threshold=self.settings.manual_review_threshold,
        )

    async def compare(
        self,
        order1: Optional[Dict[str, Any]],
        order2: Optional[Dict[str, Any]]
    ) -> ComparisonOutcome:
        """
        Compare two extracted orders.

        Args:
            order1: First extracted record
            order2: Second extracted record

        Returns:
            ComparisonOutcome with the model's comparison and the review flag

        Raises:
            MissingOrderError: If either order is absent or empty
            ComparisonError: If the model call fails
        """
        if not order1 or not order2:
            raise MissingOrderError("Both order1 and order2 data are required")

        try:
            comparison = await self.llm.generate(
                StructuredPrompt(text=self.build_prompt(order1, order2)),
                OrderComparison,
                model=self.settings.comparison_model,
                max_tokens=self.settings.comparison_max_tokens
            )
        except LLMServiceError as e:
            logger.error("order_comparison_failed", error=str(e))
            raise ComparisonError(str(e)) from e

        confidence = comparison.analysis.overall_confidence
        review = needs_manual_review(confidence, self.settings.manual_review_threshold)

        logger.info(
            "order_comparison_completed",
            discrepancies=len(comparison.discrepancies),
            matches=len(comparison.matches),
            confidence=confidence,
            needs_manual_review=review
        )

        return ComparisonOutcome(
            comparison=comparison,
            needs_manual_review=review,
            compared_at=datetime.now(timezone.utc)
        )
