"""
Data models for order comparison.

``OrderComparison`` is the shape the model provider is asked to return;
``ComparisonResponse`` is what the API hands back to callers.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Severity(str, Enum):
    """Operational impact of a discrepancy."""

    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"


class ComparisonQuality(str, Enum):
    """Model's own assessment of how reliable the comparison is."""

    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class Discrepancy(BaseModel):
    """A field whose value differs between the two orders."""

    field: str = Field(..., description="The field name where discrepancy was found")
    order1_value: str = Field(..., description="Value from the first order")
    order2_value: str = Field(..., description="Value from the second order")
    severity: Severity = Field(..., description="Severity of the discrepancy")
    description: str = Field(..., description="Human-readable description of the discrepancy")


class FieldMatch(BaseModel):
    """A field that agrees between the two orders."""

    field: str = Field(..., description="The field name that matches")
    value: str = Field(..., description="The matching value")
    confidence: float = Field(
        ...,
        ge=0.0,
        le=1.0,
        description="Confidence that this is a correct match"
    )


class ComparisonAnalysis(BaseModel):
    """Overall assessment of a comparison."""

    overall_confidence: float = Field(
        ...,
        ge=0.0,
        le=1.0,
        description="Overall confidence in the comparison accuracy"
    )
    comparison_quality: ComparisonQuality = Field(..., description="Quality of the comparison")
    potential_issues: List[str] = Field(
        default_factory=list,
        description="Potential issues or concerns with the comparison"
    )
    recommendation: str = Field(..., description="Recommendation for next steps")


class OrderComparison(BaseModel):
    """Structured result of comparing two shipping orders."""

    discrepancies: List[Discrepancy] = Field(
        default_factory=list,
        description="List of discrepancies found between the two orders"
    )
    matches: List[FieldMatch] = Field(
        default_factory=list,
        description="List of fields that match between orders"
    )
    analysis: ComparisonAnalysis = Field(..., description="Overall analysis of the comparison")
    summary: str = Field(..., description="Brief summary of the comparison results")

    def discrepancy_for(self, field_name: str) -> Optional[Discrepancy]:
        """Look up a discrepancy by field name, ignoring case."""
        wanted = field_name.lower()
        for discrepancy in self.discrepancies:
            if discrepancy.field.lower() == wanted:
                return discrepancy
        return None


class CompareRequest(BaseModel):
    """Body of a comparison request: two previously extracted records."""

    order1: Optional[Dict[str, Any]] = Field(None, description="First extracted order")
    order2: Optional[Dict[str, Any]] = Field(None, description="Second extracted order")


class ComparisonResponse(BaseModel):
    """Outcome of a comparison as returned over the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool = Field(..., description="Whether the comparison succeeded")
    comparison: Optional[OrderComparison] = Field(None, description="Comparison details")
    needs_manual_review: Optional[bool] = Field(
        None,
        description="True when overall confidence is below the review threshold"
    )
    compared_at: Optional[datetime] = Field(None, description="Comparison time")
    error: Optional[str] = Field(None, description="Error message if failed")
