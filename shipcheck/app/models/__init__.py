"""
Data models for the Shipping Order Comparator.
"""

from app.models.comparison import (
    ComparisonAnalysis,
    ComparisonQuality,
    ComparisonResponse,
    CompareRequest,
    Discrepancy,
    FieldMatch,
    OrderComparison,
    Severity,
)
from app.models.documents import (
    ConversionResponse,
    ExtractionResponse,
    HealthCheck,
    PageImage,
    TextExtractionRequest,
)
from app.models.orders import CroatianInvoice, LineItem, ShippingOrder

__all__ = [
    "ComparisonAnalysis",
    "ComparisonQuality",
    "ComparisonResponse",
    "CompareRequest",
    "ConversionResponse",
    "CroatianInvoice",
    "Discrepancy",
    "ExtractionResponse",
    "FieldMatch",
    "HealthCheck",
    "LineItem",
    "OrderComparison",
    "PageImage",
    "Severity",
    "ShippingOrder",
    "TextExtractionRequest",
]
