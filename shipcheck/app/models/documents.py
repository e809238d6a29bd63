"""
Data models for PDF conversion and field extraction responses.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for wire models serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PageImage(CamelModel):
    """
    One rasterized PDF page.

    Page numbers are 1-based and follow the source PDF's page order.
    """

    page_number: int = Field(..., ge=1, description="1-based page number")
    image_data_url: str = Field(..., description="data:image/jpeg;base64,... payload")
    width: Optional[int] = Field(None, description="Pixel width")
    height: Optional[int] = Field(None, description="Pixel height")
    file_name: Optional[str] = Field(None, description="File name reported by the converter")
    file_ext: Optional[str] = Field(None, description="File extension reported by the converter")
    file_size: Optional[int] = Field(None, description="Image size in bytes")


class ConversionResponse(CamelModel):
    """Response of the PDF upload endpoint."""

    success: bool = Field(..., description="Whether conversion succeeded")
    total_pages: int = Field(default=0, description="Number of pages converted")
    pages: List[PageImage] = Field(default_factory=list, description="One image per page")
    conversion_cost: Optional[int] = Field(None, description="Upstream conversion cost")
    error: Optional[str] = Field(None, description="Error message if failed")


class TextExtractionRequest(BaseModel):
    """Body of a raw-text extraction request."""

    text: Optional[str] = Field(None, description="Raw document text")


class ExtractionResponse(CamelModel):
    """Response of the extraction endpoints."""

    success: bool = Field(..., description="Whether extraction succeeded")
    data: Optional[Dict[str, Any]] = Field(None, description="Extracted record")
    error: Optional[str] = Field(None, description="Error message if failed")
    extracted_at: Optional[datetime] = Field(None, description="Extraction time")


class HealthCheck(CamelModel):
    """Health check response."""

    status: str = Field(default="healthy", description="Service status")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Check time")
    version: str = Field(..., description="API version")
    llm_provider: str = Field(..., description="Configured LLM provider")
    llm_configured: bool = Field(default=False, description="LLM credential present")
    conversion_provider: str = Field(..., description="Configured page rasterizer")
    conversion_configured: bool = Field(default=False, description="Conversion credential present")
