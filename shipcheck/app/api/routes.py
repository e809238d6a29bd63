"""
API Routes for the Shipping Order Comparator

This module defines all HTTP endpoints for the service. Typed failures
raised by the services are rendered by the handler registered in
``app.main``.
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, File, UploadFile

from app.core.config import Settings, get_settings
from app.core.logging import get_logger
from app.models.comparison import ComparisonResponse, CompareRequest
from app.models.documents import (
    ConversionResponse,
    ExtractionResponse,
    HealthCheck,
    TextExtractionRequest,
)
from app.services.comparator import OrderComparator
from app.services.extractor import FieldExtractor
from app.services.llm_service import StructuredLLMService, create_llm_service
from app.services.pdf_processor import PDFProcessor

logger = get_logger(__name__)
router = APIRouter()


def get_pdf_processor(settings: Settings = Depends(get_settings)) -> PDFProcessor:
    return PDFProcessor(settings)


def get_llm_service(settings: Settings = Depends(get_settings)) -> StructuredLLMService:
    return create_llm_service(settings)


def get_field_extractor(
    llm: StructuredLLMService = Depends(get_llm_service),
    settings: Settings = Depends(get_settings)
) -> FieldExtractor:
    return FieldExtractor(llm, settings)


def get_order_comparator(
    llm: StructuredLLMService = Depends(get_llm_service),
    settings: Settings = Depends(get_settings)
) -> OrderComparator:
    return OrderComparator(llm, settings)


@router.post(
    "/process-pdf",
    response_model=ConversionResponse,
    response_model_exclude_none=True
)
async def process_pdf(
    pdf: Optional[UploadFile] = File(default=None, description="PDF to convert"),
    processor: PDFProcessor = Depends(get_pdf_processor)
):
    """
    Convert an uploaded PDF into one JPEG image per page.

    Args:
        pdf: The PDF file

    Returns:
        Pages numbered from 1, in source order
    """
    content = await pdf.read() if pdf is not None else None
    file_name = pdf.filename if pdf is not None else None

    logger.info(
        "process_pdf_request_received",
        file_name=file_name,
        size_bytes=len(content) if content else 0
    )

    return await processor.convert(
        file_name,
        content,
        pdf.content_type if pdf is not None else None
    )


@router.post(
    "/extract-invoice",
    response_model=ExtractionResponse,
    response_model_exclude_none=True
)
async def extract_shipping_order(
    image: Optional[UploadFile] = File(default=None, description="Page image"),
    extractor: FieldExtractor = Depends(get_field_extractor)
):
    """
    Extract shipping order fields from a single page image.

    Args:
        image: JPEG or PNG image of one page

    Returns:
        The extracted shipping order
    """
    content = await image.read() if image is not None else None
    logger.info(
        "extract_shipping_order_request_received",
        file_name=image.filename if image is not None else None
    )

    order = await extractor.extract_shipping_order(
        content,
        image.content_type if image is not None else None
    )

    return ExtractionResponse(
        success=True,
        data=order.model_dump(by_alias=True, exclude_none=True),
        extracted_at=datetime.now(timezone.utc)
    )


@router.post(
    "/extract-croatian-invoice",
    response_model=ExtractionResponse,
    response_model_exclude_none=True
)
async def extract_croatian_invoice(
    request: TextExtractionRequest,
    extractor: FieldExtractor = Depends(get_field_extractor)
):
    """Extract Croatian invoice fields from raw text."""
    logger.info(
        "extract_invoice_request_received",
        text_length=len(request.text) if request.text else 0
    )

    invoice = await extractor.extract_croatian_invoice(request.text)

    return ExtractionResponse(
        success=True,
        data=invoice.model_dump(by_alias=True),
        extracted_at=datetime.now(timezone.utc)
    )


@router.post(
    "/compare-orders",
    response_model=ComparisonResponse,
    response_model_exclude_none=True
)
async def compare_orders(
    request: CompareRequest,
    comparator: OrderComparator = Depends(get_order_comparator)
):
    """
    Compare two previously extracted orders.

    Returns:
        Discrepancies, matches, analysis and the manual-review flag
    """
    logger.info("compare_request_received")

    outcome = await comparator.compare(request.order1, request.order2)

    return ComparisonResponse(
        success=True,
        comparison=outcome.comparison,
        needs_manual_review=outcome.needs_manual_review,
        compared_at=outcome.compared_at
    )


@router.get("/health", response_model=HealthCheck)
async def health_check(settings: Settings = Depends(get_settings)):
    """
    Health check endpoint.

    Returns:
        Service health status
    """
    missing = settings.missing_credentials()
    llm_configured = bool(settings.get_llm_api_key())
    conversion_configured = "convertapi_secret" not in missing

    return HealthCheck(
        status="healthy" if not missing else "degraded",
        version=settings.api_version,
        llm_provider=settings.llm_provider,
        llm_configured=llm_configured,
        conversion_provider=settings.conversion_provider,
        conversion_configured=conversion_configured
    )
