"""
PDF Processing Service

This service turns an uploaded PDF into one JPEG image per page:
- Upload validation (type, size, page count)
- Rasterization through ConvertAPI (default) or locally through PyMuPDF
- Page numbering that mirrors the source PDF

A single failure aborts the whole conversion. Nothing is cached; uploading
the same file twice converts it twice.
"""

import asyncio
import base64
from typing import Any, Dict, List, Optional

import fitz  # PyMuPDF
import httpx

from app.core.config import Settings, get_settings
from app.core.errors import ConfigurationError, InputValidationError, UpstreamError
from app.core.logging import get_logger
from app.models.documents import ConversionResponse, PageImage

logger = get_logger(__name__)

PDF_CONTENT_TYPE = "application/pdf"
PDF_MAGIC = b"%PDF"


class UpstreamConversionError(UpstreamError):
    """Raised when a PDF cannot be converted into page images."""

    pass


class InvalidDocumentError(UpstreamConversionError, InputValidationError):
    """Raised when the upload is missing or is not a usable PDF."""

    status_code = 400


def to_data_url(image: bytes, mime_type: str = "image/jpeg") -> str:
    """Encode raw image bytes as a base64 data URL."""
    return f"data:{mime_type};base64,{base64.b64encode(image).decode('ascii')}"


class PDFProcessor:
    """
    Service for converting PDF documents into page images.

    Attributes:
        settings: Application settings
        http_client: Optional shared client for ConvertAPI calls
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        """
        Initialize the PDF processor with configuration.

        Raises:
            ConfigurationError: If ConvertAPI is selected but no secret is set
        """
        self.settings = settings or get_settings()
        self.http_client = http_client

        if self.settings.conversion_provider == "convertapi" and not self.settings.convertapi_secret:
            raise ConfigurationError("ConvertAPI secret is not configured")

        logger.debug(
            "pdf_processor_initialized",
            provider=self.settings.conversion_provider,
            dpi=self.settings.pdf_dpi
        )

    def validate_pdf(
        self,
        file_name: Optional[str],
        content: Optional[bytes],
        content_type: Optional[str] = None
    ) -> int:
        """
        Validate that an upload is a usable PDF.

        Args:
            file_name: Original file name
            content: Raw file bytes
            content_type: MIME type declared by the client

        Returns:
            Number of pages in the PDF

        Raises:
            InvalidDocumentError: If the file is missing or invalid
        """
        if not content:
            raise InvalidDocumentError("No PDF file provided")

        declared_pdf = content_type == PDF_CONTENT_TYPE or (
            file_name is not None and file_name.lower().endswith(".pdf")
        )
        if not declared_pdf or not content.startswith(PDF_MAGIC):
            raise InvalidDocumentError(f"File {file_name or '<unnamed>'} is not a PDF")

        if len(content) < self.settings.min_file_size_bytes:
            raise InvalidDocumentError(f"File too small: {len(content)} bytes")

        if len(content) > self.settings.max_file_size_bytes:
            raise InvalidDocumentError(
                f"File too large: {len(content)} bytes "
                f"(max: {self.settings.max_file_size_bytes})"
            )

        try:
            with fitz.open(stream=content, filetype="pdf") as doc:
                page_count = doc.page_count
        except Exception as e:
            raise InvalidDocumentError(f"Invalid PDF file: {e}") from e

        if page_count == 0:
            raise InvalidDocumentError("PDF has no pages")
        if page_count > self.settings.pdf_max_pages:
            raise InvalidDocumentError(
                f"PDF has too many pages: {page_count} "
                f"(max: {self.settings.pdf_max_pages})"
            )

        logger.info("pdf_validated", file_name=file_name, pages=page_count)
        return page_count

    async def convert(
        self,
        file_name: Optional[str],
        content: Optional[bytes],
        content_type: Optional[str] = None
    ) -> ConversionResponse:
        """
        Convert a PDF into one image per page.

        Args:
            file_name: Original file name
            content: Raw file bytes
            content_type: MIME type declared by the client

        Returns:
            ConversionResponse with pages numbered 1..N

        Raises:
            InvalidDocumentError: If the upload is not a usable PDF
            UpstreamConversionError: If rasterization fails
        """
        page_count = self.validate_pdf(file_name, content, content_type)

        logger.info(
            "pdf_conversion_started",
            file_name=file_name,
            provider=self.settings.conversion_provider,
            pages=page_count
        )

        if self.settings.conversion_provider == "pymupdf":
            pages = await asyncio.to_thread(self._render_locally, content)
            cost = None
        else:
            pages, cost = await self._convert_with_convertapi(file_name or "document.pdf", content)

        if len(pages) != page_count:
            raise UpstreamConversionError(
                f"Converter returned {len(pages)} pages for a {page_count}-page PDF"
            )

        logger.info(
            "pdf_conversion_completed",
            file_name=file_name,
            pages=len(pages),
            conversion_cost=cost
        )

        return ConversionResponse(
            success=True,
            total_pages=len(pages),
            pages=pages,
            conversion_cost=cost
        )

    async def _convert_with_convertapi(self, file_name: str, content: bytes):
        """POST the PDF to ConvertAPI and map its Files list to pages."""
        url = f"{self.settings.convertapi_base_url.rstrip('/')}/convert/pdf/to/jpg"
        headers = {"Authorization": f"Bearer {self.settings.convertapi_secret}"}
        files = {"File": (file_name, content, PDF_CONTENT_TYPE)}

        try:
            if self.http_client is not None:
                response = await self.http_client.post(url, headers=headers, files=files)
            else:
                async with httpx.AsyncClient(timeout=self.settings.conversion_timeout) as client:
                    response = await client.post(url, headers=headers, files=files)
        except httpx.HTTPError as e:
            logger.error("convertapi_request_failed", file_name=file_name, error=str(e))
            raise UpstreamConversionError(f"ConvertAPI request failed: {e}") from e

        if not response.is_success:
            logger.error(
                "convertapi_error_status",
                file_name=file_name,
                status=response.status_code
            )
            raise UpstreamConversionError(
                f"ConvertAPI error: {response.status_code} {response.reason_phrase}"
            )

        try:
            result: Dict[str, Any] = response.json()
        except ValueError as e:
            raise UpstreamConversionError("Invalid response from ConvertAPI") from e

        files_info = result.get("Files") if isinstance(result, dict) else None
        if not isinstance(files_info, list):
            raise UpstreamConversionError("Invalid response from ConvertAPI")

        pages: List[PageImage] = []
        for index, file_info in enumerate(files_info):
            if not isinstance(file_info, dict) or not file_info.get("FileData"):
                raise UpstreamConversionError(
                    f"ConvertAPI returned no image data for page {index + 1}"
                )
            pages.append(
                PageImage(
                    page_number=index + 1,
                    image_data_url=f"data:image/jpeg;base64,{file_info['FileData']}",
                    width=self.settings.nominal_page_width,
                    height=self.settings.nominal_page_height,
                    file_name=file_info.get("FileName"),
                    file_ext=file_info.get("FileExt"),
                    file_size=file_info.get("FileSize"),
                )
            )

        return pages, result.get("ConversionCost")

    def _render_locally(self, content: bytes) -> List[PageImage]:
        """Render every page to JPEG with PyMuPDF."""
        pages: List[PageImage] = []
        try:
            with fitz.open(stream=content, filetype="pdf") as doc:
                for page in doc:
                    pix = page.get_pixmap(dpi=self.settings.pdf_dpi)
                    image = pix.tobytes("jpg")
                    pages.append(
                        PageImage(
                            page_number=page.number + 1,
                            image_data_url=to_data_url(image),
                            width=pix.width,
                            height=pix.height,
                            file_name=f"page-{page.number + 1}.jpg",
                            file_ext="jpg",
                            file_size=len(image),
                        )
                    )
        except Exception as e:
            logger.error("local_render_failed", error=str(e), exc_info=True)
            raise UpstreamConversionError(f"Failed to render PDF pages: {e}") from e

        return pages
