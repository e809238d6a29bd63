"""
Async HTTP client for the Shipping Order Comparator API.

This is the caller side of the workflow: it uploads PDFs, submits page
images one at a time and requests comparisons, returning the API's
response models.
"""

import base64
import binascii
from typing import Any, Dict, Optional, Tuple, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from app.core.logging import get_logger
from app.models.comparison import ComparisonResponse
from app.models.documents import ConversionResponse, ExtractionResponse, PageImage

logger = get_logger(__name__)

ResponseT = TypeVar("ResponseT", bound=BaseModel)


class BackendError(Exception):
    """Raised when the API cannot be reached or answers with something unreadable."""

    pass


def decode_data_url(data_url: str) -> Tuple[bytes, str]:
    """
    Split a base64 data URL into raw bytes and its MIME type.

    Raises:
        BackendError: If the URL is not a base64 data URL
    """
    header, sep, payload = data_url.partition(",")
    if not sep or not header.startswith("data:") or not header.endswith(";base64"):
        raise BackendError("Page image is not a base64 data URL")
    mime_type = header[len("data:"):-len(";base64")] or "image/jpeg"
    try:
        return base64.b64decode(payload, validate=True), mime_type
    except binascii.Error as e:
        raise BackendError(f"Page image is not valid base64: {e}") from e


class ShipCheckClient:
    """Thin wrapper over the three workflow endpoints."""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        api_prefix: str = "/api/v1",
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 300.0
    ):
        self.api_prefix = api_prefix.rstrip("/")
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()

    async def __aenter__(self) -> "ShipCheckClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _post(self, path: str, response_model: Type[ResponseT], **kwargs: Any) -> ResponseT:
        url = f"{self.api_prefix}{path}"
        try:
            response = await self.http_client.post(url, **kwargs)
        except httpx.HTTPError as e:
            logger.error("api_request_failed", url=url, error=str(e))
            raise BackendError(f"Request to {url} failed: {e}") from e

        try:
            return response_model.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.error("api_response_unreadable", url=url, status=response.status_code)
            raise BackendError(f"Unexpected response from {url} ({response.status_code})") from e

    async def convert_pdf(
        self,
        file_name: Optional[str],
        content: bytes,
        content_type: str = "application/pdf"
    ) -> ConversionResponse:
        return await self._post(
            "/process-pdf",
            ConversionResponse,
            files={"pdf": (file_name or "document.pdf", content, content_type)},
        )

    async def extract_page(self, page: PageImage) -> ExtractionResponse:
        image, mime_type = decode_data_url(page.image_data_url)
        extension = "png" if mime_type == "image/png" else "jpg"
        return await self._post(
            "/extract-invoice",
            ExtractionResponse,
            files={"image": (f"page-{page.page_number}.{extension}", image, mime_type)},
        )

    async def compare_orders(
        self,
        order1: Dict[str, Any],
        order2: Dict[str, Any]
    ) -> ComparisonResponse:
        return await self._post(
            "/compare-orders",
            ComparisonResponse,
            json={"order1": order1, "order2": order2},
        )
