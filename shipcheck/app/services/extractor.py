"""
Field extraction from page images and raw text.

The target schema is chosen by the caller (one method per schema), never
by inspecting the content. Beyond schema validation the extracted record
is trusted as returned.
"""

from typing import Optional

from app.core.config import Settings, get_settings
from app.core.errors import InputValidationError, UpstreamError
from app.core.logging import get_logger
from app.models.orders import CroatianInvoice, ShippingOrder
from app.services.llm_service import LLMServiceError, StructuredLLMService, StructuredPrompt

logger = get_logger(__name__)


SHIPPING_ORDER_PROMPT = (
    "Extract the shipping order details from this image. "
    "This appears to be a shipping order, shipping label, or delivery document. "
    "Extract all available information including sender details, recipient details, "
    "shipping information, tracking numbers, dates, costs, and any items listed. "
    "If any field is not available or visible in the image, leave it empty. "
    "For addresses, extract the complete address including street, city, state, and ZIP code. "
    "Be very careful to extract the correct information and match it to the right fields. "
    "Pay special attention to tracking numbers, order numbers, and shipping dates."
)

CROATIAN_INVOICE_PROMPT = (
    "Extract the Croatian invoice details from this text. "
    "This appears to be a Croatian invoice or billing document. "
    "Extract all available information including invoice details, seller information, "
    "buyer information, item details, payment information, and totals. "
    "If any field is not available in the text, leave it empty. "
    "Pay special attention to Croatian-specific fields like OIB numbers, IBAN, "
    "and Croatian language terms. Here is the text content:\n\n"
)


class ExtractionError(UpstreamError):
    """Raised when the model provider cannot produce a record."""

    pass


class MissingPayloadError(ExtractionError, InputValidationError):
    """Raised when there is no image or text to extract from."""

    status_code = 400


class FieldExtractor:
    """Extracts structured records through a StructuredLLMService."""

    def __init__(self, llm: StructuredLLMService, settings: Optional[Settings] = None):
        self.llm = llm
        self.settings = settings or get_settings()

    async def extract_shipping_order(
        self,
        image: Optional[bytes],
        content_type: Optional[str] = None
    ) -> ShippingOrder:
        """
        Extract a shipping order from one page image.

        Args:
            image: Raw image bytes
            content_type: Image MIME type, JPEG when unknown

        Returns:
            ShippingOrder: The extracted record

        Raises:
            MissingPayloadError: If no image was supplied
            ExtractionError: If the model call fails
        """
        if not image:
            raise MissingPayloadError("No image file provided")

        mime_type = content_type if content_type and content_type.startswith("image/") else "image/jpeg"
        prompt = StructuredPrompt(text=SHIPPING_ORDER_PROMPT, image=image, image_mime_type=mime_type)

        try:
            order = await self.llm.generate(
                prompt,
                ShippingOrder,
                model=self.settings.extraction_model,
                max_tokens=self.settings.extraction_max_tokens
            )
        except LLMServiceError as e:
            logger.error("shipping_order_extraction_failed", error=str(e))
            raise ExtractionError(str(e)) from e

        logger.info(
            "shipping_order_extracted",
            order_number=order.order_number,
            items=len(order.items or [])
        )
        return order

    async def extract_croatian_invoice(self, text: Optional[str]) -> CroatianInvoice:
        """Extract a Croatian invoice from raw document text."""
        if not text or not isinstance(text, str) or not text.strip():
            raise MissingPayloadError("No text input provided")

        try:
            invoice = await self.llm.generate(
                StructuredPrompt(text=CROATIAN_INVOICE_PROMPT + text),
                CroatianInvoice,
                model=self.settings.invoice_model,
                max_tokens=self.settings.extraction_max_tokens
            )
        except LLMServiceError as e:
            logger.error("invoice_extraction_failed", error=str(e))
            raise ExtractionError(str(e)) from e

        logger.info("invoice_extracted", invoice_number=invoice.invoice_number)
        return invoice
