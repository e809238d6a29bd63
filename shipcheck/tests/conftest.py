"""
Shared fixtures: settings, in-memory PDFs, a fake LLM and a fake ConvertAPI.
"""

import base64
import os
from typing import Any, Callable, Dict, List, Optional

# Credentials must exist before the application module is imported.
os.environ.setdefault("OPENAI_API_KEY", "test-openai-key")
os.environ.setdefault("CONVERTAPI_SECRET", "test-convertapi-secret")
os.environ.setdefault("LOG_FORMAT", "text")

import fitz  # PyMuPDF
import httpx
import pytest

from app.core.config import Settings
from app.services.llm_service import StructuredLLMService


SHIPPING_ORDER = {
    "OrderNumber": "SO-1001",
    "ShipDate": "2024-03-01",
    "TrackingNumber": "1Z999AA10123456784",
    "Carrier": "UPS",
    "ShippingMethod": "Ground",
    "SenderName": "Acme Corp",
    "SenderAddress": "1 Factory Rd",
    "SenderCity": "Springfield",
    "SenderState": "IL",
    "SenderZip": "62701",
    "RecipientName": "Jane Doe",
    "RecipientAddress": "123 Main St",
    "RecipientCity": "Portland",
    "RecipientState": "OR",
    "RecipientZip": "97201",
    "Items": [{"description": "Widget", "quantity": "4"}],
}

COMPARISON = {
    "discrepancies": [
        {
            "field": "TrackingNumber",
            "order1_value": "1Z999AA10123456784",
            "order2_value": "1Z999AA10123456799",
            "severity": "critical",
            "description": "Tracking numbers differ",
        }
    ],
    "matches": [
        {"field": "RecipientAddress", "value": "123 Main St", "confidence": 0.97}
    ],
    "analysis": {
        "overall_confidence": 0.92,
        "comparison_quality": "good",
        "potential_issues": [],
        "recommendation": "Confirm the tracking number with the carrier",
    },
    "summary": "Orders agree except for the tracking number",
}


def make_pdf(page_count: int = 1) -> bytes:
    """Build a real PDF with ``page_count`` text pages."""
    doc = fitz.open()
    for index in range(page_count):
        page = doc.new_page(width=300, height=400)
        page.insert_text((30, 50), f"Shipping order page {index + 1}")
    data = doc.tobytes()
    doc.close()
    return data


def convertapi_handler(
    page_count: Optional[int] = None,
    status_code: int = 200,
    body: Optional[Dict[str, Any]] = None,
    seen: Optional[List[httpx.Request]] = None,
) -> Callable[[httpx.Request], httpx.Response]:
    """MockTransport handler imitating ConvertAPI's pdf-to-jpg endpoint."""

    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        if body is not None or status_code != 200:
            return httpx.Response(status_code, json=body if body is not None else {"Message": "error"})
        files = [
            {
                "FileName": f"document-{n}.jpg",
                "FileExt": "jpg",
                "FileSize": 10 + n,
                "FileData": base64.b64encode(f"jpeg-page-{n}".encode()).decode(),
            }
            for n in range(1, (page_count or 0) + 1)
        ]
        return httpx.Response(200, json={"ConversionCost": 1, "Files": files})

    return handler


class FakeLLM(StructuredLLMService):
    """Returns queued payloads in order; a queued exception is raised instead."""

    provider = "fake"

    def __init__(self, settings: Settings, responses: Optional[List[Any]] = None):
        super().__init__(settings)
        self.responses = list(responses or [])
        self.calls: List[Dict[str, Any]] = []

    async def _invoke(self, prompt, output_model, model, max_tokens):
        self.calls.append({
            "prompt": prompt,
            "output_model": output_model,
            "model": model,
            "max_tokens": max_tokens,
        })
        if not self.responses:
            raise ValueError("no response queued")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        openai_api_key="test-openai-key",
        convertapi_secret="test-convertapi-secret",
        convertapi_base_url="https://convertapi.test",
    )


@pytest.fixture
def shipping_order() -> Dict[str, Any]:
    return dict(SHIPPING_ORDER)


@pytest.fixture
def comparison_payload() -> Dict[str, Any]:
    return dict(COMPARISON)
