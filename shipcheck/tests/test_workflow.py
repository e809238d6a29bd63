"""
Tests for the workflow controller, its sessions and the API client.
"""

import asyncio
import base64
from datetime import datetime, timezone
from typing import Any, Dict, List

import httpx
import pytest
import structlog

from app.api.routes import get_llm_service, get_pdf_processor
from app.core.config import get_settings
from app.main import app
from app.models.comparison import ComparisonResponse
from app.models.documents import ConversionResponse, ExtractionResponse, PageImage
from app.services.pdf_processor import PDFProcessor
from app.workflow import (
    BackendError,
    ComparisonState,
    InvalidTransitionError,
    SessionState,
    ShipCheckClient,
    WorkflowController,
)
from app.workflow.client import decode_data_url
from conftest import COMPARISON, SHIPPING_ORDER, FakeLLM, convertapi_handler, make_pdf

PDF = b"%PDF-1.7 stand-in"


def page(number: int) -> PageImage:
    data = base64.b64encode(f"page-{number}".encode()).decode()
    return PageImage(page_number=number, image_data_url=f"data:image/jpeg;base64,{data}")


class FakeBackend:
    """Scripted stand-in for ShipCheckClient."""

    def __init__(self, page_count: int = 3):
        self.page_count = page_count
        self.conversion_error = None
        self.failing_pages = set()
        self.unreachable_pages = set()
        self.page_errors: Dict[int, Exception] = {}
        self.comparisons: List[Any] = []
        self.calls: List[tuple] = []

    async def convert_pdf(self, file_name, content, content_type="application/pdf"):
        self.calls.append(("convert", file_name))
        if self.conversion_error is not None:
            raise self.conversion_error
        pages = [page(n) for n in range(1, self.page_count + 1)]
        return ConversionResponse(success=True, total_pages=len(pages), pages=pages)

    async def extract_page(self, page_image: PageImage):
        number = page_image.page_number
        self.calls.append(("extract", number))
        if number in self.page_errors:
            raise self.page_errors[number]
        if number in self.unreachable_pages:
            raise BackendError("connection reset")
        if number in self.failing_pages:
            return ExtractionResponse(success=False, error=f"upstream failed on {number}")
        return ExtractionResponse(
            success=True,
            data=dict(SHIPPING_ORDER, OrderNumber=f"SO-{number}"),
            extracted_at=datetime.now(timezone.utc),
        )

    async def compare_orders(self, order1: Dict[str, Any], order2: Dict[str, Any]):
        self.calls.append(("compare", order1["OrderNumber"], order2["OrderNumber"]))
        response = self.comparisons.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def count(self, kind: str) -> int:
        return sum(1 for call in self.calls if call[0] == kind)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def alerts() -> List[str]:
    return []


@pytest.fixture
def controller(backend, alerts) -> WorkflowController:
    return WorkflowController(backend, alert=alerts.append)


async def extracted(controller: WorkflowController, document_id: str, pages=(1,)):
    await controller.upload(document_id, f"{document_id}.pdf", PDF)
    for number in pages:
        controller.toggle_page(document_id, number)
    return await controller.extract(document_id)


class TestUpload:
    @pytest.mark.asyncio
    async def test_pages_ready_all_unselected(self, controller):
        assert await controller.upload("order1", "a.pdf", PDF) is True

        session = controller.session("order1")
        assert session.state == SessionState.PAGES_READY
        assert [p.page_number for p in session.pages] == [1, 2, 3]
        assert not any(p.selected for p in session.pages)
        assert controller.session("order2").state == SessionState.EMPTY

    @pytest.mark.asyncio
    async def test_rejects_non_pdf(self, controller, backend, alerts):
        assert await controller.upload("order1", "a.png", b"png", "image/png") is False
        assert alerts == ["Please select a valid PDF file"]
        assert backend.calls == []
        assert controller.session("order1").state == SessionState.EMPTY

    @pytest.mark.asyncio
    async def test_conversion_failure_returns_to_empty(self, controller, backend, alerts):
        backend.conversion_error = BackendError("ConvertAPI error: 500")

        assert await controller.upload("order1", "a.pdf", PDF) is False

        session = controller.session("order1")
        assert session.state == SessionState.EMPTY
        assert session.file_name == "a.pdf"
        assert session.pages == []
        assert session.error == "ConvertAPI error: 500"
        assert alerts == ["Error processing PDF. Please try again."]

    @pytest.mark.asyncio
    async def test_unsuccessful_response_is_a_failure(self, controller, alerts):
        class Refusing(FakeBackend):
            async def convert_pdf(self, file_name, content, content_type="application/pdf"):
                return ConversionResponse(success=False, error="File a.pdf is not a PDF")

        controller.backend = Refusing()
        assert await controller.upload("order1", "a.pdf", PDF) is False
        assert controller.session("order1").error == "File a.pdf is not a PDF"

    @pytest.mark.asyncio
    async def test_unexpected_error_returns_to_empty(self, controller, backend, alerts):
        backend.conversion_error = RuntimeError("boom")

        assert await controller.upload("order1", "a.pdf", PDF) is False

        session = controller.session("order1")
        assert session.state == SessionState.EMPTY
        assert session.error == "boom"
        assert alerts == ["Error processing PDF. Please try again."]

        backend.conversion_error = None
        assert await controller.upload("order1", "a.pdf", PDF) is True
        assert session.state == SessionState.PAGES_READY

    @pytest.mark.asyncio
    async def test_cancelled_upload_leaves_uploading(self, controller):
        class Hanging(FakeBackend):
            async def convert_pdf(self, file_name, content, content_type="application/pdf"):
                await asyncio.Event().wait()

        controller.backend = Hanging()
        task = asyncio.create_task(controller.upload("order1", "a.pdf", PDF))
        await asyncio.sleep(0)
        assert controller.session("order1").state == SessionState.UPLOADING

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert controller.session("order1").state == SessionState.EMPTY

    @pytest.mark.asyncio
    async def test_backend_calls_carry_the_document_id(self, controller):
        seen = []

        class Recording(FakeBackend):
            def bound_document(self):
                bound = structlog.contextvars.get_contextvars()
                return bound.get("document_id"), bound.get("file_name")

            async def convert_pdf(self, file_name, content, content_type="application/pdf"):
                seen.append(self.bound_document())
                return await super().convert_pdf(file_name, content, content_type)

            async def extract_page(self, page_image):
                seen.append(self.bound_document())
                return await super().extract_page(page_image)

        controller.backend = Recording()
        await extracted(controller, "order2", pages=(2,))

        assert seen == [("order2", "order2.pdf"), ("order2", "order2.pdf")]
        assert "document_id" not in structlog.contextvars.get_contextvars()

    @pytest.mark.asyncio
    async def test_new_upload_clears_previous_results(self, controller):
        await extracted(controller, "order1")
        assert controller.session("order1").results

        await controller.upload("order1", "b.pdf", PDF)

        session = controller.session("order1")
        assert session.results == []
        assert session.file_name == "b.pdf"
        assert session.state == SessionState.PAGES_READY


class TestSelection:
    @pytest.mark.asyncio
    async def test_toggle_select_all_deselect_all(self, controller, backend):
        await controller.upload("order1", "a.pdf", PDF)

        assert controller.toggle_page("order1", 2) is True
        assert controller.toggle_page("order1", 2) is False
        controller.select_all_pages("order1")
        assert [p.page_number for p in controller.session("order1").selected_pages()] == [1, 2, 3]
        controller.deselect_all_pages("order1")
        assert controller.session("order1").selected_pages() == []

        assert controller.session("order1").state == SessionState.PAGES_READY
        assert backend.count("extract") == 0

    def test_selection_before_upload(self, controller):
        with pytest.raises(InvalidTransitionError):
            controller.toggle_page("order1", 1)

    @pytest.mark.asyncio
    async def test_unknown_page(self, controller):
        await controller.upload("order1", "a.pdf", PDF)
        with pytest.raises(KeyError):
            controller.toggle_page("order1", 9)

    def test_unknown_document(self, controller):
        with pytest.raises(KeyError):
            controller.session("order3")


class TestExtraction:
    @pytest.mark.asyncio
    async def test_partial_failure_is_recorded_per_page(self, controller, backend):
        backend.failing_pages = {3}
        await controller.upload("order1", "a.pdf", PDF)
        controller.toggle_page("order1", 1)
        controller.toggle_page("order1", 3)

        results = await controller.extract("order1")

        assert [r.page_number for r in results] == [1, 3]
        assert [r.success for r in results] == [True, False]
        assert results[1].error == "upstream failed on 3"
        assert [call for call in backend.calls if call[0] == "extract"] == [("extract", 1), ("extract", 3)]

        session = controller.session("order1")
        assert session.state == SessionState.EXTRACTED
        assert session.has_success is True
        assert session.first_success().data["OrderNumber"] == "SO-1"

    @pytest.mark.asyncio
    async def test_unreachable_page_does_not_stop_siblings(self, controller, backend):
        backend.unreachable_pages = {1}
        results = await extracted(controller, "order1", pages=(1, 2))

        assert results[0].success is False
        assert results[0].error == "Failed to process page 1"
        assert results[1].success is True

    @pytest.mark.asyncio
    async def test_unexpected_page_error_does_not_stop_siblings(self, controller, backend):
        backend.page_errors = {1: OSError("disk full")}

        results = await extracted(controller, "order1", pages=(1, 2))

        assert [(r.page_number, r.success) for r in results] == [(1, False), (2, True)]
        assert results[0].error == "Failed to process page 1"
        assert backend.count("extract") == 2

        session = controller.session("order1")
        assert session.state == SessionState.EXTRACTED
        assert session.first_success().data["OrderNumber"] == "SO-2"

    @pytest.mark.asyncio
    async def test_cancelled_extraction_marks_remaining_pages_failed(self, controller):
        class Hanging(FakeBackend):
            async def extract_page(self, page_image):
                if page_image.page_number == 2:
                    await asyncio.Event().wait()
                return await super().extract_page(page_image)

        controller.backend = Hanging()
        await controller.upload("order1", "a.pdf", PDF)
        controller.select_all_pages("order1")

        task = asyncio.create_task(controller.extract("order1"))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        session = controller.session("order1")
        assert session.state == SessionState.EXTRACTED
        assert [(r.page_number, r.success) for r in session.results] == [
            (1, True), (2, False), (3, False)
        ]

    @pytest.mark.asyncio
    async def test_zero_selected_pages_is_rejected(self, controller, backend, alerts):
        await extracted(controller, "order1", pages=(2,))
        before = list(controller.session("order1").results)
        controller.deselect_all_pages("order1")

        assert await controller.extract("order1") is None

        assert alerts == ["Please select at least one page to process"]
        assert backend.count("extract") == 1
        assert controller.session("order1").results == before
        assert controller.session("order1").state == SessionState.EXTRACTED

    @pytest.mark.asyncio
    async def test_extract_before_upload(self, controller, backend, alerts):
        assert await controller.extract("order1") is None
        assert backend.count("extract") == 0
        assert len(alerts) == 1

    @pytest.mark.asyncio
    async def test_rerun_replaces_results(self, controller):
        await extracted(controller, "order1", pages=(1, 2, 3))
        controller.deselect_all_pages("order1")
        controller.toggle_page("order1", 2)

        results = await controller.extract("order1")

        assert [r.page_number for r in controller.session("order1").results] == [2]
        assert results == controller.session("order1").results

    @pytest.mark.asyncio
    async def test_busy_session_refuses_new_work(self, controller, backend, alerts):
        await controller.upload("order1", "a.pdf", PDF)
        controller.select_all_pages("order1")
        controller.session("order1").begin_extraction()

        assert await controller.extract("order1") is None
        assert await controller.upload("order1", "b.pdf", PDF) is False
        assert backend.count("extract") == 0
        assert len(alerts) == 2


class TestComparison:
    @pytest.mark.asyncio
    async def test_rejected_until_both_documents_succeed(self, controller, backend, alerts):
        backend.failing_pages = {1}
        await extracted(controller, "order1", pages=(1,))
        await extracted(controller, "order2", pages=(1,))

        assert controller.can_compare is False
        assert await controller.compare() is None

        assert backend.count("compare") == 0
        assert controller.comparison_state == ComparisonState.IDLE
        assert "successful extractions" in alerts[-1]

    @pytest.mark.asyncio
    async def test_uses_first_success_of_each_document(self, controller, backend):
        backend.failing_pages = {1}
        backend.comparisons = [
            ComparisonResponse(success=True, comparison=COMPARISON, needs_manual_review=False)
        ]
        await extracted(controller, "order1", pages=(1, 2, 3))
        backend.failing_pages = set()
        await extracted(controller, "order2", pages=(3,))

        assert controller.can_compare is True
        result = await controller.compare()

        assert ("compare", "SO-2", "SO-3") in backend.calls
        assert result.success is True
        assert controller.comparison_state == ComparisonState.COMPARED_SUCCESS
        assert controller.comparison_result.comparison.discrepancies[0].field == "TrackingNumber"

    @pytest.mark.asyncio
    async def test_retrigger_replaces_failure(self, controller, backend):
        backend.comparisons = [
            BackendError("connection reset"),
            ComparisonResponse(success=True, comparison=COMPARISON, needs_manual_review=False),
        ]
        await extracted(controller, "order1")
        await extracted(controller, "order2")

        failed = await controller.compare()
        assert failed.success is False
        assert failed.error == "Failed to compare orders. Please try again."
        assert controller.comparison_state == ComparisonState.COMPARED_FAILURE

        result = await controller.compare()
        assert controller.comparison_state == ComparisonState.COMPARED_SUCCESS
        assert controller.comparison_result is result
        assert result.error is None
        assert len(result.comparison.discrepancies) == 1

    @pytest.mark.asyncio
    async def test_unexpected_error_ends_in_failure(self, controller, backend, alerts):
        backend.comparisons = [
            RuntimeError("boom"),
            ComparisonResponse(success=True, comparison=COMPARISON, needs_manual_review=False),
        ]
        await extracted(controller, "order1")
        await extracted(controller, "order2")

        failed = await controller.compare()
        assert failed.error == "Failed to compare orders. Please try again."
        assert controller.comparison_state == ComparisonState.COMPARED_FAILURE
        assert controller.can_compare is True

        result = await controller.compare()
        assert result.success is True
        assert controller.comparison_state == ComparisonState.COMPARED_SUCCESS
        assert alerts == []

    @pytest.mark.asyncio
    async def test_cancelled_comparison_ends_in_failure(self, controller, backend):
        class Hanging(FakeBackend):
            async def compare_orders(self, order1, order2):
                await asyncio.Event().wait()

        await extracted(controller, "order1")
        await extracted(controller, "order2")
        controller.backend = Hanging()

        task = asyncio.create_task(controller.compare())
        await asyncio.sleep(0)
        assert controller.comparison_state == ComparisonState.COMPARING
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert controller.comparison_state == ComparisonState.COMPARED_FAILURE
        assert controller.comparison_result.success is False

    @pytest.mark.asyncio
    async def test_retrigger_replaces_success(self, controller, backend):
        agreeing = dict(COMPARISON, discrepancies=[])
        backend.comparisons = [
            ComparisonResponse(success=True, comparison=COMPARISON, needs_manual_review=False),
            ComparisonResponse(success=True, comparison=agreeing, needs_manual_review=False),
        ]
        await extracted(controller, "order1")
        await extracted(controller, "order2")

        first = await controller.compare()
        assert controller.comparison_state == ComparisonState.COMPARED_SUCCESS
        assert len(first.comparison.discrepancies) == 1

        second = await controller.compare()
        assert controller.comparison_state == ComparisonState.COMPARED_SUCCESS
        assert controller.comparison_result is second
        assert second.comparison.discrepancies == []
        assert backend.count("compare") == 2

    @pytest.mark.asyncio
    async def test_changes_during_comparison_do_not_affect_it(self, controller, alerts):
        class Gated(FakeBackend):
            def __init__(self):
                super().__init__()
                self.release = asyncio.Event()
                self.received = []

            async def compare_orders(self, order1, order2):
                self.received.append((order1, order2))
                await self.release.wait()
                return await super().compare_orders(order1, order2)

        gated = Gated()
        gated.comparisons = [
            ComparisonResponse(success=True, comparison=COMPARISON, needs_manual_review=False)
        ]
        controller.backend = gated
        await extracted(controller, "order1", pages=(1,))
        await extracted(controller, "order2", pages=(2,))

        task = asyncio.create_task(controller.compare())
        await asyncio.sleep(0)
        assert controller.comparison_state == ComparisonState.COMPARING

        controller.session("order1").first_success().data["OrderNumber"] = "EDITED"
        assert await controller.upload("order2", "replacement.pdf", PDF) is True
        assert controller.can_compare is False
        assert await controller.compare() is None

        gated.release.set()
        result = await task

        order1, order2 = gated.received[0]
        assert (order1["OrderNumber"], order2["OrderNumber"]) == ("SO-1", "SO-2")
        assert ("compare", "SO-1", "SO-2") in gated.calls
        assert result.success is True
        assert controller.comparison_result is result
        assert controller.comparison_state == ComparisonState.COMPARED_SUCCESS
        assert controller.session("order2").results == []
        assert alerts == ["A comparison is already running"]

    @pytest.mark.asyncio
    async def test_server_side_failure(self, controller, backend):
        backend.comparisons = [ComparisonResponse(success=False, error="rate limited")]
        await extracted(controller, "order1")
        await extracted(controller, "order2")

        result = await controller.compare()

        assert controller.comparison_state == ComparisonState.COMPARED_FAILURE
        assert result.error == "rate limited"


def test_controller_needs_two_documents(backend):
    with pytest.raises(ValueError):
        WorkflowController(backend, document_ids=("only",))


def test_sessions_keyed_by_custom_ids(backend):
    controller = WorkflowController(backend, document_ids=("carrier", "warehouse"))
    assert set(controller.sessions) == {"carrier", "warehouse"}


def test_decode_data_url():
    assert decode_data_url("data:image/png;base64,aW1n") == (b"img", "image/png")
    with pytest.raises(BackendError):
        decode_data_url("https://example.com/a.jpg")


@pytest.mark.asyncio
async def test_full_workflow_against_the_api(settings):
    fake_llm = FakeLLM(settings, [
        dict(SHIPPING_ORDER),
        ValueError("model overloaded"),
        dict(SHIPPING_ORDER, TrackingNumber="1Z999AA10123456799"),
        COMPARISON,
    ])
    convertapi = httpx.AsyncClient(transport=httpx.MockTransport(convertapi_handler(page_count=3)))
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_llm_service] = lambda: fake_llm
    app.dependency_overrides[get_pdf_processor] = lambda: PDFProcessor(settings, http_client=convertapi)

    alerts: List[str] = []
    transport = httpx.ASGITransport(app=app)
    try:
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as http_client:
            client = ShipCheckClient(http_client=http_client)
            controller = WorkflowController(client, alert=alerts.append)

            assert await controller.upload("order1", "first.pdf", make_pdf(3))
            assert await controller.upload("order2", "second.pdf", make_pdf(3))

            controller.toggle_page("order1", 1)
            controller.toggle_page("order1", 3)
            first = await controller.extract("order1")
            assert [(r.page_number, r.success) for r in first] == [(1, True), (3, False)]

            controller.toggle_page("order2", 2)
            await controller.extract("order2")

            result = await controller.compare()
    finally:
        app.dependency_overrides.clear()

    assert alerts == []
    assert result.success is True
    assert result.needs_manual_review is False
    assert result.comparison.discrepancy_for("TrackingNumber").severity.value == "critical"
    assert controller.comparison_state == ComparisonState.COMPARED_SUCCESS
    assert len(fake_llm.calls) == 4
