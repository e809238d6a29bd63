"""
Workflow Controller

Drives upload -> convert -> page selection -> extraction -> comparison for
a set of documents keyed by id. Each document is an independent
DocumentSession; comparison has its own state and reads a snapshot of the
first successful extraction of each document.

Rejected actions (nothing selected, operation already running, no
successful extraction yet) never reach the backend; they are reported
through the ``alert`` callable and leave all state untouched.
"""

import copy
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol

from app.core.logging import document_context, get_logger
from app.models.comparison import ComparisonResponse
from app.models.documents import ConversionResponse, ExtractionResponse, PageImage
from app.workflow.client import BackendError
from app.workflow.session import (
    ComparisonState,
    DocumentSession,
    ExtractionOutcome,
    SessionState,
)

logger = get_logger(__name__)

PDF_CONTENT_TYPE = "application/pdf"
DEFAULT_DOCUMENT_IDS = ("order1", "order2")

INVALID_FILE_MESSAGE = "Please select a valid PDF file"
CONVERSION_FAILED_MESSAGE = "Error processing PDF. Please try again."
NO_PAGES_MESSAGE = "Please upload a PDF and wait for its pages before extracting"
NO_SELECTION_MESSAGE = "Please select at least one page to process"
NOT_READY_MESSAGE = (
    "Please ensure both PDFs have been processed and have successful "
    "extractions before comparing."
)
COMPARISON_FAILED_MESSAGE = "Failed to compare orders. Please try again."


class WorkflowBackend(Protocol):
    """What the controller needs from the service; ShipCheckClient implements it."""

    async def convert_pdf(
        self, file_name: Optional[str], content: bytes, content_type: str = ...
    ) -> ConversionResponse: ...

    async def extract_page(self, page: PageImage) -> ExtractionResponse: ...

    async def compare_orders(
        self, order1: Dict[str, Any], order2: Dict[str, Any]
    ) -> ComparisonResponse: ...


def _log_alert(message: str) -> None:
    logger.warning("workflow_alert", message=message)


class WorkflowController:
    """
    Client-side state machine for comparing two shipping orders.

    Attributes:
        sessions: Document sessions keyed by document id
        comparison_state: State of the cross-document comparison
        comparison_result: Latest comparison outcome, replaced on each run
    """

    def __init__(
        self,
        backend: WorkflowBackend,
        document_ids: Iterable[str] = DEFAULT_DOCUMENT_IDS,
        alert: Optional[Callable[[str], None]] = None
    ):
        self.backend = backend
        self.sessions: Dict[str, DocumentSession] = {
            document_id: DocumentSession(document_id) for document_id in document_ids
        }
        if len(self.sessions) != 2:
            raise ValueError("A comparison workflow needs exactly two distinct document ids")
        self.comparison_state = ComparisonState.IDLE
        self.comparison_result: Optional[ComparisonResponse] = None
        self.alert = alert or _log_alert

    def session(self, document_id: str) -> DocumentSession:
        try:
            return self.sessions[document_id]
        except KeyError:
            raise KeyError(f"Unknown document {document_id!r}") from None

    async def upload(
        self,
        document_id: str,
        file_name: Optional[str],
        content: Optional[bytes],
        content_type: Optional[str] = PDF_CONTENT_TYPE
    ) -> bool:
        """
        Select a file for a document and convert it into pages.

        Any failure, including one the backend did not anticipate, sends the
        document back to ``empty`` with the file retained.

        Returns:
            True when the document reached ``pages_ready``
        """
        session = self.session(document_id)

        if not content or content_type != PDF_CONTENT_TYPE:
            self.alert(INVALID_FILE_MESSAGE)
            return False

        if session.state in (SessionState.UPLOADING, SessionState.EXTRACTING):
            self.alert(f"{document_id} is busy ({session.state.value}); wait for it to finish")
            return False

        with document_context(document_id, file_name):
            session.begin_upload(file_name, content)
            logger.info("document_upload_started")

            try:
                response = await self.backend.convert_pdf(file_name, content, content_type)
                if not response.success:
                    raise BackendError(response.error or "Failed to process PDF")
                session.finish_upload(response.pages)
            except Exception as e:
                logger.error(
                    "document_upload_failed",
                    error=str(e),
                    exc_info=not isinstance(e, BackendError)
                )
                session.fail_upload(str(e))
                self.alert(CONVERSION_FAILED_MESSAGE)
                return False
            finally:
                if session.state == SessionState.UPLOADING:
                    session.fail_upload("Upload interrupted")

            logger.info("document_pages_ready", pages=len(session.pages))
        return True

    def toggle_page(self, document_id: str, page_number: int) -> bool:
        """Flip one page's selection flag and return the new value."""
        return self.session(document_id).set_selected(page_number)

    def select_all_pages(self, document_id: str) -> None:
        self.session(document_id).select_all(True)

    def deselect_all_pages(self, document_id: str) -> None:
        self.session(document_id).select_all(False)

    async def extract(self, document_id: str) -> Optional[List[ExtractionOutcome]]:
        """
        Extract every selected page of a document, one page at a time.

        Each page's outcome is recorded whether it succeeds or fails; the
        document's previous results are replaced once all pages are done.

        Returns:
            The new results, or None when the request was rejected
        """
        session = self.session(document_id)

        if session.state == SessionState.EXTRACTING:
            self.alert(f"{document_id} is already being processed")
            return None
        if session.state not in (SessionState.PAGES_READY, SessionState.EXTRACTED):
            self.alert(NO_PAGES_MESSAGE)
            return None
        if not session.selected_pages():
            self.alert(NO_SELECTION_MESSAGE)
            return None

        with document_context(document_id, session.file_name):
            selected = session.begin_extraction()
            logger.info(
                "document_extraction_started",
                pages=[page.page_number for page in selected]
            )

            results: List[ExtractionOutcome] = []
            try:
                for selection in selected:
                    results.append(await self._extract_page(selection.page))
            finally:
                # Pages never attempted (the run was cancelled) count as failed.
                for selection in selected[len(results):]:
                    results.append(ExtractionOutcome.failed(
                        selection.page_number,
                        f"Failed to process page {selection.page_number}"
                    ))
                session.finish_extraction(results)

            logger.info(
                "document_extraction_completed",
                succeeded=sum(1 for result in results if result.success),
                failed=sum(1 for result in results if not result.success)
            )
        return results

    async def _extract_page(self, page: PageImage) -> ExtractionOutcome:
        page_number = page.page_number
        try:
            response = await self.backend.extract_page(page)
            return ExtractionOutcome.from_response(page_number, response)
        except Exception as e:
            logger.warning(
                "page_extraction_failed",
                page_number=page_number,
                error=str(e),
                exc_info=not isinstance(e, BackendError)
            )
            return ExtractionOutcome.failed(page_number, f"Failed to process page {page_number}")

    @property
    def can_compare(self) -> bool:
        return self.comparison_state != ComparisonState.COMPARING and all(
            session.ready_for_comparison for session in self.sessions.values()
        )

    async def compare(self) -> Optional[ComparisonResponse]:
        """
        Compare the first successful extraction of each document.

        The two orders are copied when the comparison starts; uploads or
        extractions that finish while it is running do not change what is
        compared.

        Returns:
            The new comparison result, or None when the request was rejected
        """
        if self.comparison_state == ComparisonState.COMPARING:
            self.alert("A comparison is already running")
            return None

        first, second = self.sessions.values()
        if not (first.ready_for_comparison and second.ready_for_comparison):
            self.alert(NOT_READY_MESSAGE)
            return None

        # TODO: reconcile multiple successful pages per document instead of taking the first.
        order1 = copy.deepcopy(first.first_success().data)
        order2 = copy.deepcopy(second.first_success().data)

        self.comparison_state = ComparisonState.COMPARING
        self.comparison_result = None
        logger.info(
            "comparison_started",
            order1=first.document_id,
            order2=second.document_id
        )

        result = ComparisonResponse(success=False, error=COMPARISON_FAILED_MESSAGE)
        try:
            result = await self.backend.compare_orders(order1, order2)
        except Exception as e:
            logger.error(
                "comparison_request_failed",
                error=str(e),
                exc_info=not isinstance(e, BackendError)
            )
        finally:
            self.comparison_result = result
            self.comparison_state = (
                ComparisonState.COMPARED_SUCCESS if result.success else ComparisonState.COMPARED_FAILURE
            )

        logger.info(
            "comparison_finished",
            state=self.comparison_state.value,
            needs_manual_review=result.needs_manual_review
        )
        return result
