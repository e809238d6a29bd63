"""
Per-document workflow state.

A DocumentSession moves through

    empty -> uploading -> pages_ready -> extracting -> extracted

and only its transition methods change ``state``. Selection flags are the
only thing that may change on pages once they are loaded.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from app.models.documents import ExtractionResponse, PageImage


class SessionState(str, Enum):
    EMPTY = "empty"
    UPLOADING = "uploading"
    PAGES_READY = "pages_ready"
    EXTRACTING = "extracting"
    EXTRACTED = "extracted"


class ComparisonState(str, Enum):
    IDLE = "idle"
    COMPARING = "comparing"
    COMPARED_SUCCESS = "compared_success"
    COMPARED_FAILURE = "compared_failure"


class InvalidTransitionError(RuntimeError):
    """Raised when a session is asked to make a transition its state forbids."""

    def __init__(self, document_id: str, state: SessionState, action: str):
        super().__init__(f"Cannot {action} document {document_id!r} while {state.value}")
        self.document_id = document_id
        self.state = state
        self.action = action


@dataclass
class PageSelection:
    """A converted page plus the user's selection flag."""

    page: PageImage
    selected: bool = False

    @property
    def page_number(self) -> int:
        return self.page.page_number


@dataclass(frozen=True)
class ExtractionOutcome:
    """Success or failure of extracting one page, tagged with its page number."""

    page_number: int
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    extracted_at: Optional[datetime] = None

    @classmethod
    def from_response(cls, page_number: int, response: ExtractionResponse) -> "ExtractionOutcome":
        if response.success and response.data is not None:
            return cls(
                page_number=page_number,
                success=True,
                data=response.data,
                extracted_at=response.extracted_at,
            )
        return cls.failed(page_number, response.error or f"Failed to process page {page_number}")

    @classmethod
    def failed(cls, page_number: int, error: str) -> "ExtractionOutcome":
        return cls(page_number=page_number, success=False, error=error)


@dataclass
class DocumentSession:
    """Everything the workflow knows about one uploaded PDF."""

    document_id: str
    file_name: Optional[str] = None
    content: Optional[bytes] = None
    state: SessionState = SessionState.EMPTY
    pages: List[PageSelection] = field(default_factory=list)
    results: List[ExtractionOutcome] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def loading(self) -> bool:
        return self.state == SessionState.UPLOADING

    @property
    def processing(self) -> bool:
        return self.state == SessionState.EXTRACTING

    @property
    def has_pages(self) -> bool:
        return self.state in (SessionState.PAGES_READY, SessionState.EXTRACTING, SessionState.EXTRACTED)

    @property
    def has_success(self) -> bool:
        return any(result.success for result in self.results)

    @property
    def ready_for_comparison(self) -> bool:
        return self.state == SessionState.EXTRACTED and self.has_success

    def selected_pages(self) -> List[PageSelection]:
        return [page for page in self.pages if page.selected]

    def first_success(self) -> Optional[ExtractionOutcome]:
        return next((result for result in self.results if result.success), None)

    # Transitions

    def begin_upload(self, file_name: Optional[str], content: bytes) -> None:
        if self.state in (SessionState.UPLOADING, SessionState.EXTRACTING):
            raise InvalidTransitionError(self.document_id, self.state, "upload")
        self.file_name = file_name
        self.content = content
        self.pages = []
        self.results = []
        self.error = None
        self.state = SessionState.UPLOADING

    def finish_upload(self, pages: List[PageImage]) -> None:
        if self.state != SessionState.UPLOADING:
            raise InvalidTransitionError(self.document_id, self.state, "finish upload")
        ordered = sorted(pages, key=lambda page: page.page_number)
        numbers = [page.page_number for page in ordered]
        if numbers != list(range(1, len(ordered) + 1)):
            raise ValueError(f"Page numbers must run 1..N without gaps, got {numbers}")
        self.pages = [PageSelection(page=page) for page in ordered]
        self.state = SessionState.PAGES_READY

    def fail_upload(self, error: str) -> None:
        """Back to empty; the file reference is kept so the user can retry."""
        if self.state != SessionState.UPLOADING:
            raise InvalidTransitionError(self.document_id, self.state, "fail upload")
        self.pages = []
        self.error = error
        self.state = SessionState.EMPTY

    def begin_extraction(self) -> List[PageSelection]:
        if self.state not in (SessionState.PAGES_READY, SessionState.EXTRACTED):
            raise InvalidTransitionError(self.document_id, self.state, "extract")
        self.error = None
        self.state = SessionState.EXTRACTING
        return self.selected_pages()

    def finish_extraction(self, results: List[ExtractionOutcome]) -> None:
        if self.state != SessionState.EXTRACTING:
            raise InvalidTransitionError(self.document_id, self.state, "finish extraction")
        self.results = list(results)
        self.state = SessionState.EXTRACTED

    # Selection

    def set_selected(self, page_number: int, selected: Optional[bool] = None) -> bool:
        """Set (or toggle, when ``selected`` is None) one page's flag."""
        if not self.has_pages:
            raise InvalidTransitionError(self.document_id, self.state, "select pages")
        for page in self.pages:
            if page.page_number == page_number:
                page.selected = (not page.selected) if selected is None else selected
                return page.selected
        raise KeyError(f"Document {self.document_id!r} has no page {page_number}")

    def select_all(self, selected: bool = True) -> None:
        if not self.has_pages:
            raise InvalidTransitionError(self.document_id, self.state, "select pages")
        for page in self.pages:
            page.selected = selected
