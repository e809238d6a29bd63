"""
Client-side workflow for comparing two shipping-order PDFs.
"""

from app.workflow.client import BackendError, ShipCheckClient
from app.workflow.controller import WorkflowBackend, WorkflowController
from app.workflow.session import (
    ComparisonState,
    DocumentSession,
    ExtractionOutcome,
    InvalidTransitionError,
    PageSelection,
    SessionState,
)

__all__ = [
    "BackendError",
    "ComparisonState",
    "DocumentSession",
    "ExtractionOutcome",
    "InvalidTransitionError",
    "PageSelection",
    "SessionState",
    "ShipCheckClient",
    "WorkflowBackend",
    "WorkflowController",
]
