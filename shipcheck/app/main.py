"""
Shipping Order Comparator - Main Application

FastAPI application that converts shipping-order PDFs to page images,
extracts structured fields with an LLM and compares two orders.
"""

import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.api.routes import router as api_router
from app.core.config import get_settings
from app.core.errors import ShipCheckError
from app.core.logging import bind_request_context, configure_logging, get_logger

# Configure logging
configure_logging()
logger = get_logger(__name__)

# Get settings
settings = get_settings()


REQUEST_ID_HEADER = "X-Request-ID"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind a request id to every log entry written while serving a request."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        bind_request_context(request_id, request.method, request.url.path)
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def describe_validation_error(exc: RequestValidationError) -> str:
    """Flatten FastAPI's validation details into one readable sentence."""
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        message = error.get("msg", "invalid value")
        problems.append(f"{location}: {message}" if location else message)
    return "Invalid request: " + "; ".join(problems)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Credentials are checked once; a misconfigured process does not start.
    settings.require_credentials()

    logger.info(
        "application_starting",
        app_name=settings.api_title,
        version=settings.api_version,
        llm_provider=settings.llm_provider,
        conversion_provider=settings.conversion_provider,
        debug=settings.debug
    )

    yield

    logger.info("application_shutting_down")


app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    description="""
    Compare two shipping orders delivered as PDFs.

    ## Workflow

    1. **Convert**: POST each PDF to `/api/v1/process-pdf` to get one image per page
    2. **Extract**: POST selected page images to `/api/v1/extract-invoice`
    3. **Compare**: POST one extracted order per document to `/api/v1/compare-orders`

    Raw invoice text can be extracted with `/api/v1/extract-croatian-invoice`.
    """,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    debug=settings.debug
)

if settings.enable_cors:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    logger.info("cors_enabled", allowed_origins=settings.allowed_origins)

app.add_middleware(RequestContextMiddleware)

app.include_router(
    api_router,
    prefix="/api/v1",
    tags=["Shipping Orders"]
)


@app.get("/")
async def root():
    """Root endpoint with service information."""
    return {
        "service": settings.api_title,
        "version": settings.api_version,
        "status": "running",
        "docs": "/docs",
        "health": "/api/v1/health"
    }


@app.exception_handler(ShipCheckError)
async def shipcheck_exception_handler(request: Request, exc: ShipCheckError):
    """Render typed failures as ``{"success": false, "error": ...}``."""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "request_failed",
        path=request.url.path,
        error_type=type(exc).__name__,
        status_code=exc.status_code,
        error=str(exc)
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": str(exc)}
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed or wrongly typed request bodies are client errors (400)."""
    error = describe_validation_error(exc)
    logger.warning("request_invalid", path=request.url.path, error=error)

    return JSONResponse(
        status_code=400,
        content={"success": False, "error": error}
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler."""
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        exc_info=True
    )

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "An internal error occurred. Please try again later.",
            "type": type(exc).__name__
        }
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
