# This project was developed with assistance from AI tools.
"""FastAPI application entry point."""

import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.config import settings
from .core.errors import ValidationFailedError, WorkflowError
from .routes import applications, email_actions, health, lender
from .routes import settings as settings_routes
from .schemas.error import ErrorResponse
from .services.document_store import init_document_store
from .services.loan_workflow import init_loan_workflow_service
from .services.notifications import init_notification_dispatcher
from .services.repository import init_repository
from .services.signing import init_action_link_signer
from .services.valuation_provider import init_valuation_provider

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Application startup/shutdown lifecycle."""
    signer = init_action_link_signer(settings)
    init_loan_workflow_service(
        settings,
        backend=init_repository(settings),
        dispatcher=init_notification_dispatcher(settings, signer),
        documents=init_document_store(settings),
        valuations=init_valuation_provider(settings),
        signer=signer,
    )
    logger.info("%s started (backend=%s)", settings.APP_NAME, settings.REPOSITORY_BACKEND)
    yield


app = FastAPI(
    title="Loan Workflow API",
    description="Loan origination and underwriting workflow",
    version="0.1.0",
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_HOSTS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)

_HTTP_STATUS_TITLES: dict[int, str] = {
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    409: "Conflict",
    413: "Payload Too Large",
    422: "Unprocessable Entity",
    423: "Locked",
    429: "Too Many Requests",
    500: "Internal Server Error",
    502: "Bad Gateway",
    503: "Service Unavailable",
}


def _build_error(
    status_code: int, detail: str, request_id: str, errors: list[str] | None = None
) -> ErrorResponse:
    return ErrorResponse(
        type="about:blank",
        title=_HTTP_STATUS_TITLES.get(status_code, "Error"),
        status=status_code,
        detail=detail,
        errors=errors or [],
        request_id=request_id,
    )


@app.exception_handler(WorkflowError)
async def workflow_exception_handler(request: Request, exc: WorkflowError):
    """Convert workflow service errors to RFC 7807 Problem Details."""
    request_id = request.headers.get("x-request-id", str(uuid.uuid4()))
    errors = exc.errors if isinstance(exc, ValidationFailedError) else None
    if exc.status_code >= 500:
        logger.warning("Workflow error %d (request_id=%s): %s", exc.status_code, request_id, exc.detail)
    body = _build_error(exc.status_code, exc.detail, request_id, errors)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Convert HTTPException to RFC 7807 Problem Details."""
    request_id = request.headers.get("x-request-id", str(uuid.uuid4()))
    body = _build_error(exc.status_code, str(exc.detail), request_id)
    return JSONResponse(
        status_code=exc.status_code,
        content=body.model_dump(),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Convert Pydantic validation errors to RFC 7807 Problem Details."""
    request_id = request.headers.get("x-request-id", str(uuid.uuid4()))
    body = _build_error(422, str(exc.errors()), request_id)
    return JSONResponse(status_code=422, content=body.model_dump())


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Catch-all for unhandled exceptions -- log and return 500."""
    request_id = request.headers.get("x-request-id", str(uuid.uuid4()))
    logger.exception("Unhandled exception (request_id=%s)", request_id)
    body = _build_error(500, "An unexpected error occurred.", request_id)
    return JSONResponse(status_code=500, content=body.model_dump())


# Include routers
app.include_router(health.router, prefix="/health", tags=["health"])
app.include_router(applications.router, prefix="/api/workflows/applications", tags=["applications"])
app.include_router(lender.router, prefix="/api/workflows/lender", tags=["lender"])
app.include_router(email_actions.router, prefix="/api/workflows/lender", tags=["email-actions"])
app.include_router(
    settings_routes.router, prefix="/api/workflows/underwriting", tags=["underwriting"]
)


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint"""
    return {"message": "Loan Workflow API"}
