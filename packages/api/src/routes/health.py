# This project was developed with assistance from AI tools.
"""Liveness and configuration health endpoint."""

from fastapi import APIRouter
from pydantic import BaseModel

from ..core.config import settings

router = APIRouter()


class HealthResponse(BaseModel):
    status: str
    repository_backend: str
    email_configured: bool
    valuation_provider_configured: bool


@router.get("/", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(
        status="ok",
        repository_backend=settings.REPOSITORY_BACKEND,
        email_configured=bool(settings.SENDGRID_API_KEY and settings.EMAIL_FROM),
        valuation_provider_configured=bool(settings.ATTOM_API_KEY),
    )
