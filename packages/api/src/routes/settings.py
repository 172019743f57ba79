# This project was developed with assistance from AI tools.
"""Underwriting rule settings."""

from typing import Any

from db.enums import UserRole
from fastapi import APIRouter, Body, Depends

from ..middleware.auth import require_roles
from ..schemas.decision import UnderwritingRules
from .dependencies import LENDER_ROLES, WorkflowService

router = APIRouter()


@router.get(
    "/settings",
    response_model=UnderwritingRules,
    dependencies=[Depends(require_roles(*LENDER_ROLES))],
)
async def get_underwriting_settings(service: WorkflowService) -> UnderwritingRules:
    return await service.get_underwriting_settings()


@router.put(
    "/settings",
    response_model=UnderwritingRules,
    dependencies=[Depends(require_roles(UserRole.ADMIN, UserRole.UNDERWRITER))],
)
async def update_underwriting_settings(
    service: WorkflowService, body: dict[str, Any] = Body(...)
) -> UnderwritingRules:
    """Merge a partial rule set, sent flat or wrapped as ``{"settings": {...}}``."""
    partial = body.get("settings") if isinstance(body.get("settings"), dict) else body
    return await service.update_underwriting_settings(partial)
