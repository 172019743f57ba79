# This project was developed with assistance from AI tools.
"""Borrower-portal application endpoints.

Borrowers see and act on their own loans only; lender roles see every loan.
"""

from db.enums import UserRole
from fastapi import APIRouter, Depends, status

from ..core.auth import can_view_loan
from ..middleware.auth import CurrentUser, require_roles
from ..schemas.workflow import (
    AdvanceEventRequest,
    BorrowerAccessRequest,
    ConditionsRequest,
    CreateApplicationRequest,
    IntakeRequest,
    LoanListResponse,
    LoanView,
    MessageRequest,
    ReplyRequest,
    WorkflowResponse,
)
from .dependencies import LENDER_ROLES, PORTAL_ROLES, WorkflowService, ensure_visible

router = APIRouter()


async def _visible(service: WorkflowService, user: CurrentUser, application_id: str) -> LoanView:
    return ensure_visible(user, await service.get_application(application_id))


@router.get(
    "/",
    response_model=LoanListResponse,
    dependencies=[Depends(require_roles(*PORTAL_ROLES))],
)
async def list_applications(user: CurrentUser, service: WorkflowService) -> LoanListResponse:
    """List loans in the caller's scope, most recent activity first."""
    views = [
        view
        for view in await service.list_applications()
        if can_view_loan(user.data_scope, view.application.borrower_email)
    ]
    return LoanListResponse(data=views, count=len(views))


@router.post(
    "/",
    response_model=WorkflowResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_roles(*PORTAL_ROLES))],
)
async def submit_application(
    body: CreateApplicationRequest, user: CurrentUser, service: WorkflowService
) -> WorkflowResponse:
    """Create a new loan request at stage 0."""
    if user.role == UserRole.BORROWER and not body.borrower_email.strip():
        body = body.model_copy(update={"borrower_email": user.email})
    return await service.submit_application(body)


@router.get(
    "/{application_id}",
    response_model=LoanView,
    dependencies=[Depends(require_roles(*PORTAL_ROLES))],
)
async def get_application(
    application_id: str, user: CurrentUser, service: WorkflowService
) -> LoanView:
    return await _visible(service, user, application_id)


@router.post(
    "/{application_id}/events",
    response_model=WorkflowResponse,
    dependencies=[Depends(require_roles(*LENDER_ROLES))],
)
async def advance_workflow_event(
    application_id: str, body: AdvanceEventRequest, service: WorkflowService
) -> WorkflowResponse:
    """Move the loan one stage forward by naming the next transition event."""
    return await service.advance_workflow_event(application_id, body.event_type)


@router.post(
    "/{application_id}/underwriting-intake",
    response_model=WorkflowResponse,
    dependencies=[Depends(require_roles(*PORTAL_ROLES))],
)
async def submit_underwriting_intake(
    application_id: str, body: IntakeRequest, user: CurrentUser, service: WorkflowService
) -> WorkflowResponse:
    await _visible(service, user, application_id)
    return await service.submit_underwriting_intake(application_id, body.form_data)


@router.post(
    "/{application_id}/conditions",
    response_model=WorkflowResponse,
    dependencies=[Depends(require_roles(*PORTAL_ROLES))],
)
async def submit_conditions_form(
    application_id: str, body: ConditionsRequest, user: CurrentUser, service: WorkflowService
) -> WorkflowResponse:
    await _visible(service, user, application_id)
    return await service.submit_conditions_form(application_id, body.form_data)


@router.post(
    "/{application_id}/reply",
    response_model=WorkflowResponse,
    dependencies=[Depends(require_roles(*PORTAL_ROLES))],
)
async def borrower_reply(
    application_id: str, body: ReplyRequest, user: CurrentUser, service: WorkflowService
) -> WorkflowResponse:
    """Reply to a lender request; without a thread id the latest open request is used."""
    await _visible(service, user, application_id)
    return await service.borrower_reply(
        application_id, body.message, thread_id=body.thread_id, attachments=body.attachments
    )


@router.post(
    "/{application_id}/message",
    response_model=WorkflowResponse,
    dependencies=[Depends(require_roles(*PORTAL_ROLES))],
)
async def borrower_message(
    application_id: str, body: MessageRequest, user: CurrentUser, service: WorkflowService
) -> WorkflowResponse:
    await _visible(service, user, application_id)
    return await service.borrower_message(
        application_id, body.message, subject=body.subject, attachments=body.attachments
    )


@router.post(
    "/{application_id}/borrower-access",
    response_model=WorkflowResponse,
    dependencies=[Depends(require_roles(*PORTAL_ROLES))],
)
async def create_borrower_access(
    application_id: str, body: BorrowerAccessRequest, user: CurrentUser, service: WorkflowService
) -> WorkflowResponse:
    await _visible(service, user, application_id)
    return await service.create_borrower_access(application_id, body.email)
