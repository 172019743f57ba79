# This project was developed with assistance from AI tools.
"""Lender pipeline endpoints: decisions, messaging, valuation and documents."""

from urllib.parse import quote

from db.enums import UserRole
from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response

from ..middleware.auth import CurrentUser, require_roles
from ..schemas.decision import DecisionSummary
from ..schemas.loan import TitleAgentForm
from ..schemas.workflow import (
    AttomAutofillRequest,
    CommentRequest,
    DecisionRequest,
    EvaluatorInputRequest,
    EvaluatorResponse,
    LoanListResponse,
    LoanView,
    MessageRequest,
    ReplyRequest,
    TitleAgentFormRequest,
    ValuationPatchRequest,
    ValuationResponse,
    WorkflowResponse,
)
from .dependencies import LENDER_ROLES, WorkflowService

router = APIRouter(dependencies=[Depends(require_roles(*LENDER_ROLES))])

_DECISION_ROLES = (UserRole.ADMIN, UserRole.LOAN_OFFICER, UserRole.UNDERWRITER)


def content_disposition(disposition: str, filename: str) -> str:
    """Header value with an ASCII fallback name and the UTF-8 original."""
    fallback = "".join(ch if 32 <= ord(ch) < 127 and ch not in '"\\' else "_" for ch in filename)
    return f"{disposition}; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"


# -- Pipeline --


@router.get("/applications", response_model=LoanListResponse)
async def list_pipeline(service: WorkflowService) -> LoanListResponse:
    views = await service.list_applications()
    return LoanListResponse(data=views, count=len(views))


@router.get("/applications/{application_id}", response_model=LoanView)
async def get_pipeline_application(application_id: str, service: WorkflowService) -> LoanView:
    return await service.get_application(application_id)


@router.get("/underwriting-summaries", response_model=list[DecisionSummary])
async def list_underwriting_summaries(service: WorkflowService) -> list[DecisionSummary]:
    """Decision snapshots for every loan whose underwriting intake is submitted."""
    return await service.list_underwriting_summaries()


@router.get("/applications/{application_id}/decision-summary", response_model=DecisionSummary)
async def get_decision_summary(application_id: str, service: WorkflowService) -> DecisionSummary:
    return await service.get_decision_summary(application_id)


@router.post(
    "/applications/{application_id}/decision",
    response_model=WorkflowResponse,
    dependencies=[Depends(require_roles(*_DECISION_ROLES))],
)
async def apply_lender_decision(
    application_id: str, body: DecisionRequest, service: WorkflowService
) -> WorkflowResponse:
    """Record a pre-approval decision (PRE_APPROVE, REQUEST_INFO or DECLINE)."""
    return await service.apply_lender_decision(application_id, body.decision, body.notes)


# -- Messaging --


@router.post("/applications/{application_id}/comment", response_model=WorkflowResponse)
async def add_lender_comment(
    application_id: str, body: CommentRequest, user: CurrentUser, service: WorkflowService
) -> WorkflowResponse:
    return await service.add_lender_comment(application_id, body.comment, created_by=user.role.value)


@router.post("/applications/{application_id}/message", response_model=WorkflowResponse)
async def send_lender_message(
    application_id: str, body: MessageRequest, service: WorkflowService
) -> WorkflowResponse:
    return await service.send_lender_message(application_id, body.message, body.subject)


@router.post("/applications/{application_id}/reply", response_model=WorkflowResponse)
async def lender_reply(
    application_id: str, body: ReplyRequest, service: WorkflowService
) -> WorkflowResponse:
    return await service.lender_reply(
        application_id, body.message, thread_id=body.thread_id, attachments=body.attachments
    )


# -- Valuation, evaluator and title agent --


@router.get("/applications/{application_id}/valuation", response_model=ValuationResponse)
async def get_valuation_input(application_id: str, service: WorkflowService) -> ValuationResponse:
    return await service.get_valuation_input(application_id)


@router.put("/applications/{application_id}/valuation", response_model=ValuationResponse)
async def update_valuation_input(
    application_id: str, body: ValuationPatchRequest, service: WorkflowService
) -> ValuationResponse:
    return await service.update_valuation_input(application_id, body.updated_by_role, body.values)


@router.post(
    "/applications/{application_id}/valuation/attom-autofill",
    response_model=ValuationResponse,
)
async def autofill_valuation(
    application_id: str,
    body: AttomAutofillRequest,
    request: Request,
    user: CurrentUser,
    service: WorkflowService,
) -> ValuationResponse:
    """Fill assessor, market and sale fields from ATTOM. Rate limited per caller."""
    client_host = request.client.host if request.client else "unknown"
    return await service.autofill_valuation(
        application_id,
        address_override=body.address_override,
        client_key=f"{user.user_id}@{client_host}",
    )


@router.get("/applications/{application_id}/evaluator-input", response_model=EvaluatorResponse)
async def get_evaluator_input(application_id: str, service: WorkflowService) -> EvaluatorResponse:
    return await service.get_evaluator_input(application_id)


@router.put("/applications/{application_id}/evaluator-input", response_model=EvaluatorResponse)
async def update_evaluator_input(
    application_id: str, body: EvaluatorInputRequest, service: WorkflowService
) -> EvaluatorResponse:
    return await service.update_evaluator_input(application_id, body.updated_by_role, body.values)


@router.get("/applications/{application_id}/title-agent-form", response_model=TitleAgentForm)
async def get_title_agent_form(application_id: str, service: WorkflowService) -> TitleAgentForm:
    return await service.get_title_agent_form(application_id)


@router.put("/applications/{application_id}/title-agent-form", response_model=TitleAgentForm)
async def update_title_agent_form(
    application_id: str, body: TitleAgentFormRequest, service: WorkflowService
) -> TitleAgentForm:
    return await service.update_title_agent_form(application_id, body.form)


# -- Conditions documents --


@router.get("/applications/{application_id}/conditions-documents/{package_id}/{file_id}")
async def get_conditions_document(
    application_id: str, package_id: str, file_id: str, service: WorkflowService
) -> Response:
    """Stream one stored file from the loan's conditions package."""
    entry, data = await service.get_conditions_document(application_id, package_id, file_id)
    return Response(
        content=data,
        media_type=entry.content_type or "application/octet-stream",
        headers={"Content-Disposition": content_disposition("attachment", entry.name)},
    )
