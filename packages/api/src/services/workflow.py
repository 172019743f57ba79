# This project was developed with assistance from AI tools.
"""Workflow state machine.

Loans move through six ordered stages, one event at a time, following the
closed transition table on ``WorkflowStage``. Side effects that must happen
exactly once (the underwriting conditions request, the borrower access
invitation) are guarded by stored timestamps, so replaying the approval path
never schedules a second email.
"""

import logging
import uuid
from datetime import datetime
from urllib.parse import urlencode

from db.enums import (
    BorrowerAccessStatus,
    CommunicationChannel,
    CommunicationParty,
    CommunicationType,
    IntakeStatus,
    LoanStatus,
    PreApprovalDecision,
    WorkflowEvent,
    WorkflowStage,
)

from ..core.config import settings
from ..core.errors import InvalidTransitionError
from ..schemas.loan import Communication, LoanApplication, UploadedFile
from ..schemas.notifications import NotificationKind, NotificationPlan
from ..schemas.workflow import LoanView
from .identity import is_profile_complete, normalize_profile, resolve_access_status
from .prefill import build_conditions_prefill, build_underwriting_prefill, is_new_borrower

logger = logging.getLogger(__name__)

STAGE_COUNT = len(WorkflowStage)


# ---------------------------------------------------------------------------
# Derived values
# ---------------------------------------------------------------------------


def next_event(stage_index: int) -> WorkflowEvent | None:
    transition = WorkflowStage.valid_transitions().get(WorkflowStage(stage_index))
    return transition[0] if transition else None


def stage_status(stage_index: int) -> LoanStatus:
    if stage_index >= WorkflowStage.FUNDING:
        return LoanStatus.APPROVED
    if stage_index == WorkflowStage.UNDERWRITING_REVIEW:
        return LoanStatus.IN_UNDERWRITING
    if stage_index >= WorkflowStage.FINAL_APPROVAL:
        return LoanStatus.UNDER_REVIEW
    return LoanStatus.IN_PROGRESS


def application_status(loan: LoanApplication) -> LoanStatus:
    """Status label shown to borrowers and lenders."""
    status = stage_status(loan.current_stage_index)
    if status is LoanStatus.APPROVED:
        return status
    if loan.underwriting_intake.status is IntakeStatus.SUBMITTED:
        return LoanStatus.UW_FOR_REVIEW
    if loan.underwriting_intake.status is IntakeStatus.PENDING:
        return LoanStatus.IN_UNDERWRITING
    return status


def pipeline_status(loan: LoanApplication) -> LoanStatus:
    """Lender-pipeline label: a stage-0 request reads as a new loan request."""
    if loan.current_stage_index == WorkflowStage.APPLICATION_SUBMITTED:
        return LoanStatus.NEW_REQUEST
    return application_status(loan)


def progress_percent(stage_index: int) -> int:
    return round((stage_index + 1) / STAGE_COUNT * 100)


def unread_borrower_message_count(loan: LoanApplication) -> int:
    return sum(
        1
        for entry in loan.communications
        if entry.from_party is CommunicationParty.LENDER and not entry.read_by_borrower
    )


def borrower_access_status(loan: LoanApplication) -> BorrowerAccessStatus:
    profile = normalize_profile(
        loan.borrower_profile,
        fallback_email=loan.borrower_email,
        fallback_llc_name=loan.llc_name,
        fallback_name=loan.borrower_name,
    )
    return resolve_access_status(loan.borrower_access, is_profile_complete(profile))


def build_loan_view(
    loan: LoanApplication,
    applications: list[LoanApplication],
    *,
    now: datetime,
    annual_rate: float,
) -> LoanView:
    return LoanView(
        application=loan,
        status=application_status(loan),
        progress=progress_percent(loan.current_stage_index),
        current_stage=WorkflowStage(loan.current_stage_index).label,
        next_event=next_event(loan.current_stage_index),
        unread_borrower_message_count=unread_borrower_message_count(loan),
        borrower_access_status=borrower_access_status(loan),
        underwriting_prefill=build_underwriting_prefill(
            loan, applications, now=now, annual_rate=annual_rate
        ),
        conditions_prefill=build_conditions_prefill(loan, applications, now=now),
    )


# ---------------------------------------------------------------------------
# Communications and links
# ---------------------------------------------------------------------------


def make_thread_id() -> str:
    return f"thr-{uuid.uuid4().hex[:12]}"


def make_communication(
    *,
    from_party: CommunicationParty,
    type: CommunicationType,
    message: str,
    now: datetime,
    subject: str = "",
    channel: CommunicationChannel = CommunicationChannel.PORTAL,
    thread_id: str | None = None,
    attachments: list[UploadedFile] | None = None,
    read_by_borrower: bool = False,
) -> Communication:
    return Communication(
        id=uuid.uuid4().hex,
        thread_id=thread_id or make_thread_id(),
        from_party=from_party,
        channel=channel,
        type=type,
        subject=subject,
        message=message,
        attachments=attachments or [],
        created_at=now,
        read_by_borrower=read_by_borrower,
    )


def borrower_portal_link(loan_id: str, *, page: str = "applications", **params) -> str:
    query = urlencode({"loanId": loan_id, **params})
    return f"{settings.BORROWER_PORTAL_URL.rstrip('/')}/{page}?{query}"


def access_setup_link(loan_id: str) -> str:
    return borrower_portal_link(loan_id, createAccess=1, **{"continue": 1})


def underwriting_checklist_message(loan_id: str, property: str) -> str:
    property_label = property.strip() or "Subject Property"
    return "\n".join(
        [
            f"Your loan {loan_id} - {property_label} is now in underwriting.",
            "Please provide the following to fulfill underwriting conditions:",
            "1) Credit Score",
            "2) Proof of Liquidity",
            "3) LLC Documents",
            "4) Referral details (name, email, and phone number of the person who referred you)",
            "5) Past projects (property address and photos)",
            "6) Current mortgage loans with other lenders (number of loans and total amount)",
        ]
    )


def underwriting_conditions_subject(loan: LoanApplication) -> str:
    return f"Underwriting conditions required: {loan.id} - {loan.property}"


def access_setup_subject(loan: LoanApplication) -> str:
    return f"Create borrower access: {loan.id} - {loan.property}"


def access_setup_message(loan_id: str) -> str:
    return "\n".join(
        [
            "Your request was pre-approved.",
            "Complete your borrower information form first, then create your borrower "
            "portal login and submit underwriting continuation.",
            f"Create access link: {access_setup_link(loan_id)}",
        ]
    )


# ---------------------------------------------------------------------------
# One-time side effects shared with the decision orchestrator
# ---------------------------------------------------------------------------


def should_prompt_access_setup(
    loan: LoanApplication, applications: list[LoanApplication]
) -> bool:
    """New borrower, no portal access yet, and never invited."""
    return (
        is_new_borrower(loan, applications)
        and borrower_access_status(loan) is BorrowerAccessStatus.NOT_CREATED
        and loan.borrower_access.invited_at is None
    )


def request_underwriting_conditions(
    loan: LoanApplication, plan: NotificationPlan, now: datetime
) -> None:
    """Post the conditions checklist once; ``notification_sent_at`` guards repeats."""
    intake = loan.underwriting_intake
    if intake.notification_sent_at is not None:
        return
    loan.communications.append(
        make_communication(
            from_party=CommunicationParty.LENDER,
            type=CommunicationType.REQUEST_INFO,
            subject=underwriting_conditions_subject(loan),
            message=underwriting_checklist_message(loan.id, loan.property),
            now=now,
        )
    )
    intake.notification_sent_at = now
    plan.schedule(NotificationKind.UNDERWRITING_CONDITIONS)


def invite_borrower(loan: LoanApplication, plan: NotificationPlan, now: datetime) -> None:
    loan.communications.append(
        make_communication(
            from_party=CommunicationParty.LENDER,
            type=CommunicationType.REQUEST_INFO,
            subject=access_setup_subject(loan),
            message=access_setup_message(loan.id),
            now=now,
        )
    )
    loan.borrower_access.email = loan.borrower_access.email or loan.borrower_email
    loan.borrower_access.invited_at = now
    plan.schedule(NotificationKind.BORROWER_ACCESS_SETUP)


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


def parse_event(event: WorkflowEvent | str) -> WorkflowEvent:
    if isinstance(event, WorkflowEvent):
        return event
    name = (event or "").strip()
    if not name:
        raise InvalidTransitionError("eventType is required", status_code=400)
    try:
        return WorkflowEvent(name)
    except ValueError:
        raise InvalidTransitionError(f"Unsupported eventType: {name}", status_code=400) from None


def advance(
    loan: LoanApplication,
    event: WorkflowEvent | str,
    *,
    applications: list[LoanApplication],
    now: datetime,
) -> tuple[LoanApplication, NotificationPlan]:
    """Move ``loan`` forward by exactly one stage.

    Args:
        loan: Current aggregate. Not mutated.
        event: Event name; must be the single event expected at the current stage.
        applications: Every stored application, used to detect new borrowers.
        now: Timestamp recorded on the transition.

    Returns:
        The updated loan and the notifications the transition calls for.

    Raises:
        InvalidTransitionError: Unknown event (400) or out-of-order event (409).
    """
    parsed = parse_event(event)
    target = parsed.target_stage
    if target <= loan.current_stage_index:
        raise InvalidTransitionError("Application is already at or beyond that stage")
    expected = next_event(loan.current_stage_index)
    if expected is not parsed:
        raise InvalidTransitionError(f"Next expected event is {expected.value if expected else None}")

    updated = loan.model_copy(deep=True)
    plan = NotificationPlan()

    if target is WorkflowStage.UNDERWRITING_REVIEW:
        intake = updated.underwriting_intake
        if intake.status is IntakeStatus.LOCKED:
            intake.status = IntakeStatus.PENDING
        intake.requested_at = intake.requested_at or now
        request_underwriting_conditions(updated, plan, now)

    if parsed is WorkflowEvent.UNDERWRITING_APPROVED:
        if updated.pre_approval_decision is not PreApprovalDecision.PRE_APPROVE:
            updated.pre_approval_decision = PreApprovalDecision.PRE_APPROVE
            updated.decision_notes = None
        if should_prompt_access_setup(loan, applications):
            invite_borrower(updated, plan, now)

    updated.current_stage_index = int(target)
    updated.history.append(parsed.value)
    updated.last_event_at = now
    logger.info(
        "Loan %s advanced to stage %d via %s", loan.id, updated.current_stage_index, parsed.value
    )
    return updated, plan
