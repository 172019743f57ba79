# This project was developed with assistance from AI tools.
"""Lender decision orchestrator.

Applies PRE_APPROVE / DECLINE / REQUEST_INFO to a loan and reports which
notifications the decision calls for. The function is pure: the caller
persists the returned loan and only then dispatches the plan.
"""

import logging
from datetime import datetime

from db.enums import (
    CommunicationParty,
    CommunicationType,
    HistoryMarker,
    IntakeStatus,
    PreApprovalDecision,
    WorkflowStage,
)

from ..core.errors import ConflictError, ValidationFailedError
from ..schemas.loan import LoanApplication
from ..schemas.notifications import NotificationKind, NotificationPlan
from .workflow import (
    invite_borrower,
    make_communication,
    request_underwriting_conditions,
    should_prompt_access_setup,
)

logger = logging.getLogger(__name__)

REQUEST_INFO_SUBJECT = "Need additional information"
INVALID_DECISION_MESSAGE = "decision must be PRE_APPROVE, DECLINE, or REQUEST_INFO"
MISSING_REQUEST_NOTES_MESSAGE = "A request comment is required when decision is REQUEST_INFO"


def parse_decision(value: PreApprovalDecision | str) -> PreApprovalDecision:
    try:
        decision = PreApprovalDecision(value)
    except ValueError:
        raise ValidationFailedError([INVALID_DECISION_MESSAGE]) from None
    if decision is PreApprovalDecision.PENDING:
        raise ValidationFailedError([INVALID_DECISION_MESSAGE])
    return decision


def _fill_skipped_transitions(loan: LoanApplication, target: WorkflowStage) -> None:
    """Record the transition events a jump to ``target`` skips over."""
    transitions = WorkflowStage.valid_transitions()
    while loan.current_stage_index < target:
        event, next_stage = transitions[WorkflowStage(loan.current_stage_index)]
        loan.history.append(event.value)
        loan.current_stage_index = int(next_stage)


def apply_decision(
    loan: LoanApplication,
    decision: PreApprovalDecision | str,
    notes: str | None,
    *,
    applications: list[LoanApplication],
    now: datetime,
) -> tuple[LoanApplication, NotificationPlan]:
    """Apply a lender pre-approval decision.

    Args:
        loan: Current aggregate. Not mutated.
        decision: PRE_APPROVE, DECLINE or REQUEST_INFO.
        notes: Lender notes; required for REQUEST_INFO.
        applications: Every stored application, used to detect new borrowers.
        now: Decision timestamp.

    Returns:
        The updated loan and the notifications to dispatch after saving it.

    Raises:
        ValidationFailedError: Unknown decision, or REQUEST_INFO without notes.
        ConflictError: The loan has already been funded.
    """
    parsed = parse_decision(decision)
    clean_notes = (notes or "").strip()
    if parsed is PreApprovalDecision.REQUEST_INFO and not clean_notes:
        raise ValidationFailedError([MISSING_REQUEST_NOTES_MESSAGE])
    if loan.current_stage_index >= WorkflowStage.FUNDING:
        raise ConflictError("Decision cannot be changed after the loan is funded.")

    updated = loan.model_copy(deep=True)
    plan = NotificationPlan()

    if parsed is PreApprovalDecision.REQUEST_INFO:
        updated.communications.append(
            make_communication(
                from_party=CommunicationParty.LENDER,
                type=CommunicationType.REQUEST_INFO,
                subject=REQUEST_INFO_SUBJECT,
                message=clean_notes,
                now=now,
            )
        )
        plan.schedule(NotificationKind.REQUEST_INFO, subject=REQUEST_INFO_SUBJECT, message=clean_notes)

    if parsed is PreApprovalDecision.DECLINE and clean_notes:
        plan.schedule(
            NotificationKind.DIRECT_MESSAGE,
            subject=f"Loan update: {loan.id} decision",
            message=clean_notes,
        )

    if parsed is PreApprovalDecision.PRE_APPROVE:
        _fill_skipped_transitions(updated, WorkflowStage.UNDERWRITING_REVIEW)
        if HistoryMarker.UNDERWRITING_STARTED.value not in updated.history:
            updated.history.append(HistoryMarker.UNDERWRITING_STARTED.value)

        intake = updated.underwriting_intake
        reopened = intake.status not in (IntakeStatus.PENDING, IntakeStatus.SUBMITTED)
        if reopened:
            intake.status = IntakeStatus.PENDING
            intake.requested_at = now
            intake.submitted_at = None
            intake.form_data = None

        if should_prompt_access_setup(loan, applications):
            invite_borrower(updated, plan, now)
        elif reopened:
            request_underwriting_conditions(updated, plan, now)

    updated.pre_approval_decision = parsed
    updated.decision_notes = (
        clean_notes or None
        if parsed in (PreApprovalDecision.REQUEST_INFO, PreApprovalDecision.DECLINE)
        else None
    )
    updated.last_event_at = now
    logger.info("Loan %s decision recorded: %s", loan.id, parsed.value)
    return updated, plan
