# This project was developed with assistance from AI tools.
"""Underwriting continuation intake.

The continuation form unlocks when the loan enters underwriting (intake
PENDING). Submitting it validates every field at once, swaps in reusable
on-file values the borrower opted into, records an immutable snapshot, and
seeds the conditions form from the borrower's latest prior submission.
"""

import logging
from datetime import datetime

from db.enums import (
    BorrowerAccessStatus,
    CommunicationParty,
    CommunicationType,
    HistoryMarker,
    IntakeStatus,
)

from ..core.errors import LockedError, ValidationFailedError
from ..schemas.loan import (
    IntakeSubmission,
    LoanApplication,
    SubmissionRecord,
    is_valid_email,
)
from ..schemas.notifications import NotificationKind, NotificationPlan
from ..schemas.prefill import UnderwritingPrefill
from .identity import (
    is_profile_complete,
    names_likely_match,
    normalize_profile,
    profile_validation_errors,
)
from .prefill import build_conditions_prefill, build_underwriting_prefill
from .workflow import borrower_portal_link, make_communication

logger = logging.getLogger(__name__)

INTAKE_LOCKED_MESSAGE = (
    "Underwriting intake is locked until the loan is moved to In-underwriting."
)


def validate_intake(submission: IntakeSubmission, prefill: UnderwritingPrefill) -> list[str]:
    """Every violated rule, in form order."""
    errors = []
    if not submission.bed:
        errors.append("Bed is required.")
    if not submission.bath:
        errors.append("Bath is required.")
    if not submission.closing_company:
        errors.append("Closing Company is required.")
    if not submission.closing_agent_name:
        errors.append("Name of Closing Agent is required.")
    if not is_valid_email(submission.closing_agent_email):
        errors.append("Valid closing agent email is required.")

    if not submission.llc_name:
        errors.append("LLC name is required.")
    if not submission.llc_same_as_on_file and not submission.llc_state_recorded:
        errors.append("State where the LLC is recorded is required for a new LLC.")
    if submission.llc_same_as_on_file and prefill.llc_options:
        if not any(names_likely_match(o.name, submission.llc_name) for o in prefill.llc_options):
            errors.append("Select an LLC on file or choose New LLC.")

    declared = {update.loan_id: update for update in submission.active_loans}
    for active in prefill.active_loans_with_us:
        update = declared.get(active.loan_id)
        if update is None or not update.status:
            errors.append(f"Active loan status is required for {active.loan_id}.")
            continue
        if update.monthly_payment is None or update.monthly_payment <= 0:
            errors.append(f"Monthly payment is required for {active.loan_id}.")
            continue
        status = update.status.lower()
        if ("rehab" in status or "construction" in status) and not update.expected_completion_date:
            errors.append(f"Target completion date is required for {active.loan_id}.")
        if "refinanc" in status and not update.payoff_date:
            errors.append(f"Estimated closing date is required for {active.loan_id}.")

    if prefill.is_new_borrower:
        errors.extend(profile_validation_errors(submission.borrower_profile or normalize_profile(None)))
    return errors


def finalize_intake(
    submission: IntakeSubmission, prefill: UnderwritingPrefill, loan: LoanApplication
) -> IntakeSubmission:
    """Swap in on-file values the borrower chose to reuse, when they are still fresh."""
    update: dict = {}
    if submission.use_credit_score_on_file and prefill.credit_score.can_reuse:
        update["credit_score"] = prefill.credit_score_value()
    if submission.use_liquidity_on_file and prefill.liquidity_amount.can_reuse:
        update["proof_of_liquidity_amount"] = prefill.liquidity_amount.value
    if submission.use_llc_docs_on_file and prefill.llc_docs.can_reuse:
        update["llc_docs"] = prefill.llc_docs_value()
    if submission.use_existing_mortgage_loans and prefill.mortgage_loans.can_reuse:
        on_file = prefill.mortgage_loans_value()
        update["other_mortgage_lenders"] = list(on_file.lenders)
        update["other_mortgage_total_monthly_interest"] = on_file.total_monthly_interest
    if submission.use_profile_referral and prefill.referral.can_reuse:
        update["referral"] = prefill.referral_value()
    if submission.use_profile_projects and prefill.past_projects.can_reuse:
        update["past_projects"] = prefill.past_projects_value()
    update["borrower_profile"] = normalize_profile(
        submission.borrower_profile or loan.borrower_profile,
        fallback_email=loan.borrower_email,
        fallback_llc_name=submission.llc_name or loan.borrower_profile.llc_name,
        fallback_name=loan.borrower_name,
    )
    return submission.model_copy(update=update)


def submit_intake(
    loan: LoanApplication,
    submission: IntakeSubmission,
    *,
    applications: list[LoanApplication],
    now: datetime,
    annual_rate: float,
) -> tuple[LoanApplication, NotificationPlan]:
    """Validate and record the continuation form.

    Raises:
        LockedError: The intake is not PENDING.
        ValidationFailedError: With every violated rule.
    """
    intake = loan.underwriting_intake
    if intake.status is not IntakeStatus.PENDING:
        raise LockedError(INTAKE_LOCKED_MESSAGE)

    prefill = build_underwriting_prefill(loan, applications, now=now, annual_rate=annual_rate)
    errors = validate_intake(submission, prefill)
    if errors:
        raise ValidationFailedError(errors)

    finalized = finalize_intake(submission, prefill, loan)
    profile = finalized.borrower_profile

    updated = loan.model_copy(deep=True)
    updated.borrower_name = profile.full_name or loan.borrower_name or "Borrower"
    updated.borrower_email = profile.email or loan.borrower_email
    updated.llc_name = profile.llc_name or loan.llc_name
    updated.borrower_profile = profile
    if HistoryMarker.UNDERWRITING_SUBMITTED_FOR_REVIEW.value not in updated.history:
        updated.history.append(HistoryMarker.UNDERWRITING_SUBMITTED_FOR_REVIEW.value)

    updated.underwriting_intake = intake.model_copy(
        update={
            "status": IntakeStatus.SUBMITTED,
            "requested_at": intake.requested_at or now,
            "submitted_at": now,
            "form_data": finalized,
            "submission_history": [
                *intake.submission_history,
                SubmissionRecord(submitted_at=now, snapshot=finalized),
            ],
        }
    )

    if updated.conditions_form is None or not updated.conditions_form.has_content():
        seeded = build_conditions_prefill(loan, applications, now=now)
        updated.conditions_form = seeded.form if seeded else None

    access = updated.borrower_access
    if access.status is not BorrowerAccessStatus.NOT_CREATED and is_profile_complete(profile):
        updated.borrower_access = access.model_copy(
            update={
                "email": access.email or profile.email or updated.borrower_email,
                "status": BorrowerAccessStatus.PROFILE_COMPLETED,
                "profile_completed_at": now,
            }
        )

    conditions_link = borrower_portal_link(loan.id, page="conditions", fromApp=1)
    updated.communications.append(
        make_communication(
            from_party=CommunicationParty.BORROWER,
            type=CommunicationType.REQUEST_INFO,
            subject="Underwriting continuation submitted",
            message=f"Borrower completed underwriting continuation form for {loan.id}.",
            read_by_borrower=True,
            now=now,
        )
    )
    updated.communications.append(
        make_communication(
            from_party=CommunicationParty.LENDER,
            type=CommunicationType.REQUEST_INFO,
            subject=f"Conditions form required: {loan.id} - {loan.property}",
            message="\n".join(
                [
                    "Underwriting continuation form submitted.",
                    "Please complete the conditions form and upload all requested items.",
                    f"Conditions form link: {conditions_link}",
                ]
            ),
            now=now,
        )
    )
    updated.last_event_at = now

    plan = NotificationPlan()
    plan.schedule(NotificationKind.CONDITIONS_FORM_REQUEST)
    plan.schedule(NotificationKind.LENDER_INTAKE_SUBMITTED)
    logger.info("Underwriting intake submitted for loan %s", loan.id)
    return updated, plan
