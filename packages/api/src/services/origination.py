# This project was developed with assistance from AI tools.
"""New loan request intake.

A request enters at stage 0 with ``APPLICATION_SUBMITTED`` recorded. Every
purchase input the borrower left out becomes its own lender information
request, so the borrower sees one actionable thread per missing item.
"""

import logging
import re
from datetime import datetime

from db.enums import (
    BorrowerAccessStatus,
    CommunicationParty,
    CommunicationType,
    HistoryMarker,
    LlcDocType,
)

from ..core.errors import ValidationFailedError
from ..schemas.loan import (
    BorrowerAccess,
    BorrowerProfile,
    LoanApplication,
    PurchaseDetails,
    is_valid_email,
)
from ..schemas.notifications import NotificationKind, NotificationPlan
from ..schemas.workflow import CreateApplicationRequest
from .decision_engine import requires_purchase_details
from .identity import normalize_profile
from .workflow import make_communication

logger = logging.getLogger(__name__)

FIRST_LOAN_SUFFIX = 1500

_LOAN_ID_RE = re.compile(r"^LA-\d{4}-(\d+)$")


def next_loan_id(existing_ids: list[str], now: datetime) -> str:
    """``LA-{year}-{n}`` where n continues after the highest suffix on record."""
    suffixes = [
        int(match.group(1)) for match in map(_LOAN_ID_RE.match, existing_ids) if match
    ]
    return f"LA-{now.year}-{max([FIRST_LOAN_SUFFIX, *suffixes]) + 1}"


def validate_new_application(request: CreateApplicationRequest) -> list[str]:
    errors = []
    if not request.property.strip():
        errors.append("property is required")
    if not request.type.strip():
        errors.append("type is required")
    if not request.amount or request.amount <= 0:
        errors.append("amount must be a positive number")
    email = request.borrower_email.strip()
    if email and not is_valid_email(email):
        errors.append("borrowerEmail must be a valid email")
    if not request.llc_same_as_on_file:
        if not request.llc_state_recorded.strip():
            errors.append("State where the LLC is registered is required for a new LLC.")
        submitted = {doc.doc_type for doc in request.llc_docs if doc.doc_type}
        for doc_type in LlcDocType:
            if doc_type not in submitted:
                errors.append(f"Missing LLC document: {doc_type.value.replace('_', ' ').lower()}.")
    return errors


def missing_item_request(item: str) -> tuple[str, str]:
    return (
        f"Need {item}",
        f"Need {item} to continue reviewing your loan application. "
        "Please reply in the borrower portal with the requested information.",
    )


def create_application(
    request: CreateApplicationRequest,
    existing_ids: list[str],
    *,
    now: datetime,
) -> tuple[LoanApplication, NotificationPlan]:
    """Build a new stage-0 loan from a borrower request.

    Raises:
        ValidationFailedError: With every problem found in the request.
    """
    errors = validate_new_application(request)
    if errors:
        raise ValidationFailedError(errors)

    first = request.borrower_first_name.strip()
    middle = request.borrower_middle_name.strip()
    last = request.borrower_last_name.strip()
    email = request.borrower_email.strip().lower()
    llc_name = request.llc_name.strip()
    borrower_name = request.borrower_name.strip() or " ".join(
        part for part in (first, middle, last) if part
    )
    profile = normalize_profile(
        BorrowerProfile(
            first_name=first, middle_name=middle, last_name=last, email=email, llc_name=llc_name
        ),
        fallback_email=email,
        fallback_llc_name=llc_name,
        fallback_name=borrower_name,
    )

    details = None
    missing: list[str] = []
    if requires_purchase_details(request.type):
        details = request.purchase_details or PurchaseDetails()
        missing = details.missing_items()

    plan = NotificationPlan()
    communications = []
    for item in missing:
        subject, message = missing_item_request(item)
        communications.append(
            make_communication(
                from_party=CommunicationParty.LENDER,
                type=CommunicationType.REQUEST_INFO,
                subject=subject,
                message=message,
                now=now,
            )
        )
        plan.schedule(NotificationKind.REQUEST_INFO, subject=subject, message=message)
    plan.schedule(NotificationKind.SUBMISSION_RECEIVED)
    plan.schedule(NotificationKind.LENDER_NEW_REQUEST)

    loan = LoanApplication(
        id=next_loan_id(existing_ids, now),
        borrower_name=borrower_name,
        borrower_email=email,
        borrower_profile=profile,
        llc_name=llc_name,
        llc_state_recorded=request.llc_state_recorded.strip(),
        llc_same_as_on_file=request.llc_same_as_on_file,
        llc_documents=list(request.llc_docs),
        property=request.property.strip(),
        type=request.type.strip(),
        amount=request.amount,
        purchase_details=details,
        history=[HistoryMarker.APPLICATION_SUBMITTED.value],
        communications=communications,
        borrower_access=BorrowerAccess(status=BorrowerAccessStatus.NOT_CREATED, email=email),
        created_at=now,
        last_event_at=now,
    )
    logger.info(
        "Loan request %s created (%s, %d missing purchase items)", loan.id, loan.type, len(missing)
    )
    return loan, plan
