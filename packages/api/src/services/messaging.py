# This project was developed with assistance from AI tools.
"""Borrower/lender message threads, lender comments, and borrower access.

Every function takes the current loan, returns an updated copy, and never
mutates its input.
"""

import uuid
from datetime import datetime

from db.enums import (
    BorrowerAccessStatus,
    CommunicationChannel,
    CommunicationParty,
    CommunicationType,
    PreApprovalDecision,
)

from ..core.errors import ConflictError, ValidationFailedError, WorkflowError
from ..schemas.loan import (
    Communication,
    LenderComment,
    LoanApplication,
    UploadedFile,
    is_valid_email,
)
from ..schemas.notifications import NotificationKind, NotificationPlan
from .identity import is_profile_complete, normalize_profile
from .workflow import make_communication

DEFAULT_LENDER_SUBJECT = "Message from lender"
DEFAULT_BORROWER_SUBJECT = "Borrower Inquiry"


def _require_text(value: str | None, field: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationFailedError([f"{field} is required"])
    return text


def _check_attachments(attachments: list[UploadedFile]) -> None:
    errors = []
    for file in attachments:
        if not file.name.strip():
            errors.append("each attachment requires a name")
        elif not file.data_url.startswith("data:"):
            errors.append("each attachment requires preview data")
    if errors:
        raise ValidationFailedError(errors)


def _resolve_thread(communications: list[Communication], requested: str | None) -> str:
    """Requested thread, else the latest lender request, else the latest message."""
    thread_id = (requested or "").strip()
    if not thread_id:
        by_newest = sorted(communications, key=lambda entry: entry.created_at, reverse=True)
        lender_request = next(
            (
                entry
                for entry in by_newest
                if entry.from_party is CommunicationParty.LENDER
                and entry.type is CommunicationType.REQUEST_INFO
            ),
            None,
        )
        latest = lender_request or (by_newest[0] if by_newest else None)
        if latest is None:
            raise WorkflowError("No request thread found to reply to.")
        thread_id = latest.thread_id
    if not any(entry.thread_id == thread_id for entry in communications):
        raise WorkflowError("Invalid threadId for reply.")
    return thread_id


def _thread_subject(communications: list[Communication], thread_id: str) -> str:
    in_thread = [entry for entry in communications if entry.thread_id == thread_id]
    root = next((e for e in in_thread if e.type is CommunicationType.REQUEST_INFO), None)
    root = root or (in_thread[0] if in_thread else None)
    return root.subject if root else ""


# -- Lender side --


def add_lender_comment(
    loan: LoanApplication, comment: str, *, now: datetime, created_by: str = "LENDER"
) -> LoanApplication:
    text = _require_text(comment, "comment")
    updated = loan.model_copy(deep=True)
    updated.lender_comments.append(
        LenderComment(
            id=f"comment-{uuid.uuid4().hex[:12]}",
            message=text,
            created_at=now,
            created_by=created_by.strip() or "LENDER",
        )
    )
    updated.last_event_at = now
    return updated


def send_lender_message(
    loan: LoanApplication, message: str, *, subject: str = "", now: datetime
) -> tuple[LoanApplication, NotificationPlan]:
    """Message the borrower by email; the message also lands in the portal log."""
    text = _require_text(message, "message")
    clean_subject = subject.strip()
    updated = loan.model_copy(deep=True)
    updated.communications.append(
        make_communication(
            from_party=CommunicationParty.LENDER,
            channel=CommunicationChannel.EMAIL,
            type=CommunicationType.REQUEST_INFO,
            subject=clean_subject or DEFAULT_LENDER_SUBJECT,
            message=text,
            now=now,
        )
    )
    updated.last_event_at = now
    plan = NotificationPlan()
    plan.schedule(
        NotificationKind.DIRECT_MESSAGE,
        subject=clean_subject or f"Message from lender: Loan {loan.id}",
        message=text,
    )
    return updated, plan


def lender_reply(
    loan: LoanApplication,
    message: str,
    *,
    thread_id: str | None = None,
    attachments: list[UploadedFile] | None = None,
    now: datetime,
) -> LoanApplication:
    text = _require_text(message, "message")
    files = attachments or []
    _check_attachments(files)
    resolved = _resolve_thread(loan.communications, thread_id)
    root_subject = _thread_subject(loan.communications, resolved)
    updated = loan.model_copy(deep=True)
    updated.communications.append(
        make_communication(
            from_party=CommunicationParty.LENDER,
            type=CommunicationType.REPLY,
            subject=f"Re: {root_subject}" if root_subject else "Lender reply",
            message=text,
            thread_id=resolved,
            attachments=files,
            now=now,
        )
    )
    updated.last_event_at = now
    return updated


# -- Borrower side --


def borrower_reply(
    loan: LoanApplication,
    message: str,
    *,
    thread_id: str | None = None,
    attachments: list[UploadedFile] | None = None,
    now: datetime,
) -> tuple[LoanApplication, NotificationPlan]:
    """Reply on a thread and mark every lender message read."""
    text = _require_text(message, "message")
    files = attachments or []
    _check_attachments(files)
    resolved = _resolve_thread(loan.communications, thread_id)
    root_subject = _thread_subject(loan.communications, resolved)
    updated = loan.model_copy(deep=True)
    for entry in updated.communications:
        if entry.from_party is CommunicationParty.LENDER:
            entry.read_by_borrower = True
    subject = f"Re: {root_subject}" if root_subject else "Borrower reply"
    updated.communications.append(
        make_communication(
            from_party=CommunicationParty.BORROWER,
            type=CommunicationType.REPLY,
            subject=subject,
            message=text,
            thread_id=resolved,
            attachments=files,
            read_by_borrower=True,
            now=now,
        )
    )
    updated.last_event_at = now
    plan = NotificationPlan()
    plan.schedule(NotificationKind.LENDER_BORROWER_MESSAGE, subject=subject, message=text)
    return updated, plan


def borrower_message(
    loan: LoanApplication,
    message: str,
    *,
    subject: str = "",
    attachments: list[UploadedFile] | None = None,
    now: datetime,
) -> tuple[LoanApplication, NotificationPlan]:
    text = _require_text(message, "message")
    files = attachments or []
    _check_attachments(files)
    clean_subject = subject.strip() or DEFAULT_BORROWER_SUBJECT
    updated = loan.model_copy(deep=True)
    updated.communications.append(
        make_communication(
            from_party=CommunicationParty.BORROWER,
            type=CommunicationType.REQUEST_INFO,
            subject=clean_subject,
            message=text,
            attachments=files,
            read_by_borrower=True,
            now=now,
        )
    )
    updated.last_event_at = now
    plan = NotificationPlan()
    plan.schedule(NotificationKind.LENDER_BORROWER_MESSAGE, subject=clean_subject, message=text)
    return updated, plan


def create_borrower_access(
    loan: LoanApplication, email: str, *, now: datetime
) -> LoanApplication:
    """Record portal access for the borrower; the profile decides the resulting status."""
    clean_email = email.strip().lower()
    if not is_valid_email(clean_email):
        raise ValidationFailedError(["A valid email is required to create borrower access."])
    if loan.pre_approval_decision is PreApprovalDecision.DECLINE:
        raise ConflictError("Borrower access cannot be created for a declined request.")

    profile = normalize_profile(
        loan.borrower_profile,
        fallback_email=loan.borrower_email,
        fallback_llc_name=loan.llc_name,
        fallback_name=loan.borrower_name,
    )
    complete = is_profile_complete(profile)
    status = (
        BorrowerAccessStatus.PROFILE_COMPLETED if complete else BorrowerAccessStatus.ACCESS_CREATED
    )
    access = loan.borrower_access
    updated = loan.model_copy(deep=True)
    updated.borrower_email = clean_email
    updated.borrower_profile = profile.model_copy(update={"email": clean_email})
    updated.borrower_access = access.model_copy(
        update={
            "status": status,
            "email": clean_email,
            "invited_at": access.invited_at or now,
            "created_at": access.created_at or now,
            "profile_completed_at": (
                access.profile_completed_at or now if complete else access.profile_completed_at
            ),
        }
    )
    updated.communications.append(
        make_communication(
            from_party=CommunicationParty.BORROWER,
            type=CommunicationType.REPLY,
            subject="Borrower access created",
            message=(
                f"Borrower created portal access and profile is complete for {loan.id}."
                if complete
                else f"Borrower created portal access for {loan.id}. "
                "Profile completion is still required."
            ),
            read_by_borrower=True,
            now=now,
        )
    )
    updated.last_event_at = now
    return updated
