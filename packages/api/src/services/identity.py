# This project was developed with assistance from AI tools.
"""Borrower identity normalization and liquidity-evidence rules.

Name matching is deliberately fuzzy: comparable names are trimmed,
lowercased and whitespace-collapsed, and two names "likely match" when one
contains the other. Every rule violation produces a message that names
exactly what the borrower must fix.
"""

import re
from datetime import UTC, datetime, timedelta

from db.enums import BorrowerAccessStatus

from ..schemas.loan import (
    BorrowerAccess,
    BorrowerProfile,
    LiquidityProofDoc,
    is_valid_email,
)

FRESHNESS_WINDOW = timedelta(days=30)

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_email(value: str | None) -> str:
    return (value or "").strip().lower()


def comparable_name(value: str | None) -> str:
    return _WHITESPACE_RE.sub(" ", (value or "").strip().lower())


def names_likely_match(left: str | None, right: str | None) -> bool:
    a, b = comparable_name(left), comparable_name(right)
    if not a or not b:
        return False
    return a == b or a in b or b in a


def split_name(name: str | None) -> tuple[str, str, str]:
    """Split a free-form name into (first, middle, last)."""
    tokens = (name or "").split()
    if not tokens:
        return "", "", ""
    if len(tokens) == 1:
        return tokens[0], "", ""
    return tokens[0], " ".join(tokens[1:-1]), tokens[-1]


def normalize_profile(
    profile: BorrowerProfile | None,
    *,
    fallback_email: str = "",
    fallback_llc_name: str = "",
    fallback_name: str = "",
) -> BorrowerProfile:
    """Fill identity gaps in ``profile`` from loan-level fallbacks."""
    source = profile or BorrowerProfile()
    first, middle, last = split_name(fallback_name)
    return source.model_copy(
        update={
            "first_name": source.first_name or first,
            "middle_name": source.middle_name or middle,
            "last_name": source.last_name or last,
            "llc_name": source.llc_name or fallback_llc_name.strip(),
            "email": source.email or fallback_email.strip(),
        }
    )


# ---------------------------------------------------------------------------
# Liquidity proof documents
# ---------------------------------------------------------------------------


def is_doc_fresh(doc: LiquidityProofDoc, reference_time: datetime) -> bool:
    if not doc.is_usable or doc.uploaded_at is None:
        return False
    return reference_time - doc.uploaded_at <= FRESHNESS_WINDOW


def usable_liquidity_docs(
    docs: list[LiquidityProofDoc],
    *,
    require_fresh: bool = False,
    reference_time: datetime | None = None,
) -> list[LiquidityProofDoc]:
    """Usable documents, newest upload first."""
    ref = reference_time or datetime.now(UTC)
    usable = [
        doc for doc in docs if doc.is_usable and (not require_fresh or is_doc_fresh(doc, ref))
    ]
    oldest = datetime.min.replace(tzinfo=UTC)
    return sorted(usable, key=lambda doc: doc.uploaded_at or oldest, reverse=True)


def latest_liquidity_upload(docs: list[LiquidityProofDoc]) -> datetime | None:
    stamps = [doc.uploaded_at for doc in docs if doc.is_usable and doc.uploaded_at]
    return max(stamps) if stamps else None


def liquidity_ownership_errors(
    profile: BorrowerProfile,
    *,
    require_fresh: bool = False,
    reference_time: datetime | None = None,
) -> list[str]:
    """Check that every usable statement belongs to the borrower, the LLC,
    or a fully-documented guarantor who is also an LLC member.
    """
    ref = reference_time or datetime.now(UTC)
    docs = usable_liquidity_docs(
        profile.liquidity_proof_docs, require_fresh=require_fresh, reference_time=ref
    )
    borrower_name = profile.full_name
    guarantor_names = {comparable_name(name) for name in profile.guarantors if name}

    errors: list[str] = []
    for doc in docs:
        label = doc.doc_type.label
        statement_name = doc.statement_name
        if not statement_name:
            errors.append(f"Name shown on {label} is required.")
            continue

        if names_likely_match(statement_name, borrower_name) or names_likely_match(
            statement_name, profile.llc_name
        ):
            continue

        if not doc.partner_is_guarantor:
            errors.append(f"Confirm {statement_name} is a guarantor for {label}.")
        if not doc.partner_is_llc_member:
            errors.append(f"Confirm {statement_name} is an LLC member for {label}.")
        if comparable_name(statement_name) not in guarantor_names:
            errors.append(f"Add {statement_name} as a guarantor before submitting underwriting.")
        contact = next(
            (
                c
                for c in profile.guarantor_contacts
                if comparable_name(c.full_name) == comparable_name(statement_name)
            ),
            None,
        )
        if contact is None or not contact.is_complete:
            errors.append(
                f"Add guarantor details for {statement_name}: "
                "first name, last name, email, and phone."
            )
        if not is_doc_fresh(doc, ref):
            errors.append(
                f"Re-upload {label} after confirming {statement_name} "
                "as guarantor and LLC member."
            )
    return errors


# ---------------------------------------------------------------------------
# Profile completeness and borrower access
# ---------------------------------------------------------------------------


def profile_validation_errors(profile: BorrowerProfile) -> list[str]:
    errors = []
    if not profile.first_name:
        errors.append("Borrower first name is required.")
    if not profile.last_name:
        errors.append("Borrower last name is required.")
    if not profile.llc_name:
        errors.append("Borrower LLC name is required.")
    if not is_valid_email(profile.email):
        errors.append("Valid borrower email is required.")
    if not profile.home_phone:
        errors.append("Home phone is required.")
    if not profile.work_phone:
        errors.append("Work phone is required.")
    if not profile.mobile_phone:
        errors.append("Mobile phone is required.")
    if not profile.date_of_birth:
        errors.append("Date of birth is required.")
    if not profile.social_security_number:
        errors.append("Social security number is required.")
    if not profile.civil_status:
        errors.append("Civil status is required.")
    if not profile.present_address.is_complete:
        errors.append("Present address is required.")
    if not profile.time_at_residence:
        errors.append("Time at residence is required.")
    if not profile.mailing_same_as_present and not profile.mailing_address.is_complete:
        errors.append("Mailing address is required when not same as present.")
    if not profile.no_business_address and not profile.business_address.is_complete:
        errors.append("Business address is required.")
    for number, contact in enumerate(profile.emergency_contacts[:3], start=1):
        if not (contact.name and contact.email and contact.phone):
            errors.append(f"Emergency contact {number} requires name, email, and phone.")
        elif not is_valid_email(contact.email):
            errors.append(f"Emergency contact {number} requires valid email.")
    return errors


def is_profile_complete(profile: BorrowerProfile) -> bool:
    return not profile_validation_errors(profile)


def resolve_access_status(access: BorrowerAccess, profile_complete: bool) -> BorrowerAccessStatus:
    """Derive access status from stored timestamps and profile completeness."""
    current = access.status
    if current is BorrowerAccessStatus.NOT_CREATED and access.created_at:
        current = BorrowerAccessStatus.ACCESS_CREATED
    if current is BorrowerAccessStatus.PROFILE_COMPLETED and not profile_complete:
        current = BorrowerAccessStatus.ACCESS_CREATED
    if current is BorrowerAccessStatus.ACCESS_CREATED and profile_complete:
        current = BorrowerAccessStatus.PROFILE_COMPLETED
    return current


def refresh_access(access: BorrowerAccess, profile: BorrowerProfile, now: datetime) -> BorrowerAccess:
    complete = is_profile_complete(profile)
    status = resolve_access_status(access, complete)
    completed_at = access.profile_completed_at
    if status is BorrowerAccessStatus.PROFILE_COMPLETED and completed_at is None:
        completed_at = now
    return access.model_copy(update={"status": status, "profile_completed_at": completed_at})
