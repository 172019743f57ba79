# This project was developed with assistance from AI tools.
"""Underwriting conditions form.

The conditions form unlocks once the continuation intake is SUBMITTED. A
submission must cover every condition category; the caller persists the
document package (see ``document_store``) before ``record_conditions``
applies the form to the loan.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from db.enums import (
    CommunicationParty,
    CommunicationType,
    HistoryMarker,
    IntakeStatus,
    LlcDocType,
)

from ..core.errors import LockedError
from ..schemas.loan import (
    ConditionsForm,
    DocumentPackage,
    LoanApplication,
    is_valid_email,
)
from ..schemas.notifications import NotificationKind, NotificationPlan
from .decision_engine import to_number
from .workflow import make_communication

logger = logging.getLogger(__name__)

CONDITIONS_LOCKED_MESSAGE = "Conditions form unlocks after underwriting form is submitted."


@dataclass(frozen=True)
class LiquidityCategory:
    category: str
    label: str
    subcategories: tuple[tuple[str, str], ...]


LIQUIDITY_CATEGORIES = {
    option.category: option
    for option in (
        LiquidityCategory(
            "BANK_STATEMENTS",
            "Bank statements",
            (
                ("CHECKING_ACCOUNTS", "Checking accounts"),
                ("SAVINGS_ACCOUNTS", "Savings accounts"),
                ("MONEY_MARKET_ACCOUNTS", "Money market accounts"),
            ),
        ),
        LiquidityCategory(
            "BROKERAGE_INVESTMENT_ACCOUNTS",
            "Brokerage / investment accounts",
            (("STOCKS", "Stocks"), ("ETFS", "ETFs"), ("MUTUAL_FUNDS", "Mutual funds")),
        ),
        LiquidityCategory(
            "RETIREMENT_ACCOUNTS",
            "Retirement accounts",
            (
                ("RETIREMENT_401K", "401(k)"),
                ("RETIREMENT_IRA", "IRA"),
                ("RETIREMENT_ROTH_IRA", "Roth IRA"),
                ("BONDS", "Bonds"),
            ),
        ),
        LiquidityCategory(
            "LINES_OF_CREDIT_UNUSED",
            "Lines of credit (unused portion)",
            (
                ("HELOC", "HELOC"),
                ("BUSINESS_LINE_OF_CREDIT", "Business line of credit"),
                ("MARGIN_ACCOUNT", "Margin account"),
            ),
        ),
        LiquidityCategory(
            "CRYPTOCURRENCY",
            "Cryptocurrency",
            (("BITCOIN", "Bitcoin"), ("ETHEREUM", "Ethereum"), ("STABLECOINS", "Stablecoins")),
        ),
        LiquidityCategory(
            "CASH_VALUE_LIFE_INSURANCE",
            "Cash value life insurance",
            (("BORROWABLE_POLICY_VALUE", "Borrow against policy value"),),
        ),
    )
}


def liquidity_category_label(category: str | None) -> str:
    option = LIQUIDITY_CATEGORIES.get(category or "")
    return option.label if option else "Liquidity document"


def liquidity_subcategory_label(category: str | None, subcategory: str | None) -> str:
    option = LIQUIDITY_CATEGORIES.get(category or "")
    if option is None:
        return ""
    return dict(option.subcategories).get(subcategory or "", "")


def llc_doc_label(doc_type: str | None) -> str:
    if not doc_type:
        return "LLC document"
    try:
        return LlcDocType(doc_type).label
    except ValueError:
        return doc_type.replace("_", " ")


def validate_conditions(form: ConditionsForm) -> list[str]:
    """Every missing or invalid condition category, in form order."""
    errors = []
    if not form.credit_score or form.credit_score <= 0:
        errors.append("Credit score is required.")
    amount = to_number(form.proof_of_liquidity_amount)
    if amount is None or amount <= 0:
        errors.append("Proof of liquidity amount is required.")

    if not form.proof_of_liquidity_docs:
        errors.append("Upload at least one proof of liquidity document.")
    for index, doc in enumerate(form.proof_of_liquidity_docs, start=1):
        if doc.category not in LIQUIDITY_CATEGORIES:
            errors.append(f"Select a valid proof of liquidity category for document {index}.")
        elif not liquidity_subcategory_label(doc.category, doc.subcategory):
            errors.append(f"Select a valid proof of liquidity subcategory for document {index}.")

    submitted_types = {doc.doc_type for doc in form.llc_docs if doc.doc_type}
    for doc_type in LlcDocType:
        if doc_type not in submitted_types:
            errors.append(f"Upload LLC document: {doc_type.label}.")

    referral = form.referral
    if not (referral.name and referral.email and referral.phone):
        errors.append("Referral name, email, and phone are required.")
    elif not is_valid_email(referral.email):
        errors.append("Referral email must be valid.")

    if not form.past_projects:
        errors.append("At least one past project is required.")
    for index, project in enumerate(form.past_projects, start=1):
        if not project.property_address:
            errors.append(f"Past project {index} property address is required.")
        if not project.photos:
            errors.append(f"Past project {index} requires at least one photo.")

    if form.other_mortgage_loans_count is None or form.other_mortgage_loans_count < 0:
        errors.append("Current mortgage loans count with other lenders is required.")
    total = to_number(form.other_mortgage_total_amount)
    if total is None or total < 0:
        errors.append("Current mortgage loans total amount with other lenders is required.")
    return errors


def ensure_conditions_unlocked(loan: LoanApplication) -> None:
    if loan.underwriting_intake.status is not IntakeStatus.SUBMITTED:
        raise LockedError(CONDITIONS_LOCKED_MESSAGE)


def record_conditions(
    loan: LoanApplication,
    form: ConditionsForm,
    package: DocumentPackage,
    *,
    now: datetime,
) -> tuple[LoanApplication, NotificationPlan]:
    """Apply a validated conditions form whose documents are already stored."""
    previous = loan.conditions_form
    updated = loan.model_copy(deep=True)
    updated.conditions_form = form.model_copy(
        update={
            "submitted_at": (previous.submitted_at if previous else None) or now,
            "updated_at": now,
            "document_package": package,
            "reuse_meta": None,
        }
    )
    updated.communications.append(
        make_communication(
            from_party=CommunicationParty.BORROWER,
            type=CommunicationType.REQUEST_INFO,
            subject="Conditions form submitted",
            message=f"Borrower submitted conditions form for {loan.id}.",
            read_by_borrower=True,
            now=now,
        )
    )
    if HistoryMarker.CONDITIONS_FORM_SUBMITTED.value not in updated.history:
        updated.history.append(HistoryMarker.CONDITIONS_FORM_SUBMITTED.value)
    updated.last_event_at = now
    plan = NotificationPlan()
    plan.schedule(NotificationKind.LENDER_CONDITIONS_SUBMITTED)
    logger.info(
        "Conditions form recorded for loan %s (package %s, %d files)",
        loan.id,
        package.id,
        package.document_count,
    )
    return updated, plan
