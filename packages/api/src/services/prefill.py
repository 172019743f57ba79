# This project was developed with assistance from AI tools.
"""Underwriting prefill resolver.

Given a loan and every application belonging to the same borrower (matched
by normalized email), decide which prior attestations may be reused. Credit
score, liquidity amount and other-lender exposure expire 30 days after the
prior application was created; liquidity documents are fresh only when
uploaded within 30 days of now and owned by the borrower (or a documented
guarantor); entity data (LLC docs, referral, past projects) never expires.
"""

import logging
from datetime import datetime

from ..schemas.loan import (
    ConditionsForm,
    LoanApplication,
    ReuseMeta,
)
from ..schemas.prefill import (
    ActiveLoanWithUs,
    ConditionsPrefill,
    LlcOption,
    MortgageLoansOnFile,
    OnFile,
    UnderwritingPrefill,
)
from .identity import (
    FRESHNESS_WINDOW,
    comparable_name,
    latest_liquidity_upload,
    liquidity_ownership_errors,
    names_likely_match,
    normalize_email,
    normalize_profile,
    usable_liquidity_docs,
)

logger = logging.getLogger(__name__)

ACTIVE_LOAN_MIN_STAGE = 4


def related_applications(
    loan: LoanApplication, applications: list[LoanApplication]
) -> list[LoanApplication]:
    """Other applications by the same borrower."""
    email = normalize_email(loan.borrower_email)
    if not email:
        return []
    return [
        item
        for item in applications
        if item.id != loan.id and normalize_email(item.borrower_email) == email
    ]


def find_prior_application(
    loan: LoanApplication, applications: list[LoanApplication]
) -> LoanApplication | None:
    related = related_applications(loan, applications)
    if not related:
        return None
    return max(related, key=lambda item: item.created_at)


def is_new_borrower(loan: LoanApplication, applications: list[LoanApplication]) -> bool:
    return find_prior_application(loan, applications) is None


def estimate_monthly_interest(amount: float | None, annual_rate: float) -> float | None:
    if amount is None or amount <= 0:
        return None
    return round(amount * (annual_rate / 12), 2)


def active_loans_with_us(
    loan: LoanApplication,
    applications: list[LoanApplication],
    annual_rate: float,
    declared: dict[str, object] | None = None,
) -> list[ActiveLoanWithUs]:
    """Funded-or-later loans for this borrower, with declared or estimated payments."""
    declared = declared or {}
    result = []
    for item in related_applications(loan, applications):
        if item.current_stage_index < ACTIVE_LOAN_MIN_STAGE:
            continue
        update = declared.get(item.id)
        amount = item.amount if item.amount > 0 else None
        payment = getattr(update, "monthly_payment", None)
        if payment is None or payment <= 0:
            payment = estimate_monthly_interest(amount, annual_rate)
        result.append(
            ActiveLoanWithUs(
                loan_id=item.id,
                property=item.property,
                amount=amount,
                status=getattr(update, "status", ""),
                expected_completion_date=getattr(update, "expected_completion_date", ""),
                payoff_date=getattr(update, "payoff_date", ""),
                monthly_payment=payment,
                notes=getattr(update, "notes", ""),
            )
        )
    return result


def llc_options_on_file(
    loan: LoanApplication, applications: list[LoanApplication]
) -> list[LlcOption]:
    """De-duplicated LLC names this borrower has ever used, in first-seen order."""
    options: dict[str, LlcOption] = {}

    def add(name: str | None, state: str | None = "") -> None:
        clean = (name or "").strip()
        key = comparable_name(clean)
        if not key:
            return
        existing = options.get(key)
        if existing is None:
            options[key] = LlcOption(name=clean, state_recorded=(state or "").strip())
        elif not existing.state_recorded and state and state.strip():
            options[key] = existing.model_copy(update={"state_recorded": state.strip()})

    email = normalize_email(loan.borrower_email)
    same_borrower = [
        item for item in applications if email and normalize_email(item.borrower_email) == email
    ]
    for item in same_borrower:
        add(item.llc_name or item.borrower_profile.llc_name, item.llc_state_recorded)
        intake = item.underwriting_intake
        if intake.form_data is not None:
            add(intake.form_data.llc_name, intake.form_data.llc_state_recorded)
        for record in intake.submission_history:
            add(record.snapshot.llc_name, record.snapshot.llc_state_recorded)

    if not options:
        add(loan.borrower_profile.llc_name)
    return list(options.values())


def build_underwriting_prefill(
    loan: LoanApplication,
    applications: list[LoanApplication],
    *,
    now: datetime,
    annual_rate: float,
) -> UnderwritingPrefill:
    prior = find_prior_application(loan, applications)
    within = prior is not None and now - prior.created_at <= FRESHNESS_WINDOW
    prior_form = prior.underwriting_intake.form_data if prior else None
    prior_date = prior.created_at if prior else None

    def windowed(value, present: bool) -> OnFile:
        if not present:
            return OnFile.absent()
        return OnFile.fresh(value, prior_date) if within else OnFile.stale(value, prior_date)

    def durable(value, present: bool) -> OnFile:
        return OnFile.fresh(value, prior_date) if present else OnFile.absent()

    declared = {update.loan_id: update for update in (prior_form.active_loans if prior_form else [])}
    options = llc_options_on_file(loan, applications)
    preferred = (prior_form.llc_name if prior_form else "") or loan.borrower_profile.llc_name
    selected = next(
        (option for option in options if names_likely_match(option.name, preferred)),
        options[0] if options else None,
    )

    identity_source = (
        (prior_form.borrower_profile if prior_form else None)
        or (prior.borrower_profile if prior else None)
        or loan.borrower_profile
    )
    identity = normalize_profile(
        identity_source,
        fallback_email=loan.borrower_email,
        fallback_llc_name=selected.name if selected else "",
        fallback_name=loan.borrower_name,
    )
    if within:
        # Documents recorded without an upload time inherit the prior loan's date.
        identity = identity.model_copy(
            update={
                "liquidity_proof_docs": [
                    doc if doc.uploaded_at else doc.model_copy(update={"uploaded_at": prior_date})
                    for doc in identity.liquidity_proof_docs
                ]
            }
        )

    fresh_docs = usable_liquidity_docs(
        identity.liquidity_proof_docs, require_fresh=True, reference_time=now
    )
    ownership = liquidity_ownership_errors(identity, require_fresh=True, reference_time=now)
    latest_upload = latest_liquidity_upload(identity.liquidity_proof_docs)
    if fresh_docs and not ownership:
        liquidity_docs = OnFile.fresh(fresh_docs, latest_upload)
    elif usable_liquidity_docs(identity.liquidity_proof_docs):
        liquidity_docs = OnFile.stale(
            usable_liquidity_docs(identity.liquidity_proof_docs), latest_upload
        )
    else:
        liquidity_docs = OnFile.absent()

    credit = prior_form.credit_score if prior_form else None
    liquidity_amount = prior_form.proof_of_liquidity_amount if prior_form else ""
    lenders = prior_form.other_mortgage_lenders if prior_form else []
    monthly_interest = prior_form.other_mortgage_total_monthly_interest if prior_form else None
    mortgage_present = bool(lenders) and monthly_interest is not None and monthly_interest > 0
    referral = prior_form.referral if prior_form else None
    projects = prior_form.past_projects if prior_form else []
    llc_docs = prior_form.llc_docs if prior_form else []

    prefill = UnderwritingPrefill(
        is_new_borrower=prior is None,
        source_loan_id=prior.id if prior else None,
        within_freshness_window=within,
        credit_score=windowed(credit, credit is not None and credit > 0),
        liquidity_amount=windowed(liquidity_amount, bool(liquidity_amount)),
        liquidity_docs=liquidity_docs,
        mortgage_loans=windowed(
            MortgageLoansOnFile(lenders=lenders, total_monthly_interest=monthly_interest),
            mortgage_present,
        ),
        llc_docs=durable(llc_docs, bool(llc_docs)),
        referral=durable(referral, referral is not None and bool(referral.name)),
        past_projects=durable(projects, bool(projects)),
        active_loans_with_us=active_loans_with_us(loan, applications, annual_rate, declared),
        llc_options=options,
        selected_llc=selected,
        liquidity_ownership_errors=ownership,
        identity_on_file=identity,
    )
    logger.debug(
        "Prefill for %s: prior=%s within_window=%s",
        loan.id,
        prefill.source_loan_id,
        within,
    )
    return prefill


# ---------------------------------------------------------------------------
# Conditions form prefill
# ---------------------------------------------------------------------------


def _conditions_reference_time(item: LoanApplication) -> datetime:
    form = item.conditions_form
    return (form.reference_time if form else None) or item.last_event_at or item.created_at


def build_conditions_prefill(
    loan: LoanApplication, applications: list[LoanApplication], *, now: datetime
) -> ConditionsPrefill | None:
    """Seed a conditions form from the borrower's latest prior conditions submission."""
    candidates = [
        item
        for item in related_applications(loan, applications)
        if item.conditions_form is not None and item.conditions_form.has_content()
    ]
    if not candidates:
        return None
    source = max(candidates, key=_conditions_reference_time)
    reference = _conditions_reference_time(source)
    within = now - reference <= FRESHNESS_WINDOW
    form: ConditionsForm = source.conditions_form

    seeded = ConditionsForm(
        credit_score=form.credit_score if within else None,
        proof_of_liquidity_amount=form.proof_of_liquidity_amount if within else "",
        proof_of_liquidity_docs=form.proof_of_liquidity_docs if within else [],
        llc_docs=form.llc_docs,
        referral=form.referral,
        past_projects=form.past_projects,
        other_mortgage_loans_count=form.other_mortgage_loans_count if within else None,
        other_mortgage_total_amount=form.other_mortgage_total_amount if within else "",
        reuse_meta=ReuseMeta(
            source_loan_id=source.id, source_updated_at=reference, within_30_days=within
        ),
    )
    if not seeded.has_content():
        return None
    return ConditionsPrefill(form=seeded, within_30_days=within)
