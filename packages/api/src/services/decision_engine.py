# This project was developed with assistance from AI tools.
"""Decision and risk engine.

Derives leverage ratios, the liquidity-coverage requirement, a risk flag
list, and a quick Approve / Conditional / Decline recommendation from a
loan's purchase details, continuation form, conditions form and the
configured rule set. Every output is a pure function of its inputs plus the
supplied ``now``.

Liquidity coverage requirement::

    6-month interest (amount x rate / 12 x months)
    + service fee + document prep fee + closing cost estimate
    + with-us active loan payments x months
    + external lender exposure
    + origination fee (amount / 100 x pct)
    + prepaid interest (per diem x days to the 1st of the following month)

External exposure prefers the borrower-declared total amount, then the
declared monthly interest, then an estimate scaled by a configurable factor.
"""

import math
import re
from datetime import UTC, date, datetime, timedelta

from db.enums import (
    PURCHASE_DETAIL_LOAN_TYPES,
    AssessmentRecommendation,
    LlcDocType,
    QuickRecommendation,
    RecordSearchStatus,
    RiskSeverity,
    RiskState,
)

from ..schemas.decision import (
    AiAssessment,
    DecisionMetrics,
    DecisionSummary,
    LiquidityCoverage,
    QuickDecision,
    RecordSearchItem,
    RiskFlag,
    UnderwritingRules,
)
from ..schemas.loan import (
    IntakeSubmission,
    LoanApplication,
    PurchaseDetails,
)
from .identity import (
    liquidity_ownership_errors,
    normalize_email,
    normalize_profile,
    usable_liquidity_docs,
)

ACCEPTABLE_ASSESSMENT_LTV = 0.75
ACTIVE_LOAN_MIN_STAGE = 4

_NON_NUMERIC_RE = re.compile(r"[^0-9.\-]")
_ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")


# ---------------------------------------------------------------------------
# Parsing and formatting
# ---------------------------------------------------------------------------


def to_number(value) -> float | None:
    """Parse a user-entered amount such as "$250,000"; None when not numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value) if math.isfinite(value) else None
    cleaned = _NON_NUMERIC_RE.sub("", str(value))
    if not cleaned:
        return None
    try:
        parsed = float(cleaned)
    except ValueError:
        return None
    return parsed if math.isfinite(parsed) else None


def format_percent(value: float | None) -> str:
    if value is None:
        return "N/A"
    return f"{value * 100:.1f}%"


def format_currency(value: float | None) -> str:
    if value is None:
        return "N/A"
    rounded = int(round(value))
    sign = "-" if rounded < 0 else ""
    return f"{sign}${abs(rounded):,}"


def parse_closing_date(value: str | None) -> date | None:
    """Parse a target closing date as a UTC calendar day."""
    text = (value or "").strip()
    if not text:
        return None
    match = _ISO_DATE_RE.match(text)
    if match:
        try:
            return date(int(match[1]), int(match[2]), int(match[3]))
        except ValueError:
            return None
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(UTC)
    return parsed.date()


def days_to_first_of_following_month(value: str | None) -> int | None:
    closing = parse_closing_date(value)
    if closing is None:
        return None
    if closing.month == 12:
        first = date(closing.year + 1, 1, 1)
    else:
        first = date(closing.year, closing.month + 1, 1)
    return max(0, (first - closing).days)


def days_until(value: str | None, now: datetime) -> int | None:
    closing = parse_closing_date(value)
    if closing is None:
        return None
    target = datetime(closing.year, closing.month, closing.day, tzinfo=UTC)
    return math.ceil((target - now) / timedelta(days=1))


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def requires_purchase_details(loan_type: str | None) -> bool:
    return loan_type in PURCHASE_DETAIL_LOAN_TYPES


# ---------------------------------------------------------------------------
# Building blocks
# ---------------------------------------------------------------------------


def leverage(amount: float, details: PurchaseDetails | None):
    """Return (price, rehab, arv, total cost, LTV, LTC, cash to close)."""
    price = to_number(details.purchase_price) if details else None
    rehab = to_number(details.rehab_budget) if details else None
    arv = to_number(details.arv) if details else None
    total = price + rehab if price is not None and rehab is not None else None
    ltv = amount / arv if arv is not None and arv > 0 else None
    ltc = amount / total if total is not None and total > 0 else None
    cash_to_close = max(total - amount, 0) if total is not None else None
    return price, rehab, arv, total, ltv, ltc, cash_to_close


def with_us_monthly_payments(
    loan: LoanApplication,
    applications: list[LoanApplication],
    continuation: IntakeSubmission | None,
    monthly_rate: float,
) -> float:
    """Sum of declared (or estimated) monthly payments on this borrower's other loans."""
    declared = {u.loan_id: u for u in (continuation.active_loans if continuation else [])}
    if declared:
        candidates = [item for item in applications if item.id in declared]
    else:
        email = normalize_email(loan.borrower_email)
        candidates = [
            item
            for item in applications
            if email
            and item.id != loan.id
            and normalize_email(item.borrower_email) == email
            and item.current_stage_index >= ACTIVE_LOAN_MIN_STAGE
        ]
    seen: set[str] = set()
    total = 0.0
    for item in candidates:
        if item.id == loan.id or item.id in seen:
            continue
        seen.add(item.id)
        update = declared.get(item.id)
        payment = update.monthly_payment if update else None
        if payment is not None and payment > 0:
            total += payment
        elif item.amount > 0:
            total += item.amount * monthly_rate
    return total


def compute_liquidity_coverage(
    *,
    loan_amount: float,
    liquidity_amount: float | None,
    with_us_monthly_total: float,
    other_lender_loan_count: int,
    declared_monthly_interest: float | None,
    declared_total_amount: float | None,
    target_closing_date: str | None,
    rules: UnderwritingRules,
) -> LiquidityCoverage:
    months = rules.liquidity_months
    monthly_rate = rules.assumed_annual_interest_rate / 12
    six_month_interest = loan_amount * monthly_rate * months if loan_amount > 0 else 0
    estimated_other_monthly = (
        other_lender_loan_count
        * loan_amount
        * monthly_rate
        * rules.estimated_other_lender_monthly_payment_factor
        if loan_amount > 0
        else 0
    )
    with_us_exposure = with_us_monthly_total * months

    if declared_total_amount is not None and declared_total_amount > 0:
        external_exposure = declared_total_amount * months
        external_segment = (
            f"External (borrower-provided amount): {format_currency(declared_total_amount)} "
            f"x {months} = {format_currency(external_exposure)}"
        )
        external_note = (
            "External-loan exposure uses the borrower-provided other mortgage amount from "
            "conditions form and applies a 6-month multiplier."
        )
    elif declared_monthly_interest is not None and declared_monthly_interest > 0:
        external_exposure = declared_monthly_interest * months
        external_segment = (
            f"External (borrower-provided monthly): {format_currency(declared_monthly_interest)} "
            f"x {months} = {format_currency(external_exposure)}"
        )
        external_note = (
            "External-loan monthly payments use the borrower-provided total monthly interest value."
        )
    else:
        external_exposure = estimated_other_monthly * months
        external_segment = (
            f"External (estimated): {format_currency(estimated_other_monthly)} "
            f"x {months} = {format_currency(external_exposure)}"
        )
        factor_pct = round(rules.estimated_other_lender_monthly_payment_factor * 100)
        external_note = (
            f"External-loan monthly payments are modeled at {factor_pct}% of the "
            "current-loan monthly-interest estimate."
        )

    origination_fee = (
        (loan_amount / 100) * rules.origination_fee_percent if loan_amount > 0 else 0
    )
    basis = rules.per_diem_day_count_basis
    prepaid_days = days_to_first_of_following_month(target_closing_date) or 0
    prepaid_rate_pct = rules.prepaid_interest_annual_rate * 100
    per_diem = ((loan_amount / 100) * prepaid_rate_pct) / basis if loan_amount > 0 else 0
    prepaid_interest = per_diem * prepaid_days

    required = (
        six_month_interest
        + rules.monthly_service_fee
        + rules.document_preparation_fee
        + rules.closing_cost_estimate
        + with_us_exposure
        + external_exposure
        + origination_fee
        + prepaid_interest
    )
    has_liquidity = liquidity_amount is not None and required > 0
    coverage_ratio = liquidity_amount / required if has_liquidity else None
    remaining = liquidity_amount - required if has_liquidity else None

    annual_pct = round(rules.assumed_annual_interest_rate * 100)
    formula = (
        f"Required Liquidity = 6-Month Interest ({format_currency(loan_amount)} x {annual_pct}% / 12 "
        f"x {months} = {format_currency(six_month_interest)}) + "
        f"Service Fee ({format_currency(rules.monthly_service_fee)}) + "
        f"Document Preparation Fee ({format_currency(rules.document_preparation_fee)}) + "
        f"Closing Cost Estimate ({format_currency(rules.closing_cost_estimate)}) + "
        f"Sum of Other-Loan Monthly Payments ({format_currency(with_us_monthly_total)} x {months} "
        f"= {format_currency(with_us_exposure)}) + "
        f"Total Other Mortgage Exposure ({external_segment}) + "
        f"Origination Fee (((Loan Amount / 100) x {rules.origination_fee_percent:g}) "
        f"= {format_currency(origination_fee)}) + "
        f"Prepaid Interest (Per Diem (((Loan Amount / 100) x {prepaid_rate_pct:g}) / {basis}) "
        f"= {format_currency(per_diem)}; {_plural(prepaid_days, 'day')} "
        f"= {format_currency(prepaid_interest)}) = {format_currency(required)}"
    )
    assumption = " ".join(
        [
            f"Uses a fixed {annual_pct}% annual interest assumption for monthly-interest estimates.",
            "Origination fee is modeled as ((loan amount / 100) x "
            f"{rules.origination_fee_percent:g}).",
            f"Prepaid interest uses per diem (((loan amount / 100) x {prepaid_rate_pct:g}) / {basis}) "
            "multiplied by days from target closing date to the first day of the following month.",
            "When a with-us monthly payment is not provided, it is estimated from that loan amount.",
            external_note,
        ]
    )

    return LiquidityCoverage(
        formula=formula,
        assumption_note=assumption,
        available_liquidity=liquidity_amount,
        required_liquidity=required if required > 0 else None,
        monthly_interest_six_month=six_month_interest,
        service_fee=rules.monthly_service_fee,
        document_preparation_fee=rules.document_preparation_fee,
        closing_cost_estimate=rules.closing_cost_estimate,
        with_us_monthly_payment_total=with_us_monthly_total,
        with_us_exposure=with_us_exposure,
        estimated_other_lender_exposure=external_exposure,
        other_lender_loan_count=other_lender_loan_count,
        other_loans_monthly_payments_six_month=with_us_exposure + external_exposure,
        origination_fee=origination_fee,
        per_diem_day_count_basis=basis,
        prepaid_interest_per_diem=per_diem,
        prepaid_interest_days=prepaid_days,
        prepaid_interest=prepaid_interest,
        coverage_ratio=coverage_ratio,
        remaining_liquidity=remaining,
        is_enough=remaining >= 0 if remaining is not None else None,
    )


def build_quick_decision(
    *,
    credit_score: int | None,
    ltv: float | None,
    flags: list[RiskFlag],
    coverage: LiquidityCoverage | None,
    rules: UnderwritingRules,
) -> QuickDecision:
    issues = [flag for flag in flags if flag.state is RiskState.ISSUE]
    pending = [flag for flag in flags if flag.state is RiskState.PENDING]
    high_count = sum(1 for flag in flags if flag.severity is RiskSeverity.HIGH)

    if (
        (credit_score is not None and credit_score < rules.decline_credit_score)
        or (ltv is not None and ltv > rules.decline_ltv)
        or high_count >= 2
    ):
        recommendation = QuickRecommendation.DECLINE
    elif issues or pending:
        recommendation = QuickRecommendation.CONDITIONAL
    else:
        recommendation = QuickRecommendation.APPROVE

    reasons = []
    if credit_score is not None:
        if credit_score >= rules.min_credit_score:
            reasons.append(f"Credit score {credit_score} meets minimum threshold")
        else:
            reasons.append(f"Credit score {credit_score} is below preferred threshold")
    else:
        reasons.append("Credit score is missing")

    if ltv is not None:
        verdict = "is within" if ltv <= rules.max_ltv else "exceeds"
        reasons.append(f"LTV {format_percent(ltv)} {verdict} policy limit")
    else:
        reasons.append("LTV cannot be computed from current inputs")

    if coverage is not None and coverage.is_enough is not None:
        if coverage.is_enough:
            reasons.append(
                f"Liquidity covers modeled exposure "
                f"({format_percent(coverage.coverage_ratio)} coverage ratio)"
            )
        else:
            shortfall = abs(coverage.remaining_liquidity or 0)
            reasons.append(f"Liquidity shortfall of {format_currency(shortfall)} vs modeled exposure")
    else:
        reasons.append("Liquidity coverage could not be modeled from current data")

    conditions = list(
        dict.fromkeys(
            flag.label for flag in flags if flag.state in (RiskState.ISSUE, RiskState.PENDING)
        )
    )
    return QuickDecision(recommendation=recommendation, reasons=reasons[:3], conditions=conditions)


def build_ai_assessment(loan: LoanApplication) -> AiAssessment:
    details = loan.purchase_details
    _, _, _, _, ltv, ltc, _ = leverage(loan.amount, details)
    if details is not None:
        docs_score = 25 * sum(
            1
            for group in (
                details.comps_files,
                details.property_photos,
                details.purchase_contract_files,
                details.scope_of_work_files,
            )
            if group
        )
    else:
        docs_score = 60
    ltv_ok = ltv is not None and ltv <= ACCEPTABLE_ASSESSMENT_LTV
    complete = details is not None and not details.missing_items()
    confidence = (50 if ltv_ok else 0) + (50 if complete else 0)

    if confidence == 100:
        recommendation = AssessmentRecommendation.PRE_APPROVE
    elif not ltv_ok:
        recommendation = AssessmentRecommendation.DECLINE
    else:
        recommendation = AssessmentRecommendation.REVIEW

    reasons = [
        "LTV: N/A" if ltv is None else f"LTV: {format_percent(ltv)} ({'Pass' if ltv_ok else 'Fail'})",
        f"Application: {'Complete' if complete else 'Incomplete'}",
        f"Score: {confidence}/100",
    ]
    return AiAssessment(
        recommendation=recommendation,
        confidence=confidence,
        reasons=reasons,
        ltc=ltc,
        arv_ltv=ltv,
        docs_score=docs_score,
    )


# ---------------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------------


def build_decision_summary(
    loan: LoanApplication,
    applications: list[LoanApplication],
    rules: UnderwritingRules,
    *,
    now: datetime,
) -> DecisionSummary:
    """Compute metrics, liquidity coverage, risk flags and the quick decision."""
    intake = loan.underwriting_intake
    continuation = intake.form_data
    conditions = loan.conditions_form
    details = loan.purchase_details

    amount = loan.amount if loan.amount > 0 else 0.0
    price, rehab, arv, total_cost, ltv, ltc, cash_to_close = leverage(amount, details)

    if continuation is not None and continuation.credit_score is not None:
        credit_score = continuation.credit_score
    else:
        credit_score = conditions.credit_score if conditions else None

    liquidity = to_number(continuation.proof_of_liquidity_amount) if continuation else None
    if liquidity is None and conditions is not None:
        liquidity = to_number(conditions.proof_of_liquidity_amount)
    liquidity_ratio = liquidity / amount if liquidity is not None and amount > 0 else None

    monthly_rate = rules.assumed_annual_interest_rate / 12
    with_us_total = with_us_monthly_payments(loan, applications, continuation, monthly_rate)

    if continuation is not None and continuation.other_mortgage_loans_count is not None:
        declared_count = max(continuation.other_mortgage_loans_count, 0)
    elif conditions is not None and conditions.other_mortgage_loans_count is not None:
        declared_count = max(conditions.other_mortgage_loans_count, 0)
    else:
        declared_count = 0
    listed_count = (
        len(continuation.other_mortgage_lenders) + len(continuation.new_mortgage_lenders)
        if continuation
        else 0
    )
    other_count = max(declared_count, listed_count)

    coverage = compute_liquidity_coverage(
        loan_amount=amount,
        liquidity_amount=liquidity,
        with_us_monthly_total=with_us_total,
        other_lender_loan_count=other_count,
        declared_monthly_interest=(
            continuation.other_mortgage_total_monthly_interest if continuation else None
        ),
        declared_total_amount=(
            to_number(conditions.other_mortgage_total_amount) if conditions else None
        ),
        target_closing_date=details.target_closing_date if details else None,
        rules=rules,
    )
    days_to_close = days_until(details.target_closing_date if details else None, now)

    profile = normalize_profile(
        (continuation.borrower_profile if continuation else None) or loan.borrower_profile,
        fallback_email=loan.borrower_email,
        fallback_llc_name=(continuation.llc_name if continuation else "") or loan.llc_name,
        fallback_name=loan.borrower_name,
    )
    has_liquidity_docs = bool(usable_liquidity_docs(profile.liquidity_proof_docs))
    ownership_errors = liquidity_ownership_errors(profile, reference_time=now)

    llc_doc_types = {
        doc.doc_type
        for doc in [
            *(continuation.llc_docs if continuation else []),
            *(conditions.llc_docs if conditions else []),
        ]
        if doc.doc_type is not None
    }

    flags: list[RiskFlag] = []

    def flag(id_, label, detail, severity: RiskSeverity, state: RiskState) -> None:
        flags.append(RiskFlag(id=id_, label=label, detail=detail, severity=severity, state=state))

    high, medium, low = RiskSeverity.HIGH, RiskSeverity.MEDIUM, RiskSeverity.LOW
    issue, pending = RiskState.ISSUE, RiskState.PENDING

    if requires_purchase_details(loan.type):
        if not (details and details.comps_files):
            flag("missing-comps", "Missing COMPS", "Borrower has not uploaded COMPS.", high, issue)
        if not (details and details.property_photos):
            flag(
                "missing-photos",
                "Missing Property Photos",
                "No subject property photos uploaded.",
                medium,
                issue,
            )
        if not (details and details.purchase_contract_files):
            flag(
                "missing-contract",
                "Missing Purchase Contract",
                "Purchase contract is required for review.",
                high,
                issue,
            )
        if not (details and details.scope_of_work_files):
            flag(
                "missing-scope",
                "Missing Scope of Work",
                "Itemized rehab scope has not been uploaded.",
                high,
                issue,
            )

    if continuation is None:
        flag(
            "continuation-not-submitted",
            "Continuation not submitted",
            "Borrower continuation form is required before final underwriting decision.",
            high,
            pending,
        )
    else:
        for doc_type in LlcDocType:
            if doc_type not in llc_doc_types:
                flag(
                    f"missing-llc-{doc_type.value.lower()}",
                    f"Missing {doc_type.value.replace('_', ' ')}",
                    "Required LLC documentation is incomplete.",
                    medium,
                    issue,
                )
        if not credit_score:
            flag(
                "missing-credit",
                "Credit score missing",
                "No credit score available from continuation form.",
                high,
                issue,
            )
        if not liquidity:
            flag(
                "missing-liquidity",
                "Liquidity proof missing",
                "Updated liquidity details are required for underwriting review.",
                medium,
                pending,
            )
        if not has_liquidity_docs:
            flag(
                "missing-liquidity-documents",
                "Liquidity documents missing",
                "Borrower profile must include at least one proof of liquidity document.",
                medium,
                pending,
            )
        if ownership_errors:
            flag(
                "liquidity-statement-ownership",
                "Liquidity statement ownership mismatch",
                ownership_errors[0],
                medium,
                pending,
            )
        if continuation.llc_name and profile.llc_name and continuation.llc_name != profile.llc_name:
            flag(
                "entity-mismatch",
                "Entity ownership mismatch",
                "Borrower profile entity and continuation LLC name do not match.",
                medium,
                pending,
            )

    if ltv is not None and ltv > rules.max_ltv:
        flag(
            "high-ltv",
            "High leverage (LTV)",
            f"LTV {format_percent(ltv)} exceeds policy threshold {format_percent(rules.max_ltv)}.",
            high,
            issue,
        )
    if ltc is not None and ltc > rules.max_ltc:
        flag(
            "high-ltc",
            "High leverage (LTC)",
            f"LTC {format_percent(ltc)} exceeds policy threshold {format_percent(rules.max_ltc)}.",
            medium,
            issue,
        )
    if credit_score is not None and credit_score < rules.min_credit_score:
        flag(
            "low-credit",
            "Low credit score",
            f"Credit score {credit_score} is below preferred threshold {rules.min_credit_score}.",
            high,
            issue,
        )
    if liquidity_ratio is not None and liquidity_ratio < rules.min_liquidity_to_loan_ratio:
        flag(
            "low-reserves",
            "Low reserves",
            f"Liquidity is {format_percent(liquidity_ratio)} of requested loan amount.",
            medium,
            issue,
        )
    if other_count > rules.max_other_mortgage_loans:
        flag(
            "high-other-loan-count",
            "High number of other mortgage loans",
            f"Other mortgage loans ({other_count}) exceed threshold "
            f"{rules.max_other_mortgage_loans}.",
            medium,
            pending,
        )
    if coverage.is_enough is False:
        flag(
            "liquidity-coverage-shortfall",
            "Liquidity does not cover combined exposure",
            f"Available liquidity {format_currency(liquidity)} vs modeled requirement "
            f"{format_currency(coverage.required_liquidity)} "
            f"(shortfall {format_currency(abs(coverage.remaining_liquidity or 0))}).",
            high,
            issue,
        )
    if days_to_close is not None and days_to_close <= rules.short_closing_timeline_days:
        flag(
            "short-closing",
            "Short closing timeline",
            f"Target closing is in {_plural(days_to_close, 'day')}.",
            medium,
            pending,
        )
    if days_to_close is not None and days_to_close < 0:
        flag(
            "closing-date-past",
            "Closing timeline expired",
            "Target closing date is in the past and must be updated.",
            high,
            issue,
        )

    record_search = _record_search(
        has_contract=bool(details and details.purchase_contract_files),
        has_comps_and_arv=bool(details and details.comps_files and arv),
        has_all_llc_docs=all(doc_type in llc_doc_types for doc_type in LlcDocType),
        has_continuation=continuation is not None,
        liquidity=liquidity,
        has_liquidity_docs=has_liquidity_docs,
        ownership_errors=ownership_errors,
        updated_at=intake.submitted_at if continuation else None,
    )
    open_checks = sum(1 for item in record_search if item.status is not RecordSearchStatus.COMPLETE)
    if open_checks:
        flag(
            "record-search-pending",
            "Pending record search items",
            f"{_plural(open_checks, 'record check')} still pending.",
            low,
            pending,
        )

    quick = build_quick_decision(
        credit_score=credit_score, ltv=ltv, flags=flags, coverage=coverage, rules=rules
    )
    return DecisionSummary(
        loan_id=loan.id,
        generated_at=now,
        pre_approval_decision=loan.pre_approval_decision,
        metrics=DecisionMetrics(
            loan_amount=amount,
            purchase_price=price,
            rehab_budget=rehab,
            arv=arv,
            total_project_cost=total_cost,
            ltv=ltv,
            ltc=ltc,
            borrower_cash_to_close=cash_to_close,
            credit_score=credit_score,
            liquidity_amount=liquidity,
            liquidity_ratio=liquidity_ratio,
            days_until_closing=days_to_close,
            other_lender_loan_count=other_count,
        ),
        liquidity_coverage=coverage,
        risk_flags=flags,
        record_search=record_search,
        quick_decision=quick,
        ai_assessment=build_ai_assessment(loan),
        issue_count=sum(1 for f in flags if f.state is RiskState.ISSUE),
        pending_count=sum(1 for f in flags if f.state is RiskState.PENDING),
        high_risk_count=sum(1 for f in flags if f.severity is RiskSeverity.HIGH),
    )


def _record_search(
    *,
    has_contract: bool,
    has_comps_and_arv: bool,
    has_all_llc_docs: bool,
    has_continuation: bool,
    liquidity: float | None,
    has_liquidity_docs: bool,
    ownership_errors: list[str],
    updated_at: datetime | None,
) -> list[RecordSearchItem]:
    complete, in_review, pending = (
        RecordSearchStatus.COMPLETE,
        RecordSearchStatus.IN_REVIEW,
        RecordSearchStatus.PENDING,
    )
    if not liquidity:
        liquidity_note = "No liquidity value submitted."
    elif not has_liquidity_docs:
        liquidity_note = (
            "Liquidity amount submitted, but required profile proof documents are missing."
        )
    elif ownership_errors:
        liquidity_note = ownership_errors[0]
    else:
        liquidity_note = (
            "Liquidity amount and required profile proofs are submitted; "
            "pending underwriting verification."
        )
    liquidity_ready = bool(liquidity) and has_liquidity_docs and not ownership_errors

    if has_all_llc_docs:
        entity_status = complete
    else:
        entity_status = in_review if has_continuation else pending

    return [
        RecordSearchItem(
            id="title-search",
            label="Title Search",
            status=complete if has_contract else pending,
            note=(
                "Purchase contract on file for title chain review."
                if has_contract
                else "Awaiting purchase contract."
            ),
            updated_at=updated_at,
        ),
        RecordSearchItem(
            id="valuation-comps",
            label="Valuation & COMPS",
            status=complete if has_comps_and_arv else pending,
            note=(
                "COMPS and ARV values submitted."
                if has_comps_and_arv
                else "COMPS or ARV data missing for valuation validation."
            ),
            updated_at=updated_at,
        ),
        RecordSearchItem(
            id="entity-standing",
            label="Entity Standing Check",
            status=entity_status,
            note=(
                "Certificate of good standing, OA, articles, and EIN are present."
                if has_all_llc_docs
                else "Entity package is incomplete or pending review."
            ),
            updated_at=updated_at,
        ),
        RecordSearchItem(
            id="liquidity-verification",
            label="Liquidity Verification",
            status=in_review if liquidity_ready else pending,
            note=liquidity_note,
            updated_at=updated_at,
        ),
    ]
