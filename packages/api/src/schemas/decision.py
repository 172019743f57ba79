# This project was developed with assistance from AI tools.
"""Underwriting rule set and decision-summary schemas."""

import math
from datetime import datetime
from typing import Any

from db.enums import (
    AssessmentRecommendation,
    PreApprovalDecision,
    QuickRecommendation,
    RecordSearchStatus,
    RiskSeverity,
    RiskState,
)
from pydantic import BaseModel, Field


def _finite(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    return parsed if math.isfinite(parsed) else None


def _ratio(value: Any, fallback: float) -> float:
    """Accept 0..1 or a 1..100 percentage; clamp to 0..1."""
    parsed = _finite(value)
    if parsed is None:
        return fallback
    if 1 < parsed <= 100:
        parsed /= 100
    return min(1.0, max(0.0, parsed))


def _number(value: Any, fallback: float, minimum: float = 0, maximum: float = math.inf) -> float:
    parsed = _finite(value)
    if parsed is None:
        return fallback
    return min(maximum, max(minimum, parsed))


def _integer(value: Any, fallback: int, minimum: float = 0, maximum: float = math.inf) -> int:
    return int(round(_number(value, fallback, minimum, maximum)))


class UnderwritingRules(BaseModel):
    """Configurable thresholds and fee constants used by the decision engine."""

    max_ltv: float = 0.75
    max_ltc: float = 0.9
    min_credit_score: int = 680
    min_liquidity_to_loan_ratio: float = 0.1
    acceptable_liquidity_ratio: float = 2
    excellent_liquidity_ratio: float = 4
    max_other_mortgage_loans: int = 5
    liquidity_months: int = 6
    assumed_annual_interest_rate: float = 0.12
    prepaid_interest_annual_rate: float = 0.13
    per_diem_day_count_basis: int = 360
    origination_fee_percent: float = 5
    monthly_service_fee: float = 950
    document_preparation_fee: float = 250
    closing_cost_estimate: float = 6000
    estimated_other_lender_monthly_payment_factor: float = 0.75
    estimated_other_lender_loan_factor: float = 0.75
    short_closing_timeline_days: int = 14
    decline_credit_score: int = 620
    decline_ltv: float = 0.82

    @classmethod
    def normalize(cls, candidate: dict[str, Any] | None) -> "UnderwritingRules":
        """Build a rule set from loosely-typed input, falling back per field."""
        src = candidate or {}
        d = cls()
        return cls(
            max_ltv=_ratio(src.get("max_ltv"), d.max_ltv),
            max_ltc=_ratio(src.get("max_ltc"), d.max_ltc),
            min_credit_score=_integer(src.get("min_credit_score"), d.min_credit_score, 300, 900),
            min_liquidity_to_loan_ratio=_number(
                src.get("min_liquidity_to_loan_ratio"), d.min_liquidity_to_loan_ratio
            ),
            acceptable_liquidity_ratio=_number(
                src.get("acceptable_liquidity_ratio"), d.acceptable_liquidity_ratio, 0.1
            ),
            excellent_liquidity_ratio=_number(
                src.get("excellent_liquidity_ratio"), d.excellent_liquidity_ratio, 0.1
            ),
            max_other_mortgage_loans=_integer(
                src.get("max_other_mortgage_loans"), d.max_other_mortgage_loans
            ),
            liquidity_months=_integer(src.get("liquidity_months"), d.liquidity_months, 1),
            assumed_annual_interest_rate=_ratio(
                src.get("assumed_annual_interest_rate"), d.assumed_annual_interest_rate
            ),
            prepaid_interest_annual_rate=_ratio(
                src.get("prepaid_interest_annual_rate"), d.prepaid_interest_annual_rate
            ),
            per_diem_day_count_basis=_integer(
                src.get("per_diem_day_count_basis"), d.per_diem_day_count_basis, 1
            ),
            origination_fee_percent=_number(
                src.get("origination_fee_percent"), d.origination_fee_percent
            ),
            monthly_service_fee=_number(src.get("monthly_service_fee"), d.monthly_service_fee),
            document_preparation_fee=_number(
                src.get("document_preparation_fee"), d.document_preparation_fee
            ),
            closing_cost_estimate=_number(src.get("closing_cost_estimate"), d.closing_cost_estimate),
            estimated_other_lender_monthly_payment_factor=_ratio(
                src.get("estimated_other_lender_monthly_payment_factor"),
                d.estimated_other_lender_monthly_payment_factor,
            ),
            estimated_other_lender_loan_factor=_ratio(
                src.get("estimated_other_lender_loan_factor"), d.estimated_other_lender_loan_factor
            ),
            short_closing_timeline_days=_integer(
                src.get("short_closing_timeline_days"), d.short_closing_timeline_days
            ),
            decline_credit_score=_integer(
                src.get("decline_credit_score"), d.decline_credit_score, 300, 900
            ),
            decline_ltv=_ratio(src.get("decline_ltv"), d.decline_ltv),
        )


class LiquidityCoverage(BaseModel):
    formula: str
    assumption_note: str
    available_liquidity: float | None
    required_liquidity: float | None
    monthly_interest_six_month: float
    service_fee: float
    document_preparation_fee: float
    closing_cost_estimate: float
    with_us_monthly_payment_total: float
    with_us_exposure: float
    estimated_other_lender_exposure: float
    other_lender_loan_count: int
    other_loans_monthly_payments_six_month: float
    origination_fee: float
    per_diem_day_count_basis: int
    prepaid_interest_per_diem: float
    prepaid_interest_days: int
    prepaid_interest: float
    coverage_ratio: float | None
    remaining_liquidity: float | None
    is_enough: bool | None


class RiskFlag(BaseModel):
    id: str
    label: str
    detail: str
    severity: RiskSeverity
    state: RiskState


class RecordSearchItem(BaseModel):
    id: str
    label: str
    status: RecordSearchStatus
    note: str
    updated_at: datetime | None = None


class QuickDecision(BaseModel):
    recommendation: QuickRecommendation
    reasons: list[str]
    conditions: list[str]


class AiAssessment(BaseModel):
    """Score-based pre-screen of the loan request (LTV and completeness)."""

    recommendation: AssessmentRecommendation
    confidence: int
    reasons: list[str]
    ltc: float | None
    arv_ltv: float | None
    docs_score: int


class DecisionMetrics(BaseModel):
    loan_amount: float
    purchase_price: float | None
    rehab_budget: float | None
    arv: float | None
    total_project_cost: float | None
    ltv: float | None
    ltc: float | None
    borrower_cash_to_close: float | None
    credit_score: int | None
    liquidity_amount: float | None
    liquidity_ratio: float | None
    days_until_closing: int | None
    other_lender_loan_count: int


class DecisionSummary(BaseModel):
    loan_id: str
    generated_at: datetime
    pre_approval_decision: PreApprovalDecision
    metrics: DecisionMetrics
    liquidity_coverage: LiquidityCoverage
    risk_flags: list[RiskFlag] = Field(default_factory=list)
    record_search: list[RecordSearchItem] = Field(default_factory=list)
    quick_decision: QuickDecision
    ai_assessment: AiAssessment
    issue_count: int = 0
    pending_count: int = 0
    high_risk_count: int = 0
