# This project was developed with assistance from AI tools.
"""Tests for returning-borrower prefill resolution."""

from datetime import timedelta

from db.enums import IntakeStatus, WorkflowStage

from src.schemas.loan import ActiveLoanUpdate, LiquidityProofDoc
from src.services.prefill import (
    active_loans_with_us,
    build_conditions_prefill,
    build_underwriting_prefill,
    find_prior_application,
    is_new_borrower,
    llc_options_on_file,
)

from .factories import (
    NOW,
    make_conditions_form,
    make_data_url,
    make_intake_submission,
    make_loan,
    make_loan_at_stage,
    make_profile,
)


def _prior(days_ago: int, **form_overrides):
    prior = make_loan_at_stage(
        WorkflowStage.UNDERWRITING_REVIEW,
        id="LA-2026-1490",
        created_at=NOW - timedelta(days=days_ago),
        last_event_at=NOW - timedelta(days=days_ago),
    )
    prior.underwriting_intake.status = IntakeStatus.SUBMITTED
    prior.underwriting_intake.form_data = make_intake_submission(**form_overrides)
    return prior


def _prefill(loan, applications):
    return build_underwriting_prefill(loan, applications, now=NOW, annual_rate=0.12)


# ---------------------------------------------------------------------------
# Borrower matching
# ---------------------------------------------------------------------------


def test_first_application_is_a_new_borrower():
    loan = make_loan()
    assert is_new_borrower(loan, [loan])
    assert find_prior_application(loan, [loan]) is None

    prefill = _prefill(loan, [loan])
    assert prefill.is_new_borrower
    assert prefill.source_loan_id is None
    assert prefill.credit_score.kind == "absent"
    assert not prefill.can_reuse_credit_score


def test_prior_matched_by_normalized_email():
    prior = _prior(10)
    prior.borrower_email = "  JORDAN@example.com "
    loan = make_loan()
    assert find_prior_application(loan, [prior, loan]).id == "LA-2026-1490"
    assert not is_new_borrower(loan, [prior, loan])


def test_other_borrowers_are_ignored():
    prior = _prior(10)
    prior.borrower_email = "someone.else@example.com"
    loan = make_loan()
    assert is_new_borrower(loan, [prior, loan])


def test_latest_prior_wins():
    older = _prior(20, credit_score=700)
    older.id = "LA-2026-1480"
    newer = _prior(5, credit_score=760)
    loan = make_loan()
    assert find_prior_application(loan, [older, newer, loan]).id == "LA-2026-1490"
    assert _prefill(loan, [older, newer, loan]).credit_score.value == 760


# ---------------------------------------------------------------------------
# Freshness
# ---------------------------------------------------------------------------


def test_recent_credit_score_can_be_reused():
    loan = make_loan()
    prefill = _prefill(loan, [_prior(10, credit_score=742), loan])
    assert prefill.within_freshness_window
    assert prefill.credit_score.kind == "fresh"
    assert prefill.credit_score.value == 742
    assert prefill.can_reuse_credit_score
    assert prefill.can_reuse_liquidity


def test_old_credit_score_is_stale():
    loan = make_loan()
    prefill = _prefill(loan, [_prior(40, credit_score=742), loan])
    assert not prefill.within_freshness_window
    assert prefill.credit_score.kind == "stale"
    assert prefill.credit_score.value == 742
    assert not prefill.can_reuse_credit_score
    assert not prefill.can_reuse_liquidity


def test_window_boundary_is_inclusive():
    loan = make_loan()
    prefill = _prefill(loan, [_prior(30), loan])
    assert prefill.can_reuse_credit_score


def test_old_liquidity_documents_are_stale():
    profile = make_profile(
        liquidity_proof_docs=[
            LiquidityProofDoc(
                name="old.pdf",
                data_url=make_data_url(),
                statement_name="Jordan Lee",
                uploaded_at=NOW - timedelta(days=45),
            )
        ]
    )
    loan = make_loan()
    prefill = _prefill(loan, [_prior(10, borrower_profile=profile), loan])
    assert prefill.liquidity_amount.kind == "fresh"
    assert prefill.liquidity_docs.kind == "stale"
    assert not prefill.can_reuse_liquidity


def test_entity_data_never_expires():
    loan = make_loan()
    prefill = _prefill(loan, [_prior(400), loan])
    assert prefill.llc_docs.kind == "fresh"
    assert prefill.referral.kind == "fresh"
    assert prefill.referral_value().name == "Sam Ref"


def test_mortgage_loans_need_lenders_and_interest():
    loan = make_loan()
    prefill = _prefill(loan, [_prior(10), loan])
    assert prefill.mortgage_loans.kind == "absent"

    prefill = _prefill(
        loan,
        [
            _prior(
                10,
                other_mortgage_lenders=["First Bank", " "],
                other_mortgage_total_monthly_interest=1800,
            ),
            loan,
        ],
    )
    assert prefill.can_reuse_mortgage_loans
    assert prefill.mortgage_loans_value().lenders == ["First Bank"]


# ---------------------------------------------------------------------------
# Active loans and LLC options
# ---------------------------------------------------------------------------


def test_active_loans_use_estimate_without_declared_payment():
    funded = make_loan_at_stage(WorkflowStage.FUNDING, id="LA-2025-1400", amount=240000.0)
    loan = make_loan()
    [active] = active_loans_with_us(loan, [funded, loan], annual_rate=0.12)
    assert active.loan_id == "LA-2025-1400"
    assert active.monthly_payment == 2400.0


def test_active_loans_prefer_declared_payment():
    funded = make_loan_at_stage(WorkflowStage.FUNDING, id="LA-2025-1400", amount=240000.0)
    loan = make_loan()
    declared = {"LA-2025-1400": ActiveLoanUpdate(loan_id="LA-2025-1400", monthly_payment=1999)}
    [active] = active_loans_with_us(loan, [funded, loan], 0.12, declared)
    assert active.monthly_payment == 1999


def test_loans_before_final_approval_are_not_active():
    early = make_loan_at_stage(WorkflowStage.PROCESSING, id="LA-2025-1400")
    loan = make_loan()
    assert active_loans_with_us(loan, [early, loan], annual_rate=0.12) == []


def test_llc_options_deduplicated_in_first_seen_order():
    first = make_loan(id="LA-2025-1300", llc_name="Lee Holdings LLC", llc_state_recorded="")
    second = make_loan(id="LA-2025-1301", llc_name="lee  holdings llc", llc_state_recorded="TX")
    third = make_loan(id="LA-2025-1302", llc_name="Oak Ventures LLC")
    options = llc_options_on_file(third, [first, second, third])
    assert [option.name for option in options] == ["Lee Holdings LLC", "Oak Ventures LLC"]
    assert options[0].state_recorded == "TX"


# ---------------------------------------------------------------------------
# Conditions prefill
# ---------------------------------------------------------------------------


def test_conditions_prefill_within_window_copies_everything():
    prior = _prior(10)
    prior.conditions_form = make_conditions_form(updated_at=NOW - timedelta(days=10))
    loan = make_loan()
    prefill = build_conditions_prefill(loan, [prior, loan], now=NOW)
    assert prefill.within_30_days
    assert prefill.form.credit_score == 720
    assert prefill.form.reuse_meta.source_loan_id == "LA-2026-1490"


def test_conditions_prefill_outside_window_keeps_entity_data_only():
    prior = _prior(60)
    prior.conditions_form = make_conditions_form(updated_at=NOW - timedelta(days=60))
    loan = make_loan()
    prefill = build_conditions_prefill(loan, [prior, loan], now=NOW)
    assert not prefill.within_30_days
    assert prefill.form.credit_score is None
    assert prefill.form.proof_of_liquidity_docs == []
    assert prefill.form.referral.name == "Sam Ref"
    assert len(prefill.form.llc_docs) == 4


def test_no_prior_conditions_means_no_prefill():
    loan = make_loan()
    assert build_conditions_prefill(loan, [_prior(10), loan], now=NOW) is None
