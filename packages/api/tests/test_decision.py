# This project was developed with assistance from AI tools.
"""Tests for the lender decision orchestrator."""

from datetime import timedelta

import pytest
from db.enums import (
    CommunicationType,
    HistoryMarker,
    IntakeStatus,
    PreApprovalDecision,
    WorkflowStage,
)

from src.core.errors import ConflictError, ValidationFailedError
from src.schemas.notifications import NotificationKind
from src.services.decision import apply_decision

from .factories import NOW, make_intake_submission, make_loan, make_loan_at_stage


class TestValidation:
    @pytest.mark.parametrize("decision", ["APPROVE", "PENDING", ""])
    def test_unknown_decision(self, decision):
        loan = make_loan()
        with pytest.raises(ValidationFailedError, match="decision must be"):
            apply_decision(loan, decision, None, applications=[loan], now=NOW)

    def test_request_info_requires_notes(self):
        loan = make_loan()
        with pytest.raises(ValidationFailedError, match="request comment is required"):
            apply_decision(loan, "REQUEST_INFO", "   ", applications=[loan], now=NOW)

    def test_funded_loan_is_final(self):
        loan = make_loan_at_stage(WorkflowStage.FUNDING)
        with pytest.raises(ConflictError):
            apply_decision(loan, "DECLINE", "no", applications=[loan], now=NOW)


class TestPreApprove:
    def test_jumps_to_underwriting_and_fills_history(self):
        loan = make_loan()
        updated, _ = apply_decision(loan, "PRE_APPROVE", "", applications=[loan], now=NOW)
        assert updated.current_stage_index == WorkflowStage.UNDERWRITING_REVIEW
        assert updated.history == [
            "APPLICATION_SUBMITTED",
            "DOCUMENT_REVIEW_STARTED",
            "DOCUMENTS_VERIFIED",
            "PROCESSING_COMPLETED",
            HistoryMarker.UNDERWRITING_STARTED.value,
        ]
        assert updated.pre_approval_decision is PreApprovalDecision.PRE_APPROVE
        assert updated.decision_notes is None

    def test_does_not_move_a_later_loan_backwards(self):
        loan = make_loan_at_stage(WorkflowStage.FINAL_APPROVAL)
        updated, _ = apply_decision(loan, "PRE_APPROVE", "", applications=[loan], now=NOW)
        assert updated.current_stage_index == WorkflowStage.FINAL_APPROVAL

    def test_opens_intake(self):
        loan = make_loan()
        updated, _ = apply_decision(loan, "PRE_APPROVE", "", applications=[loan], now=NOW)
        assert updated.underwriting_intake.status is IntakeStatus.PENDING
        assert updated.underwriting_intake.requested_at == NOW

    def test_new_borrower_gets_access_invite_instead_of_conditions(self):
        loan = make_loan()
        updated, plan = apply_decision(loan, "PRE_APPROVE", "", applications=[loan], now=NOW)
        assert plan.kinds == [NotificationKind.BORROWER_ACCESS_SETUP]
        assert updated.borrower_access.invited_at == NOW
        assert updated.underwriting_intake.notification_sent_at is None

    def test_returning_borrower_gets_conditions_request(self):
        prior = make_loan(id="LA-2025-1500", created_at=NOW - timedelta(days=90))
        loan = make_loan()
        updated, plan = apply_decision(
            loan, "PRE_APPROVE", "", applications=[prior, loan], now=NOW
        )
        assert plan.kinds == [NotificationKind.UNDERWRITING_CONDITIONS]
        assert updated.underwriting_intake.notification_sent_at == NOW

    def test_repeat_pre_approve_sends_nothing(self):
        loan = make_loan()
        first, _ = apply_decision(loan, "PRE_APPROVE", "", applications=[loan], now=NOW)
        second, plan = apply_decision(first, "PRE_APPROVE", "", applications=[first], now=NOW)
        assert plan.notifications == []
        assert second.history.count(HistoryMarker.UNDERWRITING_STARTED.value) == 1

    def test_submitted_intake_is_kept(self):
        loan = make_loan_at_stage(WorkflowStage.UNDERWRITING_REVIEW)
        loan.underwriting_intake.status = IntakeStatus.SUBMITTED
        loan.underwriting_intake.form_data = make_intake_submission()
        updated, _ = apply_decision(loan, "PRE_APPROVE", "", applications=[loan], now=NOW)
        assert updated.underwriting_intake.status is IntakeStatus.SUBMITTED
        assert updated.underwriting_intake.form_data is not None


class TestDeclineAndRequestInfo:
    def test_decline_stores_notes_and_messages_borrower(self):
        loan = make_loan()
        updated, plan = apply_decision(
            loan, "DECLINE", " LTV too high ", applications=[loan], now=NOW
        )
        assert updated.pre_approval_decision is PreApprovalDecision.DECLINE
        assert updated.decision_notes == "LTV too high"
        assert updated.current_stage_index == 0
        assert plan.kinds == [NotificationKind.DIRECT_MESSAGE]
        assert plan.notifications[0].message == "LTV too high"

    def test_decline_without_notes_sends_nothing(self):
        loan = make_loan()
        updated, plan = apply_decision(loan, "DECLINE", "", applications=[loan], now=NOW)
        assert updated.decision_notes is None
        assert plan.notifications == []

    def test_request_info_opens_a_thread(self):
        loan = make_loan()
        updated, plan = apply_decision(
            loan, "REQUEST_INFO", "Send bank statements", applications=[loan], now=NOW
        )
        request = updated.communications[-1]
        assert request.type is CommunicationType.REQUEST_INFO
        assert request.subject == "Need additional information"
        assert request.message == "Send bank statements"
        assert plan.kinds == [NotificationKind.REQUEST_INFO]
        assert updated.decision_notes == "Send bank statements"
