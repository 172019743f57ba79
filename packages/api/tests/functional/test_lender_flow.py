# This project was developed with assistance from AI tools.
"""Functional tests: lender personas working the pipeline.

Loan officers, underwriters, evaluators and admins see every loan.
Decisions are limited to loan officers, underwriters and admins; rule
settings may be changed by underwriters and admins only.
"""

import pytest
from db.enums import IntakeStatus, WorkflowStage

from ..factories import (
    LOAN_ID,
    NOW,
    make_conditions_form,
    make_intake_submission,
    make_loan,
    make_loan_at_stage,
)
from .personas import CASEY_EMAIL, admin, borrower_jordan, evaluator, loan_officer, underwriter
from .workflow_app import build_service, stage

pytestmark = pytest.mark.functional

LENDER = "/api/workflows/lender"
APPS = "/api/workflows/applications"


def _conditions_ready_loan():
    loan = make_loan_at_stage(WorkflowStage.UNDERWRITING_REVIEW)
    loan.underwriting_intake.status = IntakeStatus.SUBMITTED
    loan.underwriting_intake.submitted_at = NOW
    loan.underwriting_intake.form_data = make_intake_submission()
    return loan


class TestPipeline:
    def test_loan_officer_sees_every_loan(self, make_client):
        service = build_service(make_loan(), make_loan(id="LA-2026-1502", borrower_email=CASEY_EMAIL))
        resp = make_client(loan_officer(), service).get(f"{LENDER}/applications")
        assert resp.status_code == 200
        assert resp.json()["count"] == 2

    def test_borrower_cannot_reach_lender_routes(self, make_client):
        resp = make_client(borrower_jordan(), build_service(make_loan())).get(f"{LENDER}/applications")
        assert resp.status_code == 403
        assert resp.json()["detail"] == "Insufficient permissions"

    def test_decision_summary(self, make_client):
        client = make_client(underwriter(), build_service(_conditions_ready_loan()))
        resp = client.get(f"{LENDER}/applications/{LOAN_ID}/decision-summary")
        assert resp.status_code == 200
        assert resp.json()["loan_id"] == LOAN_ID
        summaries = client.get(f"{LENDER}/underwriting-summaries").json()
        assert [summary["loan_id"] for summary in summaries] == [LOAN_ID]


class TestStageEvents:
    def test_walk_every_stage(self, make_client):
        service = build_service(make_loan())
        client = make_client(loan_officer(), service)
        for event, expected in [
            ("DOCUMENT_REVIEW_STARTED", WorkflowStage.DOCUMENT_VERIFICATION),
            ("DOCUMENTS_VERIFIED", WorkflowStage.PROCESSING),
            ("PROCESSING_COMPLETED", WorkflowStage.UNDERWRITING_REVIEW),
            ("UNDERWRITING_APPROVED", WorkflowStage.FINAL_APPROVAL),
            ("FUNDING_COMPLETED", WorkflowStage.FUNDING),
        ]:
            resp = client.post(f"{APPS}/{LOAN_ID}/events", json={"event_type": event})
            assert resp.status_code == 200, resp.json()
            assert stage(resp.json()) is expected
        view = resp.json()["application"]
        assert view["status"] == "Approved"
        assert view["progress"] == 100
        assert view["next_event"] is None

    def test_out_of_order_event_conflicts(self, make_client):
        client = make_client(loan_officer(), build_service(make_loan()))
        resp = client.post(f"{APPS}/{LOAN_ID}/events", json={"event_type": "FUNDING_COMPLETED"})
        assert resp.status_code == 409
        assert resp.json()["title"] == "Conflict"

    def test_unknown_event_is_bad_request(self, make_client):
        client = make_client(loan_officer(), build_service(make_loan()))
        resp = client.post(f"{APPS}/{LOAN_ID}/events", json={"event_type": "TELEPORT"})
        assert resp.status_code == 400

    def test_unknown_loan_is_not_found(self, make_client):
        client = make_client(loan_officer(), build_service())
        resp = client.post(f"{APPS}/LA-0000-1/events", json={"event_type": "DOCUMENT_REVIEW_STARTED"})
        assert resp.status_code == 404


class TestDecisions:
    def test_request_info_needs_notes(self, make_client):
        client = make_client(loan_officer(), build_service(make_loan()))
        resp = client.post(
            f"{LENDER}/applications/{LOAN_ID}/decision", json={"decision": "REQUEST_INFO"}
        )
        assert resp.status_code == 422
        assert resp.json()["errors"] == [
            "A request comment is required when decision is REQUEST_INFO"
        ]

    def test_request_info_opens_borrower_thread(self, make_client):
        service = build_service(make_loan())
        client = make_client(loan_officer(), service)
        resp = client.post(
            f"{LENDER}/applications/{LOAN_ID}/decision",
            json={"decision": "REQUEST_INFO", "notes": "Send bank statements"},
        )
        assert resp.status_code == 200
        view = resp.json()["application"]
        assert view["application"]["pre_approval_decision"] == "REQUEST_INFO"
        assert view["unread_borrower_message_count"] == 1

    def test_evaluator_cannot_decide(self, make_client):
        client = make_client(evaluator(), build_service(make_loan()))
        resp = client.post(
            f"{LENDER}/applications/{LOAN_ID}/decision", json={"decision": "PRE_APPROVE"}
        )
        assert resp.status_code == 403

    def test_comment_records_author_role(self, make_client):
        client = make_client(underwriter(), build_service(make_loan()))
        resp = client.post(
            f"{LENDER}/applications/{LOAN_ID}/comment", json={"comment": "Comps look thin"}
        )
        assert resp.status_code == 200
        comment = resp.json()["application"]["application"]["lender_comments"][0]
        assert comment["created_by"] == "underwriter"


class TestValuationAndDocuments:
    def test_valuation_update_and_read(self, make_client):
        service = build_service(make_loan_at_stage(WorkflowStage.UNDERWRITING_REVIEW))
        client = make_client(evaluator(), service)
        resp = client.put(
            f"{LENDER}/applications/{LOAN_ID}/valuation",
            json={"updated_by_role": "EVALUATOR", "values": {"zillow_value": 455000}},
        )
        assert resp.status_code == 200
        assert resp.json()["valuation_input"]["values"]["zillow_value"] == "455000"

        resp = client.get(f"{LENDER}/applications/{LOAN_ID}/valuation")
        assert resp.json()["valuation_input"]["last_updated_by"] == "EVALUATOR"

    def test_valuation_locked_outside_underwriting(self, make_client):
        client = make_client(loan_officer(), build_service(make_loan()))
        resp = client.put(
            f"{LENDER}/applications/{LOAN_ID}/valuation",
            json={"values": {"zillow_value": 455000}},
        )
        assert resp.status_code == 409

    def test_autofill_without_provider_key_is_bad_gateway(self, make_client):
        client = make_client(
            loan_officer(), build_service(make_loan_at_stage(WorkflowStage.UNDERWRITING_REVIEW))
        )
        resp = client.post(f"{LENDER}/applications/{LOAN_ID}/valuation/attom-autofill", json={})
        assert resp.status_code == 502
        assert resp.json()["detail"] == "ATTOM_API_KEY missing"

    def test_conditions_document_download(self, make_client):
        service = build_service(_conditions_ready_loan())
        borrower = make_client(borrower_jordan(), service)
        resp = borrower.post(
            f"{APPS}/{LOAN_ID}/conditions",
            json={"form_data": make_conditions_form().model_dump(mode="json")},
        )
        package = resp.json()["application"]["application"]["conditions_form"]["document_package"]
        first = package["files"][0]

        lender = make_client(loan_officer(), service)
        resp = lender.get(
            f"{LENDER}/applications/{LOAN_ID}/conditions-documents/{package['id']}/{first['id']}"
        )
        assert resp.status_code == 200
        assert resp.headers["content-disposition"].startswith("attachment; filename=")
        assert resp.content

        resp = lender.get(
            f"{LENDER}/applications/{LOAN_ID}/conditions-documents/{package['id']}/missing"
        )
        assert resp.status_code == 404


class TestSettings:
    def test_any_lender_can_read_settings(self, make_client):
        resp = make_client(evaluator(), build_service()).get("/api/workflows/underwriting/settings")
        assert resp.status_code == 200
        assert resp.json()["max_ltv"] == 0.75

    def test_admin_updates_settings_wrapped_or_flat(self, make_client):
        client = make_client(admin(), build_service())
        resp = client.put(
            "/api/workflows/underwriting/settings", json={"settings": {"max_ltv": 70}}
        )
        assert resp.status_code == 200
        assert resp.json()["max_ltv"] == 0.7
        resp = client.put("/api/workflows/underwriting/settings", json={"min_credit_score": 700})
        assert resp.json()["min_credit_score"] == 700
        assert resp.json()["max_ltv"] == 0.7

    def test_loan_officer_cannot_update_settings(self, make_client):
        client = make_client(loan_officer(), build_service())
        resp = client.put("/api/workflows/underwriting/settings", json={"max_ltv": 0.5})
        assert resp.status_code == 403
