# This project was developed with assistance from AI tools.
"""Functional tests: signed links clicked from lender notification emails.

No bearer token is sent; the ``exp``/``sig`` query pair is the credential.
"""

import pytest
from db.enums import PreApprovalDecision, PreviewGroup, WorkflowStage

from ..factories import LOAN_ID, make_loan
from .personas import loan_officer
from .workflow_app import build_service, make_signer, path_of

pytestmark = pytest.mark.functional


def _link(service, action: str) -> str:
    return path_of(service.sign_email_action(LOAN_ID, action))


def _stored(make_client, service) -> dict:
    resp = make_client(loan_officer(), service).get(f"/api/workflows/lender/applications/{LOAN_ID}")
    return resp.json()["application"]


class TestActionForms:
    def test_form_renders_for_valid_link(self, make_client):
        service = build_service(make_loan())
        resp = make_client(None, service).get(_link(service, "approve"))
        assert resp.status_code == 200
        assert "Approve Loan" in resp.text
        assert LOAN_ID in resp.text

    def test_tampered_signature_is_rejected(self, make_client):
        service = build_service(make_loan())
        link = _link(service, "approve")
        resp = make_client(None, service).get(link[:-4] + "0000")
        assert resp.status_code == 401
        assert "Action link is invalid or expired." in resp.text

    def test_non_ascii_signature_is_rejected(self, make_client):
        service = build_service(make_loan())
        link = _link(service, "approve")
        resp = make_client(None, service).get(link[:-1] + "%C3%A9")
        assert resp.status_code == 401
        assert "Action link is invalid or expired." in resp.text

    def test_link_for_one_action_cannot_drive_another(self, make_client):
        service = build_service(make_loan())
        link = _link(service, "comment").replace("/comment?", "/deny?")
        resp = make_client(None, service).post(link, data={"notes": "no"})
        assert resp.status_code == 401

    def test_missing_loan_renders_not_found(self, make_client):
        service = build_service()
        resp = make_client(None, service).get(_link(service, "approve"))
        assert resp.status_code == 404
        assert "Action Unavailable" in resp.text


class TestActionSubmissions:
    def test_approve_moves_loan_to_underwriting(self, make_client):
        service = build_service(make_loan())
        resp = make_client(None, service).post(_link(service, "approve"))
        assert resp.status_code == 200
        assert "Loan Approved" in resp.text

        loan = _stored(make_client, service)
        assert loan["pre_approval_decision"] == PreApprovalDecision.PRE_APPROVE
        assert loan["current_stage_index"] == WorkflowStage.UNDERWRITING_REVIEW

    def test_comment_is_attributed_to_email_author(self, make_client):
        service = build_service(make_loan())
        resp = make_client(None, service).post(
            _link(service, "comment"), data={"comment": "Looks good"}
        )
        assert "Comment Saved" in resp.text
        loan = _stored(make_client, service)
        assert [(c["message"], c["created_by"]) for c in loan["lender_comments"]] == [
            ("Looks good", "LENDER_EMAIL")
        ]

    def test_blank_denial_notes_rerender_form(self, make_client):
        service = build_service(make_loan())
        resp = make_client(None, service).post(_link(service, "deny"), data={"notes": "   "})
        assert resp.status_code == 400
        assert "Notes are required to deny this request." in resp.text
        assert "Deny With Notes" in resp.text
        loan = _stored(make_client, service)
        assert loan["pre_approval_decision"] == PreApprovalDecision.PENDING

    def test_deny_with_notes(self, make_client):
        service = build_service(make_loan())
        resp = make_client(None, service).post(
            _link(service, "deny"), data={"notes": "Experience too thin"}
        )
        assert "Loan Denied" in resp.text
        loan = _stored(make_client, service)
        assert loan["pre_approval_decision"] == PreApprovalDecision.DECLINE
        assert loan["decision_notes"] == "Experience too thin"

    def test_message_keeps_typed_subject_when_message_blank(self, make_client):
        service = build_service(make_loan())
        resp = make_client(None, service).post(
            _link(service, "message"), data={"subject": "Update", "message": ""}
        )
        assert resp.status_code == 400
        assert 'value="Update"' in resp.text


class TestDocumentPreview:
    def _preview(self, group: PreviewGroup, index: int, *, loan_id: str = LOAN_ID) -> str:
        token = make_signer().sign_preview(loan_id, group, index)
        return (
            f"/api/workflows/lender/document-preview/{loan_id}/{group.value}/{index}"
            f"?exp={token.expires_at}&sig={token.signature}"
        )

    def test_preview_streams_file_inline(self, make_client):
        service = build_service(make_loan())
        resp = make_client(None, service).get(self._preview(PreviewGroup.PROPERTY_PHOTOS, 0))
        assert resp.status_code == 200
        assert resp.content == b"jpeg"
        assert resp.headers["content-type"] == "image/jpeg"
        assert resp.headers["content-disposition"].startswith('inline; filename="front.jpg"')
        assert resp.headers["cache-control"] == "private, max-age=300"

    def test_preview_signature_is_bound_to_index(self, make_client):
        service = build_service(make_loan())
        link = self._preview(PreviewGroup.COMPS, 0).replace("/compsFiles/0?", "/compsFiles/1?")
        resp = make_client(None, service).get(link)
        assert resp.status_code == 401

    def test_preview_past_the_last_file_is_missing(self, make_client):
        service = build_service(make_loan())
        resp = make_client(None, service).get(self._preview(PreviewGroup.COMPS, 3))
        assert resp.status_code == 404
