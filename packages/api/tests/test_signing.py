# This project was developed with assistance from AI tools.
"""Tests for signed lender action links."""

from urllib.parse import parse_qs, urlparse

import pytest
from db.enums import EmailAction, PreviewGroup

from src.core.errors import UnauthorizedError
from src.services.signing import ActionLinkSigner, canonical_payload

SECRET = "test-secret"
NOW = 1_750_000_000


@pytest.fixture
def signer():
    return ActionLinkSigner(SECRET, ttl_seconds=3600, clock=lambda: NOW)


def test_payload_is_length_prefixed():
    assert canonical_payload("a:b", "c") != canonical_payload("a", "b:c")
    assert canonical_payload("LA-1", "approve") == b"v1|4:LA-1|7:approve"


def test_empty_secret_rejected():
    with pytest.raises(ValueError):
        ActionLinkSigner("", ttl_seconds=60)


class TestEmailActions:
    def test_round_trip(self, signer):
        token = signer.sign("LA-2026-1501", EmailAction.APPROVE)
        assert token.expires_at == NOW + 3600
        assert signer.verify("LA-2026-1501", "approve", token.expires_at, token.signature)

    def test_expiry_accepted_as_string(self, signer):
        token = signer.sign("LA-2026-1501", "deny")
        assert signer.verify("LA-2026-1501", "deny", str(token.expires_at), token.signature)

    def test_tampered_fields_rejected(self, signer):
        token = signer.sign("LA-2026-1501", EmailAction.COMMENT)
        assert not signer.verify("LA-2026-1502", "comment", token.expires_at, token.signature)
        assert not signer.verify("LA-2026-1501", "approve", token.expires_at, token.signature)
        assert not signer.verify("LA-2026-1501", "comment", token.expires_at + 1, token.signature)
        assert not signer.verify("LA-2026-1501", "comment", token.expires_at, "0" * 64)

    @pytest.mark.parametrize(
        "mangle",
        [
            lambda sig: sig[:-1] + "\u00e9",
            lambda sig: "\ud800" + sig[1:],
            lambda sig: sig[:-1],
            lambda sig: sig + "0",
        ],
        ids=["non-ascii", "lone-surrogate", "short", "long"],
    )
    def test_non_hex_or_wrong_length_signature_rejected(self, signer, mangle):
        token = signer.sign("LA-2026-1501", EmailAction.APPROVE)
        assert not signer.verify("LA-2026-1501", "approve", token.expires_at, mangle(token.signature))
        with pytest.raises(UnauthorizedError):
            signer.require_valid("LA-2026-1501", "approve", token.expires_at, mangle(token.signature))

    def test_expired_token_rejected(self):
        clock = {"now": NOW}
        signer = ActionLinkSigner(SECRET, ttl_seconds=60, clock=lambda: clock["now"])
        token = signer.sign("LA-2026-1501", EmailAction.APPROVE)
        clock["now"] = NOW + 61
        assert not signer.verify("LA-2026-1501", "approve", token.expires_at, token.signature)

    def test_other_secret_rejected(self, signer):
        token = signer.sign("LA-2026-1501", EmailAction.APPROVE)
        other = ActionLinkSigner("another-secret", ttl_seconds=3600, clock=lambda: NOW)
        assert not other.verify("LA-2026-1501", "approve", token.expires_at, token.signature)

    @pytest.mark.parametrize("exp", [None, "", "abc", "-5"])
    def test_malformed_expiry_rejected(self, signer, exp):
        token = signer.sign("LA-2026-1501", EmailAction.APPROVE)
        assert not signer.verify("LA-2026-1501", "approve", exp, token.signature)

    def test_require_valid_normalizes_action(self, signer):
        token = signer.sign("LA-2026-1501", EmailAction.MESSAGE)
        action = signer.require_valid("LA-2026-1501", " Message ", token.expires_at, token.signature)
        assert action is EmailAction.MESSAGE

    def test_require_valid_unknown_action(self, signer):
        token = signer.sign("LA-2026-1501", EmailAction.APPROVE)
        with pytest.raises(UnauthorizedError, match="invalid or expired"):
            signer.require_valid("LA-2026-1501", "fund", token.expires_at, token.signature)

    def test_email_action_url(self, signer):
        url = signer.email_action_url("https://api.example.com/", "LA-2026-1501", "approve")
        parsed = urlparse(url)
        assert parsed.path == "/api/workflows/lender/email-actions/LA-2026-1501/approve"
        query = parse_qs(parsed.query)
        assert signer.verify("LA-2026-1501", "approve", query["exp"][0], query["sig"][0])


class TestDocumentPreviews:
    def test_round_trip(self, signer):
        token = signer.sign_preview("LA-2026-1501", PreviewGroup.COMPS, 3)
        assert signer.verify_preview(
            "LA-2026-1501", "compsFiles", "3", token.expires_at, token.signature
        )

    def test_group_and_index_bound(self, signer):
        token = signer.sign_preview("LA-2026-1501", PreviewGroup.COMPS, 3)
        assert not signer.verify_preview(
            "LA-2026-1501", "propertyPhotos", 3, token.expires_at, token.signature
        )
        assert not signer.verify_preview(
            "LA-2026-1501", "compsFiles", 4, token.expires_at, token.signature
        )

    def test_email_signature_is_not_a_preview_signature(self, signer):
        token = signer.sign("LA-2026-1501", EmailAction.APPROVE)
        assert not signer.verify_preview(
            "LA-2026-1501", "compsFiles", 0, token.expires_at, token.signature
        )

    def test_index_out_of_range(self, signer):
        with pytest.raises(ValueError):
            signer.sign_preview("LA-2026-1501", PreviewGroup.COMPS, 10)
        assert not signer.verify_preview("LA-2026-1501", "compsFiles", 10, NOW + 10, "ab")

    def test_non_ascii_signature_rejected(self, signer):
        token = signer.sign_preview("LA-2026-1501", PreviewGroup.COMPS, 0)
        assert not signer.verify_preview(
            "LA-2026-1501", "compsFiles", 0, token.expires_at, token.signature[:-1] + "\u00e9"
        )

    def test_unknown_group(self, signer):
        assert not signer.verify_preview("LA-2026-1501", "taxReturns", 0, NOW + 10, "ab")

    def test_preview_url(self, signer):
        url = signer.document_preview_url("https://api.example.com", "LA-2026-1501", "scopeOfWorkFiles", 1)
        parsed = urlparse(url)
        assert parsed.path == "/api/workflows/lender/document-preview/LA-2026-1501/scopeOfWorkFiles/1"
        query = parse_qs(parsed.query)
        assert signer.verify_preview(
            "LA-2026-1501", "scopeOfWorkFiles", 1, query["exp"][0], query["sig"][0]
        )
