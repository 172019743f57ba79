# This project was developed with assistance from AI tools.
"""Tests for borrower identity and liquidity-evidence rules."""

from datetime import timedelta

from db.enums import BorrowerAccessStatus

from src.schemas.loan import BorrowerAccess, GuarantorContact, LiquidityProofDoc
from src.services.identity import (
    comparable_name,
    is_profile_complete,
    liquidity_ownership_errors,
    names_likely_match,
    normalize_profile,
    profile_validation_errors,
    resolve_access_status,
    split_name,
    usable_liquidity_docs,
)

from .factories import NOW, make_data_url, make_profile


def _statement(statement_name: str, **overrides) -> LiquidityProofDoc:
    values = {
        "name": "statement.pdf",
        "data_url": make_data_url(),
        "statement_name": statement_name,
        "uploaded_at": NOW,
    }
    values.update(overrides)
    return LiquidityProofDoc(**values)


class TestNames:
    def test_comparable_name_collapses_whitespace(self):
        assert comparable_name("  Jordan   LEE ") == "jordan lee"

    def test_containment_counts_as_match(self):
        assert names_likely_match("Jordan Lee", "jordan lee jr")
        assert not names_likely_match("Jordan Lee", "Casey Lee")
        assert not names_likely_match("", "Jordan")

    def test_split_name(self):
        assert split_name("Jordan A. B. Lee") == ("Jordan", "A. B.", "Lee")
        assert split_name("Cher") == ("Cher", "", "")
        assert split_name(None) == ("", "", "")

    def test_normalize_profile_fills_gaps_only(self):
        profile = normalize_profile(
            make_profile(first_name="", last_name="", llc_name="Kept LLC"),
            fallback_email="x@example.com",
            fallback_llc_name="Ignored LLC",
            fallback_name="Sam Q Public",
        )
        assert (profile.first_name, profile.middle_name, profile.last_name) == ("Sam", "Q", "Public")
        assert profile.llc_name == "Kept LLC"


class TestProfileCompleteness:
    def test_complete_profile(self):
        assert is_profile_complete(make_profile())

    def test_each_gap_is_reported(self):
        errors = profile_validation_errors(make_profile(home_phone="", email="nope"))
        assert "Home phone is required." in errors
        assert "Valid borrower email is required." in errors

    def test_emergency_contacts_padded_to_three(self):
        profile = make_profile(emergency_contacts=[])
        assert len(profile.emergency_contacts) == 3
        assert "Emergency contact 1 requires name, email, and phone." in profile_validation_errors(profile)

    def test_no_business_address_waives_it(self):
        profile = make_profile(no_business_address=True, business_address={})
        assert is_profile_complete(profile)


class TestLiquidityOwnership:
    def test_borrower_statement_passes(self):
        assert liquidity_ownership_errors(make_profile(), reference_time=NOW) == []

    def test_llc_statement_passes(self):
        profile = make_profile(liquidity_proof_docs=[_statement("Lee Holdings")])
        assert liquidity_ownership_errors(profile, reference_time=NOW) == []

    def test_missing_statement_name(self):
        profile = make_profile(liquidity_proof_docs=[_statement("")])
        assert liquidity_ownership_errors(profile, reference_time=NOW) == [
            "Name shown on Other Account Statement is required."
        ]

    def test_partner_statement_needs_guarantor_details(self):
        profile = make_profile(liquidity_proof_docs=[_statement("Casey Park", doc_type="BANK_STATEMENT")])
        errors = liquidity_ownership_errors(profile, reference_time=NOW)
        assert errors == [
            "Confirm Casey Park is a guarantor for Bank Statement.",
            "Confirm Casey Park is an LLC member for Bank Statement.",
            "Add Casey Park as a guarantor before submitting underwriting.",
            "Add guarantor details for Casey Park: first name, last name, email, and phone.",
        ]

    def test_documented_partner_passes(self):
        profile = make_profile(
            guarantors=["Casey Park"],
            guarantor_contacts=[
                GuarantorContact(
                    first_name="Casey", last_name="Park", email="casey@example.com", phone="555"
                )
            ],
            liquidity_proof_docs=[
                _statement("Casey Park", partner_is_guarantor=True, partner_is_llc_member=True)
            ],
        )
        assert liquidity_ownership_errors(profile, reference_time=NOW) == []

    def test_stale_partner_statement_must_be_reuploaded(self):
        profile = make_profile(
            guarantors=["Casey Park"],
            guarantor_contacts=[
                GuarantorContact(
                    first_name="Casey", last_name="Park", email="casey@example.com", phone="555"
                )
            ],
            liquidity_proof_docs=[
                _statement(
                    "Casey Park",
                    partner_is_guarantor=True,
                    partner_is_llc_member=True,
                    uploaded_at=NOW - timedelta(days=45),
                )
            ],
        )
        errors = liquidity_ownership_errors(profile, reference_time=NOW)
        assert errors == [
            "Re-upload Other Account Statement after confirming Casey Park as guarantor and LLC member."
        ]

    def test_usable_docs_newest_first_and_fresh_filter(self):
        old = _statement("Jordan Lee", name="old.pdf", uploaded_at=NOW - timedelta(days=40))
        new = _statement("Jordan Lee", name="new.pdf")
        blank = _statement("Jordan Lee", name="blank.pdf", data_url="")
        docs = usable_liquidity_docs([old, blank, new], reference_time=NOW)
        assert [doc.name for doc in docs] == ["new.pdf", "old.pdf"]
        fresh = usable_liquidity_docs([old, new], require_fresh=True, reference_time=NOW)
        assert [doc.name for doc in fresh] == ["new.pdf"]

    def test_fresh_window_is_inclusive_and_needs_evidence(self):
        edge = _statement("Jordan Lee", name="edge.pdf", uploaded_at=NOW - timedelta(days=30))
        undated = _statement("Jordan Lee", name="undated.pdf", uploaded_at=None)
        blank = _statement("Jordan Lee", name="blank.pdf", data_url="   ")
        fresh = usable_liquidity_docs([edge, undated, blank], require_fresh=True, reference_time=NOW)
        assert [doc.name for doc in fresh] == ["edge.pdf"]
        assert [doc.name for doc in usable_liquidity_docs([blank, undated], reference_time=NOW)] == [
            "undated.pdf"
        ]


class TestAccessStatus:
    def test_created_timestamp_promotes_status(self):
        access = BorrowerAccess(created_at=NOW)
        assert resolve_access_status(access, False) is BorrowerAccessStatus.ACCESS_CREATED
        assert resolve_access_status(access, True) is BorrowerAccessStatus.PROFILE_COMPLETED

    def test_incomplete_profile_demotes_completed(self):
        access = BorrowerAccess(status=BorrowerAccessStatus.PROFILE_COMPLETED, created_at=NOW)
        assert resolve_access_status(access, False) is BorrowerAccessStatus.ACCESS_CREATED

    def test_never_created_stays_not_created(self):
        assert resolve_access_status(BorrowerAccess(), True) is BorrowerAccessStatus.NOT_CREATED
