# This project was developed with assistance from AI tools.
"""Tests for valuation inputs, evaluator inputs, the title-agent form, and ATTOM autofill."""

import httpx
import pytest
from db.enums import HistoryMarker, LoanStatus, ValuationSource, WorkflowStage

from src.core.errors import ConflictError, UpstreamError, ValidationFailedError
from src.schemas.loan import TitleAgentForm
from src.schemas.valuation import PropertyValuation
from src.services.cache import TTLCache
from src.services.valuation import (
    MAX_TRAIL_ENTRIES,
    apply_property_valuation,
    build_evaluator_snapshot,
    build_valuation_snapshot,
    normalize_input_value,
    update_evaluator_input,
    update_title_agent_form,
    update_valuation_input,
)
from src.services.valuation_provider import (
    AttomValuationProvider,
    parse_address,
    parse_property_record,
    query_variants,
)

from .factories import NOW, make_loan, make_loan_at_stage

ATTOM_URL = "https://attom.test/propertyapi/v1.0.0/property/detail"


def _underwriting_loan(**overrides):
    return make_loan_at_stage(WorkflowStage.UNDERWRITING_REVIEW, **overrides)


# ---------------------------------------------------------------------------
# Valuation input trail
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "raw,expected",
    [(" 410000 ", "410000"), (410000.0, "410000"), (12.5, "12.5"), (True, ""), (None, "")],
)
def test_normalize_input_value(raw, expected):
    assert normalize_input_value(raw) == expected


def test_update_merges_and_prepends_trail_entry():
    loan = _underwriting_loan()
    updated = update_valuation_input(
        loan, "loan_officer", {"zillow_value": 455000, "unknown": "x"}, now=NOW
    )
    assert updated.purchase_details.zillow_value == "455000"
    assert updated.purchase_details.purchase_price == "$350,000"
    entry = updated.valuation_input_trail[0]
    assert entry.updated_by is ValuationSource.LOAN_OFFICER
    assert entry.values["zillow_value"] == "455000"
    assert updated.history[-1] == HistoryMarker.UNDERWRITING_VALUATION_UPDATED.value
    assert loan.valuation_input_trail == []


def test_trail_is_capped_newest_first():
    loan = _underwriting_loan()
    for n in range(MAX_TRAIL_ENTRIES + 5):
        loan = update_valuation_input(loan, "EVALUATOR", {"zillow_value": n}, now=NOW)
    assert len(loan.valuation_input_trail) == MAX_TRAIL_ENTRIES
    assert loan.valuation_input_trail[0].values["zillow_value"] == str(MAX_TRAIL_ENTRIES + 4)


def test_update_rejects_unknown_role():
    with pytest.raises(ValidationFailedError, match="updatedByRole"):
        update_valuation_input(_underwriting_loan(), "ATTOM", {"zillow_value": 1}, now=NOW)


def test_update_requires_a_known_field():
    with pytest.raises(ValidationFailedError) as exc:
        update_valuation_input(_underwriting_loan(), "LOAN_OFFICER", {"nope": 1}, now=NOW)
    assert exc.value.errors == ["At least one valuation field is required."]


def test_update_only_during_underwriting():
    with pytest.raises(ConflictError, match="editable only during underwriting"):
        update_valuation_input(make_loan(), "LOAN_OFFICER", {"zillow_value": 1}, now=NOW)


def test_update_requires_purchase_loan_type():
    loan = _underwriting_loan(type="DSCR Rental Loan", purchase_details=None)
    with pytest.raises(ConflictError, match="does not support valuation"):
        update_valuation_input(loan, "LOAN_OFFICER", {"zillow_value": 1}, now=NOW)


def test_snapshot_reports_missing_required_fields():
    loan = _underwriting_loan()
    snapshot = build_valuation_snapshot(loan)
    assert snapshot.status_label is LoanStatus.IN_UNDERWRITING
    assert not snapshot.is_complete
    assert "Assessor Value" in snapshot.missing_fields
    assert "AVM (ATTOM)" not in snapshot.missing_fields
    assert snapshot.last_updated_at is None


def test_autofill_is_attributed_to_attom():
    loan = _underwriting_loan()
    valuation = PropertyValuation(
        assessor_value=300000.0, current_owner="Jane Owner", last_sale_price=275000.5
    )
    updated = apply_property_valuation(loan, valuation, now=NOW)
    assert updated.purchase_details.assessor_value == "300000"
    assert updated.purchase_details.current_owner == "Jane Owner"
    assert updated.purchase_details.last_sale_price == "275000.5"
    assert updated.valuation_input_trail[0].updated_by is ValuationSource.ATTOM
    assert updated.history[-1] == HistoryMarker.UNDERWRITING_VALUATION_UPDATED_ATTOM.value


# ---------------------------------------------------------------------------
# Evaluator input and title-agent form
# ---------------------------------------------------------------------------


def test_evaluator_input_merges_values():
    loan = _underwriting_loan()
    first = update_evaluator_input(loan, "evaluator", {"arv": 600000}, now=NOW)
    second = update_evaluator_input(first, "EVALUATOR", {"risk_level": "Low"}, now=NOW)
    snapshot = build_evaluator_snapshot(second)
    assert snapshot.values["arv"] == "600000"
    assert snapshot.values["risk_level"] == "Low"
    assert snapshot.last_updated_by == "EVALUATOR"
    assert second.history[-1] == HistoryMarker.UNDERWRITING_EVALUATOR_UPDATED.value


def test_evaluator_input_requires_evaluator_role():
    with pytest.raises(ValidationFailedError, match="must be EVALUATOR"):
        update_evaluator_input(_underwriting_loan(), "LOAN_OFFICER", {"arv": 1}, now=NOW)


def test_title_agent_form_merges_sent_fields():
    loan = _underwriting_loan()
    first = update_title_agent_form(
        loan, TitleAgentForm(seller_name="Sue Seller", seller_members=["A", " "]), now=NOW
    )
    second = update_title_agent_form(first, TitleAgentForm(assignment_fees="$5,000"), now=NOW)
    form = second.title_agent_form
    assert form.seller_name == "Sue Seller"
    assert form.seller_members == ["A"]
    assert form.assignment_fees == "$5,000"
    assert form.updated_at == NOW


def test_title_agent_party_type_defaults_to_individual():
    assert TitleAgentForm(seller_type="TRUST").seller_type == "INDIVIDUAL"
    assert TitleAgentForm(seller_type="LLC").seller_type == "LLC"


# ---------------------------------------------------------------------------
# ATTOM provider
# ---------------------------------------------------------------------------


def test_parse_address_maps_state_names():
    parsed = parse_address("123 Main Street Unit 4, Austin, Texas 78701")
    assert parsed == {"street": "123 Main St", "city": "Austin", "state": "TX", "postal": "78701"}


def test_query_variants_prefer_postal_code():
    variants = query_variants("12 Oak St, Austin, TX 78701")
    assert variants[0] == {"address1": "12 Oak St", "postalcode": "78701", "address": "12 Oak St"}


def test_parse_property_record():
    record = {
        "owner": {"owner1firstName": "Jane", "owner1lastName": "Owner"},
        "assessment": {"assessed": {"assdttlvalue": None, "totalvalue": "310000"}},
        "sale": {"saleTransDate": "x", "saledate": "2019-05-01", "amount": {"saleamt": 250000}},
        "avm": {"amount": {"value": 455000}},
    }
    valuation = parse_property_record(record)
    assert valuation.current_owner == "Jane Owner"
    assert valuation.assessor_value == 310000.0
    assert valuation.last_sale_date == "2019-05-01"
    assert valuation.last_sale_price == 250000.0
    assert valuation.attom_avm_value == 455000.0
    assert parse_property_record(None).is_empty()


def _provider(handler, api_key="key"):
    return AttomValuationProvider(
        api_key=api_key,
        base_url=ATTOM_URL,
        cache=TTLCache(ttl_seconds=60, max_entries=10),
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_fetch_uses_first_detailed_record_and_caches():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        assert request.headers["apikey"] == "key"
        return httpx.Response(
            200, json={"property": [{"assessment": {"assessed": {"totalvalue": 300000}}}]}
        )

    provider = _provider(handler)
    first = await provider.fetch("12 Oak St, Austin, TX 78701")
    second = await provider.fetch("  12 oak st,  Austin, TX 78701 ")
    assert first.assessor_value == 300000.0
    assert second == first
    assert calls == ["/propertyapi/v1.0.0/property/detail"]


@pytest.mark.asyncio
async def test_fetch_without_key_raises():
    with pytest.raises(UpstreamError, match="ATTOM_API_KEY missing"):
        await _provider(lambda request: httpx.Response(200), api_key=None).fetch("12 Oak St")


@pytest.mark.asyncio
async def test_fetch_reports_last_endpoint_failure():
    provider = _provider(lambda request: httpx.Response(500))
    with pytest.raises(UpstreamError, match="Endpoint basicaddress failed: 500"):
        await provider.fetch("12 Oak St, Austin, TX 78701")
