# This project was developed with assistance from AI tools.
"""Valuation input trail, evaluator input, and title-agent form.

Valuation edits merge into the loan's purchase details and prepend a full
snapshot of the valuation fields to the trail (newest first, 50 entries
kept), so the current valuation is always the purchase details as merged
with the newest entry.
"""

import logging
import math
import uuid
from datetime import datetime

from db.enums import (
    VALUATION_EDITABLE_STATUSES,
    HistoryMarker,
    ValuationSource,
)

from ..core.errors import ConflictError, ValidationFailedError
from ..schemas.loan import (
    EvaluatorInput,
    LoanApplication,
    PurchaseDetails,
    TitleAgentForm,
    ValuationTrailEntry,
)
from ..schemas.valuation import InputField, PropertyValuation, ValuationSnapshot
from .decision_engine import requires_purchase_details
from .workflow import pipeline_status

logger = logging.getLogger(__name__)

MAX_TRAIL_ENTRIES = 50

VALUATION_FIELDS = (
    InputField(key="assessor_value", label="Assessor Value"),
    InputField(key="attom_avm_value", label="AVM (ATTOM)", optional=True),
    InputField(key="zillow_value", label="Zillow Value"),
    InputField(key="realtor_com_value", label="Realtor.com Value"),
    InputField(key="narpr_value", label="NARRPR Value"),
    InputField(key="propelio_median_value", label="Propelio Median Value"),
    InputField(key="propelio_high_value", label="Propelio High Value"),
    InputField(key="propelio_low_value", label="Propelio Low Value"),
    InputField(key="economic_value", label="Economic Value"),
    InputField(key="rentometer_estimate", label="Rentometer Estimate"),
    InputField(key="zillow_rent_estimate", label="Zillow Rent Estimate"),
    InputField(key="current_owner", label="Current Owner"),
    InputField(key="last_sale_date", label="Last Sale Date"),
    InputField(key="last_sale_price", label="Last Sale Price"),
    InputField(key="bankruptcy_record", label="Bankruptcy Record"),
    InputField(key="internal_watchlist", label="Internal Watchlist"),
    InputField(key="forecasa_status", label="Forecasa Status"),
    InputField(key="active_loans_count", label="Number of Active Loans"),
    InputField(
        key="negative_deed_records", label="Register of Deeds - High-Risk Negative Records"
    ),
)

EVALUATOR_FIELDS = (
    InputField(key="cma_avg_sale_price", label="Avg Sale Price"),
    InputField(key="cma_price_per_sq_ft", label="Price / Sq Ft"),
    InputField(key="cma_days_on_market", label="Days on Market"),
    InputField(key="cma_subject_sq_ft", label="Subject Sq Ft"),
    InputField(key="key_finding_ltv", label="LTV"),
    InputField(key="key_finding_application", label="Application"),
    InputField(key="key_finding_score", label="Score"),
    InputField(key="as_is_value", label="As-Is Value"),
    InputField(key="arv", label="ARV"),
    InputField(key="current_ltv", label="Current LTV"),
    InputField(key="ltv_after_repairs", label="LTV After Repairs"),
    InputField(key="recommendation", label="Recommendation"),
    InputField(key="confidence", label="Confidence"),
    InputField(key="risk_level", label="Risk Level"),
    InputField(key="professional_assessment", label="Professional Assessment"),
)

VALUATION_ROLES = frozenset({ValuationSource.LOAN_OFFICER, ValuationSource.EVALUATOR})

# Provider fields copied into purchase details by an autofill.
AUTOFILL_KEYS = ("assessor_value", "realtor_com_value", "current_owner", "last_sale_date", "last_sale_price")


def normalize_input_value(value) -> str:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, bool) or not isinstance(value, int | float):
        return ""
    if not math.isfinite(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def extract_patch(fields: tuple[InputField, ...], values: dict) -> dict[str, str]:
    """Known fields present in ``values``; unknown keys are ignored."""
    return {
        field.key: normalize_input_value(values[field.key])
        for field in fields
        if field.key in values
    }


def valuation_values(details: PurchaseDetails | None) -> dict[str, str]:
    source = details or PurchaseDetails()
    return {field.key: getattr(source, field.key) for field in VALUATION_FIELDS}


def missing_labels(fields: tuple[InputField, ...], values: dict[str, str]) -> list[str]:
    return [
        field.label for field in fields if not field.optional and not values.get(field.key, "")
    ]


def build_valuation_snapshot(loan: LoanApplication) -> ValuationSnapshot:
    values = valuation_values(loan.purchase_details)
    missing = missing_labels(VALUATION_FIELDS, values)
    latest = loan.valuation_input_trail[0] if loan.valuation_input_trail else None
    return ValuationSnapshot(
        loan_id=loan.id,
        status_label=pipeline_status(loan),
        values=values,
        missing_fields=missing,
        is_complete=not missing,
        last_updated_at=latest.updated_at if latest else None,
        last_updated_by=latest.updated_by if latest else None,
    )


def build_evaluator_snapshot(loan: LoanApplication) -> ValuationSnapshot:
    stored = loan.evaluator_input or EvaluatorInput()
    values = {field.key: stored.values.get(field.key, "") for field in EVALUATOR_FIELDS}
    missing = missing_labels(EVALUATOR_FIELDS, values)
    return ValuationSnapshot(
        loan_id=loan.id,
        status_label=pipeline_status(loan),
        values=values,
        missing_fields=missing,
        is_complete=not missing,
        last_updated_at=stored.updated_at,
        last_updated_by=stored.updated_by,
    )


def _require_underwriting(loan: LoanApplication, form_name: str, inputs_name: str) -> None:
    status = pipeline_status(loan)
    if status not in VALUATION_EDITABLE_STATUSES:
        raise ConflictError(
            f"{form_name} form is editable only during underwriting. Current status: {status.value}."
        )
    if not requires_purchase_details(loan.type):
        raise ConflictError(f"This loan type does not support {inputs_name} inputs.")


def _record_trail(
    loan: LoanApplication,
    details: PurchaseDetails,
    source: ValuationSource,
    marker: HistoryMarker,
    now: datetime,
) -> LoanApplication:
    entry = ValuationTrailEntry(
        id=f"valuation-input-{uuid.uuid4().hex[:12]}",
        updated_at=now,
        updated_by=source,
        values=valuation_values(details),
    )
    updated = loan.model_copy(deep=True)
    updated.purchase_details = details
    updated.valuation_input_trail = [entry, *updated.valuation_input_trail][:MAX_TRAIL_ENTRIES]
    updated.history.append(marker.value)
    updated.last_event_at = now
    return updated


def update_valuation_input(
    loan: LoanApplication, role: str, values: dict, *, now: datetime
) -> LoanApplication:
    """Merge a valuation patch into purchase details and record it on the trail.

    Raises:
        ValidationFailedError: Unknown role, or no known valuation field in ``values``.
        ConflictError: Not in an underwriting status, or the loan type has no
            purchase details.
    """
    try:
        source = ValuationSource((role or "").strip().upper())
    except ValueError:
        source = None
    if source not in VALUATION_ROLES:
        raise ValidationFailedError(["updatedByRole must be LOAN_OFFICER or EVALUATOR."])
    patch = extract_patch(VALUATION_FIELDS, values)
    if not patch:
        raise ValidationFailedError(["At least one valuation field is required."])
    _require_underwriting(loan, "Valuation", "valuation")

    details = (loan.purchase_details or PurchaseDetails()).model_copy(update=patch)
    logger.info("Valuation input updated for loan %s by %s", loan.id, source.value)
    return _record_trail(loan, details, source, HistoryMarker.UNDERWRITING_VALUATION_UPDATED, now)


def apply_property_valuation(
    loan: LoanApplication, valuation: PropertyValuation, *, now: datetime
) -> LoanApplication:
    """Copy provider-resolved fields into purchase details; attributed to ATTOM."""
    current = loan.purchase_details or PurchaseDetails()
    patch = {
        key: normalize_input_value(getattr(valuation, key))
        for key in AUTOFILL_KEYS
        if getattr(valuation, key) is not None
    }
    details = current.model_copy(update=patch)
    logger.info("Valuation autofilled for loan %s (%d fields)", loan.id, len(patch))
    return _record_trail(
        loan, details, ValuationSource.ATTOM, HistoryMarker.UNDERWRITING_VALUATION_UPDATED_ATTOM, now
    )


def update_evaluator_input(
    loan: LoanApplication, role: str, values: dict, *, now: datetime
) -> LoanApplication:
    normalized_role = (role or "").strip().upper()
    if normalized_role != ValuationSource.EVALUATOR.value:
        raise ValidationFailedError(["updatedByRole must be EVALUATOR."])
    patch = extract_patch(EVALUATOR_FIELDS, values)
    if not patch:
        raise ValidationFailedError(["At least one evaluator field is required."])
    _require_underwriting(loan, "Evaluator", "evaluator")

    stored = loan.evaluator_input or EvaluatorInput()
    updated = loan.model_copy(deep=True)
    updated.evaluator_input = EvaluatorInput(
        values={**stored.values, **patch},
        updated_at=now,
        updated_by=normalized_role,
    )
    updated.history.append(HistoryMarker.UNDERWRITING_EVALUATOR_UPDATED.value)
    updated.last_event_at = now
    return updated


def update_title_agent_form(
    loan: LoanApplication, form: TitleAgentForm, *, now: datetime
) -> LoanApplication:
    """Merge the fields the caller sent over the stored form and stamp it."""
    existing = loan.title_agent_form or TitleAgentForm()
    patch = {name: getattr(form, name) for name in form.model_fields_set if name != "updated_at"}
    merged = TitleAgentForm.model_validate({**existing.model_dump(), **patch, "updated_at": now})
    updated = loan.model_copy(deep=True)
    updated.title_agent_form = merged
    updated.last_event_at = now
    return updated
