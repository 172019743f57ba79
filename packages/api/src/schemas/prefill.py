# This project was developed with assistance from AI tools.
"""Prefill snapshots: what a returning borrower has on file."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, computed_field

from .loan import (
    ActiveLoanUpdate,
    BorrowerProfile,
    ConditionsForm,
    IntakePastProject,
    LiquidityProofDoc,
    LlcDocument,
    Referral,
)


class OnFile(BaseModel):
    """Tagged value for one reusable data category.

    ``fresh`` may be reused as-is, ``stale`` is known but must be re-collected,
    ``absent`` means nothing is on file.
    """

    kind: Literal["fresh", "stale", "absent"]
    value: Any = None
    as_of: datetime | None = None

    @classmethod
    def fresh(cls, value: Any, as_of: datetime | None) -> "OnFile":
        return cls(kind="fresh", value=value, as_of=as_of)

    @classmethod
    def stale(cls, value: Any, as_of: datetime | None) -> "OnFile":
        return cls(kind="stale", value=value, as_of=as_of)

    @classmethod
    def absent(cls) -> "OnFile":
        return cls(kind="absent")

    @property
    def can_reuse(self) -> bool:
        return self.kind == "fresh"


class ActiveLoanWithUs(ActiveLoanUpdate):
    property: str = ""
    amount: float | None = None


class LlcOption(BaseModel):
    name: str
    state_recorded: str = ""


class MortgageLoansOnFile(BaseModel):
    lenders: list[str] = Field(default_factory=list)
    total_monthly_interest: float | None = None


class UnderwritingPrefill(BaseModel):
    """Reusable prior-application data for the underwriting continuation form."""

    is_new_borrower: bool
    source_loan_id: str | None = None
    within_freshness_window: bool = False
    credit_score: OnFile
    liquidity_amount: OnFile
    liquidity_docs: OnFile
    mortgage_loans: OnFile
    llc_docs: OnFile
    referral: OnFile
    past_projects: OnFile
    active_loans_with_us: list[ActiveLoanWithUs] = Field(default_factory=list)
    llc_options: list[LlcOption] = Field(default_factory=list)
    selected_llc: LlcOption | None = None
    liquidity_ownership_errors: list[str] = Field(default_factory=list)
    identity_on_file: BorrowerProfile | None = None

    @computed_field
    @property
    def can_reuse_credit_score(self) -> bool:
        return self.credit_score.can_reuse

    @computed_field
    @property
    def can_reuse_liquidity(self) -> bool:
        return self.liquidity_amount.can_reuse and self.liquidity_docs.can_reuse

    @computed_field
    @property
    def can_reuse_mortgage_loans(self) -> bool:
        return self.mortgage_loans.can_reuse

    # Typed accessors for the finalization step

    def credit_score_value(self) -> int | None:
        return self.credit_score.value if self.credit_score.kind != "absent" else None

    def llc_docs_value(self) -> list[LlcDocument]:
        return [LlcDocument.model_validate(d) for d in (self.llc_docs.value or [])]

    def referral_value(self) -> Referral:
        return Referral.model_validate(self.referral.value or {})

    def past_projects_value(self) -> list[IntakePastProject]:
        return [IntakePastProject.model_validate(p) for p in (self.past_projects.value or [])]

    def liquidity_docs_value(self) -> list[LiquidityProofDoc]:
        return [LiquidityProofDoc.model_validate(d) for d in (self.liquidity_docs.value or [])]

    def mortgage_loans_value(self) -> MortgageLoansOnFile:
        return MortgageLoansOnFile.model_validate(self.mortgage_loans.value or {})


class ConditionsPrefill(BaseModel):
    """Conditions form seeded from the borrower's latest prior conditions submission."""

    form: ConditionsForm
    within_30_days: bool
