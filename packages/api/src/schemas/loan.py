# This project was developed with assistance from AI tools.
"""Loan application aggregate and its sub-records.

The aggregate is persisted as a single JSON payload, so every sub-record
here is a plain pydantic model. Borrower-entered text is whitespace-trimmed
on the way in.
"""

import re
from datetime import datetime

from db.enums import (
    BorrowerAccessStatus,
    CommunicationChannel,
    CommunicationParty,
    CommunicationType,
    IntakeStatus,
    LiquidityOwnership,
    LiquidityProofDocType,
    LlcDocType,
    PreApprovalDecision,
    PreviewGroup,
    ValuationSource,
)
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_TRIMMED = ConfigDict(str_strip_whitespace=True)


class Address(BaseModel):
    model_config = _TRIMMED

    street: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""

    @property
    def is_complete(self) -> bool:
        return bool(self.street and self.city and self.state and self.zip)


class EmergencyContact(BaseModel):
    model_config = _TRIMMED

    name: str = ""
    email: str = ""
    phone: str = ""


class GuarantorContact(BaseModel):
    model_config = _TRIMMED

    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    @property
    def is_complete(self) -> bool:
        return bool(self.first_name and self.last_name and self.email and self.phone)

    @property
    def is_empty(self) -> bool:
        return not (self.first_name or self.last_name or self.email or self.phone)


class UploadedFile(BaseModel):
    """A borrower-supplied file carried inline as a data URL."""

    name: str = ""
    content_type: str = "application/octet-stream"
    data_url: str = ""


class LiquidityProofDoc(UploadedFile):
    doc_type: LiquidityProofDocType = LiquidityProofDocType.OTHER_ACCOUNT
    statement_name: str = ""
    ownership_type: LiquidityOwnership = LiquidityOwnership.BORROWER
    partner_is_guarantor: bool = False
    partner_guarantor_name: str = ""
    partner_is_llc_member: bool = False
    uploaded_at: datetime | None = None

    @field_validator("statement_name", "partner_guarantor_name")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()

    @field_validator("doc_type", mode="before")
    @classmethod
    def _default_doc_type(cls, value):
        if value not in {item.value for item in LiquidityProofDocType}:
            return LiquidityProofDocType.OTHER_ACCOUNT
        return value

    @field_validator("ownership_type", mode="before")
    @classmethod
    def _default_ownership(cls, value):
        if value not in {item.value for item in LiquidityOwnership}:
            return LiquidityOwnership.BORROWER
        return value

    @property
    def is_usable(self) -> bool:
        return bool(self.data_url.strip())


class LlcDocument(UploadedFile):
    doc_type: LlcDocType | None = None


class BorrowerProfile(BaseModel):
    """Borrower identity, contact, and liquidity-evidence record."""

    model_config = _TRIMMED

    first_name: str = ""
    middle_name: str = ""
    last_name: str = ""
    llc_name: str = ""
    email: str = ""
    home_phone: str = ""
    work_phone: str = ""
    mobile_phone: str = ""
    date_of_birth: str = ""
    social_security_number: str = ""
    civil_status: str = ""
    present_address: Address = Field(default_factory=Address)
    time_at_residence: str = ""
    mailing_same_as_present: bool = True
    mailing_address: Address = Field(default_factory=Address)
    no_business_address: bool = False
    business_address: Address = Field(default_factory=Address)
    emergency_contacts: list[EmergencyContact] = Field(default_factory=list)
    guarantors: list[str] = Field(default_factory=list)
    guarantor_contacts: list[GuarantorContact] = Field(default_factory=list)
    liquidity_proof_docs: list[LiquidityProofDoc] = Field(default_factory=list)

    @field_validator("emergency_contacts")
    @classmethod
    def _exactly_three_contacts(cls, contacts: list[EmergencyContact]) -> list[EmergencyContact]:
        padded = list(contacts[:3])
        while len(padded) < 3:
            padded.append(EmergencyContact())
        return padded

    @field_validator("guarantors")
    @classmethod
    def _dedupe_guarantors(cls, names: list[str]) -> list[str]:
        seen: set[str] = set()
        result = []
        for name in names:
            value = name.strip()
            if not value or value.lower() in seen:
                continue
            seen.add(value.lower())
            result.append(value)
        return result

    @field_validator("guarantor_contacts")
    @classmethod
    def _drop_empty_contacts(cls, contacts: list[GuarantorContact]) -> list[GuarantorContact]:
        return [contact for contact in contacts if not contact.is_empty]

    @model_validator(mode="after")
    def _mirror_mailing_address(self) -> "BorrowerProfile":
        if self.mailing_same_as_present:
            self.mailing_address = self.present_address.model_copy()
        return self

    @property
    def full_name(self) -> str:
        return " ".join(
            part for part in (self.first_name, self.middle_name, self.last_name) if part
        )


class PurchaseDetails(BaseModel):
    """Purchase-loan inputs and the valuation field set.

    Monetary values stay as entered ("$350,000"); the decision engine parses them.
    """

    model_config = _TRIMMED

    purchase_price: str = ""
    rehab_budget: str = ""
    arv: str = ""
    exit_strategy: str = ""
    target_closing_date: str = ""
    comps_validation_note: str = "Borrower provided COMPS."
    comps_files: list[UploadedFile] = Field(default_factory=list)
    property_photos: list[UploadedFile] = Field(default_factory=list)
    purchase_contract_files: list[UploadedFile] = Field(default_factory=list)
    scope_of_work_files: list[UploadedFile] = Field(default_factory=list)

    # Valuation fields
    assessor_value: str = ""
    attom_avm_value: str = ""
    zillow_value: str = ""
    realtor_com_value: str = ""
    narpr_value: str = ""
    propelio_median_value: str = ""
    propelio_high_value: str = ""
    propelio_low_value: str = ""
    economic_value: str = ""
    rentometer_estimate: str = ""
    zillow_rent_estimate: str = ""
    current_owner: str = ""
    last_sale_date: str = ""
    last_sale_price: str = ""
    bankruptcy_record: str = ""
    internal_watchlist: str = ""
    forecasa_status: str = ""
    active_loans_count: str = ""
    negative_deed_records: str = ""

    def missing_items(self) -> list[str]:
        """Names of the purchase inputs the borrower still owes."""
        missing = []
        if not self.purchase_price:
            missing.append("purchase price")
        if not self.rehab_budget:
            missing.append("rehab budget")
        if not self.arv:
            missing.append("ARV")
        if not self.exit_strategy:
            missing.append("exit strategy")
        if not self.target_closing_date:
            missing.append("target closing date")
        if not self.comps_files:
            missing.append("comps")
        if not self.property_photos:
            missing.append("property photos")
        if not self.purchase_contract_files:
            missing.append("purchase contract")
        if not self.scope_of_work_files:
            missing.append("itemized rehab scope")
        return missing

    def files_for(self, group: PreviewGroup) -> list[UploadedFile]:
        return {
            PreviewGroup.COMPS: self.comps_files,
            PreviewGroup.PROPERTY_PHOTOS: self.property_photos,
            PreviewGroup.PURCHASE_CONTRACT: self.purchase_contract_files,
            PreviewGroup.SCOPE_OF_WORK: self.scope_of_work_files,
        }[group]


class Communication(BaseModel):
    id: str
    thread_id: str
    from_party: CommunicationParty
    channel: CommunicationChannel
    type: CommunicationType
    subject: str = ""
    message: str
    attachments: list[UploadedFile] = Field(default_factory=list)
    created_at: datetime
    read_by_borrower: bool = False


class LenderComment(BaseModel):
    id: str
    message: str
    created_at: datetime
    created_by: str = "LENDER"


class Referral(BaseModel):
    model_config = _TRIMMED

    name: str = ""
    email: str = ""
    phone: str = ""

    @property
    def is_empty(self) -> bool:
        return not (self.name or self.email or self.phone)


class ActiveLoanUpdate(BaseModel):
    model_config = _TRIMMED

    loan_id: str
    status: str = ""
    expected_completion_date: str = ""
    payoff_date: str = ""
    monthly_payment: float | None = None
    notes: str = ""


class IntakePastProject(BaseModel):
    model_config = _TRIMMED

    property_name: str = ""
    photo_label: str = ""
    photo: UploadedFile | None = None


class IntakeSubmission(BaseModel):
    """Underwriting continuation form as submitted by the borrower."""

    model_config = _TRIMMED

    bed: str = ""
    bath: str = ""
    closing_company: str = ""
    closing_agent_name: str = ""
    closing_agent_email: str = ""
    use_credit_score_on_file: bool = False
    credit_score: int | None = None
    use_liquidity_on_file: bool = False
    proof_of_liquidity_amount: str = ""
    llc_name: str = ""
    llc_state_recorded: str = ""
    llc_same_as_on_file: bool = True
    use_llc_docs_on_file: bool = False
    llc_docs: list[LlcDocument] = Field(default_factory=list)
    use_existing_mortgage_loans: bool = False
    other_mortgage_loans_count: int | None = None
    other_mortgage_lenders: list[str] = Field(default_factory=list)
    other_mortgage_total_monthly_interest: float | None = None
    has_new_mortgage_loans: bool = False
    new_mortgage_lenders: list[str] = Field(default_factory=list)
    active_loans: list[ActiveLoanUpdate] = Field(default_factory=list)
    use_profile_referral: bool = False
    referral: Referral = Field(default_factory=Referral)
    use_profile_projects: bool = False
    past_projects: list[IntakePastProject] = Field(default_factory=list)
    borrower_profile: BorrowerProfile | None = None

    @field_validator("other_mortgage_lenders", "new_mortgage_lenders")
    @classmethod
    def _drop_blank_lenders(cls, lenders: list[str]) -> list[str]:
        return [lender.strip() for lender in lenders if lender.strip()]


class SubmissionRecord(BaseModel):
    submitted_at: datetime
    snapshot: IntakeSubmission


class UnderwritingIntake(BaseModel):
    status: IntakeStatus = IntakeStatus.LOCKED
    requested_at: datetime | None = None
    submitted_at: datetime | None = None
    notification_sent_at: datetime | None = None
    form_data: IntakeSubmission | None = None
    submission_history: list[SubmissionRecord] = Field(default_factory=list)


class ConditionsProofDoc(UploadedFile):
    category: str = ""
    subcategory: str = ""


class ConditionsLlcDoc(UploadedFile):
    doc_type: LlcDocType | None = None


class ConditionsPastProject(BaseModel):
    model_config = _TRIMMED

    property_address: str = ""
    photos: list[UploadedFile] = Field(default_factory=list)


class PackageFile(BaseModel):
    id: str
    section: str
    label: str
    name: str
    saved_as: str
    relative_path: str
    content_type: str
    size_bytes: int
    category: str | None = None
    subcategory: str | None = None
    doc_type: str | None = None
    project_index: int | None = None


class DocumentPackage(BaseModel):
    """Immutable snapshot of the files persisted for one conditions submission."""

    model_config = ConfigDict(frozen=True)

    id: str
    created_at: datetime
    root_relative_path: str
    manifest_relative_path: str
    document_count: int
    files: tuple[PackageFile, ...] = ()


class ReuseMeta(BaseModel):
    source_loan_id: str
    source_updated_at: datetime | None = None
    within_30_days: bool = False


class ConditionsForm(BaseModel):
    model_config = _TRIMMED

    credit_score: int | None = None
    proof_of_liquidity_amount: str = ""
    proof_of_liquidity_docs: list[ConditionsProofDoc] = Field(default_factory=list)
    desktop_appraisal_value: str = ""
    desktop_appraisal_docs: list[UploadedFile] = Field(default_factory=list)
    llc_docs: list[ConditionsLlcDoc] = Field(default_factory=list)
    referral: Referral = Field(default_factory=Referral)
    past_projects: list[ConditionsPastProject] = Field(default_factory=list)
    other_mortgage_loans_count: int | None = None
    other_mortgage_total_amount: str = ""
    submitted_at: datetime | None = None
    updated_at: datetime | None = None
    document_package: DocumentPackage | None = None
    reuse_meta: ReuseMeta | None = None

    @field_validator("proof_of_liquidity_docs")
    @classmethod
    def _keep_inline_docs(cls, docs: list[ConditionsProofDoc]) -> list[ConditionsProofDoc]:
        return [doc for doc in docs if doc.data_url.startswith("data:")]

    def has_content(self) -> bool:
        return bool(
            self.credit_score
            or self.proof_of_liquidity_amount
            or self.proof_of_liquidity_docs
            or self.desktop_appraisal_value
            or self.desktop_appraisal_docs
            or self.llc_docs
            or not self.referral.is_empty
            or self.past_projects
            or self.other_mortgage_loans_count is not None
            or self.other_mortgage_total_amount
        )

    @property
    def reference_time(self) -> datetime | None:
        return self.updated_at or self.submitted_at


class BorrowerAccess(BaseModel):
    status: BorrowerAccessStatus = BorrowerAccessStatus.NOT_CREATED
    email: str = ""
    invited_at: datetime | None = None
    created_at: datetime | None = None
    profile_completed_at: datetime | None = None


class ValuationTrailEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    updated_at: datetime
    updated_by: ValuationSource
    values: dict[str, str]


class EvaluatorInput(BaseModel):
    values: dict[str, str] = Field(default_factory=dict)
    updated_at: datetime | None = None
    updated_by: str | None = None


class TitleAgentForm(BaseModel):
    model_config = _TRIMMED

    seller_type: str = "INDIVIDUAL"
    seller_name: str = ""
    seller_llc_name: str = ""
    seller_members: list[str] = Field(default_factory=list)
    has_assignor: bool = False
    assignor_type: str = "INDIVIDUAL"
    assignor_name: str = ""
    assignor_llc_name: str = ""
    assignor_members: list[str] = Field(default_factory=list)
    assignment_fees: str = ""
    purchase_agreements: list[UploadedFile] = Field(default_factory=list)
    assignment_agreements: list[UploadedFile] = Field(default_factory=list)
    updated_at: datetime | None = None

    @field_validator("seller_type", "assignor_type", mode="before")
    @classmethod
    def _party_type(cls, value):
        return "LLC" if value == "LLC" else "INDIVIDUAL"

    @field_validator("seller_members", "assignor_members")
    @classmethod
    def _drop_blank_members(cls, members: list[str]) -> list[str]:
        return [member.strip() for member in members if member.strip()]


class LoanApplication(BaseModel):
    """Aggregate root for one loan request."""

    id: str
    borrower_name: str = ""
    borrower_email: str = ""
    borrower_profile: BorrowerProfile = Field(default_factory=BorrowerProfile)
    llc_name: str = ""
    llc_state_recorded: str = ""
    llc_same_as_on_file: bool = True
    llc_documents: list[LlcDocument] = Field(default_factory=list)
    property: str = ""
    type: str = ""
    amount: float = 0.0
    purchase_details: PurchaseDetails | None = None
    current_stage_index: int = Field(default=0, ge=0, le=5)
    history: list[str] = Field(default_factory=list)
    pre_approval_decision: PreApprovalDecision = PreApprovalDecision.PENDING
    decision_notes: str | None = None
    communications: list[Communication] = Field(default_factory=list)
    lender_comments: list[LenderComment] = Field(default_factory=list)
    underwriting_intake: UnderwritingIntake = Field(default_factory=UnderwritingIntake)
    conditions_form: ConditionsForm | None = None
    borrower_access: BorrowerAccess = Field(default_factory=BorrowerAccess)
    valuation_input_trail: list[ValuationTrailEntry] = Field(default_factory=list)
    evaluator_input: EvaluatorInput | None = None
    title_agent_form: TitleAgentForm | None = None
    created_at: datetime
    last_event_at: datetime

    @field_validator("borrower_email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return value.strip().lower()

    @model_validator(mode="after")
    def _history_covers_stage(self) -> "LoanApplication":
        if len(self.history) < self.current_stage_index:
            raise ValueError("history must record at least one entry per stage reached")
        return self


_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_email(value: str | None) -> bool:
    return bool(value) and bool(_EMAIL_RE.match(value.strip()))
