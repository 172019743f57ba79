# This project was developed with assistance from AI tools.
"""Request and response schemas for the workflow API."""

from db.enums import (
    BorrowerAccessStatus,
    LoanStatus,
    WorkflowEvent,
)
from pydantic import BaseModel, Field

from .decision import DecisionSummary
from .loan import (
    ConditionsForm,
    IntakeSubmission,
    LlcDocument,
    LoanApplication,
    PurchaseDetails,
    TitleAgentForm,
    UploadedFile,
)
from .prefill import ConditionsPrefill, UnderwritingPrefill
from .valuation import PropertyValuation, ValuationSnapshot


class LoanView(BaseModel):
    """A loan plus the values derived from it on every read."""

    application: LoanApplication
    status: LoanStatus
    progress: int
    current_stage: str
    next_event: WorkflowEvent | None = None
    unread_borrower_message_count: int = 0
    borrower_access_status: BorrowerAccessStatus
    underwriting_prefill: UnderwritingPrefill | None = None
    conditions_prefill: ConditionsPrefill | None = None


class WorkflowResponse(BaseModel):
    """Every mutating operation returns the updated view and any fresh decision snapshot."""

    application: LoanView
    decision_summary: DecisionSummary | None = None


class ValuationResponse(BaseModel):
    application: LoanView
    valuation_input: ValuationSnapshot
    attom_fields: PropertyValuation | None = None


class EvaluatorResponse(BaseModel):
    application: LoanView
    evaluator_input: ValuationSnapshot


class LoanListResponse(BaseModel):
    data: list[LoanView]
    count: int


# -- Requests --


class CreateApplicationRequest(BaseModel):
    property: str = ""
    type: str = ""
    amount: float = 0.0
    purchase_details: PurchaseDetails | None = None
    borrower_name: str = ""
    borrower_first_name: str = ""
    borrower_middle_name: str = ""
    borrower_last_name: str = ""
    borrower_email: str = ""
    llc_name: str = ""
    llc_same_as_on_file: bool = True
    llc_state_recorded: str = ""
    llc_docs: list[LlcDocument] = Field(default_factory=list)


class AdvanceEventRequest(BaseModel):
    event_type: str


class DecisionRequest(BaseModel):
    decision: str
    notes: str = ""


class CommentRequest(BaseModel):
    comment: str


class MessageRequest(BaseModel):
    message: str
    subject: str = ""
    attachments: list[UploadedFile] = Field(default_factory=list)


class ReplyRequest(MessageRequest):
    thread_id: str | None = None


class BorrowerAccessRequest(BaseModel):
    email: str = ""


class IntakeRequest(BaseModel):
    form_data: IntakeSubmission


class ConditionsRequest(BaseModel):
    form_data: ConditionsForm


class ValuationPatchRequest(BaseModel):
    updated_by_role: str = "LOAN_OFFICER"
    values: dict[str, str | int | float | None]


class EvaluatorInputRequest(BaseModel):
    updated_by_role: str = "EVALUATOR"
    values: dict[str, str | int | float | None]


class TitleAgentFormRequest(BaseModel):
    form: TitleAgentForm


class AttomAutofillRequest(BaseModel):
    address_override: str = ""


class EmailActionRequest(BaseModel):
    exp: str
    sig: str
    comment: str = ""
    message: str = ""
    subject: str = ""
    notes: str = ""
