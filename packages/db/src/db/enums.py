# This project was developed with assistance from AI tools.
"""
Domain enums for the loan workflow lifecycle.

Shared domain types used by both SQLAlchemy models (db package)
and Pydantic schemas (api package).
"""

import enum


class WorkflowStage(enum.IntEnum):
    APPLICATION_SUBMITTED = 0
    DOCUMENT_VERIFICATION = 1
    PROCESSING = 2
    UNDERWRITING_REVIEW = 3
    FINAL_APPROVAL = 4
    FUNDING = 5

    @property
    def label(self) -> str:
        return _STAGE_LABELS[self]

    @classmethod
    def valid_transitions(cls) -> dict["WorkflowStage", tuple["WorkflowEvent", "WorkflowStage"]]:
        """Closed transition table: current stage -> (allowed event, next stage)."""
        return {
            cls.APPLICATION_SUBMITTED: (
                WorkflowEvent.DOCUMENT_REVIEW_STARTED,
                cls.DOCUMENT_VERIFICATION,
            ),
            cls.DOCUMENT_VERIFICATION: (WorkflowEvent.DOCUMENTS_VERIFIED, cls.PROCESSING),
            cls.PROCESSING: (WorkflowEvent.PROCESSING_COMPLETED, cls.UNDERWRITING_REVIEW),
            cls.UNDERWRITING_REVIEW: (WorkflowEvent.UNDERWRITING_APPROVED, cls.FINAL_APPROVAL),
            cls.FINAL_APPROVAL: (WorkflowEvent.FUNDING_COMPLETED, cls.FUNDING),
        }


_STAGE_LABELS = {
    WorkflowStage.APPLICATION_SUBMITTED: "Application Submitted",
    WorkflowStage.DOCUMENT_VERIFICATION: "Document Verification",
    WorkflowStage.PROCESSING: "Processing",
    WorkflowStage.UNDERWRITING_REVIEW: "Underwriting Review",
    WorkflowStage.FINAL_APPROVAL: "Final Approval",
    WorkflowStage.FUNDING: "Funding",
}


class WorkflowEvent(str, enum.Enum):
    DOCUMENT_REVIEW_STARTED = "DOCUMENT_REVIEW_STARTED"
    DOCUMENTS_VERIFIED = "DOCUMENTS_VERIFIED"
    PROCESSING_COMPLETED = "PROCESSING_COMPLETED"
    UNDERWRITING_APPROVED = "UNDERWRITING_APPROVED"
    FUNDING_COMPLETED = "FUNDING_COMPLETED"

    @property
    def target_stage(self) -> WorkflowStage:
        for event, target in WorkflowStage.valid_transitions().values():
            if event is self:
                return target
        raise KeyError(self)


class HistoryMarker(str, enum.Enum):
    """Non-transition entries recorded in a loan's history."""

    APPLICATION_SUBMITTED = "APPLICATION_SUBMITTED"
    UNDERWRITING_STARTED = "UNDERWRITING_STARTED"
    UNDERWRITING_SUBMITTED_FOR_REVIEW = "UNDERWRITING_SUBMITTED_FOR_REVIEW"
    CONDITIONS_FORM_SUBMITTED = "CONDITIONS_FORM_SUBMITTED"
    UNDERWRITING_VALUATION_UPDATED = "UNDERWRITING_VALUATION_UPDATED"
    UNDERWRITING_VALUATION_UPDATED_ATTOM = "UNDERWRITING_VALUATION_UPDATED_ATTOM"
    UNDERWRITING_EVALUATOR_UPDATED = "UNDERWRITING_EVALUATOR_UPDATED"


class PreApprovalDecision(str, enum.Enum):
    PENDING = "PENDING"
    PRE_APPROVE = "PRE_APPROVE"
    DECLINE = "DECLINE"
    REQUEST_INFO = "REQUEST_INFO"


class IntakeStatus(str, enum.Enum):
    LOCKED = "LOCKED"
    PENDING = "PENDING"
    SUBMITTED = "SUBMITTED"


class BorrowerAccessStatus(str, enum.Enum):
    NOT_CREATED = "NOT_CREATED"
    ACCESS_CREATED = "ACCESS_CREATED"
    PROFILE_COMPLETED = "PROFILE_COMPLETED"


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    BORROWER = "borrower"
    LOAN_OFFICER = "loan_officer"
    EVALUATOR = "evaluator"
    UNDERWRITER = "underwriter"


class ValuationSource(str, enum.Enum):
    LOAN_OFFICER = "LOAN_OFFICER"
    EVALUATOR = "EVALUATOR"
    ATTOM = "ATTOM"


class CommunicationParty(str, enum.Enum):
    BORROWER = "BORROWER"
    LENDER = "LENDER"


class CommunicationChannel(str, enum.Enum):
    EMAIL = "EMAIL"
    PORTAL = "PORTAL"


class CommunicationType(str, enum.Enum):
    MESSAGE = "MESSAGE"
    REQUEST_INFO = "REQUEST_INFO"
    REPLY = "REPLY"
    DECISION = "DECISION"


class LlcDocType(str, enum.Enum):
    CERTIFICATE_OF_GOOD_STANDING = "CERTIFICATE_OF_GOOD_STANDING"
    OPERATING_AGREEMENT = "OPERATING_AGREEMENT"
    ARTICLES_OF_ORGANIZATION = "ARTICLES_OF_ORGANIZATION"
    EIN = "EIN"

    @property
    def label(self) -> str:
        return {
            LlcDocType.CERTIFICATE_OF_GOOD_STANDING: "Certificate of Good Standing",
            LlcDocType.OPERATING_AGREEMENT: "Operating Agreement",
            LlcDocType.ARTICLES_OF_ORGANIZATION: "Articles of Organization",
            LlcDocType.EIN: "EIN",
        }[self]


class LiquidityProofDocType(str, enum.Enum):
    BANK_STATEMENT = "BANK_STATEMENT"
    OTHER_ACCOUNT = "OTHER_ACCOUNT"

    @property
    def label(self) -> str:
        if self is LiquidityProofDocType.BANK_STATEMENT:
            return "Bank Statement"
        return "Other Account Statement"


class LiquidityOwnership(str, enum.Enum):
    BORROWER = "BORROWER"
    LLC = "LLC"
    PARTNER = "PARTNER"


class RiskSeverity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RiskState(str, enum.Enum):
    ISSUE = "issue"
    PENDING = "pending"


class QuickRecommendation(str, enum.Enum):
    APPROVE = "Approve"
    CONDITIONAL = "Conditional"
    DECLINE = "Decline"


class RecordSearchStatus(str, enum.Enum):
    COMPLETE = "complete"
    IN_REVIEW = "in_review"
    PENDING = "pending"


class AssessmentRecommendation(str, enum.Enum):
    PRE_APPROVE = "PRE_APPROVE"
    REVIEW = "REVIEW"
    DECLINE = "DECLINE"


class EmailAction(str, enum.Enum):
    APPROVE = "approve"
    COMMENT = "comment"
    MESSAGE = "message"
    DENY = "deny"


class PreviewGroup(str, enum.Enum):
    COMPS = "compsFiles"
    PROPERTY_PHOTOS = "propertyPhotos"
    PURCHASE_CONTRACT = "purchaseContractFiles"
    SCOPE_OF_WORK = "scopeOfWorkFiles"

    @property
    def label(self) -> str:
        return {
            PreviewGroup.COMPS: "COMPS",
            PreviewGroup.PROPERTY_PHOTOS: "Property Photos",
            PreviewGroup.PURCHASE_CONTRACT: "Purchase Contract",
            PreviewGroup.SCOPE_OF_WORK: "Scope of Work",
        }[self]


# Loan types whose underwriting requires purchase details and valuation inputs.
PURCHASE_DETAIL_LOAN_TYPES = frozenset(
    {
        "Fix & Flip Loan (Rehab Loan)",
        "Bridge Loan",
        "Ground-Up Construction Loan",
        "Transactional Funding (Double Close / Wholesale)",
        "Land Loan",
        "Purchase",
    }
)


class LoanStatus(str, enum.Enum):
    """Borrower/lender-facing status label derived from stage and intake."""

    IN_PROGRESS = "In Progress"
    IN_UNDERWRITING = "In-underwriting"
    UW_FOR_REVIEW = "UW for Review"
    UNDER_REVIEW = "Under Review"
    APPROVED = "Approved"
    # Lender pipeline label for a request still at stage 0.
    NEW_REQUEST = "New Loan Request"


# Statuses during which valuation and evaluator inputs may be edited.
VALUATION_EDITABLE_STATUSES = frozenset(
    {LoanStatus.IN_UNDERWRITING, LoanStatus.UW_FOR_REVIEW, LoanStatus.UNDER_REVIEW}
)
