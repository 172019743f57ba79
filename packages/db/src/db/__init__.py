# This project was developed with assistance from AI tools.
__version__ = "0.1.0"

from .database import Base, SessionLocal, engine, get_db
from .enums import (
    IntakeStatus,
    LoanStatus,
    PreApprovalDecision,
    UserRole,
    WorkflowEvent,
    WorkflowStage,
)
from .models import LoanApplicationRecord, UnderwritingSettingsRecord

__all__ = [
    "Base",
    "SessionLocal",
    "engine",
    "get_db",
    "__version__",
    # Enums
    "IntakeStatus",
    "LoanStatus",
    "PreApprovalDecision",
    "UserRole",
    "WorkflowEvent",
    "WorkflowStage",
    # Models
    "LoanApplicationRecord",
    "UnderwritingSettingsRecord",
]
